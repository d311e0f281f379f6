#
# Copyright (C) 2026 decim-hdl contributors
#
# This file is part of decim-hdl
#
# SPDX-License-Identifier: MIT
#

import numpy as np
import scipy.signal


def cic_response(f, order, decimation, diff_delay=1):
    """Amplitude response of a CIC decimator

    The response is normalized to unit DC gain. The frequency ``f`` is given
    in cycles per sample at the CIC output rate.
    """
    f = np.asarray(f, 'float')
    with np.errstate(divide='ignore', invalid='ignore'):
        r = (np.sin(np.pi * f * diff_delay)
             / (decimation * np.sin(np.pi * f * diff_delay / decimation)))
    r = np.where(f == 0, 1.0, r)
    return np.abs(r)**order


def quantize(h, coeff_width, normalize=True):
    """Quantize FIR coefficients

    The coefficients are scaled by ``2**(coeff_width - 1)`` and rounded, so
    that a coefficient of 1.0 corresponds to an output truncation of
    ``coeff_width - 1`` bits. If ``normalize`` is ``True``, the coefficients
    are first normalized to unit DC gain.
    """
    h = np.asarray(h, 'float')
    if normalize:
        h = h / np.sum(h)
    return [int(c) for c in np.round(h * 2**(coeff_width - 1))]


def compensation_taps(num_taps=26, *, order=5, decimation=16, diff_delay=1,
                      passband=0.1, stopband=0.25, coeff_width=18):
    """CIC droop compensation FIR

    The FIR has the inverse response of the CIC in the passband, a linear
    transition band, and zero response above ``stopband``. Frequencies are
    given in cycles per sample at the CIC output rate.
    """
    freqs = np.linspace(0, 0.5, 129)
    gains = np.zeros_like(freqs)
    pass_sel = freqs <= passband
    gains[pass_sel] = 1 / cic_response(
        freqs[pass_sel], order, decimation, diff_delay)
    edge_gain = 1 / cic_response(passband, order, decimation, diff_delay)
    trans_sel = (freqs > passband) & (freqs < stopband)
    gains[trans_sel] = (edge_gain * (stopband - freqs[trans_sel])
                        / (stopband - passband))
    h = scipy.signal.firwin2(num_taps, freqs, gains, fs=1.0)
    h = 0.5 * (h + h[::-1])
    return quantize(h, coeff_width)


def halfband_taps(num_taps=7, *, passband=0.1, coeff_width=18):
    """Halfband FIR

    The filter is designed with the Parks-McClellan algorithm with a passband
    from 0 to ``passband`` and a stopband from ``0.5 - passband`` to 0.5
    cycles per sample (at the input rate). The result is then forced to have
    the exact halfband structure: a center tap equal to 0.5 and zeros at even
    distances from the center.
    """
    if num_taps % 4 != 3:
        raise ValueError('halfband length must be 4*n - 1')
    h = scipy.signal.remez(
        num_taps, [0, passband, 0.5 - passband, 0.5], [1, 0], fs=1.0)
    h = 0.5 * (h + h[::-1])
    center = num_taps // 2
    k = np.arange(num_taps) - center
    odd = k % 2 == 1
    h[~odd] = 0
    h[odd] *= 0.5 / np.sum(h[odd])
    h[center] = 0.5
    return quantize(h, coeff_width, normalize=False)


if __name__ == '__main__':
    for name, taps in [('compensation', compensation_taps()),
                       ('halfband', halfband_taps())]:
        print(f'{name} ({len(taps)} taps, sum {sum(taps)}):')
        print(taps)

#
# Copyright (C) 2026 decim-hdl contributors
#
# This file is part of decim-hdl
#
# SPDX-License-Identifier: MIT
#

from amaranth import *
import amaranth.back.verilog

import numpy as np

from .util import ceil_shift, cic_growth, clamp_nbits


class CICDecimator(Elaboratable):
    """CIC decimator

    This module is a cascaded integrator-comb decimator with ``order``
    integrators running at the input rate and ``order`` combs running at the
    output rate. It uses only additions and subtractions.

    The integrators are pipelined: on each input sample, integrator 0 adds
    the input and integrator ``j`` adds the value that integrator ``j - 1``
    had before the update. On the ``decimation``-th input of each window, the
    previous value of the last integrator is captured and a pulse travels
    through the combs, updating one comb stage per clock cycle. The output
    strobe is asserted ``order + 1`` cycles after the input that closes the
    window.

    The internal width is by default the Hogenauer bound ``in_width + order *
    ceil(log2(decimation * diff_delay))``, which is the minimum width for
    which the output is exact. The output can optionally be truncated to
    fewer bits by dropping LSBs (floor, no rounding).

    Parameters
    ----------
    in_width : int
        Width of the input samples.
    order : int
        Number of integrator and comb stages.
    decimation : int
        Decimation factor.
    diff_delay : int
        Differential delay of the combs.
    width : Optional[int]
        Internal width of the integrators and combs. It cannot be smaller
        than the Hogenauer bound.
    out_width : Optional[int]
        Output width. By default it is equal to ``width``.

    Attributes
    ----------
    delay : int
        Delay (in clock cycles) from the input that closes a decimation
        window to the corresponding ``strobe_out``.
    data_in : Signal(signed(in_width)), in
        Input sample.
    strobe_in : Signal(), in
        Indicates that ``data_in`` is valid in the current cycle.
    data_out : Signal(signed(out_width)), out
        Output sample.
    strobe_out : Signal(), out
        Output strobe. It is asserted for one cycle when a new output is
        presented in ``data_out``. The output is kept constant until the next
        time that ``strobe_out`` is asserted.
    integrators : List[Signal(signed(width))]
        Integrator registers.
    combs : List[Signal(signed(width))]
        Comb output registers.
    """
    def __init__(self, in_width=2, *, order=5, decimation=16, diff_delay=1,
                 width=None, out_width=None):
        if order < 1:
            raise ValueError('order must be at least 1')
        if decimation < 2:
            raise ValueError('decimation must be at least 2')
        if diff_delay < 1:
            raise ValueError('diff_delay must be at least 1')
        min_width = in_width + cic_growth(order, decimation, diff_delay)
        if width is None:
            width = min_width
        elif width < min_width:
            raise ValueError(
                f'width {width} is too small for a CIC with order {order}, '
                f'decimation {decimation} and differential delay '
                f'{diff_delay} (needs {min_width} bits)')
        if out_width is None:
            out_width = width
        elif out_width > width:
            raise ValueError('out_width cannot be larger than width')
        self.iw = in_width
        self.order = order
        self.decimation = decimation
        self.diff_delay = diff_delay
        self.w = width
        self.ow = out_width
        self.shift = width - out_width

        self.data_in = Signal(signed(self.iw))
        self.strobe_in = Signal()
        self.data_out = Signal(signed(self.ow))
        self.strobe_out = Signal()

        self.integrators = [Signal(signed(self.w), name=f'integrator{j}')
                            for j in range(order)]
        self.combs = [Signal(signed(self.w), name=f'comb{j}')
                      for j in range(order)]

    @property
    def delay(self):
        return self.order + 1

    @property
    def gain(self):
        return (self.decimation * self.diff_delay)**self.order

    @property
    def out_bound(self):
        """Maximum magnitude of the output samples"""
        return ceil_shift(2**(self.iw - 1) * self.gain, self.shift)

    @property
    def out_spacing(self):
        """Minimum number of cycles between output strobes"""
        return self.decimation

    def impulse_response(self):
        box = np.ones(self.decimation * self.diff_delay, 'int')
        h = np.ones(1, 'int')
        for _ in range(self.order):
            h = np.convolve(h, box)
        return h

    def model(self, x):
        x = np.asarray(x, 'int')
        y = np.convolve(x, self.impulse_response())
        # the pipelined integrators delay the captured sample by order
        # inputs
        y = np.concatenate((np.zeros(self.order, 'int'), y))
        y = y[self.decimation - 1::self.decimation][:x.size // self.decimation]
        return clamp_nbits(y >> self.shift, self.ow)

    def elaborate(self, platform):
        m = Module()

        counter = Signal(range(self.decimation))
        decimate = Signal()
        m.d.comb += decimate.eq(
            self.strobe_in & (counter == self.decimation - 1))

        with m.If(self.strobe_in):
            m.d.sync += [
                counter.eq(Mux(decimate, 0, counter + 1)),
                self.integrators[0].eq(self.integrators[0] + self.data_in),
            ]
            m.d.sync += [
                self.integrators[j].eq(
                    self.integrators[j] + self.integrators[j - 1])
                for j in range(1, self.order)
            ]

        decimated = Signal(signed(self.w))
        with m.If(decimate):
            m.d.sync += decimated.eq(self.integrators[-1])

        # strobes[j] enables comb j; strobes[-1] is the output strobe
        strobes = Signal(self.order + 1)
        m.d.sync += strobes.eq(Cat(decimate, strobes[:-1]))

        for j, comb in enumerate(self.combs):
            comb_in = decimated if j == 0 else self.combs[j - 1]
            delays = [Signal(signed(self.w), name=f'comb{j}_delay{k}')
                      for k in range(self.diff_delay)]
            with m.If(strobes[j]):
                m.d.sync += [
                    comb.eq(comb_in - delays[-1]),
                    delays[0].eq(comb_in),
                ]
                m.d.sync += [delays[k].eq(delays[k - 1])
                             for k in range(1, self.diff_delay)]

        m.d.comb += [
            self.data_out.eq(self.combs[-1] >> self.shift),
            self.strobe_out.eq(strobes[-1]),
        ]

        return m


if __name__ == '__main__':
    cic = CICDecimator()
    print(amaranth.back.verilog.convert(
        cic, name='cic_decimator',
        ports=[cic.data_in, cic.strobe_in, cic.data_out, cic.strobe_out]))

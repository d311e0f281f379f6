#
# Copyright (C) 2026 decim-hdl contributors
#
# This file is part of decim-hdl
#
# SPDX-License-Identifier: MIT
#

from amaranth.utils import ceil_log2


def clamp_nbits(x, nbits):
    offset = 2**(nbits - 1)
    return ((x + offset) % 2**nbits) - offset


def signed_range(nbits):
    """Range of values of a two's complement integer of ``nbits`` bits."""
    return -2**(nbits - 1), 2**(nbits - 1) - 1


def fits_signed(value, nbits):
    lo, hi = signed_range(nbits)
    return lo <= value <= hi


def ceil_shift(x, shift):
    """``ceil(x / 2**shift)`` for a non-negative integer ``x``"""
    return -(-x >> shift)


def cic_growth(order, decimation, diff_delay=1):
    """Bit growth of a CIC decimator

    This is the number of bits that the integrators of a CIC decimator need
    on top of the input width, ``order * ceil(log2(decimation *
    diff_delay))``.
    """
    return order * ceil_log2(decimation * diff_delay)

#
# Copyright (C) 2026 decim-hdl contributors
#
# This file is part of decim-hdl
#
# SPDX-License-Identifier: MIT
#

from .config import DecimatorConfig
from .taps import compensation_taps, halfband_taps


def default():
    """Default decimator configuration"""
    return DecimatorConfig()


def low_area():
    """Configuration with a truncated CIC output and 24-bit FIRs"""
    config = DecimatorConfig()
    config.cic_out_width = 18
    config.coeff_width = 16
    config.fir_out_width = 24
    config.fir_trunc = config.coeff_width - 1
    config.hb_width = 24
    config.hb_trunc = config.coeff_width - 1
    config.fir_taps = compensation_taps(
        config.fir_num_taps, order=config.cic_order,
        decimation=config.cic_decimation, diff_delay=config.cic_diff_delay,
        coeff_width=config.coeff_width)
    config.hb1_taps = halfband_taps(
        config.hb_num_taps, coeff_width=config.coeff_width)
    config.hb2_taps = halfband_taps(
        config.hb_num_taps, coeff_width=config.coeff_width)
    return config

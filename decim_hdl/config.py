#
# Copyright (C) 2026 decim-hdl contributors
#
# This file is part of decim-hdl
#
# SPDX-License-Identifier: MIT
#

from .taps import compensation_taps, halfband_taps


class DecimatorConfig:
    """Decimator configuration

    This class defines configuration parameters for the ``Decimator128``
    top-level. The FIR coefficients are designed when the configuration is
    created, and they can be replaced before the configuration is used.
    """
    def __init__(self):
        # create default configuration

        # input from the delta-sigma modulator
        self.in_width = 2

        # CIC
        self.cic_order = 5
        self.cic_decimation = 16
        self.cic_diff_delay = 1
        # None means full precision
        self.cic_out_width = None

        # FIRs
        self.coeff_width = 18
        self.round_half_up = False

        # CIC droop compensation FIR
        self.fir_num_taps = 26
        self.fir_out_width = 32
        self.fir_trunc = 11
        self.fir_taps = compensation_taps(
            self.fir_num_taps, order=self.cic_order,
            decimation=self.cic_decimation, diff_delay=self.cic_diff_delay,
            coeff_width=self.coeff_width)

        # halfband FIRs
        self.hb_num_taps = 7
        self.hb_width = 32
        self.hb_trunc = 17
        self.hb1_taps = halfband_taps(
            self.hb_num_taps, coeff_width=self.coeff_width)
        self.hb2_taps = halfband_taps(
            self.hb_num_taps, coeff_width=self.coeff_width)

    @property
    def decimation(self):
        return self.cic_decimation * 2 * 2 * 2

    def validate(self):
        assert self.in_width >= 1
        assert self.cic_order >= 1
        assert self.cic_decimation >= 2
        assert self.cic_diff_delay >= 1
        assert self.coeff_width >= 2
        assert len(self.fir_taps) == self.fir_num_taps
        assert len(self.hb1_taps) == self.hb_num_taps
        assert len(self.hb2_taps) == self.hb_num_taps
        # each halfband owns its coefficients
        assert self.hb1_taps is not self.hb2_taps

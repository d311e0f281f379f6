#
# Copyright (C) 2026 decim-hdl contributors
#
# This file is part of decim-hdl
#
# SPDX-License-Identifier: MIT
#

import argparse

from amaranth import *
import amaranth.back.verilog

import numpy as np

from .cic import CICDecimator
from .config import DecimatorConfig
from . import configs
from .fir import CompensationFIR, HalfbandDecimator


class Decimator128(Elaboratable):
    """Decimator128 top level

    This elaboratable is a delta-sigma decimator formed by a CIC decimator, a
    CIC droop compensation FIR decimating by 2, and two halfband FIRs
    decimating by 2. With the default configuration, the total decimation is
    128.

    The stages are connected directly, using the strobes of the previous
    stage as the input strobes of the next one. All the stages are created
    when this object is constructed. Each FIR stage is dimensioned with the
    worst-case output magnitude and the output strobe spacing of the previous
    stage, so that an invalid configuration raises ``ValueError`` before any
    gateware is elaborated.

    Parameters
    ----------
    config : Optional[DecimatorConfig]
        Decimator configuration. By default, ``configs.default()`` is used.

    Attributes
    ----------
    delay : int
        Delay (in clock cycles) from the input that closes an output
        decimation window to the corresponding ``strobe_out``.
    data_in : Signal(signed(in_width)), in
        Input word from the delta-sigma modulator.
    strobe_in : Signal(), in
        Indicates that ``data_in`` is valid in the current cycle.
    data_out : Signal(signed(hb_width)), out
        Output PCM sample.
    strobe_out : Signal(), out
        Output strobe.
    reset : Signal(), in
        Synchronous reset of all the stages. The outputs are zero while the
        reset is asserted.
    """
    def __init__(self, config=None):
        if config is None:
            config = DecimatorConfig()
        config.validate()
        self.config = config

        self.cic = CICDecimator(
            config.in_width, order=config.cic_order,
            decimation=config.cic_decimation,
            diff_delay=config.cic_diff_delay,
            out_width=config.cic_out_width)
        self.fir = CompensationFIR(
            config.fir_taps, in_width=self.cic.ow,
            out_width=config.fir_out_width, coeff_width=config.coeff_width,
            trunc=config.fir_trunc,
            min_input_spacing=self.cic.out_spacing,
            num_taps=config.fir_num_taps,
            round_half_up=config.round_half_up,
            in_bound=self.cic.out_bound)
        self.hb1 = HalfbandDecimator(
            config.hb1_taps, in_width=self.fir.ow, out_width=config.hb_width,
            coeff_width=config.coeff_width, trunc=config.hb_trunc,
            min_input_spacing=self.fir.out_spacing,
            num_taps=config.hb_num_taps,
            round_half_up=config.round_half_up,
            in_bound=self.fir.out_bound)
        self.hb2 = HalfbandDecimator(
            config.hb2_taps, in_width=self.hb1.ow, out_width=config.hb_width,
            coeff_width=config.coeff_width, trunc=config.hb_trunc,
            min_input_spacing=self.hb1.out_spacing,
            num_taps=config.hb_num_taps,
            round_half_up=config.round_half_up,
            in_bound=self.hb1.out_bound)

        self.data_in = Signal(signed(config.in_width))
        self.strobe_in = Signal()
        self.data_out = Signal(signed(self.hb2.ow))
        self.strobe_out = Signal()
        self.reset = Signal()

    @property
    def stages(self):
        return [self.cic, self.fir, self.hb1, self.hb2]

    @property
    def decimation(self):
        return (self.cic.decimation * self.fir.decimation
                * self.hb1.decimation * self.hb2.decimation)

    @property
    def delay(self):
        return sum(stage.delay for stage in self.stages)

    def ports(self):
        return [
            self.data_in,
            self.strobe_in,
            self.data_out,
            self.strobe_out,
            self.reset,
        ]

    def model(self, x):
        """Bit-exact model of the decimator"""
        for stage in self.stages:
            x = stage.model(x)
        return x

    def impulse_response(self):
        """Impulse response of the cascade at the input rate

        The response has the gain of the integer coefficients of all the
        stages, without any of the output truncations.
        """
        h = self.cic.impulse_response().astype('float')
        upsampling = self.cic.decimation
        for stage in self.stages[1:]:
            taps = np.zeros((len(stage.taps) - 1) * upsampling + 1)
            taps[::upsampling] = stage.taps
            h = np.convolve(h, taps)
            upsampling *= stage.decimation
        return h

    def reference(self, x):
        """Floating point reference of the decimator

        The input is filtered with the composition of the transfer functions
        of all the stages and decimated. There is no intermediate
        quantization. The output is scaled to units of the LSB of
        ``data_out``.
        """
        x = np.asarray(x, 'float')
        y = np.convolve(x, self.impulse_response())
        # the pipelined CIC integrators delay the decimated samples
        offset = self.decimation - 1 - self.cic.order
        y = y[offset::self.decimation][:x.size // self.decimation]
        shift = (self.cic.shift + self.fir.trunc
                 + self.hb1.trunc + self.hb2.trunc)
        return y / 2**shift

    def elaborate(self, platform):
        m = Module()

        m.submodules.cic = ResetInserter(self.reset)(self.cic)
        m.submodules.fir = ResetInserter(self.reset)(self.fir)
        m.submodules.hb1 = ResetInserter(self.reset)(self.hb1)
        m.submodules.hb2 = ResetInserter(self.reset)(self.hb2)

        m.d.comb += [
            self.cic.data_in.eq(self.data_in),
            self.cic.strobe_in.eq(self.strobe_in),
        ]
        for previous, stage in zip(self.stages[:-1], self.stages[1:]):
            m.d.comb += [
                stage.data_in.eq(previous.data_out),
                stage.strobe_in.eq(previous.strobe_out),
            ]
        m.d.comb += [
            self.data_out.eq(Mux(self.reset, 0, self.hb2.data_out)),
            self.strobe_out.eq(self.hb2.strobe_out & ~self.reset),
        ]

        return m


def parse_args():
    parser = argparse.ArgumentParser()
    parser.add_argument(
        '--config', default='default',
        help='Decimator configuration name [default=%(default)r]')
    parser.add_argument(
        'output_file', help='Output verilog file')
    return parser.parse_args()


def main():
    args = parse_args()
    config = getattr(configs, args.config)()
    top = Decimator128(config)
    with open(args.output_file, 'w') as f:
        f.write(amaranth.back.verilog.convert(
            top, name='decimator128', ports=top.ports()))
    print('wrote verilog to', args.output_file)


if __name__ == '__main__':
    main()

#
# Copyright (C) 2026 decim-hdl contributors
#
# This file is part of decim-hdl
#
# SPDX-License-Identifier: MIT
#

from amaranth import *
import numpy as np

import unittest

from decim_hdl.fir import (
    Macc, SerialMACDecimator, CompensationFIR, HalfbandDecimator)
from decim_hdl.taps import compensation_taps, halfband_taps
from .amaranth_sim import AmaranthSim, stream


class TestMacc(AmaranthSim):
    def test_macc(self):
        self.truncate_round = None
        self.macc_common()

    def test_macc_truncate_round(self):
        self.truncate_round = 3
        self.macc_common()

    def macc_common(self):
        a_width = 16
        b_width = 18
        self.dut = Macc(a_width, b_width, truncate_round=self.truncate_round)
        num_cycles = 500
        strobe = np.random.randint(2, size=num_cycles)
        first = np.random.randint(8, size=num_cycles) == 0
        a, d = [np.random.randint(-2**(a_width-1), 2**(a_width-1),
                                  size=num_cycles)
                for _ in range(2)]
        b = np.random.randint(-2**(b_width-1), 2**(b_width-1),
                              size=num_cycles)

        # accumulator value after each input cycle
        acc = 0
        after = []
        for j in range(num_cycles):
            if strobe[j]:
                start = self.dut.initial_acc if first[j] else acc
                acc = start + (int(a[j]) + int(d[j])) * int(b[j])
            after.append(acc)

        async def bench(ctx):
            for j in range(num_cycles + self.dut.delay):
                if j < num_cycles:
                    ctx.set(self.dut.strobe_in, int(strobe[j]))
                    ctx.set(self.dut.first_acc, int(first[j]))
                    ctx.set(self.dut.a, int(a[j]))
                    ctx.set(self.dut.d, int(d[j]))
                    ctx.set(self.dut.b, int(b[j]))
                else:
                    ctx.set(self.dut.strobe_in, 0)
                k = j - self.dut.delay
                expected = after[k] if k >= 0 else 0
                assert ctx.get(self.dut.acc) == expected, \
                    f'acc = {ctx.get(self.dut.acc)}, ' \
                    f'expected = {expected} @ cycle = {j}'
                await ctx.tick()

        self.simulate(bench)


class TestSerialMACDecimator(AmaranthSim):
    def common_model(self, x, spacing):
        expected = self.dut.model(x)

        async def bench(ctx):
            out, _ = await stream(ctx, self.dut, x, spacing=spacing,
                                  tail=self.dut.delay + 1)
            np.testing.assert_equal(out, expected)

        self.simulate(bench)

    def test_decimation3_symmetric(self):
        taps = [3, -7, 12, 40, 100, 40, 12, -7, 3]
        self.dut = SerialMACDecimator(
            taps, in_width=12, out_width=20, coeff_width=10, decimation=3,
            min_input_spacing=6, symmetric=True)
        assert [self.dut.operations(p) for p in range(3)] == [3, 2, 3]
        assert self.dut.busy_cycles == 6
        x = np.random.randint(-2**11, 2**11, size=300)
        self.common_model(x, self.dut.busy_cycles)

    def test_empty_phase(self):
        self.dut = SerialMACDecimator(
            [4, 0, 4], in_width=8, out_width=16, coeff_width=8,
            decimation=2, min_input_spacing=4, symmetric=True,
            zero_skip=True)
        assert len(self.dut.schedule) == 2
        dummy = self.dut.schedule[0]
        assert dummy.phase == 0 and dummy.taps == () and dummy.coeff == 0
        assert dummy.first and dummy.last
        x = np.random.randint(-2**7, 2**7, size=200)
        self.common_model(x, 4)

    def test_invalid_parameters(self):
        taps = [1, 2, 3]
        kwargs = dict(in_width=8, out_width=16, min_input_spacing=8)
        with self.assertRaises(ValueError):
            SerialMACDecimator(taps, num_taps=4, **kwargs)
        with self.assertRaises(ValueError):
            SerialMACDecimator([], **kwargs)
        with self.assertRaises(ValueError):
            SerialMACDecimator(taps, decimation=1, **kwargs)
        with self.assertRaises(ValueError):
            SerialMACDecimator(taps, symmetric=True, **kwargs)
        with self.assertRaises(ValueError):
            SerialMACDecimator([2**17, 1], **kwargs)
        with self.assertRaises(ValueError):
            SerialMACDecimator(taps, in_bound=2**8, **kwargs)
        with self.assertRaises(ValueError):
            SerialMACDecimator(taps, trunc=-1, **kwargs)
        # output overflow
        with self.assertRaises(ValueError):
            SerialMACDecimator(taps, in_width=16, out_width=16,
                               min_input_spacing=8)
        SerialMACDecimator(taps, in_width=16, out_width=16, trunc=3,
                           min_input_spacing=8)


class TestCompensationFIR(AmaranthSim):
    def test_compensation_fir(self):
        self.round_half_up = False
        self.compensation_common()

    def test_compensation_fir_round_half_up(self):
        self.round_half_up = True
        self.compensation_common()

    def compensation_common(self):
        self.dut = CompensationFIR(
            compensation_taps(), round_half_up=self.round_half_up)
        assert self.dut.busy_cycles == 16
        assert self.dut.delay == 18
        assert self.dut.acc_width == 22 + 18 + 5
        x = np.random.randint(-2**21, 2**21, size=200)
        expected = self.dut.model(x)

        async def bench(ctx):
            out, cycles = await stream(
                ctx, self.dut, x, spacing=self.dut.min_input_spacing,
                tail=self.dut.delay + 1)
            np.testing.assert_equal(out, expected)
            spacing = self.dut.min_input_spacing
            assert cycles == [(2 * m + 1) * spacing + self.dut.delay
                              for m in range(len(out))]

        self.simulate(bench)

    def test_tap_index(self):
        self.dut = CompensationFIR(compensation_taps())
        spacing = self.dut.min_input_spacing
        ops = self.dut.operations(0)
        assert ops == self.dut.operations(1) == 13
        num_inputs = 6
        x = np.random.randint(-2**21, 2**21, size=num_inputs)

        async def bench(ctx):
            for cycle in range(num_inputs * spacing):
                j, rem = divmod(cycle, spacing)
                phase = j % 2
                ctx.set(self.dut.strobe_in, int(rem == 0))
                ctx.set(self.dut.data_in, int(x[j]))
                busy_len = 1 + ops + (1 if phase == 1 else 0)
                assert ctx.get(self.dut.busy) == (1 <= rem <= busy_len), \
                    f'busy mismatch @ cycle = {cycle}'
                if 2 <= rem < 2 + ops:
                    expected = self.dut.phase_start[phase] + rem - 2
                    assert ctx.get(self.dut.tap_index) == expected, \
                        f'tap_index = {ctx.get(self.dut.tap_index)}, ' \
                        f'expected = {expected} @ cycle = {cycle}'
                await ctx.tick()

        self.simulate(bench)

    def test_invalid_parameters(self):
        taps = compensation_taps()
        with self.assertRaises(ValueError):
            CompensationFIR(taps, min_input_spacing=15)
        with self.assertRaises(ValueError):
            CompensationFIR(taps[:-1])
        with self.assertRaises(ValueError):
            CompensationFIR(taps, trunc=0)
        with self.assertRaises(ValueError):
            CompensationFIR(compensation_taps(40), num_taps=40)


class TestHalfbandDecimator(AmaranthSim):
    in_bound = 2**29

    def test_schedule(self):
        self.dut = HalfbandDecimator(halfband_taps(), in_bound=self.in_bound)
        schedule = self.dut.schedule
        assert [op.taps for op in schedule] == [(3,), (0, 6), (2, 4)]
        assert [(op.pos_a, op.pos_b) for op in schedule] == [
            (2, None), (0, 6), (2, 4)]
        assert [op.phase for op in schedule] == [0, 1, 1]
        assert self.dut.busy_cycles == 5
        assert self.dut.delay == 7

    def test_halfband(self):
        self.dut = HalfbandDecimator(
            halfband_taps(), in_bound=self.in_bound, min_input_spacing=5)
        x = np.random.randint(-self.in_bound, self.in_bound, size=400)
        expected = self.dut.model(x)

        async def bench(ctx):
            out, _ = await stream(ctx, self.dut, x, spacing=5,
                                  tail=self.dut.delay + 1)
            np.testing.assert_equal(out, expected)

        self.simulate(bench)

    def test_irregular_input(self):
        self.dut = HalfbandDecimator(
            halfband_taps(), in_bound=self.in_bound, min_input_spacing=5)
        x = np.random.randint(-self.in_bound, self.in_bound, size=300)
        # any gap not shorter than busy_cycles is allowed
        gaps = np.random.randint(
            self.dut.busy_cycles, self.dut.busy_cycles + 4, size=x.size)

        async def bench(ctx):
            out, _ = await stream(ctx, self.dut, x, gaps=gaps,
                                  tail=self.dut.delay + 1)
            np.testing.assert_equal(out, self.dut.model(x))

        self.simulate(bench)

    def test_mirror_symmetry(self):
        self.dut = HalfbandDecimator(halfband_taps(), in_bound=self.in_bound)
        x = np.random.randint(-self.in_bound, self.in_bound, size=41)
        xa = np.concatenate((x, np.zeros(6, 'int')))
        xb = xa[::-1]
        spacing = self.dut.min_input_spacing

        async def bench(ctx):
            ya, _ = await stream(ctx, self.dut, xa, spacing=spacing,
                                 tail=self.dut.delay + 1)
            # flush the delay line with zeros, leaving the decimator at the
            # start of a window
            zeros = np.zeros(len(self.dut.taps) + 2, 'int')
            assert (xa.size + zeros.size) % 2 == 0
            await stream(ctx, self.dut, zeros, spacing=spacing,
                         tail=self.dut.delay + 1)
            yb, _ = await stream(ctx, self.dut, xb, spacing=spacing,
                                 tail=self.dut.delay + 1)
            assert len(ya) == len(yb) == xa.size // 2
            np.testing.assert_equal(ya, self.dut.model(xa))
            # the response of the symmetric filter to the time-reversed
            # input is the time-reversed response
            np.testing.assert_equal(yb[:3], 0)
            np.testing.assert_equal(yb[3:], ya[3:][::-1])

        self.simulate(bench)

    def test_invalid_taps(self):
        taps = halfband_taps()
        kwargs = dict(in_bound=self.in_bound)
        with self.assertRaises(ValueError):
            HalfbandDecimator(taps[:-1], **kwargs)
        with self.assertRaises(ValueError):
            HalfbandDecimator(taps[:3] + [0] + taps[4:], **kwargs)
        with self.assertRaises(ValueError):
            HalfbandDecimator(taps[:1] + [5] + taps[2:], **kwargs)
        with self.assertRaises(ValueError):
            HalfbandDecimator(taps[:2] + [taps[2] + 1] + taps[3:], **kwargs)
        with self.assertRaises(ValueError):
            HalfbandDecimator(taps, min_input_spacing=4, **kwargs)
        # the default input bound leaves no room for the filter gain
        with self.assertRaises(ValueError):
            HalfbandDecimator(taps)


if __name__ == '__main__':
    unittest.main()

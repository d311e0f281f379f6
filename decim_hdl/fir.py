#
# Copyright (C) 2026 decim-hdl contributors
#
# This file is part of decim-hdl
#
# SPDX-License-Identifier: MIT
#

import collections

from amaranth import *
from amaranth.utils import ceil_log2
import amaranth.back.verilog

import numpy as np

from .util import ceil_shift, clamp_nbits, fits_signed


class Macc(Elaboratable):
    """Multiply-accumulate with pre-adder

    This module is a multiply-accumulate with a pre-adder, as found in a
    DSP48. It computes ``(a + d) * b`` and adds the product to the
    accumulator. When valid inputs are fed, the ``strobe_in`` input must be
    asserted. The output accumulator is updated 3 cycles afterwards. The
    ``first_acc`` input indicates that the current input is the first in a
    new accumulation, so the accumulator should not carry over the additions
    of the products corresponding to previous inputs.

    Parameters
    ----------
    a_width : int
        The width of the ``a`` and ``d`` inputs.
    b_width : int
        The width of the ``b`` input.
    acc_width : int
        The width of the accumulator.
    truncate_round : Optional[int]
        If this parameter is set to an integer, then an additional summand
        equal to ``2**(truncate_round-1)`` is added to the accumulator. When
        ``truncate_round`` LSBs of the MACC output are truncated, the effect
        achieved by this extra summand is that of round half-up instead of
        floor.

    Attributes
    ----------
    delay : int
        Delay (in clock cycles) introduced by this module.
    strobe_in : Signal(), in
        Indicates if the current inputs are valid.
    first_acc : Signal(), in
        Indicates that the current inputs are the first in a new accumulation.
    a : Signal(signed(a_width)), in
        Input ``a``.
    d : Signal(signed(a_width)), in
        Input ``d``, which is added to ``a`` before the multiplication.
    b : Signal(signed(b_width)), in
        Input ``b``.
    acc : Signal(signed(acc_width)), out
        Accumulator. Contains the sum of the products ``(a + d) * b`` for all
        valid inputs since the last time that ``first_acc`` was asserted.
    """
    def __init__(self, a_width, b_width, *,
                 acc_width=48, truncate_round=None):
        if truncate_round is not None and truncate_round < 1:
            raise ValueError('truncate_round must be greater or equal than 1')
        self.aw = a_width
        self.bw = b_width
        self.acc_width = acc_width
        self.truncate_round = truncate_round

        self.strobe_in = Signal()
        self.first_acc = Signal()
        self.a = Signal(signed(self.aw))
        self.d = Signal(signed(self.aw))
        self.b = Signal(signed(self.bw))
        self.acc = Signal(signed(acc_width))

    @property
    def delay(self):
        return 3

    @property
    def initial_acc(self):
        return (2**(self.truncate_round - 1)
                if self.truncate_round is not None
                else 0)

    def elaborate(self, platform):
        m = Module()

        preadd = Signal(signed(self.aw + 1), reset_less=True)
        b_q = Signal(signed(self.bw), reset_less=True)
        mult = Signal(signed(self.aw + 1 + self.bw), reset_less=True)
        strobe_in_q = Signal(2)
        first_acc_q = Signal(2)

        m.d.sync += [
            strobe_in_q.eq(Cat(self.strobe_in, strobe_in_q[:-1])),
            first_acc_q.eq(Cat(self.first_acc, first_acc_q[:-1])),
        ]
        with m.If(self.strobe_in):
            m.d.sync += [preadd.eq(self.a + self.d), b_q.eq(self.b)]
        m.d.sync += mult.eq(preadd * b_q)
        with m.If(strobe_in_q[1]):
            m.d.sync += self.acc.eq(mult + Mux(
                first_acc_q[1], self.initial_acc, self.acc).as_signed())

        return m


MaccOp = collections.namedtuple(
    'MaccOp', ['phase', 'taps', 'pos_a', 'pos_b', 'coeff', 'first', 'last'])
MaccOp.__doc__ = """One multiply-accumulate operation of a SerialMACDecimator

``phase`` is the input phase during which the operation is done, ``taps``
the filter tap indices that it covers, ``pos_a`` and ``pos_b`` the delay line
positions that are pre-added (``pos_b`` is ``None`` when there is no
pre-addition), ``coeff`` the coefficient, and ``first`` and ``last`` mark the
first operation of a decimation window and the last operation of a phase.
"""


class SerialMACDecimator(Elaboratable):
    """Serial multiply-accumulate FIR decimator

    This module is a FIR decimator that uses a single multiply-accumulate
    unit, sharing it among all the taps by doing one multiplication per clock
    cycle in the idle cycles between input samples.

    The decimation is polyphase. If the input that closes a decimation window
    is ``x[n]``, the output is ``sum_k taps[k] * x[n - k]``, and tap ``k`` is
    computed while processing the input of phase ``decimation - 1 - (k %
    decimation)``. Therefore, each input sample only needs the multiplications
    of its polyphase branch. If ``symmetric`` is enabled, mirrored taps that
    fall in the same branch share one multiplication, using the pre-adder to
    add the two delay line samples. If ``zero_skip`` is enabled, taps whose
    coefficient is zero are not computed.

    The control is a state machine with the states ``IDLE`` (waiting for an
    input sample), ``SHIFT`` (pushing the sample into the delay line),
    ``ACCUMULATE`` (one operation per cycle, the current operation being given
    by ``tap_index``) and ``EMIT`` (after the last phase of a window, which
    schedules the output register to load the accumulator once the MACC
    pipeline is drained). Input samples that arrive when the state machine is
    not ``IDLE`` are lost, so the module checks at construction that it is
    always back in ``IDLE`` after ``min_input_spacing`` cycles.

    The output is the accumulator with ``trunc`` LSBs dropped. Truncation is
    floor, or round half-up if ``round_half_up`` is enabled. The module checks
    at construction that the accumulator and the output cannot overflow for
    inputs bounded by ``in_bound``.

    Parameters
    ----------
    taps : Sequence[int]
        FIR coefficients.
    in_width : int
        Width of input samples.
    out_width : int
        Width of output samples.
    coeff_width : int
        FIR coefficients width.
    decimation : int
        Decimation factor.
    trunc : int
        Number of LSBs of the accumulator that are dropped to form the output.
    min_input_spacing : int
        Minimum number of clock cycles between consecutive input strobes.
    num_taps : Optional[int]
        Expected number of taps. If given, ``taps`` must have this length.
    symmetric : bool
        Use the pre-adder for pairs of mirrored taps. The coefficients must be
        symmetric.
    zero_skip : bool
        Do not compute taps whose coefficient is zero.
    round_half_up : bool
        Round half-up when truncating the output.
    in_bound : Optional[int]
        Maximum magnitude of the input samples. By default it is
        ``2**(in_width - 1)``.

    Attributes
    ----------
    delay : int
        Delay (in clock cycles) from the input that closes a decimation window
        to the corresponding ``strobe_out``.
    busy_cycles : int
        Maximum number of cycles that the state machine needs after accepting
        an input to be ready for the next input.
    schedule : List[MaccOp]
        Operations done by the MACC. Operations for each phase are
        consecutive.
    data_in : Signal(signed(in_width)), in
        Input sample.
    strobe_in : Signal(), in
        Indicates that ``data_in`` is valid in the current cycle.
    data_out : Signal(signed(out_width)), out
        Output sample.
    strobe_out : Signal(), out
        Output strobe. It is asserted in the clock cycle when the output
        changes. The output is kept constant until the next time that
        ``strobe_out`` is asserted.
    tap_index : Signal(range(len(schedule))), out
        Index in ``schedule`` of the current operation.
    busy : Signal(), out
        Asserted whenever the state machine is not in ``IDLE``.
    delay_line : List[Signal(signed(in_width))]
        Tap delay line. ``delay_line[0]`` is the most recent sample.
    """
    def __init__(self, taps, *, in_width, out_width, coeff_width=18,
                 decimation=2, trunc=0, min_input_spacing,
                 num_taps=None, symmetric=False, zero_skip=False,
                 round_half_up=False, in_bound=None):
        self.taps = tuple(int(c) for c in taps)
        if num_taps is not None and len(self.taps) != num_taps:
            raise ValueError(
                f'expected {num_taps} taps, but got {len(self.taps)}')
        if len(self.taps) == 0:
            raise ValueError('at least one tap is needed')
        if decimation < 2:
            raise ValueError('decimation must be at least 2')
        for c in self.taps:
            if not fits_signed(c, coeff_width):
                raise ValueError(
                    f'coefficient {c} does not fit in {coeff_width} bits')
        if symmetric and self.taps != self.taps[::-1]:
            raise ValueError('symmetric is used with non-symmetric taps')
        self.iw = in_width
        self.ow = out_width
        self.coeff_width = coeff_width
        self.decimation = decimation
        self.trunc = trunc
        self.min_input_spacing = min_input_spacing
        self.symmetric = symmetric
        self.zero_skip = zero_skip
        self.round_half_up = round_half_up
        self.in_bound = in_bound if in_bound is not None else 2**(in_width - 1)
        if self.in_bound > 2**(in_width - 1):
            raise ValueError(f'in_bound does not fit in {in_width} bits')

        self.acc_width = in_width + coeff_width + ceil_log2(len(self.taps))
        if trunc < 0 or trunc >= self.acc_width:
            raise ValueError(f'invalid trunc {trunc}')
        self.macc = Macc(
            self.iw, self.coeff_width, acc_width=self.acc_width,
            truncate_round=trunc if round_half_up and trunc >= 1 else None)
        self.check_bit_growth()

        self.schedule = self._schedule()
        self.phase_start = [
            min(j for j, op in enumerate(self.schedule) if op.phase == p)
            for p in range(decimation)]
        if self.busy_cycles > min_input_spacing:
            raise ValueError(
                f'{self.busy_cycles} cycles are needed per input sample, but '
                f'inputs can arrive every {min_input_spacing} cycles')

        self.data_in = Signal(signed(self.iw))
        self.strobe_in = Signal()
        self.data_out = Signal(signed(self.ow))
        self.strobe_out = Signal()
        self.tap_index = Signal(range(len(self.schedule)))
        self.busy = Signal()
        self.delay_line = [Signal(signed(self.iw), name=f'delay_line{j}')
                           for j in range(len(self.taps))]

    def check_bit_growth(self):
        max_acc = (self.in_bound * sum(abs(c) for c in self.taps)
                   + self.macc.initial_acc)
        if max_acc >= 2**(self.acc_width - 1):
            raise ValueError(
                f'accumulator of {self.acc_width} bits can overflow')
        if ceil_shift(max_acc, self.trunc) >= 2**(self.ow - 1):
            raise ValueError(
                f'output of {self.ow} bits can overflow: increase out_width '
                f'or trunc')

    def _schedule(self):
        num_taps = len(self.taps)
        ops = []
        for phase in range(self.decimation):
            offset = self.decimation - 1 - phase
            phase_ops = []
            paired = set()
            for k in range(offset, num_taps, self.decimation):
                if k in paired:
                    continue
                mirror = num_taps - 1 - k
                pos_b = None
                taps = (k,)
                if (self.symmetric and mirror > k
                        and mirror % self.decimation == offset):
                    pos_b = mirror - offset
                    taps = (k, mirror)
                    paired.add(mirror)
                if self.zero_skip and self.taps[k] == 0:
                    continue
                phase_ops.append((taps, k - offset, pos_b, self.taps[k]))
            if not phase_ops:
                # keep at least one operation per phase, so that the
                # accumulator is cleared and the FSM runs in every phase
                phase_ops.append(((), 0, None, 0))
            for j, (taps, pos_a, pos_b, coeff) in enumerate(phase_ops):
                ops.append(MaccOp(
                    phase=phase, taps=taps, pos_a=pos_a, pos_b=pos_b,
                    coeff=coeff, first=phase == 0 and j == 0,
                    last=j == len(phase_ops) - 1))
        return ops

    def operations(self, phase):
        return sum(1 for op in self.schedule if op.phase == phase)

    @property
    def busy_cycles(self):
        last_phase = self.decimation - 1
        return max(2 + self.operations(p) + (1 if p == last_phase else 0)
                   for p in range(self.decimation))

    @property
    def delay(self):
        return 2 + self.operations(self.decimation - 1) + self.macc.delay

    @property
    def out_bound(self):
        """Maximum magnitude of the output samples"""
        max_acc = (self.in_bound * sum(abs(c) for c in self.taps)
                   + self.macc.initial_acc)
        return ceil_shift(max_acc, self.trunc)

    @property
    def out_spacing(self):
        """Minimum number of cycles between output strobes"""
        return self.decimation * self.min_input_spacing

    def model(self, x):
        x = np.asarray(x, 'int')
        acc = np.convolve(x, np.array(self.taps, 'int'))
        acc = acc[self.decimation - 1::self.decimation][
            :x.size // self.decimation]
        acc = acc + self.macc.initial_acc
        return clamp_nbits(acc >> self.trunc, self.ow)

    def elaborate(self, platform):
        m = Module()

        m.submodules.macc = macc = self.macc

        sample = Signal(signed(self.iw))
        count = Signal(range(self.decimation))
        phase = Signal(range(self.decimation))
        emit = Signal()

        with m.FSM():
            with m.State('IDLE'):
                with m.If(self.strobe_in):
                    m.d.sync += [
                        sample.eq(self.data_in),
                        phase.eq(count),
                        count.eq(Mux(count == self.decimation - 1,
                                     0, count + 1)),
                    ]
                    m.next = 'SHIFT'
            with m.State('SHIFT'):
                m.d.comb += self.busy.eq(1)
                m.d.sync += self.delay_line[0].eq(sample)
                m.d.sync += [
                    self.delay_line[j].eq(self.delay_line[j - 1])
                    for j in range(1, len(self.delay_line))
                ]
                with m.Switch(phase):
                    for p, start in enumerate(self.phase_start):
                        with m.Case(p):
                            m.d.sync += self.tap_index.eq(start)
                m.next = 'ACCUMULATE'
            with m.State('ACCUMULATE'):
                m.d.comb += [self.busy.eq(1), macc.strobe_in.eq(1)]
                with m.Switch(self.tap_index):
                    for j, op in enumerate(self.schedule):
                        with m.Case(j):
                            m.d.comb += [
                                macc.a.eq(self.delay_line[op.pos_a]),
                                macc.b.eq(op.coeff),
                                macc.first_acc.eq(int(op.first)),
                            ]
                            if op.pos_b is not None:
                                m.d.comb += macc.d.eq(
                                    self.delay_line[op.pos_b])
                            if not op.last:
                                m.d.sync += self.tap_index.eq(j + 1)
                            elif op.phase == self.decimation - 1:
                                m.next = 'EMIT'
                            else:
                                m.next = 'IDLE'
            with m.State('EMIT'):
                m.d.comb += [self.busy.eq(1), emit.eq(1)]
                m.next = 'IDLE'

        # the output is loaded when the last product of the window has
        # reached the accumulator
        emit_q = Signal(macc.delay - 1)
        m.d.sync += [
            emit_q.eq(Cat(emit, emit_q[:-1])),
            self.strobe_out.eq(emit_q[-1]),
        ]
        with m.If(emit_q[-1]):
            m.d.sync += self.data_out.eq(macc.acc >> self.trunc)

        return m


class CompensationFIR(SerialMACDecimator):
    """CIC droop compensation FIR decimating by 2

    This is a ``SerialMACDecimator`` without symmetry or zero skipping, so
    that each input sample needs ``num_taps / 2`` operations. See
    ``SerialMACDecimator`` for the parameters.
    """
    def __init__(self, taps, *, in_width=22, out_width=32, coeff_width=18,
                 trunc=11, min_input_spacing=16, num_taps=26,
                 round_half_up=False, in_bound=None):
        super().__init__(
            taps, in_width=in_width, out_width=out_width,
            coeff_width=coeff_width, decimation=2, trunc=trunc,
            min_input_spacing=min_input_spacing, num_taps=num_taps,
            symmetric=False, zero_skip=False,
            round_half_up=round_half_up, in_bound=in_bound)


class HalfbandDecimator(SerialMACDecimator):
    """Halfband FIR decimating by 2

    This is a ``SerialMACDecimator`` that exploits the structure of halfband
    filters: the coefficients are symmetric, and every other coefficient
    except the center one is zero. The number of taps must be of the form
    ``4*n - 1``. Each output needs ``n + 1`` multiplications. See
    ``SerialMACDecimator`` for the parameters.
    """
    def __init__(self, taps, *, in_width=32, out_width=32, coeff_width=18,
                 trunc=17, min_input_spacing=32, num_taps=7,
                 round_half_up=False, in_bound=None):
        taps = [int(c) for c in taps]
        if len(taps) % 4 != 3:
            raise ValueError('halfband length must be 4*n - 1')
        center = len(taps) // 2
        if taps[center] == 0:
            raise ValueError('halfband center tap must not be zero')
        for k, c in enumerate(taps):
            if k != center and (k - center) % 2 == 0 and c != 0:
                raise ValueError(f'halfband tap {k} must be zero')
        super().__init__(
            taps, in_width=in_width, out_width=out_width,
            coeff_width=coeff_width, decimation=2, trunc=trunc,
            min_input_spacing=min_input_spacing, num_taps=num_taps,
            symmetric=True, zero_skip=True,
            round_half_up=round_half_up, in_bound=in_bound)


if __name__ == '__main__':
    from .taps import halfband_taps
    hbf = HalfbandDecimator(halfband_taps(7), in_bound=2**30)
    print(amaranth.back.verilog.convert(
        hbf, name='halfband_decimator',
        ports=[hbf.data_in, hbf.strobe_in, hbf.data_out, hbf.strobe_out]))

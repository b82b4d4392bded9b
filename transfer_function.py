"""
transfer_function.py
Transfer-function residues for a known pulse-train input.

The input is

            N            exp(-s D(j-1)) - exp(-s D(j))
    U(s) = sum  a(j) * ------------------------------- ,   D(0) = 0
           j=1                        s

and each fitted mode row stands for R exp(pt) + conj(R) exp(conj(p) t) in
the system response. After the last breakpoint D(N) the response of
R/(s - p) to U is R K(p) exp(pt); inside the last pulse the final pulse adds
a constant term. Matching R K(p) exp(pt) to the fitted (A/2) exp(j phi)
exp(p (t - t_s)) gives R.
"""
from __future__ import annotations
import logging
from typing import Tuple

import numpy as np

from prony_config import PronyLimits, DEFAULT_LIMITS

logger = logging.getLogger(__name__)


def step_difference(p: complex, start: float, stop: float, min_magnitude: float) -> complex:
    """(exp(-p start) - exp(-p stop)) / p, with its limit stop - start at p = 0."""
    if abs(p) < min_magnitude:
        return complex(stop - start)
    return (np.exp(-p * start) - np.exp(-p * stop)) / p


class PulseTrainResidueSolver:
    """Default transfer-function residue solver for the Prony pipeline."""

    def __init__(self, limits: PronyLimits = DEFAULT_LIMITS):
        self.limits = limits

    def input_gain(self, p: complex, delays: np.ndarray, amplitudes: np.ndarray,
                   window_start: float) -> Tuple[complex, bool]:
        """
        Gain K(p) from residue to fitted mode coefficient.

        Args:
            p: Continuous-time pole
            delays: Pulse end times D(1..N)
            amplitudes: Pulse amplitudes a(1..N)
            window_start: Time of the first fitted sample

        Returns:
            gain: K(p)
            in_last_pulse: True when the fit window starts before D(N)
        """
        floor = self.limits.min_magnitude
        starts = np.concatenate(([0.0], delays[:-1]))
        in_last_pulse = window_start < delays[-1]
        gain = 0j
        if in_last_pulse:
            for a, d0, d1 in zip(amplitudes[:-1], starts[:-1], delays[:-1]):
                gain += a * step_difference(p, d0, d1, floor)
            if abs(p) < floor:
                # exp(p(t - D(N-1))) / p has no finite limit; the constant part goes to dc
                return gain, in_last_pulse
            gain += amplitudes[-1] * np.exp(-p * starts[-1]) / p
        else:
            for a, d0, d1 in zip(amplitudes, starts, delays):
                gain += a * step_difference(p, d0, d1, floor)
        return gain, in_last_pulse

    def solve(self, pulse_count: int, delays, amplitudes, sample_period: float, total_modes: int,
              damping, frequency, amplitude, phase, shift: int) -> Tuple[np.ndarray, np.ndarray, float]:
        """
        Residues of every mode for the pulse-train input.

        Args:
            pulse_count: Number of pulses N
            delays: Pulse end times D(1..N)
            amplitudes: Pulse amplitudes a(1..N)
            sample_period: Sample period T
            total_modes: Number of mode rows
            damping, frequency: Mode poles
            amplitude, phase: Mode amplitude/phase on window time
            shift: Samples skipped before the fit window

        Returns:
            res_real: Real parts of the residues, shape (total_modes,)
            res_imag: Imaginary parts, shape (total_modes,)
            dc_term: Constant response term inside the last pulse (0 after it)
        """
        delays = np.asarray(delays, dtype=float)[:pulse_count]
        amplitudes = np.asarray(amplitudes, dtype=float)[:pulse_count]
        res_real = np.zeros(total_modes)
        res_imag = np.zeros(total_modes)
        window_start = shift * sample_period
        dc_term = 0.0

        for k in range(min(total_modes, len(damping))):
            if amplitude[k] == 0:
                continue
            p = complex(-damping[k], frequency[k])
            gain, in_last_pulse = self.input_gain(p, delays, amplitudes, window_start)
            if abs(gain) < self.limits.min_magnitude:
                logger.debug("Mode %d is not observable from the input, residue set to 0", k)
                continue
            residue = 0.5 * amplitude[k] * np.exp(1j * phase[k]) * np.exp(-p * window_start) / gain
            res_real[k] = residue.real
            res_imag[k] = residue.imag
            if in_last_pulse and abs(p) >= self.limits.min_magnitude:
                dc_term -= amplitudes[-1] * 2.0 * (residue / p).real
        return res_real, res_imag, float(dc_term)

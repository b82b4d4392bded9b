"""
signal_postprocessor.py
Per-signal post-processing of an extraction result.

For each output signal:
1. Take the shared poles and this signal's amplitudes; undo the scaling
2. Compute the stability bound of the fit window
3. Reorder the modes and reduce the model to the requested order
4. Compute residues (pulse-train transfer function or free response)
5. Move amplitude and phase from the window origin to the true time origin
6. Return the finished mode table

The row order is decided once for all signals (common_order) so that every
block lists the same pole in the same row. Past that, signals only read the
shared poles and write their own table.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Union

import numpy as np

from mode_extraction import ExtractionResult
from mode_reorder import common_mode_order
from prony_config import PronyLimits, DEFAULT_LIMITS
from prony_validation import ValidatedInputs
from signal_processor import PreparedSignals

logger = logging.getLogger(__name__)

# Ranking weights and disabled cutoffs handed to the reorderer
AFPE_ALPHA = 1.0
AFPE_BETA = 0.0
DISABLED_CUTOFF = -1.0


@dataclass
class SignalModeTable:
    """Final mode parameters of one output signal (length total_modes each)."""
    damping: np.ndarray
    frequency: np.ndarray
    amplitude: np.ndarray
    phase: np.ndarray
    res_real: np.ndarray
    res_imag: np.ndarray
    relative_energy: np.ndarray
    fit_quality: np.ndarray
    dc_term: float = 0.0

    def columns(self) -> np.ndarray:
        """The eight parameter columns, shape (total_modes, 8)."""
        return np.column_stack([
            self.damping, self.frequency, self.amplitude, self.phase,
            self.res_real, self.res_imag, self.relative_energy, self.fit_quality,
        ])


def wrap_phase(phase: np.ndarray) -> np.ndarray:
    """Wrap phases into (-pi, pi]; phases already inside are left untouched."""
    phase = np.array(phase, dtype=float)
    outside = (phase > np.pi) | (phase <= -np.pi)
    phase[outside] = np.pi - np.mod(np.pi - phase[outside], 2 * np.pi)
    return phase


def stability_bound(sample_period: float, fit_length: int, decay: float) -> float:
    """Damping at which a mode grows by 1/`decay` over the fit window."""
    return np.log(decay) / (sample_period * (fit_length - 1))


def free_response_residues(amplitude: np.ndarray, phase: np.ndarray):
    """Residues of an unforced response: (A cos(phi) / 2, A sin(phi) / 2)."""
    return amplitude * np.cos(phase) / 2, amplitude * np.sin(phase) / 2


def restore_time_shift(amplitude: np.ndarray, phase: np.ndarray, damping: np.ndarray,
                       frequency: np.ndarray, shift_time: float):
    """Reference amplitude and phase to t = 0 instead of the window start."""
    amplitude = amplitude * np.exp(shift_time * damping)
    phase = wrap_phase(phase - shift_time * frequency)
    return amplitude, phase


class PerSignalPostProcessor:
    """Runs steps 1-6 for one signal at a time."""

    def __init__(self, reorderer, solver, limits: PronyLimits = DEFAULT_LIMITS):
        self.reorderer = reorderer
        self.solver = solver
        self.limits = limits

    def common_order(self, extraction: ExtractionResult, inputs: ValidatedInputs) -> np.ndarray:
        """Row order applied to every signal block, so all blocks list the same poles per row."""
        period = inputs.sample_period
        fit_lengths = [int(n) for n in inputs.fit_length]
        times = [(int(shift) + np.arange(n)) * period for shift, n in zip(inputs.shift, fit_lengths)]
        bounds = [stability_bound(period, n, self.limits.stability_decay) for n in fit_lengths]
        return common_mode_order(times, fit_lengths, extraction.amplitude, extraction.damping,
                                 extraction.frequency, extraction.phase, bounds,
                                 inputs.control.ordering)

    def process(self, index: int, extraction: ExtractionResult, prepared: PreparedSignals,
                inputs: ValidatedInputs, mode_order=None) -> Union[SignalModeTable, int]:
        """
        Post-process signal `index`.

        Args:
            index: Signal column
            extraction: Successful extraction result
            prepared: Prepared signals (scale factors)
            inputs: Validated caller inputs
            mode_order: Shared row order from common_order(); None ranks this signal alone

        Returns:
            SignalModeTable, or the non-zero reorderer code on failure
        """
        period = inputs.sample_period
        shift = int(inputs.shift[index])
        fit_length = int(inputs.fit_length[index])
        total_modes = extraction.total_modes

        damping = extraction.damping.copy()
        frequency = extraction.frequency.copy()
        amplitude = extraction.amplitude[:, index].copy()
        phase = extraction.phase[:, index].copy()
        if prepared.scaled:
            amplitude = amplitude * prepared.scale_factors[index]

        bound = stability_bound(period, fit_length, self.limits.stability_decay)
        time = (shift + np.arange(fit_length)) * period
        ranked = self.reorderer.reorder(
            time, fit_length, total_modes, amplitude, damping, frequency, phase,
            DISABLED_CUTOFF, DISABLED_CUTOFF, bound, AFPE_ALPHA, AFPE_BETA,
            inputs.control.ordering, mode_order=mode_order,
        )
        if ranked.code != 0:
            logger.warning("Mode reordering failed for signal %d with code %d", index, ranked.code)
            return int(ranked.code)

        dc_term = 0.0
        if inputs.n_pulses > 0:
            res_real, res_imag, dc_term = self.solver.solve(
                inputs.n_pulses, inputs.pulses[:, 0], inputs.pulses[:, 1], period, total_modes,
                ranked.damping, ranked.frequency, ranked.amplitude, ranked.phase, shift,
            )
        else:
            # residues use the window-referenced amplitude and phase
            res_real, res_imag = free_response_residues(ranked.amplitude, ranked.phase)

        amplitude, phase = restore_time_shift(
            ranked.amplitude, ranked.phase, ranked.damping, ranked.frequency, shift * period)

        logger.debug("Signal %d: %d mode(s), shift %d, fit length %d", index, total_modes, shift, fit_length)
        return SignalModeTable(
            damping=ranked.damping,
            frequency=ranked.frequency,
            amplitude=amplitude,
            phase=phase,
            res_real=np.asarray(res_real, dtype=float),
            res_imag=np.asarray(res_imag, dtype=float),
            relative_energy=ranked.relative_energy,
            fit_quality=ranked.fit_quality,
            dc_term=float(dc_term),
        )

"""
mode_reorder.py
Mode ranking and model order reduction.

Modes are ranked (by energy in the fit window by default) and the model is
cut to the requested number of modes. Every kept mode gets its share of the
fitted energy plus an AFPE fit-quality score. For several signals the
ranking is done once by common_mode_order and applied to each signal.

Result codes:
    0    success
    12   no enabled mode carries energy
    13   non-finite mode parameters
    101  invalid ordering method
"""
from __future__ import annotations
import logging
from dataclasses import dataclass

import numpy as np

logger = logging.getLogger(__name__)

ORDER_BY_ENERGY = 0
ORDER_BY_FREQUENCY = 1
ORDER_BY_DAMPING = 2


@dataclass
class ReorderResult:
    """Reordered mode table for one signal (all arrays length total_modes)."""
    amplitude: np.ndarray
    damping: np.ndarray
    frequency: np.ndarray
    phase: np.ndarray
    fit_quality: np.ndarray      # AFPE after adding each ranked mode
    relative_energy: np.ndarray  # Share of the total fitted energy
    code: int = 0

    @property
    def ok(self) -> bool:
        return self.code == 0

    @classmethod
    def failure(cls, code: int, total_modes: int) -> "ReorderResult":
        zeros = np.zeros(max(total_modes, 0))
        return cls(zeros, zeros.copy(), zeros.copy(), zeros.copy(), zeros.copy(), zeros.copy(), code)


def mode_waves(amplitude, damping, frequency, phase, time) -> np.ndarray:
    """Time response of each mode, shape (n_modes, len(time))."""
    return (amplitude[:, None] * np.exp(-np.outer(damping, time))
            * np.cos(np.outer(frequency, time) + phase[:, None]))


def parameter_counts(frequency: np.ndarray) -> np.ndarray:
    """Free parameters per mode: 4 for oscillatory modes, 2 for real ones."""
    return np.where(frequency > 0, 4, 2)


def afpe(variance: np.ndarray, n_samples: int, n_params: np.ndarray,
         alpha: float, beta: float) -> np.ndarray:
    """
    Akaike final prediction error with weighting.

    AFPE = V (N + alpha p) / (N - alpha p) + beta p
    """
    num = n_samples + alpha * n_params
    den = n_samples - alpha * n_params
    with np.errstate(divide='ignore', invalid='ignore'):
        score = np.where(den > 0, variance * num / np.where(den > 0, den, 1.0) + beta * n_params, np.inf)
    return score


def window_energy(time: np.ndarray, fit_length: int, amplitude, damping, frequency, phase):
    """
    Energy of each mode over the fit window, measured from the window start.

    Returns:
        waves: Mode responses, shape (n_modes, fit_length)
        energy: shape (n_modes,); non-finite for modes that overflow
    """
    tau = np.asarray(time, dtype=float)[:fit_length]
    tau = tau - tau[0]
    with np.errstate(over='ignore', invalid='ignore'):
        waves = mode_waves(amplitude, damping, frequency, phase, tau)
        energy = np.sum(waves ** 2, axis=1)
    return waves, energy


def rank_modes(score: np.ndarray, enabled: np.ndarray, damping: np.ndarray,
               frequency: np.ndarray, ordering: int) -> np.ndarray:
    """Row order of the modes; disabled modes always rank after enabled ones."""
    if ordering == ORDER_BY_FREQUENCY:
        return np.lexsort((-score, frequency, ~enabled))
    if ordering == ORDER_BY_DAMPING:
        return np.lexsort((-score, np.abs(damping), ~enabled))
    return np.lexsort((-score, ~enabled))


def common_mode_order(times, fit_lengths, amplitude: np.ndarray, damping: np.ndarray,
                      frequency: np.ndarray, phase: np.ndarray, stability_bounds,
                      ordering: int) -> np.ndarray:
    """
    One row order shared by every signal.

    Each signal contributes its energy shares (energy of a mode over the
    total enabled energy in that signal's window), so signals of very
    different level weigh the same. A mode is enabled when it is enabled
    in at least one signal.

    Args:
        times: Window sample times per signal
        fit_lengths: Window length per signal
        amplitude: Amplitudes, shape (n_modes, n_signals)
        damping, frequency: Shared poles, shape (n_modes,)
        phase: Phases, shape (n_modes, n_signals)
        stability_bounds: Stability bound per signal
        ordering: 0 energy, 1 frequency, 2 damping

    Returns:
        Permutation of the mode indices
    """
    damping = np.asarray(damping, dtype=float)
    frequency = np.asarray(frequency, dtype=float)
    score = np.zeros(len(damping))
    enabled_any = np.zeros(len(damping), dtype=bool)
    for idx, (time, fit_length) in enumerate(zip(times, fit_lengths)):
        _, energy = window_energy(time, int(fit_length), amplitude[:, idx], damping, frequency, phase[:, idx])
        enabled = np.isfinite(energy) & (damping >= stability_bounds[idx])
        energy = np.where(enabled, energy, 0.0)
        total = np.sum(energy)
        if total > 0:
            score += energy / total
            enabled_any |= enabled
    return rank_modes(score, enabled_any, damping, frequency, ordering)


class EnergyModeReorderer:
    """Default mode reorderer for the Prony pipeline."""

    def reorder(self, time: np.ndarray, fit_length: int, total_modes: int,
                amplitude: np.ndarray, damping: np.ndarray, frequency: np.ndarray,
                phase: np.ndarray, damping_cutoff: float, frequency_cutoff: float,
                stability_bound: float, alpha: float, beta: float,
                ordering: int, mode_order=None) -> ReorderResult:
        """
        Rank modes, keep the first `total_modes` and score them.

        Args:
            time: Sample times of the fit window (absolute)
            fit_length: Samples in the fit window
            total_modes: Rows of the reduced model
            amplitude, damping, frequency, phase: Candidate mode parameters,
                referenced to the window start
            damping_cutoff: Disable modes with |damping| above it (< 0: off)
            frequency_cutoff: Disable modes with frequency above it (< 0: off)
            stability_bound: Disable modes with damping below it (growing too fast)
            alpha, beta: AFPE weights
            ordering: 0 energy, 1 frequency, 2 damping
            mode_order: Row order shared with the other signals; when given
                it replaces this signal's own ranking

        Returns:
            ReorderResult
        """
        if ordering not in (ORDER_BY_ENERGY, ORDER_BY_FREQUENCY, ORDER_BY_DAMPING):
            return ReorderResult.failure(101, total_modes)

        amplitude = np.asarray(amplitude, dtype=float)
        damping = np.asarray(damping, dtype=float)
        frequency = np.asarray(frequency, dtype=float)
        phase = np.asarray(phase, dtype=float)
        params = np.concatenate((amplitude, damping, frequency, phase))
        if not np.all(np.isfinite(params)):
            return ReorderResult.failure(13, total_modes)

        waves, energy = window_energy(time, fit_length, amplitude, damping, frequency, phase)

        enabled = np.isfinite(energy) & (damping >= stability_bound)
        if damping_cutoff >= 0:
            enabled &= np.abs(damping) <= damping_cutoff
        if frequency_cutoff >= 0:
            enabled &= frequency <= frequency_cutoff
        energy = np.where(enabled, energy, 0.0)
        total_energy = np.sum(energy)
        if not np.any(enabled) or total_energy <= 0:
            logger.debug("No enabled mode with energy in window of %d samples", fit_length)
            return ReorderResult.failure(12, total_modes)

        if mode_order is None:
            order = rank_modes(energy, enabled, damping, frequency, ordering)
        else:
            order = np.asarray(mode_order, dtype=int)
        order = order[:total_modes]

        kept = len(order)
        masked = np.where(enabled[:, None], waves, 0.0)
        cumulative = np.cumsum(masked[order], axis=0)
        full = np.sum(masked, axis=0)
        variance = np.mean((full[None, :] - cumulative) ** 2, axis=1)
        n_params = np.cumsum(parameter_counts(frequency[order]))
        quality = afpe(variance, fit_length, n_params, alpha, beta)

        result = ReorderResult(
            amplitude=np.zeros(total_modes),
            damping=np.zeros(total_modes),
            frequency=np.zeros(total_modes),
            phase=np.zeros(total_modes),
            fit_quality=np.zeros(total_modes),
            relative_energy=np.zeros(total_modes),
        )
        result.amplitude[:kept] = amplitude[order]
        result.damping[:kept] = damping[order]
        result.frequency[:kept] = frequency[order]
        result.phase[:kept] = phase[order]
        result.fit_quality[:kept] = quality
        result.relative_energy[:kept] = energy[order] / total_energy
        return result

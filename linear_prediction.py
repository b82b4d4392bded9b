"""
linear_prediction.py
Multi-output linear prediction mode extractor.

Implements Prony fitting of several signals with one common pole set:
1. Prediction equations of every signal window are stacked so all outputs
   share one characteristic polynomial
2. The stacked system is solved with a rank-truncated pseudo-inverse
   (or plain least squares)
3. Roots of the prediction polynomial give the discrete-time poles,
   s = ln(z) / T = -damping + j frequency
4. Amplitudes and phases are fitted per signal with least squares on a
   damped cos/sin basis

Known modes are held fixed by filtering each window with the annihilating
polynomial of the known poles before prediction.

Result codes:
    0    success
    100  insufficient data for the prediction order
    101  invalid control parameter
    102  prediction matrix has no usable rank
    103  prediction solve or automatic mode count failed
    104  root finding failed
    105  amplitude solve failed
    110  no modes identified

Warning flags (index + 1 is the warning catalog key):
    1 order reduced, 2 rank reduced, 3 zero roots discarded,
    4 fewer modes than requested, 5 prediction matrix ill-conditioned,
    6 amplitude fit ill-conditioned
"""
from __future__ import annotations
import logging
import math
from typing import List, Tuple

import numpy as np
import scipy.linalg

from mode_extraction import ExtractionResult, KnownModeUse, PredictionParams, TrimParams
from prony_config import PronyLimits, DEFAULT_LIMITS

logger = logging.getLogger(__name__)

WARN_ORDER_REDUCED = 1
WARN_RANK_REDUCED = 2
WARN_ZERO_ROOTS = 3
WARN_FEWER_MODES = 4
WARN_LP_CONDITION = 5
WARN_AMPLITUDE_CONDITION = 6


class ExtractionError(Exception):
    """Numeric failure inside the extractor; carries the result code."""

    def __init__(self, code: int, message: str = ""):
        self.code = code
        super().__init__(message or f"extraction failed with code {code}")


# ============================================================================
# Mode count selection
# ============================================================================

class ModeCountStrategy:
    """Chooses the number of additional modes when the caller asks for automatic."""

    def select(self, windows: List[np.ndarray], known_count: int, limits: PronyLimits) -> int:
        raise NotImplementedError


class SingularValueModeCount(ModeCountStrategy):
    """
    Signal-subspace rank from the singular values of the stacked Hankel matrix.

    The rank is the number of singular values holding `energy` of the total
    squared singular value sum; every oscillatory mode uses two of them.
    Known modes are part of the windows and are subtracted from the count.
    """

    def __init__(self, energy: float = 0.99):
        self.energy = energy

    def select(self, windows: List[np.ndarray], known_count: int, limits: PronyLimits) -> int:
        shortest = min(len(w) for w in windows)
        rows = max(1, shortest // 2)
        blocks = [build_hankel(w, rows) for w in windows]
        s = scipy.linalg.svd(np.hstack(blocks), compute_uv=False)
        total = np.sum(s ** 2)
        if total <= 0:
            return 1
        energy = np.cumsum(s ** 2) / total
        rank = int(np.searchsorted(energy, self.energy)) + 1
        modes = int(math.ceil(rank / 2)) - known_count
        return int(min(max(1, modes), max(1, limits.max_modes - known_count)))


# ============================================================================
# Building blocks
# ============================================================================

def build_hankel(signal: np.ndarray, rows: int) -> np.ndarray:
    """
    Hankel matrix with `rows` rows from a 1-D signal.

    Args:
        signal: 1D time series, shape (N,)
        rows: Number of rows L

    Returns:
        H: shape (L, N - L + 1)
    """
    n = len(signal)
    cols = n - rows + 1
    if cols <= 0:
        raise ValueError(f"Signal length {n} too short for {rows} rows")
    return np.array([signal[i:i + cols] for i in range(rows)])


def known_discrete_poles(damping: np.ndarray, frequency: np.ndarray, sample_period: float) -> np.ndarray:
    """Discrete poles of the known modes, conjugates included for oscillatory modes."""
    poles = []
    for decay, omega in zip(damping, frequency):
        z = np.exp(complex(-decay, omega) * sample_period)
        poles.append(z)
        if abs(omega) > 0:
            poles.append(np.conj(z))
    return np.array(poles, dtype=complex)


def annihilate(window: np.ndarray, poles: np.ndarray) -> np.ndarray:
    """
    Remove the known pole contributions from a window.

    Filters with the polynomial whose roots are `poles`; the output is
    shorter than the input by the number of poles.
    """
    if len(poles) == 0:
        return window
    coeffs = np.real(np.poly(poles))
    return np.convolve(window, coeffs, mode='valid')


def prediction_equations(window: np.ndarray, order: int, direction: int) -> Tuple[np.ndarray, np.ndarray]:
    """
    Linear prediction equations A @ a = b for one window.

    Forward:  x[n] = sum_k a_k x[n - k]
    Backward: x[n] = sum_k a_k x[n + k]
    """
    n = len(window)
    if direction == 0:
        A = np.column_stack([window[order - k:n - k] for k in range(1, order + 1)])
        b = window[order:]
    else:
        A = np.column_stack([window[k:n - order + k] for k in range(1, order + 1)])
        b = window[:n - order]
    return A, b


def solve_prediction(A: np.ndarray, b: np.ndarray, rank: int, method: int, algorithm: int,
                     limits: PronyLimits) -> Tuple[np.ndarray, float]:
    """
    Solve the stacked prediction equations.

    Args:
        A: Prediction matrix, shape (n_equations, order)
        b: Right-hand side, shape (n_equations,)
        rank: Pseudo-inverse rank (method 0)
        method: 0 truncated-SVD pseudo-inverse, 1 least squares
        algorithm: 0 solve A directly, 1 solve the normal equations
        limits: Numeric floors

    Returns:
        coeffs: Prediction coefficients, shape (order,)
        condition: Condition number of the solved matrix
    """
    if algorithm == 1:
        M = A.T @ A
        v = A.T @ b
    else:
        M = A
        v = b

    try:
        if method == 0:
            U, s, Vh = scipy.linalg.svd(M, full_matrices=False)
            if s.size == 0 or s[0] <= limits.min_magnitude:
                raise ExtractionError(102, "prediction matrix is zero")
            usable = s > s[0] * limits.min_magnitude
            r = min(rank, int(np.sum(usable)))
            coeffs = Vh[:r].T @ ((U[:, :r].T @ v) / s[:r])
        else:
            coeffs, _, r, s = scipy.linalg.lstsq(M, v)
            if r == 0 or s.size == 0 or s[0] <= limits.min_magnitude:
                raise ExtractionError(102, "prediction matrix is zero")
    except (np.linalg.LinAlgError, ValueError) as e:
        raise ExtractionError(103, str(e)) from e

    if not np.all(np.isfinite(coeffs)):
        raise ExtractionError(103, "non-finite prediction coefficients")
    condition = float(s[0] / s[-1]) if s[-1] > 0 else np.inf
    return coeffs, condition


def prediction_roots(coeffs: np.ndarray, direction: int) -> np.ndarray:
    """Roots of the prediction polynomial (the discrete-time poles)."""
    if direction == 0:
        poly = np.concatenate(([1.0], -coeffs))
    else:
        poly = np.concatenate((coeffs[::-1], [-1.0]))
    try:
        roots = np.roots(poly)
    except np.linalg.LinAlgError as e:
        raise ExtractionError(104, str(e)) from e
    if not np.all(np.isfinite(roots)):
        raise ExtractionError(104, "non-finite roots")
    return roots


def roots_to_modes(roots: np.ndarray, sample_period: float) -> Tuple[np.ndarray, np.ndarray]:
    """
    Convert discrete roots to (damping, frequency) modes.

    One mode per conjugate pair (the root with positive angle) and one per
    real root. A negative real root maps to the Nyquist frequency.
    """
    damping = []
    frequency = []
    for z in roots:
        tol = 1e-10 * max(1.0, abs(z))
        if z.imag < -tol:
            continue
        if abs(z.imag) <= tol:
            z = complex(z.real, 0.0)
        damping.append(-np.log(abs(z)) / sample_period)
        frequency.append(abs(np.angle(z)) / sample_period)
    return np.array(damping), np.array(frequency)


def mode_basis(time: np.ndarray, damping: np.ndarray, frequency: np.ndarray,
               sample_period: float) -> Tuple[np.ndarray, List[Tuple[int, int]]]:
    """
    Damped cos/sin basis for the amplitude fit.

    Returns:
        basis: shape (len(time), n_columns)
        columns: (cos column, sin column or -1) per mode
    """
    nyquist = np.pi / sample_period
    columns = []
    blocks = []
    col = 0
    for decay, omega in zip(damping, frequency):
        envelope = np.exp(-decay * time)
        blocks.append(envelope * np.cos(omega * time))
        if 0 < omega < nyquist * (1 - 1e-9):
            blocks.append(envelope * np.sin(omega * time))
            columns.append((col, col + 1))
            col += 2
        else:
            columns.append((col, -1))
            col += 1
    return np.column_stack(blocks), columns


def fit_amplitudes(windows: List[np.ndarray], damping: np.ndarray, frequency: np.ndarray,
                   sample_period: float, limits: PronyLimits) -> Tuple[np.ndarray, np.ndarray, float]:
    """
    Least-squares amplitude and phase of every mode in every window.

    Each mode contributes A exp(-damping t) cos(omega t + phi) on window time
    t = 0, T, 2T, ...

    Returns:
        amplitude: shape (n_modes, n_signals)
        phase: shape (n_modes, n_signals)
        condition: worst basis condition number over all windows
    """
    n_modes = len(damping)
    amplitude = np.zeros((n_modes, len(windows)))
    phase = np.zeros((n_modes, len(windows)))
    worst = 1.0
    for idx, window in enumerate(windows):
        time = np.arange(len(window)) * sample_period
        basis, columns = mode_basis(time, damping, frequency, sample_period)
        try:
            coeffs, _, _, s = scipy.linalg.lstsq(basis, window)
        except (np.linalg.LinAlgError, ValueError) as e:
            raise ExtractionError(105, str(e)) from e
        if not np.all(np.isfinite(coeffs)):
            raise ExtractionError(105, "non-finite amplitudes")
        if s.size and s[-1] > 0:
            worst = max(worst, float(s[0] / s[-1]))
        else:
            worst = np.inf
        for k, (c_col, s_col) in enumerate(columns):
            c = coeffs[c_col]
            d = coeffs[s_col] if s_col >= 0 else 0.0
            # c cos(wt) + d sin(wt) = A cos(wt + phi)
            amplitude[k, idx] = np.hypot(c, d)
            phase[k, idx] = np.arctan2(-d, c)
    return amplitude, phase, worst


def mode_energy(amplitude: np.ndarray, damping: np.ndarray, frequency: np.ndarray,
                phase: np.ndarray, time: np.ndarray) -> np.ndarray:
    """Energy of each mode over `time`, shape (n_modes,)."""
    waves = (amplitude[:, None] * np.exp(-np.outer(damping, time))
             * np.cos(np.outer(frequency, time) + phase[:, None]))
    return np.sum(waves ** 2, axis=1)


# ============================================================================
# Extractor
# ============================================================================

class LinearPredictionExtractor:
    """Default mode extractor for the Prony pipeline."""

    def __init__(self, limits: PronyLimits = DEFAULT_LIMITS,
                 mode_count: ModeCountStrategy = None):
        self.limits = limits
        self.mode_count = mode_count if mode_count is not None else SingularValueModeCount()

    def extract(self, signals: np.ndarray, fit_lengths: np.ndarray, sample_period: float,
                params: PredictionParams, known_use: KnownModeUse, known_count: int,
                total_modes: int, trim: TrimParams, known_damping: np.ndarray,
                known_frequency: np.ndarray) -> ExtractionResult:
        """
        Identify a common pole set and per-signal amplitudes/phases.

        Args:
            signals: Work matrix, shape (rows, n_signals); rows past each
                fit length are padding
            fit_lengths: Samples used per signal
            sample_period: Sample period T
            params: Prediction settings
            known_use: How known modes take part
            known_count: Number of known modes
            total_modes: Additional plus known modes; fewer than
                `known_count` means the additional count is automatic
            trim: Trimming thresholds
            known_damping: Known damping coefficients
            known_frequency: Known angular frequencies

        Returns:
            ExtractionResult with the primary result code set
        """
        flags = np.zeros(self.limits.warning_flags, dtype=int)
        n_signals = signals.shape[1]
        windows = [np.asarray(signals[:int(n), i], dtype=float) for i, n in enumerate(fit_lengths)]
        known_damping = np.asarray(known_damping, dtype=float)[:known_count]
        known_frequency = np.abs(np.asarray(known_frequency, dtype=float)[:known_count])

        try:
            if (params.lp_method not in (0, 1) or params.lp_algorithm not in (0, 1)
                    or params.lp_direction not in (0, 1)):
                raise ExtractionError(101, "invalid prediction selector")
            if not np.isfinite(sample_period) or sample_period <= 0:
                raise ExtractionError(101, "sample period must be positive")

            if known_use == KnownModeUse.ONLY:
                extra = 0
            elif total_modes - known_count < 0:
                try:
                    extra = self.mode_count.select(windows, known_count, self.limits)
                except (np.linalg.LinAlgError, ValueError) as e:
                    raise ExtractionError(103, f"automatic mode count failed: {e}") from e
                logger.debug("Automatic mode count: %d additional mode(s)", extra)
            else:
                extra = total_modes - known_count
            resolved_total = known_count + extra

            if extra > 0:
                damping, frequency, params = self._predict(
                    windows, sample_period, params, extra, known_damping, known_frequency, flags)
                damping, frequency = self._trim_frequency(damping, frequency, trim)
                if len(damping) < extra:
                    flags[WARN_FEWER_MODES - 1] = 1
            else:
                damping = np.zeros(0)
                frequency = np.zeros(0)

            is_known = np.concatenate((np.ones(known_count, dtype=bool), np.zeros(len(damping), dtype=bool)))
            damping = np.concatenate((known_damping, damping))
            frequency = np.concatenate((known_frequency, frequency))
            if len(damping) == 0:
                raise ExtractionError(110, "no modes identified")

            amplitude, phase, condition = fit_amplitudes(windows, damping, frequency, sample_period, self.limits)
            if trim.residue > 0:
                keep = self._residue_keep(windows, sample_period, amplitude, damping, frequency, phase,
                                          is_known, trim.residue)
                if not np.all(keep):
                    damping, frequency = damping[keep], frequency[keep]
                    if len(damping) == 0:
                        raise ExtractionError(110, "all modes trimmed")
                    amplitude, phase, condition = fit_amplitudes(
                        windows, damping, frequency, sample_period, self.limits)
            if condition > self.limits.condition_limit:
                flags[WARN_AMPLITUDE_CONDITION - 1] = 1
        except ExtractionError as e:
            logger.debug("Extraction stopped: %s", e)
            return ExtractionResult.failure(e.code, n_signals, total_modes, params, flags)

        return ExtractionResult(
            damping=damping,
            frequency=frequency,
            amplitude=amplitude,
            phase=phase,
            mode_count=len(damping),
            total_modes=resolved_total,
            warning_flags=flags,
            primary_code=0,
            params=params,
        )

    def _predict(self, windows: List[np.ndarray], sample_period: float, params: PredictionParams,
                 extra: int, known_damping: np.ndarray, known_frequency: np.ndarray,
                 flags: np.ndarray) -> Tuple[np.ndarray, np.ndarray, PredictionParams]:
        """Linear prediction of the modes not already known."""
        poles = known_discrete_poles(known_damping, known_frequency, sample_period)
        if any(len(w) <= len(poles) + 1 for w in windows):
            raise ExtractionError(100, "fit windows too short for the known modes")
        filtered = [annihilate(w, poles) for w in windows]

        order = params.lp_order if params.lp_order > 0 else 2 * extra
        shortest = min(len(w) for w in filtered)
        max_order = shortest - 1
        while max_order > 0 and sum(len(w) - max_order for w in filtered) < max_order:
            max_order -= 1
        if max_order < 1:
            raise ExtractionError(100, "fit windows too short")
        if order > max_order:
            order = max_order
            flags[WARN_ORDER_REDUCED - 1] = 1

        rank = params.pinv_rank if params.pinv_rank > 0 else order
        if rank > order:
            rank = order
            flags[WARN_RANK_REDUCED - 1] = 1

        equations = [prediction_equations(w, order, params.lp_direction) for w in filtered]
        A = np.vstack([eq[0] for eq in equations])
        b = np.concatenate([eq[1] for eq in equations])
        coeffs, condition = solve_prediction(A, b, rank, params.lp_method, params.lp_algorithm, self.limits)
        if condition > self.limits.condition_limit:
            flags[WARN_LP_CONDITION - 1] = 1

        roots = prediction_roots(coeffs, params.lp_direction)
        nonzero = np.abs(roots) >= self.limits.min_magnitude
        if not np.all(nonzero):
            flags[WARN_ZERO_ROOTS - 1] = 1
            roots = roots[nonzero]
        damping, frequency = roots_to_modes(roots, sample_period)

        used = PredictionParams(
            lp_order=order,
            pinv_rank=rank,
            lp_method=params.lp_method,
            lp_algorithm=params.lp_algorithm,
            lp_direction=params.lp_direction,
        )
        return damping, frequency, used

    def _trim_frequency(self, damping: np.ndarray, frequency: np.ndarray,
                        trim: TrimParams) -> Tuple[np.ndarray, np.ndarray]:
        keep = np.ones(len(frequency), dtype=bool)
        if trim.freq_high > 0:
            keep &= frequency <= trim.freq_high
        if trim.freq_low > 0:
            keep &= frequency >= trim.freq_low
        return damping[keep], frequency[keep]

    def _residue_keep(self, windows: List[np.ndarray], sample_period: float, amplitude: np.ndarray,
                      damping: np.ndarray, frequency: np.ndarray, phase: np.ndarray,
                      is_known: np.ndarray, floor: float) -> np.ndarray:
        """Modes whose energy share reaches `floor` in at least one signal."""
        keep = is_known.copy()
        for idx, window in enumerate(windows):
            time = np.arange(len(window)) * sample_period
            energy = mode_energy(amplitude[:, idx], damping, frequency, phase[:, idx], time)
            total = np.sum(energy)
            if total > 0:
                keep |= energy / total >= floor
        return keep

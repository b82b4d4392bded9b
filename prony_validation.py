"""
prony_validation.py
Argument checks for Prony identification.

Every check fails fast with a PronyArgumentError carrying the matching
argument-error key. Nothing is computed until all inputs are accepted.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass

import numpy as np

from prony_config import ControlVector, PronyLimits, DEFAULT_LIMITS
from prony_errors import PronyArgumentError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ValidatedInputs:
    """Normalized caller inputs."""
    signals: np.ndarray       # Signal data, shape (n_samples, n_signals)
    sample_period: float      # Sample period (s)
    shift: np.ndarray         # Samples skipped per signal, shape (n_signals,)
    fit_length: np.ndarray    # Samples fitted per signal, shape (n_signals,)
    pulses: np.ndarray        # (delay, amplitude) rows, shape (n_pulses, 2)
    known_modes: np.ndarray   # (damping, frequency) rows, shape (n_known, 2)
    control: ControlVector
    total_modes: int          # additional + known modes requested

    @property
    def n_signals(self) -> int:
        return self.signals.shape[1]

    @property
    def n_known(self) -> int:
        return self.known_modes.shape[0]

    @property
    def n_pulses(self) -> int:
        return self.pulses.shape[0]


def _as_matrix(value) -> np.ndarray:
    arr = np.asarray(value)
    if arr.ndim == 0:
        return arr.reshape(1, 1)
    if arr.ndim == 1:
        return arr.reshape(-1, 1)
    return arr


def _as_pair_matrix(value, max_rows: int, key: int) -> np.ndarray:
    """Empty input becomes (0, 2); otherwise rows <= max_rows and 2 columns."""
    if value is None:
        return np.zeros((0, 2))
    arr = np.asarray(value, dtype=float)
    if arr.size == 0:
        return np.zeros((0, 2))
    if arr.ndim == 1 and arr.size == 2:
        arr = arr.reshape(1, 2)
    if arr.ndim != 2 or arr.shape[0] > max_rows or arr.shape[1] != 2:
        raise PronyArgumentError(key)
    return arr


def validate_inputs(signals, sample_period, shift_length, pulses, known_modes, control,
                    limits: PronyLimits = DEFAULT_LIMITS) -> ValidatedInputs:
    """
    Validate and normalize the six caller inputs.

    Args:
        signals: Signal data, one column per output signal
        sample_period: Scalar sample period
        shift_length: [shift; length] matrix, one column per signal.
            Negative shifts are clamped to 0, negative lengths mean
            "everything after the shift".
        pulses: Input pulse matrix (delay, amplitude) or empty
        known_modes: Known mode matrix (damping, frequency in rad/s) or empty
        control: 12-element control vector or ControlVector
        limits: Buffer limits

    Returns:
        ValidatedInputs

    Raises:
        PronyArgumentError: on the first violated constraint
    """
    raw = np.asarray(signals)
    if np.iscomplexobj(raw) or not np.issubdtype(raw.dtype, np.number):
        raise PronyArgumentError(3)
    data = _as_matrix(raw).astype(float)
    if data.ndim != 2:
        raise PronyArgumentError(5)
    n_samples, n_signals = data.shape
    if n_samples > limits.max_samples or n_signals < 1:
        raise PronyArgumentError(5)
    if n_signals > limits.max_signals:
        raise PronyArgumentError(4)

    period = np.asarray(sample_period)
    if period.size != 1 or not np.issubdtype(period.dtype, np.number) or np.iscomplexobj(period):
        raise PronyArgumentError(6)
    period = float(period.ravel()[0])

    windows = np.asarray(shift_length)
    if windows.ndim == 1 and n_signals == 1 and windows.size == 2:
        windows = windows.reshape(2, 1)
    if windows.ndim != 2 or windows.shape != (2, n_signals):
        raise PronyArgumentError(7)

    pulse_matrix = _as_pair_matrix(pulses, limits.max_pulses, 8)
    known_matrix = _as_pair_matrix(known_modes, limits.max_modes, 9)
    control_vector = ControlVector.from_array(control)

    shift = windows[0, :].astype(int)
    fit_length = windows[1, :].astype(int)
    shift[shift < 0] = 0
    negative = fit_length < 0
    fit_length[negative] = n_samples - shift[negative]
    if np.any(fit_length < limits.min_fit_length) or np.any(shift + fit_length > n_samples):
        raise PronyArgumentError(11)

    total_modes = control_vector.modes + known_matrix.shape[0]
    if total_modes > limits.max_modes:
        raise PronyArgumentError(12)

    logger.debug("Validated %d signal(s), %d pulse(s), %d known mode(s), %d mode(s) requested",
                 n_signals, pulse_matrix.shape[0], known_matrix.shape[0], total_modes)

    return ValidatedInputs(
        signals=data,
        sample_period=period,
        shift=shift,
        fit_length=fit_length,
        pulses=pulse_matrix,
        known_modes=known_matrix,
        control=control_vector,
        total_modes=int(total_modes),
    )

"""
Signal Processor Module

Windowing and scaling of the signal columns before Prony extraction.

Responsibilities:
- Fit window extraction (shift, length) per signal
- Peak-magnitude scaling with recorded scale factors
- Zero-padded work matrix for collaborators that need uniform width

Each signal window is kept as an independent 1-D array. Signals may have
different fit lengths, so the rectangular work matrix is built only on
request; its trailing zero rows are padding, not data.
"""

from dataclasses import dataclass
from typing import List, Tuple
import logging

import numpy as np

from prony_config import PronyLimits, DEFAULT_LIMITS

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PreparedSignals:
    """Fit windows ready for extraction."""
    windows: Tuple[np.ndarray, ...]   # One 1-D window per signal
    scale_factors: np.ndarray         # Peak magnitude used per signal (1.0 if unscaled)
    scaled: bool                      # Scaling toggle from the control vector

    @property
    def n_signals(self) -> int:
        return len(self.windows)

    @property
    def fit_lengths(self) -> np.ndarray:
        return np.array([len(w) for w in self.windows], dtype=int)


class SignalProcessor:
    """
    Signal preparation for multi-output Prony analysis.

    All methods are pure: they take arrays and return new arrays.
    """

    def __init__(self, limits: PronyLimits = DEFAULT_LIMITS):
        """
        Initialize signal processor.

        Args:
            limits: Buffer limits
        """
        self.limits = limits

    def extract_windows(self, signals: np.ndarray, shift: np.ndarray,
                        fit_length: np.ndarray) -> List[np.ndarray]:
        """
        Cut the fit window out of every signal column.

        Args:
            signals: Signal data, shape (n_samples, n_signals)
            shift: Samples to skip per signal
            fit_length: Samples to keep per signal

        Returns:
            List of windows, window i has fit_length[i] samples
        """
        windows = []
        for idx in range(signals.shape[1]):
            start = int(shift[idx])
            stop = start + int(fit_length[idx])
            windows.append(np.array(signals[start:stop, idx], dtype=float))
        return windows

    def scale_windows(self, windows: List[np.ndarray],
                      enabled: bool) -> Tuple[List[np.ndarray], np.ndarray]:
        """
        Scale each window to unit peak magnitude.

        A window whose peak is zero is left as is with factor 1.0.

        Args:
            windows: Fit windows
            enabled: Scaling toggle

        Returns:
            scaled: Scaled windows (copies)
            factors: Scale factor per window
        """
        factors = np.ones(len(windows))
        if not enabled:
            return [w.copy() for w in windows], factors

        scaled = []
        for idx, window in enumerate(windows):
            peak = float(np.max(np.abs(window))) if window.size else 0.0
            if peak > 0:
                scaled.append(window / peak)
                factors[idx] = peak
            else:
                logger.debug("Signal %d has zero peak, left unscaled", idx)
                scaled.append(window.copy())
        return scaled, factors

    def to_work_matrix(self, windows: List[np.ndarray]) -> np.ndarray:
        """
        Pack windows into a zero-padded matrix, one column per signal.

        Args:
            windows: Fit windows (possibly of different lengths)

        Returns:
            Matrix of shape (max window length, n_signals)
        """
        rows = max(len(w) for w in windows)
        work = np.zeros((rows, len(windows)))
        for idx, window in enumerate(windows):
            work[:len(window), idx] = window
        return work

    def prepare(self, signals: np.ndarray, shift: np.ndarray, fit_length: np.ndarray,
                scaling: bool) -> PreparedSignals:
        """Window then (optionally) scale every signal."""
        windows = self.extract_windows(signals, shift, fit_length)
        scaled, factors = self.scale_windows(windows, scaling)
        return PreparedSignals(windows=tuple(scaled), scale_factors=factors, scaled=bool(scaling))

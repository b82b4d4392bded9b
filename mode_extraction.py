"""
mode_extraction.py
Adapter between the Prony pipeline and a mode extractor.

The extractor is called once for all signals. It returns one pole set
(damping, frequency) shared by every output plus per-signal amplitude and
phase tables, a warning flag vector and a primary result code.
"""
from __future__ import annotations
import enum
import logging
from dataclasses import dataclass, field

import numpy as np

from prony_config import PronyLimits, DEFAULT_LIMITS
from prony_validation import ValidatedInputs
from signal_processor import PreparedSignals, SignalProcessor

logger = logging.getLogger(__name__)


class KnownModeUse(enum.IntEnum):
    """How known modes take part in extraction."""
    NONE = 0      # blind extraction
    PARTIAL = 1   # known modes held fixed, remaining modes extracted
    ONLY = 2      # no extraction, only amplitudes/phases of known modes


@dataclass(frozen=True)
class PredictionParams:
    """Linear prediction settings, echoed back with the values actually used."""
    lp_order: int = 0
    pinv_rank: int = 0
    lp_method: int = 0
    lp_algorithm: int = 0
    lp_direction: int = 0


@dataclass(frozen=True)
class TrimParams:
    """Mode trimming thresholds; non-positive values disable a threshold."""
    residue: float = 0.0
    freq_high: float = 0.0
    freq_low: float = 0.0


@dataclass
class ExtractionResult:
    """Output of one extractor call."""
    damping: np.ndarray        # Shared decay rates (1/s, pole real part is -damping), shape (n_modes,)
    frequency: np.ndarray      # Shared angular frequencies (rad/s), shape (n_modes,)
    amplitude: np.ndarray      # Amplitudes, shape (n_modes, n_signals)
    phase: np.ndarray          # Phases (rad), shape (n_modes, n_signals)
    mode_count: int            # Modes identified
    total_modes: int           # Total modes requested (resolved when automatic)
    warning_flags: np.ndarray  # One flag per warning catalog entry
    primary_code: int          # 0 on success
    params: PredictionParams = field(default_factory=PredictionParams)

    @property
    def ok(self) -> bool:
        return self.primary_code == 0

    @classmethod
    def failure(cls, code: int, n_signals: int, total_modes: int, params: PredictionParams,
                warning_flags: np.ndarray) -> "ExtractionResult":
        return cls(
            damping=np.zeros(0),
            frequency=np.zeros(0),
            amplitude=np.zeros((0, n_signals)),
            phase=np.zeros((0, n_signals)),
            mode_count=0,
            total_modes=total_modes,
            warning_flags=warning_flags,
            primary_code=int(code),
            params=params,
        )


def select_known_mode_use(known_count: int, total_modes: int, auto_modes: bool = False) -> KnownModeUse:
    """
    Decide how known modes are used.

    Args:
        known_count: Number of known modes
        total_modes: Additional plus known modes requested
        auto_modes: Additional mode count is determined automatically

    Returns:
        KnownModeUse
    """
    if known_count == 0:
        return KnownModeUse.NONE
    if auto_modes or known_count < total_modes:
        return KnownModeUse.PARTIAL
    return KnownModeUse.ONLY


class ModeExtractionAdapter:
    """Packs prepared signals and control settings into one extractor call."""

    def __init__(self, extractor, limits: PronyLimits = DEFAULT_LIMITS):
        self.extractor = extractor
        self.limits = limits
        self._processor = SignalProcessor(limits)

    def run(self, prepared: PreparedSignals, inputs: ValidatedInputs) -> ExtractionResult:
        """
        Call the extractor for all signals at once.

        Args:
            prepared: Windowed (and scaled) signals
            inputs: Validated caller inputs

        Returns:
            ExtractionResult; a non-zero primary code is returned, not raised
        """
        control = inputs.control
        known_use = select_known_mode_use(inputs.n_known, inputs.total_modes, control.auto_modes)
        params = PredictionParams(
            lp_order=control.lp_order,
            pinv_rank=control.pinv_rank,
            lp_method=control.lp_method,
            lp_algorithm=control.lp_algorithm,
            lp_direction=control.lp_direction,
        )
        trim = TrimParams(
            residue=control.trim_residue,
            freq_high=control.trim_freq_high,
            freq_low=control.trim_freq_low,
        )
        work = self._processor.to_work_matrix(list(prepared.windows))

        logger.debug("Extracting modes: %s, %d known, %d total", known_use.name,
                     inputs.n_known, inputs.total_modes)
        result = self.extractor.extract(
            work,
            prepared.fit_lengths,
            inputs.sample_period,
            params,
            known_use,
            inputs.n_known,
            inputs.total_modes,
            trim,
            inputs.known_modes[:, 0].copy(),
            inputs.known_modes[:, 1].copy(),
        )
        if not result.ok:
            logger.warning("Mode extraction failed with code %d", result.primary_code)
        return result


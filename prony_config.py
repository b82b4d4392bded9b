"""
prony_config.py
Immutable configuration records for Prony identification.

PronyLimits holds the buffer limits and tolerance floors shared by every
component. ControlVector is the caller's 12-field control input and
ControlReport the derived control output; the two are kept separate so a
caller can always tell supplied fields from computed ones.
"""
from __future__ import annotations
from dataclasses import dataclass, fields, asdict
from typing import Any, Dict

import numpy as np

from prony_errors import PronyArgumentError


CONTROL_FIELDS = (
    'modes',             # additional modes to identify (< 0: automatic)
    'scaling',           # non-zero: scale each signal to unit peak
    'lp_order',          # linear prediction order
    'pinv_rank',         # pseudo-inverse rank
    'identified_modes',  # modes identified by linear prediction (output)
    'lp_method',         # 0 truncated SVD pseudo-inverse, 1 least squares
    'lp_algorithm',      # 0 data matrix, 1 normal equations
    'lp_direction',      # 0 forward, 1 backward
    'ordering',          # 0 energy, 1 frequency, 2 damping
    'trim_residue',      # relative energy floor
    'trim_freq_high',    # upper frequency trim (rad/s)
    'trim_freq_low',     # lower frequency trim (rad/s)
)


@dataclass(frozen=True)
class PronyLimits:
    """Buffer limits and numeric floors used throughout the pipeline."""
    max_samples: int = 8192
    max_signals: int = 20
    max_modes: int = 128
    max_pulses: int = 10
    warning_flags: int = 6
    min_fit_length: int = 3
    min_magnitude: float = 1e-12
    stability_decay: float = 1e-8
    condition_limit: float = 1e12

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PronyLimits":
        """Build limits from a dict, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        values = {}
        for key, value in data.items():
            if key not in known:
                continue
            default = getattr(cls, key)
            values[key] = type(default)(value)
        return cls(**values)


DEFAULT_LIMITS = PronyLimits()


@dataclass(frozen=True)
class ControlVector:
    """Caller-supplied control input (12 fields)."""
    modes: int = -1
    scaling: float = 0.0
    lp_order: int = 0
    pinv_rank: int = 0
    identified_modes: int = 0
    lp_method: int = 0
    lp_algorithm: int = 0
    lp_direction: int = 0
    ordering: int = 0
    trim_residue: float = 0.0
    trim_freq_high: float = 0.0
    trim_freq_low: float = 0.0

    @classmethod
    def from_array(cls, values) -> "ControlVector":
        """
        Build the record from a 12-element vector.

        Args:
            values: Sequence or array with exactly 12 elements
                (row or column vectors are accepted)

        Returns:
            ControlVector

        Raises:
            PronyArgumentError: key 10 when the element count is wrong
        """
        if isinstance(values, ControlVector):
            return values
        arr = np.asarray(values, dtype=float)
        if arr.ndim > 2 or (arr.ndim == 2 and min(arr.shape) != 1) or arr.size != len(CONTROL_FIELDS):
            raise PronyArgumentError(10)
        arr = arr.ravel()
        kwargs = {}
        for name, value in zip(CONTROL_FIELDS, arr):
            default = getattr(cls, name)
            kwargs[name] = int(value) if isinstance(default, int) else float(value)
        return cls(**kwargs)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ControlVector":
        values = [data.get(name, getattr(cls, name)) for name in CONTROL_FIELDS]
        return cls.from_array(values)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def as_array(self) -> np.ndarray:
        return np.array([getattr(self, name) for name in CONTROL_FIELDS], dtype=float)

    @property
    def auto_modes(self) -> bool:
        return self.modes < 0

    @property
    def scaling_enabled(self) -> bool:
        return self.scaling != 0


@dataclass(frozen=True)
class ControlReport:
    """
    Control output of an identification run.

    Slot layout matches ControlVector so the report can be fed back as the
    next run's input; `total_modes` and `achieved_modes` are derived.
    """
    total_modes: int
    scaling: float
    lp_order: int
    pinv_rank: int
    achieved_modes: int
    lp_method: int
    lp_algorithm: int
    lp_direction: int
    ordering: int
    trim_residue: float
    trim_freq_high: float
    trim_freq_low: float

    def as_array(self) -> np.ndarray:
        return np.array([getattr(self, f.name) for f in fields(self)], dtype=float)

    @classmethod
    def echo(cls, control: ControlVector, total_modes: int) -> "ControlReport":
        """Report that passes the caller's control input through unchanged."""
        return cls(
            total_modes=total_modes,
            scaling=control.scaling,
            lp_order=control.lp_order,
            pinv_rank=control.pinv_rank,
            achieved_modes=control.identified_modes,
            lp_method=control.lp_method,
            lp_algorithm=control.lp_algorithm,
            lp_direction=control.lp_direction,
            ordering=control.ordering,
            trim_residue=control.trim_residue,
            trim_freq_high=control.trim_freq_high,
            trim_freq_low=control.trim_freq_low,
        )

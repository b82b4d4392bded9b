"""
prony_errors.py
Diagnostic catalog for multi-output Prony identification.

Three disjoint code spaces are kept here:
- argument errors: malformed caller inputs, raised before any numeric work
- warnings: non-fatal conditions flagged by the mode extractor
- fatal errors: extraction or reordering produced an unusable model

The tables are built once at import time and exposed read-only.
"""
from __future__ import annotations
from types import MappingProxyType
from typing import Mapping, Optional


ARGUMENT_ERRORS: Mapping[int, str] = MappingProxyType({
    1: "Six input arguments are required: signals, sample period, shift/length, "
       "input pulses, known modes and control vector.",
    # never raised: PronyResult always carries all four fields
    2: "Four output arguments are returned: model, control, warnings and fatal error.",
    3: "Signal data must be real valued.",
    4: "Signal data has too many signal columns (at most 20 signals are supported).",
    5: "Signal data must have at least one column and at most 8192 samples per column.",
    6: "Sample period must be a scalar.",
    7: "Shift/length matrix must have 2 rows and one column per signal.",
    8: "Input pulse matrix must be empty or have at most 10 rows and exactly 2 columns.",
    9: "Known mode matrix must be empty or have at most 128 rows and exactly 2 columns.",
    10: "Control vector must have exactly 12 elements.",
    11: "Each fit window needs at least 3 samples and must lie inside the signal data.",
    12: "Too many modes requested (additional plus known modes must not exceed 128).",
})

WARNINGS: Mapping[int, str] = MappingProxyType({
    1: "Linear prediction order reduced to fit the available data.",
    2: "Pseudo-inverse rank reduced to the linear prediction order.",
    3: "Zero roots of the prediction polynomial were discarded.",
    4: "Fewer modes were identified than requested.",
    5: "Linear prediction matrix is ill-conditioned.",
    6: "Amplitude fit is ill-conditioned; residues may be inaccurate.",
})

FATAL_ERRORS: Mapping[int, str] = MappingProxyType({
    1: "Insufficient data for the requested linear prediction order.",
    2: "Linear prediction solution failed (singular prediction matrix).",
    3: "Root finding of the prediction polynomial failed.",
    4: "Amplitude and phase solution failed.",
    5: "No modes identified.",
    6: "Mode reordering failed: no mode carries energy in the fit window.",
    7: "Invalid control parameter or internal error in Prony analysis.",
    8: "Mode reordering failed.",
})

PRIMARY_FATAL_KEYS: Mapping[int, int] = MappingProxyType({
    100: 1,
    102: 2,
    103: 2,
    104: 3,
    105: 4,
    110: 5,
})
PRIMARY_FALLBACK_KEY = 7

SECONDARY_FATAL_KEYS: Mapping[int, int] = MappingProxyType({
    12: 6,
    101: 7,
})
SECONDARY_FALLBACK_KEY = 8


class PronyArgumentError(ValueError):
    """Raised when caller-supplied inputs fail validation."""

    def __init__(self, key: int):
        self.key = key
        self.message = ARGUMENT_ERRORS[key]
        super().__init__(self.message)


class ErrorCatalog:
    """Lookup-by-code access to the three diagnostic tables."""

    argument_errors = ARGUMENT_ERRORS
    warnings = WARNINGS
    fatal_errors = FATAL_ERRORS

    @staticmethod
    def argument(key: int) -> str:
        return ARGUMENT_ERRORS[key]

    @staticmethod
    def warning(key: int) -> str:
        return WARNINGS[key]

    @staticmethod
    def fatal(key: int) -> str:
        return FATAL_ERRORS[key]


def fatal_key_for(primary_code: int, secondary_code: int = 0) -> Optional[int]:
    """
    Map the two-stage failure codes onto a fatal catalog key.

    The secondary (reordering) code is only consulted when extraction
    succeeded.

    Args:
        primary_code: Result code of the mode extractor
        secondary_code: Result code of the mode reorderer

    Returns:
        Fatal catalog key, or None when both stages succeeded
    """
    if primary_code != 0:
        return PRIMARY_FATAL_KEYS.get(int(primary_code), PRIMARY_FALLBACK_KEY)
    if secondary_code != 0:
        return SECONDARY_FATAL_KEYS.get(int(secondary_code), SECONDARY_FALLBACK_KEY)
    return None


def fatal_message_for(primary_code: int, secondary_code: int = 0) -> Optional[str]:
    """Fatal diagnostic text for the failure codes, or None on success."""
    key = fatal_key_for(primary_code, secondary_code)
    if key is None:
        return None
    return FATAL_ERRORS[key]

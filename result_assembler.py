"""
result_assembler.py
Builds the four outputs of an identification run.

    model    (total_modes, 8 * n_signals) array; one block of eight columns
             per signal: damping, frequency, amplitude, phase, residue real,
             residue imaginary, relative energy, AFPE
    control  ControlReport with the derived fields filled in
    warnings list of warning messages flagged during extraction
    fatal    single fatal diagnostic, or None on success

On a fatal code the model is empty and the warnings list is empty.
"""
from __future__ import annotations
import logging
from typing import List, NamedTuple, Optional, Sequence

import numpy as np

from mode_extraction import ExtractionResult
from prony_config import ControlReport, PronyLimits, DEFAULT_LIMITS
from prony_errors import ErrorCatalog, fatal_message_for
from prony_validation import ValidatedInputs
from signal_postprocessor import SignalModeTable

logger = logging.getLogger(__name__)

PARAMETERS_PER_SIGNAL = 8


class PronyResult(NamedTuple):
    """Outputs of one identification run."""
    model: np.ndarray
    control: ControlReport
    warnings: List[str]
    fatal: Optional[str]

    @property
    def ok(self) -> bool:
        return self.fatal is None


def collect_warnings(flags: Sequence[int]) -> List[str]:
    """
    Warning messages for every raised flag, in catalog order.

    Flag i (0-based) selects warning catalog key i + 1. With exactly one
    raised flag the result is that flag's single message.
    """
    flags = np.asarray(flags).ravel()
    return [ErrorCatalog.warning(int(i) + 1) for i in np.flatnonzero(flags)]


def stack_model(tables: Sequence[SignalModeTable], total_modes: int) -> np.ndarray:
    """Concatenate the per-signal eight-column blocks side by side."""
    if not tables:
        return np.zeros((total_modes, 0))
    return np.hstack([table.columns() for table in tables])


class ResultAssembler:
    """Merges per-signal tables and classifies the run's diagnostics."""

    def __init__(self, limits: PronyLimits = DEFAULT_LIMITS):
        self.limits = limits

    def assemble(self, inputs: ValidatedInputs, extraction: ExtractionResult,
                 tables: Sequence[SignalModeTable], secondary_code: int = 0) -> PronyResult:
        """
        Build the final result.

        Args:
            inputs: Validated caller inputs
            extraction: Extraction result (possibly failed)
            tables: Per-signal tables (one per signal on success)
            secondary_code: First non-zero reorderer code, 0 if none

        Returns:
            PronyResult
        """
        fatal = fatal_message_for(extraction.primary_code, secondary_code)
        if fatal is not None:
            logger.warning("Prony identification failed (codes %d/%d): %s",
                           extraction.primary_code, secondary_code, fatal)
            return PronyResult(
                model=np.zeros((0, PARAMETERS_PER_SIGNAL * inputs.n_signals)),
                control=ControlReport.echo(inputs.control, inputs.total_modes),
                warnings=[],
                fatal=fatal,
            )

        total_modes = extraction.total_modes
        model = stack_model(tables, total_modes)
        params = extraction.params
        control = ControlReport(
            total_modes=total_modes,
            scaling=inputs.control.scaling,
            lp_order=params.lp_order,
            pinv_rank=params.pinv_rank,
            achieved_modes=min(extraction.mode_count, total_modes),
            lp_method=params.lp_method,
            lp_algorithm=params.lp_algorithm,
            lp_direction=params.lp_direction,
            ordering=inputs.control.ordering,
            trim_residue=inputs.control.trim_residue,
            trim_freq_high=inputs.control.trim_freq_high,
            trim_freq_low=inputs.control.trim_freq_low,
        )
        warnings = collect_warnings(extraction.warning_flags)
        for message in warnings:
            logger.info("Prony warning: %s", message)
        return PronyResult(model=model, control=control, warnings=warnings, fatal=None)

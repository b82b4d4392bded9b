"""
prony_analysis.py
Multi-output Prony identification of a transfer-function model.

Identifies

                    n     R(i)
    G(s) = THRU + sum ---------
                   i=1  s - p(i)

from sampled output responses y(t) to a known pulse-train input U(s):
1. Validate the inputs and cut/scale the fit windows
2. Fit all signals with one common set of damped sinusoids
3. Per signal: reorder the modes, reduce the model order, compute residues
   and move amplitude/phase to the true time origin
4. Assemble the model table, control report and diagnostics

Usage:
    model, control, warnings, fatal = prony_identify(
        signals, 0.01, [[0], [-1]], [], [], [3, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0])
"""
from __future__ import annotations
import logging
from typing import List

import numpy as np

from linear_prediction import LinearPredictionExtractor
from mode_extraction import ModeExtractionAdapter
from mode_reorder import EnergyModeReorderer
from prony_config import PronyLimits, DEFAULT_LIMITS
from prony_errors import PronyArgumentError
from prony_validation import validate_inputs
from result_assembler import PronyResult, ResultAssembler
from signal_postprocessor import PerSignalPostProcessor, SignalModeTable
from signal_processor import SignalProcessor
from transfer_function import PulseTrainResidueSolver

logger = logging.getLogger(__name__)

N_INPUTS = 6


class PronyAnalyzer:
    """
    Prony identification pipeline with pluggable collaborators.

    Args:
        extractor: Mode extractor (default LinearPredictionExtractor)
        reorderer: Mode reorderer (default EnergyModeReorderer)
        solver: Transfer-function residue solver (default PulseTrainResidueSolver)
        limits: Buffer limits and numeric floors
    """

    def __init__(self, extractor=None, reorderer=None, solver=None,
                 limits: PronyLimits = DEFAULT_LIMITS):
        self.limits = limits
        self.extractor = extractor if extractor is not None else LinearPredictionExtractor(limits)
        self.reorderer = reorderer if reorderer is not None else EnergyModeReorderer()
        self.solver = solver if solver is not None else PulseTrainResidueSolver(limits)
        self.processor = SignalProcessor(limits)
        self.adapter = ModeExtractionAdapter(self.extractor, limits)
        self.postprocessor = PerSignalPostProcessor(self.reorderer, self.solver, limits)
        self.assembler = ResultAssembler(limits)

    def identify(self, signals, sample_period, shift_length, pulses, known_modes, control) -> PronyResult:
        """
        Identify the model.

        Args:
            signals: Signal data, one column per output (at most 8192 x 20)
            sample_period: Sample period (s)
            shift_length: [shift; length] per signal; negative shift means 0,
                negative length means "to the end of the data"
            pulses: Input pulses as (delay, amplitude) rows, or empty for a
                free response
            known_modes: Known (damping, frequency rad/s) rows, or empty
            control: 12-element control vector or ControlVector

        Returns:
            PronyResult (model, control, warnings, fatal)

        Raises:
            PronyArgumentError: when an input is malformed
        """
        inputs = validate_inputs(signals, sample_period, shift_length, pulses, known_modes,
                                 control, self.limits)
        prepared = self.processor.prepare(inputs.signals, inputs.shift, inputs.fit_length,
                                          inputs.control.scaling_enabled)
        extraction = self.adapter.run(prepared, inputs)

        tables: List[SignalModeTable] = []
        secondary_code = 0
        if extraction.ok:
            order = self.postprocessor.common_order(extraction, inputs)
            for index in range(inputs.n_signals):
                outcome = self.postprocessor.process(index, extraction, prepared, inputs, mode_order=order)
                if isinstance(outcome, SignalModeTable):
                    tables.append(outcome)
                else:
                    secondary_code = outcome
                    break

        result = self.assembler.assemble(inputs, extraction, tables, secondary_code)
        if result.ok:
            logger.info("Identified %d mode(s) for %d signal(s)",
                        result.control.achieved_modes, inputs.n_signals)
        return result


def prony_identify(*args, limits: PronyLimits = DEFAULT_LIMITS) -> PronyResult:
    """
    Identify a multi-output pole/residue model with the default collaborators.

    Positional inputs, all six required:
        signals, sample_period, shift_length, pulses, known_modes, control

    Returns a four-field PronyResult: model, control, warnings, fatal.

    Raises:
        PronyArgumentError: key 1 when the positional count is not six
    """
    if len(args) != N_INPUTS:
        raise PronyArgumentError(1)
    return PronyAnalyzer(limits=limits).identify(*args)


def model_blocks(result: PronyResult) -> np.ndarray:
    """Model table reshaped to (total_modes, 8, n_signals)."""
    rows, cols = result.model.shape
    return result.model.reshape(rows, cols // 8, 8).transpose(0, 2, 1)

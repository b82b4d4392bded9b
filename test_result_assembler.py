"""
Unit tests for ResultAssembler
"""

import numpy as np
import pytest
from mode_extraction import ExtractionResult, PredictionParams
from prony_errors import FATAL_ERRORS, WARNINGS
from prony_validation import validate_inputs
from result_assembler import ResultAssembler, collect_warnings, stack_model
from signal_postprocessor import SignalModeTable

CONTROL = [3, 0, 0, 0, 0, 0, 0, 1, 1, 0, 0, 0]


def table(offset, n=3):
    base = np.arange(n, dtype=float) + offset
    return SignalModeTable(base, base + 1, base + 2, base + 3, base + 4, base + 5, base + 6, base + 7)


def extraction(code=0, flags=None, mode_count=3):
    return ExtractionResult(
        damping=np.zeros(mode_count),
        frequency=np.zeros(mode_count),
        amplitude=np.zeros((mode_count, 2)),
        phase=np.zeros((mode_count, 2)),
        mode_count=mode_count,
        total_modes=3,
        warning_flags=np.zeros(6, dtype=int) if flags is None else np.asarray(flags),
        primary_code=code,
        params=PredictionParams(lp_order=6, pinv_rank=5, lp_direction=1),
    )


class TestCollectWarnings:
    """Test warning collection"""

    @pytest.mark.parametrize("position", range(6))
    def test_single_flag(self, position):
        """Test one raised flag yields exactly its message"""
        flags = np.zeros(6, dtype=int)
        flags[position] = 1

        assert collect_warnings(flags) == [WARNINGS[position + 1]]

    def test_no_flags(self):
        """Test no flags yields no warnings"""
        assert collect_warnings(np.zeros(6)) == []

    def test_catalog_order(self):
        """Test several flags keep catalog order"""
        assert collect_warnings([0, 1, 0, 0, 1, 0]) == [WARNINGS[2], WARNINGS[5]]


class TestResultAssembler:
    """Test ResultAssembler.assemble"""

    @pytest.fixture
    def inputs(self):
        return validate_inputs(np.ones((50, 2)), 0.1, [[0, 0], [-1, -1]], [], [], CONTROL)

    def test_stack_model(self):
        """Test blocks sit side by side"""
        model = stack_model([table(0), table(10)], 3)

        assert model.shape == (3, 16)
        assert np.allclose(model[:, 0], [0, 1, 2])
        assert np.allclose(model[:, 8], [10, 11, 12])
        assert np.allclose(model[:, 15], [17, 18, 19])

    def test_success(self, inputs):
        """Test model, control report and warnings on success"""
        flags = [0, 0, 0, 1, 0, 0]
        result = ResultAssembler().assemble(inputs, extraction(flags=flags, mode_count=2),
                                            [table(0), table(10)])

        assert result.ok
        assert result.fatal is None
        assert result.model.shape == (3, 16)
        assert result.warnings == [WARNINGS[4]]
        assert result.control.total_modes == 3
        assert result.control.lp_order == 6
        assert result.control.pinv_rank == 5
        assert result.control.achieved_modes == 2
        assert result.control.lp_direction == 1
        assert result.control.ordering == 1
        assert result.control.as_array().shape == (12,)

    def test_primary_failure(self, inputs):
        """Test an extractor failure empties the model and warnings"""
        result = ResultAssembler().assemble(inputs, extraction(code=104, flags=[1, 0, 0, 0, 0, 0]), [])

        assert not result.ok
        assert result.fatal == FATAL_ERRORS[3]
        assert result.model.shape == (0, 16)
        assert result.warnings == []
        assert result.control.total_modes == 3
        assert result.control.lp_order == 0

    def test_secondary_failure(self, inputs):
        """Test a reorder failure after successful extraction"""
        result = ResultAssembler().assemble(inputs, extraction(), [table(0)], secondary_code=12)

        assert result.fatal == FATAL_ERRORS[6]
        assert result.model.size == 0

"""
Unit tests for Prony input validation
"""

import numpy as np
import pytest
from prony_analysis import PronyAnalyzer
from prony_errors import PronyArgumentError
from prony_validation import validate_inputs

CONTROL = [2, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0]


def expect_key(key, *args):
    with pytest.raises(PronyArgumentError) as info:
        validate_inputs(*args)
    assert info.value.key == key
    return info.value


class TestValidateInputs:
    """Test validate_inputs"""

    @pytest.fixture
    def signals(self):
        """100 samples, two columns"""
        return np.random.default_rng(0).standard_normal((100, 2))

    def test_accepts_valid(self, signals):
        """Test normalized output for valid inputs"""
        inputs = validate_inputs(signals, 0.01, [[0, 10], [-1, 50]], [], [], CONTROL)

        assert inputs.n_signals == 2
        assert inputs.sample_period == 0.01
        assert list(inputs.shift) == [0, 10]
        assert list(inputs.fit_length) == [100, 50]
        assert inputs.pulses.shape == (0, 2)
        assert inputs.known_modes.shape == (0, 2)
        assert inputs.total_modes == 2

    def test_negative_shift_clamped(self, signals):
        """Test negative shift means zero and negative length means to the end"""
        inputs = validate_inputs(signals, 0.01, [[-5, 20], [-1, -1]], [], [], CONTROL)

        assert list(inputs.shift) == [0, 20]
        assert list(inputs.fit_length) == [100, 80]

    def test_single_signal_vector(self):
        """Test a 1-D signal and a 1-D shift/length pair"""
        inputs = validate_inputs(np.ones(30), 0.1, [0, -1], [], [], CONTROL)

        assert inputs.signals.shape == (30, 1)
        assert inputs.fit_length[0] == 30

    def test_complex_signals(self):
        """Test complex data is rejected"""
        expect_key(3, np.ones((10, 1), dtype=complex), 0.1, [[0], [-1]], [], [], CONTROL)

    def test_too_many_signals(self):
        """Test 21 columns are rejected"""
        error = expect_key(4, np.ones((10, 21)), 0.1, np.tile([[0], [-1]], 21), [], [], CONTROL)
        assert "too many signal columns" in error.message

    def test_too_many_samples(self):
        """Test more than 8192 rows are rejected"""
        expect_key(5, np.ones((8193, 1)), 0.1, [[0], [-1]], [], [], CONTROL)

    def test_sample_period_not_scalar(self, signals):
        """Test a vector sample period is rejected"""
        expect_key(6, signals, [0.1, 0.2], [[0, 0], [-1, -1]], [], [], CONTROL)

    def test_shift_length_shape(self, signals):
        """Test the shift/length matrix needs one column per signal"""
        expect_key(7, signals, 0.1, [[0], [-1]], [], [], CONTROL)

    def test_too_many_pulses(self, signals):
        """Test more than 10 pulses are rejected"""
        expect_key(8, signals, 0.1, [[0, 0], [-1, -1]], np.ones((11, 2)), [], CONTROL)

    def test_pulse_columns(self, signals):
        """Test pulses need two columns"""
        expect_key(8, signals, 0.1, [[0, 0], [-1, -1]], np.ones((2, 3)), [], CONTROL)

    def test_known_mode_columns(self, signals):
        """Test known modes need two columns"""
        expect_key(9, signals, 0.1, [[0, 0], [-1, -1]], [], np.ones((2, 3)), CONTROL)

    def test_control_size(self, signals):
        """Test the control vector needs 12 elements"""
        expect_key(10, signals, 0.1, [[0, 0], [-1, -1]], [], [], CONTROL[:11])

    @pytest.mark.parametrize("window", [[[0, 0], [2, 10]], [[95, 0], [10, 10]]])
    def test_window_out_of_range(self, signals, window):
        """Test short windows and windows past the data end"""
        expect_key(11, signals, 0.1, window, [], [], CONTROL)

    def test_too_many_modes(self, signals):
        """Test more than 128 total modes"""
        control = [127] + CONTROL[1:]
        expect_key(12, signals, 0.1, [[0, 0], [-1, -1]], [], [[1.0, 2.0], [0.5, 0.0]], control)


class TestAnalyzerValidation:
    """Test argument errors stop the pipeline before extraction"""

    class NeverCalledExtractor:
        def extract(self, *args, **kwargs):
            raise AssertionError("extractor must not run")

    def test_known_modes_over_limit(self):
        """Test 129 known modes raise key 9 without reaching the extractor"""
        analyzer = PronyAnalyzer(extractor=self.NeverCalledExtractor())
        known = np.ones((129, 2))

        with pytest.raises(PronyArgumentError) as info:
            analyzer.identify(np.ones((50, 1)), 0.1, [[0], [-1]], [], known, CONTROL)
        assert info.value.key == 9

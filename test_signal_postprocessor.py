"""
Unit tests for per-signal post-processing
"""

import numpy as np
import pytest
from mode_extraction import ExtractionResult, PredictionParams
from mode_reorder import ReorderResult
from prony_config import PronyLimits
from prony_validation import validate_inputs
from signal_postprocessor import (
    PerSignalPostProcessor, SignalModeTable,
    free_response_residues, restore_time_shift, stability_bound, wrap_phase,
)
from signal_processor import SignalProcessor
from transfer_function import PulseTrainResidueSolver

T = 0.01
CONTROL = [2, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0]


class IdentityReorderer:
    """Returns the modes unchanged with fixed scores."""

    def __init__(self, code=0):
        self.code = code
        self.calls = []

    def reorder(self, time, fit_length, total_modes, amplitude, damping, frequency, phase,
                damping_cutoff, frequency_cutoff, stability_bound, alpha, beta, ordering, mode_order=None):
        self.calls.append(dict(time=time, fit_length=fit_length, bound=stability_bound,
                               amplitude=amplitude, mode_order=mode_order))
        if self.code:
            return ReorderResult.failure(self.code, total_modes)
        n = len(amplitude)
        return ReorderResult(
            amplitude=np.asarray(amplitude, dtype=float),
            damping=np.asarray(damping, dtype=float),
            frequency=np.asarray(frequency, dtype=float),
            phase=np.asarray(phase, dtype=float),
            fit_quality=np.zeros(n),
            relative_energy=np.full(n, 1.0 / n),
        )


def extraction(amplitude, phase, damping=(0.5, 1.0), frequency=(10.0, 20.0)):
    amplitude = np.asarray(amplitude, dtype=float).reshape(len(damping), -1)
    phase = np.asarray(phase, dtype=float).reshape(len(damping), -1)
    return ExtractionResult(
        damping=np.asarray(damping, dtype=float),
        frequency=np.asarray(frequency, dtype=float),
        amplitude=amplitude,
        phase=phase,
        mode_count=len(damping),
        total_modes=len(damping),
        warning_flags=np.zeros(6, dtype=int),
        primary_code=0,
        params=PredictionParams(lp_order=4, pinv_rank=4),
    )


def setup(shift, scaling=0, pulses=(), n_samples=100):
    control = list(CONTROL)
    control[1] = scaling
    signals = np.linspace(1.0, -3.0, n_samples)
    inputs = validate_inputs(signals, T, [shift, -1], pulses, [], control)
    prepared = SignalProcessor().prepare(inputs.signals, inputs.shift, inputs.fit_length,
                                         inputs.control.scaling_enabled)
    return inputs, prepared


class TestHelpers:
    """Test phase wrapping, bound and shift restoration"""

    @pytest.mark.parametrize("phase,expected", [
        (0.5, 0.5), (np.pi, np.pi), (-np.pi, np.pi), (3 * np.pi / 2, -np.pi / 2), (-7.0, -7.0 + 2 * np.pi),
    ])
    def test_wrap_phase(self, phase, expected):
        """Test wrapping into (-pi, pi]"""
        assert wrap_phase(np.array([phase]))[0] == pytest.approx(expected)

    def test_wrap_phase_leaves_inside_untouched(self):
        """Test values already inside are returned exactly"""
        phase = np.array([-3.0, 0.1, 3.1])
        assert np.array_equal(wrap_phase(phase), phase)

    def test_stability_bound(self):
        """Test a mode at the bound grows by 1e8 over the window"""
        bound = stability_bound(T, 101, 1e-8)
        assert np.exp(-bound * T * 100) == pytest.approx(1e8)

    def test_restore_time_shift(self):
        """Test amplitude and phase move from the window start to t = 0"""
        amplitude, phase = restore_time_shift(np.array([2.0]), np.array([0.2]),
                                              np.array([0.5]), np.array([3.0]), 0.4)

        assert amplitude[0] == pytest.approx(2.0 * np.exp(0.2))
        assert phase[0] == pytest.approx(0.2 - 1.2)

    def test_restore_zero_shift(self):
        """Test zero shift leaves values unchanged"""
        amplitude, phase = restore_time_shift(np.array([2.0]), np.array([0.2]),
                                              np.array([0.5]), np.array([3.0]), 0.0)
        assert amplitude[0] == 2.0
        assert phase[0] == 0.2

    def test_free_response_residues(self):
        """Test R = A exp(j phi) / 2"""
        real, imag = free_response_residues(np.array([2.0]), np.array([np.pi / 2]))
        assert real[0] == pytest.approx(0.0, abs=1e-15)
        assert imag[0] == pytest.approx(1.0)


class TestPerSignalPostProcessor:
    """Test PerSignalPostProcessor.process"""

    @pytest.fixture
    def reorderer(self):
        return IdentityReorderer()

    @pytest.fixture
    def processor(self, reorderer):
        return PerSignalPostProcessor(reorderer, PulseTrainResidueSolver(), PronyLimits())

    def test_free_response(self, processor, reorderer):
        """Test residues use window amplitudes, output uses restored ones"""
        inputs, prepared = setup(shift=20)
        result = extraction([1.0, 0.5], [0.3, -0.2])

        table = processor.process(0, result, prepared, inputs)

        assert isinstance(table, SignalModeTable)
        assert table.columns().shape == (2, 8)
        assert np.allclose(table.res_real, 0.5 * np.array([1.0, 0.5]) * np.cos([0.3, -0.2]))
        assert np.allclose(table.amplitude, np.array([1.0, 0.5]) * np.exp(0.2 * np.array([0.5, 1.0])))
        assert np.allclose(table.phase, wrap_phase(np.array([0.3, -0.2]) - 0.2 * np.array([10.0, 20.0])))
        assert table.dc_term == 0.0

        call = reorderer.calls[0]
        assert call['fit_length'] == 80
        assert call['time'][0] == pytest.approx(0.2)
        assert call['bound'] == pytest.approx(np.log(1e-8) / (T * 79))

    def test_zero_shift(self, processor):
        """Test zero shift keeps amplitude and phase"""
        inputs, prepared = setup(shift=0)
        table = processor.process(0, extraction([1.0, 0.5], [0.3, -0.2]), prepared, inputs)

        assert np.allclose(table.amplitude, [1.0, 0.5])
        assert np.allclose(table.phase, [0.3, -0.2])

    def test_scaling_undone(self, processor, reorderer):
        """Test amplitudes are multiplied back by the scale factor"""
        inputs, prepared = setup(shift=0, scaling=1)
        processor.process(0, extraction([1.0, 0.5], [0.0, 0.0]), prepared, inputs)

        assert prepared.scale_factors[0] == pytest.approx(3.0)
        assert np.allclose(reorderer.calls[0]['amplitude'], [3.0, 1.5])

    def test_pulse_train_uses_solver(self, processor):
        """Test pulses route residues through the transfer-function solver"""
        inputs, prepared = setup(shift=60, pulses=[[0.5, 1.0]])
        result = extraction([1.0, 0.5], [0.3, -0.2])

        table = processor.process(0, result, prepared, inputs)

        expected_real, expected_imag, _ = PulseTrainResidueSolver().solve(
            1, [0.5], [1.0], T, 2, result.damping, result.frequency,
            result.amplitude[:, 0], result.phase[:, 0], 60)
        assert np.allclose(table.res_real, expected_real)
        assert np.allclose(table.res_imag, expected_imag)

    def test_reorder_failure(self):
        """Test a reorderer failure code is returned"""
        processor = PerSignalPostProcessor(IdentityReorderer(code=12), PulseTrainResidueSolver())
        inputs, prepared = setup(shift=0)

        assert processor.process(0, extraction([1.0, 0.5], [0.0, 0.0]), prepared, inputs) == 12

    def test_common_order(self, processor):
        """Test the shared order ranks the mode with the larger energy share first"""
        inputs, prepared = setup(shift=0)

        order = processor.common_order(extraction([0.1, 2.0], [0.0, 0.0]), inputs)

        assert list(order) == [1, 0]

    def test_mode_order_passed_through(self, processor, reorderer):
        """Test the shared order reaches the reorderer unchanged"""
        inputs, prepared = setup(shift=0)
        processor.process(0, extraction([1.0, 0.5], [0.0, 0.0]), prepared, inputs, mode_order=[1, 0])

        assert reorderer.calls[0]['mode_order'] == [1, 0]

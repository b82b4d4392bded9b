"""
Unit tests for the Prony configuration records and ConfigManager
"""

import json

import numpy as np
import pytest
from config_manager import ConfigManager
from prony_config import CONTROL_FIELDS, ControlReport, ControlVector, PronyLimits, DEFAULT_LIMITS
from prony_errors import PronyArgumentError


class TestPronyLimits:
    """Test PronyLimits"""

    def test_defaults(self):
        """Test the default buffer limits"""
        assert DEFAULT_LIMITS.max_samples == 8192
        assert DEFAULT_LIMITS.max_signals == 20
        assert DEFAULT_LIMITS.max_modes == 128
        assert DEFAULT_LIMITS.max_pulses == 10
        assert DEFAULT_LIMITS.warning_flags == 6

    def test_from_dict_ignores_unknown(self):
        """Test unknown keys are dropped and values coerced"""
        limits = PronyLimits.from_dict({'max_modes': 16.0, 'colour': 'blue'})

        assert limits.max_modes == 16
        assert isinstance(limits.max_modes, int)
        assert limits.max_signals == 20

    def test_round_trip(self):
        """Test to_dict/from_dict"""
        limits = PronyLimits(max_samples=512)
        assert PronyLimits.from_dict(limits.to_dict()) == limits


class TestControlVector:
    """Test ControlVector"""

    def test_from_array(self):
        """Test named fields from a 12-element vector"""
        control = ControlVector.from_array([3, 1, 8, 6, 0, 1, 0, 1, 2, 0.01, 50.0, 1.0])

        assert control.modes == 3
        assert control.scaling_enabled
        assert control.lp_order == 8
        assert control.pinv_rank == 6
        assert control.lp_direction == 1
        assert control.ordering == 2
        assert control.trim_residue == pytest.approx(0.01)
        assert not control.auto_modes

    def test_column_vector(self):
        """Test a 12x1 column vector is accepted"""
        control = ControlVector.from_array(np.zeros((12, 1)))
        assert control.modes == 0

    @pytest.mark.parametrize("values", [np.zeros(11), np.zeros(13), np.zeros((3, 4))])
    def test_wrong_size(self, values):
        """Test wrong element counts raise key 10"""
        with pytest.raises(PronyArgumentError) as info:
            ControlVector.from_array(values)
        assert info.value.key == 10

    def test_as_array(self):
        """Test as_array preserves the field order"""
        values = np.arange(12, dtype=float)
        control = ControlVector.from_array(values)

        assert len(CONTROL_FIELDS) == 12
        assert np.allclose(control.as_array(), values)

    def test_auto_modes(self):
        """Test negative mode count means automatic"""
        assert ControlVector().auto_modes
        assert ControlVector.from_dict({'modes': 4}).modes == 4


class TestControlReport:
    """Test ControlReport"""

    def test_echo(self):
        """Test echo passes caller fields through"""
        control = ControlVector.from_array([2, 0, 5, 4, 7, 0, 1, 0, 1, 0, 0, 0])
        report = ControlReport.echo(control, 3)

        assert report.total_modes == 3
        assert report.lp_order == 5
        assert report.achieved_modes == 7
        assert report.as_array().shape == (12,)


class TestConfigManager:
    """Test ConfigManager persistence"""

    @pytest.fixture
    def manager(self, tmp_path):
        """ConfigManager writing into a temporary directory"""
        return ConfigManager(tmp_path / "pronyConfig.json")

    def test_missing_file(self, manager):
        """Test a missing file loads as defaults"""
        assert manager.load_config() == {}
        assert manager.load_limits() == PronyLimits()
        assert manager.load_control() == ControlVector()

    def test_save_and_load(self, manager):
        """Test saved defaults come back"""
        limits = PronyLimits(max_modes=32)
        control = ControlVector(modes=4, scaling=1.0)

        assert manager.save_defaults(limits, control, updated_by="test")
        assert manager.load_limits() == limits
        assert manager.load_control() == control
        assert manager.load_config()['last_updated_by'] == "test"

    def test_numpy_values(self, manager):
        """Test numpy scalars and arrays are written as JSON"""
        assert manager.update_section('limits', {'max_modes': np.int64(8), 'extra': np.arange(3)})

        with open(manager.get_config_path()) as f:
            data = json.load(f)
        assert data['limits']['max_modes'] == 8
        assert data['limits']['extra'] == [0, 1, 2]

    def test_corrupt_file(self, manager):
        """Test an unreadable file falls back to an empty config"""
        manager.config_path.write_text("{not json")
        assert manager.load_config() == {}

    def test_annotations_deferred(self):
        """Test builtin generic annotations stay strings on older interpreters"""
        annotation = ConfigManager.save_config_with_error.__annotations__['return']
        assert annotation == 'tuple[bool, str]'

    def test_save_config_with_error(self, manager):
        """Test a successful save reports no error"""
        success, error = manager.save_config_with_error({'limits': {}})

        assert success
        assert error == ""

#!/usr/bin/env python3
"""
Configuration Manager for Prony identification
Persists default limits and control settings as JSON
"""
from __future__ import annotations

import json
import logging
import os
import tempfile
import time
from pathlib import Path
from typing import Dict, Any, Optional, Union

import numpy as np

from prony_config import ControlVector, PronyLimits

logger = logging.getLogger(__name__)


class ConfigManager:
    """JSON-backed store for `limits` and `control` defaults."""

    CONFIG_FILE = "pronyConfig.json"

    def __init__(self, config_path: Optional[Union[str, Path]] = None):
        self.config_path = Path(config_path) if config_path is not None else Path(self.CONFIG_FILE)

    def get_config_path(self) -> Path:
        """Get the absolute path to the configuration file."""
        return self.config_path.absolute()

    def load_config(self) -> Dict[str, Any]:
        """Load configuration from file.

        Returns:
            Dictionary with configuration values, or empty dict if file doesn't exist
        """
        try:
            if self.config_path.exists():
                with open(self.config_path, 'r') as f:
                    return json.load(f)
        except (OSError, ValueError) as e:
            logger.warning("Failed to load config from %s: %s", self.config_path, e)
        return {}

    def load_limits(self) -> PronyLimits:
        """Limits from the `limits` section merged over the defaults."""
        return PronyLimits.from_dict(self.load_config().get('limits', {}))

    def load_control(self) -> ControlVector:
        """Control defaults from the `control` section."""
        return ControlVector.from_dict(self.load_config().get('control', {}))

    def save_config_with_error(self, config: Dict[str, Any], updated_by: str = "ConfigManager") -> tuple[bool, str]:
        """Save configuration to file atomically.

        Args:
            config: Configuration dictionary to save
            updated_by: Name of the component saving the config

        Returns:
            Tuple of (success: bool, error_message: str)
        """
        config = dict(config)
        config['last_updated'] = time.time()
        config['last_updated_by'] = updated_by
        config = self._convert_numpy_types(config)

        temp_path = None
        try:
            self.config_path.parent.mkdir(parents=True, exist_ok=True)
            temp_fd, temp_path = tempfile.mkstemp(dir=self.config_path.parent, suffix='.tmp', text=True)
            with os.fdopen(temp_fd, 'w') as f:
                json.dump(config, f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(temp_path, self.config_path)
            return True, ""
        except (OSError, TypeError, ValueError) as e:
            if temp_path is not None and os.path.exists(temp_path):
                os.unlink(temp_path)
            error_msg = f"Failed to save config to {self.config_path}: {e}"
            logger.error(error_msg)
            return False, error_msg

    def _convert_numpy_types(self, obj: Any) -> Any:
        """Recursively convert numpy types to Python native types for JSON serialization."""
        if isinstance(obj, dict):
            return {key: self._convert_numpy_types(value) for key, value in obj.items()}
        elif isinstance(obj, (list, tuple)):
            return [self._convert_numpy_types(item) for item in obj]
        elif isinstance(obj, np.integer):
            return int(obj)
        elif isinstance(obj, np.floating):
            return float(obj)
        elif isinstance(obj, np.ndarray):
            return obj.tolist()
        else:
            return obj

    def update_section(self, section_name: str, section_data: Dict[str, Any], updated_by: str = "ConfigManager") -> bool:
        """Update a specific section of the configuration.

        Args:
            section_name: Name of the section to update ('limits' or 'control')
            section_data: Data to store in that section
            updated_by: Name of the component updating the config

        Returns:
            True if successful, False otherwise
        """
        config = self.load_config()
        config[section_name] = section_data
        success, _ = self.save_config_with_error(config, updated_by)
        return success

    def save_defaults(self, limits: PronyLimits, control: ControlVector,
                      updated_by: str = "ConfigManager") -> bool:
        """Write both sections in one go."""
        config = self.load_config()
        config['limits'] = limits.to_dict()
        config['control'] = control.to_dict()
        success, _ = self.save_config_with_error(config, updated_by)
        return success

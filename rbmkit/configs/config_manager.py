# Copyright 2025 rbmkit Contributors
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
"""
Configuration management for rbmkit experiments.

This module provides utilities for loading, validating, merging and saving
experiment configuration files.

Features:
- YAML and JSON configuration files
- Dot-notation parameter overrides
- ${VAR:default} environment variable substitution
- Schema validation
- Building models and training arguments from a configuration

Usage:
    from rbmkit.configs import ConfigManager

    # Load configuration
    config = ConfigManager.load('experiments/mnist.yaml')

    # Load with overrides
    config = ConfigManager.load('experiments/mnist.yaml',
                               overrides={'training.learning_rate': 0.05})

    # Build model and train
    model = ConfigManager.build_model(config)
    history = fit(model, data, **ConfigManager.training_kwargs(config))
"""

import yaml
import json
import logging
from pathlib import Path
from typing import Dict, Any, Optional, Union
import copy
import os
from datetime import datetime
from jsonschema import validate, ValidationError

from ..models.rbm import RestrictedBoltzmannMachine, make_rbm

logger = logging.getLogger(__name__)


class ConfigManager:
    """Configuration management for RBM experiments."""

    # Configuration schema for validation
    CONFIG_SCHEMA = {
        "type": "object",
        "properties": {
            "name": {"type": "string"},
            "description": {"type": "string"},
            "model": {
                "type": "object",
                "properties": {
                    "visible_type": {"type": "string", "enum": ["bernoulli", "gaussian"]},
                    "hidden_type": {"type": "string", "enum": ["bernoulli", "gaussian"]},
                    "n_visible": {"type": "integer", "minimum": 1},
                    "n_hidden": {"type": "integer", "minimum": 1},
                    "init_scale": {"type": "number", "minimum": 0},
                    "momentum": {"type": "number", "minimum": 0, "exclusiveMaximum": 1},
                    "random_seed": {"type": ["integer", "null"]}
                },
                "required": ["n_hidden"]
            },
            "training": {
                "type": "object",
                "properties": {
                    "persistent": {"type": "boolean"},
                    "learning_rate": {"type": "number", "minimum": 0},
                    "epochs": {"type": "integer", "minimum": 0},
                    "batch_size": {"type": "integer", "minimum": 1},
                    "gibbs_steps": {"type": "integer", "minimum": 1},
                    "sample_size": {"type": "integer", "minimum": 1}
                }
            },
            "logging": {"type": "object"}
        },
        "required": ["name", "model", "training"]
    }

    MODEL_KEYS = ("visible_type", "hidden_type", "init_scale", "momentum", "random_seed")
    TRAINING_KEYS = ("persistent", "learning_rate", "epochs", "batch_size", "gibbs_steps", "sample_size")

    @classmethod
    def load(
        cls,
        config_path: Union[str, Path],
        overrides: Optional[Dict[str, Any]] = None,
        validate_config: bool = True
    ) -> Dict[str, Any]:
        """
        Load configuration with optional overrides.

        Args:
            config_path: Path to configuration file
            overrides: Dictionary of dot-notation parameter overrides
            validate_config: Whether to validate the configuration

        Returns:
            Loaded and processed configuration dictionary
        """
        config_path = Path(config_path)

        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path, 'r') as f:
            if config_path.suffix.lower() in ['.yaml', '.yml']:
                config = yaml.safe_load(f)
            elif config_path.suffix.lower() == '.json':
                config = json.load(f)
            else:
                raise ValueError(f"Unsupported config format: {config_path.suffix}")

        logger.info(f"Loaded configuration from {config_path}")

        config = cls.merge(cls.default_config(), config or {})

        if overrides:
            config = cls._apply_overrides(config, overrides)
            logger.info(f"Applied {len(overrides)} parameter overrides")

        config = cls._substitute_env_vars(config)

        if validate_config:
            cls.validate(config)

        config['_metadata'] = {
            'loaded_from': str(config_path),
            'loaded_at': datetime.now().isoformat(),
            'overrides_applied': overrides is not None
        }

        return config

    @classmethod
    def validate(cls, config: Dict[str, Any]) -> None:
        """
        Validate configuration against schema.

        Raises:
            ValidationError: If configuration is invalid
        """
        try:
            validate(instance=config, schema=cls.CONFIG_SCHEMA)
            logger.debug("Configuration validation passed")
        except ValidationError as e:
            logger.error(f"Configuration validation failed: {e.message}")
            raise

    @classmethod
    def save(
        cls,
        config: Dict[str, Any],
        output_path: Union[str, Path],
        format: str = 'yaml',
        include_metadata: bool = True
    ) -> None:
        """
        Save configuration to file.

        Args:
            config: Configuration dictionary to save
            output_path: Output file path
            format: Output format ('yaml' or 'json')
            include_metadata: Whether to include metadata in output
        """
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        save_config = copy.deepcopy(config)
        if not include_metadata and '_metadata' in save_config:
            del save_config['_metadata']

        with open(output_path, 'w') as f:
            if format.lower() == 'yaml':
                yaml.safe_dump(save_config, f, default_flow_style=False, indent=2)
            elif format.lower() == 'json':
                json.dump(save_config, f, indent=2)
            else:
                raise ValueError(f"Unsupported format: {format}")

        logger.info(f"Saved configuration to {output_path}")

    @classmethod
    def merge(cls, *configs: Dict[str, Any]) -> Dict[str, Any]:
        """Deep-merge configurations; later ones win."""
        if not configs:
            return {}

        result = copy.deepcopy(configs[0])
        for config in configs[1:]:
            result = cls._deep_merge(result, config)

        return result

    @classmethod
    def build_model(
        cls,
        config: Dict[str, Any],
        n_visible: Optional[int] = None
    ) -> RestrictedBoltzmannMachine:
        """
        Construct the RBM described by the ``model`` section.

        Args:
            config: Configuration dictionary
            n_visible: Visible layer size, used when the config leaves it out

        Returns:
            A freshly initialized RBM
        """
        model_config = config['model']
        n_visible = model_config.get('n_visible') or n_visible
        if n_visible is None:
            raise ValueError("n_visible must be given in the config or by the caller")

        kwargs = {k: model_config[k] for k in cls.MODEL_KEYS if k in model_config}
        visible_type = kwargs.pop('visible_type', 'bernoulli')
        hidden_type = kwargs.pop('hidden_type', 'bernoulli')

        return make_rbm(visible_type, hidden_type, int(n_visible), int(model_config['n_hidden']), **kwargs)

    @classmethod
    def training_kwargs(cls, config: Dict[str, Any]) -> Dict[str, Any]:
        """Keyword arguments for ``fit`` from the ``training`` section."""
        training = config.get('training', {})
        return {k: training[k] for k in cls.TRAINING_KEYS if k in training}

    @staticmethod
    def default_config() -> Dict[str, Any]:
        """Default experiment configuration."""
        return {
            "name": "default",
            "description": "Default RBM configuration",
            "model": {
                "visible_type": "bernoulli",
                "hidden_type": "bernoulli",
                "n_hidden": 64,
                "init_scale": 0.001,
                "momentum": 0.9,
                "random_seed": None
            },
            "training": {
                "persistent": True,
                "learning_rate": 0.1,
                "epochs": 10,
                "batch_size": 100,
                "gibbs_steps": 1,
                "sample_size": 10000
            },
            "logging": {
                "level": "INFO"
            }
        }

    @staticmethod
    def _apply_overrides(config: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
        """Apply parameter overrides using dot notation."""
        result = copy.deepcopy(config)

        for key, value in overrides.items():
            ConfigManager._set_nested_value(result, key, value)

        return result

    @staticmethod
    def _substitute_env_vars(config: Dict[str, Any]) -> Dict[str, Any]:
        """Substitute environment variables in configuration values."""
        def substitute_recursive(obj):
            if isinstance(obj, dict):
                return {k: substitute_recursive(v) for k, v in obj.items()}
            elif isinstance(obj, list):
                return [substitute_recursive(item) for item in obj]
            elif isinstance(obj, str) and obj.startswith('${') and obj.endswith('}'):
                env_var = obj[2:-1]
                default_value = None
                if ':' in env_var:
                    env_var, default_value = env_var.split(':', 1)
                value = os.getenv(env_var, default_value)
                # Values such as "0.05" or "true" come back typed
                return yaml.safe_load(value) if isinstance(value, str) else value
            else:
                return obj

        return substitute_recursive(config)

    @staticmethod
    def _deep_merge(dict1: Dict[str, Any], dict2: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge two dictionaries."""
        result = copy.deepcopy(dict1)

        for key, value in dict2.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = ConfigManager._deep_merge(result[key], value)
            else:
                result[key] = copy.deepcopy(value)

        return result

    @staticmethod
    def _set_nested_value(config: Dict[str, Any], key_path: str, value: Any) -> None:
        """Set nested value using dot notation."""
        keys = key_path.split('.')
        current = config

        for key in keys[:-1]:
            if key not in current:
                current[key] = {}
            current = current[key]

        current[keys[-1]] = value


def load_config(config_path: Union[str, Path], **kwargs) -> Dict[str, Any]:
    """Convenience function to load configuration."""
    return ConfigManager.load(config_path, **kwargs)


def validate_config(config: Dict[str, Any]) -> None:
    """Convenience function to validate configuration."""
    ConfigManager.validate(config)


def save_config(config: Dict[str, Any], output_path: Union[str, Path], **kwargs) -> None:
    """Convenience function to save configuration."""
    ConfigManager.save(config, output_path, **kwargs)

"""
Configuration settings for the Luz/Sombra classification engine.
"""

import copy
import json
import os
from typing import Dict, Any, Optional, Tuple
import logging

# Policies that tile the image into regions before classifying
REGION_POLICIES = ('heuristic', 'trained')


def _merge(defaults: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively fill missing keys of overrides from defaults."""
    merged = copy.deepcopy(defaults)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class Settings:
    default_config = {
        'classifier': {
            'policy': 'threshold',
            'threshold': 130,
            'region_size': {
                'heuristic': 10,
                'trained': 10
            },
            'feature_set': 'standard',
            'seed': 42,
            'model_path': None,
            'max_workers': 1
        },
        'rule_based': {
            'intensity_threshold': 120.0,
            'green_threshold': 0.52
        },
        'colors': {
            'binary': {
                'LIGHT': [0, 255, 0, 255],
                'SHADOW': [0, 0, 255, 255]
            },
            'four_class': {
                'SOIL_SHADOW': [128, 128, 128, 255],
                'SOIL_LIGHT': [255, 255, 0, 255],
                'MESH_SHADOW': [0, 100, 0, 255],
                'MESH_LIGHT': [144, 238, 144, 255]
            }
        },
        'output': {
            'csv_filename': 'luz_sombra_results.csv',
            'image_export_format': 'png',
            'raster_backend': 'pillow',
            'save_visualizations': False
        }
    }

    def __init__(self, config_path: Optional[str] = None):
        """Load settings from config_path, or keep the defaults in memory when no path is given."""
        self.logger = logging.getLogger(__name__)
        self.config_path = config_path
        self.config = self.load_config()

    def load_config(self) -> Dict[str, Any]:
        """Load configuration from file or create default if not exists."""
        if self.config_path is None:
            return copy.deepcopy(self.default_config)
        try:
            if os.path.exists(self.config_path):
                with open(self.config_path, 'r') as f:
                    return _merge(self.default_config, json.load(f))
            else:
                self.save_config(copy.deepcopy(self.default_config))
                return copy.deepcopy(self.default_config)
        except (OSError, ValueError) as e:
            self.logger.error(f"Error loading config {self.config_path}: {e}")
            return copy.deepcopy(self.default_config)

    def save_config(self, config: Dict[str, Any]) -> None:
        """Save configuration to file."""
        self.config = config
        if self.config_path is None:
            return
        try:
            directory = os.path.dirname(self.config_path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            with open(self.config_path, 'w') as f:
                json.dump(config, f, indent=4)
        except OSError as e:
            self.logger.error(f"Error saving config {self.config_path}: {e}")

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value by key."""
        keys = key.split('.')
        value = self.config
        for k in keys:
            if isinstance(value, dict):
                value = value.get(k, default)
            else:
                return default
        return value

    def set(self, key: str, value: Any) -> None:
        """Set configuration value by key."""
        keys = key.split('.')
        config = self.config
        for k in keys[:-1]:
            config = config.setdefault(k, {})
        config[keys[-1]] = value
        self.save_config(self.config)

    def reset_to_default(self) -> None:
        """Reset configuration to default values."""
        self.save_config(copy.deepcopy(self.default_config))

    def get_policy(self) -> str:
        return self.config['classifier']['policy']

    def get_threshold(self) -> float:
        """Get brightness threshold for the fixed-threshold policy."""
        return self.config['classifier']['threshold']

    def get_region_size(self, policy: str) -> Optional[Tuple[int, int]]:
        """Get (width, height) of the tiles used by a region-level policy, None for pixel-level ones."""
        if policy not in REGION_POLICIES:
            return None
        size = self.config['classifier']['region_size'].get(policy, 10)
        if isinstance(size, (list, tuple)):
            return int(size[0]), int(size[1])
        return int(size), int(size)

    def get_rule_thresholds(self) -> Tuple[float, float]:
        """Get (intensity, green ratio) thresholds for the four-class rules."""
        rules = self.config['rule_based']
        return float(rules['intensity_threshold']), float(rules['green_threshold'])

    def get_color_table(self, taxonomy: str) -> Dict[str, Tuple[int, int, int, int]]:
        """Get label name -> RGBA colour table for 'binary' or 'four_class'."""
        return {name: tuple(color) for name, color in self.config['colors'][taxonomy].items()}

    def get_raster_backend(self) -> str:
        return self.config['output']['raster_backend']

    def update_threshold(self, value: float):
        """Update brightness threshold."""
        self.config['classifier']['threshold'] = value
        self.save_config(self.config)

    def update_policy(self, policy: str):
        """Update default decision policy."""
        self.config['classifier']['policy'] = policy
        self.save_config(self.config)

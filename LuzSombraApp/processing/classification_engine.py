"""
Light/shadow classification engine.

The engine owns one decision policy, built once by initialize() and
read-only afterwards, so a single engine can serve concurrent classify()
calls. Each call tiles the image (region-level policies) or labels pixels
directly (pixel-level policies), aggregates light/shadow percentages and
renders a false-colour overlay.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from functools import partial
from typing import Any, Callable, Dict, List, Optional, Tuple

import numpy as np

from LuzSombraApp.config.settings import Settings
from LuzSombraApp.processing.decision_policies import (
    PixelPolicy, RegionClassifier, RegionPolicy, create_policy
)
from LuzSombraApp.processing.errors import ConfigurationError
from LuzSombraApp.processing.image_buffer import ImageBuffer
from LuzSombraApp.processing.labels import RGBA, Label, color_table_for, legend
from LuzSombraApp.processing.overlay import render_overlay

# (first row, label slab, per-label pixel counts)
BandResult = Tuple[int, np.ndarray, np.ndarray]


@dataclass
class ClassificationResult:
    """Output of one classify() call."""
    width: int
    height: int
    policy: str
    taxonomy: str
    label_map: np.ndarray
    overlay_image: bytes
    label_counts: Dict[str, int]
    light_count: int
    shadow_count: int
    light_percentage: float
    shadow_percentage: float
    color_table: Dict[str, RGBA] = field(default_factory=dict)

    @property
    def total_pixels(self) -> int:
        return self.width * self.height

    def label_at(self, x: int, y: int) -> Label:
        return Label(int(self.label_map[y, x]))

    def label_colors(self) -> Dict[Label, RGBA]:
        """Colour table used for this result's overlay, keyed by label."""
        return {Label[name]: color for name, color in self.color_table.items()}

    def overlay_buffer(self) -> ImageBuffer:
        return ImageBuffer(width=self.width, height=self.height, pixels=self.overlay_image)

    def summary(self) -> Dict[str, Any]:
        """Numeric summary without the per-pixel arrays."""
        return {
            'policy': self.policy,
            'taxonomy': self.taxonomy,
            'width': self.width,
            'height': self.height,
            'light_pixels': self.light_count,
            'shadow_pixels': self.shadow_count,
            'light_percentage': self.light_percentage,
            'shadow_percentage': self.shadow_percentage,
            'label_counts': dict(self.label_counts),
        }


class ClassificationEngine:
    """Configurable light/shadow classifier for RGBA image buffers."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or Settings()
        self.logger = logging.getLogger(__name__)
        self.policy: Optional[RegionClassifier] = None
        self.color_table: Dict[Label, RGBA] = {}
        self.max_workers = 1
        self._config: Optional[Dict[str, Any]] = None

    def resolve_config(self, config: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Fill a partial configuration from the settings."""
        config = dict(config or {})
        classifier = self.settings.get('classifier', {})
        policy = config.get('policy') or classifier.get('policy', 'threshold')
        intensity_threshold, green_threshold = self.settings.get_rule_thresholds()

        resolved = {
            'policy': policy,
            'threshold': config.get('threshold', classifier.get('threshold', 130)),
            'region_size': (config['region_size'] if config.get('region_size') is not None
                            else self.settings.get_region_size(policy)),
            'feature_set': config.get('feature_set', classifier.get('feature_set', 'standard')),
            'seed': config.get('seed', classifier.get('seed', 42)),
            'model_path': config.get('model_path', classifier.get('model_path')),
            'max_workers': config.get('max_workers', classifier.get('max_workers', 1)),
            'intensity_threshold': config.get('intensity_threshold', intensity_threshold),
            'green_threshold': config.get('green_threshold', green_threshold),
        }
        if isinstance(resolved['region_size'], (int, np.integer)):
            resolved['region_size'] = (int(resolved['region_size']), int(resolved['region_size']))
        elif resolved['region_size'] is not None:
            resolved['region_size'] = tuple(int(v) for v in resolved['region_size'])
        if int(resolved['max_workers']) < 1:
            raise ConfigurationError(f"max_workers must be at least 1, got {resolved['max_workers']}")
        return resolved

    def initialize(self, config: Optional[Dict[str, Any]] = None) -> None:
        """Build the decision policy.

        Calling again with an identical configuration is a no-op; a different
        configuration replaces the policy.
        """
        resolved = self.resolve_config(config)
        if self.is_ready() and resolved == self._config:
            self.logger.debug(f"Engine already initialized with policy '{resolved['policy']}'")
            return

        policy = create_policy(resolved)
        policy.initialize()

        try:
            overrides = self.settings.get_color_table(policy.taxonomy.name)
        except KeyError:
            overrides = None
        self.color_table = color_table_for(policy.taxonomy, overrides)
        self.max_workers = int(resolved['max_workers'])
        self.policy = policy
        self._config = resolved
        self.logger.info(f"Classification engine initialized: {policy.describe()}")

    def is_ready(self) -> bool:
        return self.policy is not None and self.policy.ready

    def status(self) -> Dict[str, Any]:
        return {
            'initialized': self.is_ready(),
            'policy': self.policy.describe() if self.policy else None,
            'max_workers': self.max_workers,
        }

    def legend(self) -> Dict[str, RGBA]:
        return legend(self.color_table)

    def classify(self, image: ImageBuffer) -> ClassificationResult:
        """Classify every pixel of an image buffer."""
        if not self.is_ready():
            raise ConfigurationError("Classification engine not initialized; call initialize() first")
        image.validate()
        policy, color_table = self.policy, self.color_table
        rgb = image.rgb()

        if isinstance(policy, RegionPolicy):
            bands = self._region_bands(image.height, policy.region_size[1])
            task = partial(self._classify_region_band, policy, rgb)
        else:
            bands = self._pixel_bands(image.height)
            task = partial(self._classify_pixel_band, policy, rgb)

        label_map, counts = self._run_bands(task, bands, image.width, image.height)
        result = self._aggregate(image, policy, color_table, label_map, counts)
        self.logger.debug(
            f"Classified {image.width}x{image.height} image with '{policy.name}': "
            f"{result.light_percentage:.2f}% light, {result.shadow_percentage:.2f}% shadow")
        return result

    def _pixel_bands(self, height: int) -> List[Tuple[int, int]]:
        """Split rows into roughly equal bands, one per worker."""
        n_bands = max(1, min(self.max_workers, height))
        edges = np.linspace(0, height, n_bands + 1).astype(int)
        return [(int(a), int(b)) for a, b in zip(edges[:-1], edges[1:]) if b > a]

    def _region_bands(self, height: int, region_height: int) -> List[Tuple[int, int]]:
        """Split rows into bands aligned with tile rows."""
        tile_rows = [(y, min(y + region_height, height)) for y in range(0, height, region_height)]
        n_bands = max(1, min(self.max_workers, len(tile_rows)))
        groups = np.array_split(np.arange(len(tile_rows)), n_bands)
        return [(tile_rows[g[0]][0], tile_rows[g[-1]][1]) for g in groups if len(g)]

    @staticmethod
    def _classify_pixel_band(policy: PixelPolicy, rgb: np.ndarray, band: Tuple[int, int]) -> BandResult:
        y0, y1 = band
        labels = policy.classify_pixels(rgb[y0:y1])
        return y0, labels, np.bincount(labels.ravel(), minlength=len(Label))

    @staticmethod
    def _classify_region_band(policy: RegionPolicy, rgb: np.ndarray, band: Tuple[int, int]) -> BandResult:
        y0, y1 = band
        width = rgb.shape[1]
        region_width, region_height = policy.region_size
        extractor = policy.feature_extractor

        tile_ys = list(range(y0, y1, region_height))
        tile_xs = list(range(0, width, region_width))
        # tiles at the right and bottom edges are clipped to the canvas
        features = np.array([
            extractor.extract_patch_features(
                rgb[ty:min(ty + region_height, y1), tx:min(tx + region_width, width)])
            for ty in tile_ys
            for tx in tile_xs
        ])
        grid = policy.classify_features(features).reshape(len(tile_ys), len(tile_xs))

        labels = np.repeat(np.repeat(grid, region_height, axis=0), region_width, axis=1)
        labels = np.ascontiguousarray(labels[:y1 - y0, :width], dtype=np.uint8)
        return y0, labels, np.bincount(labels.ravel(), minlength=len(Label))

    def _run_bands(self, task: Callable[[Tuple[int, int]], BandResult],
                   bands: List[Tuple[int, int]], width: int, height: int) -> Tuple[np.ndarray, np.ndarray]:
        if self.max_workers > 1 and len(bands) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                results = list(executor.map(task, bands))
        else:
            results = [task(band) for band in bands]

        label_map = np.empty((height, width), dtype=np.uint8)
        counts = np.zeros(len(Label), dtype=np.int64)
        for y0, labels, band_counts in results:
            label_map[y0:y0 + labels.shape[0]] = labels
            counts += band_counts
        return label_map, counts

    def _aggregate(self, image: ImageBuffer, policy: RegionClassifier, color_table: Dict[Label, RGBA],
                   label_map: np.ndarray, counts: np.ndarray) -> ClassificationResult:
        taxonomy = policy.taxonomy
        total = image.width * image.height
        light_count = int(sum(counts[int(label)] for label in taxonomy.light_labels))
        shadow_count = int(sum(counts[int(label)] for label in taxonomy.shadow_labels))

        return ClassificationResult(
            width=image.width,
            height=image.height,
            policy=policy.name,
            taxonomy=taxonomy.name,
            label_map=label_map,
            overlay_image=render_overlay(label_map, color_table),
            label_counts={label.name: int(counts[int(label)]) for label in taxonomy.labels},
            light_count=light_count,
            shadow_count=shadow_count,
            light_percentage=light_count / total * 100,
            shadow_percentage=shadow_count / total * 100,
            color_table=legend(color_table),
        )


def create_engine(settings: Optional[Settings] = None,
                  config: Optional[Dict[str, Any]] = None) -> ClassificationEngine:
    """Build and initialize an engine; callers own the returned instance."""
    engine = ClassificationEngine(settings)
    engine.initialize(config)
    return engine

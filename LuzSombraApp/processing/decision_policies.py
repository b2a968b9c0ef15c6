"""
Decision policies mapping pixels or region features to labels.

Pixel-level policies classify every pixel directly from its RGB values.
Region-level policies classify feature vectors of image tiles; the engine
broadcasts each tile's label to all of its pixels.
"""

import logging
import os
from abc import ABC, abstractmethod
from typing import Dict, Optional, Tuple

import joblib
import numpy as np
from sklearn.neural_network import MLPClassifier

from LuzSombraApp.processing.errors import ConfigurationError
from LuzSombraApp.processing.feature_extraction import FeatureExtractor
from LuzSombraApp.processing.image_buffer import Region
from LuzSombraApp.processing.labels import BINARY, FOUR_CLASS, Label, Taxonomy

DEFAULT_THRESHOLD = 130
INTENSITY_THRESHOLD = 120.0
GREEN_THRESHOLD = 0.52
HEURISTIC_LIGHT_SCORE = 50


class RegionClassifier(ABC):
    """Common interface of all decision policies."""

    name = ''
    taxonomy: Taxonomy = BINARY
    pixel_level = True

    def __init__(self):
        self.logger = logging.getLogger(__name__)
        self.ready = False

    def initialize(self) -> None:
        """Prepare the policy; after this call it is read-only."""
        self.ready = True

    def describe(self) -> Dict:
        return {'policy': self.name, 'taxonomy': self.taxonomy.name}


class PixelPolicy(RegionClassifier):
    """Policy evaluated independently for every pixel."""

    @abstractmethod
    def classify_pixels(self, rgb: np.ndarray) -> np.ndarray:
        """Label every pixel of an (..., 3) RGB array; returns uint8 labels of shape (...)."""

    def classify_pixel(self, r: int, g: int, b: int) -> Label:
        return Label(int(self.classify_pixels(np.array([[r, g, b]]))[0]))


class RegionPolicy(RegionClassifier):
    """Policy evaluated on feature vectors of image tiles."""

    pixel_level = False

    def __init__(self, region_size: Tuple[int, int] = (10, 10), feature_set: str = 'standard'):
        super().__init__()
        if isinstance(region_size, (int, np.integer)):
            region_size = (region_size, region_size)
        width, height = region_size
        if width <= 0 or height <= 0:
            raise ConfigurationError(f"Region size must be positive, got {region_size}")
        self.region_size = (int(width), int(height))
        try:
            self.feature_extractor = FeatureExtractor(feature_set)
        except ValueError as e:
            raise ConfigurationError(str(e)) from e

    @abstractmethod
    def classify_features(self, features: np.ndarray) -> np.ndarray:
        """Label an (n, k) matrix of feature vectors; returns uint8 labels of shape (n,)."""

    def classify_region(self, image, region: Region) -> Label:
        features = self.feature_extractor.extract_region_features(image, region)
        return Label(int(self.classify_features(features[np.newaxis, :])[0]))

    def describe(self) -> Dict:
        info = super().describe()
        info['region_size'] = self.region_size
        info['feature_set'] = self.feature_extractor.feature_set
        return info


class ThresholdPolicy(PixelPolicy):
    """LIGHT when the pixel brightness (R+G+B)/3 is strictly above the threshold."""

    name = 'threshold'

    def __init__(self, threshold: float = DEFAULT_THRESHOLD):
        super().__init__()
        self.threshold = threshold

    def classify_pixels(self, rgb: np.ndarray) -> np.ndarray:
        brightness = rgb[..., :3].astype(np.float64).sum(axis=-1) / 3.0
        return np.where(brightness > self.threshold, Label.LIGHT, Label.SHADOW).astype(np.uint8)

    def describe(self) -> Dict:
        info = super().describe()
        info['threshold'] = self.threshold
        return info


class RuleBasedFourClassPolicy(PixelPolicy):
    """Soil/mesh x light/shadow from intensity and a green ratio G/(R+B+1)."""

    name = 'rule-based-4class'
    taxonomy = FOUR_CLASS

    def __init__(self, intensity_threshold: float = INTENSITY_THRESHOLD,
                 green_threshold: float = GREEN_THRESHOLD):
        super().__init__()
        self.intensity_threshold = intensity_threshold
        self.green_threshold = green_threshold

    def classify_pixels(self, rgb: np.ndarray) -> np.ndarray:
        channels = rgb[..., :3].astype(np.float64)
        r, g, b = channels[..., 0], channels[..., 1], channels[..., 2]
        intensity = (r + g + b) / 3.0
        green_ratio = g / (r + b + 1.0)

        lit = intensity >= self.intensity_threshold
        mesh = green_ratio > self.green_threshold
        labels = np.select(
            [~lit & ~mesh, lit & ~mesh, ~lit & mesh],
            [Label.SOIL_SHADOW, Label.SOIL_LIGHT, Label.MESH_SHADOW],
            default=Label.MESH_LIGHT,
        )
        return labels.astype(np.uint8)

    def describe(self) -> Dict:
        info = super().describe()
        info['intensity_threshold'] = self.intensity_threshold
        info['green_threshold'] = self.green_threshold
        return info


class HeuristicPolicy(RegionPolicy):
    """Weighted score out of 100 over brightness, colour balance, contrast and peak channel.

    Brightness  > 180: 40   > 120: 20   > 80: 10
    Balance     > 0.8: 30   > 0.6: 15            (min channel / max channel)
    Contrast    > 0.3: 20   > 0.15: 10
    Max channel > 200: 10   > 150: 5

    A region scoring 50 or more is LIGHT.
    """

    name = 'heuristic'

    def __init__(self, region_size: Tuple[int, int] = (10, 10)):
        super().__init__(region_size, feature_set='standard')

    @staticmethod
    def score(features: np.ndarray) -> np.ndarray:
        """Heuristic score of each row of an (n, 6) standard feature matrix."""
        features = np.atleast_2d(features)
        # back to the byte scale; rounding absorbs the /255 *255 round trip
        channels = np.round(features[:, :3] * 255.0, 9)
        brightness = np.round(features[:, 3] * 255.0, 9)
        contrast = features[:, 4]
        max_channel = channels.max(axis=1)
        min_channel = channels.min(axis=1)
        balance = np.divide(min_channel, max_channel,
                            out=np.zeros_like(max_channel), where=max_channel > 0)

        score = np.select([brightness > 180, brightness > 120, brightness > 80], [40, 20, 10], 0)
        score += np.select([balance > 0.8, balance > 0.6], [30, 15], 0)
        score += np.select([contrast > 0.3, contrast > 0.15], [20, 10], 0)
        score += np.select([max_channel > 200, max_channel > 150], [10, 5], 0)
        return score

    def classify_features(self, features: np.ndarray) -> np.ndarray:
        score = self.score(features)
        return np.where(score >= HEURISTIC_LIGHT_SCORE, Label.LIGHT, Label.SHADOW).astype(np.uint8)


class TrainedPolicy(RegionPolicy):
    """Small feed-forward network over region features.

    Trained once on synthetic light/shadow patches pushed through the same
    feature extractor used at inference, or loaded from a joblib file.
    """

    name = 'trained'
    hidden_layer_sizes = (16, 8)
    patch_size = 10

    def __init__(self, region_size: Tuple[int, int] = (10, 10), feature_set: str = 'standard',
                 seed: int = 42, model_path: Optional[str] = None, samples: int = 200):
        super().__init__(region_size, feature_set)
        self.seed = seed
        self.model_path = model_path
        self.samples = samples
        self.model: Optional[MLPClassifier] = None

    def initialize(self) -> None:
        if self.model_path:
            if not os.path.exists(self.model_path):
                raise ConfigurationError(f"Model file not found: {self.model_path}")
            self.model = self.load_model(self.model_path)
        else:
            self.model = self.train()
        self.ready = True

    def synthetic_training_set(self) -> Tuple[np.ndarray, np.ndarray]:
        """Half bright, low-noise patches (light) and half dark, noisy patches (shadow)."""
        rng = np.random.default_rng(self.seed)
        size = self.patch_size
        features, labels = [], []
        for i in range(self.samples):
            if i < self.samples // 2:
                base = rng.uniform(128, 255, size=3)
                noise = rng.normal(0, 10, size=(size, size, 3))
                label = Label.LIGHT
            else:
                base = rng.uniform(0, 102, size=3)
                noise = rng.normal(0, 25, size=(size, size, 3))
                label = Label.SHADOW
            patch = np.clip(base + noise, 0, 255).astype(np.uint8)
            features.append(self.feature_extractor.extract_patch_features(patch))
            labels.append(int(label))
        return np.array(features), np.array(labels)

    def train(self) -> MLPClassifier:
        features, labels = self.synthetic_training_set()
        model = MLPClassifier(
            hidden_layer_sizes=self.hidden_layer_sizes,
            activation='relu',
            solver='adam',
            max_iter=1000,
            random_state=self.seed,
        )
        model.fit(features, labels)
        self.logger.info(
            f"Trained {self.feature_extractor.feature_set} model on {len(labels)} synthetic regions "
            f"(training accuracy {model.score(features, labels):.3f})")
        return model

    def load_model(self, path: str) -> MLPClassifier:
        model = joblib.load(path)
        expected = self.feature_extractor.length
        if getattr(model, 'n_features_in_', expected) != expected:
            raise ConfigurationError(
                f"Model at {path} expects {model.n_features_in_} features, "
                f"feature set '{self.feature_extractor.feature_set}' has {expected}")
        self.logger.info(f"Loaded model from {path}")
        return model

    def save_model(self, path: str) -> None:
        if self.model is None:
            raise ConfigurationError("No trained model to save")
        joblib.dump(self.model, path)

    def classify_features(self, features: np.ndarray) -> np.ndarray:
        if self.model is None:
            raise ConfigurationError("Trained policy used before initialize()")
        proba = self.model.predict_proba(np.atleast_2d(features))
        classes = list(self.model.classes_)
        light = proba[:, classes.index(Label.LIGHT)]
        shadow = proba[:, classes.index(Label.SHADOW)]
        return np.where(light > shadow, Label.LIGHT, Label.SHADOW).astype(np.uint8)

    def describe(self) -> Dict:
        info = super().describe()
        info['seed'] = self.seed
        info['model_path'] = self.model_path
        return info


POLICIES = {
    ThresholdPolicy.name: ThresholdPolicy,
    HeuristicPolicy.name: HeuristicPolicy,
    RuleBasedFourClassPolicy.name: RuleBasedFourClassPolicy,
    TrainedPolicy.name: TrainedPolicy,
}


def create_policy(config: Dict) -> RegionClassifier:
    """Build an uninitialized policy from a flat configuration dict.

    Keys: policy, threshold, region_size, feature_set, seed, model_path,
    intensity_threshold, green_threshold.
    """
    name = config.get('policy', ThresholdPolicy.name)
    if name == ThresholdPolicy.name:
        return ThresholdPolicy(threshold=config.get('threshold', DEFAULT_THRESHOLD))
    if name == RuleBasedFourClassPolicy.name:
        return RuleBasedFourClassPolicy(
            intensity_threshold=config.get('intensity_threshold', INTENSITY_THRESHOLD),
            green_threshold=config.get('green_threshold', GREEN_THRESHOLD),
        )
    if name == HeuristicPolicy.name:
        return HeuristicPolicy(region_size=config.get('region_size', (10, 10)))
    if name == TrainedPolicy.name:
        return TrainedPolicy(
            region_size=config.get('region_size', (10, 10)),
            feature_set=config.get('feature_set', 'standard'),
            seed=config.get('seed', 42),
            model_path=config.get('model_path'),
        )
    raise ConfigurationError(f"Unknown policy '{name}', expected one of {sorted(POLICIES)}")

"""
Feature extraction for regions of plot photographs.

All colour features are normalised to [0, 1]. Contrast and edge strength are
computed on the 0-255 brightness scale and divided by 255, so every feature
of every set lies on the unit scale.

Feature sets:
    rgb       (3)  R, G, B
    standard  (6)  R, G, B, brightness, contrast, edge strength
    extended (10)  R, G, B, hue, saturation, value, luminance, NDVI-like index,
                   texture, contrast
"""

from typing import Union

import numpy as np
from skimage.color import rgb2hsv

from LuzSombraApp.processing.errors import InvalidInputError
from LuzSombraApp.processing.image_buffer import ImageBuffer, Region

FEATURE_SETS = {
    'rgb': 3,
    'standard': 6,
    'extended': 10,
}

NDVI_EPSILON = 1e-8


def brightness_plane(rgb: np.ndarray) -> np.ndarray:
    """Per-pixel brightness (R+G+B)/3 on the 0-255 scale."""
    return rgb[..., :3].astype(np.float64).sum(axis=-1) / 3.0


def contrast(brightness: np.ndarray) -> float:
    """Standard deviation of per-pixel brightness, normalised by 255."""
    return float(np.std(brightness)) / 255.0


def edge_strength(brightness: np.ndarray) -> float:
    """Mean forward-difference gradient magnitude, normalised by 255.

    Evaluated on the (h-1) x (w-1) grid where both the right and the lower
    neighbour exist; regions one pixel wide or tall have no edges.
    """
    if brightness.shape[0] < 2 or brightness.shape[1] < 2:
        return 0.0
    origin = brightness[:-1, :-1]
    gradient_x = np.abs(brightness[:-1, 1:] - origin)
    gradient_y = np.abs(brightness[1:, :-1] - origin)
    return float(np.mean(np.sqrt(gradient_x ** 2 + gradient_y ** 2))) / 255.0


def region_pixels(image: Union[ImageBuffer, np.ndarray], region: Region) -> np.ndarray:
    """RGB pixels of a region, clipped to the image bounds."""
    array = image.as_array() if isinstance(image, ImageBuffer) else image
    height, width = array.shape[:2]
    clipped = region.clip(width, height)
    if clipped.area == 0:
        raise InvalidInputError(f"Region {region} has no pixels inside a {width}x{height} image")
    return array[clipped.y:clipped.y + clipped.height, clipped.x:clipped.x + clipped.width, :3]


def rgb_features(rgb: np.ndarray) -> np.ndarray:
    means = rgb.reshape(-1, rgb.shape[-1])[:, :3].astype(np.float64).mean(axis=0)
    return means / 255.0


def standard_features(rgb: np.ndarray) -> np.ndarray:
    """RGB + brightness + contrast + edge strength of a pixel patch."""
    avg_r, avg_g, avg_b = rgb_features(rgb)
    brightness = brightness_plane(rgb)
    return np.array([
        avg_r,
        avg_g,
        avg_b,
        (avg_r + avg_g + avg_b) / 3.0,
        contrast(brightness),
        edge_strength(brightness),
    ])


def extended_features(rgb: np.ndarray) -> np.ndarray:
    """RGB + HSV + luminance + NDVI-like index + texture + contrast of a pixel patch."""
    avg_r, avg_g, avg_b = rgb_features(rgb)
    hue, saturation, value = rgb2hsv(np.array([[[avg_r, avg_g, avg_b]]]))[0, 0]
    intensity = (avg_r + avg_g + avg_b) / 3.0
    luminance = 0.299 * avg_r + 0.587 * avg_g + 0.114 * avg_b
    ndvi = (avg_g - avg_r) / (avg_g + avg_r + NDVI_EPSILON)
    texture = (avg_r - intensity) ** 2 + (avg_g - intensity) ** 2 + (avg_b - intensity) ** 2
    return np.array([
        avg_r,
        avg_g,
        avg_b,
        hue,
        saturation,
        value,
        luminance,
        ndvi,
        texture,
        contrast(brightness_plane(rgb)),
    ])


_EXTRACTORS = {
    'rgb': rgb_features,
    'standard': standard_features,
    'extended': extended_features,
}


class FeatureExtractor:
    """Maps pixel patches to fixed-length feature vectors of one feature set."""

    def __init__(self, feature_set: str = 'standard'):
        if feature_set not in FEATURE_SETS:
            raise ValueError(
                f"Unknown feature set '{feature_set}', expected one of {sorted(FEATURE_SETS)}")
        self.feature_set = feature_set
        self._extract = _EXTRACTORS[feature_set]

    @property
    def length(self) -> int:
        return FEATURE_SETS[self.feature_set]

    def extract_patch_features(self, rgb: np.ndarray) -> np.ndarray:
        return self._extract(rgb)

    def extract_region_features(self, image: Union[ImageBuffer, np.ndarray], region: Region) -> np.ndarray:
        """Feature vector of one region of an image."""
        return self._extract(region_pixels(image, region))

    def extract_pixel_features(self, r: int, g: int, b: int) -> np.ndarray:
        """Feature vector of a single pixel (a 1x1 region)."""
        return self._extract(np.array([[[r, g, b]]], dtype=np.uint8))

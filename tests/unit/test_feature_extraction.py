"""
Tests for region and pixel feature extraction.
"""

import numpy as np
import pytest

from LuzSombraApp.processing.errors import InvalidInputError
from LuzSombraApp.processing.feature_extraction import (
    FEATURE_SETS, FeatureExtractor, brightness_plane, edge_strength
)
from LuzSombraApp.processing.image_buffer import Region


def test_feature_set_lengths():
    for name, length in FEATURE_SETS.items():
        extractor = FeatureExtractor(name)
        assert extractor.length == length
        assert extractor.extract_pixel_features(10, 20, 30).shape == (length,)


def test_unknown_feature_set():
    with pytest.raises(ValueError):
        FeatureExtractor('hsv-only')


def test_uniform_region_features(make_image):
    image = make_image(np.full((10, 20, 3), [51, 102, 153]))
    features = FeatureExtractor('standard').extract_region_features(image, Region(0, 0, 20, 10))

    assert features[:3] == pytest.approx([0.2, 0.4, 0.6])
    assert features[3] == pytest.approx(0.4)
    assert features[4] == pytest.approx(0.0)  # contrast
    assert features[5] == pytest.approx(0.0)  # edge strength


def test_checkerboard_contrast_and_edges(make_image):
    rgb = np.zeros((2, 2, 3), dtype=np.uint8)
    rgb[0, 1] = 255
    rgb[1, 0] = 255
    features = FeatureExtractor('standard').extract_region_features(make_image(rgb), Region(0, 0, 2, 2))

    assert features[3] == pytest.approx(0.5)
    # brightness 0/255 alternating: std 127.5
    assert features[4] == pytest.approx(0.5)
    # single interior sample: |255-0| in both directions
    assert features[5] == pytest.approx(np.sqrt(2))


def test_edge_strength_of_thin_regions_is_zero():
    assert edge_strength(np.array([[0.0, 255.0, 0.0]])) == 0.0
    assert edge_strength(np.array([[0.0], [255.0]])) == 0.0


def test_edge_strength_horizontal_ramp():
    plane = brightness_plane(np.array([[[0, 0, 0], [51, 51, 51], [102, 102, 102]]] * 3, dtype=np.uint8))
    # every step is 51 horizontally and 0 vertically
    assert edge_strength(plane) == pytest.approx(51 / 255)


def test_pixel_features_match_single_pixel_region(make_image):
    extractor = FeatureExtractor('standard')
    image = make_image([[[200, 100, 50]]])
    region = extractor.extract_region_features(image, Region(0, 0, 1, 1))
    pixel = extractor.extract_pixel_features(200, 100, 50)
    np.testing.assert_allclose(region, pixel)
    assert pixel[4] == 0.0 and pixel[5] == 0.0


def test_region_is_clipped_to_image(make_image):
    rgb = np.zeros((4, 4, 3), dtype=np.uint8)
    rgb[2:, 2:] = 255
    features = FeatureExtractor('rgb').extract_region_features(make_image(rgb), Region(2, 2, 10, 10))
    assert features == pytest.approx([1.0, 1.0, 1.0])


def test_region_outside_image_is_rejected(make_image):
    image = make_image(np.zeros((4, 4, 3)))
    with pytest.raises(InvalidInputError):
        FeatureExtractor('standard').extract_region_features(image, Region(10, 10, 5, 5))


def test_extended_features_of_pure_green():
    features = FeatureExtractor('extended').extract_pixel_features(0, 255, 0)
    r, g, b, hue, saturation, value, luminance, ndvi, texture, contrast = features

    assert (r, g, b) == pytest.approx((0.0, 1.0, 0.0))
    assert hue == pytest.approx(1 / 3)
    assert saturation == pytest.approx(1.0)
    assert value == pytest.approx(1.0)
    assert luminance == pytest.approx(0.587)
    assert ndvi == pytest.approx(1.0)
    assert texture == pytest.approx(6 / 9)
    assert contrast == 0.0


def test_extended_features_of_black_pixel_are_finite():
    features = FeatureExtractor('extended').extract_pixel_features(0, 0, 0)
    assert np.all(np.isfinite(features))
    assert features[7] == 0.0  # NDVI-like index guarded by epsilon

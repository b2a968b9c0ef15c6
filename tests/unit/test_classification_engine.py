"""
Tests for the classification engine: lifecycle, aggregation and overlays.
"""

from concurrent.futures import ThreadPoolExecutor

import numpy as np
import pytest

from LuzSombraApp.processing.classification_engine import ClassificationEngine, create_engine
from LuzSombraApp.processing.errors import ConfigurationError, InvalidInputError
from LuzSombraApp.processing.image_buffer import ImageBuffer
from LuzSombraApp.processing.labels import Label, color_lookup

ALL_POLICIES = ['threshold', 'heuristic', 'rule-based-4class', 'trained']


def overlay_array(result):
    return np.frombuffer(result.overlay_image, dtype=np.uint8).reshape(result.height, result.width, 4)


class TestLifecycle:

    def test_classify_before_initialize(self, settings, make_image):
        engine = ClassificationEngine(settings)
        assert not engine.is_ready()
        with pytest.raises(ConfigurationError):
            engine.classify(make_image([[[0, 0, 0]]]))

    def test_status(self, make_engine):
        engine = make_engine(policy='heuristic', region_size=5)
        status = engine.status()
        assert status['initialized'] is True
        assert status['policy']['policy'] == 'heuristic'
        assert status['policy']['region_size'] == (5, 5)

    def test_initialize_same_config_keeps_policy(self, make_engine):
        engine = make_engine(policy='trained')
        policy = engine.policy
        engine.initialize({'policy': 'trained'})
        assert engine.policy is policy

    def test_initialize_new_config_replaces_policy(self, make_engine):
        engine = make_engine(policy='threshold')
        engine.initialize({'policy': 'rule-based-4class'})
        assert engine.policy.name == 'rule-based-4class'
        assert set(engine.legend()) == {'SOIL_SHADOW', 'SOIL_LIGHT', 'MESH_SHADOW', 'MESH_LIGHT'}

    def test_unknown_policy(self, settings):
        with pytest.raises(ConfigurationError):
            create_engine(settings, {'policy': 'mystery'})

    @pytest.mark.parametrize("config", [
        {'policy': 'heuristic', 'region_size': 0},
        {'policy': 'trained', 'region_size': -4},
        {'policy': 'trained', 'feature_set': 'hsv-only'},
        {'max_workers': 0},
    ])
    def test_invalid_configuration(self, settings, config):
        with pytest.raises(ConfigurationError):
            create_engine(settings, config)

    def test_defaults_come_from_settings(self, settings):
        settings.set('classifier.policy', 'heuristic')
        settings.set('classifier.region_size.heuristic', 4)
        engine = create_engine(settings)
        assert engine.policy.name == 'heuristic'
        assert engine.policy.region_size == (4, 4)


class TestInvalidInput:

    @pytest.mark.parametrize("image", [
        ImageBuffer(width=0, height=2, pixels=b''),
        ImageBuffer(width=2, height=-1, pixels=b''),
        ImageBuffer(width=2, height=2, pixels=bytes(15)),
        ImageBuffer(width=2.0, height=2, pixels=bytes(16)),
    ])
    def test_rejects_malformed_buffers(self, make_engine, image):
        with pytest.raises(InvalidInputError):
            make_engine().classify(image)


class TestScenarios:

    def test_two_by_two_threshold(self, make_engine, make_image):
        image = make_image([[[255, 255, 255], [255, 255, 255]], [[0, 0, 0], [0, 0, 0]]])
        result = make_engine(policy='threshold', threshold=130).classify(image)

        assert result.label_map.tolist() == [[Label.LIGHT, Label.LIGHT], [Label.SHADOW, Label.SHADOW]]
        assert result.light_percentage == 50.0
        assert result.shadow_percentage == 50.0
        assert result.label_counts == {'LIGHT': 2, 'SHADOW': 2}

    def test_all_black_four_class(self, make_engine, make_image):
        result = make_engine(policy='rule-based-4class').classify(make_image(np.zeros((6, 5, 3))))

        assert np.all(result.label_map == Label.SOIL_SHADOW)
        assert result.light_percentage == 0.0
        assert result.shadow_percentage == 100.0

    def test_all_white_four_class(self, make_engine, make_image):
        result = make_engine(policy='rule-based-4class').classify(make_image(np.full((6, 5, 3), 255)))

        assert np.all(result.label_map == Label.SOIL_LIGHT)
        assert result.light_percentage == 100.0
        assert result.shadow_percentage == 0.0
        assert result.label_counts['SOIL_LIGHT'] == 30

    def test_four_class_percentages_group_soil_and_mesh(self, make_engine, make_image):
        # one pixel of each class
        image = make_image([[[0, 0, 0], [255, 255, 255], [20, 100, 20], [100, 200, 100]]])
        result = make_engine(policy='rule-based-4class').classify(image)

        assert result.light_count == 2
        assert result.shadow_count == 2
        assert result.light_percentage == 50.0


@pytest.mark.parametrize("policy", ALL_POLICIES)
class TestProperties:

    def test_percentages_partition(self, make_engine, random_image, policy):
        result = make_engine(policy=policy).classify(random_image)
        assert result.light_percentage + result.shadow_percentage == pytest.approx(100.0, abs=1e-6)
        assert result.light_count + result.shadow_count == result.total_pixels

    def test_deterministic(self, make_engine, random_image, policy):
        engine = make_engine(policy=policy)
        first = engine.classify(random_image)
        second = engine.classify(random_image)
        np.testing.assert_array_equal(first.label_map, second.label_map)
        assert first.light_percentage == second.light_percentage
        assert first.overlay_image == second.overlay_image

    def test_overlay_matches_color_table(self, make_engine, random_image, policy):
        engine = make_engine(policy=policy)
        result = engine.classify(random_image)
        expected = color_lookup(engine.color_table)[result.label_map]

        np.testing.assert_array_equal(overlay_array(result), expected)
        colors = {tuple(c) for c in overlay_array(result).reshape(-1, 4)}
        assert colors <= set(result.color_table.values())

    def test_workers_do_not_change_result(self, make_engine, random_image, policy):
        single = make_engine(policy=policy, region_size=4).classify(random_image)
        threaded = make_engine(policy=policy, region_size=4, max_workers=4).classify(random_image)
        np.testing.assert_array_equal(single.label_map, threaded.label_map)
        assert single.label_counts == threaded.label_counts


@pytest.mark.parametrize("policy,size", [('heuristic', 4), ('heuristic', 10), ('trained', 6)])
def test_region_labels_are_uniform(make_engine, random_image, policy, size):
    result = make_engine(policy=policy, region_size=size).classify(random_image)
    for y in range(0, result.height, size):
        for x in range(0, result.width, size):
            tile = result.label_map[y:y + size, x:x + size]
            assert np.all(tile == tile[0, 0]), f"tile at ({x}, {y}) has mixed labels"


def test_region_sizes_cover_every_pixel(make_engine, random_image):
    # 23x37 is not a multiple of 10: the right and bottom tiles are clipped
    result = make_engine(policy='heuristic', region_size=10).classify(random_image)
    assert result.label_map.shape == (23, 37)
    assert sum(result.label_counts.values()) == 23 * 37


@pytest.mark.parametrize("size", [4, 5, 10, 20])
def test_half_black_white_is_even_split(make_engine, half_black_white, size):
    result = make_engine(policy='heuristic', region_size=size).classify(half_black_white)
    assert result.light_percentage == 50.0
    assert result.shadow_percentage == 50.0


def test_half_black_white_straddling_tile(make_engine, half_black_white):
    # 8-pixel tiles put one tile across the white/black boundary
    result = make_engine(policy='heuristic', region_size=8).classify(half_black_white)
    assert result.light_percentage == pytest.approx(50.0, abs=8 / 40 * 100)


def test_concurrent_classify_calls(make_engine, random_image, half_black_white):
    engine = make_engine(policy='heuristic', region_size=5)
    expected = {id(img): engine.classify(img).light_percentage for img in (random_image, half_black_white)}

    images = [random_image, half_black_white] * 8
    with ThreadPoolExecutor(max_workers=4) as executor:
        results = list(executor.map(engine.classify, images))

    for image, result in zip(images, results):
        assert result.light_percentage == expected[id(image)]


def test_color_overrides_from_settings(settings, make_image):
    settings.set('colors.binary.LIGHT', [255, 255, 0])
    engine = create_engine(settings, {'policy': 'threshold'})
    result = engine.classify(make_image([[[255, 255, 255], [0, 0, 0]]]))

    assert overlay_array(result)[0, 0].tolist() == [255, 255, 0, 255]
    assert overlay_array(result)[0, 1].tolist() == [0, 0, 255, 255]


def test_result_helpers(make_engine, make_image):
    result = make_engine().classify(make_image([[[200, 200, 200], [10, 10, 10]]]))

    assert result.label_at(0, 0) == Label.LIGHT
    assert result.label_at(1, 0) == Label.SHADOW
    assert result.overlay_buffer().width == 2

    summary = result.summary()
    assert summary['policy'] == 'threshold'
    assert summary['taxonomy'] == 'binary'
    assert summary['light_pixels'] == 1
    assert 'label_map' not in summary

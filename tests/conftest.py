import sys
from pathlib import Path

import numpy as np
import pytest

# Add the project root to Python path
sys.path.append(str(Path(__file__).parent.parent))

from LuzSombraApp.config.settings import Settings
from LuzSombraApp.processing.classification_engine import ClassificationEngine
from LuzSombraApp.processing.image_buffer import ImageBuffer


@pytest.fixture
def settings():
    """In-memory settings with default values."""
    return Settings()


@pytest.fixture
def make_engine(settings):
    """Factory returning a fresh, initialized engine per call."""
    def _make(**config):
        engine = ClassificationEngine(settings)
        engine.initialize(config)
        return engine
    return _make


@pytest.fixture
def make_image():
    """Build an ImageBuffer from an HxWx3 list/array of RGB values."""
    def _make(rgb):
        return ImageBuffer.from_array(np.asarray(rgb, dtype=np.uint8))
    return _make


@pytest.fixture
def half_black_white():
    """40x40 image, left half white and right half black."""
    rgb = np.zeros((40, 40, 3), dtype=np.uint8)
    rgb[:, :20] = 255
    return ImageBuffer.from_array(rgb)


@pytest.fixture
def random_image():
    rng = np.random.default_rng(7)
    return ImageBuffer.from_array(rng.integers(0, 256, size=(23, 37, 3), dtype=np.uint8))

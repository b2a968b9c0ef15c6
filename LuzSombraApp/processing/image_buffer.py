"""
Raw RGBA image buffers passed to the classification engine.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Union

import numpy as np
from PIL import Image

from LuzSombraApp.processing.errors import InvalidInputError


@dataclass(frozen=True)
class Region:
    """Rectangular tile of an image, in pixels."""
    x: int
    y: int
    width: int
    height: int

    def clip(self, image_width: int, image_height: int) -> 'Region':
        """Clip the region to the image canvas."""
        x0 = min(max(self.x, 0), image_width)
        y0 = min(max(self.y, 0), image_height)
        x1 = min(max(self.x + self.width, 0), image_width)
        y1 = min(max(self.y + self.height, 0), image_height)
        return Region(x0, y0, x1 - x0, y1 - y0)

    @property
    def area(self) -> int:
        return max(self.width, 0) * max(self.height, 0)


@dataclass(frozen=True)
class ImageBuffer:
    """Decoded image: width, height and row-major RGBA bytes."""
    width: int
    height: int
    pixels: bytes

    def validate(self) -> None:
        """Raise InvalidInputError unless the buffer holds width*height RGBA pixels."""
        if not isinstance(self.width, (int, np.integer)) or not isinstance(self.height, (int, np.integer)):
            raise InvalidInputError("Image dimensions must be integers")
        if self.width <= 0 or self.height <= 0:
            raise InvalidInputError(
                f"Image dimensions must be positive, got {self.width}x{self.height}")
        expected = self.width * self.height * 4
        if len(self.pixels) != expected:
            raise InvalidInputError(
                f"Pixel buffer has {len(self.pixels)} bytes, expected {expected} "
                f"for a {self.width}x{self.height} RGBA image")

    def as_array(self) -> np.ndarray:
        """Read-only (height, width, 4) uint8 view of the pixel data."""
        self.validate()
        array = np.frombuffer(bytes(self.pixels), dtype=np.uint8)
        return array.reshape(self.height, self.width, 4)

    def rgb(self) -> np.ndarray:
        """(height, width, 3) uint8 view of the colour channels."""
        return self.as_array()[:, :, :3]

    @classmethod
    def from_array(cls, array: np.ndarray) -> 'ImageBuffer':
        """Build a buffer from an (H, W, 4) RGBA or (H, W, 3) RGB uint8 array."""
        if array.ndim != 3 or array.shape[2] not in (3, 4):
            raise InvalidInputError(f"Expected an HxWx3 or HxWx4 array, got shape {array.shape}")
        array = np.asarray(array, dtype=np.uint8)
        if array.shape[2] == 3:
            alpha = np.full(array.shape[:2] + (1,), 255, dtype=np.uint8)
            array = np.concatenate([array, alpha], axis=2)
        height, width = array.shape[:2]
        return cls(width=width, height=height, pixels=np.ascontiguousarray(array).tobytes())

    @classmethod
    def from_pil(cls, image: Image.Image) -> 'ImageBuffer':
        rgba = image.convert('RGBA')
        return cls(width=rgba.width, height=rgba.height, pixels=rgba.tobytes())

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> 'ImageBuffer':
        """Decode an image file (JPEG, PNG, ...) into an RGBA buffer."""
        with Image.open(path) as image:
            return cls.from_pil(image)

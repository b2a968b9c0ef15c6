"""
False-colour overlay rendering and encoding.
"""

import base64
import io
import logging
import os
from abc import ABC, abstractmethod
from typing import Mapping, Optional

import cv2
import matplotlib
matplotlib.use('Agg')  # Use non-interactive backend for saving figures
import matplotlib.pyplot as plt
from matplotlib.patches import Patch
import numpy as np
from PIL import Image

from LuzSombraApp.processing.image_buffer import ImageBuffer
from LuzSombraApp.processing.labels import RGBA, Label, color_lookup

MIME_TYPES = {
    'png': 'image/png',
    'jpg': 'image/jpeg',
    'jpeg': 'image/jpeg',
    'bmp': 'image/bmp',
    'tif': 'image/tiff',
    'tiff': 'image/tiff',
}

# Formats written without an alpha channel
OPAQUE_FORMATS = ('jpg', 'jpeg', 'bmp')

PIL_FORMATS = {'jpg': 'JPEG', 'tif': 'TIFF'}


def image_format(fmt: str) -> str:
    """Normalise a format name or file extension, rejecting unsupported ones."""
    fmt = fmt.lower().lstrip('.')
    if fmt not in MIME_TYPES:
        raise ValueError(f"Unsupported image format '{fmt}', expected one of {sorted(MIME_TYPES)}")
    return fmt


def render_overlay(label_map: np.ndarray, color_table: Mapping[Label, RGBA]) -> bytes:
    """Recolour every pixel of a label map with its label's colour; returns RGBA bytes."""
    lookup = color_lookup(color_table)
    return np.ascontiguousarray(lookup[label_map]).tobytes()


class RasterSink(ABC):
    """Encodes RGBA buffers into a storable/displayable image format."""

    name = ''

    @abstractmethod
    def encode(self, image: ImageBuffer, fmt: str = 'png') -> bytes:
        """Encode an RGBA buffer as image file bytes."""

    def to_data_url(self, image: ImageBuffer, fmt: str = 'png') -> str:
        encoded = base64.b64encode(self.encode(image, fmt)).decode('ascii')
        return f"data:{MIME_TYPES[image_format(fmt)]};base64,{encoded}"

    def save(self, image: ImageBuffer, path: str) -> str:
        fmt = os.path.splitext(path)[1].lstrip('.').lower() or 'png'
        with open(path, 'wb') as f:
            f.write(self.encode(image, fmt))
        return path


class PillowRasterSink(RasterSink):
    name = 'pillow'

    def encode(self, image: ImageBuffer, fmt: str = 'png') -> bytes:
        picture = Image.frombytes('RGBA', (image.width, image.height), bytes(image.pixels))
        fmt = image_format(fmt)
        if fmt in OPAQUE_FORMATS:
            picture = picture.convert('RGB')
        output = io.BytesIO()
        picture.save(output, format=PIL_FORMATS.get(fmt, fmt.upper()))
        return output.getvalue()


class OpenCVRasterSink(RasterSink):
    name = 'opencv'

    def encode(self, image: ImageBuffer, fmt: str = 'png') -> bytes:
        rgba = np.array(image.as_array())
        fmt = image_format(fmt)
        if fmt in OPAQUE_FORMATS:
            bgr = cv2.cvtColor(rgba, cv2.COLOR_RGBA2BGR)
        else:
            bgr = cv2.cvtColor(rgba, cv2.COLOR_RGBA2BGRA)
        ok, encoded = cv2.imencode(f'.{fmt}', bgr)
        if not ok:
            raise ValueError(f"OpenCV could not encode image as {fmt}")
        return encoded.tobytes()


RASTER_SINKS = {
    PillowRasterSink.name: PillowRasterSink,
    OpenCVRasterSink.name: OpenCVRasterSink,
}


def get_raster_sink(name: str = 'pillow') -> RasterSink:
    try:
        return RASTER_SINKS[name]()
    except KeyError:
        raise ValueError(f"Unknown raster backend '{name}', expected one of {sorted(RASTER_SINKS)}")


def save_visualization(image: ImageBuffer, overlay: ImageBuffer, color_table: Mapping[Label, RGBA],
                       light_percentage: float, shadow_percentage: float,
                       output_path: str, title: Optional[str] = None) -> str:
    """Save original and overlay side by side with a legend keyed to the colour table."""
    fig, (ax1, ax2) = plt.subplots(1, 2, figsize=(14, 6))

    ax1.imshow(image.as_array())
    ax1.set_title("Original Image")
    ax1.axis('off')

    ax2.imshow(overlay.as_array())
    ax2.set_title("Light / Shadow Classification")
    ax2.axis('off')

    handles = [
        Patch(facecolor=np.array(color[:3]) / 255.0, edgecolor='black', label=label.name)
        for label, color in color_table.items()
    ]
    ax2.legend(handles=handles, loc='lower right', fontsize=9)

    if title:
        fig.suptitle(title, fontsize=14)

    plt.figtext(0.5, 0.01,
                f"Light: {light_percentage:.2f}%\n"
                f"Shadow: {shadow_percentage:.2f}%",
                ha="center", fontsize=12, bbox={"facecolor": "white", "alpha": 0.5, "pad": 5})

    plt.tight_layout()
    plt.savefig(output_path, dpi=150, bbox_inches='tight')
    plt.close(fig)
    logging.getLogger(__name__).debug(f"Saved visualization to {output_path}")
    return output_path

"""
Photo metadata: plot row/plant from the filename, capture time and GPS from EXIF.
"""

import logging
import os
import re
from datetime import datetime
from typing import Dict, Optional

from PIL import Image
from PIL.ExifTags import GPSTAGS, TAGS

EXIF_IFD = 0x8769
GPS_IFD = 0x8825

_ROW_PATTERN = re.compile(r'H(\d+)')
_PLANT_PATTERN = re.compile(r'P(\d+)')

logger = logging.getLogger(__name__)


def parse_filename(filename: str) -> Dict[str, Optional[str]]:
    """Extract row (hilera) and plant (planta) numbers from names like E07_92_H184_P25.jpg.

    The name is valid only when both an H<digits> and a P<digits> token exist.
    """
    stem = os.path.splitext(os.path.basename(filename))[0]
    row = _ROW_PATTERN.search(stem)
    plant = _PLANT_PATTERN.search(stem)
    if row and plant:
        return {'hilera': row.group(1), 'planta': plant.group(1), 'is_valid': True}
    return {'hilera': None, 'planta': None, 'is_valid': False}


def _convert_to_degrees(value):
    """Helper function to convert GPS DMS (degrees, minutes, seconds) to decimal degrees."""
    d = float(value[0])
    m = float(value[1])
    s = float(value[2])
    return d + (m / 60.0) + (s / 3600.0)


def get_gps_data(image_path: str) -> Optional[Dict[str, float]]:
    """Extracts GPS latitude and longitude from an image's EXIF data."""
    try:
        with Image.open(image_path) as img:
            gps_info_raw = img.getexif().get_ifd(GPS_IFD)
    except (OSError, TypeError, ValueError) as e:
        logger.warning(f"Error reading EXIF data for {image_path}: {e}")
        return None

    if not gps_info_raw:
        return None

    gps_info = {GPSTAGS.get(tag_id, tag_id): value for tag_id, value in gps_info_raw.items()}

    lat = gps_info.get('GPSLatitude')
    lat_ref = gps_info.get('GPSLatitudeRef')
    lon = gps_info.get('GPSLongitude')
    lon_ref = gps_info.get('GPSLongitudeRef')

    if lat and lat_ref and lon and lon_ref:
        try:
            lat_decimal = _convert_to_degrees(lat)
            lon_decimal = _convert_to_degrees(lon)
        except (TypeError, ValueError, IndexError, ZeroDivisionError) as e:
            logger.warning(f"Malformed GPS coordinates in {image_path}: {e}")
            return None

        if lat_ref == 'S':
            lat_decimal = -lat_decimal
        if lon_ref == 'W':
            lon_decimal = -lon_decimal

        return {"latitude": lat_decimal, "longitude": lon_decimal}

    return None


def get_capture_datetime(image_path: str) -> Optional[Dict[str, str]]:
    """Capture date and time from EXIF DateTimeOriginal (falling back to DateTime)."""
    try:
        with Image.open(image_path) as img:
            exif = img.getexif()
            tags = {TAGS.get(tag_id, tag_id): value for tag_id, value in exif.items()}
            tags.update({TAGS.get(tag_id, tag_id): value for tag_id, value in exif.get_ifd(EXIF_IFD).items()})
    except (OSError, TypeError, ValueError) as e:
        logger.warning(f"Error reading EXIF data for {image_path}: {e}")
        return None

    raw = tags.get('DateTimeOriginal') or tags.get('DateTime')
    if not raw:
        return None
    try:
        taken = datetime.strptime(str(raw).strip(), '%Y:%m:%d %H:%M:%S')
    except ValueError:
        logger.warning(f"Unrecognised EXIF date '{raw}' in {image_path}")
        return None
    return {'date': taken.strftime('%Y-%m-%d'), 'time': taken.strftime('%H:%M:%S')}

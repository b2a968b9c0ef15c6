"""
Utility functions for the Luz/Sombra application.
"""

import os
import logging
from pathlib import Path
from typing import List, Optional


def get_supported_image_extensions() -> List[str]:
    """
    Get list of supported image extensions.

    Returns:
        List of supported extensions
    """
    return ['.jpg', '.jpeg', '.png', '.bmp', '.tif', '.tiff']


def is_valid_image_file(filepath: str) -> bool:
    """
    Check if file is a valid image.

    Args:
        filepath: Path to file

    Returns:
        bool: True if valid image, False otherwise
    """
    return os.path.splitext(filepath)[1].lower() in get_supported_image_extensions()


def get_image_files(directory: str) -> List[str]:
    """Get sorted list of image files in directory (recursive)."""
    image_files = []

    for root, _, files in os.walk(directory):
        for file in files:
            if is_valid_image_file(file):
                image_files.append(os.path.join(root, file))

    return sorted(image_files)


def setup_logging(log_dir: str = "logs", level: int = logging.INFO, log_file: Optional[str] = "app.log"):
    """Set up logging configuration."""
    handlers = [logging.StreamHandler()]
    if log_file:
        log_path = Path(log_dir)
        log_path.mkdir(exist_ok=True)
        handlers.insert(0, logging.FileHandler(log_path / log_file))

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers
    )

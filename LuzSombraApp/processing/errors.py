"""
Exceptions raised by the classification engine.
"""


class ClassificationError(Exception):
    """Base class for classification failures."""


class ConfigurationError(ClassificationError):
    """Engine used before initialize(), or initialized with an invalid configuration."""


class InvalidInputError(ClassificationError):
    """Image buffer or region does not describe valid pixel data."""

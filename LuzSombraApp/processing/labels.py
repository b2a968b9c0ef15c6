"""
Classification labels, taxonomies and overlay colour tables.
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import Dict, Mapping, Sequence, Tuple

import numpy as np

RGBA = Tuple[int, int, int, int]


class Label(IntEnum):
    LIGHT = 0
    SHADOW = 1
    SOIL_SHADOW = 2
    SOIL_LIGHT = 3
    MESH_SHADOW = 4
    MESH_LIGHT = 5


@dataclass(frozen=True)
class Taxonomy:
    """A set of labels plus the light/shadow grouping used for percentages."""
    name: str
    labels: Tuple[Label, ...]
    light_labels: Tuple[Label, ...]

    @property
    def shadow_labels(self) -> Tuple[Label, ...]:
        return tuple(label for label in self.labels if label not in self.light_labels)

    def is_light(self, label: Label) -> bool:
        return label in self.light_labels


BINARY = Taxonomy(
    name='binary',
    labels=(Label.LIGHT, Label.SHADOW),
    light_labels=(Label.LIGHT,),
)

FOUR_CLASS = Taxonomy(
    name='four_class',
    labels=(Label.SOIL_SHADOW, Label.SOIL_LIGHT, Label.MESH_SHADOW, Label.MESH_LIGHT),
    light_labels=(Label.SOIL_LIGHT, Label.MESH_LIGHT),
)

DEFAULT_COLORS: Dict[str, Dict[Label, RGBA]] = {
    'binary': {
        Label.LIGHT: (0, 255, 0, 255),       # green
        Label.SHADOW: (0, 0, 255, 255),      # blue
    },
    'four_class': {
        Label.SOIL_SHADOW: (128, 128, 128, 255),   # gray
        Label.SOIL_LIGHT: (255, 255, 0, 255),      # yellow
        Label.MESH_SHADOW: (0, 100, 0, 255),       # dark green
        Label.MESH_LIGHT: (144, 238, 144, 255),    # light green
    },
}


def color_table_for(taxonomy: Taxonomy, overrides: Mapping[str, Sequence[int]] = None) -> Dict[Label, RGBA]:
    """Colour table for a taxonomy, with optional {label name: RGB(A)} overrides from settings."""
    table = dict(DEFAULT_COLORS[taxonomy.name])
    for name, color in (overrides or {}).items():
        label = Label[name]
        if label not in taxonomy.labels:
            raise KeyError(f"Label {name} is not part of the {taxonomy.name} taxonomy")
        # overlay pixels are always opaque
        table[label] = tuple(int(c) for c in color[:3]) + (255,)
    return table


def color_lookup(table: Mapping[Label, RGBA]) -> np.ndarray:
    """Dense (n_labels, 4) uint8 array indexed by label value."""
    lookup = np.zeros((len(Label), 4), dtype=np.uint8)
    for label, color in table.items():
        lookup[int(label)] = color
    return lookup


def legend(table: Mapping[Label, RGBA]) -> Dict[str, RGBA]:
    """Label name -> colour, for UI legends and CSV metadata."""
    return {label.name: tuple(color) for label, color in table.items()}

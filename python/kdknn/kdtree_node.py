from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from kdknn.point import Point


@dataclass(eq=False)
class KdTreeNode:
    point: Point
    label: Any = None
    # Depth from the root. Root is 0.
    level: int = 0
    left: KdTreeNode | None = None
    right: KdTreeNode | None = None

    def axis(self, dimension: int) -> int:
        return self.level % dimension

"""Detection capability interface and result types."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import numpy as np


@dataclass(frozen=True)
class Region:
    """Axis-aligned rectangle reported by a detector, in pixels."""

    x: int
    y: int
    width: int
    height: int
    label: str = "person"
    confidence: Optional[float] = None

    @property
    def top_left(self) -> Tuple[int, int]:
        return self.x, self.y

    @property
    def bottom_right(self) -> Tuple[int, int]:
        return self.x + self.width, self.y + self.height

    def to_dict(self) -> Dict[str, Any]:
        return {
            "x": self.x,
            "y": self.y,
            "width": self.width,
            "height": self.height,
            "label": self.label,
            "confidence": self.confidence,
        }


@dataclass
class DetectionResult:
    """Regions found in one sampled frame."""

    regions: List[Region] = field(default_factory=list)

    @property
    def positive(self) -> bool:
        return bool(self.regions)

    def __len__(self) -> int:
        return len(self.regions)


class DetectionCapability(ABC):
    """Anything that maps a BGR frame to a list of regions.

    Implementations may keep model state internally but must not depend
    on previous calls for correctness.
    """

    @abstractmethod
    def detect(self, frame: np.ndarray) -> List[Region]:
        ...

    def close(self) -> None:
        """Release model resources."""

"""
Skyhub Data Models
数据模型

Value objects shared by the pipeline stages, plus the per-unit result
type and the aggregate run report.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from PIL import Image


@dataclass(frozen=True)
class SizeSpec:
    """Target dimensions for one resized variant."""
    label: str
    width: int
    height: int

    @property
    def dimensions(self) -> Tuple[int, int]:
        return (self.width, self.height)


SMALL = SizeSpec("small", 320, 240)
MEDIUM = SizeSpec("medium", 384, 288)
LARGE = SizeSpec("large", 640, 480)

SIZES: Tuple[SizeSpec, ...] = (SMALL, MEDIUM, LARGE)


@dataclass(frozen=True)
class ImageReference:
    """One manifest entry."""
    source_url: str


@dataclass(frozen=True)
class DecodedImage:
    """
    A fully loaded RGB raster and the name derived from its URL.

    The raster is shared by the size workers and must not be mutated.
    """
    raster: Image.Image
    logical_name: str
    source_url: str


@dataclass(frozen=True)
class StoredImageRecord:
    """Index document: stored file name and its public address."""
    name: str
    address: str

    def to_document(self) -> Dict[str, str]:
        return {"Name": self.name, "Url": self.address}

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "StoredImageRecord":
        return cls(name=doc["Name"], address=doc["Url"])


def stored_name(logical_name: str, size: SizeSpec) -> str:
    """Build the stored file name, e.g. ``b737_3_320x240.jpg``."""
    return f"{logical_name}_{size.width}x{size.height}.jpg"


def size_from_name(name: str) -> Tuple[int, int]:
    """
    Read ``(width, height)`` back out of a stored file name.

    Raises:
        ValueError: if the name does not follow the ``<name>_<w>x<h>.<ext>`` form
    """
    left = name.rfind("_")
    mid = name.rfind("x")
    right = name.rfind(".")
    if left == -1 or mid == -1 or right == -1 or not left < mid < right:
        raise ValueError(f"Can't read size from image name: {name!r}")
    return int(name[left + 1:mid]), int(name[mid + 1:right])


@dataclass
class UnitResult:
    """
    Outcome of one unit of work.

    ``size`` is None for reference-level outcomes (fetch, decode, name),
    otherwise the result covers one (reference, size) chain.
    """
    source_url: str
    size: Optional[SizeSpec]
    stage: str
    record: Optional[StoredImageRecord] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, source_url: str, size: SizeSpec, record: StoredImageRecord) -> "UnitResult":
        return cls(source_url=source_url, size=size, stage="done", record=record)

    @classmethod
    def failure(
        cls,
        source_url: str,
        error: BaseException,
        size: Optional[SizeSpec] = None,
        stage: Optional[str] = None,
    ) -> "UnitResult":
        return cls(
            source_url=source_url,
            size=size,
            stage=stage or getattr(error, "stage", "unknown"),
            error=error,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source_url": self.source_url,
            "size": self.size.label if self.size else None,
            "stage": self.stage,
            "name": self.record.name if self.record else None,
            "url": self.record.address if self.record else None,
            "error": str(self.error) if self.error else None,
            "error_type": type(self.error).__name__ if self.error else None,
        }


@dataclass
class PipelineReport:
    """Aggregate of every unit outcome in one run."""
    endpoint: str
    reference_count: int = 0
    results: List[UnitResult] = field(default_factory=list)
    timed_out: bool = False
    started_at: float = field(default_factory=time.time)
    finished_at: Optional[float] = None

    def record(self, result: UnitResult) -> None:
        self.results.append(result)

    @property
    def succeeded(self) -> List[UnitResult]:
        return [r for r in self.results if r.ok]

    @property
    def failures(self) -> List[UnitResult]:
        return [r for r in self.results if not r.ok]

    @property
    def succeeded_count(self) -> int:
        return len(self.succeeded)

    @property
    def failed_count(self) -> int:
        return len(self.failures)

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.finished_at is None:
            return None
        return self.finished_at - self.started_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            "endpoint": self.endpoint,
            "reference_count": self.reference_count,
            "succeeded": self.succeeded_count,
            "failed": self.failed_count,
            "timed_out": self.timed_out,
            "duration_seconds": self.duration_seconds,
            "failures": [r.to_dict() for r in self.failures],
        }

"""
Skyhub Module

Ingests the images listed in a remote JSON manifest, stores three
resized JPEG variants of each and serves them over HTTP.

Features:
- Concurrent download with bounded parallelism
- Small / medium / large variants (320x240, 384x288, 640x480)
- Idempotent upsert of name -> URL records
- Per-image failure isolation with a run report
"""

from .config import SkyhubConfig
from .models import (
    LARGE,
    MEDIUM,
    SIZES,
    SMALL,
    ImageReference,
    PipelineReport,
    SizeSpec,
    StoredImageRecord,
    UnitResult,
)
from .pipeline import Pipeline, build_pipeline

__all__ = [
    "SkyhubConfig",
    "Pipeline",
    "build_pipeline",
    "ImageReference",
    "PipelineReport",
    "SizeSpec",
    "StoredImageRecord",
    "UnitResult",
    "SMALL",
    "MEDIUM",
    "LARGE",
    "SIZES",
]

"""
Slide-mode batch video generation package.

Up to ten title/content rows share one theme (aspect ratio plus a background
color or image); each row becomes its own short video. Jobs run one at a
time through a single encoding engine and their outcomes are streamed into a
per-batch result store.
"""

from __future__ import annotations

__all__ = [
    "BatchOrchestrator",
    "SlidePipeline",
    "build_job_specs",
    "load_slide_document",
]

from .job_builder import build_job_specs
from .orchestrator import BatchOrchestrator
from .pipeline import SlidePipeline
from .row_loader import load_slide_document

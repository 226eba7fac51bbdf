"""Markdown documents: paths, templates, and the event writers."""

from .config import CategoryConfig, MeasurementConfig, MeasurementSpec
from .measurements import MeasurementWriter
from .resolver import DocumentResolver
from .session_note import SessionNoteWriter
from .writer import DocumentTarget, MaterializationWriter, WriteResult, WriteState

__all__ = [
    "CategoryConfig",
    "DocumentResolver",
    "DocumentTarget",
    "MaterializationWriter",
    "MeasurementConfig",
    "MeasurementSpec",
    "MeasurementWriter",
    "SessionNoteWriter",
    "WriteResult",
    "WriteState",
]

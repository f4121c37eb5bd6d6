"""SQLAlchemy models for the recording pipeline."""

from .base import Base
from .recording import Recording  # noqa: F401
from .utterance import Utterance  # noqa: F401

__all__ = [
    "Base",
    "Recording",
    "Utterance",
]

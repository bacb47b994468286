"""
Interfaces for the external capabilities stage handlers depend on.

Handlers only see these abstract classes; concrete adapters (S3, ffmpeg,
document parsers, the model-server HTTP clients) are wired in by the worker
from config, and tests substitute in-memory fakes. Adapters report failures
by raising CapabilityError (or StorageError) with an ErrorCode, so retry
classification happens in one place.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


class BlobStorage(ABC):
    """Object storage keyed by path."""

    @abstractmethod
    def upload(self, path: str, data: bytes, content_type: Optional[str] = None) -> str:
        """Store data at path and return the path."""

    @abstractmethod
    def download(self, path: str) -> bytes:
        pass

    @abstractmethod
    def create_signed_url(self, path: str, expires_in: int = 3600) -> str:
        pass

    @abstractmethod
    def remove(self, path: str) -> None:
        pass

    @abstractmethod
    def exists(self, path: str) -> bool:
        pass


@dataclass
class SampledFrame:
    frame_number: int
    time_sec: float
    image: bytes
    width: Optional[int] = None
    height: Optional[int] = None
    is_scene_change: bool = False


class MediaTranscoder(ABC):
    """Audio extraction and frame sampling."""

    @abstractmethod
    def extract_audio(self, data: bytes, source_ext: str) -> bytes:
        """Return the audio track as mp3 bytes."""

    @abstractmethod
    def sample_frames(self, data: bytes, source_ext: str, fps: float = 0.5, max_frames: int = 300,
                      quality: int = 85, detect_scene_changes: bool = True,
                      scene_threshold: float = 0.3) -> List[SampledFrame]:
        """Return sampled frames (JPEG bytes) ordered by time."""


@dataclass
class TranscriptionResult:
    text: str
    language: Optional[str] = None
    confidence: Optional[float] = None
    segments: List[Dict[str, Any]] = field(default_factory=list)
    provider: str = 'unknown'


class SpeechToText(ABC):
    @abstractmethod
    def transcribe(self, audio: bytes, file_ext: str, language: Optional[str] = None) -> TranscriptionResult:
        pass


class DocumentParser(ABC):
    """Plain-text extraction from uploaded documents."""

    @abstractmethod
    def extract_pdf(self, data: bytes) -> str:
        pass

    @abstractmethod
    def extract_docx(self, data: bytes) -> str:
        pass


@dataclass
class GeneratedDocument:
    markdown: str
    summary: Optional[str] = None
    model: Optional[str] = None


class DocumentGenerator(ABC):
    """Turns a transcript into a structured markdown document."""

    @abstractmethod
    def generate(self, transcript: str, title: Optional[str] = None,
                 content_type: Optional[str] = None) -> GeneratedDocument:
        pass


class Embedder(ABC):
    model: str = 'unknown'

    @abstractmethod
    def embed(self, texts: List[str]) -> List[List[float]]:
        """One vector per input text, same order."""


@dataclass
class VisualDescription:
    description: str
    scene_type: str = 'other'
    detected_elements: List[str] = field(default_factory=list)


class VisionDescriber(ABC):
    @abstractmethod
    def describe(self, image: bytes, context: Optional[str] = None) -> VisualDescription:
        pass


@dataclass
class OcrBlock:
    text: str
    confidence: float
    bbox: Optional[List[float]] = None


class OcrEngine(ABC):
    @abstractmethod
    def recognize(self, image: bytes) -> List[OcrBlock]:
        """Text blocks with confidence on a 0-100 scale."""

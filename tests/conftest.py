"""
Shared fixtures: an in-memory SQLite database and in-memory fakes for blob
storage and every external capability.
"""

from typing import Dict, List, Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from tribora.capabilities.base import (
    BlobStorage, MediaTranscoder, SampledFrame, SpeechToText, TranscriptionResult,
    DocumentParser, DocumentGenerator, GeneratedDocument, Embedder,
    VisionDescriber, VisualDescription, OcrEngine, OcrBlock,
)
from tribora.database.models import Base
from tribora.utils.error_codes import CapabilityError, ErrorCode, StorageError


class FakeBlobStorage(BlobStorage):
    def __init__(self):
        self.objects: Dict[str, bytes] = {}
        self.removed: List[str] = []
        self.fail_uploads = False

    def upload(self, path, data, content_type=None):
        if self.fail_uploads:
            raise StorageError(f"upload {path}: connection reset", ErrorCode.STORAGE_CONNECTION_ERROR)
        self.objects[path] = data
        return path

    def download(self, path):
        if path not in self.objects:
            raise StorageError(f"download {path}: object not found", ErrorCode.NOT_FOUND)
        return self.objects[path]

    def create_signed_url(self, path, expires_in=3600):
        return f"https://blobs.test/{path}?expires={expires_in}"

    def remove(self, path):
        self.removed.append(path)
        self.objects.pop(path, None)

    def exists(self, path):
        return path in self.objects


class FakeTranscoder(MediaTranscoder):
    def __init__(self, frame_count: int = 3):
        self.frame_count = frame_count
        self.audio_calls = 0

    def extract_audio(self, data, source_ext):
        self.audio_calls += 1
        return b"ID3-fake-mp3:" + data[:8]

    def sample_frames(self, data, source_ext, fps=0.5, max_frames=300, quality=85,
                      detect_scene_changes=True, scene_threshold=0.3):
        return [
            SampledFrame(frame_number=i, time_sec=i / fps, image=f"jpeg-{i}".encode(),
                         width=1280, height=720, is_scene_change=(i == 2))
            for i in range(min(self.frame_count, max_frames))
        ]


class FakeSpeech(SpeechToText):
    """Returns `text`, or raises the queued errors first (one per call)."""

    def __init__(self, text: str = "Welcome to the quarterly planning call. We will review the roadmap."):
        self.text = text
        self.errors: List[Exception] = []
        self.calls = 0

    def transcribe(self, audio, file_ext, language=None):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return TranscriptionResult(text=self.text, language='en', confidence=0.93, provider='fake-whisper')


class FakeParser(DocumentParser):
    def __init__(self, text: str = "Onboarding guide. Step one is to request access."):
        self.text = text

    def extract_pdf(self, data):
        return self.text

    def extract_docx(self, data):
        return self.text


class FakeGenerator(DocumentGenerator):
    def __init__(self):
        self.calls = 0

    def generate(self, transcript, title=None, content_type=None):
        self.calls += 1
        return GeneratedDocument(markdown=f"# {title or 'Untitled'}\n\n{transcript}",
                                 summary=transcript[:40], model='fake-llm')


class FakeEmbedder(Embedder):
    model = 'fake-embed'

    def __init__(self, dimensions: int = 4):
        self.dimensions = dimensions
        self.batches: List[int] = []

    def embed(self, texts):
        self.batches.append(len(texts))
        return [[float(len(text) % 7)] * self.dimensions for text in texts]


class FakeVision(VisionDescriber):
    def __init__(self, fail_frames: Optional[set] = None):
        self.fail_frames = fail_frames or set()

    def describe(self, image, context=None):
        if image.decode() in {f"jpeg-{i}" for i in self.fail_frames}:
            raise CapabilityError("vision model overloaded", ErrorCode.TEMPORARY_FAILURE)
        return VisualDescription(description=f"Screen showing {image.decode()}", scene_type='code',
                                 detected_elements=['editor', 'sidebar'])


class FakeOcr(OcrEngine):
    def __init__(self, fail_frames: Optional[set] = None):
        self.fail_frames = fail_frames or set()

    def recognize(self, image):
        if image.decode() in {f"jpeg-{i}" for i in self.fail_frames}:
            raise ValueError("could not convert string to float: 'n/a'")
        return [
            OcrBlock(text='def main():', confidence=96.0),
            OcrBlock(text='~~noise~~', confidence=41.0),
            OcrBlock(text='return 0', confidence=70.0),
        ]


@pytest.fixture
def config():
    return {
        'queue': {'lease_seconds': 900, 'default_priority': 2,
                  'priorities': {'transcribe': 0, 'extract_audio': 0, 'doc_generate': 1,
                                 'generate_embeddings': 1, 'extract_frames': 2,
                                 'collect_metrics': 3, 'generate_alerts': 3}},
        'retry': {'max_retries': 3, 'backoff_base_seconds': 0, 'backoff_max_seconds': 0},
        'worker': {'pool_size': 2, 'poll_interval': 0.01, 'max_poll_interval': 0.05,
                   'sweep_interval': 3600, 'heartbeat_interval': 3600},
        'pipeline': {'frames_enabled': True},
        'upload': {'max_files_per_request': 10},
        'storage': {'s3': {'signed_url_ttl_seconds': 3600}},
        'frames': {'fps': 0.5, 'max_frames': 300, 'concurrency': 2},
        'ocr': {'confidence_threshold': 70},
        'embeddings': {'chunk_size': 120, 'chunk_overlap': 20, 'batch_size': 2},
        'alerts': {'storage_bytes_threshold': 1000, 'failed_jobs_threshold': 2, 'metrics_window_hours': 24},
        'scheduler': {'tick_seconds': 1, 'jobs': {'collect_metrics': {'interval_seconds': 3600},
                                                  'generate_alerts': {'interval_seconds': 900}}},
    }


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine)


@pytest.fixture
def session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def storage():
    return FakeBlobStorage()


@pytest.fixture
def capabilities(storage):
    return {
        'storage': storage,
        'transcoder': FakeTranscoder(),
        'speech': FakeSpeech(),
        'parser': FakeParser(),
        'generator': FakeGenerator(),
        'embedder': FakeEmbedder(),
        'vision': FakeVision(),
        'ocr': FakeOcr(),
    }

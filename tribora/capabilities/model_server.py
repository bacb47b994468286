"""
HTTP clients for the model server (speech-to-text, document generation,
embeddings, vision and OCR).

All endpoints share one requests.Session and one error mapping:
timeouts, connection failures, 429 and 5xx are retryable; other 4xx
responses are permanent rejections.
"""
import base64
import logging
from typing import Any, Dict, List, Optional

import requests

from .base import (
    SpeechToText, TranscriptionResult,
    DocumentGenerator, GeneratedDocument,
    Embedder,
    VisionDescriber, VisualDescription,
    OcrEngine, OcrBlock,
)
from tribora.utils.error_codes import CapabilityError, ErrorCode

logger = logging.getLogger(__name__)

SCENE_TYPES = ('ui', 'code', 'terminal', 'browser', 'editor', 'other')


class ModelServerClient:
    """Thin JSON/multipart client for the model server."""

    def __init__(self, config: Dict[str, Any], session: Optional[requests.Session] = None):
        server_config = config.get('model_server', {})
        base_url = server_config.get('base_url')
        if not base_url:
            raise ValueError("model_server.base_url is not configured (set MODEL_SERVER_URL)")
        self.base_url = base_url.rstrip('/')
        self.timeout = server_config.get('timeout', 300)
        self.models = {
            'transcription': server_config.get('transcription_model'),
            'summary': server_config.get('summary_model'),
            'vision': server_config.get('vision_model'),
            'embedding': config.get('embeddings', {}).get('model'),
        }
        self.session = session or requests.Session()
        api_key = server_config.get('api_key')
        if api_key:
            self.session.headers['Authorization'] = f"Bearer {api_key}"

    def post(self, endpoint: str, json: Optional[Dict[str, Any]] = None,
             files: Optional[Dict[str, Any]] = None, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        url = f"{self.base_url}{endpoint}"
        try:
            response = self.session.post(url, json=json, files=files, data=data, timeout=self.timeout)
        except requests.exceptions.Timeout:
            raise CapabilityError(f"Model server timed out on {endpoint}", ErrorCode.TIMEOUT)
        except requests.exceptions.RequestException as e:
            raise CapabilityError(f"Model server unreachable on {endpoint}: {e}", ErrorCode.NETWORK_ERROR)

        if response.status_code != 200:
            raise self._error_for(endpoint, response)
        try:
            return response.json()
        except ValueError:
            raise CapabilityError(f"Model server returned invalid JSON on {endpoint}", ErrorCode.TEMPORARY_FAILURE)

    @staticmethod
    def _error_for(endpoint: str, response: requests.Response) -> CapabilityError:
        status = response.status_code
        detail = f"Model server error on {endpoint}: {status} - {response.text[:200]}"
        logger.error(detail)
        if status == 429:
            return CapabilityError(detail, ErrorCode.RATE_LIMITED)
        if status >= 500:
            return CapabilityError(detail, ErrorCode.TEMPORARY_FAILURE)
        if status == 402:
            return CapabilityError(detail, ErrorCode.QUOTA_EXCEEDED)
        if status in (413, 415):
            return CapabilityError(detail, ErrorCode.UNSUPPORTED_FORMAT)
        return CapabilityError(detail, ErrorCode.CAPABILITY_REJECTED)


class ModelServerSpeechToText(SpeechToText):
    def __init__(self, client: ModelServerClient):
        self.client = client

    def transcribe(self, audio: bytes, file_ext: str, language: Optional[str] = None) -> TranscriptionResult:
        form = {'model': self.client.models['transcription'] or ''}
        if language:
            form['language'] = language
        body = self.client.post(
            '/v1/transcribe',
            files={'file': (f"audio.{file_ext or 'mp3'}", audio)},
            data=form,
        )
        return TranscriptionResult(
            text=(body.get('text') or '').strip(),
            language=body.get('language'),
            confidence=body.get('confidence'),
            segments=body.get('segments') or [],
            provider=body.get('model') or self.client.models['transcription'] or 'model_server',
        )


class ModelServerDocumentGenerator(DocumentGenerator):
    def __init__(self, client: ModelServerClient):
        self.client = client

    def generate(self, transcript: str, title: Optional[str] = None,
                 content_type: Optional[str] = None) -> GeneratedDocument:
        body = self.client.post('/v1/documents/generate', json={
            'model': self.client.models['summary'],
            'transcript': transcript,
            'title': title,
            'content_type': content_type,
        })
        markdown = (body.get('markdown') or '').strip()
        if not markdown:
            raise CapabilityError("Document generation returned no content", ErrorCode.EMPTY_RESULT)
        return GeneratedDocument(markdown=markdown, summary=body.get('summary'),
                                 model=body.get('model') or self.client.models['summary'])


class ModelServerEmbedder(Embedder):
    def __init__(self, client: ModelServerClient):
        self.client = client
        self.model = client.models['embedding'] or 'unknown'

    def embed(self, texts: List[str]) -> List[List[float]]:
        body = self.client.post('/v1/embeddings', json={'model': self.model, 'input': texts})
        vectors = [item['embedding'] for item in body.get('data', [])]
        if len(vectors) != len(texts):
            raise CapabilityError(f"Expected {len(texts)} embeddings, got {len(vectors)}",
                                  ErrorCode.TEMPORARY_FAILURE)
        return vectors


class ModelServerVision(VisionDescriber):
    def __init__(self, client: ModelServerClient):
        self.client = client

    def describe(self, image: bytes, context: Optional[str] = None) -> VisualDescription:
        body = self.client.post('/v1/vision/describe', json={
            'model': self.client.models['vision'],
            'image': base64.b64encode(image).decode('ascii'),
            'context': context,
        })
        scene_type = body.get('scene_type') if body.get('scene_type') in SCENE_TYPES else 'other'
        return VisualDescription(
            description=(body.get('description') or '').strip(),
            scene_type=scene_type,
            detected_elements=list(body.get('detected_elements') or []),
        )


class ModelServerOcr(OcrEngine):
    def __init__(self, client: ModelServerClient):
        self.client = client

    def recognize(self, image: bytes) -> List[OcrBlock]:
        body = self.client.post('/v1/ocr', json={'image': base64.b64encode(image).decode('ascii')})
        return [
            OcrBlock(text=block.get('text') or '', confidence=_confidence(block.get('confidence')),
                     bbox=block.get('bbox'))
            for block in body.get('blocks', [])
        ]


def _confidence(value) -> float:
    """Blocks without a usable confidence score as 0 and fall below any threshold."""
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0

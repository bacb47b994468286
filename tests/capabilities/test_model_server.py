"""
Tests for the model server clients: request shape and error mapping.
"""

from unittest.mock import MagicMock

import pytest
import requests

from tribora.capabilities.model_server import (
    ModelServerClient, ModelServerDocumentGenerator, ModelServerEmbedder,
    ModelServerOcr, ModelServerSpeechToText, ModelServerVision,
)
from tribora.utils.error_codes import CapabilityError, ErrorCode

CONFIG = {
    'model_server': {'base_url': 'http://models.internal:8080/', 'api_key': 'secret',
                     'timeout': 30, 'transcription_model': 'whisper-large-v3'},
    'embeddings': {'model': 'text-embedding-004'},
}


def response(status=200, body=None, text=''):
    resp = MagicMock()
    resp.status_code = status
    resp.text = text
    resp.json.return_value = body if body is not None else {}
    return resp


class TestModelServerClient:
    """Tests for ModelServerClient.post"""

    def setup_method(self):
        self.http = MagicMock()
        self.http.headers = {}
        self.client = ModelServerClient(CONFIG, session=self.http)

    def test_auth_header_and_url(self):
        self.http.post.return_value = response(body={'ok': True})
        assert self.client.post('/v1/ping', json={}) == {'ok': True}
        assert self.http.headers['Authorization'] == 'Bearer secret'
        args, kwargs = self.http.post.call_args
        assert args[0] == 'http://models.internal:8080/v1/ping'
        assert kwargs['timeout'] == 30

    @pytest.mark.parametrize('status,code,retryable', [
        (429, ErrorCode.RATE_LIMITED, True),
        (503, ErrorCode.TEMPORARY_FAILURE, True),
        (402, ErrorCode.QUOTA_EXCEEDED, False),
        (415, ErrorCode.UNSUPPORTED_FORMAT, False),
        (400, ErrorCode.CAPABILITY_REJECTED, False),
    ])
    def test_status_mapping(self, status, code, retryable):
        self.http.post.return_value = response(status, text='nope')
        with pytest.raises(CapabilityError) as exc:
            self.client.post('/v1/ocr', json={})
        assert exc.value.error_code == code
        assert exc.value.retryable is retryable

    def test_timeout_and_connection_errors(self):
        self.http.post.side_effect = requests.exceptions.Timeout()
        with pytest.raises(CapabilityError) as exc:
            self.client.post('/v1/ocr')
        assert exc.value.error_code == ErrorCode.TIMEOUT

        self.http.post.side_effect = requests.exceptions.ConnectionError('refused')
        with pytest.raises(CapabilityError) as exc:
            self.client.post('/v1/ocr')
        assert exc.value.error_code == ErrorCode.NETWORK_ERROR

    def test_missing_base_url(self):
        with pytest.raises(ValueError):
            ModelServerClient({'model_server': {}})


class TestAdapters:
    """Response parsing per capability"""

    def setup_method(self):
        self.http = MagicMock()
        self.http.headers = {}
        self.client = ModelServerClient(CONFIG, session=self.http)

    def test_transcription(self):
        self.http.post.return_value = response(body={'text': ' hello team ', 'language': 'en', 'confidence': 0.9})
        result = ModelServerSpeechToText(self.client).transcribe(b'ID3', 'mp3', language='en')
        assert result.text == 'hello team'
        assert result.provider == 'whisper-large-v3'
        assert self.http.post.call_args.kwargs['data'] == {'model': 'whisper-large-v3', 'language': 'en'}

    def test_empty_document_is_empty_result(self):
        self.http.post.return_value = response(body={'markdown': '  '})
        with pytest.raises(CapabilityError) as exc:
            ModelServerDocumentGenerator(self.client).generate('transcript')
        assert exc.value.error_code == ErrorCode.EMPTY_RESULT

    def test_embedding_count_mismatch(self):
        self.http.post.return_value = response(body={'data': [{'embedding': [0.1, 0.2]}]})
        embedder = ModelServerEmbedder(self.client)
        assert embedder.model == 'text-embedding-004'
        with pytest.raises(CapabilityError):
            embedder.embed(['a', 'b'])

    def test_vision_scene_type_normalized(self):
        self.http.post.return_value = response(body={'description': 'A slide', 'scene_type': 'slideshow'})
        result = ModelServerVision(self.client).describe(b'\xff\xd8')
        assert result.scene_type == 'other'
        assert result.detected_elements == []

    def test_ocr_blocks(self):
        self.http.post.return_value = response(body={'blocks': [{'text': 'Login', 'confidence': '91.5'}]})
        blocks = ModelServerOcr(self.client).recognize(b'\xff\xd8')
        assert blocks[0].text == 'Login'
        assert blocks[0].confidence == 91.5

    def test_ocr_block_without_usable_confidence(self):
        self.http.post.return_value = response(body={'blocks': [
            {'text': 'Menu', 'confidence': None}, {'text': None, 'confidence': 'n/a'}]})
        blocks = ModelServerOcr(self.client).recognize(b'\xff\xd8')
        assert [(block.text, block.confidence) for block in blocks] == [('Menu', 0.0), ('', 0.0)]

"""
Tests for S3Storage using a mocked boto3 client.
"""

import io
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from tribora.storage.s3_utils import S3Storage, S3StorageConfig
from tribora.utils.error_codes import ErrorCode, StorageError


def client_error(code, operation='GetObject'):
    return ClientError({'Error': {'Code': code, 'Message': code}}, operation)


class TestS3Storage:
    """Tests for S3Storage"""

    def setup_method(self):
        self.client = MagicMock()
        self.storage = S3Storage(S3StorageConfig(bucket_name='content', signed_url_ttl_seconds=600),
                                 client=self.client)

    def test_config_requires_bucket(self):
        with pytest.raises(ValueError):
            S3StorageConfig.from_dict({'endpoint_url': 'http://minio:9000'})

    def test_upload_and_download(self):
        assert self.storage.upload('org/audio/a.mp3', b'ID3', 'audio/mpeg') == 'org/audio/a.mp3'
        self.client.put_object.assert_called_once_with(
            Bucket='content', Key='org/audio/a.mp3', Body=b'ID3', ContentType='audio/mpeg')

        self.client.get_object.return_value = {'Body': io.BytesIO(b'ID3')}
        assert self.storage.download('org/audio/a.mp3') == b'ID3'

    def test_signed_url_default_ttl(self):
        self.client.generate_presigned_url.return_value = 'https://minio/signed'
        assert self.storage.create_signed_url('org/audio/a.mp3') == 'https://minio/signed'
        assert self.client.generate_presigned_url.call_args.kwargs['ExpiresIn'] == 600

    def test_missing_object(self):
        self.client.get_object.side_effect = client_error('NoSuchKey')
        with pytest.raises(StorageError) as exc:
            self.storage.download('org/audio/gone.mp3')
        assert exc.value.error_code == ErrorCode.NOT_FOUND
        assert exc.value.retryable is False

    def test_connection_failure_is_retryable(self):
        self.client.put_object.side_effect = EndpointConnectionError(endpoint_url='http://minio:9000')
        with pytest.raises(StorageError) as exc:
            self.storage.upload('org/audio/a.mp3', b'ID3')
        assert exc.value.error_code == ErrorCode.NETWORK_ERROR
        assert exc.value.retryable is True

    def test_access_denied(self):
        self.client.delete_object.side_effect = client_error('AccessDenied', 'DeleteObject')
        with pytest.raises(StorageError) as exc:
            self.storage.remove('org/audio/a.mp3')
        assert exc.value.error_code == ErrorCode.CAPABILITY_REJECTED

    def test_exists(self):
        assert self.storage.exists('org/audio/a.mp3') is True
        self.client.head_object.side_effect = client_error('404', 'HeadObject')
        assert self.storage.exists('org/audio/a.mp3') is False

"""
S3 utilities for content storage in S3-compatible object stores (e.g. MinIO).
"""
from typing import Optional, Dict, Any

import boto3
from botocore.client import Config
from botocore.exceptions import ClientError, BotoCoreError, ConnectionError, EndpointConnectionError

from tribora.capabilities.base import BlobStorage
from tribora.utils.error_codes import ErrorCode, StorageError
from tribora.utils.logger import setup_worker_logger

logger = setup_worker_logger('s3_utils')

_MISSING_CODES = ('404', 'NoSuchKey', 'NotFound')


class S3StorageConfig:
    """Configuration for S3 storage"""
    def __init__(
        self,
        endpoint_url: str = None,
        access_key: str = None,
        secret_key: str = None,
        bucket_name: str = None,
        region: str = 'us-east-1',
        use_ssl: bool = False,
        signed_url_ttl_seconds: int = 3600
    ):
        self.endpoint_url = endpoint_url
        self.access_key = access_key
        self.secret_key = secret_key
        self.bucket_name = bucket_name
        self.region = region
        self.use_ssl = use_ssl
        self.signed_url_ttl_seconds = signed_url_ttl_seconds

        if not self.bucket_name:
            raise ValueError("Missing required S3 configuration (bucket_name)")

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> 'S3StorageConfig':
        """Create S3StorageConfig from the storage.s3 config section"""
        return cls(
            endpoint_url=config_dict.get('endpoint_url'),
            access_key=config_dict.get('access_key'),
            secret_key=config_dict.get('secret_key'),
            bucket_name=config_dict.get('bucket_name'),
            region=config_dict.get('region', 'us-east-1'),
            use_ssl=config_dict.get('use_ssl', False),
            signed_url_ttl_seconds=config_dict.get('signed_url_ttl_seconds', 3600)
        )


class S3Storage(BlobStorage):
    """Handles interactions with S3-compatible storage"""

    def __init__(self, config: S3StorageConfig, client=None):
        self.config = config
        self._client = client or self._create_client()

    def _create_client(self):
        logger.info(f"Initializing S3 client with endpoint: {self.config.endpoint_url}")
        boto_config = Config(
            signature_version='s3v4',
            connect_timeout=5,
            read_timeout=60,
            retries={'max_attempts': 2}
        )
        return boto3.client(
            's3',
            endpoint_url=self.config.endpoint_url,
            aws_access_key_id=self.config.access_key,
            aws_secret_access_key=self.config.secret_key,
            region_name=self.config.region,
            use_ssl=self.config.use_ssl,
            config=boto_config
        )

    @staticmethod
    def _wrap(operation: str, key: str, error: Exception) -> StorageError:
        if isinstance(error, ClientError):
            code = str(error.response.get('Error', {}).get('Code', ''))
            if code in _MISSING_CODES:
                return StorageError(f"{operation} {key}: object not found", ErrorCode.NOT_FOUND)
            if code in ('AccessDenied', 'InvalidAccessKeyId', 'SignatureDoesNotMatch'):
                return StorageError(f"{operation} {key}: {code}", ErrorCode.CAPABILITY_REJECTED)
            return StorageError(f"{operation} {key}: {code or error}", ErrorCode.STORAGE_CONNECTION_ERROR)
        if isinstance(error, (ConnectionError, EndpointConnectionError)):
            return StorageError(f"{operation} {key}: {error}", ErrorCode.NETWORK_ERROR)
        return StorageError(f"{operation} {key}: {error}", ErrorCode.STORAGE_CONNECTION_ERROR)

    def upload(self, path: str, data: bytes, content_type: Optional[str] = None) -> str:
        extra = {'ContentType': content_type} if content_type else {}
        try:
            self._client.put_object(Bucket=self.config.bucket_name, Key=path, Body=data, **extra)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to upload {path}: {e}")
            raise self._wrap('upload', path, e)
        logger.debug(f"Uploaded {path} ({len(data)} bytes)")
        return path

    def download(self, path: str) -> bytes:
        try:
            response = self._client.get_object(Bucket=self.config.bucket_name, Key=path)
            return response['Body'].read()
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to download {path}: {e}")
            raise self._wrap('download', path, e)

    def create_signed_url(self, path: str, expires_in: Optional[int] = None) -> str:
        try:
            return self._client.generate_presigned_url(
                'get_object',
                Params={'Bucket': self.config.bucket_name, 'Key': path},
                ExpiresIn=expires_in or self.config.signed_url_ttl_seconds
            )
        except (ClientError, BotoCoreError) as e:
            raise self._wrap('sign', path, e)

    def remove(self, path: str) -> None:
        try:
            self._client.delete_object(Bucket=self.config.bucket_name, Key=path)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to delete {path}: {e}")
            raise self._wrap('delete', path, e)

    def exists(self, path: str) -> bool:
        try:
            self._client.head_object(Bucket=self.config.bucket_name, Key=path)
            return True
        except ClientError as e:
            if str(e.response.get('Error', {}).get('Code', '')) in _MISSING_CODES:
                return False
            raise self._wrap('head', path, e)
        except BotoCoreError as e:
            raise self._wrap('head', path, e)

"""Blob storage: S3 adapter and content path layout."""

from .s3_utils import S3Storage, S3StorageConfig
from .content_storage import sanitize_filename, raw_path, audio_path_for, frame_path, extension_of

__all__ = [
    'S3Storage',
    'S3StorageConfig',
    'sanitize_filename',
    'raw_path',
    'audio_path_for',
    'frame_path',
    'extension_of',
]

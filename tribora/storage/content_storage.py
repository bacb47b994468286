"""
Storage path layout for content blobs.

    {org}/recordings/{id}/raw.{ext}
    {org}/videos/{id}.{ext}
    {org}/audio/{id}.{ext}
    {org}/documents/{id}.{ext}
    {org}/text/{id}.{ext}
    {org}/frames/{id}/frame_{n:05d}.jpg
"""
import re
from pathlib import PurePosixPath
from typing import Optional

_UNSAFE_FILENAME_CHARS = re.compile(r'[^a-zA-Z0-9._-]')
MAX_FILENAME_LENGTH = 255

_FOLDERS = {
    'video': 'videos',
    'audio': 'audio',
    'document': 'documents',
    'text': 'text',
}


def sanitize_filename(filename: str) -> str:
    """Replace anything outside [a-zA-Z0-9._-] with '_' and cap the length."""
    name = PurePosixPath(filename or '').name
    cleaned = _UNSAFE_FILENAME_CHARS.sub('_', name)
    if len(cleaned) > MAX_FILENAME_LENGTH:
        stem, dot, ext = cleaned.rpartition('.')
        if dot and len(ext) < 16:
            cleaned = stem[:MAX_FILENAME_LENGTH - len(ext) - 1] + '.' + ext
        else:
            cleaned = cleaned[:MAX_FILENAME_LENGTH]
    return cleaned or 'file'


def raw_path(org_id: str, content_id: str, content_type: str, ext: str) -> str:
    ext = ext.lower().lstrip('.')
    if content_type == 'recording':
        return f"{org_id}/recordings/{content_id}/raw.{ext}"
    folder = _FOLDERS.get(content_type)
    if folder is None:
        raise ValueError(f"No storage folder for content type '{content_type}'")
    return f"{org_id}/{folder}/{content_id}.{ext}"


def audio_path_for(source_path: str) -> str:
    """Extracted-audio location next to the source: same stem, .mp3."""
    return str(PurePosixPath(source_path).with_suffix('.mp3'))


def frame_path(org_id: str, content_id: str, frame_number: int) -> str:
    return f"{org_id}/frames/{content_id}/frame_{frame_number:05d}.jpg"


def extension_of(path: Optional[str]) -> str:
    if not path:
        return ''
    return PurePosixPath(path).suffix.lower().lstrip('.')

"""
Tests for storage path layout and filename sanitizing.
"""

import pytest

from tribora.storage.content_storage import (
    audio_path_for, extension_of, frame_path, raw_path, sanitize_filename,
)


class TestPaths:
    def test_raw_paths(self):
        assert raw_path('org', 'abc', 'recording', 'webm') == 'org/recordings/abc/raw.webm'
        assert raw_path('org', 'abc', 'video', '.MP4') == 'org/videos/abc.mp4'
        assert raw_path('org', 'abc', 'document', 'pdf') == 'org/documents/abc.pdf'
        with pytest.raises(ValueError):
            raw_path('org', 'abc', 'hologram', 'bin')

    def test_derived_paths(self):
        assert audio_path_for('org/videos/abc.mov') == 'org/videos/abc.mp3'
        assert frame_path('org', 'abc', 7) == 'org/frames/abc/frame_00007.jpg'
        assert extension_of('org/videos/abc.MOV') == 'mov'
        assert extension_of(None) == ''


class TestSanitizeFilename:
    def test_unsafe_characters(self):
        assert sanitize_filename('../../etc/pass wd?.txt') == 'pass_wd_.txt'
        assert sanitize_filename('') == 'file'

    def test_length_cap_keeps_extension(self):
        cleaned = sanitize_filename('a' * 400 + '.pdf')
        assert len(cleaned) == 255
        assert cleaned.endswith('.pdf')

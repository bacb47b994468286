"""
Tests for the content status machine and per-type stage plans.
"""

import pytest

from tribora.processing.state.pipeline_state import (
    can_transition, chain_for, first_stage, forked_stages, is_terminal,
    next_stage, stage_plan, status_for_stage,
)


class TestStagePlans:
    """Tests for stage_plan / next_stage"""

    def test_video_plan(self):
        assert [s.job_type for s in stage_plan('video')] == [
            'extract_audio', 'transcribe', 'doc_generate', 'generate_embeddings']
        assert forked_stages('video') == ['extract_frames']

    def test_audio_and_recording_start_at_transcribe(self):
        assert first_stage('audio').job_type == 'transcribe'
        assert first_stage('recording').job_type == 'transcribe'
        assert forked_stages('audio') == []

    def test_document_plan_depends_on_file_type(self):
        assert first_stage('document', 'pdf').job_type == 'extract_text_pdf'
        assert first_stage('document', 'docx').job_type == 'extract_text_docx'
        assert first_stage('document', 'doc').job_type == 'extract_text_docx'
        assert next_stage('document', 'pdf', 'extract_text_pdf') is None

    def test_text_note_plan(self):
        nxt = next_stage('text', 'md', 'process_text_note')
        assert nxt.job_type == 'doc_generate'
        assert next_stage('text', 'md', 'doc_generate') is None

    def test_next_stage_rejects_foreign_job(self):
        with pytest.raises(ValueError):
            next_stage('audio', 'mp3', 'extract_audio')

    def test_unknown_content_type(self):
        with pytest.raises(ValueError):
            stage_plan('hologram')


class TestTransitions:
    """Tests for can_transition and terminal states"""

    def test_forward_path(self):
        path = ['uploading', 'uploaded', 'transcribing', 'doc_generating', 'embedding', 'completed']
        for old, new in zip(path, path[1:]):
            assert can_transition(old, new), f"{old} -> {new}"

    def test_no_backwards_moves(self):
        assert not can_transition('embedding', 'transcribing')
        assert not can_transition('doc_generating', 'uploaded')

    def test_error_reachable_from_every_active_status(self):
        for status in ('uploading', 'uploaded', 'transcribing', 'doc_generating', 'embedding'):
            assert can_transition(status, 'error')

    def test_terminal_statuses_are_final(self):
        assert is_terminal('completed') and is_terminal('error')
        assert not can_transition('completed', 'error')
        assert not can_transition('error', 'transcribing')

    def test_status_for_stage(self):
        assert status_for_stage('extract_audio') == 'transcribing'
        assert status_for_stage('generate_embeddings') == 'embedding'
        with pytest.raises(ValueError):
            status_for_stage('extract_frames')

    def test_chain_for(self):
        assert chain_for('transcribe') == 'main'
        assert chain_for('extract_frames') == 'frames'
        assert chain_for('collect_metrics') is None

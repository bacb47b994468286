"""
Tests for the command line parser and config loading.
"""

import pytest

from tribora.cli import build_parser
from tribora.utils.config import load_config


class TestCliParser:
    def test_worker_options(self):
        args = build_parser().parse_args(['--config', 'c.yaml', 'worker', '--size', '3', '--types', 'transcribe'])
        assert args.command == 'worker'
        assert args.size == 3
        assert args.types == 'transcribe'
        assert args.config == 'c.yaml'

    def test_retry_requires_org(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(['retry', 'content-1'])
        args = build_parser().parse_args(['retry', 'content-1', '--org', 'org-a'])
        assert (args.content_id, args.org) == ('content-1', 'org-a')

    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])


class TestLoadConfig:
    def test_env_substitution(self, tmp_path, monkeypatch):
        path = tmp_path / 'config.yaml'
        path.write_text(
            "database:\n  url: ${TEST_DB_URL}\n"
            "storage:\n  s3:\n    bucket_name: ${TEST_MISSING_BUCKET}\n"
            "model_server:\n  base_url: http://${TEST_MODEL_HOST}:8080\n"
        )
        monkeypatch.setenv('TEST_DB_URL', 'postgresql://u:p@db/tribora')
        monkeypatch.setenv('TEST_MODEL_HOST', 'models')
        monkeypatch.delenv('TEST_MISSING_BUCKET', raising=False)

        config = load_config(path)

        assert config['database']['url'] == 'postgresql://u:p@db/tribora'
        assert config['storage']['s3']['bucket_name'] is None
        assert config['model_server']['base_url'] == 'http://models:8080'

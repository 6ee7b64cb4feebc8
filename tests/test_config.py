"""
Tests for configuration loading and source validation.
"""
import os
from pathlib import Path

from ciderpress.config import Config, SourceRootStatus


class TestLoad:
    def test_defaults_when_missing(self, tmp_path):
        config = Config.load(tmp_path / "nope.yaml")
        assert config.engine == "mlx"
        assert config.skip_already_transcribed is True
        assert config.audio_extensions == [".m4a"]
        assert config.engine_timeout == 30

    def test_yaml_values_and_unknown_keys(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "home: ~/cider-test\n"
            "engine: cli\n"
            "engine_timeout: 5\n"
            "audio_extensions: ['.m4a', '.wav']\n"
            "something_else: true\n",
            encoding="utf-8",
        )
        config = Config.load(path)
        assert config.home == Path.home() / "cider-test"
        assert config.engine == "cli"
        assert config.engine_timeout == 5
        assert config.audio_extensions == [".m4a", ".wav"]

    def test_derived_paths(self, tmp_path):
        config = Config(home=tmp_path)
        assert config.db_path == tmp_path / "CiderPress-db.sqlite"
        assert config.audio_dir == tmp_path / "audio"
        assert config.jsonl_path.parent == tmp_path / "logs"
        assert config.jsonl_path.name.startswith("ciderpress_")

    def test_save_then_load(self, tmp_path):
        path = tmp_path / "config.yaml"
        Config(home=tmp_path / "h", engine="cli", transcription_retries=2).save(path)
        loaded = Config.load(path)
        assert loaded.home == tmp_path / "h"
        assert loaded.engine == "cli"
        assert loaded.transcription_retries == 2

    def test_ensure_home(self, tmp_path):
        config = Config(home=tmp_path / "fresh")
        config.ensure_home()
        for d in (config.audio_dir, config.transcript_dir, config.exports_dir, config.logs_dir):
            assert d.is_dir()


class TestValidateSourceRoot:
    def test_not_found(self, tmp_path):
        assert Config(source_root=tmp_path / "missing").validate_source_root() \
            is SourceRootStatus.NOT_FOUND

    def test_no_index(self, tmp_path):
        (tmp_path / "a.m4a").write_bytes(b"x")
        assert Config(source_root=tmp_path).validate_source_root() is SourceRootStatus.NO_INDEX

    def test_no_recordings(self, tmp_path):
        (tmp_path / "CloudRecordings.db").write_bytes(b"")
        assert Config(source_root=tmp_path).validate_source_root() \
            is SourceRootStatus.NO_RECORDINGS

    def test_valid(self, tmp_path):
        (tmp_path / "CloudRecordings.db").write_bytes(b"")
        (tmp_path / "sub").mkdir()
        (tmp_path / "sub" / "a.M4A").write_bytes(b"x")
        assert Config(source_root=tmp_path).validate_source_root() is SourceRootStatus.VALID

    def test_permission_denied(self, tmp_path, monkeypatch):
        def deny(path):
            raise PermissionError(13, "Permission denied", str(path))

        monkeypatch.setattr(os, "listdir", deny)
        assert Config(source_root=tmp_path).validate_source_root() \
            is SourceRootStatus.PERMISSION_DENIED

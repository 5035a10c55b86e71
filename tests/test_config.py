"""
Unit tests for configuration loading
"""

import os

import pytest

from i18n_nsfix.config import NsFixConfig, load_config
from i18n_nsfix.errors import ConfigError


class TestLoadConfig:
    def test_yaml_file(self, tmp_path):
        path = tmp_path / "nsfix.yaml"
        path.write_text(
            "messages_dir: messages\n"
            "source_root: frontend\n"
            "fallback_namespace: shared\n"
            "workers: 2\n"
            "context_dependent_values: [Name, Status]\n"
            "hints:\n"
            "  binding_functions: [useScopedI18n]\n",
            encoding="utf-8",
        )
        cfg = load_config(str(path))
        assert cfg.messages_dir == os.path.join(str(tmp_path), "messages")
        assert cfg.source_root == os.path.join(str(tmp_path), "frontend")
        assert cfg.fallback_namespace == "shared"
        assert cfg.workers == 2
        assert cfg.context_dependent_values == ["Name", "Status"]
        assert cfg.binding_functions == ["useScopedI18n"]
        assert cfg.hints.client_binding_fn == "useTranslations"

    def test_overrides_win_and_none_is_ignored(self, tmp_path):
        path = tmp_path / "nsfix.yaml"
        path.write_text("messages_dir: m\nsource_root: s\nworkers: 2\n", encoding="utf-8")
        cfg = load_config(str(path), workers=8, primary_locale=None, client_binding_fn="useI18n")
        assert cfg.workers == 8
        assert cfg.primary_locale == "en"
        assert cfg.hints.client_binding_fn == "useI18n"

    def test_flags_only(self, tmp_path):
        cfg = load_config(None, messages_dir=str(tmp_path / "m"), source_root=str(tmp_path / "s"))
        assert isinstance(cfg, NsFixConfig)
        assert cfg.messages_dir == str(tmp_path / "m")
        assert cfg.dry_run is False

    def test_unknown_keys(self, tmp_path):
        path = tmp_path / "nsfix.yaml"
        path.write_text("messages_dir: m\nsource_root: s\nverbose: true\n", encoding="utf-8")
        with pytest.raises(ConfigError, match="verbose"):
            load_config(str(path))

    def test_missing_required(self):
        with pytest.raises(ConfigError, match="messages_dir"):
            load_config(None, source_root="s")

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError):
            load_config(str(tmp_path / "nope.yaml"))

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "nsfix.yaml"
        path.write_text("messages_dir: [\n", encoding="utf-8")
        with pytest.raises(ConfigError):
            load_config(str(path))

    def test_top_level_must_be_mapping(self, tmp_path):
        path = tmp_path / "nsfix.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(ConfigError):
            load_config(str(path))

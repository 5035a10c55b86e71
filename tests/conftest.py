"""
Pytest configuration and fixtures
"""

import json
import logging
from pathlib import Path

import pytest

from i18n_nsfix.config import NsFixConfig
from i18n_nsfix.locale_store import LocaleStore


def write_locales(messages_dir: Path, locales: dict) -> None:
    messages_dir.mkdir(parents=True, exist_ok=True)
    for locale, data in locales.items():
        (messages_dir / f"{locale}.json").write_text(json.dumps(data, indent=2), encoding="utf-8")


def read_locale(messages_dir: Path, locale: str) -> dict:
    return json.loads((messages_dir / f"{locale}.json").read_text(encoding="utf-8"))


@pytest.fixture(autouse=True)
def _propagate_logs():
    # the package logger may have been given a stdout handler by a CLI test
    logger = logging.getLogger("i18n-nsfix")
    logger.propagate = True
    yield


@pytest.fixture
def project(tmp_path: Path):
    """A messages dir plus an empty source tree; returns (messages_dir, source_root)."""
    messages = tmp_path / "messages"
    source = tmp_path / "frontend"
    (source / "app").mkdir(parents=True)
    (source / "components").mkdir(parents=True)
    messages.mkdir()
    return messages, source


@pytest.fixture
def make_config(project):
    messages, source = project

    def _make(**kw) -> NsFixConfig:
        kw.setdefault("workers", 1)
        return NsFixConfig(messages_dir=str(messages), source_root=str(source), **kw)

    return _make


@pytest.fixture
def basic_store(tmp_path: Path) -> LocaleStore:
    messages = tmp_path / "store"
    write_locales(messages, {
        "en": {
            "common": {"save": "Save", "cancel": "Cancel", "title": "Title"},
            "blog": {"heading": "Blog"},
            "ext_admin": {"save_btn": "Save", "users": "Users"},
        },
        "fr": {
            "common": {"save": "Enregistrer"},
            "ext_admin": {"save_btn": "Sauvegarder"},
        },
    })
    store = LocaleStore(str(messages), "en")
    store.load()
    return store

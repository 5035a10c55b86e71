from __future__ import annotations
import os
from dataclasses import dataclass, field, fields
from typing import List, Optional

import yaml

from .errors import ConfigError

@dataclass
class ScanHints:
    # Binding functions recognised in `const t = useTranslations("ns")`
    binding_functions: List[str] = field(default_factory=lambda: [
        "useTranslations", "getTranslations",
    ])
    # Used when a scope has no binding to copy the style from
    client_binding_fn: str = "useTranslations"
    server_binding_fn: str = "getTranslations"
    # Higher-order wrappers whose first argument is a component
    function_wrappers: List[str] = field(default_factory=lambda: [
        "memo", "forwardRef", "React.memo", "React.forwardRef", "observer",
    ])

@dataclass
class NsFixConfig:
    messages_dir: str
    source_root: str

    primary_locale: str = "en"
    fallback_namespace: str = "common"
    source_globs: List[str] = field(default_factory=lambda: [
        "app/**/*.tsx", "app/**/*.ts", "components/**/*.tsx", "components/**/*.ts",
    ])
    ignore_globs: List[str] = field(default_factory=lambda: [
        "**/node_modules/**", "**/.next/**",
    ])
    # Short ambiguous values ("name", "status") merged only within related namespaces
    context_dependent_values: List[str] = field(default_factory=list)
    workers: int = 4
    log_level: str = "INFO"
    dry_run: bool = False

    llm_model: str = "gemini-2.0-flash-001"
    cache_path: str = ".nsfix_cache.sqlite"
    qps: float = 1.0
    batch_size: int = 40
    max_retries: int = 5
    backoff_base: float = 1.5

    hints: ScanHints = field(default_factory=ScanHints)

    @property
    def binding_functions(self) -> List[str]:
        return self.hints.binding_functions

_HINT_FIELDS = {f.name for f in fields(ScanHints)}
_CONFIG_FIELDS = {f.name for f in fields(NsFixConfig)} - {"hints"}
_PATH_FIELDS = ("messages_dir", "source_root", "cache_path")

def load_config(path: Optional[str] = None, **overrides) -> NsFixConfig:
    """Build a config from an optional YAML file; non-None overrides win."""
    data: dict = {}
    if path:
        if not os.path.exists(path):
            raise ConfigError(f"Config file not found: {path}")
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"{path}: top level must be a mapping")

    # file paths are relative to the config file, flag paths to the cwd
    base_dir = os.path.dirname(os.path.abspath(path)) if path else os.getcwd()
    for key in _PATH_FIELDS:
        if data.get(key) and not os.path.isabs(str(data[key])):
            data[key] = os.path.join(base_dir, str(data[key]))

    hint_data = data.pop("hints", None) or {}
    if not isinstance(hint_data, dict):
        raise ConfigError("hints must be a mapping")
    for k, v in overrides.items():
        if v is None:
            continue
        if k in _HINT_FIELDS:
            hint_data[k] = v
        elif k in _PATH_FIELDS:
            data[k] = os.path.abspath(v)
        else:
            data[k] = v

    unknown = (set(data) - _CONFIG_FIELDS) | (set(hint_data) - _HINT_FIELDS)
    if unknown:
        raise ConfigError(f"Unknown config keys: {', '.join(sorted(unknown))}")
    for required in ("messages_dir", "source_root"):
        if not data.get(required):
            raise ConfigError(f"Missing required setting: {required}")

    return NsFixConfig(hints=ScanHints(**hint_data), **data)

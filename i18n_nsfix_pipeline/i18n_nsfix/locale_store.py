from __future__ import annotations
import json, logging, os
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Set, Tuple

from .errors import ConfigError, FileWriteError
from .utils import normalize_value, save_text

logger = logging.getLogger("i18n-nsfix")

@dataclass(frozen=True)
class ValueLocation:
    namespace: str
    key: str
    value: str

    def to_dict(self) -> dict:
        return {"namespace": self.namespace, "key": self.key, "value": self.value}


class LocaleStore:
    """
    All locale files of one messages directory, held in memory.

    The primary locale is always first in `locales` and is the only one the
    indices are derived from. Indices are built lazily and dropped by
    `invalidate()`, which every mutating method calls.
    """

    def __init__(self, messages_dir: str, primary_locale: str = "en") -> None:
        self.messages_dir = messages_dir
        self.primary_locale = primary_locale
        self.locales: List[str] = []
        self.messages: Dict[str, dict] = {}
        self.errors: List[dict] = []
        self.generation = 0
        self._unparsable: Set[str] = set()
        self._key_to_namespaces: Optional[Dict[str, Set[str]]] = None
        self._namespace_keys: Optional[Dict[str, Set[str]]] = None
        self._value_locations: Optional[Dict[str, List[ValueLocation]]] = None

    # ---- loading / saving -------------------------------------------------

    @property
    def unparsable(self) -> List[str]:
        return sorted(self._unparsable)

    def path_for(self, locale: str) -> str:
        return os.path.join(self.messages_dir, f"{locale}.json")

    def load(self) -> List[str]:
        primary_path = self.path_for(self.primary_locale)
        if not os.path.isfile(primary_path):
            raise ConfigError(f"Primary locale file not found: {primary_path}")

        found = sorted(f[:-5] for f in os.listdir(self.messages_dir) if f.endswith(".json"))
        found.remove(self.primary_locale)
        self.locales = [self.primary_locale] + found
        self.messages = {}
        self.errors = []
        self._unparsable = set()

        for locale in self.locales:
            path = self.path_for(locale)
            try:
                with open(path, "r", encoding="utf-8-sig") as f:
                    data = json.load(f)
                if not isinstance(data, dict):
                    raise ValueError("top level is not an object")
            except (OSError, ValueError) as e:
                logger.warning(f"Locale {locale} unreadable, treated as empty: {e}")
                self.errors.append({"file": path, "error": str(e)})
                self._unparsable.add(locale)
                data = {}
            self.messages[locale] = data

        self.invalidate()
        logger.info(f"Loaded {len(self.locales)} locale(s), primary={self.primary_locale}")
        return self.locales

    def save(self) -> List[FileWriteError]:
        """Persist every parsable locale with sorted namespaces and keys."""
        failures: List[FileWriteError] = []
        for locale in self.locales:
            if locale in self._unparsable:
                logger.warning(f"Not writing {locale}: file could not be parsed on load")
                continue
            path = self.path_for(locale)
            try:
                save_text(path, json.dumps(self._sorted(self.messages[locale]), ensure_ascii=False, indent=2) + "\n")
            except OSError as e:
                err = FileWriteError(path, str(e))
                logger.warning(str(err))
                self.errors.append({"file": path, "error": str(e)})
                failures.append(err)
        self.invalidate()
        return failures

    @staticmethod
    def _sorted(messages: dict) -> dict:
        out = {}
        for ns in sorted(messages):
            data = messages[ns]
            if isinstance(data, dict):
                out[ns] = {k: data[k] for k in sorted(data)}
            else:
                out[ns] = data
        return out

    # ---- indices ----------------------------------------------------------

    def invalidate(self) -> None:
        self._key_to_namespaces = None
        self._namespace_keys = None
        self._value_locations = None
        self.generation += 1

    @property
    def primary(self) -> dict:
        return self.messages.setdefault(self.primary_locale, {})

    def _iter_primary_strings(self) -> Iterable[Tuple[str, str, str]]:
        for ns, data in self.primary.items():
            if not isinstance(data, dict):
                continue
            for key, value in data.items():
                if isinstance(value, str):
                    yield ns, key, value

    def _build_indices(self) -> None:
        key_to_ns: Dict[str, Set[str]] = {}
        ns_keys: Dict[str, Set[str]] = {}
        values: Dict[str, List[ValueLocation]] = {}
        for ns, data in self.primary.items():
            if isinstance(data, dict):
                ns_keys.setdefault(ns, set())
        for ns, key, value in self._iter_primary_strings():
            ns_keys[ns].add(key)
            key_to_ns.setdefault(key, set()).add(ns)
            values.setdefault(normalize_value(value), []).append(ValueLocation(ns, key, value))
        self._key_to_namespaces = key_to_ns
        self._namespace_keys = ns_keys
        self._value_locations = values

    def namespaces(self) -> List[str]:
        if self._namespace_keys is None:
            self._build_indices()
        return sorted(self._namespace_keys)

    def namespace_exists(self, namespace: str) -> bool:
        if self._namespace_keys is None:
            self._build_indices()
        return namespace in self._namespace_keys

    def get_namespace_keys(self, namespace: str) -> Set[str]:
        if self._namespace_keys is None:
            self._build_indices()
        return set(self._namespace_keys.get(namespace, ()))

    def has_key(self, namespace: str, key: str) -> bool:
        if self._namespace_keys is None:
            self._build_indices()
        return key in self._namespace_keys.get(namespace, ())

    def find_namespaces_containing(self, key: str) -> List[str]:
        if self._key_to_namespaces is None:
            self._build_indices()
        return sorted(self._key_to_namespaces.get(key, ()))

    def value_locations(self) -> Dict[str, List[ValueLocation]]:
        if self._value_locations is None:
            self._build_indices()
        return self._value_locations

    def get_value(self, namespace: str, key: str, locale: Optional[str] = None) -> Optional[str]:
        data = self.messages.get(locale or self.primary_locale, {}).get(namespace)
        if isinstance(data, dict):
            value = data.get(key)
            if isinstance(value, str):
                return value
        return None

    def total_keys(self) -> int:
        return sum(1 for _ in self._iter_primary_strings())

    # ---- mutation ---------------------------------------------------------

    def copy_key(self, sources: List[Tuple[str, str]], to_namespace: str, to_key: str) -> bool:
        """
        Add `to_namespace.to_key` to every locale where it is absent. Each
        locale gets its own value from the first source it has, else the
        primary locale's value. Returns True when the primary locale changed.
        """
        primary_value = None
        for ns, key in sources:
            primary_value = self.get_value(ns, key)
            if primary_value is not None:
                break
        if primary_value is None:
            primary_value = self.get_value(to_namespace, to_key)
        if primary_value is None:
            return False

        added_primary = False
        for locale in self.locales:
            target = self.messages[locale].setdefault(to_namespace, {})
            if not isinstance(target, dict) or isinstance(target.get(to_key), str):
                continue
            value = next(
                (v for v in (self.get_value(ns, key, locale) for ns, key in sources) if v),
                primary_value,
            )
            target[to_key] = value
            if locale == self.primary_locale:
                added_primary = True
        self.invalidate()
        return added_primary

    def delete_key(self, namespace: str, key: str) -> bool:
        """Remove `namespace.key` from every locale. True if primary had it."""
        deleted_primary = False
        for locale in self.locales:
            data = self.messages[locale].get(namespace)
            if isinstance(data, dict) and key in data:
                del data[key]
                if locale == self.primary_locale:
                    deleted_primary = True
        self.invalidate()
        return deleted_primary

    def move_key(self, from_namespace: str, from_key: str, to_namespace: str, to_key: str) -> bool:
        if (from_namespace, from_key) == (to_namespace, to_key):
            return False
        self.copy_key([(from_namespace, from_key)], to_namespace, to_key)
        return self.delete_key(from_namespace, from_key)

    def add_value(self, namespace: str, key: str, value: str) -> bool:
        """Add a brand new key with the same value in every locale (add-if-absent)."""
        added = False
        for locale in self.locales:
            target = self.messages[locale].setdefault(namespace, {})
            if isinstance(target, dict) and not isinstance(target.get(key), str):
                target[key] = value
                added = added or locale == self.primary_locale
        self.invalidate()
        return added

    # ---- sync -------------------------------------------------------------

    def missing_in(self, locale: str) -> List[Tuple[str, str]]:
        out = []
        for ns, key, _ in self._iter_primary_strings():
            if self.get_value(ns, key, locale) is None:
                out.append((ns, key))
        return sorted(out)

    def orphans_in(self, locale: str) -> List[Tuple[str, str]]:
        """Keys a secondary locale has that the primary locale lacks."""
        out = []
        for ns, data in self.messages.get(locale, {}).items():
            if not isinstance(data, dict):
                continue
            for key, value in data.items():
                if isinstance(value, str) and self.get_value(ns, key) is None:
                    out.append((ns, key))
        return sorted(out)

    def sync_from_primary(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for locale in self.locales[1:]:
            if locale in self._unparsable:
                continue
            missing = self.missing_in(locale)
            for ns, key in missing:
                target = self.messages[locale].setdefault(ns, {})
                if isinstance(target, dict):
                    target[key] = self.get_value(ns, key)
            counts[locale] = len(missing)
        self.invalidate()
        return counts

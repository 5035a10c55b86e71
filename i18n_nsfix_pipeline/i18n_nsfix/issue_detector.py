from __future__ import annotations
import hashlib, logging
from dataclasses import asdict, dataclass, field
from typing import Dict, Iterable, List, Optional

from .locale_store import LocaleStore
from .scope_resolver import ResolvedCall, ScanResult
from .utils import namespace_sort_key

logger = logging.getLogger("i18n-nsfix")

WRONG_NAMESPACE = "wrong_namespace"
MISSING_KEY = "missing_key"
UNDECLARED_VARIABLE = "undeclared_variable"
DUPLICATE_VALUE = "duplicate_value"
ISSUE_TYPES = (WRONG_NAMESPACE, MISSING_KEY, UNDECLARED_VARIABLE, DUPLICATE_VALUE)


@dataclass
class Issue:
    id: str
    type: str
    file: str
    accessor: str
    key: str
    original_key: str
    offset: int
    line: int
    current_namespace: Optional[str] = None
    correct_namespace: Optional[str] = None
    available_namespaces: List[str] = field(default_factory=list)
    has_namespace_prefix: bool = False
    suggestion: str = ""

    @property
    def fixable(self) -> bool:
        return self.type in (WRONG_NAMESPACE, UNDECLARED_VARIABLE) and bool(self.correct_namespace)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: dict) -> "Issue":
        return cls(**{k: d[k] for k in cls.__dataclass_fields__ if k in d})


def issue_id(file: str, offset: int, accessor: str, key: str) -> str:
    h = hashlib.sha1(f"{file}\0{offset}\0{accessor}\0{key}".encode("utf-8")).hexdigest()
    return f"iss_{h[:12]}"


def pick_namespace(candidates: Iterable[str], bound_in_file: Iterable[str] = (), fallback: str = "common") -> Optional[str]:
    """
    Namespace-selection policy: a candidate already bound in the file, else the
    fallback namespace, else the least specific candidate. Ties alphabetical.
    """
    cands = sorted(set(candidates), key=namespace_sort_key)
    if not cands:
        return None
    bound = set(bound_in_file)
    in_file = [ns for ns in cands if ns in bound]
    if in_file:
        return in_file[0]
    if fallback in cands:
        return fallback
    return cands[0]


def split_namespace_prefix(key: str, store: LocaleStore) -> Optional[tuple]:
    """`"ns.key"` -> ("ns", "key") when that pair exists in the primary locale."""
    if "." not in key:
        return None
    ns, rest = key.split(".", 1)
    if ns and rest and store.has_key(ns, rest):
        return ns, rest
    return None


class IssueDetector:
    def __init__(self, store: LocaleStore, fallback_namespace: str = "common") -> None:
        self.store = store
        self.fallback_namespace = fallback_namespace

    def detect(self, scan: ScanResult, file_label: Optional[str] = None) -> List[Issue]:
        label = file_label or scan.path
        bound = scan.namespaces_bound()
        issues: List[Issue] = []
        for rc in scan.calls:
            issue = self._classify(rc, bound, label)
            if issue is not None:
                issues.append(issue)
        if issues:
            logger.debug(f"{label}: {len(issues)} issue(s)")
        return issues

    def _classify(self, rc: ResolvedCall, bound: List[str], label: str) -> Optional[Issue]:
        call = rc.call
        base = dict(
            file=label, accessor=call.name, key=call.key, original_key=call.key,
            offset=call.start, line=call.line,
            id=issue_id(label, call.start, call.name, call.key),
        )

        if rc.binding is None:
            prefixed = split_namespace_prefix(call.key, self.store)
            if prefixed:
                available, key = [prefixed[0]], prefixed[1]
            else:
                available, key = self.store.find_namespaces_containing(call.key), call.key
            if not available:
                # nothing to suggest
                return None
            target = pick_namespace(available, bound, self.fallback_namespace)
            base.update(key=key, has_namespace_prefix=bool(prefixed))
            return Issue(
                type=UNDECLARED_VARIABLE, available_namespaces=available, correct_namespace=target,
                suggestion=f"No binding governs {call.name}(); declare one for \"{target}\"",
                **base,
            )

        current = rc.binding.namespace
        if self.store.has_key(current, call.key):
            return None

        prefixed = split_namespace_prefix(call.key, self.store)
        if prefixed:
            ns, key = prefixed
            base.update(key=key, has_namespace_prefix=True)
            return Issue(
                type=WRONG_NAMESPACE, current_namespace=current, correct_namespace=ns,
                available_namespaces=[ns],
                suggestion=f"Strip the \"{ns}.\" prefix and use a binding for \"{ns}\"",
                **base,
            )

        available = self.store.find_namespaces_containing(call.key)
        if not available:
            return Issue(
                type=MISSING_KEY, current_namespace=current,
                suggestion=f"Add \"{call.key}\" to \"{current}\"",
                **base,
            )
        target = pick_namespace(available, bound, self.fallback_namespace)
        return Issue(
            type=WRONG_NAMESPACE, current_namespace=current, correct_namespace=target,
            available_namespaces=available,
            suggestion=f"Use a binding for \"{target}\" instead of \"{current}\"",
            **base,
        )


def count_by_type(issues: Iterable[Issue]) -> Dict[str, int]:
    counts = {t: 0 for t in ISSUE_TYPES}
    for i in issues:
        counts[i.type] = counts.get(i.type, 0) + 1
    return counts

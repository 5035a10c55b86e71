from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Set, Tuple

from .errors import OverlappingEditError, TextMismatchError
from .locale_store import LocaleStore

logger = logging.getLogger("i18n-nsfix")


@dataclass(frozen=True)
class Edit:
    """Replace text[start:end] with `text`. start == end is a pure insertion.

    `expected`, when given, must equal the original span or the edit is
    skipped.
    """
    start: int
    end: int
    text: str
    expected: Optional[str] = None

    @property
    def is_insertion(self) -> bool:
        return self.start == self.end

    @classmethod
    def insert(cls, at: int, text: str) -> "Edit":
        return cls(at, at, text)

    @classmethod
    def remove(cls, start: int, end: int, expected: Optional[str] = None) -> "Edit":
        return cls(start, end, "", expected)


def _check_overlaps(edits: List[Edit]) -> None:
    ordered = sorted(edits, key=lambda e: (e.start, e.end))
    for a, b in zip(ordered, ordered[1:]):
        if b.start < a.end:
            raise OverlappingEditError(f"Edits overlap: [{a.start},{a.end}) and [{b.start},{b.end})")
        if a.start == b.start and a.is_insertion and b.is_insertion:
            raise OverlappingEditError(f"Two insertions at offset {a.start}")


def apply_edits(text: str, edits: Iterable[Edit]) -> Tuple[str, List[TextMismatchError]]:
    """
    Rewrite `text` in one pass from an unordered batch of non-overlapping edits.

    Every offset refers to the original text, so the result does not depend
    on the order the edits are given in. Overlapping spans raise
    OverlappingEditError before anything is applied. An edit whose expected
    text is not found is skipped and returned as a TextMismatchError.
    """
    batch = list(edits)
    for e in batch:
        if not (0 <= e.start <= e.end <= len(text)):
            raise OverlappingEditError(f"Edit [{e.start},{e.end}) outside text of length {len(text)}")
    _check_overlaps(batch)

    skipped: List[TextMismatchError] = []
    out: List[str] = []
    pos = 0
    # insertions sort before a replacement starting at the same offset
    for e in sorted(batch, key=lambda e: (e.start, not e.is_insertion)):
        if e.expected is not None and text[e.start:e.end] != e.expected:
            err = TextMismatchError(e.start, e.expected, text[e.start:e.end])
            logger.warning(f"Skipping edit: {err}")
            skipped.append(err)
            continue
        out.append(text[pos:e.start])
        out.append(e.text)
        pos = e.end
    out.append(text[pos:])
    return "".join(out), skipped


@dataclass(frozen=True)
class KeyMove:
    from_namespace: str
    from_key: str
    to_namespace: str
    to_key: str

    @property
    def source(self) -> Tuple[str, str]:
        return self.from_namespace, self.from_key

    @property
    def target(self) -> Tuple[str, str]:
        return self.to_namespace, self.to_key

    def to_dict(self) -> dict:
        return {"from": f"{self.from_namespace}.{self.from_key}", "to": f"{self.to_namespace}.{self.to_key}"}


def apply_moves(store: LocaleStore, moves: Iterable[KeyMove]) -> Tuple[List[Tuple[str, str]], List[Tuple[str, str]]]:
    """
    Apply key moves to the in-memory store: every destination is filled
    (add-if-absent, all locales) before any source is deleted, and each
    distinct source is deleted once. A key that is also some move's
    destination is never deleted. Returns the (namespace, key) pairs added
    and deleted on the primary locale.
    """
    moves = [m for m in moves if m.source != m.target]
    targets: Set[Tuple[str, str]] = {m.target for m in moves}

    sources_by_target = {}
    for m in moves:
        sources_by_target.setdefault(m.target, []).append(m.source)

    added: List[Tuple[str, str]] = []
    for (ns, key), sources in sources_by_target.items():
        if store.copy_key(sources, ns, key):
            added.append((ns, key))

    deleted: List[Tuple[str, str]] = []
    done: Set[Tuple[str, str]] = set()
    for m in moves:
        if m.source in done or m.source in targets:
            continue
        done.add(m.source)
        if store.get_value(*m.target) is None:
            logger.warning(f"Keeping {m.from_namespace}.{m.from_key}: {m.to_namespace}.{m.to_key} was not created")
            continue
        if store.delete_key(*m.source):
            deleted.append(m.source)
    return added, deleted

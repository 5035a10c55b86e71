from __future__ import annotations
import os, re, tempfile
from bisect import bisect_right
from typing import Iterable, List

WHITESPACE_RE = re.compile(r"[\s ]+")
NAMESPACE_SEP = "_"

def normalize_space(s: str) -> str:
    return WHITESPACE_RE.sub(" ", s).strip()

def normalize_value(value) -> str:
    """Comparison form of a translation value: trimmed, case-folded,
    whitespace collapsed, typographic quotes folded to ASCII."""
    if not isinstance(value, str):
        return ""
    s = normalize_space(value).casefold()
    s = s.replace("‘", "'").replace("’", "'")
    s = s.replace("“", '"').replace("”", '"')
    return s

def namespace_segments(namespace: str) -> List[str]:
    return namespace.split(NAMESPACE_SEP)

def namespace_depth(namespace: str) -> int:
    return len(namespace_segments(namespace))

def common_ancestor(namespaces: Iterable[str], fallback: str = "common") -> str:
    """Deepest underscore prefix shared by every namespace, or the fallback
    namespace when the roots differ."""
    nss = sorted(set(namespaces))
    if not nss:
        return fallback
    if len(nss) == 1:
        return nss[0]
    parts = [namespace_segments(ns) for ns in nss]
    if len({p[0] for p in parts}) != 1:
        return fallback
    min_depth = min(len(p) for p in parts)
    for depth in range(min_depth, 0, -1):
        prefixes = {NAMESPACE_SEP.join(p[:depth]) for p in parts}
        if len(prefixes) == 1:
            return prefixes.pop()
    return parts[0][0]

def namespace_sort_key(namespace: str):
    return (namespace_depth(namespace), len(namespace), namespace)

def translator_var_name(namespace: str) -> str:
    # common -> tCommon, ext_admin -> tExtAdmin, ext_copy-trading -> tExtCopyTrading
    parts = [p for p in re.split(r"[-_]", namespace) if p]
    camel = "".join(p[:1].upper() + p[1:] for p in parts)
    return "t" + (camel or "Ns")

def load_text(path: str) -> str:
    # utf-8-sig only strips a leading BOM
    with open(path, "r", encoding="utf-8-sig") as f:
        return f.read()

def save_text(path: str, text: str) -> None:
    """Write through a temp file in the same directory, then rename over."""
    directory = os.path.dirname(path) or "."
    os.makedirs(directory, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=".nsfix-", dir=directory)
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
            f.write(text)
        if os.path.exists(path):
            os.chmod(tmp, os.stat(path).st_mode & 0o7777)
        os.replace(tmp, path)
    except BaseException:
        if os.path.exists(tmp):
            os.unlink(tmp)
        raise

class LineIndex:
    """Offset -> 1-based line number lookups for one text."""

    def __init__(self, text: str) -> None:
        self.starts = [0] + [m.end() for m in re.finditer(r"\n", text)]

    def line_of(self, offset: int) -> int:
        return bisect_right(self.starts, offset)

    def line_start(self, offset: int) -> int:
        return self.starts[self.line_of(offset) - 1]

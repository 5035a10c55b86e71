from __future__ import annotations
import logging, os, re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional

from .issue_detector import MISSING_KEY, Issue
from .locale_store import LocaleStore
from .suggester_base import Suggester
from .utils import load_text, normalize_space

logger = logging.getLogger("i18n-nsfix")

CONTEXT_LINES = 5
MAX_CONTEXT_CHARS = 500

# --------- missing-key report ---------

def _now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")

def _context(lines: List[str], line: int) -> str:
    lo = max(0, line - 1 - CONTEXT_LINES)
    hi = min(len(lines), line + CONTEXT_LINES)
    return "\n".join(lines[lo:hi])[:MAX_CONTEXT_CHARS]

def build_missing_report(issues: List[Issue], source_root: str) -> dict:
    """Unique missing keys per namespace with every file/line that uses them."""
    missing = [i for i in issues if i.type == MISSING_KEY]
    file_lines: Dict[str, List[str]] = {}
    by_namespace: Dict[str, Dict[str, dict]] = {}
    by_file: Dict[str, List[dict]] = {}

    for issue in missing:
        if issue.file not in file_lines:
            try:
                file_lines[issue.file] = load_text(os.path.join(source_root, issue.file)).splitlines()
            except (OSError, UnicodeDecodeError) as e:
                logger.warning(f"No context for {issue.file}: {e}")
                file_lines[issue.file] = []
        ns = issue.current_namespace or ""
        entry = by_namespace.setdefault(ns, {}).setdefault(
            issue.key, {"key": issue.key, "namespace": ns, "files": []}
        )
        entry["files"].append({
            "file": issue.file,
            "line": issue.line,
            "context": _context(file_lines[issue.file], issue.line),
        })
        by_file.setdefault(issue.file, []).append({"key": issue.key, "namespace": ns, "line": issue.line})

    unique = {ns: list(keys.values()) for ns, keys in sorted(by_namespace.items())}
    return {
        "generated_at": _now(),
        "summary": {
            "total_missing_keys": len(missing),
            "unique_keys": sum(len(v) for v in unique.values()),
            "files_with_issues": len(by_file),
            "namespaces_affected": len(unique),
        },
        "by_namespace": unique,
        "by_file": by_file,
    }

# --------- heuristic suggestions ---------

_ABBREVIATIONS = [
    (r"\bQr\b", "QR", re.I), (r"\bId\b", "ID", 0), (r"\bUrl\b", "URL", re.I),
    (r"\bApi\b", "API", re.I), (r"\bUi\b", "UI", re.I), (r"\bKyc\b", "KYC", re.I),
    (r"\bNft\b", "NFT", re.I), (r"\bP2p\b", "P2P", re.I), (r"\bIco\b", "ICO", re.I),
    (r"\bAi\b", "AI", re.I), (r"\bVs\b", "vs", re.I), (r"\bOps\b", "Oops", re.I),
]
_CONTRACTIONS = [
    ("Dont", "Don't"), ("Cant", "Can't"), ("Wont", "Won't"), ("Isnt", "Isn't"),
    ("Arent", "Aren't"), ("Havent", "Haven't"), ("Hasnt", "Hasn't"), ("Didnt", "Didn't"),
    ("Doesnt", "Doesn't"), ("Couldnt", "Couldn't"), ("Shouldnt", "Shouldn't"),
    ("Wouldnt", "Wouldn't"), ("Youre", "You're"), ("Theyre", "They're"), ("Weve", "We've"),
    ("Youve", "You've"), ("Theyve", "They've"), ("Lets", "Let's"),
]
_QUESTION_MARKERS = ("_do_", "_is_", "_are_", "_can_", "_how_", "_what_", "_why_", "_when_", "_where_")

def readable_value(key: str) -> str:
    """delete_confirm_title -> "Delete Confirm Title", api_url_id -> "API URL ID"."""
    s = key.replace("_", " ")
    s = re.sub(r"\b\w", lambda m: m.group(0).upper(), s)
    for pattern, repl, flags in _ABBREVIATIONS:
        s = re.sub(pattern, repl, s, flags=flags)
    s = re.sub(r"\bN\s+(\d)", r"\1", s)
    for word, repl in _CONTRACTIONS:
        s = re.sub(r"\b" + word + r"\b", repl, s, flags=re.I)
    # "Its" may be possessive; only the capitalised form is rewritten
    s = re.sub(r"\bIts\b", "It's", s)
    s = re.sub(r"\bEllipsis\b", "...", s, flags=re.I)
    s = re.sub(r"\s+1$", "", s)
    return s.strip()

def categorize_key(key: str, context: str = "") -> str:
    k, c = key.lower(), context.lower()
    if any(w in k for w in ("error", "failed", "invalid")):
        return "error"
    if any(w in k for w in ("success", "completed", "created")):
        return "success"
    if any(w in k for w in ("loading", "processing", "wait")):
        return "loading"
    if any(w in k for w in ("confirm", "delete", "remove", "cancel")):
        return "action"
    if any(w in k for w in ("title", "heading", "header")):
        return "title"
    if any(w in k for w in ("description", "desc", "info")):
        return "description"
    if any(w in k for w in ("placeholder", "search", "enter")):
        return "placeholder"
    if "button" in k or "button" in c or "onclick" in c:
        return "button"
    if "label" in k or "field" in k:
        return "label"
    return "general"

class HeuristicSuggester(Suggester):
    """Readable value from the key itself, nudged by the usage context."""

    def suggest(self, key: str, context: str = "") -> str:
        s = readable_value(key)
        k, c = key.lower(), context.lower()
        if "button" in c or "onclick" in c:
            s = re.sub(r"^The\s+", "", s, flags=re.I)
        if any(w in c or w in k for w in ("error", "failed")) and "." not in s:
            s += "."
        if any(w in c for w in ("label", "title", "heading")):
            s = s.rstrip(".")
        if "placeholder" in c and "search" in k and not s.lower().startswith(("enter", "select", "search")):
            s = "Search " + s.lower()
        if any(m in k for m in _QUESTION_MARKERS) and not s.endswith("?"):
            s += "?"
        return normalize_space(s)

    def suggest_batch(self, items: List[dict]) -> List[str]:
        return [self.suggest(it["key"], it.get("context", "")) for it in items]

# --------- suggestion file ---------

INSTRUCTIONS = [
    "Review each suggested value below.",
    "Edit the 'suggested' value if needed.",
    "Set 'approved' to true for keys you want to add.",
    "Run the import command to add approved keys to every locale file.",
]

def build_suggestions(report: dict, suggester: Suggester, batch_size: int = 40) -> dict:
    entries: List[dict] = []
    for ns, keys in report.get("by_namespace", {}).items():
        for k in keys:
            files = k.get("files") or []
            entries.append({
                "namespace": ns,
                "key": k["key"],
                "context": files[0].get("context", "") if files else "",
                "files": files,
            })

    values: List[str] = []
    size = max(batch_size, 1)
    for i in range(0, len(entries), size):
        values.extend(suggester.suggest_batch(entries[i:i + size]))

    by_namespace: Dict[str, List[dict]] = {}
    for entry, value in zip(entries, values):
        by_namespace.setdefault(entry["namespace"], []).append({
            "key": entry["key"],
            "suggested": value,
            "category": categorize_key(entry["key"], entry["context"]),
            "approved": False,
            "files": entry["files"],
        })
    return {
        "generated_at": _now(),
        "summary": dict(report.get("summary", {}), status="pending_review"),
        "instructions": INSTRUCTIONS,
        "by_namespace": by_namespace,
    }

@dataclass
class ImportResult:
    added: List[str] = field(default_factory=list)
    skipped: int = 0

def import_suggestions(store: LocaleStore, suggestions: dict, approve_all: bool = False) -> ImportResult:
    """
    Add approved suggestions to every locale (add-if-absent). The store is
    only mutated in memory; the caller saves it.
    """
    result = ImportResult()
    for ns, keys in suggestions.get("by_namespace", {}).items():
        for k in keys:
            value: Optional[str] = k.get("suggested")
            if not approve_all and not k.get("approved"):
                result.skipped += 1
                continue
            if not isinstance(value, str) or not value.strip():
                logger.info(f"Skipping {ns}.{k.get('key')}: no suggestion")
                result.skipped += 1
                continue
            if store.add_value(ns, k["key"], value):
                result.added.append(f"{ns}.{k['key']}")
            k["imported"] = True
    summary = suggestions.setdefault("summary", {})
    summary["imported_count"] = summary.get("imported_count", 0) + len(result.added)
    return result

from __future__ import annotations
import concurrent.futures, fnmatch, glob, logging, os, threading
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from .config import NsFixConfig
from .errors import FileWriteError, NoSelectionError, NsFixError
from .fix_planner import (
    DuplicateGroup, MergePolicy, context_dependent_policy, duplicate_retargets,
    find_duplicate_groups, plan_file_fixes,
)
from .issue_detector import DUPLICATE_VALUE, Issue, IssueDetector, count_by_type
from .locale_store import LocaleStore
from .rewriter import apply_edits, apply_moves
from .scope_resolver import ScanResult, ScopeResolver
from .utils import namespace_depth, save_text

logger = logging.getLogger("i18n-nsfix")


@dataclass
class AnalysisResult:
    issues: List[Issue] = field(default_factory=list)
    duplicate_groups: List[DuplicateGroup] = field(default_factory=list)
    stats: Dict[str, object] = field(default_factory=dict)
    namespaces: List[dict] = field(default_factory=list)
    errors: List[dict] = field(default_factory=list)

    def ids(self) -> List[str]:
        return [g.id for g in self.duplicate_groups] + [i.id for i in self.issues]

    def fixable_issue_ids(self) -> List[str]:
        return [i.id for i in self.issues if i.fixable]

    def to_dict(self) -> dict:
        return {
            "stats": self.stats,
            "issues": [i.to_dict() for i in self.issues],
            "duplicate_groups": [g.to_dict() for g in self.duplicate_groups],
            "namespaces": self.namespaces,
            "errors": self.errors,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "AnalysisResult":
        return cls(
            issues=[Issue.from_dict(i) for i in d.get("issues", [])],
            duplicate_groups=[DuplicateGroup.from_dict(g) for g in d.get("duplicate_groups", [])],
            stats=dict(d.get("stats", {})),
            namespaces=list(d.get("namespaces", [])),
            errors=list(d.get("errors", [])),
        )


@dataclass
class ApplyResult:
    keys_moved: int = 0
    keys_deleted: int = 0
    locales_updated: int = 0
    source_files_updated: int = 0
    source_calls_fixed: int = 0
    changes: List[str] = field(default_factory=list)
    skipped: List[dict] = field(default_factory=list)
    errors: List[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "keys_moved": self.keys_moved,
            "keys_deleted": self.keys_deleted,
            "locales_updated": self.locales_updated,
            "source_files_updated": self.source_files_updated,
            "source_calls_fixed": self.source_calls_fixed,
            "changes": self.changes,
            "skipped": self.skipped,
            "errors": self.errors,
        }


class NamespaceOptimizer:
    """
    analyze(): load the locales, scan every source file, report issues and
    duplicate-value groups.
    apply_fixes(): apply the selected groups/issues to the locales and the
    affected source files.
    """

    def __init__(self, config: NsFixConfig, store: Optional[LocaleStore] = None, policy: Optional[MergePolicy] = None) -> None:
        self.config = config
        self.store = store or LocaleStore(config.messages_dir, config.primary_locale)
        if policy is None and config.context_dependent_values:
            policy = context_dependent_policy(config.context_dependent_values)
        self.policy = policy
        self.resolver = ScopeResolver(config.hints)
        self._lock = threading.Lock()

    # ---- files ------------------------------------------------------------

    def relpath(self, path: str) -> str:
        return os.path.relpath(path, self.config.source_root).replace(os.sep, "/")

    def _ignored(self, rel: str) -> bool:
        return any(fnmatch.fnmatch(rel, p) or fnmatch.fnmatch("/" + rel, p) for p in self.config.ignore_globs)

    def discover_files(self) -> List[str]:
        root = self.config.source_root
        found = set()
        for pattern in self.config.source_globs:
            for path in glob.glob(os.path.join(root, pattern), recursive=True):
                if os.path.isfile(path) and not self._ignored(self.relpath(path)):
                    found.add(os.path.abspath(path))
        return sorted(found)

    def scan_all(self, files: List[str]) -> List[ScanResult]:
        if self.config.workers <= 1 or len(files) <= 1:
            return [self.resolver.scan_file(f) for f in files]
        with concurrent.futures.ThreadPoolExecutor(max_workers=self.config.workers) as executor:
            # map keeps file order
            return list(executor.map(self.resolver.scan_file, files))

    # ---- analyze ----------------------------------------------------------

    def analyze(self) -> AnalysisResult:
        with self._lock:
            return self._analyze()

    def _analyze(self) -> AnalysisResult:
        self.store.load()
        files = self.discover_files()
        logger.info(f"Scanning {len(files)} source file(s) under {self.config.source_root}")
        scans = self.scan_all(files)

        detector = IssueDetector(self.store, self.config.fallback_namespace)
        issues: List[Issue] = []
        errors: List[dict] = list(self.store.errors)
        scanned = 0
        for scan in scans:
            if not scan.ok:
                errors.append({"file": self.relpath(scan.path), "error": str(scan.error)})
                continue
            scanned += 1
            issues.extend(detector.detect(scan, self.relpath(scan.path)))

        groups = find_duplicate_groups(self.store, self.config.fallback_namespace, self.policy)
        by_type = count_by_type(issues)
        by_type[DUPLICATE_VALUE] = len(groups)

        stats = {
            "namespace_count": len(self.store.namespaces()),
            "total_keys": self.store.total_keys(),
            "duplicate_value_count": len(groups),
            "potential_savings": sum(g.savings for g in groups),
            "files_scanned": scanned,
            "broken_calls_count": len(issues),
            "files_with_issues": len({i.file for i in issues}),
            "issues_by_type": by_type,
        }
        logger.info(
            f"Found {len(issues)} broken call(s) in {stats['files_with_issues']} file(s), "
            f"{len(groups)} duplicate group(s), potential savings {stats['potential_savings']}"
        )
        return AnalysisResult(
            issues=issues, duplicate_groups=groups, stats=stats,
            namespaces=self._namespace_stats(groups), errors=errors,
        )

    def _namespace_stats(self, groups: List[DuplicateGroup]) -> List[dict]:
        dup_counts: Dict[str, int] = {}
        for g in groups:
            for loc in g.locations:
                dup_counts[loc.namespace] = dup_counts.get(loc.namespace, 0) + 1
        return [
            {
                "namespace": ns,
                "keys": len(self.store.get_namespace_keys(ns)),
                "depth": namespace_depth(ns),
                "duplicate_keys": dup_counts.get(ns, 0),
            }
            for ns in self.store.namespaces()
        ]

    # ---- apply ------------------------------------------------------------

    def apply_fixes(self, selected_ids: Iterable[str], analysis: AnalysisResult, dry_run: Optional[bool] = None) -> ApplyResult:
        """
        Apply the selected duplicate groups and issues. Locale moves run first
        in memory, then every affected file is rescanned and planned against
        the moved keys; nothing is written until every plan is computed.
        """
        dry_run = self.config.dry_run if dry_run is None else dry_run
        ids = set(selected_ids or ())
        groups = [g for g in analysis.duplicate_groups if g.id in ids]
        issues = [i for i in analysis.issues if i.id in ids]
        for i in issues:
            if not i.fixable:
                logger.warning(f"{i.id} ({i.type}) cannot be fixed automatically; skipping")
        issues = [i for i in issues if i.fixable]
        if not groups and not issues:
            raise NoSelectionError("No fixable duplicate group or issue selected")

        with self._lock:
            return self._apply(groups, issues, dry_run)

    def _apply(self, groups: List[DuplicateGroup], issues: List[Issue], dry_run: bool) -> ApplyResult:
        result = ApplyResult()
        self.store.load()
        result.errors.extend(self.store.errors)

        moves = [m for g in groups for m in g.moves()]
        added, deleted = apply_moves(self.store, moves)
        result.keys_moved, result.keys_deleted = len(added), len(deleted)
        result.changes.extend(f"Added: {ns}.{key}" for ns, key in added)
        result.changes.extend(f"Removed: {ns}.{key}" for ns, key in deleted)
        moved_to = {m.source: m.target for m in moves}

        issues_by_file: Dict[str, List[Issue]] = {}
        for i in issues:
            issues_by_file.setdefault(i.file, []).append(i)

        if moves:
            files = self.discover_files()
        else:
            files = [os.path.abspath(os.path.join(self.config.source_root, f)) for f in sorted(issues_by_file)]

        pending: List[Tuple[str, str, int]] = []
        for scan in self.scan_all(files):
            label = self.relpath(scan.path)
            if not scan.ok:
                result.errors.append({"file": label, "error": str(scan.error)})
                continue
            retargets = duplicate_retargets(scan, moves) if moves else {}
            for issue in issues_by_file.get(label, []):
                target = self._issue_retarget(scan, issue, moved_to)
                if target is None:
                    result.errors.append({"file": label, "error": f"{issue.id} no longer matches the source"})
                else:
                    retargets[issue.offset] = target
            if not retargets:
                continue

            try:
                plan = plan_file_fixes(scan, retargets, self.config.hints)
                new_text, mismatches = apply_edits(scan.text, plan.edits) if plan.has_changes else (scan.text, [])
            except NsFixError as e:
                logger.warning(f"Leaving {label} untouched: {e}")
                result.errors.append({"file": label, "error": str(e)})
                continue
            result.skipped.extend(plan.skipped)
            for w in plan.warnings:
                logger.warning(w)
            if not plan.has_changes:
                continue
            for err in mismatches:
                result.errors.append({"file": label, "error": str(err)})
            if new_text == scan.text:
                continue
            pending.append((scan.path, new_text, plan.calls_fixed))
            result.changes.append(f"Updated {label}: {plan.calls_fixed} call(s) fixed")
            if plan.bindings_added:
                result.changes.append(f"  added {', '.join(plan.bindings_added)}")
            if plan.bindings_removed:
                result.changes.append(f"  removed {', '.join(plan.bindings_removed)}")

        if dry_run:
            logger.info("Dry run: nothing written")
            result.source_files_updated = len(pending)
            result.source_calls_fixed = sum(n for _, _, n in pending)
            result.locales_updated = len(self.store.locales) if moves else 0
            self.store.load()
            return result

        if added or deleted:
            failures = self.store.save()
            result.locales_updated = len(self.store.locales) - len(failures) - len(self.store.unparsable)
            result.errors.extend({"file": f.path, "error": f.reason} for f in failures)

        for path, new_text, calls_fixed in pending:
            try:
                save_text(path, new_text)
            except OSError as e:
                err = FileWriteError(path, str(e))
                logger.warning(str(err))
                result.errors.append({"file": self.relpath(path), "error": str(err)})
                continue
            result.source_files_updated += 1
            result.source_calls_fixed += calls_fixed

        logger.info(
            f"Applied: {result.keys_moved} key(s) added, {result.keys_deleted} removed, "
            f"{result.source_files_updated} file(s) updated, {result.source_calls_fixed} call(s) fixed"
        )
        return result

    @staticmethod
    def _issue_retarget(scan: ScanResult, issue: Issue, moved_to: Dict[Tuple[str, str], Tuple[str, str]]) -> Optional[Tuple[str, str]]:
        for rc in scan.calls:
            c = rc.call
            if c.start == issue.offset and c.name == issue.accessor and c.key == issue.original_key:
                target = (issue.correct_namespace, issue.key)
                return moved_to.get(target, target)
        logger.warning(f"Stale issue {issue.id} at {issue.file}:{issue.line}; re-run analyze")
        return None

from __future__ import annotations
import hashlib, logging, re
from collections import Counter
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Set, Tuple

from .config import ScanHints
from .locale_store import LocaleStore, ValueLocation
from .rewriter import Edit, KeyMove
from .scope_resolver import Binding, ResolvedCall, ScanResult, Scope
from .utils import common_ancestor, normalize_value, translator_var_name

logger = logging.getLogger("i18n-nsfix")

# ---------------------------------------------------------------------------
# Duplicate-value consolidation
# ---------------------------------------------------------------------------

MOVE_TO_COMMON = "move_to_common"
MOVE_TO_PARENT = "move_to_parent"
DEDUPLICATE = "deduplicate"

# Decides whether one duplicate group may be merged at all.
MergePolicy = Callable[[str, List[ValueLocation]], bool]

def merge_all(normalized_value: str, locations: List[ValueLocation]) -> bool:
    return True

DOMAIN_SKIP_SEGMENTS = ("admin", "ext", "common", "components", "dashboard", "pages")

def namespace_domain(namespace: str) -> str:
    # admin_blog_tag -> blog_tag, ext_forex -> forex
    meaningful = [p for p in namespace.split("_") if p not in DOMAIN_SKIP_SEGMENTS]
    return "_".join(meaningful) or namespace

def context_dependent_policy(values: Iterable[str]) -> MergePolicy:
    """
    Short ambiguous words ("name", "status") only merge when every namespace
    in the group belongs to a related domain; anything else always merges.
    """
    context_dependent = {normalize_value(v) for v in values}

    def policy(normalized_value: str, locations: List[ValueLocation]) -> bool:
        if normalized_value not in context_dependent:
            return True
        domains = sorted({namespace_domain(loc.namespace) for loc in locations})
        if len(domains) <= 1:
            return True
        first = domains[0]
        return all(d.split("_")[0] in first or first.split("_")[0] in d for d in domains)

    return policy


@dataclass
class DuplicateGroup:
    id: str
    value: str
    normalized_value: str
    locations: List[ValueLocation]
    target_namespace: str
    target_key: str
    suggested_action: str
    savings: int

    @property
    def namespaces(self) -> List[str]:
        return sorted({loc.namespace for loc in self.locations})

    def moves(self) -> List[KeyMove]:
        return [
            KeyMove(loc.namespace, loc.key, self.target_namespace, self.target_key)
            for loc in self.locations
            if (loc.namespace, loc.key) != (self.target_namespace, self.target_key)
        ]

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "value": self.value,
            "normalized_value": self.normalized_value,
            "locations": [loc.to_dict() for loc in self.locations],
            "target_namespace": self.target_namespace,
            "target_key": self.target_key,
            "suggested_action": self.suggested_action,
            "savings": self.savings,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "DuplicateGroup":
        return cls(
            id=d["id"], value=d["value"], normalized_value=d["normalized_value"],
            locations=[ValueLocation(**loc) for loc in d["locations"]],
            target_namespace=d["target_namespace"], target_key=d["target_key"],
            suggested_action=d["suggested_action"], savings=d["savings"],
        )


def group_id(normalized_value: str) -> str:
    return "dup_" + hashlib.sha1(normalized_value.encode("utf-8")).hexdigest()[:12]


def most_common_key(locations: List[ValueLocation]) -> str:
    counts = Counter(loc.key for loc in locations)
    return sorted(counts, key=lambda k: (-counts[k], len(k), k))[0]


def find_duplicate_groups(
    store: LocaleStore,
    fallback_namespace: str = "common",
    policy: Optional[MergePolicy] = None,
) -> List[DuplicateGroup]:
    """Group primary-locale entries whose normalized value spans 2+ namespaces."""
    policy = policy or merge_all
    groups: List[DuplicateGroup] = []
    reserved: Dict[Tuple[str, str], str] = {}
    rejected = 0

    for normalized, locations in sorted(store.value_locations().items()):
        if not normalized:
            continue
        namespaces = sorted({loc.namespace for loc in locations})
        if len(namespaces) < 2:
            continue
        if not policy(normalized, locations):
            rejected += 1
            continue

        target_ns = common_ancestor(namespaces, fallback_namespace)
        if target_ns == fallback_namespace:
            action = MOVE_TO_COMMON
        elif target_ns not in namespaces:
            action = MOVE_TO_PARENT
        else:
            action = DEDUPLICATE

        target_key = _free_key(store, reserved, target_ns, most_common_key(locations), normalized)
        reserved[(target_ns, target_key)] = normalized
        groups.append(DuplicateGroup(
            id=group_id(normalized), value=locations[0].value, normalized_value=normalized,
            locations=sorted(locations, key=lambda l: (l.namespace, l.key)),
            target_namespace=target_ns, target_key=target_key,
            suggested_action=action, savings=len(locations) - 1,
        ))

    if rejected:
        logger.info(f"Merge policy kept {rejected} context-dependent duplicate group(s) apart")
    groups.sort(key=lambda g: (-g.savings, g.id))
    return groups


def _free_key(store: LocaleStore, reserved: Dict[Tuple[str, str], str], ns: str, key: str, normalized: str) -> str:
    """`key`, or `key_1`, `key_2`... when the slot holds a different value."""
    candidate, n = key, 0
    while True:
        existing = store.get_value(ns, candidate)
        taken = existing is not None and normalize_value(existing) != normalized
        taken = taken or reserved.get((ns, candidate), normalized) != normalized
        if not taken:
            return candidate
        n += 1
        candidate = f"{key}_{n}"


# ---------------------------------------------------------------------------
# Per-file fix batching
# ---------------------------------------------------------------------------

@dataclass
class FilePlan:
    path: str
    edits: List[Edit] = field(default_factory=list)
    calls_fixed: int = 0
    bindings_added: List[str] = field(default_factory=list)
    bindings_removed: List[str] = field(default_factory=list)
    skipped: List[dict] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return bool(self.edits)


@dataclass
class _NewBinding:
    scope: Scope
    namespace: str
    name: str
    first_use: int


class FilePlanner:
    """
    Turns call retargets for one scanned file into a batch of edits:
    declarations to add, declarations that fall out of use, and call-site
    accessor/key replacements.
    """

    def __init__(self, scan: ScanResult, hints: ScanHints | None = None) -> None:
        self.scan = scan
        self.hints = hints or ScanHints()
        self.text = scan.text

    def plan(self, retargets: Dict[int, Tuple[str, str]]) -> FilePlan:
        """`retargets` maps a call offset to its (namespace, key) after the fix."""
        plan = FilePlan(path=self.scan.path)
        new_bindings: Dict[Tuple[int, str], _NewBinding] = {}
        used: Set[Tuple[int, str]] = set()
        # call offset -> accessor name used after the fix
        accessor_after: Dict[int, str] = {}
        # binding -> calls it governs after the fix
        uses_after: Dict[int, int] = {}
        edits: List[Edit] = []

        for rc in self.scan.calls:
            call = rc.call
            target = retargets.get(call.start)
            if target is None:
                if rc.binding is not None:
                    uses_after[id(rc.binding)] = uses_after.get(id(rc.binding), 0) + 1
                continue

            ns, key = target
            existing = self._visible_binding(ns, rc)
            if existing is not None:
                name = existing.name
                uses_after[id(existing)] = uses_after.get(id(existing), 0) + 1
            else:
                owner = self._owner_scope(rc)
                if owner.kind == "root":
                    self._skip(plan, rc, f"no enclosing function to declare a binding for \"{ns}\"")
                    if rc.binding is not None:
                        uses_after[id(rc.binding)] = uses_after.get(id(rc.binding), 0) + 1
                    continue
                nb = new_bindings.get((id(owner), ns))
                if nb is None:
                    nb = _NewBinding(owner, ns, self._fresh_name(owner, ns, new_bindings), call.start)
                    new_bindings[(id(owner), ns)] = nb
                if self._shadowed(nb.name, owner, rc):
                    self._skip(plan, rc, f"{nb.name} is shadowed at the call site")
                    if rc.binding is not None:
                        uses_after[id(rc.binding)] = uses_after.get(id(rc.binding), 0) + 1
                    continue
                nb.first_use = min(nb.first_use, call.start)
                used.add((id(owner), ns))
                name = nb.name

            changed = False
            if name != call.name:
                edits.append(Edit(call.start, call.name_end, name, expected=call.name))
                changed = True
            if key != call.key:
                literal = f"{call.quote}{key}{call.quote}"
                edits.append(Edit(call.key_start, call.key_end, literal, expected=call.key_literal))
                changed = True
            if changed or existing is None:
                accessor_after[call.start] = name
                plan.calls_fixed += 1

        # drop the new bindings nothing ended up using
        new_bindings = {k: nb for k, nb in new_bindings.items() if k in used}

        removed: Set[int] = set()
        for b in self.scan.bindings:
            if self._should_remove(b, uses_after, accessor_after):
                edits.append(self._removal_edit(b))
                removed.add(id(b))
                plan.bindings_removed.append(f"{b.name} ({b.namespace})")

        # declarations landing on the same offset go out as one insertion
        inserts: Dict[int, List[str]] = {}
        for nb in sorted(new_bindings.values(), key=lambda nb: (nb.scope.start, nb.namespace)):
            at, decl = self._insertion(nb, removed)
            inserts.setdefault(at, []).append(decl)
            plan.bindings_added.append(f"{nb.name} ({nb.namespace})")
            fn = self._binding_style(nb.scope)[0]
            if not re.search(r"\b" + re.escape(fn) + r"\b", self.text):
                plan.warnings.append(f"{fn} is not imported in {self.scan.path}")
        edits.extend(Edit.insert(at, "".join(decls)) for at, decls in inserts.items())

        plan.edits = edits
        return plan

    # ---- target accessor selection ------------------------------------------

    def _visible_binding(self, namespace: str, rc: ResolvedCall) -> Optional[Binding]:
        """An existing binding for `namespace` that the call would resolve to by name."""
        call = rc.call
        if rc.binding is not None and rc.binding.namespace == namespace:
            return rc.binding
        candidates = [b for b in self.scan.bindings if b.namespace == namespace and b.start < call.start]
        for b in sorted(candidates, key=lambda b: -b.start):
            if self.scan.resolve(b.name, call.start, call.scope) is b:
                return b
        return None

    def _owner_scope(self, rc: ResolvedCall) -> Scope:
        if rc.binding is not None:
            return rc.binding.scope
        scope = rc.call.scope
        return scope.named_function() or scope.function() or self.scan.root

    def _fresh_name(self, owner: Scope, namespace: str, planned: Dict[Tuple[int, str], _NewBinding]) -> str:
        taken = {b.name for b in self.scan.bindings_in(owner)}
        taken |= {nb.name for nb in planned.values() if nb.scope is owner}
        base = translator_var_name(namespace)
        name, n = base, 1
        while name in taken:
            n += 1
            name = f"{base}{n}"
        return name

    def _shadowed(self, name: str, owner: Scope, rc: ResolvedCall) -> bool:
        found = self.scan.resolve(name, rc.call.start, rc.call.scope)
        return found is not None and found.scope is not owner and found.scope.is_within(owner)

    def _skip(self, plan: FilePlan, rc: ResolvedCall, reason: str) -> None:
        call = rc.call
        logger.warning(f"{self.scan.path}:{call.line} {call.name}(\"{call.key}\") not fixed: {reason}")
        plan.skipped.append({"file": self.scan.path, "line": call.line, "offset": call.start, "reason": reason})

    # ---- removals -------------------------------------------------------------

    def _should_remove(self, b: Binding, uses_after: Dict[int, int], accessor_after: Dict[int, str]) -> bool:
        governed_before = [rc.call for rc in self.scan.calls if rc.binding is b]
        if not governed_before or uses_after.get(id(b), 0):
            return False
        renamed_away = {c.start for c in governed_before if accessor_after.get(c.start, c.name) != c.name}
        refs = [
            pos for pos in self.scan.references(b.name, b.scope)
            if not (b.start <= pos < b.end) and pos not in renamed_away
        ]
        return not refs

    def _removal_edit(self, b: Binding) -> Edit:
        line_start = self.scan.lines.line_start(b.start)
        nl = self.text.find("\n", b.end)
        line_end = len(self.text) if nl == -1 else nl + 1
        if not self.text[line_start:b.start].strip() and not self.text[b.end:line_end].strip():
            return Edit.remove(line_start, line_end, expected=self.text[line_start:line_end])
        end = b.end
        while end < len(self.text) and self.text[end] in " \t":
            end += 1
        return Edit.remove(b.start, end, expected=self.text[b.start:end])

    # ---- insertions -----------------------------------------------------------

    def _binding_style(self, scope: Scope) -> Tuple[str, bool, str]:
        """(binding fn, awaited, statement terminator) for a new declaration."""
        existing = self.scan.bindings_in(scope)
        sample = existing[0] if existing else (self.scan.bindings[0] if self.scan.bindings else None)
        semi = ";" if sample is None or self.text[sample.start:sample.end].endswith(";") else ""
        if existing:
            return existing[0].binding_fn, existing[0].awaited, semi
        fn_scope = scope.function()
        if fn_scope is not None and fn_scope.is_async:
            return self.hints.server_binding_fn, True, semi
        return self.hints.client_binding_fn, False, semi

    def _insertion(self, nb: _NewBinding, removed: Set[int]) -> Tuple[int, str]:
        """Offset and text of the declaration for one new binding."""
        fn, awaited, semi = self._binding_style(nb.scope)
        decl = f"const {nb.name} = {'await ' if awaited else ''}{fn}(\"{nb.namespace}\"){semi}"
        anchors = [
            b for b in self.scan.bindings_in(nb.scope)
            if id(b) not in removed and b.end <= nb.first_use
        ]
        if anchors:
            anchor = max(anchors, key=lambda b: b.start)
            line_start = self.scan.lines.line_start(anchor.start)
            indent = re.match(r"[ \t]*", self.text[line_start:]).group(0)
            return anchor.end, f"\n{indent}{decl}"
        return nb.scope.start + 1, f"\n{self._body_indent(nb.scope)}{decl}"

    def _body_indent(self, scope: Scope) -> str:
        m = re.compile(r"[^\n]*\n([ \t]*)(?=\S)").match(self.text, scope.start + 1)
        if m and m.end() < scope.end and self.text[m.end()] != "}":
            return m.group(1)
        line_start = self.scan.lines.line_start(scope.start)
        return re.match(r"[ \t]*", self.text[line_start:]).group(0) + "  "


def plan_file_fixes(scan: ScanResult, retargets: Dict[int, Tuple[str, str]], hints: ScanHints | None = None) -> FilePlan:
    return FilePlanner(scan, hints).plan(retargets)


def duplicate_retargets(scan: ScanResult, moves: Iterable[KeyMove]) -> Dict[int, Tuple[str, str]]:
    """Calls whose resolved (namespace, key) is a moved source key."""
    by_source = {m.source: m.target for m in moves}
    out: Dict[int, Tuple[str, str]] = {}
    for rc in scan.calls:
        if rc.binding is None:
            continue
        target = by_source.get((rc.binding.namespace, rc.call.key))
        if target is not None:
            out[rc.call.start] = target
    return out

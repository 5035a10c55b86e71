from __future__ import annotations
import logging, re
from bisect import bisect_left
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from .config import ScanHints
from .errors import FileReadError, UnresolvableAmbiguity
from .lexer import LexResult, lex
from .utils import LineIndex, load_text

logger = logging.getLogger("i18n-nsfix")

IDENT = r"[A-Za-z_$][\w$]*"
_KEYWORDS = {
    "if", "for", "while", "switch", "catch", "with", "return", "function",
    "typeof", "new", "await", "yield", "else", "do", "try", "super", "import",
}

# `t("key"`, `tCommon('key'`, `t.rich("key"`
CALL_RE = re.compile(r"(?<![\w$.])(t(?:[A-Z][\w$]*)?)(?:\.(?:rich|markup|raw))?\s*\(\s*([\"'])([^\"'\n]+)\2")

_FUNCTION_KW_RE = re.compile(r"\bfunction\b\s*\*?\s*(" + IDENT + r")?\s*(?:<[^(){};]*>)?\s*\(")
_METHOD_RE = re.compile(
    r"(?m)^[ \t]*(?:(?:public|private|protected|static|async|get|set)\s+)*(" + IDENT + r")\s*\("
)
_BODY_AFTER_PARAMS_RE = re.compile(r"\s*(?::\s*[^{};=]+?)?\s*\{")
_ARROW_RE = re.compile(r"=>\s*\{")
_PARAMS_CLOSE_RE = re.compile(r"\)\s*(?::\s*[^=;{}()]+?)?\s*$")
_SINGLE_PARAM_RE = re.compile(r"(" + IDENT + r")\s*$")
_ASYNC_PREFIX_RE = re.compile(r"\basync\s*(?:<[^<>]*>\s*)?$")
_GENERIC_PREFIX_RE = re.compile(r"<[^<>()]*>\s*$")
_ASSIGNED_NAME_RE = re.compile(r"(?:\b(?:const|let|var)\s+)?(" + IDENT + r")\s*(?::\s*[^=;{}]+?)?=\s*$")
_EXPORT_DEFAULT_RE = re.compile(r"\bexport\s+default\s*$")


@dataclass(eq=False)
class Scope:
    """A `{...}` region. Function bodies carry kind="function"."""
    kind: str
    start: int
    end: int
    name: Optional[str] = None
    is_async: bool = False
    parent: Optional["Scope"] = None
    children: List["Scope"] = field(default_factory=list)

    def contains(self, pos: int) -> bool:
        if self.kind == "root":
            return True
        return self.start < pos < self.end

    def ancestors(self) -> Iterable["Scope"]:
        node = self
        while node is not None:
            yield node
            node = node.parent

    def function(self) -> Optional["Scope"]:
        return next((s for s in self.ancestors() if s.kind == "function"), None)

    def named_function(self) -> Optional["Scope"]:
        return next((s for s in self.ancestors() if s.kind == "function" and s.name), None)

    def is_within(self, other: "Scope") -> bool:
        return any(s is other for s in self.ancestors())


@dataclass(eq=False)
class Binding:
    name: str
    namespace: str
    start: int
    end: int
    scope: Scope
    binding_fn: str
    awaited: bool
    line: int


@dataclass(eq=False)
class CallSite:
    name: str
    key: str
    quote: str
    start: int
    name_end: int
    key_start: int
    key_end: int
    scope: Scope
    line: int

    @property
    def function(self) -> Optional[Scope]:
        return self.scope.function()

    @property
    def key_literal(self) -> str:
        return f"{self.quote}{self.key}{self.quote}"


@dataclass(eq=False)
class ResolvedCall:
    call: CallSite
    binding: Optional[Binding]


@dataclass
class ScanResult:
    path: str
    text: str = ""
    root: Optional[Scope] = None
    bindings: List[Binding] = field(default_factory=list)
    calls: List[ResolvedCall] = field(default_factory=list)
    error: Optional[FileReadError] = None
    lines: Optional[LineIndex] = None
    lexed: Optional[LexResult] = None
    _by_scope: Dict[int, List[Binding]] = field(default_factory=dict, repr=False)

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def is_empty(self) -> bool:
        return not self.bindings and not self.calls

    def scope_at(self, pos: int) -> Scope:
        return _innermost(self.root, pos)

    def bindings_in(self, scope: Scope) -> List[Binding]:
        return list(self._by_scope.get(id(scope), ()))

    def resolve(self, name: str, pos: int, scope: Optional[Scope] = None) -> Optional[Binding]:
        """Nearest preceding binding of `name` in the innermost scope that has
        one, walking outwards from the scope containing `pos`."""
        node = scope or self.scope_at(pos)
        for s in node.ancestors():
            best = None
            for b in self._by_scope.get(id(s), ()):
                if b.name == name and b.start < pos and (best is None or b.start > best.start):
                    best = b
            if best is not None:
                return best
        return None

    def resolve_call(self, call: CallSite) -> Optional[Binding]:
        """resolve() for a call site. A name that is bound in the file but
        nowhere the call can see it (a sibling function, or later in the
        same scope) raises UnresolvableAmbiguity."""
        found = self.resolve(call.name, call.start, call.scope)
        if found is None:
            elsewhere = [b for b in self.bindings if b.name == call.name]
            if elsewhere:
                lines = ", ".join(str(b.line) for b in elsewhere)
                raise UnresolvableAmbiguity(
                    f"{call.name}() on line {call.line} is bound on line(s) {lines}, none of them visible there"
                )
        return found

    def namespaces_bound(self) -> List[str]:
        return sorted({b.namespace for b in self.bindings})

    def references(self, name: str, scope: Scope) -> List[int]:
        """Code offsets inside `scope` where identifier `name` appears."""
        pattern = re.compile(r"(?<![\w$.])" + re.escape(name) + r"(?![\w$])")
        start, end = (0, len(self.text)) if scope.kind == "root" else (scope.start, scope.end)
        return [m.start() for m in pattern.finditer(self.text, start, end) if self.lexed.is_code(m.start())]


def _innermost(root: Scope, pos: int) -> Scope:
    node = root
    while True:
        starts = [c.start for c in node.children]
        idx = bisect_left(starts, pos) - 1
        if idx >= 0 and node.children[idx].contains(pos):
            node = node.children[idx]
            continue
        return node


class ScopeResolver:
    """
    Best-effort static scope model of one JS/TS(X) file: function scopes with
    genuine nesting, namespace bindings and accessor call sites attached to
    the tree, and each call resolved by a tree-ancestor lookup.
    """

    def __init__(self, hints: ScanHints | None = None) -> None:
        self.hints = hints or ScanHints()
        fns = "|".join(re.escape(f) for f in self.hints.binding_functions)
        self.binding_re = re.compile(
            r"\b(?:const|let|var)\s+(" + IDENT + r")\s*(?::\s*[^=;]+?)?=\s*(await\s+)?"
            r"(" + fns + r")\s*\(\s*([\"'])([^\"'\n]+)\4\s*\)(?:[ \t]*;)?"
        )
        wrappers = "|".join(re.escape(w) for w in self.hints.function_wrappers)
        self.wrapped_name_re = re.compile(
            r"(?:\b(?:const|let|var)\s+)?(" + IDENT + r")\s*(?::\s*[^=;{}]+?)?=\s*(?:" + wrappers
            + r")\s*(?:<[^()]*>)?\s*\(\s*$"
        )

    # ---- entry points -----------------------------------------------------

    def scan_file(self, path: str) -> ScanResult:
        try:
            text = load_text(path)
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Skipping unreadable file {path}: {e}")
            return ScanResult(path=path, error=FileReadError(path, str(e)))
        return self.scan_text(text, path)

    def scan_text(self, text: str, path: str = "<memory>") -> ScanResult:
        lexed = lex(text)
        result = ScanResult(path=path, text=text, lines=LineIndex(text), lexed=lexed)
        result.root = self._build_tree(lexed)

        for m in self.binding_re.finditer(text):
            if not lexed.is_code(m.start()):
                continue
            scope = result.scope_at(m.start())
            b = Binding(
                name=m.group(1), namespace=m.group(5), start=m.start(), end=m.end(),
                scope=scope, binding_fn=m.group(3), awaited=bool(m.group(2)),
                line=result.lines.line_of(m.start()),
            )
            result.bindings.append(b)
            result._by_scope.setdefault(id(scope), []).append(b)

        for m in CALL_RE.finditer(text):
            if not lexed.is_code(m.start()):
                continue
            call = CallSite(
                name=m.group(1), key=m.group(3), quote=m.group(2),
                start=m.start(1), name_end=m.end(1),
                key_start=m.start(2), key_end=m.end(3) + 1,
                scope=result.scope_at(m.start()),
                line=result.lines.line_of(m.start()),
            )
            try:
                binding = result.resolve_call(call)
            except UnresolvableAmbiguity as e:
                # reported as undeclared_variable downstream
                logger.debug(f"{path}: {e}")
                binding = None
            result.calls.append(ResolvedCall(call, binding))
        return result

    # ---- scope tree -------------------------------------------------------

    def _build_tree(self, lexed: LexResult) -> Scope:
        n = len(lexed.text)
        root = Scope(kind="root", start=0, end=n)
        functions = self._find_function_bodies(lexed)
        stack: List[Scope] = []
        for open_pos, close_pos in lexed.brace_pairs():
            while stack and stack[-1].end < open_pos:
                stack.pop()
            parent = stack[-1] if stack else root
            name, is_async = functions.get(open_pos, (None, False))
            node = Scope(
                kind="function" if open_pos in functions else "block",
                start=open_pos, end=close_pos, name=name, is_async=is_async, parent=parent,
            )
            parent.children.append(node)
            stack.append(node)
        return root

    def _find_function_bodies(self, lexed: LexResult) -> Dict[int, Tuple[Optional[str], bool]]:
        """Map each function-body open brace to (name or None, is_async)."""
        text = lexed.text
        found: Dict[int, Tuple[Optional[str], bool]] = {}

        for m in _FUNCTION_KW_RE.finditer(text):
            if not lexed.is_code(m.start()):
                continue
            brace = self._body_after_params(lexed, m.end() - 1)
            if brace is None or brace in found:
                continue
            head = text[max(0, m.start() - 400):m.start()]
            name = m.group(1) or self._assigned_name(head)
            found[brace] = (name, bool(re.search(r"\basync\s*$", head)))

        for m in _ARROW_RE.finditer(text):
            brace = m.end() - 1
            if not lexed.is_code(m.start()) or brace not in lexed.braces or brace in found:
                continue
            params_start = self._arrow_params_start(lexed, m.start())
            if params_start is None:
                found[brace] = (None, False)
                continue
            head = text[max(0, params_start - 400):params_start]
            is_async = False
            a = _ASYNC_PREFIX_RE.search(head)
            if a:
                is_async = True
                head = head[:a.start()]
            else:
                g = _GENERIC_PREFIX_RE.search(head)
                if g:
                    head = head[:g.start()]
            found[brace] = (self._assigned_name(head), is_async)

        for m in _METHOD_RE.finditer(text):
            name = m.group(1)
            if name in _KEYWORDS or not lexed.is_code(m.start(1)):
                continue
            brace = self._body_after_params(lexed, m.end() - 1)
            if brace is None or brace in found:
                continue
            found[brace] = (name, "async" in text[m.start():m.start(1)].split())
        return found

    def _body_after_params(self, lexed: LexResult, paren: int) -> Optional[int]:
        close = lexed.parens.get(paren)
        if close is None:
            return None
        bm = _BODY_AFTER_PARAMS_RE.match(lexed.text, close + 1)
        if not bm:
            return None
        brace = bm.end() - 1
        return brace if brace in lexed.braces else None

    def _arrow_params_start(self, lexed: LexResult, arrow: int) -> Optional[int]:
        window_start = max(0, arrow - 300)
        head = lexed.text[window_start:arrow]
        m = _PARAMS_CLOSE_RE.search(head)
        if m:
            open_pos = lexed.paren_opens.get(window_start + m.start())
            if open_pos is not None:
                return open_pos
        m = _SINGLE_PARAM_RE.search(head)
        if m:
            return window_start + m.start(1)
        return None

    def _assigned_name(self, head: str) -> Optional[str]:
        tail = head[-400:]
        m = _ASSIGNED_NAME_RE.search(tail)
        if m and m.group(1) not in _KEYWORDS:
            # `a === (x) => {` is not an assignment
            if not tail[:m.start(1)].rstrip().endswith(("=", "!", "<", ">")):
                return m.group(1)
        m = self.wrapped_name_re.search(tail)
        if m:
            return m.group(1)
        if _EXPORT_DEFAULT_RE.search(tail):
            return "default"
        return None

from __future__ import annotations
import re
from dataclasses import dataclass, field
from typing import Dict, List, Tuple

CODE, STRING, TEMPLATE = range(3)

# A single quote only opens a string after one of these; otherwise it is an
# apostrophe in markup text ("you're").
_EXPR_PREV = set("=(:,[{!&|+-*?;\t\r\n ")

# `https://host` in markup text; `//` there does not open a comment.
_URL_SCHEME_RE = re.compile(r"(?<![\w$.])[A-Za-z][A-Za-z0-9+.-]*:$")


@dataclass
class LexResult:
    text: str
    code_mask: bytearray
    # open brace offset -> close brace offset (len(text) when unclosed)
    braces: Dict[int, int] = field(default_factory=dict)
    parens: Dict[int, int] = field(default_factory=dict)
    paren_opens: Dict[int, int] = field(default_factory=dict)
    # open-brace offsets of `${` template interpolations
    interpolations: List[int] = field(default_factory=list)

    def is_code(self, pos: int) -> bool:
        return 0 <= pos < len(self.code_mask) and self.code_mask[pos] == 1

    def brace_pairs(self) -> List[Tuple[int, int]]:
        return sorted(self.braces.items())


def _opens_single_quote(text: str, i: int) -> bool:
    return i == 0 or text[i - 1] in _EXPR_PREV


def _is_url(text: str, i: int) -> bool:
    return i + 2 < len(text) and not text[i + 2].isspace() and bool(_URL_SCHEME_RE.search(text, max(0, i - 32), i))


def lex(text: str) -> LexResult:
    """
    One pass over JS/TS(X) source that tells code apart from strings,
    template literal text and comments.

    - '...' and "..." honour backslash escapes and end at a raw newline, so a
      stray quote cannot swallow the rest of the file.
    - `...` spans lines; `${` enters nested code whose closing `}` returns to
      the template.
    - // and /* */ comments are skipped. A `//` right after a URL scheme
      (`https://x.io` in JSX text) is left as code.

    Only code characters are marked in `code_mask`; braces and parens are
    matched on code characters only.
    """
    n = len(text)
    mask = bytearray(n)
    res = LexResult(text=text, code_mask=mask)
    brace_stack: List[Tuple[int, bool]] = []
    paren_stack: List[int] = []
    mode = CODE
    quote = ""
    i = 0

    while i < n:
        c = text[i]

        if mode == STRING:
            if c == "\\":
                i += 2; continue
            if c == quote or c == "\n":
                mode = CODE
            i += 1; continue

        if mode == TEMPLATE:
            if c == "\\":
                i += 2; continue
            if c == "`":
                mode = CODE; i += 1; continue
            if c == "$" and i + 1 < n and text[i + 1] == "{":
                brace_stack.append((i + 1, True))
                res.interpolations.append(i + 1)
                mask[i + 1] = 1
                mode = CODE
                i += 2; continue
            i += 1; continue

        # CODE
        nxt = text[i + 1] if i + 1 < n else ""
        if c == "/" and nxt == "/" and not _is_url(text, i):
            j = text.find("\n", i)
            i = n if j == -1 else j
            continue
        if c == "/" and nxt == "*":
            j = text.find("*/", i + 2)
            i = n if j == -1 else j + 2
            continue
        if c == '"' or (c == "'" and _opens_single_quote(text, i)):
            mode = STRING; quote = c
            i += 1; continue
        if c == "`":
            mode = TEMPLATE
            i += 1; continue

        mask[i] = 1
        if c == "{":
            brace_stack.append((i, False))
        elif c == "}":
            if brace_stack:
                start, interp = brace_stack.pop()
                res.braces[start] = i
                if interp:
                    mode = TEMPLATE
        elif c == "(":
            paren_stack.append(i)
        elif c == ")":
            if paren_stack:
                o = paren_stack.pop()
                res.parens[o] = i
                res.paren_opens[i] = o
        i += 1

    for start, _ in brace_stack:
        res.braces[start] = n
    return res

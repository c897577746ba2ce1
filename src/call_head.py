"""
Registration call head parser: `receiver.method("name"` → CallHead.

Uses Lark to parse the head of a registration call according to
registration_head.lark, then transforms the parse tree into a CallHead
with the name literal unescaped.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from lark import Lark, Transformer, v_args

from paths import CALL_HEAD_GRAMMAR_PATH

_ESCAPES = {
    "n": "\n",
    "t": "\t",
    "r": "\r",
    "b": "\b",
    "f": "\f",
    "v": "\v",
    "0": "\0",
    "\n": "",  # line continuation
}

_ESCAPE_RE = re.compile(r"\\(.)", re.DOTALL)


@dataclass(frozen=True)
class CallHead:
    """The callee and first-argument name literal of a registration call."""

    callee: str
    name: str
    quote: str

    @property
    def receiver(self) -> str:
        return self.callee.rpartition(".")[0]

    @property
    def method(self) -> str:
        return self.callee.rpartition(".")[2]


def _unquote(s: str) -> str:
    """Remove surrounding quotes and unescape."""
    body = s[1:-1]
    return _ESCAPE_RE.sub(lambda m: _ESCAPES.get(m.group(1), m.group(1)), body)


@v_args(inline=True)
class HeadTransformer(Transformer):
    """Transform Lark parse tree → CallHead."""

    def start(self, callee, name):
        literal, quote = name
        return CallHead(callee=callee, name=literal, quote=quote)

    def callee(self, *parts):
        return ".".join(str(p) for p in parts)

    def double_quoted(self, token):
        return _unquote(str(token)), '"'

    def single_quoted(self, token):
        return _unquote(str(token)), "'"

    def template_literal(self, token):
        return _unquote(str(token)), "`"


# ============================================================
# Public API
# ============================================================

_parser: Lark | None = None


def get_parser() -> Lark:
    """Get or create the Lark parser (cached)."""
    global _parser
    if _parser is None:
        grammar_text = CALL_HEAD_GRAMMAR_PATH.read_text()
        _parser = Lark(grammar_text, parser="lalr")
    return _parser


def parse_call_head(text: str) -> CallHead:
    """Parse the head of a registration call.

    Args:
        text: Source text from the callee through the closing quote of the
            first argument, e.g. ``server.tool(\n  "get-record"``.

    Returns:
        A CallHead with the unescaped name.

    Raises:
        lark.exceptions.LarkError: If the text is not a callee followed by a
            string literal first argument.
    """
    tree = get_parser().parse(text)
    return HeadTransformer().transform(tree)

"""
Hover handler.

Hover is context-free: the word under the cursor is looked up in the same
``KEYWORD_DOCS`` table that completion uses, whatever stage the line is in.
"""
from __future__ import annotations

import re
from typing import TYPE_CHECKING

from lsprotocol import types as lsp

from isolsp.keywords import KEYWORD_DOCS

if TYPE_CHECKING:
    from isolsp.document import SpecDocument

# Keywords contain underscores (VOLUME_LABEL) but never hyphens.
_WORD_RE = re.compile(r'\b\w+\b')


def _word_at(line: str, character: int) -> tuple[str, int, int] | None:
    """Return ``(word, start_col, end_col)`` for the word under *character*."""
    for m in _WORD_RE.finditer(line):
        if m.start() <= character <= m.end():
            return m.group(0), m.start(), m.end()
    return None


def keyword_hover_markdown(word: str) -> str | None:
    return KEYWORD_DOCS.get(word)


def get_hover(doc: SpecDocument, position: lsp.Position) -> lsp.Hover | None:
    """Return LSP hover content for *position* in *doc*, or *None*."""
    line_text = doc.line_text(position.line)
    if line_text is None:
        return None

    result = _word_at(line_text, position.character)
    if result is None:
        return None
    word, start_col, end_col = result

    md = keyword_hover_markdown(word)
    if md is None:
        return None
    return lsp.Hover(
        contents=lsp.MarkupContent(kind=lsp.MarkupKind.Markdown, value=md),
        range=lsp.Range(
            start=lsp.Position(line=position.line, character=start_col),
            end=lsp.Position(line=position.line, character=end_col),
        ),
    )

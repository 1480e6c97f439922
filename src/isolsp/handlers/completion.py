"""
Completion handler.

Completion works in two steps:

1. :func:`classify` maps the text left of the cursor (plus the stage in
   effect) to a grammar context.  The mapping is a declarative table of
   ``(pattern, context)`` pairs evaluated in order; the first match wins.
2. :func:`suggestions` turns a context into completion items from the static
   catalogs in :mod:`isolsp.keywords`.

Both steps are pure.  A malformed document simply yields fewer suggestions.
"""
from __future__ import annotations

import re
from typing import TYPE_CHECKING

from lsprotocol import types as lsp

from isolsp.keywords import (
    BOOLEAN_VALUES,
    GLOBAL_KEYWORDS,
    ISO_FORMATS,
    KEY_NAMES,
    KEYWORD_DOCS,
    KEYWORD_SNIPPETS,
    STAGE_KEYWORDS,
    VM_PROPERTIES,
    VM_PROVIDERS,
    keyword_summary,
)
from isolsp.stage import (
    AfterKeyword,
    AfterProperty,
    GrammarContext,
    NoContext,
    Stage,
    StartOfLine,
)

if TYPE_CHECKING:
    from isolsp.document import SpecDocument

# ---------------------------------------------------------------------------
# Context table
# ---------------------------------------------------------------------------

# Rule 1 (blank prefix -> StartOfLine) needs the stage, so it is handled in
# classify() itself; the remaining rules are stage-independent.
_BLANK_RE = re.compile(r'^\s*$')

CONTEXT_RULES: tuple[tuple[re.Pattern[str], GrammarContext], ...] = (
    (re.compile(r'^\s*VM\s+$'), AfterKeyword('VM')),
    (re.compile(r'^\s*VM\s+provider=$'), AfterProperty('VM', 'provider')),
    (re.compile(r'^\s*PRESS\s+$'), AfterKeyword('PRESS')),
    (re.compile(r'^\s*FORMAT\s+$'), AfterKeyword('FORMAT')),
    (re.compile(r'^\s*BOOTABLE\s+$'), AfterKeyword('BOOTABLE')),
)


def classify(line_prefix: str, stage: Stage | None) -> GrammarContext:
    """Return the grammar context for the text *line_prefix* before the cursor."""
    if _BLANK_RE.match(line_prefix):
        return StartOfLine(stage)
    for pattern, context in CONTEXT_RULES:
        if pattern.match(line_prefix):
            return context
    return NoContext()


# ---------------------------------------------------------------------------
# Suggestion catalogs
# ---------------------------------------------------------------------------

def _markdown(text: str) -> lsp.MarkupContent:
    return lsp.MarkupContent(kind=lsp.MarkupKind.Markdown, value=text)


def _keyword_item(keyword: str) -> lsp.CompletionItem:
    snippet = KEYWORD_SNIPPETS.get(keyword)
    return lsp.CompletionItem(
        label=keyword,
        kind=lsp.CompletionItemKind.Keyword,
        detail=keyword_summary(keyword),
        documentation=_markdown(KEYWORD_DOCS[keyword]),
        insert_text=snippet or keyword,
        insert_text_format=(
            lsp.InsertTextFormat.Snippet if snippet else lsp.InsertTextFormat.PlainText
        ),
    )


def _value_item(value: str, description: str | None = None) -> lsp.CompletionItem:
    return lsp.CompletionItem(
        label=value,
        kind=lsp.CompletionItemKind.Value,
        documentation=description,
        insert_text=value,
    )


def _keyword_items(stage: Stage | None) -> list[lsp.CompletionItem]:
    keywords = list(GLOBAL_KEYWORDS)
    if stage is not None:
        keywords.extend(STAGE_KEYWORDS[stage])
    return [_keyword_item(kw) for kw in keywords]


def _vm_property_items() -> list[lsp.CompletionItem]:
    items = []
    for prop in VM_PROPERTIES:
        if prop.values:
            detail = ' | '.join(prop.values)
        else:
            detail = f'e.g. {prop.example}'
        items.append(lsp.CompletionItem(
            label=prop.name,
            kind=lsp.CompletionItemKind.Property,
            detail=detail,
            insert_text=prop.snippet(),
            insert_text_format=lsp.InsertTextFormat.Snippet,
        ))
    return items


def suggestions(context: GrammarContext) -> list[lsp.CompletionItem]:
    """Return the static completion items for *context*."""
    if isinstance(context, StartOfLine):
        return _keyword_items(context.stage)
    if context == AfterKeyword('VM'):
        return _vm_property_items()
    if context == AfterProperty('VM', 'provider'):
        return [_value_item(name, desc) for name, desc in VM_PROVIDERS.items()]
    if context == AfterKeyword('PRESS'):
        return [_value_item(key) for key in KEY_NAMES]
    if context == AfterKeyword('FORMAT'):
        return [_value_item(name, desc) for name, desc in ISO_FORMATS.items()]
    if context == AfterKeyword('BOOTABLE'):
        return [_value_item(value) for value in BOOLEAN_VALUES]
    return []


# ---------------------------------------------------------------------------
# Public entry point
# ---------------------------------------------------------------------------

def get_completions(doc: SpecDocument, position: lsp.Position) -> list[lsp.CompletionItem]:
    """Return completion items for *position* in *doc*."""
    line = doc.line_text(position.line)
    if line is None:
        # Cursor on the (empty) line after a trailing newline.
        line = ''
    prefix = line[:position.character]
    context = classify(prefix, doc.stage_at(position.line))
    return suggestions(context)

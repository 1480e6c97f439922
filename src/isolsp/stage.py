"""
Stage model and stage resolution.

An Isotope specification is split into sections by ``STAGE <name>`` lines.
The keyword vocabulary that is valid on a line depends on the nearest
``STAGE`` line *above* it, so resolution is a plain backward scan.  Documents
are small and hand-written; no index is kept.

The grammar-context values at the bottom of this module describe what kind of
token the cursor is expecting.  They are computed per completion request by
:func:`isolsp.handlers.completion.classify` and thrown away afterwards.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Sequence, Union


class Stage(str, Enum):
    INIT = 'init'
    OS_INSTALL = 'os_install'
    OS_CONFIGURE = 'os_configure'
    PACK = 'pack'


STAGE_NAMES: tuple[str, ...] = tuple(s.value for s in Stage)

# Matches a stage declaration on a stripped line.
_STAGE_RE = re.compile(r'^STAGE\s+(init|os_install|os_configure|pack)\b')


def stage_declared_on(line: str) -> Stage | None:
    """Return the stage declared by *line*, or None if it is not a ``STAGE`` line."""
    m = _STAGE_RE.match(line.strip())
    return Stage(m.group(1)) if m else None


def resolve_stage(lines: Sequence[str], current_line: int) -> Stage | None:
    """Return the stage in effect on *current_line* (0-based).

    Walks from *current_line* (inclusive) toward the top of the document and
    returns the first declared stage.  Declarations below *current_line* are
    never consulted.  Returns None when no ``STAGE`` line precedes the
    cursor, meaning only global keywords apply.
    """
    if not lines or current_line < 0:
        return None
    start = min(current_line, len(lines) - 1)
    for idx in range(start, -1, -1):
        stage = stage_declared_on(lines[idx])
        if stage is not None:
            return stage
    return None


# ---------------------------------------------------------------------------
# Grammar context
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class StartOfLine:
    """Cursor is at the start of a (blank) line: offer keywords."""
    stage: Stage | None


@dataclass(frozen=True)
class AfterKeyword:
    """Cursor follows a keyword and a space, e.g. ``PRESS |``."""
    keyword: str


@dataclass(frozen=True)
class AfterProperty:
    """Cursor follows ``<keyword> <property>=``, e.g. ``VM provider=|``."""
    keyword: str
    property: str


@dataclass(frozen=True)
class NoContext:
    """Nothing sensible can be suggested here."""


GrammarContext = Union[StartOfLine, AfterKeyword, AfterProperty, NoContext]

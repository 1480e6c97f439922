"""
Per-document cache.

Each open ``.isotope`` document is stored as a ``SpecDocument``.  There is no
parse tree: the language is line-oriented and the handlers only need the
lines and the stage in effect at a given line.  A fresh ``SpecDocument`` is
built on every change, so the cached stage lookup never outlives an edit.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from urllib.parse import unquote, urlparse

from isolsp.stage import Stage, resolve_stage

SPEC_SUFFIX = '.isotope'


def uri_to_path(uri: str) -> Path:
    """Return the filesystem path for a ``file://`` URI (other strings are taken as paths)."""
    if uri.startswith('file://'):
        return Path(unquote(urlparse(uri).path))
    return Path(uri)


@dataclass
class SpecDocument:
    uri: str
    source: str
    lines: list[str] = field(init=False)
    # Last (line, stage) lookup; see stage_at().
    _stage_cache: tuple[int, Stage | None] | None = field(
        default=None, init=False, repr=False, compare=False,
    )

    def __post_init__(self):
        self.lines = self.source.splitlines()

    @property
    def path(self) -> Path:
        return uri_to_path(self.uri)

    @property
    def is_spec(self) -> bool:
        return PurePosixPath(self.uri).suffix.lower() == SPEC_SUFFIX

    def line_text(self, line: int) -> str | None:
        if 0 <= line < len(self.lines):
            return self.lines[line]
        return None

    def stage_at(self, line: int) -> Stage | None:
        """Stage in effect on *line*; the most recent answer is cached."""
        cached = self._stage_cache
        if cached is not None and cached[0] == line:
            return cached[1]
        stage = resolve_stage(self.lines, line)
        self._stage_cache = (line, stage)
        return stage

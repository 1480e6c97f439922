"""
Build history.

A bounded, most-recent-first list of :class:`BuildResult` records persisted
as JSON in the user's state directory.  The list is only ever changed by
prepend-then-truncate under a lock, so concurrent invocations finishing at
the same time cannot lose each other's entries and readers always see a
consistent prefix.
"""
from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

HISTORY_CAPACITY = 20


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec='seconds')


@dataclass(frozen=True)
class BuildResult:
    spec_name: str
    success: bool
    output: str
    error: str | None = None
    duration_ms: int = 0
    action: str = 'build'
    outcome: str = 'succeeded'     # 'succeeded' | 'failed' | 'cancelled'
    finished_at: str = field(default_factory=_now_iso)

    @property
    def cancelled(self) -> bool:
        return self.outcome == 'cancelled'

    def to_dict(self) -> dict[str, Any]:
        return {
            'specName': self.spec_name,
            'success': self.success,
            'output': self.output,
            'error': self.error,
            'durationMillis': self.duration_ms,
            'action': self.action,
            'outcome': self.outcome,
            'finishedAt': self.finished_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BuildResult:
        success = bool(data['success'])
        return cls(
            spec_name=str(data.get('specName', '')),
            success=success,
            output=str(data.get('output', '')),
            error=data.get('error'),
            duration_ms=int(data.get('durationMillis', 0)),
            action=str(data.get('action', 'build')),
            outcome=str(data.get('outcome', 'succeeded' if success else 'failed')),
            finished_at=str(data.get('finishedAt', '')),
        )


class BuildHistory:
    """File-backed history repository.

    Call :meth:`load` once at startup; :meth:`append` persists immediately.
    """

    def __init__(self, path: Path | str | None, capacity: int = HISTORY_CAPACITY):
        self._path = Path(path) if path is not None else None
        self._capacity = capacity
        self._entries: list[BuildResult] = []
        self._lock = threading.Lock()

    @property
    def path(self) -> Path | None:
        return self._path

    @property
    def capacity(self) -> int:
        return self._capacity

    def list(self) -> list[BuildResult]:
        """Return a snapshot of the history, newest first."""
        with self._lock:
            return list(self._entries)

    def append(self, result: BuildResult) -> None:
        """Prepend *result*, evict entries beyond capacity and persist."""
        with self._lock:
            self._entries = [result, *self._entries][:self._capacity]
            self._persist_locked()

    def clear(self) -> None:
        with self._lock:
            self._entries = []
            self._persist_locked()

    def load(self) -> None:
        """Read the history file; a missing or unreadable file leaves the history empty."""
        with self._lock:
            self._entries = self._read()

    def persist(self) -> None:
        with self._lock:
            self._persist_locked()

    # ------------------------------------------------------------------

    def _read(self) -> list[BuildResult]:
        if self._path is None or not self._path.is_file():
            return []
        try:
            raw = json.loads(self._path.read_text(encoding='utf-8'))
            entries = [BuildResult.from_dict(item) for item in raw]
        except (OSError, ValueError, TypeError, KeyError) as e:
            logger.warning('discarding unreadable build history %s: %s', self._path, e)
            return []
        return entries[:self._capacity]

    def _persist_locked(self) -> None:
        if self._path is None:
            return
        payload = json.dumps([r.to_dict() for r in self._entries], indent=2)
        tmp = None
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(
                prefix='.build_history.', suffix='.json', dir=self._path.parent,
            )
            with os.fdopen(fd, 'w', encoding='utf-8') as fh:
                fh.write(payload)
            os.replace(tmp, self._path)
        except OSError:
            logger.error('failed to write build history %s', self._path, exc_info=True)
            if tmp is not None and os.path.exists(tmp):
                os.remove(tmp)

"""
Build process supervisor.

Runs the external ``isotope`` tool for one of four actions and turns the
process into a :class:`~isolsp.history.BuildResult`:

* the argument vector is built deterministically from the action, the
  specification path and the settings;
* stdout and stderr are read concurrently as they arrive.  Every stdout chunk
  is kept for the result and its first line is forwarded to the progress
  callback; stderr is only kept;
* :meth:`Invocation.cancel` kills the child.  A cancelled run ends in the
  ``cancelled`` outcome, which is never written to the build history;
* exit code 0 is success, anything else a failure.  Nothing is retried.

Each :class:`Invocation` is single-use and moves through
``IDLE -> SPAWNED -> STREAMING -> SUCCEEDED | FAILED | CANCELLED``.
Any number of invocations may run at once; the only state they share is the
history repository, which serialises its own writes.
"""
from __future__ import annotations

import asyncio
import codecs
import logging
import time
import uuid
from enum import Enum
from pathlib import Path
from typing import Callable

from isolsp.config import Settings
from isolsp.document import SPEC_SUFFIX
from isolsp.errors import ToolInvocationError, UserInputError
from isolsp.events import CancelRequested, EventBus
from isolsp.history import BuildHistory, BuildResult

logger = logging.getLogger(__name__)

_READ_SIZE = 4096
# Seconds to wait for the pipes to drain after killing a cancelled child.
_KILL_GRACE = 5.0


class Action(str, Enum):
    BUILD = 'build'
    VALIDATE = 'validate'
    TEST = 'test'
    CONVERT = 'convert'


class InvocationState(str, Enum):
    IDLE = 'idle'
    SPAWNED = 'spawned'
    STREAMING = 'streaming'
    SUCCEEDED = 'succeeded'
    FAILED = 'failed'
    CANCELLED = 'cancelled'


TERMINAL_STATES = frozenset({
    InvocationState.SUCCEEDED, InvocationState.FAILED, InvocationState.CANCELLED,
})

# Actions whose results are appended to the build history.  Validation runs
# on every save and conversion is instantaneous; neither is recorded.
RECORDED_ACTIONS = frozenset({Action.BUILD, Action.TEST})

ProgressCallback = Callable[[str], None]


# ---------------------------------------------------------------------------
# Argument vectors
# ---------------------------------------------------------------------------

def output_iso_path(spec_path: str | Path, settings: Settings) -> Path:
    """``<output directory>/<spec stem>.iso``."""
    return settings.resolved_output_directory() / f'{Path(spec_path).stem}.iso'


def converted_spec_path(json_path: str | Path) -> Path:
    """Where ``convert`` writes the specification generated from *json_path*."""
    return Path(json_path).with_suffix(SPEC_SUFFIX)


def check_input(action: Action, spec_path: str | Path | None) -> None:
    """Raise :class:`UserInputError` if *spec_path* is not usable for *action*."""
    if not spec_path:
        if action is Action.CONVERT:
            raise UserInputError('Please select a JSON file to convert')
        raise UserInputError('Please select an Isotope specification file')
    suffix = Path(spec_path).suffix.lower()
    if action is Action.CONVERT:
        if suffix != '.json':
            raise UserInputError(f'Not a JSON file: {Path(spec_path).name}')
    elif suffix != SPEC_SUFFIX:
        raise UserInputError('Please select an Isotope specification file')


def build_arguments(action: Action, spec_path: str | Path, settings: Settings) -> list[str]:
    """Return the tool arguments (without the executable) for *action*."""
    spec = str(spec_path)
    if action is Action.BUILD:
        return ['build', spec, '--output', str(output_iso_path(spec, settings))]
    if action is Action.CONVERT:
        return ['convert', spec, str(converted_spec_path(spec))]
    return [action.value, spec]


# ---------------------------------------------------------------------------
# Invocation
# ---------------------------------------------------------------------------

class Invocation:
    """One run of the external tool."""

    def __init__(
        self,
        action: Action | str,
        spec_path: str | Path,
        settings: Settings,
        *,
        progress: ProgressCallback | None = None,
        history: BuildHistory | None = None,
        invocation_id: str | None = None,
    ):
        self.action = Action(action)
        self.spec_path = str(spec_path)
        self.settings = settings
        self.id = invocation_id or uuid.uuid4().hex
        self.state = InvocationState.IDLE
        self.returncode: int | None = None
        self._progress = progress
        self._history = history
        self._stdout: list[str] = []
        self._stderr: list[str] = []
        self._cancel_requested = False
        self._cancel_event: asyncio.Event | None = None
        self._process: asyncio.subprocess.Process | None = None

    @property
    def spec_name(self) -> str:
        return Path(self.spec_path).name

    @property
    def stdout_text(self) -> str:
        return ''.join(self._stdout)

    @property
    def stderr_text(self) -> str:
        return ''.join(self._stderr)

    @property
    def done(self) -> bool:
        return self.state in TERMINAL_STATES

    def command(self) -> list[str]:
        return [self.settings.executable_path,
                *build_arguments(self.action, self.spec_path, self.settings)]

    def cancel(self) -> None:
        """Request cancellation; the child process is killed by :meth:`run`."""
        if self.done:
            return
        self._cancel_requested = True
        if self._cancel_event is not None:
            self._cancel_event.set()

    async def run(self) -> BuildResult:
        if self.state is not InvocationState.IDLE:
            raise RuntimeError(f'invocation {self.id} has already run')
        check_input(self.action, self.spec_path)

        cmd = self.command()
        cwd = self.settings.workspace_root
        started = time.monotonic()
        if self._cancel_requested:
            self.state = InvocationState.CANCELLED
            return self._finish(started)
        self._cancel_event = asyncio.Event()

        logger.info('%s: running %s', self.id, cmd)
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(cwd) if cwd is not None and cwd.is_dir() else None,
            )
        except OSError as e:
            self.state = InvocationState.FAILED
            raise ToolInvocationError(cmd[0], e.strerror or str(e)) from e
        except asyncio.CancelledError:
            self.state = InvocationState.CANCELLED
            raise
        self._process = proc
        self.state = InvocationState.SPAWNED

        waiter = asyncio.ensure_future(self._stream_until_exit(proc))
        canceller = asyncio.ensure_future(self._cancel_event.wait())
        try:
            done, _ = await asyncio.wait(
                {waiter, canceller}, return_when=asyncio.FIRST_COMPLETED,
            )
        except asyncio.CancelledError:
            self._kill()
            waiter.cancel()
            canceller.cancel()
            self.state = InvocationState.CANCELLED
            raise

        if waiter not in done:
            logger.info('%s: cancelled, killing pid %s', self.id, proc.pid)
            self._kill()
            try:
                self.returncode = await asyncio.wait_for(waiter, _KILL_GRACE)
            except asyncio.TimeoutError:
                logger.warning('%s: output pipes still open after kill', self.id)
                self.returncode = proc.returncode
            self.state = InvocationState.CANCELLED
            return self._finish(started)

        canceller.cancel()
        self.returncode = waiter.result()
        self.state = (InvocationState.SUCCEEDED if self.returncode == 0
                      else InvocationState.FAILED)
        return self._finish(started)

    # ------------------------------------------------------------------

    async def _stream_until_exit(self, proc: asyncio.subprocess.Process) -> int:
        self.state = InvocationState.STREAMING
        await asyncio.gather(
            _pump(proc.stdout, self._on_stdout),
            _pump(proc.stderr, self._stderr.append),
        )
        return await proc.wait()

    def _on_stdout(self, text: str) -> None:
        self._stdout.append(text)
        first = text.lstrip('\r\n').split('\n', 1)[0].strip()
        if first and self._progress is not None:
            try:
                self._progress(first)
            except Exception:
                logger.warning('%s: progress callback failed', self.id, exc_info=True)

    def _kill(self) -> None:
        proc = self._process
        if proc is None or proc.returncode is not None:
            return
        try:
            proc.kill()
        except ProcessLookupError:
            pass

    def _finish(self, started: float) -> BuildResult:
        duration_ms = int((time.monotonic() - started) * 1000)
        outcome = self.state.value
        success = self.state is InvocationState.SUCCEEDED
        if success:
            error = None
        elif self.state is InvocationState.CANCELLED:
            error = self.stderr_text or f'{self.action.value.capitalize()} cancelled'
        else:
            error = self.stderr_text or f'exit code {self.returncode}'
        result = BuildResult(
            spec_name=self.spec_name,
            success=success,
            output=self.stdout_text,
            error=error,
            duration_ms=duration_ms,
            action=self.action.value,
            outcome=outcome,
        )
        logger.info('%s: %s %s in %d ms (exit %s)', self.id, self.action.value,
                    outcome, duration_ms, self.returncode)
        if (self._history is not None and self.action in RECORDED_ACTIONS
                and self.state is not InvocationState.CANCELLED):
            self._history.append(result)
        return result


async def _pump(stream: asyncio.StreamReader | None, sink: Callable[[str], None]) -> None:
    """Feed decoded chunks from *stream* to *sink* until EOF."""
    if stream is None:
        return
    decoder = codecs.getincrementaldecoder('utf-8')(errors='replace')
    while True:
        chunk = await stream.read(_READ_SIZE)
        if not chunk:
            tail = decoder.decode(b'', final=True)
            if tail:
                sink(tail)
            return
        text = decoder.decode(chunk)
        if text:
            sink(text)


# ---------------------------------------------------------------------------
# Supervisor
# ---------------------------------------------------------------------------

class Supervisor:
    """Tracks in-flight invocations so they can be cancelled by id."""

    def __init__(self, history: BuildHistory | None = None):
        self.history = history
        self._active: dict[str, Invocation] = {}

    def create(
        self,
        action: Action | str,
        spec_path: str | Path,
        settings: Settings,
        *,
        progress: ProgressCallback | None = None,
        invocation_id: str | None = None,
    ) -> Invocation:
        return Invocation(
            action, spec_path, settings,
            progress=progress, history=self.history, invocation_id=invocation_id,
        )

    async def run(self, invocation: Invocation) -> BuildResult:
        self._active[invocation.id] = invocation
        try:
            return await invocation.run()
        finally:
            self._active.pop(invocation.id, None)

    def cancel(self, invocation_id: str) -> bool:
        """Cancel the invocation with *invocation_id*; False if none is running."""
        invocation = self._active.get(invocation_id)
        if invocation is None:
            return False
        invocation.cancel()
        return True

    def active(self) -> list[Invocation]:
        return list(self._active.values())

    def attach(self, event_bus: EventBus) -> None:
        """Route ``CancelRequested`` events from *event_bus* to :meth:`cancel`."""
        event_bus.subscribe(CancelRequested, self._on_cancel_requested)

    def _on_cancel_requested(self, event: CancelRequested) -> None:
        if not self.cancel(event.invocation_id):
            logger.debug('cancel for unknown invocation %s', event.invocation_id)

"""
isolsp Language Server.

Registers LSP capabilities, translates notifications and commands into
events on the :data:`isolsp.events.bus`, and wires the bus to validation and
the build supervisor.
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from pathlib import Path
from typing import Any

from pygls.lsp.server import LanguageServer
from lsprotocol import types as lsp

logger = logging.getLogger(__name__)

from isolsp import __version__
from isolsp.config import SettingsResolver
from isolsp.document import SPEC_SUFFIX, SpecDocument, uri_to_path
from isolsp.errors import IsolspError, ToolInvocationError, UserInputError
from isolsp.events import (
    BuildFinished,
    BuildRequested,
    CancelRequested,
    DocumentOpened,
    DocumentSaved,
    bus,
)
from isolsp.handlers import get_completions, get_diagnostics, get_hover, parse_tool_output
from isolsp.history import BuildHistory
from isolsp.supervisor import Action, Supervisor, check_input, converted_spec_path

# ---------------------------------------------------------------------------
# Server instance + per-session state
# ---------------------------------------------------------------------------

server = LanguageServer(
    'isolsp', __version__,
    text_document_sync_kind=lsp.TextDocumentSyncKind.Full,
)

# Per-URI document store (populated on open/change).
_docs: dict[str, SpecDocument] = {}

# Settings cascade; re-created on initialize with the workspace root.
_settings = SettingsResolver()

# Build history is bound to its file on initialize; until then it is in-memory.
_history = BuildHistory(None)

_supervisor = Supervisor(_history)
_supervisor.attach(bus)

# Pending validation task per URI; a newer save cancels the older run.
_pending_validations: dict[str, asyncio.Task] = {}

# Work-done progress token -> invocation id.
_progress_tokens: dict[str, str] = {}

_PROGRESS_CREATE_TIMEOUT = 5.0

_TITLES = {
    Action.BUILD: 'Building',
    Action.TEST: 'Testing',
}


# ---------------------------------------------------------------------------
# Client notifications (no-ops when no client is connected, e.g. in tests)
# ---------------------------------------------------------------------------

def _show_message(kind: lsp.MessageType, message: str) -> None:
    try:
        server.window_show_message(lsp.ShowMessageParams(type=kind, message=message))
    except Exception:
        logger.debug('window/showMessage not delivered: %s', message)


def _publish_diagnostics(uri: str, diagnostics: list[lsp.Diagnostic]) -> None:
    """Replace the published diagnostics for *uri* with *diagnostics*."""
    logger.debug('_publish_diagnostics: %s -> %d diagnostics', uri, len(diagnostics))
    try:
        server.text_document_publish_diagnostics(
            lsp.PublishDiagnosticsParams(uri=uri, diagnostics=diagnostics)
        )
    except Exception:
        logger.debug('publishDiagnostics not delivered for %s', uri)


def _show_document(path: Path) -> None:
    try:
        server.window_show_document(lsp.ShowDocumentParams(uri=path.as_uri(), take_focus=True))
    except Exception:
        logger.debug('window/showDocument not delivered for %s', path)


async def _begin_progress(title: str, invocation_id: str) -> str | None:
    token = f'isolsp-{invocation_id}'
    try:
        await asyncio.wait_for(
            server.work_done_progress.create_async(token), _PROGRESS_CREATE_TIMEOUT,
        )
        server.work_done_progress.begin(
            token, lsp.WorkDoneProgressBegin(title=title, cancellable=True),
        )
    except Exception:
        logger.debug('work-done progress unavailable for %s', invocation_id, exc_info=True)
        return None
    _progress_tokens[token] = invocation_id
    return token


def _report_progress(token: str | None, message: str) -> None:
    if token is None:
        return
    try:
        server.work_done_progress.report(token, lsp.WorkDoneProgressReport(message=message))
    except Exception:
        logger.debug('progress report dropped for %s', token)


def _end_progress(token: str | None, message: str | None = None) -> None:
    if token is None:
        return
    _progress_tokens.pop(token, None)
    try:
        server.work_done_progress.end(token, lsp.WorkDoneProgressEnd(message=message))
    except Exception:
        logger.debug('progress end dropped for %s', token)


def _apply_log_level(raw: str | None) -> None:
    """Set the root logger level from a string like 'debug', 'warning', etc."""
    if not raw:
        return
    level = getattr(logging, raw.upper(), None)
    if isinstance(level, int):
        logging.getLogger().setLevel(level)


def _isotope_section(options: Any) -> dict | None:
    """Return the ``isotope`` settings section from client options (or the options themselves)."""
    if not isinstance(options, dict):
        return None
    section = options.get('isotope', options)
    return section if isinstance(section, dict) else None


def _bind_history() -> None:
    """Point the build history at the configured state file and load it."""
    global _history
    _history = BuildHistory(_settings.resolve().history_path)
    _history.load()
    _supervisor.history = _history


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

async def validate_document(uri: str) -> list[lsp.Diagnostic] | None:
    """Run ``isotope validate`` on *uri* and publish the resulting diagnostics.

    A passing run publishes an empty list, clearing earlier diagnostics.
    Returns the published list, or None when nothing was published.
    """
    settings = _settings.resolve()
    if not settings.validation_enabled:
        return None
    path = uri_to_path(uri)
    if path.suffix.lower() != SPEC_SUFFIX:
        return None

    invocation = _supervisor.create(Action.VALIDATE, path, settings)
    try:
        result = await _supervisor.run(invocation)
    except ToolInvocationError as e:
        logger.warning('validation of %s skipped: %s', uri, e)
        return None
    if result.cancelled:
        return None

    if result.success:
        diagnostics: list[lsp.Diagnostic] = []
    else:
        combined = invocation.stdout_text + '\n' + invocation.stderr_text
        diagnostics = get_diagnostics(parse_tool_output(uri, combined))
    _publish_diagnostics(uri, diagnostics)
    return diagnostics


def _cancel_pending_validation(uri: str) -> None:
    existing = _pending_validations.pop(uri, None)
    if existing is not None:
        existing.cancel()


def _schedule_validation(uri: str) -> asyncio.Task:
    """Cancel any pending validation for *uri* and start a new one."""
    _cancel_pending_validation(uri)
    task = asyncio.ensure_future(validate_document(uri))
    _pending_validations[uri] = task
    task.add_done_callback(
        lambda t: _pending_validations.pop(uri, None) if _pending_validations.get(uri) is t else None
    )
    return task


def _on_document_event(event: DocumentOpened | DocumentSaved) -> asyncio.Task:
    return _schedule_validation(event.uri)


# ---------------------------------------------------------------------------
# Tool actions
# ---------------------------------------------------------------------------

async def _execute(event: BuildRequested) -> dict | None:
    """Run the tool action described by *event* and publish ``BuildFinished``."""
    action = Action(event.action)
    try:
        check_input(action, event.spec_path)
    except UserInputError as e:
        _show_message(lsp.MessageType.Error, str(e))
        return None

    settings = _settings.resolve()
    if action is Action.VALIDATE:
        # The explicit run supersedes an open/save validation of the same document.
        _cancel_pending_validation(event.uri)
    token = None
    if action in _TITLES:
        token = await _begin_progress(
            f'{_TITLES[action]} {Path(event.spec_path).name}', event.invocation_id,
        )
    invocation = _supervisor.create(
        action, event.spec_path, settings,
        progress=lambda message: _report_progress(token, message),
        invocation_id=event.invocation_id,
    )
    try:
        result = await _supervisor.run(invocation)
    except IsolspError as e:
        _show_message(lsp.MessageType.Error, f'{action.value.capitalize()} failed: {e}')
        return None
    finally:
        _end_progress(token)

    if action is Action.VALIDATE and not result.cancelled:
        combined = invocation.stdout_text + '\n' + invocation.stderr_text
        diagnostics = (
            [] if result.success else get_diagnostics(parse_tool_output(event.uri, combined))
        )
        _publish_diagnostics(event.uri, diagnostics)

    bus.publish(BuildFinished(invocation_id=event.invocation_id, result=result))
    return {'invocationId': event.invocation_id, **result.to_dict()}


def _on_build_requested(event: BuildRequested):
    return _execute(event)


def _first_line(text: str | None) -> str:
    for line in (text or '').splitlines():
        if line.strip():
            return line.strip()
    return ''


def result_message(result) -> tuple[lsp.MessageType, str]:
    """User-facing message for a finished :class:`~isolsp.history.BuildResult`."""
    action = Action(result.action)
    if result.cancelled:
        return lsp.MessageType.Info, f'{action.value.capitalize()} cancelled'
    error = (result.error or '').strip()
    if action is Action.BUILD:
        if result.success:
            return (lsp.MessageType.Info,
                    f'Build completed successfully in {result.duration_ms / 1000:.1f}s')
        return lsp.MessageType.Error, f'Build failed: {error}'
    if action is Action.VALIDATE:
        if result.success:
            return lsp.MessageType.Info, '✓ Specification is valid'
        detail = _first_line(result.output) or _first_line(error)
        return lsp.MessageType.Error, f'Validation failed: {detail}'
    if action is Action.TEST:
        if result.success:
            return lsp.MessageType.Info, '✓ VM boot test passed'
        return lsp.MessageType.Error, f'Test failed: {error}'
    if result.success:
        return lsp.MessageType.Info, f'Converted to {Path(result.spec_name).stem}{SPEC_SUFFIX}'
    return lsp.MessageType.Error, f'Conversion failed: {error}'


def _on_build_finished(event: BuildFinished) -> None:
    result = event.result
    if result is None:
        return
    kind, message = result_message(result)
    _show_message(kind, message)


bus.subscribe(DocumentOpened, _on_document_event)
bus.subscribe(DocumentSaved, _on_document_event)
bus.subscribe(BuildRequested, _on_build_requested)
bus.subscribe(BuildFinished, _on_build_finished)


def _target_path(target: Any) -> str | None:
    """Accept a URI string, a path string or a serialised editor URI object."""
    if target is None:
        return None
    if isinstance(target, dict):
        target = target.get('fsPath') or target.get('external') or target.get('path')
        if not target:
            return None
    return str(uri_to_path(str(target)))


def _target_uri(target: Any) -> str | None:
    """The document URI for *target*, exactly as the client spelled it when it sent one.

    Diagnostics are keyed by this URI, so it must match what open/save
    notifications carry (``file:///c%3A/...`` on Windows, symlinked paths).
    """
    if isinstance(target, dict):
        external = target.get('external')
        if isinstance(external, str) and external.startswith('file://'):
            return external
    elif isinstance(target, str) and target.startswith('file://'):
        return target
    path = _target_path(target)
    if path is None:
        return None
    return Path(path).absolute().as_uri()


async def _request(action: Action, target: Any) -> dict | None:
    spec_path = _target_path(target)
    event = BuildRequested(
        action=action.value,
        spec_path=spec_path or '',
        uri=_target_uri(target) or '',
        invocation_id=uuid.uuid4().hex,
    )
    results = await asyncio.gather(*bus.publish(event))
    return next((r for r in results if r is not None), None)


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------

@server.feature(lsp.INITIALIZE)
def on_initialize(params: lsp.InitializeParams):
    global _settings
    workspace_root = None
    if params.root_uri:
        workspace_root = uri_to_path(params.root_uri)
    elif params.workspace_folders:
        workspace_root = uri_to_path(params.workspace_folders[0].uri)

    _settings = SettingsResolver(workspace_root=workspace_root)

    opts = getattr(params, 'initialization_options', None)
    _settings.set_client_settings(_isotope_section(opts))
    _apply_log_level(_settings.resolve().log_level)
    _bind_history()


@server.feature(lsp.WORKSPACE_DID_CHANGE_CONFIGURATION)
def did_change_configuration(params: lsp.DidChangeConfigurationParams):
    """Handle live config changes (e.g. the user edits ``isotope.executable.path``)."""
    settings = getattr(params, 'settings', None) or {}
    if isinstance(settings, dict) and isinstance(settings.get('isotope'), dict):
        previous = _settings.resolve().history_path
        _settings.set_client_settings(settings['isotope'])
        resolved = _settings.resolve()
        _apply_log_level(resolved.log_level)
        if resolved.history_path != previous:
            _bind_history()


@server.feature(lsp.WINDOW_WORK_DONE_PROGRESS_CANCEL)
def progress_cancel(params: lsp.WorkDoneProgressCancelParams):
    invocation_id = _progress_tokens.get(str(params.token))
    if invocation_id is not None:
        bus.publish(CancelRequested(invocation_id=invocation_id))


# ---------------------------------------------------------------------------
# Text document synchronisation
# ---------------------------------------------------------------------------

@server.feature(lsp.TEXT_DOCUMENT_DID_OPEN)
def did_open(params: lsp.DidOpenTextDocumentParams):
    td = params.text_document
    _docs[td.uri] = SpecDocument(td.uri, td.text)
    bus.publish(DocumentOpened(uri=td.uri))


@server.feature(lsp.TEXT_DOCUMENT_DID_CHANGE)
def did_change(params: lsp.DidChangeTextDocumentParams):
    uri = params.text_document.uri
    _docs[uri] = SpecDocument(uri, params.content_changes[-1].text)


@server.feature(lsp.TEXT_DOCUMENT_DID_SAVE)
def did_save(params: lsp.DidSaveTextDocumentParams):
    """The tool validates the file on disk, so validation runs on save rather than on change."""
    bus.publish(DocumentSaved(uri=params.text_document.uri))


@server.feature(lsp.TEXT_DOCUMENT_DID_CLOSE)
def did_close(params: lsp.DidCloseTextDocumentParams):
    uri = params.text_document.uri
    _cancel_pending_validation(uri)
    _docs.pop(uri, None)
    _publish_diagnostics(uri, [])


# ---------------------------------------------------------------------------
# Completion / hover
# ---------------------------------------------------------------------------

@server.feature(
    lsp.TEXT_DOCUMENT_COMPLETION,
    lsp.CompletionOptions(trigger_characters=[' ', '=']),
)
def completion(params: lsp.CompletionParams) -> lsp.CompletionList | None:
    doc = _docs.get(params.text_document.uri)
    if doc is None:
        return None
    items = get_completions(doc, params.position)
    return lsp.CompletionList(is_incomplete=False, items=items)


@server.feature(lsp.TEXT_DOCUMENT_HOVER)
def hover(params: lsp.HoverParams) -> lsp.Hover | None:
    doc = _docs.get(params.text_document.uri)
    if doc is None:
        return None
    return get_hover(doc, params.position)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------
# pygls unpacks ``workspace/executeCommand`` ``arguments`` as positional
# args.  The target may be a file URI, a path, or a serialised editor URI.

@server.command('isotope.build')
async def cmd_build(target=None):
    return await _request(Action.BUILD, target)


@server.command('isotope.validate')
async def cmd_validate(target=None):
    return await _request(Action.VALIDATE, target)


@server.command('isotope.test')
async def cmd_test(target=None):
    return await _request(Action.TEST, target)


@server.command('isotope.convert')
async def cmd_convert(target=None):
    result = await _request(Action.CONVERT, target)
    if result is not None and result['success']:
        _show_document(converted_spec_path(_target_path(target)))
    return result


@server.command('isotope.cancel')
def cmd_cancel(invocation_id: str | None = None):
    """Cancel one invocation, or every running invocation when no id is given."""
    ids = [invocation_id] if invocation_id else [inv.id for inv in _supervisor.active()]
    for inv_id in ids:
        bus.publish(CancelRequested(invocation_id=inv_id))
    return ids


@server.command('isotope.buildHistory')
def cmd_build_history(limit: int | None = None):
    """Return the build history, newest first."""
    entries = _history.list()
    if limit is not None:
        entries = entries[:max(0, int(limit))]
    return [r.to_dict() for r in entries]


@server.command('isotope.clearHistory')
def cmd_clear_history():
    _history.clear()
    return []


@server.command('isotope.outputDirectory')
def cmd_output_directory():
    return str(_settings.resolve().resolved_output_directory())

"""Convert ``isotope validate`` output into positioned diagnostics.

The tool prints one diagnostic per line::

    path:line:column: severity: message

with 1-based line and column.  Anything else on the stream (banners,
progress, summaries) is ignored.  The tool does not report a span length, so
every diagnostic highlights ``HIGHLIGHT_WIDTH`` characters from its column.
"""
from __future__ import annotations

import re
from dataclasses import dataclass

from lsprotocol import types as lsp

HIGHLIGHT_WIDTH = 10

_TOOL_DIAG_RE = re.compile(
    r'^(.+?):(\d+):(\d+):\s+(error|warning|info):\s+(.+)$'
)

_SEVERITY = {
    'error': lsp.DiagnosticSeverity.Error,
    'warning': lsp.DiagnosticSeverity.Warning,
    'info': lsp.DiagnosticSeverity.Information,
}


@dataclass(frozen=True)
class ToolDiagnostic:
    uri: str
    line: int          # 0-based
    column: int        # 0-based
    end_column: int
    severity: str      # 'error' | 'warning' | 'info'
    message: str


def parse_tool_output(uri: str, output: str) -> list[ToolDiagnostic]:
    """Return a :class:`ToolDiagnostic` for every diagnostic line in *output*."""
    diags: list[ToolDiagnostic] = []
    for raw in output.splitlines():
        m = _TOOL_DIAG_RE.match(raw.strip())
        if not m:
            continue
        _path, lineno, col, severity, message = m.groups()
        line = max(0, int(lineno) - 1)      # LSP is 0-based; the tool is 1-based
        column = max(0, int(col) - 1)
        diags.append(ToolDiagnostic(
            uri=uri,
            line=line,
            column=column,
            end_column=column + HIGHLIGHT_WIDTH,
            severity=severity,
            message=message.strip(),
        ))
    return diags


def get_diagnostics(diags: list[ToolDiagnostic]) -> list[lsp.Diagnostic]:
    """Return LSP ``Diagnostic`` objects for *diags*."""
    return [
        lsp.Diagnostic(
            range=lsp.Range(
                start=lsp.Position(line=d.line, character=d.column),
                end=lsp.Position(line=d.line, character=d.end_column),
            ),
            message=d.message,
            severity=_SEVERITY[d.severity],
            source='isotope',
        )
        for d in diags
    ]

"""Tests for isolsp.handlers.diagnostics — parsing ``isotope validate`` output."""
from __future__ import annotations

from lsprotocol import types as lsp

URI = 'file:///work/spec.isotope'

TOOL_OUTPUT = """\
isotope 1.2.3 - validating spec.isotope
spec.isotope:12:5: error: missing CHECKSUM
Validating stage init... ok
spec.isotope:3:1: warning: LABEL without value
spec.isotope:20:10: info: FORMAT defaults to iso9660
2 problems found
"""


class TestParseToolOutput:
    def test_single_error(self):
        from isolsp.handlers.diagnostics import parse_tool_output
        diags = parse_tool_output(URI, 'spec.isotope:12:5: error: missing CHECKSUM\n')
        assert len(diags) == 1
        d = diags[0]
        assert d.uri == URI
        assert (d.line, d.column, d.end_column) == (11, 4, 14)
        assert d.severity == 'error'
        assert d.message == 'missing CHECKSUM'

    def test_empty_output(self):
        from isolsp.handlers.diagnostics import parse_tool_output
        assert parse_tool_output(URI, '') == []

    def test_noise_lines_ignored(self):
        from isolsp.handlers.diagnostics import parse_tool_output
        diags = parse_tool_output(URI, TOOL_OUTPUT)
        assert [d.severity for d in diags] == ['error', 'warning', 'info']
        assert [d.line for d in diags] == [11, 2, 19]

    def test_unknown_severity_ignored(self):
        from isolsp.handlers.diagnostics import parse_tool_output
        assert parse_tool_output(URI, 'spec.isotope:1:1: fatal: boom') == []

    def test_path_with_colons(self):
        from isolsp.handlers.diagnostics import parse_tool_output
        diags = parse_tool_output(URI, r'C:\specs\a.isotope:7:2: error: bad VM property')
        assert (diags[0].line, diags[0].column) == (6, 1)
        assert diags[0].message == 'bad VM property'

    def test_crlf_line_endings(self):
        from isolsp.handlers.diagnostics import parse_tool_output
        diags = parse_tool_output(URI, 'a.isotope:2:3: warning: odd\r\nb\r\n')
        assert len(diags) == 1
        assert diags[0].message == 'odd'

    def test_zero_line_clamped(self):
        from isolsp.handlers.diagnostics import parse_tool_output
        d = parse_tool_output(URI, 'a.isotope:0:0: error: header')[0]
        assert (d.line, d.column, d.end_column) == (0, 0, 10)


class TestGetDiagnostics:
    def test_conversion(self):
        from isolsp.handlers.diagnostics import get_diagnostics, parse_tool_output
        diags = get_diagnostics(parse_tool_output(URI, TOOL_OUTPUT))
        assert [d.severity for d in diags] == [
            lsp.DiagnosticSeverity.Error,
            lsp.DiagnosticSeverity.Warning,
            lsp.DiagnosticSeverity.Information,
        ]
        first = diags[0]
        assert first.range.start == lsp.Position(line=11, character=4)
        assert first.range.end == lsp.Position(line=11, character=14)
        assert first.source == 'isotope'

    def test_empty(self):
        from isolsp.handlers.diagnostics import get_diagnostics
        assert get_diagnostics([]) == []

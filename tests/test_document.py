"""Tests for isolsp.document — SpecDocument."""
from __future__ import annotations

from pathlib import Path

from isolsp.document import SpecDocument, uri_to_path
from isolsp.stage import Stage

SOURCE = """\
FROM ./a.iso
STAGE init
VM provider=qemu
STAGE pack
"""


class TestSpecDocument:
    def test_lines(self):
        doc = SpecDocument('file:///tmp/a.isotope', SOURCE)
        assert doc.lines[0] == 'FROM ./a.iso'
        assert len(doc.lines) == 4

    def test_line_text_out_of_range(self):
        doc = SpecDocument('file:///tmp/a.isotope', SOURCE)
        assert doc.line_text(10) is None
        assert doc.line_text(-1) is None

    def test_is_spec(self):
        assert SpecDocument('file:///tmp/a.isotope', '').is_spec
        assert not SpecDocument('file:///tmp/a.json', '').is_spec

    def test_stage_at(self):
        doc = SpecDocument('file:///tmp/a.isotope', SOURCE)
        assert doc.stage_at(0) is None
        assert doc.stage_at(2) == Stage.INIT
        assert doc.stage_at(3) == Stage.PACK

    def test_stage_cache_is_per_document(self):
        doc = SpecDocument('file:///tmp/a.isotope', SOURCE)
        assert doc.stage_at(2) == Stage.INIT
        edited = SpecDocument(doc.uri, SOURCE.replace('STAGE init', 'STAGE os_install'))
        assert edited.stage_at(2) == Stage.OS_INSTALL
        assert doc.stage_at(2) == Stage.INIT

    def test_path(self):
        doc = SpecDocument('file:///tmp/my%20spec.isotope', '')
        assert doc.path == Path('/tmp/my spec.isotope')


class TestUriToPath:
    def test_plain_path_passthrough(self):
        assert uri_to_path('/tmp/x.isotope') == Path('/tmp/x.isotope')

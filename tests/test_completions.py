"""Tests for isolsp.handlers.completion — context classification and catalogs."""
from __future__ import annotations

import pytest
from lsprotocol import types as lsp

from isolsp.document import SpecDocument
from isolsp.keywords import KEYWORD_DOCS
from isolsp.stage import AfterKeyword, AfterProperty, NoContext, Stage, StartOfLine

SPEC = """\
FROM ./ubuntu.iso

STAGE init
VM provider=qemu

STAGE os_install

STAGE os_configure

STAGE pack

"""


def _labels(items):
    return [i.label for i in items]


class TestClassify:
    @pytest.mark.parametrize('prefix, stage, expected', [
        ('', Stage.INIT, StartOfLine(Stage.INIT)),
        ('    ', None, StartOfLine(None)),
        ('\t', Stage.PACK, StartOfLine(Stage.PACK)),
        ('VM ', Stage.INIT, AfterKeyword('VM')),
        ('  VM   ', Stage.INIT, AfterKeyword('VM')),
        ('VM provider=', Stage.INIT, AfterProperty('VM', 'provider')),
        ('  VM provider=', Stage.INIT, AfterProperty('VM', 'provider')),
        ('PRESS ', Stage.OS_INSTALL, AfterKeyword('PRESS')),
        ('FORMAT ', Stage.PACK, AfterKeyword('FORMAT')),
        ('BOOTABLE ', Stage.PACK, AfterKeyword('BOOTABLE')),
        ('VM', Stage.INIT, NoContext()),
        ('VM memory=', Stage.INIT, NoContext()),
        ('VM provider=q', Stage.INIT, NoContext()),
        ('PRESS enter', Stage.OS_INSTALL, NoContext()),
        ('press ', Stage.OS_INSTALL, NoContext()),
        ('# comment ', None, NoContext()),
        ('RUN ', Stage.OS_CONFIGURE, NoContext()),
    ])
    def test_rules(self, prefix, stage, expected):
        from isolsp.handlers.completion import classify
        assert classify(prefix, stage) == expected

    def test_keyword_contexts_ignore_stage(self):
        from isolsp.handlers.completion import classify
        # Classification of value positions does not depend on the stage.
        assert classify('FORMAT ', None) == AfterKeyword('FORMAT')
        assert classify('VM ', Stage.PACK) == AfterKeyword('VM')


class TestSuggestions:
    def test_global_keywords_without_stage(self):
        from isolsp.handlers.completion import suggestions
        assert _labels(suggestions(StartOfLine(None))) == ['FROM', 'CHECKSUM', 'LABEL', 'STAGE']

    def test_init_offers_vm(self):
        from isolsp.handlers.completion import suggestions
        labels = _labels(suggestions(StartOfLine(Stage.INIT)))
        assert 'VM' in labels
        assert {'FROM', 'CHECKSUM', 'LABEL', 'STAGE'} <= set(labels)

    def test_os_install(self):
        from isolsp.handlers.completion import suggestions
        labels = _labels(suggestions(StartOfLine(Stage.OS_INSTALL)))
        assert labels[4:] == ['WAIT', 'PRESS', 'TYPE']

    def test_os_configure(self):
        from isolsp.handlers.completion import suggestions
        labels = _labels(suggestions(StartOfLine(Stage.OS_CONFIGURE)))
        assert labels[4:] == ['RUN', 'COPY', 'WAIT', 'PRESS', 'TYPE']

    def test_pack(self):
        from isolsp.handlers.completion import suggestions
        labels = _labels(suggestions(StartOfLine(Stage.PACK)))
        assert labels[4:] == ['EXPORT', 'FORMAT', 'BOOTABLE', 'VOLUME_LABEL']
        assert 'VM' not in labels

    def test_stage_snippet_offers_four_stages(self):
        from isolsp.handlers.completion import suggestions
        stage_item = next(i for i in suggestions(StartOfLine(None)) if i.label == 'STAGE')
        assert stage_item.insert_text == 'STAGE ${1|init,os_install,os_configure,pack|}'
        assert stage_item.insert_text_format == lsp.InsertTextFormat.Snippet

    def test_vm_snippet_offers_property_names(self):
        from isolsp.handlers.completion import suggestions
        vm = next(i for i in suggestions(StartOfLine(Stage.INIT)) if i.label == 'VM')
        assert vm.insert_text == 'VM ${1|provider,memory,cpus,disk,timeout,boot-wait|}=${2}'

    def test_keyword_items_use_shared_documentation(self):
        from isolsp.handlers.completion import suggestions
        for item in suggestions(StartOfLine(Stage.PACK)):
            assert item.kind == lsp.CompletionItemKind.Keyword
            assert item.documentation.value == KEYWORD_DOCS[item.label]

    def test_vm_properties(self):
        from isolsp.handlers.completion import suggestions
        items = suggestions(AfterKeyword('VM'))
        assert _labels(items) == ['provider', 'memory', 'cpus', 'disk', 'timeout', 'boot-wait']
        assert all(i.kind == lsp.CompletionItemKind.Property for i in items)
        by_label = {i.label: i for i in items}
        assert by_label['provider'].insert_text == 'provider=${1|qemu,virtualbox,vmware,hyperv|}'
        assert by_label['memory'].insert_text == 'memory=${1:4G}'
        assert by_label['boot-wait'].insert_text == 'boot-wait=${1:10s}'

    def test_vm_providers_exact(self):
        from isolsp.handlers.completion import suggestions
        items = suggestions(AfterProperty('VM', 'provider'))
        assert set(_labels(items)) == {'qemu', 'virtualbox', 'vmware', 'hyperv'}
        assert len(items) == 4
        assert all(i.kind == lsp.CompletionItemKind.Value for i in items)
        assert all(i.documentation for i in items)

    def test_press_keys(self):
        from isolsp.handlers.completion import suggestions
        labels = _labels(suggestions(AfterKeyword('PRESS')))
        assert {'enter', 'esc', 'f1', 'f12', 'ctrl', 'cmd'} <= set(labels)
        assert len(labels) == 26

    def test_format(self):
        from isolsp.handlers.completion import suggestions
        assert _labels(suggestions(AfterKeyword('FORMAT'))) == ['iso9660', 'udf']

    def test_bootable(self):
        from isolsp.handlers.completion import suggestions
        assert _labels(suggestions(AfterKeyword('BOOTABLE'))) == ['true', 'false']

    def test_no_context(self):
        from isolsp.handlers.completion import suggestions
        assert suggestions(NoContext()) == []

    def test_unknown_property_context(self):
        from isolsp.handlers.completion import suggestions
        assert suggestions(AfterProperty('VM', 'memory')) == []


class TestGetCompletions:
    def _items(self, source, line, character):
        from isolsp.handlers.completion import get_completions
        doc = SpecDocument('file:///tmp/t.isotope', source)
        return get_completions(doc, lsp.Position(line=line, character=character))

    def test_blank_line_before_any_stage(self):
        assert _labels(self._items(SPEC, 1, 0)) == ['FROM', 'CHECKSUM', 'LABEL', 'STAGE']

    def test_blank_line_in_init(self):
        assert 'VM' in _labels(self._items(SPEC, 4, 0))

    def test_blank_line_in_pack(self):
        labels = _labels(self._items(SPEC, 10, 0))
        assert {'EXPORT', 'FORMAT', 'BOOTABLE', 'VOLUME_LABEL'} <= set(labels)

    def test_cursor_after_provider_equals(self):
        source = 'STAGE init\n  VM provider=qemu\n'
        items = self._items(source, 1, len('  VM provider='))
        assert set(_labels(items)) == {'qemu', 'virtualbox', 'vmware', 'hyperv'}

    def test_cursor_mid_word_gives_nothing(self):
        assert self._items('STAGE pack\nFORM', 1, 4) == []

    def test_line_past_end_of_document(self):
        # The line after a trailing newline has no text yet.
        labels = _labels(self._items(SPEC, 11, 0))
        assert 'EXPORT' in labels

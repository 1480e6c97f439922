"""Shared fixtures: a stand-in for the external ``isotope`` tool."""
from __future__ import annotations

import stat
import sys
import textwrap

import pytest

from isolsp.config import Settings

# Behaviour is selected through FAKE_ISOTOPE_MODE so one script serves every test.
_FAKE_TOOL = textwrap.dedent('''\
    import os
    import sys
    import time

    mode = os.environ.get('FAKE_ISOTOPE_MODE', 'ok')
    argv_file = os.environ.get('FAKE_ISOTOPE_ARGV')
    if argv_file:
        with open(argv_file, 'w') as fh:
            fh.write('\\n'.join(sys.argv[1:]))

    if mode == 'ok':
        print('Step 1/2: booting VM', flush=True)
        time.sleep(0.05)
        print('Step 2/2: packing ISO', flush=True)
        sys.exit(0)
    if mode == 'chatty':
        print('isotope 1.2.3 - validating', flush=True)
        sys.exit(0)
    if mode == 'fail':
        print('Step 1/2: booting VM', flush=True)
        sys.stderr.write('disk full\\n')
        sys.exit(3)
    if mode == 'diag':
        spec = sys.argv[2]
        print('isotope 1.2.3 - validating')
        print(spec + ':12:5: error: missing CHECKSUM')
        sys.stderr.write(spec + ':3:1: warning: LABEL without value\\n')
        print('2 problems')
        sys.exit(1)
    if mode == 'slow':
        print('Step 1/2: booting VM', flush=True)
        time.sleep(30)
        sys.exit(0)
    sys.exit(99)
''')


@pytest.fixture
def fake_tool(tmp_path):
    """Path to an executable that mimics ``isotope``; see FAKE_ISOTOPE_MODE."""
    script = tmp_path / 'fake_isotope.py'
    script.write_text(_FAKE_TOOL)
    wrapper = tmp_path / 'isotope'
    wrapper.write_text(f'#!/bin/sh\nexec "{sys.executable}" "{script}" "$@"\n')
    wrapper.chmod(wrapper.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return wrapper


@pytest.fixture
def tool_settings(tmp_path, fake_tool):
    return Settings(
        executable_path=str(fake_tool),
        output_directory=str(tmp_path / 'out'),
        workspace_root=tmp_path,
        state_dir=tmp_path / 'state',
    )


@pytest.fixture
def spec_file(tmp_path):
    path = tmp_path / 'ubuntu.isotope'
    path.write_text('FROM ./ubuntu.iso\nSTAGE init\nVM provider=qemu\n')
    return path

"""
Static vocabulary of the Isotope specification language.

``KEYWORD_DOCS`` is the single documentation table for keywords: completion
items and hover both read from it, so the two never disagree.  Everything
else here is a suggestion catalog keyed by the context it applies to.
"""
from __future__ import annotations

from dataclasses import dataclass

from isolsp.stage import STAGE_NAMES, Stage

# ---------------------------------------------------------------------------
# Keyword documentation (Markdown; first line doubles as the summary)
# ---------------------------------------------------------------------------
KEYWORD_DOCS: dict[str, str] = {
    'FROM': (
        'Specifies the source ISO file to build from.\n\n'
        'Example: `FROM ./ubuntu-22.04-server.iso`'
    ),
    'CHECKSUM': (
        'Verifies the integrity of the source ISO file.\n\n'
        'Example: `CHECKSUM sha256:a4acfda10b18da50e2ec50ccaf860d7f20ce1ee42895e3840b57b2b371fc734`'
    ),
    'LABEL': (
        'Adds metadata labels to the specification.\n\n'
        'Example: `LABEL name="custom-ubuntu"`'
    ),
    'STAGE': (
        'Defines a build stage. Valid stages are:\n'
        '- `init` - VM configuration\n'
        '- `os_install` - OS installation automation\n'
        '- `os_configure` - Live system configuration\n'
        '- `pack` - ISO packaging'
    ),
    'VM': (
        'Configures the puppet VM used for building.\n\n'
        'Properties: provider, memory, cpus, disk, timeout, boot-wait'
    ),
    'WAIT': (
        'Waits for a duration or condition.\n\n'
        'Examples:\n- `WAIT 30s`\n- `WAIT 5m FOR "Installation complete!"`'
    ),
    'PRESS': 'Simulates a key press.\n\nExample: `PRESS enter`',
    'TYPE': 'Types text into the VM.\n\nExample: `TYPE username`',
    'RUN': 'Executes a command in the live system.\n\nExample: `RUN apt-get update`',
    'COPY': (
        'Copies files into the live system.\n\n'
        'Example: `COPY ./config.json /etc/config.json`'
    ),
    'EXPORT': (
        'Specifies the output path for the generated ISO.\n\n'
        'Example: `EXPORT ./output/custom.iso`'
    ),
    'FORMAT': 'Sets the ISO format (iso9660 or udf).\n\nExample: `FORMAT iso9660`',
    'BOOTABLE': 'Makes the ISO bootable.\n\nExample: `BOOTABLE true`',
    'VOLUME_LABEL': (
        'Sets the volume label for the ISO.\n\n'
        'Example: `VOLUME_LABEL "Custom OS"`'
    ),
}


def keyword_summary(keyword: str) -> str:
    """First line of the keyword's documentation, or ``''``."""
    doc = KEYWORD_DOCS.get(keyword, '')
    return doc.split('\n', 1)[0]


# ---------------------------------------------------------------------------
# Start-of-line keywords
# ---------------------------------------------------------------------------
GLOBAL_KEYWORDS: tuple[str, ...] = ('FROM', 'CHECKSUM', 'LABEL', 'STAGE')

STAGE_KEYWORDS: dict[Stage, tuple[str, ...]] = {
    Stage.INIT: ('VM',),
    Stage.OS_INSTALL: ('WAIT', 'PRESS', 'TYPE'),
    Stage.OS_CONFIGURE: ('RUN', 'COPY', 'WAIT', 'PRESS', 'TYPE'),
    Stage.PACK: ('EXPORT', 'FORMAT', 'BOOTABLE', 'VOLUME_LABEL'),
}


@dataclass(frozen=True)
class VmProperty:
    name: str
    values: tuple[str, ...] = ()
    example: str = ''

    def snippet(self) -> str:
        if self.values:
            return f'{self.name}=${{1|{",".join(self.values)}|}}'
        return f'{self.name}=${{1:{self.example}}}'


# Ordered: the completion list keeps this order.
VM_PROVIDERS: dict[str, str] = {
    'qemu': 'QEMU virtualization (recommended)',
    'virtualbox': 'Oracle VirtualBox',
    'vmware': 'VMware Workstation/Fusion',
    'hyperv': 'Microsoft Hyper-V',
}

VM_PROPERTIES: tuple[VmProperty, ...] = (
    VmProperty('provider', values=tuple(VM_PROVIDERS)),
    VmProperty('memory', example='4G'),
    VmProperty('cpus', example='2'),
    VmProperty('disk', example='20G'),
    VmProperty('timeout', example='30m'),
    VmProperty('boot-wait', example='10s'),
)

_PRESS_CHOICE = 'enter,tab,space,esc,up,down,left,right'

# Insert-text snippets for start-of-line keywords (LSP snippet syntax).
KEYWORD_SNIPPETS: dict[str, str] = {
    'STAGE': f'STAGE ${{1|{",".join(STAGE_NAMES)}|}}',
    'VM': f'VM ${{1|{",".join(p.name for p in VM_PROPERTIES)}|}}=${{2}}',
    'WAIT': 'WAIT ${1:30s}',
    'PRESS': f'PRESS ${{1|{_PRESS_CHOICE}|}}',
    'TYPE': 'TYPE ${1:text}',
    'RUN': 'RUN ${1:command}',
    'COPY': 'COPY ${1:source} ${2:destination}',
    'EXPORT': 'EXPORT ${1:./output/custom.iso}',
    'FORMAT': 'FORMAT ${1|iso9660,udf|}',
    'BOOTABLE': 'BOOTABLE ${1|true,false|}',
    'VOLUME_LABEL': 'VOLUME_LABEL "${1:Custom OS}"',
}

# ---------------------------------------------------------------------------
# Value catalogs
# ---------------------------------------------------------------------------
KEY_NAMES: tuple[str, ...] = (
    'enter', 'tab', 'space', 'esc', 'escape',
    'up', 'down', 'left', 'right',
    'f1', 'f2', 'f3', 'f4', 'f5', 'f6', 'f7', 'f8', 'f9', 'f10', 'f11', 'f12',
    'ctrl', 'alt', 'shift', 'win', 'cmd',
)

ISO_FORMATS: dict[str, str] = {
    'iso9660': 'Standard ISO 9660 format',
    'udf': 'Universal Disk Format',
}

BOOLEAN_VALUES: tuple[str, ...] = ('true', 'false')

"""
Command line for the Isotope specification language server.

The editor extension starts ``isolsp`` over stdio.  Validation, builds and
tests shell out to the ``isotope`` executable named by the
``isotope.executable.path`` setting (or ``.isotope.toml``), not by a flag
here.

    isolsp                         # stdio, as launched by the editor
    isolsp --tcp 2087              # attach an editor to a running server
    isolsp --log-level DEBUG       # log tool command lines and exit codes
"""
from __future__ import annotations

import argparse
import sys


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog='isolsp',
        description=(
            'Language server for Isotope .isotope specifications: stage-aware '
            'completion, keyword hover, and diagnostics from `isotope validate`.'
        ),
    )
    mode = p.add_mutually_exclusive_group()
    mode.add_argument(
        '--stdio',
        action='store_true',
        default=False,
        help='Speak LSP over stdin/stdout (the default; used by the editor extension)',
    )
    mode.add_argument(
        '--tcp',
        metavar='PORT',
        type=int,
        default=None,
        help='Serve one editor connection on 127.0.0.1:PORT instead of stdio',
    )
    p.add_argument(
        '--version',
        action='store_true',
        default=False,
        help='Print the isolsp version and exit without starting the server',
    )
    p.add_argument(
        '--log-level',
        metavar='LEVEL',
        default='WARNING',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
        help=(
            'Initial stderr log level (default: WARNING); the isotope.logLevel '
            'client setting overrides it once the editor connects'
        ),
    )
    return p


def isolsp(argv: list[str] | None = None) -> None:
    """Entry point for the ``isolsp`` command."""
    import logging
    parser = _build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format='%(levelname)s %(name)s: %(message)s',
        stream=sys.stderr,
    )

    from isolsp import __version__

    if args.version:
        print(f'isolsp {__version__}')
        sys.exit(0)

    from isolsp.server import server

    if args.tcp is not None:
        server.start_tcp('127.0.0.1', args.tcp)
    else:
        server.start_io()


if __name__ == '__main__':
    isolsp()

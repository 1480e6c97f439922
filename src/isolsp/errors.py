"""Error taxonomy for operations that drive the external ``isotope`` tool.

Validation findings and failed builds are *results*, not exceptions: they
come back as diagnostics or as a ``BuildResult`` with ``success=False``.
Only conditions that stop an operation before (or while) the tool starts
are raised.
"""
from __future__ import annotations


class IsolspError(Exception):
    """Base class for errors reported back to the user."""


class UserInputError(IsolspError):
    """No usable specification file, workspace or selection was given.

    Raised before any process is spawned.
    """


class ToolInvocationError(IsolspError):
    """The external tool could not be started (missing executable, bad permissions)."""

    def __init__(self, executable: str, reason: str):
        super().__init__(f'could not run {executable!r}: {reason}')
        self.executable = executable
        self.reason = reason

# SPDX-License-Identifier: LGPL-3.0-or-later
"""
Exception hierarchy for vfsconform.

Filesystem errors raised by backends are OSError subclasses and live in
vfsconform.errors.  Everything here describes the harness itself or the
identity manager it drives.
"""


class ConformError(Exception):
    """Base class for all harness errors."""


class SetupError(ConformError):
    """Fixture creation failed; aborts the current case only."""


class BaselineError(ConformError):
    """A golden file exists but cannot be read or decoded."""

    def __init__(self, path, reason):
        super().__init__(f'{path}: {reason}')
        self.path = path
        self.reason = reason


class CaseSkipped(ConformError):
    """Raised by Report.skip() to leave the current case."""


class CaseAborted(ConformError):
    """Raised by Report.fatal() to leave the current case."""


# ── identity manager errors ──────────────────────────────────────────────────

class IdmError(ConformError):
    pass


class AlreadyExistsGroupError(IdmError):
    def __init__(self, name):
        super().__init__(f'group: group {name} already exists')
        self.name = name


class AlreadyExistsUserError(IdmError):
    def __init__(self, name):
        super().__init__(f'user: user {name} already exists')
        self.name = name


class UnknownGroupError(IdmError):
    def __init__(self, name):
        super().__init__(f'group: unknown group {name}')
        self.name = name


class UnknownUserError(IdmError):
    def __init__(self, name):
        super().__init__(f'user: unknown user {name}')
        self.name = name


class ReadOnlyIdmError(IdmError):
    def __init__(self, op):
        super().__init__(f'{op}: identity manager is read only')
        self.op = op

# SPDX-License-Identifier: LGPL-3.0-or-later
"""
Filesystem error types and the chainable error assertions used by the
conformance cases.

Backends raise PathError for single-path failures and LinkError for
two-path failures (rename, link, symlink).  The assertions compare such an
error against an expected shape, optionally scoping a check to one or more
OS types so that the same logical failure can be described with a POSIX
errno and a Windows error code side by side:

    check_path_error(report, err).op('mkdir').path(path) \\
        .err(errno.EEXIST, OSType.LINUX, OSType.DARWIN) \\
        .err(WinError.FILE_EXISTS, OSType.WINDOWS)

Once one check in a chain fails, the remaining checks are skipped.
"""

import enum
import errno
import os

from .vfs import OSType


class WinError(enum.IntEnum):
    FILE_NOT_FOUND = 2
    PATH_NOT_FOUND = 3
    ACCESS_DENIED = 5
    FILE_EXISTS = 80
    DIR_NOT_EMPTY = 145
    ALREADY_EXISTS = 183
    DIR_NAME_INVALID = 267
    PRIVILEGE_NOT_HELD = 1314


def _strerror(err):
    return os.strerror(err) if err is not None else ''


class PathError(OSError):
    """An operation on one path failed."""

    def __init__(self, op, path, err, winerror=None):
        super().__init__(err, _strerror(err), path)
        self.op = op
        self.winerror = winerror

    @classmethod
    def from_oserror(cls, op, exc, path=None):
        return cls(op, exc.filename if path is None else path, exc.errno,
                   getattr(exc, 'winerror', None))

    @property
    def path(self):
        return self.filename

    def __str__(self):
        return f'{self.op} {self.filename}: {self.strerror}'


class LinkError(OSError):
    """An operation on two paths failed."""

    def __init__(self, op, old, new, err, winerror=None):
        super().__init__(err, _strerror(err), old, None, new)
        self.op = op
        self.winerror = winerror

    @classmethod
    def from_oserror(cls, op, old, new, exc):
        return cls(op, old, new, exc.errno, getattr(exc, 'winerror', None))

    @property
    def old(self):
        return self.filename

    @property
    def new(self):
        return self.filename2

    def __str__(self):
        return f'{self.op} {self.filename} {self.filename2}: {self.strerror}'


def capture_error(func, *args, **kwargs):
    """Call func and return the exception it raised, or None."""
    try:
        func(*args, **kwargs)
    except Exception as exc:
        return exc
    return None


def _error_code(exc, want):
    if isinstance(want, WinError):
        return getattr(exc, 'winerror', None)
    return exc.errno


# ── chainable assertions ─────────────────────────────────────────────────────

class _ErrorAssert:
    _kind = None
    _kind_name = ''

    def __init__(self, report, err):
        self._report = report
        self._err = err
        self._failed = False

        if err is None:
            self._fail('want error to be not nil')
        elif not isinstance(err, self._kind):
            self._fail(f'want error type to be {self._kind_name}, '
                       f'got {type(err).__name__} : {err}')

    @property
    def failed(self):
        return self._failed

    def _fail(self, msg):
        self._failed = True
        self._report.error(msg)

    def _can_test(self, ostypes):
        if self._failed:
            return False
        return not ostypes or OSType.current() in ostypes

    def op(self, want, *ostypes):
        if self._can_test(ostypes) and self._err.op != want:
            self._fail(f'want Op to be {want}, got {self._err.op}')
        return self

    def op_stat(self):
        return self.op('CreateFile', OSType.WINDOWS) \
                   .op('stat', OSType.LINUX, OSType.DARWIN)

    def op_lstat(self):
        return self.op('CreateFile', OSType.WINDOWS) \
                   .op('lstat', OSType.LINUX, OSType.DARWIN)

    def err(self, want, *ostypes):
        """Check the underlying error.

        `want` is an errno value, a WinError member, or the expected
        strerror text.
        """
        if not self._can_test(ostypes):
            return self

        if isinstance(want, str):
            if self._err.strerror != want:
                self._fail(f'{self._describe()} : want error to be {want}, '
                           f'got {self._err.strerror}')
            return self

        got = _error_code(self._err, want)
        if got != want:
            self._fail(f'{self._describe()} : want error to be '
                       f'{_code_str(want)} (0x{int(want):X}), got '
                       f'{_code_str(got)}')
        return self

    def err_perm_denied(self):
        return self.err(errno.EACCES, OSType.LINUX, OSType.DARWIN) \
                   .err(WinError.ACCESS_DENIED, OSType.WINDOWS)

    def err_not_exist(self):
        return self.err(errno.ENOENT, OSType.LINUX, OSType.DARWIN) \
                   .err(WinError.FILE_NOT_FOUND, OSType.WINDOWS)


class _PathErrorAssert(_ErrorAssert):
    _kind = PathError
    _kind_name = 'PathError'

    def _describe(self):
        return self._err.path

    def path(self, want):
        if self._can_test(()) and self._err.path != want:
            self._fail(f'want Path to be {want}, got {self._err.path}')
        return self


class _LinkErrorAssert(_ErrorAssert):
    _kind = LinkError
    _kind_name = 'LinkError'

    def _describe(self):
        return f'{self._err.old} {self._err.new}'

    def old(self, want):
        if self._can_test(()) and self._err.old != want:
            self._fail(f'want old path to be {want}, got {self._err.old}')
        return self

    def new(self, want):
        if self._can_test(()) and self._err.new != want:
            self._fail(f'want new path to be {want}, got {self._err.new}')
        return self


def _code_str(code):
    if code is None:
        return 'None'
    if isinstance(code, WinError):
        return code.name
    return errno.errorcode.get(code, str(code))


def check_path_error(report, err):
    return _PathErrorAssert(report, err)


def check_link_error(report, err):
    return _LinkErrorAssert(report, err)


def check_no_error(report, err, msg=''):
    """Report `err` unless it is None; returns True when there was no error."""
    if err is None:
        return True
    suffix = f'\n{msg}' if msg else ''
    report.error(f'error : want error to be nil, got {err}{suffix}')
    return False

# SPDX-License-Identifier: LGPL-3.0-or-later
"""Conformance verification for virtual file systems."""

from .baseline import ErrType, PermError, compare
from .errors import (
    LinkError, PathError, WinError, capture_error, check_link_error,
    check_no_error, check_path_error,
)
from .exceptions import (
    AlreadyExistsGroupError, AlreadyExistsUserError, BaselineError,
    ConformError, IdmError, ReadOnlyIdmError, SetupError, UnknownGroupError,
    UnknownUserError,
)
from .idm import Group, IdentityMgr, OsIdm, User
from .osfs import OsFS
from .perm import PermOptions, PermTests, RecordPolicy
from .race import DEFAULT_MAX_RACE, RaceResult, race_func, run_race
from .report import Report
from .suite import ConformanceSuite
from .vfs import VFS, Feature, OSType

__all__ = [
    'AlreadyExistsGroupError', 'AlreadyExistsUserError', 'BaselineError',
    'ConformError', 'ConformanceSuite', 'DEFAULT_MAX_RACE', 'ErrType',
    'Feature', 'Group', 'IdentityMgr', 'IdmError', 'LinkError', 'OSType',
    'OsFS', 'OsIdm', 'PathError', 'PermError', 'PermOptions', 'PermTests',
    'RaceResult', 'ReadOnlyIdmError', 'RecordPolicy', 'Report', 'SetupError',
    'UnknownGroupError', 'UnknownUserError', 'User', 'VFS', 'WinError',
    'capture_error', 'check_link_error', 'check_no_error', 'check_path_error',
    'compare', 'race_func', 'run_race',
]

# SPDX-License-Identifier: LGPL-3.0-or-later
"""
Pytest fixtures for vfsconform tests.

Nothing here creates system users or groups.  The file system under test
is OsFS rooted in a tmpdir, paired with an in-memory identity manager in
which every fixture user maps to the uid/gid of the test process.  With
that mapping chown() to a fixture user always succeeds, identity switching
becomes a no-op, and the permission oracle can record and replay golden
files without root.
"""

import os

import pytest

from vfsconform.exceptions import (
    AlreadyExistsGroupError, AlreadyExistsUserError, ReadOnlyIdmError,
    UnknownGroupError, UnknownUserError,
)
from vfsconform.idm import ADMIN_GID, ADMIN_UID, Group, IdentityMgr, User
from vfsconform.osfs import OsFS
from vfsconform.perm import RecordPolicy
from vfsconform.vfs import Feature


# ── in-memory identity manager ───────────────────────────────────────────────

class MemIdm(IdentityMgr):
    """Users and groups kept in dicts; uid/gid of new entries are fixed."""

    def __init__(self, uid=None, gid=None, read_only=False):
        self.uid = os.geteuid() if uid is None else uid
        self.gid = os.getegid() if gid is None else gid
        self.features = Feature.IDENTITY_MGR
        if read_only:
            self.features |= Feature.READ_ONLY_IDM
        self.groups = {}
        self.users = {}

    @property
    def type(self):
        return 'MemIdm'

    def admin_user(self):
        return User('root', ADMIN_UID, ADMIN_GID)

    def lookup_user(self, name):
        try:
            return self.users[name]
        except KeyError:
            raise UnknownUserError(name) from None

    def lookup_group(self, name):
        try:
            return self.groups[name]
        except KeyError:
            raise UnknownGroupError(name) from None

    def add_group(self, name):
        if self.has_feature(Feature.READ_ONLY_IDM):
            raise ReadOnlyIdmError('GroupAdd')
        if name in self.groups:
            raise AlreadyExistsGroupError(name)
        self.groups[name] = Group(name, self.gid)
        return self.groups[name]

    def add_user(self, name, group_name):
        if self.has_feature(Feature.READ_ONLY_IDM):
            raise ReadOnlyIdmError('UserAdd')
        if name in self.users:
            raise AlreadyExistsUserError(name)
        self.lookup_group(group_name)
        self.users[name] = User(name, self.uid, self.gid)
        return self.users[name]

    def del_group(self, name):
        self.lookup_group(name)
        del self.groups[name]

    def del_user(self, name):
        self.lookup_user(name)
        del self.users[name]


class MemUserOsFS(OsFS):
    """OsFS whose current user is tracked by name instead of by euid."""

    def __init__(self, idm, user_name='root', admin=True):
        super().__init__(idm=idm)
        uid = ADMIN_UID if admin else idm.uid
        self._user = User(user_name, uid, idm.gid)
        self.switches = []

    @property
    def type(self):
        return 'MemUserOsFS'

    def user(self):
        return self._user

    def set_user(self, name):
        self._user = self._idm.lookup_user(name)
        self.switches.append(name)
        return self._user


# ── suite stand-in for the permission oracle ─────────────────────────────────

class PermSuite:
    """The attributes and methods PermTests needs from a ConformanceSuite."""

    def __init__(self, vfs, users, testdata_dir,
                 record_policy=RecordPolicy.WHEN_ABSENT):
        self.setup_fs = vfs
        self.test_fs = vfs
        self.users = users
        self.init_user = User('init', os.geteuid(), os.getegid())
        self.can_test_perm = True
        self.testdata_dir = testdata_dir
        self.record_policy = record_policy
        self.acting = []

    def set_init_user(self):
        pass

    def set_user(self, name):
        self.acting.append(name)

    def create_dir(self, path, mode):
        self.setup_fs.makedirs(path, mode)
        self.setup_fs.chmod(path, mode)


# ── fixtures ─────────────────────────────────────────────────────────────────

@pytest.fixture
def read_only_osfs():
    """OsFS whose identity manager refuses changes: permissions untestable."""
    return OsFS(idm=MemIdm(read_only=True))


@pytest.fixture
def perm_users():
    uid, gid = os.geteuid(), os.getegid()
    return [User('usrTest', uid, gid), User('usrOth', uid, gid)]


@pytest.fixture
def golden_dir(tmp_path):
    d = tmp_path / 'testdata'
    d.mkdir()
    return str(d)


@pytest.fixture
def perm_suite(perm_users, golden_dir):
    return PermSuite(OsFS(idm=MemIdm(read_only=True)), perm_users, golden_dir)


@pytest.fixture
def work_dir(tmp_path):
    d = tmp_path / 'work'
    d.mkdir()
    return str(d)

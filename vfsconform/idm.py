# SPDX-License-Identifier: LGPL-3.0-or-later
"""
Identity management consumed by the conformance suite.

OsIdm looks users and groups up through pwd/grp and creates them with the
shadow-utils commands.  It is read only unless the process runs as root.
"""

import abc
import dataclasses
import grp
import os
import pwd
import subprocess

from .exceptions import (
    AlreadyExistsGroupError, AlreadyExistsUserError, IdmError,
    ReadOnlyIdmError, UnknownGroupError, UnknownUserError,
)
from .vfs import Feature


ADMIN_UID = 0
ADMIN_GID = 0


@dataclasses.dataclass(frozen=True, slots=True)
class Group:
    name: str
    gid: int


@dataclasses.dataclass(frozen=True, slots=True)
class User:
    name: str
    uid: int
    gid: int

    @property
    def is_admin(self):
        return self.uid == ADMIN_UID


class IdentityMgr(abc.ABC):

    features = Feature(0)

    @property
    @abc.abstractmethod
    def type(self) -> str:
        ...

    def has_feature(self, feature) -> bool:
        return self.features & feature == feature

    @abc.abstractmethod
    def admin_user(self) -> User:
        ...

    @abc.abstractmethod
    def lookup_user(self, name) -> User:
        ...

    @abc.abstractmethod
    def lookup_group(self, name) -> Group:
        ...

    @abc.abstractmethod
    def add_group(self, name) -> Group:
        ...

    @abc.abstractmethod
    def add_user(self, name, group_name) -> User:
        ...

    @abc.abstractmethod
    def del_group(self, name):
        ...

    @abc.abstractmethod
    def del_user(self, name):
        ...


def _user_from_pw(pw):
    return User(pw.pw_name, pw.pw_uid, pw.pw_gid)


class OsIdm(IdentityMgr):

    def __init__(self):
        self.features = Feature.IDENTITY_MGR
        if os.geteuid() != ADMIN_UID:
            self.features |= Feature.READ_ONLY_IDM

    @property
    def type(self):
        return 'OsIdm'

    def _run(self, op, argv):
        if self.has_feature(Feature.READ_ONLY_IDM):
            raise ReadOnlyIdmError(op)
        try:
            subprocess.run(argv, capture_output=True, text=True, check=True)
        except FileNotFoundError as e:
            raise IdmError(f'{op}: {argv[0]} not available') from e
        except subprocess.CalledProcessError as e:
            raise IdmError(f'{op}: {e.stderr.strip() or e}') from e

    def admin_user(self):
        return self.lookup_user_id(ADMIN_UID)

    def lookup_user(self, name):
        try:
            return _user_from_pw(pwd.getpwnam(name))
        except KeyError:
            raise UnknownUserError(name) from None

    def lookup_user_id(self, uid):
        try:
            return _user_from_pw(pwd.getpwuid(uid))
        except KeyError:
            raise UnknownUserError(str(uid)) from None

    def lookup_group(self, name):
        try:
            gr = grp.getgrnam(name)
        except KeyError:
            raise UnknownGroupError(name) from None
        return Group(gr.gr_name, gr.gr_gid)

    def add_group(self, name):
        try:
            self.lookup_group(name)
        except UnknownGroupError:
            pass
        else:
            raise AlreadyExistsGroupError(name)

        self._run('groupadd', ['groupadd', name])
        return self.lookup_group(name)

    def add_user(self, name, group_name):
        try:
            self.lookup_user(name)
        except UnknownUserError:
            pass
        else:
            raise AlreadyExistsUserError(name)

        group = self.lookup_group(group_name)
        self._run('useradd', ['useradd', '-M', '-N', '-g', str(group.gid),
                              '-s', '/usr/sbin/nologin', name])
        return self.lookup_user(name)

    def del_group(self, name):
        self.lookup_group(name)
        self._run('groupdel', ['groupdel', name])

    def del_user(self, name):
        self.lookup_user(name)
        self._run('userdel', ['userdel', name])

    def groups_of(self, user):
        """Return the gids `user` belongs to, primary group first."""
        gids = [user.gid]
        for gr in grp.getgrall():
            if user.name in gr.gr_mem and gr.gr_gid not in gids:
                gids.append(gr.gr_gid)
        return gids

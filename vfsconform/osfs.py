# SPDX-License-Identifier: LGPL-3.0-or-later
"""
OsFS: the host file system seen through the VFS interface.

This is the reference backend golden files are recorded on.  Errors from
the os module are re-raised as PathError/LinkError tagged with the name
of the failing operation.  Identity switching changes the effective
uid/gid/groups of the whole process, so it requires root and must only be
done from a single thread.
"""

import errno
import os
import pwd
import stat
import tempfile
import threading

from .errors import LinkError, PathError
from .idm import ADMIN_UID, OsIdm, User
from .vfs import VFS, DEFAULT_DIR_PERM, DEFAULT_FILE_PERM, Feature


# ENOTEMPTY retries in remove_all when a concurrent writer repopulates a dir
_REMOVE_ALL_RETRIES = 10


class OsFile:
    """An open file descriptor; close() succeeds exactly once."""

    def __init__(self, fd, name):
        self.name = name
        self._fd = fd
        self._lock = threading.Lock()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        if self._fd is not None:
            self.close()

    def fileno(self):
        fd = self._fd
        if fd is None:
            raise PathError('fileno', self.name, errno.EBADF)
        return fd

    def read(self, size=-1):
        fd = self.fileno()
        try:
            if size < 0:
                size = max(os.fstat(fd).st_size, 1)
            return os.read(fd, size)
        except OSError as e:
            raise PathError.from_oserror('read', e, self.name) from e

    def write(self, data):
        fd = self.fileno()
        try:
            return os.write(fd, data)
        except OSError as e:
            raise PathError.from_oserror('write', e, self.name) from e

    def close(self):
        with self._lock:
            fd, self._fd = self._fd, None
        if fd is None:
            raise PathError('close', self.name, errno.EBADF)
        try:
            os.close(fd)
        except OSError as e:
            raise PathError.from_oserror('close', e, self.name) from e


class OsFS(VFS):

    def __init__(self, idm=None):
        self._idm = OsIdm() if idm is None else idm
        self.features = (Feature.REAL_FS | Feature.SYMLINK |
                         Feature.HARDLINK | Feature.SYSTEM_DIRS |
                         self._idm.features)

    @property
    def type(self):
        return 'OsFS'

    def join(self, *elems):
        return os.path.join(*elems)

    # ── identity ─────────────────────────────────────────────────────────────

    @property
    def idm(self):
        return self._idm

    def user(self):
        uid = os.geteuid()
        try:
            pw = pwd.getpwuid(uid)
        except KeyError:
            return User(str(uid), uid, os.getegid())
        return User(pw.pw_name, pw.pw_uid, pw.pw_gid)

    def set_user(self, name):
        u = self._idm.lookup_user(name)
        if os.geteuid() == u.uid and os.getegid() == u.gid:
            return u

        if os.geteuid() != ADMIN_UID:
            os.seteuid(ADMIN_UID)

        os.setgroups(self._idm.groups_of(u))
        os.setegid(u.gid)
        if not u.is_admin:
            os.seteuid(u.uid)
        return u

    # ── directories ──────────────────────────────────────────────────────────

    def mkdir(self, path, mode=DEFAULT_DIR_PERM):
        try:
            os.mkdir(path, mode)
        except OSError as e:
            raise PathError.from_oserror('mkdir', e, path) from e

    def makedirs(self, path, mode=DEFAULT_DIR_PERM):
        try:
            os.makedirs(path, mode, exist_ok=True)
        except OSError as e:
            raise PathError.from_oserror('mkdir', e) from e

    def mkdtemp(self, dir='', prefix=''):
        try:
            return tempfile.mkdtemp(prefix=prefix, dir=dir or None)
        except OSError as e:
            raise PathError.from_oserror('mkdirtemp', e, dir) from e

    def remove(self, path):
        try:
            os.unlink(path)
            return
        except FileNotFoundError as e:
            raise PathError.from_oserror('remove', e, path) from e
        except OSError as unlink_err:
            try:
                os.rmdir(path)
                return
            except OSError as rmdir_err:
                # rmdir(file) is ENOTDIR everywhere, so it decides which is real
                e = unlink_err if rmdir_err.errno == errno.ENOTDIR else rmdir_err
                raise PathError.from_oserror('remove', e, path) from e

    def remove_all(self, path):
        if not path:
            return
        self._remove_all(path)

    def _remove_all(self, path):
        try:
            st = os.lstat(path)
        except FileNotFoundError:
            return
        except OSError as e:
            raise PathError.from_oserror('unlinkat', e, path) from e

        if not stat.S_ISDIR(st.st_mode):
            try:
                os.unlink(path)
            except FileNotFoundError:
                pass
            except OSError as e:
                raise PathError.from_oserror('unlinkat', e, path) from e
            return

        for attempt in range(_REMOVE_ALL_RETRIES):
            try:
                names = os.listdir(path)
            except (FileNotFoundError, NotADirectoryError):
                return
            except OSError as e:
                raise PathError.from_oserror('openfdat', e, path) from e

            for name in names:
                self._remove_all(os.path.join(path, name))

            try:
                os.rmdir(path)
                return
            except FileNotFoundError:
                return
            except OSError as e:
                if e.errno == errno.ENOTEMPTY and attempt < _REMOVE_ALL_RETRIES - 1:
                    continue
                raise PathError.from_oserror('unlinkat', e, path) from e

    # ── files ────────────────────────────────────────────────────────────────

    def open_file(self, path, flags, mode=0):
        try:
            fd = os.open(path, flags, mode)
        except OSError as e:
            raise PathError.from_oserror('open', e, path) from e
        return OsFile(fd, path)

    def mkstemp(self, dir='', prefix=''):
        try:
            fd, name = tempfile.mkstemp(prefix=prefix, dir=dir or None)
        except OSError as e:
            raise PathError.from_oserror('createtemp', e, dir) from e
        return OsFile(fd, name)

    def write_file(self, path, data, mode=DEFAULT_FILE_PERM):
        with self.open_file(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC,
                            mode) as f:
            if data:
                f.write(data)

    # ── links ────────────────────────────────────────────────────────────────

    def rename(self, old, new):
        try:
            os.rename(old, new)
        except OSError as e:
            raise LinkError.from_oserror('rename', old, new, e) from e

    def link(self, old, new):
        try:
            os.link(old, new)
        except OSError as e:
            raise LinkError.from_oserror('link', old, new, e) from e

    def symlink(self, old, new):
        try:
            os.symlink(old, new)
        except OSError as e:
            raise LinkError.from_oserror('symlink', old, new, e) from e

    def realpath(self, path):
        try:
            return os.path.realpath(path, strict=True)
        except OSError as e:
            raise PathError.from_oserror('lstat', e) from e

    # ── metadata ─────────────────────────────────────────────────────────────

    def chmod(self, path, mode):
        try:
            os.chmod(path, mode)
        except OSError as e:
            raise PathError.from_oserror('chmod', e, path) from e

    def chown(self, path, uid, gid):
        try:
            os.chown(path, uid, gid)
        except OSError as e:
            raise PathError.from_oserror('chown', e, path) from e

    def lchown(self, path, uid, gid):
        try:
            os.lchown(path, uid, gid)
        except OSError as e:
            raise PathError.from_oserror('lchown', e, path) from e

    def chtimes(self, path, atime, mtime):
        try:
            os.utime(path, (atime, mtime))
        except OSError as e:
            raise PathError.from_oserror('chtimes', e, path) from e

    def stat(self, path):
        try:
            return os.stat(path)
        except OSError as e:
            raise PathError.from_oserror('stat', e, path) from e

    def lstat(self, path):
        try:
            return os.lstat(path)
        except OSError as e:
            raise PathError.from_oserror('lstat', e, path) from e

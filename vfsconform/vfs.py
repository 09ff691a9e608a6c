# SPDX-License-Identifier: LGPL-3.0-or-later
"""
The filesystem surface consumed by the conformance suite.

Backends under test subclass VFS.  Every failing operation raises
vfsconform.errors.PathError (one path) or vfsconform.errors.LinkError
(two paths); both are OSError subclasses carrying the operation name.
"""

import abc
import enum
import os
import posixpath
import sys


DEFAULT_DIR_PERM = 0o777
DEFAULT_FILE_PERM = 0o666


class Feature(enum.IntFlag):
    """Capabilities advertised by a file system or an identity manager."""
    HARDLINK = 1 << 0
    IDENTITY_MGR = 1 << 1
    READ_ONLY = 1 << 2
    READ_ONLY_IDM = 1 << 3
    REAL_FS = 1 << 4
    SYMLINK = 1 << 5
    SYSTEM_DIRS = 1 << 6


class OSType(enum.Enum):
    UNKNOWN = 'Unknown'
    LINUX = 'Linux'
    DARWIN = 'Darwin'
    WINDOWS = 'Windows'

    @classmethod
    def current(cls):
        if sys.platform.startswith('linux'):
            return cls.LINUX
        if sys.platform == 'darwin':
            return cls.DARWIN
        if sys.platform in ('win32', 'cygwin'):
            return cls.WINDOWS
        return cls.UNKNOWN


def features_str(features):
    """Return 'HARDLINK|SYMLINK' style text for a Feature mask."""
    names = [f.name for f in Feature if features & f]
    return '|'.join(names) if names else '0'


class VFS(abc.ABC):
    """Abstract virtual file system.

    `features` is a Feature mask, `ostype` the OSType whose semantics the
    backend emulates.  Identity is handle-wide state: set_user() changes
    the user every later call on this handle acts as.
    """

    features = Feature(0)
    ostype = OSType.current()

    @property
    @abc.abstractmethod
    def type(self) -> str:
        ...

    def has_feature(self, feature) -> bool:
        return self.features & feature == feature

    def join(self, *elems) -> str:
        return posixpath.join(*elems)

    def base(self, path) -> str:
        return posixpath.basename(path.rstrip('/')) or '/'

    # ── identity ─────────────────────────────────────────────────────────────

    @property
    @abc.abstractmethod
    def idm(self):
        """The IdentityMgr attached to this file system."""

    @abc.abstractmethod
    def user(self):
        """Return the vfsconform.idm.User this handle currently acts as."""

    @abc.abstractmethod
    def set_user(self, name):
        """Act as user `name` for subsequent calls; returns the User."""

    # ── directories ──────────────────────────────────────────────────────────

    @abc.abstractmethod
    def mkdir(self, path, mode=DEFAULT_DIR_PERM):
        ...

    @abc.abstractmethod
    def makedirs(self, path, mode=DEFAULT_DIR_PERM):
        """Create `path` and any missing parents; existing dirs are not an error."""

    @abc.abstractmethod
    def mkdtemp(self, dir='', prefix=''):
        """Create a uniquely named directory and return its path."""

    @abc.abstractmethod
    def remove(self, path):
        ...

    @abc.abstractmethod
    def remove_all(self, path):
        """Remove `path` and its children; a missing path is not an error."""

    # ── files ────────────────────────────────────────────────────────────────

    @abc.abstractmethod
    def open_file(self, path, flags, mode=0):
        """Open `path` with os.O_* `flags` and return a file with close()."""

    def open(self, path):
        return self.open_file(path, os.O_RDONLY, 0)

    def create(self, path):
        return self.open_file(path, os.O_RDWR | os.O_CREAT | os.O_TRUNC,
                              DEFAULT_FILE_PERM)

    @abc.abstractmethod
    def mkstemp(self, dir='', prefix=''):
        """Create a uniquely named file, returning an open file object."""

    @abc.abstractmethod
    def write_file(self, path, data, mode=DEFAULT_FILE_PERM):
        ...

    # ── links ────────────────────────────────────────────────────────────────

    @abc.abstractmethod
    def rename(self, old, new):
        ...

    @abc.abstractmethod
    def link(self, old, new):
        ...

    @abc.abstractmethod
    def symlink(self, old, new):
        ...

    @abc.abstractmethod
    def realpath(self, path):
        ...

    # ── metadata ─────────────────────────────────────────────────────────────

    @abc.abstractmethod
    def chmod(self, path, mode):
        ...

    @abc.abstractmethod
    def chown(self, path, uid, gid):
        ...

    @abc.abstractmethod
    def lchown(self, path, uid, gid):
        ...

    @abc.abstractmethod
    def chtimes(self, path, atime, mtime):
        ...

    @abc.abstractmethod
    def stat(self, path):
        ...

    @abc.abstractmethod
    def lstat(self, path):
        ...

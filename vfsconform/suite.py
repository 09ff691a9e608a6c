# SPDX-License-Identifier: LGPL-3.0-or-later
"""
Conformance suite for virtual file systems.

A ConformanceSuite owns two handles on the file system being certified:
`setup_fs`, used to build fixtures with the rights of the initial user,
and `test_fs`, the handle whose semantics are verified (the same object
unless a read-only or otherwise restricted view is passed).

    suite = ConformanceSuite(OsFS())
    report = Report('OsFS')
    suite.test_all(report)
    assert not report.failed, report.format_failures()

Every case gets its own directory under a scratch root; the directory is
created before the case runs and removed afterwards as the initial user.
"""

import dataclasses
import logging
import os
import threading
import time

from .errors import capture_error
from .exceptions import (
    AlreadyExistsGroupError, AlreadyExistsUserError, ConformError, IdmError,
    SetupError,
)
from .perm import PermOptions, PermTests, RecordPolicy
from .race import DEFAULT_MAX_RACE, RaceResult, race_func
from .vfs import DEFAULT_DIR_PERM, DEFAULT_FILE_PERM, Feature, OSType, features_str


logger = logging.getLogger(__name__)

DEFAULT_TESTDATA_DIR = os.path.join(os.path.dirname(__file__), 'testdata')

DEFAULT_DIR = 'defaultDir'
DEFAULT_FILE = 'defaultFile'
EMPTY_FILE = 'emptyFile'

GRP_TEST = 'grpTest'      # group of the default test user
GRP_OTHER = 'grpOther'    # group of users outside GRP_TEST
GRP_EMPTY = 'grpEmpty'    # group without users

USR_TEST = 'usrTest'      # default test user, owner of permission targets
USR_GRP = 'usrGrp'        # member of GRP_TEST
USR_OTH = 'usrOth'        # member of GRP_OTHER


@dataclasses.dataclass(frozen=True, slots=True)
class UserInfo:
    name: str
    group_name: str


GROUP_INFOS = (GRP_TEST, GRP_OTHER, GRP_EMPTY)

USER_INFOS = (
    UserInfo(USR_TEST, GRP_TEST),
    UserInfo(USR_GRP, GRP_TEST),
    UserInfo(USR_OTH, GRP_OTHER),
)


def create_groups(idm, suffix=''):
    """Create the fixture groups; existing groups are reused."""
    groups = []
    for name in GROUP_INFOS:
        group_name = name + suffix
        try:
            g = idm.add_group(group_name)
        except AlreadyExistsGroupError:
            g = idm.lookup_group(group_name)
        except IdmError as e:
            raise SetupError(f'GroupAdd {group_name} : {e}') from e
        groups.append(g)
    return groups


def create_users(idm, suffix=''):
    """Create the fixture users; existing users are reused."""
    users = []
    for ui in USER_INFOS:
        user_name = ui.name + suffix
        try:
            u = idm.add_user(user_name, ui.group_name + suffix)
        except AlreadyExistsUserError:
            u = idm.lookup_user(user_name)
        except IdmError as e:
            raise SetupError(f'UserAdd {user_name} : {e}') from e
        users.append(u)
    return users


class ConformanceSuite:

    def __init__(self, setup_fs, test_fs=None, max_race=DEFAULT_MAX_RACE,
                 testdata_dir=None, record_policy=RecordPolicy.REFERENCE_ONLY):
        if setup_fs is None:
            raise ConformError('want setup_fs to be set, got None')

        self.setup_fs = setup_fs
        self.test_fs = setup_fs if test_fs is None else test_fs
        self.max_race = max_race
        self.testdata_dir = testdata_dir or DEFAULT_TESTDATA_DIR
        self.record_policy = record_policy
        self.root_dir = None
        self.idm = setup_fs.idm
        self.init_user = setup_fs.user()

        self.can_test_perm = (
            setup_fs.ostype != OSType.WINDOWS and
            self.init_user.is_admin and
            setup_fs.has_feature(Feature.IDENTITY_MGR) and
            not setup_fs.has_feature(Feature.READ_ONLY_IDM) and
            not self.test_fs.has_feature(Feature.READ_ONLY)
        )

        self.groups = []
        self.users = []
        if self.can_test_perm:
            self.groups = create_groups(self.idm)
            self.users = create_users(self.idm)

        vfs = self.test_fs
        logger.info('VFS: Type=%s OSType=%s Features=%s, can test permissions = %s',
                    vfs.type, vfs.ostype.value, features_str(vfs.features),
                    self.can_test_perm)

    # ── identity ─────────────────────────────────────────────────────────────

    def set_user(self, name):
        """Make `name` the user of the test handle (no-op without permissions)."""
        if not self.can_test_perm:
            return

        vfs = self.test_fs
        if vfs.user().name == name:
            return

        err = capture_error(vfs.set_user, name)
        if err is not None:
            raise SetupError(f'SetUser {name} : {err}')

    def set_init_user(self):
        if not self.can_test_perm:
            return

        name = self.init_user.name
        for vfs in (self.setup_fs, self.test_fs):
            if vfs.user().name == name:
                continue
            err = capture_error(vfs.set_user, name)
            if err is not None:
                raise SetupError(f'SetUser {name} : {err}')

    # ── fixtures ─────────────────────────────────────────────────────────────

    def _setup(self, what, func, *args):
        err = capture_error(func, *args)
        if err is not None:
            raise SetupError(f'{what} : want error to be nil, got {err}')

    def create_dir(self, path, mode):
        vfs = self.setup_fs
        self._setup(f'MkdirAll {path}', vfs.makedirs, path, mode)
        self._setup(f'Chmod {path}', vfs.chmod, path, mode)

    def create_file(self, path, mode):
        self._setup(f'WriteFile {path}', self.setup_fs.write_file, path, b'', mode)

    def create_root_dir(self):
        vfs = self.setup_fs
        try:
            root_dir = vfs.mkdtemp(prefix='vfsconform')
            vfs.chmod(root_dir, DEFAULT_DIR_PERM)
            if vfs.has_feature(Feature.SYMLINK):
                root_dir = vfs.realpath(root_dir)
        except OSError as e:
            raise SetupError(f'MkdirTemp : {e}') from e
        self.root_dir = root_dir
        return root_dir

    def remove_dir(self, path):
        """Remove `path` as the initial user, whatever the modes below it."""
        self.set_init_user()
        err = capture_error(self.setup_fs.remove_all, path)
        if err is not None and OSType.current() != OSType.WINDOWS:
            raise SetupError(f'RemoveAll {path} : want error to be nil, got {err}')

    def empty_file(self, test_dir):
        vfs = self.setup_fs
        path = vfs.join(test_dir, EMPTY_FILE)
        if capture_error(vfs.stat, path) is not None:
            self.create_file(path, DEFAULT_FILE_PERM)
        return path

    def opened_empty_file(self, test_dir):
        path = self.empty_file(test_dir)
        vfs = self.test_fs
        if vfs.has_feature(Feature.READ_ONLY):
            flags = os.O_RDONLY
        else:
            flags = os.O_RDWR | os.O_CREAT
        try:
            return vfs.open_file(path, flags, DEFAULT_FILE_PERM)
        except OSError as e:
            raise SetupError(f'OpenFile {path} : {e}') from e

    # ── dispatch ─────────────────────────────────────────────────────────────

    def run_tests(self, report, user_name, *cases):
        """
        Run each case(report, test_dir) as a sub-case of `report`, acting as
        `user_name`, in a fresh directory named after the case.
        """
        try:
            self.set_init_user()
            root_dir = self.create_root_dir()
        except SetupError as e:
            report.error(f'setup : {e}')
            return

        def run_case(r, case, test_dir):
            self.set_init_user()
            self.create_dir(test_dir, DEFAULT_DIR_PERM)
            self.set_user(user_name)
            try:
                case(r, test_dir)
            finally:
                self.remove_dir(test_dir)

        try:
            for case in cases:
                name = case.__name__
                test_dir = self.setup_fs.join(root_dir, name)
                report.run(name, run_case, case, test_dir)
        finally:
            try:
                self.remove_dir(root_dir)
            except SetupError as e:
                report.error(f'teardown : {e}')

    def test_all(self, report):
        report.run('race', self.test_race)
        report.run('perm', self.test_perm)

    def test_race(self, report):
        vfs = self.test_fs
        if vfs.ostype != OSType.current():
            report.skip(f'TestRace : Current OSType = {OSType.current().value} '
                        f'is different from {vfs.type} OSType = '
                        f'{vfs.ostype.value}, skipping race tests')

        self.run_tests(report, USR_TEST,
                       self.race_create,
                       self.race_create_temp,
                       self.race_file_close,
                       self.race_mkdir,
                       self.race_makedirs,
                       self.race_mkdtemp,
                       self.race_open,
                       self.race_open_file,
                       self.race_open_file_excl,
                       self.race_remove,
                       self.race_remove_all,
                       self.race_makedirs_remove_all)

    def test_perm(self, report):
        if not self.can_test_perm:
            report.skip(f'permissions can not be tested on {self.test_fs.type}')

        self.run_tests(report, self.init_user.name,
                       self.perm_chmod,
                       self.perm_chown,
                       self.perm_chtimes,
                       self.perm_create,
                       self.perm_lchown,
                       self.perm_link,
                       self.perm_mkdir,
                       self.perm_makedirs,
                       self.perm_open_file_dir,
                       self.perm_open_file_read,
                       self.perm_open_file_write,
                       self.perm_remove,
                       self.perm_remove_all,
                       self.perm_rename,
                       self.perm_symlink)

    # ── race cases ───────────────────────────────────────────────────────────

    def _race(self, report, rr, *funcs):
        return race_func(report, rr, *funcs, max_race=self.max_race)

    def _unique_names(self, report, what):
        """Return a callable registering names and reporting duplicates."""
        seen = set()
        lock = threading.Lock()

        def register(name):
            with lock:
                if name in seen:
                    report.error(f'{what} {name} already exists')
                seen.add(name)

        return register

    def race_create(self, report, test_dir):
        vfs = self.test_fs
        path = vfs.join(test_dir, DEFAULT_FILE)

        def create():
            vfs.create(path).close()

        self._race(report, RaceResult.ALL_OK, create)

    def race_create_temp(self, report, test_dir):
        vfs = self.test_fs
        register = self._unique_names(report, 'file')

        def create_temp():
            f = vfs.mkstemp(dir=test_dir, prefix='vfsconform')
            register(f.name)
            f.close()

        self._race(report, RaceResult.ALL_OK, create_temp)

    def race_file_close(self, report, test_dir):
        f = self.opened_empty_file(test_dir)
        self._race(report, RaceResult.ONE_OK, f.close)

    def race_mkdir(self, report, test_dir):
        vfs = self.test_fs
        path = vfs.join(test_dir, DEFAULT_DIR)
        self._race(report, RaceResult.ONE_OK,
                   lambda: vfs.mkdir(path, DEFAULT_DIR_PERM))

    def race_makedirs(self, report, test_dir):
        vfs = self.test_fs
        path = vfs.join(test_dir, DEFAULT_DIR)
        self._race(report, RaceResult.ALL_OK,
                   lambda: vfs.makedirs(path, DEFAULT_DIR_PERM))

    def race_mkdtemp(self, report, test_dir):
        vfs = self.test_fs
        register = self._unique_names(report, 'directory')

        def mkdtemp():
            register(vfs.mkdtemp(dir=test_dir, prefix='RaceMkdirTemp'))

        self._race(report, RaceResult.ALL_OK, mkdtemp)

    def race_open(self, report, test_dir):
        vfs = self.test_fs
        path = self.empty_file(test_dir)
        self._race(report, RaceResult.ALL_OK,
                   lambda: vfs.open(path).close())

    def race_open_file(self, report, test_dir):
        vfs = self.test_fs
        path = vfs.join(test_dir, DEFAULT_FILE)
        flags = os.O_RDWR | os.O_CREAT
        self._race(report, RaceResult.ALL_OK,
                   lambda: vfs.open_file(path, flags, DEFAULT_FILE_PERM).close())

    def race_open_file_excl(self, report, test_dir):
        vfs = self.test_fs
        path = vfs.join(test_dir, DEFAULT_FILE)
        flags = os.O_RDWR | os.O_CREAT | os.O_EXCL
        self._race(report, RaceResult.ONE_OK,
                   lambda: vfs.open_file(path, flags, DEFAULT_FILE_PERM).close())

    def race_remove(self, report, test_dir):
        vfs = self.test_fs
        path = vfs.join(test_dir, DEFAULT_DIR)
        self.create_dir(path, DEFAULT_DIR_PERM)
        self._race(report, RaceResult.UNDEFINED, lambda: vfs.remove(path))

    def race_remove_all(self, report, test_dir):
        vfs = self.test_fs
        path = vfs.join(test_dir, DEFAULT_DIR)
        self.create_dir(path, DEFAULT_DIR_PERM)
        self._race(report, RaceResult.ALL_OK, lambda: vfs.remove_all(path))

    def race_makedirs_remove_all(self, report, test_dir):
        vfs = self.test_fs
        path = vfs.join(test_dir, 'new', 'path', 'to', 'test')
        self._race(report, RaceResult.UNDEFINED,
                   lambda: vfs.makedirs(path, DEFAULT_DIR_PERM),
                   lambda: vfs.remove_all(path))

    # ── permission cases ─────────────────────────────────────────────────────

    def admin_user(self):
        try:
            return self.test_fs.idm.admin_user()
        except IdmError as e:
            raise SetupError(f'AdminUser : {e}') from e

    def new_perm_tests(self, report, test_dir, name, options=None):
        if not self.can_test_perm:
            report.skip(f'{name} : permissions can not be tested on '
                        f'{self.test_fs.type}')
        return PermTests(self, test_dir, name, options)

    def perm_chmod(self, report, test_dir):
        vfs = self.test_fs
        pts = self.new_perm_tests(report, test_dir, 'Chmod')
        pts.test(report, lambda path: vfs.chmod(path, 0o777))

    def perm_chown(self, report, test_dir):
        vfs = self.test_fs
        admin = self.admin_user()
        pts = self.new_perm_tests(report, test_dir, 'Chown')
        pts.test(report, lambda path: vfs.chown(path, admin.uid, admin.gid))

    def perm_chtimes(self, report, test_dir):
        vfs = self.test_fs
        pts = self.new_perm_tests(report, test_dir, 'Chtimes')

        def chtimes(path):
            now = time.time()
            vfs.chtimes(path, now, now)

        pts.test(report, chtimes)

    def perm_create(self, report, test_dir):
        vfs = self.test_fs
        pts = self.new_perm_tests(report, test_dir, 'Create')
        pts.test(report, lambda path: vfs.create(vfs.join(path, DEFAULT_FILE)).close())

    def perm_lchown(self, report, test_dir):
        vfs = self.test_fs
        admin = self.admin_user()
        pts = self.new_perm_tests(report, test_dir, 'Lchown')
        pts.test(report, lambda path: vfs.lchown(path, admin.uid, admin.gid))

    def perm_link(self, report, test_dir):
        vfs = self.test_fs
        if not vfs.has_feature(Feature.HARDLINK):
            report.skip(f'{vfs.type} does not support hard links')

        pts = self.new_perm_tests(report, test_dir, 'LinkNew')
        old_file = vfs.join(pts.perm_dir, 'OldFile')
        self.create_file(old_file, DEFAULT_FILE_PERM)

        pts.test(report, lambda path: vfs.link(old_file, vfs.join(path, 'newFile')))

    def perm_mkdir(self, report, test_dir):
        vfs = self.test_fs
        pts = self.new_perm_tests(report, test_dir, 'Mkdir')
        pts.test(report, lambda path: vfs.mkdir(vfs.join(path, 'newDir'),
                                                DEFAULT_DIR_PERM))

    def perm_makedirs(self, report, test_dir):
        vfs = self.test_fs
        pts = self.new_perm_tests(report, test_dir, 'MkdirAll')
        pts.test(report, lambda path: vfs.makedirs(vfs.join(path, 'newDir'),
                                                   DEFAULT_DIR_PERM))

    def _open_close(self, flags):
        vfs = self.test_fs

        def open_close(path):
            vfs.open_file(path, flags, 0).close()

        return open_close

    def perm_open_file_dir(self, report, test_dir):
        pts = self.new_perm_tests(report, test_dir, 'OpenFileDir')
        pts.test(report, self._open_close(os.O_RDONLY))

    def perm_open_file_read(self, report, test_dir):
        pts = self.new_perm_tests(report, test_dir, 'OpenFileRead',
                                  PermOptions(create_files=True))
        pts.test(report, self._open_close(os.O_RDONLY))

    def perm_open_file_write(self, report, test_dir):
        pts = self.new_perm_tests(report, test_dir, 'OpenFileWrite',
                                  PermOptions(create_files=True))
        pts.test(report, self._open_close(os.O_WRONLY))

    def perm_remove(self, report, test_dir):
        vfs = self.test_fs
        pts = self.new_perm_tests(report, test_dir, 'Remove')
        pts.test(report, vfs.remove)

    def perm_remove_all(self, report, test_dir):
        vfs = self.test_fs
        pts = self.new_perm_tests(report, test_dir, 'RemoveAll',
                                  PermOptions(ignore_op=True))
        pts.test(report, vfs.remove_all)

    def perm_rename(self, report, test_dir):
        vfs = self.test_fs
        pts = self.new_perm_tests(report, test_dir, 'RenameNew')

        def old_path(path):
            return vfs.join(pts.perm_dir, vfs.base(path))

        def create_old(path):
            self.create_file(old_path(path), DEFAULT_FILE_PERM)

        pts.test(report,
                 lambda path: vfs.rename(old_path(path), vfs.join(path, 'New')),
                 setup=create_old)

    def perm_symlink(self, report, test_dir):
        vfs = self.test_fs
        if not vfs.has_feature(Feature.SYMLINK):
            report.skip(f'{vfs.type} does not support symbolic links')

        pts = self.new_perm_tests(report, test_dir, 'Symlink')
        pts.test(report, lambda path: vfs.symlink(path, vfs.join(path, 'Symlink')))

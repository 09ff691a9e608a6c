# SPDX-License-Identifier: LGPL-3.0-or-later
"""
Permission oracle.

A permission case runs one operation against a target whose mode walks
every permission value, once for each fixture user.  The first run on the
reference file system (the host file system, as root) records what
happened into a golden file; every later run, on any backend, replays the
matrix and compares each outcome with the recorded one.

Layout under the case directory:

    <perm_dir>/                     0777, owned by the initial user
        <user name>/                0775, owned by the target owner
            <mode as 3 octal digits>  directory (or file) with that mode

The target is recreated before each call so that an operation which
changes it (remove, chmod ...) cannot leak into the next combination.
"""

import dataclasses
import enum
import logging
import os

from . import baseline
from .errors import capture_error
from .exceptions import BaselineError, SetupError
from .vfs import DEFAULT_DIR_PERM, Feature, OSType


logger = logging.getLogger(__name__)

USER_DIR_PERM = 0o775


class RecordPolicy(enum.Enum):
    """When a missing golden file may be recorded by the current run."""
    REFERENCE_ONLY = 'reference_only'   # privileged run on a real file system
    WHEN_ABSENT = 'when_absent'         # any run able to switch identities
    NEVER = 'never'                     # replay only


@dataclasses.dataclass(slots=True)
class PermOptions:
    ignore_op: bool = False       # do not compare the operation name
    ignore_path: bool = False     # do not compare Path / Old / New
    create_files: bool = False    # targets are files instead of directories


def perm_modes(ostype):
    """Permission values exercised for a given OS type."""
    if ostype == OSType.WINDOWS:
        # only the owner write bit is meaningful
        return (0o444, 0o666)
    return range(1, 0o1000)


def perm_key(user_name, mode):
    return f'{user_name}/{mode:03o}'


class PermTests:

    def __init__(self, suite, test_dir, name, options=None):
        self.suite = suite
        self.name = name
        self.options = options or PermOptions()
        self.perm_dir = suite.setup_fs.join(test_dir, name)
        self.golden_path = os.path.join(
            suite.testdata_dir, baseline.golden_name(name, OSType.current()))
        self.golden_exists = True
        self.records = {}
        self.modes = perm_modes(suite.test_fs.ostype)

        self._create_dirs()

    @property
    def owner(self):
        """The fixture user owning every target."""
        return self.suite.users[0]

    def _setup(self, what, func, *args):
        err = capture_error(func, *args)
        if err is not None:
            raise SetupError(f'{what} : {err}')

    def _create_dirs(self):
        suite = self.suite
        vfs = suite.setup_fs
        owner = self.owner

        suite.set_init_user()
        suite.create_dir(self.perm_dir, DEFAULT_DIR_PERM)

        for u in suite.users:
            usr_dir = vfs.join(self.perm_dir, u.name)
            suite.create_dir(usr_dir, USER_DIR_PERM)
            self._setup(f'Chown {usr_dir}', vfs.chown, usr_dir,
                        owner.uid, owner.gid)

    def path(self, user_name, mode):
        return self.suite.setup_fs.join(self.perm_dir, user_name, f'{mode:03o}')

    def reset_target(self, path, mode):
        """Recreate the target at `path` with permissions `mode`."""
        vfs = self.suite.setup_fs
        owner = self.owner

        self._setup(f'RemoveAll {path}', vfs.remove_all, path)
        if self.options.create_files:
            self._setup(f'WriteFile {path}', vfs.write_file, path, b'', mode)
        else:
            self._setup(f'Mkdir {path}', vfs.mkdir, path, mode)
        self._setup(f'Chown {path}', vfs.chown, path, owner.uid, owner.gid)
        self._setup(f'Chmod {path}', vfs.chmod, path, mode)

    # ── golden file ──────────────────────────────────────────────────────────

    def load(self):
        self.suite.set_init_user()
        records = baseline.load(self.golden_path)
        if records is None:
            self.golden_exists = False
            self.records = {}
            return
        self.records = records

    def save(self, report):
        if self.golden_exists:
            return

        self.suite.set_init_user()
        try:
            baseline.save(self.golden_path, self.records.values())
        except OSError as e:
            report.fatal(f'Save {self.golden_path} : {e}')
        report.log(f'recorded {len(self.records)} results in {self.golden_path}')
        logger.info('%s: recorded golden file %s', self.name, self.golden_path)

    def _cannot_record(self, report):
        """Report why a missing golden file can not be recorded now, if so."""
        suite = self.suite
        policy = suite.record_policy

        if policy == RecordPolicy.NEVER:
            report.skip(f'{self.name} : golden file {self.golden_path} not '
                        f'present and recording is disabled')

        if policy == RecordPolicy.REFERENCE_ONLY:
            if not suite.init_user.is_admin:
                report.skip(f'{self.name} : golden file {self.golden_path} '
                            f'not present, it must be recorded by a '
                            f'privileged user')
            if not suite.setup_fs.has_feature(Feature.REAL_FS):
                report.error(f"Can't test emulated file system "
                             f'{suite.setup_fs.type} before a real file system.')
                return True

        return False

    # ── matrix ───────────────────────────────────────────────────────────────

    def test(self, report, perm_func, setup=None):
        """
        Record or verify perm_func(path) for every (user, mode).

        `setup(path)`, when given, runs as the initial user right after the
        target is recreated.
        """
        suite = self.suite

        if not suite.can_test_perm:
            report.skip(f'{self.name} : permissions can not be tested on '
                        f'{suite.test_fs.type}')

        try:
            self.load()
        except BaselineError as e:
            report.fatal(f'Load {e}')

        if not self.golden_exists and self._cannot_record(report):
            return

        prefix = suite.setup_fs.join(self.perm_dir, '')
        for u in suite.users:
            for mode in self.modes:
                key = perm_key(u.name, mode)
                path = self.path(u.name, mode)

                suite.set_init_user()
                self.reset_target(path, mode)
                if setup is not None:
                    self._setup(f'setup {path}', setup, path)

                suite.set_user(u.name)
                err = capture_error(perm_func, path)
                got = baseline.PermError.from_exception(key, err, prefix)

                if not self.golden_exists:
                    self.records[key] = got
                    continue

                want = self.records.get(key)
                if want is None:
                    suite.set_init_user()
                    report.fatal(f'Compare {path} : no test recorded')

                diffs = baseline.compare(want, got,
                                         ignore_op=self.options.ignore_op,
                                         ignore_path=self.options.ignore_path)
                if diffs:
                    report.error(f'Compare {key} : ' +
                                 ''.join(f'\n\t{d}' for d in diffs))

        suite.set_init_user()
        self.save(report)

# SPDX-License-Identifier: LGPL-3.0-or-later
"""
Golden files for the permission oracle.

A golden file holds the errors observed on the reference file system for
every (user, mode) combination of one permission case.  It is a JSON array
of objects, one per combination, in the order the matrix was walked:

    [
    	{
    		"key": "usrGrp/750",
    		"errType": "PathError",
    		"errOp": "mkdir",
    		"errPath": "usrGrp/750/newDir",
    		"errErr": "Permission denied"
    	},
    	{
    		"key": "usrGrp/755"
    	}
    ]

A record with only a key means the operation succeeded.  Empty fields are
omitted.
"""

import dataclasses
import enum
import json
import os
import tempfile

from .errors import LinkError, PathError
from .exceptions import BaselineError


GOLDEN_FILE_PERM = 0o644


class ErrType(str, enum.Enum):
    LINK_ERROR = 'LinkError'
    PATH_ERROR = 'PathError'
    STRING_ERROR = 'StringError'


# (attribute, json name) in serialization order
_FIELDS = (
    ('err_type', 'errType'),
    ('err_op',   'errOp'),
    ('err_path', 'errPath'),
    ('err_old',  'errOld'),
    ('err_new',  'errNew'),
    ('err_err',  'errErr'),
)


def _trim(path, prefix):
    if path is None:
        return ''
    path = os.fsdecode(path) if isinstance(path, bytes) else str(path)
    return path.removeprefix(prefix) if prefix else path


@dataclasses.dataclass(slots=True)
class PermError:
    key: str
    err_type: ErrType | None = None
    err_op: str = ''
    err_path: str = ''
    err_old: str = ''
    err_new: str = ''
    err_err: str = ''

    @classmethod
    def from_exception(cls, key, exc, prefix=''):
        """Classify `exc` (None for success) with paths relative to prefix."""
        if exc is None:
            return cls(key)

        if isinstance(exc, LinkError) or (isinstance(exc, OSError) and
                                          exc.filename2 is not None):
            return cls(key, ErrType.LINK_ERROR,
                       err_op=getattr(exc, 'op', ''),
                       err_old=_trim(exc.filename, prefix),
                       err_new=_trim(exc.filename2, prefix),
                       err_err=exc.strerror or str(exc))

        if isinstance(exc, PathError) or (isinstance(exc, OSError) and
                                          exc.filename is not None):
            return cls(key, ErrType.PATH_ERROR,
                       err_op=getattr(exc, 'op', ''),
                       err_path=_trim(exc.filename, prefix),
                       err_err=exc.strerror or str(exc))

        return cls(key, ErrType.STRING_ERROR, err_err=str(exc))

    @classmethod
    def from_dict(cls, data):
        if not isinstance(data, dict) or not isinstance(data.get('key'), str):
            raise ValueError(f'record without a key: {data!r}')

        kwargs = {'key': data['key']}
        for attr, name in _FIELDS:
            if name in data:
                kwargs[attr] = data[name]
        if 'err_type' in kwargs:
            kwargs['err_type'] = ErrType(kwargs['err_type'])
        return cls(**kwargs)

    def to_dict(self):
        d = {'key': self.key}
        for attr, name in _FIELDS:
            value = getattr(self, attr)
            if value:
                d[name] = value.value if isinstance(value, ErrType) else value
        return d

    def __str__(self):
        if self.err_type is None:
            return '<nil>'
        if self.err_type == ErrType.PATH_ERROR:
            return f'{self.err_op} {self.err_path}: {self.err_err}'
        if self.err_type == ErrType.LINK_ERROR:
            return f'{self.err_op} {self.err_old} {self.err_new}: {self.err_err}'
        return self.err_err


def golden_name(case_name, ostype):
    return f'perm{case_name}{ostype.value}.golden'


def _type_name(err_type):
    return err_type.value if err_type is not None else 'nil'


def compare(want, got, ignore_op=False, ignore_path=False):
    """Return the list of differences between two records (empty if equal)."""
    diffs = []

    if got.err_type != want.err_type:
        diffs.append(f'want error type to be {_type_name(want.err_type)}, '
                     f'got {_type_name(got.err_type)}')

    with_op = want.err_type in (ErrType.PATH_ERROR, ErrType.LINK_ERROR)
    if not ignore_op and with_op and got.err_op != want.err_op:
        diffs.append(f'want Op to be {want.err_op}, got {got.err_op}')

    if not ignore_path:
        if want.err_type == ErrType.PATH_ERROR and got.err_path != want.err_path:
            diffs.append(f'want path to be {want.err_path}, got {got.err_path}')

        if want.err_type == ErrType.LINK_ERROR:
            if got.err_old != want.err_old:
                diffs.append(f'want Old to be {want.err_old}, got {got.err_old}')
            if got.err_new != want.err_new:
                diffs.append(f'want New to be {want.err_new}, got {got.err_new}')

    if got.err_err != want.err_err:
        diffs.append(f'want error to be {want.err_err or "nil"}, '
                     f'got {got.err_err or "nil"}')

    return diffs


# ── persistence ──────────────────────────────────────────────────────────────

def load(path):
    """
    Load a golden file.  Returns an ordered dict key -> PermError, or None
    when the file does not exist.
    """
    try:
        with open(path, 'r') as f:
            data = json.load(f)
    except FileNotFoundError:
        return None
    except (OSError, ValueError) as e:
        raise BaselineError(path, str(e)) from e

    if not isinstance(data, list):
        raise BaselineError(path, 'want a JSON array of records')

    records = {}
    for item in data:
        try:
            rec = PermError.from_dict(item)
        except (TypeError, ValueError) as e:
            raise BaselineError(path, str(e)) from e
        if rec.key in records:
            raise BaselineError(path, f'duplicate key {rec.key}')
        records[rec.key] = rec
    return records


def dumps(records):
    return json.dumps([r.to_dict() for r in records], indent='\t') + '\n'


def save(path, records):
    """Atomically replace `path` with the given records."""
    text = dumps(records)
    directory = os.path.dirname(os.path.abspath(path))
    os.makedirs(directory, exist_ok=True)

    fd, tmp = tempfile.mkstemp(prefix='.golden_', dir=directory)
    try:
        with os.fdopen(fd, 'w') as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.chmod(tmp, GOLDEN_FILE_PERM)
        os.replace(tmp, path)
    except BaseException:
        try:
            os.unlink(tmp)
        except FileNotFoundError:
            pass
        raise

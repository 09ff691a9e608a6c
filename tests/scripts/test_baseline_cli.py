# SPDX-License-Identifier: LGPL-3.0-or-later
"""
Tests for scripts/_baseline.py: formatting helpers and the show / diff
sub-commands run through main().
"""

import json

import pytest

from vfsconform import baseline
from vfsconform.baseline import ErrType, PermError

from _vfsconform_scripts._baseline import (
    _diff_records,
    _format_json,
    _format_text,
    main,
)


_OK = PermError('usrTest/755')
_DENIED = PermError('usrTest/700', ErrType.PATH_ERROR, err_op='mkdir',
                    err_path='usrTest/700/newDir',
                    err_err='Permission denied')


def _write(tmp_path, name, records):
    path = str(tmp_path / name)
    baseline.save(path, records)
    return path


def _main(argv):
    with pytest.raises(SystemExit) as exc:
        main(argv)
    return exc.value.code


# ── formatting ────────────────────────────────────────────────────────────────

def test_format_text_ok():
    assert _format_text(_OK) == 'usrTest/755: ok'


def test_format_text_error():
    assert _format_text(_DENIED) == \
        'usrTest/700: PathError mkdir usrTest/700/newDir: Permission denied'


def test_format_json():
    assert json.loads(_format_json(_DENIED)) == {
        'key': 'usrTest/700',
        'errType': 'PathError',
        'errOp': 'mkdir',
        'errPath': 'usrTest/700/newDir',
        'errErr': 'Permission denied',
    }


# ── _diff_records ─────────────────────────────────────────────────────────────

def test_diff_records_equal():
    want = {_OK.key: _OK, _DENIED.key: _DENIED}
    assert list(_diff_records(want, dict(want))) == []


def test_diff_records_missing_and_extra():
    extra = PermError('usrOth/755')
    diffs = dict(_diff_records({_OK.key: _OK}, {extra.key: extra}))
    assert diffs == {
        'usrTest/755': ['no test recorded'],
        'usrOth/755': ['unexpected record'],
    }


# ── main ──────────────────────────────────────────────────────────────────────

def test_show(tmp_path, capsys):
    path = _write(tmp_path, 'a.golden', [_DENIED, _OK])
    assert _main(['show', path]) == 0
    assert capsys.readouterr().out.splitlines() == [
        'usrTest/700: PathError mkdir usrTest/700/newDir: Permission denied',
        'usrTest/755: ok',
    ]


def test_show_json(tmp_path, capsys):
    path = _write(tmp_path, 'a.golden', [_DENIED, _OK])
    assert _main(['show', '-j', path]) == 0
    lines = capsys.readouterr().out.splitlines()
    assert [json.loads(line)['key'] for line in lines] == \
        ['usrTest/700', 'usrTest/755']


def test_show_missing_file(tmp_path, capsys):
    assert _main(['show', str(tmp_path / 'missing.golden')]) == 2
    assert 'vfsconform_baseline:' in capsys.readouterr().err


def test_diff_identical(tmp_path, capsys):
    a = _write(tmp_path, 'a.golden', [_DENIED, _OK])
    b = _write(tmp_path, 'b.golden', [_DENIED, _OK])
    assert _main(['diff', a, b]) == 0
    assert capsys.readouterr().out == ''


def test_diff_differs(tmp_path, capsys):
    eperm = PermError('usrTest/700', ErrType.PATH_ERROR, err_op='open',
                      err_path='usrTest/700/newDir',
                      err_err='Operation not permitted')
    a = _write(tmp_path, 'a.golden', [_DENIED, _OK])
    b = _write(tmp_path, 'b.golden', [eperm, _OK])

    assert _main(['diff', a, b]) == 1
    assert capsys.readouterr().out.splitlines() == [
        'usrTest/700:',
        '\twant Op to be mkdir, got open',
        '\twant error to be Permission denied, got Operation not permitted',
    ]


def test_diff_ignore_op_json(tmp_path, capsys):
    other_op = PermError('usrTest/700', ErrType.PATH_ERROR, err_op='open',
                         err_path='usrTest/700/newDir',
                         err_err='Permission denied')
    a = _write(tmp_path, 'a.golden', [_DENIED])
    b = _write(tmp_path, 'b.golden', [other_op])

    assert _main(['diff', '--ignore-op', a, b]) == 0
    capsys.readouterr()

    assert _main(['diff', '-j', a, b]) == 1
    line = json.loads(capsys.readouterr().out)
    assert line == {'key': 'usrTest/700',
                    'diffs': ['want Op to be mkdir, got open']}


def test_diff_unreadable(tmp_path, capsys):
    a = _write(tmp_path, 'a.golden', [_OK])
    bad = tmp_path / 'bad.golden'
    bad.write_text('not json')
    assert _main(['diff', a, str(bad)]) == 2
    assert 'bad.golden' in capsys.readouterr().err

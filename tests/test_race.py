# SPDX-License-Identifier: LGPL-3.0-or-later
"""
Tests for the concurrency verifier.

The host file system is used as the system under test: exclusive create
and mkdir must succeed exactly once, idempotent operations every time.
"""

import os
import threading

import pytest

from vfsconform.exceptions import ConformError
from vfsconform.race import RaceResult, race_func, run_race
from vfsconform.report import Report


MAX_RACE = 50


@pytest.fixture
def osfs(read_only_osfs):
    return read_only_osfs


def _fail():
    raise OSError('always fails')


# ── run_race ─────────────────────────────────────────────────────────────────

def test_run_race_counts_every_call():
    calls = []
    lock = threading.Lock()

    def op():
        with lock:
            calls.append(threading.get_ident())

    outcome = run_race([op], max_race=MAX_RACE)
    assert outcome.ok == MAX_RACE
    assert outcome.errors == 0
    assert outcome.total == MAX_RACE
    assert len(calls) == MAX_RACE


def test_run_race_calls_overlap():
    # each call blocks until all of them are running
    barrier = threading.Barrier(MAX_RACE, timeout=10)
    outcome = run_race([barrier.wait], max_race=MAX_RACE)
    assert outcome.ok == MAX_RACE


def test_run_race_population_per_function():
    a, b = [], []
    outcome = run_race([lambda: a.append(1), lambda: b.append(1)],
                       max_race=MAX_RACE)
    assert outcome.total == 2 * MAX_RACE
    assert len(a) == len(b) == MAX_RACE


def test_run_race_rejects_empty():
    with pytest.raises(ConformError):
        run_race([], max_race=MAX_RACE)


def test_run_race_rejects_non_positive():
    with pytest.raises(ConformError):
        run_race([lambda: None], max_race=0)


def test_run_race_timeout():
    blocker = threading.Event()
    outcome = run_race([blocker.wait], max_race=3, timeout=0.2)
    blocker.set()
    assert outcome.timed_out == 3


# ── race_func ────────────────────────────────────────────────────────────────

def test_race_func_none_ok():
    report = Report('none')
    race_func(report, RaceResult.NONE_OK, _fail, max_race=MAX_RACE)
    assert not report.failed, report.format_failures()


def test_race_func_mismatch_messages():
    report = Report('mismatch')
    race_func(report, RaceResult.ONE_OK, lambda: None, max_race=10)
    assert report.errors == [
        'want number of responses without error to be 1, got 10',
        'want number of responses with errors to be 9, got 0',
    ]


def test_race_func_undefined_only_logs():
    report = Report('undefined')
    toggle = iter(range(MAX_RACE))
    lock = threading.Lock()

    def half():
        with lock:
            n = next(toggle)
        if n % 2:
            raise OSError('odd')

    race_func(report, RaceResult.UNDEFINED, half, max_race=MAX_RACE)
    assert not report.failed
    assert report.logs == [f'ok = {MAX_RACE // 2}, error = {MAX_RACE // 2}']


def test_race_func_timeout_reported():
    blocker = threading.Event()
    report = Report('timeout')
    race_func(report, RaceResult.ALL_OK, blocker.wait, max_race=2, timeout=0.2)
    blocker.set()
    assert report.failed
    assert report.errors[0].startswith('timed out : 2 of 2 calls')


# ── against the host file system ─────────────────────────────────────────────

def test_open_excl_one_ok(osfs, tmp_path):
    path = str(tmp_path / 'file')
    flags = os.O_RDWR | os.O_CREAT | os.O_EXCL
    report = Report('excl')

    outcome = race_func(report, RaceResult.ONE_OK,
                        lambda: osfs.open_file(path, flags, 0o644).close(),
                        max_race=100)
    assert not report.failed, report.format_failures()
    assert outcome.ok == 1
    assert outcome.errors == 99


def test_mkdir_one_ok(osfs, tmp_path):
    path = str(tmp_path / 'dir')
    report = Report('mkdir')
    race_func(report, RaceResult.ONE_OK, lambda: osfs.mkdir(path, 0o755),
              max_race=MAX_RACE)
    assert not report.failed, report.format_failures()


def test_makedirs_all_ok(osfs, tmp_path):
    path = str(tmp_path / 'a' / 'b' / 'c')
    report = Report('makedirs')
    race_func(report, RaceResult.ALL_OK, lambda: osfs.makedirs(path, 0o755),
              max_race=MAX_RACE)
    assert not report.failed, report.format_failures()
    assert os.path.isdir(path)


def test_file_close_one_ok(osfs, tmp_path):
    path = str(tmp_path / 'file')
    f = osfs.open_file(path, os.O_RDWR | os.O_CREAT, 0o644)
    report = Report('close')
    race_func(report, RaceResult.ONE_OK, f.close, max_race=MAX_RACE)
    assert not report.failed, report.format_failures()


def test_makedirs_remove_all_undefined(osfs, tmp_path):
    path = str(tmp_path / 'new' / 'path' / 'to' / 'test')
    report = Report('mixed')
    outcome = race_func(report, RaceResult.UNDEFINED,
                        lambda: osfs.makedirs(path, 0o755),
                        lambda: osfs.remove_all(path),
                        max_race=MAX_RACE)
    assert not report.failed
    assert outcome.total == 2 * MAX_RACE
    assert outcome.ok + outcome.errors == outcome.total


# ── launch failures and logging ──────────────────────────────────────────────

class _LimitedThread(threading.Thread):
    """Refuses to start once `limit` threads are running."""

    limit = 3
    started = []

    def start(self):
        if len(self.started) >= self.limit:
            raise RuntimeError("can't start new thread")
        super().start()
        self.started.append(self)


@pytest.fixture
def limited_threads(monkeypatch):
    monkeypatch.setattr(_LimitedThread, 'started', [])
    monkeypatch.setattr('vfsconform.race.threading.Thread', _LimitedThread)
    return _LimitedThread


def test_run_race_releases_started_threads(limited_threads):
    calls = []
    with pytest.raises(RuntimeError):
        run_race([lambda: calls.append(1)], max_race=10)

    for th in limited_threads.started:
        th.join(5)
        assert not th.is_alive()
    assert len(calls) == limited_threads.limit


def test_race_func_start_failure_is_fatal(limited_threads):
    report = Report('race')
    child = report.run('start', lambda r: race_func(r, RaceResult.ALL_OK,
                                                    lambda: None, max_race=10))
    assert child.errors == ["start : can't start new thread"]
    for th in limited_threads.started:
        th.join(5)


@pytest.mark.parametrize('rr', [RaceResult.ALL_OK, RaceResult.UNDEFINED])
def test_race_func_always_logged(caplog, rr):
    caplog.set_level('DEBUG', logger='vfsconform.race')
    race_func(Report('logged'), rr, lambda: None, max_race=4)
    assert f'race {rr.name}: ok=4 errors=0 timed_out=0 total=4' in caplog.text


def test_race_func_timeout_logged(caplog):
    caplog.set_level('DEBUG', logger='vfsconform.race')
    blocker = threading.Event()
    race_func(Report('timeout'), RaceResult.ALL_OK, blocker.wait,
              max_race=2, timeout=0.2)
    blocker.set()
    assert 'race ALL_OK: ok=0 errors=0 timed_out=2 total=2' in caplog.text

# SPDX-License-Identifier: LGPL-3.0-or-later
"""
Concurrency verifier.

race_func() runs every operation `max_race` times, each call in its own OS
thread.  All threads are parked on a starter event before calling their
operation; the starter is released only once every thread has reported
ready, so the calls really overlap.  The number of calls returning
without an exception is then compared with the expected RaceResult.
"""

import dataclasses
import enum
import logging
import threading
import time

from .exceptions import ConformError


logger = logging.getLogger(__name__)

DEFAULT_MAX_RACE = 100


class RaceResult(enum.IntEnum):
    NONE_OK = 1       # every call fails
    ONE_OK = 2        # exactly one call succeeds
    ALL_OK = 3        # every call succeeds
    UNDEFINED = 4     # backend dependent, counts are only logged


@dataclasses.dataclass(slots=True)
class RaceOutcome:
    ok: int = 0
    errors: int = 0
    total: int = 0
    timed_out: int = 0

    def want_ok(self, rr):
        if rr == RaceResult.NONE_OK:
            return 0
        if rr == RaceResult.ONE_OK:
            return 1
        if rr == RaceResult.ALL_OK:
            return self.total
        return None


class _Counter:

    def __init__(self):
        self._lock = threading.Lock()
        self.ok = 0
        self.errors = 0

    def add(self, success):
        with self._lock:
            if success:
                self.ok += 1
            else:
                self.errors += 1


def _worker(func, ready, starter, counter):
    ready.release()
    starter.wait()
    try:
        func()
    except Exception:
        counter.add(False)
    else:
        counter.add(True)


def run_race(funcs, max_race=DEFAULT_MAX_RACE, timeout=None):
    """
    Run each of `funcs` `max_race` times concurrently and return the
    RaceOutcome.  With a timeout, calls still running at the deadline are
    counted in `timed_out` instead of ok/errors.
    """
    if not funcs:
        raise ConformError('run_race: at least one operation is required')
    if max_race < 1:
        raise ConformError(f'run_race: max_race must be positive, got {max_race}')

    total = max_race * len(funcs)
    ready = threading.Semaphore(0)
    starter = threading.Event()
    counter = _Counter()

    threads = []
    try:
        for _ in range(max_race):
            for func in funcs:
                th = threading.Thread(target=_worker, daemon=True,
                                      args=(func, ready, starter, counter))
                th.start()
                threads.append(th)
    except BaseException:
        # release the threads already parked on the starter
        starter.set()
        raise

    # every thread is parked right before its call
    for _ in range(total):
        ready.acquire()

    starter.set()

    deadline = None if timeout is None else time.monotonic() + timeout
    for th in threads:
        if deadline is None:
            th.join()
        else:
            th.join(max(0.0, deadline - time.monotonic()))

    timed_out = sum(1 for th in threads if th.is_alive())
    return RaceOutcome(ok=counter.ok, errors=counter.errors, total=total,
                       timed_out=timed_out)


def race_func(report, rr, *funcs, max_race=DEFAULT_MAX_RACE, timeout=None):
    """Race `funcs` and report any deviation from the RaceResult `rr`."""
    try:
        outcome = run_race(funcs, max_race=max_race, timeout=timeout)
    except RuntimeError as e:
        report.fatal(f'start : {e}')
    logger.debug('race %s: ok=%d errors=%d timed_out=%d total=%d', rr.name,
                 outcome.ok, outcome.errors, outcome.timed_out, outcome.total)

    if outcome.timed_out:
        report.error(f'timed out : {outcome.timed_out} of {outcome.total} '
                     f'calls still running after {timeout}s')
        return outcome

    want_ok = outcome.want_ok(rr)
    if want_ok is None:
        report.log(f'ok = {outcome.ok}, error = {outcome.errors}')
        return outcome

    want_err = outcome.total - want_ok
    if outcome.ok != want_ok:
        report.error(f'want number of responses without error to be '
                     f'{want_ok}, got {outcome.ok}')
    if outcome.errors != want_err:
        report.error(f'want number of responses with errors to be '
                     f'{want_err}, got {outcome.errors}')

    return outcome

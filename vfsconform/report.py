# SPDX-License-Identifier: LGPL-3.0-or-later
"""
Per sub-case result reporting.

A Report is a named node in a tree of cases.  Mismatches are accumulated
with error(); fatal() and skip() leave the current case by raising, and
run() contains those exceptions so that the parent keeps going.
"""

import logging

from .exceptions import CaseAborted, CaseSkipped, SetupError


logger = logging.getLogger(__name__)

PASSED = 'passed'
FAILED = 'failed'
SKIPPED = 'skipped'


class Report:

    def __init__(self, name='', parent=None):
        self.name = name
        self.parent = parent
        self.errors = []
        self.logs = []
        self.skipped = None
        self.children = []

    def __repr__(self):
        return f'<Report {self.full_name!r} {self.status}>'

    @property
    def full_name(self):
        if self.parent is None or not self.parent.full_name:
            return self.name
        return f'{self.parent.full_name}/{self.name}'

    # ── recording ────────────────────────────────────────────────────────────

    def error(self, msg):
        self.errors.append(msg)
        logger.debug('%s: FAIL %s', self.full_name, msg)

    def log(self, msg):
        self.logs.append(msg)
        logger.debug('%s: %s', self.full_name, msg)

    def fatal(self, msg):
        self.error(msg)
        raise CaseAborted(msg)

    def skip(self, reason):
        self.skipped = reason
        logger.debug('%s: SKIP %s', self.full_name, reason)
        raise CaseSkipped(reason)

    def run(self, name, func, *args):
        """Run func(child_report, *args) as a sub-case and return the child."""
        child = Report(name, self)
        self.children.append(child)
        try:
            func(child, *args)
        except (CaseSkipped, CaseAborted):
            pass
        except SetupError as e:
            child.error(f'setup : {e}')
        return child

    # ── results ──────────────────────────────────────────────────────────────

    @property
    def failed(self):
        return bool(self.errors) or any(c.failed for c in self.children)

    @property
    def status(self):
        if self.failed:
            return FAILED
        if self.skipped is not None:
            return SKIPPED
        return PASSED

    def find(self, name):
        """Return the direct child called `name`, or None."""
        for child in self.children:
            if child.name == name:
                return child
        return None

    def walk(self):
        yield self
        for child in self.children:
            yield from child.walk()

    def failures(self):
        for node in self.walk():
            for msg in node.errors:
                yield node.full_name, msg

    def format_failures(self):
        return '\n'.join(f'{name}: {msg}' for name, msg in self.failures())

# SPDX-License-Identifier: LGPL-3.0-or-later

import argparse
import json
import sys

from vfsconform import baseline
from vfsconform.exceptions import BaselineError


_PROG = 'vfsconform_baseline'


def _format_text(rec):
    if rec.err_type is None:
        return f'{rec.key}: ok'
    return f'{rec.key}: {rec.err_type.value} {rec}'


def _format_json(rec):
    return json.dumps(rec.to_dict(), separators=(',', ':'))


def _load(path):
    """Return the records of `path`; a missing file is an error here."""
    records = baseline.load(path)
    if records is None:
        raise BaselineError(path, 'no such golden file')
    return records


def _diff_records(want, got, ignore_op=False, ignore_path=False):
    """
    Yield (key, diffs) for every key whose records differ.  Keys present on
    one side only are reported with a single 'missing' entry.
    """
    for key, w in want.items():
        g = got.get(key)
        if g is None:
            yield key, ['no test recorded']
            continue
        diffs = baseline.compare(w, g, ignore_op=ignore_op,
                                 ignore_path=ignore_path)
        if diffs:
            yield key, diffs

    for key in got:
        if key not in want:
            yield key, ['unexpected record']


def _cmd_show(args):
    records = _load(args.file)
    fmt = _format_json if args.use_json else _format_text
    for rec in records.values():
        print(fmt(rec))
    return 0


def _cmd_diff(args):
    want = _load(args.want)
    got = _load(args.got)

    rc = 0
    for key, diffs in _diff_records(want, got, args.ignore_op, args.ignore_path):
        rc = 1
        if args.use_json:
            print(json.dumps({'key': key, 'diffs': diffs}, separators=(',', ':')))
        else:
            print(f'{key}:')
            for d in diffs:
                print(f'\t{d}')
    return rc


def main(argv=None):
    ap = argparse.ArgumentParser(
        prog=_PROG,
        description='Inspect and compare permission golden files.',
    )
    sub = ap.add_subparsers(dest='command', required=True)

    show = sub.add_parser('show', help='Print the records of a golden file')
    show.add_argument('-j', '--json', dest='use_json', action='store_true',
                      help='Output records as JSONL (one object per line)')
    show.add_argument('file')
    show.set_defaults(func=_cmd_show)

    diff = sub.add_parser('diff', help='Compare two golden files')
    diff.add_argument('--ignore-op', action='store_true',
                      help='Do not compare operation names')
    diff.add_argument('--ignore-path', action='store_true',
                      help='Do not compare paths')
    diff.add_argument('-j', '--json', dest='use_json', action='store_true',
                      help='Output differences as JSONL (one object per line)')
    diff.add_argument('want')
    diff.add_argument('got')
    diff.set_defaults(func=_cmd_diff)

    args = ap.parse_args(argv)

    try:
        rc = args.func(args)
    except BaselineError as e:
        print(f'{_PROG}: {e}', file=sys.stderr)
        rc = 2

    sys.exit(rc)


if __name__ == '__main__':
    main()

#!/usr/bin/env python3
"""Fake CLI for launcher testing.

Actions run strictly in the order given on the command line; ``--exit``
ends the program immediately, so anything after it never runs.

Usage:
    python fake_cli.py [--exit CODE] [--sleep MS] [--echo COUNT]
                       [--stdout MSG] [--stderr MSG] [--raise MSG] [--abort]

Arguments:
    --exit: Exit with CODE
    --sleep: Sleep for MS milliseconds
    --echo: Read COUNT whitespace separated words from stdin, print one per line
    --stdout: Print MSG to stdout
    --stderr: Print MSG to stderr
    --raise: Fail with MSG; reported on stderr, exit code 1
    --abort: Terminate through SIGABRT

An unknown argument makes argparse report it on stderr and exit with 2.
"""

from __future__ import annotations

import argparse
import os
import sys
import time
from typing import NoReturn


class OrderedAction(argparse.Action):
    """Append (option, value) to a shared list so ordering is preserved."""

    def __call__(self, parser, namespace, values, option_string=None) -> None:
        actions = getattr(namespace, "actions", None) or []
        actions.append((self.dest, values))
        namespace.actions = actions


def read_words(count: int) -> list[str]:
    """Read at least ``count`` words from stdin (or until EOF)."""
    words: list[str] = []
    for line in sys.stdin:
        words.extend(line.split())
        if len(words) >= count:
            break
    return words[:count]


def main() -> NoReturn:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Fake CLI for testing")
    parser.add_argument("--exit", dest="exit", type=int, action=OrderedAction)
    parser.add_argument("--sleep", dest="sleep", type=int, action=OrderedAction)
    parser.add_argument("--echo", dest="echo", type=int, action=OrderedAction)
    parser.add_argument("--stdout", dest="stdout", action=OrderedAction)
    parser.add_argument("--stderr", dest="stderr", action=OrderedAction)
    parser.add_argument("--raise", dest="raise", action=OrderedAction)
    parser.add_argument("--abort", dest="abort", nargs=0, action=OrderedAction)
    parser.set_defaults(actions=[])

    args = parser.parse_args()

    try:
        for name, value in args.actions:
            if name == "exit":
                sys.stdout.flush()
                sys.stderr.flush()
                sys.exit(value)
            elif name == "sleep":
                time.sleep(value / 1000)
            elif name == "echo":
                for word in read_words(value):
                    print(word, flush=True)
            elif name == "stdout":
                print(value, flush=True)
            elif name == "stderr":
                print(value, file=sys.stderr, flush=True)
            elif name == "raise":
                raise RuntimeError(value)
            elif name == "abort":
                os.abort()
    except RuntimeError as e:
        print(f"fake_cli caught RuntimeError: {e}", file=sys.stderr, flush=True)
        sys.exit(1)

    sys.exit(0)


if __name__ == "__main__":
    main()

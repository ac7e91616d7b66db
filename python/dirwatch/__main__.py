#!/usr/bin/env python3
"""
Index and watch a directory from the command line.

Usage:
    python -m dirwatch DIRECTORY EXTENSION          # Reconcile, then watch until Ctrl-C
    python -m dirwatch DIRECTORY EXTENSION --once   # Reconcile and exit
    python -m dirwatch DIRECTORY EXTENSION -v       # Debug logging
"""

import logging
import sys
import time
from pathlib import Path

from .codec import JsonCodec
from .errors import DirWatchError
from .extractors import FileSummary, summarize_file
from .index import DirectoryIndex


USAGE = "Usage: python -m dirwatch DIRECTORY EXTENSION [--once] [-v]"


def main(argv: list[str] | None = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    once = "--once" in argv
    verbose = "-v" in argv or "--verbose" in argv
    args = [arg for arg in argv if not arg.startswith("-")]

    if len(args) != 2:
        print(USAGE, file=sys.stderr)
        return 2

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="[dirwatch] %(levelname)s %(message)s",
    )

    directory, extension = Path(args[0]), args[1]
    try:
        index = DirectoryIndex(
            directory,
            extension,
            extract_value=summarize_file,
            codec=JsonCodec(decode=FileSummary.from_dict),
        )
    except DirWatchError as e:
        print(f"[dirwatch] {e}", file=sys.stderr)
        return 1

    with index:
        print(f"[dirwatch] {index.last_stats}")
        for key in sorted(index.keys()):
            print(f"  {key}: {index[key].first_line}")

        if once:
            return 0

        print(f"[dirwatch] Watching {index.directory} (Ctrl-C to stop)")
        try:
            count = len(index)
            while True:
                time.sleep(1)
                if len(index) != count:
                    count = len(index)
                    print(f"[dirwatch] {count} files indexed")
        except KeyboardInterrupt:
            pass

    return 0


if __name__ == "__main__":
    sys.exit(main())

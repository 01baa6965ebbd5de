from __future__ import annotations

import sys
from pathlib import Path
from typing import List, Optional

from .pipeline import CONVERTED, FAILED, BatchResult, convert_files

USAGE = "usage: observable-converter [--dry-run] [--quiet] PATH..."

SOURCE_SUFFIX = '.swift'

def _usage_error(message: str) -> SystemExit:
    print(message, file=sys.stderr)
    print(USAGE, file=sys.stderr)
    return SystemExit(2)

def resolve_paths(args: List[str]) -> List[Path]:
    """
    Expand CLI arguments into the files to convert.
    - Files are taken as given, whatever their suffix.
    - Directories contribute every *.swift file below them, sorted.
    - Missing paths are a usage error.
    """
    paths: List[Path] = []

    for arg in args:
        candidate = Path(arg)
        if candidate.is_dir():
            paths.extend(sorted(p for p in candidate.rglob(f"*{SOURCE_SUFFIX}") if p.is_file()))
        elif candidate.exists():
            paths.append(candidate)
        else:
            raise _usage_error(f"No such file or directory: {arg}")

    return paths

def report(batch: BatchResult, quiet: bool = False) -> None:
    for result in batch.files:
        for diagnostic in result.diagnostics:
            print(diagnostic.render(), file=sys.stderr)

        if result.diff:
            sys.stdout.write(result.diff)
        elif result.status == CONVERTED and not quiet:
            print(f"converted {result.path}")

    if batch.interrupted:
        print("interrupted; remaining files were not converted", file=sys.stderr)

def main(argv: Optional[List[str]] = None) -> int:
    dry_run = False
    quiet = False
    args: List[str] = []
    it = iter(sys.argv[1:] if argv is None else argv)

    for token in it:
        if token == "--":
            args.extend(it)
            break

        if token == "--dry-run":
            dry_run = True
            continue

        if token in ("-q", "--quiet"):
            quiet = True
            continue

        if token in ("-h", "--help"):
            print(USAGE)
            return 0

        if token.startswith("-") and token != "-":
            raise _usage_error(f"Unknown option: {token}")

        args.append(token)

    if not args:
        raise _usage_error("No input paths given")

    batch = convert_files(resolve_paths(args), dry_run=dry_run)
    report(batch, quiet=quiet)

    if batch.interrupted:
        return 130
    return 1 if batch.by_status(FAILED) else 0

if __name__ == "__main__":
    sys.exit(main())

#!/usr/bin/env python3
"""
Sequence validator: check authored sequence files before shipping them.

Usage:
    python scripts/validate_sequences.py                     # configured sequence directory
    python scripts/validate_sequences.py assets/sequences/welcome.json
    python scripts/validate_sequences.py --strict            # warnings fail too

Exit code is 1 when any sequence has errors (or warnings with --strict).
"""
import argparse
import logging
import os
import sys
from pathlib import Path

# Ensure app root is on path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import structlog


def collect_files(paths: list[str]) -> list[Path]:
    files: list[Path] = []
    for raw in paths:
        path = Path(raw)
        if path.is_dir():
            files.extend(sorted(path.glob("*.json")))
        else:
            files.append(path)
    return files


def validate(paths: list[str], strict: bool = False) -> int:
    from templates.registry import SequenceRegistry

    registry = SequenceRegistry()
    failed = 0
    for path in collect_files(paths):
        result = registry.load_file(str(path))
        issues = result.validation.errors + result.validation.warnings
        bad = bool(result.validation.errors) or (strict and bool(result.validation.warnings))
        status = "FAIL" if bad else "ok"
        print(f"[{status}] {path.name}: {len(result.validation.errors)} error(s), "
              f"{len(result.validation.warnings)} warning(s)")
        for issue in issues:
            print(f"    {issue}")
        failed += int(bad)

    cross = registry.check_cross_references()
    for issue in cross:
        print(f"    {issue}")
    if strict and cross:
        failed += 1
    return 1 if failed else 0


def main():
    parser = argparse.ArgumentParser(description="Validate authored sequence files")
    parser.add_argument("paths", nargs="*", help="Sequence files or directories")
    parser.add_argument("--strict", action="store_true", help="Treat warnings as failures")
    args = parser.parse_args()

    structlog.configure(wrapper_class=structlog.make_filtering_bound_logger(logging.CRITICAL))

    paths = args.paths
    if not paths:
        from config.settings import load_settings
        paths = [load_settings().sequences.directory]
    sys.exit(validate(paths, strict=args.strict))


if __name__ == "__main__":
    main()

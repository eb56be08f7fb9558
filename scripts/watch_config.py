#!/usr/bin/env python3
"""Open a config store on a directory and print changes made by other processes.

Usage
-----
    python scripts/watch_config.py /path/to/dir
    python scripts/watch_config.py /path/to/dir --filename settings.json --set greeting=hello
    python scripts/watch_config.py /path/to/dir -v
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import json
import logging
from typing import Any

from pyconfigsync import ConfigStore, StoreOptions


def _parse_assignment(text: str) -> tuple[str, Any]:
    key, sep, raw = text.partition("=")
    if not sep or not key:
        raise argparse.ArgumentTypeError(f"expected KEY=VALUE, got {text!r}")
    try:
        value: Any = json.loads(raw)
    except json.JSONDecodeError:
        value = raw
    return key, value


def _print_change(old: dict[str, Any], new: dict[str, Any]) -> None:
    for key in dict.fromkeys([*old, *new]):
        if key not in new:
            print(f"- {key} = {json.dumps(old[key])}")
        elif key not in old:
            print(f"+ {key} = {json.dumps(new[key])}")
        elif old[key] != new[key]:
            print(f"~ {key}: {json.dumps(old[key])} -> {json.dumps(new[key])}")


def _print_error(exc: Exception) -> None:
    print(f"! {type(exc).__name__}: {exc}")


async def run(args: argparse.Namespace) -> None:
    options = StoreOptions(
        directory=args.directory,
        filename=args.filename,
        debounce_delay_ms=args.delay_ms,
    )
    async with ConfigStore(options, on_change=_print_change, on_error=_print_error) as store:
        for key, value in args.assignments:
            store.set(key, value)
        print(f"watching {store.path} ({len(store)} keys), Ctrl+C to stop")
        print(json.dumps(store.snapshot(), indent=2, ensure_ascii=False))
        await asyncio.Event().wait()


def main() -> None:
    parser = argparse.ArgumentParser(description="Watch a pyconfigsync JSON config file.")
    parser.add_argument("directory", help="Directory holding the config file")
    parser.add_argument("--filename", default="options.json", help="Config file name (default: options.json)")
    parser.add_argument("--delay-ms", type=int, default=200, help="Debounce delay for writes")
    parser.add_argument(
        "--set",
        dest="assignments",
        action="append",
        type=_parse_assignment,
        default=[],
        metavar="KEY=VALUE",
        help="Set a key on startup (VALUE parsed as JSON when possible)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")
    else:
        logging.basicConfig(level=logging.WARNING)

    with contextlib.suppress(KeyboardInterrupt):
        asyncio.run(run(args))


if __name__ == "__main__":
    main()

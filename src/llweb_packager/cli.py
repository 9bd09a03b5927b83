from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from pathlib import Path

from .assets import ASSETS_DIR_ENV, PackagerConfig
from .errors import PackagerError
from .pipeline import SourceFile, inspect_markers, process_site
from .report import RunReport


def _read_source(path: Path) -> SourceFile:
    return SourceFile(filename=path.name, data=path.read_bytes())


def _add_input_args(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "--zip",
        dest="zip_path",
        type=Path,
        required=True,
        help="Exported website archive",
    )
    p.add_argument(
        "--csv",
        dest="csv_paths",
        type=Path,
        action="append",
        default=[],
        help="Repeatable; CSV with name/address/format columns",
    )
    p.add_argument(
        "--strict-csv",
        action="store_true",
        help="Abort on the first malformed CSV instead of skipping it",
    )
    p.add_argument("--json", action="store_true", help="Print JSON output")


def _configure_logging(verbose: bool, quiet: bool) -> None:
    level = logging.INFO
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="llweb-packager")
    parser.add_argument("-v", "--verbose", action="store_true")
    parser.add_argument("-q", "--quiet", action="store_true")
    sub = parser.add_subparsers(dest="cmd", required=True)

    process_p = sub.add_parser(
        "process",
        help="Rewrite a website archive and attach LLWeb binding attributes",
    )
    _add_input_args(process_p)
    process_p.add_argument("--out", type=Path, required=True)
    process_p.add_argument(
        "--assets-dir",
        type=Path,
        default=None,
        help=(
            "Directory holding the four injected scripts. "
            f"Defaults to ${ASSETS_DIR_ENV}, else built-in placeholders"
        ),
    )
    process_p.add_argument(
        "--report",
        dest="report_path",
        type=Path,
        default=None,
        help="Also write a JSON run report here",
    )
    process_p.add_argument("--progress", action="store_true")

    markers_p = sub.add_parser(
        "markers",
        help="List nv markers in the archive and whether each one resolves",
    )
    _add_input_args(markers_p)

    args = parser.parse_args(argv)
    _configure_logging(bool(args.verbose), bool(args.quiet))

    try:
        archive = _read_source(args.zip_path)
        csv_sources = [_read_source(p) for p in args.csv_paths]
    except OSError as e:
        print(str(e), file=sys.stderr)
        return 2

    if args.cmd == "markers":
        try:
            reports = inspect_markers(
                archive, csv_sources, strict_csv=bool(args.strict_csv)
            )
        except PackagerError as e:
            print(str(e), file=sys.stderr)
            return 2

        if args.json:
            print(json.dumps([r.to_dict() for r in reports], indent=2))
            return 0
        for r in reports:
            target = r.address if r.bound else "(no binding)"
            print(f"{r.entry}: <{r.tag} nv={r.marker!r}> -> {target}")
        bound = sum(1 for r in reports if r.bound)
        print(f"markers: total={len(reports)} bound={bound}")
        return 0

    if args.cmd == "process":
        assets_dir = args.assets_dir
        if assets_dir is None and os.getenv(ASSETS_DIR_ENV):
            assets_dir = Path(os.environ[ASSETS_DIR_ENV])

        config = PackagerConfig.from_assets_dir(
            assets_dir,
            strict_csv=bool(args.strict_csv),
            show_progress=bool(args.progress),
        )
        try:
            result = process_site(archive, csv_sources, config=config)
        except PackagerError as e:
            print(str(e), file=sys.stderr)
            return 2

        try:
            args.out.parent.mkdir(parents=True, exist_ok=True)
            args.out.write_bytes(result.archive_bytes)
            if args.report_path is not None:
                RunReport(
                    archive_name=archive.filename,
                    csv_names=[s.filename for s in csv_sources],
                    result=result,
                ).write(args.report_path)
        except OSError as e:
            print(str(e), file=sys.stderr)
            return 2

        stats = result.stats
        if args.json:
            print(json.dumps(stats.to_dict(), indent=2))
        else:
            print(
                "process: "
                f"elements_processed={stats.elements_processed} "
                f"attributes_added={stats.attributes_added} "
                f"entries_failed={stats.entries_failed}"
            )
        return 0

    return 2


if __name__ == "__main__":
    raise SystemExit(main())

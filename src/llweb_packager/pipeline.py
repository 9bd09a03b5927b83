from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Sequence

from .archive import ArchiveRewriter, EntryResult
from .assets import PackagerConfig
from .errors import EntryError, InputError
from .records import RecordIndex, SourceFile, parse_record_sources
from .rewrite.html_annotate import DocumentStats, HtmlAnnotator, collect_markers
from .rewrite.paths import rewrite_css

logger = logging.getLogger(__name__)

__all__ = [
    "FailedEntry",
    "MarkerReport",
    "ProcessingResult",
    "ProcessingStats",
    "SourceFile",
    "inspect_markers",
    "process_site",
]


@dataclass
class ProcessingStats:
    elements_processed: int = 0
    attributes_added: int = 0
    entries_failed: int = 0

    def add(self, doc: DocumentStats) -> None:
        self.elements_processed += doc.elements_processed
        self.attributes_added += doc.attributes_added

    def to_dict(self) -> dict[str, int]:
        return {
            "elementsProcessed": self.elements_processed,
            "attributesAdded": self.attributes_added,
        }


@dataclass(frozen=True)
class FailedEntry:
    name: str
    stage: str
    reason: str

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "stage": self.stage, "reason": self.reason}


@dataclass(frozen=True)
class ProcessingResult:
    archive_bytes: bytes
    stats: ProcessingStats
    failures: list[FailedEntry] = field(default_factory=list)


@dataclass(frozen=True)
class MarkerReport:
    entry: str
    marker: str
    tag: str
    address: str | None

    @property
    def bound(self) -> bool:
        return self.address is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "entry": self.entry,
            "marker": self.marker,
            "tag": self.tag,
            "address": self.address,
        }


def _is_css(name: str) -> bool:
    return name.lower().endswith(".css")


def _is_html(name: str) -> bool:
    return name.lower().endswith(".html")


def _require_archive(archive: SourceFile | None) -> SourceFile:
    if archive is None or not archive.data:
        raise InputError("Invalid or missing ZIP file")
    return archive


def _collect_failures(
    results: Iterable[EntryResult],
    stats: ProcessingStats,
    failures: list[FailedEntry],
) -> None:
    """Single place where per-entry errors are turned into logs and counts."""

    for result in results:
        if result.ok:
            continue
        error: EntryError = result.error  # type: ignore[assignment]
        logger.warning("Leaving %s unchanged: %s", result.name, error)
        stats.entries_failed += 1
        failures.append(
            FailedEntry(name=result.name, stage=error.stage, reason=error.reason)
        )


def process_site(
    archive: SourceFile | None,
    record_sources: Sequence[SourceFile] = (),
    *,
    config: PackagerConfig | None = None,
) -> ProcessingResult:
    """Run the full rewrite over one uploaded site archive.

    Order matters only up to the rename: removal, injection and the
    ``public/`` -> ``img/`` move all finish before CSS and HTML entries are
    selected, since the move changes the entry names being scanned.

    Raises InputError, ArchiveError, or (with ``config.strict_csv``)
    ParseError. Everything else is logged and counted.
    """

    cfg = config or PackagerConfig()
    archive = _require_archive(archive)
    logger.info("ZIP file: %s (%d bytes)", archive.filename, len(archive.data))

    records = parse_record_sources(record_sources, strict=cfg.strict_csv)
    index = RecordIndex(records)
    logger.info(
        "CSV records: %d (%d distinct addresses)", len(records), len(index)
    )

    stats = ProcessingStats()
    failures: list[FailedEntry] = []
    rule = cfg.path_rule

    with ArchiveRewriter.open(archive.data) as rewriter:
        removed = rewriter.remove_entries(sorted(cfg.removed_entries))
        if removed:
            logger.info("Removed entries: %s", ", ".join(removed))

        rewriter.inject_entries(cfg.assets)
        logger.info("Injected assets: %s", ", ".join(cfg.assets))

        renamed = rewriter.rename_prefix(rule)
        if renamed:
            logger.info(
                "Renamed %d entries from %s to %s", len(renamed), rule.old, rule.new
            )
        _collect_failures(renamed, stats, failures)

        css_results = rewriter.rewrite_text_entries(
            _is_css,
            lambda text: (rewrite_css(text, rule), None),
            stage="css",
            progress=cfg.show_progress,
        )
        logger.info("Processed %d CSS files", len(css_results))
        _collect_failures(css_results, stats, failures)

        annotator = HtmlAnnotator(
            index,
            head_markup=cfg.head_markup,
            body_markup=cfg.body_markup,
            rule=rule,
            blocked_link_substrings=cfg.blocked_link_substrings,
        )
        html_results = rewriter.rewrite_text_entries(
            _is_html,
            annotator,
            stage="html",
            progress=cfg.show_progress,
        )
        if not html_results:
            logger.warning("No HTML files found in %s", archive.filename)
        for result in html_results:
            if result.ok:
                stats.add(result.payload)
        _collect_failures(html_results, stats, failures)

        archive_bytes = rewriter.serialize(comment=cfg.archive_comment)
        _collect_failures(rewriter.unwritten, stats, failures)

    logger.info(
        "Processed %d elements with %d attributes added (%d entries failed)",
        stats.elements_processed,
        stats.attributes_added,
        stats.entries_failed,
    )
    return ProcessingResult(archive_bytes=archive_bytes, stats=stats, failures=failures)


def inspect_markers(
    archive: SourceFile | None,
    record_sources: Sequence[SourceFile] = (),
    *,
    strict_csv: bool = False,
) -> list[MarkerReport]:
    """List every nv marker in the archive's HTML and what it would bind to."""

    archive = _require_archive(archive)
    index = RecordIndex(parse_record_sources(record_sources, strict=strict_csv))

    reports: list[MarkerReport] = []
    with ArchiveRewriter.open(archive.data) as rewriter:
        for name in rewriter.names():
            if rewriter.entry(name).is_dir or not _is_html(name):
                continue
            try:
                markers = collect_markers(rewriter.read(name).decode("utf-8"))
            except (EntryError, UnicodeDecodeError) as e:
                logger.warning("Skipping %s: %s", name, e)
                continue
            for marker, tag in markers:
                record = index.lookup(marker)
                reports.append(
                    MarkerReport(
                        entry=name,
                        marker=marker,
                        tag=tag,
                        address=record.address if record else None,
                    )
                )
    return reports

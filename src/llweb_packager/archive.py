from __future__ import annotations

import io
import logging
import time
import zipfile
import zlib
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Mapping

from tqdm import tqdm

from .errors import ArchiveError, EntryError
from .rewrite.paths import PathRewriteRule

logger = logging.getLogger(__name__)

TextTransform = Callable[[str], tuple[str, Any]]

_FILE_MODE = 0o644 << 16
_DIR_MODE = (0o40755 << 16) | 0x10


@dataclass
class ArchiveEntry:
    name: str
    is_dir: bool = False
    data: bytes | None = None
    info: zipfile.ZipInfo | None = None
    date_time: tuple[int, int, int, int, int, int] | None = None


@dataclass(frozen=True)
class EntryResult:
    """Outcome of one per-entry step; ``error`` is set when it was skipped."""

    name: str
    error: EntryError | None = None
    payload: Any = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _now() -> tuple[int, int, int, int, int, int]:
    return time.localtime()[:6]


class ArchiveRewriter:
    """Owns the entry table of one in-memory archive for a single run.

    Member bytes are read from the source archive lazily, on first use, so a
    corrupt member only fails the step that touches it.
    """

    def __init__(self, source: zipfile.ZipFile | None = None) -> None:
        self._source = source
        self._entries: dict[str, ArchiveEntry] = {}
        self.unwritten: list[EntryResult] = []
        if source is None:
            return
        for info in source.infolist():
            self._entries[info.filename] = ArchiveEntry(
                name=info.filename,
                is_dir=info.is_dir(),
                info=info,
                date_time=info.date_time,
            )

    @classmethod
    def open(cls, data: bytes) -> ArchiveRewriter:
        try:
            source = zipfile.ZipFile(io.BytesIO(data))
        except (zipfile.BadZipFile, zlib.error, OSError, ValueError) as e:
            raise ArchiveError(f"Not a readable ZIP archive: {e}") from e
        return cls(source)

    def close(self) -> None:
        if self._source is not None:
            self._source.close()
            self._source = None

    def __enter__(self) -> ArchiveRewriter:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def names(self) -> list[str]:
        return list(self._entries)

    def entry(self, name: str) -> ArchiveEntry:
        return self._entries[name]

    def read(self, name: str) -> bytes:
        entry = self._entries[name]
        if entry.is_dir:
            return b""
        if entry.data is not None:
            return entry.data
        if entry.info is None or self._source is None:
            raise EntryError(name, "read", "entry has no content")
        try:
            entry.data = self._source.read(entry.info)
        except (
            zipfile.BadZipFile,
            zlib.error,
            OSError,
            RuntimeError,
            NotImplementedError,
        ) as e:
            raise EntryError(name, "read", str(e)) from e
        return entry.data

    def remove_entries(self, names: Iterable[str]) -> list[str]:
        removed = [name for name in names if name in self._entries]
        for name in removed:
            del self._entries[name]
        return removed

    def inject_entries(self, assets: Mapping[str, bytes]) -> None:
        for name, data in assets.items():
            self._entries[name] = ArchiveEntry(
                name=name, data=bytes(data), date_time=_now()
            )

    def rename_prefix(self, rule: PathRewriteRule) -> list[EntryResult]:
        """Move every entry under ``rule.old`` to ``rule.new``.

        Files are copied byte-for-byte. A file that cannot be read keeps its
        old name; every other original is removed once all copies are staged.
        """

        matches: list[tuple[str, str]] = []
        for name in self._entries:
            new_name = rule.rename(name)
            if new_name is not None:
                matches.append((name, new_name))
        if not matches:
            return []

        staged: dict[str, ArchiveEntry] = {}
        moved: list[str] = []
        results: list[EntryResult] = []
        for old_name, new_name in matches:
            entry = self._entries[old_name]
            # The bare folder name is a directory even without a trailing "/".
            if entry.is_dir or new_name.endswith("/"):
                if not new_name.endswith("/"):
                    new_name += "/"
                staged[new_name] = ArchiveEntry(
                    name=new_name, is_dir=True, date_time=entry.date_time
                )
            else:
                try:
                    data = self.read(old_name)
                except EntryError as e:
                    results.append(
                        EntryResult(
                            old_name, error=EntryError(old_name, "rename", e.reason)
                        )
                    )
                    continue
                staged[new_name] = ArchiveEntry(
                    name=new_name, data=data, date_time=entry.date_time
                )
            logger.debug("Copied %s to %s", old_name, new_name)
            moved.append(old_name)
            results.append(EntryResult(old_name, payload=new_name))

        for name in moved:
            del self._entries[name]
        self._entries.update(staged)
        return results

    def rewrite_text_entries(
        self,
        predicate: Callable[[str], bool],
        transform: TextTransform,
        *,
        stage: str,
        progress: bool = False,
    ) -> list[EntryResult]:
        """Decode matching files as UTF-8, transform, and store the result.

        ``transform`` returns ``(new_text, payload)``; the payload is carried
        on the EntryResult. A decode failure or an EntryError from the
        transform leaves the entry untouched.
        """

        names = [
            name
            for name, entry in self._entries.items()
            if not entry.is_dir and predicate(name)
        ]
        results: list[EntryResult] = []
        for name in tqdm(names, desc=stage, unit="file", disable=not progress):
            try:
                raw = self.read(name)
                try:
                    text = raw.decode("utf-8")
                except UnicodeDecodeError as e:
                    raise EntryError(name, stage, f"not valid UTF-8 ({e.reason})") from e
                new_text, payload = transform(text)
            except EntryError as e:
                error = EntryError(name, stage, e.reason)
                error.__cause__ = e
                results.append(EntryResult(name, error=error))
                continue

            entry = self._entries[name]
            entry.data = new_text.encode("utf-8")
            results.append(EntryResult(name, payload=payload))
        return results

    def serialize(self, *, comment: str = "") -> bytes:
        """Write every entry into a new deflate archive.

        A member whose source bytes cannot be read is left out and recorded
        in ``self.unwritten``; any other failure raises ArchiveError.
        """

        self.unwritten = []
        buf = io.BytesIO()
        try:
            with zipfile.ZipFile(buf, "w", compression=zipfile.ZIP_DEFLATED) as out:
                if comment:
                    out.comment = comment.encode("utf-8")
                for entry in self._entries.values():
                    name = entry.name
                    if entry.is_dir and not name.endswith("/"):
                        name += "/"
                    info = zipfile.ZipInfo(name, date_time=entry.date_time or _now())
                    if entry.is_dir:
                        info.external_attr = _DIR_MODE
                        out.writestr(info, b"", compress_type=zipfile.ZIP_STORED)
                        continue

                    try:
                        data = self.read(entry.name)
                    except EntryError as e:
                        self.unwritten.append(
                            EntryResult(
                                entry.name, error=EntryError(entry.name, "write", e.reason)
                            )
                        )
                        continue
                    info.external_attr = _FILE_MODE
                    out.writestr(info, data, compress_type=zipfile.ZIP_DEFLATED)
        except (OSError, ValueError, zlib.error) as e:
            raise ArchiveError(f"Failed to write ZIP archive: {e}") from e
        return buf.getvalue()

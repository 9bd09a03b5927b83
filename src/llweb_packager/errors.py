from __future__ import annotations


class PackagerError(Exception):
    """Base class for every error raised by llweb_packager."""


class InputError(PackagerError):
    """The archive input is missing or empty."""


class ParseError(PackagerError):
    def __init__(self, source: str, reason: str) -> None:
        super().__init__(f"Error parsing CSV {source}: {reason}")
        self.source = source
        self.reason = reason


class ArchiveError(PackagerError):
    """The archive container could not be read or written."""


class EntryError(PackagerError):
    def __init__(self, entry: str, stage: str, reason: str) -> None:
        super().__init__(f"{stage} failed for {entry}: {reason}")
        self.entry = entry
        self.stage = stage
        self.reason = reason

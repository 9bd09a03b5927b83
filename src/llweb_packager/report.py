from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .pipeline import ProcessingResult


def utc_iso() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())


@dataclass
class RunReport:
    archive_name: str
    csv_names: list[str]
    result: ProcessingResult
    generated_at: str = field(default_factory=utc_iso)

    def to_dict(self) -> dict[str, Any]:
        stats = self.result.stats.to_dict()
        stats["entriesFailed"] = self.result.stats.entries_failed
        return {
            "generated_at": self.generated_at,
            "archive": self.archive_name,
            "csv": list(self.csv_names),
            "archive_size_bytes": len(self.result.archive_bytes),
            "stats": stats,
            "failed_entries": [f.to_dict() for f in self.result.failures],
        }

    def write(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(
            json.dumps(self.to_dict(), indent=2, ensure_ascii=False) + "\n",
            encoding="utf-8",
        )

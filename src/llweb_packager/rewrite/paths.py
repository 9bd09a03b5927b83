from __future__ import annotations

from dataclasses import dataclass
from typing import Final

# Attributes whose values may reference files under the renamed folder.
REWRITTEN_ATTRIBUTES: Final[tuple[str, ...]] = (
    "src",
    "href",
    "background",
    "data-background",
    "style",
)


@dataclass(frozen=True)
class PathRewriteRule:
    """Literal, global substring replacement of one path prefix."""

    old: str = "public/"
    new: str = "img/"

    def apply(self, text: str) -> str:
        if not text or self.old not in text:
            return text
        return text.replace(self.old, self.new)

    def rename(self, entry_name: str) -> str | None:
        """Archive name after the rename, or None when out of scope.

        The bare folder name (``public``) maps to the new folder (``img/``).
        """

        if entry_name.startswith(self.old):
            return self.new + entry_name[len(self.old) :]
        if entry_name == self.old.rstrip("/"):
            return self.new
        return None


DEFAULT_RULE: Final = PathRewriteRule()


def rewrite_css(text: str, rule: PathRewriteRule = DEFAULT_RULE) -> str:
    return rule.apply(text)

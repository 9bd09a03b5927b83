from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Final

from .rewrite.paths import PathRewriteRule

logger = logging.getLogger(__name__)

ASSET_NAMES: Final[tuple[str, ...]] = (
    "LLWebServerExtended.js",
    "ew-log-viewer.js",
    "envelope-cartesian.js",
    "scriptcustom.js",
)

# Placeholder scripts; deployments supply the real ones via load_assets().
DEFAULT_ASSETS: Final[dict[str, bytes]] = {
    "LLWebServerExtended.js": b"""/*****************
* LLWebServer    *
* Version 1.2.0 **
* 2025/02/14     *
*******************/

const LLWebServer = {
  AutoRefreshStart: function(interval) {
    console.log('AutoRefresh started with interval:', interval);
  }
};

function showLoginStatus() {
  console.log('Login status shown');
}""",
    "envelope-cartesian.js": b"""/**
 * Envelope cartesian coordinate system generator
 */
function init() {
  console.log('Envelope cartesian initialized');
}""",
    "ew-log-viewer.js": b"""// Log viewer script
console.log('Log viewer initialized');""",
    "scriptcustom.js": b"""// Custom script for the application
console.log('Custom script loaded');""",
}

HEAD_MARKUP: Final[str] = """
<!--custom code 1-->
<script type="text/javascript" src="LLWebServerExtended.js"></script>
<script type='text/javascript' src='../js/base.js'></script>
<link rel='stylesheet' type='text/css' href='../style/common.css'>
<!--custom code 2-->
<script type="text/javascript" src="ew-log-viewer.js"></script>
<script type="text/javascript" src="envelope-cartesian.js"></script>
"""

BODY_MARKUP: Final[str] = """
<!--custom code 3-->
<script type='text/javascript'>
    LLWebServer.AutoRefreshStart(1000);
    showLoginStatus();
    localStorage.setItem("showNeutralNavbar", true);
</script>
<script>
    document.addEventListener('DOMContentLoaded', init);
</script>
<script
      defer=""
      src="scriptcustom.js"
></script>
"""

REMOVED_ENTRIES: Final[frozenset[str]] = frozenset({"404.html", "404.css"})

BLOCKED_LINK_SUBSTRINGS: Final[tuple[str, ...]] = (
    "fonts.googleapis.com",
    "unpkg.com",
)

ARCHIVE_COMMENT: Final[str] = "Generated website package"

ASSETS_DIR_ENV: Final[str] = "LLWEB_ASSETS_DIR"


def load_assets(directory: Path) -> dict[str, bytes]:
    """Read the four injected scripts from ``directory``.

    A missing or unreadable file falls back to its placeholder so the result
    always holds exactly the four fixed names.
    """

    assets: dict[str, bytes] = {}
    for name in ASSET_NAMES:
        path = directory / name
        try:
            assets[name] = path.read_bytes()
        except OSError as e:
            logger.warning("Using placeholder for %s: %s", name, e)
            assets[name] = DEFAULT_ASSETS[name]
    return assets


@dataclass
class PackagerConfig:
    assets: dict[str, bytes] = field(default_factory=lambda: dict(DEFAULT_ASSETS))
    head_markup: str = HEAD_MARKUP
    body_markup: str = BODY_MARKUP
    removed_entries: frozenset[str] = REMOVED_ENTRIES
    old_prefix: str = "public/"
    new_prefix: str = "img/"
    blocked_link_substrings: tuple[str, ...] = BLOCKED_LINK_SUBSTRINGS
    archive_comment: str = ARCHIVE_COMMENT
    strict_csv: bool = False
    show_progress: bool = False

    @property
    def path_rule(self) -> PathRewriteRule:
        return PathRewriteRule(old=self.old_prefix, new=self.new_prefix)

    @classmethod
    def from_assets_dir(cls, directory: Path | None, **overrides) -> PackagerConfig:
        if directory is None:
            return cls(**overrides)
        return cls(assets=load_assets(directory), **overrides)

"""llweb-packager core library.

This package rewrites an exported static website (a ZIP archive) so that HTML
controls marked with an ``nv`` attribute carry the ``data-llweb-*`` attributes
read by the LLWeb client-side refresh library.

Pipeline rules:
- One archive in, one archive out; nothing persists between runs.
- Per-entry failures are logged and leave the entry untouched.
- Only an unreadable archive (or a failed write) aborts a run.
"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "0.1.0"

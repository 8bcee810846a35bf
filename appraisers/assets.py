"""
Asset manifest produced by the SPA bundling step.

``assets.json`` lists the stylesheet and script URLs every page must load::

    {"css": ["/assets/index-3f2a.css"], "js": ["/assets/index-9b1c.js"]}

Order is preserved.  A missing manifest means "no assets" (pages still
render and stay crawlable, they just do not hydrate).
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class AssetManifest:
    css: tuple[str, ...] = field(default_factory=tuple)
    js: tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def load(cls, path: Path | str | None) -> "AssetManifest":
        if not path:
            return cls()
        p = Path(path)
        if not p.exists():
            log.warning("Asset manifest %s not found, pages will not load the SPA bundle", p)
            return cls()
        data = json.loads(p.read_text())
        if not isinstance(data, dict):
            raise ValueError(f"{p}: asset manifest must be a JSON object")
        return cls(
            css=tuple(str(u) for u in data.get("css", []) if u),
            js=tuple(str(u) for u in data.get("js", []) if u),
        )

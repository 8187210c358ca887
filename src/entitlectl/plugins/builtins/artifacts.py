"""Built-in artifact generator: writes a small text certificate to disk.

Registered with ``trylast`` so any installed plugin that renders a real
artifact takes precedence.
"""

from __future__ import annotations

import logging
from pathlib import Path

import pluggy

from entitlectl.services._helpers import now_iso

hookimpl = pluggy.HookimplMarker("entitlectl")

logger = logging.getLogger(__name__)


class FileArtifactPlugin:
    """Write ``{subject_id}.txt`` under the artifacts directory."""

    def __init__(self, artifacts_dir: Path) -> None:
        self._dir = artifacts_dir

    @hookimpl(trylast=True)
    def generate_artifact(self, subject_id: str, public_link: str) -> str | None:
        self._dir.mkdir(parents=True, exist_ok=True)
        target = self._dir / f"{subject_id}.txt"
        target.write_text(
            f"subject: {subject_id}\nlink: {public_link}\nissued: {now_iso()}\n",
            encoding="utf-8",
        )
        logger.debug("Wrote artifact %s", target)
        return str(target)

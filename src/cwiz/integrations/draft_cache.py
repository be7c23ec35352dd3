"""Local crash-recovery cache for wizard drafts.

A small key-value store on disk. Each key is one JSON file under
``<data_dir>/cache``; writes replace the whole file (last writer wins).
"""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic import ValidationError

from cwiz.models import DraftSnapshot

log = logging.getLogger(__name__)


class DraftCache:
    def __init__(self, cache_dir: Path, key: str = "contractWizardDraft") -> None:
        self.cache_dir = Path(cache_dir)
        self.key = key

    @property
    def file_path(self) -> Path:
        return self.cache_dir / f"{self.key}.json"

    def save(self, snapshot: DraftSnapshot) -> None:
        """Persist the snapshot, replacing any previous one."""
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        tmp = self.file_path.with_suffix(".json.tmp")
        tmp.write_text(snapshot.model_dump_json(by_alias=True, indent=2))
        tmp.replace(self.file_path)

    def load(self) -> DraftSnapshot | None:
        """Load the last snapshot, or None if there is none or it is unreadable."""
        if not self.file_path.exists():
            return None
        try:
            return DraftSnapshot.model_validate_json(self.file_path.read_text())
        except ValidationError as e:
            log.warning("Ignoring corrupt draft cache %s: %s", self.file_path, e)
            return None

    def clear(self) -> None:
        self.file_path.unlink(missing_ok=True)

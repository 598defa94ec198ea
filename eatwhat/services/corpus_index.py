"""Read-only reference corpus, loaded once per process."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Dict, Optional, Tuple

from eatwhat.schemas.corpus import ReferenceDocument

logger = logging.getLogger(__name__)


class CorpusIndex:
    """Pre-built HowToCook-style document set keyed by relative path.

    The first caller of :meth:`ensure_loaded` schedules the load; concurrent
    callers await the same in-flight task instead of reading the file again.
    """

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path else None
        self._docs: Optional[Tuple[ReferenceDocument, ...]] = None
        self._by_path: Dict[str, ReferenceDocument] = {}
        self._load_task: Optional[asyncio.Task] = None
        self.load_count = 0

    @property
    def loaded(self) -> bool:
        return self._docs is not None

    @property
    def documents(self) -> Tuple[ReferenceDocument, ...]:
        if self._docs is None:
            raise RuntimeError("corpus index used before ensure_loaded()")
        return self._docs

    def get(self, relative_path: str) -> Optional[ReferenceDocument]:
        return self._by_path.get(relative_path)

    def __len__(self) -> int:
        return len(self._docs or ())

    async def ensure_loaded(self) -> "CorpusIndex":
        if self._docs is not None:
            return self
        if self._load_task is None:
            self._load_task = asyncio.ensure_future(self._load())
        task = self._load_task
        try:
            await asyncio.shield(task)
        except Exception:
            if self._load_task is task:
                self._load_task = None
            raise
        return self

    async def _load(self) -> None:
        self.load_count += 1
        if self.path is None or not self.path.exists():
            logger.error("corpus index not found at %s, grounding disabled", self.path)
            self._install(())
            return
        raw = await asyncio.to_thread(self.path.read_text, encoding="utf-8")
        self._install(parse_index(raw))
        logger.info("corpus index loaded: %s docs from %s", len(self), self.path)

    def _install(self, docs: Tuple[ReferenceDocument, ...]) -> None:
        self._by_path = {doc.relative_path: doc for doc in docs}
        self._docs = docs


def parse_index(raw: str) -> Tuple[ReferenceDocument, ...]:
    """Parse the ingestion tool's JSON (``{"docs": [...]}`` or a bare list)."""
    data = json.loads(raw)
    items = data.get("docs", []) if isinstance(data, dict) else data
    if not isinstance(items, list):
        return ()
    docs = []
    for item in items:
        if not isinstance(item, dict) or not item.get("title") or not item.get("relativePath"):
            continue
        docs.append(ReferenceDocument.model_validate(item))
    return tuple(docs)

"""RulePackRegistry - the process-scoped set of verified rule packs.

The registry is the single source of truth for rule data at runtime.  It is
filled by the trust pipeline (:class:`~otcflow_rules.loader.RulePackLoader`)
and injected into the engine, the transcript parser and intake sessions.

Usage::

    registry = RulePackRegistry()
    loader = RulePackLoader(registry, base_url="https://example.org/rules/")
    await loader.load()                     # verified packs published here

    pack = registry.get("uti_women_16_64")
    options = registry.complaint_options()

For local development and tests, packs can be read straight from JSON files
without signature checks::

    registry = RulePackRegistry.from_directory(find_repo_root() / "rules" / "packs")
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Callable, Iterable, Mapping, Optional

from pydantic import ValidationError

from otcflow_rules.errors import RulePackFormatError
from otcflow_rules.models.pack import RulePack

logger = logging.getLogger(__name__)

PackListener = Callable[[list[RulePack]], None]


# ---------------------------------------------------------------------------
# Utility helpers
# ---------------------------------------------------------------------------

def find_repo_root(start: Optional[Path] = None) -> Path:
    """Walk upwards from *start* to find the repo root (dir with pyproject.toml or .git).

    Falls back to cwd if no marker is found.
    """
    p = (start or Path(__file__).resolve()).parent
    for parent in [p, *p.parents]:
        if (parent / "pyproject.toml").exists() or (parent / ".git").exists():
            return parent
    return Path.cwd()


def normalize_pack(raw: Mapping[str, Any], entry: Mapping[str, Any] | None = None) -> RulePack:
    """Build a :class:`RulePack` from a pack document and its manifest entry.

    ``meta`` fields win over the manifest entry; missing lists default to
    empty; ``source`` records the manifest path and checksum.

    Raises:
        RulePackFormatError: the document does not match the pack schema.
    """
    entry = entry or {}
    meta = raw.get("meta") or {}
    data = {
        "id": meta.get("id") or entry.get("id") or raw.get("id"),
        "name": meta.get("name") or entry.get("name") or raw.get("name"),
        "version": meta.get("version") or entry.get("version") or raw.get("version"),
        "effectiveFrom": meta.get("effectiveFrom") or raw.get("effectiveFrom"),
        "lastReviewed": meta.get("lastReviewed") or raw.get("lastReviewed"),
        "complaint": raw.get("complaint"),
        "description": raw.get("description") or "",
        "inclusion": raw.get("inclusion") or [],
        "exclusion": raw.get("exclusion") or [],
        "safetyNetting": raw.get("safetyNetting") or [],
        "sections": raw.get("sections") or [],
        "intake": raw.get("intake") or {},
        "logic": raw.get("logic") or {},
        "extraction": raw.get("extraction"),
    }
    if entry.get("path"):
        data["source"] = {"path": entry["path"], "checksum": entry.get("checksum")}
    try:
        return RulePack.model_validate(data)
    except ValidationError as exc:
        label = data["id"] or entry.get("path") or "<unknown>"
        raise RulePackFormatError(f"Rule pack {label} is malformed: {exc}") from exc


def load_pack_file(path: Path | str) -> RulePack:
    """Load and normalise a single local pack JSON file (no trust checks)."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Missing rule pack file: {path}")
    with path.open("r", encoding="utf-8") as f:
        try:
            raw = json.load(f)
        except json.JSONDecodeError as exc:
            raise RulePackFormatError(f"Rule pack {path} is not valid JSON: {exc}") from exc
    return normalize_pack(raw, {"path": str(path)})


# ---------------------------------------------------------------------------
# RulePackRegistry
# ---------------------------------------------------------------------------

class RulePackRegistry:
    """Holds the current pack list and notifies subscribers on replacement.

    The list is only ever swapped wholesale, so readers never observe a
    partially loaded set.
    """

    def __init__(self, packs: Iterable[RulePack] = ()) -> None:
        self._packs: list[RulePack] = list(packs)
        self._listeners: list[PackListener] = []

    @classmethod
    def from_directory(cls, pack_dir: Path | str) -> "RulePackRegistry":
        """Build a registry from every ``*.json`` pack in a directory (sorted by name)."""
        pack_dir = Path(pack_dir)
        packs = [load_pack_file(p) for p in sorted(pack_dir.glob("*.json"))]
        logger.info("Loaded %d local rule packs from %s", len(packs), pack_dir)
        return cls(packs)

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def replace(self, packs: Iterable[RulePack]) -> None:
        """Publish a new verified pack list and notify subscribers."""
        self._packs = list(packs)
        logger.info("Rule pack registry updated: %s", [p.id for p in self._packs])
        self._notify()

    def invalidate(self) -> None:
        """Forget every pack and notify subscribers with the empty list."""
        self._packs = []
        logger.info("Rule pack registry invalidated")
        self._notify()

    def subscribe(self, listener: PackListener) -> Callable[[], None]:
        """Register for pack-list updates.

        The listener is called immediately with the current list when it is
        non-empty, then after every :meth:`replace`.  Returns an unsubscribe
        callable.
        """
        self._listeners.append(listener)
        if self._packs:
            listener(list(self._packs))

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(list(self._packs))

    # ------------------------------------------------------------------
    # Lookup helpers
    # ------------------------------------------------------------------

    @property
    def packs(self) -> list[RulePack]:
        return list(self._packs)

    def __len__(self) -> int:
        return len(self._packs)

    def get(self, pack_id: str | None) -> RulePack | None:
        """Return the pack with ``pack_id`` or None."""
        if not pack_id:
            return None
        for pack in self._packs:
            if pack.id == pack_id:
                return pack
        return None

    def require(self, pack_id: str) -> RulePack:
        """Return the pack with ``pack_id``.

        Raises:
            KeyError: if no such pack is loaded.
        """
        pack = self.get(pack_id)
        if pack is None:
            raise KeyError(f"Rule pack {pack_id} not found")
        return pack

    def complaint_options(self) -> list[dict[str, Any]]:
        """Complaints in first-seen order, each with the packs that cover it.

        Returns dicts suitable for API responses: ``{id, label, packs: [{id, name}]}``.
        """
        complaints: dict[str, dict[str, Any]] = {}
        for pack in self._packs:
            if pack.complaint is None:
                continue
            option = complaints.setdefault(
                pack.complaint.id,
                {"id": pack.complaint.id, "label": pack.complaint.label, "packs": []},
            )
            option["packs"].append({"id": pack.id, "name": pack.name})
        return list(complaints.values())

    def packs_for_complaint(self, complaint_id: str | None) -> list[RulePack]:
        return [
            p for p in self._packs
            if p.complaint is not None and p.complaint.id == complaint_id
        ]

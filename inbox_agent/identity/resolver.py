"""Map channel-specific sender identifiers onto stable internal user ids."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Iterable

from loguru import logger

from inbox_agent.store.kv import KeyValueStore

IDMAP_KEY = "INTERNAL.USERS.IDMAP"


def new_internal_id() -> str:
    """Mint an internal id from the current time plus a random suffix."""
    return f"{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}"


@dataclass(slots=True)
class IdentityMapping:
    """One internal user and every external id known to belong to it."""

    internal_id: str
    external_ids: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"internalID": self.internal_id, "externalIDs": list(self.external_ids)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "IdentityMapping":
        return cls(
            internal_id=str(data.get("internalID", "")),
            external_ids=[str(x) for x in data.get("externalIDs", []) if str(x)],
        )


class IdentityResolver:
    """
    Resolve and merge external sender ids.

    The mapping table is a partition of the external-id space: every external
    id belongs to at most one mapping. The table is persisted under
    `INTERNAL.USERS.IDMAP` after every mutation. Each public call runs without
    an await, so it is atomic with respect to other tasks on the event loop.
    """

    def __init__(self, store: KeyValueStore):
        self.store = store

    def _load(self) -> list[IdentityMapping]:
        raw = self.store.get(IDMAP_KEY, [])
        if not isinstance(raw, list):
            logger.warning(f"Ignoring malformed identity map under {IDMAP_KEY}")
            return []
        return [IdentityMapping.from_dict(item) for item in raw if isinstance(item, dict)]

    def _save(self, mappings: list[IdentityMapping]) -> None:
        self.store.set(IDMAP_KEY, [m.to_dict() for m in mappings])

    def mappings(self) -> list[IdentityMapping]:
        """Snapshot of every mapping."""
        return self._load()

    def lookup(self, external_id: str) -> str | None:
        """Return the internal id for an external id without creating one."""
        for mapping in self._load():
            if external_id in mapping.external_ids:
                return mapping.internal_id
        return None

    def external_ids(self, internal_id: str) -> list[str]:
        """Return every external id mapped to an internal id."""
        for mapping in self._load():
            if mapping.internal_id == internal_id:
                return list(mapping.external_ids)
        return []

    def resolve(self, external_id: str) -> str:
        """Return the internal id for an external id, minting one on first sighting."""
        external_id = str(external_id).strip()
        if not external_id:
            raise ValueError("external_id must be a non-empty string")

        mappings = self._load()
        for mapping in mappings:
            if external_id in mapping.external_ids:
                return mapping.internal_id

        internal_id = new_internal_id()
        mappings.append(IdentityMapping(internal_id=internal_id, external_ids=[external_id]))
        self._save(mappings)
        logger.info(f"Assigned internal id {internal_id} to {external_id}")
        return internal_id

    def merge(self, external_ids: Iterable[str]) -> str:
        """
        Fold every mapping touching any of the given external ids into one.

        The surviving internal id is the first pre-existing one found, in the
        order the external ids are given; a fresh id is minted when none of them
        is known yet. Merging the same set again is a no-op.
        """
        wanted: list[str] = []
        for raw in external_ids:
            value = str(raw).strip()
            if value and value not in wanted:
                wanted.append(value)
        if not wanted:
            raise ValueError("merge requires at least one external id")

        mappings = self._load()
        touched: list[IdentityMapping] = []
        for external_id in wanted:
            for mapping in mappings:
                if external_id in mapping.external_ids and mapping not in touched:
                    touched.append(mapping)

        merged_ids: list[str] = []
        for mapping in touched:
            for external_id in mapping.external_ids:
                if external_id not in merged_ids:
                    merged_ids.append(external_id)
        for external_id in wanted:
            if external_id not in merged_ids:
                merged_ids.append(external_id)

        internal_id = touched[0].internal_id if touched else new_internal_id()
        if len(touched) == 1 and touched[0].external_ids == merged_ids:
            return internal_id

        touched_ids = {m.internal_id for m in touched}
        remaining = [m for m in mappings if m.internal_id not in touched_ids]
        remaining.append(IdentityMapping(internal_id=internal_id, external_ids=merged_ids))
        self._save(remaining)

        if len(touched) > 1:
            absorbed = ", ".join(m.internal_id for m in touched[1:])
            logger.info(f"Merged internal ids [{absorbed}] into {internal_id}")
        return internal_id

"""
Identity Resolver & Cache

Maps raw manager/creator labels from a sheet to canonical identities.
Labels are normalized with ``normalize_label`` before every lookup, so
"@Anna  Smith" and "anna smith" resolve to the same record.

An ``IdentityCache`` is created for one batch run and handed to each
chunk's resolver; nothing is shared between runs.
"""

import logging
import uuid
from enum import Enum
from typing import Dict, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from commission_engine.core.normalization import normalize_label, display_label
from commission_engine.models.manager import Manager, Creator, ManagerType

logger = logging.getLogger(__name__)


class IdentityKind(str, Enum):
    MANAGER = "MANAGER"
    CREATOR = "CREATOR"


class IdentityResolutionError(Exception):
    """Identity could not be resolved."""
    pass


class EmptyLabelError(IdentityResolutionError, ValueError):
    """Row carries no usable label (row-level data error)."""
    pass


class IdentityCache:
    """In-memory (kind, normalized label) -> id map owned by one batch run."""

    def __init__(self):
        self._entries: Dict[Tuple[str, str], uuid.UUID] = {}
        self.hits = 0
        self.misses = 0

    def get(self, kind: IdentityKind, handle: str) -> Optional[uuid.UUID]:
        found = self._entries.get((kind.value, handle))
        if found is None:
            self.misses += 1
        else:
            self.hits += 1
        return found

    def put(self, kind: IdentityKind, handle: str, identity_id: uuid.UUID) -> None:
        self._entries[(kind.value, handle)] = identity_id

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: Tuple[IdentityKind, str]) -> bool:
        kind, handle = key
        return (kind.value, handle) in self._entries


class IdentityResolver:
    """Resolves labels within one chunk session, creating identities on first sighting."""

    def __init__(self, db: AsyncSession, cache: IdentityCache, batch_id: Optional[uuid.UUID] = None):
        self.db = db
        self.cache = cache
        self.batch_id = batch_id
        self.created = 0

    async def resolve(
        self,
        raw_label,
        kind: IdentityKind,
        manager_type: Optional[str] = None,
        display_name: Optional[str] = None,
    ) -> uuid.UUID:
        """
        Return the canonical id for ``raw_label``.

        ``manager_type`` only seeds the type of a newly created manager; an
        existing manager keeps its stored type.

        Raises:
            EmptyLabelError: label is empty after normalization
        """
        handle = normalize_label(raw_label)
        if not handle:
            raise EmptyLabelError(f"Empty {kind.value.lower()} label")

        cached = self.cache.get(kind, handle)
        if cached is not None:
            return cached

        model = Manager if kind == IdentityKind.MANAGER else Creator
        result = await self.db.execute(select(model.id).where(model.handle == handle))
        identity_id = result.scalar_one_or_none()

        if identity_id is None:
            identity_id = await self._create(model, kind, handle, raw_label, manager_type, display_name)

        self.cache.put(kind, handle, identity_id)
        return identity_id

    async def _create(self, model, kind, handle, raw_label, manager_type, display_name) -> uuid.UUID:
        name = display_label(display_name) or display_label(raw_label)
        if kind == IdentityKind.MANAGER:
            record = Manager(
                id=uuid.uuid4(),
                handle=handle,
                name=name,
                type=ManagerType(manager_type or ManagerType.LIVE).value,
                created_by_batch_id=self.batch_id,
            )
        else:
            record = Creator(
                id=uuid.uuid4(),
                handle=handle,
                name=name,
                created_by_batch_id=self.batch_id,
            )

        self.db.add(record)
        # Unique handle: a concurrent creation surfaces here as IntegrityError
        await self.db.flush()
        self.created += 1

        logger.info(f"Created {kind.value.lower()} '{handle}' ({record.id})")
        return record.id

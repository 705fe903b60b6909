from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional
import structlog

from careernet.repositories.connection import ConnectionRepository, ProfileRepository, canonical_pair
from careernet.schemas.connection import ConnectionEntry, ConnectionsPage
from careernet.models.connection import Connection
from careernet.utils.exceptions import AuthorizationError, NotFoundError, ValidationError

logger = structlog.get_logger(__name__)


class ConnectionGraph:
    """Owns the undirected connection edges and the cached per-profile counts"""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.repo = ConnectionRepository(db)
        self.profiles = ProfileRepository(db)

    async def materialize(self, from_user_id: int, to_user_id: int) -> Connection:
        """Insert the canonical edge for an accepted request and bump both counters.

        Runs inside the caller's transaction and never commits. A duplicate
        edge surfaces as IntegrityError from the flush, leaving the caller to
        roll back the whole unit of work.
        """
        if from_user_id == to_user_id:
            raise ValidationError("Cannot connect a user to themselves")

        connection = await self.repo.create_connection(from_user_id, to_user_id)
        await self.profiles.increment_connections((from_user_id, to_user_id))
        return connection

    async def remove(self, user1_id: int, user2_id: int, acting_user_id: int) -> None:
        """Delete the edge between two users and decrement both counters"""
        if acting_user_id not in (user1_id, user2_id):
            raise AuthorizationError("Connection not found")
        if user1_id == user2_id:
            raise ValidationError("Cannot remove a connection to yourself")

        user_a_id, user_b_id = canonical_pair(user1_id, user2_id)
        try:
            removed = await self.repo.delete_connection(user_a_id, user_b_id)
            if not removed:
                raise NotFoundError("Connection not found")

            await self.profiles.decrement_connections((user_a_id, user_b_id))
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info("connection_removed", user_a_id=user_a_id, user_b_id=user_b_id, acting_user_id=acting_user_id)

    async def list_connections(self, user_id: int, limit: int = 50, offset: int = 0) -> ConnectionsPage:
        if limit < 1:
            raise ValidationError("Limit must be positive")
        if offset < 0:
            raise ValidationError("Offset must not be negative")

        rows, total_count = await self.repo.list_connections(user_id, limit, offset)
        return ConnectionsPage(
            connections=[ConnectionEntry.model_validate(dict(row._mapping)) for row in rows],
            total_count=total_count,
            limit=limit,
            offset=offset
        )

    async def reconcile_counters(self, user_ids: Optional[List[int]] = None) -> int:
        """Rewrite drifted cached counts from the connections table"""
        try:
            corrected = await self.profiles.reconcile(user_ids)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        if corrected:
            logger.warning("connection_counters_reconciled", corrected=corrected)
        return corrected

    async def get_connections_count(self, user_id: int) -> int:
        count = await self.profiles.get_connections_count(user_id)
        return count or 0

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import or_, and_, func, select, update, delete, case
from sqlalchemy.engine import Row
from typing import Iterable, List, Optional, Sequence, Tuple

from careernet.models.connection import Connection, ConnectionRequest
from careernet.models.user import User, Profile
from careernet.schemas.connection import RequestStatus


def canonical_pair(user1_id: int, user2_id: int) -> Tuple[int, int]:
    """Order an unordered pair of identities smaller first"""
    return min(user1_id, user2_id), max(user1_id, user2_id)


def _summary_columns() -> list:
    return [
        User.id.label("id"),
        User.name.label("name"),
        User.role.label("role"),
        Profile.headline.label("headline"),
        Profile.location.label("location"),
        Profile.avatar_url.label("avatar_url"),
    ]


class ConnectionRepository:
    """Statements over connection_requests and connections.

    Nothing here commits; the calling service owns the unit of work.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    # Requests
    async def get_pending_request(self, from_user_id: int, to_user_id: int) -> Optional[ConnectionRequest]:
        """Pending request for the exact ordered pair"""
        stmt = select(ConnectionRequest).where(
            and_(
                ConnectionRequest.from_user_id == from_user_id,
                ConnectionRequest.to_user_id == to_user_id,
                ConnectionRequest.status == RequestStatus.PENDING.value
            )
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_pending_between(self, user1_id: int, user2_id: int) -> Sequence[ConnectionRequest]:
        """Pending requests between two users, in either direction"""
        stmt = select(ConnectionRequest).where(
            and_(
                or_(
                    and_(ConnectionRequest.from_user_id == user1_id, ConnectionRequest.to_user_id == user2_id),
                    and_(ConnectionRequest.from_user_id == user2_id, ConnectionRequest.to_user_id == user1_id)
                ),
                ConnectionRequest.status == RequestStatus.PENDING.value
            )
        )
        result = await self.db.execute(stmt)
        return result.scalars().all()

    async def create_request(self, from_user_id: int, to_user_id: int, message: Optional[str]) -> ConnectionRequest:
        request = ConnectionRequest(
            from_user_id=from_user_id,
            to_user_id=to_user_id,
            message=message or "",
            status=RequestStatus.PENDING.value
        )
        self.db.add(request)
        await self.db.flush()
        return request

    async def resolve_request(
        self,
        request_id: int,
        acting_user_id: int,
        new_status: RequestStatus,
        as_recipient: bool = True
    ) -> Optional[Row]:
        """Move a pending request to a terminal status.

        The update only matches while the request is pending and the actor
        holds the required side of it. Returns the (from_user_id, to_user_id)
        row of the updated request, or None when nothing matched.
        """
        actor_column = ConnectionRequest.to_user_id if as_recipient else ConnectionRequest.from_user_id
        stmt = (
            update(ConnectionRequest)
            .where(
                and_(
                    ConnectionRequest.id == request_id,
                    ConnectionRequest.status == RequestStatus.PENDING.value,
                    actor_column == acting_user_id
                )
            )
            .values(status=new_status.value, updated_at=func.now())
            .returning(ConnectionRequest.from_user_id, ConnectionRequest.to_user_id)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return result.first()

    async def list_incoming(self, user_id: int) -> Sequence[Row]:
        """Pending requests addressed to the user, with the sender's summary"""
        return await self._list_pending(user_id, incoming=True)

    async def list_outgoing(self, user_id: int) -> Sequence[Row]:
        """Pending requests sent by the user, with the recipient's summary"""
        return await self._list_pending(user_id, incoming=False)

    async def _list_pending(self, user_id: int, incoming: bool) -> Sequence[Row]:
        own_column = ConnectionRequest.to_user_id if incoming else ConnectionRequest.from_user_id
        other_column = ConnectionRequest.from_user_id if incoming else ConnectionRequest.to_user_id
        stmt = (
            select(ConnectionRequest, *_summary_columns())
            .join(User, User.id == other_column)
            .outerjoin(Profile, Profile.user_id == User.id)
            .where(
                and_(
                    own_column == user_id,
                    ConnectionRequest.status == RequestStatus.PENDING.value
                )
            )
            .order_by(ConnectionRequest.created_at.desc(), ConnectionRequest.id.desc())
        )
        result = await self.db.execute(stmt)
        return result.all()

    # Edges
    async def get_connection(self, user1_id: int, user2_id: int) -> Optional[Connection]:
        user_a_id, user_b_id = canonical_pair(user1_id, user2_id)
        stmt = select(Connection).where(
            and_(Connection.user_a_id == user_a_id, Connection.user_b_id == user_b_id)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def create_connection(self, user1_id: int, user2_id: int) -> Connection:
        """Insert the canonical edge; raises IntegrityError on a duplicate pair"""
        user_a_id, user_b_id = canonical_pair(user1_id, user2_id)
        connection = Connection(user_a_id=user_a_id, user_b_id=user_b_id, status="accepted")
        self.db.add(connection)
        await self.db.flush()
        return connection

    async def delete_connection(self, user1_id: int, user2_id: int) -> bool:
        user_a_id, user_b_id = canonical_pair(user1_id, user2_id)
        stmt = (
            delete(Connection)
            .where(and_(Connection.user_a_id == user_a_id, Connection.user_b_id == user_b_id))
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return result.rowcount > 0

    async def list_connections(self, user_id: int, limit: int = 50, offset: int = 0) -> Tuple[Sequence[Row], int]:
        """Connected users, newest edge first, with the total edge count"""
        involves_user = or_(Connection.user_a_id == user_id, Connection.user_b_id == user_id)
        other_user_id = case(
            (Connection.user_a_id == user_id, Connection.user_b_id),
            else_=Connection.user_a_id
        )

        count_stmt = select(func.count(Connection.id)).where(involves_user)
        total_count = (await self.db.execute(count_stmt)).scalar_one()

        stmt = (
            select(*_summary_columns(), Connection.created_at.label("connected_since"))
            .select_from(Connection)
            .join(User, User.id == other_user_id)
            .outerjoin(Profile, Profile.user_id == User.id)
            .where(involves_user)
            .order_by(Connection.created_at.desc(), Connection.id.desc())
            .offset(offset)
            .limit(limit)
        )
        result = await self.db.execute(stmt)
        return result.all(), total_count

    async def suggest(self, user_id: int, limit: int) -> Sequence[Row]:
        """Users with no edge and no pending request to or from the user, shuffled"""
        connected_ids = select(
            case((Connection.user_a_id == user_id, Connection.user_b_id), else_=Connection.user_a_id)
        ).where(or_(Connection.user_a_id == user_id, Connection.user_b_id == user_id))

        pending_ids = select(
            case(
                (ConnectionRequest.from_user_id == user_id, ConnectionRequest.to_user_id),
                else_=ConnectionRequest.from_user_id
            )
        ).where(
            and_(
                or_(ConnectionRequest.from_user_id == user_id, ConnectionRequest.to_user_id == user_id),
                ConnectionRequest.status == RequestStatus.PENDING.value
            )
        )

        stmt = (
            select(*_summary_columns())
            .select_from(User)
            .outerjoin(Profile, Profile.user_id == User.id)
            .where(
                and_(
                    User.id != user_id,
                    User.id.not_in(connected_ids),
                    User.id.not_in(pending_ids)
                )
            )
            .order_by(func.random())
            .limit(limit)
        )
        result = await self.db.execute(stmt)
        return result.all()


class ProfileRepository:
    """Maintains the denormalized connections_count on profiles"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def increment_connections(self, user_ids: Iterable[int]) -> None:
        stmt = (
            update(Profile)
            .where(Profile.user_id.in_(list(user_ids)))
            .values(connections_count=func.coalesce(Profile.connections_count, 0) + 1)
            .execution_options(synchronize_session=False)
        )
        await self.db.execute(stmt)

    async def decrement_connections(self, user_ids: Iterable[int]) -> None:
        """Decrement, floored at zero"""
        current = func.coalesce(Profile.connections_count, 0)
        stmt = (
            update(Profile)
            .where(Profile.user_id.in_(list(user_ids)))
            .values(connections_count=case((current > 0, current - 1), else_=0))
            .execution_options(synchronize_session=False)
        )
        await self.db.execute(stmt)

    async def get_connections_count(self, user_id: int) -> Optional[int]:
        stmt = select(Profile.connections_count).where(Profile.user_id == user_id)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def reconcile(self, user_ids: Optional[List[int]] = None) -> int:
        """Recompute cached counts from the connections table.

        Returns the number of profiles whose cached value had drifted.
        """
        actual = (
            select(func.count(Connection.id))
            .where(or_(Connection.user_a_id == Profile.user_id, Connection.user_b_id == Profile.user_id))
            .scalar_subquery()
        )
        # Count and write in a single statement
        stmt = (
            update(Profile)
            .where(Profile.connections_count != actual)
            .values(connections_count=actual)
            .execution_options(synchronize_session=False)
        )
        if user_ids is not None:
            stmt = stmt.where(Profile.user_id.in_(user_ids))

        result = await self.db.execute(stmt)
        return result.rowcount

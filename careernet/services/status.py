from sqlalchemy.ext.asyncio import AsyncSession

from careernet.repositories.connection import ConnectionRepository
from careernet.schemas.connection import ConnectionStatus


class ConnectionStatusService:

    def __init__(self, db: AsyncSession):
        self.db = db
        self.repo = ConnectionRepository(db)

    async def status(self, user_id: int, other_user_id: int) -> ConnectionStatus:
        """Relationship between the user and another user.

        Pending requests in both directions can coexist; both are reported.
        """
        if user_id == other_user_id:
            return ConnectionStatus()

        connection = await self.repo.get_connection(user_id, other_user_id)
        pending = await self.repo.get_pending_between(user_id, other_user_id)

        sent = next((r for r in pending if r.from_user_id == user_id), None)
        received = next((r for r in pending if r.from_user_id == other_user_id), None)

        return ConnectionStatus(
            is_connected=connection is not None,
            request_sent=sent is not None,
            request_received=received is not None,
            sent_request_id=sent.id if sent else None,
            received_request_id=received.id if received else None
        )

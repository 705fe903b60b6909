from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from typing import Dict, Optional
import structlog

from careernet.repositories.connection import ConnectionRepository
from careernet.services.graph import ConnectionGraph
from careernet.schemas.connection import (
    ConnectionRequestDetail, ConnectionRequestResponse, PendingRequests, RequestStatus
)
from careernet.schemas.user import UserSummary
from careernet.models.user import User
from careernet.utils.exceptions import ConflictError, NotFoundError, ValidationError

logger = structlog.get_logger(__name__)

REQUEST_NOT_FOUND = "Connection request not found"


class ConnectionRequestService:
    """Lifecycle of directed connection requests.

    A request starts pending and moves exactly once to accepted, rejected
    or withdrawn. Each move is a single conditional update; when it matches
    no row the request is missing, already resolved, or not the actor's to
    resolve, and all three read the same to the caller.
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self.repo = ConnectionRepository(db)
        self.graph = ConnectionGraph(db)

    async def send(self, from_user_id: int, to_user_id: Optional[int], message: Optional[str] = None) -> ConnectionRequestResponse:
        """Send a connection request"""
        if to_user_id is None:
            raise ValidationError("Recipient user ID is required")
        if from_user_id == to_user_id:
            raise ValidationError("Cannot send request to yourself")

        # Check if recipient exists
        stmt = select(User.id).where(User.id == to_user_id)
        result = await self.db.execute(stmt)
        if result.scalar_one_or_none() is None:
            raise NotFoundError("User not found")

        if await self.repo.get_pending_request(from_user_id, to_user_id):
            raise ConflictError("Connection request already sent")
        if await self.repo.get_connection(from_user_id, to_user_id):
            raise ConflictError("Already connected with this user")

        # The checks above can race a concurrent send; the pending-pair index settles it
        try:
            request = await self.repo.create_request(from_user_id, to_user_id, message)
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise ConflictError("Connection request already sent")

        logger.info("connection_request_sent", request_id=request.id, from_user_id=from_user_id, to_user_id=to_user_id)
        return ConnectionRequestResponse(request_id=request.id)

    async def accept(self, request_id: int, acting_user_id: int) -> Dict[str, str]:
        """Accept a pending request addressed to the actor and materialize the edge"""
        try:
            endpoints = await self.repo.resolve_request(
                request_id, acting_user_id, RequestStatus.ACCEPTED, as_recipient=True
            )
            if endpoints is None:
                raise NotFoundError(REQUEST_NOT_FOUND)

            await self.graph.materialize(endpoints.from_user_id, endpoints.to_user_id)
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise ConflictError("Already connected with this user")
        except Exception:
            await self.db.rollback()
            raise

        logger.info(
            "connection_request_accepted",
            request_id=request_id,
            from_user_id=endpoints.from_user_id,
            to_user_id=endpoints.to_user_id
        )
        return {"message": "Connection accepted"}

    async def reject(self, request_id: int, acting_user_id: int) -> Dict[str, str]:
        """Reject a pending request addressed to the actor"""
        await self._resolve(request_id, acting_user_id, RequestStatus.REJECTED, as_recipient=True)
        return {"message": "Connection request rejected"}

    async def withdraw(self, request_id: int, acting_user_id: int) -> Dict[str, str]:
        """Withdraw a pending request the actor sent"""
        await self._resolve(request_id, acting_user_id, RequestStatus.WITHDRAWN, as_recipient=False)
        return {"message": "Connection request withdrawn"}

    async def _resolve(self, request_id: int, acting_user_id: int, new_status: RequestStatus, as_recipient: bool) -> None:
        try:
            endpoints = await self.repo.resolve_request(request_id, acting_user_id, new_status, as_recipient)
            if endpoints is None:
                raise NotFoundError(REQUEST_NOT_FOUND)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(f"connection_request_{new_status.value}", request_id=request_id, acting_user_id=acting_user_id)

    async def list_incoming(self, user_id: int) -> PendingRequests:
        """Pending requests waiting on the user"""
        rows = await self.repo.list_incoming(user_id)
        return self._build_pending(rows)

    async def list_outgoing(self, user_id: int) -> PendingRequests:
        """Pending requests the user has sent"""
        rows = await self.repo.list_outgoing(user_id)
        return self._build_pending(rows)

    def _build_pending(self, rows) -> PendingRequests:
        requests = []
        for row in rows:
            request = row.ConnectionRequest
            requests.append(
                ConnectionRequestDetail(
                    id=request.id,
                    from_user_id=request.from_user_id,
                    to_user_id=request.to_user_id,
                    message=request.message,
                    status=RequestStatus(request.status),
                    created_at=request.created_at,
                    updated_at=request.updated_at,
                    counterpart=UserSummary.model_validate(dict(row._mapping))
                )
            )
        return PendingRequests(requests=requests, total_count=len(requests))

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from careernet.core.config import settings
from careernet.core.database import get_db
from careernet.api.deps import get_current_identity
from careernet.schemas.connection import (
    ActionResult, ConnectionRequestCreate, ConnectionRequestResponse, ConnectionsPage,
    ConnectionStatus, CounterReconciliation, PendingRequests, Suggestions
)
from careernet.schemas.user import Identity
from careernet.services.connection_requests import ConnectionRequestService
from careernet.services.graph import ConnectionGraph
from careernet.services.status import ConnectionStatusService
from careernet.services.suggestions import SuggestionService

router = APIRouter()


@router.post("/requests", response_model=ConnectionRequestResponse)
async def send_connection_request(
    request_data: ConnectionRequestCreate,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db)
):
    """Send a connection request to another user"""
    service = ConnectionRequestService(db)
    return await service.send(identity.user_id, request_data.to_user_id, request_data.message)


@router.post("/requests/{request_id}/accept", response_model=ActionResult)
async def accept_connection_request(
    request_id: int,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db)
):
    """Accept a request addressed to the current user"""
    service = ConnectionRequestService(db)
    return await service.accept(request_id, identity.user_id)


@router.post("/requests/{request_id}/reject", response_model=ActionResult)
async def reject_connection_request(
    request_id: int,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db)
):
    """Reject a request addressed to the current user"""
    service = ConnectionRequestService(db)
    return await service.reject(request_id, identity.user_id)


@router.post("/requests/{request_id}/withdraw", response_model=ActionResult)
async def withdraw_connection_request(
    request_id: int,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db)
):
    """Withdraw a request the current user sent"""
    service = ConnectionRequestService(db)
    return await service.withdraw(request_id, identity.user_id)


@router.get("/requests/pending", response_model=PendingRequests)
async def get_pending_requests(
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db)
):
    """Pending requests received by the current user"""
    service = ConnectionRequestService(db)
    return await service.list_incoming(identity.user_id)


@router.get("/requests/sent", response_model=PendingRequests)
async def get_sent_requests(
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db)
):
    """Pending requests sent by the current user"""
    service = ConnectionRequestService(db)
    return await service.list_outgoing(identity.user_id)


@router.get("/", response_model=ConnectionsPage)
async def get_connections(
    limit: int = Query(settings.CONNECTIONS_PAGE_SIZE, ge=1, le=100, description="Maximum number of connections to return"),
    offset: int = Query(0, ge=0, description="Number of connections to skip"),
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db)
):
    """Current user's connections, newest first"""
    graph = ConnectionGraph(db)
    return await graph.list_connections(identity.user_id, limit, offset)


@router.get("/status/{other_user_id}", response_model=ConnectionStatus)
async def get_connection_status(
    other_user_id: int,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db)
):
    """Relationship between the current user and another user"""
    service = ConnectionStatusService(db)
    return await service.status(identity.user_id, other_user_id)


@router.get("/suggestions", response_model=Suggestions)
async def get_connection_suggestions(
    limit: int = Query(settings.SUGGESTIONS_LIMIT, ge=1, le=50, description="Maximum number of suggestions"),
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db)
):
    """Users the current user might want to connect with"""
    service = SuggestionService(db)
    return await service.suggest(identity.user_id, limit)


@router.post("/counters/reconcile", response_model=CounterReconciliation)
async def reconcile_connection_counter(
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db)
):
    """Recompute the current user's cached connection count"""
    graph = ConnectionGraph(db)
    corrected = await graph.reconcile_counters([identity.user_id])
    count = await graph.get_connections_count(identity.user_id)
    return CounterReconciliation(connections_count=count, corrected=corrected)


@router.delete("/{other_user_id}", response_model=ActionResult)
async def remove_connection(
    other_user_id: int,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db)
):
    """Remove the connection between the current user and another user"""
    graph = ConnectionGraph(db)
    await graph.remove(identity.user_id, other_user_id, identity.user_id)
    return {"message": "Connection removed successfully"}

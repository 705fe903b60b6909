from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from typing import List, Optional
from enum import Enum

from careernet.schemas.user import UserSummary


class RequestStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"


class ConnectionRequestCreate(BaseModel):
    to_user_id: Optional[int] = None
    message: Optional[str] = Field(None, max_length=1000)


class ConnectionRequestResponse(BaseModel):
    request_id: int
    status: RequestStatus = RequestStatus.PENDING


class ActionResult(BaseModel):
    success: bool = True
    message: str


class ConnectionRequestDetail(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    from_user_id: int
    to_user_id: int
    message: Optional[str] = None
    status: RequestStatus
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    counterpart: UserSummary


class PendingRequests(BaseModel):
    requests: List[ConnectionRequestDetail]
    total_count: int


class ConnectionEntry(UserSummary):
    connected_since: Optional[datetime] = None


class ConnectionsPage(BaseModel):
    connections: List[ConnectionEntry]
    total_count: int
    limit: int
    offset: int


class ConnectionStatus(BaseModel):
    is_connected: bool = False
    request_sent: bool = False
    request_received: bool = False
    sent_request_id: Optional[int] = None
    received_request_id: Optional[int] = None


class Suggestions(BaseModel):
    suggestions: List[UserSummary]


class CounterReconciliation(BaseModel):
    connections_count: int
    corrected: int

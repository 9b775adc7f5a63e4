from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime
from enum import Enum

class TradeStatus(str, Enum):
    PROPOSED = "proposed"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

class TradeDecision(str, Enum):
    ACCEPT = "accept"
    DECLINE = "decline"

class Trade(BaseModel):
    id: str
    proposer_id: str
    receiver_id: str
    offered_book_id: str
    requested_book_id: str
    status: TradeStatus = TradeStatus.PROPOSED
    message: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    responded_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancelled_by: Optional[str] = None
    cancel_reason: Optional[str] = None
    confirmations: List[str] = []
    version: int = 0

    def is_participant(self, user_id: str) -> bool:
        return user_id in (self.proposer_id, self.receiver_id)

    def other_party(self, user_id: str) -> str:
        return self.receiver_id if user_id == self.proposer_id else self.proposer_id

# Request bodies for the HTTP layer
class TradeProposal(BaseModel):
    offered_book_id: str
    requested_book_id: str
    message: Optional[str] = None

class TradeResponse(BaseModel):
    decision: TradeDecision

class TradeCancellation(BaseModel):
    reason: Optional[str] = None

class TradeList(BaseModel):
    message: str
    total_trades: int
    trades: List[Trade]

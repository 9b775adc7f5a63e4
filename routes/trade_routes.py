from fastapi import APIRouter, Depends, HTTPException, Query
from typing import Optional
from models.trade_models import Trade, TradeStatus, TradeProposal, TradeResponse, TradeCancellation, TradeList
from utils import get_current_user_id, get_engine

router = APIRouter(prefix="/trades", tags=["trades"])

@router.post("", response_model=Trade, status_code=201)
async def propose_trade(
    proposal: TradeProposal,
    user_id: str = Depends(get_current_user_id),
    engine=Depends(get_engine)
):
    return await engine.trades.propose(
        proposer_id=user_id,
        offered_book_id=proposal.offered_book_id,
        requested_book_id=proposal.requested_book_id,
        message=proposal.message
    )

@router.get("/user/{user_id}", response_model=TradeList)
async def get_user_trades(
    user_id: str,
    status: Optional[TradeStatus] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(10, ge=1, le=100),
    current_user_id: str = Depends(get_current_user_id),
    engine=Depends(get_engine)
):
    if user_id != current_user_id:
        raise HTTPException(status_code=403, detail="You can only list your own trades")

    trades = await engine.trades.list_trades_for_user(user_id, status=status, skip=skip, limit=limit)
    total = await engine.trades.count_trades_for_user(user_id, status=status)
    return {
        "message": f"Found {total} trades",
        "total_trades": total,
        "trades": trades
    }

@router.get("/{trade_id}", response_model=Trade)
async def get_trade(
    trade_id: str,
    user_id: str = Depends(get_current_user_id),
    engine=Depends(get_engine)
):
    trade = await engine.trades.get_trade(trade_id)
    if not trade.is_participant(user_id):
        raise HTTPException(status_code=403, detail="You are not a party to this trade")
    return trade

@router.put("/{trade_id}/respond", response_model=Trade)
async def respond_to_trade(
    trade_id: str,
    response: TradeResponse,
    user_id: str = Depends(get_current_user_id),
    engine=Depends(get_engine)
):
    return await engine.trades.respond(trade_id, user_id, response.decision)

@router.put("/{trade_id}/cancel", response_model=Trade)
async def cancel_trade(
    trade_id: str,
    cancellation: Optional[TradeCancellation] = None,
    user_id: str = Depends(get_current_user_id),
    engine=Depends(get_engine)
):
    reason = cancellation.reason if cancellation else None
    return await engine.trades.cancel(trade_id, user_id, reason=reason)

@router.post("/{trade_id}/complete", response_model=Trade)
async def complete_trade(
    trade_id: str,
    user_id: str = Depends(get_current_user_id),
    engine=Depends(get_engine)
):
    return await engine.trades.complete(trade_id, user_id)

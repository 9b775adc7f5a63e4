from fastapi import APIRouter, Depends
from models.rating_models import Rating, RatingEligibility, RatingSubmission, RatingSummary
from utils import get_current_user_id, get_engine

router = APIRouter(prefix="/ratings", tags=["ratings"])

@router.get("/trade/{trade_id}/eligibility", response_model=RatingEligibility)
async def get_rating_eligibility(
    trade_id: str,
    user_id: str = Depends(get_current_user_id),
    engine=Depends(get_engine)
):
    return await engine.rating_gate.can_rate(trade_id, user_id)

@router.get("/trade/{trade_id}", response_model=Rating)
async def get_trade_rating(
    trade_id: str,
    user_id: str = Depends(get_current_user_id),
    engine=Depends(get_engine)
):
    return await engine.rating_gate.rating_for(trade_id, user_id)

@router.post("", response_model=Rating, status_code=201)
async def submit_rating(
    submission: RatingSubmission,
    user_id: str = Depends(get_current_user_id),
    engine=Depends(get_engine)
):
    return await engine.rating_gate.submit_rating(
        submission.trade_id, user_id, submission.stars, submission.comment
    )

@router.get("/users/{user_id}/summary", response_model=RatingSummary)
async def get_rating_summary(user_id: str, engine=Depends(get_engine)):
    return await engine.rating_gate.summary_for(user_id)

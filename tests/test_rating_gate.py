"""Tests for RatingGate eligibility and rating submission."""

import pytest
import pytest_asyncio

from errors import AuthorizationError, NotFoundError, TradeStateConflict, ValidationError
from models.rating_models import RatingDenialReason


@pytest_asyncio.fixture
async def completed(engine, propose, alice, bob):
    trade = await propose()
    await engine.trades.respond(trade.id, bob, "accept")
    await engine.trades.complete(trade.id, alice)
    return await engine.trades.complete(trade.id, bob)


class TestCanRate:

    @pytest.mark.asyncio
    async def test_not_completed(self, engine, propose, alice, bob):
        trade = await propose()
        await engine.trades.respond(trade.id, bob, "accept")

        eligibility = await engine.rating_gate.can_rate(trade.id, alice)

        assert eligibility.allowed is False
        assert eligibility.reason == RatingDenialReason.NOT_COMPLETED

    @pytest.mark.asyncio
    async def test_both_parties_may_rate_after_completion(self, engine, completed, alice, bob):
        for user in (alice, bob):
            eligibility = await engine.rating_gate.can_rate(completed.id, user)
            assert eligibility.allowed is True
            assert eligibility.reason is None

    @pytest.mark.asyncio
    async def test_outsider(self, engine, completed, carol):
        eligibility = await engine.rating_gate.can_rate(completed.id, carol)

        assert eligibility.reason == RatingDenialReason.NOT_PARTICIPANT

    @pytest.mark.asyncio
    async def test_only_once_per_participant(self, engine, completed, alice, bob):
        await engine.rating_gate.submit_rating(completed.id, alice, 5)

        assert (await engine.rating_gate.can_rate(completed.id, alice)).reason == RatingDenialReason.ALREADY_RATED
        assert (await engine.rating_gate.can_rate(completed.id, bob)).allowed is True

    @pytest.mark.asyncio
    async def test_unknown_trade(self, engine, alice):
        with pytest.raises(NotFoundError):
            await engine.rating_gate.can_rate("65e000000000000000000000", alice)


class TestSubmitRating:

    @pytest.mark.asyncio
    async def test_rates_the_other_party(self, engine, completed, alice, bob):
        rating = await engine.rating_gate.submit_rating(completed.id, bob, 4)

        assert rating.rater_id == bob
        assert rating.rated_user_id == alice
        assert rating.stars == 4

    @pytest.mark.asyncio
    async def test_duplicate_rating(self, engine, completed, alice):
        await engine.rating_gate.submit_rating(completed.id, alice, 5)

        with pytest.raises(TradeStateConflict) as exc_info:
            await engine.rating_gate.submit_rating(completed.id, alice, 4)

        assert exc_info.value.code == "DUPLICATE_RATING"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("stars", [0, 6, 4.5, True])
    async def test_invalid_stars(self, engine, completed, alice, stars):
        with pytest.raises(ValidationError):
            await engine.rating_gate.submit_rating(completed.id, alice, stars, "fine")

    @pytest.mark.asyncio
    async def test_low_rating_needs_comment(self, engine, completed, alice):
        with pytest.raises(ValidationError) as exc_info:
            await engine.rating_gate.submit_rating(completed.id, alice, 2, "   ")

        assert exc_info.value.code == "COMMENT_REQUIRED"

        rating = await engine.rating_gate.submit_rating(completed.id, alice, 2, " book was damaged ")
        assert rating.comment == "book was damaged"

    @pytest.mark.asyncio
    async def test_outsider_cannot_rate(self, engine, completed, carol):
        with pytest.raises(AuthorizationError):
            await engine.rating_gate.submit_rating(completed.id, carol, 5)

    @pytest.mark.asyncio
    async def test_cannot_rate_open_trade(self, engine, propose, alice):
        trade = await propose()

        with pytest.raises(TradeStateConflict):
            await engine.rating_gate.submit_rating(trade.id, alice, 5)

    @pytest.mark.asyncio
    async def test_summary(self, engine, completed, alice, bob):
        await engine.rating_gate.submit_rating(completed.id, bob, 4)

        summary = await engine.rating_gate.summary_for(alice)
        assert summary.rating_count == 1
        assert summary.average_rating == 4.0

        empty = await engine.rating_gate.summary_for(bob)
        assert empty.rating_count == 0


class TestRatingFor:

    @pytest.mark.asyncio
    async def test_returns_callers_rating(self, engine, completed, alice, bob):
        await engine.rating_gate.submit_rating(completed.id, alice, 2, "cover was torn")

        rating = await engine.rating_gate.rating_for(completed.id, alice)

        assert rating.rated_user_id == bob
        assert rating.comment == "cover was torn"

    @pytest.mark.asyncio
    async def test_not_yet_rated(self, engine, completed, alice, bob):
        await engine.rating_gate.submit_rating(completed.id, alice, 5)

        with pytest.raises(NotFoundError) as exc_info:
            await engine.rating_gate.rating_for(completed.id, bob)

        assert exc_info.value.code == "RATING_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_malformed_trade_id(self, engine, alice):
        with pytest.raises(ValidationError) as exc_info:
            await engine.rating_gate.rating_for("not-an-id", alice)

        assert exc_info.value.code == "INVALID_TRADE_ID"

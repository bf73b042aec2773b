"""Unit tests for UpdateGate."""

import dataclasses
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from price_updater.src.fetchers import PriceQuote, SourceUnavailable
from price_updater.src.UpdateGate import Attempt, Skip, SkipReason, UpdateGate
from price_updater.src.UpdateState import UpdateState

NOW = 1_700_000_000.0


def make_source(*prices: str) -> AsyncMock:
    """Price source returning the given prices in order."""
    source = AsyncMock()
    source.fetch_price.side_effect = [PriceQuote(Decimal(p), NOW) for p in prices]
    return source


def make_gate(state: UpdateState, source: AsyncMock, interval: float = 10.0) -> UpdateGate:
    return UpdateGate(state, source, min_update_interval=interval)


class TestUpdateGateInit:
    """Test UpdateGate initialization."""

    def test_default_interval(self) -> None:
        """Default minimum interval should be 10 seconds."""
        gate = UpdateGate(UpdateState(), AsyncMock())
        assert gate.min_update_interval == 10.0

    def test_negative_interval(self) -> None:
        """Negative interval should raise ValueError."""
        with pytest.raises(ValueError, match="must not be negative"):
            UpdateGate(UpdateState(), AsyncMock(), min_update_interval=-1)


class TestStaleBlocks:
    """Test rejection of duplicate and out-of-order blocks."""

    @pytest.mark.asyncio
    async def test_stale_block_mutates_nothing(self) -> None:
        """Blocks at or below the last processed block leave state untouched."""
        state = UpdateState(
            last_processed_block=100,
            last_price=Decimal("0.2"),
            transaction_in_progress=True,
            pending_price=Decimal("0.3"),
        )
        before = dataclasses.replace(state)
        source = make_source("0.9")
        gate = make_gate(state, source)

        for block in (1, 99, 100):
            decision = await gate.evaluate(block, NOW)
            assert decision == Skip(SkipReason.DUPLICATE_OR_STALE_BLOCK)

        assert state == before
        source.fetch_price.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_same_block_twice(self) -> None:
        """Re-evaluating a block after an attempt is skipped as duplicate."""
        state = UpdateState()
        gate = make_gate(state, make_source("0.25"))

        first = await gate.evaluate(100, NOW)
        second = await gate.evaluate(100, NOW)

        assert first == Attempt(Decimal("0.25"))
        assert second == Skip(SkipReason.DUPLICATE_OR_STALE_BLOCK)
        assert state.last_processed_block == 100

    @pytest.mark.asyncio
    async def test_new_block_advances_counter(self) -> None:
        """A newer block always advances last_processed_block."""
        state = UpdateState(last_processed_block=5, last_update_timestamp=NOW)
        gate = make_gate(state, make_source())

        await gate.evaluate(9, NOW)

        assert state.last_processed_block == 9


class TestTransactionInProgress:
    """Test behaviour while an update transaction is in flight."""

    @pytest.mark.asyncio
    async def test_changed_price_captured_as_pending(self) -> None:
        """Scenario C: a changed price is stored as pending, block skipped."""
        state = UpdateState(
            last_processed_block=101,
            last_price=Decimal("0.25"),
            transaction_in_progress=True,
        )
        gate = make_gate(state, make_source("0.30"))

        decision = await gate.evaluate(102, NOW)

        assert decision == Skip(SkipReason.TRANSACTION_IN_PROGRESS)
        assert state.pending_price == Decimal("0.30")
        assert state.last_processed_block == 102

    @pytest.mark.asyncio
    async def test_unchanged_price_not_captured(self) -> None:
        """A price equal to last_price is not stored as pending."""
        state = UpdateState(last_price=Decimal("0.25"), transaction_in_progress=True)
        gate = make_gate(state, make_source("0.25"))

        decision = await gate.evaluate(1, NOW)

        assert decision == Skip(SkipReason.TRANSACTION_IN_PROGRESS)
        assert state.pending_price is None

    @pytest.mark.asyncio
    async def test_newer_pending_overwrites_older(self) -> None:
        """Each capture replaces the previously pending price."""
        state = UpdateState(transaction_in_progress=True)
        gate = make_gate(state, make_source("0.30", "0.31"))

        await gate.evaluate(1, NOW)
        await gate.evaluate(2, NOW)

        assert state.pending_price == Decimal("0.31")

    @pytest.mark.asyncio
    async def test_fetch_failure_keeps_pending(self) -> None:
        """A failed fetch during a transaction leaves pending untouched."""
        state = UpdateState(transaction_in_progress=True, pending_price=Decimal("0.3"))
        source = AsyncMock()
        source.fetch_price.side_effect = SourceUnavailable("down")
        gate = make_gate(state, source)

        decision = await gate.evaluate(1, NOW)

        assert decision == Skip(SkipReason.TRANSACTION_IN_PROGRESS)
        assert state.pending_price == Decimal("0.3")

    @pytest.mark.asyncio
    async def test_never_attempts(self) -> None:
        """No block yields an Attempt while the flag is set."""
        state = UpdateState(transaction_in_progress=True)
        gate = make_gate(state, make_source("1", "2", "3", "4"), interval=0)

        for block in range(1, 5):
            decision = await gate.evaluate(block, NOW)
            assert not isinstance(decision, Attempt)


class TestInterval:
    """Test minimum update interval gating."""

    @pytest.mark.asyncio
    async def test_interval_not_elapsed(self) -> None:
        """Scenario B: a block 2s after an update is skipped."""
        state = UpdateState(
            last_processed_block=100,
            last_price=Decimal("0.25"),
            last_update_timestamp=NOW,
        )
        source = make_source("0.26")
        gate = make_gate(state, source)

        decision = await gate.evaluate(101, NOW + 2)

        assert decision == Skip(SkipReason.INTERVAL_NOT_ELAPSED)
        assert state.last_processed_block == 101
        source.fetch_price.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_interval_boundary(self) -> None:
        """Exactly min_update_interval seconds is enough."""
        state = UpdateState(last_update_timestamp=NOW)
        gate = make_gate(state, make_source("0.25"))

        decision = await gate.evaluate(1, NOW + 10)

        assert decision == Attempt(Decimal("0.25"))

    @pytest.mark.asyncio
    async def test_pending_kept_while_interval_not_elapsed(self) -> None:
        """Pending price survives blocks skipped for the interval."""
        state = UpdateState(last_update_timestamp=NOW, pending_price=Decimal("0.3"))
        gate = make_gate(state, make_source())

        await gate.evaluate(1, NOW + 1)

        assert state.pending_price == Decimal("0.3")


class TestCandidatePrice:
    """Test candidate resolution and price-change detection."""

    @pytest.mark.asyncio
    async def test_first_update(self) -> None:
        """Scenario A: fresh price 0.25 against 0.0 yields an attempt."""
        state = UpdateState(last_processed_block=99)
        gate = make_gate(state, make_source("0.25"))

        decision = await gate.evaluate(100, NOW)

        assert decision == Attempt(Decimal("0.25"))
        assert state.last_price == Decimal(0)
        assert state.transaction_in_progress is False

    @pytest.mark.asyncio
    async def test_pending_consumed_without_fetch(self) -> None:
        """Scenario D: a pending price is used instead of a fresh quote."""
        state = UpdateState(pending_price=Decimal("0.25"))
        source = make_source("0.99")
        gate = make_gate(state, source)

        decision = await gate.evaluate(1, NOW)

        assert decision == Attempt(Decimal("0.25"))
        assert state.pending_price is None
        source.fetch_price.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_pending_equal_to_last_price(self) -> None:
        """A consumed pending price equal to last_price is skipped."""
        state = UpdateState(last_price=Decimal("0.25"), pending_price=Decimal("0.25"))
        gate = make_gate(state, make_source())

        decision = await gate.evaluate(1, NOW)

        assert decision == Skip(SkipReason.PRICE_UNCHANGED)
        assert state.pending_price is None

    @pytest.mark.asyncio
    async def test_unchanged_after_normalization(self) -> None:
        """Trailing zeros do not count as a price change."""
        state = UpdateState(last_price=Decimal("0.25"))
        gate = make_gate(state, make_source("0.25000000"))

        decision = await gate.evaluate(1, NOW)

        assert decision == Skip(SkipReason.PRICE_UNCHANGED)

    @pytest.mark.asyncio
    async def test_source_unavailable(self) -> None:
        """A failed fetch skips the block without touching prices."""
        state = UpdateState(last_price=Decimal("0.25"))
        source = AsyncMock()
        source.fetch_price.side_effect = SourceUnavailable("timeout")
        gate = make_gate(state, source)

        decision = await gate.evaluate(7, NOW)

        assert decision == Skip(SkipReason.SOURCE_UNAVAILABLE)
        assert state.last_price == Decimal("0.25")
        assert state.pending_price is None
        assert state.last_processed_block == 7

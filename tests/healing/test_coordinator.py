"""Tests for the healing coordinator."""

import asyncio
import threading
import warnings
from unittest.mock import AsyncMock

import pytest

from selfheal.healing.coordinator import HealingCoordinator
from selfheal.healing.strategies import BackoffAdjustStrategy, RetryStrategy
from selfheal.models.healing_models import (
    ActionOutcome,
    FailureType,
    HealingAttemptResult,
    HealingContext,
    HealingResult,
    TestFailure,
    UserPreferences,
)
from tests.stubs import StubStrategy, SyncRaisingStrategy, make_failure

ELEMENT = [FailureType.ELEMENT_NOT_FOUND]


@pytest.fixture
def coordinator(registry, config):
    """Create coordinator over the test registry."""
    return HealingCoordinator(registry, config=config)


class TestEarlyReturns:
    """Test outcomes that invoke no strategy."""

    @pytest.mark.asyncio
    async def test_no_applicable_strategy(self, coordinator, registry):
        """Test unknown failure with nothing registered for unknown."""
        registry.register(StubStrategy("retry", types=[FailureType.TIMEOUT]))

        result = await coordinator.heal(make_failure(FailureType.UNKNOWN, "boom"))

        assert result.success is False
        assert result.confidence == 0
        assert result.actions == []
        assert result.message == "no applicable strategy"
        assert "strategy" not in result.metadata
        assert result.metadata["reason"] == "no_applicable_strategy"

    @pytest.mark.asyncio
    async def test_budget_exhausted(self, coordinator, registry, config):
        """Test previous attempts consume the whole budget."""
        strategy = StubStrategy("retry")
        registry.register(strategy)
        history = [HealingResult(message="earlier")] * config.max_attempts

        result = await coordinator.heal(make_failure(previous_attempts=history))

        assert result.success is False
        assert result.confidence == 0
        assert result.message == "attempt budget exhausted"
        assert strategy.calls == 0

    @pytest.mark.asyncio
    async def test_zero_max_attempts(self, coordinator, registry, config):
        strategy = StubStrategy("retry")
        registry.register(strategy)

        result = await coordinator.heal(
            make_failure(), config=config.model_copy(update={"max_attempts": 0})
        )

        assert result.message == "attempt budget exhausted"
        assert strategy.calls == 0

    @pytest.mark.asyncio
    async def test_budget_reduced_by_history(self, coordinator, registry, config):
        """Test only the remaining budget is spent on candidates."""
        strategies = [StubStrategy(n, success=False) for n in ("a", "b", "c")]
        for strategy in strategies:
            registry.register(strategy)

        result = await coordinator.heal(
            make_failure(previous_attempts=[HealingResult()] * (config.max_attempts - 1))
        )

        assert [s.calls for s in strategies] == [1, 0, 0]
        assert len(result.metadata["attempts"]) == 1


class TestSelection:
    """Test ordering, early exit and aggregation."""

    @pytest.mark.asyncio
    async def test_highest_confidence_first_clears_threshold(self, coordinator, registry):
        """Test 0.8 strategy tried first wins and stops the loop."""
        high = StubStrategy("high", confidence=1.0, types=ELEMENT)
        low = StubStrategy("low", confidence=0.6, types=ELEMENT)
        third = StubStrategy("third", confidence=0.9, types=ELEMENT)
        for strategy in (high, low, third):
            registry.register(strategy)

        result = await coordinator.heal(make_failure(FailureType.ELEMENT_NOT_FOUND))

        assert result.success is True
        assert result.metadata["strategy"] == "high"
        assert result.confidence == pytest.approx(0.8)
        assert (low.calls, third.calls) == (0, 0)

    @pytest.mark.asyncio
    async def test_best_of_all_tried_when_none_clears(self, coordinator, registry, config):
        """Test highest aggregated confidence is chosen when no attempt clears."""
        registry.register(StubStrategy("low", confidence=0.6, types=ELEMENT))
        registry.register(StubStrategy("high", confidence=1.0, types=ELEMENT))

        result = await coordinator.heal(
            make_failure(FailureType.ELEMENT_NOT_FOUND),
            config=config.model_copy(update={"confidence_threshold": 0.9}),
        )

        assert result.success is False
        assert result.metadata["strategy"] == "high"
        assert result.confidence == pytest.approx(0.8)
        assert [a["strategy"] for a in result.metadata["attempts"]] == ["low", "high"]
        assert "below threshold" in result.message

    @pytest.mark.asyncio
    async def test_failed_attempts_fall_through(self, coordinator, registry):
        """Test an unsuccessful attempt does not stop the loop."""
        failing = StubStrategy("failing", confidence=0.9, success=False)
        working = StubStrategy("working", confidence=0.6)
        registry.register(failing)
        registry.register(working)

        result = await coordinator.heal(make_failure())

        assert result.success is True
        assert result.metadata["strategy"] == "working"
        assert failing.calls == working.calls == 1

    @pytest.mark.asyncio
    async def test_tie_prefers_earlier_candidate(self, coordinator, registry, config):
        registry.register(StubStrategy("first", confidence=0.4, success=False))
        registry.register(StubStrategy("second", confidence=0.4, success=False))

        result = await coordinator.heal(make_failure())

        assert result.metadata["strategy"] == "first"

    @pytest.mark.asyncio
    async def test_preferred_strategy_invoked_first(self, coordinator, registry):
        """Test preferredStrategies ["B", "A"] runs B before A."""
        order = []

        class Recording(StubStrategy):
            async def heal(self, failure, context):
                order.append(self.name)
                return await super().heal(failure, context)

        registry.register(Recording("A", success=False))
        registry.register(Recording("B", success=False))
        context = HealingContext(
            user_preferences=UserPreferences(preferred_strategies=["B", "A"])
        )

        result = await coordinator.heal(make_failure(), context)

        assert order == ["B", "A"]
        assert result.metadata["strategy"] == "B"

    @pytest.mark.asyncio
    async def test_strategy_only_invoked_for_supported_type(self, coordinator, registry):
        network = StubStrategy("network", types=[FailureType.NETWORK_ERROR])
        registry.register(network)
        registry.register(StubStrategy("timeout", types=[FailureType.TIMEOUT]))

        await coordinator.heal(make_failure(FailureType.TIMEOUT))

        assert network.calls == 0

    @pytest.mark.asyncio
    async def test_config_strategies_allow_list(self, coordinator, registry, config):
        blocked = StubStrategy("blocked", confidence=1.0)
        allowed = StubStrategy("allowed", confidence=0.6)
        registry.register(blocked)
        registry.register(allowed)

        result = await coordinator.heal(
            make_failure(), config=config.model_copy(update={"strategies": ["allowed"]})
        )

        assert blocked.calls == 0
        assert result.metadata["strategy"] == "allowed"

    @pytest.mark.asyncio
    async def test_action_bonus_applied(self, coordinator, registry):
        registry.register(StubStrategy("multi", confidence=0.5, successful_actions=3))

        result = await coordinator.heal(make_failure())

        assert result.confidence == pytest.approx(0.7)
        assert len(result.actions) == 3

    @pytest.mark.asyncio
    async def test_unknown_failure_is_classified(self, coordinator, registry):
        """Test classifier resolves unknown types before selection."""
        strategy = StubStrategy("retry", types=[FailureType.TIMEOUT])
        registry.register(strategy)
        failure = make_failure(FailureType.UNKNOWN, "Timeout 30000ms exceeded")

        result = await coordinator.heal(failure)

        assert result.success is True
        assert result.metadata["failure_type"] == "timeout"
        assert failure.failure_type == FailureType.UNKNOWN

    @pytest.mark.asyncio
    async def test_timeout_healed_by_backoff_adjust(self, coordinator, registry):
        """Test timeout failure healed by backoff-adjust at 0.625."""
        rerun = AsyncMock(return_value=True)
        registry.register(BackoffAdjustStrategy())
        registry.register(RetryStrategy(rerun=rerun))

        result = await coordinator.heal(
            make_failure(FailureType.TIMEOUT, test_config={"timeout": 30000})
        )

        assert result.success is True
        assert result.metadata["strategy"] == "backoff-adjust"
        assert result.confidence == pytest.approx(0.625)
        rerun.assert_not_awaited()


class TestFaultIsolation:
    """Test strategy failures never escape the coordinator."""

    @pytest.mark.asyncio
    async def test_async_exception_contained(self, coordinator, registry):
        raising = StubStrategy("raising", error=ValueError("bad locator"))
        fallback = StubStrategy("fallback", confidence=0.8)
        registry.register(raising)
        registry.register(fallback)

        result = await coordinator.heal(make_failure())

        assert result.success is True
        assert result.metadata["strategy"] == "fallback"
        first = result.metadata["attempts"][0]
        assert first["strategy"] == "raising"
        assert first["success"] is False
        assert "bad locator" in first["message"]

    @pytest.mark.asyncio
    async def test_synchronous_exception_contained(self, coordinator, registry):
        raising = SyncRaisingStrategy()
        fallback = StubStrategy("fallback", confidence=0.8)
        registry.register(raising)
        registry.register(fallback)

        result = await coordinator.heal(make_failure())

        assert raising.calls == 1
        assert fallback.calls == 1
        assert result.metadata["strategy"] == "fallback"

    @pytest.mark.asyncio
    async def test_error_attempt_shape(self, coordinator, registry):
        """Test a lone failing strategy yields the synthetic error attempt."""
        registry.register(SyncRaisingStrategy())

        result = await coordinator.heal(make_failure())

        assert result.success is False
        assert result.confidence == pytest.approx(0.25)
        assert len(result.actions) == 1
        action = result.actions[0]
        assert action.type == "error"
        assert action.result == ActionOutcome.FAILURE
        assert "selector engine crashed" in action.message

    @pytest.mark.asyncio
    async def test_timeout_contained(self, coordinator, registry, config):
        slow = StubStrategy("slow", confidence=1.0, delay=5.0)
        fast = StubStrategy("fast", confidence=0.6)
        registry.register(slow)
        registry.register(fast)

        result = await coordinator.heal(
            make_failure(), config=config.model_copy(update={"timeout_seconds": 0.05})
        )

        assert result.metadata["strategy"] == "fast"
        assert result.metadata["attempts"][0]["success"] is False
        assert "timeout" in result.metadata["attempts"][0]["message"].lower()
        assert result.duration_ms < 5000

    @pytest.mark.asyncio
    async def test_wrong_return_type_contained(self, coordinator, registry):
        class Broken(StubStrategy):
            async def heal(self, failure, context):
                return {"success": True}

        registry.register(Broken("broken"))

        result = await coordinator.heal(make_failure())

        assert result.success is False
        assert "HealingAttemptResult" in result.actions[0].message

    @pytest.mark.asyncio
    async def test_invalid_declared_confidence_contained(self, coordinator, registry):
        class Overconfident(StubStrategy):
            async def heal(self, failure, context):
                return HealingAttemptResult(success=True, confidence=1.5, actions=[])

        registry.register(Overconfident("overconfident"))

        result = await coordinator.heal(make_failure())

        assert result.success is False
        assert 0.0 <= result.confidence <= 1.0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("failure_type", list(FailureType))
    async def test_invariants_for_every_failure_type(self, coordinator, registry, failure_type):
        """Test heal never raises and results keep their invariants."""
        all_types = list(FailureType)
        registry.register(SyncRaisingStrategy("sync", types=all_types))
        registry.register(StubStrategy("async-raise", types=all_types, error=KeyError("x")))
        registry.register(StubStrategy("empty", types=all_types, success=False, confidence=0.0))
        registry.register(StubStrategy("ok", types=all_types, confidence=0.9))

        result = await coordinator.heal(make_failure(failure_type, "message"))

        assert 0.0 <= result.confidence <= 1.0
        assert result.duration_ms >= 0
        for attempt in result.metadata["attempts"]:
            assert 0.0 <= attempt["confidence"] <= 1.0
            assert 0.0 <= attempt["declared_confidence"] <= 1.0
        if not result.actions:
            assert result.success is False

    @pytest.mark.asyncio
    async def test_retried_failure_with_string_type(self, coordinator, registry):
        """Test a retry built with a plain string type heals normally."""
        registry.register(StubStrategy("ok", confidence=0.9))
        retried = make_failure(FailureType.UNKNOWN, "boom").retry(
            HealingResult(), failure_type="timeout"
        )

        result = await coordinator.heal(retried)

        assert result.success is True
        assert result.metadata["failure_type"] == "timeout"

    @pytest.mark.asyncio
    async def test_invalid_failure_type_never_raises(self, coordinator, registry):
        """Test an unvalidated failure with a bogus type yields an error result."""
        registry.register(StubStrategy("ok", confidence=0.9))
        failure = TestFailure.model_construct(
            test_id="test-login", failure_type="bogus", message="boom"
        )

        result = await coordinator.heal(failure)

        assert result.success is False
        assert result.metadata["reason"] == "internal_error"
        assert result.metadata["failure_type"] == "bogus"
        assert coordinator.stats().total_attempts == 1


class TestThresholdBoundary:
    """Test confidence exactly at the threshold counts as healed."""

    @pytest.mark.asyncio
    async def test_equal_to_threshold_is_success(self, coordinator, registry):
        # timeout baseline 0.5 blended with declared 0.5 scores exactly 0.5
        registry.register(StubStrategy("edge", confidence=0.5))

        result = await coordinator.heal(make_failure(FailureType.TIMEOUT))

        assert result.confidence == 0.5
        assert result.success is True

    @pytest.mark.asyncio
    async def test_just_below_threshold_is_not_success(self, coordinator, registry, config):
        registry.register(StubStrategy("edge", confidence=0.5))

        result = await coordinator.heal(
            make_failure(FailureType.TIMEOUT),
            config=config.model_copy(update={"confidence_threshold": 0.5001}),
        )

        assert result.confidence == 0.5
        assert result.success is False


class TestEscalatedWarnings:
    """Test configuration warnings stay non-fatal when filters raise them."""

    @pytest.mark.asyncio
    async def test_unknown_preferred_strategy_still_heals(self, coordinator, registry):
        registry.register(StubStrategy("ok", confidence=0.9))
        context = HealingContext(
            user_preferences=UserPreferences(preferred_strategies=["ghost"])
        )

        with warnings.catch_warnings():
            warnings.simplefilter("error")
            result = await coordinator.heal(make_failure(), context)

        assert result.success is True
        assert result.strategy == "ok"

    @pytest.mark.asyncio
    async def test_calculate_confidence_with_unknown_preference(self, coordinator, registry):
        registry.register(StubStrategy("ok"))
        context = HealingContext(
            user_preferences=UserPreferences(preferred_strategies=["ghost"])
        )

        with warnings.catch_warnings():
            warnings.simplefilter("error")
            estimate = await coordinator.calculate_confidence(make_failure(), context)

        assert estimate == pytest.approx(0.5)


class TestStatistics:
    """Test statistics are updated once per call."""

    @pytest.mark.asyncio
    async def test_every_outcome_counts_once(self, coordinator, registry, config):
        registry.register(StubStrategy("ok", confidence=0.9))
        registry.register(StubStrategy("raising", types=[FailureType.NETWORK_ERROR], error=RuntimeError()))

        await coordinator.heal(make_failure())
        await coordinator.heal(make_failure(FailureType.NETWORK_ERROR))
        await coordinator.heal(make_failure(FailureType.ASSERTION_FAILED))
        await coordinator.heal(
            make_failure(previous_attempts=[HealingResult()] * config.max_attempts)
        )

        stats = coordinator.stats()
        assert stats.total_attempts == 4
        assert stats.successful_attempts == 1
        assert stats.success_rate == pytest.approx(0.25)

        detailed = coordinator.detailed_stats()
        assert detailed.success_rate_by_strategy["ok"] == 1.0
        assert detailed.success_rate_by_strategy["raising"] == 0.0

    def test_zero_calls(self, coordinator):
        assert coordinator.stats().success_rate == 0

    @pytest.mark.asyncio
    async def test_fifty_concurrent_heals_from_ten_callers(self, coordinator, registry):
        registry.register(StubStrategy("slowish", confidence=0.9, delay=0.01))
        registry.register(StubStrategy("raising", types=[FailureType.NETWORK_ERROR], error=RuntimeError()))

        async def caller(index: int):
            results = []
            for i in range(5):
                failure_type = FailureType.TIMEOUT if (index + i) % 2 else FailureType.NETWORK_ERROR
                results.append(await coordinator.heal(make_failure(failure_type)))
            return results

        batches = await asyncio.gather(*(caller(i) for i in range(10)))

        results = [r for batch in batches for r in batch]
        stats = coordinator.stats()
        assert len(results) == 50
        assert stats.total_attempts == 50
        assert stats.successful_attempts == sum(r.success for r in results)

    def test_concurrent_heals_from_threads(self, coordinator, registry):
        """Test callers on separate threads and event loops lose no updates."""
        registry.register(StubStrategy("ok", confidence=0.9))
        errors = []

        def caller():
            async def run():
                for _ in range(5):
                    await coordinator.heal(make_failure())

            try:
                asyncio.run(run())
            except Exception as e:  # surfaced by the assertion below
                errors.append(e)

        threads = [threading.Thread(target=caller) for _ in range(10)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        assert coordinator.stats().total_attempts == 50
        assert coordinator.stats().successful_attempts == 50


class TestCancellation:
    """Test cooperative and task cancellation."""

    @pytest.mark.asyncio
    async def test_cancel_event_checked_between_strategies(self, coordinator, registry):
        cancel = asyncio.Event()

        class Cancelling(StubStrategy):
            async def heal(self, failure, context):
                cancel.set()
                return await super().heal(failure, context)

        registry.register(Cancelling("first", success=False, confidence=0.3))
        second = StubStrategy("second", confidence=1.0)
        registry.register(second)

        result = await coordinator.heal(make_failure(), cancel_event=cancel)

        assert second.calls == 0
        assert result.metadata["strategy"] == "first"
        assert result.metadata["cancelled"] is True
        assert coordinator.stats().total_attempts == 1

    @pytest.mark.asyncio
    async def test_cancel_event_set_before_call(self, coordinator, registry):
        strategy = StubStrategy("retry")
        registry.register(strategy)
        cancel = asyncio.Event()
        cancel.set()

        result = await coordinator.heal(make_failure(), cancel_event=cancel)

        assert strategy.calls == 0
        assert result.success is False
        assert result.metadata["reason"] == "cancelled"

    @pytest.mark.asyncio
    async def test_task_cancellation_propagates_and_counts(self, coordinator, registry, config):
        registry.register(StubStrategy("slow", delay=10.0))
        task = asyncio.ensure_future(
            coordinator.heal(
                make_failure(), config=config.model_copy(update={"timeout_seconds": 30.0})
            )
        )
        await asyncio.sleep(0.05)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        assert coordinator.stats().total_attempts == 1
        assert coordinator.stats().successful_attempts == 0

    @pytest.mark.asyncio
    async def test_other_calls_unaffected_by_cancellation(self, coordinator, registry, config):
        registry.register(StubStrategy("slow", confidence=0.9, delay=0.1))
        slow_config = config.model_copy(update={"timeout_seconds": 5.0})

        doomed = asyncio.ensure_future(coordinator.heal(make_failure(), config=slow_config))
        survivor = asyncio.ensure_future(coordinator.heal(make_failure(), config=slow_config))
        await asyncio.sleep(0.01)
        doomed.cancel()

        result = await survivor
        with pytest.raises(asyncio.CancelledError):
            await doomed

        assert result.success is True


class TestConfidenceEstimate:
    """Test pre-flight confidence estimation."""

    @pytest.mark.asyncio
    async def test_no_candidates(self, coordinator):
        assert await coordinator.calculate_confidence(make_failure()) == 0.0

    @pytest.mark.asyncio
    async def test_best_estimate(self, coordinator, registry):
        registry.register(StubStrategy("a"))
        registry.register(BackoffAdjustStrategy())

        estimate = await coordinator.calculate_confidence(
            make_failure(test_config={"timeout": 1000})
        )

        assert estimate == pytest.approx(0.625)
        assert coordinator.stats().total_attempts == 0

    def test_supported_failure_types(self, coordinator, registry):
        registry.register(StubStrategy("a", types=[FailureType.NETWORK_ERROR]))
        assert coordinator.supported_failure_types() == [FailureType.NETWORK_ERROR]

"""Tests for the Recovery Manager and its strategies."""

import asyncio

from stackloom.core.migration.errors import (
    AIServiceError,
    GitHubAPIError,
    MigrationError,
    RuleSetError,
    TransformationError,
)
from stackloom.core.migration.recovery import (
    CompositeRecoveryStrategy,
    FallbackOperation,
    FallbackStrategy,
    RecoveryContext,
    RecoveryManager,
    RetryStrategy,
    SkipStrategy,
    create_default_recovery_manager,
)
from stackloom.setting import RecoverySettings


def _no_wait_retry(max_retries=3):
    return RetryStrategy(max_retries=max_retries, initial_backoff_ms=0, max_backoff_ms=0)


def _flaky(failures, result="ok"):
    """An operation that fails ``failures`` times, then returns ``result``."""
    calls = {"count": 0}

    def operation():
        calls["count"] += 1
        if calls["count"] <= failures:
            raise AIServiceError("temporarily unavailable")
        return result

    return operation, calls


CONTEXT = RecoveryContext(operation="semantic-pass", job_id="job-1", file_path="src/App.jsx")


class TestRetryStrategy:
    def test_succeeds_after_failures(self):
        operation, calls = _flaky(2)
        result = asyncio.run(_no_wait_retry().recover(AIServiceError("x"), CONTEXT, operation))
        assert result.success
        assert result.data == "ok"
        assert result.attempts == 3
        assert calls["count"] == 3

    def test_exhaustion_reports_max_retries(self):
        operation, calls = _flaky(10)
        result = asyncio.run(_no_wait_retry(4).recover(AIServiceError("x"), CONTEXT, operation))
        assert not result.success
        assert result.attempts == 4
        assert calls["count"] == 4
        assert isinstance(result.error, AIServiceError)

    def test_coroutine_operation(self):
        async def operation():
            return 42

        result = asyncio.run(_no_wait_retry().recover(AIServiceError("x"), CONTEXT, operation))
        assert result.success
        assert result.data == 42
        assert result.attempts == 1

    def test_only_recoverable_errors(self):
        retry = _no_wait_retry()
        assert retry.can_recover(AIServiceError("x"))
        assert not retry.can_recover(AIServiceError("x", retryable=False))
        assert not retry.can_recover(RuleSetError("bad"))

    def test_stops_on_non_recoverable_error_during_retry(self):
        calls = {"count": 0}

        def operation():
            calls["count"] += 1
            if calls["count"] == 1:
                raise AIServiceError("timeout")
            raise AIServiceError("quota gone", retryable=False)

        result = asyncio.run(_no_wait_retry(5).recover(AIServiceError("timeout"), CONTEXT, operation))
        assert not result.success
        assert calls["count"] == 2
        assert result.attempts == 2
        assert not result.error.recoverable


class TestFallbackStrategy:
    def test_first_working_fallback_wins(self):
        def broken(context):
            raise RuntimeError("nope")

        strategy = FallbackStrategy([
            FallbackOperation("broken", broken),
            FallbackOperation("cached", lambda context: f"cached:{context.file_path}"),
        ])
        result = asyncio.run(strategy.recover(AIServiceError("x"), CONTEXT, lambda: None))
        assert result.success
        assert result.strategy == "FallbackStrategy:cached"
        assert result.attempts == 1
        assert result.data == "cached:src/App.jsx"

    def test_condition_filters_fallbacks(self):
        strategy = FallbackStrategy([
            FallbackOperation("github-only", lambda c: "gh", condition=lambda e: e.code == "GITHUB_API_ERROR"),
        ])
        assert not strategy.can_recover(AIServiceError("x"))
        assert strategy.can_recover(GitHubAPIError("down", status_code=502))

    def test_exhaustion(self):
        def broken(context):
            raise RuntimeError("nope")

        strategy = FallbackStrategy([FallbackOperation("a", broken), FallbackOperation("b", broken)])
        result = asyncio.run(strategy.recover(AIServiceError("x"), CONTEXT, lambda: None))
        assert not result.success
        assert result.attempts == 2


class TestSkipStrategy:
    def test_declined_skip(self):
        strategy = SkipStrategy(lambda e, c: False)
        assert strategy.can_recover(RuleSetError("bad"))
        result = asyncio.run(strategy.recover(TransformationError("x"), CONTEXT, lambda: None))
        assert not result.success
        assert result.attempts == 0

    def test_accepted_skip_calls_hook(self):
        skipped = []
        strategy = SkipStrategy(lambda e, c: True, on_skip=lambda e, c: skipped.append(c.file_path))
        result = asyncio.run(strategy.recover(TransformationError("x"), CONTEXT, lambda: None))
        assert result.success
        assert result.attempts == 1
        assert result.data is None
        assert skipped == ["src/App.jsx"]


class TestCompositeRecoveryStrategy:
    def test_falls_through_to_next_strategy(self):
        operation, _ = _flaky(10)
        composite = CompositeRecoveryStrategy([_no_wait_retry(2), SkipStrategy(lambda e, c: True)])
        result = asyncio.run(composite.recover(TransformationError("x"), CONTEXT, operation))
        assert result.success
        assert result.strategy == "SkipStrategy"
        assert result.strategies_tried == ["RetryStrategy", "SkipStrategy"]

    def test_skips_strategies_that_cannot_recover(self):
        composite = CompositeRecoveryStrategy([_no_wait_retry(), SkipStrategy(lambda e, c: False)])
        result = asyncio.run(composite.recover(RuleSetError("bad"), CONTEXT, lambda: None))
        assert not result.success
        assert result.attempts == 2
        assert result.strategies_tried == ["SkipStrategy"]


class TestRecoveryManager:
    def test_no_strategy(self):
        result = asyncio.run(RecoveryManager().recover(AIServiceError("x"), CONTEXT, lambda: None))
        assert not result.success
        assert result.strategy == "none"
        assert result.attempts == 0

    def test_strategy_declines(self):
        manager = RecoveryManager()
        manager.register_strategy("AI_SERVICE_ERROR", _no_wait_retry())
        error = AIServiceError("quota", retryable=False)
        result = asyncio.run(manager.recover(error, CONTEXT, lambda: None))
        assert not result.success
        assert result.strategy == "RetryStrategy"
        assert result.attempts == 0

    def test_plain_exceptions_are_wrapped(self):
        manager = RecoveryManager()
        manager.set_default_strategy(SkipStrategy(lambda e, c: True))
        result = asyncio.run(manager.recover(KeyError("k"), CONTEXT, lambda: None))
        assert result.success

    def test_never_raises(self):
        class Exploding(SkipStrategy):
            async def recover(self, error, context, operation):
                raise RuntimeError("strategy bug")

        manager = RecoveryManager()
        manager.set_default_strategy(Exploding(lambda e, c: True))
        result = asyncio.run(manager.recover(MigrationError("x"), CONTEXT, lambda: None))
        assert not result.success
        assert isinstance(result.error, RuntimeError)


class TestDefaultRecoveryManager:
    def _manager(self):
        return create_default_recovery_manager(
            RecoverySettings(max_retries=2, initial_backoff_ms=0, max_backoff_ms=0)
        )

    def test_ai_errors_are_retried(self):
        operation, calls = _flaky(1)
        result = asyncio.run(self._manager().recover(AIServiceError("x"), CONTEXT, operation))
        assert result.success
        assert result.strategy == "RetryStrategy"
        assert calls["count"] == 2

    def test_rate_limit_is_retried(self):
        error = GitHubAPIError("limited", status_code=403, rate_limit_remaining=0)
        assert error.code == "RATE_LIMIT_EXCEEDED"
        result = asyncio.run(self._manager().recover(error, CONTEXT, lambda: "fetched"))
        assert result.success
        assert result.data == "fetched"

    def test_non_critical_transformation_error_is_skipped(self):
        result = asyncio.run(self._manager().recover(TransformationError("x"), CONTEXT, lambda: None))
        assert result.success
        assert result.strategy == "SkipStrategy"

    def test_critical_transformation_error_is_not_skipped(self):
        context = RecoveryContext(operation="ast-pass", file_path="a.js", metadata={"critical": True})
        result = asyncio.run(self._manager().recover(TransformationError("x"), context, lambda: None))
        assert not result.success

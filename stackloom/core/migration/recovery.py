"""Recovery Manager and recovery strategies.

A failed pipeline stage is handed to :meth:`RecoveryManager.recover`
together with the operation that failed.  The manager picks a strategy by
error code (falling back to its default strategy) and never raises: the
outcome is always a :class:`RecoveryResult`.

Lifecycle of one recovery, as logged through ``log_migration_event``::

    attempting -> succeeded | retrying -> ... | falling back | skipped | exhausted

Retries use the ``backoff`` library (exponential, no jitter); for
coroutine operations the waits are ``asyncio.sleep`` calls.
"""

import inspect
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

import backoff

from ..constants import (
    RETRY_BACKOFF_MULTIPLIER,
    RETRY_INITIAL_BACKOFF_MS,
    RETRY_MAX_ATTEMPTS,
    RETRY_MAX_BACKOFF_MS,
)
from .errors import MigrationError, log_migration_event, to_migration_error

logger = logging.getLogger(__name__)

Operation = Callable[[], Union[Any, Awaitable[Any]]]


@dataclass
class RecoveryContext:
    """Where a failure happened."""

    operation: str
    job_id: Optional[str] = None
    file_path: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "operation": self.operation,
            "job_id": self.job_id,
            "file_path": self.file_path,
            "metadata": self.metadata,
        }


@dataclass
class RecoveryResult:
    success: bool
    strategy: str
    attempts: int = 0
    data: Any = None
    error: Optional[BaseException] = None
    strategies_tried: List[str] = field(default_factory=list)


async def _call(operation: Callable[..., Any], *args: Any) -> Any:
    result = operation(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


# ── Strategies ───────────────────────────────────────────────────────


class RecoveryStrategy(ABC):
    """Base class for recovery strategies."""

    name: str = "RecoveryStrategy"

    @abstractmethod
    def can_recover(self, error: MigrationError) -> bool:
        ...

    @abstractmethod
    async def recover(
        self, error: MigrationError, context: RecoveryContext, operation: Operation
    ) -> RecoveryResult:
        ...


class RetryStrategy(RecoveryStrategy):
    """Re-run the failed operation with exponential backoff.

    The operation is called at most ``max_retries`` times in total.  Waits
    start at ``initial_backoff_ms`` and grow by ``backoff_multiplier`` up
    to ``max_backoff_ms``.
    """

    name = "RetryStrategy"

    def __init__(
        self,
        max_retries: int = RETRY_MAX_ATTEMPTS,
        initial_backoff_ms: int = RETRY_INITIAL_BACKOFF_MS,
        max_backoff_ms: int = RETRY_MAX_BACKOFF_MS,
        backoff_multiplier: float = RETRY_BACKOFF_MULTIPLIER,
    ):
        self.max_retries = max_retries
        self.initial_backoff_ms = initial_backoff_ms
        self.max_backoff_ms = max_backoff_ms
        self.backoff_multiplier = backoff_multiplier

    def can_recover(self, error: MigrationError) -> bool:
        return error.recoverable

    async def recover(
        self, error: MigrationError, context: RecoveryContext, operation: Operation
    ) -> RecoveryResult:
        log_migration_event("recovery:retry:start", {
            "error": error.code,
            "context": context.to_dict(),
            "max_retries": self.max_retries,
        })
        tries = {"count": 0}

        def _on_backoff(details: dict) -> None:
            log_migration_event("recovery:retry:waiting", {
                "attempt": details["tries"],
                "wait_s": round(details["wait"], 3),
                "error": str(details.get("exception")),
                "context": context.to_dict(),
            })

        def _is_fatal(exc: Exception) -> bool:
            return isinstance(exc, MigrationError) and not exc.recoverable

        def _on_giveup(details: dict) -> None:
            log_migration_event("recovery:retry:exhausted", {
                "attempts": details["tries"],
                "context": context.to_dict(),
            }, level=logging.WARNING)

        @backoff.on_exception(
            backoff.expo,
            Exception,
            max_tries=self.max_retries,
            giveup=_is_fatal,
            jitter=None,
            on_backoff=_on_backoff,
            on_giveup=_on_giveup,
            base=self.backoff_multiplier,
            factor=self.initial_backoff_ms / 1000,
            max_value=self.max_backoff_ms / 1000,
        )
        async def _attempt() -> Any:
            tries["count"] += 1
            log_migration_event("recovery:retry:attempt", {
                "attempt": tries["count"],
                "max_retries": self.max_retries,
                "context": context.to_dict(),
            })
            return await _call(operation)

        try:
            data = await _attempt()
        except Exception as e:
            return RecoveryResult(
                success=False,
                strategy=self.name,
                attempts=tries["count"],
                error=e,
            )

        log_migration_event("recovery:retry:success", {
            "attempt": tries["count"],
            "context": context.to_dict(),
        })
        return RecoveryResult(success=True, strategy=self.name, attempts=tries["count"], data=data)


@dataclass
class FallbackOperation:
    name: str
    operation: Callable[[RecoveryContext], Union[Any, Awaitable[Any]]]
    condition: Optional[Callable[[MigrationError], bool]] = None

    def applies_to(self, error: MigrationError) -> bool:
        return self.condition is None or self.condition(error)


class FallbackStrategy(RecoveryStrategy):
    """Try alternative operations in order until one succeeds."""

    name = "FallbackStrategy"

    def __init__(self, fallbacks: List[FallbackOperation]):
        self.fallbacks = list(fallbacks)

    def can_recover(self, error: MigrationError) -> bool:
        return any(fb.applies_to(error) for fb in self.fallbacks)

    async def recover(
        self, error: MigrationError, context: RecoveryContext, operation: Operation
    ) -> RecoveryResult:
        log_migration_event("recovery:fallback:start", {
            "error": error.code,
            "context": context.to_dict(),
            "fallback_count": len(self.fallbacks),
        })
        for fallback in self.fallbacks:
            if not fallback.applies_to(error):
                continue
            try:
                data = await _call(fallback.operation, context)
            except Exception as e:
                log_migration_event("recovery:fallback:failed", {
                    "fallback": fallback.name,
                    "error": str(e),
                    "context": context.to_dict(),
                })
                continue
            log_migration_event("recovery:fallback:success", {
                "fallback": fallback.name,
                "context": context.to_dict(),
            })
            return RecoveryResult(
                success=True,
                strategy=f"{self.name}:{fallback.name}",
                attempts=1,
                data=data,
            )

        log_migration_event("recovery:fallback:exhausted", {"context": context.to_dict()})
        return RecoveryResult(
            success=False,
            strategy=self.name,
            attempts=len(self.fallbacks),
            error=error,
        )


class SkipStrategy(RecoveryStrategy):
    """Accept the failure and continue without data when the predicate allows."""

    name = "SkipStrategy"

    def __init__(
        self,
        skip_condition: Callable[[MigrationError, RecoveryContext], bool],
        on_skip: Optional[Callable[[MigrationError, RecoveryContext], None]] = None,
    ):
        self.skip_condition = skip_condition
        self.on_skip = on_skip

    def can_recover(self, error: MigrationError) -> bool:
        return True

    async def recover(
        self, error: MigrationError, context: RecoveryContext, operation: Operation
    ) -> RecoveryResult:
        if not self.skip_condition(error, context):
            return RecoveryResult(success=False, strategy=self.name, attempts=0, error=error)

        log_migration_event("recovery:skip", {"error": error.code, "context": context.to_dict()})
        if self.on_skip is not None:
            self.on_skip(error, context)
        return RecoveryResult(success=True, strategy=self.name, attempts=1, data=None)


class CompositeRecoveryStrategy(RecoveryStrategy):
    """First applicable strategy that succeeds wins."""

    name = "CompositeRecoveryStrategy"

    def __init__(self, strategies: List[RecoveryStrategy]):
        self.strategies = list(strategies)

    def can_recover(self, error: MigrationError) -> bool:
        return any(s.can_recover(error) for s in self.strategies)

    async def recover(
        self, error: MigrationError, context: RecoveryContext, operation: Operation
    ) -> RecoveryResult:
        log_migration_event("recovery:composite:start", {
            "error": error.code,
            "context": context.to_dict(),
            "strategy_count": len(self.strategies),
        })
        tried: List[str] = []
        for strategy in self.strategies:
            if not strategy.can_recover(error):
                continue
            tried.append(strategy.name)
            result = await strategy.recover(error, context, operation)
            if result.success:
                log_migration_event("recovery:composite:success", {
                    "strategy": strategy.name,
                    "context": context.to_dict(),
                })
                result.strategies_tried = tried
                return result
            log_migration_event("recovery:composite:failed", {
                "strategy": strategy.name,
                "context": context.to_dict(),
            })

        log_migration_event("recovery:composite:exhausted", {"context": context.to_dict()})
        return RecoveryResult(
            success=False,
            strategy=self.name,
            attempts=len(self.strategies),
            error=error,
            strategies_tried=tried,
        )


# ── Manager ──────────────────────────────────────────────────────────


class RecoveryManager:
    """Dispatch failures to recovery strategies by error code."""

    def __init__(self):
        self._strategies: Dict[str, RecoveryStrategy] = {}
        self._default: Optional[RecoveryStrategy] = None

    def register_strategy(self, code: str, strategy: RecoveryStrategy) -> None:
        self._strategies[code] = strategy

    def set_default_strategy(self, strategy: RecoveryStrategy) -> None:
        self._default = strategy

    async def recover(
        self,
        error: BaseException,
        context: RecoveryContext,
        operation: Operation,
    ) -> RecoveryResult:
        """Attempt recovery.  Never raises."""
        migration_error = to_migration_error(error)
        strategy = self._strategies.get(migration_error.code) or self._default

        if strategy is None:
            log_migration_event("recovery:no-strategy", {
                "error": migration_error.code,
                "context": context.to_dict(),
            }, level=logging.WARNING)
            return RecoveryResult(success=False, strategy="none", attempts=0, error=migration_error)

        if not strategy.can_recover(migration_error):
            log_migration_event("recovery:cannot-recover", {
                "error": migration_error.code,
                "strategy": strategy.name,
                "context": context.to_dict(),
            }, level=logging.WARNING)
            return RecoveryResult(
                success=False,
                strategy=strategy.name,
                attempts=0,
                error=migration_error,
            )

        try:
            return await strategy.recover(migration_error, context, operation)
        except Exception as e:
            logger.error(f"Recovery strategy {strategy.name} raised: {e}", exc_info=True)
            return RecoveryResult(success=False, strategy=strategy.name, attempts=0, error=e)


def create_default_recovery_manager(settings=None) -> RecoveryManager:
    """Manager with the standard strategy table.

    Args:
        settings: Optional ``RecoverySettings`` with the backoff parameters
    """
    if settings is not None:
        retry = RetryStrategy(
            max_retries=settings.max_retries,
            initial_backoff_ms=settings.initial_backoff_ms,
            max_backoff_ms=settings.max_backoff_ms,
            backoff_multiplier=settings.backoff_multiplier,
        )
    else:
        retry = RetryStrategy()

    def _skip_non_critical(error: MigrationError, context: RecoveryContext) -> bool:
        return error.code == "TRANSFORMATION_ERROR" and not context.metadata.get("critical")

    def _log_skip(error: MigrationError, context: RecoveryContext) -> None:
        logger.warning(
            f"Skipping non-critical transformation error in {context.file_path}: {error.message}"
        )

    skip = SkipStrategy(_skip_non_critical, _log_skip)

    manager = RecoveryManager()
    manager.register_strategy("RATE_LIMIT_EXCEEDED", retry)
    manager.register_strategy("GITHUB_API_ERROR", retry)
    manager.register_strategy("AI_SERVICE_ERROR", retry)
    manager.register_strategy("TRANSFORMATION_ERROR", skip)
    manager.set_default_strategy(CompositeRecoveryStrategy([retry, skip]))
    return manager

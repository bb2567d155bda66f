"""
Ordered strategy chains.

Each pipeline stage with alternatives (criteria extraction, vector search,
lead formatting) declares its strategies as an ordered list. The chain
tries them in order, records every outcome, and reports which one won.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Optional, Sequence, Tuple

from .errors import PipelineError, is_retryable_message

logger = logging.getLogger("leadscout.common.fallback")

Strategy = Tuple[str, Callable[[], Awaitable[Any]]]


@dataclass
class StrategyOutcome:
    """Result-or-failure of one strategy attempt."""
    name: str
    ok: bool
    error: Optional[str] = None
    elapsed_ms: float = 0.0


@dataclass
class ChainResult:
    value: Any
    strategy: str
    attempts: List[StrategyOutcome] = field(default_factory=list)

    @property
    def fallback_used(self) -> bool:
        return len(self.attempts) > 1


async def run_fallback_chain(stage: str, strategies: Sequence[Strategy]) -> ChainResult:
    """
    Run strategies in order until one succeeds.

    Raises:
        PipelineError: tagged with ``stage`` once every strategy has failed.
    """
    if not strategies:
        raise PipelineError(f"No strategies configured for {stage}", stage=stage)

    attempts: List[StrategyOutcome] = []
    last_exc: Optional[Exception] = None

    for name, run in strategies:
        started = time.perf_counter()
        try:
            value = await run()
        except Exception as e:
            elapsed = (time.perf_counter() - started) * 1000
            attempts.append(StrategyOutcome(name=name, ok=False, error=str(e), elapsed_ms=elapsed))
            last_exc = e
            logger.warning("[%s] strategy %s failed: %s", stage, name, e)
            continue

        elapsed = (time.perf_counter() - started) * 1000
        attempts.append(StrategyOutcome(name=name, ok=True, elapsed_ms=elapsed))
        if len(attempts) > 1:
            logger.info("[%s] recovered with fallback strategy %s", stage, name)
        return ChainResult(value=value, strategy=name, attempts=attempts)

    logger.error("[%s] all %d strategies failed", stage, len(attempts))
    message = f"{stage} failed: {last_exc}"
    raise PipelineError(
        message,
        stage=stage,
        fallback_attempted=len(attempts) > 1,
        retryable=is_retryable_message(message),
    ) from last_exc

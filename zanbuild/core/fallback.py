"""
Ordered fallback chains.

Downloads, extractions and layout normalization all follow the same shape:
try a list of strategies in order and keep the first one that works. This
module models that as data (a list of Strategy objects) consumed by a single
combinator, so reordering or adding a strategy never touches control flow.

Example:
    >>> chain = [Strategy("fast", fast_fetch), Strategy("slow", slow_fetch)]
    >>> name, result = first_success(chain, url, destination)
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Sequence, Tuple, Type

logger = logging.getLogger(__name__)


class StrategyUnavailable(Exception):
    """A strategy does not apply in this environment and was skipped."""

    pass


class StrategiesExhausted(Exception):
    """Every strategy in a chain failed or was unavailable."""

    def __init__(self, failures: List[Tuple[str, BaseException]]):
        self.failures = failures
        if failures:
            summary = "; ".join(f"{name}: {error}" for name, error in failures)
        else:
            summary = "no strategies configured"
        super().__init__(f"All strategies failed ({summary})")

    @property
    def last_error(self) -> Optional[BaseException]:
        """Exception raised by the last strategy tried, if any."""
        return self.failures[-1][1] if self.failures else None


@dataclass(frozen=True)
class Strategy:
    """A named step in a fallback chain."""

    name: str
    func: Callable[..., Any]

    def __call__(self, *args, **kwargs) -> Any:
        return self.func(*args, **kwargs)


def first_success(
    strategies: Sequence[Strategy],
    *args,
    on_failure: Optional[Callable[[Strategy, BaseException], None]] = None,
    fatal: Tuple[Type[BaseException], ...] = (),
    **kwargs,
) -> Tuple[str, Any]:
    """
    Run strategies in order and return the first successful result.

    A strategy succeeds when it returns without raising. StrategyUnavailable
    marks it as not applicable; any other Exception marks it as failed. Both
    move on to the next strategy.

    Args:
        strategies: Ordered strategies to try
        *args: Positional arguments passed to every strategy
        on_failure: Optional hook called after each failed strategy (used for
            cleanup between attempts)
        fatal: Exception types that end the chain at once and propagate
            unchanged instead of falling through to the next strategy
        **kwargs: Keyword arguments passed to every strategy

    Returns:
        Tuple of (strategy name, strategy result)

    Raises:
        StrategiesExhausted: If no strategy succeeded
        Exception: Any instance of a fatal type, as raised by the strategy
    """
    failures: List[Tuple[str, BaseException]] = []

    for strategy in strategies:
        try:
            result = strategy(*args, **kwargs)
        except fatal:
            logger.debug(f"Strategy '{strategy.name}' hit a fatal error")
            raise
        except StrategyUnavailable as e:
            logger.debug(f"Strategy '{strategy.name}' unavailable: {e}")
            failures.append((strategy.name, e))
        except Exception as e:
            logger.debug(f"Strategy '{strategy.name}' failed: {e}")
            failures.append((strategy.name, e))
        else:
            logger.debug(f"Strategy '{strategy.name}' succeeded")
            return strategy.name, result

        if on_failure is not None:
            on_failure(strategy, failures[-1][1])

    raise StrategiesExhausted(failures)

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from src.core.junket_api import ApiResult

logger = logging.getLogger(__name__)

Fetch = Callable[[], ApiResult]


@dataclass(frozen=True)
class SourceStrategy:
    name: str
    fetch: Fetch


@dataclass
class FallbackResolution:
    entity: str
    data: Any = field(default_factory=list)
    source: Optional[str] = None
    attempts: int = 0
    failures: List[str] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.source is not None

    @property
    def items(self) -> List[Any]:
        return _as_list(self.data)


def _as_list(data: Any) -> List[Any]:
    if data is None:
        return []
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        # Some endpoints wrap the collection one level deeper.
        for key in ("items", "results", "records", "customers", "transactions", "data"):
            value = data.get(key)
            if isinstance(value, list):
                return value
    return [data]


def resolve_with_fallback(
    entity: str,
    strategies: Sequence[SourceStrategy],
    extract: Optional[Callable[[Any], Any]] = None,
) -> FallbackResolution:
    """Try ``strategies`` in order and keep the first successful result.

    A strategy that raises or returns ``success=False`` hands over to the next
    one. When none succeeds the resolution carries an empty list.
    """
    resolution = FallbackResolution(entity=entity)
    for strategy in strategies:
        resolution.attempts += 1
        try:
            result = strategy.fetch()
        except Exception as exc:
            resolution.failures.append(f"{strategy.name}: {exc}")
            logger.debug("Source %s for %s raised: %s", strategy.name, entity, exc)
            continue
        if not result.success:
            resolution.failures.append(f"{strategy.name}: {result.message or 'unsuccessful'}")
            continue
        data = result.data
        if extract is not None:
            try:
                data = extract(data)
            except Exception as exc:
                resolution.failures.append(f"{strategy.name}: {exc}")
                logger.debug("Source %s for %s returned unusable data: %s", strategy.name, entity, exc)
                continue
        resolution.data = [] if data is None else data
        resolution.source = strategy.name
        if resolution.failures:
            logger.info(
                "Resolved %s from %s after %s attempts", entity, strategy.name, resolution.attempts
            )
        return resolution

    logger.warning(
        "All %s sources failed for %s: %s",
        len(strategies),
        entity,
        "; ".join(resolution.failures) or "no strategies configured",
    )
    return resolution


def _run_isolated(name: str, fetch: Callable[[], Any]) -> Any:
    try:
        return fetch()
    except Exception as exc:
        logger.warning("Fetch %s failed: %s", name, exc)
        return ApiResult.failure(str(exc))


def fetch_concurrently(
    fetches: Mapping[str, Callable[[], Any]],
    max_workers: int = 6,
) -> Dict[str, Any]:
    """Run independent fetches in parallel and return once every one settled.

    A fetch that raises is logged and reported as a failed ``ApiResult``; the
    others are unaffected.
    """
    if not fetches:
        return {}
    workers = max(1, min(max_workers, len(fetches)))
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="junket-fetch") as executor:
        futures = {name: executor.submit(_run_isolated, name, fetch) for name, fetch in fetches.items()}
        return {name: future.result() for name, future in futures.items()}


def result_items(result: Any) -> List[Any]:
    """Collection carried by a settled fetch, or ``[]`` when it failed."""
    if isinstance(result, FallbackResolution):
        return result.items
    if isinstance(result, ApiResult):
        return _as_list(result.data) if result.success else []
    return _as_list(result)


def result_failed(result: Any) -> bool:
    if isinstance(result, FallbackResolution):
        return not result.succeeded
    if isinstance(result, ApiResult):
        return not result.success
    return False

"""Uniform batch streaming over the two paged stores.

The chargEV DB pages with a change token plus a start token, the record
store with an opaque continuation handle. Both are reduced to a
``fetch_page(cursor, remaining)`` coroutine returning a :class:`Batch`,
which :class:`CursorReader` drives until the store has nothing more to
offer or the item cap is reached.

A batch that straddles the cap is truncated, so ``consumed`` never exceeds
``item_cap`` and no page is requested after the cap has been reached.
"""

import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass, field
from typing import Generic, Optional, TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)


@dataclass
class Batch(Generic[T]):
    """One page of items plus what is needed to fetch the next one."""

    items: list[T] = field(default_factory=list)
    more_coming: bool = False
    next_cursor: Optional[str] = None

    def __len__(self) -> int:
        return len(self.items)


FetchPage = Callable[[Optional[str], Optional[int]], Awaitable[Batch]]


class CursorReader(Generic[T]):
    """Single-pass reader yielding batches from a paged store."""

    def __init__(self, fetch_page: FetchPage, item_cap: int | None = None):
        if item_cap is not None and item_cap < 0:
            raise ValueError("item_cap must not be negative")
        self._fetch_page = fetch_page
        self.item_cap = item_cap
        self.consumed = 0
        self.requests = 0
        self._started = False

    @property
    def remaining(self) -> int | None:
        """Items still allowed by the cap, or None when uncapped."""
        if self.item_cap is None:
            return None
        return max(self.item_cap - self.consumed, 0)

    @property
    def exhausted(self) -> bool:
        return self.item_cap is not None and self.consumed >= self.item_cap

    async def stream(self, start_cursor: str | None = None) -> AsyncIterator[Batch[T]]:
        """
        Yield batches starting at ``start_cursor``.

        Restarting requires a new reader built with a fresh cursor.
        """
        if self._started:
            raise RuntimeError("CursorReader.stream() can only be consumed once")
        self._started = True

        cursor = start_cursor
        while not self.exhausted:
            batch = await self._fetch_page(cursor, self.remaining)
            self.requests += 1

            remaining = self.remaining
            if remaining is not None and len(batch.items) > remaining:
                logger.debug(
                    f"Truncating batch of {len(batch.items)} item(s) to {remaining} (cap reached)"
                )
                batch = Batch(batch.items[:remaining], more_coming=False, next_cursor=None)

            self.consumed += len(batch.items)
            yield batch

            if not batch.more_coming:
                break
            cursor = batch.next_cursor

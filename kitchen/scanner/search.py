"""Debounced supply name search."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable

from ..client import KitchenAPIError
from ..types import Supply
from .lookup import LookupPipeline

logger = logging.getLogger(__name__)


class NameSearch:
    """Search-as-you-type against the supply search endpoint.

    Every :meth:`update` cancels the pending request; a request is only
    issued once the query has been left alone for ``debounce`` seconds.
    Queries shorter than ``min_length`` clear the results without a request.
    """

    def __init__(
        self,
        pipeline: LookupPipeline,
        kitchen_id: str,
        on_results: Callable[[list[Supply]], None] | None = None,
        debounce: float = 0.35,
        min_length: int = 2,
    ) -> None:
        self._pipeline = pipeline
        self._kitchen_id = kitchen_id
        self._on_results = on_results
        self._debounce = debounce
        self._min_length = min_length
        self._query = ""
        self._results: list[Supply] = []
        self._searching = False
        self._task: asyncio.Task | None = None

    @property
    def query(self) -> str:
        return self._query

    @property
    def results(self) -> list[Supply]:
        return list(self._results)

    @property
    def searching(self) -> bool:
        return self._searching

    def update(self, query: str) -> None:
        """Handle a keystroke. Must be called from within the event loop."""
        self._query = query
        self._cancel()

        text = query.strip()
        if len(text) < self._min_length:
            self._set_results([])
            return
        self._task = asyncio.get_running_loop().create_task(self._run(text))

    async def settle(self) -> None:
        """Wait for the pending search, if any, to finish."""
        task = self._task
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    def close(self) -> None:
        self._cancel()
        self._query = ""
        self._results = []

    def _cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
        self._searching = False

    async def _run(self, text: str) -> None:
        await asyncio.sleep(self._debounce)
        self._searching = True
        try:
            results = await self._pipeline.search(text, self._kitchen_id)
        except KitchenAPIError as e:
            logger.warning("Supply search for %r failed: %s", text, e)
            results = []
        finally:
            self._searching = False
        self._set_results(results)

    def _set_results(self, results: list[Supply]) -> None:
        self._results = results
        if self._on_results is not None:
            self._on_results(list(results))

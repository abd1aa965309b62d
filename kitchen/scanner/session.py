"""Scan session state machine.

A session lives from the moment the scanner opens until it closes. It feeds
camera decodes into the confirmation buffer, runs the lookup pipeline on a
confirmed or typed code, and decides what happens with the result:

- camera scans of a supply are recorded automatically (1 unit);
- manual entry and name search always stop at ``found-supply`` so the user
  confirms quantity and notes;
- a failed automatic record falls back to ``found-supply`` with the resolved
  supply kept.

The host observes the session through ``on_change`` (called after every
state change) and ``on_notify`` (user-facing toasts).
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Coroutine, TypeVar

from .camera import CameraController
from .confirmation import ConfirmationBuffer, Confirmed, Pending
from .errors import CameraError
from .lookup import LookupPipeline, NotFound, RecipeMatch, SupplyMatch
from .recorder import ConsumptionRecorder, Failed, RecipeUsed, Recorded
from .search import NameSearch

if TYPE_CHECKING:
    from ..client import KitchenClient
    from ..types import Recipe, Supply
    from .capture import CaptureBackend
    from .config import ScannerConfig
    from .events import InventoryEvents

logger = logging.getLogger(__name__)

_R = TypeVar("_R")


class ScanState(str, Enum):
    CAMERA = "camera"
    MANUAL = "manual"
    SEARCH = "search"
    LOOKING_UP = "looking-up"
    FOUND_SUPPLY = "found-supply"
    FOUND_RECIPE = "found-recipe"
    NOT_FOUND = "not-found"
    AUTO_RECORDING = "auto-recording"
    RECORDED = "recorded"


class Source(str, Enum):
    CAMERA = "camera"
    MANUAL = "manual"


TABS = frozenset({ScanState.CAMERA, ScanState.MANUAL, ScanState.SEARCH})


@dataclass
class Notification:
    title: str
    message: str
    level: str = "info"  # "info" | "error"


class ScanSession:
    """One open scanner dialog bound to a kitchen.

    Use as an async context manager so the camera is always released::

        async with ScanSession(kitchen_id, camera, pipeline, recorder) as s:
            ...
    """

    def __init__(
        self,
        kitchen_id: str,
        camera: CameraController,
        pipeline: LookupPipeline,
        recorder: ConsumptionRecorder,
        *,
        required_matches: int = 3,
        window_size: int = 7,
        min_length: int = 4,
        mount_delay: float = 0.2,
        search_debounce: float = 0.35,
        search_min_length: int = 2,
        on_change: Callable[[ScanSession], None] | None = None,
        on_notify: Callable[[Notification], None] | None = None,
        on_search_results: Callable[[list[Supply]], None] | None = None,
    ) -> None:
        self.kitchen_id = kitchen_id
        self._camera = camera
        self._pipeline = pipeline
        self._recorder = recorder
        self._buffer = ConfirmationBuffer(required_matches, window_size, min_length)
        self._mount_delay = mount_delay
        self._on_change = on_change
        self._on_notify = on_notify
        self.search = NameSearch(
            pipeline,
            kitchen_id,
            on_results=on_search_results,
            debounce=search_debounce,
            min_length=search_min_length,
        )

        self._state = ScanState.CAMERA
        self._open = False
        self._camera_task: asyncio.Task | None = None
        self._lookup_task: asyncio.Task | None = None
        self._commit_task: asyncio.Task | None = None
        self._processing = False

        self.supply: Supply | None = None
        self.recipe: Recipe | None = None
        self.source: Source | None = None
        self.last_code = ""
        self.camera_error: CameraError | None = None
        self.form_quantity: float = 1
        self.remaining: float | None = None

    @classmethod
    def from_config(
        cls,
        config: ScannerConfig,
        kitchen_id: str,
        client: KitchenClient,
        backend: CaptureBackend,
        events: InventoryEvents | None = None,
        **callbacks,
    ) -> ScanSession:
        """Wire a session from a :class:`ScannerConfig`."""
        camera = CameraController(
            backend,
            primary=config.camera.primary,
            fallback=config.camera.fallback,
            preferred_labels=config.camera.preferred_labels,
        )
        return cls(
            kitchen_id,
            camera,
            LookupPipeline(client),
            ConsumptionRecorder(client, events),
            required_matches=config.confirmation.required_matches,
            window_size=config.confirmation.window_size,
            min_length=config.confirmation.min_length,
            mount_delay=config.camera.mount_delay,
            search_debounce=config.search.debounce,
            search_min_length=config.search.min_length,
            **callbacks,
        )

    # ── Observable state ────────────────────────────────────

    @property
    def state(self) -> ScanState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._open

    @property
    def confidence(self) -> int:
        return self._buffer.confidence

    @property
    def locked(self) -> bool:
        return self._buffer.locked

    @property
    def buffer(self) -> ConfirmationBuffer:
        return self._buffer

    @property
    def camera(self) -> CameraController:
        return self._camera

    @property
    def busy(self) -> bool:
        return (
            self._lookup_task is not None
            or self._commit_task is not None
            or self._processing
        )

    # ── Lifecycle ───────────────────────────────────────────

    async def __aenter__(self) -> ScanSession:
        await self.open()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def open(self) -> None:
        """Enter the camera tab and start acquiring the camera."""
        if self._open:
            return
        self._open = True
        logger.info("Scan session opened for kitchen %s", self.kitchen_id)
        self._set_state(ScanState.CAMERA)
        self._schedule_camera_start(self._mount_delay)

    async def close(self) -> None:
        """Release the camera, cancel pending work and clear every field."""
        await self._cancel_pending()
        await self._stop_camera()
        self.search.close()
        self._clear()
        self._state = ScanState.CAMERA
        if self._open:
            self._open = False
            logger.info("Scan session closed")
            self._changed()

    async def reset(self) -> None:
        """"Scan another": drop the result and go back to the camera."""
        await self._cancel_pending()
        await self._stop_camera()
        self.search.close()
        self._clear()
        self._set_state(ScanState.CAMERA)
        if self._open:
            self._schedule_camera_start(self._mount_delay)

    async def retry_camera(self) -> None:
        """Try to start the camera again after an inline camera error."""
        if not self._open or self._state is not ScanState.CAMERA:
            return
        self._buffer.reset()
        task = self._schedule_camera_start(0)
        await asyncio.gather(task, return_exceptions=True)

    async def switch_tab(self, tab: ScanState | str) -> None:
        """Move between the camera, manual and search tabs.

        Leaving the camera tab releases the camera; coming back restarts it.
        Ignored while a result is displayed.
        """
        tab = ScanState(tab)
        if tab not in TABS:
            raise ValueError(f"Not a scanner tab: {tab.value}")
        if self._state not in TABS or tab is self._state:
            return

        if self._state is ScanState.CAMERA:
            await self._stop_camera()
        self._set_state(tab)
        if tab is ScanState.CAMERA:
            self._buffer.reset()
            self.camera_error = None
            self._schedule_camera_start(self._mount_delay)

    async def wait_idle(self) -> None:
        """Wait for a pending camera start and lookup to finish."""
        for task in (self._camera_task, self._lookup_task):
            if task is not None:
                await asyncio.gather(task, return_exceptions=True)

    # ── Entry paths ─────────────────────────────────────────

    def on_decode(self, code: str) -> None:
        """Decode callback for the capture backend."""
        if self._state is not ScanState.CAMERA or self._lookup_task is not None:
            return

        outcome = self._buffer.observe(code)
        if outcome is None:
            logger.debug("Ignored decode %r", code)
            return
        if isinstance(outcome, Pending):
            self._changed()
            return
        if isinstance(outcome, Confirmed):
            logger.info("Confirmed %r", outcome.code)
            self._begin_lookup(outcome.code, Source.CAMERA)

    async def submit_manual(self, code: str) -> None:
        """Look up a typed code; the result always needs confirmation."""
        if self._state is not ScanState.MANUAL or self._lookup_task is not None:
            return
        code = code.strip()
        if not code:
            return
        task = self._begin_lookup(code, Source.MANUAL)
        await asyncio.gather(task, return_exceptions=True)

    def update_search(self, query: str) -> None:
        if self._state is ScanState.SEARCH:
            self.search.update(query)

    def select_search_result(self, supply: Supply) -> None:
        if self._state is not ScanState.SEARCH:
            return
        self.source = Source.MANUAL
        self.last_code = ""
        self._show_supply(supply)

    # ── Result actions ──────────────────────────────────────

    async def record_consumption(
        self, quantity: float, notes: str = ""
    ) -> Recorded | Failed | None:
        """Submit the ``found-supply`` form; closes the session on success."""
        if self._state is not ScanState.FOUND_SUPPLY or self.supply is None:
            return None
        if self.busy:
            return None

        supply = self.supply
        result = await self._commit(
            self._recorder.manual_record(supply, quantity, notes)
        )
        if result is None:
            return None

        if isinstance(result, Recorded):
            self._notify(
                "Consumption Recorded",
                f"{_fmt(result.quantity)} {supply.unit} of {supply.name}",
            )
            await self.close()
        else:
            self._notify("Error", result.reason, "error")
        return result

    async def use_recipe(
        self, servings: int, force_use: bool = False
    ) -> RecipeUsed | Failed | None:
        """Submit the ``found-recipe`` servings; closes the session on success."""
        if self._state is not ScanState.FOUND_RECIPE or self.recipe is None:
            return None
        if self.busy or servings <= 0:
            return None

        recipe = self.recipe
        result = await self._commit(
            self._recorder.use_recipe(
                recipe, self.kitchen_id, servings, force_use=force_use
            )
        )
        if result is None:
            return None

        if isinstance(result, RecipeUsed):
            self._notify("Recipe Used", f"{recipe.name} for {servings} servings")
            await self.close()
        elif result.insufficient:
            self._notify("Insufficient Ingredients", result.reason, "error")
        else:
            self._notify("Error", result.reason, "error")
        return result

    # ── Internals ───────────────────────────────────────────

    def _begin_lookup(self, code: str, source: Source) -> asyncio.Task:
        self.last_code = code
        self.source = source
        self._set_state(ScanState.LOOKING_UP)
        self._lookup_task = asyncio.get_running_loop().create_task(
            self._lookup(code, source)
        )
        return self._lookup_task

    async def _lookup(self, code: str, source: Source) -> None:
        try:
            if source is Source.CAMERA:
                await self._stop_camera()

            result = await self._pipeline.resolve(code, self.kitchen_id)

            match result:
                case SupplyMatch(supply=supply):
                    if source is Source.CAMERA:
                        await self._auto_record(supply)
                    else:
                        self._show_supply(supply)
                case RecipeMatch(recipe=recipe):
                    self._set_resolved(recipe=recipe)
                    self._set_state(ScanState.FOUND_RECIPE)
                case NotFound(error=error):
                    self._set_resolved()
                    self._set_state(ScanState.NOT_FOUND)
                    if error:
                        self._notify("Error", f"Lookup failed: {error}", "error")
                    else:
                        self._notify(
                            "Not Found", f"No item or recipe matches {code}", "error"
                        )
        finally:
            if self._lookup_task is asyncio.current_task():
                self._lookup_task = None

    async def _auto_record(self, supply: Supply) -> None:
        self._set_resolved(supply=supply)
        self._set_state(ScanState.AUTO_RECORDING)

        self._processing = True
        try:
            result = await self._recorder.auto_record(supply)
        finally:
            self._processing = False

        if isinstance(result, Recorded):
            self.remaining = result.remaining
            self._set_state(ScanState.RECORDED)
            self._notify(
                "Consumption Recorded",
                f"1 {supply.unit} of {supply.name}, "
                f"{_fmt(result.remaining)} {supply.unit} left",
            )
        else:
            # Keep the supply and let the user confirm by hand
            self.form_quantity = 1
            self._set_state(ScanState.FOUND_SUPPLY)
            self._notify("Error", result.reason, "error")

    def _show_supply(self, supply: Supply) -> None:
        self._set_resolved(supply=supply)
        self.form_quantity = 1
        self._set_state(ScanState.FOUND_SUPPLY)

    def _set_resolved(
        self, supply: Supply | None = None, recipe: Recipe | None = None
    ) -> None:
        if supply is not None and recipe is not None:
            raise ValueError("A session resolves to a supply or a recipe, not both")
        self.supply = supply
        self.recipe = recipe

    def _schedule_camera_start(self, delay: float) -> asyncio.Task:
        if self._camera_task is not None and not self._camera_task.done():
            self._camera_task.cancel()
        self._camera_task = asyncio.get_running_loop().create_task(
            self._start_camera(delay)
        )
        return self._camera_task

    async def _start_camera(self, delay: float) -> None:
        if delay > 0:
            await asyncio.sleep(delay)
        self.camera_error = None
        try:
            await self._camera.start(self.on_decode, self._on_frame_error)
        except CameraError as e:
            logger.warning("Camera unavailable (%s): %s", e.kind, e.message)
            self.camera_error = e
        self._changed()

    async def _stop_camera(self) -> None:
        task, self._camera_task = self._camera_task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        await self._camera.stop()

    async def _commit(self, coro: Coroutine[Any, Any, _R]) -> _R | None:
        """Run a user-confirmed commit as a task that reset and close cancel.

        Returns None when the session was reset or closed before the result
        arrived; the result then belongs to nobody and is dropped.
        """
        task = asyncio.get_running_loop().create_task(coro)
        self._commit_task = task
        try:
            await asyncio.gather(task, return_exceptions=True)
        finally:
            stale = self._commit_task is not task
            if not stale:
                self._commit_task = None

        if stale or task.cancelled():
            logger.info("Dropped a commit result for a reset session")
            return None
        return task.result()

    async def _cancel_pending(self) -> None:
        lookup, self._lookup_task = self._lookup_task, None
        commit, self._commit_task = self._commit_task, None
        for task in (lookup, commit):
            if task is not None and task is not asyncio.current_task():
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)
        self._processing = False

    def _clear(self) -> None:
        self._set_resolved()
        self.source = None
        self.last_code = ""
        self.camera_error = None
        self.form_quantity = 1
        self.remaining = None
        self._buffer.reset()

    def _on_frame_error(self, message: str) -> None:
        logger.debug("Frame error: %s", message)

    def _set_state(self, state: ScanState) -> None:
        if state is not self._state:
            logger.debug("State %s -> %s", self._state.value, state.value)
        self._state = state
        self._changed()

    def _changed(self) -> None:
        if self._on_change is not None:
            self._on_change(self)

    def _notify(self, title: str, message: str, level: str = "info") -> None:
        if self._on_notify is not None:
            self._on_notify(Notification(title, message, level))


def _fmt(quantity: float) -> str:
    return f"{quantity:g}"

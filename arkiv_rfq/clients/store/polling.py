import asyncio
import copy
import inspect
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

from arkiv_rfq.clients.store.base_store import DeletedCallback, EntityCallback
from arkiv_rfq.models.store_models import Entity
from arkiv_rfq.utils.logger import LogArgs, get_logger

Snapshot = Dict[str, Tuple[int, dict]]

logger = get_logger(__name__)


def take_snapshot(entities: List[Entity]) -> Snapshot:
    return {
        entity.entity_key: (entity.timestamp, copy.deepcopy(entity.data))
        for entity in entities
    }


async def _call(callback: Callable, *args) -> None:
    result = callback(*args)
    if inspect.isawaitable(result):
        await result


class PollingWatcher:
    """
    Repeatedly fetches the watched records and reports differences between
    consecutive snapshots as created / updated / deleted notifications.

    When no baseline is given the first poll only records the current state.
    """

    def __init__(
        self,
        fetch: Callable[[], Awaitable[List[Entity]]],
        polling_interval: int,
        on_created: Optional[EntityCallback] = None,
        on_updated: Optional[EntityCallback] = None,
        on_deleted: Optional[DeletedCallback] = None,
        baseline: Optional[Snapshot] = None,
        name: str = 'watcher',
    ):
        self.fetch = fetch
        self.polling_interval = polling_interval
        self.on_created = on_created
        self.on_updated = on_updated
        self.on_deleted = on_deleted
        self.name = name
        self.active = False
        self._snapshot = baseline
        self._task: Optional[asyncio.Task] = None
        self._lock = asyncio.Lock()

    def start(self) -> None:
        """Schedule the polling loop on the running event loop."""
        loop = asyncio.get_running_loop()
        self.active = True
        self._task = loop.create_task(self._run())

    def stop(self) -> None:
        if not self.active:
            return
        self.active = False
        if self._task and not self._task.done():
            self._task.cancel()
        self._task = None

    async def _run(self) -> None:
        prime = self._snapshot is None
        while self.active:
            if not prime:
                await asyncio.sleep(self.polling_interval / 1000)
            prime = False
            if not self.active:
                break
            try:
                await self.poll()
            except Exception:
                # the next tick retries the fetch
                logger.exception(
                    f'{self.name}: polling failed',
                    extra={LogArgs.polling_interval: self.polling_interval},
                )

    async def poll(self) -> None:
        async with self._lock:
            entities = await self.fetch()
            current = take_snapshot(entities)
            previous, self._snapshot = self._snapshot, current
            if previous is None:
                return

            for entity in entities:
                if not self.active:
                    return
                seen = previous.get(entity.entity_key)
                if seen is None:
                    await self._notify(self.on_created, entity)
                elif seen != current[entity.entity_key]:
                    await self._notify(self.on_updated, entity)

            for key in previous.keys() - current.keys():
                if not self.active:
                    return
                await self._notify(self.on_deleted, key)

    async def _notify(self, callback: Optional[Callable], arg) -> None:
        if callback is None:
            return
        try:
            await _call(callback, arg)
        except Exception:
            logger.exception(
                f'{self.name}: change handler failed',
                extra={LogArgs.entity_key: getattr(arg, 'entity_key', arg)},
            )

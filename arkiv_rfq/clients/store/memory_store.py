import copy
from time import time
from typing import Any, Dict, List, Optional, Tuple

from arkiv_rfq.clients.store.base_store import (
    BaseEntityStore,
    DeletedCallback,
    EntityCallback,
    Unsubscribe,
)
from arkiv_rfq.clients.store.polling import PollingWatcher, take_snapshot
from arkiv_rfq.models.store_models import Entity, QueryResponse, SortSpec
from arkiv_rfq.utils.common import get_nested_value
from arkiv_rfq.utils.logger import LogArgs, get_logger

DEFAULT_LIMIT = 50

logger = get_logger(__name__)


def matches_filters(data: Dict[str, Any], filters: Optional[Dict[str, Any]]) -> bool:
    if not filters:
        return True

    for key, expected in filters.items():
        if key == '$or':
            if not any(matches_filters(data, condition) for condition in expected):
                return False
            continue

        value = get_nested_value(data, key)
        if isinstance(expected, dict):
            if '$gte' in expected and (value is None or value < expected['$gte']):
                return False
            if '$lte' in expected and (value is None or value > expected['$lte']):
                return False
        elif value != expected:
            return False
    return True


class InMemoryEntityStore(BaseEntityStore):
    """
    Process local store implementing the full entity store contract.
    Useful for tests and for running the client without a remote store.
    Cursors are stringified offsets into the sorted result.
    """

    STORE_NAME = 'memory'

    def __init__(self):
        self._entities: Dict[Tuple[str, str], Entity] = {}
        self._watchers: List[PollingWatcher] = []

    def __len__(self) -> int:
        return len(self._entities)

    def count(self, entity_type: Optional[str] = None) -> int:
        if entity_type is None:
            return len(self._entities)
        return sum(1 for type_, _ in self._entities if type_ == entity_type)

    def clear(self) -> None:
        self._entities.clear()
        for watcher in list(self._watchers):
            watcher.stop()
        self._watchers.clear()

    async def write_entity(
        self,
        entity_type: str,
        key: str,
        data: Dict[str, Any],
        signature: Optional[str] = None,
    ) -> Entity:
        entity = Entity(
            entity_key=key,
            data=copy.deepcopy(data),
            timestamp=int(time() * 1000),
            signature=signature,
        )
        self._entities[(entity_type, key)] = entity
        logger.debug(
            f'Stored {entity_type} {key}',
            extra={LogArgs.entity_type: entity_type, LogArgs.entity_key: key},
        )
        return entity.model_copy(deep=True)

    async def get_entity(self, entity_type: str, key: str) -> Optional[Entity]:
        entity = self._entities.get((entity_type, key))
        return entity.model_copy(deep=True) if entity else None

    async def delete_entity(self, entity_type: str, key: str) -> None:
        self._entities.pop((entity_type, key), None)

    def _select(self, entity_type: str, filters: Optional[Dict[str, Any]]) -> List[Entity]:
        return [
            entity.model_copy(deep=True)
            for (type_, _), entity in self._entities.items()
            if type_ == entity_type and matches_filters(entity.data, filters)
        ]

    async def query_entities(
        self,
        entity_type: str,
        filters: Optional[Dict[str, Any]] = None,
        sort: Optional[SortSpec] = None,
        limit: Optional[int] = None,
        cursor: Optional[str] = None,
    ) -> QueryResponse:
        entities = self._select(entity_type, filters)
        if sort:
            present = [e for e in entities if get_nested_value(e.data, sort.field) is not None]
            missing = [e for e in entities if get_nested_value(e.data, sort.field) is None]
            present.sort(key=lambda e: get_nested_value(e.data, sort.field), reverse=sort.order == 'desc')
            entities = present + missing

        limit = limit or DEFAULT_LIMIT
        offset = int(cursor) if cursor else 0
        page = entities[offset:offset + limit]
        next_offset = offset + limit
        return QueryResponse(
            entities=page,
            total=len(entities),
            next_cursor=str(next_offset) if next_offset < len(entities) else None,
        )

    def watch_entities(
        self,
        entity_type: str,
        filters: Optional[Dict[str, Any]] = None,
        polling_interval: int = 2000,
        on_created: Optional[EntityCallback] = None,
        on_updated: Optional[EntityCallback] = None,
        on_deleted: Optional[DeletedCallback] = None,
    ) -> Unsubscribe:
        async def fetch() -> List[Entity]:
            return self._select(entity_type, filters)

        watcher = PollingWatcher(
            fetch,
            polling_interval,
            on_created=on_created,
            on_updated=on_updated,
            on_deleted=on_deleted,
            baseline=take_snapshot(self._select(entity_type, filters)),
            name=f'{self.STORE_NAME}:{entity_type}',
        )
        watcher.start()
        self._watchers.append(watcher)

        def unsubscribe() -> None:
            watcher.stop()
            if watcher in self._watchers:
                self._watchers.remove(watcher)

        return unsubscribe

    @property
    def watcher_count(self) -> int:
        return len(self._watchers)

    async def poll_watchers(self) -> None:
        """Run one polling round on every active watcher without waiting for the interval."""
        for watcher in list(self._watchers):
            await watcher.poll()

from abc import abstractmethod
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from arkiv_rfq.models.store_models import Entity, QueryResponse, SortSpec

EntityCallback = Callable[[Entity], Union[None, Awaitable[None]]]
DeletedCallback = Callable[[str], Union[None, Awaitable[None]]]
Unsubscribe = Callable[[], None]


class BaseEntityStore:
    """
    Keyed record store consumed by the RFQ client.

    Filters are a dict of dotted field paths to either a value (equality) or
    an operator dict with `$gte` / `$lte`. The special `$or` key holds a list
    of filter dicts, at least one of which has to match.
    """

    STORE_NAME = 'base_store'

    @abstractmethod
    async def write_entity(
        self,
        entity_type: str,
        key: str,
        data: Dict[str, Any],
        signature: Optional[str] = None,
    ) -> Entity:
        """
        Create or replace the record stored under (entity_type, key).
        Returns:
            The stored Entity as the store sees it after the write.
        """

    @abstractmethod
    async def get_entity(self, entity_type: str, key: str) -> Optional[Entity]:
        """Returns None when nothing is stored under the key."""

    @abstractmethod
    async def delete_entity(self, entity_type: str, key: str) -> None:
        ...

    @abstractmethod
    async def query_entities(
        self,
        entity_type: str,
        filters: Optional[Dict[str, Any]] = None,
        sort: Optional[SortSpec] = None,
        limit: Optional[int] = None,
        cursor: Optional[str] = None,
    ) -> QueryResponse:
        """
        Args:
            entity_type:str: record type to search
            filters:Optional[dict]: predicates, see class docstring
            sort:Optional[SortSpec]: dotted field and direction
            limit:Optional[int]: page size
            cursor:Optional[str]: opaque token from a previous QueryResponse.next_cursor

        Returns:
            QueryResponse with the page, the total match count and the next cursor if there are more.
        """

    @abstractmethod
    def watch_entities(
        self,
        entity_type: str,
        filters: Optional[Dict[str, Any]] = None,
        polling_interval: int = 2000,
        on_created: Optional[EntityCallback] = None,
        on_updated: Optional[EntityCallback] = None,
        on_deleted: Optional[DeletedCallback] = None,
    ) -> Unsubscribe:
        """
        Start notifying about records matching `filters` every `polling_interval` ms.
        Only changes after the call are reported. Calling the returned function stops it.
        """

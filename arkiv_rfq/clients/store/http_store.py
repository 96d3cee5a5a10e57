from typing import Any, Dict, List, Optional, Union

import aiohttp
import ujson
from aiohttp import ClientResponse, ClientResponseError
from yarl import URL

from arkiv_rfq.clients.store.base_store import (
    BaseEntityStore,
    DeletedCallback,
    EntityCallback,
    Unsubscribe,
)
from arkiv_rfq.clients.store.polling import PollingWatcher
from arkiv_rfq.config import Config
from arkiv_rfq.models.store_models import Entity, QueryResponse, SortSpec
from arkiv_rfq.utils.logger import LogArgs, get_logger

WATCH_PAGE_LIMIT = 200

logger = get_logger(__name__)


class HttpEntityStore(BaseEntityStore):
    """
    Entity store reached over HTTP.

    URL structures:
        Record:  {store_url}/entities/{entity_type}/{key}          PUT / GET / DELETE
        Query:   {store_url}/entities/{entity_type}/query          POST
    """

    STORE_NAME = 'http'

    def __init__(self, *, config: Config, session: aiohttp.ClientSession):
        self.config = config
        self.session = session
        self.base_url = URL(config.STORE_URL)
        self.request_timeout = aiohttp.ClientTimeout(total=config.STORE_TIMEOUT)

    def _entity_url(self, entity_type: str, key: Optional[str] = None) -> URL:
        url = self.base_url / 'entities' / entity_type
        if key is not None:
            url = url / key
        return url

    def _headers(self) -> Dict[str, str]:
        headers = {'Content-Type': 'application/json'}
        if self.config.STORE_API_KEY:
            headers['Authorization'] = 'Bearer ' + self.config.STORE_API_KEY
        return headers

    async def get_response(
        self,
        url: URL,
        method: str = 'GET',
        body: Optional[Dict] = None,
    ) -> Union[List, Dict]:
        request_function = getattr(self.session, method.lower())
        async with request_function(
            str(url),
            timeout=self.request_timeout,
            data=ujson.dumps(body) if body is not None else None,
            headers=self._headers(),
        ) as response:
            response: ClientResponse
            logger.debug(f'Request {method} {response.url}')
            data = await response.read()
            try:
                response.raise_for_status()
            except ClientResponseError as e:
                # Fix bug with HTTP status code 0.
                status = 500 if e.status not in range(100, 600) else e.status
                raise ClientResponseError(
                    request_info=e.request_info,
                    history=e.history,
                    status=status,
                    message=f'{status} {e.message}: {data.decode(errors="replace")[:200]}',
                    headers=e.headers,
                )
            if not data:
                return {}
            return ujson.loads(data)

    async def write_entity(
        self,
        entity_type: str,
        key: str,
        data: Dict[str, Any],
        signature: Optional[str] = None,
    ) -> Entity:
        url = self._entity_url(entity_type, key)
        response = await self.get_response(
            url, method='PUT', body={'data': data, 'signature': signature}
        )
        return Entity.model_validate(response)

    async def get_entity(self, entity_type: str, key: str) -> Optional[Entity]:
        url = self._entity_url(entity_type, key)
        try:
            response = await self.get_response(url)
        except ClientResponseError as e:
            if e.status == 404:
                return None
            raise
        return Entity.model_validate(response)

    async def delete_entity(self, entity_type: str, key: str) -> None:
        await self.get_response(self._entity_url(entity_type, key), method='DELETE')

    async def query_entities(
        self,
        entity_type: str,
        filters: Optional[Dict[str, Any]] = None,
        sort: Optional[SortSpec] = None,
        limit: Optional[int] = None,
        cursor: Optional[str] = None,
    ) -> QueryResponse:
        body = {'filters': filters or {}}
        if sort:
            body['sort'] = sort.model_dump()
        if limit:
            body['limit'] = limit
        if cursor:
            body['cursor'] = cursor
        url = self._entity_url(entity_type) / 'query'
        response = await self.get_response(url, method='POST', body=body)
        return QueryResponse.model_validate(response)

    async def _fetch_all(self, entity_type: str, filters: Optional[Dict[str, Any]]) -> List[Entity]:
        entities = []
        cursor = None
        while True:
            page = await self.query_entities(
                entity_type, filters=filters, limit=WATCH_PAGE_LIMIT, cursor=cursor
            )
            entities.extend(page.entities)
            cursor = page.next_cursor
            if not cursor:
                return entities

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
            return await self._fetch_all(entity_type, filters)

        # no baseline: the first poll records what already exists
        watcher = PollingWatcher(
            fetch,
            polling_interval,
            on_created=on_created,
            on_updated=on_updated,
            on_deleted=on_deleted,
            name=f'{self.STORE_NAME}:{entity_type}',
        )
        watcher.start()
        logger.info(
            f'Watching {entity_type} entities at {self.base_url}',
            extra={LogArgs.entity_type: entity_type, LogArgs.polling_interval: polling_interval},
        )
        return watcher.stop

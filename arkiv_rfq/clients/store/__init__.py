from typing import Optional

import aiohttp

from arkiv_rfq.clients.store.base_store import BaseEntityStore
from arkiv_rfq.clients.store.http_store import HttpEntityStore
from arkiv_rfq.clients.store.memory_store import InMemoryEntityStore
from arkiv_rfq.config import Config


def build_store(config: Config, session: Optional[aiohttp.ClientSession] = None) -> BaseEntityStore:
    if config.STORE_BACKEND == InMemoryEntityStore.STORE_NAME:
        return InMemoryEntityStore()
    if config.STORE_BACKEND == HttpEntityStore.STORE_NAME:
        if session is None:
            raise ValueError('aiohttp session is required for the http store')
        return HttpEntityStore(config=config, session=session)
    raise ValueError(f'Unknown store backend {config.STORE_BACKEND}')

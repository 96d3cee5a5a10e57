import inspect
from enum import Enum
from typing import Awaitable, Callable, Optional, Union

from arkiv_rfq.clients.store.base_store import BaseEntityStore, Unsubscribe
from arkiv_rfq.config import Config
from arkiv_rfq.models.rfq_models import RFQ, QueryFilters, RFQStatus
from arkiv_rfq.models.store_models import Entity
from arkiv_rfq.services.mapping import entity_to_rfq
from arkiv_rfq.services.query_translator import build_store_filters
from arkiv_rfq.utils.errors import NetworkError
from arkiv_rfq.utils.logger import LogArgs, get_logger

RFQHandler = Callable[[RFQ], Union[None, Awaitable[None]]]
DeletedHandler = Callable[[str], Union[None, Awaitable[None]]]

logger = get_logger(__name__)


class RFQEvent(str, Enum):
    CREATED = 'created'
    UPDATED = 'updated'
    CANCELLED = 'cancelled'
    FILLED = 'filled'
    DELETED = 'deleted'


def classify_update(rfq: RFQ) -> RFQEvent:
    if rfq.status == RFQStatus.CANCELLED:
        return RFQEvent.CANCELLED
    if rfq.status == RFQStatus.FILLED:
        return RFQEvent.FILLED
    return RFQEvent.UPDATED


class Subscription:
    """Handle returned by `ChangeFeed.watch`. Calling it or `unsubscribe()` stops delivery."""

    def __init__(self, unsubscribe: Unsubscribe):
        self._unsubscribe = unsubscribe
        self.active = True

    def unsubscribe(self) -> None:
        if not self.active:
            return
        self.active = False
        self._unsubscribe()

    __call__ = unsubscribe


class ChangeFeed:
    def __init__(self, *, store: BaseEntityStore, config: Config):
        self.store = store
        self.config = config
        self.entity_type = config.RFQ_ENTITY_TYPE

    def watch(
        self,
        *,
        on_created: Optional[RFQHandler] = None,
        on_updated: Optional[RFQHandler] = None,
        on_cancelled: Optional[RFQHandler] = None,
        on_filled: Optional[RFQHandler] = None,
        on_deleted: Optional[DeletedHandler] = None,
        polling_interval: Optional[int] = None,
        filters: Optional[QueryFilters] = None,
    ) -> Subscription:
        """
        Subscribe to RFQ changes observed by the store.

        Args:
            on_created: new OPEN RFQs
            on_updated: changed RFQs not claimed by on_cancelled / on_filled
            on_cancelled: RFQs whose current status is CANCELLED
            on_filled: RFQs whose current status is FILLED
            on_deleted: ids of RFQs removed from the store
            polling_interval: ms between store polls, WATCH_POLLING_INTERVAL_MS by default
            filters: restrict the feed like query_rfqs does

        Returns:
            Subscription. Handlers may be plain functions or coroutine functions.
        """
        polling_interval = polling_interval or self.config.WATCH_POLLING_INTERVAL_MS
        handlers = {
            RFQEvent.CREATED: on_created,
            RFQEvent.UPDATED: on_updated,
            RFQEvent.CANCELLED: on_cancelled,
            RFQEvent.FILLED: on_filled,
            RFQEvent.DELETED: on_deleted,
        }
        subscription: Optional[Subscription] = None

        async def dispatch(event: RFQEvent, payload) -> None:
            handler = handlers[event]
            if handler is None or subscription is None or not subscription.active:
                return
            result = handler(payload)
            if inspect.isawaitable(result):
                await result

        async def created(entity: Entity) -> None:
            rfq = entity_to_rfq(entity)
            if rfq.status == RFQStatus.OPEN:
                await dispatch(RFQEvent.CREATED, rfq)

        async def updated(entity: Entity) -> None:
            rfq = entity_to_rfq(entity)
            event = classify_update(rfq)
            if handlers[event] is None:
                event = RFQEvent.UPDATED
            await dispatch(event, rfq)

        async def deleted(entity_key: str) -> None:
            await dispatch(RFQEvent.DELETED, entity_key)

        wants_updates = any((on_updated, on_cancelled, on_filled))
        try:
            unsubscribe = self.store.watch_entities(
                entity_type=self.entity_type,
                filters=build_store_filters(filters),
                polling_interval=polling_interval,
                on_created=created if on_created else None,
                on_updated=updated if wants_updates else None,
                on_deleted=deleted if on_deleted else None,
            )
        except Exception as e:
            raise NetworkError('Failed to start watching RFQs', cause=e) from e

        subscription = Subscription(unsubscribe)
        logger.info(
            'Watching RFQs',
            extra={
                LogArgs.entity_type: self.entity_type,
                LogArgs.polling_interval: polling_interval,
            },
        )
        return subscription

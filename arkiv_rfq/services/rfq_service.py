from typing import Callable, Optional, Union

import pydantic

from arkiv_rfq.clients.apm_client import ApmClient
from arkiv_rfq.clients.signer import Signer, recover_payload_signer
from arkiv_rfq.clients.store.base_store import BaseEntityStore
from arkiv_rfq.config import Config
from arkiv_rfq.models.rfq_models import (
    RFQ,
    CreateRFQInput,
    PaginationOptions,
    QueryFilters,
    QueryResult,
    RFQStatus,
    SortOptions,
    UpdateRFQInput,
)
from arkiv_rfq.services import query_translator
from arkiv_rfq.services.change_feed import ChangeFeed, Subscription
from arkiv_rfq.services.mapping import entity_to_rfq, rfq_to_entity_data
from arkiv_rfq.utils.common import generate_rfq_id, now, serialize_payload
from arkiv_rfq.utils.errors import (
    NetworkError,
    OwnershipError,
    RFQNotFoundError,
    SignatureError,
    ValidationError,
)
from arkiv_rfq.utils.logger import LogArgs, get_logger
from arkiv_rfq.utils.retry import RetryPolicy, with_retry
from arkiv_rfq.utils.validation import (
    validate_amount,
    validate_create_rfq_input,
    validate_expiration,
    validate_rfq_id,
)

logger = get_logger(__name__)


def _parse_input(model, data, name: str):
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except pydantic.ValidationError as e:
        raise ValidationError(f'{name} is malformed: {e}')


class RFQService:
    """
    Lifecycle of RFQ records in an entity store.

    Every mutation is attributed to the configured signer, gated on the signer
    being the creator of an OPEN record, and signed over the full record
    that gets written. All store round-trips go through `with_retry`.
    """

    def __init__(
        self,
        *,
        store: BaseEntityStore,
        config: Config,
        signer: Optional[Signer] = None,
        apm_client: Optional[ApmClient] = None,
        retry_policy: Optional[RetryPolicy] = None,
        clock: Callable[[], int] = now,
    ):
        self.store = store
        self.config = config
        self.signer = signer
        self.apm_client = apm_client
        self.retry_policy = retry_policy or RetryPolicy.from_config(config)
        self.clock = clock
        self.entity_type = config.RFQ_ENTITY_TYPE
        self.change_feed = ChangeFeed(store=store, config=config)

    def with_signer(self, signer: Optional[Signer]) -> 'RFQService':
        """Service sharing this one's store and settings but acting as another wallet."""
        return RFQService(
            store=self.store,
            config=self.config,
            signer=signer,
            apm_client=self.apm_client,
            retry_policy=self.retry_policy,
            clock=self.clock,
        )

    async def _get_signer_address(self) -> str:
        if not self.signer:
            raise SignatureError('No signer configured')
        try:
            return await self.signer.get_address()
        except Exception as e:
            raise SignatureError('Failed to get signer address', cause=e)

    async def _sign(self, data: dict) -> str:
        if not self.signer:
            raise SignatureError('No signer configured')
        try:
            return await self.signer.sign_payload(serialize_payload(data))
        except Exception as e:
            raise SignatureError('Failed to sign RFQ data', cause=e)

    async def _call_store(self, operation: str, fn):
        try:
            return await with_retry(fn, self.retry_policy, operation=operation)
        except NetworkError:
            if self.apm_client:
                self.apm_client.capture_exception()
            raise

    async def _write(self, rfq: RFQ, operation: str) -> RFQ:
        data = rfq_to_entity_data(rfq)
        signature = await self._sign(data)
        entity = await self._call_store(
            operation,
            lambda: self.store.write_entity(
                entity_type=self.entity_type,
                key=rfq.id,
                data=data,
                signature=signature,
            ),
        )
        return entity_to_rfq(entity)

    async def create_rfq(self, rfq_input: Union[CreateRFQInput, dict]) -> RFQ:
        rfq_input = _parse_input(CreateRFQInput, rfq_input, 'RFQ input')
        timestamp = self.clock()
        validate_create_rfq_input(
            rfq_input, now=timestamp, max_seconds=self.config.MAX_EXPIRATION_SECONDS
        )

        creator = (await self._get_signer_address()).lower()
        rfq = RFQ(
            id=generate_rfq_id(creator, timestamp),
            creator=creator,
            base_token=rfq_input.base_token,
            quote_token=rfq_input.quote_token,
            base_amount=rfq_input.base_amount,
            quote_amount=rfq_input.quote_amount,
            expires_in=rfq_input.expires_in,
            status=RFQStatus.OPEN,
            created_at=timestamp,
            updated_at=timestamp,
            filled_amount='0',
            fills=[],
            min_fill_amount=rfq_input.min_fill_amount,
            counterparty_restrictions=rfq_input.counterparty_restrictions,
        )
        logger.info(
            f'Creating RFQ {rfq.id}',
            extra={LogArgs.rfq_id: rfq.id, LogArgs.creator: creator},
        )
        return await self._write(rfq, 'create RFQ')

    async def get_rfq(self, rfq_id: str) -> Optional[RFQ]:
        validate_rfq_id(rfq_id)
        entity = await self._call_store(
            'get RFQ',
            lambda: self.store.get_entity(self.entity_type, rfq_id),
        )
        return entity_to_rfq(entity) if entity else None

    async def _get_owned(self, rfq_id: str, signer_address: str, action: str) -> RFQ:
        existing = await self.get_rfq(rfq_id)
        if not existing:
            raise RFQNotFoundError(rfq_id)
        if existing.creator.lower() != signer_address.lower():
            error = OwnershipError(f'Only the RFQ creator can {action} this RFQ', rfq_id=rfq_id)
            logger.warning(*error.to_log_args(), extra={**error.to_dict(), LogArgs.signer: signer_address})
            raise error
        return existing

    async def update_rfq(self, rfq_id: str, updates: Union[UpdateRFQInput, dict]) -> RFQ:
        validate_rfq_id(rfq_id)
        updates = _parse_input(UpdateRFQInput, updates, 'RFQ update')
        if updates.base_amount is not None:
            validate_amount(updates.base_amount, 'baseAmount')
        if updates.quote_amount is not None:
            validate_amount(updates.quote_amount, 'quoteAmount')
        if updates.expires_in is not None:
            validate_expiration(
                updates.expires_in,
                now=self.clock(),
                max_seconds=self.config.MAX_EXPIRATION_SECONDS,
            )

        signer_address = await self._get_signer_address()
        existing = await self._get_owned(rfq_id, signer_address, 'update')
        if not existing.is_open:
            raise OwnershipError(
                f'Cannot update a non-open RFQ (status {existing.status.value})',
                rfq_id=rfq_id,
            )

        merged = RFQ.model_validate({
            **existing.model_dump(),
            **updates.model_dump(exclude_none=True),
            # seconds resolution, every write must move updatedAt forward
            'updated_at': max(self.clock(), existing.updated_at + 1),
        })
        logger.info(
            f'Updating RFQ {rfq_id}',
            extra={LogArgs.rfq_id: rfq_id, LogArgs.status: merged.status.value},
        )
        return await self._write(merged, 'update RFQ')

    async def cancel_rfq(self, rfq_id: str) -> RFQ:
        return await self.update_rfq(rfq_id, UpdateRFQInput(status=RFQStatus.CANCELLED))

    async def delete_rfq(self, rfq_id: str) -> None:
        validate_rfq_id(rfq_id)
        signer_address = await self._get_signer_address()
        await self._get_owned(rfq_id, signer_address, 'delete')
        logger.info(f'Deleting RFQ {rfq_id}', extra={LogArgs.rfq_id: rfq_id})
        await self._call_store(
            'delete RFQ',
            lambda: self.store.delete_entity(self.entity_type, rfq_id),
        )

    async def query_rfqs(
        self,
        filters: Optional[QueryFilters] = None,
        sort: Optional[SortOptions] = None,
        pagination: Optional[PaginationOptions] = None,
    ) -> QueryResult:
        store_filters = query_translator.build_store_filters(filters)
        store_sort = query_translator.build_store_sort(sort)
        limit = (pagination.limit if pagination else None) or self.config.DEFAULT_PAGE_LIMIT
        cursor = pagination.cursor if pagination else None

        response = await self._call_store(
            'query RFQs',
            lambda: self.store.query_entities(
                entity_type=self.entity_type,
                filters=store_filters,
                sort=store_sort,
                limit=limit,
                cursor=cursor,
            ),
        )
        rfqs = [entity_to_rfq(entity) for entity in response.entities]
        logger.debug(
            f'Queried {len(rfqs)} RFQs',
            extra={LogArgs.filters: store_filters, LogArgs.total: response.total},
        )
        return QueryResult(
            rfqs=rfqs,
            total=response.total,
            has_more=response.next_cursor is not None,
            next_cursor=response.next_cursor,
        )

    def watch_rfqs(self, **options) -> Subscription:
        """See ChangeFeed.watch for the accepted handlers and options."""
        return self.change_feed.watch(**options)

    def verify_rfq_signature(self, rfq: RFQ, signature: str) -> bool:
        """Check that `signature` over the stored record was produced by its creator."""
        try:
            signer = recover_payload_signer(serialize_payload(rfq_to_entity_data(rfq)), signature)
        except Exception as e:
            raise SignatureError('Cannot recover signer', cause=e)
        return signer.lower() == rfq.creator.lower()

    filter_by_token_pair = staticmethod(query_translator.filter_by_token_pair)
    filter_by_chain = staticmethod(query_translator.filter_by_chain)
    filter_by_price_range = staticmethod(query_translator.filter_by_price_range)
    filter_by_creator = staticmethod(query_translator.filter_by_creator)
    filter_by_expiration = staticmethod(query_translator.filter_by_expiration)

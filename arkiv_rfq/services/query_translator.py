from typing import Any, Dict, Optional

from arkiv_rfq.models.rfq_models import (
    ExpirationFilter,
    PriceRangeFilter,
    QueryFilters,
    SortBy,
    SortOptions,
    TokenInfo,
    TokenPairFilter,
)
from arkiv_rfq.models.store_models import SortSpec
from arkiv_rfq.utils.errors import ValidationError
from arkiv_rfq.utils.logger import LogArgs, get_logger
from arkiv_rfq.utils.validation import validate_address

# BEST_PRICE has no stored price field to sort on and falls back to recency
SORT_FIELDS = {
    SortBy.CREATION_TIME: 'createdAt',
    SortBy.EXPIRATION: 'expiresIn',
    SortBy.BEST_PRICE: 'createdAt',
}
DEFAULT_SORT = SortSpec(field='createdAt', order='desc')

logger = get_logger(__name__)


def build_store_filters(filters: Optional[QueryFilters]) -> Dict[str, Any]:
    if not filters:
        return {}

    store_filters: Dict[str, Any] = {}

    if filters.token_pair:
        store_filters['baseToken.address'] = filters.token_pair.base.address
        store_filters['baseToken.chainId'] = filters.token_pair.base.chain_id
        store_filters['quoteToken.address'] = filters.token_pair.quote.address
        store_filters['quoteToken.chainId'] = filters.token_pair.quote.chain_id

    if filters.chain is not None:
        store_filters['$or'] = [
            {'baseToken.chainId': filters.chain},
            {'quoteToken.chainId': filters.chain},
        ]

    if filters.creator:
        store_filters['creator'] = filters.creator.lower()

    if filters.expiration:
        store_filters['expiresIn'] = {
            '$gte': filters.expiration.min_time,
            '$lte': filters.expiration.max_time,
        }

    if filters.status:
        store_filters['status'] = filters.status.value

    if filters.price_range:
        # the store has no quote/base ratio field to compare against
        logger.debug(
            'Price range filter is not applied',
            extra={LogArgs.filters: filters.price_range.model_dump()},
        )

    return store_filters


def build_store_sort(sort: Optional[SortOptions]) -> SortSpec:
    if not sort:
        return DEFAULT_SORT
    return SortSpec(
        field=SORT_FIELDS.get(sort.sort_by, DEFAULT_SORT.field),
        order='asc' if sort.ascending else 'desc',
    )


def filter_by_token_pair(
    base_address: str,
    base_chain_id: int,
    quote_address: str,
    quote_chain_id: int,
) -> QueryFilters:
    validate_address(base_address, 'baseAddress')
    validate_address(quote_address, 'quoteAddress')
    return QueryFilters(
        token_pair=TokenPairFilter(
            base=TokenInfo(address=base_address, chain_id=base_chain_id),
            quote=TokenInfo(address=quote_address, chain_id=quote_chain_id),
        )
    )


def filter_by_chain(chain_id: int) -> QueryFilters:
    if not isinstance(chain_id, int) or isinstance(chain_id, bool) or chain_id <= 0:
        raise ValidationError('chainId must be a positive integer')
    return QueryFilters(chain=chain_id)


def filter_by_price_range(min_price: float, max_price: float) -> QueryFilters:
    if min_price > max_price:
        raise ValidationError('price range min cannot be greater than max')
    return QueryFilters(price_range=PriceRangeFilter(min=min_price, max=max_price))


def filter_by_creator(address: str) -> QueryFilters:
    validate_address(address, 'creator')
    return QueryFilters(creator=address)


def filter_by_expiration(min_time: int, max_time: int) -> QueryFilters:
    if min_time > max_time:
        raise ValidationError('expiration minTime cannot be greater than maxTime')
    return QueryFilters(expiration=ExpirationFilter(min_time=min_time, max_time=max_time))


def merge_filters(*fragments: Optional[QueryFilters]) -> QueryFilters:
    """Combine filter fragments, later fragments win on the same field."""
    merged = {}
    for fragment in fragments:
        if fragment is None:
            continue
        merged.update(fragment.model_dump(exclude_none=True))
    return QueryFilters.model_validate(merged)

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Stored records use camelCase keys, python code uses snake_case attributes."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_camel_case_dict(self) -> dict:
        return self.model_dump(mode='json', by_alias=True, exclude_none=True)


class RFQStatus(str, Enum):
    OPEN = 'OPEN'
    FILLED = 'FILLED'
    CANCELLED = 'CANCELLED'


TERMINAL_STATUSES = frozenset({RFQStatus.FILLED, RFQStatus.CANCELLED})


class SortBy(str, Enum):
    CREATION_TIME = 'creationTime'
    EXPIRATION = 'expiration'
    BEST_PRICE = 'bestPrice'


class TokenInfo(CamelModel):
    address: str  # 0x-prefixed 20 byte hex, checksum agnostic
    chain_id: int


class Fill(CamelModel):
    acceptor: str
    amount: str
    timestamp: int
    tx_hash: str


class RFQ(CamelModel):
    id: str
    creator: str  # lower-cased address of the signer who created the RFQ
    base_token: TokenInfo
    quote_token: TokenInfo
    base_amount: str  # smallest-unit integer as a decimal string
    quote_amount: str
    expires_in: int  # unix seconds, advisory
    status: RFQStatus
    created_at: int
    updated_at: int

    # reserved for partial fills, not enforced
    filled_amount: Optional[str] = None
    fills: Optional[List[Fill]] = None
    min_fill_amount: Optional[str] = None
    counterparty_restrictions: Optional[List[str]] = None

    @property
    def is_open(self) -> bool:
        return self.status not in TERMINAL_STATUSES


class CreateRFQInput(CamelModel):
    base_token: TokenInfo = Field(..., description='Token offered by the creator')
    quote_token: TokenInfo = Field(..., description='Token requested in exchange')
    base_amount: str = Field(..., description='Offered amount in base token units')
    quote_amount: str = Field(..., description='Requested amount in quote token units')
    expires_in: int = Field(..., description='Unix timestamp after which the RFQ is stale')
    min_fill_amount: Optional[str] = Field(None, description='Smallest accepted partial fill')
    counterparty_restrictions: Optional[List[str]] = Field(
        None, description='Addresses allowed to accept the RFQ'
    )


class UpdateRFQInput(CamelModel):
    base_amount: Optional[str] = None
    quote_amount: Optional[str] = None
    expires_in: Optional[int] = None
    status: Optional[RFQStatus] = None
    filled_amount: Optional[str] = None
    fills: Optional[List[Fill]] = None


class TokenPairFilter(BaseModel):
    base: TokenInfo
    quote: TokenInfo


class PriceRangeFilter(BaseModel):
    min: float
    max: float


class ExpirationFilter(BaseModel):
    min_time: int
    max_time: int


class QueryFilters(BaseModel):
    token_pair: Optional[TokenPairFilter] = None
    chain: Optional[int] = None
    price_range: Optional[PriceRangeFilter] = None
    creator: Optional[str] = None
    expiration: Optional[ExpirationFilter] = None
    status: Optional[RFQStatus] = None


class SortOptions(BaseModel):
    sort_by: SortBy
    ascending: bool = False


class PaginationOptions(BaseModel):
    limit: Optional[int] = Field(None, gt=0)
    cursor: Optional[str] = None


class QueryResult(BaseModel):
    rfqs: List[RFQ]
    total: int
    has_more: bool
    next_cursor: Optional[str] = None

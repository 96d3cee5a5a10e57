from arkiv_rfq.clients.signer import EthAccountSigner, Signer, recover_payload_signer
from arkiv_rfq.clients.store import (
    BaseEntityStore,
    HttpEntityStore,
    InMemoryEntityStore,
    build_store,
)
from arkiv_rfq.models.rfq_models import (
    RFQ,
    CreateRFQInput,
    Fill,
    PaginationOptions,
    QueryFilters,
    QueryResult,
    RFQStatus,
    SortBy,
    SortOptions,
    TokenInfo,
    UpdateRFQInput,
)
from arkiv_rfq.services.change_feed import ChangeFeed, RFQEvent, Subscription
from arkiv_rfq.services.mapping import entity_to_rfq, rfq_to_entity_data
from arkiv_rfq.services.query_translator import (
    filter_by_chain,
    filter_by_creator,
    filter_by_expiration,
    filter_by_price_range,
    filter_by_token_pair,
    merge_filters,
)
from arkiv_rfq.services.rfq_service import RFQService
from arkiv_rfq.utils.errors import (
    BaseRFQError,
    NetworkError,
    OwnershipError,
    ParseEntityError,
    RFQNotFoundError,
    SignatureError,
    ValidationError,
)
from arkiv_rfq.utils.retry import DEFAULT_RETRY_POLICY, RetryPolicy, with_retry

import re
from typing import Callable, NamedTuple, Optional

from arkiv_rfq.config import config
from arkiv_rfq.models.rfq_models import CreateRFQInput, TokenInfo
from arkiv_rfq.utils.common import now as current_time
from arkiv_rfq.utils.errors import ValidationError

ADDRESS_RE = re.compile(r'0x[0-9a-fA-F]{40}')
AMOUNT_RE = re.compile(r'[0-9]+')


class ValidationResult(NamedTuple):
    ok: bool
    error: Optional[ValidationError] = None


def check(validator: Callable[..., None], *args, **kwargs) -> ValidationResult:
    """Run a validator and return its outcome instead of raising."""
    try:
        validator(*args, **kwargs)
    except ValidationError as e:
        return ValidationResult(ok=False, error=e)
    return ValidationResult(ok=True)


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def validate_address(address: str, field_name: str) -> None:
    if not address or not isinstance(address, str):
        raise ValidationError(f'{field_name} is required and must be a string')
    if not ADDRESS_RE.fullmatch(address):
        raise ValidationError(f'{field_name} must be a valid Ethereum address')


def validate_token_info(token: TokenInfo, field_name: str) -> None:
    if not isinstance(token, TokenInfo):
        raise ValidationError(f'{field_name} is required and must be a token')
    validate_address(token.address, f'{field_name}.address')
    if not _is_int(token.chain_id) or token.chain_id <= 0:
        raise ValidationError(f'{field_name}.chainId must be a positive integer')


def validate_amount(amount: str, field_name: str) -> None:
    if not amount or not isinstance(amount, str):
        raise ValidationError(f'{field_name} is required and must be a string')
    if not AMOUNT_RE.fullmatch(amount):
        raise ValidationError(f'{field_name} must be a valid positive integer string')
    if amount == '0':
        raise ValidationError(f'{field_name} must be greater than zero')


def validate_expiration(
    expires_in: int,
    now: Optional[int] = None,
    max_seconds: Optional[int] = None,
) -> None:
    if not _is_int(expires_in) or expires_in <= 0:
        raise ValidationError('expiresIn must be a positive integer timestamp')

    now = current_time() if now is None else now
    max_seconds = config.MAX_EXPIRATION_SECONDS if max_seconds is None else max_seconds
    if expires_in <= now:
        raise ValidationError('expiresIn must be in the future')
    if expires_in > now + max_seconds:
        raise ValidationError(f'expiresIn cannot be more than {max_seconds} seconds in the future')


def validate_create_rfq_input(
    rfq_input: CreateRFQInput,
    now: Optional[int] = None,
    max_seconds: Optional[int] = None,
) -> None:
    if not isinstance(rfq_input, CreateRFQInput):
        raise ValidationError('RFQ input is required')

    validate_token_info(rfq_input.base_token, 'baseToken')
    validate_token_info(rfq_input.quote_token, 'quoteToken')
    validate_amount(rfq_input.base_amount, 'baseAmount')
    validate_amount(rfq_input.quote_amount, 'quoteAmount')
    validate_expiration(rfq_input.expires_in, now=now, max_seconds=max_seconds)

    if rfq_input.min_fill_amount is not None:
        validate_amount(rfq_input.min_fill_amount, 'minFillAmount')

    if rfq_input.counterparty_restrictions is not None:
        for index, address in enumerate(rfq_input.counterparty_restrictions):
            validate_address(address, f'counterpartyRestrictions[{index}]')


def validate_rfq_id(rfq_id: str) -> None:
    if not rfq_id or not isinstance(rfq_id, str):
        raise ValidationError('RFQ ID is required and must be a string')
    if not rfq_id.strip():
        raise ValidationError('RFQ ID cannot be empty')

import secrets
from time import time
from typing import Any, Mapping

import ujson

RFQ_ID_SUFFIX_BYTES = 8


def now() -> int:
    return int(time())


def generate_rfq_id(creator: str, timestamp: int) -> str:
    """
    Build an RFQ id from the creator address, the creation second and a random suffix.
    Uniqueness is probabilistic, the store does not check for duplicates.
    """
    suffix = secrets.token_hex(RFQ_ID_SUFFIX_BYTES)
    return f'{creator.lower()}-{timestamp}-{suffix}'


def serialize_payload(data: Mapping[str, Any]) -> str:
    """Canonical JSON used as the signed message, keys sorted so any client reproduces it."""
    return ujson.dumps(data, sort_keys=True, ensure_ascii=False)


def get_nested_value(data: Mapping[str, Any], path: str) -> Any:
    current = data
    for part in path.split('.'):
        if not isinstance(current, Mapping):
            return None
        current = current.get(part)
    return current

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class Entity(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    entity_key: str = Field(..., alias='entityKey')
    data: Dict[str, Any]  # record payload, keys as written by the client
    timestamp: int  # store write time, milliseconds
    signature: Optional[str] = None


class SortSpec(BaseModel):
    field: str
    order: Literal['asc', 'desc'] = 'desc'


class QueryResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    entities: List[Entity]
    total: int
    next_cursor: Optional[str] = Field(None, alias='nextCursor')

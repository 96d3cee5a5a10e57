from typing import Optional

from pydantic_settings import BaseSettings


class StoreConfig(BaseSettings):
    STORE_BACKEND: str = 'memory'  # memory | http
    STORE_URL: str = 'http://localhost:8080/api/v1'
    STORE_API_KEY: Optional[str] = None
    STORE_TIMEOUT: float = 10

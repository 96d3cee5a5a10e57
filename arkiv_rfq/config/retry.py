from pydantic_settings import BaseSettings


class RetryConfig(BaseSettings):
    RETRY_MAX_RETRIES: int = 3
    RETRY_INITIAL_DELAY_MS: int = 1000
    RETRY_MAX_DELAY_MS: int = 10000
    RETRY_BACKOFF_MULTIPLIER: float = 2

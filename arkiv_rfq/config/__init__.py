from pydantic_settings import SettingsConfigDict

from arkiv_rfq.config.apm import APMConfig
from arkiv_rfq.config.logger import LoggerConfig
from arkiv_rfq.config.retry import RetryConfig
from arkiv_rfq.config.store import StoreConfig


class Config(APMConfig, LoggerConfig, RetryConfig, StoreConfig):
    VERSION: str = '0.1.0'
    RFQ_ENTITY_TYPE: str = 'RFQ'
    DEFAULT_PAGE_LIMIT: int = 50
    WATCH_POLLING_INTERVAL_MS: int = 2000
    # 30 days
    MAX_EXPIRATION_SECONDS: int = 30 * 24 * 60 * 60

    model_config = SettingsConfigDict(env_file='.env', extra='ignore')


config = Config()

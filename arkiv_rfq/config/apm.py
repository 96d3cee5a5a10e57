from pydantic_settings import BaseSettings


class APMConfig(BaseSettings):
    APM_SERVER_URL: str = 'http://localhost:8200'
    SERVICE_NAME: str = 'arkiv-rfq-sdk'
    APM_ENABLED: bool = False
    APM_RECORDING: bool = False
    LOG_LEVEL: str = 'off'
    ENVIRONMENT: str = 'dev'

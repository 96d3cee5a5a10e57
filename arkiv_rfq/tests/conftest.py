import pytest

from arkiv_rfq.config import Config
from arkiv_rfq.tests.fixtures import *  # noqa: F401, F403


@pytest.fixture()
def config() -> Config:
    return Config(STORE_BACKEND='memory', WATCH_POLLING_INTERVAL_MS=60_000)

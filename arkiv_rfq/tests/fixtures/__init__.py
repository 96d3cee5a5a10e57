from arkiv_rfq.tests.fixtures.rfq_service import *  # noqa: F401, F403
from arkiv_rfq.tests.fixtures.signers import *  # noqa: F401, F403
from arkiv_rfq.tests.fixtures.store import *  # noqa: F401, F403

"""Default locations and tunables for talking to a BOPTEST server."""
from dataclasses import dataclass
import os

# Default URL when running BOPTEST locally (single test case)
BOPTEST_DEF_URL = "http://127.0.0.1:5000"
# URL of the hosted BOPTEST-Service API (many test cases in parallel)
BOPTEST_SERVICE_DEF_URL = "http://api.boptest.net"

DEFAULT_TIMEOUT = 30.0  # seconds
# The server stores results at 30 s resolution at most
MAX_NATIVE_STEP = 30.0
DEFAULT_BATCH_TARGET_POINTS = 10_000


@dataclass(frozen=True)
class Settings:
    boptest_url: str
    boptest_service_url: str
    timeout: float
    batch_target_points: int


def get_settings() -> Settings:
    """
    Centralized configuration for the client.
    Values come from environment variables with the defaults above.
    """
    return Settings(
        boptest_url=os.getenv("BOPTEST_URL", BOPTEST_DEF_URL),
        boptest_service_url=os.getenv("BOPTEST_SERVICE_URL", BOPTEST_SERVICE_DEF_URL),
        timeout=float(os.getenv("BOPTEST_TIMEOUT", str(DEFAULT_TIMEOUT))),
        batch_target_points=int(
            os.getenv("BOPTEST_BATCH_TARGET_POINTS", str(DEFAULT_BATCH_TARGET_POINTS))
        ),
    )

import os

os.environ.setdefault("ENVIRONMENT", "local")  # keine Logdateien waehrend der Tests

import pytest
from fastapi.testclient import TestClient

from torkalk.main import app


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(scope="session")
def client():
    return TestClient(app)

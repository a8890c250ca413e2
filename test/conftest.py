from typing import AsyncGenerator, List

import pytest
import pytest_asyncio
from control_plane_server import ControlPlaneServer
from loguru import logger

from cloud_api_client.cloud_api_client import CloudAPIClient
from cloud_api_client.models import ClientConfig


class RecordingSleep:
    """Stands in for asyncio.sleep and remembers every requested delay"""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)

    @property
    def total(self) -> float:
        return sum(self.delays)


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def debug_records() -> List[str]:
    """Collect loguru debug output emitted during a test."""
    records: List[str] = []
    sink_id = logger.add(lambda message: records.append(message.record["message"]), level="DEBUG")
    try:
        yield records
    finally:
        logger.remove(sink_id)


@pytest_asyncio.fixture
async def server() -> AsyncGenerator[ControlPlaneServer, None]:
    """Start and yield a scripted control plane on a free port."""
    server_instance = ControlPlaneServer(task_steps=1)
    await server_instance.start(port=0)
    try:
        yield server_instance
    finally:
        await server_instance.stop()


@pytest_asyncio.fixture
async def client(server, sleep) -> AsyncGenerator[CloudAPIClient, None]:
    config = ClientConfig(
        base_url=f"http://127.0.0.1:{server.port}",
        access_key="access",
        secret_key="secret",
        task_poll_interval=5,
    )
    async with CloudAPIClient(config, sleep=sleep) as api_client:
        yield api_client

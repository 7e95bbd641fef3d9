import json
from typing import Dict, List

import httpx
import pytest
import pytest_asyncio

from resource_provider.client import ConsumerClient
from resource_provider.db import close_db_connections, create_engine_for, init_db, make_session_factory
from resource_provider.engine import PropagationEngine
from resource_provider.lifecycle import ResourceLifecycle
from resource_provider.queue import Dispatcher, InMemoryJobQueue
from resource_provider.repositories import ResourceRepository
from resource_provider.resourceable import Resourceable, ResourceTypeRegistry
from resource_provider.services import StaticServiceDirectory
from resource_provider.signing import Signer

SECRET = "provider-shared-secret"
PROVIDER_UUID = "c0ffee00b6e1012e744a6c626d58b44c"
CONSUMER_UUID = "d5ee0a10b6e1012e744a6c626d58b44c"
ANOTHER_CONSUMER_UUID = "e6ff1b20b6e1012e744a6c626d58b44c"
REALM_UUID = "12ab34cd56ef012e52fb6c626d58b44c"
OTHER_REALM_UUID = "289e0df0219f012e52fb6c626d58b44c"
CONSUMER_URL = "https://consumer.example"
ANOTHER_CONSUMER_URL = "https://another.example"


class ProviderModel(Resourceable):
    """Resource type used throughout the tests."""

    resource_type = "provider_models"
    transmissible_fields = ("name",)


class RecordingTransport:
    """httpx transport double that records requests and answers per host."""

    def __init__(self) -> None:
        self.requests: List[httpx.Request] = []
        self.status_by_host: Dict[str, int] = {}
        self.unreachable: set = set()

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.host in self.unreachable:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(self.status_by_host.get(request.url.host, 200))

    def bodies(self) -> List[dict]:
        return [json.loads(r.content) if r.content else {} for r in self.requests]

    def calls(self) -> List[tuple]:
        return [(r.method, str(r.url)) for r in self.requests]


@pytest.fixture
def types():
    registry = ResourceTypeRegistry()
    registry.register(ProviderModel)
    return registry


@pytest_asyncio.fixture
async def db_engine():
    engine = create_engine_for("sqlite+aiosqlite:///:memory:")
    await init_db(engine)
    yield engine
    await close_db_connections(engine)


@pytest.fixture
def repository(db_engine, types):
    return ResourceRepository(make_session_factory(db_engine), types)


@pytest.fixture
def directory():
    return StaticServiceDirectory({
        (CONSUMER_UUID, None): CONSUMER_URL,
        (ANOTHER_CONSUMER_UUID, None): ANOTHER_CONSUMER_URL,
    })


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest_asyncio.fixture
async def consumer_client(transport):
    client = ConsumerClient(httpx.AsyncClient(transport=httpx.MockTransport(transport)))
    yield client
    await client.close()


@pytest.fixture
def signer():
    return Signer(SECRET)


@pytest.fixture
def job_queue():
    return InMemoryJobQueue()


@pytest.fixture
def engine(repository, directory, consumer_client, signer, job_queue):
    return PropagationEngine(
        repository, directory, consumer_client, signer, job_queue, service_uuid=PROVIDER_UUID
    )


@pytest.fixture
def dispatcher(job_queue, engine):
    return Dispatcher(job_queue, engine.execute, retry_delays=(1.0, 5.0, 30.0))


@pytest.fixture
def lifecycle(repository, engine):
    return ResourceLifecycle(repository, engine)


@pytest_asyncio.fixture
async def subject(lifecycle):
    resource = ProviderModel(uuid="84e8a690b6e1012e744a6c626d58b44c", name="Jenny")
    await lifecycle.create(resource)
    return resource

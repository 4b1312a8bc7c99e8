import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.api.deps import get_current_user
from app.core.database import init_db
from app.main import create_app
from app.services.notifier import PushTransport
from app.services.photo_analysis import PhotoAnalysis
from app.services.storage import LocalStorageBackend, StorageService
from app.workers.context import WorkflowServices
from app.workers.dispatcher import JobDispatcher

OWNER_ID = "user-1"

PENDING = {"status": "pending"}


class FakeRemote:
    """Scripted stand-in for RemoteJobClient."""

    def __init__(self, statuses=None, task_id="task-1"):
        self.statuses = list(statuses or [])
        self.task_id = task_id
        self.fetch_calls = 0
        self.submissions = []
        self.submit_error = None
        self.known_characters = set()
        self.closed = False

    async def submit_training(self, display_name, image_urls):
        if self.submit_error:
            raise self.submit_error
        self.submissions.append({"kind": "training", "name": display_name, "image_urls": list(image_urls)})
        return self.task_id

    async def submit_generation(self, prompt, style_id, character_id=None, quality="basic", aspect_ratio="3:4", **kwargs):
        if self.submit_error:
            raise self.submit_error
        self.submissions.append({
            "kind": "generation",
            "prompt": prompt,
            "style_id": style_id,
            "character_id": character_id,
            "quality": quality,
            "aspect_ratio": aspect_ratio,
        })
        return self.task_id

    async def fetch_status(self, task_id):
        self.fetch_calls += 1
        if not self.statuses:
            return PENDING
        item = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
        if isinstance(item, Exception):
            raise item
        return item

    async def character_exists(self, character_id):
        return character_id in self.known_characters

    async def aclose(self):
        self.closed = True


class FakeAnalyzer:
    def __init__(self, prompt="A cinematic portrait in warm evening light"):
        self.prompt = prompt
        self.calls = []
        self.error = None
        self.closed = False

    async def analyze(self, image, analysis_type="standard"):
        if self.error:
            raise self.error
        self.calls.append((len(image), analysis_type))
        return PhotoAnalysis(prompt=self.prompt, metadata={"mood": "happy"})

    async def aclose(self):
        self.closed = True


class RecordingTransport(PushTransport):
    name = "recording"

    def __init__(self, errors=None):
        self.sent = []
        self.errors = errors or {}

    async def send(self, device_token, message):
        if device_token in self.errors:
            raise self.errors[device_token]
        self.sent.append((device_token, message))


class RecordingSleep:
    def __init__(self):
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(seconds)


class RecordingDispatcher(JobDispatcher):
    mode = "recording"

    def __init__(self):
        self.training = []
        self.generation = []

    def dispatch_training(self, job_id, task_id):
        self.training.append((job_id, task_id))

    def dispatch_generation(self, job_id, task_id):
        self.generation.append((job_id, task_id))


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def storage(tmp_path):
    return StorageService(LocalStorageBackend(str(tmp_path / "blobs")))


@pytest.fixture
def remote():
    return FakeRemote()


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def analyzer():
    return FakeAnalyzer()


@pytest.fixture
def services(session_factory, storage, remote, transport, sleep, analyzer):
    services = WorkflowServices.build(
        session_factory=session_factory,
        storage=storage,
        remote=remote,
        transport=transport,
        sleep=sleep,
        analyzer=analyzer,
    )
    services.users.get_or_create_user(OWNER_ID, phone="+15550000001")
    return services


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def client(services, dispatcher):
    app = create_app(services=services, dispatcher=dispatcher, create_tables=False)
    app.dependency_overrides[get_current_user] = lambda: services.users.get_or_create_user(OWNER_ID)
    with TestClient(app) as test_client:
        yield test_client

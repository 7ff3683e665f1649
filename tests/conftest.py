from typing import List, Optional, Tuple

import pytest

from advert_desk.config import Settings
from advert_desk.db.database import DataBase
from advert_desk.db.schemas.submission import SubmissionRead
from advert_desk.bot.services.auth import AuthService
from advert_desk.bot.services.backend import BackendReadiness
from advert_desk.bot.services.device_storage import DeviceStorage
from advert_desk.bot.services.submission import SubmissionService
from advert_desk.flows.status import StatusReporter
from advert_desk.i18n import Localizer
from advert_desk.utils.errors import BackendUnavailableError

TEACHER_EMAIL = "teacher@school.org"
TEACHER_PASSWORD = "correct-horse-1"

SINGLETONS = (Settings, DataBase, BackendReadiness, SubmissionService, AuthService)


@pytest.fixture(autouse=True)
def env(tmp_path, monkeypatch):
    monkeypatch.setenv("DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'advert_desk.db'}")
    monkeypatch.setenv("DEVICE_STORAGE_DIR", str(tmp_path / "devices"))
    monkeypatch.setenv("BACKEND_READY_TIMEOUT", "0.5")
    monkeypatch.setenv("DISPLAY_TIMEZONE", "Europe/London")
    monkeypatch.setenv("BACKUP_LIMIT", "50")
    for cls in SINGLETONS:
        cls._instance = None
    yield tmp_path
    for cls in SINGLETONS:
        cls._instance = None


@pytest.fixture
async def store():
    db = DataBase()
    await db.create_all()
    BackendReadiness().resolve()
    yield db
    await db.dispose()


@pytest.fixture
async def unavailable_store():
    BackendReadiness().reject(BackendUnavailableError("Submission store init timeout."))


@pytest.fixture
def lz() -> Localizer:
    return Localizer("english")


# ---------- recording fakes for the UI adapters ----------

class FakeSink:
    def __init__(self) -> None:
        self.lines: List[str] = []

    async def show(self, text: str) -> None:
        self.lines.append(text)

    @property
    def last(self) -> str:
        return self.lines[-1] if self.lines else ""

    @property
    def messages(self) -> List[str]:
        return [line for line in self.lines if line]


class FakeViewer:
    def __init__(self) -> None:
        self.target: Optional[str] = None
        self.visible = False
        self.opened: List[Tuple[str, str, str]] = []
        self.closes = 0

    async def open(self, embed_url: str, external_url: str, meta: str = "") -> None:
        self.target = embed_url
        self.visible = True
        self.opened.append((embed_url, external_url, meta))

    async def close(self, blank_url: str) -> None:
        self.target = blank_url
        self.visible = False
        self.closes += 1


class FakeBoard:
    def __init__(self) -> None:
        self.renders: List[Tuple[List[SubmissionRead], int]] = []
        self.identities: List[Optional[str]] = []

    async def render(self, rows: List[SubmissionRead], total: int) -> None:
        self.renders.append((list(rows), total))

    async def set_signed_in(self, identity: Optional[str]) -> None:
        self.identities.append(identity)

    @property
    def last_rows(self) -> List[SubmissionRead]:
        return self.renders[-1][0] if self.renders else []


class FakeClipboard:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.text: Optional[str] = None

    async def write_text(self, text: str) -> None:
        if self.fail:
            raise PermissionError("clipboard blocked")
        self.text = text


class FakeDownloads:
    def __init__(self) -> None:
        self.files: List[Tuple[str, bytes]] = []

    async def offer(self, filename: str, data: bytes) -> None:
        self.files.append((filename, data))


@pytest.fixture
def sink() -> FakeSink:
    return FakeSink()


@pytest.fixture
def status(sink, lz) -> StatusReporter:
    return StatusReporter(sink, lz)


@pytest.fixture
def viewer() -> FakeViewer:
    return FakeViewer()


@pytest.fixture
def board() -> FakeBoard:
    return FakeBoard()


@pytest.fixture
def clipboard() -> FakeClipboard:
    return FakeClipboard()


@pytest.fixture
def downloads() -> FakeDownloads:
    return FakeDownloads()


@pytest.fixture
def storage(env) -> DeviceStorage:
    return DeviceStorage(4242)


@pytest.fixture
async def teacher(store):
    return await AuthService().create_teacher(TEACHER_EMAIL, TEACHER_PASSWORD)

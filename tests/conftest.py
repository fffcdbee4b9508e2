"""Shared fixtures: a temporary SQLite database, seeded catalog and an API client."""

from datetime import timedelta
from types import SimpleNamespace

import httpx
import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker

from slotbook.core.database import Base, create_engine_for, get_db
from slotbook.core.security import Identity, create_access_token
from slotbook.core.time import utcnow
from slotbook.main import create_app
from slotbook.models import AvailableSlot, Professional, SlotStatus
from slotbook.services.notification_service import get_notifier


class RecordingNotifier:
    """Notifier double that remembers every appointment it was handed."""

    def __init__(self, fail: bool = False):
        self.sent = []
        self.fail = fail

    async def send_booking_confirmation(self, appointment):
        if self.fail:
            raise RuntimeError("mail server down")
        self.sent.append(appointment)


@pytest.fixture
async def engine(tmp_path):
    engine = create_engine_for(f"sqlite+aiosqlite:///{tmp_path / 'slotbook.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
async def catalog(session_factory):
    """
    Seed the catalog.

    ana-lopez has two open slots tomorrow plus slots that must never be
    listed (too soon, soft-deleted, already reserved). The other two
    professionals are not bookable.
    """
    tomorrow = (utcnow() + timedelta(days=1)).replace(hour=10, minute=0, second=0, microsecond=0)

    async with session_factory() as db:
        ana = Professional(email="ana@example.com", full_name="Ana López", user_code="ana-lopez")
        no_code = Professional(email="nocode@example.com", full_name="No Code", user_code=None)
        inactive = Professional(
            email="old@example.com", full_name="Inactive Pro", user_code="inactive-pro", active=False
        )
        db.add_all([ana, no_code, inactive])
        await db.flush()

        s1 = AvailableSlot(professional_id=ana.id, appointment_datetime=tomorrow)
        s2 = AvailableSlot(professional_id=ana.id, appointment_datetime=tomorrow + timedelta(hours=1))
        too_soon = AvailableSlot(professional_id=ana.id, appointment_datetime=utcnow() + timedelta(minutes=30))
        deleted = AvailableSlot(
            professional_id=ana.id,
            appointment_datetime=tomorrow + timedelta(hours=2),
            deleted_at=utcnow(),
        )
        reserved = AvailableSlot(
            professional_id=ana.id,
            appointment_datetime=tomorrow + timedelta(hours=3),
            status=SlotStatus.RESERVED.value,
        )
        no_code_slot = AvailableSlot(professional_id=no_code.id, appointment_datetime=tomorrow)
        inactive_slot = AvailableSlot(professional_id=inactive.id, appointment_datetime=tomorrow)

        db.add_all([s1, s2, too_soon, deleted, reserved, no_code_slot, inactive_slot])
        await db.commit()

        return SimpleNamespace(
            ana_id=str(ana.id),
            s1=str(s1.id),
            s2=str(s2.id),
            s1_datetime=s1.appointment_datetime,
            too_soon=str(too_soon.id),
            deleted=str(deleted.id),
            reserved=str(reserved.id),
            no_code_slot=str(no_code_slot.id),
            inactive_slot=str(inactive_slot.id),
            tomorrow=tomorrow,
        )


@pytest.fixture
def identity():
    return Identity(user_id="user-juan", email="juan@x.com", full_name="Juan Pérez")


@pytest.fixture
def token(identity):
    token, _ = create_access_token(identity.user_id, identity.email, identity.full_name)
    return token


@pytest.fixture
def other_token():
    token, _ = create_access_token("user-maria", "maria@x.com", "María Gómez")
    return token


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def app(session_factory, notifier):
    application = create_app()

    async def override_get_db():
        async with session_factory() as session:
            yield session

    application.dependency_overrides[get_db] = override_get_db
    application.dependency_overrides[get_notifier] = lambda: notifier
    return application


@pytest.fixture
async def client(app):
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as c:
        yield c


@pytest.fixture
def valid_client_info():
    return {
        "full_name": "Juan Pérez",
        "email": "juan@x.com",
        "phone": "5551234567",
        "notes": "",
    }

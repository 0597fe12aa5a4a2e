"""
Unit Tests for the Session Context

Login / logout lifecycle and persistence through the offline store.
"""
import pytest

from skinalyze.core.storage import Namespace
from skinalyze.services import SessionContext, SessionUser, UserRole
from skinalyze.utils import ValidationError


@pytest.fixture
def patient_user() -> SessionUser:
    return SessionUser(
        user_id="patient-001",
        name="John Doe",
        role=UserRole.PATIENT,
        email="patient@test.com",
        patient_id=1,
    )


@pytest.mark.asyncio
class TestSessionContext:
    """Tests for SessionContext."""

    async def test_create(self, empty_store, patient_user):
        session = SessionContext(empty_store)
        await session.create("token-123", patient_user)

        assert session.is_active
        assert session.patient_id == 1
        assert session.authorization_header() == {"Authorization": "Bearer token-123"}
        stored = await empty_store.get_json(Namespace.SESSION)
        assert stored["token"] == "token-123"
        assert stored["user"]["role"] == "patient"

    async def test_destroy(self, empty_store, patient_user):
        session = SessionContext(empty_store)
        await session.create("token-123", patient_user)
        await session.destroy()

        assert not session.is_active
        assert session.token is None
        assert session.authorization_header() == {}
        assert await empty_store.get(Namespace.SESSION) is None

    async def test_restore(self, empty_store, patient_user):
        await SessionContext(empty_store).create("token-123", patient_user)

        restored = SessionContext(empty_store)
        assert await restored.restore()
        assert restored.user == patient_user
        assert restored.token == "token-123"

    async def test_restore_without_session(self, empty_store):
        assert not await SessionContext(empty_store).restore()

    async def test_restore_unreadable(self, empty_store):
        await empty_store.set_json(Namespace.SESSION, {"token": "x", "user": {"name": "?"}})
        session = SessionContext(empty_store)
        assert not await session.restore()
        assert await empty_store.get(Namespace.SESSION) is None

    async def test_invalidate_token_keeps_user(self, empty_store, patient_user):
        session = SessionContext(empty_store)
        await session.create("token-123", patient_user)
        await session.invalidate_token()

        assert session.token is None
        assert session.is_active
        stored = await empty_store.get_json(Namespace.SESSION)
        assert stored["token"] is None

    async def test_memory_only(self, patient_user):
        session = SessionContext()
        await session.create("token-123", patient_user)
        assert await session.restore()
        await session.destroy()
        assert not session.is_active

    @pytest.mark.parametrize("token", ["", "  ", None])
    async def test_token_required(self, patient_user, token):
        with pytest.raises(ValidationError):
            await SessionContext().create(token, patient_user)

    async def test_user_required(self):
        with pytest.raises(ValidationError):
            await SessionContext().create("token-123", {"name": "John"})

    async def test_clinician_has_no_patient_id(self):
        session = SessionContext()
        await session.create("t", SessionUser(user_id="clinician-001", name="Dr. Smith",
                                              role=UserRole.CLINICIAN))
        assert session.patient_id is None

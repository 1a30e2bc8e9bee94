"""
Tests for Caretaker Service
Tests elder and caretaker accounts, pairing, help requests and the notification inbox
"""

import pytest
from datetime import timedelta

from sqlalchemy import select

from models import Caretaker, Elder, Notification
from tools.notification_service import NotificationChannel
from services.caretaker_service import CaretakerService, generate_pairing_code, PAIRING_CODE_LENGTH
from tests.conftest import at


@pytest.fixture
def caretaker_service(recording_messenger):
    return CaretakerService(messenger=recording_messenger)


@pytest.fixture
def inbox(session_factory, test_caretaker):
    """Three notifications for the test caretaker, oldest first"""
    with session_factory() as session:
        session.add_all([
            Notification(
                elder_id="elder-1",
                caretaker_id=test_caretaker.id,
                type="missedDose",
                message=f"Elder Margaret missed dose(s): {i}",
                timestamp=at(9) + timedelta(hours=i),
                read=(i == 0)
            )
            for i in range(3)
        ])
        session.commit()


class TestPairingCode:
    """Tests for generate_pairing_code"""

    @pytest.mark.unit
    def test_code_shape(self):
        code = generate_pairing_code()

        assert len(code) == PAIRING_CODE_LENGTH
        assert code.isalnum() and code == code.upper()
        assert not set(code) & set("01IO")


class TestAccounts:
    """Tests for elder and caretaker creation"""

    @pytest.mark.asyncio
    @pytest.mark.integration
    async def test_create_elder(self, caretaker_service, db_session):
        elder = await caretaker_service.create_elder("Margaret", "margaret@example.com", db=db_session)

        assert elder.id
        assert elder.caretaker_ids == []
        assert len(elder.pairing_code) == PAIRING_CODE_LENGTH
        assert await caretaker_service.get_elder(elder.id, db=db_session) is elder

    @pytest.mark.asyncio
    @pytest.mark.integration
    async def test_list_elder_ids(self, caretaker_service, db_session, test_elder):
        other = await caretaker_service.create_elder("Harold", db=db_session)

        assert sorted(await caretaker_service.list_elder_ids(db=db_session)) == sorted([test_elder.id, other.id])

    @pytest.mark.asyncio
    @pytest.mark.integration
    async def test_create_caretaker_unlinked(self, caretaker_service, db_session):
        caretaker = await caretaker_service.create_caretaker("Priya", phone="+15550100", db=db_session)

        assert caretaker.elder_id is None
        assert caretaker.phone == "+15550100"


class TestLinkCaretaker:
    """Tests for CaretakerService.link_caretaker"""

    @pytest.mark.asyncio
    @pytest.mark.integration
    async def test_link_by_pairing_code(self, caretaker_service, db_session, test_elder):
        caretaker = await caretaker_service.create_caretaker("Priya", "priya@example.com", db=db_session)

        linked = await caretaker_service.link_caretaker(caretaker.id, " pair01 ", db=db_session)
        await caretaker_service.link_caretaker(caretaker.id, "PAIR01", db=db_session)

        assert linked.elder_id == test_elder.id
        elder = db_session.get(Elder, test_elder.id)
        assert elder.caretaker_ids == [caretaker.id]

    @pytest.mark.asyncio
    @pytest.mark.integration
    async def test_relink_leaves_previous_elder_list(self, caretaker_service, db_session, test_elder):
        caretaker = await caretaker_service.create_caretaker("Priya", db=db_session)
        other = await caretaker_service.create_elder("Walter", db=db_session)
        await caretaker_service.link_caretaker(caretaker.id, "PAIR01", db=db_session)

        moved = await caretaker_service.link_caretaker(caretaker.id, other.pairing_code, db=db_session)

        assert moved.elder_id == other.id
        assert db_session.get(Elder, test_elder.id).caretaker_ids == []
        assert db_session.get(Elder, other.id).caretaker_ids == [caretaker.id]

    @pytest.mark.asyncio
    @pytest.mark.integration
    async def test_invalid_code(self, caretaker_service, db_session, test_elder):
        caretaker = await caretaker_service.create_caretaker("Priya", db=db_session)

        with pytest.raises(ValueError):
            await caretaker_service.link_caretaker(caretaker.id, "NOPE99", db=db_session)

    @pytest.mark.asyncio
    @pytest.mark.integration
    async def test_unknown_caretaker(self, caretaker_service, db_session, test_elder):
        with pytest.raises(LookupError):
            await caretaker_service.link_caretaker("ghost", "PAIR01", db=db_session)


class TestHelpRequest:
    """Tests for CaretakerService.request_help"""

    @pytest.mark.asyncio
    @pytest.mark.integration
    async def test_alerts_every_caretaker(self, caretaker_service, recording_messenger, session_factory, db_session, test_caretaker):
        with session_factory() as session:
            session.add(Caretaker(id="caretaker-2", username="Priya", phone="+15550100", elder_id="elder-1"))
            session.commit()

        result = await caretaker_service.request_help("elder-1", now=at(10), db=db_session)

        assert result["caretaker_ids"] == ["caretaker-1", "caretaker-2"]
        assert result["alerts_sent"] == 2
        channels = {s["recipient"]: s["channel"] for s in recording_messenger.sent}
        assert channels == {
            "daniel@example.com": NotificationChannel.EMAIL,
            "+15550100": NotificationChannel.SMS,
        }
        records = db_session.scalars(select(Notification).order_by(Notification.caretaker_id)).all()
        assert [r.type for r in records] == ["helpRequest", "helpRequest"]
        assert records[0].message == "Elder Margaret pressed the HELP button!"
        assert records[0].timestamp == at(10)

    @pytest.mark.asyncio
    @pytest.mark.integration
    async def test_uses_elder_list_without_primary_link(self, caretaker_service, recording_messenger, session_factory, db_session, test_elder):
        with session_factory() as session:
            session.add(Caretaker(id="caretaker-2", username="Priya", email="priya@example.com"))
            elder = session.get(Elder, test_elder.id)
            elder.caretaker_ids = ["caretaker-2"]
            session.commit()

        result = await caretaker_service.request_help("elder-1", db=db_session)

        assert result["caretaker_ids"] == ["caretaker-2"]
        assert recording_messenger.sent[0]["recipient"] == "priya@example.com"

    @pytest.mark.asyncio
    @pytest.mark.integration
    async def test_failed_delivery_still_records_request(self, caretaker_service, recording_messenger, db_session, test_caretaker):
        recording_messenger.fail = True

        result = await caretaker_service.request_help("elder-1", db=db_session)

        assert result["alerts_sent"] == 0
        assert result["alerts_failed"] == 1
        assert result["records_written"] == 1

    @pytest.mark.asyncio
    @pytest.mark.integration
    async def test_unknown_elder(self, caretaker_service, db_session):
        with pytest.raises(LookupError):
            await caretaker_service.request_help("ghost", db=db_session)


class TestInbox:
    """Tests for the caretaker notification inbox"""

    @pytest.mark.asyncio
    @pytest.mark.integration
    async def test_newest_first(self, caretaker_service, db_session, inbox):
        notifications = await caretaker_service.list_notifications("caretaker-1", db=db_session)

        assert [n.message[-1] for n in notifications] == ["2", "1", "0"]

    @pytest.mark.asyncio
    @pytest.mark.integration
    async def test_unread_only_and_mark_read(self, caretaker_service, db_session, inbox):
        unread = await caretaker_service.list_notifications("caretaker-1", unread_only=True, db=db_session)
        assert len(unread) == 2

        marked = await caretaker_service.mark_notification_read(unread[0].id, db=db_session)
        assert marked.read is True

        unread = await caretaker_service.list_notifications("caretaker-1", unread_only=True, db=db_session)
        assert len(unread) == 1

    @pytest.mark.asyncio
    @pytest.mark.integration
    async def test_mark_missing_notification(self, caretaker_service, db_session):
        assert await caretaker_service.mark_notification_read(999, db=db_session) is None

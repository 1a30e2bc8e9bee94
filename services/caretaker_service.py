"""
Caretaker Service
Business logic for elders, caretakers, pairing, help requests and the caretaker inbox
"""

import logging
import secrets
from typing import Any, Dict, List, Optional
from datetime import datetime, timezone
from sqlalchemy.orm import Session

from config import schedule_config
from database import get_db_context
import models
from actions.missed_dose_notifier import resolve_caretakers
from tools.notification_service import NotificationChannel, NotificationService, notification_service


logger = logging.getLogger(__name__)

PAIRING_CODE_LENGTH = 6
_PAIRING_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"


def generate_pairing_code() -> str:
    return "".join(secrets.choice(_PAIRING_ALPHABET) for _ in range(PAIRING_CODE_LENGTH))


class CaretakerService:
    """
    Service for elder and caretaker accounts
    """

    def __init__(self, messenger: Optional[NotificationService] = None):
        self.messenger = messenger or notification_service

    async def create_elder(
        self,
        username: str,
        email: Optional[str] = None,
        db: Optional[Session] = None
    ) -> models.Elder:
        """
        Create an elder with a fresh pairing code

        Args:
            username: Display name
            email: Contact email
            db: Database session (optional)

        Returns:
            Created Elder object
        """
        def _create(session: Session) -> models.Elder:
            code = generate_pairing_code()
            while session.query(models.Elder).filter(models.Elder.pairing_code == code).first():
                code = generate_pairing_code()

            elder = models.Elder(
                username=username,
                email=email,
                caretaker_ids=[],
                pairing_code=code
            )
            session.add(elder)
            session.commit()
            session.refresh(elder)

            logger.info(f"Created elder: {elder.id} - {elder.username}")
            return elder

        if db:
            return _create(db)

        with get_db_context() as session:
            return _create(session)

    async def get_elder(
        self,
        elder_id: str,
        db: Optional[Session] = None
    ) -> Optional[models.Elder]:
        """Get elder by ID"""
        def _get(session: Session) -> Optional[models.Elder]:
            return session.get(models.Elder, elder_id)

        if db:
            return _get(db)

        with get_db_context() as session:
            return _get(session)

    async def list_elder_ids(self, db: Optional[Session] = None) -> List[str]:
        def _list(session: Session) -> List[str]:
            return [row[0] for row in session.query(models.Elder.id).all()]

        if db:
            return _list(db)

        with get_db_context() as session:
            return _list(session)

    async def create_caretaker(
        self,
        username: str,
        email: Optional[str] = None,
        phone: Optional[str] = None,
        db: Optional[Session] = None
    ) -> models.Caretaker:
        """Create an unlinked caretaker"""
        def _create(session: Session) -> models.Caretaker:
            caretaker = models.Caretaker(username=username, email=email, phone=phone)
            session.add(caretaker)
            session.commit()
            session.refresh(caretaker)

            logger.info(f"Created caretaker: {caretaker.id} - {caretaker.username}")
            return caretaker

        if db:
            return _create(db)

        with get_db_context() as session:
            return _create(session)

    async def get_caretaker(
        self,
        caretaker_id: str,
        db: Optional[Session] = None
    ) -> Optional[models.Caretaker]:
        """Get caretaker by ID"""
        def _get(session: Session) -> Optional[models.Caretaker]:
            return session.get(models.Caretaker, caretaker_id)

        if db:
            return _get(db)

        with get_db_context() as session:
            return _get(session)

    async def link_caretaker(
        self,
        caretaker_id: str,
        pairing_code: str,
        db: Optional[Session] = None
    ) -> models.Caretaker:
        """
        Link a caretaker to the elder owning a pairing code.

        Sets the caretaker's primary link and records the caretaker on the
        elder's fallback list. A caretaker moving from another elder is
        removed from that elder's list.
        """
        def _link(session: Session) -> models.Caretaker:
            caretaker = session.get(models.Caretaker, caretaker_id)
            if not caretaker:
                raise LookupError(f"Caretaker {caretaker_id} not found")

            elder = session.query(models.Elder).filter(
                models.Elder.pairing_code == pairing_code.strip().upper()
            ).first()
            if not elder:
                raise ValueError("Invalid pairing code")

            if caretaker.elder_id and caretaker.elder_id != elder.id:
                previous = session.get(models.Elder, caretaker.elder_id)
                if previous and caretaker.id in (previous.caretaker_ids or []):
                    previous.caretaker_ids = [c for c in previous.caretaker_ids if c != caretaker.id]
                    logger.info(f"Unlinked caretaker {caretaker.id} from elder {previous.id}")

            caretaker.elder_id = elder.id
            linked = list(elder.caretaker_ids or [])
            if caretaker.id not in linked:
                # Reassign so the JSON column is flagged dirty
                elder.caretaker_ids = linked + [caretaker.id]

            session.commit()
            session.refresh(caretaker)

            logger.info(f"Linked caretaker {caretaker.id} to elder {elder.id}")
            return caretaker

        if db:
            return _link(db)

        with get_db_context() as session:
            return _link(session)

    async def request_help(
        self,
        elder_id: str,
        now: Optional[datetime] = None,
        db: Optional[Session] = None
    ) -> Dict[str, Any]:
        """
        Alert every caretaker of the elder that they need help.

        Caretakers are resolved the same way as for missed doses. Each one
        gets an email (or an SMS when only a phone number is known) and an
        in-app `helpRequest` notification. The records are written even when
        delivery fails, so the inbox always shows the request.

        Raises:
            LookupError: Unknown elder
        """
        now = now or datetime.now(timezone.utc)

        def _request(session: Session) -> Dict[str, Any]:
            elder, caretakers = resolve_caretakers(session, elder_id)
            if elder is None:
                raise LookupError(f"Elder {elder_id} not found")

            result = {
                "elder_id": elder_id,
                "caretaker_ids": [c.id for c in caretakers],
                "alerts_sent": 0,
                "alerts_failed": 0,
                "records_written": 0
            }
            if not caretakers:
                logger.warning(f"Help requested by elder {elder_id} but no caretaker is linked")
                return result

            for caretaker in caretakers:
                if caretaker.email:
                    deliveries = self.messenger.send_help_request([caretaker.email], elder.label)
                elif caretaker.phone:
                    deliveries = self.messenger.send_help_request(
                        [caretaker.phone], elder.label, channel=NotificationChannel.SMS
                    )
                else:
                    deliveries = []
                for delivery in deliveries:
                    if delivery.success:
                        result["alerts_sent"] += 1
                    else:
                        result["alerts_failed"] += 1

                session.add(models.Notification(
                    elder_id=elder_id,
                    caretaker_id=caretaker.id,
                    type=schedule_config.NOTIFICATION_TYPE_HELP_REQUEST,
                    message=f"Elder {elder.label} pressed the HELP button!",
                    timestamp=now,
                    read=False
                ))
                result["records_written"] += 1

            session.commit()
            logger.info(
                f"Help request from elder {elder_id}: {result['alerts_sent']} alert(s) sent, "
                f"{result['alerts_failed']} failed"
            )
            return result

        if db:
            return _request(db)

        with get_db_context() as session:
            return _request(session)

    async def list_notifications(
        self,
        caretaker_id: str,
        unread_only: bool = False,
        limit: int = 50,
        db: Optional[Session] = None
    ) -> List[models.Notification]:
        """A caretaker's in-app notifications, newest first"""
        def _list(session: Session) -> List[models.Notification]:
            query = session.query(models.Notification).filter(
                models.Notification.caretaker_id == caretaker_id
            )
            if unread_only:
                query = query.filter(models.Notification.read.is_(False))
            return query.order_by(
                models.Notification.timestamp.desc(),
                models.Notification.id.desc()
            ).limit(limit).all()

        if db:
            return _list(db)

        with get_db_context() as session:
            return _list(session)

    async def mark_notification_read(
        self,
        notification_id: int,
        db: Optional[Session] = None
    ) -> Optional[models.Notification]:
        """Mark one notification as read"""
        def _mark(session: Session) -> Optional[models.Notification]:
            notification = session.get(models.Notification, notification_id)
            if not notification:
                return None
            notification.read = True
            session.commit()
            session.refresh(notification)
            return notification

        if db:
            return _mark(db)

        with get_db_context() as session:
            return _mark(session)


# Singleton instance
caretaker_service = CaretakerService()

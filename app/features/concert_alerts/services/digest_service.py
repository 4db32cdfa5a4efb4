"""
Digest dispatch: compose -> send -> mark sent.

Notifications move to `sent` only after the sender reports success; any
failure leaves them pending for the next digest cycle.
"""

from pydantic import BaseModel

from app.features.concert_alerts.repository import NotificationRepository, UserRepository
from app.features.concert_alerts.services.collaborators import EmailSender
from app.features.concert_alerts.services.digest_composer import DigestComposer
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class DigestResult(BaseModel):
    user_id: str
    success: bool
    sent: int = 0
    favorites: int = 0
    music_taste: int = 0
    message: str | None = None
    error: str | None = None


class DigestBatchSummary(BaseModel):
    total_users: int = 0
    delivered: int = 0
    failed: int = 0
    results: list[DigestResult] = []


class DigestDispatcher:
    def __init__(
        self,
        sender: EmailSender,
        composer: DigestComposer | None = None,
        notifications=NotificationRepository,
        users=UserRepository,
    ):
        self.sender = sender
        self.notifications = notifications
        self.users = users
        self.composer = composer or DigestComposer(notifications=notifications, users=users)

    async def send_digest(self, user_id: str) -> DigestResult:
        user = await self.users.load_profile(user_id)
        if user is None or not user.email:
            return DigestResult(user_id=user_id, success=False, error="User not found or no email")
        if not user.email_enabled:
            return DigestResult(user_id=user_id, success=True, message="Email notifications disabled")

        digest = await self.composer.compose_digest(user_id, user=user)
        if digest is None or digest.is_empty:
            return DigestResult(user_id=user_id, success=True, message="No pending notifications")

        try:
            delivered = await self.sender.send(user.email, digest.subject, digest.rendered_body)
        except Exception as e:
            logger.error("Digest send raised", user_id=user_id, error=str(e))
            return DigestResult(user_id=user_id, success=False, error=str(e))

        if not delivered:
            logger.warning(
                "Digest not delivered, notifications stay pending",
                user_id=user_id,
                pending=len(digest.notification_ids),
            )
            return DigestResult(user_id=user_id, success=False, error="Email delivery failed")

        marked = await self.notifications.mark_sent(digest.notification_ids)
        counts = {section.tier.value: len(section.items) for section in digest.sections}
        logger.info("Digest sent", user_id=user_id, notifications=marked, **counts)
        return DigestResult(
            user_id=user_id,
            success=True,
            sent=marked,
            favorites=counts.get("favorite", 0),
            music_taste=counts.get("music_taste", 0),
        )

    async def send_all_digests(self) -> DigestBatchSummary:
        user_ids = await self.notifications.users_with_pending_digest()
        logger.info("Sending daily digests", users=len(user_ids))

        results = []
        for user_id in user_ids:
            try:
                result = await self.send_digest(user_id)
            except Exception as e:
                logger.error("Digest failed", user_id=user_id, error=str(e))
                result = DigestResult(user_id=user_id, success=False, error=str(e))
            results.append(result)

        return DigestBatchSummary(
            total_users=len(user_ids),
            delivered=sum(1 for r in results if r.success and r.sent),
            failed=sum(1 for r in results if not r.success),
            results=results,
        )

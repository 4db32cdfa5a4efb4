"""
Daily email digest composition.

Pure read + render: the composer never changes notification status. The
dispatcher marks the returned ids as sent only after delivery succeeds.
"""

from dataclasses import dataclass, field
from html import escape

from app.config import settings
from app.features.concert_alerts.domain import NotificationRecord, Tier, UserProfile
from app.features.concert_alerts.repository import NotificationRepository, UserRepository
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

SECTION_TITLES = {
    Tier.FAVORITE: "Your Favorites",
    Tier.MUSIC_TASTE: "Based on Your Music",
}

# (badge background, badge text, section underline)
TIER_COLORS = {
    Tier.FAVORITE: ("#fef3c7", "#92400e", "#fbbf24"),
    Tier.MUSIC_TASTE: ("#dbeafe", "#1e40af", "#3b82f6"),
}


@dataclass(slots=True)
class DigestSection:
    tier: Tier
    title: str
    items: list[NotificationRecord] = field(default_factory=list)


@dataclass(slots=True)
class ComposedDigest:
    user_id: str
    subject: str
    rendered_body: str
    notification_ids: list[str]
    sections: list[DigestSection]

    @property
    def is_empty(self) -> bool:
        return not self.notification_ids


def digest_subject(count: int) -> str:
    return f"{count} Concert{'s' if count != 1 else ''} Near You"


def group_by_tier(notifications: list[NotificationRecord]) -> list[DigestSection]:
    """Favorites section first; empty sections are dropped."""
    sections = []
    for tier in (Tier.FAVORITE, Tier.MUSIC_TASTE):
        items = [n for n in notifications if n.tier is tier]
        if items:
            sections.append(DigestSection(tier=tier, title=SECTION_TITLES[tier], items=items))
    return sections


def _format_date(notification: NotificationRecord) -> str:
    # e.g. "Sat, Mar 14"
    value = notification.event_date
    return f"{value:%a}, {value:%b} {value.day}"


def _render_item(notification: NotificationRecord) -> str:
    badge_bg, badge_fg, _ = TIER_COLORS[notification.tier]
    location = ", ".join(p for p in (notification.venue_city, notification.venue_state) if p)
    tickets = ""
    if notification.ticket_url:
        tickets = (
            f'<a href="{escape(notification.ticket_url)}" style="display: inline-block; '
            'margin-top: 12px; background: #334155; color: white; padding: 8px 16px; '
            'border-radius: 6px; text-decoration: none; font-size: 13px; font-weight: 600;">'
            "Get Tickets</a>"
        )
    return f"""
        <tr>
            <td style="padding: 16px; border-bottom: 1px solid #e2e8f0;">
                <div style="margin-bottom: 4px;">
                    <span style="background: {badge_bg}; color: {badge_fg}; font-size: 11px; padding: 2px 8px; border-radius: 12px; font-weight: 600;">{escape(notification.reason)}</span>
                </div>
                <div style="font-weight: 600; font-size: 16px; color: #1e293b; margin-bottom: 4px;">{escape(notification.artist_name)}</div>
                <div style="color: #64748b; font-size: 14px; margin-bottom: 4px;">{_format_date(notification)} &middot; {escape(notification.venue_name or "")}</div>
                <div style="color: #94a3b8; font-size: 13px;">{escape(location)} &middot; {notification.distance_miles} miles away</div>
                {tickets}
            </td>
        </tr>"""


def _render_section(section: DigestSection) -> str:
    _, _, underline = TIER_COLORS[section.tier]
    rows = "".join(_render_item(item) for item in section.items)
    return f"""
        <div style="padding: 24px;">
            <h2 style="color: #1e293b; font-size: 18px; margin: 0 0 16px 0; padding-bottom: 8px; border-bottom: 2px solid {underline};">{escape(section.title)} ({len(section.items)})</h2>
            <table style="width: 100%; border-collapse: collapse;">{rows}
            </table>
        </div>"""


def render_digest_html(user: UserProfile, sections: list[DigestSection]) -> str:
    total = sum(len(section.items) for section in sections)
    body = "".join(_render_section(section) for section in sections)
    plural = "s" if total != 1 else ""
    return f"""<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
</head>
<body style="font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; background: #f1f5f9; margin: 0; padding: 20px;">
    <div style="max-width: 600px; margin: 0 auto; background: white; border-radius: 12px; overflow: hidden;">
        <div style="background: #1e293b; padding: 32px; text-align: center;">
            <h1 style="color: white; margin: 0; font-size: 24px;">Concerts Near You</h1>
            <p style="color: #94a3b8; margin: 8px 0 0 0;">Your personalized daily digest</p>
        </div>
        <div style="padding: 24px 24px 0 24px;">
            <p style="color: #475569; margin: 0;">Hi {escape(user.display_name)},</p>
            <p style="color: #475569; margin: 8px 0 0 0;">We found <strong>{total} concert{plural}</strong> near {escape(user.city or "you")}!</p>
        </div>{body}
        <div style="background: #f8fafc; padding: 24px; text-align: center; border-top: 1px solid #e2e8f0;">
            <a href="{escape(settings.FRONTEND_URL)}" style="color: #334155; text-decoration: none; font-weight: 600;">View all notifications</a>
            <p style="color: #94a3b8; font-size: 12px; margin: 16px 0 0 0;">You're receiving this because you have email notifications enabled.</p>
        </div>
    </div>
</body>
</html>
"""


class DigestComposer:
    def __init__(self, notifications=NotificationRepository, users=UserRepository):
        self.notifications = notifications
        self.users = users

    async def compose_digest(self, user_id: str, user: UserProfile | None = None) -> ComposedDigest | None:
        """
        Build the digest for a user's pending email notifications.

        Returns None when the user does not exist. An empty digest (no
        pending notifications) is returned with no ids and no body.
        """
        if user is None:
            user = await self.users.load_profile(user_id)
        if user is None:
            return None

        pending = await self.notifications.pending_digest(user_id)
        if not pending:
            return ComposedDigest(
                user_id=user_id, subject="", rendered_body="", notification_ids=[], sections=[]
            )

        sections = group_by_tier(pending)
        digest = ComposedDigest(
            user_id=user_id,
            subject=digest_subject(len(pending)),
            rendered_body=render_digest_html(user, sections),
            notification_ids=[n.id for n in pending if n.id],
            sections=sections,
        )
        logger.debug(
            "Digest composed",
            user_id=user_id,
            total=len(pending),
            sections={section.tier.value: len(section.items) for section in sections},
        )
        return digest

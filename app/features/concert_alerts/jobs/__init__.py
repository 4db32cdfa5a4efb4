"""
Job runners for the concert alerts feature.
"""

from .digest_job import DigestJob, start_digest_scheduler
from .notification_check_job import NotificationCheckJob, start_notification_check_scheduler
from .notification_cleanup_job import NotificationCleanupJob, start_notification_cleanup_scheduler

__all__ = [
    "DigestJob",
    "NotificationCheckJob",
    "NotificationCleanupJob",
    "start_digest_scheduler",
    "start_notification_check_scheduler",
    "start_notification_cleanup_scheduler",
]

"""Notification dispatcher.

Schedules e-mail and Slack sends on FastAPI BackgroundTasks so responses never
wait on delivery. A failed send is logged as a warning and never propagated.
"""

import logging
from collections.abc import Awaitable, Callable

from fastapi import BackgroundTasks

from zona_fiscal.services.email_service import EmailService
from zona_fiscal.services.slack_service import SlackService

logger = logging.getLogger(__name__)


async def _deliver(label: str, send: Callable[..., Awaitable[bool]], *args, **kwargs) -> None:
    try:
        delivered = await send(*args, **kwargs)
    except Exception:
        logger.warning("Notification %s raised", label, exc_info=True)
        return
    if not delivered:
        logger.warning("Notification %s was not delivered", label)


class NotificationDispatcher:
    def __init__(
        self,
        background_tasks: BackgroundTasks,
        email: EmailService | None = None,
        slack: SlackService | None = None,
    ):
        self.background_tasks = background_tasks
        self.email = email or EmailService()
        self.slack = slack or SlackService()

    def _schedule(self, label: str, send: Callable[..., Awaitable[bool]], *args, **kwargs) -> None:
        self.background_tasks.add_task(_deliver, label, send, *args, **kwargs)

    def reactivation_request(self, email: str, token: str, user_name: str | None = None) -> None:
        self._schedule(
            "reactivation_request", self.email.send_reactivation_email, email, token, user_name
        )

    def deletion_confirmation(
        self, email: str, user_name: str | None = None, delete_type: str = "permanent"
    ) -> None:
        self._schedule(
            "deletion_confirmation",
            self.email.send_data_deletion_confirmation,
            email,
            user_name,
            delete_type,
        )

    def new_user(self, user_name: str, user_email: str) -> None:
        self._schedule("slack_new_user", self.slack.notify_new_user, user_name, user_email)


def get_dispatcher(background_tasks: BackgroundTasks) -> NotificationDispatcher:
    return NotificationDispatcher(background_tasks)

import logging

import pytest
from fastapi import BackgroundTasks

from zona_fiscal.services.notification_service import NotificationDispatcher


class _FakeEmail:
    def __init__(self, result=True, error: Exception | None = None):
        self.result = result
        self.error = error
        self.calls = []

    async def send_reactivation_email(self, email, token, user_name=None):
        self.calls.append(("reactivation", email, token, user_name))
        if self.error:
            raise self.error
        return self.result

    async def send_data_deletion_confirmation(self, email, user_name=None, delete_type="permanent"):
        self.calls.append(("deletion", email, user_name, delete_type))
        return self.result


class _FakeSlack:
    def __init__(self):
        self.calls = []

    async def notify_new_user(self, user_name, user_email, utm_source=None):
        self.calls.append((user_name, user_email))
        return True


@pytest.mark.asyncio
async def test_sends_are_deferred_until_background_run():
    tasks = BackgroundTasks()
    email = _FakeEmail()
    dispatcher = NotificationDispatcher(tasks, email=email, slack=_FakeSlack())

    dispatcher.reactivation_request("m@example.com", "u1", "Maria")
    assert email.calls == []

    await tasks()
    assert email.calls == [("reactivation", "m@example.com", "u1", "Maria")]


@pytest.mark.asyncio
async def test_all_channels_scheduled():
    tasks = BackgroundTasks()
    email = _FakeEmail()
    slack = _FakeSlack()
    dispatcher = NotificationDispatcher(tasks, email=email, slack=slack)

    dispatcher.deletion_confirmation("m@example.com", "Maria", "anonymize")
    dispatcher.new_user("Maria", "m@example.com")
    await tasks()

    assert email.calls == [("deletion", "m@example.com", "Maria", "anonymize")]
    assert slack.calls == [("Maria", "m@example.com")]


@pytest.mark.asyncio
async def test_failed_send_is_logged_not_raised(caplog):
    tasks = BackgroundTasks()
    email = _FakeEmail(error=RuntimeError("provider down"))
    dispatcher = NotificationDispatcher(tasks, email=email, slack=_FakeSlack())

    dispatcher.reactivation_request("m@example.com", "u1")
    with caplog.at_level(logging.WARNING, logger="zona_fiscal.services.notification_service"):
        await tasks()

    assert "reactivation_request raised" in caplog.text


@pytest.mark.asyncio
async def test_undelivered_send_is_logged(caplog):
    tasks = BackgroundTasks()
    dispatcher = NotificationDispatcher(tasks, email=_FakeEmail(result=False), slack=_FakeSlack())

    dispatcher.deletion_confirmation("m@example.com")
    with caplog.at_level(logging.WARNING, logger="zona_fiscal.services.notification_service"):
        await tasks()

    assert "deletion_confirmation was not delivered" in caplog.text

import base64
import hashlib
import hmac
import threading
import uuid
from datetime import datetime, timezone

import pytest

from server.repository import TaskRepository
from server.schemas import Task

CHANNEL_SECRET = "test-channel-secret"
CLOSING_PHRASE = "Are you statisfied, habibi?"


def sign(body: bytes, secret: str = CHANNEL_SECRET) -> str:
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def make_task(title="Buy milk", user_id="U123", due_at=None, task_id=None, created_at=None) -> Task:
    now = created_at or datetime.now(timezone.utc)
    return Task(
        task_id=task_id or str(uuid.uuid4()),
        user_id=user_id,
        title=title,
        due_at=due_at,
        created_at=now,
        updated_at=now,
    )


class FakeDispatcher:
    """Records dispatched tasks and renders text the way the real dispatcher does."""

    def __init__(self, closing_phrase=CLOSING_PHRASE, fail=False):
        self.closing_phrase = closing_phrase
        self.fail = fail
        self.sent = []
        self.delivered = threading.Event()

    def dispatch_task_reminder(self, task):
        if self.fail:
            self.delivered.set()
            raise RuntimeError("push failed")
        self.sent.append((task, f"Reminder: {task.title}. {self.closing_phrase}"))
        self.delivered.set()


class FakeResponse:
    def __init__(self, status_code=200, text=""):
        self.status_code = status_code
        self.text = text


class FakeHttpClient:
    def __init__(self, status_code=200, text=""):
        self.status_code = status_code
        self.text = text
        self.calls = []

    def post(self, url, data=None, headers=None, timeout=None):
        self.calls.append({"url": url, "data": data, "headers": headers, "timeout": timeout})
        return FakeResponse(self.status_code, self.text)


@pytest.fixture
def dispatcher():
    return FakeDispatcher()


@pytest.fixture
def repository(tmp_path):
    repo = TaskRepository(f"sqlite:///{tmp_path / 'tasks.db'}")
    repo.connect()
    yield repo
    repo.disconnect()

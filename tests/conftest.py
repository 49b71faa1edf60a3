import copy
import hashlib
import hmac
import json
import logging
import os
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

# Predictable settings for tests; APP_ENV=test disables the dedup sweep.
os.environ["TELEGRAM_BOT_TOKEN"] = "test-bot-token"
os.environ["TELEGRAM_CHAT_ID"] = "test-chat-id"
os.environ["GITHUB_WEBHOOK_SECRET"] = "test-webhook-secret"
os.environ["APP_ENV"] = "test"
os.environ["LOG_LEVEL"] = "error"

from notifier.main import create_app, settings as app_settings  # noqa: E402
from notifier.telegram import Chat, SentMessage, TelegramClient  # noqa: E402

SECRET = "test-webhook-secret"
ZERO_SHA = "0" * 40

SENT_MESSAGE = SentMessage(
    message_id=42, date=1730000000, chat=Chat(id=-100123, type="group")
)


def sign(body: bytes, secret: str = SECRET) -> str:
    return "sha256=" + hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def webhook_headers(event_type: str, delivery_id: str, body: bytes) -> dict:
    return {
        "Content-Type": "application/json",
        "X-GitHub-Event": event_type,
        "X-GitHub-Delivery": delivery_id,
        "X-Hub-Signature-256": sign(body),
    }


@pytest.fixture
def logger():
    log = logging.getLogger("notifier.tests")
    log.setLevel(logging.DEBUG)
    return log


@pytest.fixture
def telegram():
    mock = MagicMock(spec=TelegramClient)
    mock.send = AsyncMock(return_value=SENT_MESSAGE)
    mock.test_connection = AsyncMock(return_value=True)
    mock.aclose = AsyncMock()
    return mock


@pytest.fixture
def client(telegram, logger):
    app = create_app(app_settings, logger, telegram=telegram)
    return TestClient(app, raise_server_exceptions=False)


REPOSITORY = {
    "id": 1296269,
    "full_name": "acme/widgets",
    "html_url": "https://github.com/acme/widgets",
}

SENDER = {
    "login": "alice",
    "html_url": "https://github.com/alice",
}


def make_commit(
    sha: str,
    message: str,
    added: list | None = None,
    removed: list | None = None,
    modified: list | None = None,
) -> dict:
    return {
        "id": sha,
        "message": message,
        "author": {"name": "Alice", "email": "alice@example.com"},
        "url": f"https://github.com/acme/widgets/commit/{sha}",
        "added": added or [],
        "removed": removed or [],
        "modified": modified or [],
    }


def make_push_payload(
    commits: list | None = None,
    ref: str = "refs/heads/main",
    before: str = "6113728f27ae82c7b1a177c8d03f9e96e0adf246",
    after: str = "59b20b8d5c6ff8d09518454d4dd8b7b30f095ab5",
    compare: str | None = None,
) -> dict:
    commits = commits if commits is not None else [make_commit("59b20b8d", "Fix typo")]
    payload = {
        "ref": ref,
        "before": before,
        "after": after,
        "repository": copy.deepcopy(REPOSITORY),
        "sender": copy.deepcopy(SENDER),
        "commits": commits,
        "head_commit": commits[-1] if commits else None,
    }
    if compare is not None:
        payload["compare"] = compare
    return payload


SAMPLE_PUSH_PAYLOAD = make_push_payload(
    commits=[
        make_commit(
            "a1b2c3d4",
            "Add widget factory\n\nLonger description.",
            added=["widgets/factory.py"],
            modified=["README.md"],
        ),
        make_commit("e5f6a7b8", "Update+docs", modified=["README.md", "docs/index.md"]),
    ],
    compare="https://github.com/acme/widgets/compare/6113728f27ae...e5f6a7b8",
)

SAMPLE_PULL_REQUEST_PAYLOAD = {
    "action": "opened",
    "number": 7,
    "pull_request": {
        "number": 7,
        "title": "Add gizmo support",
        "html_url": "https://github.com/acme/widgets/pull/7",
        "state": "open",
        "draft": False,
        "base": {"ref": "main"},
        "head": {"ref": "feature/gizmo"},
        "user": {"login": "bob"},
        "merged": False,
        "merge_commit_sha": None,
        "additions": 120,
        "deletions": 4,
    },
    "repository": REPOSITORY,
    "sender": SENDER,
}

SAMPLE_ISSUES_PAYLOAD = {
    "action": "opened",
    "issue": {
        "number": 12,
        "title": "Widgets wobble",
        "html_url": "https://github.com/acme/widgets/issues/12",
        "state": "open",
        "user": {"login": "carol"},
        "labels": [{"name": "bug", "color": "d73a4a"}],
        "assignees": [{"login": "alice"}],
    },
    "repository": REPOSITORY,
    "sender": SENDER,
}

SAMPLE_CHECK_RUN_PAYLOAD = {
    "action": "completed",
    "check_run": {
        "name": "lint",
        "conclusion": "success",
        "status": "completed",
        "html_url": "https://github.com/acme/widgets/runs/4",
        "head_sha": "e5f6a7b8",
    },
    "repository": REPOSITORY,
    "sender": SENDER,
}

SAMPLE_CHECK_SUITE_PAYLOAD = {
    "action": "completed",
    "check_suite": {
        "conclusion": "failure",
        "status": "completed",
        "head_sha": "e5f6a7b8",
        "pull_requests": [{"number": 7}, {"number": 9}],
    },
    "repository": REPOSITORY,
    "sender": SENDER,
}

SAMPLE_WORKFLOW_RUN_PAYLOAD = {
    "action": "completed",
    "workflow_run": {
        "name": "CI",
        "conclusion": "success",
        "status": "completed",
        "html_url": "https://github.com/acme/widgets/actions/runs/30433642",
        "head_sha": "e5f6a7b8",
        "head_branch": "main",
        "event": "push",
        "run_number": 562,
        "run_attempt": 1,
    },
    "repository": REPOSITORY,
    "sender": SENDER,
}

SAMPLE_PING_PAYLOAD = {
    "zen": "Keep it logically awesome.",
    "hook_id": 123,
}


def encode(payload: dict) -> bytes:
    return json.dumps(payload).encode()

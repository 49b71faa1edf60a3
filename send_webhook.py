"""Send signed sample GitHub webhooks to a locally running notifier.

Usage: python send_webhook.py <webhook-secret> [base-url]
"""

import asyncio
import json
import sys
import uuid

import httpx

from notifier.signature import SignatureVerifier

DEFAULT_BASE_URL = "http://localhost:3000"

SAMPLE_PUSH = {
    "ref": "refs/heads/main",
    "before": "6113728f27ae82c7b1a177c8d03f9e96e0adf246",
    "after": "59b20b8d5c6ff8d09518454d4dd8b7b30f095ab5",
    "compare": "https://github.com/acme/widgets/compare/6113728f27ae...59b20b8d5c6f",
    "repository": {
        "full_name": "acme/widgets",
        "html_url": "https://github.com/acme/widgets",
    },
    "sender": {"login": "alice", "html_url": "https://github.com/alice"},
    "commits": [
        {
            "id": "59b20b8d5c6ff8d09518454d4dd8b7b30f095ab5",
            "message": "Add widget factory",
            "author": {"name": "Alice", "email": "alice@example.com"},
            "url": "https://github.com/acme/widgets/commit/59b20b8d",
            "added": ["widgets/factory.py"],
            "removed": [],
            "modified": ["README.md"],
        }
    ],
    "head_commit": {
        "id": "59b20b8d5c6ff8d09518454d4dd8b7b30f095ab5",
        "message": "Add widget factory",
    },
}

SAMPLE_PING = {"zen": "Keep it logically awesome.", "hook_id": 1}


async def _send(
    client: httpx.AsyncClient,
    url: str,
    verifier: SignatureVerifier,
    event_type: str,
    payload: dict,
    delivery_id: str | None = None,
) -> None:
    body = json.dumps(payload).encode()
    r = await client.post(
        url,
        content=body,
        headers={
            "Content-Type": "application/json",
            "X-GitHub-Event": event_type,
            "X-GitHub-Delivery": delivery_id or str(uuid.uuid4()),
            "X-Hub-Signature-256": "sha256=" + verifier.generate(body),
        },
    )
    print(f"  {r.status_code}: {r.json()}\n")


async def main():
    secret = sys.argv[1] if len(sys.argv) > 1 else ""
    if not secret:
        print("Usage: python send_webhook.py <webhook-secret> [base-url]")
        sys.exit(1)

    base_url = sys.argv[2] if len(sys.argv) > 2 else DEFAULT_BASE_URL
    webhook_url = f"{base_url}/webhook"
    verifier = SignatureVerifier(secret)

    async with httpx.AsyncClient() as client:
        print("--- Health Check ---")
        r = await client.get(f"{base_url}/health")
        print(f"  {r.status_code}: {r.json()}\n")

        print("--- Wrong secret (should be 401) ---")
        await _send(client, webhook_url, SignatureVerifier("wrong"), "push", SAMPLE_PUSH)

        print("--- Sending Ping ---")
        await _send(client, webhook_url, verifier, "ping", SAMPLE_PING)

        delivery_id = str(uuid.uuid4())
        print("--- Sending Push ---")
        await _send(client, webhook_url, verifier, "push", SAMPLE_PUSH, delivery_id)

        print("--- Replaying Push (should be deduped, no second message) ---")
        await _send(client, webhook_url, verifier, "push", SAMPLE_PUSH, delivery_id)

        print("Done! Check the chat and the server logs.")


if __name__ == "__main__":
    asyncio.run(main())

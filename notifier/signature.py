"""HMAC-SHA256 verification of GitHub webhook signatures."""

import hashlib
import hmac

SIGNATURE_PREFIX = "sha256="


class SignatureVerifier:
    def __init__(self, secret: str):
        self._secret = secret.encode("utf-8")

    def generate(self, payload: bytes | str) -> str:
        """Return the lowercase hex HMAC-SHA256 digest of ``payload``."""
        if isinstance(payload, str):
            payload = payload.encode("utf-8")
        return hmac.new(self._secret, payload, hashlib.sha256).hexdigest()

    def validate(self, raw_body: bytes | str, signature_header: str | None) -> bool:
        """Check an ``X-Hub-Signature-256`` header against ``raw_body``.

        Never raises: a missing, malformed or mismatching signature is False.
        Digests are compared as bytes with ``hmac.compare_digest``; a length
        mismatch is rejected before any content comparison.
        """
        if not signature_header:
            return False

        candidate = signature_header.strip()
        if candidate.startswith(SIGNATURE_PREFIX):
            candidate = candidate[len(SIGNATURE_PREFIX):]

        try:
            received = bytes.fromhex(candidate)
        except ValueError:
            return False

        expected = bytes.fromhex(self.generate(raw_body))
        if len(received) != len(expected):
            return False
        return hmac.compare_digest(received, expected)

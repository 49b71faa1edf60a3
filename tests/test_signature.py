"""Tests for webhook signature verification."""

import hashlib
import hmac

import pytest

from notifier.signature import SignatureVerifier

SECRET = "It's a Secret to Everybody"
BODY = b"Hello, World!"


@pytest.fixture
def verifier():
    return SignatureVerifier(SECRET)


def _hmac(body: bytes, secret: str = SECRET) -> str:
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def test_generate_matches_github_example(verifier):
    # Example from GitHub's webhook validation docs.
    assert verifier.generate(BODY) == (
        "757107ea0eb2509fc211221cce984b8a37570b6d7586c22c46f4379c8b043e17"
    )


def test_generate_accepts_str(verifier):
    assert verifier.generate("Hello, World!") == verifier.generate(BODY)


def test_valid_signature_with_prefix(verifier):
    assert verifier.validate(BODY, "sha256=" + _hmac(BODY)) is True


def test_valid_signature_without_prefix(verifier):
    assert verifier.validate(BODY, _hmac(BODY)) is True


@pytest.mark.parametrize("body", [b"", b"{}", b'{"zen": "Design for failure."}'])
def test_round_trip_for_various_bodies(verifier, body):
    assert verifier.validate(body, "sha256=" + verifier.generate(body))


def test_single_byte_mutation_fails(verifier):
    signature = "sha256=" + _hmac(BODY)
    for i in range(len(BODY)):
        mutated = bytearray(BODY)
        mutated[i] ^= 0x01
        assert verifier.validate(bytes(mutated), signature) is False


def test_wrong_secret_fails(verifier):
    assert verifier.validate(BODY, "sha256=" + _hmac(BODY, "other")) is False


@pytest.mark.parametrize("header", [None, "", "sha256="])
def test_missing_signature_is_false(verifier, header):
    assert verifier.validate(BODY, header) is False


def test_shorter_signature_with_matching_prefix_fails(verifier):
    digest = _hmac(BODY)
    assert verifier.validate(BODY, "sha256=" + digest[:32]) is False


def test_longer_signature_with_matching_prefix_fails(verifier):
    digest = _hmac(BODY)
    assert verifier.validate(BODY, "sha256=" + digest + "00") is False


def test_non_hex_signature_fails(verifier):
    assert verifier.validate(BODY, "sha256=" + "zz" * 32) is False

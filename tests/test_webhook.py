import hashlib
import hmac
import json

import pytest

from typst_package_check.core.exceptions import (
    MalformedPayloadError,
    UnsupportedEventError,
    WebhookVerificationError,
)
from typst_package_check.github.webhook import parse_event, verify_signature

SECRET = "It's a Secret to Everybody"
BODY = b"Hello, World!"


def sign(body: bytes, secret: str = SECRET, algorithm: str = "sha256") -> str:
    return f"{algorithm}=" + hmac.new(secret.encode(), body, getattr(hashlib, algorithm)).hexdigest()


def pull_request_payload(action="opened", sha="abc123", number=42):
    return {
        "action": action,
        "number": number,
        "pull_request": {"number": number, "head": {"sha": sha, "ref": "feature"}, "title": "Add mypkg"},
        "installation": {"id": 7},
        "repository": {"full_name": "typst/packages"},
    }


class TestVerifySignature:
    def test_documented_example(self):
        # Example from GitHub's webhook documentation.
        expected = "sha256=757107ea0eb2509fc211221cce984b8a37570b6d7586c22c46f4379c8b043e17"
        verify_signature(SECRET, BODY, {"X-Hub-Signature-256": expected})

    def test_sha1_fallback(self):
        verify_signature(SECRET, BODY, {"X-Hub-Signature": sign(BODY, algorithm="sha1")})

    def test_headers_are_case_insensitive(self):
        verify_signature(SECRET, BODY, {"x-hub-signature-256": sign(BODY)})

    def test_sha256_takes_precedence(self):
        headers = {"X-Hub-Signature-256": sign(BODY, secret="wrong"), "X-Hub-Signature": sign(BODY, algorithm="sha1")}
        with pytest.raises(WebhookVerificationError):
            verify_signature(SECRET, BODY, headers)

    def test_mismatch(self):
        with pytest.raises(WebhookVerificationError, match="does not match"):
            verify_signature(SECRET, BODY + b"!", {"X-Hub-Signature-256": sign(BODY)})

    def test_missing_signature(self):
        with pytest.raises(WebhookVerificationError, match="not signed"):
            verify_signature(SECRET, BODY, {})

    @pytest.mark.parametrize("value", ["sha1=abc", "sha256=", "garbage"])
    def test_malformed_header(self, value):
        with pytest.raises(WebhookVerificationError, match="Malformed"):
            verify_signature(SECRET, BODY, {"X-Hub-Signature-256": value})

    def test_empty_secret(self):
        with pytest.raises(WebhookVerificationError):
            verify_signature("", BODY, {"X-Hub-Signature-256": sign(BODY, secret="")})


class TestParseEvent:
    def test_pull_request(self):
        request = parse_event("pull_request", json.dumps(pull_request_payload()).encode(), "delivery-1")
        assert request.installation_id == 7
        assert request.repository.full_name == "typst/packages"
        assert request.head_sha == "abc123"
        assert request.pull_number == 42
        assert request.key == ("typst/packages", "abc123")
        assert request.delivery_id == "delivery-1"
        assert not request.rerequested

    @pytest.mark.parametrize("action", ["closed", "labeled", "edited"])
    def test_pull_request_actions_without_work(self, action):
        assert parse_event("pull_request", json.dumps(pull_request_payload(action)).encode()) is None

    def test_check_suite(self):
        payload = {
            "action": "rerequested",
            "check_suite": {
                "id": 5,
                "head_sha": "def456",
                "pull_requests": [{"number": 3, "head": {"sha": "def456"}}],
            },
            "installation": {"id": 7},
            "repository": {"full_name": "typst/packages"},
        }
        request = parse_event("check_suite", json.dumps(payload).encode())
        assert request.head_sha == "def456"
        assert request.pull_number == 3
        assert request.rerequested

    def test_check_suite_without_pull_request(self):
        payload = {
            "action": "requested",
            "check_suite": {"head_sha": "def456", "pull_requests": []},
            "installation": {"id": 7},
            "repository": {"full_name": "typst/packages"},
        }
        request = parse_event("check_suite", json.dumps(payload).encode())
        assert request.pull_number is None

    def test_check_run_rerequested(self):
        payload = {
            "action": "rerequested",
            "check_run": {
                "id": 99,
                "name": "@preview/mypkg:1.0.0",
                "head_sha": "def456",
                "check_suite": {"head_sha": "def456", "pull_requests": [{"number": 3, "head": {"sha": "def456"}}]},
            },
            "installation": {"id": 7},
            "repository": {"full_name": "typst/packages"},
        }
        request = parse_event("check_run", json.dumps(payload).encode())
        assert request.check_run.id == 99
        assert request.rerequested
        assert request.pull_number == 3

    def test_ignored_events(self):
        assert parse_event("ping", b"{}") is None
        assert parse_event("installation", b"not even json") is None

    def test_unsupported_event(self):
        with pytest.raises(UnsupportedEventError):
            parse_event("issues", b"{}")

    def test_invalid_json(self):
        with pytest.raises(MalformedPayloadError):
            parse_event("pull_request", b"{not json")

    def test_missing_fields(self):
        payload = pull_request_payload()
        del payload["installation"]
        with pytest.raises(MalformedPayloadError):
            parse_event("pull_request", json.dumps(payload).encode())

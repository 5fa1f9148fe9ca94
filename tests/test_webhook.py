"""
Tests for the POST /webhook/sms endpoint.

Tests cover:
- Acknowledgement for every accepted payload shape
- Normalized fields and raw payload persisted
- Form-encoded bodies
- Malformed JSON (400)
- Storage failures (500)
"""

import json

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from sms_inbox.main import create_app
from sms_inbox.storage import MessageStore


class FailingStore(MessageStore):
    """Store whose writes always fail."""

    def append(self, from_number, to_number, body, provider_raw):
        raise OperationalError("INSERT INTO sms", {}, Exception("database is locked"))


def post_json(client, payload):
    return client.post(
        "/webhook/sms",
        content=json.dumps(payload),
        headers={"Content-Type": "application/json"},
    )


class TestWebhookSuccess:
    """Test accepted webhook calls."""

    def test_flat_payload(self, client, store):
        """Test a flat payload is acknowledged and stored."""
        response = post_json(client, {
            "from": "+447700900000",
            "to": "+447911123456",
            "text": "Your OTP is 554433",
        })

        assert response.status_code == 200
        assert response.json() == {"received": True}

        [record] = store.recent(100)
        assert record.from_number == "+447700900000"
        assert record.to_number == "+447911123456"
        assert record.body == "Your OTP is 554433"

    def test_nested_payload(self, client, store):
        """Test a data.payload envelope is unwrapped before storing."""
        payload = {
            "data": {
                "event_type": "message.received",
                "payload": {"from_number": "+15550001111", "to_number": "+15550002222", "body": "hi"},
            }
        }
        response = post_json(client, payload)

        assert response.status_code == 200
        [record] = store.recent(100)
        assert record.from_number == "+15550001111"
        assert record.to_number == "+15550002222"
        assert record.body == "hi"

    def test_raw_payload_kept_verbatim(self, client, store):
        """Test the whole original body is stored, not just the inner payload."""
        payload = {"data": {"payload": {"msisdn": "447700900000", "message": "Código 1234"}}, "id": "evt_1"}
        post_json(client, payload)

        [record] = store.recent(100)
        assert json.loads(record.provider_raw) == payload
        assert "Código" in record.provider_raw

    @pytest.mark.parametrize("body", ["{}", "[]", "null", '"text"', ""])
    def test_shapeless_payload_stored_with_defaults(self, client, store, body):
        """Test payloads without any known field are still accepted."""
        response = client.post(
            "/webhook/sms",
            content=body,
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 200
        [record] = store.recent(100)
        assert record.from_number == "unknown"
        assert record.to_number == "unknown"
        assert record.body == ""

    def test_form_encoded_payload(self, client, store):
        """Test url-encoded provider callbacks are accepted."""
        response = client.post(
            "/webhook/sms",
            content="msisdn=447700900000&to=447911123456&text=Code+123-456",
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )

        assert response.status_code == 200
        [record] = store.recent(100)
        assert record.from_number == "447700900000"
        assert record.body == "Code 123-456"
        assert json.loads(record.provider_raw)["msisdn"] == "447700900000"

    def test_form_encoded_nested_envelope(self, client, store):
        """Test bracketed form keys unwrap like a JSON data.payload envelope."""
        response = client.post(
            "/webhook/sms",
            content="data[payload][from]=%2B447700900000&data[payload][to]=%2B447911123456&data[payload][text]=Code+1234",
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )

        assert response.status_code == 200
        [record] = store.recent(100)
        assert record.from_number == "+447700900000"
        assert record.to_number == "+447911123456"
        assert record.body == "Code 1234"

    def test_lone_surrogate_still_stored(self, client, store):
        """Test a split emoji escape is replaced instead of failing the insert."""
        body = '{"from":"+447700900000","to":"+447911123456","text":"Code 554433 \\ud83d"}'
        response = client.post(
            "/webhook/sms",
            content=body,
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 200
        assert response.json() == {"received": True}
        [record] = store.recent(100)
        assert record.body == "Code 554433 ?"
        assert json.loads(record.provider_raw)["text"] == "Code 554433 ?"
        assert client.get("/messages").json()["data"][0]["otp"] == "554433"

    def test_response_includes_request_id_header(self, client):
        response = post_json(client, {"text": "hi"})
        assert "x-request-id" in response.headers


class TestWebhookErrors:
    """Test webhook failure responses."""

    def test_invalid_json(self, client, store):
        """Test a body that is not JSON is rejected with 400."""
        response = client.post(
            "/webhook/sms",
            content="not valid json",
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 400
        assert response.json() == {"error": "invalid_json"}
        assert store.recent(100) == []

    def test_deeply_nested_json(self, client, store):
        """Test JSON nested past the parser recursion limit is rejected with 400."""
        body = '{"text":"x","extra":' + "[" * 50000 + "]" * 50000 + "}"
        response = client.post(
            "/webhook/sms",
            content=body,
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 400
        assert response.json() == {"error": "invalid_json"}
        assert store.recent(100) == []

    def test_storage_failure(self, tmp_path):
        """Test a failing store produces a generic 500 and the app keeps serving."""
        failing = FailingStore(f"sqlite:///{tmp_path / 'sms.db'}")

        with TestClient(create_app(store=failing)) as client:
            response = post_json(client, {"from": "+1", "text": "1234"})
            assert response.status_code == 500
            assert response.json() == {"error": "internal_error"}

            assert client.get("/health").status_code == 200

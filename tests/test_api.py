"""Tests for the FastAPI endpoints."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from recall_outreach.agent import AgentTimeoutError
from recall_outreach.server import app

VALID_RECORD = {
    "phone": "+15550001111",
    "first_name": "Sam",
    "last_name": "Rivera",
    "vin": "2T1BURHE0JC000001",
    "year": "2018",
    "make": "Toyota",
    "recall_code": "23V-456",
    "recall_desc": "Airbag inflator may rupture",
    "language": "English",
}


@pytest.fixture
def mock_queue():
    queue = MagicMock()
    queue.send_to_sms_queue = AsyncMock()
    return queue


@pytest.fixture
def client(database, mock_queue):
    """FastAPI test client wired to the test database (mirrors the lifespan)."""
    app.state.database = database
    app.state.llm = MagicMock()
    app.state.queue = mock_queue
    yield TestClient(app)
    app.state.database = None
    app.state.llm = None
    app.state.queue = None


@pytest.fixture
def mock_agent():
    with patch(
        "recall_outreach.api.routes.generate_agent_response_async",
        new_callable=AsyncMock,
    ) as agent:
        agent.return_value = "Hi Jane! We have openings Friday at 10 AM and 2 PM."
        yield agent


class TestHealthEndpoint:
    def test_health_returns_ok(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["service"] == "recall-outreach-agent"

    def test_root_lists_service_info(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["service"] == "Recall Outreach Agent"

    def test_request_id_is_echoed(self, client):
        response = client.get("/api/health", headers={"X-Request-ID": "req-42"})
        assert response.headers["X-Request-ID"] == "req-42"

    def test_request_id_is_generated(self, client):
        response = client.get("/api/health")
        assert response.headers["X-Request-ID"]


class TestAvailabilityEndpoint:
    def test_weekday(self, client):
        response = client.get("/api/availability/2024-03-15")
        assert response.status_code == 200
        data = response.json()
        assert data["available"] is True
        assert data["slots"][0] == "9:00 AM"
        assert len(data["slots"]) == 8

    def test_weekend(self, client):
        data = client.get("/api/availability/2024-03-16").json()
        assert data["available"] is False
        assert data["slots"] == []

    def test_invalid_date(self, client):
        assert client.get("/api/availability/not-a-date").status_code == 422

    def test_unavailable_before_startup(self):
        app.state.database = None
        response = TestClient(app).get("/api/availability/2024-03-15")
        assert response.status_code == 503


class TestAppointmentEndpoints:
    def test_book_and_list(self, client, make_contact):
        contact = make_contact()
        response = client.post(
            f"/api/contacts/{contact.id}/appointments",
            json={"date_time": "2024-03-15T10:00:00"},
        )
        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["appointmentId"]

        listed = client.get(f"/api/contacts/{contact.id}/appointments").json()
        assert [a["id"] for a in listed] == [data["appointmentId"]]
        assert listed[0]["scheduled_at"] == "2024-03-15T10:00:00"

    def test_business_rule_failure_is_200(self, client, make_contact):
        contact = make_contact()
        response = client.post(
            f"/api/contacts/{contact.id}/appointments",
            json={"date_time": "2024-03-16T10:00:00"},
        )
        assert response.status_code == 200
        data = response.json()
        assert data["success"] is False
        assert data["appointmentId"] is None

    def test_double_booking_is_rejected(self, client, make_contact):
        first = make_contact()
        second = make_contact()
        client.post(f"/api/contacts/{first.id}/appointments", json={"date_time": "2024-03-15T10:00:00"})
        data = client.post(
            f"/api/contacts/{second.id}/appointments",
            json={"date_time": "2024-03-15T10:15:00"},
        ).json()
        assert data["success"] is False
        assert "already booked" in data["message"]

    def test_missing_date_time(self, client, make_contact):
        contact = make_contact()
        response = client.post(f"/api/contacts/{contact.id}/appointments", json={})
        assert response.status_code == 422


class TestContactEndpoints:
    def test_search(self, client, make_contact):
        make_contact(first_name="Maria", last_name="Lopez")
        make_contact(first_name="Tom", last_name="Baker")

        data = client.get("/api/contacts", params={"q": "lopez"}).json()
        assert [c["first_name"] for c in data] == ["Maria"]

    def test_messages_empty(self, client, make_contact):
        contact = make_contact()
        assert client.get(f"/api/contacts/{contact.id}/messages").json() == []


class TestInboundMessageEndpoint:
    def test_returns_reply_and_records_both_messages(self, client, make_contact, mock_agent):
        contact = make_contact()
        response = client.post(
            f"/api/contacts/{contact.id}/messages",
            json={"message": "When can I bring my car in?"},
        )
        assert response.status_code == 200
        data = response.json()
        assert data["contact_id"] == contact.id
        assert "Friday" in data["reply"]

        history = client.get(f"/api/contacts/{contact.id}/messages").json()
        assert sorted(m["direction"] for m in history) == ["inbound", "outbound"]

    def test_agent_receives_context(self, client, make_contact, mock_agent):
        contact = make_contact()
        client.post(f"/api/contacts/{contact.id}/messages", json={"message": "Hi"})

        _, context, llm = mock_agent.call_args[0]
        assert context.contact_id == contact.id
        assert context.message == "Hi"
        assert llm is app.state.llm

    def test_unknown_contact_is_404(self, client, mock_agent):
        response = client.post("/api/contacts/missing/messages", json={"message": "Hi"})
        assert response.status_code == 404
        mock_agent.assert_not_called()

    def test_opted_out_contact_is_409(self, client, make_contact, mock_agent):
        contact = make_contact(opt_out=True)
        response = client.post(f"/api/contacts/{contact.id}/messages", json={"message": "Hi"})
        assert response.status_code == 409
        mock_agent.assert_not_called()

    def test_validates_empty_message(self, client, make_contact):
        contact = make_contact()
        response = client.post(f"/api/contacts/{contact.id}/messages", json={"message": ""})
        assert response.status_code == 422

    def test_agent_error_is_500_without_details(self, client, make_contact, mock_agent):
        contact = make_contact()
        mock_agent.side_effect = RuntimeError("LLM exploded")
        response = client.post(f"/api/contacts/{contact.id}/messages", json={"message": "Hi"})
        assert response.status_code == 500
        assert "exploded" not in response.json()["detail"]

    def test_agent_timeout_is_504(self, client, make_contact, mock_agent):
        contact = make_contact()
        mock_agent.side_effect = AgentTimeoutError("too slow")
        response = client.post(f"/api/contacts/{contact.id}/messages", json={"message": "Hi"})
        assert response.status_code == 504


class TestCampaignEndpoints:
    def test_create_stats_and_delete(self, client):
        response = client.post("/api/campaigns", json={"contacts": [VALID_RECORD]})
        assert response.status_code == 201
        created = response.json()
        assert created["count"] == 1
        assert created["queued"] == 0

        stats = client.get(f"/api/campaigns/{created['campaign_id']}/stats").json()
        assert (stats["sent"], stats["delivered"], stats["scheduled"]) == (1, 0, 0)

        assert client.delete(f"/api/campaigns/{created['campaign_id']}").status_code == 204
        assert client.delete(f"/api/campaigns/{created['campaign_id']}").status_code == 404

    def test_outreach_messages_are_queued(self, client, mock_queue):
        record = dict(VALID_RECORD, outreach_message="Hi Sam, your Toyota has an open recall.")
        response = client.post("/api/campaigns", json={"contacts": [record]})

        assert response.json()["queued"] == 1
        payload = mock_queue.send_to_sms_queue.await_args[0][0]
        assert payload["message"] == "Hi Sam, your Toyota has an open recall."
        assert payload["direction"] == "outbound"
        assert payload["campaignId"] == response.json()["campaign_id"]

    def test_invalid_record_is_rejected(self, client):
        bad = dict(VALID_RECORD, year="unknown")
        assert client.post("/api/campaigns", json={"contacts": [bad]}).status_code == 422

    def test_empty_campaign_is_rejected(self, client):
        assert client.post("/api/campaigns", json={"contacts": []}).status_code == 422

    def test_publish_failure_still_returns_the_campaign(self, client, mock_queue):
        records = [
            dict(VALID_RECORD, phone=f"+1555000{i:04d}", outreach_message=f"Recall notice {i}")
            for i in range(3)
        ]
        mock_queue.send_to_sms_queue.side_effect = [None, ConnectionError("broker gone"), None]

        response = client.post("/api/campaigns", json={"contacts": records})

        assert response.status_code == 201
        data = response.json()
        assert data["count"] == 3
        assert data["queued"] == 2
        assert data["failed"] == 1
        assert mock_queue.send_to_sms_queue.await_count == 3

        stats = client.get(f"/api/campaigns/{data['campaign_id']}/stats")
        assert stats.status_code == 200

    def test_outreach_without_queue_is_reported_as_failed(self, client):
        app.state.queue = None
        record = dict(VALID_RECORD, outreach_message="Hi Sam")
        data = client.post("/api/campaigns", json={"contacts": [record]}).json()
        assert (data["queued"], data["failed"]) == (0, 1)

    def test_stats_for_unknown_campaign_is_404(self, client):
        assert client.get("/api/campaigns/missing/stats").status_code == 404


class TestOptOutEndpoint:
    def test_opt_out_stops_replies(self, client, make_contact, mock_agent):
        contact = make_contact()

        response = client.put(f"/api/contacts/{contact.id}/opt-out", json={"opt_out": True})
        assert response.status_code == 200
        assert response.json()["opt_out"] is True

        reply = client.post(f"/api/contacts/{contact.id}/messages", json={"message": "STOP"})
        assert reply.status_code == 409
        mock_agent.assert_not_called()

    def test_opt_back_in(self, client, make_contact, mock_agent):
        contact = make_contact(opt_out=True)

        response = client.put(f"/api/contacts/{contact.id}/opt-out", json={"opt_out": False})
        assert response.json()["opt_out"] is False

        reply = client.post(f"/api/contacts/{contact.id}/messages", json={"message": "Hi again"})
        assert reply.status_code == 200

    def test_default_body_opts_out(self, client, make_contact):
        contact = make_contact()
        assert client.put(f"/api/contacts/{contact.id}/opt-out", json={}).json()["opt_out"] is True

    def test_unknown_contact_is_404(self, client):
        assert client.put("/api/contacts/missing/opt-out", json={}).status_code == 404

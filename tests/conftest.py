"""Shared test fixtures for the Recall Outreach test suite."""

from __future__ import annotations

import itertools
import os
from datetime import datetime
from unittest.mock import MagicMock

import pytest


def pytest_configure(config):
    """Set test environment variables BEFORE collection starts.

    This runs before any imports, so config.py won't fail on module load.
    """
    os.environ.setdefault("ANTHROPIC_API_KEY", "test-anthropic-key-123")
    os.environ.setdefault("DATABASE_URL", "sqlite://")
    os.environ.setdefault("METRICS_ENABLED", "false")


@pytest.fixture
def database():
    """A fresh in-memory database with the schema created."""
    from recall_outreach.db.session import Database

    db = Database("sqlite://")
    db.create_all()
    yield db
    db.dispose()


@pytest.fixture
def make_contact(database):
    """Factory fixture: create a campaign (or reuse one) and a contact in it."""
    from recall_outreach.db.models import Campaign, Contact

    counter = itertools.count(1)

    def _make(campaign_id: str | None = None, **overrides):
        n = next(counter)
        with database.session_scope() as session:
            if campaign_id is None:
                campaign = Campaign()
                session.add(campaign)
                session.flush()
                campaign_id = campaign.id
            fields = {
                "phone": f"+1555000{n:04d}",
                "first_name": "Jane",
                "last_name": f"Driver{n}",
                "vin": f"1HGCM82633A{n:06d}",
                "year": 2019,
                "make": "Honda",
                "recall_code": "24V-123",
                "recall_desc": "Fuel pump may fail",
                "language": "English",
            }
            fields.update(overrides)
            contact = Contact(campaign_id=campaign_id, **fields)
            session.add(contact)
            session.flush()
            return contact

    return _make


@pytest.fixture
def add_message(database):
    """Insert a message with an explicit timestamp (avoids clock ties in ordering tests)."""
    from recall_outreach.db.models import Direction, Message

    def _add(contact_id: str, body: str, direction: str, created_at: datetime, campaign_id: str | None = None):
        with database.session_scope() as session:
            message = Message(
                contact_id=contact_id,
                campaign_id=campaign_id,
                body=body,
                direction=Direction(direction),
                created_at=created_at,
            )
            session.add(message)
        return message

    return _add


@pytest.fixture
def scripted_llm():
    """Factory for a mock chat model whose bound-tools invoke() replays a script.

    Each script entry is either a string (plain text reply) or a list of
    ``(tool_name, args)`` tuples (a tool-calling reply).  Every call builds
    a fresh ``AIMessage`` so the graph's message reducer appends rather than
    replaces.  The last entry repeats once the script runs out.
    """
    from langchain_core.messages import AIMessage

    def _make(*script):
        ids = itertools.count(1)
        calls = {"n": 0}

        def _invoke(messages, *args, **kwargs):
            entry = script[min(calls["n"], len(script) - 1)]
            calls["n"] += 1
            if isinstance(entry, str):
                return AIMessage(content=entry)
            return AIMessage(
                content="",
                tool_calls=[
                    {"name": name, "args": tool_args, "id": f"call_{next(ids)}", "type": "tool_call"}
                    for name, tool_args in entry
                ],
            )

        llm = MagicMock()
        bound = MagicMock()
        bound.invoke.side_effect = _invoke
        llm.bind_tools.return_value = bound
        return llm

    return _make

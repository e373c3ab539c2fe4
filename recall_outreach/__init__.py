"""Recall Outreach — SMS recall campaigns with an AI scheduling agent.

Architecture Overview
=====================

Dealership recall campaigns send each affected owner an SMS.  Replies are
answered by a **LangGraph** agent that can look up free service slots and
book one on the owner's behalf.

Flow of one inbound SMS:

1. The **agent worker** consumes the message from ``agent_queue``, loads
   the contact and the last 10 messages, records the new message, and runs
   the agent.
2. The **agent** (Claude via ``langchain-anthropic``) may call
   ``check_availability`` / ``schedule_appointment`` for at most three
   model steps, then replies with plain text.
3. The reply is published to ``sms_queue``; the **SMS worker** stores it in
   the conversation history.  Carrier delivery is handled elsewhere.

Key Design Decisions
--------------------
- **Single service bay**: at most one appointment per clock hour across all
  contacts and campaigns, enforced by a unique constraint on
  ``appointments.scheduled_at`` as well as a pre-insert check.
- **Business rules are results, not exceptions**: weekend, out-of-hours,
  unknown contact and slot-taken outcomes come back as
  ``ScheduleResult(success=False, ...)`` so the model can explain them.
- **Bounded turns**: a step cap plus a wall-clock timeout per inbound SMS.
- **Owned resources**: the database and the RabbitMQ pool are objects
  created by each entry point and passed down, never module globals.

Package Structure
-----------------
- ``recall_outreach/agent.py`` — LangGraph StateGraph and turn runner
- ``recall_outreach/config.py`` — Configuration from environment variables
- ``recall_outreach/prompts.py`` — System prompt with customer context
- ``recall_outreach/server.py`` — FastAPI application
- ``recall_outreach/main.py`` — CLI chat interface
- ``recall_outreach/db/`` — SQLAlchemy models and session handling
- ``recall_outreach/services/`` — Slots, availability, scheduler, queue, metrics
- ``recall_outreach/tools/`` — LangChain tools exposed to the agent
- ``recall_outreach/workers/`` — RabbitMQ consumers
- ``recall_outreach/api/`` — FastAPI routes and Pydantic schemas
"""

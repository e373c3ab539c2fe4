"""LangGraph agent that answers one inbound recall SMS.

Architecture:
  Each inbound message runs a small StateGraph with two nodes:

    1. **chatbot** — Claude, bound to the scheduling tools, reads the
                     system prompt, the recent SMS history and the new
                     message  (state: awaiting model)
    2. **tools**   — executes the tool calls the model asked for
                     (state: tool executing)

  Routing:
    chatbot → (tool calls and step budget left?) → tools → chatbot (loop)
            → (plain answer or budget spent?)    → END (done)

  The step budget is ``AGENT_MAX_STEPS`` model calls per inbound message.
  Tool calls requested on the last allowed step are not executed; whatever
  text came with them becomes the reply, or a fixed fallback if there is
  none.

  Memory:
    There is no checkpointer.  History lives in the ``messages`` table and
    the last ``HISTORY_LIMIT`` messages are replayed into every turn.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from typing import Annotated

from langchain_anthropic import ChatAnthropic
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, AnyMessage, HumanMessage, SystemMessage
from langgraph.graph import END, StateGraph
from langgraph.graph.message import add_messages
from langgraph.prebuilt import ToolNode
from typing_extensions import TypedDict

from recall_outreach.config import (
    AGENT_MAX_STEPS,
    AGENT_TIMEOUT_SECONDS,
    ANTHROPIC_API_KEY,
    MODEL_NAME,
)
from recall_outreach.db.models import Direction
from recall_outreach.db.session import Database
from recall_outreach.prompts import get_system_prompt
from recall_outreach.services.conversations import AgentContext, HistoryEntry
from recall_outreach.services.metrics import metrics
from recall_outreach.tools.scheduling import make_scheduling_tools, raise_if_cancelled

logger = logging.getLogger(__name__)

FALLBACK_REPLY = (
    "Thanks for your message! A member of our service team will follow up with you shortly."
)


class AgentTimeoutError(Exception):
    """Raised when one agent turn exceeds its wall-clock budget."""


# ── State schema ─────────────────────────────────────────────────────


class AgentState(TypedDict):
    """The state that flows through the graph.

    ``messages`` uses the ``add_messages`` reducer so nodes append rather
    than overwrite.  ``steps`` counts model calls made so far in this turn.
    """

    messages: Annotated[list[AnyMessage], add_messages]
    steps: int


# ── LLM builder ─────────────────────────────────────────────────────


def build_llm() -> ChatAnthropic:
    """Build the Claude client shared by every turn (tools are bound per turn)."""
    return ChatAnthropic(
        model=MODEL_NAME,
        api_key=ANTHROPIC_API_KEY,
        temperature=0.1,
        max_tokens=512,  # SMS replies are short
        timeout=AGENT_TIMEOUT_SECONDS,
        max_retries=0,  # redelivery is the queue's job
    )


# ── Message helpers ──────────────────────────────────────────────────


def history_to_messages(history: list[HistoryEntry]) -> list[AnyMessage]:
    """Map stored SMS history onto chat roles: customer → human, system → AI."""
    messages: list[AnyMessage] = []
    for entry in history:
        if entry.direction == Direction.INBOUND:
            messages.append(HumanMessage(content=entry.body))
        else:
            messages.append(AIMessage(content=entry.body))
    return messages


def extract_reply(message: AnyMessage) -> str:
    """Return the text of a model message, joining text blocks if needed."""
    content = message.content
    if isinstance(content, str):
        return content.strip()

    parts: list[str] = []
    for block in content:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(block.get("text", ""))
    return "".join(parts).strip()


# ── Node: chatbot ───────────────────────────────────────────────────


def _make_chatbot_node(llm_with_tools, system_prompt: str, cancel_event: threading.Event | None = None):
    """Create the chatbot node; the bound model is captured in the closure."""

    def chatbot_node(state: AgentState) -> dict:
        """Invoke the model with the system prompt and the turn's messages."""
        raise_if_cancelled(cancel_event)
        step = state.get("steps", 0) + 1
        logger.debug("chatbot step %d — model: %s", step, MODEL_NAME)
        t0 = time.perf_counter()
        try:
            response = llm_with_tools.invoke([SystemMessage(content=system_prompt)] + state["messages"])
        except Exception as exc:
            elapsed = (time.perf_counter() - t0) * 1000
            metrics.record_failure(
                "anthropic", "llm_invoke",
                error_type=type(exc).__name__, latency_ms=elapsed,
            )
            raise
        elapsed = (time.perf_counter() - t0) * 1000
        metrics.record_success("anthropic", "llm_invoke", latency_ms=elapsed)
        logger.debug("chatbot step %d responded in %.0fms", step, elapsed)
        return {"messages": [response], "steps": step}

    return chatbot_node


# ── Conditional edge ────────────────────────────────────────────────


def should_use_tools(state: AgentState, max_steps: int = AGENT_MAX_STEPS) -> str:
    """Route to the tools node while the model asks for tools and budget remains."""
    if state.get("steps", 0) >= max_steps:
        return END
    last_message = state["messages"][-1]
    if getattr(last_message, "tool_calls", None):
        return "tools"
    return END


# ── Graph assembly ───────────────────────────────────────────────────


def create_recall_agent(
    database: Database,
    context: AgentContext,
    llm: BaseChatModel | None = None,
    *,
    max_steps: int = AGENT_MAX_STEPS,
    cancel_event: threading.Event | None = None,
):
    """Build and compile the agent graph for one contact's turn.

    Returns a compiled graph that can be invoked with:
        graph.invoke({"messages": [...], "steps": 0})
    """
    tools = make_scheduling_tools(database, context.contact_id, cancel_event)
    llm = llm or build_llm()
    system_prompt = get_system_prompt(context.customer)

    graph = StateGraph(AgentState)
    graph.add_node("chatbot", _make_chatbot_node(llm.bind_tools(tools), system_prompt, cancel_event))
    # Storage errors inside a tool must fail the turn, not be fed back to the model
    graph.add_node("tools", ToolNode(tools, handle_tool_errors=False))

    graph.set_entry_point("chatbot")
    graph.add_conditional_edges(
        "chatbot",
        lambda state: should_use_tools(state, max_steps),
        {"tools": "tools", END: END},
    )
    graph.add_edge("tools", "chatbot")
    return graph.compile()


def generate_agent_response(
    database: Database,
    context: AgentContext,
    llm: BaseChatModel | None = None,
    *,
    max_steps: int = AGENT_MAX_STEPS,
    cancel_event: threading.Event | None = None,
) -> str:
    """Run one bounded agent turn and return the SMS reply text.

    Model and tool errors propagate to the caller.  Setting *cancel_event*
    stops the turn at the next model call or booking with
    ``TurnCancelledError``.
    """
    agent = create_recall_agent(database, context, llm, max_steps=max_steps, cancel_event=cancel_event)
    messages = history_to_messages(context.conversation_history)
    messages.append(HumanMessage(content=context.message))

    result = agent.invoke(
        {"messages": messages, "steps": 0},
        # chatbot + tools per step, plus the final chatbot hop
        config={"recursion_limit": 2 * max_steps + 2},
    )

    last_ai = next(
        (m for m in reversed(result.get("messages", [])) if isinstance(m, AIMessage)),
        None,
    )
    reply = extract_reply(last_ai) if last_ai is not None else ""
    if not reply:
        logger.warning(
            "Agent produced no text for contact %s after %d steps; using fallback",
            context.contact_id, result.get("steps", 0),
        )
        return FALLBACK_REPLY

    logger.info("Agent replied to contact %s in %d step(s)", context.contact_id, result.get("steps", 0))
    return reply


async def generate_agent_response_async(
    database: Database,
    context: AgentContext,
    llm: BaseChatModel | None = None,
    *,
    timeout: float = AGENT_TIMEOUT_SECONDS,
) -> str:
    """Run :func:`generate_agent_response` in a worker thread with a deadline.

    The graph call is blocking (it talks to the Anthropic API), so it is
    offloaded with ``asyncio.to_thread`` to keep the event loop free.  A
    thread cannot be cancelled, so on timeout the turn is told to stop: it
    makes no further model calls and commits no booking.
    """
    cancel_event = threading.Event()
    try:
        return await asyncio.wait_for(
            asyncio.to_thread(generate_agent_response, database, context, llm, cancel_event=cancel_event),
            timeout=timeout,
        )
    except TimeoutError as exc:
        cancel_event.set()
        raise AgentTimeoutError(
            f"Agent turn for contact {context.contact_id} exceeded {timeout:.0f}s"
        ) from exc
    except asyncio.CancelledError:
        # The caller went away (client disconnect, worker shutdown)
        cancel_event.set()
        raise

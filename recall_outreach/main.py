"""CLI entry point: chat with the agent as if you were a recall contact.

Messages are written to the same conversation history the SMS workers
use, so a CLI session continues where the SMS thread left off.

Usage:
    python -m recall_outreach.main                        # list contacts
    python -m recall_outreach.main --contact-id <id>      # chat as that contact
    python -m recall_outreach.main --contact-id <id> --debug
"""

from __future__ import annotations

import argparse
import logging

from dotenv import load_dotenv

from recall_outreach.agent import build_llm, generate_agent_response
from recall_outreach.db.session import Database
from recall_outreach.services.conversations import search_contacts
from recall_outreach.services.inbound import record_reply, start_turn

logger = logging.getLogger(__name__)


def _configure_logging(debug: bool = False) -> None:
    """Set up logging: WARNING by default, DEBUG when --debug is passed."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    )

    if not debug:
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)

    logging.getLogger("recall_outreach").setLevel(logging.DEBUG if debug else logging.INFO)


def _print_contacts(database: Database) -> None:
    with database.session_scope() as session:
        contacts = search_contacts(session, "")
        if not contacts:
            print("No contacts yet. Create a campaign first (POST /api/campaigns).")
            return
        print("Contacts:")
        for contact in contacts:
            print(f"  {contact.id}  {contact.full_name}  {contact.phone}")


def _chat(database: Database, contact_id: str) -> None:
    print("\n" + "=" * 60)
    print("  Recall Outreach Agent - CLI Chat")
    print("=" * 60)
    print("  Type an SMS and press Enter. 'quit' to exit.")
    print("=" * 60 + "\n")

    llm = build_llm()

    while True:
        try:
            user_input = input("You: ").strip()
        except (KeyboardInterrupt, EOFError):
            print("\n\nGoodbye!")
            break

        if not user_input:
            continue

        if user_input.lower() in ("exit", "quit", "q"):
            print("\nGoodbye!")
            break

        try:
            context = start_turn(database, contact_id, user_input)
            if context is None:
                print("\n(no reply: contact not found or opted out)\n")
                continue

            reply = generate_agent_response(database, context, llm)
            record_reply(database, context, reply)
            print(f"\nAgent: {reply}\n")

        except KeyboardInterrupt:
            print("\n\nGoodbye!")
            break
        except Exception as e:
            logger.exception("Error processing message")
            print(f"\nAgent: something went wrong: {e}\n")


def main():
    """Run the interactive CLI chat loop."""
    parser = argparse.ArgumentParser(description="Recall Outreach agent CLI")
    parser.add_argument("--contact-id", help="Contact to impersonate")
    parser.add_argument(
        "--debug", action="store_true",
        help="Show all log messages including HTTP requests",
    )
    args = parser.parse_args()

    load_dotenv()
    _configure_logging(debug=args.debug)

    database = Database()
    try:
        database.create_all()
        if args.contact_id:
            _chat(database, args.contact_id)
        else:
            _print_contacts(database)
    finally:
        database.dispose()


if __name__ == "__main__":
    main()

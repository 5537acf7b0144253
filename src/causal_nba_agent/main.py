"""
Main entry point for the Causal NBA Agent command line.
"""

import argparse
import asyncio
import json
import logging
import sys
from uuid import UUID

from causal_nba_agent.config import get_settings
from causal_nba_agent.data.provider import InMemoryDataProvider
from causal_nba_agent.db.repository import SqlSessionStore
from causal_nba_agent.db.store import InMemorySessionStore, SessionStore
from causal_nba_agent.errors import InsightAgentError
from causal_nba_agent.events.notifier import Subscription
from causal_nba_agent.orchestrator.service import InsightService


def setup_logging() -> None:
    """Configure application logging."""
    settings = get_settings()
    logging.basicConfig(
        level=logging.DEBUG if settings.debug else getattr(logging, settings.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="causal-nba-agent")
    parser.add_argument(
        "--store",
        choices=["memory", "sql"],
        default="memory",
        help="Keep sessions in memory (this run only) or in the configured database",
    )
    parser.add_argument("--data", default=None, help="Path to the prescriber data JSON file")

    commands = parser.add_subparsers(dest="command", required=True)

    investigate = commands.add_parser("investigate", help="Run a causal investigation")
    investigate.add_argument("subject_id", type=int)
    investigate.add_argument("--watch", action="store_true", help="Print live session events")

    recommend = commands.add_parser("recommend", help="Generate a Next Best Action")
    recommend.add_argument("subject_id", type=int)
    recommend.add_argument("--session-id", type=UUID, default=None, help="Reuse a pending session")
    recommend.add_argument("--watch", action="store_true", help="Print live session events")

    confirm = commands.add_parser("confirm", help="Confirm proven hypotheses")
    confirm.add_argument("subject_id", type=int)
    confirm.add_argument("hypothesis_ids", nargs="+")
    confirm.add_argument("--notes", default="")

    show = commands.add_parser("show", help="Show a session trace")
    show.add_argument("session_id", type=UUID)

    latest = commands.add_parser("latest", help="Show the latest investigation of a prescriber")
    latest.add_argument("subject_id", type=int)

    return parser


def _print_json(payload: object) -> None:
    print(json.dumps(payload, indent=2, default=str))


async def _watch(subscription: Subscription) -> None:
    async for event in subscription:
        print(f"[{event.type.value}] {json.dumps(event.payload, default=str)}")


async def _run_and_report(service: InsightService, session_id: UUID, watch: bool) -> None:
    print(f"Session: {session_id}")
    watcher = asyncio.create_task(_watch(service.subscribe(session_id))) if watch else None

    session = await service.wait_for(session_id)
    if watcher is not None:
        await watcher

    print(f"Status: {session.status.value}")
    if session.final_outcome:
        print(session.final_outcome)


def _reads_earlier_runs(args: argparse.Namespace) -> bool:
    if args.command in ("confirm", "show", "latest"):
        return True
    return args.command == "recommend" and args.session_id is not None


async def _open_store(kind: str) -> SessionStore:
    if kind == "sql":
        store = SqlSessionStore.from_url(get_settings().database_url)
        await store.create_all()
        return store
    return InMemorySessionStore()


async def run_command(argv: list[str] | None = None) -> None:
    """Parse arguments and run one command against a fresh service."""
    settings = get_settings()
    logger = logging.getLogger(__name__)
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.store == "memory" and _reads_earlier_runs(args):
        parser.error(f"'{args.command}' needs sessions from an earlier run; use --store sql")

    data = InMemoryDataProvider.from_json(args.data or settings.data_path)
    store = await _open_store(args.store)
    service = InsightService(store=store, data=data)
    logger.debug(f"Using LLM model: {settings.llm_model_name}")

    try:
        if args.command == "investigate":
            session_id = await service.start_investigation(args.subject_id)
            await _run_and_report(service, session_id, args.watch)
        elif args.command == "recommend":
            session_id = await service.start_recommendation(args.subject_id, args.session_id)
            await _run_and_report(service, session_id, args.watch)
        elif args.command == "confirm":
            confirmation = await service.confirm_investigation(args.subject_id, args.hypothesis_ids, args.notes)
            _print_json(confirmation.model_dump(mode="json"))
        elif args.command == "show":
            details = await service.get_session_details(args.session_id)
            _print_json(details.model_dump(mode="json"))
        elif args.command == "latest":
            view = await service.get_latest_investigation(args.subject_id)
            _print_json(view.model_dump(mode="json"))
    finally:
        await service.shutdown()
        await store.close()


def main() -> None:
    """Main entry point for the application."""
    setup_logging()

    try:
        asyncio.run(run_command(sys.argv[1:]))
    except KeyboardInterrupt:
        print("\nSession terminated by user.")
        sys.exit(0)
    except InsightAgentError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)
    except Exception as e:
        logging.error(f"Application error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()

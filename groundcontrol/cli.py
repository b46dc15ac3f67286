"""
Deliver a single push event from the command line.

Reads one JSON event (a file path, or ``-`` for stdin), dispatches it with
the configured gateways and prints the outcome as JSON.

Usage:
    groundcontrol-send event.json
    echo '{"type": 5, "token": "...", "os": "android", "text": "hi"}' | groundcontrol-send -

Exit status: 0 delivered, 1 delivery failed, 2 bad input or configuration.
"""
import argparse
import asyncio
import json
import logging
import sys
from typing import Any, Dict, List, Optional

from groundcontrol.core.config import ConfigurationError, Settings, get_settings
from groundcontrol.core.database import get_db_session, init_database
from groundcontrol.core.logging_config import mask_token, setup_logging
from groundcontrol.schemas.push import PushEventBase, parse_push_event
from groundcontrol.services.push.dispatch_service import DispatchResult, build_dispatch_service

logger = logging.getLogger(__name__)

EXIT_DELIVERED = 0
EXIT_FAILED = 1
EXIT_INVALID = 2


def read_event(source: str) -> Dict[str, Any]:
    if source == "-":
        return json.load(sys.stdin)
    with open(source, encoding="utf-8") as f:
        return json.load(f)


async def send_event(settings: Settings, event: PushEventBase) -> DispatchResult:
    """Build the engine for one session and dispatch a single event."""
    with get_db_session() as db:
        async with build_dispatch_service(settings, db) as service:
            return await service.dispatch(event)


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="groundcontrol-send",
        description="Deliver one push event to its destination device",
    )
    parser.add_argument("event", help="path to a JSON push event, or - to read stdin")
    args = parser.parse_args(argv)

    settings = get_settings()
    setup_logging(settings)

    try:
        event = parse_push_event(read_event(args.event))
    except (OSError, ValueError) as e:
        # ValueError covers both bad JSON and pydantic validation errors
        logger.error("Invalid push event", extra={"source": args.event, "error": str(e)})
        return EXIT_INVALID

    init_database(settings)
    try:
        result = asyncio.run(send_event(settings, event))
    except ConfigurationError as e:
        logger.error("Push delivery is not configured", extra={"missing": e.missing})
        return EXIT_INVALID

    print(json.dumps({
        "token": mask_token(result.token),
        "platform": result.platform,
        "status": result.outcome.status.value,
        "reason": result.outcome.reason,
        "invalidated_rows": result.invalidated_rows,
        "duration_ms": round(result.duration_ms, 2),
    }))
    return EXIT_DELIVERED if result.success else EXIT_FAILED


if __name__ == "__main__":
    sys.exit(main())

#!/usr/bin/env python3
"""
Run an interview in the terminal.

Typed lines stand in for speech: on voice steps they are fed to the capture
adapter as final recognition results, on text steps they are submitted as
typed input. Replies are printed by ConsoleSpeechOutput.

Commands:
    /retry   re-submit the last failed input
    /pause   pause the interview
    /resume  resume the interview
    /state   print the current snapshot
    /quit    exit

Usage:
    python scripts/run_console_interview.py
    python scripts/run_console_interview.py --auto-submit --speech-rate 3
    python scripts/run_console_interview.py --api-key sk-... --persist
"""

import argparse
import asyncio
import json
import sys
import uuid
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from src.core.config import settings  # noqa: E402
from src.core.exceptions import ConfigurationError, SessionCompletedError  # noqa: E402
from src.core.logging import configure_logging, get_logger  # noqa: E402
from src.domain.models.turn_state import Phase  # noqa: E402
from src.persistence.database import init_database  # noqa: E402
from src.persistence.repositories.profile_repo import ProfileRepository  # noqa: E402
from src.services.orchestrator import build_orchestrator  # noqa: E402
from src.services.speech import ConsoleSpeechOutput, StreamingSpeechCapture  # noqa: E402

log = get_logger(__name__)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run a console interview")
    parser.add_argument("--api-key", default=None, help="LLM API key for this session")
    parser.add_argument(
        "--speech-rate",
        type=float,
        default=0.0,
        help="Simulated words per second for replies (0 = instant)",
    )
    parser.add_argument(
        "--auto-submit",
        action="store_true",
        help="Wait for the silence timer instead of submitting each line immediately",
    )
    parser.add_argument(
        "--persist", action="store_true", help="Mirror collected fields to SQLite"
    )
    return parser.parse_args()


async def run(args: argparse.Namespace) -> int:
    session_id = str(uuid.uuid4())
    capture = StreamingSpeechCapture()
    output = ConsoleSpeechOutput(words_per_second=args.speech_rate)

    store = None
    if args.persist:
        await init_database()
        store = ProfileRepository(settings.database_path)

    try:
        orchestrator = build_orchestrator(
            session_id, capture, output, api_key=args.api_key, store=store
        )
    except ConfigurationError as e:
        print(f"Configuration error: {e.message}", file=sys.stderr)
        return 1

    await orchestrator.start()

    while not orchestrator.is_closed:
        try:
            line = await asyncio.to_thread(input, "> ")
        except EOFError:
            break
        line = line.strip()
        if not line:
            continue

        if line == "/quit":
            break
        if line == "/retry":
            orchestrator.retry()
        elif line == "/pause":
            orchestrator.pause()
        elif line == "/resume":
            orchestrator.resume()
        elif line == "/state":
            print(json.dumps(orchestrator.snapshot(), indent=2, default=str))
        elif orchestrator.phase is Phase.LISTENING:
            capture.handle_result(final=line)
            if not args.auto_submit:
                orchestrator.submit_voice()
        else:
            try:
                if not orchestrator.submit_text(line):
                    print("(busy, input ignored)")
            except SessionCompletedError:
                break

        await asyncio.sleep(0)
        await orchestrator.wait_idle()

    await orchestrator.wait_closed(timeout=5)
    await orchestrator.shutdown()
    print(json.dumps(orchestrator.profile.model_dump(mode="json", by_alias=True), indent=2))
    return 0


def main() -> None:
    configure_logging()
    args = parse_args()
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()

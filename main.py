# -*- coding: utf-8 -*-
"""
Shadow reading practice in the terminal.

  1. A passage is generated for the chosen level and mode and read aloud by the reference voice
  2. Press Enter to start recording, Enter again to stop
  3. The attempt is analyzed word by word; type a word number to hear yourself and then the reference

Usage:
  python main.py --level Intermediate --mode IELTS
"""

import argparse
import asyncio
import logging
from datetime import timedelta

from app import config
from app.exceptions import RecordingStateError
from app.models.challenge import Level, Mode
from app.services.analysis_service import build_analysis_client
from app.services.challenge_cache import ChallengeCache
from app.services.challenge_service import build_challenge_service
from app.services.session_service import SessionState, ShadowSession

logger = logging.getLogger(__name__)

STATUS_MARK = {"good": "+", "average": "~", "poor": "-"}


async def ask(prompt: str) -> str:
    loop = asyncio.get_running_loop()
    return (await loop.run_in_executor(None, input, prompt)).strip().lower()


def print_results(session: ShadowSession) -> None:
    result = session.analysis
    print(f"\nScore: {result.score:.0f}/100")
    if result.fluency:
        print(f"Fluency: {result.fluency}")
    for i, w in enumerate(result.words):
        extra = f"  {w.phonetic}" if w.phonetic else ""
        issue = f"  ({w.issue})" if w.issue and w.status != "good" else ""
        print(f"  [{i:2d}] {STATUS_MARK.get(w.status, '?')} {w.word}{extra}{issue}")
    for s in result.pronunciation.strengths:
        print(f"  strength: {s}")
    for s in result.pronunciation.weaknesses:
        print(f"  weakness: {s}")
    if result.intonation:
        print(f"Intonation: {result.intonation}")
    if result.suggestions:
        print(f"Suggestions: {result.suggestions}")


async def practice(session: ShadowSession) -> None:
    while True:
        print(f"\nLoading a {session.level.value} / {session.mode.value} challenge...")
        challenge = await session.load_challenge()
        if challenge is None:
            print(session.error)
            if await ask("Retry? [Y/n] ") == "n":
                return
            continue

        print(f"\nTopic: {challenge.topic}\n\n  {challenge.text}\n")

        while True:
            await ask("Press Enter to start recording...")
            if not session.start_recording():
                print(session.error)
                return
            await ask("Recording. Press Enter to stop...")
            recording = session.stop_recording()
            if recording is None:
                print(session.error)
                continue
            print(f"Recorded {recording.duration or 0:.1f}s, analyzing...")

            if await session.run_analysis() is None:
                print(session.error)
                if await ask("Retry the analysis? [Y/n] ") != "n":
                    await session.run_analysis()
            if session.state != SessionState.RESULTS:
                continue

            print_results(session)
            while True:
                choice = await ask("\nWord number to compare, [r]ecord again, [n]ext, [q]uit: ")
                if choice.isdigit():
                    try:
                        await session.play_word(int(choice))
                    except (IndexError, RecordingStateError) as e:
                        print(e)
                elif choice in ("r", "n", "q"):
                    break
            if choice == "q":
                return
            if choice == "n":
                session.cache.clear()
                break
            session.reset_recording()


def main() -> None:
    parser = argparse.ArgumentParser(description="Shadow reading practice")
    parser.add_argument("--level", choices=[l.value for l in Level], default=Level.BEGINNER.value)
    parser.add_argument("--mode", choices=[m.value for m in Mode], default=Mode.DAILY.value)
    args = parser.parse_args()

    logging.basicConfig(level=config.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    async def run():
        service = build_challenge_service()
        cache = ChallengeCache(service.fetch, ttl=timedelta(seconds=config.CHALLENGE_CACHE_TTL_S))
        session = ShadowSession(cache, build_analysis_client(), level=Level(args.level), mode=Mode(args.mode))
        logger.info("Practice session level=%s mode=%s", session.level.value, session.mode.value)
        try:
            await practice(session)
        finally:
            session.close()

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        print()


if __name__ == "__main__":
    main()

#!/usr/bin/env python3
"""
Terminal runner: play a scripted conversation in the console.

Usage:
    python scripts/run_conversation.py
    python scripts/run_conversation.py --sequence onboarding --instant
    python scripts/run_conversation.py --set user.name=Ana --set task.activeDays=1,2,3
"""
import argparse
import asyncio
import json
import logging
import os
import sys

# Ensure app root is on path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import structlog


def configure_logging(verbose: bool):
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="%H:%M:%S"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.DEBUG if verbose else logging.WARNING),
    )


def parse_assignment(raw: str):
    key, _, value = raw.partition("=")
    try:
        return key.strip(), json.loads(value)
    except ValueError:
        return key.strip(), value


def print_message(message):
    if message.sender == "user":
        print(f"  > {message.text}")
    elif message.image_path:
        print(f"[image: {message.image_path}] {message.text}".rstrip())
    else:
        print(message.text)
    for i, choice in enumerate(message.choices):
        print(f"    {i + 1}. {choice.text}")


async def prompt(text: str) -> str:
    return await asyncio.to_thread(input, text)


async def run(args):
    import dataclasses
    from config.settings import load_settings
    from core.engine import ConversationEngine, build_context
    from models.schemas import InvalidResolutionError, MessageType

    settings = load_settings(args.config)
    if args.instant:
        settings.delivery = dataclasses.replace(settings.delivery, instant_mode=True)

    context = build_context(settings)
    for raw in args.set or []:
        key, value = parse_assignment(raw)
        await context.store.set(key, value)

    engine = ConversationEngine(context, on_display=print_message)
    await engine.start(args.sequence)

    try:
        while True:
            await engine.join()
            pending = engine.pending_message
            if pending is None:
                break
            answer = (await prompt("? ")).strip()
            try:
                if pending.type == MessageType.CHOICE:
                    await engine.select_choice(int(answer) - 1)
                else:
                    await engine.submit_text(answer)
            except (InvalidResolutionError, ValueError) as e:
                print(f"  ! {e}")
    except (EOFError, KeyboardInterrupt):
        print()
    finally:
        await engine.dispose()

    if args.dump:
        print(json.dumps(await engine.data(), indent=2, default=str))


def main():
    parser = argparse.ArgumentParser(description="Play a scripted conversation")
    parser.add_argument("--sequence", default=None, help="Sequence id to start (default from settings)")
    parser.add_argument("--config", default=None, help="Path to settings.yaml")
    parser.add_argument("--instant", action="store_true", help="Disable pacing delays")
    parser.add_argument("--set", action="append", metavar="KEY=VALUE", help="Seed a data store value")
    parser.add_argument("--dump", action="store_true", help="Print the data store when done")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args()

    configure_logging(args.verbose)
    asyncio.run(run(args))


if __name__ == "__main__":
    main()

# ------------------------------------------------------------
# Module: h5p_assist/cli.py
# Purpose: Command line entry point: run the relay or stream a suggestion in the terminal.
# Usage:
#   h5p-assist serve --port 8000
#   h5p-assist ask --content-type H5P.Course "intro to photosynthesis"
# Env:
#   H5P_OLLAMA_BASE_URL=http://127.0.0.1:11434 (relay → Ollama)
#   H5P_RELAY_URL=http://127.0.0.1:8000 (ask → relay)
# ------------------------------------------------------------
from __future__ import annotations

import argparse
import asyncio
import sys
from typing import TextIO

import httpx

from h5p_assist.consumer.chat import SuggestionChat
from h5p_assist.consumer.messages import Message, MessageStatus
from h5p_assist.core.config import settings


class _TerminalRenderer:
    """Print only the newly appended part of the open message."""

    def __init__(self, out: TextIO):
        self.out = out
        self.shown = 0

    def __call__(self, msg: Message) -> None:
        if msg.status is MessageStatus.FAILED:
            self.out.write(msg.text)
        else:
            self.out.write(msg.text[self.shown :])
        self.shown = len(msg.text)
        self.out.flush()


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="h5p-assist", description="H5P authoring suggestions via a local model")
    sub = p.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="run the suggestion relay")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)

    ask = sub.add_parser("ask", help="stream one suggestion from a running relay")
    ask.add_argument("description")
    ask.add_argument("--content-type", default="H5P.Course")
    ask.add_argument("--relay", default=settings.RELAY_URL, help="relay base URL")
    return p


async def ask(
    description: str,
    *,
    content_type: str,
    relay_url: str,
    out: TextIO = sys.stdout,
    http: httpx.AsyncClient | None = None,
) -> Message:
    """Stream one reply to `out`; Ctrl-C (task cancellation) keeps the partial text."""
    render = _TerminalRenderer(out)
    async with SuggestionChat(
        content_type, relay_url=relay_url, http=http, on_update=render
    ) as chat:
        reply = await chat.submit(description)
    out.write("\n")
    if reply.status is MessageStatus.INCOMPLETE:
        out.write(f"[incomplete: {reply.error}]\n")
    elif reply.status is MessageStatus.CANCELLED:
        out.write("[cancelled]\n")
    return reply


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    if args.command == "serve":
        import uvicorn

        uvicorn.run("h5p_assist.main:app", host=args.host, port=args.port)
        return 0

    try:
        reply = asyncio.run(
            ask(args.description, content_type=args.content_type, relay_url=args.relay)
        )
    except KeyboardInterrupt:
        sys.stdout.write("\n[cancelled]\n")
        return 130
    return 0 if reply.status is MessageStatus.COMPLETE else 1


if __name__ == "__main__":
    raise SystemExit(main())

"""Pytest fixtures: fake Ollama upstream, relay app, and streaming helpers."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable

import httpx
import pytest
from fastapi.testclient import TestClient

from h5p_assist.llm.client.ollama_client import OllamaClient
from h5p_assist.main import create_app


def ndjson(*records: dict) -> bytes:
    return b"".join(
        (json.dumps(r, ensure_ascii=False) + "\n").encode("utf-8") for r in records
    )


def ollama_lines(*deltas: str, context: list[int] | None = None, done: bool = True) -> bytes:
    """Upstream body shaped like Ollama's streaming reply."""
    recs: list[dict] = [{"model": "llama2", "response": d, "done": False} for d in deltas]
    if done:
        final: dict = {"model": "llama2", "response": "", "done": True}
        if context:
            final["context"] = context
        recs.append(final)
    return ndjson(*recs)


def split_every(data: bytes, size: int) -> list[bytes]:
    return [data[i : i + size] for i in range(0, len(data), size)]


class ChunkStream(httpx.AsyncByteStream):
    """Response body delivered in the given chunks.

    `fail_with` is raised after the chunks; `hang=True` blocks after them
    until the reader is cancelled. `closed` records transport release.
    """

    def __init__(
        self,
        chunks: list[bytes],
        *,
        fail_with: Exception | None = None,
        hang: bool = False,
    ):
        self.chunks = chunks
        self.fail_with = fail_with
        self.hang = hang
        self.closed = False

    async def __aiter__(self):
        for c in self.chunks:
            yield c
            await asyncio.sleep(0)
        if self.fail_with is not None:
            raise self.fail_with
        if self.hang:
            await asyncio.Event().wait()

    async def aclose(self) -> None:
        self.closed = True


class FakeOllama:
    """MockTransport-backed stand-in for POST /api/generate; records every call."""

    def __init__(self):
        self.calls: list[dict] = []
        self.respond: Callable[[httpx.Request, dict], httpx.Response] = (
            lambda request, body: httpx.Response(200, content=ollama_lines("ok"))
        )

    async def handler(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.calls.append(body)
        return self.respond(request, body)

    def client(self, *, fallback: str | None = None) -> OllamaClient:
        http = httpx.AsyncClient(transport=httpx.MockTransport(self.handler))
        return OllamaClient(
            "http://ollama.test:11434",
            "llama2",
            fallback,
            {"temperature": 0.7, "top_p": 0.9},
            http,
        )


@pytest.fixture
def upstream() -> FakeOllama:
    return FakeOllama()


@pytest.fixture
def relay_app(upstream):
    return create_app(llm_client=upstream.client())


@pytest.fixture
def client(relay_app) -> TestClient:
    return TestClient(relay_app)


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.005)

# ------------------------------------------------------------
# Module: h5p_assist/llm/client/ollama_client.py
# Purpose: Async client for Ollama /api/generate with streaming, fallback, and typed errors
# ------------------------------------------------------------

"""Interface to the Ollama generation endpoint.

Responsibilities
----------------
- Sanitize sampling options from settings.
- Issue one-shot (`stream=false`) and streaming (`stream=true`) generate calls.
- Decode the NDJSON reply into ordered `Fragment`s as bytes arrive.
- Classify failures as before-first-fragment or mid-stream.
- Retry once on a fallback model when the upstream reports OOM / missing model.

Notes
-----
- Network calls use one shared `httpx.AsyncClient` (a connection pool); no
  per-request state lives on the client object.
- Connect is always bounded; the read timeout between chunks is configurable.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import aclosing
from dataclasses import replace

import httpx

from h5p_assist.core.config import Settings, settings as _settings
from h5p_assist.llm.types import (
    ErrorRecord,
    Fragment,
    GenerationRequest,
    GenerationResult,
)
from h5p_assist.stream.errors import (
    MalformedFragment,
    UpstreamMidStreamFailure,
    UpstreamUnreachable,
)
from h5p_assist.stream.framing import LineAssembler, parse_record

from .ollama_http import base_url, generate_url, is_oom
from .ollama_options import sanitize_options

logger = logging.getLogger(__name__)


def _error_text(resp: httpx.Response) -> str:
    try:
        data = resp.json()
    except ValueError:
        return resp.text[:200]
    if isinstance(data, dict) and data.get("error"):
        return str(data["error"])[:200]
    return resp.text[:200]


def _describe(err: BaseException) -> str:
    return f"{type(err).__name__}: {err}"[:200]


async def _lines(resp: httpx.Response) -> AsyncIterator[str]:
    assembler = LineAssembler()
    async for chunk in resp.aiter_bytes():
        for line in assembler.feed(chunk):
            yield line
    for line in assembler.flush():
        yield line


class OllamaClient:
    """LLM client for Ollama: small public surface, parsing delegated to framing."""

    def __init__(
        self,
        base: str,
        model: str,
        fallback: str | None,
        options: dict,
        http: httpx.AsyncClient,
        *,
        generate_timeout: float = 90.0,
        connect_timeout: float = 5.0,
        owns_http: bool = True,
    ):
        self.base = base_url(base)
        self.url = generate_url(self.base)
        self.model = model
        self.fallback = fallback
        self.options = options
        self.generate_timeout = generate_timeout
        self.connect_timeout = connect_timeout
        self._http = http
        self._owns_http = owns_http

    @classmethod
    def from_settings(
        cls, settings: Settings = _settings, http: httpx.AsyncClient | None = None
    ) -> OllamaClient:
        """Construct an `OllamaClient` from settings.

        Notes
        -----
        - When `http` is given the caller keeps ownership and must close it.
        - Otherwise a pool with a bounded connect timeout is created here.
        """
        owns_http = http is None
        if http is None:
            http = httpx.AsyncClient(
                timeout=httpx.Timeout(
                    settings.UPSTREAM_READ_TIMEOUT_S,
                    connect=settings.UPSTREAM_CONNECT_TIMEOUT_S,
                )
            )
        return cls(
            settings.OLLAMA_BASE_URL,
            settings.GEN_MODEL,
            settings.FALLBACK_MODEL,
            sanitize_options(settings.ollama_options, logger),
            http,
            generate_timeout=settings.GENERATE_TIMEOUT_S,
            connect_timeout=settings.UPSTREAM_CONNECT_TIMEOUT_S,
            owns_http=owns_http,
        )

    def request(
        self, prompt: str, *, context: tuple[int, ...] | None = None, stream: bool = True
    ) -> GenerationRequest:
        """Build a request for the configured model and options."""
        return GenerationRequest(
            model=self.model,
            prompt=prompt,
            context=context,
            options=dict(self.options),
            stream=stream,
        )

    def _should_fall_back(self, req: GenerationRequest, err: Exception) -> bool:
        return bool(self.fallback) and self.fallback != req.model and is_oom(err)

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    # ------------------------------------------------------------------
    # One-shot
    # ------------------------------------------------------------------

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        """One-shot generation; tries the fallback model on OOM/missing."""
        req = replace(request, stream=False)
        try:
            return await self._generate_once(req)
        except UpstreamUnreachable as e:
            logger.warning("llm.generate.error", extra={"model": req.model, "error": str(e)[:200]})
            if not self._should_fall_back(req, e):
                raise
            logger.info("llm.generate.oom_retry", extra={"fallback": self.fallback})
            return await self._generate_once(req.with_model(self.fallback))

    async def _generate_once(self, req: GenerationRequest) -> GenerationResult:
        try:
            r = await self._http.post(
                self.url,
                json=req.to_payload(),
                timeout=httpx.Timeout(self.generate_timeout, connect=self.connect_timeout),
            )
        except httpx.HTTPError as e:
            raise UpstreamUnreachable(_describe(e)) from e
        if r.is_error:
            raise UpstreamUnreachable(f"upstream status {r.status_code}: {_error_text(r)}")
        try:
            data = r.json()
        except ValueError as e:
            raise UpstreamUnreachable("upstream returned a non-JSON body") from e
        if not isinstance(data, dict):
            raise UpstreamUnreachable("upstream returned a non-object body")
        if data.get("error"):
            raise UpstreamUnreachable(str(data["error"])[:200])
        return GenerationResult.from_json(data)

    # ------------------------------------------------------------------
    # Streaming
    # ------------------------------------------------------------------

    async def stream(self, request: GenerationRequest) -> AsyncIterator[Fragment]:
        """Streaming generation; yields fragments in arrival order; falls back on OOM."""
        req = replace(request, stream=True)
        produced = 0
        try:
            async with aclosing(self._stream_once(req)) as frags:
                async for frag in frags:
                    produced += 1
                    yield frag
        except UpstreamUnreachable as e:
            if produced or not self._should_fall_back(req, e):
                raise
            logger.info("llm.stream.oom_retry", extra={"fallback": self.fallback})
            async with aclosing(self._stream_once(req.with_model(self.fallback))) as frags:
                async for frag in frags:
                    yield frag

    async def _stream_once(self, req: GenerationRequest) -> AsyncIterator[Fragment]:
        try:
            resp = await self._http.send(
                self._http.build_request("POST", self.url, json=req.to_payload()),
                stream=True,
            )
        except httpx.HTTPError as e:
            logger.error("llm.stream.connect_failed", extra={"model": req.model, "error": _describe(e)})
            raise UpstreamUnreachable(_describe(e)) from e

        try:
            logger.info(
                "llm.stream.open",
                extra={"model": req.model, "status": resp.status_code},
            )
            if resp.is_error:
                await resp.aread()
                raise UpstreamUnreachable(
                    f"upstream status {resp.status_code}: {_error_text(resp)}"
                )

            produced = 0
            try:
                async with aclosing(_lines(resp)) as lines:
                    async for line in lines:
                        if not line.strip():
                            continue
                        try:
                            record = parse_record(line)
                        except MalformedFragment as e:
                            logger.warning("llm.stream.malformed", extra={"reason": e.reason})
                            continue
                        if isinstance(record, ErrorRecord):
                            if produced == 0:
                                raise UpstreamUnreachable(record.message)
                            raise UpstreamMidStreamFailure(record.message)
                        produced += 1
                        yield record
                        if record.is_final:
                            return
            except (httpx.HTTPError, UnicodeDecodeError) as e:
                if produced == 0:
                    raise UpstreamUnreachable(_describe(e)) from e
                raise UpstreamMidStreamFailure(_describe(e)) from e
        finally:
            await resp.aclose()

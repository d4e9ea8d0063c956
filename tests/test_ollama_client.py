import httpx
import pytest

from h5p_assist.core.config import Settings
from h5p_assist.llm.client.ollama_client import OllamaClient
from h5p_assist.llm.client.ollama_http import base_url, generate_url, is_oom
from h5p_assist.llm.client.ollama_options import sanitize_options
from h5p_assist.llm.types import Fragment
from h5p_assist.stream.errors import UpstreamMidStreamFailure, UpstreamUnreachable

from conftest import ChunkStream, FakeOllama, ndjson, ollama_lines, split_every


async def _collect(client: OllamaClient, prompt: str = "p") -> list[Fragment]:
    return [f async for f in client.stream(client.request(prompt))]


# --- one-shot ---


@pytest.mark.asyncio
async def test_generate_posts_payload_and_parses_reply():
    fake = FakeOllama()
    fake.respond = lambda request, body: httpx.Response(
        200,
        json={"model": "llama2", "created_at": "t", "response": "Structure: ...", "done": True, "context": [4, 5]},
    )
    client = fake.client()

    result = await client.generate(client.request("hello", context=(1, 2), stream=True))

    assert result.response == "Structure: ..."
    assert result.context == (4, 5)
    assert fake.calls == [
        {
            "model": "llama2",
            "prompt": "hello",
            "stream": False,
            "context": [1, 2],
            "options": {"temperature": 0.7, "top_p": 0.9},
        }
    ]
    await client.aclose()


@pytest.mark.asyncio
async def test_generate_failure_status_is_unreachable():
    fake = FakeOllama()
    fake.respond = lambda request, body: httpx.Response(500, json={"error": "boom"})
    client = fake.client()
    with pytest.raises(UpstreamUnreachable, match="boom"):
        await client.generate(client.request("x"))


@pytest.mark.asyncio
async def test_generate_connect_error_is_unreachable():
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    http = httpx.AsyncClient(transport=httpx.MockTransport(refuse))
    client = OllamaClient("http://ollama.test:11434", "llama2", None, {}, http)
    with pytest.raises(UpstreamUnreachable, match="ConnectError"):
        await client.generate(client.request("x"))


@pytest.mark.asyncio
async def test_generate_falls_back_on_missing_model():
    fake = FakeOllama()

    def respond(request, body):
        if body["model"] == "llama2":
            return httpx.Response(404, json={"error": "model 'llama2' not found, try pulling it first"})
        return httpx.Response(200, json={"model": body["model"], "response": "ok", "done": True})

    fake.respond = respond
    client = fake.client(fallback="phi3")

    result = await client.generate(client.request("x"))
    assert result.response == "ok"
    assert [c["model"] for c in fake.calls] == ["llama2", "phi3"]


# --- streaming ---


@pytest.mark.asyncio
async def test_stream_yields_fragments_in_order_with_final_context():
    fake = FakeOllama()
    body = ollama_lines("Struct", "ure", ": ...", context=[9, 8])
    fake.respond = lambda request, b: httpx.Response(200, stream=ChunkStream(split_every(body, 5)))
    client = fake.client()

    frags = await _collect(client)

    assert [f.delta for f in frags] == ["Struct", "ure", ": ...", ""]
    assert frags[-1].is_final and frags[-1].context == (9, 8)
    assert fake.calls[0]["stream"] is True


@pytest.mark.asyncio
async def test_stream_skips_malformed_lines():
    fake = FakeOllama()
    body = b'{"response":"a","done":false}\n{nope\n{"response":"b","done":false}\n{"response":"","done":true}\n'
    fake.respond = lambda request, b: httpx.Response(200, content=body)
    frags = await _collect(fake.client())
    assert "".join(f.delta for f in frags) == "ab"


@pytest.mark.asyncio
async def test_stream_failure_status_is_unreachable():
    fake = FakeOllama()
    fake.respond = lambda request, b: httpx.Response(503, text="overloaded")
    with pytest.raises(UpstreamUnreachable, match="503"):
        await _collect(fake.client())


@pytest.mark.asyncio
async def test_stream_error_record_before_any_fragment_is_unreachable():
    fake = FakeOllama()
    fake.respond = lambda request, b: httpx.Response(200, content=ndjson({"error": "bad prompt"}))
    with pytest.raises(UpstreamUnreachable, match="bad prompt"):
        await _collect(fake.client())


@pytest.mark.asyncio
async def test_stream_error_record_after_fragment_is_mid_stream():
    fake = FakeOllama()
    body = ndjson({"response": "a", "done": False}, {"error": "runner died"})
    fake.respond = lambda request, b: httpx.Response(200, content=body)
    client = fake.client()

    seen = []
    with pytest.raises(UpstreamMidStreamFailure, match="runner died"):
        async for f in client.stream(client.request("p")):
            seen.append(f.delta)
    assert seen == ["a"]


@pytest.mark.asyncio
async def test_stream_transport_drop_after_fragment_is_mid_stream():
    fake = FakeOllama()
    stream = ChunkStream(
        [ollama_lines("partial", done=False)], fail_with=httpx.ReadError("reset")
    )
    fake.respond = lambda request, b: httpx.Response(200, stream=stream)
    client = fake.client()

    seen = []
    with pytest.raises(UpstreamMidStreamFailure):
        async for f in client.stream(client.request("p")):
            seen.append(f.delta)
    assert seen == ["partial"]
    assert stream.closed


@pytest.mark.asyncio
async def test_stream_falls_back_before_first_fragment_only():
    fake = FakeOllama()

    def respond(request, body):
        if body["model"] == "llama2":
            return httpx.Response(500, json={"error": "CUDA out of memory"})
        return httpx.Response(200, content=ollama_lines("small model"))

    fake.respond = respond
    frags = await _collect(fake.client(fallback="phi3"))
    assert frags[0].delta == "small model"
    assert [c["model"] for c in fake.calls] == ["llama2", "phi3"]


@pytest.mark.asyncio
async def test_stream_without_fallback_makes_one_call():
    fake = FakeOllama()
    fake.respond = lambda request, b: httpx.Response(500, json={"error": "out of memory"})
    with pytest.raises(UpstreamUnreachable):
        await _collect(fake.client())
    assert len(fake.calls) == 1


@pytest.mark.asyncio
async def test_closing_stream_early_releases_response():
    fake = FakeOllama()
    stream = ChunkStream([ollama_lines("one", done=False)], hang=True)
    fake.respond = lambda request, b: httpx.Response(200, stream=stream)
    client = fake.client()

    frags = client.stream(client.request("p"))
    first = await anext(frags)
    assert first.delta == "one"
    await frags.aclose()
    assert stream.closed


# --- helpers ---


def test_from_settings_uses_configured_model_and_options():
    s = Settings(OLLAMA_BASE_URL="ollama:11434", GEN_MODEL="mistral", LLM_TOP_K=40)
    http = httpx.AsyncClient()
    client = OllamaClient.from_settings(s, http=http)
    assert client.url == "http://ollama:11434/api/generate"
    assert client.model == "mistral"
    assert client.options == {"temperature": 0.7, "top_p": 0.9, "top_k": 40}


@pytest.mark.parametrize(
    "raw, expected",
    [
        (None, "http://127.0.0.1:11434"),
        ("", "http://127.0.0.1:11434"),
        ("http://gpu-box:11434/", "http://gpu-box:11434"),
        ("10.0.0.5:11434", "http://10.0.0.5:11434"),
        ("gpu-box", "http://gpu-box:11434"),
    ],
)
def test_base_url(raw, expected):
    assert base_url(raw) == expected


def test_generate_url():
    assert generate_url("http://h:1/") == "http://h:1/api/generate"


@pytest.mark.parametrize(
    "msg, expected",
    [
        ("CUDA error: out of memory", True),
        ("model 'x' not found, try pulling it first", True),
        ("not enough VRAM", True),
        ("connection refused", False),
    ],
)
def test_is_oom(msg, expected):
    assert is_oom(msg) is expected


def test_sanitize_options_clamps_and_coerces():
    out = sanitize_options({"temperature": "5", "top_p": -1, "top_k": "12", "seed": 3})
    assert out == {"temperature": 2.0, "top_p": 0.0, "top_k": 12}


def test_sanitize_options_defaults_and_drops_bad_top_k():
    assert sanitize_options({"top_k": "many"}) == {"temperature": 0.7, "top_p": 0.9}
    assert sanitize_options(None) == {"temperature": 0.7, "top_p": 0.9}


@pytest.mark.asyncio
async def test_generate_keeps_connect_timeout_bounded():
    seen = []

    def respond(request):
        seen.append(request.extensions["timeout"])
        return httpx.Response(200, json={"model": "llama2", "response": "ok", "done": True})

    http = httpx.AsyncClient(transport=httpx.MockTransport(respond))
    client = OllamaClient(
        "http://ollama.test:11434", "llama2", None, {}, http,
        generate_timeout=30.0, connect_timeout=2.0,
    )

    await client.generate(client.request("x"))

    assert seen[0]["connect"] == 2.0
    assert seen[0]["read"] == 30.0


def test_from_settings_carries_connect_timeout():
    s = Settings(UPSTREAM_CONNECT_TIMEOUT_S=3.0, GENERATE_TIMEOUT_S=45.0)
    client = OllamaClient.from_settings(s, http=httpx.AsyncClient())
    assert (client.connect_timeout, client.generate_timeout) == (3.0, 45.0)

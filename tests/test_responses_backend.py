from __future__ import annotations

import json

import httpx
import pytest

from grue.errors import GeneratorTransportError
from grue.generator.autogen_config import OpenAICompatibleSettings, resolve_api_key
from grue.generator.base import GenerationRequest, Message
from grue.generator.json_schema import JsonSchema
from grue.generator.responses_backend import ResponsesGenerator, build_payload, output_text, parse_stream_line


def _settings(**overrides: object) -> OpenAICompatibleSettings:
    base: dict[str, object] = {
        "model": "test-model",
        "base_url": "http://llm.local/v1",
        "api_key": "sk-test",
        "backend": "responses",
        "timeout_s": 5.0,
    }
    base.update(overrides)
    return OpenAICompatibleSettings(**base)  # type: ignore[arg-type]


def _request(**overrides: object) -> GenerationRequest:
    kwargs: dict[str, object] = {"system": "be brief", "messages": [Message(role="user", content="look")]}
    kwargs.update(overrides)
    return GenerationRequest(**kwargs)  # type: ignore[arg-type]


def test_build_payload_includes_continuation_and_format() -> None:
    schema = JsonSchema(name="room", schema={"type": "object"})
    payload = build_payload(_request(previous_response_id="resp_0", structured_output=schema), model="m", stream=True)
    assert payload["model"] == "m"
    assert payload["instructions"] == "be brief"
    assert payload["input"] == [{"role": "user", "content": "look"}]
    assert payload["previous_response_id"] == "resp_0"
    assert payload["text"]["format"]["name"] == "room"
    assert payload["stream"] is True

    plain = build_payload(_request(), model="m")
    assert "previous_response_id" not in plain and "text" not in plain and "stream" not in plain


def test_output_text_joins_content_parts() -> None:
    data = {
        "output": [
            {"type": "message", "content": [{"type": "output_text", "text": "Hello "}]},
            {"type": "message", "content": [{"type": "output_text", "text": "there"}]},
        ]
    }
    assert output_text(data) == "Hello there"
    assert output_text({"output_text": "direct"}) == "direct"


def test_parse_stream_line() -> None:
    delta = parse_stream_line('data: {"type": "response.output_text.delta", "delta": "Hi"}')
    assert delta is not None and delta.text == "Hi"
    done = parse_stream_line('data: {"type": "response.completed", "response": {"id": "resp_5"}}')
    assert done is not None and done.response_id == "resp_5"
    assert parse_stream_line("event: response.output_text.delta") is None
    assert parse_stream_line("data: [DONE]") is None
    assert parse_stream_line("data: {broken") is None


def test_api_key_falls_back_for_local_servers() -> None:
    assert resolve_api_key(_settings(api_key=None)) == "ollama"
    with pytest.raises(RuntimeError):
        resolve_api_key(_settings(api_key=None, base_url=None))


@pytest.mark.asyncio
async def test_complete_posts_and_reads_result() -> None:
    seen: dict[str, object] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={"id": "resp_1", "output_text": '{"ok": true}', "usage": {"input_tokens": 3, "output_tokens": 2}},
        )

    gen = ResponsesGenerator(settings=_settings(), transport=httpx.MockTransport(handler))
    result = await gen.complete(_request())

    assert result.text == '{"ok": true}'
    assert result.response_id == "resp_1"
    assert result.usage == {"input_tokens": 3, "output_tokens": 2}
    assert seen["url"] == "http://llm.local/v1/responses"
    assert seen["auth"] == "Bearer sk-test"
    assert seen["body"]["model"] == "test-model"  # type: ignore[index]


@pytest.mark.asyncio
async def test_http_errors_become_transport_errors() -> None:
    gen = ResponsesGenerator(
        settings=_settings(),
        transport=httpx.MockTransport(lambda request: httpx.Response(503, text="overloaded")),
    )
    with pytest.raises(GeneratorTransportError) as ei:
        await gen.complete(_request())
    assert "503" in str(ei.value)
    assert ei.value.elapsed_ms is not None


@pytest.mark.asyncio
async def test_stream_yields_text_and_response_id() -> None:
    body = "\n".join(
        [
            'data: {"type": "response.created", "response": {"id": "resp_9"}}',
            "",
            'data: {"type": "response.output_text.delta", "delta": "Drip"}',
            'data: {"type": "response.output_text.delta", "delta": " drop"}',
            "data: [DONE]",
        ]
    )
    gen = ResponsesGenerator(
        settings=_settings(),
        transport=httpx.MockTransport(
            lambda request: httpx.Response(200, text=body, headers={"content-type": "text/event-stream"})
        ),
    )
    deltas = [d async for d in gen.stream(_request())]
    assert "".join(d.text for d in deltas) == "Drip drop"
    assert any(d.response_id == "resp_9" for d in deltas)

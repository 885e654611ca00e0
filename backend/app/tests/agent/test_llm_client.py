from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from pydantic import BaseModel

from app.agent.llm_client import LLMClient, json_text_candidates, strip_code_fences


class DummyModel(BaseModel):
    name: str
    age: int


def _response(content, prompt_tokens=120, completion_tokens=40):
    mock_message = MagicMock()
    mock_message.content = content

    mock_choice = MagicMock()
    mock_choice.message = mock_message

    mock_response = MagicMock()
    mock_response.choices = [mock_choice]
    mock_response.usage.prompt_tokens = prompt_tokens
    mock_response.usage.completion_tokens = completion_tokens
    return mock_response


def _client_with(create):
    mock_completions = MagicMock()
    mock_completions.create = create

    mock_chat = MagicMock()
    mock_chat.completions = mock_completions

    mock_client_instance = AsyncMock()
    mock_client_instance.chat = mock_chat
    return mock_client_instance, mock_completions


def _chunk(text=None, usage=None):
    chunk = MagicMock()
    chunk.usage = usage
    if text is None:
        chunk.choices = []
    else:
        delta = MagicMock()
        delta.content = text
        choice = MagicMock()
        choice.delta = delta
        chunk.choices = [choice]
    return chunk


class _Stream:
    def __init__(self, chunks):
        self._chunks = list(chunks)

    def __aiter__(self):
        return self

    async def __anext__(self):
        if not self._chunks:
            raise StopAsyncIteration
        return self._chunks.pop(0)


@pytest.mark.asyncio
async def test_llm_client_json_parsing():
    mock_client_instance, mock_completions = _client_with(
        AsyncMock(return_value=_response('{"name": "Alice", "age": 30}'))
    )

    with patch("app.agent.llm_client.AsyncOpenAI", return_value=mock_client_instance):
        with patch("app.agent.llm_client.settings.LLM_API_KEY", "dummy_key"):
            client = LLMClient(model_name="test-model")

            result = await client.generate_structured(
                system_prompt="You are a helpful assistant.",
                user_prompt="Give me Alice's details",
                response_schema=DummyModel,
            )

            assert isinstance(result, DummyModel)
            assert result.name == "Alice"
            assert result.age == 30
            mock_completions.create.assert_called_once()
            assert client.last_usage.input_tokens == 120
            assert client.last_usage.output_tokens == 40


@pytest.mark.asyncio
async def test_llm_client_structured_retries_and_sums_usage():
    create = AsyncMock(
        side_effect=[
            _response("I could not find the data you asked for.", 100, 10),
            _response('```json\n{"name": "Bob", "age": 41}\n```', 110, 20),
        ]
    )
    mock_client_instance, mock_completions = _client_with(create)

    with patch("app.agent.llm_client.AsyncOpenAI", return_value=mock_client_instance):
        client = LLMClient(model_name="test-model", api_key="dummy_key")
        result = await client.generate_structured(
            system_prompt="Extract.",
            user_prompt="Bob",
            response_schema=DummyModel,
        )

    assert result.name == "Bob"
    assert mock_completions.create.await_count == 2
    retry_messages = mock_completions.create.await_args_list[1].kwargs["messages"]
    assert "RETRY INSTRUCTIONS" in retry_messages[0]["content"]
    assert client.last_usage.input_tokens == 210
    assert client.last_usage.output_tokens == 30


@pytest.mark.asyncio
async def test_llm_client_structured_raises_after_second_failure():
    create = AsyncMock(return_value=_response('{"name": "Alice"}'))
    mock_client_instance, _ = _client_with(create)

    with patch("app.agent.llm_client.AsyncOpenAI", return_value=mock_client_instance):
        client = LLMClient(model_name="test-model", api_key="dummy_key")
        with pytest.raises(ValueError):
            await client.generate_structured(
                system_prompt="Extract.",
                user_prompt="Alice",
                response_schema=DummyModel,
            )


@pytest.mark.asyncio
async def test_llm_client_generate_text_strips_fence():
    mock_client_instance, mock_completions = _client_with(
        AsyncMock(return_value=_response("```markdown\nOccupancy held at 95%.\n```"))
    )

    with patch("app.agent.llm_client.AsyncOpenAI", return_value=mock_client_instance):
        client = LLMClient(model_name="test-model", api_key="dummy_key")
        text = await client.generate_text("system", "user", temperature=0.2, max_tokens=500)

    assert text == "Occupancy held at 95%."
    kwargs = mock_completions.create.await_args.kwargs
    assert kwargs["temperature"] == 0.2
    assert kwargs["max_tokens"] == 500


@pytest.mark.asyncio
async def test_llm_client_stream_text_yields_deltas_and_records_usage():
    usage = MagicMock()
    usage.prompt_tokens = 900
    usage.completion_tokens = 300
    stream = _Stream([_chunk("NOI "), _chunk("rose."), _chunk(None, usage=usage)])
    mock_client_instance, mock_completions = _client_with(AsyncMock(return_value=stream))

    with patch("app.agent.llm_client.AsyncOpenAI", return_value=mock_client_instance):
        client = LLMClient(model_name="test-model", api_key="dummy_key")
        deltas = [delta async for delta in client.stream_text("system", "user")]

    assert deltas == ["NOI ", "rose."]
    assert mock_completions.create.await_args.kwargs["stream"] is True
    assert client.last_usage.input_tokens == 900
    assert client.last_usage.output_tokens == 300


def test_gpt5_models_skip_temperature():
    with patch("app.agent.llm_client.AsyncOpenAI"):
        client = LLMClient(model_name="gpt-5-mini", api_key="dummy_key")

    assert client._chat_completion_kwargs(temperature=0.3, max_tokens=100) == {"max_tokens": 100}


def test_json_text_candidates_handles_prefix_and_fences():
    candidates = json_text_candidates('json: {"a": 1} trailing words')

    assert '{"a": 1}' in candidates
    assert strip_code_fences("```\nplain\n```") == "plain"
    assert json_text_candidates("   ") == []

import json
import logging
import re
from collections.abc import AsyncIterator
from typing import TypeVar

from openai import AsyncOpenAI
from pydantic import BaseModel, ValidationError

from app.core.config import settings

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)


def _extract_fenced_block(text: str) -> str | None:
    blocks = re.findall(r"```(?:json)?\s*(.*?)\s*```", text, re.DOTALL | re.IGNORECASE)
    return blocks[0].strip() if blocks else None


def strip_code_fences(text: str) -> str:
    if not text:
        return ""
    fenced = re.match(r"^\s*```[a-zA-Z0-9_-]*\s*([\s\S]*?)\s*```\s*$", text)
    if fenced:
        return fenced.group(1).strip()
    return text.strip()


def balanced_json_span(text: str) -> str | None:
    """Best-effort extraction of the first balanced top-level JSON object/array."""
    if not text:
        return None

    starts = []
    first_obj = text.find("{")
    first_arr = text.find("[")
    if first_obj != -1:
        starts.append((first_obj, "{", "}"))
    if first_arr != -1:
        starts.append((first_arr, "[", "]"))
    if not starts:
        return None

    start_idx, open_ch, close_ch = min(starts, key=lambda x: x[0])
    depth = 0
    in_string = False
    escape = False
    for i in range(start_idx, len(text)):
        ch = text[i]
        if in_string:
            if escape:
                escape = False
            elif ch == "\\":
                escape = True
            elif ch == '"':
                in_string = False
            continue

        if ch == '"':
            in_string = True
        elif ch == open_ch:
            depth += 1
        elif ch == close_ch:
            depth -= 1
            if depth == 0:
                return text[start_idx:i + 1]
    return None


def json_text_candidates(raw_text: str) -> list[str]:
    text = (raw_text or "").strip()
    if not text:
        return []

    candidates: list[str] = []
    fenced = _extract_fenced_block(text)
    if fenced:
        candidates.append(fenced)

    candidates.append(text)

    balanced = balanced_json_span(text)
    if balanced:
        candidates.append(balanced)

    # Remove leading "json" token some models emit before the object.
    if text.lower().startswith("json"):
        trimmed = text[4:].lstrip(": \n\r\t")
        if trimmed:
            candidates.append(trimmed)
            balanced_trimmed = balanced_json_span(trimmed)
            if balanced_trimmed:
                candidates.append(balanced_trimmed)

    # Deduplicate while preserving order.
    seen = set()
    unique: list[str] = []
    for candidate in candidates:
        c = candidate.strip()
        if not c or c in seen:
            continue
        seen.add(c)
        unique.append(c)
    return unique

class LLMUsage(BaseModel):
    input_tokens: int = 0
    output_tokens: int = 0

    def add(self, other: "LLMUsage") -> "LLMUsage":
        return LLMUsage(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
        )


def _token_count(usage, name: str) -> int:
    value = getattr(usage, name, 0)
    return value if isinstance(value, int) else 0


def _usage_from_response(response) -> LLMUsage:
    usage = getattr(response, "usage", None)
    if usage is None:
        return LLMUsage()
    return LLMUsage(
        input_tokens=_token_count(usage, "prompt_tokens"),
        output_tokens=_token_count(usage, "completion_tokens"),
    )


class LLMClient:
    """Provider-agnostic LLM client speaking the OpenAI chat completions API.

    Defaults to the Anthropic OpenAI-compatible endpoint. ``last_usage`` holds
    the token usage of the most recent call.
    """

    def __init__(
        self,
        model_name: str | None = None,
        base_url: str | None = None,
        api_key: str | None = None,
    ):
        self.model_name = model_name or settings.MODEL_DEFAULT
        self.last_usage = LLMUsage()

        self.client = AsyncOpenAI(
            base_url=base_url or settings.LLM_BASE_URL,
            api_key=api_key or settings.LLM_API_KEY,
        )

    def _chat_completion_kwargs(
        self, *, temperature: float | None, max_tokens: int | None = None
    ) -> dict:
        kwargs: dict = {}
        if max_tokens:
            kwargs["max_tokens"] = max_tokens
        # GPT-5 family rejects non-default temperature values in some OpenAI endpoints.
        if temperature is not None and not (self.model_name or "").lower().startswith("gpt-5"):
            kwargs["temperature"] = temperature
        return kwargs

    async def generate_structured(
        self,
        system_prompt: str,
        user_prompt: str,
        response_schema: type[T],
        *,
        temperature: float = 0,
        max_tokens: int | None = None,
    ) -> T:
        """
        Generate a structured response matching the provided Pydantic schema.
        The schema requirement is injected into the system prompt; the reply is
        parsed from the first candidate that validates. One retry with stricter
        instructions is made before giving up.
        """
        schema_json = json.dumps(response_schema.model_json_schema())

        augmented_system_prompt = (
            f"{system_prompt}\n\n"
            "CRITICAL: You must respond in ONLY valid JSON format matching the following JSON Schema. "
            "Do not include markdown code blocks (```json) or any conversational text around the JSON.\n\n"
            f"EXPECTED SCHEMA:\n{schema_json}"
        )

        attempt_prompts = [
            augmented_system_prompt,
            (
                f"{augmented_system_prompt}\n\n"
                "RETRY INSTRUCTIONS: Your previous response was invalid or incomplete. "
                "Return ONLY a single JSON object matching the schema. "
                "Do not add any prose, headings, markdown fences, or explanations."
            ),
        ]

        self.last_usage = LLMUsage()
        for attempt_idx, system_prompt_attempt in enumerate(attempt_prompts, start=1):
            try:
                logger.info(
                    "Issuing structured request to model %s (attempt %s/%s)...",
                    self.model_name,
                    attempt_idx,
                    len(attempt_prompts),
                )
                response = await self.client.chat.completions.create(
                    model=self.model_name,
                    messages=[
                        {"role": "system", "content": system_prompt_attempt},
                        {"role": "user", "content": user_prompt},
                    ],
                    **self._chat_completion_kwargs(temperature=temperature, max_tokens=max_tokens),
                )
                self.last_usage = self.last_usage.add(_usage_from_response(response))

                if not getattr(response, "choices", None):
                    logger.error("Received 0 choices from %s: %s", self.model_name, response)
                    raise ValueError(
                        f"Provider {self.model_name} returned no output. Try again or change model."
                    )

                text_response = response.choices[0].message.content or ""
                parse_candidates = json_text_candidates(text_response)
                if not parse_candidates:
                    raise ValueError("Model returned empty content for structured response")
                parse_errors: list[str] = []
                for candidate in parse_candidates:
                    try:
                        parsed_data = json.loads(candidate, strict=False)
                        return response_schema.model_validate(parsed_data)
                    except (json.JSONDecodeError, ValidationError, ValueError) as candidate_error:
                        parse_errors.append(str(candidate_error))
                raise ValueError(
                    "Unable to parse structured response after candidate extraction: "
                    + " | ".join(parse_errors[:3])
                )

            except (json.JSONDecodeError, ValidationError, ValueError) as e:
                if attempt_idx < len(attempt_prompts):
                    logger.warning(
                        "Structured parsing failed for %s on attempt %s/%s: %s. Retrying...",
                        self.model_name,
                        attempt_idx,
                        len(attempt_prompts),
                        e,
                    )
                    continue
                logger.error("Error parsing structured LLM response from %s: %s", self.model_name, e)
                raise

        raise RuntimeError("Structured generation failed without a captured error")

    async def generate_text(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        temperature: float = 0.2,
        max_tokens: int | None = None,
    ) -> str:
        """Generate plain text, stripping a markdown fence if the model wraps the reply."""
        logger.info("Issuing text request to model %s...", self.model_name)
        response = await self.client.chat.completions.create(
            model=self.model_name,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            **self._chat_completion_kwargs(temperature=temperature, max_tokens=max_tokens),
        )
        self.last_usage = _usage_from_response(response)
        if not getattr(response, "choices", None):
            raise ValueError(f"Provider {self.model_name} returned no output")
        text_response = strip_code_fences((response.choices[0].message.content or "").strip())
        if not text_response:
            raise ValueError("Model returned empty content")
        return text_response

    async def stream_text(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        temperature: float = 0.2,
        max_tokens: int | None = None,
    ) -> AsyncIterator[str]:
        """Yield text deltas as they arrive. Usage is recorded once the stream ends."""
        logger.info("Opening streaming request to model %s...", self.model_name)
        self.last_usage = LLMUsage()
        stream = await self.client.chat.completions.create(
            model=self.model_name,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            stream=True,
            stream_options={"include_usage": True},
            **self._chat_completion_kwargs(temperature=temperature, max_tokens=max_tokens),
        )
        async for chunk in stream:
            if getattr(chunk, "usage", None) is not None:
                self.last_usage = _usage_from_response(chunk)
            if not getattr(chunk, "choices", None):
                continue
            delta = chunk.choices[0].delta
            text = getattr(delta, "content", None)
            if text:
                yield text

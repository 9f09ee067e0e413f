"""Completion clients for the action model.

The action model grounds ``act``/``observe`` requests, summarizes extracted
page text and produces the structured output at the end of a run. Both
providers expose the same ``complete`` call.
"""

import json
import logging
import re
from typing import Any, Optional, Type

import anthropic
import openai
from pydantic import BaseModel, TypeAdapter, ValidationError

from core.errors import ActionFailed, TimedOut
from core.models import AgentConfig

logger = logging.getLogger(__name__)

_JSON_START = re.compile(r"[\[{]")


class CompletionClient:
    provider = ""

    def __init__(self, model: str) -> None:
        self.model = model

    def complete(self, system: str, prompt: str, timeout: Optional[float] = None, max_tokens: int = 1024) -> str:
        raise NotImplementedError


class AnthropicCompletion(CompletionClient):
    provider = "anthropic"

    def __init__(self, model: str, api_key: Optional[str] = None, client: Optional[anthropic.Anthropic] = None) -> None:
        super().__init__(model)
        self.client = client or anthropic.Anthropic(api_key=api_key)

    def complete(self, system: str, prompt: str, timeout: Optional[float] = None, max_tokens: int = 1024) -> str:
        try:
            response = self.client.messages.create(
                model=self.model,
                system=system,
                max_tokens=max_tokens,
                temperature=0,
                messages=[{"role": "user", "content": prompt}],
                timeout=timeout,
            )
        except anthropic.APITimeoutError as exc:
            raise TimedOut("action model request", timeout) from exc
        except anthropic.APIError as exc:
            raise ActionFailed(f"Action model request failed: {exc}") from exc
        parts = [blk.text for blk in response.content if blk.type == "text"]
        return "\n".join(parts).strip()


class OpenAICompletion(CompletionClient):
    provider = "openai"

    def __init__(self, model: str, api_key: Optional[str] = None, client: Optional[openai.OpenAI] = None) -> None:
        super().__init__(model)
        self.client = client or openai.OpenAI(api_key=api_key)

    def complete(self, system: str, prompt: str, timeout: Optional[float] = None, max_tokens: int = 1024) -> str:
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                temperature=0,
                max_tokens=max_tokens,
                messages=[
                    {"role": "system", "content": system},
                    {"role": "user", "content": prompt},
                ],
                timeout=timeout,
            )
        except openai.APITimeoutError as exc:
            raise TimedOut("action model request", timeout) from exc
        except openai.APIError as exc:
            raise ActionFailed(f"Action model request failed: {exc}") from exc
        return (response.choices[0].message.content or "").strip()


def create_completion_client(provider: str, model: str, config: AgentConfig) -> CompletionClient:
    if provider == "openai":
        return OpenAICompletion(model, api_key=config.openai_api_key)
    if provider == "anthropic":
        return AnthropicCompletion(model, api_key=config.anthropic_api_key)
    raise ValueError(f"Unknown action provider '{provider}'")


def parse_json_reply(text: str, model_cls: Optional[Type[Any]] = None) -> Any:
    """Decode the first JSON object or array in a model reply.

    ``model_cls`` may be a pydantic model or any type ``TypeAdapter`` accepts
    (for instance ``List[SomeModel]``).
    """
    match = _JSON_START.search(text or "")
    if not match:
        raise ActionFailed(f"Model reply contains no JSON: {text!r}")
    try:
        value, _ = json.JSONDecoder().raw_decode(text[match.start():])
    except json.JSONDecodeError as exc:
        raise ActionFailed(f"Model reply is not valid JSON: {exc}") from exc
    if model_cls is None:
        return value
    try:
        if isinstance(model_cls, type) and issubclass(model_cls, BaseModel):
            return model_cls.model_validate(value)
        return TypeAdapter(model_cls).validate_python(value)
    except ValidationError as exc:
        raise ActionFailed(f"Model reply has unexpected shape: {exc}") from exc

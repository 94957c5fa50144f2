"""
Travel suggestions from a chat completion model.

The relay turns a voice transcript plus the current weather into a two
message prompt (`build_suggestion_messages`) and sends it to an
`LLMProvider`. `OpenAIChatProvider` is the production provider; tests swap
in a fake with the same `chat` signature.

Usage:
    from travelbuddy.core.llm import OpenAIChatProvider, build_suggestion_messages

    llm = OpenAIChatProvider()
    messages = build_suggestion_messages("今日はどこに行けばいい？", weather=None)
    response = await llm.chat(messages)
    print(response.content)
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

import aiohttp

from travelbuddy.config import OpenAIConfig
from travelbuddy.errors import ProviderError
from travelbuddy.logger import get_logger
from travelbuddy.messages import msg

logger = get_logger(__name__)


@dataclass
class Message:
    """One entry of a chat completion `messages` array."""
    role: str
    content: str

    def to_dict(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass
class ChatResponse:
    """The first choice of a completion, with the usage block for logging."""
    content: str
    model: str = ""
    usage: Dict[str, int] = field(default_factory=dict)
    finish_reason: str = ""

    @property
    def total_tokens(self) -> int:
        return self.usage.get("total_tokens", 0)


class LLMProvider(ABC):
    """Produces one completion per call."""

    @abstractmethod
    async def chat(
        self,
        messages: List[Message],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None
    ) -> ChatResponse:
        """
        Complete ``messages``. ``None`` overrides fall back to the provider config.

        Raises:
            ProviderError: On HTTP failure, timeout, or a payload without a choice
        """


def parse_chat_completion(data: Mapping[str, Any], default_model: str = "") -> ChatResponse:
    """
    Extract the first choice's message from a chat completion payload.

    Raises:
        ProviderError: If the payload has no usable first choice
    """
    try:
        choice = data["choices"][0]
        content = choice["message"]["content"]
    except (KeyError, IndexError, TypeError) as e:
        raise ProviderError(msg("error.ai_malformed")) from e

    if not isinstance(content, str):
        raise ProviderError(msg("error.ai_malformed"))

    return ChatResponse(
        content=content,
        model=data.get("model", default_model),
        usage=data.get("usage") or {},
        finish_reason=choice.get("finish_reason") or "",
    )


class OpenAIChatProvider(LLMProvider):
    """
    OpenAI chat completions provider.

    Single attempt per call: the relay reports failures straight back to the
    client, which retries by issuing a new voice turn.
    """

    def __init__(self, config: Optional[OpenAIConfig] = None):
        self._config = config or OpenAIConfig()

        logger.debug(
            f"Initialized OpenAIChatProvider: model={self._config.model}, "
            f"temperature={self._config.temperature}, max_tokens={self._config.max_tokens}"
        )

    @property
    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self._config.api_key}",
            "Content-Type": "application/json"
        }

    async def chat(
        self,
        messages: List[Message],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None
    ) -> ChatResponse:
        body = {
            "model": self._config.model,
            "messages": [m.to_dict() for m in messages],
            "temperature": temperature if temperature is not None else self._config.temperature,
            "max_tokens": max_tokens if max_tokens is not None else self._config.max_tokens,
        }
        timeout = aiohttp.ClientTimeout(total=self._config.timeout_s)

        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(
                    self._config.chat_url,
                    headers=self._headers,
                    json=body,
                ) as response:
                    if response.status != 200:
                        detail = await self._error_detail(response)
                        logger.warning(f"AI provider HTTP {response.status}: {detail}")
                        raise ProviderError(detail or msg("error.ai_http", status=response.status))
                    data = await response.json()
        except aiohttp.ClientError as e:
            raise ProviderError(f"AI request failed: {e}") from e
        except asyncio.TimeoutError as e:
            raise ProviderError("AI request timed out") from e

        if not isinstance(data, dict):
            raise ProviderError(msg("error.ai_malformed"))
        return parse_chat_completion(data, default_model=self._config.model)

    @staticmethod
    async def _error_detail(response: aiohttp.ClientResponse) -> str:
        """Pull ``error.message`` out of an OpenAI error body, if present."""
        try:
            payload = await response.json(content_type=None)
            return payload["error"]["message"]
        except (ValueError, KeyError, TypeError, aiohttp.ClientError):
            return ""


# Prompt templates for travel suggestions
TRAVEL_SYSTEM_PROMPT = """You are a friendly Japanese travel assistant.
Based on the user's request and current weather, provide helpful travel suggestions.
Respond in Japanese, keeping it concise (2-3 sentences)."""

TRAVEL_USER_TEMPLATE = """User said: {voice_text}

Current weather:
Location: {location}
Temperature: {temperature}
Condition: {condition}

Please provide a travel suggestion based on this."""

UNKNOWN = "Unknown"


def _field_or_unknown(weather: Optional[Mapping[str, Any]], key: str, suffix: str = "") -> str:
    if not weather:
        return UNKNOWN
    value = weather.get(key)
    if value is None or value == "":
        return UNKNOWN
    return f"{value}{suffix}"


def build_suggestion_messages(
    voice_text: str,
    weather: Optional[Mapping[str, Any]],
    system_prompt: Optional[str] = None,
) -> List[Message]:
    """
    System and user messages for one suggestion.

    ``weather`` is the wire-format dict the client sent (or None). Location,
    temperature and condition are embedded as given; any that is missing
    becomes ``Unknown``.
    """
    user_content = TRAVEL_USER_TEMPLATE.format(
        voice_text=voice_text,
        location=_field_or_unknown(weather, "location"),
        temperature=_field_or_unknown(weather, "temperature", "°C"),
        condition=_field_or_unknown(weather, "condition"),
    )
    return [
        Message(role="system", content=system_prompt or TRAVEL_SYSTEM_PROMPT),
        Message(role="user", content=user_content),
    ]

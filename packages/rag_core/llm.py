from __future__ import annotations

import logging
from typing import Dict, Iterator, List, Optional, Protocol, Sequence, runtime_checkable

from groq import Groq, GroqError

from .exceptions import InvalidArgumentError, UpstreamServiceError

_log = logging.getLogger(__name__)

DEFAULT_MODEL_ID = "openai/gpt-oss-120b"
DEFAULT_SYSTEM_PROMPT = "You are a helpful assistant. Answer using only the information you are given."


@runtime_checkable
class LanguageModel(Protocol):
    """Text completion service, blocking or streamed token by token."""

    def complete(self, prompt: str, stop: Optional[Sequence[str]] = None) -> str:
        ...

    def stream(self, prompt: str, stop: Optional[Sequence[str]] = None) -> Iterator[str]:
        ...


@runtime_checkable
class ChatModel(Protocol):
    """Completion over a list of role/content chat messages."""

    def chat(self, messages: Sequence[Dict[str, str]], stop: Optional[Sequence[str]] = None) -> str:
        ...


class GroqLLM:
    """
    Groq chat-completions client used as a plain completion model.

    Every prompt is sent as a single user message after the configured
    system prompt; ``chat`` sends caller-built messages (for example from a
    ChatPromptTemplate) unchanged. The Groq client is created on first use
    so that a missing API key only surfaces when a request is actually made.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = DEFAULT_MODEL_ID,
        temperature: float = 0.5,
        max_tokens: int = 1500,
        top_p: float = 1.0,
        system_prompt: Optional[str] = DEFAULT_SYSTEM_PROMPT,
    ) -> None:
        self.model = model
        self.temperature = float(temperature)
        self.max_tokens = int(max_tokens)
        self.top_p = float(top_p)
        self.system_prompt = system_prompt
        self._api_key = api_key
        self._client: Groq | None = None

    def _get_client(self) -> Groq:
        """Return the Groq client, initialising it on first use."""
        if self._client is None:
            try:
                self._client = Groq(api_key=self._api_key)
            except GroqError as exc:
                raise UpstreamServiceError(f"Cannot create Groq client: {exc}", service="llm") from exc
        return self._client

    def _make_messages(self, prompt: str) -> List[dict]:
        messages: list[dict] = []
        if self.system_prompt:
            messages.append({"role": "system", "content": self.system_prompt})
        messages.append({"role": "user", "content": prompt})
        return messages

    def _create(self, messages: Sequence[Dict[str, str]], stop: Optional[Sequence[str]], stream: bool):
        client = self._get_client()
        try:
            return client.chat.completions.create(
                model=self.model,
                messages=list(messages),
                temperature=self.temperature,
                max_completion_tokens=self.max_tokens,
                top_p=self.top_p,
                stop=list(stop) if stop else None,
                stream=stream,
            )
        except GroqError as exc:
            raise UpstreamServiceError(f"Groq completion failed: {exc}", service="llm") from exc

    def complete(self, prompt: str, stop: Optional[Sequence[str]] = None) -> str:
        """Return the full completion for ``prompt`` in one blocking call."""
        return self.chat(self._make_messages(prompt), stop)

    def chat(self, messages: Sequence[Dict[str, str]], stop: Optional[Sequence[str]] = None) -> str:
        if not messages:
            raise InvalidArgumentError("chat needs at least one message")
        resp = self._create(messages, stop, stream=False)
        content = resp.choices[0].message.content
        return content or ""

    def stream(self, prompt: str, stop: Optional[Sequence[str]] = None) -> Iterator[str]:
        """Yield completion tokens in generation order."""
        events = self._create(self._make_messages(prompt), stop, stream=True)
        try:
            for event in events:
                if not event.choices:
                    continue
                delta = event.choices[0].delta.content
                if delta:
                    yield delta
        except GroqError as exc:
            raise UpstreamServiceError(f"Groq stream interrupted: {exc}", service="llm") from exc


__all__ = ["LanguageModel", "ChatModel", "GroqLLM", "DEFAULT_MODEL_ID", "DEFAULT_SYSTEM_PROMPT"]

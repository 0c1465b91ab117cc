"""Chat backends: the capability interface and its OpenAI SDK implementation."""

from __future__ import annotations

import logging
import os
import subprocess
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import openai
from openai import OpenAI  # type: ignore

from .errors import ChatClientError, ConfigurationError
from .profiles import Model, Profile
from .transcript import Message
from ..utils import ASSISTANT_LABEL, Spinner

logger = logging.getLogger(__name__)

OLLAMA_DEFAULT_URL = "http://localhost:11434/v1"
ANTHROPIC_OPENAI_URL = "https://api.anthropic.com/v1/"


@dataclass
class ToolCall:
    id: str
    name: str
    arguments: str


@dataclass
class ChatResponse:
    content: str
    tool_calls: Optional[List[ToolCall]] = None


class ChatClient:
    """Interface every chat backend implements.

    The session never looks at which provider sits behind a client; it only
    calls these methods.
    """

    def generate(
        self,
        history: Sequence[Message],
        prompt: str,
        context: Optional[str] = None,
    ) -> ChatResponse:
        raise NotImplementedError

    def model_context_size(self) -> Optional[int]:
        return None

    def supports_tools(self) -> bool:
        return False

    def set_system_prompt(self, system_prompt: str) -> None:
        raise NotImplementedError

    def system_prompt(self) -> str:
        raise NotImplementedError


def create_messages(
    system_prompt: str,
    context: Optional[str],
    prompt: str,
    history: Sequence[Message],
    system_role: str = "system",
) -> List[Dict[str, Any]]:
    """Build the request payload: system prompt, replayed history, then the new prompt."""
    messages: List[Dict[str, Any]] = [{"role": system_role, "content": system_prompt}]
    messages.extend(message.as_dict() for message in history)

    user_message = prompt if not context else f"{prompt}\n\nAdditional context: {context}"
    messages.append({"role": "user", "content": user_message})
    return messages


class OpenAIChatClient(ChatClient):
    """Thin wrapper around the OpenAI Python SDK's chat completions endpoint."""

    def __init__(
        self,
        client: OpenAI,
        model: str,
        system_prompt: str,
        *,
        max_tokens: Optional[int] = None,
        system_role: str = "system",
        tools_supported: bool = False,
        context_size: Optional[int] = None,
    ):
        self.client = client
        self.model = model
        self._system_prompt = system_prompt
        self.max_tokens = max_tokens
        self.system_role = system_role
        self._tools_supported = tools_supported
        self._context_size = context_size

    # ------------------------------------------------------------------
    # Helper methods
    # ------------------------------------------------------------------

    @staticmethod
    def _extract_tool_calls(message: Any) -> Optional[List[ToolCall]]:
        raw_calls = getattr(message, "tool_calls", None)
        if not raw_calls:
            return None
        calls: List[ToolCall] = []
        for call in raw_calls:
            function = getattr(call, "function", None)
            calls.append(
                ToolCall(
                    id=str(getattr(call, "id", "")),
                    name=str(getattr(function, "name", "")),
                    arguments=str(getattr(function, "arguments", "") or ""),
                )
            )
        return calls

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def generate(
        self,
        history: Sequence[Message],
        prompt: str,
        context: Optional[str] = None,
    ) -> ChatResponse:
        params: Dict[str, Any] = {
            "model": self.model,
            "messages": create_messages(
                self._system_prompt, context, prompt, history, self.system_role
            ),
        }
        if self.max_tokens is not None:
            params["max_tokens"] = self.max_tokens

        logger.info("Requesting completion from %s with %d history messages", self.model, len(history))
        try:
            with Spinner(prefix=f"{ASSISTANT_LABEL}> "):
                response = self.client.chat.completions.create(**params)  # type: ignore[arg-type]
        except openai.OpenAIError as exc:
            logger.error("Chat request to %s failed: %s", self.model, exc)
            raise ChatClientError(f"Request to model '{self.model}' failed: {exc}") from exc

        if not getattr(response, "choices", None):
            raise ChatClientError(f"Model '{self.model}' returned no choices")

        message = response.choices[0].message
        return ChatResponse(
            content=message.content or "",
            tool_calls=self._extract_tool_calls(message),
        )

    def model_context_size(self) -> Optional[int]:
        return self._context_size

    def supports_tools(self) -> bool:
        return self._tools_supported

    def set_system_prompt(self, system_prompt: str) -> None:
        self._system_prompt = system_prompt

    def system_prompt(self) -> str:
        return self._system_prompt


# ---------------------------------------------------------------------------
# Ollama helpers
# ---------------------------------------------------------------------------


def parse_context_size(output: str) -> Optional[int]:
    """Return the number on the ``context length`` line of ``ollama show`` output."""
    for line in output.splitlines():
        line = line.strip()
        if "context length" not in line:
            continue
        parts = line.split()
        if len(parts) >= 3:
            try:
                return int(parts[-1])
            except ValueError:
                return None
    return None


def query_ollama_context_size(model: str) -> Optional[int]:
    try:
        result = subprocess.run(
            ["ollama", "show", model], capture_output=True, text=True, timeout=10
        )
    except (OSError, subprocess.SubprocessError) as exc:
        logger.warning("Could not run 'ollama show %s': %s", model, exc)
        return None
    if result.returncode != 0:
        logger.warning("'ollama show %s' failed: %s", model, result.stderr.strip())
        return None
    return parse_context_size(result.stdout)


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def _require_env(name: str, provider: str) -> str:
    value = os.getenv(name, "").strip()
    if not value:
        raise ConfigurationError(
            f"{name} environment variable is not set (required by provider '{provider}')"
        )
    return value


def ollama_base_url(host: Optional[str]) -> str:
    """OpenAI-compatible endpoint for an ``OLLAMA_HOST`` value such as ``127.0.0.1:11434``."""
    host = (host or "").strip()
    if not host:
        return OLLAMA_DEFAULT_URL
    if "://" not in host:
        host = f"http://{host}"
    host = host.rstrip("/")
    if not host.endswith("/v1"):
        host += "/v1"
    return host


def build_chat_client(
    profile: Profile,
    model: Model,
    system_prompt: str,
    max_tokens: int,
) -> ChatClient:
    """Create the chat client for *model* according to *profile*'s provider."""
    provider = profile.provider.lower()

    if provider == "openai":
        client_kwargs: Dict[str, Any] = {"api_key": _require_env("OPENAI_API_KEY", provider)}
        base_url = os.getenv("OPENAI_BASE_URL")
        if base_url:
            client_kwargs["base_url"] = base_url
        return OpenAIChatClient(
            OpenAI(**client_kwargs), model.model, system_prompt, tools_supported=True
        )

    if provider == "ollama":
        client = OpenAI(base_url=ollama_base_url(os.getenv("OLLAMA_HOST")), api_key="ollama")
        return OpenAIChatClient(
            client,
            model.model,
            system_prompt,
            context_size=query_ollama_context_size(model.model),
        )

    if provider == "anthropic":
        client = OpenAI(
            base_url=ANTHROPIC_OPENAI_URL, api_key=_require_env("ANTHROPIC_API_KEY", provider)
        )
        return OpenAIChatClient(client, model.model, system_prompt, max_tokens=max_tokens)

    raise ConfigurationError(
        f"Unsupported provider '{profile.provider}' in profile '{profile.name}' "
        "(expected openai, ollama or anthropic)"
    )

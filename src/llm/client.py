"""
LLM client abstraction for multiple LLM providers.

Provides async interface for LLM calls with:
- Structured logging of requests/responses
- Timeout handling (one retry on timeout)
- Error mapping (HTTP 429 -> LLMRateLimitError, timeouts -> LLMTimeoutError)
- Usage tracking (tokens)
- Four-client architecture (research, generation, chat, image)

Rate-limit backoff is not handled here: callers wrap requests in
src.llm.retry.run_with_retry with a policy suited to the call.

Supported providers:
- gemini: Google Gemini models (JSON schema output, search grounding,
  inline files, image generation)
- openai / deepseek: OpenAI-compatible chat completion APIs (text only)
"""

import asyncio
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional, Sequence

import httpx
import structlog

from src.core.config import settings
from src.core.exceptions import (
    ConfigurationError,
    LLMError,
    LLMInvalidResponseError,
    LLMRateLimitError,
    LLMTimeoutError,
)

log = structlog.get_logger(__name__)


LLMClientType = Literal["research", "generation", "chat", "image"]
Role = Literal["user", "model"]


# =============================================================================
# Default configurations for each client type
# =============================================================================

# Override the provider via environment variables (LLM_CHAT_PROVIDER, etc.).

RESEARCH_DEFAULTS = dict(
    provider="gemini",
    model="gemini-2.5-flash",
    temperature=0.7,
    max_tokens=8192,  # Full markdown persona plus scores
    timeout=120.0,  # Search grounding is slow
)

GENERATION_DEFAULTS = dict(
    provider="gemini",
    model="gemini-2.5-flash",
    temperature=0.7,
    max_tokens=4096,
    timeout=60.0,
)

CHAT_DEFAULTS = dict(
    provider="gemini",
    model="gemini-2.5-flash",
    temperature=0.9,  # Respondent should sound like a person, not a template
    max_tokens=1024,
    timeout=60.0,
)

IMAGE_DEFAULTS = dict(
    provider="gemini",
    model="gemini-2.5-flash-image",
    temperature=1.0,
    max_tokens=None,
    timeout=60.0,
)

DEFAULTS_MAP: Dict[LLMClientType, Dict[str, Any]] = {
    "research": RESEARCH_DEFAULTS,
    "generation": GENERATION_DEFAULTS,
    "chat": CHAT_DEFAULTS,
    "image": IMAGE_DEFAULTS,
}

# Model used when a client type is overridden to a non-default provider
PROVIDER_DEFAULT_MODELS: Dict[str, str] = {
    "gemini": "gemini-2.5-flash",
    "openai": "gpt-4o-mini",
    "deepseek": "deepseek-chat",
}


# =============================================================================
# Request / Response Types
# =============================================================================


@dataclass
class ContentPart:
    """One part of a message: text or inline base64 data."""

    text: Optional[str] = None
    mime_type: Optional[str] = None
    data: Optional[str] = None

    @classmethod
    def from_text(cls, text: str) -> "ContentPart":
        return cls(text=text)

    @classmethod
    def inline(cls, data: str, mime_type: str) -> "ContentPart":
        return cls(data=data, mime_type=mime_type)

    @property
    def is_inline(self) -> bool:
        return self.data is not None


@dataclass
class LLMMessage:
    """A conversation message sent to the model."""

    role: Role
    parts: List[ContentPart]

    @classmethod
    def user(cls, text: str) -> "LLMMessage":
        return cls(role="user", parts=[ContentPart.from_text(text)])

    @classmethod
    def model(cls, text: str) -> "LLMMessage":
        return cls(role="model", parts=[ContentPart.from_text(text)])

    @property
    def text(self) -> str:
        return "\n".join(p.text for p in self.parts if p.text)


@dataclass
class LLMResponse:
    """Standardized LLM response."""

    content: str
    model: str
    usage: Dict[str, int] = field(default_factory=dict)
    latency_ms: float = 0.0
    raw_response: Optional[Dict[str, Any]] = None
    grounding_sources: List[Dict[str, str]] = field(default_factory=list)
    images: List[str] = field(default_factory=list)


# =============================================================================
# Base Class
# =============================================================================


class LLMClient(ABC):
    """Abstract base for LLM providers."""

    provider_name: str = "base"
    max_timeout_retries: int = 1
    timeout_retry_delay: float = 1.0

    def __init__(
        self,
        model: str,
        temperature: float,
        max_tokens: Optional[int],
        timeout: float,
        client_type: LLMClientType,
        api_key: str,
        base_url: str,
    ):
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout
        self.client_type = client_type
        self.api_key = api_key
        self.base_url = base_url

        log.info(
            "llm_client_initialized",
            provider=self.provider_name,
            client_type=self.client_type,
            model=self.model,
            timeout=self.timeout,
        )

    @abstractmethod
    async def generate(
        self,
        messages: Sequence[LLMMessage],
        system: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        response_schema: Optional[Dict[str, Any]] = None,
        use_search: bool = False,
        timeout: Optional[float] = None,
    ) -> LLMResponse:
        """
        Generate the next model message for a conversation.

        Args:
            messages: Conversation so far, oldest first, ending with a user turn
            system: Optional system instruction
            temperature: Sampling temperature (defaults to init value)
            max_tokens: Maximum tokens in response (defaults to init value)
            response_schema: JSON schema the response must follow; implies
                JSON output
            use_search: Ground the answer with web search when supported
            timeout: Optional timeout override in seconds

        Returns:
            LLMResponse with content and metadata

        Raises:
            LLMTimeoutError: After the timeout retry is exhausted
            LLMRateLimitError: On HTTP 429
            LLMError: On other API errors
        """

    async def complete(
        self,
        prompt: str,
        system: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        response_schema: Optional[Dict[str, Any]] = None,
        attachments: Optional[Sequence[ContentPart]] = None,
        use_search: bool = False,
        timeout: Optional[float] = None,
    ) -> LLMResponse:
        """Single-shot completion: one user message plus optional attachments."""
        parts = [ContentPart.from_text(prompt)] + list(attachments or [])
        return await self.generate(
            [LLMMessage(role="user", parts=parts)],
            system=system,
            temperature=temperature,
            max_tokens=max_tokens,
            response_schema=response_schema,
            use_search=use_search,
            timeout=timeout,
        )

    async def generate_image(self, prompt: str) -> Optional[str]:
        """Generate an image and return it base64-encoded, or None."""
        response = await self.complete(prompt)
        return response.images[0] if response.images else None

    async def _post_json(
        self,
        url: str,
        headers: Dict[str, str],
        payload: Dict[str, Any],
        timeout: float,
    ) -> Dict[str, Any]:
        """POST with one retry on timeout and HTTP error mapping."""
        for attempt in range(self.max_timeout_retries + 1):
            try:
                async with httpx.AsyncClient(timeout=timeout) as client:
                    response = await client.post(url, headers=headers, json=payload)
                    response.raise_for_status()
                    return response.json()

            except httpx.TimeoutException as e:
                log.warning(
                    "llm_timeout",
                    provider=self.provider_name,
                    client_type=self.client_type,
                    attempt=attempt + 1,
                    timeout_seconds=timeout,
                )
                if attempt < self.max_timeout_retries:
                    await asyncio.sleep(self.timeout_retry_delay * (2**attempt))
                    continue
                raise LLMTimeoutError(
                    f"LLM call timed out after {attempt + 1} attempts "
                    f"(timeout={timeout}s)"
                ) from e

            except httpx.HTTPStatusError as e:
                status_code = e.response.status_code
                if status_code == 429:
                    log.warning(
                        "llm_rate_limit",
                        provider=self.provider_name,
                        client_type=self.client_type,
                    )
                    raise LLMRateLimitError(
                        f"{self.provider_name} rate limit exceeded (HTTP 429)"
                    ) from e
                log.error(
                    "llm_http_error",
                    provider=self.provider_name,
                    client_type=self.client_type,
                    status_code=status_code,
                )
                raise LLMError(
                    f"{self.provider_name} API error (HTTP {status_code})"
                ) from e

        # Unreachable: loop either returns or raises
        assert False, "unreachable"


# =============================================================================
# Gemini Client
# =============================================================================


class GeminiClient(LLMClient):
    """Google Gemini API client.

    Uses httpx for async HTTP calls to the generateContent REST endpoint.
    """

    provider_name = "gemini"

    def __init__(
        self,
        model: str,
        temperature: float,
        max_tokens: Optional[int],
        timeout: float,
        client_type: LLMClientType,
        api_key: Optional[str] = None,
    ):
        api_key = api_key or settings.gemini_api_key
        if not api_key:
            raise ConfigurationError("GEMINI_API_KEY not configured. Set it in .env.")

        super().__init__(
            model=model,
            temperature=temperature,
            max_tokens=max_tokens,
            timeout=timeout,
            client_type=client_type,
            api_key=api_key,
            base_url="https://generativelanguage.googleapis.com/v1beta",
        )

    @staticmethod
    def _encode_part(part: ContentPart) -> Dict[str, Any]:
        if part.is_inline:
            return {
                "inlineData": {
                    "mimeType": part.mime_type or "application/pdf",
                    "data": part.data,
                }
            }
        return {"text": part.text or ""}

    def build_payload(
        self,
        messages: Sequence[LLMMessage],
        system: Optional[str],
        temperature: float,
        max_tokens: Optional[int],
        response_schema: Optional[Dict[str, Any]],
        use_search: bool,
    ) -> Dict[str, Any]:
        """Build the generateContent request body."""
        generation_config: Dict[str, Any] = {"temperature": temperature}
        if max_tokens is not None:
            generation_config["maxOutputTokens"] = max_tokens
        if response_schema is not None:
            generation_config["responseMimeType"] = "application/json"
            generation_config["responseSchema"] = response_schema

        payload: Dict[str, Any] = {
            "contents": [
                {
                    "role": message.role,
                    "parts": [self._encode_part(p) for p in message.parts],
                }
                for message in messages
            ],
            "generationConfig": generation_config,
        }
        if system:
            payload["systemInstruction"] = {"parts": [{"text": system}]}
        if use_search:
            payload["tools"] = [{"googleSearch": {}}]
        return payload

    @staticmethod
    def parse_response(data: Dict[str, Any]) -> Dict[str, Any]:
        """Extract text, inline images and grounding sources from a response."""
        candidates = data.get("candidates") or []
        if not candidates:
            block_reason = (data.get("promptFeedback") or {}).get("blockReason")
            if block_reason:
                raise LLMInvalidResponseError(
                    f"Gemini blocked the prompt: {block_reason}"
                )
            return {"text": "", "images": [], "sources": []}

        candidate = candidates[0]
        texts: List[str] = []
        images: List[str] = []
        for part in (candidate.get("content") or {}).get("parts") or []:
            if part.get("thought"):
                continue
            if part.get("text"):
                texts.append(part["text"])
            inline = part.get("inlineData") or part.get("inline_data")
            if inline and inline.get("data"):
                images.append(inline["data"])

        sources: List[Dict[str, str]] = []
        grounding = candidate.get("groundingMetadata") or {}
        for chunk in grounding.get("groundingChunks") or []:
            web = chunk.get("web")
            if web and web.get("uri"):
                sources.append({"uri": web["uri"], "title": web.get("title", "")})

        return {"text": "".join(texts), "images": images, "sources": sources}

    async def generate(
        self,
        messages: Sequence[LLMMessage],
        system: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        response_schema: Optional[Dict[str, Any]] = None,
        use_search: bool = False,
        timeout: Optional[float] = None,
    ) -> LLMResponse:
        """Call the Gemini generateContent endpoint."""
        temperature = self.temperature if temperature is None else temperature
        max_tokens = self.max_tokens if max_tokens is None else max_tokens
        timeout = self.timeout if timeout is None else timeout

        payload = self.build_payload(
            messages, system, temperature, max_tokens, response_schema, use_search
        )
        headers = {
            "x-goog-api-key": self.api_key,
            "content-type": "application/json",
        }

        log.debug(
            "llm_call_start",
            provider=self.provider_name,
            client_type=self.client_type,
            model=self.model,
            message_count=len(messages),
            system_length=len(system) if system else 0,
            json_output=response_schema is not None,
            use_search=use_search,
        )

        start = time.perf_counter()
        data = await self._post_json(
            f"{self.base_url}/models/{self.model}:generateContent",
            headers,
            payload,
            timeout,
        )
        latency_ms = (time.perf_counter() - start) * 1000

        parsed = self.parse_response(data)
        usage_meta = data.get("usageMetadata", {})
        usage = {
            "input_tokens": usage_meta.get("promptTokenCount", 0),
            "output_tokens": usage_meta.get("candidatesTokenCount", 0),
        }

        log.info(
            "llm_call_complete",
            provider=self.provider_name,
            client_type=self.client_type,
            model=self.model,
            latency_ms=round(latency_ms, 2),
            input_tokens=usage["input_tokens"],
            output_tokens=usage["output_tokens"],
            grounding_sources=len(parsed["sources"]),
        )

        return LLMResponse(
            content=parsed["text"],
            model=data.get("modelVersion", self.model),
            usage=usage,
            latency_ms=latency_ms,
            raw_response=data,
            grounding_sources=parsed["sources"],
            images=parsed["images"],
        )


# =============================================================================
# OpenAI-Compatible Client
# =============================================================================


class OpenAICompatibleClient(LLMClient):
    """
    Client for providers following the OpenAI chat completions format.

    Text only: inline files are dropped and search grounding is ignored.
    """

    BASE_URLS = {
        "openai": "https://api.openai.com/v1",
        "deepseek": "https://api.deepseek.com",
    }

    def __init__(
        self,
        model: str,
        temperature: float,
        max_tokens: Optional[int],
        timeout: float,
        client_type: LLMClientType,
        provider_name: str,
        api_key: Optional[str] = None,
    ):
        if provider_name not in self.BASE_URLS:
            raise ConfigurationError(f"Unknown OpenAI-compatible provider: {provider_name}")

        api_key = api_key or getattr(settings, f"{provider_name}_api_key", None)
        if not api_key:
            raise ConfigurationError(
                f"{provider_name.upper()}_API_KEY not configured. Set it in .env."
            )

        self.provider_name = provider_name
        super().__init__(
            model=model,
            temperature=temperature,
            max_tokens=max_tokens,
            timeout=timeout,
            client_type=client_type,
            api_key=api_key,
            base_url=self.BASE_URLS[provider_name],
        )

    def build_payload(
        self,
        messages: Sequence[LLMMessage],
        system: Optional[str],
        temperature: float,
        max_tokens: Optional[int],
        response_schema: Optional[Dict[str, Any]],
    ) -> Dict[str, Any]:
        """Build the chat/completions request body."""
        chat_messages: List[Dict[str, str]] = []
        if system:
            chat_messages.append({"role": "system", "content": system})
        for message in messages:
            dropped = sum(1 for p in message.parts if p.is_inline)
            if dropped:
                log.debug(
                    "inline_parts_dropped",
                    provider=self.provider_name,
                    count=dropped,
                )
            chat_messages.append(
                {
                    "role": "assistant" if message.role == "model" else "user",
                    "content": message.text,
                }
            )

        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": chat_messages,
            "temperature": temperature,
        }
        if max_tokens is not None:
            payload["max_tokens"] = max_tokens
        if response_schema is not None:
            payload["response_format"] = {"type": "json_object"}
        return payload

    async def generate(
        self,
        messages: Sequence[LLMMessage],
        system: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        response_schema: Optional[Dict[str, Any]] = None,
        use_search: bool = False,
        timeout: Optional[float] = None,
    ) -> LLMResponse:
        """Call the chat/completions endpoint."""
        temperature = self.temperature if temperature is None else temperature
        max_tokens = self.max_tokens if max_tokens is None else max_tokens
        timeout = self.timeout if timeout is None else timeout

        if use_search:
            log.debug(
                "search_grounding_ignored",
                provider=self.provider_name,
                reason="OpenAI-compatible APIs have no built-in search tool",
            )

        payload = self.build_payload(
            messages, system, temperature, max_tokens, response_schema
        )
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        start = time.perf_counter()
        data = await self._post_json(
            f"{self.base_url}/chat/completions", headers, payload, timeout
        )
        latency_ms = (time.perf_counter() - start) * 1000

        content = ""
        if data.get("choices"):
            content = data["choices"][0].get("message", {}).get("content") or ""

        usage = {
            "input_tokens": data.get("usage", {}).get("prompt_tokens", 0),
            "output_tokens": data.get("usage", {}).get("completion_tokens", 0),
        }

        log.info(
            "llm_call_complete",
            provider=self.provider_name,
            client_type=self.client_type,
            model=self.model,
            latency_ms=round(latency_ms, 2),
            input_tokens=usage["input_tokens"],
            output_tokens=usage["output_tokens"],
        )

        return LLMResponse(
            content=content,
            model=data.get("model", self.model),
            usage=usage,
            latency_ms=latency_ms,
            raw_response=data,
        )


# =============================================================================
# Client Factory
# =============================================================================


def get_llm_client(client_type: LLMClientType) -> LLMClient:
    """
    Factory for LLM client based on client type.

    Uses the defaults for each client type, with optional environment
    variable overrides (LLM_RESEARCH_PROVIDER, etc.).

    Args:
        client_type: "research", "generation", "chat" or "image"

    Returns:
        LLMClient instance configured for the client type

    Raises:
        ConfigurationError: If the provider is unknown or its API key is missing
    """
    defaults = DEFAULTS_MAP[client_type]

    override = getattr(settings, f"llm_{client_type}_provider", None)
    provider = override or defaults["provider"]
    model = defaults["model"]
    if provider != defaults["provider"]:
        model = PROVIDER_DEFAULT_MODELS.get(provider, model)

    if provider == "gemini":
        return GeminiClient(
            model=model,
            temperature=defaults["temperature"],
            max_tokens=defaults["max_tokens"],
            timeout=defaults["timeout"],
            client_type=client_type,
        )
    if provider in OpenAICompatibleClient.BASE_URLS:
        return OpenAICompatibleClient(
            model=model,
            temperature=defaults["temperature"],
            max_tokens=defaults["max_tokens"],
            timeout=defaults["timeout"],
            client_type=client_type,
            provider_name=provider,
        )
    raise ConfigurationError(
        f"Unknown LLM provider '{provider}' for {client_type}. "
        f"Supported providers: gemini, openai, deepseek"
    )

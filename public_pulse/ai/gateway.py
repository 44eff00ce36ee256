"""
Public Pulse
LLM Gateway.

Routes chat calls for the issue classifiers to a language-model provider:

    claude-*  → Anthropic        (ANTHROPIC_API_KEY)
    gpt-*     → OpenAI           (OPENAI_API_KEY)
    gemini-*  → Google Gemini    (GEMINI_API_KEY)
    anything else → local stub; a provider without credentials also falls
    back to the stub unless the gateway is strict (LLM_STRICT_PROVIDERS)

Provider SDKs are imported on first use. Every call is bounded by an
optional timeout and leaves one ``AIUsageLog`` row in the caller's session.

Usage:
    gw = LLMGateway(app)
    reply = gw.chat(messages, model="gemini-2.5-flash", purpose="severity", timeout=15)
    reply["content"], reply["provider"], reply["latency_ms"]
"""

import logging
import os
import threading
import time
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError

from public_pulse.models import db
from public_pulse.models.ai import AIUsageLog, calculate_cost

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOKENS = 256
LOCAL = "local"


class LLMTimeoutError(RuntimeError):
    """The provider did not answer within the allotted time."""


class ProviderUnavailableError(RuntimeError):
    """The model's provider has no credentials and stub fallback is off."""

    def __init__(self, provider: str, model: str):
        self.provider = provider
        self.model = model
        super().__init__(f"Provider {provider!r} for model {model!r} is not configured")


def split_system(messages):
    """Return (system text, remaining turns); providers take the system prompt apart."""
    system = "\n\n".join(m["content"] for m in messages if m["role"] == "system")
    turns = [m for m in messages if m["role"] != "system"]
    return system, turns


def _reply(content, prompt_tokens, completion_tokens, model):
    return {
        "content": content or "",
        "prompt_tokens": prompt_tokens or 0,
        "completion_tokens": completion_tokens or 0,
        "model": model,
    }


# ── Providers ─────────────────────────────────────────────────────────────────

class LLMProvider(ABC):
    """One language-model backend."""

    @abstractmethod
    def chat(self, messages: list, model: str, **kwargs) -> dict:
        """Return ``{content, prompt_tokens, completion_tokens, model}``."""


class SDKProvider(LLMProvider):
    """Provider backed by a vendor SDK that is imported on first call."""

    api_key_env = ""
    package = ""

    def __init__(self):
        self.api_key = os.getenv(self.api_key_env, "")
        self._client = None

    @classmethod
    def configured(cls) -> bool:
        return bool(os.getenv(cls.api_key_env))

    @property
    def client(self):
        if self._client is None:
            try:
                self._client = self.build_client()
            except ImportError as e:
                raise RuntimeError(f"{self.package} is not installed (pip install {self.package})") from e
        return self._client

    @abstractmethod
    def build_client(self):
        ...


class AnthropicProvider(SDKProvider):
    api_key_env = "ANTHROPIC_API_KEY"
    package = "anthropic"

    def build_client(self):
        import anthropic
        return anthropic.Anthropic(api_key=self.api_key, max_retries=0)

    def chat(self, messages, model, **kwargs):
        system, turns = split_system(messages)
        params = dict(
            model=model,
            messages=turns,
            max_tokens=kwargs.get("max_tokens", DEFAULT_MAX_TOKENS),
            temperature=kwargs.get("temperature", 0.0),
        )
        if system:
            params["system"] = system
        if kwargs.get("timeout"):
            params["timeout"] = kwargs["timeout"]
        resp = self.client.messages.create(**params)
        text = "".join(getattr(block, "text", "") for block in resp.content)
        return _reply(text, resp.usage.input_tokens, resp.usage.output_tokens, model)


class OpenAIProvider(SDKProvider):
    api_key_env = "OPENAI_API_KEY"
    package = "openai"

    def build_client(self):
        import openai
        return openai.OpenAI(api_key=self.api_key, max_retries=0)

    def chat(self, messages, model, **kwargs):
        extra = {"timeout": kwargs["timeout"]} if kwargs.get("timeout") else {}
        resp = self.client.chat.completions.create(
            model=model,
            messages=messages,
            max_tokens=kwargs.get("max_tokens", DEFAULT_MAX_TOKENS),
            temperature=kwargs.get("temperature", 0.0),
            **extra,
        )
        usage = resp.usage
        return _reply(resp.choices[0].message.content, usage.prompt_tokens,
                      usage.completion_tokens, model)


class GeminiProvider(SDKProvider):
    api_key_env = "GEMINI_API_KEY"
    package = "google-genai"

    def build_client(self):
        from google import genai
        return genai.Client(api_key=self.api_key)

    def chat(self, messages, model, **kwargs):
        from google.genai import types

        system, turns = split_system(messages)
        # Gemini names the assistant role "model"
        contents = [
            types.Content(role="model" if m["role"] == "assistant" else "user",
                          parts=[types.Part(text=m["content"])])
            for m in turns
        ]
        timeout = kwargs.get("timeout")
        config = types.GenerateContentConfig(
            temperature=kwargs.get("temperature", 0.0),
            max_output_tokens=kwargs.get("max_tokens", DEFAULT_MAX_TOKENS),
            system_instruction=system or None,
            # HttpOptions.timeout is in milliseconds
            http_options=types.HttpOptions(timeout=int(timeout * 1000)) if timeout else None,
        )
        resp = self.client.models.generate_content(model=model, contents=contents, config=config)
        meta = resp.usage_metadata
        return _reply(resp.text, getattr(meta, "prompt_token_count", 0),
                      getattr(meta, "candidates_token_count", 0), model)


class LocalStubProvider(LLMProvider):
    """
    Deterministic answers for development and tests; needs no credentials.

    Severity prompts score 7 when the text mentions an urgent hazard and 4
    otherwise. Department prompts answer with the first listed department
    named in the issue text, else "None".
    """

    _URGENT_WORDS = ("sewage", "flood", "fire", "collapse", "gas", "electric", "danger", "injur")

    def chat(self, messages, model=LOCAL, **kwargs):
        prompt = next((m["content"] for m in reversed(messages) if m["role"] == "user"), "")
        content = self._generate_stub_response(prompt)
        # Rough token estimate: two per word
        return _reply(content, 2 * len(prompt.split()), 2 * len(content.split()), "local-stub")

    @classmethod
    def _generate_stub_response(cls, prompt: str) -> str:
        lower = prompt.lower()
        if "departments:" in lower:
            issue_text = lower.split("departments:")[0]
            names = [line.strip()[2:].strip() for line in prompt.splitlines()
                     if line.strip().startswith("- ")]
            named = [n for n in names if n.lower() in issue_text]
            return named[0] if named else "None"
        if "severity" in lower:
            urgent = any(w in lower for w in cls._URGENT_WORDS)
            return f"Severity: {7 if urgent else 4}"
        return "OK"


# ── Gateway ───────────────────────────────────────────────────────────────────

class LLMGateway:
    """Single entry point for language-model calls."""

    # Model-name prefix → provider
    ROUTES = (
        ("claude-", "anthropic"),
        ("gpt-", "openai"),
        ("gemini-", "gemini"),
    )
    PROVIDER_CLASSES = {
        "anthropic": AnthropicProvider,
        "openai": OpenAIProvider,
        "gemini": GeminiProvider,
    }
    DEFAULT_MODEL = os.getenv("LLM_DEFAULT_CHAT_MODEL", "gemini-2.5-flash")

    # Provider calls run here so the caller can stop waiting on timeout.
    # A call past its timeout keeps its worker until the SDK gives up, so
    # admission is bounded by _slots rather than queueing behind hung calls.
    MAX_IN_FLIGHT = 8
    _executor = ThreadPoolExecutor(max_workers=MAX_IN_FLIGHT, thread_name_prefix="llm")
    _slots = threading.BoundedSemaphore(MAX_IN_FLIGHT)

    def __init__(self, app=None, *, strict=None):
        """
        ``strict`` refuses to substitute the local stub for a provider that
        has no credentials; defaults to the app's ``LLM_STRICT_PROVIDERS``.
        """
        self._app = app
        if strict is None:
            strict = bool(app.config.get("LLM_STRICT_PROVIDERS")) if app is not None else False
        self.strict = strict
        self._providers = {LOCAL: LocalStubProvider()}
        for name, provider_cls in self.PROVIDER_CLASSES.items():
            if provider_cls.configured():
                self._providers[name] = provider_cls()
        logger.debug("LLM providers available: %s (strict=%s)", self.available_providers, strict)

    @property
    def available_providers(self) -> list[str]:
        return sorted(self._providers)

    def resolve(self, model: str) -> tuple[str, LLMProvider]:
        """
        Pick the provider for ``model``. Names without a known prefix go to
        the local stub; a known provider without credentials raises
        ``ProviderUnavailableError`` when strict, else falls back to the stub.
        """
        wanted = next((p for prefix, p in self.ROUTES if model.startswith(prefix)), LOCAL)
        if wanted in self._providers:
            return wanted, self._providers[wanted]
        if self.strict:
            raise ProviderUnavailableError(wanted, model)
        logger.warning("Provider %r has no credentials; model %r served by the local stub",
                       wanted, model)
        return LOCAL, self._providers[LOCAL]

    def _invoke(self, provider, messages, model, timeout, **kwargs) -> dict:
        if not timeout:
            return provider.chat(messages, model, **kwargs)
        deadline = time.monotonic() + timeout
        if not self._slots.acquire(timeout=timeout):
            raise LLMTimeoutError(f"No LLM worker free within {timeout}s")
        try:
            future = self._executor.submit(provider.chat, messages, model, timeout=timeout, **kwargs)
        except BaseException:
            self._slots.release()
            raise
        future.add_done_callback(lambda _: self._slots.release())
        try:
            return future.result(timeout=max(deadline - time.monotonic(), 0))
        except FutureTimeoutError:
            future.cancel()
            raise LLMTimeoutError(f"LLM call exceeded {timeout}s")

    def chat(self, messages: list, model: str | None = None, *, purpose: str = "",
             issue_id: str | None = None, max_retries: int = 1,
             timeout: float | None = None, **kwargs) -> dict:
        """
        Run one chat completion.

        Args:
            messages: ``[{"role": ..., "content": ...}]``.
            model: model name; ``DEFAULT_MODEL`` when omitted.
            purpose: usage-log tag ("severity", "department").
            issue_id: issue the call is about, when it already exists.
            max_retries: total attempts; 1 disables retrying.
            timeout: seconds to wait for each attempt.
            **kwargs: ``temperature``, ``max_tokens`` for the provider.

        Returns:
            ``{content, prompt_tokens, completion_tokens, model, cost_usd,
            latency_ms, provider}``

        Raises:
            LLMTimeoutError: the last attempt timed out.
            ProviderUnavailableError: strict and the provider has no credentials.
            RuntimeError: every attempt failed.
        """
        model = model or self.DEFAULT_MODEL
        try:
            provider_name, provider = self.resolve(model)
        except ProviderUnavailableError as e:
            self._log_usage(AIUsageLog.record(provider=e.provider, model=model, purpose=purpose,
                                              issue_id=issue_id, error=e))
            raise
        usage = dict(provider=provider_name, model=model, purpose=purpose, issue_id=issue_id)

        error = None
        for attempt in range(1, max_retries + 1):
            started = time.perf_counter()
            try:
                reply = self._invoke(provider, messages, model, timeout, **kwargs)
            except Exception as e:
                error = e
                logger.warning("LLM call %s/%s attempt %d/%d failed: %s",
                               provider_name, model, attempt, max_retries, e)
                if attempt < max_retries:
                    threading.Event().wait(min(2 ** (attempt - 1), 4))
                continue

            latency_ms = int((time.perf_counter() - started) * 1000)
            reply.update(
                provider=provider_name,
                latency_ms=latency_ms,
                cost_usd=calculate_cost(model, reply["prompt_tokens"], reply["completion_tokens"]),
            )
            self._log_usage(AIUsageLog.record(
                **usage,
                prompt_tokens=reply["prompt_tokens"],
                completion_tokens=reply["completion_tokens"],
                latency_ms=latency_ms,
            ))
            return reply

        self._log_usage(AIUsageLog.record(**usage, error=error))
        if isinstance(error, LLMTimeoutError):
            raise error
        raise RuntimeError(f"LLM call failed after {max_retries} attempt(s): {error}") from error

    @staticmethod
    def _log_usage(row):
        """Stage the usage row in the caller's transaction."""
        try:
            db.session.add(row)
            db.session.flush()
        except Exception as e:
            logger.error("Failed to log AI usage: %s", e)
            db.session.rollback()

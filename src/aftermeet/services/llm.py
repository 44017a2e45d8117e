"""Content-writing LLM access through a LiteLLM Router.

Every provider with an API key contributes one deployment to the same model
group (``LLM_MODEL_GROUP``), so the Router retries and fails over between
Anthropic and OpenAI transparently. Callers see a plain dict with the text,
the concrete model that answered, and token usage.
"""

from __future__ import annotations

import structlog
from litellm import Router

from src.aftermeet.config import Settings, get_settings
from src.aftermeet.content.schemas import CONTENT_TYPE_EMAIL
from src.aftermeet.core.monitoring import track_llm_call

logger = structlog.get_logger(__name__)


def build_model_list(settings: Settings) -> list[dict]:
    """Router deployments for each configured provider, all in one model group."""
    providers = (
        (settings.ANTHROPIC_API_KEY, settings.ANTHROPIC_MODEL),
        (settings.OPENAI_API_KEY, settings.OPENAI_MODEL),
    )
    return [
        {
            "model_name": settings.LLM_MODEL_GROUP,
            "litellm_params": {"model": model, "api_key": api_key},
        }
        for api_key, model in providers
        if api_key
    ]


class LLMService:
    """Thin async wrapper over ``Router.acompletion``.

    ``router`` is None when no provider key is configured; calls then fail
    with RuntimeError, which the content generator records per item.
    """

    def __init__(self, settings: Settings | None = None) -> None:
        settings = settings or get_settings()
        self._timeout = settings.LLM_TIMEOUT
        self._max_tokens = settings.LLM_MAX_TOKENS
        self._temperature = settings.LLM_TEMPERATURE

        model_list = build_model_list(settings)
        if not model_list:
            logger.warning("llm.no_api_keys_configured")
            self.router: Router | None = None
            return

        self.router = Router(
            model_list=model_list,
            num_retries=settings.LLM_MAX_RETRIES,
            timeout=settings.LLM_TIMEOUT,
            allowed_fails=3,
            cooldown_time=30,
        )
        logger.info(
            "llm.router_ready",
            model_group=settings.LLM_MODEL_GROUP,
            deployments=[m["litellm_params"]["model"] for m in model_list],
        )

    async def completion(
        self,
        messages: list[dict],
        model: str,
        timeout: float | None = None,
        metadata: dict | None = None,
    ) -> dict:
        """Run one chat completion.

        Args:
            messages: Chat messages (system + user).
            model: Router model group to call.
            timeout: Per-call timeout in seconds, defaults to LLM_TIMEOUT.
            metadata: Caller context (user_id, meeting_id, content_type)
                forwarded to LiteLLM callbacks.

        Returns:
            Dict with ``content``, ``model`` and ``usage``.

        Raises:
            RuntimeError: If no LLM provider is configured.
        """
        if self.router is None:
            raise RuntimeError("No LLM API keys configured")

        metadata = metadata or {}
        kind = "email" if metadata.get("content_type") == CONTENT_TYPE_EMAIL else "social_post"

        async with track_llm_call(model, kind) as usage:
            response = await self.router.acompletion(
                model=model,
                messages=messages,
                max_tokens=self._max_tokens,
                temperature=self._temperature,
                timeout=timeout or self._timeout,
                metadata=metadata,
            )
            if getattr(response, "usage", None):
                usage["prompt_tokens"] = response.usage.prompt_tokens
                usage["completion_tokens"] = response.usage.completion_tokens

        return {
            "content": response.choices[0].message.content,
            "model": response.model,
            "usage": dict(usage),
        }


_llm_service: LLMService | None = None


def get_llm_service() -> LLMService:
    """Process-wide LLMService, created on first use."""
    global _llm_service
    if _llm_service is None:
        _llm_service = LLMService()
    return _llm_service

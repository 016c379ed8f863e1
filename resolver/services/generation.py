from __future__ import annotations

import textwrap
from typing import Optional, Sequence

import structlog

from resolver.config import GenerationConfig
from resolver.models.resolution import ExtractedContent, StrategyName
from resolver.services.exceptions import ResourceUnavailable
from resolver.services.extractor import sanitize
from resolver.services.strategies import AttemptContext, ResolutionStrategy

logger = structlog.get_logger(__name__)

OPENAI_COMPATIBLE_PROVIDERS = {"xai", "openai"}


def build_prompt(topic: str) -> str:
    return textwrap.dedent(
        f"""
        Write a comprehensive encyclopedia article about "{topic}".

        Begin with an introductory paragraph, then organise the rest of the
        article into sections using ## headers. Return only the article body
        in Markdown.
        """
    ).strip()


def _generate_with_openai_compatible(
    config: GenerationConfig, system_prompt: str, prompt: str, timeout: float
) -> Optional[str]:
    try:
        from openai import OpenAI  # type: ignore[import-untyped]
    except ImportError:
        # structlog uses the positional argument for the event name; keep ``event`` keyword-only.
        logger.warning(
            event="generation_provider_unavailable",
            operation="generation.provider_unavailable",
            provider=config.provider,
            reason="package_missing",
        )
        return None

    client = OpenAI(
        api_key=config.api_key,
        base_url=config.base_url,
        timeout=timeout,
        max_retries=0,
    )
    response = client.chat.completions.create(
        model=config.model,
        messages=[
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": prompt},
        ],
        temperature=config.temperature,
        max_tokens=config.max_tokens,
    )
    choices = getattr(response, "choices", None) or []
    if not choices:
        return None
    return choices[0].message.content


def _generate_with_gemini(
    config: GenerationConfig, system_prompt: str, prompt: str, timeout: float
) -> Optional[str]:
    try:
        import google.generativeai as genai  # type: ignore[import-untyped]
    except ImportError:
        # structlog uses the positional argument for the event name; keep ``event`` keyword-only.
        logger.warning(
            event="generation_provider_unavailable",
            operation="generation.provider_unavailable",
            provider="gemini",
            reason="package_missing",
        )
        return None

    genai.configure(api_key=config.api_key)
    model = genai.GenerativeModel(config.model, system_instruction=system_prompt)
    result = model.generate_content(
        prompt,
        generation_config={
            "temperature": config.temperature,
            "max_output_tokens": config.max_tokens,
        },
        request_options={"timeout": timeout},
    )
    return getattr(result, "text", None)


class GenerativeStrategy(ResolutionStrategy):
    """Ask a text-generation backend to write the article from scratch."""

    name = StrategyName.GENERATIVE

    def __init__(self, config: Optional[GenerationConfig] = None) -> None:
        self._config = config

    @property
    def config(self) -> GenerationConfig:
        return self._config or GenerationConfig.from_env()

    def availability(self):
        config = self.config
        if not config.api_key:
            return False, "missing_credential"
        if not config.is_available:
            return False, "unknown_provider"
        return True, None

    def _generate(
        self, config: GenerationConfig, system_prompt: str, prompt: str, timeout: float
    ) -> Optional[str]:
        if config.provider in OPENAI_COMPATIBLE_PROVIDERS:
            return _generate_with_openai_compatible(config, system_prompt, prompt, timeout)
        if config.provider == "gemini":
            return _generate_with_gemini(config, system_prompt, prompt, timeout)
        raise ResourceUnavailable(
            f"Unknown generation provider: {config.provider}", reason="unknown_provider"
        )

    def attempt(
        self,
        topic: str,
        candidates: Sequence[str],
        context: AttemptContext,
    ) -> Optional[ExtractedContent]:
        config = self.config
        if not config.is_available:
            raise ResourceUnavailable(
                "No generation credential configured", reason="missing_credential"
            )
        profile = context.profile
        timeout = context.token.timeout_for(config.timeout_seconds)

        try:
            generated = self._generate(
                config, profile.system_prompt, build_prompt(topic), timeout
            )
        except ResourceUnavailable:
            raise
        except Exception as exc:
            # structlog uses the positional argument for the event name; keep ``event`` keyword-only.
            logger.error(
                event="generation_provider_error",
                operation="generation.provider_error",
                provider=config.provider,
                error=str(exc),
            )
            context.debug.note(f"{self.name.value}: provider error")
            return None

        body = sanitize(generated, profile.brand_names)
        if not body:
            context.debug.note(f"{self.name.value}: empty output")
            return None
        if not body.startswith("# "):
            body = f"# {topic}\n\n{body}"

        logger.info(
            event="generation_completed",
            operation="generation.completed",
            provider=config.provider,
            model=config.model,
            chars=len(body),
        )
        return ExtractedContent(
            title=topic, body=body, source_url=profile.search_url(topic)
        )

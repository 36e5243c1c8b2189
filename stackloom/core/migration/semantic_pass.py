"""Semantic (LLM-assisted) transformation pass.

Optional second pass that hands the AST-rewritten code to an LLM through
llama_index.  Provider failures surface as :class:`AIServiceError` so the
orchestrator can route them through the Recovery Manager.
"""

import json
import logging
from typing import Any, Dict, Optional, Protocol, runtime_checkable

from llama_index.core import Settings
from llama_index.core.llms import LLM

from .errors import AIServiceError
from .lanes import LaneRegistry, create_default_registry
from .models import MigrationSpecification, SemanticPassResult, TransformationContext
from .prompts import build_transform_prompt

logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE = 50


@runtime_checkable
class SemanticTransformer(Protocol):
    """What the orchestrator needs from a semantic pass."""

    def is_available(self) -> bool:
        ...

    async def transform(
        self,
        code: str,
        spec: MigrationSpecification,
        context: TransformationContext,
    ) -> SemanticPassResult:
        ...


def _strip_fences(text: str) -> str:
    text = text.strip()
    if text.startswith("```"):
        lines = text.split("\n")
        if lines[0].startswith("```"):
            lines = lines[1:]
        if lines and lines[-1].strip() == "```":
            lines = lines[:-1]
        text = "\n".join(lines).strip()
    return text


def parse_semantic_response(raw: str) -> SemanticPassResult:
    """Parse the model's JSON answer.

    A response that is not JSON, or has no ``code`` field, is taken as raw
    code with low confidence and a review flag.
    """
    text = _strip_fences(raw)
    parsed: Optional[Dict[str, Any]] = None
    try:
        candidate = json.loads(text)
        if isinstance(candidate, dict):
            parsed = candidate
    except json.JSONDecodeError:
        start, end = text.find("{"), text.rfind("}")
        if start != -1 and end > start:
            try:
                candidate = json.loads(text[start:end + 1])
                if isinstance(candidate, dict):
                    parsed = candidate
            except json.JSONDecodeError:
                parsed = None

    if not parsed or not parsed.get("code"):
        logger.warning("Semantic pass response was not in the expected JSON format")
        return SemanticPassResult(
            code=raw,
            confidence=DEFAULT_CONFIDENCE,
            warnings=["Response format was unexpected"],
            requires_review=True,
        )

    try:
        confidence = int(parsed.get("confidence") or DEFAULT_CONFIDENCE)
    except (TypeError, ValueError):
        confidence = DEFAULT_CONFIDENCE
    warnings = parsed.get("warnings") or []
    return SemanticPassResult(
        code=parsed["code"],
        confidence=max(0, min(100, confidence)),
        warnings=[str(w) for w in warnings] if isinstance(warnings, list) else [str(warnings)],
        requires_review=parsed.get("requiresReview") is not False,
    )


class LLMSemanticTransformer:
    """Semantic pass backed by a llama_index LLM.

    Args:
        llm: LLM instance. ``None`` leaves the pass unavailable.
        lane_registry: Lanes that may append framework guidance to the prompt
        provider: Provider name recorded on errors
    """

    def __init__(
        self,
        llm: Optional[LLM] = None,
        lane_registry: Optional[LaneRegistry] = None,
        provider: str = "llama_index",
    ):
        self._llm = llm
        self._lanes = lane_registry or create_default_registry()
        self.provider = provider

    def is_available(self) -> bool:
        return self._llm is not None

    async def transform(
        self,
        code: str,
        spec: MigrationSpecification,
        context: TransformationContext,
    ) -> SemanticPassResult:
        """Run the LLM on one file.

        Raises:
            AIServiceError: If no LLM is configured or the provider call fails
        """
        if self._llm is None:
            raise AIServiceError("No LLM configured for the semantic pass", self.provider, retryable=False)

        prompt = build_transform_prompt(code, spec, context)
        lane = self._lanes.detect_lane(spec.source.framework, spec.target.framework)
        if lane is not None:
            prompt = lane.augment_prompt(prompt, spec)

        logger.info(f"Semantic pass for {context.file_path} (prompt {len(prompt)} chars)")
        try:
            response = await self._llm.acomplete(prompt)
        except Exception as e:
            raise AIServiceError(f"LLM call failed: {e}", self.provider) from e

        return parse_semantic_response(response.text or "")


def create_llm(settings) -> LLM:
    """Build the configured llama_index LLM.

    Args:
        settings: ``SemanticSettings`` section

    Raises:
        ValueError: If the provider is unknown
    """
    provider = settings.provider.lower()
    if provider == "ollama":
        from llama_index.llms.ollama import Ollama

        kwargs: Dict[str, Any] = {
            "model": settings.model,
            "temperature": settings.temperature,
            "request_timeout": settings.request_timeout,
        }
        if settings.base_url:
            kwargs["base_url"] = settings.base_url
        return Ollama(**kwargs)
    if provider == "openai":
        from llama_index.llms.openai import OpenAI

        return OpenAI(
            model=settings.model,
            temperature=settings.temperature,
            api_key=settings.api_key,
            timeout=settings.request_timeout,
        )
    raise ValueError(f"Unsupported LLM provider: {settings.provider}")


def create_semantic_transformer(
    settings,
    lane_registry: Optional[LaneRegistry] = None,
) -> Optional[LLMSemanticTransformer]:
    """Semantic transformer for the configured provider, or ``None`` when disabled."""
    if not settings.enabled:
        return None
    llm = create_llm(settings)
    Settings.llm = llm
    logger.info(f"Semantic pass enabled: {settings.provider}/{settings.model}")
    return LLMSemanticTransformer(llm=llm, lane_registry=lane_registry, provider=settings.provider)

# agents/extraction_agent.py
"""Agent wrapping every call the engine makes to the generative-text service."""

from __future__ import annotations

import json
import re
from typing import Any

import structlog
from config import settings
from consolidation.vocabulary import AgeBracket
from core.exceptions import EmptyResponseError, ResponseParseError
from core.llm_interface import LLMService, llm_service
from core.usage import ServiceUsage
from models.entity_models import Character, ExtractionPayload
from models.run_models import EntityBundle, ExtractionResponse
from prompt_renderer import render_prompt
from pydantic import BaseModel, ValidationError

logger = structlog.get_logger(__name__)

_JSON_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)


def _age_brackets() -> list[str]:
    return [bracket.value for bracket in AgeBracket]


def parse_json_object(raw_text: str) -> dict[str, Any]:
    """Parse ``raw_text`` into a JSON object.

    Falls back to the outermost ``{...}`` span when the service wrapped the
    object in prose.

    Raises:
        EmptyResponseError: ``raw_text`` is blank.
        ResponseParseError: no JSON object could be recovered.
    """
    text = (raw_text or "").strip()
    if not text:
        raise EmptyResponseError(raw_text or "")
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as exc:
        match = _JSON_OBJECT_RE.search(text)
        if match is None:
            raise ResponseParseError(f"JSON parse failed: {exc}", raw_text) from exc
        try:
            parsed = json.loads(match.group(0))
        except json.JSONDecodeError as inner:
            raise ResponseParseError(f"JSON parse failed: {inner}", raw_text) from inner
    if not isinstance(parsed, dict):
        raise ResponseParseError(
            f"Expected a JSON object, got {type(parsed).__name__}.", raw_text
        )
    return parsed


def _validate(model: type[BaseModel], data: dict[str, Any], raw_text: str) -> Any:
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise ResponseParseError(
            f"Response does not match the {model.__name__} contract: {exc}", raw_text
        ) from exc


class ExtractionAgent:
    """Build prompts, call the service and turn answers into typed payloads."""

    def __init__(
        self,
        model_name: str = settings.EXTRACTION_MODEL,
        llm: LLMService | None = None,
        merge_model_name: str | None = None,
        timeout: float | None = None,
    ):
        self.model_name = model_name
        self.merge_model_name = merge_model_name or settings.MERGE_MODEL or model_name
        self.llm = llm or llm_service
        self.timeout = timeout
        self.usage = ServiceUsage()
        logger.info(
            "ExtractionAgent initialized with model: %s", self.model_name
        )

    def build_base_prompt(self, prompt_override: str | None = None) -> str:
        """Return the override when it is non-blank, else the default prompt."""
        if prompt_override and prompt_override.strip():
            return prompt_override
        return render_prompt(
            "extraction_agent/entity_extraction.j2", {"age_brackets": _age_brackets()}
        )

    @staticmethod
    def compose_extraction_prompt(
        base_prompt: str, context_text: str, chunk_text: str
    ) -> str:
        parts = [base_prompt.rstrip()]
        if context_text.strip():
            parts.append(context_text.strip())
        parts.append(f"Text excerpt:\n{chunk_text}")
        return "\n\n".join(parts)

    async def _call(
        self,
        prompt: str,
        temperature: float,
        schema: dict[str, Any],
        schema_name: str,
        model_name: str | None = None,
    ) -> tuple[str, dict[str, int] | None]:
        before = self.llm.usage.as_dict()
        try:
            text, usage = await self.llm.async_call_llm(
                model_name=model_name or self.model_name,
                prompt=prompt,
                temperature=temperature,
                response_schema=schema,
                schema_name=schema_name,
                timeout=self.timeout,
            )
        finally:
            after = self.llm.usage.as_dict()
            self.usage.requests += after["requests"] - before["requests"]
            self.usage.rate_limit_retries += (
                after["rate_limit_retries"] - before["rate_limit_retries"]
            )
        self.usage.add_tokens(usage)
        return text, usage

    async def extract(
        self, base_prompt: str, context_text: str, chunk_text: str
    ) -> ExtractionResponse:
        """Extract candidate characters and scenes from one chunk.

        Service errors propagate unchanged; unusable answers raise
        :class:`ResponseParseError` carrying the raw text.
        """
        prompt = self.compose_extraction_prompt(base_prompt, context_text, chunk_text)
        raw_text, usage = await self._call(
            prompt,
            settings.TEMPERATURE_EXTRACTION,
            ExtractionPayload.response_schema(),
            "visual_bible_extraction",
        )
        data = parse_json_object(raw_text)
        payload = _validate(ExtractionPayload, data, raw_text)
        return ExtractionResponse(
            raw_text=raw_text, payload=payload, prompt=prompt, usage=usage
        )

    async def enrich(
        self, bundle: EntityBundle, prompt_override: str | None = None
    ) -> ExtractionResponse:
        """Ask the service to fill thin fields of already consolidated entities."""
        prompt = render_prompt(
            "extraction_agent/entity_enrichment.j2",
            {
                "custom_instructions": (
                    prompt_override if prompt_override and prompt_override.strip() else None
                ),
                "age_brackets": _age_brackets(),
                "entities": bundle.to_dict(),
            },
        )
        raw_text, usage = await self._call(
            prompt,
            settings.TEMPERATURE_ENRICHMENT,
            ExtractionPayload.response_schema(),
            "visual_bible_enrichment",
        )
        data = parse_json_object(raw_text)
        payload = _validate(ExtractionPayload, data, raw_text)
        return ExtractionResponse(
            raw_text=raw_text, payload=payload, prompt=prompt, usage=usage
        )

    async def smart_merge(self, existing: Character, incoming: Character) -> Character:
        """Ask the service to merge two records of the same character.

        The answer is returned as-is; callers should pass it through
        :func:`consolidation.merge.reconcile_ai_merge` before storing it.
        """
        prompt = render_prompt(
            "extraction_agent/smart_merge.j2",
            {
                "existing": existing.to_dict(),
                "incoming": incoming.to_dict(),
                "age_brackets": _age_brackets(),
            },
        )
        raw_text, _ = await self._call(
            prompt,
            settings.TEMPERATURE_MERGE,
            Character.model_json_schema(by_alias=True),
            "character",
            model_name=self.merge_model_name,
        )
        data = parse_json_object(raw_text)
        return _validate(Character, data, raw_text)

"""Chunked extraction loop that consolidates entities into one registry."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from typing import Any, Protocol

import httpx
import structlog
from agents.extraction_agent import ExtractionAgent
from config import settings
from consolidation.enrichment import apply_enrichment, select_for_enrichment
from consolidation.merge import merge_character, reconcile_ai_merge
from consolidation.registry import EntityRegistry
from core.exceptions import (
    EmptyResponseError,
    ExtractionRunError,
    ExtractionServiceError,
    ResponseParseError,
)
from core.usage import ServiceUsage
from models.entity_models import Character, ExtractionPayload, Scene
from models.run_models import (
    AnalysisDebugLog,
    EntityBundle,
    ExtractionResult,
    RunState,
    RunStatus,
)
from utils.ingestion_utils import split_text_into_chunks

logger = structlog.get_logger(__name__)

ProgressCallback = Callable[[int, str], Any]

# Failures of one service call. Anything else is a bug and propagates.
SERVICE_ERRORS: tuple[type[BaseException], ...] = (ExtractionServiceError, httpx.HTTPError)


class CancelToken(Protocol):
    def is_set(self) -> bool: ...


async def _pause(seconds: float) -> None:
    await asyncio.sleep(seconds)


class ExtractionManager:
    """Drive extraction over a document, one chunk at a time.

    Chunks are processed strictly in document order because each prompt
    carries a summary of everything consolidated so far. A fresh
    :class:`EntityRegistry` is created per run and discarded afterwards.
    """

    def __init__(
        self,
        agent: ExtractionAgent | None = None,
        *,
        chunk_size: int | None = None,
        merge_strategy: str | None = None,
        skip_failed_chunks: bool | None = None,
        enable_enrichment: bool | None = None,
        enrich_after_cancel: bool | None = None,
    ) -> None:
        self.agent = agent or ExtractionAgent()
        self.chunk_size = chunk_size or settings.MAX_CHUNK_SIZE
        self.merge_strategy = merge_strategy or settings.CHARACTER_MERGE_STRATEGY
        self.skip_failed_chunks = (
            settings.SKIP_FAILED_CHUNKS if skip_failed_chunks is None else skip_failed_chunks
        )
        self.enable_enrichment = (
            settings.ENABLE_ENRICHMENT if enable_enrichment is None else enable_enrichment
        )
        self.enrich_after_cancel = (
            settings.ENRICH_AFTER_CANCEL if enrich_after_cancel is None else enrich_after_cancel
        )
        self.state = RunState.IDLE

    @staticmethod
    def _cancelled(cancel_event: CancelToken | None) -> bool:
        return cancel_event is not None and cancel_event.is_set()

    @staticmethod
    def _report(on_progress: ProgressCallback | None, percent: int, status: str) -> None:
        if on_progress is not None:
            on_progress(percent, status)

    async def run_extraction(
        self,
        text: str,
        prompt_override: str | None = None,
        pace_ms: int | None = None,
        on_progress: ProgressCallback | None = None,
        cancel_event: CancelToken | None = None,
        seed: EntityBundle | None = None,
        enrichment_prompt_override: str | None = None,
    ) -> ExtractionResult:
        """Extract and consolidate every entity in ``text``.

        Cancellation and an empty outcome are normal results, told apart
        by ``ExtractionResult.status``.

        Raises:
            ExtractionRunError: a chunk hit a service error while chunk
                skipping is disabled; ``partial`` holds the work so far.
        """
        self.state = RunState.RUNNING
        usage_baseline = self.agent.usage.copy()
        registry = (
            EntityRegistry.from_entities(seed.characters, seed.scenes)
            if seed is not None
            else EntityRegistry()
        )
        debug_log: list[AnalysisDebugLog] = []
        base_prompt = self.agent.build_base_prompt(prompt_override)
        chunks = split_text_into_chunks(text, self.chunk_size)
        pace_seconds = max(0, settings.API_PACE_MS if pace_ms is None else pace_ms) / 1000
        total = len(chunks)
        status = RunStatus.COMPLETED

        logger.info(
            "Starting extraction run.",
            chunks=total,
            chunk_size=self.chunk_size,
            merge_strategy=self.merge_strategy,
        )

        for idx, chunk in enumerate(chunks):
            if self._cancelled(cancel_event):
                logger.info("Extraction cancelled before chunk %d/%d.", idx + 1, total)
                status = RunStatus.CANCELLED
                break
            self._report(
                on_progress, round(idx / total * 100), f"Processing chunk {idx + 1}/{total}"
            )
            started = time.monotonic()
            try:
                with structlog.contextvars.bound_contextvars(chunk=idx + 1):
                    await self._process_chunk(
                        idx, total, chunk, base_prompt, registry, debug_log
                    )
            except SERVICE_ERRORS as exc:
                self.state = RunState.ERRORED
                partial = self._build_result(
                    registry.snapshot(),
                    debug_log,
                    RunStatus.FAILED,
                    False,
                    usage_baseline,
                )
                logger.error(
                    "Chunk %d/%d failed and chunk skipping is disabled.", idx + 1, total
                )
                raise ExtractionRunError(
                    f"Chunk {idx + 1}/{total} failed: {exc}", partial, exc
                ) from exc
            elapsed = time.monotonic() - started
            wait = max(0.0, pace_seconds - elapsed)
            if wait > 0:
                await _pause(wait)

        if status == RunStatus.COMPLETED and self._cancelled(cancel_event):
            logger.info("Extraction cancelled after the last chunk.")
            status = RunStatus.CANCELLED

        bundle = registry.snapshot()
        logger.info(
            "Extraction loop finished.",
            characters=len(bundle.characters),
            scenes=len(bundle.scenes),
            status=status.value,
        )

        if status == RunStatus.CANCELLED and not self.enrich_after_cancel:
            self.state = RunState.CANCELLED
            return self._build_result(bundle, debug_log, status, False, usage_baseline)

        if bundle.is_empty():
            logger.warning("Extraction finished without any characters or scenes.")
            self._report(on_progress, 100, "Analysis complete, but no entities were extracted")
            self.state = RunState.DONE
            final_status = RunStatus.EMPTY if status == RunStatus.COMPLETED else status
            return self._build_result(bundle, debug_log, final_status, False, usage_baseline)

        self.state = RunState.CANCELLED if status == RunStatus.CANCELLED else RunState.COMPLETED
        enriched = False
        if self.enable_enrichment:
            self.state = RunState.ENRICHING
            self._report(on_progress, 95, "Enriching entity details...")
            try:
                bundle, enriched = await self._enrich(bundle, enrichment_prompt_override)
            except SERVICE_ERRORS as exc:
                logger.error(
                    "Enrichment failed; keeping pre-enrichment results: %s",
                    exc,
                    exc_info=True,
                )

        self.state = RunState.DONE
        self._report(on_progress, 100, "Analysis complete")
        return self._build_result(bundle, debug_log, status, enriched, usage_baseline)

    async def run_enrichment(
        self,
        characters: list[Character],
        scenes: list[Scene],
        prompt_override: str | None = None,
    ) -> EntityBundle:
        """Run the enrichment pass on its own, e.g. after manual edits.

        Service and parse errors propagate to the caller.
        """
        self.state = RunState.ENRICHING
        try:
            bundle, _ = await self._enrich(
                EntityBundle(characters=characters, scenes=scenes), prompt_override
            )
        except Exception:
            self.state = RunState.ERRORED
            raise
        self.state = RunState.DONE
        return bundle

    async def _process_chunk(
        self,
        idx: int,
        total: int,
        chunk: str,
        base_prompt: str,
        registry: EntityRegistry,
        debug_log: list[AnalysisDebugLog],
    ) -> None:
        used_prompt = base_prompt if idx == 0 else None
        context = registry.describe_for_prompt()
        try:
            response = await self.agent.extract(base_prompt, context, chunk)
        except EmptyResponseError as exc:
            logger.warning("Chunk %d/%d returned an empty response; skipping.", idx + 1, total)
            debug_log.append(
                AnalysisDebugLog(
                    chunk_index=idx,
                    raw_response=exc.raw_text,
                    error="Empty response",
                    used_prompt=used_prompt,
                )
            )
            return
        except ResponseParseError as exc:
            logger.warning(
                "Chunk %d/%d response could not be parsed; skipping: %s",
                idx + 1,
                total,
                exc,
                raw_preview=exc.raw_text[:200],
            )
            debug_log.append(
                AnalysisDebugLog(
                    chunk_index=idx,
                    raw_response=exc.raw_text,
                    error=str(exc),
                    used_prompt=used_prompt,
                )
            )
            return
        except SERVICE_ERRORS as exc:
            debug_log.append(
                AnalysisDebugLog(chunk_index=idx, error=str(exc), used_prompt=used_prompt)
            )
            if not self.skip_failed_chunks:
                raise
            logger.warning(
                "Chunk %d/%d failed; skipping: %s", idx + 1, total, exc
            )
            return

        debug_log.append(
            AnalysisDebugLog(
                chunk_index=idx,
                raw_response=response.raw_text,
                parsed_data=response.payload.to_dict(),
                used_prompt=used_prompt,
            )
        )
        await self._fold(response.payload, registry)
        logger.info(
            "Chunk %d/%d consolidated.",
            idx + 1,
            total,
            characters=len(response.payload.characters),
            scenes=len(response.payload.scenes),
        )

    async def _fold(self, payload: ExtractionPayload, registry: EntityRegistry) -> None:
        for candidate in payload.characters:
            # Ids are registry-assigned; ignore anything the service invented.
            candidate.id = ""
            prepared = registry.prepare_character(candidate)
            existing = registry.get_character(prepared.registry_key)
            if existing is None:
                registry.put_character(prepared)
            else:
                registry.put_character(await self._merge_character(existing, prepared))
        for scene in payload.scenes:
            scene.id = ""
            registry.add_scene(scene)

    async def _merge_character(self, existing: Character, incoming: Character) -> Character:
        if self.merge_strategy == "ai_assisted":
            try:
                ai_result = await self.agent.smart_merge(existing, incoming)
            except SERVICE_ERRORS as exc:
                logger.warning(
                    "Smart merge failed for '%s'; using deterministic merge: %s",
                    existing.registry_key,
                    exc,
                )
            else:
                return reconcile_ai_merge(ai_result, existing, incoming)
        return merge_character(existing, incoming)

    async def _enrich(
        self, bundle: EntityBundle, prompt_override: str | None
    ) -> tuple[EntityBundle, bool]:
        selected = select_for_enrichment(bundle.characters, bundle.scenes)
        if selected.is_empty():
            logger.info("All entities are already detailed; skipping enrichment call.")
            return bundle, False
        logger.info(
            "Enriching entities.",
            characters=len(selected.characters),
            scenes=len(selected.scenes),
        )
        response = await self.agent.enrich(selected, prompt_override)
        return apply_enrichment(bundle.characters, bundle.scenes, response.payload), True

    def _build_result(
        self,
        bundle: EntityBundle,
        debug_log: list[AnalysisDebugLog],
        status: RunStatus,
        enriched: bool,
        usage_baseline: ServiceUsage,
    ) -> ExtractionResult:
        usage = self.agent.usage.since(usage_baseline)
        logger.info("Service usage for run.", **usage.as_dict())
        return ExtractionResult(
            characters=bundle.characters,
            scenes=bundle.scenes,
            debug_log=list(debug_log),
            status=status,
            enriched=enriched,
            usage=usage,
        )

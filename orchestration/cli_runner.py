# orchestration/cli_runner.py
"""Command-line runner for the extraction engine."""

from __future__ import annotations

import asyncio
import signal
from dataclasses import dataclass

import structlog
from agents.extraction_agent import ExtractionAgent
from core.exceptions import ExtractionRunError
from core.llm_interface import llm_service
from ingestion.extraction_manager import ExtractionManager
from models.run_models import ExtractionResult, RunStatus
from storage.file_manager import FileManager
from ui.rich_display import RichDisplayManager
from utils.logging import setup_logging

logger = structlog.get_logger(__name__)


@dataclass
class RunOptions:
    text_file: str | None = None
    prompt_file: str | None = None
    enrichment_prompt_file: str | None = None
    pace_ms: int | None = None
    chunk_size: int | None = None
    output_dir: str | None = None
    enrich_only: str | None = None
    log_level: str | None = None


async def _read_optional(file_manager: FileManager, path: str | None) -> str | None:
    if not path:
        return None
    return await file_manager.read_text(path)


def _report_outcome(result: ExtractionResult) -> None:
    if result.status == RunStatus.CANCELLED:
        logger.warning(
            "Run cancelled; saving partial results.",
            characters=len(result.characters),
            scenes=len(result.scenes),
        )
    elif result.status == RunStatus.EMPTY:
        logger.warning(
            "No characters or scenes were extracted. Inspect the debug log for the raw responses."
        )
    elif result.status == RunStatus.FAILED:
        logger.error("Run stopped on a failed chunk; saving partial results.")
    else:
        logger.info(
            "Run complete.",
            characters=len(result.characters),
            scenes=len(result.scenes),
            enriched=result.enriched,
        )


async def _run_enrich_only(
    manager: ExtractionManager, file_manager: FileManager, options: RunOptions
) -> None:
    bundle = await file_manager.load_bible(options.enrich_only)
    prompt = await _read_optional(file_manager, options.enrichment_prompt_file)
    enriched = await manager.run_enrichment(bundle.characters, bundle.scenes, prompt)
    await file_manager.save_bible(enriched)


async def _run(options: RunOptions) -> None:
    file_manager = (
        FileManager(options.output_dir) if options.output_dir else FileManager()
    )
    agent = ExtractionAgent()
    manager = ExtractionManager(agent, chunk_size=options.chunk_size)

    if options.enrich_only:
        await _run_enrich_only(manager, file_manager, options)
        return
    if not options.text_file:
        raise ValueError("A text file is required unless --enrich-only is given.")

    text = await file_manager.read_text(options.text_file)
    prompt = await _read_optional(file_manager, options.prompt_file)
    enrichment_prompt = await _read_optional(file_manager, options.enrichment_prompt_file)

    cancel_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, cancel_event.set)
        handler_installed = True
    except NotImplementedError:  # pragma: no cover - Windows event loops
        handler_installed = False

    display = RichDisplayManager(agent.usage)
    display.start()
    try:
        result = await manager.run_extraction(
            text,
            prompt_override=prompt,
            pace_ms=options.pace_ms,
            on_progress=display,
            cancel_event=cancel_event,
            enrichment_prompt_override=enrichment_prompt,
        )
    except ExtractionRunError as run_err:
        logger.error("Extraction aborted: %s", run_err, exc_info=run_err.cause)
        result = run_err.partial
    finally:
        await display.stop()
        if handler_installed:
            loop.remove_signal_handler(signal.SIGINT)

    await file_manager.save_bible(result.bundle())
    await file_manager.save_debug_log(result.debug_log)
    _report_outcome(result)


def run(options: RunOptions) -> None:
    """Set up logging and run the requested operation."""
    setup_logging(level=options.log_level, output_dir=options.output_dir)
    try:
        asyncio.run(_main(options))
    except KeyboardInterrupt:
        logger.info("Shutting down due to KeyboardInterrupt...")
    except Exception as main_err:  # pragma: no cover - entry point catch
        logger.critical(
            "Extraction encountered an unhandled main exception: %s",
            main_err,
            exc_info=True,
        )


async def _main(options: RunOptions) -> None:
    try:
        await _run(options)
    finally:
        await llm_service.aclose()

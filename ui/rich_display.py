from __future__ import annotations

import asyncio
import time
from typing import Optional

from config import settings
from core.usage import ServiceUsage
from rich.console import Group
from rich.live import Live
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    Progress,
    TaskID,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.text import Text


class RichDisplayManager:
    """Handles Rich-based display updates for an extraction run.

    Instances are callable with ``(percent, status_text)`` so they can be
    passed straight to ``ExtractionManager.run_extraction`` as the progress
    callback.
    """

    def __init__(self, usage: ServiceUsage | None = None) -> None:
        self.live: Optional[Live] = None
        self.usage = usage
        self.progress = Progress(
            TextColumn("[bold blue]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            TimeElapsedColumn(),
        )
        self.task_id: TaskID = self.progress.add_task("Starting...", total=100)
        self.status_text_requests: Text = Text("Requests: 0 (0.00/min)")
        self.status_text_tokens: Text = Text("Tokens: 0")
        self.status_text_retries: Text = Text("Rate-limit retries: 0")
        self.run_start_time: float = 0.0
        self._stop_event: asyncio.Event = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

        if settings.ENABLE_RICH_PROGRESS:
            self.live = Live(
                Panel(
                    Group(
                        self.progress,
                        self.status_text_requests,
                        self.status_text_tokens,
                        self.status_text_retries,
                    ),
                    title="Visual Bible Extraction",
                    border_style="blue",
                    expand=True,
                ),
                refresh_per_second=4,
                transient=False,
                redirect_stdout=False,
                redirect_stderr=False,
            )

    def __call__(self, percent: int, status_text: str) -> None:
        self.update(percent, status_text)

    def start(self) -> None:
        self.run_start_time = time.time()
        if self.live:
            self.live.start()
            self._stop_event.clear()
            self._task = asyncio.create_task(self._auto_refresh())

    async def stop(self) -> None:
        self._stop_event.set()
        if self._task:
            await self._task
            self._task = None
        if self.live and self.live.is_started:
            self.live.stop()

    async def _auto_refresh(self) -> None:
        while not self._stop_event.is_set():
            self.refresh_usage()
            await asyncio.sleep(1)

    def update(self, percent: int, status_text: str) -> None:
        self.progress.update(
            self.task_id, completed=max(0, min(percent, 100)), description=status_text
        )
        self.refresh_usage()

    def refresh_usage(self) -> None:
        if self.usage is None:
            return
        elapsed_seconds = time.time() - self.run_start_time if self.run_start_time else 0.0
        requests_per_minute = (
            self.usage.requests / (elapsed_seconds / 60) if elapsed_seconds > 0 else 0.0
        )
        self.status_text_requests.plain = (
            f"Requests: {self.usage.requests} ({requests_per_minute:.2f}/min)"
        )
        self.status_text_tokens.plain = f"Tokens: {self.usage.total_tokens:,}"
        self.status_text_retries.plain = (
            f"Rate-limit retries: {self.usage.rate_limit_retries}"
        )

"""Live telemetry by polling an HTTP JSON endpoint."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

import aiohttp

from pytelesync.config import HttpFeedSettings
from pytelesync.exceptions import SourceFault
from pytelesync.ingestion.assembler import ReadingAssembler
from pytelesync.ingestion.feed import assemble_feed_payload, decode_feed_payload
from pytelesync.models.reading import SourceKind
from pytelesync.sources.base import Detach, FaultCallback, ReadingCallback

_logger = logging.getLogger(__name__)


class HttpPollingLiveSource:
    """Polls ``settings.url`` every ``poll_interval`` seconds.

    A failing poll is reported once as a ``SourceFault``; polling goes on
    so the first successful response after an outage resumes the feed.
    Pass ``session`` to share an ``aiohttp.ClientSession``; otherwise one
    is created per attach and closed on detach.
    """

    kind = SourceKind.LIVE

    def __init__(
        self,
        settings: HttpFeedSettings | None = None,
        *,
        session: aiohttp.ClientSession | None = None,
        assembler: ReadingAssembler | None = None,
    ) -> None:
        self._settings = settings or HttpFeedSettings()
        self._session = session
        self._assembler = assembler or ReadingAssembler()
        self._task: asyncio.Task[None] | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def attach(self, on_reading: ReadingCallback, on_fault: FaultCallback) -> Detach:
        loop = asyncio.get_running_loop()
        task = loop.create_task(self._run(on_reading, on_fault))
        self._task = task
        _logger.debug("HTTP polling started url=%s interval=%.3fs", self._settings.url, self._settings.poll_interval)

        def detach() -> None:
            if self._task is task:
                self._task = None
            task.cancel()
            _logger.debug("HTTP polling stopped")

        return detach

    async def fetch(self, session: aiohttp.ClientSession) -> dict[str, Any]:
        """Fetch and decode one feed message.

        Raises
        ------
        SourceFault
            On transport errors, non-200 responses, timeouts and bodies
            that are not a JSON object.
        """
        url = self._settings.url
        timeout = aiohttp.ClientTimeout(total=self._settings.timeout)
        try:
            async with session.get(url, timeout=timeout) as resp:
                text = await resp.text()
                if resp.status != 200:
                    raise SourceFault(f"HTTP {resp.status} from {url}: {text[:200]}", source=self.kind.value)
        except SourceFault:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise SourceFault(f"Request to {url} failed: {exc!r}", source=self.kind.value) from exc

        try:
            return decode_feed_payload(text)
        except ValueError as exc:
            raise SourceFault(f"Invalid JSON from {url}: {text[:200]}", source=self.kind.value) from exc

    async def _run(self, on_reading: ReadingCallback, on_fault: FaultCallback) -> None:
        owns_session = self._session is None
        session = self._session or aiohttp.ClientSession()
        failing = False
        try:
            while True:
                try:
                    payload = await self.fetch(session)
                except SourceFault as fault:
                    if not failing:
                        failing = True
                        on_fault(fault)
                    else:
                        _logger.debug("HTTP poll still failing: %s", fault)
                else:
                    failing = False
                    reading = assemble_feed_payload(self._assembler, payload)
                    if reading is not None:
                        on_reading(reading)
                await asyncio.sleep(self._settings.poll_interval)
        finally:
            if owns_session:
                await session.close()

# leadsheet/refresh.py

"""Background silent refresh of the lead list.

Failures here never reach the caller: they go to the ``leadsheet.refresh``
logger (WARNING for sheet errors, ERROR with a traceback for anything else)
so a foreground command keeps its own error channel.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

from leadsheet.leads import LeadSheet
from leadsheet.sheets.errors import LeadSheetError
from leadsheet.sheets.schema import Lead

logger = logging.getLogger("leadsheet.refresh")

LeadsCallback = Callable[[list[Lead]], None]

DEFAULT_INTERVAL_S = 30.0
MIN_INTERVAL_S = 1.0


class LeadRefresher:
    def __init__(
        self,
        sheet: LeadSheet,
        *,
        interval: float = DEFAULT_INTERVAL_S,
        on_leads: Optional[LeadsCallback] = None,
    ) -> None:
        self._sheet = sheet
        self._interval = max(MIN_INTERVAL_S, interval)
        self._on_leads = on_leads
        self._task: Optional[asyncio.Task] = None
        self.latest: Optional[list[Lead]] = None
        self.failures = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def refresh_once(self) -> bool:
        """One silent fetch. True when the lead list was refreshed."""
        try:
            leads = await self._sheet.fetch_leads()
        except LeadSheetError as e:
            self.failures += 1
            logger.warning("Background sync error: %s", e)
            return False
        except Exception:
            self.failures += 1
            logger.exception("Background sync failed unexpectedly")
            return False

        self.latest = leads
        if self._on_leads:
            try:
                self._on_leads(leads)
            except Exception:
                logger.exception("Lead refresh callback failed")
        logger.debug("Background sync completed (%d leads)", len(leads))
        return True

    async def _run(self) -> None:
        while True:
            await self.refresh_once()
            await asyncio.sleep(self._interval)

"""
Refresh coordination: ask the remote service to recompute an account's stats and
wait for the job, before history is collected.

A failed refresh never aborts collection; callers proceed with whatever data
the service already has.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Awaitable, Callable, List, Optional

from opgg_collector.errors import ParseError, TransportError
from opgg_collector.ops.events import log_refresh_decision, log_refresh_result
from opgg_collector.remote.client import RemoteSource

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class RefreshMode(str, Enum):
    NEVER = "never"
    ALWAYS = "always"
    OLDER_THAN = "older_than"


@dataclass(frozen=True)
class RefreshPolicy:
    """When to request a remote refresh before collecting."""

    mode: RefreshMode = RefreshMode.NEVER
    threshold: Optional[datetime] = None

    @classmethod
    def never(cls) -> "RefreshPolicy":
        return cls(RefreshMode.NEVER)

    @classmethod
    def always(cls) -> "RefreshPolicy":
        return cls(RefreshMode.ALWAYS)

    @classmethod
    def older_than(cls, threshold: datetime) -> "RefreshPolicy":
        """Refresh only if the data was last updated at or before threshold."""
        return cls(RefreshMode.OLDER_THAN, threshold)

    def should_refresh(self, last_known_update: Optional[datetime]) -> bool:
        if self.mode is RefreshMode.NEVER:
            return False
        if self.mode is RefreshMode.ALWAYS:
            return True
        if last_known_update is None or self.threshold is None:
            return True
        return self.threshold >= last_known_update

    def describe(self) -> str:
        if self.mode is RefreshMode.OLDER_THAN and self.threshold is not None:
            return f"older_than:{self.threshold.isoformat()}"
        return self.mode.value


class RefreshState(str, Enum):
    IDLE = "idle"
    DECIDING = "deciding"
    REQUESTING = "requesting"
    POLLING = "polling"
    DONE = "done"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class RefreshOutcome:
    state: RefreshState
    request_sent: bool = False
    last_updated_at: Optional[datetime] = None
    path: List[RefreshState] = field(default_factory=list)

    @property
    def refreshed(self) -> bool:
        return self.state is RefreshState.DONE


class RefreshCoordinator:
    """Runs the refresh state machine for one account per call."""

    def __init__(self, source: RemoteSource, sleep: Sleep = asyncio.sleep) -> None:
        self._source = source
        self._sleep = sleep

    async def run(
        self,
        region: str,
        summoner_id: str,
        policy: RefreshPolicy,
        last_known_update: Optional[datetime],
    ) -> RefreshOutcome:
        path = [RefreshState.IDLE, RefreshState.DECIDING]
        refresh = policy.should_refresh(last_known_update)
        log_refresh_decision(
            region,
            summoner_id,
            refresh,
            last_known_update.isoformat() if last_known_update else None,
        )
        if not refresh:
            logger.debug("Data is fresh enough, no update necessary (timestamp: %s)", last_known_update)
            path.append(RefreshState.SKIPPED)
            return self._finish(region, summoner_id, RefreshOutcome(RefreshState.SKIPPED, path=path))

        request_sent = False
        try:
            path.append(RefreshState.REQUESTING)
            logger.debug("Requesting update for %s/%s", region, summoner_id)
            status = await self._source.request_refresh(region, summoner_id)
            request_sent = True
            if not status.done:
                await self._sleep(status.delay_ms / 1000)
                path.append(RefreshState.POLLING)
                while True:
                    status = await self._source.fetch_refresh_status(region, summoner_id)
                    if status.terminal:
                        break
                    await self._sleep(status.delay_ms / 1000)
        except (TransportError, ParseError) as e:
            if request_sent:
                logger.warning("Error updating the history before fetching, but the update request was sent: %s", e)
            else:
                logger.warning("Error updating the history before fetching, couldn't request the update: %s", e)
            path.append(RefreshState.FAILED)
            return self._finish(
                region,
                summoner_id,
                RefreshOutcome(RefreshState.FAILED, request_sent=request_sent, path=path),
            )

        logger.debug("Update finished. Last update at: %s", status.last_updated_at)
        path.append(RefreshState.DONE)
        return self._finish(
            region,
            summoner_id,
            RefreshOutcome(
                RefreshState.DONE,
                request_sent=True,
                last_updated_at=status.last_updated_at,
                path=path,
            ),
        )

    @staticmethod
    def _finish(region: str, summoner_id: str, outcome: RefreshOutcome) -> RefreshOutcome:
        log_refresh_result(region, summoner_id, outcome.state.value, outcome.request_sent)
        return outcome

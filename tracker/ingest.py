from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any

from .db import HistoryStore
from .exceptions import BadRequest, LookupFailed, WriteFailed
from .geoip import GeoLocator, normalize_ip, resolve_public_ip
from .registry import LiveRegistry
from .schemas import DeviceEntry, ReportIn

log = logging.getLogger("tracker")

GEO_PENDING = {"status": "pending"}


class ReportIngestor:
    """Turns an inbound report into a live entry and a history row.

    Only a missing deviceId fails a report. Geolocation runs detached after
    the live upsert; its result or failure marker is patched into the entry
    later. History errors are logged and the report is still acknowledged.
    """

    def __init__(
        self,
        registry: LiveRegistry,
        store: HistoryStore,
        geolocator: GeoLocator | None = None,
        *,
        trust_proxy: bool = False,
    ) -> None:
        self.registry = registry
        self.store = store
        self.geolocator = geolocator
        self.trust_proxy = trust_proxy
        self._tasks: set[asyncio.Task] = set()

    def ingest(
        self,
        report: ReportIn,
        peer_host: str | None = None,
        forwarded_for: str | None = None,
    ) -> DeviceEntry:
        # the id is the registry key exactly as sent; only blank ids are refused
        if not report.deviceId or not report.deviceId.strip():
            raise BadRequest("deviceId is required")

        reported_at = datetime.now(timezone.utc)

        if report.publicIP:
            public_ip = normalize_ip(report.publicIP)
        else:
            public_ip = resolve_public_ip(peer_host, forwarded_for, trust_proxy=self.trust_proxy)

        entry = DeviceEntry(
            deviceId=report.deviceId,
            label=report.label,
            publicIP=public_ip,
            clientLat=report.clientLat,
            clientLon=report.clientLon,
            reportedAt=reported_at,
            geo=dict(GEO_PENDING) if self.geolocator is not None else None,
        )
        return self.registry.upsert(entry)

    def schedule_enrichment(self, entry: DeviceEntry) -> asyncio.Task | None:
        """Start the geolocation lookup for ``entry`` without waiting for it."""
        if self.geolocator is None:
            return None
        task = asyncio.create_task(self.enrich(entry))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def enrich(self, entry: DeviceEntry) -> bool:
        """Resolve the entry's IP and patch ``geo`` if it is still the live report."""
        geo = await self._locate(entry.publicIP)
        updated = entry.model_copy(update={"geo": geo})
        return self.registry.replace_if_current(updated)

    async def _locate(self, ip: str | None) -> dict[str, Any]:
        if not ip:
            return {"status": "fail", "message": "no public IP"}
        try:
            return await self.geolocator.lookup(ip)
        except LookupFailed as e:
            log.warning("geolocation failed for %s: %s", ip, e.message)
            return {"status": "fail", "message": e.message}

    def persist(self, entry: DeviceEntry) -> bool:
        """Best-effort history append; failures are logged, never raised."""
        try:
            row_id = self.store.append(entry)
        except WriteFailed as e:
            log.error("history append failed for %s: %s (%s)", entry.deviceId, e.message, e.details)
            return False
        log.debug("history row %s stored for %s", row_id, entry.deviceId)
        return True

    async def drain(self) -> None:
        """Cancel lookups still in flight (shutdown)."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

"""IP helpers and the ip-api.com geolocation client."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

import aiohttp

from .exceptions import LookupFailed

log = logging.getLogger("geoip")

_V4_MAPPED_PREFIX = "::ffff:"


def normalize_ip(ip: str | None) -> str | None:
    """Strip the IPv4-mapped IPv6 prefix (``::ffff:1.2.3.4`` -> ``1.2.3.4``)."""
    if not ip:
        return None
    ip = ip.strip()
    if ip.lower().startswith(_V4_MAPPED_PREFIX) and "." in ip:
        return ip[len(_V4_MAPPED_PREFIX):]
    return ip or None


def resolve_public_ip(
    peer_host: str | None,
    forwarded_for: str | None = None,
    *,
    trust_proxy: bool = False,
) -> str | None:
    """Pick the client address: first X-Forwarded-For hop if trusted, else the peer."""
    if trust_proxy and forwarded_for:
        first = forwarded_for.split(",")[0]
        if first.strip():
            return normalize_ip(first)
    return normalize_ip(peer_host)


class GeoLocator:
    """One-shot IP lookups against ip-api.com. No retries."""

    def __init__(
        self,
        url_template: str = "http://ip-api.com/json/{ip}",
        fields: str = "status,message,country,regionName,city,lat,lon,timezone,isp,query",
        timeout: float = 3.0,
        http_session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._url_template = url_template
        self._fields = fields
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._http = http_session
        self._owns_session = http_session is None

    def _session(self) -> aiohttp.ClientSession:
        if self._http is None or self._http.closed:
            self._http = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True
        return self._http

    async def lookup(self, ip: str) -> dict[str, Any]:
        """Resolve ``ip`` to the provider's location record.

        Raises ``LookupFailed`` on transport errors, non-200 replies, invalid
        JSON, or a ``status: fail`` answer (private ranges, quota, ...).
        """
        url = self._url_template.format(ip=ip)
        params = {"fields": self._fields} if self._fields else None
        log.debug("GET %s", url)
        try:
            async with self._session().get(url, params=params, timeout=self._timeout) as resp:
                text = await resp.text()
                if resp.status != 200:
                    raise LookupFailed(f"HTTP {resp.status} from geolocation service", ip=ip)
        except LookupFailed:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise LookupFailed(f"geolocation request failed: {exc!r}", ip=ip) from exc

        try:
            body = json.loads(text)
        except json.JSONDecodeError as exc:
            raise LookupFailed(f"invalid JSON from geolocation service: {text[:200]}", ip=ip) from exc

        if not isinstance(body, dict):
            raise LookupFailed("unexpected geolocation payload", ip=ip)
        if body.get("status") == "fail":
            raise LookupFailed(body.get("message") or "lookup failed", ip=ip)
        return body

    async def close(self) -> None:
        if self._owns_session and self._http is not None and not self._http.closed:
            await self._http.close()
        self._http = None

"""
EDSM Remote Data
================

Lookups against the Elite: Dangerous Star Map (edsm.net) system API:

- RemoteSystem / RemoteBody / ValuableBody / RemoteStation value objects
- fetch_json(): one HTTP GET, any transport or decode problem becomes
  RemoteDataUnavailable
- RemoteDataCache: resolves a 64-bit system address to system data or a
  station list, keyed by the full request URL (systems) or by the system
  address (stations). Entries never expire during a run; flush() clears
  them. Failed fetches are never cached, so the next call retries.

Identical concurrent lookups are not coalesced. Each miss issues its own
fetch and the last writer wins; values are immutable per key, so the
overwrite is harmless.
"""

# ============================================================================
# IMPORTS
# ============================================================================

from __future__ import annotations

import http.client
import json
import logging
import threading
import urllib.error
import urllib.request
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from caching import CacheManager
from error_handling import ErrorContext, ErrorHandler, RemoteDataUnavailable

logger = logging.getLogger("edmfd.edsm")


# ============================================================================
# CONFIGURATION / CONSTANTS
# ============================================================================

EDSM_BASE = "https://www.edsm.net"
DEFAULT_USER_AGENT = "ED-MFD-Display"


class SystemDataKind(Enum):
    """System endpoints that decode into a RemoteSystem"""
    BODIES = "/api-system-v1/bodies"
    VALUE = "/api-system-v1/estimated-value"


STATIONS_ENDPOINT = "/api-system-v1/stations"


# ============================================================================
# VALUE OBJECTS
# ============================================================================

@dataclass(frozen=True)
class Material:
    name: str
    percentage: float


def short_body_name(system_name: str, body_name: str) -> str:
    """'Sol 3 a' in system 'Sol' -> '3 a'"""
    if system_name and body_name.startswith(system_name) and len(body_name) > len(system_name):
        return body_name[len(system_name) + 1:]
    return body_name


@dataclass(frozen=True)
class RemoteBody:
    """A single body from the bodies endpoint"""
    id64: int = 0
    body_id: int = 0
    name: str = ""
    is_main_star: bool = False
    is_scoopable: bool = False
    type: str = ""
    sub_type: str = ""
    gravity: float = 0.0
    is_landable: bool = False
    materials: Dict[str, float] = field(default_factory=dict)

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "RemoteBody":
        materials = data.get("materials") or {}
        return cls(
            id64=int(data.get("id64") or 0),
            body_id=int(data.get("bodyId") or 0),
            name=str(data.get("name") or ""),
            is_main_star=bool(data.get("isMainStar")),
            is_scoopable=bool(data.get("isScoopable")),
            type=str(data.get("type") or ""),
            sub_type=str(data.get("subType") or ""),
            gravity=float(data.get("gravity") or 0.0),
            is_landable=bool(data.get("isLandable")),
            materials={str(k): float(v) for k, v in materials.items()},
        )

    def materials_sorted(self) -> List[Material]:
        """Materials by percentage descending, ties by name ascending"""
        return sorted(
            (Material(name, pct) for name, pct in self.materials.items()),
            key=lambda m: (-m.percentage, m.name),
        )

    def short_name(self, system: "RemoteSystem") -> str:
        return short_body_name(system.name, self.name)


@dataclass(frozen=True)
class ValuableBody:
    body_id: int = 0
    body_name: str = ""
    value_max: int = 0

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "ValuableBody":
        return cls(
            body_id=int(data.get("bodyId") or 0),
            body_name=str(data.get("bodyName") or ""),
            value_max=int(data.get("valueMax") or 0),
        )

    def short_name(self, system: "RemoteSystem") -> str:
        return short_body_name(system.name, self.body_name)


@dataclass(frozen=True)
class RemoteSystem:
    """
    Root object of the bodies and estimated-value endpoints.

    Each endpoint fills a different subset of fields; an unknown system
    decodes to an instance with id64 == 0.
    """
    id64: int = 0
    name: str = ""
    body_count: int = 0
    estimated_value: int = 0
    estimated_value_mapped: int = 0
    bodies: Tuple[RemoteBody, ...] = ()
    valuable_bodies: Tuple[ValuableBody, ...] = ()

    @classmethod
    def from_json(cls, data: Any) -> "RemoteSystem":
        # EDSM answers "[]" or "{}" for systems it does not know
        if not isinstance(data, dict):
            return cls()
        return cls(
            id64=int(data.get("id64") or 0),
            name=str(data.get("name") or ""),
            body_count=int(data.get("bodyCount") or 0),
            estimated_value=int(data.get("estimatedValue") or 0),
            estimated_value_mapped=int(data.get("estimatedValueMapped") or 0),
            bodies=tuple(
                RemoteBody.from_json(b) for b in (data.get("bodies") or []) if isinstance(b, dict)
            ),
            valuable_bodies=tuple(
                ValuableBody.from_json(b) for b in (data.get("valuableBodies") or []) if isinstance(b, dict)
            ),
        )

    @property
    def has_data(self) -> bool:
        return self.id64 != 0

    def main_star(self) -> RemoteBody:
        for body in self.bodies:
            if body.is_main_star:
                return body
        return RemoteBody()

    def body_by_id(self, body_id: int) -> RemoteBody:
        for body in self.bodies:
            if body.body_id == body_id:
                return body
        return RemoteBody()


@dataclass(frozen=True)
class RemoteStation:
    id: int = 0
    name: str = ""
    type: str = ""
    allegiance: str = ""
    distance_to_arrival: float = 0.0

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "RemoteStation":
        return cls(
            id=int(data.get("id") or 0),
            name=str(data.get("name") or ""),
            type=str(data.get("type") or ""),
            allegiance=str(data.get("allegiance") or ""),
            distance_to_arrival=float(data.get("distanceToArrival") or 0.0),
        )


def decode_stations(data: Any) -> List[RemoteStation]:
    if not isinstance(data, dict):
        return []
    return [
        RemoteStation.from_json(st)
        for st in (data.get("stations") or [])
        if isinstance(st, dict)
    ]


# ============================================================================
# TRANSPORT
# ============================================================================

def fetch_json(url: str, timeout_s: float = 10.0, user_agent: str = DEFAULT_USER_AGENT) -> Any:
    """
    GET a URL and decode the JSON body.

    Raises:
        RemoteDataUnavailable: on any transport, HTTP or decoding failure
    """
    req = urllib.request.Request(
        url,
        headers={
            "User-Agent": user_agent,
            "Accept": "application/json",
        },
        method="GET",
    )
    try:
        with urllib.request.urlopen(req, timeout=timeout_s) as resp:
            return json.loads(resp.read().decode("utf-8", errors="ignore") or "null")
    except (urllib.error.URLError, http.client.HTTPException, TimeoutError, OSError, ValueError) as e:
        raise RemoteDataUnavailable(f"EDSM request failed: {e}", url=url) from e


# ============================================================================
# REMOTE DATA CACHE
# ============================================================================

class RemoteDataCache:
    """
    Cached EDSM lookups.

    Usage:
        remote = RemoteDataCache(CacheManager())
        system = remote.system_bodies(10477373803)
        stations = remote.stations(10477373803)
        remote.warm_up(10477373803)   # fire-and-forget
        remote.flush()
    """

    def __init__(
        self,
        cache_manager: CacheManager,
        base_url: str = EDSM_BASE,
        timeout_s: float = 10.0,
        user_agent: str = DEFAULT_USER_AGENT,
        fetcher: Optional[Callable[[str], Any]] = None,
        error_handler: Optional[ErrorHandler] = None,
    ):
        """
        Args:
            cache_manager: Owner of the two cache tables
            base_url: EDSM root URL
            timeout_s: Transport timeout per request
            user_agent: HTTP User-Agent header
            fetcher: url -> decoded JSON; defaults to fetch_json (tests inject a fake)
            error_handler: Optional error sink for warm-up failures
        """
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s
        self.user_agent = user_agent
        self.error_handler = error_handler
        self._fetch = fetcher or (lambda url: fetch_json(url, self.timeout_s, self.user_agent))

        self._cache_manager = cache_manager
        self._systems = cache_manager.create_cache("edsm-systems")
        self._stations = cache_manager.create_cache("edsm-stations")

    # ------------------------------------------------------------------
    # URLs
    # ------------------------------------------------------------------

    def system_url(self, kind: SystemDataKind, system_id: int) -> str:
        return f"{self.base_url}{kind.value}?systemId64={int(system_id)}"

    def stations_url(self, system_id: int) -> str:
        return f"{self.base_url}{STATIONS_ENDPOINT}?systemId64={int(system_id)}"

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def resolve(self, system_id: int, kind: SystemDataKind) -> RemoteSystem:
        """
        Return system data for one endpoint, fetching on a cache miss.

        Args:
            system_id: 64-bit system address
            kind: Which endpoint to query

        Returns:
            RemoteSystem (id64 == 0 when EDSM has no record)

        Raises:
            RemoteDataUnavailable: fetch or decode failed; nothing is cached
        """
        url = self.system_url(kind, system_id)
        cached = self._systems.get(url)
        if cached is not None:
            logger.debug("System info found in cache: %s", url)
            return cached

        logger.debug("Requesting information from EDSM: %s", url)
        data = self._fetch(url)
        try:
            system = RemoteSystem.from_json(data)
        except (TypeError, ValueError, AttributeError) as e:
            raise RemoteDataUnavailable(f"Unexpected EDSM payload: {e}", url=url) from e

        self._systems.set(url, system)
        return system

    def system_bodies(self, system_id: int) -> RemoteSystem:
        """Bodies endpoint; an unknown system is reported as unavailable"""
        system = self.resolve(system_id, SystemDataKind.BODIES)
        if not system.has_data:
            raise RemoteDataUnavailable(
                f"No EDSM data for system address {system_id}",
                url=self.system_url(SystemDataKind.BODIES, system_id),
            )
        return system

    def system_value(self, system_id: int) -> RemoteSystem:
        return self.resolve(system_id, SystemDataKind.VALUE)

    def stations(self, system_id: int) -> List[RemoteStation]:
        """
        Station list for a system, cached by system address.

        Raises:
            RemoteDataUnavailable: fetch or decode failed; nothing is cached
        """
        key = str(int(system_id))
        cached = self._stations.get(key)
        if cached is not None:
            return list(cached)

        url = self.stations_url(system_id)
        data = self._fetch(url)
        try:
            stations = tuple(decode_stations(data))
        except (TypeError, ValueError, AttributeError) as e:
            raise RemoteDataUnavailable(f"Unexpected EDSM payload: {e}", url=url) from e

        self._stations.set(key, stations)
        return list(stations)

    def is_cached(self, system_id: int, kind: Optional[SystemDataKind] = None) -> bool:
        """True when the lookup would be answered without a fetch"""
        if kind is None:
            return self._stations.contains(str(int(system_id)))
        return self._systems.contains(self.system_url(kind, system_id))

    # ------------------------------------------------------------------
    # Warm-up / flush
    # ------------------------------------------------------------------

    def warm_up(self, system_id: int) -> Optional[threading.Thread]:
        """
        Populate the caches for a system on a detached thread.

        The only effect is a best-effort cache write. Callers that need the
        data still call the lookup methods, which handle a miss themselves.
        Failures are logged at debug level and otherwise dropped.

        Returns:
            The started thread (tests may join it), or None for address 0
        """
        if not system_id:
            return None

        def _run():
            for lookup in (
                lambda: self.stations(system_id),
                lambda: self.resolve(system_id, SystemDataKind.BODIES),
                lambda: self.resolve(system_id, SystemDataKind.VALUE),
            ):
                try:
                    lookup()
                except RemoteDataUnavailable as e:
                    logger.debug("Warm-up lookup failed for %s: %s", system_id, e.message)
                except Exception as e:
                    if self.error_handler:
                        self.error_handler.handle_error(
                            e,
                            ErrorContext("warm_up", "RemoteDataCache", {"system_id": system_id}),
                            notify_user=False,
                        )

        thread = threading.Thread(target=_run, name=f"edsm-warmup-{system_id}", daemon=True)
        thread.start()
        return thread

    def flush(self):
        """Drop every cached system and station entry"""
        self._systems.clear()
        self._stations.clear()
        logger.debug("Cached EDSM information cleared")

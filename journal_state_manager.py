"""
Journal State Manager - Player State for the MFD Pages
======================================================

Maintains the player's state as reconstructed from the journal and the
auxiliary snapshot files, with thread-safe access for the page composer.

Design:
- One mutable PlayerState owned by a StateStore
- Writers (the journal worker) mutate it inside ``store.write()``
- Readers (the composer) take ``store.snapshot()``, a deep copy
- Timed policies (arrival auto-clear, splash) take an explicit ``now`` so
  they can be evaluated by any poll
"""

# ============================================================================
# IMPORTS
# ============================================================================

import copy
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from threading import RLock
from typing import Callable, Dict, Iterator, List, Optional, Tuple

from fleet_carriers import FleetCarrierDirectory


# ============================================================================
# CONFIGURATION / CONSTANTS
# ============================================================================

ARRIVAL_TIMEOUT_SECONDS = 10.0
SPLASH_MIN_SECONDS = 10.0

PAGE_DESTINATION = "destination"
PAGE_LOCATION = "location"
PAGE_CARGO = "cargo"

# Module item code -> tonnes
CARGO_RACK_CAPACITY: Dict[str, int] = {
    "int_cargorack_size1_class1": 2,
    "int_cargorack_size2_class1": 4,
    "int_cargorack_size3_class1": 8,
    "int_cargorack_size4_class1": 16,
    "int_cargorack_size5_class1": 32,
    "int_cargorack_size6_class1": 64,
    "int_cargorack_size7_class1": 128,
    "int_largecargorack_size7_class1": 192,
    "int_cargorack_size8_class1": 256,
    "int_largecargorack_size8_class1": 384,
}


# =============================================================================
# LOCATION / TARGETS
# =============================================================================

class LocationType(Enum):
    """Where in a system the player is"""
    IN_SYSTEM = "in_system"
    NEAR_BODY = "near_body"
    LANDED = "landed"
    DOCKED = "docked"


@dataclass
class Location:
    type: LocationType = LocationType.IN_SYSTEM
    system_address: int = 0
    star_system: str = ""
    body: str = ""
    body_id: int = 0
    body_type: str = ""
    latitude: float = 0.0
    longitude: float = 0.0

    @property
    def coordinates(self) -> Optional[Tuple[float, float]]:
        """Surface coordinates, only meaningful while landed"""
        if self.type is LocationType.LANDED:
            return (self.latitude, self.longitude)
        return None


@dataclass
class NavTarget:
    """Multi-jump route target (FSDTarget)"""
    name: str = ""
    system_address: int = 0
    remaining_jumps: int = 0

    @property
    def is_set(self) -> bool:
        return self.system_address != 0 or bool(self.name)


@dataclass
class Destination:
    """Local waypoint from Status.json"""
    system_address: int = 0
    body_id: int = 0
    name: str = ""

    @property
    def is_set(self) -> bool:
        return self.system_address != 0


# =============================================================================
# CARGO / MODULES
# =============================================================================

@dataclass
class CargoLine:
    name: str
    count: int = 0
    stolen: int = 0
    name_localised: str = ""


@dataclass
class CargoManifest:
    """
    Cargo.json contents.

    ``inventory is None`` means no cargo file has been read; an empty list
    means the file confirmed an empty hold.
    """
    count: int = 0
    inventory: Optional[List[CargoLine]] = None

    @property
    def has_data(self) -> bool:
        return self.inventory is not None


@dataclass
class ModuleSlot:
    slot: str
    item: str


@dataclass
class ModuleLoadout:
    modules: List[ModuleSlot] = field(default_factory=list)
    # CargoCapacity from a Loadout event; wins over rack summation once set
    authoritative_capacity: Optional[int] = None

    def rack_capacity(self) -> int:
        return sum(CARGO_RACK_CAPACITY.get(m.item.lower(), 0) for m in self.modules)

    def cargo_capacity(self) -> int:
        if self.authoritative_capacity is not None:
            return self.authoritative_capacity
        return self.rack_capacity()


# =============================================================================
# PLAYER STATE
# =============================================================================

@dataclass
class PlayerState:
    location: Location = field(default_factory=Location)
    nav_target: NavTarget = field(default_factory=NavTarget)
    destination: Destination = field(default_factory=Destination)

    # The target an FSDJump must match to count as an arrival
    tracked_target_name: str = ""
    tracked_target_address: int = 0

    arrived: bool = False
    arrived_at: Optional[float] = None

    show_splash: bool = True
    splash_started_at: float = 0.0

    cargo: CargoManifest = field(default_factory=CargoManifest)
    loadout: ModuleLoadout = field(default_factory=ModuleLoadout)

    def copy(self) -> "PlayerState":
        return copy.deepcopy(self)

    def clear_arrival(self):
        self.arrived = False
        self.arrived_at = None

    def clear_tracked_target(self):
        self.tracked_target_name = ""
        self.tracked_target_address = 0


# =============================================================================
# TIMED POLICIES
# =============================================================================

def check_arrival(state: PlayerState, now: float, timeout: float = ARRIVAL_TIMEOUT_SECONDS) -> bool:
    """
    Auto-clear the arrival flag.

    Cleared when a new nav target is set, or once ``timeout`` seconds have
    passed since it was raised. A new local destination clears it where
    Status.json is read, since only a change of destination counts.

    Returns:
        True if the flag was cleared
    """
    if not state.arrived:
        return False
    expired = state.arrived_at is not None and (now - state.arrived_at) > timeout
    if state.nav_target.system_address != 0 or expired:
        state.clear_arrival()
        return True
    return False


def first_page_ready(state: PlayerState, page_key: Optional[str]) -> bool:
    """Whether the first configured page has something worth showing"""
    if page_key == PAGE_DESTINATION:
        return (
            state.destination.system_address != 0
            or state.nav_target.system_address != 0
            or (state.location.type is LocationType.DOCKED and bool(state.location.body))
        )
    if page_key == PAGE_LOCATION:
        return state.location.system_address != 0
    if page_key == PAGE_CARGO:
        return bool(state.cargo.inventory)
    return True


def check_splash(
    state: PlayerState,
    first_page: Optional[str],
    now: float,
    min_seconds: float = SPLASH_MIN_SECONDS,
) -> bool:
    """
    Drop the splash once the minimum time has passed and the first page is ready.

    Returns:
        True if the splash was cleared
    """
    if not state.show_splash:
        return False
    if (now - state.splash_started_at) > min_seconds and first_page_ready(state, first_page):
        state.show_splash = False
        return True
    return False


# =============================================================================
# STATE STORE
# =============================================================================

class StateStore:
    """
    Owner of the PlayerState and the fleet-carrier directory.

    Thread-safe for access from the journal worker and the composer.

    Usage:
        store = StateStore(first_page="destination")
        with store.write() as state:
            processor.apply(line, state)
        store.check_timers()
        snapshot = store.snapshot()
    """

    def __init__(
        self,
        first_page: Optional[str] = PAGE_DESTINATION,
        arrival_timeout: float = ARRIVAL_TIMEOUT_SECONDS,
        splash_min_seconds: float = SPLASH_MIN_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        """
        Args:
            first_page: Page key shown first on the device (drives splash readiness)
            arrival_timeout: Seconds before the arrival flag clears on its own
            splash_min_seconds: Minimum splash duration
            clock: Time source (tests inject a fake)
        """
        self._lock = RLock()
        self.first_page = first_page
        self.arrival_timeout = arrival_timeout
        self.splash_min_seconds = splash_min_seconds
        self.clock = clock
        self.carriers = FleetCarrierDirectory()
        self._state = self._fresh_state()

    def _fresh_state(self) -> PlayerState:
        return PlayerState(show_splash=True, splash_started_at=self.clock())

    @contextmanager
    def write(self) -> Iterator[PlayerState]:
        """Exclusive access to the live state"""
        with self._lock:
            yield self._state

    def snapshot(self) -> PlayerState:
        """Deep copy of the current state"""
        with self._lock:
            return self._state.copy()

    def check_timers(self) -> bool:
        """
        Re-evaluate arrival and splash policies against the clock.

        Returns:
            True if either flag changed
        """
        with self._lock:
            now = self.clock()
            arrival_changed = check_arrival(self._state, now, self.arrival_timeout)
            splash_changed = check_splash(self._state, self.first_page, now, self.splash_min_seconds)
            return arrival_changed or splash_changed

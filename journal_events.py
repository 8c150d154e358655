"""
Journal Event Processing
========================

Folds journal lines into the PlayerState.

- JournalRecord: decoded journal line with typed, forgiving field access
- EventProcessor: dispatch table from event name to a narrow mutation

Malformed or unrecognised lines are a silent no-op; one bad line never
stops the rest of a batch.
"""

# ============================================================================
# IMPORTS
# ============================================================================

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Union

from fleet_carriers import FleetCarrierDirectory
from journal_state_manager import (
    Location,
    LocationType,
    NavTarget,
    PlayerState,
)

logger = logging.getLogger("edmfd.journal_events")


# ============================================================================
# JOURNAL RECORD
# ============================================================================

@dataclass(frozen=True)
class JournalRecord:
    """One decoded journal line"""
    event: str
    fields: Dict[str, Any]

    def get_str(self, key: str, default: str = "") -> str:
        value = self.fields.get(key)
        return value if isinstance(value, str) else default

    def get_int(self, key: str, default: int = 0) -> int:
        value = self.fields.get(key)
        if isinstance(value, bool):
            return default
        if isinstance(value, int):
            return value
        if isinstance(value, float) and value.is_integer():
            return int(value)
        return default

    def get_float(self, key: str, default: float = 0.0) -> float:
        value = self.fields.get(key)
        if isinstance(value, bool):
            return default
        if isinstance(value, (int, float)):
            return float(value)
        return default

    def get_bool(self, key: str, default: bool = False) -> bool:
        value = self.fields.get(key)
        return value if isinstance(value, bool) else default

    def has(self, key: str) -> bool:
        return key in self.fields


def decode_line(line: Union[str, bytes]) -> Optional[JournalRecord]:
    """
    Decode a raw journal line.

    Returns:
        JournalRecord, or None for blank, non-JSON or event-less lines
    """
    if isinstance(line, bytes):
        line = line.decode("utf-8", errors="replace")
    line = line.strip()
    if not line:
        return None
    try:
        data = json.loads(line)
    except ValueError:
        return None
    if not isinstance(data, dict):
        return None
    event = data.get("event")
    if not isinstance(event, str) or not event:
        return None
    return JournalRecord(event=event, fields=data)


# ============================================================================
# EVENT PROCESSOR
# ============================================================================

class EventProcessor:
    """
    The journal state machine.

    Usage:
        processor = EventProcessor(carriers, on_system_changed=remote.warm_up)
        processor.apply(line, state)
    """

    def __init__(
        self,
        carriers: Optional[FleetCarrierDirectory] = None,
        on_system_changed: Optional[Callable[[int], Any]] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Args:
            carriers: Directory learning carrier names from text messages
            on_system_changed: Called with the new system address when it
                changes (fire-and-forget cache warm-up)
            clock: Time source for the arrival timestamp
        """
        self.carriers = carriers if carriers is not None else FleetCarrierDirectory()
        self.on_system_changed = on_system_changed
        self.clock = clock
        self._last_system_address = 0
        # Off while replaying history so only the final system is fetched
        self.notify_system_changes = True

        self.events_processed = 0
        self.events_skipped = 0

        self._handlers: Dict[str, Callable[[JournalRecord, PlayerState], None]] = {
            "Location": self._on_location,
            "SupercruiseEntry": self._on_supercruise_entry,
            "SupercruiseExit": self._on_location,
            "FSDJump": self._on_fsd_jump,
            "Touchdown": self._on_touchdown,
            "Liftoff": self._on_liftoff,
            "FSDTarget": self._on_fsd_target,
            "NavRouteClear": self._on_nav_route_clear,
            "ApproachBody": self._on_approach_body,
            "ApproachSettlement": self._on_approach_settlement,
            "Loadout": self._on_loadout,
            "ReceiveText": self._on_receive_text,
            "Docked": self._on_docked,
        }

    def apply(self, line: Union[str, bytes], state: PlayerState) -> bool:
        """
        Apply one raw journal line to ``state``.

        Returns:
            True if the line was a recognised event
        """
        record = decode_line(line)
        if record is None:
            self.events_skipped += 1
            return False
        return self.apply_record(record, state)

    def apply_record(self, record: JournalRecord, state: PlayerState) -> bool:
        handler = self._handlers.get(record.event)
        if handler is None:
            return False
        try:
            handler(record, state)
        except (TypeError, ValueError, AttributeError) as e:
            # Shape the decoder did not anticipate; drop the line, keep going
            logger.debug("Skipped %s event: %s", record.event, e)
            self.events_skipped += 1
            return False
        self.events_processed += 1
        return True

    # ========================================================================
    # HELPERS
    # ========================================================================

    def _note_system(self, system_address: int):
        if system_address and system_address != self._last_system_address:
            self._last_system_address = system_address
            if self.on_system_changed and self.notify_system_changes:
                self.on_system_changed(system_address)

    # ========================================================================
    # EVENT HANDLERS
    # ========================================================================

    def _on_location(self, rec: JournalRecord, state: PlayerState):
        # Fresh Location: nothing from the previous one may survive
        loc = Location(
            type=LocationType.IN_SYSTEM,
            system_address=rec.get_int("SystemAddress"),
            star_system=rec.get_str("StarSystem"),
        )

        if rec.get_str("BodyType") == "Planet":
            loc.body_id = rec.get_int("BodyID")
            loc.body = rec.get_str("Body")
            loc.body_type = "Planet"
            loc.type = LocationType.NEAR_BODY
            if rec.has("Latitude"):
                loc.latitude = rec.get_float("Latitude")
                loc.longitude = rec.get_float("Longitude")
                loc.type = LocationType.LANDED

        if rec.get_bool("Docked"):
            loc.type = LocationType.DOCKED
            station = rec.get_str("StationName")
            if station:
                loc.body = station
                loc.body_id = 0
                loc.body_type = "Station"
                loc.latitude = loc.longitude = 0.0

        state.location = loc
        self._note_system(loc.system_address)

    def _on_supercruise_entry(self, rec: JournalRecord, state: PlayerState):
        # Keep system/body info, only the situation changes
        state.location.type = LocationType.IN_SYSTEM

    def _on_fsd_jump(self, rec: JournalRecord, state: PlayerState):
        self._on_location(rec, state)

        jump_system = rec.get_str("StarSystem")
        jump_address = rec.get_int("SystemAddress")
        target_name = state.tracked_target_name
        target_address = state.tracked_target_address

        if not target_name and not target_address:
            return

        by_address = target_address != 0 and jump_address == target_address
        by_name = (
            target_address == 0
            and bool(target_name)
            and bool(jump_system)
            and jump_system.lower() == target_name.lower()
        )
        if by_address or by_name:
            state.arrived = True
            state.arrived_at = self.clock()
            state.nav_target = NavTarget()
            state.clear_tracked_target()

    def _on_touchdown(self, rec: JournalRecord, state: PlayerState):
        state.location.latitude = rec.get_float("Latitude")
        state.location.longitude = rec.get_float("Longitude")
        state.location.type = LocationType.LANDED

    def _on_liftoff(self, rec: JournalRecord, state: PlayerState):
        state.location.type = LocationType.NEAR_BODY

    def _on_fsd_target(self, rec: JournalRecord, state: PlayerState):
        address = rec.get_int("SystemAddress")
        jumps = rec.get_int("RemainingJumpsInRoute") if (rec.has("RemainingJumpsInRoute") and address) else 0
        state.nav_target = NavTarget(
            name=rec.get_str("Name"),
            system_address=address,
            remaining_jumps=jumps,
        )
        state.tracked_target_name = state.nav_target.name
        state.tracked_target_address = state.nav_target.system_address
        # A new target supersedes a previous arrival
        state.clear_arrival()

    def _on_nav_route_clear(self, rec: JournalRecord, state: PlayerState):
        state.nav_target = NavTarget()
        state.clear_tracked_target()
        state.clear_arrival()

    def _on_approach_body(self, rec: JournalRecord, state: PlayerState):
        state.location.body = rec.get_str("Body")
        state.location.body_id = rec.get_int("BodyID")
        state.location.type = LocationType.NEAR_BODY

    def _on_approach_settlement(self, rec: JournalRecord, state: PlayerState):
        state.location.body = rec.get_str("BodyName")
        state.location.body_id = rec.get_int("BodyID")
        state.location.type = LocationType.NEAR_BODY

    def _on_loadout(self, rec: JournalRecord, state: PlayerState):
        if rec.has("CargoCapacity"):
            state.loadout.authoritative_capacity = rec.get_int("CargoCapacity")

    def _on_receive_text(self, rec: JournalRecord, state: PlayerState):
        if rec.get_str("Channel") == "npc" and rec.get_str("Message").endswith("docking_granted;"):
            self.carriers.learn(rec.get_str("From"))

    def _on_docked(self, rec: JournalRecord, state: PlayerState):
        state.location = Location(
            type=LocationType.DOCKED,
            system_address=rec.get_int("SystemAddress"),
            star_system=rec.get_str("StarSystem"),
            body=rec.get_str("StationName"),
            body_id=0,
            body_type="Station",
        )
        self._note_system(state.location.system_address)

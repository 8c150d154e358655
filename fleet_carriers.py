"""
Fleet carrier identity helpers.

A carrier is addressed by an id of the form ``ABC-123`` (three
alphanumerics, hyphen, three alphanumerics). Human readable names are only
seen in passing (status destination names, NPC text messages), so they are
remembered per id for the rest of the session.
"""

import re
import threading
from typing import Dict, Iterable, Optional, Tuple

FLEET_CARRIER_ID = re.compile(r"^[A-Z0-9]{3}-[A-Z0-9]{3}$")
FLEET_CARRIER_STATION_TYPE = "Fleet Carrier"
UNKNOWN_CARRIER_NAME = "Unknown Fleet Carrier"


def is_fleet_carrier_id(value: Optional[str]) -> bool:
    """The single carrier-id predicate used everywhere."""
    return bool(value) and bool(FLEET_CARRIER_ID.match(value.strip()))


def split_name_and_id(full: Optional[str]) -> Tuple[str, str]:
    """
    Split "Stormcrow VZY-8XQ" into ("Stormcrow", "VZY-8XQ").

    A bare id yields ("", id). Anything without a trailing carrier id
    yields ("", "").
    """
    parts = (full or "").split()
    if not parts:
        return "", ""
    carrier_id = parts[-1]
    if not is_fleet_carrier_id(carrier_id):
        return "", ""
    name = " ".join(parts[:-1]).strip()
    return name, carrier_id


def is_fleet_carrier(name: Optional[str], station_types: Iterable[Tuple[str, str]] = ()) -> bool:
    """
    True when ``name`` denotes a carrier.

    Args:
        name: Station/body name as seen in the journal
        station_types: (station name, station type) pairs known for the system
    """
    if not name:
        return False
    for station_name, station_type in station_types:
        if station_name.lower() == name.lower() and station_type == FLEET_CARRIER_STATION_TYPE:
            return True
    return is_fleet_carrier_id(name) or bool(split_name_and_id(name)[1])


class FleetCarrierDirectory:
    """Thread-safe carrier id -> last seen name"""

    def __init__(self):
        self._lock = threading.Lock()
        self._names: Dict[str, str] = {}

    def learn(self, full: Optional[str], overwrite: bool = True) -> Optional[str]:
        """
        Remember the name part of "<name> <id>".

        Args:
            full: Sender / destination string
            overwrite: False keeps an already known name

        Returns:
            The carrier id when one was recognised
        """
        name, carrier_id = split_name_and_id(full)
        if not carrier_id:
            return None
        with self._lock:
            if overwrite or carrier_id not in self._names:
                self._names[carrier_id] = name
        return carrier_id

    def name_for(self, carrier_id: str) -> str:
        with self._lock:
            return self._names.get(carrier_id, "")

    def snapshot(self) -> Dict[str, str]:
        with self._lock:
            return dict(self._names)

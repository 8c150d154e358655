"""
Page Composer
=============

Turns a PlayerState snapshot into the fixed-width pages shown on the MFD.

Pages (always in this order, filtered by the enabled set):
- destination: splash / arrival / local target / next jump
- location:    docked station or carrier / body / current system
- cargo:       hold contents against capacity

Remote lookups go through RemoteDataCache; a lookup failure renders a
placeholder banner on the affected page only.
"""

# ============================================================================
# IMPORTS
# ============================================================================

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Union

from commodity_names import CommodityNames
from display import Display, Page
from edsm import RemoteDataCache, RemoteStation, RemoteSystem, SystemDataKind
from error_handling import RemoteDataUnavailable
from fleet_carriers import (
    FLEET_CARRIER_STATION_TYPE,
    UNKNOWN_CARRIER_NAME,
    FleetCarrierDirectory,
    is_fleet_carrier,
    split_name_and_id,
)
from journal_state_manager import LocationType, PlayerState
from lcd_format import LINE_WIDTH, centre, fill_around, space_between

logger = logging.getLogger("edmfd.page_composer")


# ============================================================================
# CONFIGURATION / CONSTANTS
# ============================================================================

class PageKind(Enum):
    DESTINATION = "destination"
    LOCATION = "location"
    CARGO = "cargo"


PAGE_ORDER = (PageKind.DESTINATION, PageKind.LOCATION, PageKind.CARGO)

HEADER_NEXT_JUMP = "NEXT JUMP"
HEADER_CURRENT_SYSTEM = "CURR SYSTEM"
HEADER_CURRENT_BODY = "CURR BODY"
HEADER_CURRENT_PORT = "CURR PORT"
HEADER_CURRENT_CARRIER = "CURR FC"
HEADER_TARGET_BODY = "TGT BODY"
HEADER_TARGET_PORT = "TGT PORT"
HEADER_TARGET_CARRIER = "TGT FC"

# Headers that get the FUEL marker for a scoopable main star
FUEL_HEADERS = (HEADER_NEXT_JUMP, HEADER_CURRENT_SYSTEM)

ALLEGIANCE_ABBREVIATIONS = {
    "Federation": "FED",
    "Empire": "EMP",
    "Alliance": "ALLI",
    "Independent": "IND",
}

# Star sub types without a "<class> (<description>) Star" shape
SPECIAL_STAR_CLASSES = {
    "neutron star": "N",
    "black hole": "H",
    "supermassive black hole": "SMBH",
    "t tauri star": "TTS",
    "herbig ae/be star": "AeBe",
    "wolf-rayet star": "W",
    "wolf-rayet n star": "WN",
    "wolf-rayet nc star": "WNC",
    "wolf-rayet c star": "WC",
    "wolf-rayet o star": "WO",
    "c star": "C",
    "cn star": "CN",
    "cj star": "CJ",
    "ms-type star": "MS",
    "s-type star": "S",
}

_MAIN_SEQUENCE = re.compile(r"^(?P<cls>\S+)\s+\((?P<desc>[^)]*)\)\s*Star$")
_DWARF = re.compile(r"^(?P<desc>.+?)\s+\((?P<cls>[^)]*)\)\s*Star$")


# ============================================================================
# STAR TYPES
# ============================================================================

@dataclass(frozen=True)
class StarType:
    star_class: str = ""
    description: str = ""


def parse_star_type(sub_type: str) -> StarType:
    """
    Split an EDSM star sub type into class and description.

    "K (Yellow-Orange) Star"  -> K, "Yellow-Orange Star"
    "White Dwarf (DA) Star"   -> DA, "White Dwarf Star"
    "Neutron Star"            -> N, "Neutron Star"
    """
    text = (sub_type or "").strip()
    if not text:
        return StarType()

    m = _MAIN_SEQUENCE.match(text)
    if m:
        return StarType(m.group("cls"), f"{m.group('desc')} Star")

    m = _DWARF.match(text)
    if m:
        return StarType(m.group("cls"), f"{m.group('desc')} Star")

    special = SPECIAL_STAR_CLASSES.get(text.lower())
    if special:
        return StarType(special, text)

    return StarType(text.split()[0], text)


def allegiance_abbreviation(allegiance: str) -> str:
    return ALLEGIANCE_ABBREVIATIONS.get((allegiance or "").strip().title(), allegiance)


# ============================================================================
# COMPOSER
# ============================================================================

class PageComposer:
    """
    Renders the enabled pages from a state snapshot.

    Usage:
        composer = PageComposer(remote, names, store.carriers, ["destination", "cargo"])
        display = composer.compose(store.snapshot())
    """

    def __init__(
        self,
        remote: RemoteDataCache,
        names: CommodityNames,
        carriers: FleetCarrierDirectory,
        enabled_pages: Iterable[Union[str, PageKind]] = PAGE_ORDER,
        width: int = LINE_WIDTH,
        app_name: str = "ED MFD Display",
        version: str = "",
        min_valuable_body_value: int = 0,
    ):
        """
        Args:
            remote: EDSM lookups
            names: Commodity display names
            carriers: Learned fleet carrier names
            enabled_pages: Page ids to render; order is always PAGE_ORDER
            width: Characters per display line
            app_name: Shown on the splash page
            version: Shown on the splash page
            min_valuable_body_value: Valuable bodies below this value are not listed
        """
        self.remote = remote
        self.names = names
        self.carriers = carriers
        self.width = width
        self.app_name = app_name
        self.version = version
        self.min_valuable_body_value = min_valuable_body_value

        wanted = {PageKind(p) for p in enabled_pages}
        self.pages: List[PageKind] = [kind for kind in PAGE_ORDER if kind in wanted]

        self._renderers: Dict[PageKind, Callable[[PlayerState], List[str]]] = {
            PageKind.DESTINATION: self.render_destination,
            PageKind.LOCATION: self.render_location,
            PageKind.CARGO: self.render_cargo,
        }

    def compose(self, state: PlayerState) -> Display:
        return Display.of(self.render(kind, state) for kind in self.pages)

    def render(self, kind: PageKind, state: PlayerState) -> Page:
        return Page.of(self._renderers[kind](state))

    # ========================================================================
    # REMOTE HELPERS
    # ========================================================================

    def _stations(self, system_address: int) -> List[RemoteStation]:
        if not system_address:
            return []
        try:
            return self.remote.stations(system_address)
        except RemoteDataUnavailable as e:
            logger.warning("Station list unavailable: %s", e.message)
            return []

    @staticmethod
    def _station_named(stations: Sequence[RemoteStation], name: str) -> Optional[RemoteStation]:
        wanted = name.casefold()
        for station in stations:
            if station.name.casefold() == wanted:
                return station
        return None

    def _banner(self, text: str) -> str:
        return fill_around(self.width, "*", text)

    # ========================================================================
    # DESTINATION PAGE
    # ========================================================================

    def render_destination(self, state: PlayerState) -> List[str]:
        if state.show_splash:
            return self._splash_lines()
        if state.arrived:
            rule = "#" * self.width
            return [rule, centre(self.width, "You have arrived"), rule]

        dest = state.destination
        loc = state.location
        if dest.is_set and dest.system_address == loc.system_address and dest.name:
            return self._local_destination_lines(state)

        if state.nav_target.system_address:
            return self._system_lines(
                HEADER_NEXT_JUMP,
                state.nav_target.name,
                state.nav_target.system_address,
                jumps=state.nav_target.remaining_jumps,
            )

        return [centre(self.width, "No Destination")]

    def _splash_lines(self) -> List[str]:
        rule = "#" * self.width
        lines = [rule, centre(self.width, self.app_name)]
        if self.version:
            lines.append(centre(self.width, f"v{self.version}"))
        lines.append(rule)
        return lines

    def _local_destination_lines(self, state: PlayerState) -> List[str]:
        dest = state.destination
        address = state.location.system_address
        stations = self._stations(address)

        if is_fleet_carrier(dest.name, ((s.name, s.type) for s in stations)):
            name, carrier_id = split_name_and_id(dest.name)
            carrier_id = carrier_id or dest.name
            return self._fleet_carrier_lines(
                HEADER_TARGET_CARRIER, carrier_id, name or self.carriers.name_for(carrier_id), stations
            )

        station = self._station_named(stations, dest.name)
        if station:
            return self._station_lines(HEADER_TARGET_PORT, station)

        if dest.body_id:
            try:
                system = self.remote.resolve(address, SystemDataKind.BODIES)
            except RemoteDataUnavailable as e:
                logger.warning("Body lookup for destination failed: %s", e.message)
                system = RemoteSystem()
            if system.has_data:
                body = system.body_by_id(dest.body_id)
                if body.is_landable:
                    return self._body_lines(HEADER_TARGET_BODY, address, dest.body_id, dest.name)
                lines = [space_between(self.width, HEADER_TARGET_BODY, dest.name)]
                if body.sub_type:
                    lines.append(body.sub_type)
                return lines

        return [space_between(self.width, HEADER_TARGET_BODY, dest.name)]

    # ========================================================================
    # LOCATION PAGE
    # ========================================================================

    def render_location(self, state: PlayerState) -> List[str]:
        loc = state.location

        if loc.type is LocationType.DOCKED and loc.body and loc.body_type == "Station":
            stations = self._stations(loc.system_address)
            if is_fleet_carrier(loc.body, ((s.name, s.type) for s in stations)):
                name, carrier_id = split_name_and_id(loc.body)
                carrier_id = carrier_id or loc.body
                return self._fleet_carrier_lines(
                    HEADER_CURRENT_CARRIER, carrier_id, name or self.carriers.name_for(carrier_id), stations
                )
            station = self._station_named(stations, loc.body)
            if station:
                return self._station_lines(HEADER_CURRENT_PORT, station)

        if loc.type in (LocationType.NEAR_BODY, LocationType.LANDED):
            return self._body_lines(HEADER_CURRENT_BODY, loc.system_address, loc.body_id, loc.body)

        return self._system_lines(HEADER_CURRENT_SYSTEM, loc.star_system, loc.system_address)

    # ========================================================================
    # CARGO PAGE
    # ========================================================================

    def render_cargo(self, state: PlayerState) -> List[str]:
        cargo = state.cargo
        capacity = state.loadout.cargo_capacity()
        lines = [f"CARGO: {cargo.count:04d}/{capacity:04d}"]

        if cargo.inventory is None:
            lines.append(self._banner(" NO CRGO DATA "))
            return lines
        if not cargo.inventory:
            lines.append(self._banner(" NO CARGO "))
            return lines

        rows = sorted(
            ((self.names.display_name(item.name, item.name_localised), item.count) for item in cargo.inventory),
            key=lambda row: row[0],
        )
        for name, count in rows:
            lines.append(space_between(self.width, name, f"{count:,}"))
        return lines

    # ========================================================================
    # SHARED TEMPLATES
    # ========================================================================

    def _station_lines(self, header: str, station: RemoteStation) -> List[str]:
        return [
            space_between(self.width, header, allegiance_abbreviation(station.allegiance)),
            station.name,
            station.type,
        ]

    def _fleet_carrier_lines(
        self,
        header: str,
        carrier_id: str,
        carrier_name: str,
        stations: Sequence[RemoteStation],
    ) -> List[str]:
        listed = self._station_named(stations, carrier_id)
        station_type = listed.type if listed and listed.type else FLEET_CARRIER_STATION_TYPE
        return [
            space_between(self.width, header, carrier_id),
            carrier_name or UNKNOWN_CARRIER_NAME,
            station_type,
        ]

    def _body_lines(self, header: str, system_address: int, body_id: int, body_name: str) -> List[str]:
        try:
            system = self.remote.resolve(system_address, SystemDataKind.BODIES)
        except RemoteDataUnavailable as e:
            logger.warning("Body lookup failed: %s", e.message)
            return [header, self._banner(" EDSM ERROR ")]

        body = system.body_by_id(body_id) if system.has_data else None
        if body is None or not body.name:
            return [header, self._banner(" NO BODY DATA ")]

        lines = [
            space_between(self.width, header, f"{body.gravity:.2f}G"),
            body_name,
            body.sub_type.title(),
            self._banner(" MATERIAL "),
        ]
        for material in body.materials_sorted():
            lines.append(space_between(self.width, f"{material.percentage:5.2f}%", material.name))
        return lines

    def _system_lines(
        self,
        header: str,
        system_name: str,
        system_address: int,
        jumps: Optional[int] = None,
    ) -> List[str]:
        try:
            system = self.remote.resolve(system_address, SystemDataKind.BODIES)
            values = self.remote.system_value(system_address)
        except RemoteDataUnavailable as e:
            logger.warning("System lookup failed: %s", e.message)
            return [header, system_name, self._banner(" EDSM ERROR ")]

        if not system.has_data:
            return [header, system_name, self._banner(" NO SYS DATA ")]

        main_star = system.main_star()
        if header in FUEL_HEADERS and main_star.is_scoopable:
            header = space_between(self.width, header, "FUEL")

        star = parse_star_type(main_star.sub_type)
        lines = [
            header,
            system_name,
            space_between(self.width, f"CLS:{star.star_class}", f"J:{jumps}" if jumps is not None else ""),
            star.description,
            space_between(self.width, "Bodies:", f"{system.body_count:,}"),
            space_between(self.width, "Scan:", f"{values.estimated_value:,}cr"),
            space_between(self.width, "Map:", f"{values.estimated_value_mapped:,}cr"),
        ]

        valuable = [
            vb for vb in values.valuable_bodies
            if vb.value_max >= self.min_valuable_body_value
        ]
        if valuable:
            lines.append(self._banner(" VAL BODIES "))
            for vb in valuable:
                lines.append(space_between(self.width, vb.short_name(system), f"{vb.value_max:,}cr"))
        return lines

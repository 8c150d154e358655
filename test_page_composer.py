"""
Unit Tests - Pages
==================

Tests cover:
- Fixed-width line helpers
- Star type parsing, fleet carrier identity
- Destination / location / cargo page templates
- Remote failure placeholders
- Display change gate
"""

import http.client
import unittest
from pathlib import Path
from unittest.mock import Mock, patch

import sys
sys.path.insert(0, str(Path(__file__).parent))

from caching import CacheManager
from commodity_names import CommodityNames
from display import Display, DisplayChangeGate, HttpLinesNotifier, LogDisplay, Page
from edsm import RemoteDataCache
from error_handling import DisplayError, RemoteDataUnavailable
from fleet_carriers import FleetCarrierDirectory, is_fleet_carrier, is_fleet_carrier_id, split_name_and_id
from journal_state_manager import (
    CargoLine,
    CargoManifest,
    Destination,
    Location,
    LocationType,
    ModuleLoadout,
    ModuleSlot,
    NavTarget,
    PlayerState,
)
from lcd_format import centre, fill_around, space_between
from page_composer import PageComposer, PageKind, allegiance_abbreviation, parse_star_type


SOL = 10477373803

SOL_BODIES = {
    "id64": SOL,
    "name": "Sol",
    "bodyCount": 40,
    "bodies": [
        {"bodyId": 0, "name": "Sol", "type": "Star", "subType": "G (White-Yellow) Star",
         "isMainStar": True, "isScoopable": True},
        {"bodyId": 3, "name": "Earth", "type": "Planet", "subType": "Earth-like world",
         "isLandable": False, "gravity": 1.0},
        {"bodyId": 12, "name": "Moon", "type": "Planet", "subType": "Rocky body",
         "isLandable": True, "gravity": 0.16,
         "materials": {"Iron": 19.5, "Nickel": 14.75, "Sulphur": 19.5}},
    ],
}

SOL_VALUE = {
    "id64": SOL,
    "name": "Sol",
    "estimatedValue": 123456,
    "estimatedValueMapped": 456789,
    "valuableBodies": [
        {"bodyId": 3, "bodyName": "Earth", "valueMax": 280000},
        {"bodyId": 4, "bodyName": "Sol 4", "valueMax": 500},
    ],
}

SOL_STATIONS = {
    "id64": SOL,
    "name": "Sol",
    "stations": [
        {"id": 1, "name": "Abraham Lincoln", "type": "Orbis Starport", "allegiance": "Federation"},
        {"id": 2, "name": "VZY-8XQ", "type": "Fleet Carrier", "allegiance": "Independent"},
    ],
}


def sol_fetcher(url):
    for fragment, payload in (
        ("/bodies", SOL_BODIES),
        ("/estimated-value", SOL_VALUE),
        ("/stations", SOL_STATIONS),
    ):
        if fragment in url:
            return payload
    raise RemoteDataUnavailable("unexpected url", url=url)


def offline_fetcher(url):
    raise RemoteDataUnavailable("offline", url=url)


def in_sol(**kwargs):
    """A state past the splash, flying in Sol"""
    state = PlayerState(show_splash=False)
    state.location = Location(system_address=SOL, star_system="Sol")
    for key, value in kwargs.items():
        setattr(state, key, value)
    return state


# ============================================================================
# LINE HELPERS
# ============================================================================

class TestLineHelpers(unittest.TestCase):
    """Test fixed-width formatting"""

    def test_space_between(self):
        self.assertEqual(space_between(16, "Gold", "12"), "Gold          12")
        self.assertEqual(len(space_between(16, "Gold", "12")), 16)

    def test_space_between_keeps_right_visible(self):
        self.assertEqual(space_between(16, "Sothis Crystalline Gold", "1,000"), "Sothis Cry 1,000")

    def test_space_between_without_right(self):
        self.assertEqual(space_between(16, "CLS:G", ""), "CLS:G")

    def test_fill_around(self):
        self.assertEqual(fill_around(16, "*", " NO CARGO "), "*** NO CARGO ***")
        self.assertEqual(fill_around(16, "*", " NO SYS DATA "), "* NO SYS DATA **")

    def test_centre(self):
        self.assertEqual(centre(16, "No Destination"), " No Destination ")


# ============================================================================
# STAR TYPES / CARRIERS
# ============================================================================

class TestStarTypes(unittest.TestCase):

    def test_main_sequence(self):
        star = parse_star_type("K (Yellow-Orange) Star")
        self.assertEqual((star.star_class, star.description), ("K", "Yellow-Orange Star"))

    def test_dwarf(self):
        star = parse_star_type("White Dwarf (DA) Star")
        self.assertEqual((star.star_class, star.description), ("DA", "White Dwarf Star"))

    def test_special_classes(self):
        self.assertEqual(parse_star_type("Neutron Star").star_class, "N")
        self.assertEqual(parse_star_type("Black Hole").star_class, "H")
        self.assertEqual(parse_star_type("").star_class, "")

    def test_allegiance(self):
        self.assertEqual(allegiance_abbreviation("Federation"), "FED")
        self.assertEqual(allegiance_abbreviation("Pilots Federation"), "Pilots Federation")


class TestFleetCarriers(unittest.TestCase):
    """Test the carrier id predicate and name directory"""

    def test_id_predicate(self):
        self.assertTrue(is_fleet_carrier_id("VZY-8XQ"))
        self.assertFalse(is_fleet_carrier_id("vzy-8xq"))
        self.assertFalse(is_fleet_carrier_id("Abraham Lincoln"))
        self.assertFalse(is_fleet_carrier_id(""))

    def test_split(self):
        self.assertEqual(split_name_and_id("Stormcrow VZY-8XQ"), ("Stormcrow", "VZY-8XQ"))
        self.assertEqual(split_name_and_id("VZY-8XQ"), ("", "VZY-8XQ"))
        self.assertEqual(split_name_and_id("Jameson Memorial"), ("", ""))

    def test_station_type_marks_carrier(self):
        self.assertTrue(is_fleet_carrier("My Carrier", [("my carrier", "Fleet Carrier")]))
        self.assertFalse(is_fleet_carrier("Abraham Lincoln", [("Abraham Lincoln", "Orbis Starport")]))

    def test_directory_overwrite(self):
        carriers = FleetCarrierDirectory()
        self.assertEqual(carriers.learn("Stormcrow VZY-8XQ"), "VZY-8XQ")
        carriers.learn("Other VZY-8XQ", overwrite=False)
        self.assertEqual(carriers.name_for("VZY-8XQ"), "Stormcrow")
        self.assertIsNone(carriers.learn("Abraham Lincoln"))


# ============================================================================
# PAGE COMPOSER
# ============================================================================

class TestPageComposer(unittest.TestCase):
    """Test page templates against a canned EDSM"""

    def setUp(self):
        self.remote = RemoteDataCache(CacheManager(), fetcher=sol_fetcher)
        self.carriers = FleetCarrierDirectory()
        self.names = CommodityNames({"gold": "Gold", "tea": "Tea", "hydrogenfuel": "Hydrogen Fuel"})
        self.composer = PageComposer(
            self.remote, self.names, self.carriers,
            app_name="ED MFD Display", version="1.0.0", min_valuable_body_value=1000,
        )

    def lines(self, kind, state):
        return list(self.composer.render(kind, state).lines)

    def test_pages_follow_fixed_order(self):
        composer = PageComposer(self.remote, self.names, self.carriers, enabled_pages=["cargo", "destination"])
        self.assertEqual(composer.pages, [PageKind.DESTINATION, PageKind.CARGO])
        self.assertEqual(composer.compose(in_sol()).page_count, 2)

    def test_splash(self):
        state = in_sol(show_splash=True, arrived=True)
        self.assertEqual(self.lines(PageKind.DESTINATION, state), [
            "#" * 16, " ED MFD Display ", "     v1.0.0     ", "#" * 16,
        ])

    def test_arrival(self):
        self.assertEqual(self.lines(PageKind.DESTINATION, in_sol(arrived=True)), [
            "#" * 16, "You have arrived", "#" * 16,
        ])

    def test_no_destination(self):
        self.assertEqual(self.lines(PageKind.DESTINATION, in_sol()), [" No Destination "])

    def test_next_jump(self):
        state = in_sol(nav_target=NavTarget(name="Sol", system_address=SOL, remaining_jumps=3))
        self.assertEqual(self.lines(PageKind.DESTINATION, state), [
            "NEXT JUMP   FUEL",
            "Sol",
            "CLS:G        J:3",
            "White-Yellow Star",
            "Bodies:       40",
            "Scan:  123,456cr",
            "Map:   456,789cr",
            "** VAL BODIES **",
            "Earth  280,000cr",
        ])

    def test_current_system(self):
        lines = self.lines(PageKind.LOCATION, in_sol())
        self.assertEqual(lines[:3], ["CURR SYSTEM FUEL", "Sol", "CLS:G"])

    def test_current_body(self):
        state = in_sol()
        state.location = Location(
            type=LocationType.NEAR_BODY, system_address=SOL, star_system="Sol", body="Moon", body_id=12,
        )
        self.assertEqual(self.lines(PageKind.LOCATION, state), [
            "CURR BODY  0.16G",
            "Moon",
            "Rocky Body",
            "*** MATERIAL ***",
            "19.50%      Iron",
            "19.50%   Sulphur",
            "14.75%    Nickel",
        ])

    def test_docked_at_station(self):
        state = in_sol()
        state.location = Location(
            type=LocationType.DOCKED, system_address=SOL, star_system="Sol",
            body="Abraham Lincoln", body_type="Station",
        )
        self.assertEqual(self.lines(PageKind.LOCATION, state), [
            "CURR PORT    FED", "Abraham Lincoln", "Orbis Starport",
        ])

    def test_docked_at_fleet_carrier(self):
        self.carriers.learn("Stormcrow VZY-8XQ")
        state = in_sol()
        state.location = Location(
            type=LocationType.DOCKED, system_address=SOL, star_system="Sol",
            body="VZY-8XQ", body_type="Station",
        )
        self.assertEqual(self.lines(PageKind.LOCATION, state), [
            "CURR FC  VZY-8XQ", "Stormcrow", "Fleet Carrier",
        ])

    def test_unknown_fleet_carrier_name(self):
        state = in_sol(destination=Destination(system_address=SOL, body_id=20, name="KHQ-T2V"))
        self.assertEqual(self.lines(PageKind.DESTINATION, state), [
            "TGT FC   KHQ-T2V", "Unknown Fleet Carrier", "Fleet Carrier",
        ])

    def test_target_station(self):
        state = in_sol(destination=Destination(system_address=SOL, body_id=5, name="Abraham Lincoln"))
        self.assertEqual(self.lines(PageKind.DESTINATION, state)[0], "TGT PORT     FED")

    def test_target_landable_body(self):
        state = in_sol(destination=Destination(system_address=SOL, body_id=12, name="Moon"))
        self.assertEqual(self.lines(PageKind.DESTINATION, state)[:2], ["TGT BODY   0.16G", "Moon"])

    def test_target_non_landable_body(self):
        state = in_sol(destination=Destination(system_address=SOL, body_id=3, name="Earth"))
        self.assertEqual(self.lines(PageKind.DESTINATION, state), ["TGT BODY   Earth", "Earth-like world"])

    def test_destination_in_other_system_shows_next_jump(self):
        state = in_sol(
            destination=Destination(system_address=42, body_id=1, name="Elsewhere"),
            nav_target=NavTarget(name="Sol", system_address=SOL, remaining_jumps=1),
        )
        self.assertEqual(self.lines(PageKind.DESTINATION, state)[0], "NEXT JUMP   FUEL")

    def test_cargo_without_file(self):
        self.assertEqual(self.lines(PageKind.CARGO, in_sol()), ["CARGO: 0000/0000", "* NO CRGO DATA *"])

    def test_cargo_empty(self):
        state = in_sol(cargo=CargoManifest(count=0, inventory=[]))
        self.assertEqual(self.lines(PageKind.CARGO, state)[1], "*** NO CARGO ***")

    def test_cargo_sorted_by_display_name(self):
        state = in_sol(
            cargo=CargoManifest(count=1207, inventory=[
                CargoLine("tea", 7),
                CargoLine("hydrogenfuel", 1200),
                CargoLine("gold", 0),
                CargoLine("unknownthing", 0, name_localised="Alien Eggs"),
            ]),
            loadout=ModuleLoadout(modules=[ModuleSlot("Slot01_Size8", "int_largecargorack_size8_class1")]),
        )
        self.assertEqual(self.lines(PageKind.CARGO, state), [
            "CARGO: 1207/0384",
            "Alien Eggs     0",
            "Gold           0",
            "Hydrogen F 1,200",
            "Tea            7",
        ])

    def test_offline_placeholders(self):
        composer = PageComposer(RemoteDataCache(CacheManager(), fetcher=offline_fetcher), self.names, self.carriers)
        state = in_sol()
        self.assertEqual(list(composer.render(PageKind.LOCATION, state).lines), [
            "CURR SYSTEM", "Sol", "** EDSM ERROR **",
        ])
        state.location = Location(type=LocationType.LANDED, system_address=SOL, body="Moon", body_id=12)
        self.assertEqual(list(composer.render(PageKind.LOCATION, state).lines), [
            "CURR BODY", "** EDSM ERROR **",
        ])

    @patch("edsm.urllib.request.urlopen")
    def test_http_protocol_error_renders_placeholder(self, urlopen):
        urlopen.side_effect = http.client.BadStatusLine("x")
        composer = PageComposer(RemoteDataCache(CacheManager()), self.names, self.carriers)
        display = composer.compose(in_sol())
        self.assertIn(["CURR SYSTEM", "Sol", "** EDSM ERROR **"], display.to_lines())

    def test_unknown_system_placeholder(self):
        composer = PageComposer(RemoteDataCache(CacheManager(), fetcher=lambda url: []), self.names, self.carriers)
        self.assertEqual(list(composer.render(PageKind.LOCATION, in_sol()).lines), [
            "CURR SYSTEM", "Sol", "* NO SYS DATA **",
        ])

    def test_unknown_body_placeholder(self):
        state = in_sol()
        state.location = Location(type=LocationType.NEAR_BODY, system_address=SOL, body="Mars", body_id=4)
        self.assertEqual(self.lines(PageKind.LOCATION, state), ["CURR BODY", "* NO BODY DATA *"])


# ============================================================================
# DISPLAY CHANGE GATE
# ============================================================================

class TestDisplayChangeGate(unittest.TestCase):
    """Test diff-and-commit"""

    def setUp(self):
        self.sink = Mock()
        self.gate = DisplayChangeGate([self.sink])
        self.display = Display.of([Page.of(["CARGO: 0000/0000", "*** NO CARGO ***"])])

    def test_first_offer_is_forwarded(self):
        self.assertTrue(self.gate.offer(self.display))
        self.sink.write.assert_called_once_with(self.display)

    def test_identical_offer_is_dropped(self):
        self.gate.offer(self.display)
        same = Display.of([Page.of(["CARGO: 0000/0000", "*** NO CARGO ***"])])
        self.assertFalse(self.gate.offer(same))
        self.assertEqual(self.sink.write.call_count, 1)

    def test_changed_line_is_forwarded(self):
        self.gate.offer(self.display)
        self.assertTrue(self.gate.offer(Display.of([Page.of(["CARGO: 0001/0000", "Gold           1"])])))
        self.assertEqual(self.gate.commits, 2)

    def test_page_count_change_is_forwarded(self):
        self.gate.offer(self.display)
        self.assertTrue(self.gate.offer(Display.of(list(self.display.pages) * 2)))

    def test_reset_forces_forward(self):
        self.gate.offer(self.display)
        self.gate.reset()
        self.assertTrue(self.gate.offer(self.display))

    def test_failing_sink_is_reported(self):
        handler = Mock()
        broken = Mock()
        broken.write.side_effect = OSError("device gone")
        gate = DisplayChangeGate([broken, self.sink], handler)
        self.assertTrue(gate.offer(self.display))
        self.sink.write.assert_called_once()
        error = handler.handle_error.call_args.args[0]
        self.assertIsInstance(error, DisplayError)


class TestCollaborators(unittest.TestCase):

    def test_log_display_keeps_last(self):
        log = Mock()
        sink = LogDisplay(16, log)
        display = Display.of([Page.of(["Gold"])])
        sink.write(display)
        self.assertIs(sink.last, display)
        log.info.assert_any_call("| %s |", "Gold            ")

    def test_notifier_request(self):
        notifier = HttpLinesNotifier("http://localhost:8080/pages")
        req = notifier.build_request(Display.of([Page.of(["a", "b"]), Page.of(["c"])]))
        self.assertEqual(req.get_method(), "POST")
        self.assertEqual(req.data, b'{"pages": [["a", "b"], ["c"]]}')


# ============================================================================
# RUN TESTS
# ============================================================================

if __name__ == "__main__":
    unittest.main(verbosity=2)

"""
Auxiliary Snapshot Files
========================

The game rewrites three small JSON files next to the journal:

- Status.json:      current local destination (waypoint)
- ModulesInfo.json: fitted modules, used for cargo capacity
- Cargo.json:       the ship's cargo hold

Each file is whole-file re-read only when its change signature (missing,
or size + mtime) differs from the last read. The parsed contents are
folded into the PlayerState held by the StateStore.
"""

# ============================================================================
# IMPORTS
# ============================================================================

import json
import logging
from pathlib import Path
from typing import Any, List, Optional, Tuple

from error_handling import FileSystemError
from journal_state_manager import (
    CargoLine,
    CargoManifest,
    Destination,
    ModuleSlot,
    StateStore,
)
from utils import clean_path

logger = logging.getLogger("edmfd.snapshot_files")


# ============================================================================
# CONFIGURATION / CONSTANTS
# ============================================================================

STATUS_FILE = "Status.json"
MODULES_INFO_FILE = "ModulesInfo.json"
CARGO_FILE = "Cargo.json"

_UNSEEN = object()


# ============================================================================
# CHANGE DETECTION
# ============================================================================

class FileChangeGuard:
    """Remembers the last seen (size, mtime) of one file; None when missing"""

    def __init__(self):
        self._signature: Any = _UNSEEN

    @staticmethod
    def signature(path: Path) -> Optional[Tuple[int, int]]:
        try:
            st = path.stat()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise FileSystemError(
                f"Cannot stat {clean_path(path)}: {e}",
                context={"path": clean_path(path)},
            ) from e
        return (st.st_size, st.st_mtime_ns)

    def changed(self, path: Path) -> bool:
        """True (and remembered) when the signature differs from the last call"""
        sig = self.signature(path)
        if sig == self._signature:
            return False
        self._signature = sig
        return True

    def forget(self):
        """Force the next ``changed`` call to report a change"""
        self._signature = _UNSEEN


def _read_json(path: Path) -> Any:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


# ============================================================================
# PARSERS
# ============================================================================

def parse_status_destination(data: Any) -> Tuple[Destination, str]:
    """
    Destination block of Status.json.

    Returns:
        (Destination, display name); an empty Destination when the block is absent
    """
    dest = data.get("Destination") if isinstance(data, dict) else None
    if not isinstance(dest, dict) or not dest:
        return Destination(), ""

    raw_name = dest.get("Name") or ""
    if raw_name and not raw_name.startswith("$"):
        name = raw_name
    else:
        # "$EXT_PANEL_ColonisationShip; ..." style keys
        name = dest.get("Name_Localised") or raw_name

    destination = Destination(
        system_address=int(dest.get("System") or 0),
        body_id=int(dest.get("Body") or 0),
        name=name,
    )
    return destination, name


def parse_cargo(data: Any) -> Optional[CargoManifest]:
    """
    Cargo.json contents.

    Returns:
        CargoManifest, or None when the file describes another vessel (SRV)
    """
    if not isinstance(data, dict):
        raise ValueError("Cargo file root is not an object")
    vessel = data.get("Vessel")
    if vessel is not None and vessel != "Ship":
        return None

    inventory: List[CargoLine] = []
    for item in data.get("Inventory") or []:
        if not isinstance(item, dict):
            continue
        inventory.append(CargoLine(
            name=str(item.get("Name") or ""),
            count=int(item.get("Count") or 0),
            stolen=int(item.get("Stolen") or 0),
            name_localised=str(item.get("Name_Localised") or ""),
        ))
    return CargoManifest(count=int(data.get("Count") or 0), inventory=inventory)


def parse_modules(data: Any) -> List[ModuleSlot]:
    if not isinstance(data, dict):
        raise ValueError("ModulesInfo root is not an object")
    return [
        ModuleSlot(slot=str(m.get("Slot") or ""), item=str(m.get("Item") or ""))
        for m in (data.get("Modules") or [])
        if isinstance(m, dict)
    ]


# ============================================================================
# INTEGRATOR
# ============================================================================

class SnapshotFileIntegrator:
    """
    Folds the three snapshot files into the StateStore.

    Usage:
        integrator = SnapshotFileIntegrator(journal_dir, store)
        integrator.update_all()
    """

    def __init__(self, journal_dir: Path, store: StateStore):
        self.journal_dir = Path(journal_dir)
        self.store = store
        self._status_guard = FileChangeGuard()
        self._modules_guard = FileChangeGuard()
        self._cargo_guard = FileChangeGuard()

    @property
    def status_path(self) -> Path:
        return self.journal_dir / STATUS_FILE

    @property
    def modules_path(self) -> Path:
        return self.journal_dir / MODULES_INFO_FILE

    @property
    def cargo_path(self) -> Path:
        return self.journal_dir / CARGO_FILE

    def update_all(self) -> bool:
        """
        Re-read whichever files changed.

        Returns:
            True if any file was integrated
        """
        changed = False
        for update in (self.update_status, self.update_modules, self.update_cargo):
            try:
                changed = update() or changed
            except FileSystemError as e:
                logger.warning(e.message)
        return changed

    # ------------------------------------------------------------------
    # Status.json
    # ------------------------------------------------------------------

    def update_status(self) -> bool:
        path = self.status_path
        if not self._status_guard.changed(path):
            return False
        if not path.exists():
            # No status yet: leave the destination as it is
            return False

        try:
            destination, name = parse_status_destination(_read_json(path))
        except (OSError, ValueError, TypeError) as e:
            # Usually a half-written file; retry on the next notification
            logger.debug("Status file not readable yet (%s): %s", clean_path(path), e)
            self._status_guard.forget()
            return False

        if name:
            self.store.carriers.learn(name, overwrite=False)

        with self.store.write() as state:
            if destination.is_set and destination != state.destination:
                state.clear_arrival()
            state.destination = destination

        self.store.check_timers()
        return True

    # ------------------------------------------------------------------
    # ModulesInfo.json
    # ------------------------------------------------------------------

    def update_modules(self) -> bool:
        path = self.modules_path
        if not self._modules_guard.changed(path):
            return False

        try:
            modules = parse_modules(_read_json(path))
        except FileNotFoundError:
            logger.debug("No modules file at %s", clean_path(path))
            return False
        except (OSError, ValueError) as e:
            logger.warning("Failed to read ModulesInfo file %s: %s", clean_path(path), e)
            self._modules_guard.forget()
            return False

        with self.store.write() as state:
            state.loadout.modules = modules
            capacity = state.loadout.cargo_capacity()
        logger.debug("Cargo capacity now %d", capacity)
        return True

    # ------------------------------------------------------------------
    # Cargo.json
    # ------------------------------------------------------------------

    def update_cargo(self) -> bool:
        path = self.cargo_path
        if not self._cargo_guard.changed(path):
            return False

        try:
            manifest = parse_cargo(_read_json(path))
        except FileNotFoundError:
            logger.debug("No cargo file found at %s", clean_path(path))
            manifest = CargoManifest()
        except (OSError, ValueError) as e:
            logger.error("Failed to parse cargo file %s: %s", clean_path(path), e)
            manifest = CargoManifest()

        if manifest is None:
            logger.debug("Ignoring cargo file for another vessel")
            return False

        with self.store.write() as state:
            state.cargo = manifest
        return True

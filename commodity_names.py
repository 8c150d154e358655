"""
Commodity Names
===============

Maps journal commodity symbols (``hydrogenfuel``, ``$advancedcatalysers_name;``)
to the names shown in game, from the EDCD commodity tables shipped in
``names/``.
"""

import csv
import logging
from pathlib import Path
from typing import Dict, Optional

from utils import resource_path

logger = logging.getLogger("edmfd.commodity_names")

COMMODITY_FILE = "commodity.csv"
RARE_COMMODITY_FILE = "rare_commodity.csv"

# (file name, symbol column, name column)
NAME_TABLES = (
    (COMMODITY_FILE, 1, 3),
    (RARE_COMMODITY_FILE, 1, 4),
)


class CommodityNames:
    """
    Symbol -> display name lookup.

    Usage:
        names = CommodityNames.load()
        names.display_name("hydrogenfuel")   # "Hydrogen Fuel"
    """

    def __init__(self, names: Optional[Dict[str, str]] = None):
        self._names: Dict[str, str] = {k.lower(): v for k, v in (names or {}).items()}

    @classmethod
    def load(cls, names_dir: Optional[Path] = None) -> "CommodityNames":
        """
        Read both tables from ``names_dir`` (default: bundled ``names/``).

        A missing or unreadable table is logged and skipped.
        """
        folder = Path(names_dir) if names_dir else resource_path("names")
        resolver = cls()
        for filename, symbol_idx, name_idx in NAME_TABLES:
            resolver.add_table(folder / filename, symbol_idx, name_idx)
        logger.debug("Loaded %d commodity names from %s", len(resolver), folder)
        return resolver

    def add_table(self, path: Path, symbol_idx: int, name_idx: int) -> int:
        """
        Merge one CSV table; the header row is skipped.

        Returns:
            Number of names added
        """
        try:
            with open(path, "r", encoding="utf-8", newline="") as f:
                rows = list(csv.reader(f))
        except (OSError, csv.Error) as e:
            logger.warning("Could not read commodity table %s: %s", path, e)
            return 0

        added = 0
        for row in rows[1:]:
            if len(row) <= max(symbol_idx, name_idx):
                continue
            symbol = row[symbol_idx].strip().lower()
            if symbol:
                self._names[symbol] = row[name_idx].strip()
                added += 1
        return added

    def display_name(self, symbol: str, localised: str = "") -> str:
        """Known name, else the localised journal name, else the raw symbol"""
        name = self._names.get((symbol or "").lower())
        if name:
            return name
        return localised or symbol

    def __len__(self) -> int:
        return len(self._names)

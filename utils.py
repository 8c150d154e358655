"""
Small path helpers shared by the loader, the monitor and the logs.
"""

import os
import re
import sys
from pathlib import Path
from typing import Union

_WINDOWS_ENV_VAR = re.compile(r"%([^%]+)%")


def resource_path(relative: str) -> Path:
    """Path of a bundled data file (works frozen and from source)"""
    if getattr(sys, "frozen", False) and hasattr(sys, "_MEIPASS"):
        return Path(sys._MEIPASS) / relative  # type: ignore[attr-defined]
    return Path(__file__).resolve().parent / relative


def expand_path(value: Union[str, Path]) -> Path:
    """
    Expand ``~``, ``$VAR`` and Windows-style ``%VAR%`` references.

    Unknown ``%VAR%`` references are left as they are.
    """
    text = str(value)
    text = _WINDOWS_ENV_VAR.sub(lambda m: os.environ.get(m.group(1), m.group(0)), text)
    return Path(os.path.expandvars(os.path.expanduser(text)))


def clean_path(value: Union[str, Path, None]) -> str:
    """Forward-slash form of a path for log messages"""
    if not value:
        return ""
    return str(value).replace("\\", "/")

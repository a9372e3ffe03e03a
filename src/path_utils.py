"""
Advanced Compass - Heading Smoothing, Correction and Logging
Path Utilities

Copyright (c) 2026 Kay Schäfer. All Rights Reserved.
Proprietary and confidential. See LICENSE for details.

Locates ``config.yaml``, the saved-state file and the export folder
relative to the application root.
"""

import sys
from pathlib import Path


def get_base_path() -> Path:
    """Return the application root directory.

    * **Frozen / EXE** (``sys.frozen`` is set): the directory holding the
      executable, so ``config.yaml`` and the state file sit beside it.
    * **Development / Script**: the repository root.
    """
    if getattr(sys, "frozen", False):
        return Path(sys.executable).resolve().parent
    return Path(__file__).resolve().parent.parent


def resolve_path(relative: str) -> Path:
    """Resolve a configured file or folder location.

    Absolute paths (and ``~`` paths) are returned as given; relative ones
    are anchored at :func:`get_base_path` rather than the current working
    directory, so starting the app from elsewhere finds the same files.
    """
    path = Path(relative).expanduser()
    if path.is_absolute():
        return path
    return get_base_path() / path

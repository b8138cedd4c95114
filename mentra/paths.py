"""
Central path configuration for the Mentra study mentor.

Everything the client persists locally (history database, drafts, settings,
the signed-in profile and the last session id) lives under the ``Asset/``
folder next to ``main.py``, regardless of the working directory the
application is launched from.

Usage in other modules::

    from .paths import asset_path
    DRAFT_FILE = asset_path("drafts.json")
"""

import os

# Project root = the directory that contains main.py.
# This file lives in mentra/, so we go one level up.
_PROJECT_ROOT: str = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

#: Absolute path to the ``Asset/`` folder.  Created lazily by :func:`asset_path`.
ASSET_DIR: str = os.path.join(_PROJECT_ROOT, "Asset")


def asset_path(filename: str) -> str:
    """Return the absolute path for *filename* inside the Asset folder."""
    os.makedirs(ASSET_DIR, exist_ok=True)
    return os.path.join(ASSET_DIR, filename)

"""Pytest configuration to ensure the mycord package is importable."""
from __future__ import annotations

import sys
from pathlib import Path

_REPO_ROOT = Path(__file__).resolve().parents[1]
# An interpreter-wide sitecustomize may already be loaded, so add src/ directly.
for _path in (_REPO_ROOT / "src", _REPO_ROOT):
    _path_str = str(_path)
    if _path_str not in sys.path:
        sys.path.insert(0, _path_str)

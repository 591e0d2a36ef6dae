"""Pytest configuration.

Puts `src/` on `sys.path` so the flat modules (`config`, `live_probe`) and the
`observability` / `interceptors` packages import without an install step.
"""

from __future__ import annotations

import sys
from pathlib import Path

SRC_DIR = Path(__file__).resolve().parents[1] / "src"


def pytest_configure() -> None:
    if str(SRC_DIR) not in sys.path:
        sys.path.insert(0, str(SRC_DIR))

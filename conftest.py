from __future__ import annotations

import os
import sys
from pathlib import Path

HERE = Path(__file__).resolve().parent
SRC = HERE / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

# module-level engine in line_planner.db must never touch a file during tests
os.environ.setdefault("DATABASE_URL", "sqlite://")

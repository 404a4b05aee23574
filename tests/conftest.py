from __future__ import annotations

import sys
from pathlib import Path

# `assignbot` is a namespace package under src/; import it from this checkout
# even when the project has not been installed.
SRC_DIR = Path(__file__).resolve().parents[1] / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

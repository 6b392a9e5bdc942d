"""Pytest configuration.

The packages run from a source checkout without an editable install. In
CI/automation environments `pytest` may be executed without the repository
root on `sys.path`, which breaks imports like `import nb_core...` and the
shared `tests._fakes` helpers.

This file ensures the repository root is importable.
"""

from __future__ import annotations

import sys
from pathlib import Path


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

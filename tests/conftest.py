"""
Pytest configuration for patchstream.

Why this exists:
- The suite imports the package as `patchstream.*` and `start_server` from the repository root.
- Depending on pytest import mode / environment, the repository root may not be on `sys.path`,
  which makes `import patchstream...` fail during collection when the package is not installed.

This file ensures the repo root is available on `sys.path` for all tests in a deterministic way.
"""

from __future__ import annotations

import sys
from pathlib import Path


PROJECT_ROOT = Path(__file__).resolve().parent.parent

# Ensure the repository root is importable (so `import patchstream...` works).
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

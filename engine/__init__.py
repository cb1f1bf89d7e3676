"""
Convenience package shim.

The app is organized under `app/` and is typically run via `python app/main.py`,
which puts `app/` on `sys.path` so imports like `import engine.*` work.

When running tools or tests from the repo root, `app/` is not on `sys.path`.
This shim makes `engine.*` resolvable by extending the package search path to
include `app/engine`.
"""

from __future__ import annotations

import os

_HERE = os.path.abspath(os.path.dirname(__file__))
_APP_ENGINE = os.path.normpath(os.path.join(_HERE, "..", "app", "engine"))

if os.path.isdir(_APP_ENGINE):
    __path__.append(_APP_ENGINE)  # type: ignore[name-defined]

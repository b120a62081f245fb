"""Allow ``python -m device_catalog``."""
from __future__ import annotations

from .cli import run

run()

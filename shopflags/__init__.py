"""Feature flag and experiment evaluation core for the storefront."""

from __future__ import annotations

__version__ = "1.0.0"

"""Twitter video variant extraction over a scraped web-app session."""

from __future__ import annotations

__version__ = "0.3.0"

__all__ = ["__version__"]

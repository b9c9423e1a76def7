"""Provider interfaces for boxgrade."""
from __future__ import annotations

from .vagrant import VagrantError, VagrantProvider

__all__ = ["VagrantError", "VagrantProvider"]

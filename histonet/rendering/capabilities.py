"""Startup probe for the 3D render backend."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Callable, Optional

from histonet.config import RenderingConfig

LOGGER = logging.getLogger(__name__)

_TRUTHY = {"1", "true", "yes", "on"}


class RenderBackendUnavailableError(RuntimeError):
    """Raised when a 3D view is requested without a 3D backend."""


@dataclass(frozen=True)
class RenderCapabilities:
    supports_3d: bool
    reason: Optional[str] = None

    @classmethod
    def detect(
        cls,
        config: RenderingConfig,
        probe: Optional[Callable[[], bool]] = None,
    ) -> "RenderCapabilities":
        """Probe once whether 3D rendering is available.

        Args:
            config: Rendering section; ``enable_3d`` gates the backend.
            probe: Optional host check, e.g. for a WebGL context.

        Returns:
            RenderCapabilities: Result cached by the caller for the session.
        """

        if not config.enable_3d:
            return cls(False, "disabled by configuration")
        disabled = os.getenv("HISTONET_DISABLE_3D", "")
        if disabled.strip().lower() in _TRUTHY:
            return cls(False, "disabled by HISTONET_DISABLE_3D")
        if probe is not None:
            try:
                available = bool(probe())
            except Exception as exc:  # noqa: BLE001 - host probes fail in many ways
                LOGGER.warning("3D backend probe failed: %s", exc)
                return cls(False, f"probe failed: {exc}")
            if not available:
                return cls(False, "probe reported no 3D support")
        return cls(True)

    def require_3d(self) -> None:
        if not self.supports_3d:
            raise RenderBackendUnavailableError(f"3D rendering unavailable ({self.reason})")

    def resolve_dimensions(self, requested: int) -> int:
        """Fall back to 2D when 3D is requested but unsupported."""

        if requested == 3 and not self.supports_3d:
            LOGGER.warning("3D view requested but unavailable (%s); using 2D", self.reason)
            return 2
        return requested


__all__ = ["RenderBackendUnavailableError", "RenderCapabilities"]

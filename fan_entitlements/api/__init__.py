"""HTTP surface for content access decisions."""

from fan_entitlements.api.routes import router

__all__ = ["router"]

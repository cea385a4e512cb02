"""Operational policy values read from the ``[custom]`` section of domain.toml."""

from typing import Any

from protean.utils.globals import current_domain

_DEFAULTS: dict[str, Any] = {
    "COD_LIMIT": 10000,
    "AGENT_CAPACITY": 5,
    "DEFAULT_DELIVERY_FEE": 50,
    "RETURN_WINDOW_DAYS": 7,
}


def setting(name: str) -> Any:
    """Return a policy value, falling back to the built-in default."""
    custom = current_domain.config.get("custom") or {}
    return custom.get(name, _DEFAULTS[name])

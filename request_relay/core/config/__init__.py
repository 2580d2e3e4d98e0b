"""
Configuration Module

- **settings.py**: Pydantic-based configuration with environment variable loading
- **constants.py**: Lifecycle enums, stage identifiers and wire constants

Usage:
------
```python
from request_relay.core.config import get_settings
from request_relay.core.config.constants import RequestStatus, Stage

settings = get_settings()
tenants = settings.bus.TENANTS
```
"""

from request_relay.core.config.constants import (
    DELIVERY_MODE_PERSISTENT,
    HTTP_METHODS,
    JobState,
    OutcomeStatus,
    RequestStatus,
    Stage,
)
from request_relay.core.config.settings import Settings, get_settings, reload_settings

__all__ = [
    "Settings",
    "get_settings",
    "reload_settings",
    "Stage",
    "RequestStatus",
    "OutcomeStatus",
    "JobState",
    "HTTP_METHODS",
    "DELIVERY_MODE_PERSISTENT",
]

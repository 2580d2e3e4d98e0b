from .logger import (
    bind_request_context,
    clear_request_context,
    get_logger,
    get_request_context,
    log_stage,
    setup_logging,
)

__all__ = [
    "bind_request_context",
    "clear_request_context",
    "get_logger",
    "get_request_context",
    "log_stage",
    "setup_logging",
]

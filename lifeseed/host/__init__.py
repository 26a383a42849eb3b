"""Host interface for lifeseed.

Provides abstractions for host platform operations (environment, time,
logging) so the ledger works across deployment contexts.
"""

from .environment import get_db_path, get_env, resolve_context
from .logs import configure_logging
from .time import now_millis

__all__ = [
    "configure_logging",
    "get_db_path",
    "get_env",
    "now_millis",
    "resolve_context",
]

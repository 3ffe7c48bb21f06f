"""
multitool: building blocks for async services.

Modules:
    config            validated connection & logging settings (pydantic-settings)
    errors            exception hierarchy
    logging_config    one-time process-wide logging setup
    database          PostgreSQL pool (extra: database)
    cache             Redis pool (extra: redis)
    health            liveness probes for open pools

The database and cache modules import their drivers at module level, so
import them directly; this package does not.
"""

__version__ = "0.1.3"

# warden/cli/commands: Command modules for the Warden CLI.
#
# Each module in this package provides one or more CLI commands.

from .circuit import circuit_app
from .orchestrate import orchestrate, unblock, validate
from .retry import retry_app
from .status import status

__all__ = [
    # circuit.py
    "circuit_app",
    # orchestrate.py
    "orchestrate",
    "unblock",
    "validate",
    # retry.py
    "retry_app",
    # status.py
    "status",
]

"""Operation tracking for long-running package manager commands.

The core lives in `registry`, `event_router`, `lifecycle`, `sweeper` and
`concurrency_guard`. `service.OperationCenter` wires them together.
"""

__version__ = "0.1.0"

"""
Container entrypoint that runs a server command, or supervises a worker
command behind an HTTP liveness endpoint.
"""

__version__ = "1.0.0"

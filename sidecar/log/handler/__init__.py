"""
Logging handlers for the worker sidecar.
This module provides logging handlers that ship log records to remote backends.
"""

from .loki import LokiHandler

__all__ = ["LokiHandler"]

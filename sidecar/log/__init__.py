"""
Logging module for the worker sidecar.
This module provides functionality to set up console and Loki logging.
"""

from .setup import setup_logging, resolve_level

__all__ = ["setup_logging", "resolve_level"]

"""
Local package for the worker sidecar.

This package provides the launcher configuration, the launch strategies
and the worker supervisor.
"""

from .config import LauncherSettings

__all__ = ["LauncherSettings"]

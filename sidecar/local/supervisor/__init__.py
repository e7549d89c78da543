"""
The Supervisor package.
Manages the lifecycle of the single worker subprocess.

This package contains the Supervisor class and its helper modules, which
together spawn the worker, serve its health endpoint, and coordinate shutdown.
"""
from .supervisor import Supervisor, SupervisorState

__all__ = ['Supervisor', 'SupervisorState']

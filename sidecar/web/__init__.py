"""
Web package for the worker sidecar.

This package contains the health-check ASGI application and its middleware.
"""

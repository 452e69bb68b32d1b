"""
tests.core_daemon.api_routers

Tests for the FastAPI routers of the core daemon.
"""

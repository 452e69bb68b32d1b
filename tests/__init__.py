"""
tests

Test suite for the rvc2mqtt project.

This package contains unit, integration, and end-to-end tests for all
components of the rvc2mqtt project, including the RV-C codec and the core
daemon.

Subpackages:
    - core_daemon: Tests for the FastAPI backend, CAN handling, MQTT bridge
      and window shade correlator
    - integration: End-to-end and cross-component tests
"""

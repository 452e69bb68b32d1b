"""
tests.core_daemon

Test suite for the core_daemon package of rvc2mqtt.

This package contains unit and integration tests for the components
of the core daemon, including API endpoints, configuration handling,
CAN bus management, MQTT bridging and status correlation.
"""

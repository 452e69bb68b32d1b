"""
tests.integration

Integration test suite for the rvc2mqtt project.

This package contains end-to-end tests that verify multiple components
together: API endpoints, MQTT command handling and CAN frame processing.
"""

import os

# The daemon reads these at import time (core_daemon.main builds its app on import).
# Tests never talk to a real broker or CAN interface.
os.environ.setdefault("ENABLE_MQTT", "0")
os.environ.setdefault("CAN_CHANNELS", "")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from rvc_codec import RVCCodec, load_spec_table  # noqa: E402


@pytest.fixture(scope="session")
def spec_table():
    """The bundled RV-C specification table, loaded once per test session."""
    return load_spec_table()


@pytest.fixture
def codec(spec_table):
    return RVCCodec(spec_table)


@pytest.fixture
def canbus_config():
    """CAN settings for a daemon with a single transmit interface."""
    return {
        "channels": ["can0"],
        "bustype": "virtual",
        "bitrate": 250000,
        "source_address": 0xA0,
        "priority": 6,
    }


@pytest.fixture
def feature_flags():
    return {"mqtt": False, "window_shade_correlator": True, "dimmer_synth": True}


@pytest.fixture
def app_state(spec_table, canbus_config, feature_flags):
    """
    A fresh AppState built on the bundled spec table, with the correlator and
    dimmer synthesis enabled and MQTT disabled.
    """
    from core_daemon.app_state import AppState

    return AppState(spec_table, canbus_config=canbus_config, feature_flags=feature_flags)


@pytest.fixture
def client(app_state, mocker):
    """
    Synchronous TestClient fixture for FastAPI, running the application
    lifespan around `app_state`. CAN listeners are not started.
    """
    from core_daemon.main import create_app

    mocker.patch("core_daemon.main.initialize_can_listeners")
    app = create_app(app_state)
    with TestClient(app=app, base_url="http://test") as c:
        yield c


# --- Global state reset fixtures for test isolation ---


@pytest.fixture(autouse=True)
def reset_can_manager_state():
    """
    Automatically reset global state in can_manager before each test.
    Ensures test isolation for all tests using can_manager.
    """
    import core_daemon.can_manager as can_manager

    can_manager.can_tx_queue = None
    can_manager.buses = {}
    can_manager._writer_task = None
    can_manager._writer_bustype = "socketcan"
    yield
    can_manager.can_tx_queue = None
    can_manager.buses = {}
    can_manager._writer_bustype = "socketcan"


@pytest.fixture(autouse=True)
def reset_feature_registry():
    """Automatically clear the feature registry before and after each test."""
    from core_daemon import feature_manager

    feature_manager.clear_features()
    yield
    feature_manager.clear_features()

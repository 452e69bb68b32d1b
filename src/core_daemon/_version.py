import importlib.metadata

try:
    VERSION = importlib.metadata.version("rvc2mqtt")
except importlib.metadata.PackageNotFoundError:
    # Running from a source checkout without an install.
    VERSION = "0.0.0-dev"

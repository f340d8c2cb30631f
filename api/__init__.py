# api/__init__.py
import importlib
from typing import Any

__all__ = ["auth", "schemas", "server"]


def __getattr__(name: str) -> Any:
    """
    Lazy import submodules on attribute access, e.g. `from api import server`.
    Importing `api.auth` alone should not build the FastAPI app or read config.
    """
    if name in __all__:
        mod = importlib.import_module(f"api.{name}")
        globals()[name] = mod
        return mod
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

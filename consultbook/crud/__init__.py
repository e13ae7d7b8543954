"""CRUD package exports with lazy module loading.

Services import the store modules they need; nothing here pulls in the
whole model graph at package import.
"""

from importlib import import_module

__all__ = ["appointment", "identity", "review"]


def __getattr__(name):
    if name in __all__:
        return import_module(f".{name}", __name__)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

"""
pi-governor CLI Package

A Rich-based CLI for inspecting host pressure, running one-shot storage
maintenance and running the governor in the foreground.
"""

from .main import app
from _version import __version__, get_full_version, get_version_dict

__all__ = ["app", "__version__", "get_full_version", "get_version_dict"]

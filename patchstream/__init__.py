"""
patchstream: turn an incrementally-arriving generation stream into ordered,
policy-checked file mutations, repair truncated files and drive a bounded
constraint auto-fix loop.
"""

from ._version import __version__

__all__ = ["__version__"]

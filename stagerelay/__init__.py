"""Relay live worship-lyrics and stage-presentation content to display clients."""

from .__version__ import __version__

__all__ = ["__version__"]

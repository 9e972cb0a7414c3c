"""Merge differencing virtual disk chains into their base disks."""

from .__version__ import __version__


__all__ = ["__version__"]

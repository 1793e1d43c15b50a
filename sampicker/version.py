"""
Central version management for SAM Picker.
"""

from __future__ import annotations

__all__ = ["__app_name__", "__version__", "__release_date__", "__license__"]

__app_name__ = "SAM Picker"
__version__ = "1.2.0"
__release_date__ = "2026-10-17"
__license__ = "Zlib"

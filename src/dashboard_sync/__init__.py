# SPDX-License-Identifier: MIT
"""Dashboard Sync - Live polling, caching and optimistic notifications for dashboards."""

from importlib.metadata import PackageNotFoundError, version

from .session import DashboardSession


__all__: list[str] = ["DashboardSession", "__version__"]

# Get version from installed package metadata
__version__: str
try:
    __version__ = version("dashboard-sync")
except PackageNotFoundError:
    # Package is not installed, use development fallback
    __version__ = "development"

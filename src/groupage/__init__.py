"""Groupage - Moteur de matching et de consolidation de trajets de déménagement."""

from groupage.config import ConfigError, ConfigFileError, GroupageError
from groupage.io_excel import ExcelFileError
from groupage.providers import DistanceProviderError
from groupage.store import DataStoreError

__all__ = [
    "__version__",
    "GroupageError",
    "ConfigError",
    "ConfigFileError",
    "DataStoreError",
    "DistanceProviderError",
    "ExcelFileError",
]

__version__ = "0.1.0"

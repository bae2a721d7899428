"""
Utils package
"""

from jobpipe.utils.config import Settings, get_settings
from jobpipe.utils.database import Database

__all__ = [
    "Settings",
    "get_settings",
    "Database",
]

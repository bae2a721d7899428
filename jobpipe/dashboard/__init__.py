"""
HTTP trigger and status API
"""

from jobpipe.dashboard.app import create_app

__all__ = ["create_app"]

"""
jobpipe - job listing acquisition and orchestration pipeline
"""

__version__ = "1.0.0"

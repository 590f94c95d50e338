"""
Client package for communicating with the job processing API server.
"""

from .api_client import APIClient, summarize_and_wait

__all__ = ["APIClient", "summarize_and_wait"]

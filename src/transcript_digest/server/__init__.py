"""
Job processing server package.

This package provides a Flask API server with thread-pool backed
asynchronous processing for transcription and summarization jobs.
"""

from .app import build_runner, create_app

__all__ = ["create_app", "build_runner"]

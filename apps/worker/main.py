"""
Celery worker entry point.

This imports the Celery app and tasks from the API module.
Run with: celery -A main worker --loglevel=info
"""
import sys

# Add API directory to path so we can import tasks
sys.path.insert(0, '/api')

from core.logging import setup_logging  # noqa: E402
from tasks import celery_app  # noqa: E402,F401

setup_logging()

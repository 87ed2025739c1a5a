"""
Core app - Shared abstractions and utilities.

This app provides platform-agnostic building blocks used by every other app:
- Domain error taxonomy (exceptions)
- Locked transactions with bounded lock waits (db)
- Rate/Abuse guard (rate_limit)
- Task execution facade (TaskService) with local and Celery backends
"""

"""
Scheduled background tasks.

- **stream_status_scheduler.py**: Polls the stream status and fires the
  online/offline transitions that start and pause the crew.
"""

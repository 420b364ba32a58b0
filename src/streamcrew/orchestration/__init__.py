"""
Response orchestration for Streamcrew.

- **message_classifier.py**: Detects ``@persona`` mentions and greetings.
- **conversation_tracker.py**: Tracks whether the channel conversation is active.
- **response_orchestrator.py**: Decides which personas reply and after how long.
- **bounded_executor.py**: FIFO executor with a concurrency limit.
- **concurrency_governor.py**: Global and per-persona limits for reply tasks.
"""

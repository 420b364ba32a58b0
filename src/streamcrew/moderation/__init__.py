"""
Moderation for Streamcrew.

- **moderation_window.py**: Bounded window of recent chat with a fixed TTL.
- **moderation_queue.py**: Eligible messages awaiting the next review.
- **moderation_evaluator.py**: Periodic review by the moderator persona and
  execution of clamped timeouts, one violation at a time failing independently.
"""

"""
Utility functions and helpers for Streamcrew.

- **logger.py**: Centralized logging configuration with colored console output,
  rotating file handlers, and per-session log files. Suppresses noise from
  verbose libraries (openai, httpx, aiohttp). Uses prompt_toolkit so log lines
  do not break the operator console prompt.
"""

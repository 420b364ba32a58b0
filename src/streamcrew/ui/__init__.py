"""
User interface components for Streamcrew.

- **console.py**: Interactive operator console built on prompt_toolkit, with
  status, chat injection, persona messages, the timeout log and shutdown.
"""

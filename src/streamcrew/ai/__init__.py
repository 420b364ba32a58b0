"""
AI runtime for Streamcrew.

- **persona_runtime.py**: AsyncOpenAI client shared by every persona. Generates
  persona replies with each persona's model and sampling settings, and asks
  the moderator persona for structured violation reports.

- **prompts.py**: System prompts (persona identity rules, moderation rules) and
  transcript building from the recent chat window.

- **violation_parsing.py**: JSON schema for the violation report and
  jsonschema-validated parsing into Violation objects.
"""

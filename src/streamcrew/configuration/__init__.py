"""
Configuration management for Streamcrew.

- **app_configuration.py**: fcntl-locked YAML loader for ``config/app_config.yml``.
  Builds the persona roster and the typed settings objects below.

- **tuning_settings.py**: Orchestrator, moderation, concurrency and stream
  tunables with their production defaults.

- **ai_settings.py**: Completion service endpoint and limits.

- **twitch_settings.py**: Twitch endpoints, ids and per-persona tokens read
  from the environment.
"""

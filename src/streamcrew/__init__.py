"""
Streamcrew - AI Chat Personas for Live-Stream Channels

Streamcrew runs a fleet of language-model personas inside one live-stream
chat. Personas answer mentions and greetings with human-like pacing; one of
them holds moderation authority and times out rule-violating users.

Core Components:

- **Orchestration**: Message classification, conversation tracking, reply
  decisions, and a two-level concurrency governor for persona replies
- **Moderation**: A bounded, time-limited message window, a pending review
  queue, and a periodic evaluator that executes clamped timeouts
- **AI Runtime**: OpenAI-compatible chat completions (OpenRouter) for replies
  and structured violation classification
- **Platform**: Twitch IRC WebSocket transport and Helix moderation client
- **Interactive Console**: Live status, chat injection, persona messages and
  graceful or forced shutdown

Usage:
    from streamcrew.main import main
    main()  # Starts the crew with console interface
"""

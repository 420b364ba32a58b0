"""
Platform integrations for Streamcrew.

- **interfaces.py**: Protocols the core depends on.
- **helix_client.py**: Twitch Helix client (user lookup, timeouts, stream status).
- **irc_transport.py**: Twitch chat over the IRC WebSocket, one connection per persona.
"""

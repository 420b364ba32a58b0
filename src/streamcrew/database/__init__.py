"""
Database package for Streamcrew.

Stores executed timeouts in SQLite through a single long-lived aiosqlite
connection.
"""

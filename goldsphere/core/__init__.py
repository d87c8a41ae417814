"""Core infrastructure: configuration, database, security and errors."""

"""pairguard - pairing and access control for chat-facing agents."""

__version__ = "0.1.0"

"""Chat client for OpenAI-compatible endpoints reached through a secure transport."""

__version__ = "0.1.0"

"""EnvSync client: encrypted sync of .env-style files with the EnvSync service."""

__version__ = "0.3.0"

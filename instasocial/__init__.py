"""instasocial: a local-first social feed for the terminal."""

__version__ = "0.1.0"

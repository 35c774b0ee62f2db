"""callguard: resilient gateway for calls to rate-limited upstream APIs."""

__version__ = "0.1.0"

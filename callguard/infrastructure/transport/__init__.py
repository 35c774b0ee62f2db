"""Network Transport Implementations.

Provides concrete implementations of the Transport interface.
"""

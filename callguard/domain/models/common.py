"""Defines common Value Objects used across the gateway.

These objects represent simple values such as request identifiers,
upstream names and priorities, keeping signatures self-describing.
"""

from typing import Any, Dict, NewType

# === Core Value Objects ===

RequestID = NewType("RequestID", str)          # Identifier of one logical call
UpstreamName = NewType("UpstreamName", str)    # e.g. 'claude', 'monday'
Priority = NewType("Priority", int)            # Lower value is served first
ErrorCode = NewType("ErrorCode", str)          # errno-style transport code, e.g. 'ECONNREFUSED'

# === Wire Context ===
Headers = Dict[str, str]
JsonBody = Dict[str, Any]

# Priorities used when the caller does not supply one
FIRST_ATTEMPT_PRIORITY = Priority(1)
RETRY_PRIORITY = Priority(0)

TRUNCATION_NOTICE = "\n\n[Note: Original message was truncated due to length constraints.]"

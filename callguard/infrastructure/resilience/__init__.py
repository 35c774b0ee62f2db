"""API Resilience Implementations.

Contains services for classifying upstream failures, rate limiting,
circuit breaking, bounded request queueing and retries with jittered
exponential backoff.
Bounded Context: API Resilience
"""

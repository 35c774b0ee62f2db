"""GraphQL Platform Clients.

Contains the client for the GraphQL work-management platform API,
guarded by its own resilience gateway.
"""

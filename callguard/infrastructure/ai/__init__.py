"""AI Model Clients.

Contains the client for the language-model completion service; every
request it builds goes through a resilience gateway.
"""

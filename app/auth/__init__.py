"""Broker accounts: password hashing, session tokens and the auth guard."""

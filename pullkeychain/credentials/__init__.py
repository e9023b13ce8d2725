"""Credential documents, lookup indexes and the keychain built on them."""

"""JSON Schemas for the credential documents."""

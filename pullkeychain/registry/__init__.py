"""Registry references and authenticators."""

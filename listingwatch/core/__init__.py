"""Configuration, auth and error types."""

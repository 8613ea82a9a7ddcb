"""Configuration, logging and time utilities."""

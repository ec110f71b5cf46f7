"""Configuration, logging and tracing."""

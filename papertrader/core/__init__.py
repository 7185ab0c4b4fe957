"""Core utilities: configuration, logging, exceptions, security."""

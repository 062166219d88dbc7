"""Core module - Configuration, logging, exceptions and amount types."""

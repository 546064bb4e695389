"""Core primitives: errors, logging, configuration, records."""

"""Concrete layers and the registry that builds them from config."""

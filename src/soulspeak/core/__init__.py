"""Configuration, error taxonomy and notices."""

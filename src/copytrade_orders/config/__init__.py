"""Configuration loading for the order-history service."""

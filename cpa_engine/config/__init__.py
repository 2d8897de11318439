"""Configuration package: settings, constants and database wiring."""

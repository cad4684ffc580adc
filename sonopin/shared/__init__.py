"""Shared models, constants, errors and configuration."""

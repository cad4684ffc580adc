#!/usr/bin/env python3
"""
Entry point for the sonopin CLI.

Run with: python -m sonopin
"""

from .cli import cli

if __name__ == '__main__':
    cli()

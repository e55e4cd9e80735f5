"""Image input helpers for API adapters.

Validates image references submitted to `POST /generate` and encodes local
files as data URLs for the CLI.
"""

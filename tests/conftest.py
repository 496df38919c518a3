"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
It sets the TESTING environment variable so no .env file is loaded, and pins
settings that would otherwise depend on the host.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["TESTING"] = "true"

os.environ.setdefault("IOLIMIT_ENABLED", "true")
os.environ.setdefault("IOLIMIT_DIRTY_SHARDS", "4")
os.environ.setdefault("LOG_LEVEL", "DEBUG")

"""Minimal conftest for unit tests - no database."""

import os

# Set required env vars before any budgetly imports
os.environ.setdefault("POSTGRES_USER", "test")
os.environ.setdefault("POSTGRES_PASSWORD", "test")

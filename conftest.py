"""Global pytest configuration."""

import os

# Set settings for tests before any imports
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("EMBEDDING_DIMENSIONS", "64")
os.environ.pop("OPENAI_API_KEY", None)

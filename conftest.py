import os

# Default to SQLite and a local Redis URL for tests; nothing connects to Redis
# unless a test wires a fake in.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test_gharse.db")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/0")

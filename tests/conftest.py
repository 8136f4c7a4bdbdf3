import os
import tempfile

# Settings are read at import time; pin a local, infra-free environment first.
_tmp = tempfile.mkdtemp(prefix="pickup-svc-tests-")
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{_tmp}/default.db")
os.environ.setdefault("USE_MOCK_MODE", "true")
os.environ.setdefault("USE_NATS_NOTIFICATIONS", "false")
os.environ.setdefault("RL_ENABLED", "false")
os.environ.setdefault("REPLAY_GUARD_ENABLED", "false")
os.environ.setdefault("METRICS_ENABLED", "false")
os.environ.setdefault("LOG_LEVEL", "WARNING")

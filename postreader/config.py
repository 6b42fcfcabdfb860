"""
Application configuration and paths.

Every setting can be overridden with a POSTREADER_* environment variable.
"""
import os
from pathlib import Path


def _env(name: str, default):
    """Read POSTREADER_<name> from the environment, coerced to the default's type."""
    raw = os.environ.get(f'POSTREADER_{name}')
    if raw is None:
        return default
    if isinstance(default, bool):
        return raw.strip().lower() in ('1', 'true', 'yes', 'on')
    if isinstance(default, int):
        return int(raw)
    if isinstance(default, float):
        return float(raw)
    if isinstance(default, Path):
        return Path(raw).expanduser()
    return raw


# Application identity
APP_NAME = 'PostReader'
APP_VERSION = '0.1.0'

# Server configuration
SERVER_HOST = _env('HOST', '127.0.0.1')
SERVER_PORT = _env('PORT', 5111)
LOG_LEVEL = _env('LOG_LEVEL', 'info')

# Data directory (database, audio artifacts, voice prompts)
DATA_DIR = _env('DATA_DIR', Path.home() / '.postreader')

# Database configuration
DATABASE_PATH = DATA_DIR / 'postreader.db'
DATABASE_URL = _env('DATABASE_URL', f'sqlite+aiosqlite:///{DATABASE_PATH}')

# Audio artifact storage
AUDIO_DIR = _env('AUDIO_DIR', DATA_DIR / 'audio')
ARTIFACT_BASE_URL = _env('ARTIFACT_BASE_URL', '/artifacts')

# Voice prompts storage (user-managed voice library)
VOICES_DIR = _env('VOICES_DIR', DATA_DIR / 'voices')
DEFAULT_VOICE = 'default'

# Model configuration
MODEL_DEVICE = _env('MODEL_DEVICE', 'cpu')

# Clear GPU cache after each generation (reduces peak memory, slight overhead)
MODEL_AGGRESSIVE_MEMORY = _env('MODEL_AGGRESSIVE_MEMORY', True)

# Submission limits
MAX_TEXT_LENGTH = _env('MAX_TEXT_LENGTH', 100_000)

# Synthesis worker
CONVERSION_TIMEOUT = _env('CONVERSION_TIMEOUT', 300.0)
WORKER_CONSUMERS = _env('WORKER_CONSUMERS', 2)

# Event bus delivery
BUS_MAX_ATTEMPTS = _env('BUS_MAX_ATTEMPTS', 5)
BUS_REDELIVERY_DELAY = _env('BUS_REDELIVERY_DELAY', 1.0)

# Reconciliation sweep
RECONCILE_INTERVAL = _env('RECONCILE_INTERVAL', 60.0)
STALE_AFTER = _env('STALE_AFTER', CONVERSION_TIMEOUT + 60.0)
MAX_JOB_ATTEMPTS = _env('MAX_JOB_ATTEMPTS', 3)


def ensure_directories():
    """Create required directories if they don't exist."""
    DATA_DIR.mkdir(parents=True, exist_ok=True)
    AUDIO_DIR.mkdir(parents=True, exist_ok=True)
    VOICES_DIR.mkdir(parents=True, exist_ok=True)

"""
Configuration for the content risk analysis backend.
"""

import os
from pathlib import Path

# Base directory
BASE_DIR = Path(__file__).parent.absolute()

# =====================================================
# Database configuration
# =====================================================

DATABASE_URL = os.getenv("DATABASE_URL")

if DATABASE_URL:
    # Production (PostgreSQL, etc.)
    SQLALCHEMY_DATABASE_URI = DATABASE_URL
else:
    # Development fallback (SQLite)
    DATABASE_PATH = os.getenv(
        "DATABASE_PATH",
        str(BASE_DIR / "dev.db")
    )
    SQLALCHEMY_DATABASE_URI = f"sqlite:///{DATABASE_PATH}"

SQLALCHEMY_TRACK_MODIFICATIONS = False

# API Keys
GOOGLE_API_KEY = os.getenv('GOOGLE_API_KEY', '')
ANTHROPIC_API_KEY = os.getenv('ANTHROPIC_API_KEY', '')

# Flask
SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
CORS_ORIGINS = [o.strip() for o in os.getenv('CORS_ORIGINS', 'http://localhost:3000,http://127.0.0.1:3000').split(',') if o.strip()]


# =====================================================
# AI Model Configuration
# =====================================================

# Provider chain: primary Gemini -> fallback Gemini -> Claude (text only)
GEMINI_MODEL = os.getenv('GEMINI_MODEL', 'gemini-2.0-flash')
GEMINI_FALLBACK_MODEL = os.getenv('GEMINI_FALLBACK_MODEL', 'gemini-1.5-pro')
CLAUDE_MODEL = os.getenv('CLAUDE_MODEL', 'claude-3-haiku-20240307')

# API configuration
GEMINI_TEMPERATURE = float(os.getenv('GEMINI_TEMPERATURE', '0.0'))
GEMINI_MAX_TOKENS = int(os.getenv('GEMINI_MAX_TOKENS', '8192'))


# =====================================================
# Rate limiting (per provider, per process)
# =====================================================

RATE_LIMIT_MAX_REQUESTS = int(os.getenv('RATE_LIMIT_MAX_REQUESTS', '80'))
RATE_LIMIT_WINDOW_SECONDS = float(os.getenv('RATE_LIMIT_WINDOW_SECONDS', '60'))
TOKEN_LIMIT_PER_MINUTE = int(os.getenv('TOKEN_LIMIT_PER_MINUTE', '250000'))
TOKEN_WARNING_THRESHOLD = float(os.getenv('TOKEN_WARNING_THRESHOLD', '0.8'))


# =====================================================
# Queue
# =====================================================

# 'threading' (in-process timers) or 'celery' (Redis broker)
QUEUE_MODE = os.getenv('QUEUE_MODE', 'threading')
QUEUE_AUTOSTART = os.getenv('QUEUE_AUTOSTART', 'true').lower() == 'true'
REDIS_URL = os.getenv('REDIS_URL', 'redis://localhost:6379/0')

JOB_TIMEOUT_SECONDS = int(os.getenv('JOB_TIMEOUT_SECONDS', '300'))  # 5 minutes
CHAIN_DELAY_SECONDS = float(os.getenv('CHAIN_DELAY_SECONDS', '2'))

# Optional webhook called after each completed job
NOTIFY_COMPLETION_URL = os.getenv('NOTIFY_COMPLETION_URL') or None

"""Constantes compartilhadas pelo SDK."""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

VERSION = "3.0.0"

ENV_CONFIG_FILE = os.getenv("NFE_ENV_FILE", str(Path.cwd() / ".env"))

# Em producao, prefira variaveis do ambiente ao arquivo .env.
USE_DOTENV = os.getenv("USE_DOTENV", "true").strip().lower() in {"1", "true", "yes", "y", "on"}
if USE_DOTENV:
    load_dotenv(ENV_CONFIG_FILE, override=False)

LOGS_DIR = os.getenv("NFE_LOG_DIR", "")
LOG_LEVEL = os.getenv("NFE_LOG_LEVEL", "WARNING")

# =============================================================================
# API
# =============================================================================
# Producao e desenvolvimento usam o mesmo endpoint; a chave define o ambiente.
DEFAULT_BASE_URL = "https://api.nfe.io/v1"
ENVIRONMENTS = frozenset(["production", "development"])
DEFAULT_ENVIRONMENT = "production"

# =============================================================================
# TIMEOUTS E RETRIES
# =============================================================================
DEFAULT_HTTP_TIMEOUT_SEC = 30.0
HTTP_MAX_RETRIES = 3
HTTP_RETRY_BASE_DELAY_SEC = 1.0
HTTP_RETRY_MAX_DELAY_SEC = 30.0
HTTP_RETRY_BACKOFF_MULTIPLIER = 2.0
HTTP_RETRY_JITTER_RATIO = 0.1

# =============================================================================
# POLLING
# =============================================================================
POLLING_TIMEOUT_SEC = 120.0
POLLING_INITIAL_DELAY_SEC = 1.0
POLLING_MAX_DELAY_SEC = 10.0
POLLING_BACKOFF_FACTOR = 1.5
POLLING_MAX_ATTEMPTS = 30

BATCH_MAX_CONCURRENT = 5

# =============================================================================
# FLOW STATUS NFS-e
# =============================================================================
FLOW_STATUS_COMPLETED = frozenset(["Issued"])

FLOW_STATUS_FAILED = frozenset(
    [
        "IssueFailed",
        "CancelFailed",
    ]
)

FLOW_STATUS_TERMINAL = frozenset(
    [
        "Issued",
        "IssueFailed",
        "Cancelled",
        "CancelFailed",
    ]
)

# Status genericos usados por poll_until_complete para recursos sem flowStatus.
GENERIC_STATUS_COMPLETED = frozenset(["completed", "issued"])
GENERIC_STATUS_FAILED = frozenset(["failed", "error"])

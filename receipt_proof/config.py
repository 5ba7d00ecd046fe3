# config.py
import logging
import os
from dataclasses import dataclass
from typing import List, Optional

from dotenv import load_dotenv

from .errors import ConfigError
from .utils_eth import RPC_URL_ENV, parse_urls

LOG_LEVEL_ENV = "RECEIPT_PROOF_LOG_LEVEL"
TIMEOUT_ENV = "RECEIPT_PROOF_TIMEOUT"
RETRIES_ENV = "RECEIPT_PROOF_RETRIES"
DIAGNOSTICS_LOGGER = "receipt_proof.diagnostics"

DEFAULT_TIMEOUT = 30.0
DEFAULT_RETRIES = 3


@dataclass(frozen=True)
class Settings:
    rpc_urls: List[str]
    timeout: float = DEFAULT_TIMEOUT
    retries: int = DEFAULT_RETRIES
    log_level: str = "INFO"


def _env_number(name: str, convert, default):
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return convert(raw)
    except ValueError:
        raise ConfigError(f"{name}={raw!r} is not a valid {convert.__name__}", value=raw)


def load_settings(rpc_url: Optional[str] = None, timeout: Optional[float] = None,
                  retries: Optional[int] = None, log_level: Optional[str] = None,
                  dotenv_path: Optional[str] = None) -> Settings:
    """Flags win over the environment; ``.env`` only fills unset variables."""
    load_dotenv(dotenv_path=dotenv_path)
    urls = parse_urls(rpc_url) or parse_urls(os.getenv(RPC_URL_ENV, ""))
    if not urls:
        raise ConfigError(f"RPC URL must be provided via --rpc-url or {RPC_URL_ENV} env var")
    if timeout is None:
        timeout = _env_number(TIMEOUT_ENV, float, DEFAULT_TIMEOUT)
    if retries is None:
        retries = _env_number(RETRIES_ENV, int, DEFAULT_RETRIES)
    if timeout <= 0:
        raise ConfigError(f"timeout must be positive, got {timeout}", value=timeout)
    if retries < 1:
        raise ConfigError(f"retries must be >= 1, got {retries}", value=retries)
    level = (log_level or os.getenv(LOG_LEVEL_ENV, "INFO")).upper()
    if not isinstance(logging.getLevelName(level), int):
        raise ConfigError(f"unknown log level {level!r}", value=level)
    return Settings(rpc_urls=urls, timeout=timeout, retries=retries, log_level=level)


def setup_diagnostics(level: str = "INFO") -> logging.Logger:
    """Configure process logging once and return the diagnostics logger."""
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return logging.getLogger(DIAGNOSTICS_LOGGER)

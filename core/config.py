"""Environment-driven configuration.

Reads from environment variables, loading ``.env`` at the repository root
first if it exists:

- SAGE_SERVER_PATH: Sage 100 MAS90 home (e.g. "\\\\server\\Sage\\MAS90\\Home")
- SAGE_USERNAME / SAGE_PASSWORD: BOI user credentials
- SAGE_COMPANY: Company code (e.g. "ABC")
- SAGE_MODULE: Module context for new sessions (default "S/O")
- SAGE_POOL_SIZE: Number of pooled sessions (default 1)
- SAGE_ACQUIRE_TIMEOUT_SECONDS: Wait for a free session (default 30)
- SAGE_DRIVER: "com" (pywin32, Windows only) or "memory" (default "com")
- SAGE_DEFAULT_DIVISION: AR division used when a customer number has none (default "00")
- SAGE_*_LIMIT / SAGE_SHIPTO_MAX / SAGE_SHORTLIST_SIZE: record scan caps
- API_KEY, API_PORT, LOG_LEVEL, LOG_JSON, HEALTH_CHECK_INTERVAL_SECONDS
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv

REPO_ROOT = Path(__file__).resolve().parents[1]


def load_env_file(env_path: Optional[Path] = None) -> None:
    """Load .env into the process environment without overriding real env vars."""
    env_path = env_path or REPO_ROOT / ".env"
    if env_path.exists():
        load_dotenv(env_path)


def _get_int(env: Mapping[str, str], name: str, default: int, minimum: int = 0) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got {value}")
    return value


def _get_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")
    if value < 0:
        raise ValueError(f"{name} must be >= 0, got {value}")
    return value


def _get_bool(env: Mapping[str, str], name: str, default: bool = False) -> bool:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class ScanLimits:
    """Caps for the unindexed record scans against Sage 100."""
    customer_scan: int = 500            # AR_Customer_svc records scanned per name search
    search_result_limit: int = 20       # Name matches kept from that scan
    shortlist_size: int = 5             # Candidates whose details are fetched
    detail_scan: int = 1000             # Records scanned to find one customer
    ship_to_scan: int = 1000            # SO_ShipToAddress_svc records scanned
    ship_to_max: int = 30               # Ship-tos collected per customer

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "ScanLimits":
        env = os.environ if env is None else env
        return cls(
            customer_scan=_get_int(env, "SAGE_CUSTOMER_SCAN_LIMIT", 500, minimum=1),
            search_result_limit=_get_int(env, "SAGE_SEARCH_RESULT_LIMIT", 20, minimum=1),
            shortlist_size=_get_int(env, "SAGE_SHORTLIST_SIZE", 5, minimum=1),
            detail_scan=_get_int(env, "SAGE_DETAIL_SCAN_LIMIT", 1000, minimum=1),
            ship_to_scan=_get_int(env, "SAGE_SHIPTO_SCAN_LIMIT", 1000, minimum=1),
            ship_to_max=_get_int(env, "SAGE_SHIPTO_MAX", 30, minimum=1),
        )


@dataclass
class SageConfig:
    """Connection and pool settings for Sage 100."""
    server_path: str = ""
    username: str = ""
    password: str = ""
    company: str = ""
    module: str = "S/O"
    pool_size: int = 1
    acquire_timeout_seconds: float = 30.0
    driver: str = "com"
    default_division: str = "00"
    limits: ScanLimits = field(default_factory=ScanLimits)

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "SageConfig":
        env = os.environ if env is None else env
        return cls(
            server_path=env.get("SAGE_SERVER_PATH", ""),
            username=env.get("SAGE_USERNAME", ""),
            password=env.get("SAGE_PASSWORD", ""),
            company=env.get("SAGE_COMPANY", ""),
            module=env.get("SAGE_MODULE", "S/O"),
            pool_size=_get_int(env, "SAGE_POOL_SIZE", 1, minimum=1),
            acquire_timeout_seconds=_get_float(env, "SAGE_ACQUIRE_TIMEOUT_SECONDS", 30.0),
            driver=env.get("SAGE_DRIVER", "com").strip().lower() or "com",
            default_division=env.get("SAGE_DEFAULT_DIVISION", "00"),
            limits=ScanLimits.from_env(env),
        )

    def missing_credentials(self) -> list:
        """Names of required settings that are empty (COM driver only)."""
        required = {
            "SAGE_SERVER_PATH": self.server_path,
            "SAGE_USERNAME": self.username,
            "SAGE_PASSWORD": self.password,
            "SAGE_COMPANY": self.company,
        }
        return [name for name, value in required.items() if not value]


@dataclass
class ApiConfig:
    """HTTP server settings."""
    api_key: str = ""
    port: int = 3000
    log_level: str = "INFO"
    log_json: bool = False
    health_check_interval_seconds: float = 300.0
    health_check_initial_delay_seconds: float = 30.0

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "ApiConfig":
        env = os.environ if env is None else env
        return cls(
            api_key=env.get("API_KEY", ""),
            port=_get_int(env, "API_PORT", 3000, minimum=1),
            log_level=env.get("LOG_LEVEL", "INFO").upper(),
            log_json=_get_bool(env, "LOG_JSON"),
            health_check_interval_seconds=_get_float(env, "HEALTH_CHECK_INTERVAL_SECONDS", 300.0),
        )


def load_config():
    """Load .env and return (SageConfig, ApiConfig)."""
    load_env_file()
    return SageConfig.from_env(), ApiConfig.from_env()

"""
# Configuration Management Module

This module provides the **configuration system** for the Pastry Publishing governance core.
Built on **Pydantic Settings**, it loads values from the environment or a config file,
validates them at import time and exposes a single global `settings` instance.

## Configuration Loading Hierarchy

```
┌─────────────────────────────────────────────────────────────┐
│         Configuration Loading Hierarchy                     │
│  (Higher layers override lower layers)                      │
├─────────────────────────────────────────────────────────────┤
│  1. Environment Variables (HIGHEST PRIORITY)                │
├─────────────────────────────────────────────────────────────┤
│  2. PASTRY_PUBLISHING_CONFIG_PATH                           │
│     - Custom config file path from env var                  │
├─────────────────────────────────────────────────────────────┤
│  3. .pastry File (Project Root)                             │
├─────────────────────────────────────────────────────────────┤
│  4. .env File (Project Root)                                │
├─────────────────────────────────────────────────────────────┤
│  5. Default Values (LOWEST PRIORITY)                        │
└─────────────────────────────────────────────────────────────┘
```

If no configuration file is found, the application falls back to **environment-only mode**.

## Configuration Groups

| Group | Purpose |
|-------|---------|
| **Database (MongoDB)** | Connection URL, database name, driver timeouts |
| **Storage** | Per-operation deadline propagated to every storage call |
| **Analytics** | Bounce thresholds and aggregation windows |
| **Interactions** | Custom (non-exclusive) interaction types |
| **Comments** | Sanitized comment length limit |
| **Enrichment** | External geolocation/device service endpoint |
| **Logging** | Log level for `get_logger` loggers |

## Usage Example

```python
from pastry_publishing.config import settings

timeout = settings.STORAGE_OPERATION_TIMEOUT_SECONDS
if settings.ENRICHMENT_URL:
    ...
```

## Module Attributes

Attributes:
    CONFIG_PATH (Optional[str]): Path of the config file that was loaded, if any.
    settings (Settings): Global settings instance.
"""

import os
from pathlib import Path
from typing import Any, List, Optional

from dotenv import load_dotenv
from pydantic import SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# --- Constants ---
PASTRY_FILENAME: str = ".pastry"
DEFAULT_ENV_FILENAME: str = ".env"
CONFIG_ENV_VAR: str = "PASTRY_PUBLISHING_CONFIG_PATH"
PROJECT_ROOT: Path = Path(__file__).resolve().parent.parent.parent


# --- Config file discovery (no logging) ---
def get_config_path() -> Optional[str]:
    """
    Determines the configuration file path based on a predefined precedence order.

    This function checks for the existence of configuration files in the following order:
    1.  **Environment Variable**: `PASTRY_PUBLISHING_CONFIG_PATH` (if set and file exists).
    2.  **Pastry Config**: `.pastry` file in the project root directory.
    3.  **Dotenv Config**: `.env` file in the project root directory.
    4.  **Fallback**: Returns `None` if no file is found, triggering environment-variable-only mode.

    Returns:
        Optional[str]: The absolute path to the configuration file, or `None` if not found.
    """
    env_path: Optional[str] = os.environ.get(CONFIG_ENV_VAR)
    if env_path and os.path.exists(env_path):
        return env_path
    pastry_path: Path = PROJECT_ROOT / PASTRY_FILENAME
    if pastry_path.exists():
        return str(pastry_path)
    env_path_file: Path = PROJECT_ROOT / DEFAULT_ENV_FILENAME
    if env_path_file.exists():
        return str(env_path_file)
    return None


CONFIG_PATH: Optional[str] = get_config_path()
if CONFIG_PATH:
    load_dotenv(dotenv_path=CONFIG_PATH, override=True)


class Settings(BaseSettings):
    """
    Application configuration settings model.

    **Configuration Groups:**
    *   **Database**: MongoDB connection details.
    *   **Storage**: Deadline applied to each storage operation.
    *   **Analytics**: Bounce classification thresholds and aggregation windows.
    *   **Interactions / Comments**: Domain limits.
    *   **Enrichment**: Optional external enrichment service.

    **Validation:**
    The class includes validators that reject an empty MongoDB URL and keep timeouts and
    thresholds within sane ranges.
    """

    model_config = SettingsConfigDict(
        env_file=CONFIG_PATH if CONFIG_PATH else None,
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="allow",
    )

    # MongoDB configuration
    MONGODB_URL: str = "mongodb://localhost:27017"
    MONGODB_DATABASE: str = "pastry_publishing"
    MONGODB_CONNECTION_TIMEOUT: int = 10000
    MONGODB_SERVER_SELECTION_TIMEOUT: int = 5000
    MONGODB_MAX_POOL_SIZE: int = 50
    MONGODB_MIN_POOL_SIZE: int = 5

    # Authentication (optional)
    MONGODB_USERNAME: Optional[str] = None
    MONGODB_PASSWORD: Optional[SecretStr] = None

    # Storage deadline (seconds) applied to every storage call
    STORAGE_OPERATION_TIMEOUT_SECONDS: float = 5.0

    # Analytics configuration
    BOUNCE_TIME_THRESHOLD_SECONDS: int = 15
    BOUNCE_SCROLL_THRESHOLD_PERCENT: int = 25
    ANALYTICS_DEFAULT_WINDOW_DAYS: int = 30
    ANALYTICS_MAX_WINDOW_DAYS: int = 365
    ANALYTICS_TOP_COUNTRIES_LIMIT: int = 10

    # Interaction configuration
    INTERACTION_CUSTOM_TYPES: List[str] = []

    # Comment configuration
    COMMENT_MAX_LENGTH: int = 1000
    COMMENT_NAME_MAX_LENGTH: int = 100

    # Enrichment service (geolocation + device); unset means neutral values
    ENRICHMENT_URL: Optional[str] = None
    ENRICHMENT_TIMEOUT_SECONDS: float = 2.0
    ENRICHMENT_API_KEY: Optional[SecretStr] = None

    # Logging
    LOG_LEVEL: str = "INFO"

    @field_validator("MONGODB_URL", mode="before")
    @classmethod
    def no_empty_urls(cls, v: Any, info: Any) -> Any:
        """
        Validates that the MongoDB URL is not empty.

        Raises:
            ValueError: If the URL is empty or whitespace.
        """
        if not v or not str(v).strip():
            raise ValueError(f"{info.field_name} must be set via environment or .pastry and not empty!")
        return v

    @field_validator("STORAGE_OPERATION_TIMEOUT_SECONDS", "ENRICHMENT_TIMEOUT_SECONDS", mode="before")
    @classmethod
    def validate_timeout_values(cls, v: Any, info: Any) -> float:
        """
        Validates that timeout values are within a reasonable range (0-300 seconds, exclusive of 0).

        Raises:
            ValueError: If the timeout is out of range.
        """
        timeout = float(v)
        if timeout <= 0 or timeout > 300:
            raise ValueError(f"{info.field_name} must be greater than 0 and at most 300 seconds")
        return timeout

    @field_validator(
        "BOUNCE_TIME_THRESHOLD_SECONDS",
        "ANALYTICS_DEFAULT_WINDOW_DAYS",
        "ANALYTICS_MAX_WINDOW_DAYS",
        "ANALYTICS_TOP_COUNTRIES_LIMIT",
        "COMMENT_MAX_LENGTH",
        mode="before",
    )
    @classmethod
    def validate_positive_integers(cls, v: Any, info: Any) -> int:
        """
        Validates that numeric settings are positive integers.

        Raises:
            ValueError: If the value is not a positive integer.
        """
        value = int(v)
        if value <= 0:
            raise ValueError(f"{info.field_name} must be a positive integer")
        return value

    @field_validator("BOUNCE_SCROLL_THRESHOLD_PERCENT", mode="before")
    @classmethod
    def validate_percentage(cls, v: Any, info: Any) -> int:
        value = int(v)
        if value < 0 or value > 100:
            raise ValueError(f"{info.field_name} must be between 0 and 100")
        return value

    @property
    def enrichment_enabled(self) -> bool:
        """Whether an external enrichment service is configured."""
        return bool(self.ENRICHMENT_URL and self.ENRICHMENT_URL.strip())


# Global settings instance
settings: Settings = Settings()

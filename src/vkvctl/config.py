"""vkvctl 설정 관리.

Configuration priority (highest to lowest):
1. Constructor arguments
2. Environment variables (VKVCTL_*)
3. .env file
4. Standard Vault variables (VAULT_ADDR, VAULT_TOKEN, ...)
5. User config (~/.config/vkvctl/config)
6. System config (/etc/vkvctl/config)
"""

import os
from pathlib import Path
from typing import Any, Optional, Tuple, Type

from pydantic import Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

# VAULT_* name -> settings field
VAULT_VARIABLES = {
    "VAULT_ADDR": "vault_addr",
    "VAULT_TOKEN": "vault_token",
    "VAULT_NAMESPACE": "vault_namespace",
    "VAULT_SKIP_VERIFY": "vault_skip_verify",
}


def _load_config_file(filepath: Path) -> dict[str, str]:
    """Load key=value config file / key=value 설정 파일 로드."""
    config: dict[str, str] = {}

    if not filepath.exists():
        return config

    try:
        content = filepath.read_text()
    except PermissionError:
        return config

    for line in content.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        if "=" not in line:
            continue

        key, value = line.split("=", 1)
        config[key.strip()] = value.strip().strip('"').strip("'")

    return config


def _get_user_config_path() -> Path:
    """Get user config path / 사용자 설정 파일 경로."""
    config_home = os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config")
    return Path(config_home) / "vkvctl" / "config"


def _get_system_config_path() -> Path:
    """Get system config path / 시스템 설정 파일 경로."""
    return Path("/etc/vkvctl/config")


def _load_all_configs() -> dict[str, str]:
    """Load config files and VAULT_* variables.

    Priority: VAULT_* environment > user config > system config
    """
    sources = [
        _load_config_file(_get_system_config_path()),
        _load_config_file(_get_user_config_path()),
        os.environ,
    ]

    result = {}
    for source in sources:
        for key, value in source.items():
            if key in VAULT_VARIABLES:
                result[VAULT_VARIABLES[key]] = value
    return result


class ConfigFileSource(PydanticBaseSettingsSource):
    """Settings source for config files and standard Vault variables."""

    def get_field_value(self, field: Any, field_name: str) -> Tuple[Any, str, bool]:
        config = _load_all_configs()
        if field_name in config:
            return config[field_name], field_name, False
        return None, field_name, False

    def __call__(self) -> dict[str, Any]:
        return _load_all_configs()


class Settings(BaseSettings):
    """애플리케이션 설정."""

    model_config = SettingsConfigDict(
        env_prefix="VKVCTL_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    vault_addr: str = Field(
        default="http://127.0.0.1:8200",
        description="Vault server address",
    )
    vault_token: Optional[str] = Field(
        default=None,
        description="Vault token",
    )
    vault_namespace: Optional[str] = Field(
        default=None,
        description="Vault namespace (Enterprise)",
    )
    vault_skip_verify: bool = Field(
        default=False,
        description="Skip TLS certificate verification",
    )
    timeout: float = Field(
        default=30.0,
        gt=0,
        description="HTTP timeout in seconds",
    )
    max_value_length: int = Field(
        default=12,
        ge=-1,
        description="Mask length for secret values, -1 to disable",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            ConfigFileSource(settings_cls),
            file_secret_settings,
        )


# 전역 설정 인스턴스
settings = Settings()

"""
Configuration loading, validation, and parsing.

Configuration comes from an optional YAML file. Mail settings that the
file leaves unset fall back to environment variables, which may be
provided through a ``.env`` file in the working directory.
"""

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv

from .logger import get_logger


class ConfigurationError(Exception):
    """Raised when configuration is invalid or missing."""
    pass


DEFAULT_WEB_SERVICES = ["nginx", "httpd", "apache2"]
DEFAULT_COMMAND_TIMEOUT = 300

VALID_PROVIDERS = ["smtp", "sendgrid"]
VALID_ENCRYPTIONS = ["ssl", "tls", "none"]

# Mail field -> environment variable consulted when the YAML leaves it unset
MAIL_ENV_FALLBACKS = {
    "host": "MAIL_HOST",
    "port": "MAIL_PORT",
    "username": "MAIL_USERNAME",
    "password": "MAIL_PASSWORD",
    "encryption": "MAIL_ENCRYPTION",
    "from_name": "MAIL_FROM_NAME",
    "to_address": "SMTP_TO_ADDRESS",
    "from_address": "SMTP_FROM_ADDRESS",
}


@dataclass
class Settings:
    """Renewal run settings."""
    command_timeout: int = DEFAULT_COMMAND_TIMEOUT
    dry_run: bool = False
    certbot_path: str = "certbot"
    web_services: List[str] = field(default_factory=lambda: list(DEFAULT_WEB_SERVICES))


@dataclass
class MailConfig:
    """Report delivery settings."""
    provider: str = "smtp"
    host: str = ""
    port: int = 465
    username: str = ""
    password: str = ""
    encryption: str = "ssl"
    from_name: str = "Email Service"
    to_address: str = ""
    from_address: str = ""


@dataclass
class ReportConfig:
    """HTML report settings."""
    template_path: Optional[str] = None
    escape_html: bool = False


@dataclass
class Config:
    """Root configuration object."""
    settings: Settings = field(default_factory=Settings)
    mail: MailConfig = field(default_factory=MailConfig)
    report: ReportConfig = field(default_factory=ReportConfig)


ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")
UNEXPANDED_PATTERN = re.compile(r"\$\{[^}]+\}")


def _expand_env_vars(value: Any) -> Any:
    """
    Expand ``${VAR_NAME}`` references in string values.

    Unknown variables are left untouched.

    Args:
        value: Value to expand (string, dict, or list)

    Returns:
        Value with environment variables expanded
    """
    if isinstance(value, str):
        def replace(match):
            return os.environ.get(match.group(1), match.group(0))

        return ENV_VAR_PATTERN.sub(replace, value)

    elif isinstance(value, dict):
        return {k: _expand_env_vars(v) for k, v in value.items()}

    elif isinstance(value, list):
        return [_expand_env_vars(item) for item in value]

    return value


def _parse_settings(data: Dict[str, Any]) -> Settings:
    """
    Parse the ``settings`` section.

    Args:
        data: Raw settings data from YAML

    Returns:
        Settings instance
    """
    web_services = data.get("web_services", DEFAULT_WEB_SERVICES)
    if isinstance(web_services, str):
        web_services = [s.strip() for s in web_services.split(",") if s.strip()]

    try:
        command_timeout = int(data.get("command_timeout", DEFAULT_COMMAND_TIMEOUT))
    except (TypeError, ValueError):
        raise ConfigurationError(
            f"command_timeout must be an integer, got {data.get('command_timeout')!r}"
        )

    settings = Settings(
        command_timeout=command_timeout,
        dry_run=bool(data.get("dry_run", False)),
        certbot_path=data.get("certbot_path", "certbot"),
        web_services=list(web_services),
    )

    if settings.command_timeout < 1:
        raise ConfigurationError("command_timeout must be at least 1 second")
    if not settings.web_services:
        raise ConfigurationError("web_services must list at least one service name")
    if not settings.certbot_path:
        raise ConfigurationError("certbot_path must not be empty")

    return settings


def _parse_mail(data: Dict[str, Any]) -> MailConfig:
    """
    Parse the ``mail`` section, filling unset fields from the environment.

    Args:
        data: Raw mail data from YAML

    Returns:
        MailConfig instance
    """
    values = {}
    for key, env_var in MAIL_ENV_FALLBACKS.items():
        value = data.get(key)
        # An unexpanded ${VAR} means the variable is unset
        if isinstance(value, str) and UNEXPANDED_PATTERN.fullmatch(value.strip()):
            value = None
        if value in (None, ""):
            value = os.environ.get(env_var)
        if value not in (None, ""):
            values[key] = value

    provider = str(data.get("provider", "smtp")).lower()
    encryption = str(values.pop("encryption", "ssl")).lower()

    port = values.pop("port", None)
    if port is None:
        port = 465 if encryption == "ssl" else 587
    try:
        port = int(port)
    except (TypeError, ValueError):
        raise ConfigurationError(f"Mail port must be an integer, got {port!r}")

    mail = MailConfig(provider=provider, encryption=encryption, port=port, **values)

    if mail.provider not in VALID_PROVIDERS:
        raise ConfigurationError(
            f"Invalid mail provider '{mail.provider}'. Must be one of: {', '.join(VALID_PROVIDERS)}"
        )
    if mail.encryption not in VALID_ENCRYPTIONS:
        raise ConfigurationError(
            f"Invalid mail encryption '{mail.encryption}'. Must be one of: {', '.join(VALID_ENCRYPTIONS)}"
        )

    return mail


def _parse_report(data: Dict[str, Any]) -> ReportConfig:
    return ReportConfig(
        template_path=data.get("template_path") or None,
        escape_html=bool(data.get("escape_html", False)),
    )


def _read_yaml(path: Path) -> Dict[str, Any]:
    if path.suffix not in (".yaml", ".yml"):
        raise ConfigurationError(
            f"Configuration file must be YAML (.yaml or .yml): {path}"
        )

    try:
        with open(path, "r") as f:
            raw_data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in configuration file: {e}")
    except IOError as e:
        raise ConfigurationError(f"Failed to read configuration file: {e}")

    if raw_data is None:
        return {}
    if not isinstance(raw_data, dict):
        raise ConfigurationError("Configuration file must contain a mapping at the top level")

    return _expand_env_vars(raw_data)


def load_config(
    config_path: Optional[str] = None,
    required: bool = False,
    env_file: Optional[str] = ".env",
) -> Config:
    """
    Load and validate configuration.

    Args:
        config_path: Path to a YAML configuration file
        required: Fail if ``config_path`` does not exist instead of using defaults
        env_file: ``.env`` file loaded into the environment first (None to skip)

    Returns:
        Validated Config instance

    Raises:
        ConfigurationError: If configuration is invalid
    """
    logger = get_logger()

    if env_file and Path(env_file).exists():
        load_dotenv(dotenv_path=env_file)
        logger.debug(f"Loaded environment from {env_file}")

    data: Dict[str, Any] = {}
    if config_path:
        path = Path(config_path)
        if path.exists():
            data = _read_yaml(path)
            logger.info(f"Loaded configuration from {config_path}")
        elif required:
            raise ConfigurationError(f"Configuration file not found: {config_path}")
        else:
            logger.debug(f"No configuration file at {config_path}, using defaults and environment")

    settings = _parse_settings(data.get("settings") or {})
    mail = _parse_mail(data.get("mail") or {})
    report = _parse_report(data.get("report") or {})

    logger.debug(f"  Web services: {', '.join(settings.web_services)}")
    logger.debug(f"  Mail provider: {mail.provider}")

    return Config(settings=settings, mail=mail, report=report)

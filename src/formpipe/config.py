"""Configuration management for formpipe.

Configuration Discovery Precedence (Highest to Lowest Priority):
===============================================================

1. **FORMPIPE_CONFIG_DIR Environment Variable** (Highest Priority)
   - Looks for: `${FORMPIPE_CONFIG_DIR}/formpipe.yaml`
   - Use case: Development, testing, custom deployments

2. **~/.formpipe Directory** (Fallback)
   - Looks for: `~/.formpipe/formpipe.yaml`
   - Use case: Default user installations

If no `formpipe.yaml` is found, default configuration is applied (no sender,
no validators, no hooks, no trusted proxies).

Example formpipe.yaml:
--------
formpipe:
  debug: false
  smtp:
    host: smtp.example.com
    port: 587
    secure: tls
    from: no-reply@example.com
    to: inbox@example.com
  trusted_proxy:
    trusted_proxies: ["10.0.0.0/8", "fd00::/8"]
  validators:
    - label: required
      validator: formpipe.validators.fields.required
      params: {fields: [name, email, message]}
  hooks:
    - formpipe.pipeline.hooks.NormalizeWhitespaceHook
"""

import importlib
import logging
import os
import threading
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from formpipe.errors import INVALID_CONFIG, ConfigurationError

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "formpipe.yaml"


class SmtpConfig(BaseModel):
    """SMTP transport and addressing configuration."""

    model_config = ConfigDict(populate_by_name=True)

    host: str = ""
    """SMTP host. Empty means no SMTP sender can be constructed."""

    port: int = 587
    """SMTP port"""

    username: str | None = None
    """Login user; authentication is skipped when unset"""

    password: str = ""
    """Login password"""

    secure: Literal["", "tls", "ssl"] = ""
    """'tls' for STARTTLS, 'ssl' for implicit TLS, '' for plain"""

    from_address: str = Field(default="", alias="from")
    """Envelope/From address"""

    from_name: str = "Website"
    """Display name for the From header"""

    to: str = ""
    """Recipient address"""

    timeout: float = 10.0
    """Socket timeout in seconds"""


class SendmailConfig(BaseModel):
    """Configuration for piping messages into a sendmail-compatible binary."""

    model_config = ConfigDict(populate_by_name=True)

    command: list[str] = Field(default_factory=lambda: ["sendmail", "-t", "-i"])
    """Command line to execute; the message is written to stdin"""

    from_address: str = Field(default="", alias="from")
    from_name: str = ""
    to: str = ""
    timeout: float = 10.0


class TrustPolicy(BaseModel):
    """Trusted-proxy policy for client address resolution. Immutable."""

    model_config = ConfigDict(frozen=True)

    trusted_proxies: tuple[str, ...] = ()
    """CIDR ranges (or literal addresses) of peers whose forwarding headers are honored"""

    headers: tuple[str, ...] = ("Forwarded", "X-Forwarded-For", "X-Real-IP")
    """Headers consulted in priority order when the peer is trusted"""

    allow_private: bool = False
    """Accept RFC1918/loopback/link-local/reserved addresses as client addresses"""

    attach_user_agent: bool = True
    """Attach the User-Agent header to the request context"""

    attach_referer: bool = True
    """Attach the Referer header to the request context"""

    country_header: str | None = None
    """Optional header carrying a geo country code (e.g. CF-IPCountry)"""

    request_id_header: str = "X-Request-ID"
    """Header carrying the upstream request id"""


class ValidatorConfig(BaseModel):
    """A validator loaded from an import path."""

    label: str | None = None
    validator: str
    """Import path of a validator callable or a factory returning one"""

    params: dict[str, Any] = Field(default_factory=dict)
    """Keyword arguments for the factory. Without params the target itself is the validator."""

    def create_instance(self) -> Any:
        """Import the target and build the validator callable.

        Raises:
            ConfigurationError: If the import path cannot be resolved
        """
        target = _import_object(self.validator)
        if self.params:
            return target(**self.params)
        return target


class HookConfig:
    """Configuration for a single hook with optional parameters and scope."""

    def __init__(
        self,
        hook_path: str,
        params: dict[str, Any] | None = None,
        before_validator: str | list[str] | None = None,
        after_validator: str | list[str] | None = None,
    ) -> None:
        """Initialize a hook configuration.

        Args:
            hook_path: Python import path to the hook class
            params: Optional keyword arguments for the hook constructor
            before_validator: Label(s) to run before; None for global
            after_validator: Label(s) to run after; None for global
        """
        self.hook_path = hook_path
        self.params = params or {}
        self.before_validator = before_validator
        self.after_validator = after_validator

    def create_instance(self) -> dict[str, Any]:
        """Instantiate the hook and return a scoped hook entry."""
        hook_class = _import_object(self.hook_path)
        try:
            hook = hook_class(**self.params)
        except TypeError as e:
            raise ConfigurationError(
                f"Cannot instantiate hook {self.hook_path}: {e}", code=INVALID_CONFIG
            ) from e
        return {
            "hook": hook,
            "before_validator": self.before_validator,
            "after_validator": self.after_validator,
        }


class FormPipeConfig(BaseSettings):
    """Main configuration for formpipe that reads from formpipe.yaml."""

    model_config = SettingsConfigDict(
        env_prefix="FORMPIPE_",
        case_sensitive=False,
        extra="ignore",
    )

    # Core settings
    debug: bool = False
    transport: Literal["smtp", "sendmail"] = "smtp"

    smtp: SmtpConfig | None = None
    sendmail: SendmailConfig | None = None

    trusted_proxy: TrustPolicy = Field(default_factory=TrustPolicy)

    # Extra code -> message descriptors merged into the default resolver
    messages: dict[str, str | dict[str, Any]] = Field(default_factory=dict)

    # Ordered validator definitions
    validators: list[ValidatorConfig] = Field(default_factory=list)

    # Hook configurations (import paths or dicts with params/scope)
    hooks: list[str | dict[str, Any]] = Field(default_factory=list)

    # Path to formpipe config
    config_path: Path = Field(default_factory=lambda: Path(f"./{CONFIG_FILENAME}"))

    def load_validators(self) -> list[tuple[str | None, Any]]:
        """Build validator callables from their import paths.

        Returns:
            List of (label, validator) tuples in configured order

        Raises:
            ConfigurationError: If a validator cannot be imported
        """
        return [(entry.label, entry.create_instance()) for entry in self.validators]

    def load_hooks(self) -> list[dict[str, Any]]:
        """Build hook entries from their import paths.

        Returns:
            List of scoped hook entries accepted by HookDispatcher

        Raises:
            ConfigurationError: If a hook entry is malformed or cannot be imported
        """
        loaded = []
        for hook_entry in self.hooks:
            if isinstance(hook_entry, str):
                hook_config = HookConfig(hook_entry)
            elif isinstance(hook_entry, dict):
                hook_path = hook_entry.get("hook", "")
                if not hook_path:
                    raise ConfigurationError(f"Hook entry missing 'hook' key: {hook_entry}", code=INVALID_CONFIG)
                hook_config = HookConfig(
                    hook_path,
                    params=hook_entry.get("params", {}),
                    before_validator=hook_entry.get("before_validator"),
                    after_validator=hook_entry.get("after_validator"),
                )
            else:
                raise ConfigurationError(f"Invalid hook entry type: {type(hook_entry)}", code=INVALID_CONFIG)

            loaded.append(hook_config.create_instance())
            logger.debug(f"Loaded hook: {hook_config.hook_path}")
        return loaded

    @classmethod
    def from_yaml(cls, yaml_path: Path, **kwargs: Any) -> "FormPipeConfig":
        """Load configuration from a formpipe.yaml file.

        Args:
            yaml_path: Path to the formpipe.yaml file
            **kwargs: Additional keyword arguments

        Returns:
            FormPipeConfig instance
        """
        data: dict[str, Any] = {}
        if yaml_path.exists():
            with yaml_path.open() as f:
                raw = yaml.safe_load(f) or {}
            section = raw.get("formpipe", {}) if isinstance(raw, dict) else {}
            if isinstance(section, dict):
                data = section
            else:
                logger.warning(f"Invalid formpipe section format: {type(section)}")

        return cls(**{**data, **kwargs, "config_path": yaml_path})


# Global configuration instance
_config_instance: FormPipeConfig | None = None
_config_lock = threading.Lock()


def find_config_path() -> Path | None:
    """Locate formpipe.yaml following the discovery precedence."""
    env_config_dir = os.environ.get("FORMPIPE_CONFIG_DIR")
    if env_config_dir:
        candidate = Path(env_config_dir) / CONFIG_FILENAME
        logger.info(f"Using config directory from environment: {env_config_dir}")
        return candidate if candidate.exists() else None

    fallback = Path.home() / ".formpipe" / CONFIG_FILENAME
    return fallback if fallback.exists() else None


def get_config() -> FormPipeConfig:
    """Get the configuration instance."""
    global _config_instance

    if _config_instance is None:
        with _config_lock:
            # Double-check locking pattern
            if _config_instance is None:
                config_path = find_config_path()
                if config_path:
                    logger.info(f"Loading formpipe config from: {config_path}")
                    _config_instance = FormPipeConfig.from_yaml(config_path)
                else:
                    logger.info("No formpipe.yaml found, using default config")
                    _config_instance = FormPipeConfig()

    return _config_instance


def set_config_instance(config: FormPipeConfig) -> None:
    """Set the global configuration instance (for testing)."""
    global _config_instance
    _config_instance = config


def clear_config_instance() -> None:
    """Clear the global configuration instance (for testing)."""
    global _config_instance
    _config_instance = None


def _import_object(path: str) -> Any:
    # Accept both "module.attr" and "module:attr"
    module_path, sep, attr = path.partition(":")
    if not sep:
        module_path, _, attr = path.rpartition(".")
    if not module_path or not attr:
        raise ConfigurationError(f"Invalid import path: {path!r}", code=INVALID_CONFIG)
    try:
        module = importlib.import_module(module_path)
        return getattr(module, attr)
    except (ImportError, AttributeError) as e:
        raise ConfigurationError(f"Failed to import {path}: {e}", code=INVALID_CONFIG) from e

import configparser
import os
import sys
import logging
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

# Configuration: .env < config file < env vars < CLI flags
CONFIG_DIR = os.path.expanduser("~/.nudge")
CONFIG_FILE = os.path.join(CONFIG_DIR, "config")

DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_STORAGE_DIR = "~/.local-reminders"
LINUX_BACKENDS = ("systemd", "at")
LOG_FORMAT = "\033[90m%(levelname)s: %(message)s\033[0m"


@dataclass(frozen=True)
class Settings:
    """Resolved configuration, passed explicitly to every operation."""

    openai_api_key: Optional[str] = None
    model: str = DEFAULT_MODEL
    openai_base_url: Optional[str] = None
    smtp_host: str = "localhost"
    smtp_port: int = 587
    smtp_user: Optional[str] = None
    smtp_password: Optional[str] = None
    smtp_from: Optional[str] = None
    smtp_ssl: bool = False
    smtp_timeout: float = 30.0
    storage_dir: str = os.path.expanduser(DEFAULT_STORAGE_DIR)
    linux_backend: str = "systemd"
    notification_title: str = "Reminder"
    verbose: bool = False


def _load_config(path: str = CONFIG_FILE) -> configparser.ConfigParser:
    """Load INI config from ~/.nudge/config."""
    cfg = configparser.ConfigParser()
    if os.path.isfile(path):
        cfg.read(path)
    return cfg


def _cfgval(cfg, section, key, default=""):
    try:
        return cfg.get(section, key)
    except (configparser.NoSectionError, configparser.NoOptionError):
        return default


def _setting(env, cfg, env_key, section, key, default=""):
    return env.get(env_key) or _cfgval(cfg, section, key, default)


def _truthy(value: str) -> bool:
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def load_settings(
    config_file: str = CONFIG_FILE, env=None, dotenv: bool = True
) -> Settings:
    """
    Build Settings from the config file and the environment.

    Args:
        config_file: Path of the INI file to read (missing file is fine)
        env: Mapping used instead of os.environ (tests)
        dotenv: Load a .env file from the working directory first
    """
    if dotenv and env is None:
        load_dotenv()
    env = os.environ if env is None else env
    cfg = _load_config(config_file)

    port_raw = _setting(env, cfg, "SMTP_PORT", "smtp", "port", "587")
    try:
        port = int(port_raw)
    except ValueError:
        logging.warning(f"Invalid SMTP port {port_raw!r}, using 587")
        port = 587

    timeout_raw = _setting(env, cfg, "SMTP_TIMEOUT", "smtp", "timeout", "30")
    try:
        timeout = float(timeout_raw)
    except ValueError:
        timeout = 30.0

    ssl_raw = _setting(env, cfg, "SMTP_SSL", "smtp", "ssl", "")
    smtp_ssl = _truthy(ssl_raw) if ssl_raw else port == 465

    smtp_user = _setting(env, cfg, "SMTP_USER", "smtp", "user") or None

    backend = _setting(
        env, cfg, "NUDGE_LINUX_BACKEND", "reminders", "linux_backend", "systemd"
    ).lower()
    if backend not in LINUX_BACKENDS:
        logging.warning(f"Unknown linux backend {backend!r}, using systemd")
        backend = "systemd"

    return Settings(
        openai_api_key=_setting(env, cfg, "OPENAI_API_KEY", "llm", "api_key") or None,
        model=_setting(env, cfg, "NUDGE_MODEL", "llm", "model", DEFAULT_MODEL),
        openai_base_url=_setting(env, cfg, "OPENAI_BASE_URL", "llm", "base_url")
        or None,
        smtp_host=_setting(env, cfg, "SMTP_HOST", "smtp", "host", "localhost"),
        smtp_port=port,
        smtp_user=smtp_user,
        smtp_password=_setting(env, cfg, "SMTP_PASS", "smtp", "password") or None,
        smtp_from=_setting(env, cfg, "SMTP_FROM", "smtp", "from") or smtp_user,
        smtp_ssl=smtp_ssl,
        smtp_timeout=timeout,
        storage_dir=os.path.expanduser(
            _setting(
                env, cfg, "NUDGE_STORAGE_DIR", "reminders", "storage_dir",
                DEFAULT_STORAGE_DIR,
            )
        ),
        linux_backend=backend,
        notification_title=_setting(
            env, cfg, "NUDGE_TITLE", "reminders", "title", "Reminder"
        ),
        verbose=_truthy(_setting(env, cfg, "NUDGE_VERBOSE", "core", "verbose", "false")),
    )


def setup_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        stream=sys.stderr,
        force=True,
    )

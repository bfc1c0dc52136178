"""Configuration loaded from environment variables."""

import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

DEFAULT_API_BACKEND = "https://api.telegram.org"
INJECTORS = ("screen", "tmux")


class ConfigError(Exception):
    """Raised when required settings are missing or malformed."""

    def __init__(self, problems):
        self.problems = list(problems)
        super().__init__("Invalid configuration:\n" + "\n".join(f"  - {p}" for p in self.problems))


@dataclass(frozen=True)
class Settings:
    telegram_token: str
    log_path: str
    admin_ids: tuple
    api_backend: str = DEFAULT_API_BACKEND
    session_name: str = "mc"
    session_pane: str = "0"
    injector: str = "screen"
    inject_timeout: float = 5.0
    start_script: str = ""
    stop_command: str = "stop"
    restart_delay: float = 20.0
    reserved_commands: bool = False
    poll_timeout: int = 60
    log_level: str = "INFO"
    custom_backend: bool = field(default=False, compare=False)

    @property
    def base_url(self):
        """Bot API base url; the token is appended by python-telegram-bot."""
        return self.api_backend.rstrip("/") + "/bot"


def _parse_ids(raw, name, problems):
    ids = []
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        try:
            ids.append(int(part))
        except ValueError:
            problems.append(f"{name}: {part!r} is not a numeric Telegram id")
    return ids


def _number(env, name, default, cast, problems):
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        value = cast(raw)
    except ValueError:
        problems.append(f"{name}: {raw!r} is not a number")
        return default
    if value < 0:
        problems.append(f"{name}: must not be negative")
        return default
    return value


def load_settings(environ=None):
    """Build Settings from the environment (plus .env), listing every problem at once."""
    if environ is None:
        load_dotenv()
        environ = os.environ
    env = environ
    problems = []

    token = env.get("TELEGRAM_BOT_TOKEN", "").strip()
    log_path = env.get("MC_LOG_PATH", "").strip()
    if not token:
        problems.append("TELEGRAM_BOT_TOKEN not set")
    if not log_path:
        problems.append("MC_LOG_PATH not set")

    # Multi-admin list wins over the single admin id when both are present
    admin_ids = _parse_ids(env.get("TELEGRAM_ADMIN_IDS", ""), "TELEGRAM_ADMIN_IDS", problems)
    if not admin_ids:
        admin_ids = _parse_ids(env.get("TELEGRAM_ADMIN_ID", ""), "TELEGRAM_ADMIN_ID", problems)
    if not admin_ids and not any(p.startswith("TELEGRAM_ADMIN") for p in problems):
        problems.append("TELEGRAM_ADMIN_IDS (or TELEGRAM_ADMIN_ID) not set")

    backend = env.get("TG_API_BACKEND", "").strip()
    injector = env.get("MC_INJECTOR", "screen").strip().lower() or "screen"
    if injector not in INJECTORS:
        problems.append(f"MC_INJECTOR: {injector!r} is not one of {', '.join(INJECTORS)}")

    inject_timeout = _number(env, "MC_INJECT_TIMEOUT", 5.0, float, problems)
    restart_delay = _number(env, "MC_RESTART_DELAY", 20.0, float, problems)
    poll_timeout = _number(env, "TG_POLL_TIMEOUT", 60, int, problems)

    if problems:
        raise ConfigError(problems)

    # dict.fromkeys keeps the configured order while dropping duplicates
    return Settings(
        telegram_token=token,
        log_path=log_path,
        admin_ids=tuple(dict.fromkeys(admin_ids)),
        api_backend=backend or DEFAULT_API_BACKEND,
        session_name=env.get("MC_SESSION", "mc").strip() or "mc",
        session_pane=env.get("MC_SESSION_PANE", "0").strip() or "0",
        injector=injector,
        inject_timeout=inject_timeout,
        start_script=env.get("MC_START_SCRIPT", "").strip(),
        stop_command=env.get("MC_STOP_COMMAND", "stop").strip() or "stop",
        restart_delay=restart_delay,
        reserved_commands=env.get("BRIDGE_RESERVED_COMMANDS", "false").strip().lower() in ("1", "true", "yes"),
        poll_timeout=poll_timeout,
        log_level=env.get("LOG_LEVEL", "INFO").strip().upper() or "INFO",
        custom_backend=bool(backend),
    )

import configparser
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import pytz
from dotenv import find_dotenv, load_dotenv


config = configparser.ConfigParser()
# This module is the middleman between the bot and a ConfigParser object, so that we can add extra functionality
# without clogging up the bot with all the config logic. For example, added a default value to get().

# Environment variables that map straight onto config options
ENV_ALIASES: dict[tuple[str, str], str] = {
    ("API", "subaccount"): "SUB_ACCOUNT",
    ("API", "apikey"): "API_KEY",
    ("API", "secret"): "SECRET_KEY",
    ("BOT", "currency"): "CURRENCY",
}

DEFAULT_API_URL = "https://ftx.com/api"
DEFAULT_CONFIG_FILE = "default.cfg"


class ConfigError(Exception):
    pass


@dataclass(frozen=True)
class Credentials:
    sub_account: str
    api_key: str
    secret: str
    currency: str


@dataclass(frozen=True)
class LendingPolicy:
    rate_factor: float = 0.6
    skip_zero_balance: bool = False
    unavailable_as_zero: bool = True


@dataclass(frozen=True)
class ScheduleConfig:
    minute: int = 59
    cycle_window: float = 60.0
    retry_interval: float = 5.0
    max_backoff: float = 20.0
    max_attempts: int = 5
    resubmit_until_deadline: bool = False
    # empty means the local time of the host, like cron
    timezone: str = ""


@dataclass(frozen=True)
class BotConfig:
    credentials: Credentials
    policy: LendingPolicy = field(default_factory=LendingPolicy)
    schedule: ScheduleConfig = field(default_factory=ScheduleConfig)
    api_url: str = DEFAULT_API_URL
    timeout: int = 30
    log_file: str = "lending.log"
    api_debug_log: bool = False


def init(file_location: str | Path | None = None, env_file: str | None = None) -> configparser.ConfigParser:
    """
    Loads the .env file into the environment and reads the optional config file.
    Values already present in the environment win over the .env file.
    """
    load_dotenv(env_file or find_dotenv(usecwd=True), override=False)
    config.clear()
    if file_location is None:
        # optional, environment variables are enough to run the bot
        config.read(DEFAULT_CONFIG_FILE, encoding="utf-8")
    else:
        loaded_files = config.read(file_location, encoding="utf-8")
        if len(loaded_files) != 1:
            print(
                f"Config file '{file_location}' not found, using environment variables and defaults.\n"
                "See default.cfg.example for the available settings."
            )
    return config


def _env_value(category: str, option: str) -> str | None:
    alias = ENV_ALIASES.get((category, option.lower()))
    if alias is not None and os.environ.get(alias):
        return os.environ[alias]
    value = os.environ.get(f"{category}_{option}")
    return value if value else None


def has_option(category: str, option: str) -> bool:
    return _env_value(category, option) is not None or config.has_option(category, option)


def getboolean(category: str, option: str, default_value: bool = False) -> bool:
    if has_option(category, option):
        env_val = _env_value(category, option)
        if env_val is not None:
            return env_val.lower() in ("true", "1", "t", "y", "yes")
        return config.getboolean(category, option)
    else:
        return default_value


def get(
    category: str,
    option: str,
    default_value: Any = False,
    lower_limit: float | bool = False,
    upper_limit: float | bool = False,
) -> Any:
    if has_option(category, option):
        value = _env_value(category, option)
        if value is None:
            value = config.get(category, option)
        if value.strip() == "" and default_value is None:
            raise ConfigError(f"[{category}]-{option} is not allowed to be left empty. Please check your config.")
        try:
            if lower_limit is not False and float(value) < float(lower_limit):
                print(
                    f"WARN: [{category}]-{option}'s value: '{value}' is below the minimum limit: {lower_limit}, which will be used instead."
                )
                value = str(lower_limit)
            if upper_limit is not False and float(value) > float(upper_limit):
                print(
                    f"WARN: [{category}]-{option}'s value: '{value}' is above the maximum limit: {upper_limit}, which will be used instead."
                )
                value = str(upper_limit)
            return value
        except ValueError:
            if default_value is None:
                raise ConfigError(
                    f"[{category}]-{option} has an invalid value '{value}'. Please check your config."
                ) from None
            return default_value
    else:
        if default_value is None:
            raise ConfigError(f"[{category}]-{option} is not allowed to be left unset. Please check your config.")
        return default_value


# Below: functions for returning config values that require special treatment.


def get_credentials() -> Credentials:
    """
    Returns the exchange credentials, all of them are required.
    """
    missing = [
        ENV_ALIASES[(category, option)]
        for category, option in ENV_ALIASES
        if not str(get(category, option, "")).strip()
    ]
    if missing:
        raise ConfigError(f"Missing required settings: {', '.join(missing)}. Please set them in your .env file.")
    return Credentials(
        sub_account=str(get("API", "subaccount", None)).strip(),
        api_key=str(get("API", "apikey", None)).strip(),
        secret=str(get("API", "secret", None)).strip(),
        currency=str(get("BOT", "currency", None)).strip().upper(),
    )


def get_lending_policy() -> LendingPolicy:
    return LendingPolicy(
        rate_factor=float(get("LENDING", "ratefactor", 0.6, 0, 1)),
        skip_zero_balance=getboolean("LENDING", "skipzerobalance", False),
        unavailable_as_zero=getboolean("LENDING", "unavailableaszero", True),
    )


def get_schedule_config() -> ScheduleConfig:
    cycle_window = float(get("SCHEDULE", "cyclewindow", 60, 1, 3600))
    retry_interval = float(get("SCHEDULE", "retryinterval", 5, 0.1, cycle_window))
    return ScheduleConfig(
        minute=int(get("SCHEDULE", "minute", 59, 0, 59)),
        cycle_window=cycle_window,
        retry_interval=retry_interval,
        max_backoff=float(get("SCHEDULE", "maxbackoff", 20, retry_interval, cycle_window)),
        max_attempts=int(get("SCHEDULE", "maxattempts", 5, 1, 100)),
        resubmit_until_deadline=getboolean("SCHEDULE", "resubmituntildeadline", False),
        timezone=get_timezone(),
    )


def get_timezone() -> str:
    name = str(get("SCHEDULE", "timezone", "")).strip()
    if name:
        try:
            pytz.timezone(name)
        except pytz.UnknownTimeZoneError:
            raise ConfigError(f"[SCHEDULE]-timezone '{name}' is not a known time zone.") from None
    return name


def load_config(file_location: str | Path | None = None) -> BotConfig:
    """
    Builds the immutable bot configuration.

    Raises:
        ConfigError: A required setting is missing or invalid.
    """
    init(file_location)
    return BotConfig(
        credentials=get_credentials(),
        policy=get_lending_policy(),
        schedule=get_schedule_config(),
        api_url=str(get("API", "url", DEFAULT_API_URL)).rstrip("/"),
        timeout=int(float(get("BOT", "timeout", 30, 1, 180))),
        log_file=str(get("BOT", "logfile", "lending.log")),
        api_debug_log=getboolean("BOT", "api_debug_log"),
    )

"""Configuration management for portwatch."""

import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import BaseModel, Field, ValidationError

from .errors import AddressParseError, ConfigError
from .models import FunctionalCheckSpec, Target
from .targets.address_entry import parse_address


class BrowserConfig(BaseModel):
    """Browser session and functional-time measurement settings."""
    headless: bool = Field(default=True, description="Run the browser in headless mode")
    automation_endpoint: Optional[str] = Field(
        default=None,
        description="Playwright server (ws://) or CDP (http://) address; unset launches a local Chromium",
    )
    poll_interval_seconds: float = Field(default=0.5, gt=0, description="Delay between visibility polls")
    element_timeout_seconds: float = Field(default=30.0, gt=0, description="Time allowed for a selector to become visible")
    navigation_timeout_seconds: float = Field(default=30.0, gt=0, description="Page navigation timeout")
    connect_timeout_seconds: float = Field(default=30.0, gt=0, description="Browser launch/connect timeout")
    poll_attempt_timeout_seconds: float = Field(default=5.0, gt=0, description="Cap on a single visibility poll")
    close_timeout_seconds: float = Field(default=10.0, gt=0, description="Cap on each session teardown step")


class TargetEntry(BaseModel):
    """One target in the YAML file: either an `address` or a `url` check."""
    name: Optional[str] = Field(default=None, description="Display name; defaults to the address or url")
    address: Optional[str] = Field(default=None, description="<IPv4>:<port> for a reachability check")
    url: Optional[str] = Field(default=None, description="Page for a functional-time check")
    selector: Optional[str] = Field(default=None, description="Element that marks the page as functional")
    headless: Optional[bool] = Field(default=None, description="Overrides browser.headless for this target")
    session_endpoint: Optional[str] = Field(default=None, description="Overrides browser.automation_endpoint")


class PortwatchConfig(BaseModel):
    """Main configuration for the monitor."""

    log_level: str = Field(default="INFO", description="Logging level")

    # Scheduling
    interval_seconds: float = Field(default=60.0, gt=0, description="Seconds between the starts of two ticks")
    probe_timeout_seconds: float = Field(default=1.0, ge=0, description="TCP connect timeout per probe")
    check_concurrency: int = Field(default=16, ge=1, description="Maximum checks running at once")
    browser_concurrency: int = Field(default=2, ge=1, description="Maximum browser sessions open at once")

    browser: BrowserConfig = Field(default_factory=BrowserConfig)

    # Collaborators
    port_registry_csv: Optional[str] = Field(default=None, description="IANA service-names CSV")
    db_path: Optional[str] = Field(default=None, description="SQLite file for results; unset keeps results in memory")

    targets: List[Union[str, TargetEntry]] = Field(default_factory=list, description="Targets to check")


def _target_from_entry(entry: Union[str, TargetEntry], browser: BrowserConfig) -> Target:
    if isinstance(entry, str):
        return Target.for_endpoint(parse_address(entry))

    if entry.address is not None:
        return Target.for_endpoint(parse_address(entry.address), name=entry.name)
    if entry.url is not None:
        spec = FunctionalCheckSpec(
            url=entry.url,
            selector=entry.selector or None,
            headless=browser.headless if entry.headless is None else entry.headless,
            session_endpoint=entry.session_endpoint or browser.automation_endpoint,
        )
        return Target.for_functional(spec, name=entry.name)
    raise ConfigError(f"Target entry needs 'address' or 'url': {entry.model_dump(exclude_none=True)!r}")


def build_targets(config: PortwatchConfig) -> List[Target]:
    """Turn raw target entries into Target objects, rejecting duplicates."""
    targets: List[Target] = []
    seen = set()
    for entry in config.targets:
        try:
            target = _target_from_entry(entry, config.browser)
        except AddressParseError as e:
            raise ConfigError(f"Invalid target address: {e}") from e
        if target.name in seen:
            raise ConfigError(f"Duplicate target name: {target.name}")
        seen.add(target.name)
        targets.append(target)
    return targets


def load_config(config_path: Optional[str] = None) -> PortwatchConfig:
    """Load configuration from file or environment variables."""
    if config_path is None:
        config_path = os.getenv("PORTWATCH_CONFIG", "config/portwatch.yaml")

    config_data: Dict[str, Any] = {}

    # Load from file if exists
    if os.path.exists(config_path):
        with open(config_path, 'r', encoding="utf-8") as f:
            config_data = yaml.safe_load(f) or {}
        if not isinstance(config_data, dict):
            raise ConfigError("Config YAML must be a mapping")

    # Override with environment variables
    env_overrides = {
        "log_level": os.getenv("LOG_LEVEL"),
        "interval_seconds": os.getenv("PORTWATCH_INTERVAL_SECONDS"),
        "probe_timeout_seconds": os.getenv("PORTWATCH_PROBE_TIMEOUT"),
        "db_path": os.getenv("PORTWATCH_DB_PATH"),
    }
    for key, value in env_overrides.items():
        if value is not None:
            config_data[key] = value

    browser_overrides = {
        "automation_endpoint": os.getenv("PORTWATCH_AUTOMATION_ENDPOINT"),
        "headless": os.getenv("BROWSER_HEADLESS"),
    }
    browser_data = dict(config_data.get("browser") or {})
    for key, value in browser_overrides.items():
        if value is not None:
            if key == "headless":
                value = value.lower() in ("true", "1", "yes")
            browser_data[key] = value
    if browser_data:
        config_data["browser"] = browser_data

    try:
        return PortwatchConfig(**config_data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {Path(config_path)}: {e}") from e

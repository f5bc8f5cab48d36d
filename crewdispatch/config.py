"""Configuration loading: TOML file + environment variable overlay."""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path

from crewdispatch.models.worker import EngineType, Worker

DEFAULT_CONFIG_DIR = Path.home() / ".config" / "crewdispatch"
DEFAULT_CONFIG_PATH = DEFAULT_CONFIG_DIR / "config.toml"


class ConfigError(Exception):
    """Raised when the configuration describes an invalid worker set."""


DEFAULT_CONFIG_TOML = """\
[general]
workspace_root = "~/crewdispatch-workspace"
work_channel_id = ""
conversation_window = 30
human_ids = []

[chain]
max_budget = 20
path_window = 6
min_trail = 6
period_two_repeats = 3
default_repeats = 2

[ledger]
soft_expiry = 3600
hard_expiry_factor = 3
max_records = 200
reason_limit = 200

[scheduler]
heartbeat_interval = 600
follow_up_interval = 120
pending_task_interval = 60
digest_interval = 86400
digest_initial_delay = 3600
evaluation_interval = 7200
evaluation_initial_delay = 600
inbox_debounce = 2.0
evaluator_id = "hr"
max_concurrent_dispatches = 8

[classifier]
provider = "anthropic"
model = "claude-3-5-haiku-latest"

[providers.anthropic]
api_key_env = "ANTHROPIC_API_KEY"

[signal]
enabled = false
account = ""
http_url = "http://127.0.0.1:8080"

[workers.leader]
name = "Leader"
engine = "claude"
model = "sonnet"
max_budget = 10
prompt = "prompts/leader.md"
is_leader = true
"""


@dataclass
class ChainConfig:
    max_budget: int = 20
    path_window: int = 6
    min_trail: int = 6
    period_two_repeats: int = 3
    default_repeats: int = 2


@dataclass
class LedgerConfig:
    soft_expiry: float = 3600
    hard_expiry_factor: float = 3
    max_records: int = 200
    reason_limit: int = 200

    @property
    def hard_expiry(self) -> float:
        return self.soft_expiry * self.hard_expiry_factor


@dataclass
class SchedulerConfig:
    heartbeat_interval: float = 600
    follow_up_interval: float = 120
    pending_task_interval: float = 60
    digest_interval: float = 86400
    digest_initial_delay: float = 3600
    evaluation_interval: float = 7200
    evaluation_initial_delay: float = 600
    inbox_debounce: float = 2.0
    nudge_after: float = 300
    escalate_after: float = 900
    nudge_cooldown: float = 1800
    max_nudges: int = 2
    pending_task_cooldown: float = 7200
    pending_task_cycle_cap: int = 2
    heartbeat_unresolved_age: float = 300
    evaluator_id: str = "hr"
    max_concurrent_dispatches: int = 8
    progress_refresh: float = 8.0


@dataclass
class ClassifierConfig:
    provider: str = "anthropic"
    model: str = "claude-3-5-haiku-latest"
    max_tokens: int = 200


@dataclass
class ProviderConfig:
    api_key_env: str = ""
    api_key: str = ""
    default_model: str = ""


@dataclass
class SignalConfig:
    enabled: bool = False
    account: str = ""
    http_url: str = "http://127.0.0.1:8080"


@dataclass
class AppConfig:
    workspace_root: str = "~/crewdispatch-workspace"
    work_channel_id: str = ""
    conversation_window: int = 30
    human_ids: list[str] = field(default_factory=list)
    workers: dict[str, Worker] = field(default_factory=dict)
    chain: ChainConfig = field(default_factory=ChainConfig)
    ledger: LedgerConfig = field(default_factory=LedgerConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    classifier: ClassifierConfig = field(default_factory=ClassifierConfig)
    providers: dict[str, ProviderConfig] = field(default_factory=dict)
    signal: SignalConfig = field(default_factory=SignalConfig)
    config_path: Path = DEFAULT_CONFIG_PATH

    @property
    def resolved_workspace_root(self) -> Path:
        return Path(self.workspace_root).expanduser()

    @property
    def leader(self) -> Worker | None:
        for worker in self.workers.values():
            if worker.is_leader:
                return worker
        return None


def _env_overlay(config: AppConfig) -> None:
    """Override config values with environment variables where applicable."""
    if workspace := os.environ.get("CREWDISPATCH_WORKSPACE"):
        config.workspace_root = workspace
    if channel := os.environ.get("CREWDISPATCH_WORK_CHANNEL"):
        config.work_channel_id = channel
    if account := os.environ.get("SIGNAL_ACCOUNT"):
        config.signal.account = account

    for prov in config.providers.values():
        if prov.api_key_env:
            prov.api_key = os.environ.get(prov.api_key_env, "")


def _parse_provider(data: dict) -> ProviderConfig:
    return ProviderConfig(
        api_key_env=data.get("api_key_env", ""),
        default_model=data.get("default_model", ""),
    )


def _parse_worker(worker_id: str, data: dict) -> Worker:
    if not data.get("name"):
        raise ConfigError(f"Worker '{worker_id}' has no name")
    engine = data.get("engine", EngineType.CLAUDE.value)
    try:
        engine_type = EngineType(engine)
    except ValueError as e:
        raise ConfigError(f"Worker '{worker_id}' uses unknown engine '{engine}'") from e
    return Worker(
        id=worker_id,
        name=data["name"],
        engine=engine_type,
        model=data.get("model", "sonnet"),
        max_budget=float(data.get("max_budget", 10)),
        prompt_path=data.get("prompt", ""),
        is_leader=data.get("is_leader", False),
        channels=tuple(data.get("channels", ())),
        user_id=data.get("user_id", ""),
    )


def parse_workers(raw: dict) -> dict[str, Worker]:
    """Build the worker set, rejecting more than one leader."""
    workers = {wid: _parse_worker(wid, data) for wid, data in raw.items()}
    leaders = [w.id for w in workers.values() if w.is_leader]
    if len(leaders) > 1:
        raise ConfigError(f"Only one leader allowed, found: {', '.join(leaders)}")
    return workers


def load_config(config_path: Path | None = None) -> AppConfig:
    """Load configuration from TOML file with env var overlay."""
    path = config_path or DEFAULT_CONFIG_PATH

    if path.exists():
        with open(path, "rb") as f:
            raw = tomllib.load(f)
    else:
        raw = tomllib.loads(DEFAULT_CONFIG_TOML)

    general = raw.get("general", {})
    chain_raw = raw.get("chain", {})
    ledger_raw = raw.get("ledger", {})
    scheduler_raw = raw.get("scheduler", {})
    classifier_raw = raw.get("classifier", {})
    providers_raw = raw.get("providers", {})
    signal_raw = raw.get("signal", {})

    defaults = SchedulerConfig()
    scheduler = SchedulerConfig(**{
        key: scheduler_raw.get(key, getattr(defaults, key))
        for key in SchedulerConfig.__dataclass_fields__
    })

    config = AppConfig(
        workspace_root=general.get("workspace_root", "~/crewdispatch-workspace"),
        work_channel_id=general.get("work_channel_id", ""),
        conversation_window=general.get("conversation_window", 30),
        human_ids=list(general.get("human_ids", [])),
        workers=parse_workers(raw.get("workers", {})),
        chain=ChainConfig(
            max_budget=chain_raw.get("max_budget", 20),
            path_window=chain_raw.get("path_window", 6),
            min_trail=chain_raw.get("min_trail", 6),
            period_two_repeats=chain_raw.get("period_two_repeats", 3),
            default_repeats=chain_raw.get("default_repeats", 2),
        ),
        ledger=LedgerConfig(
            soft_expiry=ledger_raw.get("soft_expiry", 3600),
            hard_expiry_factor=ledger_raw.get("hard_expiry_factor", 3),
            max_records=ledger_raw.get("max_records", 200),
            reason_limit=ledger_raw.get("reason_limit", 200),
        ),
        scheduler=scheduler,
        classifier=ClassifierConfig(
            provider=classifier_raw.get("provider", "anthropic"),
            model=classifier_raw.get("model", "claude-3-5-haiku-latest"),
            max_tokens=classifier_raw.get("max_tokens", 200),
        ),
        providers={name: _parse_provider(data) for name, data in providers_raw.items()},
        signal=SignalConfig(
            enabled=signal_raw.get("enabled", False),
            account=signal_raw.get("account", ""),
            http_url=signal_raw.get("http_url", "http://127.0.0.1:8080"),
        ),
        config_path=path,
    )

    _env_overlay(config)
    return config


def init_config(config_path: Path | None = None) -> Path:
    """Create default config file."""
    path = config_path or DEFAULT_CONFIG_PATH
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(DEFAULT_CONFIG_TOML)
    return path

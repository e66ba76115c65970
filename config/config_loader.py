"""Load settings.yaml into typed dataclasses. Reports which providers have API keys."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

_SETTINGS_PATH = Path(__file__).parent / "settings.yaml"

THRESHOLD_MODES = ("messages", "tokens")


@dataclass
class ModelConfig:
    name: str
    sdk: str
    model: str
    api_key_env: str
    timeout_sec: int
    max_tokens: int
    base_url: str | None = None


@dataclass
class PromptsConfig:
    turn: str
    summary: str


@dataclass
class SummarizationConfig:
    enabled: bool = True
    threshold: int = 20
    threshold_mode: str = "messages"  # "messages" or "tokens"
    target_length: int = 400          # summary max tokens
    summary_model: str | None = None  # None: the client's default model
    preserve_recent: int = 3          # newest messages kept raw in tokens mode


@dataclass
class RetryConfig:
    max_attempts: int = 3
    initial_delay: float = 1.0
    multiplier: float = 2.0
    max_delay: float = 30.0
    jitter: float = 0.0


@dataclass
class QualityConfig:
    min_round: int = 2
    score_pattern: str = r"overall score\W*(\d+(?:\.\d+)?)"
    accept_markers: list[str] = field(default_factory=lambda: ["recommendation: accept"])
    revise_markers: list[str] = field(default_factory=lambda: ["recommendation: revise"])
    reject_markers: list[str] = field(default_factory=lambda: ["recommendation: reject"])


@dataclass
class DiscussionDefaults:
    provider: str
    max_rounds: int
    time_limit_sec: float | None
    auto_stop: bool
    output_dir: Path
    save_to_database: bool = False
    human_intervention_enabled: bool = True
    token_limit: int | None = None
    context_messages: int = 12
    database_path: Path = Path("writers_room.db")


@dataclass
class AppConfig:
    defaults: DiscussionDefaults
    models: dict[str, ModelConfig]
    prompts: PromptsConfig
    personas: list[dict] = field(default_factory=list)
    summarization: SummarizationConfig = field(default_factory=SummarizationConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    quality: QualityConfig = field(default_factory=QualityConfig)
    available_providers: set[str] = field(default_factory=set)


def _optional_float(value) -> float | None:
    return None if value is None else float(value)


def _optional_int(value) -> int | None:
    return None if value is None else int(value)


def load_config(settings_path: Path = _SETTINGS_PATH) -> AppConfig:
    """Load and validate configuration from settings.yaml.

    Raises FileNotFoundError if settings file missing, ValueError on a bad
    summarization threshold mode. Logs missing API keys but does not raise;
    callers check available_providers.
    """
    if not settings_path.exists():
        raise FileNotFoundError(f"Settings file not found: {settings_path}")

    with settings_path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)

    defaults_raw = raw["defaults"]
    defaults = DiscussionDefaults(
        provider=str(defaults_raw["provider"]),
        max_rounds=int(defaults_raw["max_rounds"]),
        time_limit_sec=_optional_float(defaults_raw.get("time_limit_sec")),
        auto_stop=bool(defaults_raw.get("auto_stop", False)),
        output_dir=Path(defaults_raw.get("output_dir", "./output")),
        save_to_database=bool(defaults_raw.get("save_to_database", False)),
        human_intervention_enabled=bool(defaults_raw.get("human_intervention_enabled", True)),
        token_limit=_optional_int(defaults_raw.get("token_limit")),
        context_messages=int(defaults_raw.get("context_messages", 12)),
        database_path=Path(defaults_raw.get("database_path", "writers_room.db")),
    )

    prompts_raw = raw["prompts"]
    prompts = PromptsConfig(turn=prompts_raw["turn"], summary=prompts_raw["summary"])

    summarization = SummarizationConfig(**raw.get("summarization", {}))
    if summarization.threshold_mode not in THRESHOLD_MODES:
        raise ValueError(f"summarization.threshold_mode must be one of {THRESHOLD_MODES}")

    retry = RetryConfig(**raw.get("retry", {}))
    quality = QualityConfig(**raw.get("quality", {}))

    models: dict[str, ModelConfig] = {}
    available_providers: set[str] = set()

    for provider_name, model_raw in raw["models"].items():
        model_cfg = ModelConfig(
            name=provider_name,
            sdk=model_raw["sdk"],
            model=model_raw["model"],
            api_key_env=model_raw["api_key_env"],
            timeout_sec=int(model_raw["timeout_sec"]),
            max_tokens=int(model_raw["max_tokens"]),
            base_url=model_raw.get("base_url"),
        )
        models[provider_name] = model_cfg

        api_key = os.environ.get(model_raw["api_key_env"], "").strip()
        if api_key:
            available_providers.add(provider_name)
            logger.info("Provider available: %s", provider_name)
        else:
            logger.info(
                "Provider skipped (no API key): %s, set %s in .env",
                provider_name,
                model_raw["api_key_env"],
            )

    return AppConfig(
        defaults=defaults,
        models=models,
        prompts=prompts,
        personas=list(raw.get("personas", [])),
        summarization=summarization,
        retry=retry,
        quality=quality,
        available_providers=available_providers,
    )

"""Configuration loading: YAML files plus .env for provider keys."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv

from .costs import DEFAULT_CURRENCY, DEFAULT_PRECISION, build_pricing_table
from .errors import ConfigError
from .logger import get_logger

_log = get_logger(__name__)

CONFIG_DIR = Path.home() / ".teamflow"
CONFIG_FILE = CONFIG_DIR / "config.yml"
PROJECT_CONFIG_NAME = ".teamflow.yml"


def _coerce_bool(value, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        text = value.strip().lower()
        if text in ("1", "true", "yes", "on"):
            return True
        if text in ("0", "false", "no", "off"):
            return False
    if isinstance(value, (int, float)):
        return bool(value)
    return default


def _coerce_positive_int(value, default: int, min_value: int = 1,
                         max_value: int = 1_000_000) -> int:
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return default
    return max(min_value, min(parsed, max_value))


def _coerce_float(value, default: float, min_value: float = 0.0,
                  max_value: float = float("inf")) -> float:
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return default
    return max(min_value, min(parsed, max_value))


@dataclass
class MetricsConfig:
    """``metrics:`` section."""

    buffer_capacity: int = 1000
    batch_size: int = 100
    flush_interval: float = 5.0
    high_rate: float = 1000.0
    low_rate: float = 100.0
    min_sampling_rate: float = 0.1
    max_sampling_rate: float = 1.0

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "MetricsConfig":
        if not data:
            return cls()
        min_rate = _coerce_float(data.get("min-sampling-rate"), 0.1, 0.01, 1.0)
        return cls(
            buffer_capacity=_coerce_positive_int(data.get("buffer-capacity"), 1000),
            batch_size=_coerce_positive_int(data.get("batch-size"), 100),
            flush_interval=_coerce_float(data.get("flush-interval"), 5.0, 0.1),
            high_rate=_coerce_float(data.get("high-rate"), 1000.0),
            low_rate=_coerce_float(data.get("low-rate"), 100.0),
            min_sampling_rate=min_rate,
            max_sampling_rate=_coerce_float(data.get("max-sampling-rate"), 1.0, min_rate, 1.0),
        )


@dataclass
class CostConfig:
    """``costs:`` section; ``pricing`` overrides the built-in table."""

    currency: str = DEFAULT_CURRENCY
    precision: int = DEFAULT_PRECISION
    pricing: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "CostConfig":
        if not data:
            return cls()
        pricing = data.get("pricing") or {}
        if not isinstance(pricing, dict):
            raise ConfigError("costs.pricing", "expected a mapping of model -> prices")
        return cls(
            currency=str(data.get("currency", DEFAULT_CURRENCY)).upper(),
            precision=_coerce_positive_int(data.get("precision"), DEFAULT_PRECISION, 0, 10),
            pricing={str(k): dict(v or {}) for k, v in pricing.items()},
        )

    def pricing_table(self):
        return build_pricing_table(self.pricing)


@dataclass
class TeamflowConfig:
    max_parallel: int = 4
    max_iterations: int = 10
    force_final_answer: bool = True
    default_model: str = "gpt-4o-mini"
    verbose: bool = False
    log_file: Optional[str] = None
    metrics: MetricsConfig = field(default_factory=MetricsConfig)
    costs: CostConfig = field(default_factory=CostConfig)
    _config_source: str = ""

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "TeamflowConfig":
        """Parse the top-level YAML mapping (kebab-case keys)."""
        if not data:
            return cls()
        if not isinstance(data, dict):
            raise ConfigError("config", f"expected a mapping, got {type(data).__name__}")
        return cls(
            max_parallel=_coerce_positive_int(data.get("max-parallel"), 4, 1, 64),
            max_iterations=_coerce_positive_int(data.get("max-iterations"), 10, 1, 1000),
            force_final_answer=_coerce_bool(data.get("force-final-answer"), True),
            default_model=str(data.get("default-model", "gpt-4o-mini")),
            verbose=_coerce_bool(data.get("verbose"), False),
            log_file=data.get("log-file"),
            metrics=MetricsConfig.from_dict(data.get("metrics")),
            costs=CostConfig.from_dict(data.get("costs")),
        )

    @classmethod
    def load(cls, project_dir: str = ".") -> "TeamflowConfig":
        """Load .env files, then the first config file found.

        Search order: ``./.teamflow.yml``, ``<git root>/.teamflow.yml``,
        ``~/.teamflow/config.yml``. Missing files leave the defaults.
        """
        project_path = Path(project_dir).resolve()
        for env_path in [CONFIG_DIR / ".env", project_path / ".env"]:
            if env_path.exists():
                load_dotenv(env_path, override=False)

        git_root = cls._find_git_root(project_path)
        for candidate in [
            project_path / PROJECT_CONFIG_NAME,
            (git_root / PROJECT_CONFIG_NAME) if git_root and git_root != project_path else None,
            CONFIG_FILE,
        ]:
            if candidate and candidate.exists():
                config = cls.from_dict(load_yaml(candidate))
                config._config_source = str(candidate)
                _log.debug("Loaded config from %s", candidate)
                return config
        return cls()

    @staticmethod
    def _find_git_root(path: Path) -> Optional[Path]:
        current = path
        while current != current.parent:
            if (current / ".git").exists():
                return current
            current = current.parent
        return None


def load_yaml(path) -> Any:
    try:
        with open(path, encoding="utf-8") as f:
            return yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(str(path), f"invalid YAML: {e}") from e
    except OSError as e:
        raise ConfigError(str(path), f"cannot read file: {e}") from e

"""
AskConfig - Configuration Management

Sensible defaults with full override capability.

Example:
    >>> # Use defaults (reads from environment)
    >>> service = GraphAsk()

    >>> # Explicit configuration
    >>> config = AskConfig(
    ...     llm_model="gpt-4o",
    ...     store_connection="falkor://graphs.internal:6379",
    ... )
    >>> service = GraphAsk(config=config)

    >>> # From config file
    >>> config = AskConfig.from_file("./graph_ask.toml")

Environment Variables:
    GRAPH_ASK_LLM_PROVIDER - LLM provider name
    GRAPH_ASK_LLM_MODEL - Default completion model (fallback: DEFAULT_MODEL)
    GRAPH_ASK_STORE_CONNECTION - Graph store URL (fallback: FALKORDB_CONNECTION)
    GRAPH_ASK_SCHEMA_CACHE_CAPACITY - Max cached schemas
    GRAPH_ASK_SCHEMA_SAMPLE_SIZE - Rows sampled per label during discovery
    GRAPH_ASK_READ_ONLY - Default execution mode ("true"/"false")
    GRAPH_ASK_DISCOVERY_TIMEOUT - Seconds allowed for schema discovery
    GRAPH_ASK_GENERATION_TIMEOUT - Seconds allowed per query generation
    GRAPH_ASK_EXECUTION_TIMEOUT - Seconds allowed per query execution
    GRAPH_ASK_SYNTHESIS_TIMEOUT - Seconds allowed for answer synthesis
    GRAPH_ASK_HOST / GRAPH_ASK_PORT - HTTP server bind address
    OPENAI_API_KEY - OpenAI API key (fallback: DEFAULT_KEY)
"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any, cast

# TOML support: tomllib is built-in for Python 3.11+, use tomli for 3.10
try:
    import tomllib

    def _load_toml(path: Path) -> dict[str, Any]:
        with open(path, "rb") as f:
            return cast(dict[str, Any], tomllib.load(f))

except ImportError:
    import tomli

    def _load_toml(path: Path) -> dict[str, Any]:
        with open(path, "rb") as f:
            return cast(dict[str, Any], tomli.load(f))


_TRUE_VALUES = {"1", "true", "yes", "on"}


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in _TRUE_VALUES


# option -> (environment variables, first set wins; parser)
_ENV_OPTIONS: dict[str, tuple[tuple[str, ...], Callable[[str], Any]]] = {
    "openai_api_key": (("OPENAI_API_KEY", "DEFAULT_KEY"), str),
    "llm_provider": (("GRAPH_ASK_LLM_PROVIDER",), str),
    "llm_model": (("GRAPH_ASK_LLM_MODEL", "DEFAULT_MODEL"), str),
    "store_connection": (("GRAPH_ASK_STORE_CONNECTION", "FALKORDB_CONNECTION"), str),
    "store_pool_capacity": (("GRAPH_ASK_STORE_POOL_CAPACITY",), int),
    "schema_cache_capacity": (("GRAPH_ASK_SCHEMA_CACHE_CAPACITY",), int),
    "schema_sample_size": (("GRAPH_ASK_SCHEMA_SAMPLE_SIZE",), int),
    "read_only": (("GRAPH_ASK_READ_ONLY",), _parse_bool),
    "discovery_timeout": (("GRAPH_ASK_DISCOVERY_TIMEOUT",), float),
    "generation_timeout": (("GRAPH_ASK_GENERATION_TIMEOUT",), float),
    "execution_timeout": (("GRAPH_ASK_EXECUTION_TIMEOUT",), float),
    "synthesis_timeout": (("GRAPH_ASK_SYNTHESIS_TIMEOUT",), float),
    "server_host": (("GRAPH_ASK_HOST",), str),
    "server_port": (("GRAPH_ASK_PORT",), int),
    "cost_debug_warn_threshold_usd": (("GRAPH_ASK_COST_DEBUG_WARN_THRESHOLD_USD",), float),
}

# TOML section -> (option prefix, keys written by to_file)
_SECTIONS: dict[str, tuple[str, tuple[str, ...]]] = {
    "llm": ("llm_", ("provider", "model", "temperature", "max_tokens")),
    "store": ("store_", ("connection", "pool_capacity")),
    "schema": ("schema_", ("cache_capacity", "sample_size")),
    "pipeline": (
        "",
        (
            "read_only",
            "discovery_timeout",
            "generation_timeout",
            "execution_timeout",
            "synthesis_timeout",
        ),
    ),
    "server": ("server_", ("host", "port")),
    "cost_telemetry": ("cost_debug_", ("warn_threshold_usd",)),
}


def _toml_value(value: str | int | float | bool) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'
    return repr(value)


class AskConfig:
    """Configuration for GraphAsk."""

    # === LLM Configuration ===

    llm_provider: str = "openai"
    """LLM provider: "openai" """

    llm_model: str = "gpt-4o-mini"
    """Default model for query generation and answer synthesis"""

    llm_temperature: float = 0.0
    """Sampling temperature for both completion calls"""

    llm_max_tokens: int = 4096
    """Maximum tokens per completion"""

    # === API Keys ===

    openai_api_key: str | None = None

    # === Graph Store ===

    store_connection: str = "falkor://127.0.0.1:6379"
    """Default graph store URL (falkor://, falkors://, redis://, rediss://)"""

    store_pool_capacity: int = 16
    """Open store connections kept before the least recently used is closed"""

    # === Schema Configuration ===

    schema_cache_capacity: int = 100
    """Maximum schemas held before least-recently-used eviction"""

    schema_sample_size: int = 100
    """Instances sampled per label or relationship type during discovery"""

    # === Pipeline Configuration ===

    read_only: bool = True
    """Default execution mode when a request carries no read_only_hint"""

    discovery_timeout: float = 60.0
    """Seconds allowed for one schema discovery"""

    generation_timeout: float = 60.0
    """Seconds allowed for one query generation call"""

    execution_timeout: float = 30.0
    """Seconds allowed for one query execution"""

    synthesis_timeout: float = 60.0
    """Seconds allowed for answer synthesis"""

    # === Server Configuration ===

    server_host: str = "0.0.0.0"
    server_port: int = 8080

    # === Cost Telemetry Configuration ===

    cost_debug_warn_threshold_usd: float | None = None
    """Optional warning threshold for per-request estimated cost in cost_debug mode"""

    def __init__(self, **kwargs: Any) -> None:
        """
        Initialize configuration.

        Environment variables are applied over the defaults, then kwargs.

        Args:
            **kwargs: Override any configuration option
        """
        self._load_from_env()
        self._apply(kwargs)

    def _apply(self, values: dict[str, Any]) -> None:
        for key, value in values.items():
            if key.startswith("_") or not hasattr(self, key) or callable(getattr(self, key)):
                raise ValueError(f"Unknown configuration option: {key}")
            setattr(self, key, value)

    def _load_from_env(self) -> None:
        """Apply environment variables that are set."""
        import os

        for option, (names, parse) in _ENV_OPTIONS.items():
            raw = next((os.environ[n] for n in names if os.environ.get(n)), None)
            if raw is not None:
                setattr(self, option, parse(raw))

    @classmethod
    def from_file(cls, path: str | Path, **overrides: Any) -> "AskConfig":
        """
        Load configuration from TOML file.

        Sections are flattened into option names ([llm] model -> llm_model);
        flat top-level keys are accepted as option names. Environment
        variables still win over file values, and overrides win over both.

        Example TOML:
            [llm]
            model = "gpt-4o"
            temperature = 0.0

            [store]
            connection = "falkor://127.0.0.1:6379"

            [pipeline]
            read_only = true
            execution_timeout = 15.0

            [api_keys]
            openai = "sk-..."

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If the file names an unknown option
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        data = _load_toml(path)
        file_values: dict[str, Any] = {}
        for key, value in data.items():
            if key == "api_keys":
                file_values.update({f"{name}_api_key": v for name, v in value.items()})
            elif key in _SECTIONS:
                prefix = _SECTIONS[key][0]
                file_values.update({f"{prefix}{name}": v for name, v in value.items()})
            elif not isinstance(value, dict):
                file_values[key] = value

        config = cls.__new__(cls)
        config._apply(file_values)
        config._load_from_env()
        config._apply(overrides)
        return config

    def to_file(self, path: str | Path) -> None:
        """
        Save configuration to TOML file.

        API keys are never written; unset options are omitted.
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        lines = ["# GraphAsk Configuration", ""]
        for section, (prefix, keys) in _SECTIONS.items():
            lines.append(f"[{section}]")
            for key in keys:
                value = getattr(self, f"{prefix}{key}")
                if value is not None:
                    lines.append(f"{key} = {_toml_value(value)}")
            lines.append("")
        lines.extend(["# API keys are read from OPENAI_API_KEY", ""])

        path.write_text("\n".join(lines))

    def with_overrides(self, **kwargs: Any) -> "AskConfig":
        """Copy with some options replaced."""
        config = AskConfig.__new__(AskConfig)
        config.__dict__.update(self.__dict__)
        config._apply(kwargs)
        return config

    def __repr__(self) -> str:
        from graph_ask.store.base import mask_connection

        return (
            f"AskConfig(llm_model={self.llm_model!r}, "
            f"store_connection={mask_connection(self.store_connection)!r}, "
            f"read_only={self.read_only})"
        )

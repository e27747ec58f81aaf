"""
Configuration record for a wiki generation run.

WikiConfig is the persisted configuration the pipeline is started from: source
directory, file filters, language, cache flag, abstraction bound and provider/model
selection. It is stored as one JSON document; keys missing from the document take
the defaults below.
"""

import json
import logging
import os
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError, field_validator

from errors import ConfigError

logger = logging.getLogger("agentic_wiki.config")

CONFIG_FILENAME = "agentic-wiki.config.json"
CACHE_FILENAME = "agentic-wiki.llm_cache.json"
DEFAULT_OUTPUT_DIR = "agentic-wiki"
DEFAULT_PROVIDER = "OpenRouter"
MIN_ABSTRACTION_NUM = 5

DEFAULT_INCLUDE_PATTERNS = [
    "*.py",
    "*.js",
    "*.jsx",
    "*.ts",
    "*.tsx",
    "*.go",
    "*.java",
    "*.pyi",
    "*.pyx",
    "*.c",
    "*.cc",
    "*.cpp",
    "*.h",
    "*.md",
    "*.rst",
    "Dockerfile",
    "Makefile",
    "*.yaml",
    "*.yml",
]

DEFAULT_EXCLUDE_PATTERNS = [
    "assets/*",
    "data/*",
    "examples/*",
    "images/*",
    "public/*",
    "static/*",
    "temp/*",
    "docs/*",
    "*.env",
    "*.env.*",
    "*.lock",
    "venv/*",
    ".venv/*",
    "*test*",
    "tests/*",
    "v1/*",
    "dist/*",
    "build/*",
    "experimental/*",
    "deprecated/*",
    "misc/*",
    "legacy/*",
    ".git/*",
    ".github/*",
    ".next/*",
    ".vscode/*",
    "obj/*",
    "bin/*",
    "node_modules/*",
    "*.log",
]


def app_storage_dir() -> Path:
    """Application-private storage directory (AGENTIC_WIKI_HOME or ~/.agentic-wiki)."""
    home = (os.environ.get("AGENTIC_WIKI_HOME") or "").strip()
    return Path(home).expanduser() if home else Path.home() / ".agentic-wiki"


def default_cache_path() -> Path:
    return app_storage_dir() / CACHE_FILENAME


class WikiConfig(BaseModel):
    """User configuration for one pipeline run."""

    local_dir: str = Field(..., description="Root directory of the codebase to document")
    project_name: str | None = Field(default=None, description="Overrides the name derived from local_dir")
    output_dir: str = Field(default=DEFAULT_OUTPUT_DIR, description="Base directory for the generated wiki")
    include_patterns: list[str] = Field(default_factory=lambda: list(DEFAULT_INCLUDE_PATTERNS))
    exclude_patterns: list[str] = Field(default_factory=lambda: list(DEFAULT_EXCLUDE_PATTERNS))
    max_file_size: int = Field(default=100, description="Maximum file size in KB")
    language: str = Field(default="english", description="Tutorial language")
    use_cache: bool = Field(default=True, description="Memoize LLM responses by exact prompt")
    max_abstraction_num: int = Field(default=10, description="Upper bound of abstractions to request")
    provider_name: str = Field(default=DEFAULT_PROVIDER, description="Registered LLM provider name")
    model: str | None = Field(default=None, description="Model id; first listed model when unset")
    cache_path: str | None = Field(default=None, description="Overrides the cache document location")
    stage_max_retries: int = Field(default=1, description="Attempts per stage (1 = no retry)")

    @field_validator("local_dir")
    @classmethod
    def _local_dir_not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Local directory is required")
        return v.strip()

    @field_validator("max_file_size")
    @classmethod
    def _positive_size(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("Max file size must be a positive number")
        return v

    @field_validator("max_abstraction_num")
    @classmethod
    def _abstraction_bound(cls, v: int) -> int:
        if v < MIN_ABSTRACTION_NUM:
            raise ValueError(f"Max abstraction number must be at least {MIN_ABSTRACTION_NUM}")
        return v

    @field_validator("stage_max_retries")
    @classmethod
    def _at_least_one_attempt(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Stage max retries must be at least 1")
        return v

    @field_validator("language")
    @classmethod
    def _language_default(cls, v: str) -> str:
        return (v or "english").strip() or "english"

    @property
    def max_file_size_bytes(self) -> int:
        return self.max_file_size * 1024

    def resolved_cache_path(self) -> Path:
        return Path(self.cache_path).expanduser() if self.cache_path else default_cache_path()


def build_config(**values) -> WikiConfig:
    """Construct a WikiConfig, turning pydantic errors into one ConfigError."""
    try:
        return WikiConfig(**values)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'config'}: {err['msg']}" for err in e.errors()
        )
        raise ConfigError(f"Invalid configuration: {problems}") from e


def load_config(path: str | Path, **overrides) -> WikiConfig:
    """
    Load the persisted configuration document and merge overrides on top.

    Keys absent from the document take WikiConfig defaults; overrides whose value is
    None are ignored so CLI flags that were not given do not clobber the file.
    """
    p = Path(path)
    try:
        raw = json.loads(p.read_text(encoding="utf-8"))
    except OSError as e:
        raise ConfigError(f"Cannot read config file {p}: {e}") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"Config file {p} is not valid JSON: {e}") from e
    if not isinstance(raw, dict):
        raise ConfigError(f"Config file {p} must contain a JSON object")
    values = {**raw, **{k: v for k, v in overrides.items() if v is not None}}
    logger.info("Loaded configuration from %s", p)
    return build_config(**values)


def save_config(config: WikiConfig, path: str | Path) -> Path:
    """Write the configuration document (pretty-printed JSON)."""
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(json.dumps(config.model_dump(), indent=2), encoding="utf-8")
    logger.info("Configuration saved to %s", p)
    return p

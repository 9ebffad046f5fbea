"""Configuration file loading and saving.

The config file is YAML, stored at `$XDG_CONFIG_HOME/strand/config.yaml`
(or `~/.config/strand/config.yaml`):

    plugin_dir: ~/.vim/pack/strand/start
    plugins:
      - tpope/vim-surround
      - github@neoclide/coc.nvim:release
      - provider: bitbucket
        user: someone
        repo: something
      - url: https://example.com/plugin.tar.gz

Plugins may be written in shorthand (see parse_declaration) or as mappings.
"""

import logging
import os
from pathlib import Path

import yaml
from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field
from pydantic import ValidationError
from pydantic import field_validator

from .exceptions import ConfigError
from .exceptions import ResolutionError
from .installer import DEFAULT_MAX_CONCURRENT
from .installer import DEFAULT_TIMEOUT_SECONDS
from .schema import PluginDeclaration
from .schema import parse_declaration

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "config.yaml"


def get_config_dir() -> Path:
    """Per-user configuration directory."""
    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg) / "strand"
    return Path.home() / ".config" / "strand"


def get_config_path() -> Path:
    return get_config_dir() / CONFIG_FILENAME


class StrandConfig(BaseModel):
    """Settings for one run: where plugins go and which plugins to install."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    plugin_dir: Path
    plugins: list[PluginDeclaration] = Field(default_factory=list)
    max_concurrent: int = Field(default=DEFAULT_MAX_CONCURRENT, ge=1)
    timeout: float = Field(default=DEFAULT_TIMEOUT_SECONDS, gt=0)

    @field_validator("plugin_dir")
    @classmethod
    def _expand_home(cls, value: Path) -> Path:
        return value.expanduser()

    @field_validator("plugins", mode="before")
    @classmethod
    def _parse_shorthand(cls, value):
        if value is None:
            return []
        if not isinstance(value, list):
            return value
        return [parse_declaration(item) if isinstance(item, str) else item for item in value]

    def with_plugin(self, declaration: PluginDeclaration) -> "StrandConfig":
        """Return a copy with declaration appended to the plugin list."""
        return self.model_copy(update={"plugins": [*self.plugins, declaration]})


def load_config(path: Path) -> StrandConfig:
    """
    Load and validate the configuration file.

    Args:
        path: Path to config.yaml

    Returns:
        StrandConfig

    Raises:
        ConfigError: If the file is missing, not valid YAML, or fails validation
    """
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}", context={"path": str(path)})

    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Failed to read config file {path}: {e}", context={"path": str(path)}) from e

    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping", context={"path": str(path)})

    try:
        config = StrandConfig.model_validate(data)
    except ResolutionError as e:
        raise ConfigError(f"Invalid plugin in {path}: {e.message}", context={"path": str(path)}) from e
    except ValidationError as e:
        raise ConfigError(f"Invalid config file {path}:\n{e}", context={"path": str(path)}) from e

    logger.debug(f"Loaded {len(config.plugins)} plugins from {path}")
    return config


def save_config(config: StrandConfig, path: Path) -> None:
    """
    Write the configuration file, creating its directory if needed.

    Plugins are written in mapping form.

    Raises:
        ConfigError: If the file cannot be written
    """
    data = config.model_dump(mode="json", exclude_none=True)

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)
    except OSError as e:
        raise ConfigError(f"Failed to save config file {path}: {e}", context={"path": str(path)}) from e

    logger.debug(f"Saved config with {len(config.plugins)} plugins to {path}")

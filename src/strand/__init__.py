"""strand - Reinstall editor plugins from tarballs, all at once.

Every run wipes the plugin directory and downloads every declared plugin
concurrently. Configuration is passed in explicitly; the library keeps no
global state.
"""

# Set before the submodule imports, which read it.
__version__ = "0.1.0"

from .config import StrandConfig
from .config import get_config_path
from .config import load_config
from .config import save_config
from .directory import ensure_subdir
from .directory import reset_root
from .exceptions import ConfigError
from .exceptions import DirectoryError
from .exceptions import ExtractError
from .exceptions import FetchError
from .exceptions import ResolutionError
from .exceptions import StrandError
from .extractor import extract
from .fetcher import build_client
from .fetcher import fetch
from .installer import install_all
from .installer import install_plugins
from .installer import install_source
from .resolver import build_download_url
from .resolver import resolve
from .resolver import resolve_all
from .schema import ArchivePlugin
from .schema import GitPlugin
from .schema import GitProvider
from .schema import InstallOutcome
from .schema import InstallReport
from .schema import InstallStatus
from .schema import PluginDeclaration
from .schema import ResolvedSource
from .schema import parse_declaration

__all__ = [
    # Declarations
    "GitProvider",
    "GitPlugin",
    "ArchivePlugin",
    "PluginDeclaration",
    "parse_declaration",
    # Resolution
    "ResolvedSource",
    "build_download_url",
    "resolve",
    "resolve_all",
    # Directories
    "reset_root",
    "ensure_subdir",
    # Download and extraction
    "build_client",
    "fetch",
    "extract",
    # Installation
    "install_plugins",
    "install_all",
    "install_source",
    "InstallStatus",
    "InstallOutcome",
    "InstallReport",
    # Configuration
    "StrandConfig",
    "get_config_path",
    "load_config",
    "save_config",
    # Exceptions
    "StrandError",
    "ConfigError",
    "ResolutionError",
    "DirectoryError",
    "FetchError",
    "ExtractError",
]

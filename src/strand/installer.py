"""Concurrent plugin installation.

Every run is a full reinstall: resolve all declarations, wipe the plugin
directory, then download and unpack every plugin concurrently.

Plugins are isolated from each other. A failed download or extraction is
recorded in that plugin's outcome and never cancels its siblings; the
report always covers every plugin.
"""

import asyncio
import logging
from collections.abc import Iterable
from collections.abc import Sequence
from pathlib import Path

import httpx

from .directory import ensure_subdir
from .directory import reset_root
from .exceptions import DirectoryError
from .exceptions import ExtractError
from .exceptions import FetchError
from .extractor import extract
from .fetcher import build_client
from .fetcher import fetch
from .resolver import resolve_all
from .schema import InstallOutcome
from .schema import InstallReport
from .schema import InstallStatus
from .schema import PluginDeclaration
from .schema import ResolvedSource

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENT = 8
DEFAULT_TIMEOUT_SECONDS = 60.0


async def _install_one(client: httpx.AsyncClient, source: ResolvedSource, root: Path) -> None:
    target_dir = ensure_subdir(root, source.target_name)
    async with fetch(client, source.download_url) as chunks:
        await extract(chunks, target_dir)


async def install_source(
    client: httpx.AsyncClient,
    source: ResolvedSource,
    root: Path,
    timeout: float | None = DEFAULT_TIMEOUT_SECONDS,
) -> InstallOutcome:
    """
    Install a single plugin and report how it went. Never raises for plugin failures.

    Args:
        client: HTTP client shared by the run
        source: Resolved plugin source
        root: Plugin root directory (already reset)
        timeout: Seconds allowed for download plus extraction (None for no limit)

    Returns:
        InstallOutcome for this plugin
    """
    name = source.target_name
    try:
        await asyncio.wait_for(_install_one(client, source, root), timeout=timeout)
    except TimeoutError:
        reason = f"timed out after {timeout:g}s"
        logger.warning(f"Failed to download {name}: {reason}")
        return InstallOutcome(target_name=name, status=InstallStatus.FETCH_FAILED, reason=reason)
    except FetchError as e:
        logger.warning(f"Failed to download {name}: {e.message}")
        return InstallOutcome(target_name=name, status=InstallStatus.FETCH_FAILED, reason=e.message)
    except (ExtractError, DirectoryError) as e:
        logger.warning(f"Failed to extract {name}: {e.message}")
        return InstallOutcome(target_name=name, status=InstallStatus.EXTRACT_FAILED, reason=e.message)

    logger.info(f"Installed {name}")
    return InstallOutcome(target_name=name, status=InstallStatus.SUCCESS)


async def install_all(
    sources: Sequence[ResolvedSource],
    root: Path,
    *,
    client: httpx.AsyncClient | None = None,
    max_concurrent: int = DEFAULT_MAX_CONCURRENT,
    timeout: float | None = DEFAULT_TIMEOUT_SECONDS,
) -> InstallReport:
    """
    Download and unpack every source concurrently into its own directory under root.

    Process:
    1. One task per source, admitted through a semaphore of max_concurrent
    2. Each task: create plugin directory -> download -> unpack
    3. Wait for every task to finish, then build the report

    Args:
        sources: Resolved sources with unique target names
        root: Plugin root directory (reset by the caller beforehand)
        client: HTTP client to use (a default one is built and closed if omitted)
        max_concurrent: Maximum number of plugins installing at once
        timeout: Per-plugin time limit in seconds (None for no limit)

    Returns:
        InstallReport with exactly one outcome per source

    Example:
        >>> sources = resolve_all([parse_declaration("tpope/vim-surround")])
        >>> report = await install_all(sources, Path("~/.vim/pack/strand/start").expanduser())
        >>> print(f"{len(report.succeeded)}/{len(report)} installed")
    """
    if max_concurrent < 1:
        raise ValueError(f"max_concurrent must be at least 1, got {max_concurrent}")

    if client is None:
        async with build_client() as owned_client:
            return await install_all(
                sources, root, client=owned_client, max_concurrent=max_concurrent, timeout=timeout
            )

    semaphore = asyncio.Semaphore(max_concurrent)

    async def admitted(source: ResolvedSource) -> InstallOutcome:
        async with semaphore:
            return await install_source(client, source, root, timeout)

    logger.info(f"Installing {len(sources)} plugins into {root}")
    outcomes = await asyncio.gather(*(admitted(source) for source in sources))

    report = InstallReport(outcomes=tuple(outcomes))
    logger.info(f"Installed {len(report.succeeded)} of {len(report)} plugins")
    return report


async def install_plugins(
    declarations: Iterable[PluginDeclaration],
    root: Path,
    *,
    client: httpx.AsyncClient | None = None,
    max_concurrent: int = DEFAULT_MAX_CONCURRENT,
    timeout: float | None = DEFAULT_TIMEOUT_SECONDS,
) -> InstallReport:
    """
    Reinstall every declared plugin from scratch.

    Resolution and the plugin directory reset happen before any download;
    failures there are fatal and raised to the caller.

    Args:
        declarations: Declared plugins
        root: Plugin root directory (its current contents are deleted)
        client: Optional HTTP client
        max_concurrent: Maximum number of plugins installing at once
        timeout: Per-plugin time limit in seconds

    Returns:
        InstallReport covering every declared plugin

    Raises:
        ResolutionError: If any declaration is invalid or two share a directory
        DirectoryError: If the plugin directory cannot be reset
    """
    sources = resolve_all(declarations)
    reset_root(root)
    return await install_all(sources, root, client=client, max_concurrent=max_concurrent, timeout=timeout)

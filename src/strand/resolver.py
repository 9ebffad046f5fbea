"""Plugin resolver - Turn declarations into download sources.

Resolution is pure: no filesystem or network access. The whole declared
list is resolved before a run touches the plugin directory, so configuration
mistakes surface before anything is deleted or downloaded.
"""

import logging
import re
from collections.abc import Iterable
from posixpath import basename
from urllib.parse import unquote
from urllib.parse import urlsplit

from .exceptions import ResolutionError
from .schema import ArchivePlugin
from .schema import GitPlugin
from .schema import GitProvider
from .schema import PluginDeclaration
from .schema import ResolvedSource

logger = logging.getLogger(__name__)

# Both hosts resolve HEAD to the repository's default branch.
DEFAULT_REF = "HEAD"

_URL_TEMPLATES = {
    GitProvider.GITHUB: "https://codeload.github.com/{owner}/{repo}/tar.gz/{ref}",
    GitProvider.BITBUCKET: "https://bitbucket.org/{owner}/{repo}/get/{ref}.tar.gz",
}

# Longest first so "x.tar.gz" loses the whole suffix.
_ARCHIVE_SUFFIXES = (".tar.gz", ".tgz", ".gz", ".tar")

# Characters both hosts allow in owner and repository names.
_NAME_PATTERN = re.compile(r"[A-Za-z0-9._-]+")


def build_download_url(provider: GitProvider, owner: str, repo: str, ref: str | None = None) -> str:
    """Build the tarball URL for a repository snapshot.

    Args:
        provider: Git hosting provider
        owner: Repository owner's username
        repo: Repository name
        ref: Branch, tag or commit hash (None for the default branch)

    Returns:
        Fully qualified tar.gz download URL

    Example:
        >>> build_download_url(GitProvider.GITHUB, "neoclide", "coc.nvim", "release")
        'https://codeload.github.com/neoclide/coc.nvim/tar.gz/release'
    """
    return _URL_TEMPLATES[provider].format(owner=owner, repo=repo, ref=ref or DEFAULT_REF)


def _archive_target_name(url: str) -> str:
    segment = unquote(basename(urlsplit(url).path.rstrip("/")))
    lowered = segment.lower()
    for suffix in _ARCHIVE_SUFFIXES:
        if lowered.endswith(suffix):
            return segment[: -len(suffix)]
    return segment


def _resolve_git(plugin: GitPlugin) -> ResolvedSource:
    owner = plugin.owner.strip()
    repo = plugin.repo.strip()

    if not owner or not repo:
        raise ResolutionError(
            f"Git plugin '{plugin}' needs a non-empty owner and repo",
            context={"owner": plugin.owner, "repo": plugin.repo},
        )
    if any(not _NAME_PATTERN.fullmatch(name) or name in (".", "..") for name in (owner, repo)):
        raise ResolutionError(
            f"Git plugin '{plugin}' has an invalid owner or repo name",
            context={"owner": plugin.owner, "repo": plugin.repo},
        )

    ref = plugin.ref.strip() if plugin.ref else None
    return ResolvedSource(
        download_url=build_download_url(plugin.provider, owner, repo, ref),
        target_name=repo,
    )


def _resolve_archive(plugin: ArchivePlugin) -> ResolvedSource:
    url = plugin.url.strip()
    parts = urlsplit(url)

    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise ResolutionError(
            f"Archive plugin URL '{plugin.url}' is not an http(s) URL",
            context={"url": plugin.url},
        )

    target_name = _archive_target_name(url)
    if not target_name or target_name in (".", "..") or "/" in target_name or "\\" in target_name:
        raise ResolutionError(
            f"Cannot derive a plugin directory name from '{plugin.url}'",
            context={"url": plugin.url},
        )

    return ResolvedSource(download_url=url, target_name=target_name)


def resolve(declaration: PluginDeclaration) -> ResolvedSource:
    """
    Resolve one plugin declaration into a download source.

    Git plugins are downloaded from the provider's tarball endpoint and
    installed under the repository name. Archive plugins are downloaded
    verbatim and installed under the URL's last path segment, minus its
    compression suffix.

    Args:
        declaration: GitPlugin or ArchivePlugin

    Returns:
        ResolvedSource with download URL and target directory name

    Raises:
        ResolutionError: If the declaration is incomplete or malformed
    """
    if isinstance(declaration, GitPlugin):
        return _resolve_git(declaration)
    if isinstance(declaration, ArchivePlugin):
        return _resolve_archive(declaration)
    raise ResolutionError(f"Unsupported plugin declaration: {declaration!r}")


def resolve_all(declarations: Iterable[PluginDeclaration]) -> list[ResolvedSource]:
    """
    Resolve every declaration, enforcing unique target directory names.

    Args:
        declarations: Declared plugins, in configuration order

    Returns:
        Resolved sources in the same order

    Raises:
        ResolutionError: On the first invalid declaration, or when two
            declarations would install into the same directory
    """
    resolved: list[ResolvedSource] = []
    # Keyed case-insensitively: "Foo" and "foo" share a directory on some filesystems.
    claimed: dict[str, PluginDeclaration] = {}

    for declaration in declarations:
        source = resolve(declaration)
        key = source.target_name.casefold()

        previous = claimed.get(key)
        if previous is not None:
            raise ResolutionError(
                f"Plugins '{previous}' and '{declaration}' both install into '{source.target_name}'",
                context={"target_name": source.target_name},
            )

        claimed[key] = declaration
        resolved.append(source)
        logger.debug(f"Resolved {declaration} -> {source.download_url}")

    return resolved

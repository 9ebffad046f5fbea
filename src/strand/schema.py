"""Plugin declaration and install result models.

Declarations come from the user (config file or command line). Resolved
sources, outcomes and reports are derived values and never change once built.
"""

from enum import Enum

from pydantic import AliasChoices
from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field
from pydantic import field_validator

from .exceptions import ResolutionError


class GitProvider(str, Enum):
    """Supported Git hosting providers."""

    GITHUB = "github"
    BITBUCKET = "bitbucket"

    @classmethod
    def parse(cls, value: "str | GitProvider") -> "GitProvider":
        """Parse a provider name case-insensitively.

        Raises:
            ResolutionError: If the provider is not supported
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            supported = ", ".join(f"'{p.value}'" for p in cls)
            raise ResolutionError(
                f"Git provider '{value}' not recognised -- try {supported} instead",
                context={"provider": str(value)},
            ) from None


class GitPlugin(BaseModel):
    """Plugin hosted in a Git repository, downloaded as a tarball snapshot.

    `ref` may be a branch, tag or commit hash. None means the default branch.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    provider: GitProvider = GitProvider.GITHUB
    owner: str = Field(validation_alias=AliasChoices("owner", "user"))
    repo: str
    ref: str | None = Field(default=None, validation_alias=AliasChoices("ref", "git_ref"))

    @field_validator("provider", mode="before")
    @classmethod
    def _parse_provider(cls, value):
        return GitProvider.parse(value)

    def __str__(self) -> str:
        text = f"{self.provider.value}@{self.owner}/{self.repo}"
        return f"{text}:{self.ref}" if self.ref else text


class ArchivePlugin(BaseModel):
    """Plugin published as a direct link to a tar.gz archive."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    url: str

    def __str__(self) -> str:
        return self.url


PluginDeclaration = GitPlugin | ArchivePlugin


def parse_declaration(text: str) -> PluginDeclaration:
    """Parse the shorthand form of a plugin declaration.

    Accepted forms:
    - `owner/repo` (GitHub, default branch)
    - `provider@owner/repo`
    - `owner/repo:ref` or `provider@owner/repo:ref`
    - `http://...` or `https://...` (direct archive link)

    Args:
        text: Shorthand declaration

    Returns:
        GitPlugin or ArchivePlugin

    Raises:
        ResolutionError: If the shorthand is malformed

    Example:
        >>> parse_declaration("bitbucket@someone/plugin:v2")
        GitPlugin(provider=<GitProvider.BITBUCKET: 'bitbucket'>, owner='someone', repo='plugin', ref='v2')
    """
    text = text.strip()
    if text.lower().startswith(("http://", "https://")):
        return ArchivePlugin(url=text)

    provider = GitProvider.GITHUB
    path = text
    if "@" in path:
        provider_name, path = path.split("@", 1)
        provider = GitProvider.parse(provider_name)

    ref = None
    if ":" in path:
        path, ref = path.split(":", 1)
        if not ref:
            raise ResolutionError(f"Empty ref in plugin declaration '{text}'", context={"declaration": text})

    owner, sep, repo = path.partition("/")
    if not sep or not owner or not repo or "/" in repo:
        raise ResolutionError(
            f"Plugin declaration '{text}' is not of the form [provider@]owner/repo[:ref]",
            context={"declaration": text},
        )

    return GitPlugin(provider=provider, owner=owner, repo=repo, ref=ref)


class ResolvedSource(BaseModel):
    """A declaration turned into a download URL and a target directory name."""

    model_config = ConfigDict(frozen=True)

    download_url: str
    target_name: str


class InstallStatus(str, Enum):
    """Terminal state of one plugin install."""

    SUCCESS = "success"
    FETCH_FAILED = "fetch_failed"
    EXTRACT_FAILED = "extract_failed"


class InstallOutcome(BaseModel):
    """Result of installing a single plugin. `reason` is set on failure."""

    model_config = ConfigDict(frozen=True)

    target_name: str
    status: InstallStatus
    reason: str | None = None

    @property
    def ok(self) -> bool:
        return self.status is InstallStatus.SUCCESS


class InstallReport(BaseModel):
    """All outcomes of one run, one per resolved source.

    Outcome order is not meaningful.
    """

    model_config = ConfigDict(frozen=True)

    outcomes: tuple[InstallOutcome, ...] = ()

    def __len__(self) -> int:
        return len(self.outcomes)

    @property
    def succeeded(self) -> list[InstallOutcome]:
        return [o for o in self.outcomes if o.ok]

    @property
    def failed(self) -> list[InstallOutcome]:
        return [o for o in self.outcomes if not o.ok]

    @property
    def ok(self) -> bool:
        """True when no plugin failed."""
        return not self.failed

"""Tests for concurrent plugin installation."""

import asyncio

import httpx
import pytest
from strand import InstallStatus
from strand import ResolutionError
from strand import ResolvedSource
from strand import install_all
from strand import install_plugins
from strand import parse_declaration
from strand import reset_root


def _source(name: str, host: str = "example.com") -> ResolvedSource:
    return ResolvedSource(download_url=f"https://{host}/{name}.tar.gz", target_name=name)


def _by_name(report) -> dict:
    return {outcome.target_name: outcome for outcome in report.outcomes}


@pytest.fixture
def root(tmp_path):
    path = tmp_path / "plugins"
    reset_root(path)
    return path


@pytest.mark.asyncio
async def test_install_all_success(root, mock_client, make_tarball):
    """Test every plugin is unpacked into its own directory."""

    def handler(request: httpx.Request) -> httpx.Response:
        name = request.url.path.strip("/").removesuffix(".tar.gz")
        return httpx.Response(200, content=make_tarball({f"plugin/{name}.vim": name.encode()}, prefix=f"{name}-main/"))

    sources = [_source("vim-surround"), _source("vim-endwise"), _source("nerdtree")]

    async with mock_client(handler) as client:
        report = await install_all(sources, root, client=client)

    assert len(report) == 3
    assert report.ok
    for source in sources:
        name = source.target_name
        assert (root / name / "plugin" / f"{name}.vim").read_bytes() == name.encode()
        assert not (root / name / f"{name}-main").exists()


@pytest.mark.asyncio
async def test_one_unreachable_host_is_isolated(root, mock_client, make_tarball):
    """Test a single fetch failure does not affect the other plugins."""
    archive = make_tarball({"plugin/x.vim": b"x"})

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "nonexistent.invalid":
            raise httpx.ConnectError("Name or service not known", request=request)
        return httpx.Response(200, content=archive)

    sources = [_source(f"plugin-{i}") for i in range(5)]
    sources.insert(2, _source("missing", host="nonexistent.invalid"))

    async with mock_client(handler) as client:
        report = await install_all(sources, root, client=client)

    outcomes = _by_name(report)
    assert len(report) == 6
    assert outcomes["missing"].status is InstallStatus.FETCH_FAILED
    assert "Name or service not known" in outcomes["missing"].reason
    assert len(report.succeeded) == 5
    assert [o.target_name for o in report.failed] == ["missing"]


@pytest.mark.asyncio
async def test_http_error_and_bad_archive(root, mock_client, make_tarball):
    """Test fetch and extract failures are tagged differently."""

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/gone.tar.gz":
            return httpx.Response(404)
        if request.url.path == "/corrupt.tar.gz":
            return httpx.Response(200, content=b"<html>definitely not gzip</html>")
        return httpx.Response(200, content=make_tarball({"plugin/ok.vim": b"ok"}))

    async with mock_client(handler) as client:
        report = await install_all([_source("gone"), _source("corrupt"), _source("fine")], root, client=client)

    outcomes = _by_name(report)
    assert outcomes["gone"].status is InstallStatus.FETCH_FAILED
    assert "HTTP 404" in outcomes["gone"].reason
    assert outcomes["corrupt"].status is InstallStatus.EXTRACT_FAILED
    assert outcomes["corrupt"].reason
    assert outcomes["fine"].status is InstallStatus.SUCCESS
    assert (root / "fine" / "plugin" / "ok.vim").exists()


@pytest.mark.asyncio
async def test_body_read_error_is_fetch_failure(root, mock_client, make_tarball):
    archive = make_tarball({"plugin/a.vim": bytes(range(256)) * 400})

    async def broken_body():
        yield archive[:256]
        raise httpx.ReadError("connection reset by peer")

    async with mock_client(lambda request: httpx.Response(200, content=broken_body())) as client:
        report = await install_all([_source("flaky")], root, client=client)

    (outcome,) = report.outcomes
    assert outcome.status is InstallStatus.FETCH_FAILED
    assert "connection reset by peer" in outcome.reason


@pytest.mark.asyncio
async def test_slow_host_times_out_alone(root, mock_client, make_tarball):
    """Test the per-plugin timeout only fails the unresponsive plugin."""
    archive = make_tarball({"plugin/fast.vim": b"fast"})

    async def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "slow.example.com":
            await asyncio.sleep(10)
        return httpx.Response(200, content=archive)

    sources = [_source("slow", host="slow.example.com"), _source("fast")]

    async with mock_client(handler) as client:
        report = await install_all(sources, root, client=client, timeout=0.2)

    outcomes = _by_name(report)
    assert outcomes["slow"].status is InstallStatus.FETCH_FAILED
    assert outcomes["slow"].reason == "timed out after 0.2s"
    assert outcomes["fast"].status is InstallStatus.SUCCESS


@pytest.mark.asyncio
async def test_concurrency_is_bounded(root, mock_client, make_tarball):
    """Test no more than max_concurrent plugins are in flight at once."""
    archive = make_tarball({"plugin/p.vim": b"p"})
    in_flight = 0
    peak = 0

    async def handler(request: httpx.Request) -> httpx.Response:
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0.02)
        in_flight -= 1
        return httpx.Response(200, content=archive)

    sources = [_source(f"plugin-{i}") for i in range(10)]

    async with mock_client(handler) as client:
        report = await install_all(sources, root, client=client, max_concurrent=3)

    assert report.ok
    assert len(report) == 10
    assert 1 <= peak <= 3


@pytest.mark.asyncio
async def test_install_all_empty(root):
    """Test an empty plugin list yields an empty, successful report."""
    report = await install_all([], root)

    assert len(report) == 0
    assert report.ok


@pytest.mark.asyncio
async def test_install_all_rejects_zero_concurrency(root):
    with pytest.raises(ValueError, match="max_concurrent"):
        await install_all([_source("a")], root, max_concurrent=0)


@pytest.mark.asyncio
async def test_report_always_complete(root, mock_client):
    """Test every plugin gets an outcome even when all fail."""

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("unreachable", request=request)

    sources = [_source(f"plugin-{i}") for i in range(7)]

    async with mock_client(handler) as client:
        report = await install_all(sources, root, client=client)

    assert len(report) == 7
    assert len(report.failed) == 7
    assert {o.target_name for o in report.outcomes} == {s.target_name for s in sources}


@pytest.mark.asyncio
async def test_install_plugins_replaces_previous_contents(tmp_path, mock_client, make_tarball):
    """Test a run wipes old plugins before installing declared ones."""
    root = tmp_path / "plugins"
    (root / "old-plugin").mkdir(parents=True)
    (root / "old-plugin" / "old.vim").write_text("old")

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=make_tarball({"plugin/surround.vim": b"new"}))

    async with mock_client(handler) as client:
        report = await install_plugins([parse_declaration("tpope/vim-surround")], root, client=client)

    assert report.ok
    assert not (root / "old-plugin").exists()
    assert (root / "vim-surround" / "plugin" / "surround.vim").read_bytes() == b"new"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "second",
    ["fork/vim-surround", "https://example.com/a%2Fb.tar.gz"],
)
async def test_install_plugins_resolution_error_before_any_io(tmp_path, mock_client, second):
    """Test configuration errors abort before the reset and before any request."""
    root = tmp_path / "plugins"
    (root / "keep").mkdir(parents=True)
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200)

    declarations = [parse_declaration("tpope/vim-surround"), parse_declaration(second)]

    async with mock_client(handler) as client:
        with pytest.raises(ResolutionError):
            await install_plugins(declarations, root, client=client)

    assert requests == []
    assert (root / "keep").exists()

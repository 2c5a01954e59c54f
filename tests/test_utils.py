"""Tests for avatar path validation."""

import os
from urllib.parse import quote

import pytest

import beeperpanel.utils as utils
from beeperpanel.utils import (
    AvatarPathResult,
    RejectReason,
    allowed_avatar_roots,
    avatar_path_result,
    get_allowed_avatar_roots,
    is_path_allowed,
    safe_avatar_path,
)


def file_url(path: str) -> str:
    return "file://" + quote(path)


@pytest.fixture
def home(tmp_path):
    """Fake home directory."""
    return str(tmp_path / "home")


@pytest.fixture
def roots(home):
    """Linux avatar roots without XDG_DATA_HOME."""
    return allowed_avatar_roots(platform="linux", environ={}, home=home)


@pytest.fixture
def root(roots):
    return roots[0]


class TestAllowedAvatarRoots:
    """Test platform-specific root resolution."""

    def test_macos(self, home):
        roots = allowed_avatar_roots(platform="darwin", environ={}, home=home)
        assert roots == (
            os.path.join(home, "Library", "Application Support", "BeeperTexts", "media"),
        )

    def test_windows(self, home):
        roots = allowed_avatar_roots(platform="win32", environ={}, home=home)
        assert roots == (os.path.join(home, "AppData", "Roaming", "BeeperTexts", "media"),)

    def test_linux_fallback_only(self, home):
        roots = allowed_avatar_roots(platform="linux", environ={}, home=home)
        assert roots == (os.path.join(home, ".local", "share", "BeeperTexts", "media"),)

    def test_linux_empty_xdg_ignored(self, home):
        roots = allowed_avatar_roots(platform="linux", environ={"XDG_DATA_HOME": ""}, home=home)
        assert len(roots) == 1

    def test_linux_xdg_in_addition_to_fallback(self, home, tmp_path):
        xdg = str(tmp_path / "xdg")
        roots = allowed_avatar_roots(platform="linux", environ={"XDG_DATA_HOME": xdg}, home=home)
        assert roots == (
            os.path.join(xdg, "BeeperTexts", "media"),
            os.path.join(home, ".local", "share", "BeeperTexts", "media"),
        )

    def test_duplicate_roots_collapsed(self, home):
        xdg = os.path.join(home, ".local", "share")
        roots = allowed_avatar_roots(platform="linux", environ={"XDG_DATA_HOME": xdg}, home=home)
        assert len(roots) == 1

    def test_roots_are_normalised(self, tmp_path):
        home = str(tmp_path) + "/./home//"
        (root,) = allowed_avatar_roots(platform="darwin", environ={}, home=home)
        assert root == os.path.normpath(root)
        assert os.path.isabs(root)

    def test_process_roots_cached(self):
        get_allowed_avatar_roots.cache_clear()
        try:
            assert get_allowed_avatar_roots() is get_allowed_avatar_roots()
        finally:
            get_allowed_avatar_roots.cache_clear()


class TestIsPathAllowed:
    """Test the separator-bounded containment check."""

    def test_root_itself(self, root):
        assert is_path_allowed(root, [root])

    def test_descendant(self, root):
        assert is_path_allowed(os.path.join(root, "a", "b.png"), [root])

    def test_sibling_with_shared_prefix(self, root):
        assert not is_path_allowed(root + "-evil", [root])
        assert not is_path_allowed(os.path.join(root + "-evil", "x.png"), [root])

    def test_no_roots(self, root):
        assert not is_path_allowed(root, [])


class TestSafeAvatarPath:
    """Test accepted avatar references."""

    def test_valid_path(self, roots, root):
        path = os.path.join(root, "contacts", "alice.png")
        assert safe_avatar_path(file_url(path), roots) == path

    def test_percent_encoded_segments(self, roots, root):
        path = os.path.join(root, "my photos", "čau #1.png")
        url = file_url(path)
        assert "%20" in url
        assert safe_avatar_path(url, roots) == path

    def test_redundant_segments_canonicalised(self, roots, root):
        url = "file://" + root + "//a/./b/../c.png"
        assert safe_avatar_path(url, roots) == os.path.join(root, "a", "c.png")

    def test_root_itself_accepted(self, roots, root):
        assert safe_avatar_path(file_url(root), roots) == root

    def test_xdg_and_fallback_both_accepted(self, home, tmp_path):
        xdg = str(tmp_path / "xdg")
        roots = allowed_avatar_roots(platform="linux", environ={"XDG_DATA_HOME": xdg}, home=home)
        for root in roots:
            path = os.path.join(root, "x.png")
            assert safe_avatar_path(file_url(path), roots) == path

    def test_idempotent(self, roots, root):
        first = safe_avatar_path(file_url(os.path.join(root, "a", "..", "b c.png")), roots)
        assert first is not None
        assert safe_avatar_path(file_url(first), roots) == first

    def test_deterministic(self, roots, root):
        url = file_url(os.path.join(root, "x.png"))
        assert avatar_path_result(url, roots) == avatar_path_result(url, roots)

    def test_result_is_tagged(self, roots, root):
        path = os.path.join(root, "x.png")
        result = avatar_path_result(file_url(path), roots)
        assert result == AvatarPathResult(path=path)
        assert result.ok
        assert result.reason is None

    @pytest.mark.parametrize(
        "kwargs",
        [{}, {"path": "/x.png", "reason": RejectReason.SCHEME}],
    )
    def test_result_needs_exactly_one_field(self, kwargs):
        with pytest.raises(ValueError, match="exactly one"):
            AvatarPathResult(**kwargs)


class TestRejections:
    """Test rejected avatar references and their reasons."""

    @pytest.mark.parametrize(
        "url",
        [
            "https://evil.example/x.png",
            "/home/user/x.png",
            "FILE:///x.png",
            " file:///x.png",
            "",
            "https://evil.example/?next=file:///x.png",
        ],
    )
    def test_scheme(self, roots, url):
        result = avatar_path_result(url, roots)
        assert result.reason is RejectReason.SCHEME
        assert safe_avatar_path(url, roots) is None

    def test_non_string(self, roots):
        assert avatar_path_result(None, roots).reason is RejectReason.SCHEME

    def test_traversal_out_of_root(self, roots, root):
        url = "file://" + root + "/../../etc/passwd"
        assert root in url
        result = avatar_path_result(url, roots)
        assert result.reason is RejectReason.OUTSIDE_ROOTS
        assert result.path is None

    def test_encoded_traversal(self, roots, root):
        url = "file://" + root + "/%2e%2e/%2e%2e/etc/passwd"
        assert safe_avatar_path(url, roots) is None

    def test_sibling_prefix(self, roots, root):
        url = file_url(root + "-evil/x.png")
        assert avatar_path_result(url, roots).reason is RejectReason.OUTSIDE_ROOTS

    def test_outside_roots(self, roots):
        assert avatar_path_result("file:///etc/passwd", roots).reason is RejectReason.OUTSIDE_ROOTS

    def test_encoded_nul(self, roots, root):
        url = "file://" + root + "/x.png%00.txt"
        assert avatar_path_result(url, roots).reason is RejectReason.NUL_BYTE

    def test_raw_nul(self, roots, root):
        url = "file://" + root + "/x\0.png"
        assert avatar_path_result(url, roots).reason is RejectReason.NUL_BYTE

    @pytest.mark.parametrize("suffix", ["/%", "/%4", "/%zz.png", "/100%.png"])
    def test_malformed_escape(self, roots, root, suffix):
        result = avatar_path_result("file://" + root + suffix, roots)
        assert result.reason is RejectReason.DECODE

    def test_invalid_utf8(self, roots, root):
        result = avatar_path_result("file://" + root + "/%ff%fe.png", roots)
        assert result.reason is RejectReason.DECODE

    def test_parent_segment_surviving_normalisation(self, roots, root, monkeypatch):
        monkeypatch.setattr(utils.os.path, "normpath", lambda path: path)
        url = "file://" + root + "/a/../x.png"
        assert avatar_path_result(url, roots).reason is RejectReason.TRAVERSAL

    def test_unexpected_error(self, roots, root, monkeypatch):
        def boom(path):
            raise RuntimeError("boom")

        monkeypatch.setattr(utils.os.path, "abspath", boom)
        result = avatar_path_result(file_url(os.path.join(root, "x.png")), roots)
        assert result.reason is RejectReason.ERROR
        assert result.path is None

import pytest

from advert_desk.utils.canva import BLANK_TARGET, check_share_link, preview_url


class TestCheckShareLink:
    @pytest.mark.parametrize("raw", ["", "   ", None])
    def test_empty_is_required(self, raw):
        result = check_share_link(raw)
        assert not result.ok
        assert result.reason == "link.required"
        assert result.url is None

    @pytest.mark.parametrize("raw", ["canva.com/design/abc/view", "ftp://www.canva.com/design/abc/view", "www.canva.com/x"])
    def test_scheme_required(self, raw):
        result = check_share_link(raw)
        assert not result.ok
        assert result.reason == "link.scheme"
        assert result.url is None

    def test_scheme_is_case_insensitive(self):
        assert check_share_link("HTTPS://www.canva.com/design/abc/view").ok

    def test_host_fragment_required(self):
        result = check_share_link("https://example.com/design/abc/view")
        assert not result.ok
        assert result.reason == "link.host"
        assert result.url is None

    def test_valid_link_is_stripped(self):
        result = check_share_link("  https://www.canva.com/design/DAF1/abc/view  ")
        assert result.ok
        assert result.url == "https://www.canva.com/design/DAF1/abc/view"
        assert result.hint is None
        assert result.reason is None

    @pytest.mark.parametrize("suffix", ["/view", "/watch", "/present", "/view?utm_source=share"])
    def test_view_like_links_have_no_hint(self, suffix):
        assert check_share_link(f"https://www.canva.com/design/abc{suffix}").hint is None

    def test_edit_link_gets_hint(self):
        result = check_share_link("https://www.canva.com/design/abc/edit")
        assert result.ok
        assert result.hint == "link.hint_view"


class TestPreviewUrl:
    def test_empty_gives_blank_target(self):
        assert preview_url("") == BLANK_TARGET
        assert preview_url(None) == BLANK_TARGET

    def test_edit_becomes_embedded_view(self):
        assert preview_url("https://www.canva.com/design/DAF1/abc/edit") == "https://www.canva.com/design/DAF1/abc/view?embed"

    def test_present_with_trailing_slash(self):
        assert preview_url("https://www.canva.com/design/DAF1/abc/present/") == "https://www.canva.com/design/DAF1/abc/view?embed"

    def test_existing_query_is_kept(self):
        url = preview_url("https://www.canva.com/design/DAF1/abc/edit?utm_content=x")
        assert url == "https://www.canva.com/design/DAF1/abc/view?utm_content=x&embed"

    def test_embed_marker_not_duplicated(self):
        url = "https://www.canva.com/design/DAF1/abc/view?embed"
        assert preview_url(url) == url

    def test_idempotent(self):
        once = preview_url("https://www.canva.com/design/DAF1/abc/edit")
        assert preview_url(once) == once
        assert "/edit" not in once
        assert "embed" in once

    @pytest.mark.parametrize("url", [
        "https://example.com/design/abc/edit",
        "https://www.canva.com/templates/abc/edit",
    ])
    def test_other_urls_unchanged(self, url):
        assert preview_url(url) == url

    def test_unparseable_url_unchanged(self):
        assert preview_url("http://[canva.com/design/x") == "http://[canva.com/design/x"

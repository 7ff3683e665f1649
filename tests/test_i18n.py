import pytest

from advert_desk.i18n import Localizer, lang_code2language


@pytest.mark.parametrize("code, language", [
    ("en", "english"),
    ("en-GB", "english"),
    ("EN_us", "english"),
    ("fr", "english"),
    (None, "english"),
    ("", "english"),
])
def test_lang_code2language(code, language):
    assert lang_code2language(code) == language


class TestLocalizer:
    def test_nested_key_with_params(self, lz):
        assert lz("moderation.errors.score", min=0, max=20) == "Score must be a number from 0 to 20."

    @pytest.mark.parametrize("key", ["nope.key", "moderation", "moderation.errors", "moderation.errors.missing"])
    def test_unknown_keys(self, lz, key):
        with pytest.raises(KeyError):
            lz.get(key)

    def test_missing_language_falls_back(self):
        assert Localizer("klingon").get("buttons.back") == "Back"

    def test_default_language_has_no_fallback(self, lz):
        with pytest.raises(KeyError):
            lz.get("buttons.nothing_here")

"""Tests for visitor identity helpers."""

from consently.services.visitor import (
    derive_visitor_token,
    detect_device_type,
    extract_browser,
    extract_os,
    hash_email,
    is_valid_visitor_id,
    mask_email,
)

CHROME_WINDOWS = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36"
)
SAFARI_IPHONE = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_2 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.2 Mobile/15E148 Safari/604.1"
)
CHROME_ANDROID_TABLET = (
    "Mozilla/5.0 (Linux; Android 13; SM-X700) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/121.0.0.0 Safari/537.36"
)
EDGE = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36 Edg/122.0.2365.66"
)


class TestHashing:
    def test_hash_email_normalizes(self):
        assert hash_email("  User@Example.COM ") == hash_email("user@example.com")

    def test_hash_email_sha256(self):
        assert len(hash_email("a@b.co")) == 64

    def test_visitor_token_deterministic(self):
        t1 = derive_visitor_token("1.2.3.4", CHROME_WINDOWS, "shop.example.com")
        t2 = derive_visitor_token("1.2.3.4", CHROME_WINDOWS, "shop.example.com")
        assert t1 == t2

    def test_visitor_token_differs_by_domain(self):
        t1 = derive_visitor_token("1.2.3.4", CHROME_WINDOWS, "a.example.com")
        t2 = derive_visitor_token("1.2.3.4", CHROME_WINDOWS, "b.example.com")
        assert t1 != t2

    def test_visitor_token_uses_first_50_ua_chars(self):
        t1 = derive_visitor_token("1.2.3.4", "x" * 50 + "tail-one", "d")
        t2 = derive_visitor_token("1.2.3.4", "x" * 50 + "tail-two", "d")
        assert t1 == t2


class TestVisitorIds:
    def test_consent_id_format(self):
        assert is_valid_visitor_id("CNST-ABCD-EF23-XY99")

    def test_consent_id_rejects_ambiguous_chars(self):
        # 0 and 1 are outside the alphabet
        assert not is_valid_visitor_id("CNST-AB0D-EF23-XY99")
        assert not is_valid_visitor_id("CNST-ABCD-EF1Z-XY99")

    def test_legacy_ids(self):
        assert is_valid_visitor_id("vis_abc123")
        assert not is_valid_visitor_id("vis_")
        assert not is_valid_visitor_id("visitor-123")


class TestUserAgent:
    def test_desktop_chrome(self):
        assert detect_device_type(CHROME_WINDOWS) == "Desktop"
        assert extract_browser(CHROME_WINDOWS) == "Chrome"
        assert extract_os(CHROME_WINDOWS) == "Windows"

    def test_iphone(self):
        assert detect_device_type(SAFARI_IPHONE) == "Mobile"
        assert extract_browser(SAFARI_IPHONE) == "Safari"
        assert extract_os(SAFARI_IPHONE) == "iOS"

    def test_android_tablet(self):
        assert detect_device_type(CHROME_ANDROID_TABLET) == "Tablet"
        assert extract_os(CHROME_ANDROID_TABLET) == "Android"

    def test_edge_before_chrome(self):
        assert extract_browser(EDGE) == "Edge"

    def test_missing_user_agent(self):
        assert detect_device_type(None) == "Unknown"
        assert extract_browser("") == "Unknown"
        assert extract_os(None) == "Unknown"


class TestMaskEmail:
    def test_masks_local_part(self):
        assert mask_email("john@example.com") == "jo***@example.com"

    def test_no_domain(self):
        assert mask_email("garbage") == "***"

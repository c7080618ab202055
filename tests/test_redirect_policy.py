"""Tests for the in-app browser redirect decision."""

from urllib.parse import parse_qs, urlsplit

import pytest

from twibbon.redirect_policy import (
    PassThrough, Redirect, decide, handoff_urls, is_routed, landing_url, mark_routed,
    should_redirect,
)
from twibbon.useragent import DeviceType, classify

from conftest import DESKTOP_CHROME, FB_ANDROID, IG_IPHONE, IPHONE_SAFARI

IG = classify(IG_IPHONE)
FB = classify(FB_ANDROID)


class TestDecide:
    def test_instagram_iphone_redirects_to_safari_page(self):
        decision = decide('https://example.com/', IG)
        assert isinstance(decision, Redirect)
        assert decision.status == 302
        assert decision.location == 'https://example.com/redirect-to-safari?target=https%3A%2F%2Fexample.com%2F'

    def test_target_carries_full_original_url(self):
        decision = decide('https://example.com/teams?x=1&y=2', IG)
        query = parse_qs(urlsplit(decision.location).query)
        assert query['target'] == ['https://example.com/teams?x=1&y=2']

    def test_android_goes_to_chrome_page(self):
        decision = decide('http://example.com/', FB)
        assert urlsplit(decision.location).path == '/redirect-to-chrome'

    def test_configured_status(self):
        assert decide('https://example.com/', IG, status=301).status == 301

    def test_already_routed_passes_through_with_headers(self):
        decision = decide('https://example.com/?inapp=true', IG)
        assert decision == PassThrough({
            'X-Is-In-App-Browser': 'true',
            'X-Is-Mobile': 'true',
            'X-Device-Type': 'ios',
            'X-Specific-Browser': 'instagram',
        })

    @pytest.mark.parametrize('value', ['1', 'yes', 'TRUE', 'Yes'])
    def test_routed_marker_values(self, value):
        assert isinstance(decide(f'https://example.com/?inapp={value}', IG), PassThrough)

    @pytest.mark.parametrize('value', ['false', '0', ''])
    def test_false_marker_still_redirects(self, value):
        assert isinstance(decide(f'https://example.com/?inapp={value}', IG), Redirect)

    def test_landing_pages_never_redirect(self):
        url = 'https://example.com/redirect-to-safari?target=https%3A%2F%2Fexample.com%2F'
        assert isinstance(decide(url, IG), PassThrough)

    @pytest.mark.parametrize('ua', [DESKTOP_CHROME, IPHONE_SAFARI, None])
    def test_regular_browsers_pass_through(self, ua):
        assert isinstance(decide('https://example.com/', classify(ua)), PassThrough)

    def test_in_app_on_desktop_passes_through(self):
        discord = classify('Mozilla/5.0 (Windows NT 10.0; Win64; x64) discord/1.0.9013')
        assert discord.is_in_app_browser
        assert not should_redirect(discord)
        assert isinstance(decide('https://example.com/', discord), PassThrough)

    @pytest.mark.parametrize('url', [
        'http://[::1/',
        'http://example.com:99999/',
        'not a url',
        '/relative/path',
    ])
    def test_malformed_urls_pass_through(self, url):
        decision = decide(url, IG)
        assert isinstance(decision, PassThrough)
        assert decision.headers['X-Specific-Browser'] == 'instagram'


class TestHelpers:
    def test_is_routed(self):
        assert is_routed({'inapp': 'yes'})
        assert not is_routed({})
        assert not is_routed({'inapp': 'nope'})

    def test_landing_url_rejects_non_http(self):
        with pytest.raises(ValueError):
            landing_url('ftp://example.com/', DeviceType.IOS)

    def test_mark_routed_appends(self):
        assert mark_routed('https://example.com/a?b=1#top') == 'https://example.com/a?b=1&inapp=true#top'

    def test_mark_routed_replaces(self):
        assert mark_routed('https://example.com/?inapp=0') == 'https://example.com/?inapp=true'

    def test_ios_handoff(self):
        urls = handoff_urls('https://example.com/p?inapp=true', DeviceType.IOS)
        assert urls[0] == 'x-safari-https://example.com/p?inapp=true'
        assert urls[1].startswith('x-web-search://?https%3A%2F%2Fexample.com')
        assert urls[-1] == 'https://example.com/p?inapp=true'

    def test_android_handoff(self):
        urls = handoff_urls('https://example.com/?inapp=true', DeviceType.ANDROID)
        assert urls[0] == 'intent://example.com/?inapp=true#Intent;scheme=https;package=com.android.chrome;end'
        assert urls[1].startswith('googlechrome://navigate?url=https%3A%2F%2F')
        assert urls[-1] == 'https://example.com/?inapp=true'

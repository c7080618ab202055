"""Tests for user-agent classification and the webview check."""

import pytest

from twibbon.useragent import (
    DeviceType, InAppBrowser, NullEnvironment, ReportedEnvironment, UserAgentClassification,
    classify, device_type, is_in_app_browser, is_mobile, is_webview, looks_like_ios_webview,
    specific_app, webview_marker,
)

from conftest import (ANDROID_CHROME, DESKTOP_CHROME, FB_ANDROID, IG_IPHONE, IOS_CHROME,
                      IOS_WKWEBVIEW, IPHONE_SAFARI)

SLACK_DESKTOP = ("Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) "
                 "Slack/4.33.73 Chrome/114.0.5735.289 Electron/25.8.1 Safari/537.36 Sonic Slack_SSB/4.33.73")
TWITTER_IPHONE = ("Mozilla/5.0 (iPhone; CPU iPhone OS 16_5 like Mac OS X) AppleWebKit/605.1.15 "
                  "(KHTML, like Gecko) Mobile/15E148 Twitter for iPhone/9.61")
LINE_ANDROID = ("Mozilla/5.0 (Linux; Android 11; SM-A515F) AppleWebKit/537.36 (KHTML, like Gecko) "
                "Chrome/96.0.4664.45 Mobile Safari/537.36 Line/11.19.1/IAB")
DISCORD_DESKTOP = ("Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) "
                   "discord/1.0.9013 Chrome/108.0.5359.215 Electron/22.3.2 Safari/537.36")


class TestClassify:
    def test_instagram_on_iphone(self):
        result = classify(IG_IPHONE)
        assert result == UserAgentClassification(
            is_in_app_browser=True, is_mobile=True,
            specific_app=InAppBrowser.INSTAGRAM, device_type=DeviceType.IOS)

    def test_facebook_on_android(self):
        result = classify(FB_ANDROID)
        assert result.specific_app is InAppBrowser.FACEBOOK
        assert result.device_type is DeviceType.ANDROID
        assert result.is_mobile

    def test_desktop_browser(self):
        assert classify(DESKTOP_CHROME) == UserAgentClassification()

    def test_mobile_browser_is_not_in_app(self):
        result = classify(IPHONE_SAFARI)
        assert not result.is_in_app_browser
        assert result.is_mobile
        assert result.device_type is DeviceType.IOS

    @pytest.mark.parametrize('ua', [None, '', 'curl/8.4.0', '\x00\xff garbage'])
    def test_total_on_any_input(self, ua):
        assert classify(ua) == UserAgentClassification()

    def test_in_app_on_desktop_stays_desktop(self):
        result = classify(DISCORD_DESKTOP)
        assert result.is_in_app_browser
        assert result.specific_app is InAppBrowser.DISCORD
        assert result.device_type is DeviceType.DESKTOP
        assert not result.is_mobile

    @pytest.mark.parametrize('ua, app', [
        (TWITTER_IPHONE, InAppBrowser.TWITTER),
        (LINE_ANDROID, InAppBrowser.LINE),
        ('Mozilla/5.0 (iPhone) MicroMessenger/8.0.38', InAppBrowser.WECHAT),
        ('Mozilla/5.0 (Linux; Android 13) musical_ly TikTok 30.1.0', InAppBrowser.TIKTOK),
        ('Mozilla/5.0 (iPhone) Snapchat/12.38.0.33', InAppBrowser.SNAPCHAT),
    ])
    def test_specific_apps(self, ua, app):
        assert specific_app(ua) is app
        assert is_in_app_browser(ua)


class TestPriority:
    def test_instagram_wins_over_facebook_markers(self):
        ua = IG_IPHONE + ' [FBAN/FBIOS;FBAV/400.0]'
        assert specific_app(ua) is InAppBrowser.INSTAGRAM

    def test_facebook_wins_over_twitter(self):
        ua = 'Mozilla/5.0 (iPhone) [FBAN/FBIOS] Twitter'
        assert specific_app(ua) is InAppBrowser.FACEBOOK

    def test_ios_checked_before_android(self):
        assert device_type('iPhone Android') is DeviceType.IOS

    def test_booleans_are_independent_of_priority(self):
        assert is_mobile('BlackBerry9700')
        assert not is_in_app_browser('BlackBerry9700')


class TestHeaders:
    def test_in_app_headers(self):
        assert classify(IG_IPHONE).headers() == {
            'X-Is-In-App-Browser': 'true',
            'X-Is-Mobile': 'true',
            'X-Device-Type': 'ios',
            'X-Specific-Browser': 'instagram',
        }

    def test_no_specific_browser_header_without_match(self):
        headers = classify(DESKTOP_CHROME).headers()
        assert headers['X-Is-In-App-Browser'] == 'false'
        assert headers['X-Device-Type'] == 'desktop'
        assert 'X-Specific-Browser' not in headers

    def test_to_dict(self):
        assert classify(FB_ANDROID).to_dict() == {
            'is_in_app_browser': True, 'is_mobile': True,
            'specific_app': 'facebook', 'device_type': 'android',
        }


class FakeProbe:
    def __init__(self, *present):
        self.present = set(present)
        self.asked = []

    def has(self, capability):
        self.asked.append(capability)
        return capability in self.present


class TestWebview:
    def test_facebook_webview(self):
        assert webview_marker(FB_ANDROID) == 'facebook'

    def test_slack_is_webview_but_not_in_app(self):
        assert webview_marker(SLACK_DESKTOP) == 'slack'
        assert not is_in_app_browser(SLACK_DESKTOP)

    def test_android_wv_token(self):
        ua = ('Mozilla/5.0 (Linux; Android 12; Pixel 6 Build/SD1A; wv) AppleWebKit/537.36 '
              '(KHTML, like Gecko) Version/4.0 Chrome/99.0 Mobile Safari/537.36')
        assert webview_marker(ua) == 'android-webview'

    def test_ios_webview_without_safari_token(self):
        assert looks_like_ios_webview(IOS_WKWEBVIEW)
        assert webview_marker(IOS_WKWEBVIEW) == 'ios-webview'

    def test_real_safari_is_not_a_webview(self):
        assert not looks_like_ios_webview(IPHONE_SAFARI)
        assert not is_webview(IPHONE_SAFARI)

    def test_third_party_ios_browsers_are_not_webviews(self):
        assert not is_webview(IOS_CHROME)

    def test_plain_browsers(self):
        assert not is_webview(DESKTOP_CHROME)
        assert not is_webview(ANDROID_CHROME)
        assert not is_webview(None)

    def test_probe_detects_bridge(self):
        probe = FakeProbe('ReactNativeWebView')
        assert webview_marker(ANDROID_CHROME, probe) == 'ReactNativeWebView'

    def test_probe_not_consulted_when_ua_matches(self):
        probe = FakeProbe('Android')
        assert webview_marker(FB_ANDROID, probe) == 'facebook'
        assert probe.asked == []

    def test_null_environment_has_nothing(self):
        assert not NullEnvironment().has('Android')
        assert not is_webview(ANDROID_CHROME, NullEnvironment())

    def test_reported_environment_ignores_unknown_names(self):
        env = ReportedEnvironment(['Android', 'document.cookie'])
        assert env.has('Android')
        assert not env.has('document.cookie')
        assert webview_marker(ANDROID_CHROME, env) == 'Android'

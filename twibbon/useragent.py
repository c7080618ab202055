"""
User-agent classification for in-app browsers, webviews and mobile devices.

Each check is an explicit ordered table of (label, pattern) rows. The in-app
table order is also the priority order for ``specific_app``.
"""

import re
from dataclasses import dataclass
from enum import Enum


class DeviceType(Enum):
    IOS = 'ios'
    ANDROID = 'android'
    DESKTOP = 'desktop'


class InAppBrowser(Enum):
    INSTAGRAM = 'instagram'
    FACEBOOK = 'facebook'
    TWITTER = 'twitter'
    TIKTOK = 'tiktok'
    LINE = 'line'
    WECHAT = 'wechat'
    SNAPCHAT = 'snapchat'
    LINKEDIN = 'linkedin'
    WHATSAPP = 'whatsapp'
    TELEGRAM = 'telegram'
    PINTEREST = 'pinterest'
    REDDIT = 'reddit'
    DISCORD = 'discord'


def _rx(pattern):
    return re.compile(pattern, re.IGNORECASE)


IN_APP_PATTERNS = (
    (InAppBrowser.INSTAGRAM, _rx(r'Instagram')),
    (InAppBrowser.FACEBOOK, _rx(r'FBAN|FBAV')),
    (InAppBrowser.TWITTER, _rx(r'Twitter')),
    (InAppBrowser.TIKTOK, _rx(r'TikTok')),
    (InAppBrowser.LINE, _rx(r'Line')),
    (InAppBrowser.WECHAT, _rx(r'MicroMessenger')),
    (InAppBrowser.SNAPCHAT, _rx(r'Snapchat')),
    (InAppBrowser.LINKEDIN, _rx(r'LinkedIn')),
    (InAppBrowser.WHATSAPP, _rx(r'WhatsApp')),
    (InAppBrowser.TELEGRAM, _rx(r'Telegram')),
    (InAppBrowser.PINTEREST, _rx(r'Pinterest')),
    (InAppBrowser.REDDIT, _rx(r'Reddit')),
    (InAppBrowser.DISCORD, _rx(r'Discord')),
)

MOBILE_PATTERNS = (
    ('android', _rx(r'Android')),
    ('ios', _rx(r'iPhone|iPad|iPod')),
    ('blackberry', _rx(r'BlackBerry')),
    ('windows-phone', _rx(r'Windows Phone')),
    ('opera-mini', _rx(r'Opera Mini')),
    ('iemobile', _rx(r'IEMobile')),
)

# ios is checked first
DEVICE_PATTERNS = (
    (DeviceType.IOS, _rx(r'iPhone|iPad|iPod')),
    (DeviceType.ANDROID, _rx(r'Android')),
)

WEBVIEW_PATTERNS = (
    ('facebook', _rx(r'fban|fbav|fbsv|fbid|fb_iab|fb4a|fbios|fblc')),
    ('whatsapp', _rx(r'whatsapp')),
    ('wechat', _rx(r'micromessenger')),
    ('line', _rx(r'line')),
    ('telegram', _rx(r'telegram')),
    ('instagram', _rx(r'instagram')),
    ('twitter', _rx(r'twitter')),
    ('linkedin', _rx(r'linkedinapp')),
    ('snapchat', _rx(r'snapchat')),
    ('tiktok', _rx(r'tiktok|musically')),
    ('discord', _rx(r'discord')),
    ('slack', _rx(r'slack')),
    ('android-webview', _rx(r'android.*wv\)|webview.*android')),
)

_IOS_ENGINE = _rx(r'AppleWebKit')
_SAFARI_MARKERS = _rx(r'Version/[\d.]+.*Safari/')
_IOS_THIRD_PARTY_BROWSERS = _rx(r'CriOS|FxiOS|EdgiOS|OPiOS')

# Globals a native host injects into the page
BRIDGE_CAPABILITIES = ('webkit.messageHandlers', 'Android', 'ReactNativeWebView')


@dataclass(frozen=True)
class UserAgentClassification:
    is_in_app_browser: bool = False
    is_mobile: bool = False
    specific_app: InAppBrowser = None
    device_type: DeviceType = DeviceType.DESKTOP

    def headers(self):
        """Diagnostic response headers; advisory only."""
        headers = {
            'X-Is-In-App-Browser': str(self.is_in_app_browser).lower(),
            'X-Is-Mobile': str(self.is_mobile).lower(),
            'X-Device-Type': self.device_type.value,
        }
        if self.specific_app is not None:
            headers['X-Specific-Browser'] = self.specific_app.value
        return headers

    def to_dict(self):
        return {
            'is_in_app_browser': self.is_in_app_browser,
            'is_mobile': self.is_mobile,
            'specific_app': self.specific_app.value if self.specific_app else None,
            'device_type': self.device_type.value,
        }


def _any(table, user_agent):
    return any(pattern.search(user_agent) for _, pattern in table)


def _first(table, user_agent):
    for label, pattern in table:
        if pattern.search(user_agent):
            return label
    return None


def is_in_app_browser(user_agent):
    return _any(IN_APP_PATTERNS, user_agent or '')


def is_mobile(user_agent):
    return _any(MOBILE_PATTERNS, user_agent or '')


def specific_app(user_agent):
    return _first(IN_APP_PATTERNS, user_agent or '')


def device_type(user_agent):
    return _first(DEVICE_PATTERNS, user_agent or '') or DeviceType.DESKTOP


def classify(user_agent):
    """Classify a user-agent string. Total: ``None`` and ``''`` are desktop."""
    ua = user_agent or ''
    return UserAgentClassification(
        is_in_app_browser=is_in_app_browser(ua),
        is_mobile=is_mobile(ua),
        specific_app=specific_app(ua),
        device_type=device_type(ua),
    )


# =============================================================================
# Webview check (page context only)
# =============================================================================
class EnvironmentProbe:
    """Answers whether the host exposes a named native capability."""

    def has(self, capability):
        raise NotImplementedError


class NullEnvironment(EnvironmentProbe):
    """Nothing observed yet, e.g. before the page has loaded."""

    def has(self, capability):
        return False


class ReportedEnvironment(EnvironmentProbe):
    """Capabilities the loaded page found on ``window``."""

    def __init__(self, capabilities=()):
        self.capabilities = frozenset(c for c in capabilities if c in BRIDGE_CAPABILITIES)

    def has(self, capability):
        return capability in self.capabilities


def looks_like_ios_webview(user_agent):
    """iOS WebKit without the ``Version/... Safari/`` pair real Safari sends."""
    ua = user_agent or ''
    if device_type(ua) is not DeviceType.IOS or not _IOS_ENGINE.search(ua):
        return False
    return not _SAFARI_MARKERS.search(ua) and not _IOS_THIRD_PARTY_BROWSERS.search(ua)


def webview_marker(user_agent, probe=None):
    """Return the label of the first webview signal found, or None."""
    ua = user_agent or ''
    label = _first(WEBVIEW_PATTERNS, ua)
    if label:
        return label
    if looks_like_ios_webview(ua):
        return 'ios-webview'
    probe = probe or NullEnvironment()
    for capability in BRIDGE_CAPABILITIES:
        if probe.has(capability):
            return capability
    return None


def is_webview(user_agent, probe=None):
    return webview_marker(user_agent, probe) is not None

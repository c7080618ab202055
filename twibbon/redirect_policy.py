"""
Redirect decision for in-app browsers on mobile devices.

``decide`` never raises: if the redirect target cannot be built the request
passes through with its diagnostic headers.
"""

import logging
from dataclasses import dataclass, field
from urllib.parse import parse_qsl, quote, urlencode, urlsplit, urlunsplit

from twibbon.config import LANDING_PATHS, LANDING_PREFIX, ROUTED_PARAM
from twibbon.useragent import DeviceType

logger = logging.getLogger(__name__)

TRUE_VALUES = {'true', '1', 'yes'}


@dataclass(frozen=True)
class PassThrough:
    headers: dict = field(default_factory=dict)


@dataclass(frozen=True)
class Redirect:
    location: str
    status: int = 302
    headers: dict = field(default_factory=dict)


def should_redirect(classification):
    return (classification.is_in_app_browser and classification.is_mobile
            and classification.device_type is not DeviceType.DESKTOP)


def is_routed(query, param=ROUTED_PARAM):
    """True when the already-routed marker is present and true-valued."""
    value = query.get(param)
    return value is not None and value.strip().lower() in TRUE_VALUES


def is_landing_path(path):
    return path.startswith(LANDING_PREFIX)


def landing_url(original_url, device):
    """Same-origin landing page URL carrying ``original_url`` as ``target``.

    Raises ValueError if ``original_url`` is not an absolute http(s) URL.
    """
    parts = urlsplit(original_url)
    if parts.scheme not in ('http', 'https') or not parts.netloc:
        raise ValueError(f"Not an absolute URL: {original_url!r}")
    # raises ValueError on a malformed port
    _ = parts.port
    path = LANDING_PATHS[device.value]
    return urlunsplit((parts.scheme, parts.netloc, path, urlencode({'target': original_url}), ''))


def mark_routed(url, param=ROUTED_PARAM):
    """Return ``url`` with the already-routed marker set."""
    parts = urlsplit(url)
    query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k != param]
    query.append((param, 'true'))
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), parts.fragment))


def handoff_urls(target, device):
    """URLs the landing page tries in order to reopen ``target`` in the system browser."""
    parts = urlsplit(target)
    rest = parts.netloc + urlunsplit(('', '', parts.path, parts.query, parts.fragment))
    if device is DeviceType.IOS:
        return [
            f"x-safari-{parts.scheme}://{rest}",
            f"x-web-search://?{quote(target, safe='')}",
            target,
        ]
    return [
        f"intent://{rest}#Intent;scheme={parts.scheme};package=com.android.chrome;end",
        f"googlechrome://navigate?url={quote(target, safe='')}",
        target,
    ]


def decide(url, classification, status=302):
    """Decide between pass-through and redirect for one request URL."""
    headers = classification.headers()
    if not should_redirect(classification):
        return PassThrough(headers)
    try:
        parts = urlsplit(url)
        query = dict(parse_qsl(parts.query, keep_blank_values=True))
    except ValueError as e:
        logger.warning(f"⚠️ Unparseable request URL, passing through: {e}")
        return PassThrough(headers)
    if is_routed(query) or is_landing_path(parts.path or '/'):
        return PassThrough(headers)
    try:
        location = landing_url(url, classification.device_type)
    except ValueError as e:
        logger.warning(f"⚠️ Cannot build redirect target, passing through: {e}")
        return PassThrough(headers)
    app = classification.specific_app.value if classification.specific_app else 'unknown'
    logger.info(f"↪️ Redirecting {app} in-app browser ({classification.device_type.value}) to {location}")
    return Redirect(location, status, headers)

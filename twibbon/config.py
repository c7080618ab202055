"""
Runtime configuration for the Twibbon server.

Everything comes from environment variables so the same build can serve the
512px white-background variant or the 2048px transparent one.
"""

import os
from dataclasses import dataclass
from pathlib import Path

PACKAGE_DIR = Path(__file__).parent.resolve()

BACKGROUND_MODES = ('white', 'transparent')
REDIRECT_STATUSES = (301, 302, 303, 307, 308)

# Query parameter that marks a request as already routed through a landing page
ROUTED_PARAM = 'inapp'
LANDING_PREFIX = '/redirect-to-'
LANDING_PATHS = {'ios': '/redirect-to-safari', 'android': '/redirect-to-chrome'}

# First path segments the request hook never looks at
EXCLUDED_PREFIXES = ('api', 'static', '_image', 'favicon.ico', 'public')

CLIENT_COOKIE = 'twibbon_client'


def _int(env, name, default):
    raw = env.get(name)
    if raw is None or raw == '':
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


@dataclass
class Settings:
    secret_key: str = 'dev-secret-key'
    port: int = 8000
    teams_file: Path = PACKAGE_DIR / 'teams.json'
    frames_dir: Path = PACKAGE_DIR / 'frames'
    preview_size: int = 512
    export_size: int = 2048
    background: str = 'white'
    redirect_status: int = 302
    max_upload_mb: int = 10

    def __post_init__(self):
        if self.preview_size <= 0 or self.export_size <= 0:
            raise ValueError("Output sizes must be positive")
        if self.background not in BACKGROUND_MODES:
            raise ValueError(f"Background must be one of {BACKGROUND_MODES}, got {self.background!r}")
        if self.redirect_status not in REDIRECT_STATUSES:
            raise ValueError(f"Unsupported redirect status {self.redirect_status}")
        if self.max_upload_mb <= 0:
            raise ValueError("Upload limit must be positive")

    @property
    def max_content_length(self):
        return self.max_upload_mb * 1024 * 1024

    @classmethod
    def from_env(cls, env=None):
        env = os.environ if env is None else env
        return cls(
            secret_key=env.get('SECRET_KEY', 'dev-secret-key'),
            port=_int(env, 'PORT', 8000),
            teams_file=Path(env.get('TWIBBON_TEAMS_FILE') or PACKAGE_DIR / 'teams.json'),
            frames_dir=Path(env.get('TWIBBON_FRAMES_DIR') or PACKAGE_DIR / 'frames'),
            preview_size=_int(env, 'TWIBBON_PREVIEW_SIZE', 512),
            export_size=_int(env, 'TWIBBON_EXPORT_SIZE', 2048),
            background=env.get('TWIBBON_BACKGROUND', 'white').lower(),
            redirect_status=_int(env, 'TWIBBON_REDIRECT_STATUS', 302),
            max_upload_mb=_int(env, 'TWIBBON_MAX_UPLOAD_MB', 10),
        )

"""Pytest fixtures shared by the Twibbon tests."""

import io

import pytest
from PIL import Image

from twibbon.config import Settings
from twibbon.frames import FrameLibrary
from twibbon.server import create_app
from twibbon.teams import Team

IG_IPHONE = ("Mozilla/5.0 (iPhone; CPU iPhone OS 15_0 like Mac OS X) AppleWebKit/605.1.15 "
             "(KHTML, like Gecko) Mobile/15E148 Instagram 123.0.0.21.115")
FB_ANDROID = ("Mozilla/5.0 (Linux; Android 12; SM-G991B Build/SP1A.210812.016; wv) AppleWebKit/537.36 "
              "(KHTML, like Gecko) Version/4.0 Chrome/110.0.5481.153 Mobile Safari/537.36 "
              "[FB_IAB/FB4A;FBAV/403.0.0.27.81;]")
DESKTOP_CHROME = ("Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
                  "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36")
IPHONE_SAFARI = ("Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 "
                 "(KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1")
IOS_WKWEBVIEW = ("Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 "
                 "(KHTML, like Gecko) Mobile/15E148")
IOS_CHROME = ("Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 "
              "(KHTML, like Gecko) CriOS/120.0.6099.119 Mobile/15E148 Safari/604.1")
ANDROID_CHROME = ("Mozilla/5.0 (Linux; Android 13; Pixel 7) AppleWebKit/537.36 "
                  "(KHTML, like Gecko) Chrome/120.0.0.0 Mobile Safari/537.36")


def png_bytes(size=(400, 400), color=(255, 0, 0, 255), mode='RGBA'):
    img = Image.new(mode, size, color)
    out = io.BytesIO()
    img.save(out, format='PNG')
    return out.getvalue()


def open_png(data):
    img = Image.open(io.BytesIO(data))
    img.load()
    return img


def bordered_frame(size, border=40, color=(0, 255, 0, 255)):
    """Opaque border, fully transparent interior."""
    frame = Image.new('RGBA', (size, size), color)
    frame.paste((0, 0, 0, 0), (border, border, size - border, size - border))
    return frame


class StaticFrames:
    """Frame library stand-in returning a bordered frame scaled to the request."""

    def __init__(self, border_fraction=40 / 512):
        self.border_fraction = border_fraction
        self.requests = []

    def frame_for(self, team, size):
        self.requests.append((team.id, size))
        return bordered_frame(size, max(1, round(size * self.border_fraction)))


@pytest.fixture
def team():
    return Team(id='onc', name='ONC', color='#EF4444', frame=None, description='ONC team')


@pytest.fixture
def static_frames():
    return StaticFrames()


@pytest.fixture
def frame_library(tmp_path):
    return FrameLibrary(tmp_path / 'frames', cached_sizes=(64,))


@pytest.fixture
def settings(tmp_path):
    return Settings(frames_dir=tmp_path / 'frames', preview_size=64, export_size=128)


@pytest.fixture
def app(settings):
    app = create_app(settings)
    app.config['TESTING'] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()

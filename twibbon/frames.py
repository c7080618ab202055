"""
Team frame overlays.

A frame is an RGBA image with opaque branded borders and a transparent
interior. Teams without an asset file on disk get a drawn default frame:
a diagonal gradient border in the team color, the team name along the bottom
edge and a dot in each corner.
"""

import logging
from pathlib import Path

from PIL import Image, ImageChops, ImageDraw, ImageFont

logger = logging.getLogger(__name__)

# Proportions of the 512px reference frame
REFERENCE_SIZE = 512
BORDER_WIDTH = 40
DOT_RADIUS = 8
FONT_SIZE = 24


def border_width(size):
    return max(1, round(size * BORDER_WIDTH / REFERENCE_SIZE))


def draw_default_frame(team, size=REFERENCE_SIZE):
    """Draw the default frame for ``team`` as a ``size`` x ``size`` RGBA image."""
    scale = size / REFERENCE_SIZE
    bw = border_width(size)

    # Diagonal gradient: full opacity top-left, 80% bottom-right
    vertical = Image.linear_gradient('L').resize((size, size))
    horizontal = vertical.rotate(90)
    diagonal = ImageChops.add(vertical, horizontal, scale=2.0)
    alpha = diagonal.point(lambda v: 255 - v * 51 // 255)

    frame = Image.new('RGBA', (size, size), team.rgb + (255,))
    frame.putalpha(alpha)
    vertical.close()
    horizontal.close()
    diagonal.close()
    alpha.close()

    draw = ImageDraw.Draw(frame)
    draw.rectangle((bw, bw, size - bw - 1, size - bw - 1), fill=(0, 0, 0, 0))

    r = max(1, round(DOT_RADIUS * scale))
    for cx in (bw / 2, size - bw / 2):
        for cy in (bw / 2, size - bw / 2):
            draw.ellipse((cx - r, cy - r, cx + r, cy + r), fill=(255, 255, 255, 204))

    font = ImageFont.load_default(size=max(8, round(FONT_SIZE * scale)))
    draw.text((size / 2, size - max(1, round(10 * scale))), team.name, fill=(255, 255, 255, 255),
              font=font, anchor='ms')
    return frame


class FrameLibrary:
    """Frame overlays per team; callers get copies they own.

    Drawn frames are cached only for ``cached_sizes`` (the render sizes), so
    arbitrary sizes requested over HTTP never accumulate.
    """

    def __init__(self, frames_dir, cached_sizes=(REFERENCE_SIZE,)):
        self.frames_dir = Path(frames_dir)
        self.cached_sizes = frozenset(cached_sizes)
        self._assets = {}
        self._drawn = {}

    def asset_path(self, team):
        if not team.frame:
            return None
        path = self.frames_dir / team.frame
        return path if path.is_file() else None

    def _asset(self, team, path):
        if team.id not in self._assets:
            with Image.open(path) as img:
                self._assets[team.id] = img.convert('RGBA')
            logger.info(f"🖼️ Loaded frame {path.name} for {team.id}")
        return self._assets[team.id]

    def frame_for(self, team, size):
        """A new ``size`` x ``size`` RGBA frame; the caller closes it."""
        path = self.asset_path(team)
        if path is None:
            if size not in self.cached_sizes:
                return draw_default_frame(team, size)
            key = (team.id, size)
            if key not in self._drawn:
                self._drawn[key] = draw_default_frame(team, size)
                logger.info(f"🎨 Drew default {size}px frame for {team.id}")
            return self._drawn[key].copy()
        base = self._asset(team, path)
        if base.size == (size, size):
            return base.copy()
        return base.resize((size, size), Image.Resampling.LANCZOS)


def generate_frames(campaign, out_dir, size=REFERENCE_SIZE):
    """Write the default frame of every team to ``out_dir``. Returns the paths."""
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    written = []
    for team in campaign.teams:
        path = out_dir / (team.frame or f"{team.id}.png")
        frame = draw_default_frame(team, size)
        try:
            frame.save(path, format='PNG')
        finally:
            frame.close()
        logger.info(f"✅ Generated frame: {path.name}")
        written.append(path)
    return written

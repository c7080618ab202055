"""
Crop-and-composite pipeline.

The crop widget works in display-space pixels (the CSS-scaled image the user
drags over). A session stores the selected square as fractions of the display
size, so every render re-crops the original upload at full fidelity:

    display region -> NormalizedRegion (0..1) -> native pixel box
    -> cover-fit into the output square -> frame on top -> PNG

Render results only replace the session's preview when no region change
happened while they were being drawn.
"""

import base64
import io
import logging
import math
import threading
from dataclasses import dataclass
from enum import Enum

from PIL import Image, ImageOps

logger = logging.getLogger(__name__)

# Default crop: centered square over 80% of the shorter display side
DEFAULT_REGION_FRACTION = 0.8
# Display pixels
MIN_REGION_SIZE = 10


class CompositorError(Exception):
    """Base class for recoverable crop/composite failures."""


class DecodeError(CompositorError):
    """Uploaded bytes are not a decodable image."""


class RenderError(CompositorError):
    """Cropping, compositing or encoding failed."""


class SessionError(CompositorError):
    """Operation not valid in the session's current state."""


class SessionState(Enum):
    IDLE = 'idle'
    IMAGE_LOADED = 'image_loaded'
    REGION_SELECTED = 'region_selected'
    PREVIEW_READY = 'preview_ready'
    FINALIZED = 'finalized'
    ERROR = 'error'


class BackgroundMode(Enum):
    WHITE = 'white'
    TRANSPARENT = 'transparent'


class Corner(Enum):
    TOP_LEFT = 'tl'
    TOP_RIGHT = 'tr'
    BOTTOM_LEFT = 'bl'
    BOTTOM_RIGHT = 'br'


# =============================================================================
# Geometry
# =============================================================================
@dataclass(frozen=True)
class CropRegion:
    """Square crop in display-space pixels."""
    x: float
    y: float
    size: float

    def __post_init__(self):
        if not all(math.isfinite(v) for v in (self.x, self.y, self.size)):
            raise ValueError(f"Crop values must be finite, got {self.x}, {self.y}, {self.size}")
        if self.size <= 0:
            raise ValueError(f"Crop size must be positive, got {self.size}")

    def to_dict(self):
        return {'x': self.x, 'y': self.y, 'size': self.size}


@dataclass(frozen=True)
class NormalizedRegion:
    """Crop as fractions of the display width/height."""
    x: float
    y: float
    w: float
    h: float

    @classmethod
    def from_display(cls, region, display_w, display_h):
        return cls(region.x / display_w, region.y / display_h,
                   region.size / display_w, region.size / display_h)

    def to_display(self, display_w, display_h):
        return CropRegion(self.x * display_w, self.y * display_h, self.w * display_w)


def scale_factors(native_size, display_size):
    """Per-axis native/display scale."""
    (nw, nh), (dw, dh) = native_size, display_size
    return nw / dw, nh / dh


def default_region(display_w, display_h, fraction=DEFAULT_REGION_FRACTION):
    size = min(display_w, display_h) * fraction
    return CropRegion((display_w - size) / 2, (display_h - size) / 2, size)


def clamp_region(region, display_w, display_h):
    """Keep ``region`` square and inside the display bounds."""
    if display_w <= 0 or display_h <= 0:
        raise ValueError(f"Display size must be positive, got {display_w}x{display_h}")
    limit = min(display_w, display_h)
    size = min(max(region.size, min(MIN_REGION_SIZE, limit)), limit)
    x = max(0, min(region.x, display_w - size))
    y = max(0, min(region.y, display_h - size))
    return CropRegion(x, y, size)


def move_region(region, dx, dy, display_w, display_h):
    return clamp_region(CropRegion(region.x + dx, region.y + dy, region.size), display_w, display_h)


def resize_region(region, corner, px, py, display_w, display_h):
    """Drag ``corner`` to display point (px, py); the opposite corner stays put."""
    corner = Corner(corner)
    px = max(0, min(px, display_w))
    py = max(0, min(py, display_h))
    x, y, s = region.x, region.y, region.size

    if corner is Corner.BOTTOM_RIGHT:
        ax, ay = x, y
        dw, dh = px - ax, py - ay
    elif corner is Corner.BOTTOM_LEFT:
        ax, ay = x + s, y
        dw, dh = ax - px, py - ay
    elif corner is Corner.TOP_RIGHT:
        ax, ay = x, y + s
        dw, dh = px - ax, ay - py
    else:
        ax, ay = x + s, y + s
        dw, dh = ax - px, ay - py

    # Aspect is locked to 1:1, so the limiting dimension wins
    side = max(min(dw, dh), MIN_REGION_SIZE)

    grows_right = corner in (Corner.BOTTOM_RIGHT, Corner.TOP_RIGHT)
    grows_down = corner in (Corner.BOTTOM_RIGHT, Corner.BOTTOM_LEFT)
    max_w = display_w - ax if grows_right else ax
    max_h = display_h - ay if grows_down else ay
    side = min(side, max_w, max_h)
    if side <= 0:
        return clamp_region(region, display_w, display_h)

    nx = ax if grows_right else ax - side
    ny = ay if grows_down else ay - side
    return clamp_region(CropRegion(nx, ny, side), display_w, display_h)


def native_box(normalized, native_w, native_h):
    """Pixel box (left, top, right, bottom) in the source image.

    Edges that fall outside the source are cut back to its bounds, so no
    read ever leaves the image. A region cut this way is no longer square;
    ``cover_fit`` then trims the longer side instead of stretching.
    """
    left = round(normalized.x * native_w)
    top = round(normalized.y * native_h)
    right = round((normalized.x + normalized.w) * native_w)
    bottom = round((normalized.y + normalized.h) * native_h)

    left = max(0, min(left, native_w - 1))
    top = max(0, min(top, native_h - 1))
    right = max(left + 1, min(right, native_w))
    bottom = max(top + 1, min(bottom, native_h))
    return left, top, right, bottom


# =============================================================================
# Raster operations
# =============================================================================
def decode_image(data):
    """Fully decode upload bytes into an upright RGBA image."""
    if not data:
        raise DecodeError("Empty upload")
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.load()
            upright = ImageOps.exif_transpose(img)
            try:
                return upright.convert('RGBA')
            finally:
                if upright is not img:
                    upright.close()
    except (OSError, SyntaxError, ValueError, Image.DecompressionBombError) as e:
        raise DecodeError(f"Not a valid image: {e}") from e


def cover_fit(img, size):
    """Scale to cover a ``size`` square, centered, overflow cropped."""
    return ImageOps.fit(img, (size, size), method=Image.Resampling.LANCZOS, centering=(0.5, 0.5))


def compose(photo, frame, background=BackgroundMode.WHITE):
    """Photo over the background, frame over the photo (source-over)."""
    fill = (255, 255, 255, 255) if background is BackgroundMode.WHITE else (0, 0, 0, 0)
    canvas = Image.new('RGBA', frame.size, fill)
    layer = photo if photo.mode == 'RGBA' else photo.convert('RGBA')
    overlay = frame if frame.mode == 'RGBA' else frame.convert('RGBA')
    try:
        canvas.alpha_composite(layer)
        canvas.alpha_composite(overlay)
    except Exception:
        canvas.close()
        raise
    finally:
        if layer is not photo:
            layer.close()
        if overlay is not frame:
            overlay.close()
    if background is BackgroundMode.WHITE:
        flat = canvas.convert('RGB')
        canvas.close()
        return flat
    return canvas


def encode_png(img):
    out = io.BytesIO()
    img.save(out, format='PNG')
    return out.getvalue()


def render_composite(source, normalized, frame_source, size, background=BackgroundMode.WHITE):
    """Crop ``source`` to ``normalized``, fill a ``size`` square, add the frame, encode PNG.

    ``frame_source(size)`` returns a frame image the render owns. Every
    intermediate image is closed before returning, also on failure.
    """
    temps = []
    try:
        box = native_box(normalized, *source.size)
        crop = source.crop(box)
        temps.append(crop)
        photo = cover_fit(crop, size)
        temps.append(photo)
        frame = frame_source(size)
        temps.append(frame)
        canvas = compose(photo, frame, background)
        temps.append(canvas)
        return encode_png(canvas)
    except (OSError, ValueError, MemoryError) as e:
        raise RenderError(f"Could not render image: {e}") from e
    finally:
        for img in temps:
            img.close()


@dataclass(frozen=True)
class CompositeResult:
    png: bytes
    size: int
    revision: int
    region: NormalizedRegion

    def data_uri(self):
        return 'data:image/png;base64,' + base64.b64encode(self.png).decode('utf-8')


# =============================================================================
# Session state machine
# =============================================================================
class CropSession:
    """One user's crop session: upload, region edits, preview and final render."""

    def __init__(self, team, frames, preview_size=512, export_size=2048,
                 background=BackgroundMode.WHITE):
        self.team = team
        self.frames = frames
        self.preview_size = preview_size
        self.export_size = export_size
        self.background = BackgroundMode(background)
        self._lock = threading.Lock()
        # Renders holding a snapshot, and sources replaced while they ran
        self._in_flight = 0
        self._retired = []
        self.revision = 0
        self._clear()

    def _clear(self):
        self.state = SessionState.IDLE
        self.image = None
        self.display_size = None
        self.normalized = None
        self.preview = None
        self.result = None
        self.error = None
        # Never reset; in-flight renders compare against it
        self.revision += 1

    @property
    def native_size(self):
        return self.image.size if self.image is not None else None

    @property
    def region(self):
        if self.normalized is None:
            return None
        return self.normalized.to_display(*self.display_size)

    def _require(self, *states):
        if self.state not in states:
            raise SessionError(f"Not allowed while {self.state.value}")

    def _changed(self, normalized):
        self.normalized = normalized
        self.revision += 1
        self.preview = None
        self.result = None
        self.state = SessionState.REGION_SELECTED

    # --- Upload ---

    def load(self, data, display_size=None):
        """Decode an upload; on failure the session holds no image."""
        try:
            image = decode_image(data)
        except DecodeError as e:
            with self._lock:
                self._drop_image()
                self.state = SessionState.ERROR
                self.error = str(e)
            raise
        try:
            display = self._valid_display(display_size or image.size)
        except SessionError:
            image.close()
            raise
        with self._lock:
            self._drop_image()
            self.image = image
            self.display_size = display
            self.normalized = NormalizedRegion.from_display(default_region(*display), *display)
            self.revision += 1
            self.preview = None
            self.result = None
            self.error = None
            self.state = SessionState.IMAGE_LOADED
        logger.info(f"✅ Loaded {image.width}x{image.height} image, display {self.display_size[0]}x{self.display_size[1]}")

    def _drop_image(self):
        if self.image is not None:
            if self._in_flight:
                self._retired.append(self.image)
            else:
                self.image.close()
        self.image = None
        self.normalized = None
        self.display_size = None
        self.preview = None
        self.result = None

    @staticmethod
    def _valid_display(display_size):
        w, h = display_size
        if not (math.isfinite(w) and math.isfinite(h)) or w <= 0 or h <= 0:
            raise SessionError(f"Display size must be positive and finite, got {w}x{h}")
        return float(w), float(h)

    def set_display_size(self, display_size):
        """The widget was re-laid out; the normalized region is unaffected."""
        with self._lock:
            self._require(SessionState.IMAGE_LOADED, SessionState.REGION_SELECTED,
                          SessionState.PREVIEW_READY, SessionState.FINALIZED)
            self.display_size = self._valid_display(display_size)

    # --- Region edits ---

    _EDITABLE = (SessionState.IMAGE_LOADED, SessionState.REGION_SELECTED,
                 SessionState.PREVIEW_READY, SessionState.FINALIZED)

    def select_region(self, region):
        with self._lock:
            self._require(*self._EDITABLE)
            clamped = clamp_region(region, *self.display_size)
            self._changed(NormalizedRegion.from_display(clamped, *self.display_size))
            return clamped

    def move_region(self, dx, dy):
        with self._lock:
            self._require(*self._EDITABLE)
            moved = move_region(self.region, dx, dy, *self.display_size)
            self._changed(NormalizedRegion.from_display(moved, *self.display_size))
            return moved

    def resize_region(self, corner, px, py):
        with self._lock:
            self._require(*self._EDITABLE)
            resized = resize_region(self.region, corner, px, py, *self.display_size)
            self._changed(NormalizedRegion.from_display(resized, *self.display_size))
            return resized

    def set_team(self, team):
        with self._lock:
            self.team = team
            if self.normalized is not None and self.state is not SessionState.ERROR:
                self._changed(self.normalized)

    # --- Rendering ---

    def _snapshot(self, *states):
        with self._lock:
            self._require(*states)
            self._in_flight += 1
            return self.revision, self.normalized, self.image, self.team

    def _release(self):
        """Close sources dropped while renders were using them, once the last one ends."""
        with self._lock:
            self._in_flight -= 1
            if self._in_flight:
                return
            retired, self._retired = self._retired, []
        for image in retired:
            image.close()

    def _render_snapshot(self, size, revision, normalized, image, team):
        try:
            return self._render(size, normalized, image, team)
        except RenderError as e:
            self._fail(revision, e)
            raise
        finally:
            self._release()

    def _render(self, size, normalized, image, team):
        return render_composite(image, normalized, lambda s: self.frames.frame_for(team, s),
                                size, self.background)

    def _fail(self, revision, error):
        with self._lock:
            if revision == self.revision:
                self.preview = None
                self.result = None
                self.error = str(error)
                self.state = SessionState.ERROR
        logger.error(f"❌ Render failed: {error}")

    def render_preview(self):
        """Full re-render at preview size; no caching across region changes."""
        revision, normalized, image, team = self._snapshot(
            SessionState.IMAGE_LOADED, SessionState.REGION_SELECTED, SessionState.PREVIEW_READY)
        png = self._render_snapshot(self.preview_size, revision, normalized, image, team)
        result = CompositeResult(png, self.preview_size, revision, normalized)
        with self._lock:
            if revision == self.revision:
                self.preview = result
                self.state = SessionState.PREVIEW_READY
            else:
                logger.info(f"⏭️ Discarding stale preview r{revision} (now r{self.revision})")
        return result

    def finalize(self):
        """Independent re-crop of the source at export size from the previewed region."""
        with self._lock:
            self._require(SessionState.PREVIEW_READY, SessionState.FINALIZED)
            self._in_flight += 1
            revision, normalized, image, team = self.revision, self.preview.region, self.image, self.team
        png = self._render_snapshot(self.export_size, revision, normalized, image, team)
        result = CompositeResult(png, self.export_size, revision, normalized)
        with self._lock:
            if revision == self.revision:
                self.result = result
                self.state = SessionState.FINALIZED
        logger.info(f"🏁 Finalized {self.export_size}px image for {team.id}")
        return result

    # --- Recovery ---

    def retry(self):
        """Leave the error state: back to editing if an image survived, else idle."""
        with self._lock:
            self._require(SessionState.ERROR)
            self.error = None
            if self.image is None:
                self.state = SessionState.IDLE
            else:
                self.revision += 1
                self.state = SessionState.REGION_SELECTED

    def reset(self):
        with self._lock:
            self._drop_image()
            self._clear()

    def to_dict(self):
        region = self.region
        return {
            'state': self.state.value,
            'team': self.team.id if self.team else None,
            'revision': self.revision,
            'native_size': list(self.native_size) if self.native_size else None,
            'display_size': list(self.display_size) if self.display_size else None,
            'region': region.to_dict() if region else None,
            'error': self.error,
        }

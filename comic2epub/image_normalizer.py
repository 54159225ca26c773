import io

import cv2
import numpy as np
from PIL import Image

from comic2epub.dtos import DecodedPage, ImageOptions, NormalizedPage
from comic2epub.exceptions import ConfigError, EpubProcessingError
from comic2epub.logger import app_logger

def _gray_default(rgb):
    # ITU-R 601: 0.299 R + 0.587 G + 0.114 B
    return cv2.cvtColor(np.ascontiguousarray(rgb), cv2.COLOR_RGB2GRAY)

def _gray_mean(rgb):
    return (rgb.astype(np.uint16).sum(axis=2) // 3).astype(np.uint8)

def _gray_luma(rgb):
    # ITU-R 709
    weights = np.array([0.2126, 0.7152, 0.0722], dtype=np.float32)
    return np.clip(np.rint(rgb.astype(np.float32) @ weights), 0, 255).astype(np.uint8)

def _gray_luster(rgb):
    return ((rgb.max(axis=2).astype(np.uint16) + rgb.min(axis=2)) // 2).astype(np.uint8)

ALGO_GRAY = {
    "default": _gray_default,
    "mean": _gray_mean,
    "luma": _gray_luma,
    "luster": _gray_luster,
}

DITHER_MODES = ("floyd", "ordered", "none")

BAYER_4 = (np.array([
    [0, 8, 2, 10],
    [12, 4, 14, 6],
    [3, 11, 1, 9],
    [15, 7, 13, 5],
], dtype=np.float32) + 0.5) / 16

# crop thresholds
BLANK_SPREAD = 16
BLANK_WHITE = 224
BLANK_BLACK = 31


def to_rgb_array(img):
    """RGB uint8 array of img, transparent areas flattened on white."""
    if img.mode in ('RGBA', 'LA') or (img.mode == 'P' and 'transparency' in img.info):
        img = img.convert('RGBA')
        background = Image.new('RGB', img.size, (255, 255, 255))
        background.paste(img, mask=img.split()[-1])
        img = background
    elif img.mode != 'RGB':
        img = img.convert('RGB')
    return np.asarray(img)

def to_gray(img, algo="default"):
    if img.mode == 'L':
        return img
    return Image.fromarray(ALGO_GRAY[algo](to_rgb_array(img)))

def _blank_lines(arr):
    """True for every row of arr that is uniform and near white or near black."""
    spread = arr.max(axis=1).astype(np.int16) - arr.min(axis=1)
    mean = arr.mean(axis=1)
    return (spread <= BLANK_SPREAD) & ((mean >= BLANK_WHITE) | (mean <= BLANK_BLACK))

def _content_span(blank):
    if blank.all():
        return 0, len(blank)
    start = int(np.argmax(~blank))
    end = len(blank) - int(np.argmax(~blank[::-1]))
    return start, end

def crop_margins(gray):
    """
    Remove uniform white or black borders. A fully blank page is returned as is.
    Columns and rows are trimmed alternately until nothing changes, so a black
    side border doesn't hide a white top margin.
    """
    box = (0, 0, gray.width, gray.height)
    arr = np.asarray(gray)
    for _ in range(3):
        left, top, right, bottom = box
        view = arr[top:bottom, left:right]
        if view.size == 0:
            break
        c0, c1 = _content_span(_blank_lines(view.T))
        r0, r1 = _content_span(_blank_lines(view[:, c0:c1]))
        new_box = (left + c0, top + r0, left + c1, top + r1)
        if new_box == box:
            break
        box = new_box
    if box == (0, 0, gray.width, gray.height):
        return gray
    return gray.crop(box)

def fit_within(img, width, height):
    """Downscale to fit width x height keeping the aspect ratio. Smaller images are kept."""
    img_width, img_height = img.size
    if img_width <= width and img_height <= height:
        return img
    if width / img_width <= height / img_height:
        new_size = (width, max(1, round(img_height * width / img_width)))
    else:
        new_size = (max(1, round(img_width * height / img_height)), height)
    return img.resize(new_size, Image.Resampling.LANCZOS)

def letterbox(img, width, height, padcolor=255):
    result = Image.new('L', (width, height), color=padcolor)
    x = (width - img.width) // 2
    y = (height - img.height) // 2
    result.paste(img, (x, y))
    return result

def nearest_level_table(palette):
    """256 entry table mapping every gray value to the closest palette level."""
    levels = np.array(palette, dtype=np.int16)
    values = np.arange(256, dtype=np.int16)
    nearest = np.abs(values[:, None] - levels[None, :]).argmin(axis=1)
    return levels[nearest].astype(np.uint8)

def quantize(gray, palette, dither="floyd"):
    """Reduce gray to the palette levels. The result is still an 'L' image."""
    if dither == "floyd":
        flat = []
        for level in palette:
            flat += [level, level, level]
        flat += flat[:3] * (256 - len(palette))
        palette_image = Image.new('P', (1, 1))
        palette_image.putpalette(flat)
        return gray.convert('RGB').quantize(palette=palette_image, dither=Image.Dither.FLOYDSTEINBERG).convert('L')

    arr = np.asarray(gray, dtype=np.float32)
    if dither == "ordered":
        spacing = 255 / (len(palette) - 1)
        h, w = arr.shape
        threshold = np.tile(BAYER_4, (h // 4 + 1, w // 4 + 1))[:h, :w]
        arr = arr + (threshold - 0.5) * spacing
    table = nearest_level_table(palette)
    return Image.fromarray(table[np.clip(np.rint(arr), 0, 255).astype(np.uint8)])

def encode_jpeg(img, quality):
    buffer = io.BytesIO()
    img.save(buffer, format="JPEG", quality=quality)
    return buffer.getvalue()


class ImageNormalizer:
    """
    Turns decoded pages into device pages: gray, crop, fit, quantize, encode.
    Holds no per-page state, one instance is shared by all normalize workers.
    """

    def __init__(self, options: ImageOptions):
        if options.algo not in ALGO_GRAY:
            raise ConfigError(f"algo doesn't exist: '{options.algo}' (available: {', '.join(ALGO_GRAY)})")
        if options.dither not in DITHER_MODES:
            raise ConfigError(f"dither doesn't exist: '{options.dither}' (available: {', '.join(DITHER_MODES)})")
        if len(options.palette) < 2:
            raise ConfigError("palette needs at least 2 gray levels")
        self.options = options

    def to_device_raster(self, image):
        opts = self.options
        gray = to_gray(image, opts.algo)
        if opts.crop:
            gray = crop_margins(gray)
        gray = fit_within(gray, opts.view_width, opts.view_height)
        if opts.letterbox:
            gray = letterbox(gray, opts.view_width, opts.view_height)
        return quantize(gray, opts.palette, opts.dither)

    def normalize(self, page: DecodedPage, quality=None) -> NormalizedPage:
        if page.raster_image is None:
            raise EpubProcessingError(f"page {page.name} has no image to normalize")
        quality = quality or self.options.quality
        try:
            raster = self.to_device_raster(page.raster_image)
            data = encode_jpeg(raster, quality)
        except (OSError, ValueError) as e:
            app_logger.error(f"Normalization failed for {page.name}: {e}", exc_info=True)
            raise EpubProcessingError(f"error normalizing image {page.name}: {e}")
        app_logger.debug(f"Page {page.sequence_index} ({page.name}) -> {raster.width}x{raster.height}, {len(data)} bytes")
        return NormalizedPage(
            sequence_index=page.sequence_index,
            encoded_bytes=data,
            width=raster.width,
            height=raster.height,
            gray_levels=len(self.options.palette),
            quality=quality,
            directory_prefix=page.directory_prefix,
            file_base_name=page.file_base_name,
            image=raster,
        )

    def reencode(self, page: NormalizedPage, quality) -> NormalizedPage:
        """
        Encode page again at quality. The previous encoding is kept when the
        new one isn't smaller, so a page never grows as quality goes down.
        quality always describes the bytes: kept bytes keep their quality.
        """
        data = encode_jpeg(page.image, quality)
        if len(data) >= len(page.encoded_bytes):
            data = page.encoded_bytes
            quality = page.quality
        return NormalizedPage(
            sequence_index=page.sequence_index,
            encoded_bytes=data,
            width=page.width,
            height=page.height,
            gray_levels=page.gray_levels,
            quality=quality,
            directory_prefix=page.directory_prefix,
            file_base_name=page.file_base_name,
            image=page.image,
        )

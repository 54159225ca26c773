"""Shared fixtures. Config and log locations are redirected before comic2epub is imported."""

import io
import os
import random
import tempfile
import threading
import time
import zipfile

_SANDBOX = tempfile.mkdtemp(prefix="comic2epub_tests_")
os.environ.setdefault("COMIC2EPUB_CONFIG", os.path.join(_SANDBOX, "config.json"))
os.environ.setdefault("COMIC2EPUB_LOG_DIR", os.path.join(_SANDBOX, "logs"))

import numpy as np
import pytest
from PIL import Image

from comic2epub.container_source import ContainerSource


def make_image(size=(100, 200), gray=128):
    return Image.new("RGB", size, color=(gray, gray, gray))


def make_noise(size=(200, 300), seed=0):
    rng = np.random.default_rng(seed)
    return Image.fromarray(rng.integers(0, 256, (size[1], size[0], 3), dtype=np.uint8))


def png_bytes(img):
    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def comic_dir(tmp_path):
    """Three pages whose natural order differs from the lexicographic one, widths 100/110/120."""
    root = tmp_path / "MyComic"
    root.mkdir()
    make_image((110, 200)).save(root / "page2.png")
    make_image((120, 200)).save(root / "page10.png")
    make_image((100, 200)).save(root / "page1.png")
    (root / "notes.txt").write_text("not a page")
    return root


@pytest.fixture
def comic_zip(tmp_path):
    path = tmp_path / "MyComic.cbz"
    with zipfile.ZipFile(path, "w") as zf:
        zf.writestr("chapter 2/", "")
        zf.writestr("chapter 2/01.png", png_bytes(make_image((130, 200))))
        zf.writestr("chapter 10/01.png", png_bytes(make_image((140, 200))))
        zf.writestr("chapter 1/02.png", png_bytes(make_image((120, 200))))
        zf.writestr("chapter 1/01.PNG", png_bytes(make_image((110, 200))))
        zf.writestr("readme.txt", "hello")
    return path


def epub_member(epub_path, suffix):
    with zipfile.ZipFile(epub_path) as zf:
        for name in zf.namelist():
            if name.endswith(suffix):
                return zf.read(name)
    raise KeyError(suffix)


def epub_members(epub_path):
    with zipfile.ZipFile(epub_path) as zf:
        return zf.namelist()


class FakeSource(ContainerSource):
    """Pages named p<N>.png; loading sleeps a random time and returns an image N+1 pixels wide."""
    kind = "fake"

    def __init__(self, count, failing=(), delay=0.01):
        super().__init__("fake")
        self.count = count
        self.failing = set(failing)
        self.delay = delay
        self.loads = 0
        self._lock = threading.Lock()

    def list_names(self):
        names = [f"p{i}.png" for i in range(self.count)]
        random.shuffle(names)
        return names

    def _load(self, entry):
        with self._lock:
            self.loads += 1
        time.sleep(random.uniform(0, self.delay))
        if entry.source_identifier in self.failing:
            raise OSError("truncated image")
        number = int(entry.source_identifier[1:-4])
        return Image.new("L", (number + 1, 4))

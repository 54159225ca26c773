"""
Container listing and page access.

Every supported input (image folder, zip/cbz, rar/cbr, pdf) is wrapped in a
ContainerSource. list_entries() enumerates and orders the pages once, up front;
iter_jobs() yields one DecodeJob per page whose load() returns the decoded
PIL image. Solid rar archives can't be read at random: the wanted members are
extracted by one extractor run into a temporary directory, then handed out in
archive order.
"""
import io
import os
import posixpath
import tempfile
import zipfile
from dataclasses import dataclass
from functools import partial
from typing import Callable

import rarfile
from PIL import Image
from pdf2image import convert_from_path, pdfinfo_from_path
from pdf2image.exceptions import PDFInfoNotInstalledError, PDFPageCountError, PDFSyntaxError

from comic2epub.dtos import PageEntry
from comic2epub.exceptions import FileOperationError, NoImagesFoundError, UnsupportedFormatError, DecodeError
from comic2epub.logger import app_logger
from comic2epub.sortpath import SORT_NATURAL, index_paths

SUPPORTED_IMAGE_EXTENSIONS = ('.jpg', '.jpeg', '.png', '.webp')
ZIP_EXTENSIONS = ('.cbz', '.zip')
RAR_EXTENSIONS = ('.cbr', '.rar')
PDF_EXTENSIONS = ('.pdf',)

def is_supported_image(path):
    """only accept jpg, png and webp as source file"""
    return os.path.splitext(path)[1].lower() in SUPPORTED_IMAGE_EXTENSIONS

def decode_bytes(data):
    img = Image.open(io.BytesIO(data))
    img.load()
    return img

def _raise_decode_error(source_identifier, cause):
    raise DecodeError(source_identifier, cause) from cause

@dataclass
class DecodeJob:
    entry: PageEntry
    load: Callable # () -> PIL image


class ContainerSource:
    kind = None

    def __init__(self, path, sort_path_mode=SORT_NATURAL):
        self.path = path
        self.sort_path_mode = sort_path_mode
        self.entries = None

    def list_names(self):
        """Raw container-relative names of the supported images."""
        raise NotImplementedError

    def is_solid(self):
        return False

    def list_entries(self):
        """
        List, order and index the pages. Computed once and cached.

        Raises:
            FileOperationError: container unreadable.
            NoImagesFoundError: no supported image in the container.
        """
        if self.entries is not None:
            return self.entries

        names = self.list_names()
        unique_names = list(dict.fromkeys(names))
        if len(unique_names) != len(names):
            app_logger.warning(f"'{self.path}': {len(names) - len(unique_names)} duplicate entries ignored.")
        if not unique_names:
            raise NoImagesFoundError(f"no images found in '{self.path}'")

        ordered, _ = index_paths(unique_names, self.sort_path_mode)
        solid = self.is_solid()
        self.entries = [PageEntry(name, i, solid) for i, name in enumerate(ordered)]
        app_logger.info(f"'{self.path}' ({self.kind}): {len(self.entries)} pages found.")
        return self.entries

    def iter_jobs(self, entries, dry=False):
        for entry in entries:
            yield DecodeJob(entry, partial(self._load, entry))

    def _load(self, entry):
        raise NotImplementedError

    def split_name(self, entry):
        """(directory prefix, file base name) of an entry."""
        prefix, base = posixpath.split(entry.source_identifier)
        return prefix, base

    def close(self):
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


class DirectorySource(ContainerSource):
    kind = "directory"

    def list_names(self):
        root = os.path.normpath(self.path)

        def on_error(err):
            raise FileOperationError(f"Can't read directory '{err.filename}': {err}")

        names = []
        for dirpath, _, filenames in os.walk(root, onerror=on_error):
            for fn in filenames:
                if is_supported_image(fn):
                    rel = os.path.relpath(os.path.join(dirpath, fn), root)
                    names.append(rel.replace(os.sep, '/'))
        return names

    def _load(self, entry):
        full_path = os.path.join(self.path, *entry.source_identifier.split('/'))
        with open(full_path, 'rb') as f:
            return decode_bytes(f.read())


class ZipSource(ContainerSource):
    kind = "zip"

    def __init__(self, path, sort_path_mode=SORT_NATURAL):
        super().__init__(path, sort_path_mode)
        self._zip = None

    def list_names(self):
        try:
            # ZipFile reads are serialized internally, one handle serves all workers
            self._zip = zipfile.ZipFile(self.path)
        except (zipfile.BadZipFile, OSError) as e:
            raise FileOperationError(f"Can't open zip '{self.path}': {e}")
        return [info.filename for info in self._zip.infolist()
                if not info.is_dir() and is_supported_image(info.filename)]

    def _load(self, entry):
        with self._zip.open(entry.source_identifier) as f:
            return decode_bytes(f.read())

    def close(self):
        if self._zip is not None:
            self._zip.close()
            self._zip = None


class RarSource(ContainerSource):
    kind = "rar"

    def __init__(self, path, sort_path_mode=SORT_NATURAL):
        super().__init__(path, sort_path_mode)
        self._solid = False

    def list_names(self):
        # metadata only, nothing is extracted here
        try:
            with rarfile.RarFile(self.path) as rf:
                self._solid = rf.is_solid()
                infos = rf.infolist()
        except (rarfile.Error, OSError) as e:
            raise FileOperationError(f"Can't open rar '{self.path}': {e}")
        app_logger.debug(f"'{self.path}' solid={self._solid}")
        return [info.filename for info in infos
                if not info.is_dir() and is_supported_image(info.filename)]

    def is_solid(self):
        return self._solid

    def iter_jobs(self, entries, dry=False):
        if not self._solid or dry:
            yield from super().iter_jobs(entries, dry)
            return

        wanted = {entry.source_identifier: entry for entry in entries}
        app_logger.info(f"'{self.path}' is solid, extracting in a single pass.")
        with tempfile.TemporaryDirectory(prefix="comic2epub_") as tmp_dir:
            try:
                with rarfile.RarFile(self.path) as rf:
                    members = [info for info in rf.infolist() if info.filename in wanted]
                    # one extractor run streams the solid block once
                    rf.extractall(path=tmp_dir, members=members)
            except (rarfile.Error, OSError) as e:
                raise DecodeError(self.path, e) from e

            for info in members:
                entry = wanted[info.filename]
                extracted = os.path.join(tmp_dir, *info.filename.split('/'))
                try:
                    with open(extracted, 'rb') as f:
                        data = f.read()
                except OSError as e:
                    # only this page is lost, the rest of the archive is still delivered
                    yield DecodeJob(entry, partial(_raise_decode_error, info.filename, e))
                    continue
                yield DecodeJob(entry, partial(decode_bytes, data))

    def _load(self, entry):
        # independent handle per page, workers never share a reader
        with rarfile.RarFile(self.path) as rf:
            data = rf.read(entry.source_identifier)
        return decode_bytes(data)


class PdfSource(ContainerSource):
    kind = "pdf"

    def list_names(self):
        try:
            total = pdfinfo_from_path(self.path)["Pages"]
        except (PDFInfoNotInstalledError, PDFPageCountError, PDFSyntaxError, KeyError, OSError) as e:
            raise FileOperationError(f"can't read pdf '{self.path}': {e}")
        return pdf_page_names(total)

    def list_entries(self):
        # synthetic names are already in page order
        if self.entries is not None:
            return self.entries
        names = self.list_names()
        if not names:
            raise NoImagesFoundError(f"no images found in '{self.path}'")
        self.entries = [PageEntry(name, i) for i, name in enumerate(names)]
        app_logger.info(f"'{self.path}' (pdf): {len(self.entries)} pages found.")
        return self.entries

    def _load(self, entry):
        page = entry.sequence_index + 1
        images = convert_from_path(self.path, first_page=page, last_page=page)
        if not images:
            raise FileOperationError(f"pdf page {page} could not be rendered")
        return images[0]

def pdf_page_names(total):
    """'page 1'..'page 9' for 9 pages, 'page 001'..'page 120' for 120 pages."""
    width = len(str(total))
    return [f"page {i:0{width}d}" for i in range(1, total + 1)]

def open_container(path, sort_path_mode=SORT_NATURAL):
    """
    Pick the ContainerSource for path. The format comes from the extension only.

    Raises:
        FileOperationError: path doesn't exist.
        UnsupportedFormatError: unknown file extension.
    """
    if not os.path.exists(path):
        raise FileOperationError(f"Input not found: '{path}'")
    if os.path.isdir(path):
        return DirectorySource(path, sort_path_mode)

    ext = os.path.splitext(path)[1].lower()
    if ext in ZIP_EXTENSIONS:
        return ZipSource(path, sort_path_mode)
    if ext in RAR_EXTENSIONS:
        return RarSource(path, sort_path_mode)
    if ext in PDF_EXTENSIONS:
        return PdfSource(path, sort_path_mode)
    raise UnsupportedFormatError(f"unknown file format ({ext}): support .cbz, .zip, .cbr, .rar, .pdf")

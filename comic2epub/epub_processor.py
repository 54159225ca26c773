import io
import os
import uuid
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait

from ebooklib import epub
from tqdm import tqdm

from comic2epub.config_manager import config_manager
from comic2epub.container_source import open_container
from comic2epub.decode_pool import DecodePool, FailurePolicy
from comic2epub.dtos import EpubBuildResult, ImageOptions
from comic2epub.exceptions import EpubProcessingError, FileOperationError
from comic2epub.image_normalizer import ImageNormalizer
from comic2epub.logger import app_logger
from comic2epub.sortpath import SORT_NATURAL

STYLESHEET = """
@page { margin: 0; }
body { margin: 0; padding: 0; text-align: center; }
div.page { width: 100%; height: 100%; display: flex; align-items: center; justify-content: center; }
div.page img { max-width: 100%; max-height: 100%; }
"""

MB = 1024 * 1024

def page_name(page):
    return f"{page.directory_prefix}/{page.file_base_name}" if page.directory_prefix else page.file_base_name

def check_page_order(pages, total_images, skipped_indices=()):
    """
    pages must be sorted by sequence_index without duplicates and cover
    0..total_images-1 except exactly the skipped_indices.
    """
    indices = [p.sequence_index for p in pages]
    if len(set(indices)) != len(indices):
        raise EpubProcessingError("duplicate page index in assembled pages")
    if indices != sorted(indices):
        raise EpubProcessingError("assembled pages are not in sequence order")
    if indices and (indices[0] < 0 or indices[-1] >= total_images):
        raise EpubProcessingError("page index out of range")
    missing = sorted(set(range(total_images)) - set(indices))
    if missing != sorted(skipped_indices):
        raise EpubProcessingError(f"pages {missing} are missing but pages {sorted(skipped_indices)} were skipped")

def build_book(pages, title, author, language, identifier):
    """
    Fixed layout book with one XHTML page per image, in the order of pages.
    """
    book = epub.EpubBook()
    book.set_identifier(identifier)
    book.set_title(title)
    book.set_language(language)
    book.add_author(author)
    book.add_metadata(None, 'meta', 'pre-paginated', {'property': 'rendition:layout'})
    book.add_metadata(None, 'meta', 'auto', {'property': 'rendition:spread'})

    style = epub.EpubItem(uid="style", file_name="Styles/style.css", media_type="text/css", content=STYLESHEET)
    book.add_item(style)
    if pages:
        book.set_cover("Images/cover.jpg", pages[0].encoded_bytes, create_page=False)

    digits = max(4, len(str(len(pages))))
    spine = []
    toc = []
    previous_prefix = None
    for number, page in enumerate(pages, start=1):
        stem = f"page_{number:0{digits}d}"
        epub_image = epub.EpubImage(uid=f"img_{stem}", file_name=f"Images/{stem}.jpg",
                                    media_type="image/jpeg", content=page.encoded_bytes)
        book.add_item(epub_image)

        page_title = f"Page {number}"
        chapter = epub.EpubHtml(uid=stem, title=page_title, file_name=f"Text/{stem}.xhtml", lang=language)
        chapter.content = (f'<div class="page"><img src="../Images/{stem}.jpg" alt="{page_title}" '
                           f'width="{page.width}" height="{page.height}"/></div>')
        chapter.add_link(href="../Styles/style.css", rel="stylesheet", type="text/css")
        book.add_item(chapter)
        spine.append(chapter)

        # one toc entry for the first page of every directory
        if page.directory_prefix != previous_prefix:
            toc.append(epub.Link(chapter.file_name, page.directory_prefix or title, f"toc_{stem}"))
            previous_prefix = page.directory_prefix

    if len(toc) == 1 and spine:
        toc = [epub.Link(spine[0].file_name, "Pages", "toc_pages")]

    book.toc = toc
    book.spine = spine
    book.add_item(epub.EpubNcx())
    book.add_item(epub.EpubNav())
    return book

def render_book(book):
    """Serialize book to EPUB bytes in memory."""
    buffer = io.BytesIO()
    epub.write_epub(buffer, book, {})
    data = buffer.getvalue()
    if not data:
        raise EpubProcessingError("EPUB serialization produced no data")
    return data


class SizeFittingAssembler:
    """
    Renders the book and, while it is larger than limit, re-encodes every page
    at a lower quality and renders again, down to min_quality.
    """

    def __init__(self, normalizer, title, author, language, limit=0,
                 quality_step=5, min_quality=10, workers=1, identifier=None):
        self.normalizer = normalizer
        self.title = title
        self.author = author
        self.language = language
        self.limit = limit
        self.quality_step = max(1, quality_step)
        self.min_quality = min_quality
        self.workers = max(1, workers)
        self.identifier = identifier or f"urn:uuid:{uuid.uuid4()}"

    def _render(self, pages):
        return render_book(build_book(pages, self.title, self.author, self.language, self.identifier))

    def _reencode_all(self, pages, quality):
        with ThreadPoolExecutor(max_workers=self.workers) as executor:
            return list(executor.map(lambda p: self.normalizer.reencode(p, quality), pages))

    def assemble(self, pages, total_images, skipped=(), skipped_indices=()):
        """
        Args:
            skipped (list[str]): names of the pages dropped by the skip policy.
            skipped_indices (list[int]): their sequence indexes, the only allowed gaps.

        Returns:
            tuple: (epub bytes, EpubBuildResult). result.limit_met is False when
                the floor quality still exceeds the limit; the bytes are then the
                smallest rendering reached.
        """
        if not pages:
            raise EpubProcessingError("no page left to assemble")
        check_page_order(pages, total_images, skipped_indices)

        quality = pages[0].quality
        attempts = []
        while True:
            data = self._render(pages)
            attempts.append((quality, len(data)))
            app_logger.info(f"EPUB rendered at quality {quality}: {len(data)} bytes (limit: {self.limit or 'none'})")
            if not self.limit or len(data) <= self.limit:
                limit_met = True
                break
            if quality <= self.min_quality:
                limit_met = False
                app_logger.warning(f"Size limit {self.limit} bytes not reachable, best effort at quality {quality}: {len(data)} bytes")
                break
            quality = max(self.min_quality, quality - self.quality_step)
            pages = self._reencode_all(pages, quality)

        result = EpubBuildResult(
            total_images=total_images,
            pages=pages,
            page_names=[page_name(p) for p in pages],
            quality=quality,
            size=len(data),
            limit=self.limit,
            limit_met=limit_met,
            attempts=attempts,
            skipped=list(skipped),
        )
        return data, result


class EpubProcessor:
    def __init__(self, input_source, output_epub_path, image_options: ImageOptions,
                 title, author=None, language=None, limit_mb=0, workers=None,
                 sort_path_mode=SORT_NATURAL, dry=False, failure_policy=FailurePolicy.FAIL_FAST,
                 show_progress=True):
        """
        Comic to EPUB pipeline: list -> order -> decode -> normalize -> assemble.

        Args:
            input_source (str): image directory, .cbz/.zip, .cbr/.rar or .pdf.
            output_epub_path (str): target .epub file.
            image_options (ImageOptions): device size, palette and encoding settings.
            title (str): EPUB title.
            limit_mb (int): size limit in MB, 0 for none.
            workers (int): total worker threads, None for the config value or the CPU count.
            dry (bool): list and order only, nothing is decoded or written.
        """
        self.input_source = input_source
        self.output_epub_path = output_epub_path
        self.image_options = image_options
        self.title = title
        self.author = author or config_manager.get("default_author")
        self.language = language or config_manager.get("default_language")
        self.limit = limit_mb * MB if limit_mb else 0
        self.workers = workers or config_manager.get("workers") or os.cpu_count() or 1
        self.sort_path_mode = sort_path_mode
        self.dry = dry
        self.failure_policy = FailurePolicy.parse(failure_policy)
        self.show_progress = show_progress
        self.normalizer = ImageNormalizer(image_options)
        app_logger.info(f"EpubProcessor: input='{input_source}', output='{output_epub_path}', workers={self.workers}, dry={dry}")

    def workers_ratio(self, pct):
        return max(1, self.workers * pct // 100)

    def _decode_only(self, pool, total):
        decoded = list(tqdm(pool.results(), total=total, desc="Listing", unit="img", disable=not self.show_progress))
        decoded.sort(key=lambda p: p.sequence_index)
        return decoded

    def _collect(self, done, pages, progress):
        for future in done:
            page = future.result()
            if not self.limit:
                # no size limit, the page is never re-encoded
                page.image = None
            pages.append(page)
            progress.update(1)

    def _decode_and_normalize(self, pool, total):
        """
        Normalize pages as they come out of the decode pool, then restore page order.

        At most twice the normalize worker count of decoded pages wait for a
        normalize worker; past that the decode pool is not read, so its bounded
        queues stop the decoders. The first failed page stops both stages.
        """
        normalize_workers = max(1, self.workers - pool.workers)
        max_pending = normalize_workers * 2
        pages = []
        pending = set()
        results = pool.results()
        with ThreadPoolExecutor(max_workers=normalize_workers, thread_name_prefix="normalize") as executor, \
                tqdm(total=total, desc="Converting", unit="img", disable=not self.show_progress) as progress:
            try:
                for decoded in results:
                    pending.add(executor.submit(self.normalizer.normalize, decoded))
                    if len(pending) >= max_pending:
                        done, pending = wait(pending, return_when=FIRST_COMPLETED)
                        self._collect(done, pages, progress)
                done, pending = wait(pending)
                self._collect(done, pages, progress)
            finally:
                for future in pending:
                    future.cancel()
                results.close()
        pages.sort(key=lambda p: p.sequence_index)
        return pages

    def create_epub(self) -> EpubBuildResult:
        app_logger.info(f"EPUB generation start: '{self.output_epub_path}'")
        with open_container(self.input_source, self.sort_path_mode) as source:
            entries = source.list_entries()
            total = len(entries)
            decode_ratio = config_manager.get("decode_workers_ratio")
            pool = DecodePool(source, entries, self.workers_ratio(decode_ratio), dry=self.dry, policy=self.failure_policy)

            if self.dry:
                decoded = self._decode_only(pool, total)
                app_logger.info(f"Dry run: {total} images, {len(pool.skipped)} skipped")
                return EpubBuildResult(
                    total_images=total,
                    page_names=[p.name for p in decoded],
                    skipped=list(pool.skipped),
                    dry_run=True,
                )

            pages = self._decode_and_normalize(pool, total)

        assembler = SizeFittingAssembler(
            self.normalizer, self.title, self.author, self.language,
            limit=self.limit,
            quality_step=config_manager.get("size_fit_quality_step"),
            min_quality=config_manager.get("size_fit_min_quality"),
            workers=self.workers,
        )
        data, result = assembler.assemble(pages, total, pool.skipped, pool.skipped_indices)

        try:
            with open(self.output_epub_path, 'wb') as f:
                f.write(data)
        except OSError as e:
            app_logger.error(f"EPUB write failed '{self.output_epub_path}': {e}", exc_info=True)
            raise FileOperationError(f"Can't write '{self.output_epub_path}': {e}")
        result.output_path = self.output_epub_path
        app_logger.info(f"EPUB written: '{self.output_epub_path}' ({result.size} bytes, quality {result.quality})")
        return result

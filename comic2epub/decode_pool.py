"""
Bounded parallel page decoding.

A producer thread feeds one job per page into a bounded queue, a fixed set of
workers decode the jobs and push DecodedPage values into a bounded output queue.
Once every worker has returned a closer thread pushes an end marker, so the
consumer sees end of stream exactly once. Pages come out in completion order;
callers reorder them by sequence_index.

Errors never leave a worker thread: they travel through the output queue and
the consumer decides, according to the FailurePolicy, whether to cancel the
pool and raise DecodeError or to skip the page. An error that ends the job
stream itself (an archive that can't be extracted) is always raised.
"""
import queue
import threading
from concurrent.futures import ThreadPoolExecutor, wait
from enum import Enum

from comic2epub.dtos import DecodedPage
from comic2epub.exceptions import DecodeError
from comic2epub.logger import app_logger

_POLL_SECONDS = 0.1

class FailurePolicy(Enum):
    FAIL_FAST = "fail_fast"
    SKIP = "skip"

    @classmethod
    def parse(cls, value):
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise ValueError(f"unknown failure policy: {value}")

class _Failure:
    """
    A page error, or with fatal set an error of the job stream itself. A fatal
    failure may have cost any number of pages, so no policy can skip it.
    """
    def __init__(self, source_identifier, error, sequence_index=None, fatal=False):
        self.source_identifier = source_identifier
        self.error = error
        self.sequence_index = sequence_index
        self.fatal = fatal

_NO_MORE_JOBS = object()
_END_OF_STREAM = object()
_CANCELLED = object()

def _put(q, item, cancel):
    """Blocking put that gives up once cancel is set."""
    while not cancel.is_set():
        try:
            q.put(item, timeout=_POLL_SECONDS)
            return True
        except queue.Full:
            continue
    return False

def _get(q, cancel):
    while not cancel.is_set():
        try:
            return q.get(timeout=_POLL_SECONDS)
        except queue.Empty:
            continue
    return _CANCELLED


class DecodePool:
    def __init__(self, source, entries, workers, dry=False, policy=FailurePolicy.FAIL_FAST):
        """
        Args:
            source (ContainerSource): container the entries were listed from.
            entries (list[PageEntry]): ordered and indexed pages.
            workers (int): number of decode threads.
            dry (bool): skip decoding, every DecodedPage carries raster_image=None.
            policy (FailurePolicy): what a page error does to the run.
        """
        self.source = source
        self.entries = entries
        self.workers = max(1, int(workers))
        self.dry = dry
        self.policy = FailurePolicy.parse(policy)
        self.skipped = []
        self.skipped_indices = []

    def _produce(self, jobs, output, cancel):
        job_stream = self.source.iter_jobs(self.entries, self.dry)
        try:
            for job in job_stream:
                if not _put(jobs, job, cancel):
                    return
        except DecodeError as e:
            _put(output, _Failure(e.source_identifier, e, fatal=True), cancel)
        except Exception as e:
            _put(output, _Failure(self.source.path, e, fatal=True), cancel)
        finally:
            job_stream.close()
            for _ in range(self.workers):
                if not _put(jobs, _NO_MORE_JOBS, cancel):
                    break

    def _work(self, jobs, output, cancel):
        while True:
            job = _get(jobs, cancel)
            if job is _NO_MORE_JOBS or job is _CANCELLED:
                return
            name = job.entry.source_identifier
            img = None
            if not self.dry:
                try:
                    img = job.load()
                except Exception as e:
                    if not _put(output, _Failure(name, e, job.entry.sequence_index), cancel):
                        return
                    continue
            prefix, base = self.source.split_name(job.entry)
            page = DecodedPage(sequence_index=job.entry.sequence_index, raster_image=img,
                               directory_prefix=prefix, file_base_name=base)
            if not _put(output, page, cancel):
                return

    def results(self):
        """
        Yield DecodedPage values in completion order.

        Raises:
            DecodeError: a page failed under FailurePolicy.FAIL_FAST. Outstanding
                work is cancelled before the error propagates.
        """
        jobs = queue.Queue(maxsize=self.workers)
        output = queue.Queue(maxsize=self.workers)
        cancel = threading.Event()

        producer = threading.Thread(target=self._produce, args=(jobs, output, cancel), daemon=True)
        executor = ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="decode")
        futures = [executor.submit(self._work, jobs, output, cancel) for _ in range(self.workers)]

        def close_when_done():
            wait(futures)
            _put(output, _END_OF_STREAM, cancel)

        closer = threading.Thread(target=close_when_done, daemon=True)
        producer.start()
        closer.start()
        app_logger.debug(f"Decode pool started: {len(self.entries)} pages, {self.workers} workers, dry={self.dry}")

        try:
            while True:
                item = _get(output, cancel)
                if item is _END_OF_STREAM or item is _CANCELLED:
                    break
                if isinstance(item, _Failure):
                    if self.policy is FailurePolicy.SKIP and not item.fatal:
                        app_logger.warning(f"Skipping page {item.source_identifier}: {item.error}")
                        self.skipped.append(item.source_identifier)
                        self.skipped_indices.append(item.sequence_index)
                        continue
                    app_logger.error(f"error processing image {item.source_identifier}: {item.error}")
                    if isinstance(item.error, DecodeError):
                        raise item.error
                    raise DecodeError(item.source_identifier, item.error) from item.error
                yield item
        finally:
            # normal end, error or consumer stopped early: release every thread
            cancel.set()
            executor.shutdown(wait=True)
            producer.join()
            closer.join()

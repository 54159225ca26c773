from dataclasses import dataclass, field
from typing import Optional, List, Tuple
from PIL.Image import Image as PILImage

@dataclass(frozen=True)
class PageEntry:
    """
    One page found while listing a container.
    sequence_index is assigned after ordering and never changes afterwards.
    """
    source_identifier: str # container-relative path, '/' separated (synthetic "page 001" for PDF)
    sequence_index: int # 0-based position in the final book
    is_solid_compressed: bool = False # rar only

@dataclass
class DecodedPage:
    """
    Output of a decode worker. Arrives in completion order, not page order.
    """
    sequence_index: int
    raster_image: Optional[PILImage] # None in dry run
    directory_prefix: str # '' for pages at the container root
    file_base_name: str

    @property
    def name(self):
        return f"{self.directory_prefix}/{self.file_base_name}" if self.directory_prefix else self.file_base_name

@dataclass
class NormalizedPage:
    """
    A page reduced to the device profile and encoded.
    image keeps the quantized raster so the page can be re-encoded at another quality.
    """
    sequence_index: int
    encoded_bytes: bytes
    width: int
    height: int
    gray_levels: int
    quality: int
    directory_prefix: str = ""
    file_base_name: str = ""
    image: Optional[PILImage] = field(default=None, repr=False)

@dataclass
class ImageOptions:
    view_width: int
    view_height: int
    palette: Tuple[int, ...] # gray levels 0..255, ascending
    quality: int = 85
    crop: bool = True
    algo: str = "default"
    dither: str = "floyd"
    letterbox: bool = False

@dataclass
class ConversionOptions:
    input: str
    output: Optional[str] = None
    profile: str = ""
    title: Optional[str] = None
    author: Optional[str] = None
    language: Optional[str] = None
    quality: Optional[int] = None
    crop: bool = True
    algo: Optional[str] = None
    dither: Optional[str] = None
    letterbox: bool = False
    limit_mb: int = 0
    workers: Optional[int] = None
    sort_path_mode: Optional[int] = None
    dry: bool = False
    failure_policy: Optional[str] = None
    show_progress: bool = True

@dataclass
class EpubBuildResult:
    """
    Outcome of a conversion. pages are in ascending sequence_index order.
    limit_met is False when the size limit could not be reached at the quality floor.
    """
    total_images: int
    pages: List[NormalizedPage] = field(default_factory=list)
    page_names: List[str] = field(default_factory=list)
    quality: int = 0
    size: int = 0
    limit: int = 0
    limit_met: bool = True
    attempts: List[Tuple[int, int]] = field(default_factory=list) # (quality, size)
    skipped: List[str] = field(default_factory=list)
    dry_run: bool = False
    output_path: Optional[str] = None

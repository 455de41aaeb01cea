"""Images: ledger of image urls discovered from sources."""

from kchoo.images.config import ImagesConfig
from kchoo.images.repository import ImagesRepository
from kchoo.images.schemas import ImageRecordSummary, PendingImage

__all__ = [
    "ImageRecordSummary",
    "ImagesConfig",
    "ImagesRepository",
    "PendingImage",
]

"""Perceptual hashing for selfie images.

Uses an average hash: the image is shrunk to 8x8 grayscale and each pixel
contributes one bit, set when the pixel is brighter than the mean.
"""

import hashlib
import io
import logging
import warnings

from PIL import Image, UnidentifiedImageError

from guest_access.domain.errors import SelfieTooLargeError

logger = logging.getLogger(__name__)

HASH_SIZE = 8
HASH_BITS = HASH_SIZE * HASH_SIZE
HASH_HEX_LENGTH = HASH_BITS // 4


def average_hash(image_bytes: bytes) -> str:
    """Return a 16-character hex average hash for an image.

    Images whose declared size exceeds Pillow's decompression bomb limit
    raise ``SelfieTooLargeError`` before any pixel data is decoded.
    """
    try:
        with warnings.catch_warnings():
            warnings.simplefilter("error", Image.DecompressionBombWarning)
            with Image.open(io.BytesIO(image_bytes)) as image:
                image.draft("L", (HASH_SIZE * 8, HASH_SIZE * 8))
                small = image.convert("L").resize(
                    (HASH_SIZE, HASH_SIZE), Image.Resampling.LANCZOS
                )
                pixels = list(small.getdata())
    except (Image.DecompressionBombError, Image.DecompressionBombWarning) as exc:
        logger.warning("Rejected selfie with oversized dimensions")
        raise SelfieTooLargeError("Selfie image dimensions are too large") from exc
    except (UnidentifiedImageError, OSError):
        logger.warning("Could not decode selfie image, hashing raw content")
        return hashlib.sha256(image_bytes).hexdigest()[:HASH_HEX_LENGTH]

    average = sum(pixels) / len(pixels)
    value = 0
    for pixel in pixels:
        value = (value << 1) | (1 if pixel > average else 0)
    return f"{value:0{HASH_HEX_LENGTH}x}"


def hamming_distance(first: str, second: str) -> int:
    """Return the number of differing bits between two hex hashes."""
    return bin(int(first, 16) ^ int(second, 16)).count("1")


def are_similar(first: str, second: str, threshold: int = 5) -> bool:
    """Return True when two hashes differ by at most ``threshold`` bits."""
    return hamming_distance(first, second) <= threshold

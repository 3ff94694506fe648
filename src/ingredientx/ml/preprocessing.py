"""Image preprocessing: decode, center-crop, resize, and tensor encoding.

Images travel through the pipeline as HxWx3 RGB uint8 numpy arrays. The
classifier input is the resized square image with a leading batch axis, raw
0-255 channel values, row-major with interleaved channels.
"""

from __future__ import annotations

import io
import logging
from typing import TYPE_CHECKING, Literal, Protocol

import numpy as np
from PIL import Image, ImageOps

from ingredientx.ml.errors import DecodeError, TensorLayoutError

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from ingredientx.config import Settings

logger = logging.getLogger(__name__)

ResampleMode = Literal["nearest", "bilinear"]

_RESAMPLE_FILTERS: dict[str, Image.Resampling] = {
    "nearest": Image.Resampling.NEAREST,
    "bilinear": Image.Resampling.BILINEAR,
}


def decode_image(
    image_bytes: bytes,
    max_pixels: int | None = None,
    apply_exif_orientation: bool = False,
) -> NDArray[np.uint8]:
    """Decode raw image bytes into a read-only RGB uint8 numpy array.

    Args:
        image_bytes: Raw file bytes (any format Pillow can read).
        max_pixels: Reject images with more pixels than this.
        apply_exif_orientation: Rotate/flip according to the EXIF orientation tag.

    Returns:
        HxWx3 RGB uint8 numpy array.

    Raises:
        DecodeError: If the image cannot be decoded or exceeds size limits.
    """
    if not image_bytes:
        raise DecodeError("Empty image data")

    try:
        with Image.open(io.BytesIO(image_bytes)) as pil_image:
            width, height = pil_image.size
            if max_pixels is not None and width * height > max_pixels:
                raise DecodeError(f"Image too large: {width}x{height} exceeds {max_pixels} pixels")
            # Force a full decode so truncated streams fail here.
            pil_image.load()
            if apply_exif_orientation:
                oriented = ImageOps.exif_transpose(pil_image)
                if oriented is not None:
                    pil_image = oriented
            rgb = pil_image.convert("RGB")
    except DecodeError:
        raise
    except Image.DecompressionBombError as exc:
        raise DecodeError(f"Image too large: {exc}") from exc
    except (OSError, SyntaxError, ValueError) as exc:
        raise DecodeError(f"Unable to decode image: {exc}") from exc

    pixels = np.array(rgb, dtype=np.uint8)
    pixels.setflags(write=False)
    return pixels


def center_crop_square(image: NDArray[np.uint8]) -> NDArray[np.uint8]:
    """Crop the larger dimension down to the smaller one, keeping the crop centered.

    The origin is ``((width - side) // 2, (height - side) // 2)``, so an odd
    difference leaves the extra pixel on the right/bottom edge.
    """
    height, width = image.shape[:2]
    side = min(width, height)
    x0 = (width - side) // 2
    y0 = (height - side) // 2
    return image[y0 : y0 + side, x0 : x0 + side]


def resize_square(
    image: NDArray[np.uint8],
    size: int,
    resample: ResampleMode = "nearest",
) -> NDArray[np.uint8]:
    """Resample an image to exactly ``size`` x ``size``.

    An image that already has the target size is returned unchanged.
    """
    if image.shape[:2] == (size, size):
        return image

    try:
        resample_filter = _RESAMPLE_FILTERS[resample]
    except KeyError:
        raise ValueError(f"Unsupported resample mode: {resample}") from None

    pil_image = Image.fromarray(np.ascontiguousarray(image))
    resized = np.array(pil_image.resize((size, size), resample=resample_filter), dtype=np.uint8)
    resized.setflags(write=False)
    return resized


def encode_tensor(image: NDArray[np.uint8], size: int) -> NDArray[np.uint8]:
    """Lay out a resized image as a (1, size, size, 3) uint8 tensor.

    No normalization is applied. ``tensor.tobytes()`` yields R, G, B per pixel,
    x inner, y outer.

    Raises:
        TensorLayoutError: If the image is not ``size`` x ``size`` RGB uint8.
    """
    if image.shape != (size, size, 3) or image.dtype != np.uint8:
        raise TensorLayoutError(
            f"Expected a ({size}, {size}, 3) uint8 image, got {image.shape} {image.dtype}"
        )
    tensor = np.ascontiguousarray(image).reshape(1, size, size, 3)
    if tensor.size != size * size * 3:
        raise TensorLayoutError(f"Encoded tensor has {tensor.size} values, expected {size * size * 3}")
    return tensor


class ImagePreprocessor(Protocol):
    """Protocol for image preprocessing."""

    @property
    def input_size(self) -> int:
        """Return the square edge length of the prepared tensor."""
        ...

    def prepare(self, image_bytes: bytes) -> NDArray[np.uint8]:
        """Decode image bytes and return the classifier input tensor.

        Raises:
            DecodeError: If the image cannot be decoded or exceeds size limits.
        """
        ...


class PillowImagePreprocessor:
    """Decode with Pillow, center-crop, resize, and encode for the classifier."""

    def __init__(
        self,
        input_size: int = 224,
        resample: ResampleMode = "nearest",
        max_pixels: int | None = None,
        apply_exif_orientation: bool = False,
    ) -> None:
        if resample not in _RESAMPLE_FILTERS:
            raise ValueError(f"Unsupported resample mode: {resample}")
        self._input_size = input_size
        self._resample: ResampleMode = resample
        self._max_pixels = max_pixels
        self._apply_exif_orientation = apply_exif_orientation

    @classmethod
    def from_settings(cls, settings: Settings) -> PillowImagePreprocessor:
        return cls(
            input_size=settings.input_size,
            resample=settings.resample,
            max_pixels=settings.max_image_pixels,
            apply_exif_orientation=settings.apply_exif_orientation,
        )

    @property
    def input_size(self) -> int:
        return self._input_size

    def prepare(self, image_bytes: bytes) -> NDArray[np.uint8]:
        image = decode_image(
            image_bytes,
            max_pixels=self._max_pixels,
            apply_exif_orientation=self._apply_exif_orientation,
        )
        logger.debug("Decoded %dx%d image", image.shape[1], image.shape[0])
        square = center_crop_square(image)
        resized = resize_square(square, self._input_size, self._resample)
        return encode_tensor(resized, self._input_size)

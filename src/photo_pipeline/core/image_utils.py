"""Image processing utilities for the photo pipeline."""

import base64
import io
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Tuple, Union

from PIL import Image, ImageOps

PathLike = Union[str, Path]

EXIF_ORIENTATION_TAG = 0x0112
# Orientations 5-8 rotate by 90 or 270 degrees and swap the axes.
TRANSPOSED_ORIENTATIONS = frozenset({5, 6, 7, 8})


@dataclass(frozen=True)
class DerivativeFormat:
    """One output codec with its quality/effort tradeoff."""

    extension: str
    pil_format: str
    content_type: str
    save_options: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class DerivativeSpec:
    """Fixed width ladder x format set."""

    widths: Tuple[int, ...] = (300, 600, 1200, 2400)
    formats: Tuple[DerivativeFormat, ...] = (
        DerivativeFormat("webp", "WEBP", "image/webp", {"quality": 82, "method": 4}),
        DerivativeFormat("avif", "AVIF", "image/avif", {"quality": 80, "speed": 6}),
    )
    blur_width: int = 10
    blur_quality: int = 20

    def widths_for(self, source_width: int) -> List[int]:
        """Ladder widths that do not upscale a ``source_width`` image."""
        return [width for width in self.widths if width <= source_width]

    @property
    def content_types(self) -> Dict[str, str]:
        return {f".{fmt.extension}": fmt.content_type for fmt in self.formats}


DEFAULT_SPEC = DerivativeSpec()


def derivative_filename(width: int, extension: str) -> str:
    return f"{width}w.{extension}"


def _prepare_for_encoding(img: "Image.Image") -> "Image.Image":
    """Convert palette/CMYK/16-bit modes into something WebP and AVIF accept."""
    if img.mode in ("RGB", "RGBA"):
        return img
    has_alpha = img.mode in ("LA", "PA") or (img.mode == "P" and "transparency" in img.info)
    return img.convert("RGBA" if has_alpha else "RGB")


def resize_to_width(img: "Image.Image", width: int) -> "Image.Image":
    """
    Resize to ``width`` keeping the aspect ratio, never enlarging.

    Args:
        img: Orientation-corrected PIL Image
        width: Target width in pixels

    Returns:
        Resized PIL Image (the input itself when it is already narrow enough)
    """
    if img.width <= width:
        return img
    height = max(1, round(img.height * width / img.width))
    return img.resize((width, height), Image.Resampling.LANCZOS)


def read_source_width(source_path: PathLike) -> int:
    """Raw container width, before any orientation is applied."""
    with Image.open(source_path) as img:
        return img.width


def read_rotated_dimensions(source_path: PathLike) -> Tuple[int, int]:
    """Width and height after applying the EXIF orientation."""
    with Image.open(source_path) as img:
        width, height = img.size
        orientation = img.getexif().get(EXIF_ORIENTATION_TAG, 1)
    if orientation in TRANSPOSED_ORIENTATIONS:
        return height, width
    return width, height


def generate_derivatives(
    source_path: PathLike,
    output_dir: PathLike,
    spec: DerivativeSpec = DEFAULT_SPEC,
) -> List[Path]:
    """
    Generate the derivative ladder for one source image.

    Each ladder width no larger than the source width is rendered once from
    the orientation-corrected source with LANCZOS resampling and encoded in
    every configured format as ``{width}w.{ext}``. The source ICC profile is
    carried over so colours do not shift.

    Args:
        source_path: Path to the staged original
        output_dir: Directory to write derivatives into (created if missing)
        spec: Width ladder and format set

    Returns:
        Paths of the generated files, in ladder order
    """
    output = Path(output_dir)
    output.mkdir(parents=True, exist_ok=True)

    widths = spec.widths_for(read_source_width(source_path))
    if not widths:
        return []

    generated: List[Path] = []
    with Image.open(source_path) as source:
        icc_profile = source.info.get("icc_profile")
        oriented = _prepare_for_encoding(ImageOps.exif_transpose(source))

        for width in widths:
            resized = resize_to_width(oriented, width)
            for fmt in spec.formats:
                target = output / derivative_filename(width, fmt.extension)
                options = dict(fmt.save_options)
                if icc_profile:
                    options["icc_profile"] = icc_profile
                resized.save(target, format=fmt.pil_format, **options)
                generated.append(target)

    return generated


def generate_blur_placeholder(
    source_path: PathLike, spec: DerivativeSpec = DEFAULT_SPEC
) -> str:
    """
    Render a tiny, heavily compressed WebP preview as a data URL.

    Returns:
        ``data:image/webp;base64,...`` string
    """
    with Image.open(source_path) as source:
        oriented = _prepare_for_encoding(ImageOps.exif_transpose(source))
        height = max(1, round(oriented.height * spec.blur_width / oriented.width))
        thumb = oriented.resize((spec.blur_width, height), Image.Resampling.LANCZOS)

    buffer = io.BytesIO()
    thumb.save(buffer, format="WEBP", quality=spec.blur_quality)
    encoded = base64.b64encode(buffer.getvalue()).decode("ascii")
    return f"data:image/webp;base64,{encoded}"

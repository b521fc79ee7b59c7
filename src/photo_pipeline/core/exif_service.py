"""EXIF extraction service: raw container block -> normalized ExifData."""

import math
from pathlib import Path
from typing import Any, Mapping, Optional, Union

from PIL import Image

from .exif_reader import ExifSections, decode_exif
from .logging_config import get_logger
from .models import ExifData

# Tag 0x9207
METERING_MODE_MAP: Mapping[int, str] = {
    0: "Unknown",
    1: "Average",
    2: "Center-weighted average",
    3: "Spot",
    4: "Multi-spot",
    5: "Pattern",
    6: "Partial",
}

# Tag 0xA403
WHITE_BALANCE_MAP: Mapping[int, str] = {
    0: "Auto",
    1: "Manual",
}

# Tag 0x9209, a bit field: bit 0 fired, bits 1-2 return, bits 3-4 mode,
# bit 5 no flash function, bit 6 red-eye reduction.
FLASH_MAP: Mapping[int, str] = {
    0x00: "Did not fire",
    0x01: "Fired",
    0x05: "Fired, return not detected",
    0x07: "Fired, return detected",
    0x08: "Did not fire, compulsory",
    0x09: "Fired, compulsory",
    0x0D: "Fired, compulsory, return not detected",
    0x0F: "Fired, compulsory, return detected",
    0x10: "Did not fire, compulsory suppression",
    0x18: "Did not fire, auto",
    0x19: "Fired, auto",
    0x1D: "Fired, auto, return not detected",
    0x1F: "Fired, auto, return detected",
    0x20: "No flash function",
    0x41: "Fired, red-eye reduction",
    0x45: "Fired, red-eye reduction, return not detected",
    0x47: "Fired, red-eye reduction, return detected",
    0x49: "Fired, compulsory, red-eye reduction",
    0x4D: "Fired, compulsory, red-eye, return not detected",
    0x4F: "Fired, compulsory, red-eye, return detected",
    0x59: "Fired, auto, red-eye reduction",
    0x5D: "Fired, auto, red-eye, return not detected",
    0x5F: "Fired, auto, red-eye, return detected",
}


def _format_number(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else f"{value:g}"


def format_shutter_speed(exposure_time: Optional[float]) -> Optional[str]:
    """
    Format an exposure time in seconds for photographers.

    Examples:
        0.004 -> "1/250", 2 -> "2s", 0.5 -> "1/2"
    """
    if exposure_time is None or exposure_time <= 0:
        return None
    if exposure_time >= 1:
        return f"{_format_number(exposure_time)}s"
    return f"1/{math.floor(1 / exposure_time + 0.5)}"


def map_white_balance(value: Optional[int]) -> Optional[str]:
    if value is None:
        return None
    return WHITE_BALANCE_MAP.get(value)


def map_metering_mode(value: Optional[int]) -> Optional[str]:
    if value is None:
        return None
    return METERING_MODE_MAP.get(value)


def map_flash(value: Optional[int]) -> Optional[str]:
    """Map the flash bit field, falling back on bit 0 for unlisted codes."""
    if value is None:
        return None
    if value in FLASH_MAP:
        return FLASH_MAP[value]
    return "Fired" if value & 0x01 else "Did not fire"


def _first(*values: Any) -> Any:
    for value in values:
        if value is not None:
            return value
    return None


def _text(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def _scalar(value: Any) -> Any:
    if isinstance(value, list):
        return value[0] if value else None
    return value


def normalize_exif(sections: ExifSections) -> ExifData:
    """Pick the displayed fields out of decoded EXIF sections."""
    image = sections.get("Image", {})
    photo = sections.get("Photo", {})

    date_taken = None
    date_raw = photo.get("DateTimeOriginal")
    if date_raw is not None:
        date_taken = date_raw.strftime("%Y-%m-%dT%H:%M:%S.000Z")

    iso = _scalar(photo.get("ISOSpeedRatings"))

    return ExifData(
        camera_make=_first(_text(image.get("Make")), _text(photo.get("Make"))),
        camera_model=_first(_text(image.get("Model")), _text(photo.get("Model"))),
        lens=_text(photo.get("LensModel")),
        focal_length=_scalar(photo.get("FocalLength")),
        aperture=_scalar(photo.get("FNumber")),
        shutter_speed=format_shutter_speed(_scalar(photo.get("ExposureTime"))),
        iso=int(iso) if iso is not None else None,
        date_taken=date_taken,
        white_balance=map_white_balance(_scalar(photo.get("WhiteBalance"))),
        metering_mode=map_metering_mode(_scalar(photo.get("MeteringMode"))),
        flash=map_flash(_scalar(photo.get("Flash"))),
    )


def read_exif_block(image_path: Union[str, Path]) -> Optional[bytes]:
    """Return the raw EXIF block embedded in an image container, if any."""
    with Image.open(image_path) as img:
        raw = img.info.get("exif")
        if raw:
            return raw
        exif = img.getexif()
        if len(exif):
            return exif.tobytes()
    return None


def exif_from_bytes(block: bytes) -> Optional[ExifData]:
    """Decode and normalize a raw EXIF block; None when it cannot be parsed."""
    logger = get_logger("exif")
    try:
        return normalize_exif(decode_exif(block))
    except Exception as e:
        logger.debug(f"Discarding unparsable EXIF block: {e}")
        return None


def extract_exif(image_path: Union[str, Path]) -> Optional[ExifData]:
    """
    Extract normalized EXIF metadata from an image file.

    Only the ExifData fields are read; GPS coordinates, serial numbers and
    software tags are never copied out.

    Returns:
        ExifData, or None when the file has no EXIF block or it is corrupt
    """
    logger = get_logger("exif")
    try:
        block = read_exif_block(image_path)
    except Exception as e:
        logger.debug(f"[{image_path}] Could not read EXIF block: {e}")
        return None
    if not block:
        return None
    return exif_from_bytes(block)

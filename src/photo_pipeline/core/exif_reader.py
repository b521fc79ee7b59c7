"""
Binary EXIF decoder.

Parses the TIFF-structured metadata block embedded in JPEG/WebP/AVIF
containers into named sections (``Image``, ``Photo``, ``GPSInfo``, ``Iop``,
``Thumbnail``). The decoder is pure and works directly on the input buffer:
every read is bounds-checked, and a value that falls outside the buffer
decodes to ``None`` instead of failing the whole block. Only a block without
a byte-order marker or TIFF magic number raises MalformedExifError.
"""

import struct
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Set, Tuple, Union

from .exceptions import MalformedExifError

EXIF_PREFIX = b"Exif\x00\x00"
TIFF_MAGIC = 0x002A
ENTRY_SIZE = 12
DATE_FORMAT = "%Y:%m:%d %H:%M:%S"

TagKey = Union[str, int]
ExifSections = Dict[str, Dict[TagKey, Any]]

# TIFF field types: id -> (byte size of one component, struct code)
BYTE, ASCII, SHORT, LONG, RATIONAL = 1, 2, 3, 4, 5
SBYTE, UNDEFINED, SSHORT, SLONG, SRATIONAL = 6, 7, 8, 9, 10
FLOAT, DOUBLE = 11, 12

FIELD_TYPES: Mapping[int, Tuple[int, str]] = MappingProxyType({
    BYTE: (1, "B"),
    ASCII: (1, "s"),
    SHORT: (2, "H"),
    LONG: (4, "I"),
    RATIONAL: (8, "I"),
    SBYTE: (1, "b"),
    UNDEFINED: (1, "s"),
    SSHORT: (2, "h"),
    SLONG: (4, "i"),
    SRATIONAL: (8, "i"),
    FLOAT: (4, "f"),
    DOUBLE: (8, "d"),
})

IMAGE_TAGS: Mapping[int, str] = MappingProxyType({
    0x0100: "ImageWidth",
    0x0101: "ImageLength",
    0x0102: "BitsPerSample",
    0x0103: "Compression",
    0x0106: "PhotometricInterpretation",
    0x010E: "ImageDescription",
    0x010F: "Make",
    0x0110: "Model",
    0x0111: "StripOffsets",
    0x0112: "Orientation",
    0x0115: "SamplesPerPixel",
    0x0116: "RowsPerStrip",
    0x0117: "StripByteCounts",
    0x011A: "XResolution",
    0x011B: "YResolution",
    0x011C: "PlanarConfiguration",
    0x0128: "ResolutionUnit",
    0x012D: "TransferFunction",
    0x0131: "Software",
    0x0132: "DateTime",
    0x013B: "Artist",
    0x013E: "WhitePoint",
    0x013F: "PrimaryChromaticities",
    0x0201: "JPEGInterchangeFormat",
    0x0202: "JPEGInterchangeFormatLength",
    0x0211: "YCbCrCoefficients",
    0x0212: "YCbCrSubSampling",
    0x0213: "YCbCrPositioning",
    0x0214: "ReferenceBlackWhite",
    0x4746: "Rating",
    0x8298: "Copyright",
    0x8769: "ExifTag",
    0x8825: "GPSTag",
    0xC4A5: "PrintImageMatching",
})

PHOTO_TAGS: Mapping[int, str] = MappingProxyType({
    0x829A: "ExposureTime",
    0x829D: "FNumber",
    0x8822: "ExposureProgram",
    0x8824: "SpectralSensitivity",
    0x8827: "ISOSpeedRatings",
    0x8828: "OECF",
    0x8830: "SensitivityType",
    0x8832: "RecommendedExposureIndex",
    0x9000: "ExifVersion",
    0x9003: "DateTimeOriginal",
    0x9004: "DateTimeDigitized",
    0x9010: "OffsetTime",
    0x9011: "OffsetTimeOriginal",
    0x9012: "OffsetTimeDigitized",
    0x9101: "ComponentsConfiguration",
    0x9102: "CompressedBitsPerPixel",
    0x9201: "ShutterSpeedValue",
    0x9202: "ApertureValue",
    0x9203: "BrightnessValue",
    0x9204: "ExposureBiasValue",
    0x9205: "MaxApertureValue",
    0x9206: "SubjectDistance",
    0x9207: "MeteringMode",
    0x9208: "LightSource",
    0x9209: "Flash",
    0x920A: "FocalLength",
    0x9214: "SubjectArea",
    0x927C: "MakerNote",
    0x9286: "UserComment",
    0x9290: "SubSecTime",
    0x9291: "SubSecTimeOriginal",
    0x9292: "SubSecTimeDigitized",
    0xA000: "FlashpixVersion",
    0xA001: "ColorSpace",
    0xA002: "PixelXDimension",
    0xA003: "PixelYDimension",
    0xA004: "RelatedSoundFile",
    0xA005: "InteroperabilityTag",
    0xA20E: "FocalPlaneXResolution",
    0xA20F: "FocalPlaneYResolution",
    0xA210: "FocalPlaneResolutionUnit",
    0xA215: "ExposureIndex",
    0xA217: "SensingMethod",
    0xA300: "FileSource",
    0xA301: "SceneType",
    0xA302: "CFAPattern",
    0xA401: "CustomRendered",
    0xA402: "ExposureMode",
    0xA403: "WhiteBalance",
    0xA404: "DigitalZoomRatio",
    0xA405: "FocalLengthIn35mmFilm",
    0xA406: "SceneCaptureType",
    0xA407: "GainControl",
    0xA408: "Contrast",
    0xA409: "Saturation",
    0xA40A: "Sharpness",
    0xA40C: "SubjectDistanceRange",
    0xA420: "ImageUniqueID",
    0xA430: "CameraOwnerName",
    0xA431: "BodySerialNumber",
    0xA432: "LensSpecification",
    0xA433: "LensMake",
    0xA434: "LensModel",
    0xA435: "LensSerialNumber",
    0xA460: "CompositeImage",
})

GPS_TAGS: Mapping[int, str] = MappingProxyType({
    0x0000: "GPSVersionID",
    0x0001: "GPSLatitudeRef",
    0x0002: "GPSLatitude",
    0x0003: "GPSLongitudeRef",
    0x0004: "GPSLongitude",
    0x0005: "GPSAltitudeRef",
    0x0006: "GPSAltitude",
    0x0007: "GPSTimeStamp",
    0x0008: "GPSSatellites",
    0x0009: "GPSStatus",
    0x000A: "GPSMeasureMode",
    0x000B: "GPSDOP",
    0x000C: "GPSSpeedRef",
    0x000D: "GPSSpeed",
    0x000E: "GPSTrackRef",
    0x000F: "GPSTrack",
    0x0010: "GPSImgDirectionRef",
    0x0011: "GPSImgDirection",
    0x0012: "GPSMapDatum",
    0x0013: "GPSDestLatitudeRef",
    0x0014: "GPSDestLatitude",
    0x0015: "GPSDestLongitudeRef",
    0x0016: "GPSDestLongitude",
    0x0017: "GPSDestBearingRef",
    0x0018: "GPSDestBearing",
    0x0019: "GPSDestDistanceRef",
    0x001A: "GPSDestDistance",
    0x001B: "GPSProcessingMethod",
    0x001C: "GPSAreaInformation",
    0x001D: "GPSDateStamp",
    0x001E: "GPSDifferential",
    0x001F: "GPSHPositioningError",
})

IOP_TAGS: Mapping[int, str] = MappingProxyType({
    0x0001: "InteroperabilityIndex",
    0x0002: "InteroperabilityVersion",
    0x1000: "RelatedImageFileFormat",
    0x1001: "RelatedImageWidth",
    0x1002: "RelatedImageLength",
})

# Pointer tags are followed, not reported as values.
POINTER_TAGS = frozenset({"ExifTag", "GPSTag", "InteroperabilityTag"})
DATE_TAGS = frozenset({"DateTimeOriginal", "DateTimeDigitized", "DateTime"})


def parse_exif_date(value: Any) -> Optional[datetime]:
    """Parse ``YYYY:MM:DD HH:MM:SS`` into a UTC datetime, or None."""
    if not isinstance(value, str):
        return None
    try:
        return datetime.strptime(value.strip(), DATE_FORMAT).replace(tzinfo=timezone.utc)
    except ValueError:
        return None


class _TiffReader:
    """Bounds-checked reads relative to the start of the TIFF header."""

    def __init__(self, buffer: bytes, base: int, byte_order: str):
        self._buffer = buffer
        self._base = base
        self._order = byte_order
        self.length = len(buffer) - base

    def in_bounds(self, offset: int, size: int) -> bool:
        return offset >= 0 and size >= 0 and offset + size <= self.length

    def unpack(self, fmt: str, offset: int) -> Optional[Tuple[Any, ...]]:
        fmt = self._order + fmt
        if not self.in_bounds(offset, struct.calcsize(fmt)):
            return None
        return struct.unpack_from(fmt, self._buffer, self._base + offset)

    def raw(self, offset: int, size: int) -> Optional[bytes]:
        if not self.in_bounds(offset, size):
            return None
        start = self._base + offset
        return bytes(self._buffer[start:start + size])

    def read_value(self, type_id: int, count: int, offset: int) -> Any:
        field_type = FIELD_TYPES[type_id]
        size, code = field_type
        if count == 0:
            return None

        if type_id == ASCII:
            raw = self.raw(offset, count)
            if raw is None:
                return None
            return raw.split(b"\x00", 1)[0].decode("utf-8", errors="replace")

        if type_id == UNDEFINED:
            return self.raw(offset, count)

        if type_id in (RATIONAL, SRATIONAL):
            parts = self.unpack(f"{count * 2}{code}", offset)
            if parts is None:
                return None
            values = [
                parts[i] / parts[i + 1] if parts[i + 1] else None
                for i in range(0, len(parts), 2)
            ]
        else:
            parts = self.unpack(f"{count}{code}", offset)
            if parts is None:
                return None
            values = list(parts)

        return values[0] if count == 1 else values

    def read_directory(
        self, offset: int, table: Mapping[int, str]
    ) -> Tuple[Dict[TagKey, Any], Dict[str, int], int]:
        """
        Decode one IFD.

        Returns the decoded values, the offsets of any sub-IFD pointer tags,
        and the offset of the next IFD in the chain (0 when there is none).
        """
        values: Dict[TagKey, Any] = {}
        pointers: Dict[str, int] = {}

        header = self.unpack("H", offset)
        if header is None:
            return values, pointers, 0
        (entry_count,) = header

        entries_start = offset + 2
        for index in range(entry_count):
            entry_offset = entries_start + index * ENTRY_SIZE
            entry = self.unpack("HHI", entry_offset)
            if entry is None:
                # Truncated directory: keep what was decoded so far.
                break
            tag, type_id, count = entry
            name: TagKey = table.get(tag, tag)
            values[name] = self._read_entry(type_id, count, entry_offset + 8)

            if name in POINTER_TAGS:
                pointer = values.pop(name)
                if isinstance(pointer, int):
                    pointers[name] = pointer

        for name in DATE_TAGS:
            if name in values:
                values[name] = parse_exif_date(values[name])

        next_ifd = self.unpack("I", entries_start + entry_count * ENTRY_SIZE)
        return values, pointers, next_ifd[0] if next_ifd else 0

    def _read_entry(self, type_id: int, count: int, value_field: int) -> Any:
        field_type = FIELD_TYPES.get(type_id)
        if field_type is None:
            return None
        total = field_type[0] * count
        if total <= 4:
            value_offset = value_field
        else:
            pointer = self.unpack("I", value_field)
            if pointer is None:
                return None
            value_offset = pointer[0]
        if not self.in_bounds(value_offset, total):
            return None
        return self.read_value(type_id, count, value_offset)


def _read_header(buffer: bytes) -> Tuple[_TiffReader, int]:
    if not isinstance(buffer, (bytes, bytearray, memoryview)):
        raise MalformedExifError("EXIF block must be a bytes-like object")

    base = len(EXIF_PREFIX) if bytes(buffer[:len(EXIF_PREFIX)]) == EXIF_PREFIX else 0
    if len(buffer) - base < 8:
        raise MalformedExifError("EXIF block too short for a TIFF header")

    marker = bytes(buffer[base:base + 2])
    if marker == b"II":
        byte_order = "<"
    elif marker == b"MM":
        byte_order = ">"
    else:
        raise MalformedExifError(f"Invalid byte order marker: {marker!r}")

    magic, ifd0_offset = struct.unpack_from(byte_order + "HI", buffer, base + 2)
    if magic != TIFF_MAGIC:
        raise MalformedExifError(f"Invalid TIFF magic number: {magic:#06x}")

    return _TiffReader(buffer, base, byte_order), ifd0_offset


def decode_exif(buffer: bytes) -> ExifSections:
    """
    Decode a raw EXIF block into named sections.

    Args:
        buffer: EXIF bytes, with or without the ``Exif\\0\\0`` container prefix

    Returns:
        Mapping of section name (``Image``, ``Thumbnail``, ``Photo``,
        ``GPSInfo``, ``Iop``) to tag name/value pairs. Unknown tags are keyed
        by their numeric id.

    Raises:
        MalformedExifError: If the byte-order marker or TIFF magic is invalid
    """
    reader, ifd0_offset = _read_header(buffer)
    visited: Set[int] = set()
    sections: ExifSections = {}

    def read_section(name: str, offset: int, table: Mapping[int, str]) -> Tuple[Dict[str, int], int]:
        if offset in visited:
            return {}, 0
        visited.add(offset)
        values, pointers, next_ifd = reader.read_directory(offset, table)
        sections[name] = values
        return pointers, next_ifd

    image_pointers, next_ifd = read_section("Image", ifd0_offset, IMAGE_TAGS)

    if next_ifd:
        read_section("Thumbnail", next_ifd, IMAGE_TAGS)

    if "ExifTag" in image_pointers:
        photo_pointers, _ = read_section("Photo", image_pointers["ExifTag"], PHOTO_TAGS)
        if "InteroperabilityTag" in photo_pointers:
            read_section("Iop", photo_pointers["InteroperabilityTag"], IOP_TAGS)

    if "GPSTag" in image_pointers:
        read_section("GPSInfo", image_pointers["GPSTag"], GPS_TAGS)

    return sections

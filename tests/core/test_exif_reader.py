"""Tests for the binary EXIF decoder."""

import struct
from datetime import datetime, timezone

import pytest

from photo_pipeline.core.exceptions import MalformedExifError
from photo_pipeline.core.exif_reader import decode_exif, parse_exif_date
from photo_pipeline.testing.fakes import build_exif_block


class TestDecodeExif:
    """Tests for decode_exif."""

    @pytest.mark.parametrize("byte_order", ["II", "MM"])
    def test_decodes_both_byte_orders(self, byte_order):
        """Test little- and big-endian blocks decode identically."""
        block = build_exif_block(
            make="Make", model="Model", exposure_time=(1, 250), byte_order=byte_order
        )

        sections = decode_exif(block)

        assert sections["Image"]["Make"] == "Make"
        assert sections["Image"]["Model"] == "Model"
        assert sections["Photo"]["ExposureTime"] == pytest.approx(0.004)

    def test_accepts_block_without_exif_prefix(self):
        """Test a bare TIFF structure decodes like a prefixed one."""
        block = build_exif_block(make="Canon", prefix=False)

        assert decode_exif(block)["Image"]["Make"] == "Canon"

    def test_pointer_tags_are_not_emitted(self):
        """Test the Exif sub-IFD pointer is consumed, not reported."""
        sections = decode_exif(build_exif_block(make="Canon", exposure_time=(1, 60)))

        assert "ExifTag" not in sections["Image"]
        assert "Photo" in sections

    def test_inline_short_value(self):
        """Test values of four bytes or less are read from the entry itself."""
        sections = decode_exif(build_exif_block(orientation=6))

        assert sections["Image"]["Orientation"] == 6

    def test_multi_value_entries_are_lists(self):
        """Test a count above one yields a list."""
        block = build_exif_block(photo_tags={0x8827: (3, [200, 400])})

        assert decode_exif(block)["Photo"]["ISOSpeedRatings"] == [200, 400]

    def test_unknown_tags_keep_numeric_id(self):
        """Test tags missing from the table are keyed by their id."""
        block = build_exif_block(image_tags={0xBEEF: (3, 7)})

        assert decode_exif(block)["Image"][0xBEEF] == 7

    def test_zero_denominator_rational_is_none(self):
        """Test a rational with a zero denominator decodes to None."""
        block = build_exif_block(exposure_time=(1, 0))

        assert decode_exif(block)["Photo"]["ExposureTime"] is None

    def test_dates_are_parsed_as_utc(self):
        """Test DateTimeOriginal becomes a timezone-aware datetime."""
        block = build_exif_block(photo_tags={0x9003: (2, "2023:06:15 14:30:00")})

        assert decode_exif(block)["Photo"]["DateTimeOriginal"] == datetime(
            2023, 6, 15, 14, 30, tzinfo=timezone.utc
        )

    def test_undefined_type_returns_raw_bytes(self):
        """Test UNDEFINED values are returned as bytes."""
        block = build_exif_block(photo_tags={0x9000: (7, b"0232")})

        assert decode_exif(block)["Photo"]["ExifVersion"] == b"0232"

    def test_out_of_range_value_decodes_to_none(self):
        """Test an offset past the end of the buffer yields None for that entry."""
        block = bytearray(build_exif_block(make="LongMakerName"))
        # IFD0 has one entry; its value offset lives at TIFF offset 8 + 2 + 8.
        value_field = 6 + 8 + 2 + 8
        struct.pack_into("<I", block, value_field, 60000)

        assert decode_exif(bytes(block))["Image"]["Make"] is None

    def test_truncated_entry_table_keeps_decoded_entries(self):
        """Test a directory cut short keeps the entries that fit."""
        block = build_exif_block(image_tags={0x0112: (3, 1), 0x0128: (3, 2)}, prefix=False)
        truncated = block[: 8 + 2 + 12 + 6]

        sections = decode_exif(truncated)

        assert sections["Image"] == {"Orientation": 1}

    def test_sub_ifd_pointer_out_of_range_yields_empty_section(self):
        """Test a dangling Exif pointer produces an empty Photo section."""
        block = bytearray(build_exif_block(exposure_time=(1, 100), prefix=False))
        # IFD0 holds only the ExifTag entry; its inline value is at 8 + 2 + 8.
        struct.pack_into("<I", block, 8 + 2 + 8, 50000)

        assert decode_exif(bytes(block))["Photo"] == {}

    def test_self_referencing_ifd_chain_terminates(self):
        """Test a next-IFD pointer looping back to IFD0 is ignored."""
        block = bytearray(build_exif_block(orientation=1, prefix=False))
        # One entry: the next-IFD offset follows the 12-byte entry.
        struct.pack_into("<I", block, 8 + 2 + 12, 8)

        sections = decode_exif(bytes(block))

        assert sections["Image"] == {"Orientation": 1}
        assert "Thumbnail" not in sections

    @pytest.mark.parametrize(
        "block",
        [
            b"",
            b"Exif\x00\x00II",
            b"XX\x2a\x00\x08\x00\x00\x00",
            b"II\x2b\x00\x08\x00\x00\x00",
            b"MM\x00\x2b\x00\x00\x00\x08",
        ],
    )
    def test_invalid_header_raises(self, block):
        """Test a short buffer, bad marker or bad magic raises MalformedExifError."""
        with pytest.raises(MalformedExifError):
            decode_exif(block)


class TestParseExifDate:
    """Tests for parse_exif_date."""

    def test_valid_date(self):
        assert parse_exif_date("2020:01:02 03:04:05") == datetime(
            2020, 1, 2, 3, 4, 5, tzinfo=timezone.utc
        )

    @pytest.mark.parametrize("value", ["0000:00:00 00:00:00", "garbage", None, 123])
    def test_unparsable_values_are_none(self, value):
        assert parse_exif_date(value) is None

"""Tests for object key sanitization."""

from __future__ import annotations

import re

from mediabackup.core.sanitize import sanitize_filename, transliterate

UUID_UPPER = r"[0-9A-F]{8}-[0-9A-F]{4}-[0-9A-F]{4}-[0-9A-F]{4}-[0-9A-F]{12}"


class TestTransliterate:
    """Tests for transliterate()."""

    def test_strips_diacritics(self) -> None:
        """Should drop accents and other combining marks."""
        assert transliterate("Zdjęcie źrebię") == "Zdjecie zrebie"
        assert transliterate("Ångström") == "Angstrom"

    def test_keeps_ascii(self) -> None:
        """Should leave plain ASCII untouched."""
        assert transliterate("IMG_0001") == "IMG_0001"

    def test_drops_non_decomposable(self) -> None:
        """Should drop characters with no ASCII form."""
        assert transliterate("写真") == ""


class TestSanitizeFilename:
    """Tests for sanitize_filename()."""

    def test_plain_name_unchanged(self) -> None:
        """Should keep a name that is already safe."""
        assert sanitize_filename("IMG_0001.HEIC") == "IMG_0001.HEIC"

    def test_accents_and_spaces(self) -> None:
        """Should transliterate and drop disallowed characters."""
        assert sanitize_filename("Zdjęcie ź.HEIC") == "Zdjeciez.HEIC"
        assert sanitize_filename("été (1).jpg") == "ete1.jpg"

    def test_keeps_hyphen_underscore_dot(self) -> None:
        """Should keep hyphens, underscores and dots in the base name."""
        assert sanitize_filename("a-b_c.d.jpg") == "a-b_c.d.jpg"

    def test_extension_preserved(self) -> None:
        """Should reattach the original extension unchanged."""
        assert sanitize_filename("Ünïcödé.MOV").endswith(".MOV")

    def test_empty_base_becomes_uuid(self) -> None:
        """Should replace an empty base name with an uppercase UUID."""
        result = sanitize_filename("写真.jpg")
        assert re.fullmatch(UUID_UPPER + r"\.jpg", result)

    def test_empty_base_is_unique(self) -> None:
        """Should generate a fresh token each time."""
        assert sanitize_filename("写真.jpg") != sanitize_filename("写真.jpg")

    def test_no_extension(self) -> None:
        """Should handle names without an extension."""
        assert sanitize_filename("my file") == "myfile"
        assert re.fullmatch(UUID_UPPER, sanitize_filename("写真"))

    def test_path_reduced_to_name(self) -> None:
        """Should use only the last path component."""
        assert sanitize_filename("DCIM/100APPLE/IMG_1.jpg") == "IMG_1.jpg"
        assert sanitize_filename("C:\\Photos\\IMG_2.jpg") == "IMG_2.jpg"

"""Unit tests for context_helpers."""

from shared_schema import FileRecord
from utils.context_helpers import (
    chapter_language_notes,
    create_llm_context,
    format_abstraction_listing,
    format_content_map,
    get_content_for_indices,
    language_hint,
    language_instruction,
    safe_chapter_filename,
)

FILES = [
    FileRecord("src/main.py", "print(1)"),
    FileRecord("src/utils.py", "def foo(): pass"),
]


def test_create_llm_context_labels_each_file_with_index():
    context, info = create_llm_context(FILES)
    assert "--- File Index 0: src/main.py ---\nprint(1)" in context
    assert "--- File Index 1: src/utils.py ---\ndef foo(): pass" in context
    assert info == [(0, "src/main.py"), (1, "src/utils.py")]


def test_create_llm_context_empty_list():
    assert create_llm_context([]) == ("", [])


def test_get_content_for_indices_skips_invalid_indices():
    assert get_content_for_indices(FILES, [1, 5, -1]) == {"1 # src/utils.py": "def foo(): pass"}


def test_format_content_map_uses_paths():
    rendered = format_content_map(get_content_for_indices(FILES, [0, 1]))
    assert rendered == "--- File: src/main.py ---\nprint(1)\n\n--- File: src/utils.py ---\ndef foo(): pass"


def test_format_abstraction_listing():
    assert format_abstraction_listing(["A", "B"]) == "- 0 # A\n- 1 # B"


def test_safe_chapter_filename():
    assert safe_chapter_filename("B", 1) == "01_b.md"
    assert safe_chapter_filename("Query Processing", 2) == "02_query_processing.md"
    assert safe_chapter_filename("I/O & Streams", 12) == "12_i_o___streams.md"
    assert safe_chapter_filename("Análisis", 3) == "03_análisis.md"


def test_language_helpers_empty_for_english():
    assert language_instruction("English", ["name"]) == ""
    assert language_hint("english") == ""
    assert set(chapter_language_notes("english").values()) == {""}


def test_language_helpers_for_other_language():
    assert "**Spanish**" in language_instruction("spanish", ["name", "description"])
    assert "`name` and `description`" in language_instruction("spanish", ["name", "description"])
    assert language_hint("spanish") == " (in Spanish)"
    notes = chapter_language_notes("spanish")
    assert "Spanish" in notes["language_instruction"]
    assert notes["instruction_lang_note"] == " (in Spanish)"

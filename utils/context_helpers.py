"""
Helpers for formatting files, abstractions and language notes for LLM prompts.

Used by IdentifyAbstractions, AnalyzeRelationships, OrderChapters and WriteChapters.
"""

from shared_schema import FileRecord


def create_llm_context(files: list[FileRecord]) -> tuple[str, list[tuple[int, str]]]:
    """
    Format the file list with indices for LLM prompts.

    Args:
        files: Ordered crawl result (context.files).

    Returns:
        A tuple of (context_string, file_info) where context_string contains
        file content with indices and file_info is a list of (index, path) tuples.
    """
    context = ""
    file_info = []  # Store tuples of (index, path)
    for i, record in enumerate(files):
        context += f"--- File Index {i}: {record.path} ---\n{record.content}\n\n"
        file_info.append((i, record.path))

    return context, file_info


def get_content_for_indices(files: list[FileRecord], indices: list[int]) -> dict[str, str]:
    """
    Return a mapping of "index # path" -> content for the given file indices.

    Invalid indices are skipped.
    """
    content_map = {}
    for i in indices:
        if 0 <= i < len(files):
            content_map[f"{i} # {files[i].path}"] = files[i].content
    return content_map


def format_content_map(content_map: dict[str, str]) -> str:
    """Render an "index # path" -> content map as labeled file blocks."""
    return "\n\n".join(
        f"--- File: {idx_path.split('# ', 1)[1] if '# ' in idx_path else idx_path} ---\n{content}"
        for idx_path, content in content_map.items()
    )


def format_abstraction_listing(names: list[str]) -> str:
    return "\n".join(f"- {i} # {name}" for i, name in enumerate(names))


def safe_chapter_filename(name: str, position: int) -> str:
    """
    File name for the chapter at 1-based position.

    Every non-alphanumeric character becomes "_" (str.isalnum is Unicode-aware, so
    translated names keep their letters) and the result is lower-cased.
    """
    safe_name = "".join(c if c.isalnum() else "_" for c in name).lower()
    return f"{position:02d}_{safe_name}.md"


def capitalize_language(language: str) -> str:
    return language[:1].upper() + language[1:]


def is_english(language: str) -> bool:
    return (language or "english").strip().lower() == "english"


def language_instruction(language: str, field_names: list[str]) -> str:
    """Prompt preamble asking for the given fields in a non-English language."""
    if is_english(language):
        return ""
    lang_cap = capitalize_language(language)
    fields = " and ".join(f"`{f}`" for f in field_names)
    return f"IMPORTANT: Generate the {fields} for each abstraction in **{lang_cap}** language. Do NOT use English for these fields.\n\n"


def language_hint(language: str, template: str = " (in {lang})") -> str:
    if is_english(language):
        return ""
    return template.format(lang=capitalize_language(language))


def chapter_language_notes(language: str) -> dict[str, str]:
    """All language notes used by the chapter prompt; empty strings for English."""
    keys = (
        "language_instruction",
        "concept_details_note",
        "structure_note",
        "prev_summary_note",
        "instruction_lang_note",
        "mermaid_lang_note",
        "code_comment_note",
        "link_lang_note",
        "tone_note",
    )
    if is_english(language):
        return dict.fromkeys(keys, "")
    lang_cap = capitalize_language(language)
    return {
        "language_instruction": (
            f"IMPORTANT: Write this ENTIRE tutorial chapter in **{lang_cap}**. Some input context (like concept name, "
            f"description, chapter list, previous summary) might already be in {lang_cap}, but you MUST translate ALL "
            f"other generated content including explanations, examples, technical terms, and potentially code comments "
            f"into {lang_cap}. DO NOT use English anywhere except in code syntax, required proper nouns, or when "
            f"specified. The entire output MUST be in {lang_cap}.\n\n"
        ),
        "concept_details_note": f" (Note: Provided in {lang_cap})",
        "structure_note": f" (Note: Chapter names might be in {lang_cap})",
        "prev_summary_note": f" (Note: This summary might be in {lang_cap})",
        "instruction_lang_note": f" (in {lang_cap})",
        "mermaid_lang_note": f" (Use {lang_cap} for labels/text if appropriate)",
        "code_comment_note": f" (Translate to {lang_cap} if possible, otherwise keep minimal English for clarity)",
        "link_lang_note": f" (Use the {lang_cap} chapter title from the structure above)",
        "tone_note": f" (appropriate for {lang_cap} readers)",
    }

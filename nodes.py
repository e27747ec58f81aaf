"""
PocketFlow nodes for the Agentic Wiki pipeline.

Every node follows prep (read the shared PipelineContext) -> exec (call the LLM
gateway, parse and validate; never touches the context) -> post (write the node's
own output field). Structured model output is read in two phases: the ```yaml
fenced block is extracted first, then parsed and checked against the expected shape.
Any deviation is fatal for the run.
"""

import logging
import os
import re
from typing import Any

import yaml
from pocketflow import Node

from config import MIN_ABSTRACTION_NUM
from errors import (
    AllAbstractionsInvalidError,
    DuplicateOrderEntryError,
    IncompleteOrderError,
    IndexOutOfRangeError,
    InvalidAbstractionError,
    MalformedRelationshipsError,
    NoFilesFoundError,
    PipelineCancelledError,
    ResponseFormatError,
)
from shared_schema import (
    Abstraction,
    ChapterInfo,
    FileRecord,
    PipelineContext,
    Relationship,
    RelationshipSet,
)
from utils.call_llm import LlmGateway
from utils.context_helpers import (
    capitalize_language,
    chapter_language_notes,
    create_llm_context,
    format_abstraction_listing,
    format_content_map,
    get_content_for_indices,
    language_hint,
    language_instruction,
    safe_chapter_filename,
)
from utils.crawl_local_files import crawl_local_files

logger = logging.getLogger("agentic_wiki")

YAML_FENCE = "```yaml"
CODE_FENCE = "```"

# Tail of earlier chapters passed to each chapter prompt.
PREVIOUS_CHAPTERS_CONTEXT_CHARS = 200_000
MERMAID_LABEL_MAX = 30


def _extract_yaml_block(text: str) -> str:
    """Return the text between the first ```yaml fence and the next ``` fence."""
    start = text.find(YAML_FENCE)
    if start == -1:
        raise ResponseFormatError(f"Failed to extract YAML content from LLM response (no ```yaml block): {text}")
    body_start = start + len(YAML_FENCE)
    end = text.find(CODE_FENCE, body_start)
    if end == -1:
        raise ResponseFormatError(f"Failed to extract YAML content from LLM response (unclosed ```yaml block): {text}")
    return text[body_start:end].strip()


def _load_yaml(block: str) -> Any:
    try:
        return yaml.safe_load(block)
    except yaml.YAMLError as e:
        raise ResponseFormatError(f"YAML parsing failed: {e}\nYAML content:\n{block}") from e


_LEADING_INT = re.compile(r"^\s*(-?\d+)")


def _parse_index_from_ref(ref: Any) -> int:
    """Convert 0, '0', '0 # path' or '0 # Name' to int; ValueError otherwise."""
    if isinstance(ref, bool):
        raise ValueError(f"invalid index entry type: {type(ref).__name__}")
    if isinstance(ref, int):
        return ref
    if isinstance(ref, str):
        m = _LEADING_INT.match(ref)
        if m:
            return int(m.group(1))
        raise ValueError(f"cannot parse an index from {ref!r}")
    raise ValueError(f"invalid index entry type: {type(ref).__name__}")


def _derive_project_name(local_dir: Any, existing: Any) -> str:
    """Configured project name, else the base name of local_dir."""
    if existing and str(existing).strip():
        return str(existing).strip()
    if local_dir and str(local_dir).strip():
        return os.path.basename(os.path.abspath(str(local_dir).strip())) or "project"
    return "project"


def _normalize_chapter_heading(content: str, num: int, name: str) -> str:
    """Ensure the chapter starts with "# Chapter {num}: {name}"."""
    heading = f"# Chapter {num}: {name}"
    lines = content.strip().split("\n")
    if lines[0].strip() == heading:
        return content.strip()
    if lines[0].strip().startswith("#"):
        lines[0] = heading
        return "\n".join(lines)
    return f"{heading}\n\n{content.strip()}"


class StageNode(Node):
    """
    Base for pipeline nodes: holds the injected gateway and checks for cancellation
    before the node runs.
    """

    def __init__(self, gateway: LlmGateway | None = None, max_retries: int = 1, wait: int = 0) -> None:
        super().__init__(max_retries=max_retries, wait=wait)
        self.gateway = gateway

    def _run(self, shared: PipelineContext) -> Any:
        if shared.cancelled:
            raise PipelineCancelledError(f"Pipeline cancelled before {type(self).__name__}")
        return super()._run(shared)

    def call_llm(self, prompt: str, prep_res: dict) -> str:
        if self.gateway is None:
            raise RuntimeError(f"{type(self).__name__} has no LLM gateway")
        # Use cache only if enabled and not retrying
        cache_flag = prep_res.get("use_cache", True) and getattr(self, "cur_retry", 0) == 0
        return self.gateway.call(
            prompt,
            provider_name=prep_res.get("provider_name"),
            model=prep_res.get("model"),
            use_cache=cache_flag,
        )

    @staticmethod
    def llm_settings(shared: PipelineContext) -> dict:
        return {
            "use_cache": shared.use_cache,
            "provider_name": shared.provider_name,
            "model": shared.model,
        }


class FetchRepo(StageNode):
    """
    Crawl the local directory.

    prep: Derive project_name; read local_dir, include/exclude patterns, max_file_size (bytes).
    exec: Call crawl_local_files; zero files is fatal.
    post: Write files and project_name to shared.
    """

    def prep(self, shared: PipelineContext) -> dict:
        return {
            "local_dir": shared.local_dir,
            "project_name": _derive_project_name(shared.local_dir, shared.project_name),
            "include_patterns": list(shared.include_patterns),
            "exclude_patterns": list(shared.exclude_patterns),
            "max_file_size": shared.max_file_size,
        }

    def exec(self, prep_res: dict) -> list[FileRecord]:
        local_dir = prep_res["local_dir"]
        logger.info("Crawling local directory: %s...", local_dir)
        files = crawl_local_files(
            local_dir,
            include_patterns=prep_res.get("include_patterns"),
            exclude_patterns=prep_res.get("exclude_patterns"),
            max_file_size=prep_res.get("max_file_size"),
        )
        if not files:
            raise NoFilesFoundError(f"No files found in {local_dir} (check include/exclude patterns and max file size)")
        return files

    def post(self, shared: PipelineContext, prep_res: dict, exec_res: list[FileRecord]) -> str:
        shared.files = exec_res
        shared.project_name = prep_res["project_name"]
        logger.info("FetchRepo: files=%s, project_name=%s", len(exec_res), shared.project_name)
        return "default"


class IdentifyAbstractions(StageNode):
    """
    Identify core abstractions from files using LLM; output name, description, file indices.

    prep: Read files, project_name, language, use_cache, max_abstraction_num; build index # path context.
    exec: Prompt for a YAML list of {name, description, file_indices}; parse and validate indices.
    post: Write abstractions to shared.
    """

    def prep(self, shared: PipelineContext) -> dict:
        file_context, file_info = create_llm_context(shared.files)
        file_listing = "\n".join(f"- {i} # {path}" for i, path in file_info)
        return {
            "n_files": len(shared.files),
            "project_name": shared.project_name or "project",
            "language": shared.language,
            "file_context": file_context,
            "file_listing": file_listing,
            "max_abstraction_num": max(shared.max_abstraction_num, MIN_ABSTRACTION_NUM),
            **self.llm_settings(shared),
        }

    def build_prompt(self, prep_res: dict) -> str:
        project_name = prep_res["project_name"]
        language = prep_res["language"]
        max_abstraction_num = prep_res["max_abstraction_num"]
        value_hint = language_hint(language, " (value in {lang})")

        return f"""For the project `{project_name}`:

Codebase Context:
{prep_res["file_context"]}

{language_instruction(language, ["name", "description"])}Analyze the codebase context.
Identify the top {MIN_ABSTRACTION_NUM}-{max_abstraction_num} core most important abstractions to help those new to the codebase.

For each abstraction, provide:
1. A concise `name`{value_hint}.
2. A beginner-friendly `description` explaining what it is with a simple analogy, in around 100 words{value_hint}.
3. A list of relevant `file_indices` (integers) using the format `idx # path/comment`.

List of file indices and paths present in the context:
{prep_res["file_listing"]}

Format the output as a YAML list of dictionaries:

```yaml
- name: |
    Query Processing{value_hint}
  description: |
    Explains what the abstraction does.
    It's like a central dispatcher routing requests.{value_hint}
  file_indices:
    - 0 # path/to/file1.py
    - 3 # path/to/related.py
- name: |
    Query Optimization{value_hint}
  description: |
    Another core concept, similar to a blueprint for objects.{value_hint}
  file_indices:
    - 5 # path/to/another.js
# ... up to {max_abstraction_num} abstractions
```"""

    def exec(self, prep_res: dict) -> list[Abstraction]:
        logger.info("Identifying abstractions using LLM...")
        response = self.call_llm(self.build_prompt(prep_res), prep_res)
        abstractions = parse_abstractions(response, prep_res["n_files"])
        logger.info("Identified %s abstractions: %s", len(abstractions), [a.name for a in abstractions])
        return abstractions

    def post(self, shared: PipelineContext, prep_res: dict, exec_res: list[Abstraction]) -> str:
        shared.abstractions = exec_res
        return "default"


def parse_abstractions(response: str, n_files: int) -> list[Abstraction]:
    """Extract and validate the abstraction list from a model response."""
    data = _load_yaml(_extract_yaml_block(response))
    if not isinstance(data, list):
        raise ResponseFormatError(f"LLM output is not a list; got {type(data).__name__}")

    abstractions: list[Abstraction] = []
    for item in data:
        if not isinstance(item, dict):
            logger.warning("Skipping invalid abstraction item (not a mapping): %r", item)
            continue
        name = item.get("name")
        desc = item.get("description")
        raw_indices = item.get("file_indices")
        if (
            not isinstance(name, str)
            or not name.strip()
            or not isinstance(desc, str)
            or not desc.strip()
            or not isinstance(raw_indices, list)
        ):
            raise InvalidAbstractionError(
                f"Abstraction item is missing required keys (name, description, file_indices) or has wrong types: {item!r}"
            )
        name = name.strip()
        indices: set[int] = set()
        for entry in raw_indices:
            try:
                idx = _parse_index_from_ref(entry)
            except ValueError as e:
                raise InvalidAbstractionError(
                    f"Failed to parse file indices for abstraction {name!r}: entry {entry!r}: {e}"
                ) from e
            if not 0 <= idx < n_files:
                raise IndexOutOfRangeError(
                    f"Invalid file index {idx} for abstraction {name!r}. Valid range is 0 to {n_files - 1}."
                )
            indices.add(idx)
        abstractions.append(Abstraction(name=name, description=desc.strip(), files=sorted(indices)))

    if not abstractions:
        raise AllAbstractionsInvalidError(
            "All abstraction items returned by the LLM are invalid." if data else "LLM returned no abstractions."
        )
    return abstractions


class AnalyzeRelationships(StageNode):
    """
    Generate project summary and relationship details (from, to, label) using indices.

    prep: Read abstractions, files; build context from abstractions and the files they reference.
    exec: Prompt for YAML {summary, relationships: [{from_abstraction, to_abstraction, label}]}; validate.
    post: Write relationships to shared.
    """

    def prep(self, shared: PipelineContext) -> dict:
        abstractions = shared.abstractions
        # Build context with abstraction names, indices, descriptions, and relevant file snippets
        context_lines = ["Identified Abstractions:"]
        all_file_indices: set[int] = set()
        for i, abstr in enumerate(abstractions):
            file_indices_str = ", ".join(map(str, abstr.files))
            context_lines.append(
                f"- Index {i}: {abstr.name} (Relevant file indices: [{file_indices_str}])\n  Description: {abstr.description}"
            )
            all_file_indices.update(abstr.files)

        context_lines.append("\nRelevant File Snippets (Referenced by Index and Path):")
        # Files no abstraction references are left out of the prompt.
        context_lines.append(format_content_map(get_content_for_indices(shared.files, sorted(all_file_indices))))

        return {
            "project_name": shared.project_name or "project",
            "language": shared.language,
            "abstraction_list": format_abstraction_listing([a.name for a in abstractions]),
            "context": "\n".join(context_lines),
            "num_abstractions": len(abstractions),
            **self.llm_settings(shared),
        }

    def build_prompt(self, prep_res: dict) -> str:
        language = prep_res["language"]
        lang_hint = language_hint(language)
        list_lang_note = language_hint(language, " (Names might be in {lang})")

        return f"""Based on the following abstractions and relevant code snippets from the project `{prep_res["project_name"]}`:

List of Abstraction Indices and Names{list_lang_note}:
{prep_res["abstraction_list"]}

Context (Abstractions, Descriptions, Code):
{prep_res["context"]}

{language_instruction(language, ["summary", "label"])}Please provide:
1. A high-level `summary` of the project's main purpose and functionality in a few beginner-friendly sentences{lang_hint}. Use markdown formatting with **bold** and *italic* text to highlight important concepts.
2. A list (`relationships`) describing the key interactions between these abstractions. For each relationship, specify:
   - `from_abstraction`: Index of the source abstraction (e.g., `0 # AbstractionName1`)
   - `to_abstraction`: Index of the target abstraction (e.g., `1 # AbstractionName2`)
   - `label`: A brief label for the interaction **in just a few words**{lang_hint} (e.g., "Manages", "Inherits", "Uses").
   Ideally the relationship should be backed by one abstraction calling or passing parameters to another.
   Simplify the relationship and exclude those non-important ones.

IMPORTANT: Make sure EVERY abstraction is involved in at least ONE relationship (either as source or target). Each abstraction index must appear at least once across all relationships.

Format the output as YAML:

```yaml
summary: |
  A brief, simple explanation of the project{lang_hint}.
  Can span multiple lines with **bold** and *italic* for emphasis.
relationships:
  - from_abstraction: 0 # AbstractionName1
    to_abstraction: 1 # AbstractionName2
    label: "Manages"{lang_hint}
  - from_abstraction: 2 # AbstractionName3
    to_abstraction: 0 # AbstractionName1
    label: "Provides config"{lang_hint}
  # ... other relationships
```

Now, provide the YAML output:
"""

    def exec(self, prep_res: dict) -> RelationshipSet:
        logger.info("Analyzing relationships using LLM...")
        response = self.call_llm(self.build_prompt(prep_res), prep_res)
        result = parse_relationships(response, prep_res["num_abstractions"])
        logger.info("Extracted %s relationships", len(result.details))
        return result

    def post(self, shared: PipelineContext, prep_res: dict, exec_res: RelationshipSet) -> str:
        shared.relationships = exec_res
        return "default"


def parse_relationships(response: str, num_abstractions: int) -> RelationshipSet:
    """
    Extract and validate the summary and relationships from a model response.

    Every abstraction index must appear as a source or target at least once.
    """
    data = _load_yaml(_extract_yaml_block(response))
    if not isinstance(data, dict):
        raise MalformedRelationshipsError(f"LLM output is not a mapping; got {type(data).__name__}")
    if "summary" not in data or "relationships" not in data:
        raise MalformedRelationshipsError("LLM output is missing required keys ('summary', 'relationships')")
    if not isinstance(data["summary"], str):
        raise MalformedRelationshipsError(f"summary is not a string: {data['summary']!r}")
    if not isinstance(data["relationships"], list):
        raise MalformedRelationshipsError(f"relationships is not a list: {data['relationships']!r}")

    details: list[Relationship] = []
    for rel in data["relationships"]:
        if not isinstance(rel, dict) or not {"from_abstraction", "to_abstraction", "label"} <= rel.keys():
            raise MalformedRelationshipsError(
                f"Missing keys (expected from_abstraction, to_abstraction, label) in relationship item: {rel!r}"
            )
        if not isinstance(rel["label"], str):
            raise MalformedRelationshipsError(f"Relationship label is not a string: {rel!r}")
        try:
            from_idx = _parse_index_from_ref(rel["from_abstraction"])
            to_idx = _parse_index_from_ref(rel["to_abstraction"])
        except ValueError as e:
            raise MalformedRelationshipsError(f"Failed to parse indices from relationship {rel!r}: {e}") from e
        if not (0 <= from_idx < num_abstractions and 0 <= to_idx < num_abstractions):
            raise IndexOutOfRangeError(
                f"Invalid indices in relationship: from={from_idx}, to={to_idx}. "
                f"Maximum index is {num_abstractions - 1}."
            )
        details.append(Relationship(from_index=from_idx, to_index=to_idx, label=rel["label"].strip()))

    covered = {r.from_index for r in details} | {r.to_index for r in details}
    uncovered = [i for i in range(num_abstractions) if i not in covered]
    if uncovered:
        raise MalformedRelationshipsError(
            f"Every abstraction must take part in at least one relationship; missing indices: {uncovered}"
        )
    return RelationshipSet(summary=data["summary"].strip(), details=details)


class OrderChapters(StageNode):
    """
    Determine chapter order (abstraction indices) for the tutorial.

    prep: Read abstractions, relationships; build the index listing and relationship narrative.
    exec: Prompt for an ordered YAML list of `idx # name`; validate it is a permutation.
    post: Write chapter_order to shared.
    """

    def prep(self, shared: PipelineContext) -> dict:
        abstractions = shared.abstractions
        relationships = shared.relationships
        language = shared.language

        summary_note = language_hint(language, " (Note: Project Summary might be in {lang})")
        context = f"Project Summary{summary_note}:\n{relationships.summary}\n\n"
        context += "Relationships (Indices refer to abstractions above):\n"
        for rel in relationships.details:
            from_name = abstractions[rel.from_index].name
            to_name = abstractions[rel.to_index].name
            context += f"- From {rel.from_index} ({from_name}) to {rel.to_index} ({to_name}): {rel.label}\n"

        return {
            "project_name": shared.project_name or "project",
            "abstraction_listing": format_abstraction_listing([a.name for a in abstractions]),
            "context": context,
            "num_abstractions": len(abstractions),
            "list_lang_note": language_hint(language, " (Names might be in {lang})"),
            **self.llm_settings(shared),
        }

    def build_prompt(self, prep_res: dict) -> str:
        project_name = prep_res["project_name"]
        return f"""Given the following project abstractions and their relationships for the project `{project_name}`:

Abstractions (Index # Name){prep_res["list_lang_note"]}:
{prep_res["abstraction_listing"]}

Context about relationships and project summary:
{prep_res["context"]}

If you are going to make a tutorial for ```` {project_name} ````, what is the best order to explain these abstractions, from first to last?
Ideally, first explain those that are the most important or foundational, perhaps user-facing concepts or entry points. Then move to more detailed, lower-level implementation details or supporting concepts.

Output the ordered list of abstraction indices, including the name in a comment for clarity. Use the format `idx # AbstractionName`.

```yaml
- 2 # FoundationalConcept
- 0 # CoreClassA
- 1 # CoreClassB (uses CoreClassA)
- ...
```

Now, provide the YAML output:
"""

    def exec(self, prep_res: dict) -> list[int]:
        logger.info("Determining chapter order using LLM...")
        response = self.call_llm(self.build_prompt(prep_res), prep_res)
        order = parse_chapter_order(response, prep_res["num_abstractions"])
        logger.info("Determined chapter order: %s", order)
        return order

    def post(self, shared: PipelineContext, prep_res: dict, exec_res: list[int]) -> str:
        shared.chapter_order = exec_res
        return "default"


def parse_chapter_order(response: str, num_abstractions: int) -> list[int]:
    """Extract the ordered index list; it must be a permutation of range(num_abstractions)."""
    data = _load_yaml(_extract_yaml_block(response))
    if not isinstance(data, list):
        raise ResponseFormatError(f"LLM output is not a list; got {type(data).__name__}")

    ordered: list[int] = []
    seen: set[int] = set()
    for entry in data:
        try:
            idx = _parse_index_from_ref(entry)
        except ValueError as e:
            raise ResponseFormatError(f"Could not parse index from ordered list entry {entry!r}: {e}") from e
        if not 0 <= idx < num_abstractions:
            raise IndexOutOfRangeError(
                f"Invalid index {idx} in ordered list entry {entry!r}. Max index is {num_abstractions - 1}."
            )
        if idx in seen:
            raise DuplicateOrderEntryError(f"Duplicate index {idx} found in ordered list: {data!r}")
        ordered.append(idx)
        seen.add(idx)

    if len(ordered) != num_abstractions:
        missing = [i for i in range(num_abstractions) if i not in seen]
        raise IncompleteOrderError(
            f"Ordered list length ({len(ordered)}) does not match number of abstractions "
            f"({num_abstractions}). Missing indices: {missing}"
        )
    return ordered


def build_chapter_table(chapter_order: list[int], abstractions: list[Abstraction]) -> dict[int, ChapterInfo]:
    """abstraction index -> ChapterInfo (1-based number, name, file name), in chapter order."""
    table: dict[int, ChapterInfo] = {}
    for position, abs_idx in enumerate(chapter_order, start=1):
        name = abstractions[abs_idx].name
        table[abs_idx] = ChapterInfo(num=position, name=name, filename=safe_chapter_filename(name, position))
    return table


class WriteChapters(StageNode):
    """
    Write one chapter per abstraction, in chapter order.

    The chapters are produced by a fold over the chapter items: each step sees the
    text of every chapter written before it, so the stage is strictly sequential.

    prep: Build chapter table, full chapter listing and one item per chapter.
    exec: Fold write_chapter over the items, carrying the written-so-far text.
    post: Write chapters (Markdown strings in chapter order) to shared.
    """

    def prep(self, shared: PipelineContext) -> dict:
        chapter_order = shared.chapter_order
        abstractions = shared.abstractions
        table = build_chapter_table(chapter_order, abstractions)
        full_chapter_listing = "\n".join(
            f"{info.num}. [{info.name}]({info.filename})" for info in (table[i] for i in chapter_order)
        )

        items: list[dict] = []
        for position, abs_idx in enumerate(chapter_order):
            abstraction = abstractions[abs_idx]
            prev_chapter = table[chapter_order[position - 1]] if position > 0 else None
            next_chapter = table[chapter_order[position + 1]] if position < len(chapter_order) - 1 else None
            items.append({
                "chapter_number": position + 1,
                "abstraction_index": abs_idx,
                "abstraction_name": abstraction.name,
                "abstraction_description": abstraction.description,
                "file_content_map": get_content_for_indices(shared.files, abstraction.files),
                "full_chapter_listing": full_chapter_listing,
                "prev_chapter": prev_chapter,
                "next_chapter": next_chapter,
            })
        logger.info("Prepared %s chapters for writing...", len(items))
        return {
            "items": items,
            "project_name": shared.project_name or "project",
            "language": shared.language,
            "cancel_event": shared.cancel_event,
            **self.llm_settings(shared),
        }

    def exec(self, prep_res: dict) -> list[str]:
        chapters: list[str] = []
        cancel_event = prep_res.get("cancel_event")
        for item in prep_res["items"]:
            if cancel_event is not None and cancel_event.is_set():
                raise PipelineCancelledError(f"Pipeline cancelled before chapter {item['chapter_number']}")
            chapters.append(self.write_chapter(item, prep_res, chapters))
        logger.info("Written all %s chapters.", len(chapters))
        return chapters

    def write_chapter(self, item: dict, prep_res: dict, written_so_far: list[str]) -> str:
        """One fold step: write the chapter for item given the chapters before it."""
        logger.info("Writing chapter %s: %s", item["chapter_number"], item["abstraction_name"])
        previous = "\n---\n".join(written_so_far)[-PREVIOUS_CHAPTERS_CONTEXT_CHARS:]
        prompt = self.build_prompt(item, prep_res, previous)
        content = self.call_llm(prompt, prep_res)
        return _normalize_chapter_heading(content, item["chapter_number"], item["abstraction_name"])

    def build_prompt(self, item: dict, prep_res: dict, previous_chapters_summary: str) -> str:
        name = item["abstraction_name"]
        num = item["chapter_number"]
        language = prep_res["language"]
        project_name = prep_res["project_name"]
        notes = chapter_language_notes(language)
        instruction_lang_note = notes["instruction_lang_note"]
        link_lang_note = notes["link_lang_note"]
        file_context_str = format_content_map(item["file_content_map"])

        prev_chapter: ChapterInfo | None = item["prev_chapter"]
        next_chapter: ChapterInfo | None = item["next_chapter"]
        transitions = []
        if prev_chapter:
            transitions.append(f"- Previous chapter: [{prev_chapter.name}]({prev_chapter.filename})")
        if next_chapter:
            transitions.append(f"- Next chapter: [{next_chapter.name}]({next_chapter.filename})")
        transitions_str = "\n".join(transitions) if transitions else "- This is the only chapter."

        return f"""{notes["language_instruction"]}Write a very beginner-friendly tutorial chapter (in Markdown format) for the project `{project_name}` about the concept: "{name}". This is Chapter {num}.

Concept Details{notes["concept_details_note"]}:
- Name: {name}
- Description:
{item["abstraction_description"]}

Complete Tutorial Structure{notes["structure_note"]}:
{item["full_chapter_listing"]}

Neighbouring chapters:
{transitions_str}

Context from previous chapters{notes["prev_summary_note"]}:
{previous_chapters_summary if previous_chapters_summary else "This is the first chapter."}

Relevant Code Snippets (Code itself remains unchanged):
{file_context_str if file_context_str else "No specific code snippets provided for this abstraction."}

Instructions for the chapter (Generate content in {capitalize_language(language)} unless specified otherwise):
- Start with a clear heading: `# Chapter {num}: {name}`. Use the provided concept name.
- If this is not the first chapter, begin with a brief transition from the previous chapter{instruction_lang_note}, referencing it with a proper Markdown link to its filename{link_lang_note}.
- Begin with a high-level motivation explaining what problem this abstraction solves{instruction_lang_note}. Start with a central use case as a concrete example. The whole chapter should guide the reader to understand how to solve this use case. Make it very minimal and friendly to beginners.
- If the abstraction is complex, break it down into key concepts. Explain each concept one-by-one in a very beginner-friendly way{instruction_lang_note}.
- Explain how to use this abstraction to solve the use case{instruction_lang_note}. Give example inputs and outputs for code snippets (if the output isn't values, describe at a high level what will happen{instruction_lang_note}).
- Each code block should be BELOW 10 lines! If longer code blocks are needed, break them down into smaller pieces and walk through them one-by-one. Aggressively simplify the code to make it minimal. Use comments{notes["code_comment_note"]} to skip non-important implementation details. Each code block should have a beginner friendly explanation right after it{instruction_lang_note}.
- Describe the internal implementation to help understand what's under the hood{instruction_lang_note}. First provide a non-code or code-light walkthrough on what happens step-by-step when the abstraction is called{instruction_lang_note}. It's recommended to use a simple sequenceDiagram with a dummy example - keep it minimal with at most 5 participants to ensure clarity. If participant name has space, use: `participant QP as Query Processing`. {notes["mermaid_lang_note"]}.
- Then dive deeper into code for the internal implementation with references to files. Provide example code blocks, but make them similarly simple and beginner-friendly. Explain{instruction_lang_note}.
- IMPORTANT: When you need to refer to other core abstractions covered in other chapters, ALWAYS use proper Markdown links like this: [Chapter Title](filename.md). Use the Complete Tutorial Structure above to find the correct filename and the chapter title{link_lang_note}. Translate the surrounding text.
- Use mermaid diagrams to illustrate complex concepts (```mermaid``` format). {notes["mermaid_lang_note"]}.
- Heavily use analogies and examples throughout{instruction_lang_note} to help beginners understand.
- End the chapter with a brief conclusion that summarizes what was learned{instruction_lang_note} and provides a transition to the next chapter{instruction_lang_note}. If there is a next chapter, use a proper Markdown link: [Next Chapter Title](next_chapter_filename){link_lang_note}.
- Ensure the tone is welcoming and easy for a newcomer to understand{notes["tone_note"]}.
- Output *only* the Markdown content for this chapter.

Now, directly provide a super beginner-friendly Markdown output (DON'T need ```markdown``` tags):
"""

    def post(self, shared: PipelineContext, prep_res: dict, exec_res: list[str]) -> str:
        shared.chapters = exec_res
        return "default"


class CombineTutorial(StageNode):
    """
    Build Mermaid diagram, index.md, and chapter files; write to output_dir/project_name.

    prep: Render index and chapter file contents from shared.
    exec: Create the output directory and write the files.
    post: Set shared.final_output_dir.
    """

    def prep(self, shared: PipelineContext) -> dict:
        project_name = shared.project_name or "project"
        abstractions = shared.abstractions
        relationships = shared.relationships
        out_path = os.path.join(shared.output_dir, project_name.replace(os.sep, "_").strip() or "output")

        mermaid_lines = ["flowchart TD"]
        for i, abstr in enumerate(abstractions):
            mermaid_lines.append(f'    A{i}["{abstr.name.replace(chr(34), chr(39))}"]')
        for rel in relationships.details:
            edge_label = rel.label.replace('"', "'").replace("\n", " ")
            if len(edge_label) > MERMAID_LABEL_MAX:
                edge_label = edge_label[: MERMAID_LABEL_MAX - 3] + "..."
            mermaid_lines.append(f'    A{rel.from_index} -->|"{edge_label}"| A{rel.to_index}')

        index_content = f"# Tutorial: {project_name}\n\n"
        index_content += f"{relationships.summary}\n\n"
        index_content += "```mermaid\n" + "\n".join(mermaid_lines) + "\n```\n\n"
        index_content += "## Chapters\n\n"

        table = build_chapter_table(shared.chapter_order, abstractions)
        chapter_files: list[dict[str, str]] = []
        for abs_idx, content in zip(shared.chapter_order, shared.chapters):
            info = table[abs_idx]
            index_content += f"{info.num}. [{info.name}]({info.filename})\n"
            chapter_files.append({"filename": info.filename, "content": content.rstrip("\n") + "\n"})

        return {"output_path": out_path, "index_content": index_content, "chapter_files": chapter_files}

    def exec(self, prep_res: dict) -> str:
        out_path = prep_res["output_path"]
        os.makedirs(out_path, exist_ok=True)
        with open(os.path.join(out_path, "index.md"), "w", encoding="utf-8") as f:
            f.write(prep_res["index_content"])
        for ch in prep_res["chapter_files"]:
            with open(os.path.join(out_path, ch["filename"]), "w", encoding="utf-8") as f:
                f.write(ch["content"])
        return out_path

    def post(self, shared: PipelineContext, prep_res: dict, exec_res: str) -> str:
        shared.final_output_dir = exec_res
        logger.info("CombineTutorial: output_dir=%s", exec_res)
        return "default"

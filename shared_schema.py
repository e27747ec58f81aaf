"""
Shared store schema for the Agentic Wiki pipeline.

A PipelineContext is created fresh per run from a WikiConfig and handed to the flow
as PocketFlow's `shared` object. Each node reads earlier fields and writes only its
own output field:

Inputs (from WikiConfig):
- local_dir, output_dir, include_patterns, exclude_patterns, max_file_size (bytes),
  language, use_cache, max_abstraction_num, provider_name, model, stage_max_retries.
- cancel_event: optional threading.Event observed between stages.

Outputs (written by nodes):
- project_name: FetchRepo.
- files: FetchRepo; list of FileRecord, referenced elsewhere by index.
- abstractions: IdentifyAbstractions; list of Abstraction.
- relationships: AnalyzeRelationships; RelationshipSet.
- chapter_order: OrderChapters; permutation of abstraction indices.
- chapters: WriteChapters; Markdown per chapter, in chapter order.
- final_output_dir: CombineTutorial.
"""

import threading
from dataclasses import dataclass, field

from config import WikiConfig


@dataclass(frozen=True)
class FileRecord:
    path: str
    content: str


@dataclass
class Abstraction:
    name: str
    description: str
    files: list[int] = field(default_factory=list)


@dataclass(frozen=True)
class Relationship:
    from_index: int
    to_index: int
    label: str


@dataclass
class RelationshipSet:
    summary: str = ""
    details: list[Relationship] = field(default_factory=list)


@dataclass(frozen=True)
class ChapterInfo:
    """Chapter number, title and file name assigned to one abstraction."""

    num: int
    name: str
    filename: str


@dataclass
class PipelineContext:
    local_dir: str
    project_name: str | None = None
    output_dir: str = "agentic-wiki"
    include_patterns: list[str] = field(default_factory=list)
    exclude_patterns: list[str] = field(default_factory=list)
    max_file_size: int = 100 * 1024
    language: str = "english"
    use_cache: bool = True
    max_abstraction_num: int = 10
    provider_name: str | None = None
    model: str | None = None
    stage_max_retries: int = 1
    cancel_event: threading.Event | None = None

    files: list[FileRecord] = field(default_factory=list)
    abstractions: list[Abstraction] = field(default_factory=list)
    relationships: RelationshipSet = field(default_factory=RelationshipSet)
    chapter_order: list[int] = field(default_factory=list)
    chapters: list[str] = field(default_factory=list)
    final_output_dir: str | None = None

    @property
    def cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()


def new_pipeline_context(config: WikiConfig, cancel_event: threading.Event | None = None) -> PipelineContext:
    """Return a fresh context for one run; max_file_size is converted from KB to bytes."""
    return PipelineContext(
        local_dir=config.local_dir,
        project_name=config.project_name,
        output_dir=config.output_dir,
        include_patterns=list(config.include_patterns),
        exclude_patterns=list(config.exclude_patterns),
        max_file_size=config.max_file_size_bytes,
        language=config.language,
        use_cache=config.use_cache,
        max_abstraction_num=config.max_abstraction_num,
        provider_name=config.provider_name,
        model=config.model,
        stage_max_retries=config.stage_max_retries,
        cancel_event=cancel_event,
    )

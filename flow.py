"""
PocketFlow flow for the Agentic Wiki pipeline.

FetchRepo -> IdentifyAbstractions -> AnalyzeRelationships -> OrderChapters
-> WriteChapters -> CombineTutorial, run strictly in sequence over one
PipelineContext. The first failing stage aborts the run.
"""

import logging
import threading

from pocketflow import Flow

from config import WikiConfig
from nodes import (
    AnalyzeRelationships,
    CombineTutorial,
    FetchRepo,
    IdentifyAbstractions,
    OrderChapters,
    WriteChapters,
)
from shared_schema import PipelineContext, new_pipeline_context
from utils.call_llm import LlmGateway
from utils.llm_providers import ProviderRegistry
from utils.response_cache import ResponseCache

logger = logging.getLogger("agentic_wiki")


def create_fetch_flow() -> Flow:
    """Create minimal flow with FetchRepo only (no LLM calls)."""
    fetch_repo = FetchRepo()
    return Flow(start=fetch_repo)


def create_analysis_flow(gateway: LlmGateway, max_retries: int = 1) -> Flow:
    """Create flow: FetchRepo -> IdentifyAbstractions -> AnalyzeRelationships -> OrderChapters."""
    fetch_repo = FetchRepo()
    identify = IdentifyAbstractions(gateway, max_retries=max_retries)
    analyze = AnalyzeRelationships(gateway, max_retries=max_retries)
    order = OrderChapters(gateway, max_retries=max_retries)
    fetch_repo >> identify >> analyze >> order
    return Flow(start=fetch_repo)


def create_full_flow(gateway: LlmGateway, max_retries: int = 1) -> Flow:
    """Create full flow: analysis stages -> WriteChapters -> CombineTutorial."""
    fetch_repo = FetchRepo()
    identify = IdentifyAbstractions(gateway, max_retries=max_retries)
    analyze = AnalyzeRelationships(gateway, max_retries=max_retries)
    order = OrderChapters(gateway, max_retries=max_retries)
    write_chapters = WriteChapters(gateway, max_retries=max_retries)
    combine = CombineTutorial()
    fetch_repo >> identify >> analyze >> order >> write_chapters >> combine
    return Flow(start=fetch_repo)


def build_gateway(config: WikiConfig, registry: ProviderRegistry | None = None) -> LlmGateway:
    """Gateway over the default providers, caching to the configured cache document."""
    return LlmGateway(
        registry or ProviderRegistry(),
        cache=ResponseCache(config.resolved_cache_path()),
        default_provider=config.provider_name,
    )


def run_pipeline(
    config: WikiConfig,
    gateway: LlmGateway | None = None,
    cancel_event: threading.Event | None = None,
) -> PipelineContext:
    """
    Run the full pipeline for config and return the populated context.

    Raises the first stage's error unchanged; PipelineCancelledError when
    cancel_event is set before a stage (or between chapters).
    """
    shared = new_pipeline_context(config, cancel_event=cancel_event)
    gateway = gateway or build_gateway(config)
    logger.info(
        "Starting pipeline: local_dir=%s, provider=%s, model=%s, language=%s",
        shared.local_dir,
        shared.provider_name,
        shared.model or "(first listed)",
        shared.language,
    )
    create_full_flow(gateway, max_retries=shared.stage_max_retries).run(shared)
    logger.info("Pipeline finished: %s chapters in %s", len(shared.chapters), shared.final_output_dir)
    return shared

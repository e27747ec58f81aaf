"""
Agentic Wiki CLI entrypoint.

Builds a WikiConfig from an optional JSON config document plus CLI flags and runs
the pipeline flow.
"""

import argparse
import logging
import sys

from dotenv import load_dotenv

from config import DEFAULT_PROVIDER, WikiConfig, build_config, load_config
from errors import WikiError

load_dotenv()
from flow import build_gateway, run_pipeline

logger = logging.getLogger("agentic_wiki")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments. Requires --local-dir unless --config provides it."""
    p = argparse.ArgumentParser(
        prog="agentic-wiki",
        description="Generate a beginner-friendly wiki tutorial for a local codebase.",
    )
    p.add_argument("--local-dir", type=str, default=None, help="Local directory path to crawl.")
    p.add_argument("--config", type=str, default=None, help="JSON configuration document to start from.")
    p.add_argument(
        "--project-name",
        type=str,
        default=None,
        help="Project name for output (default: derived from the directory name).",
    )
    p.add_argument("--output-dir", type=str, default=None, help="Base directory for output (default: agentic-wiki).")
    p.add_argument("--language", type=str, default=None, help="Tutorial language (default: english).")
    p.add_argument("--provider", type=str, default=None, help=f"LLM provider (default: {DEFAULT_PROVIDER}).")
    p.add_argument("--model", type=str, default=None, help="Model id (default: the provider's first listed model).")
    p.add_argument("--max-abstractions", type=int, default=None, help="Upper bound of abstractions (>= 5).")
    p.add_argument("--max-file-size", type=int, default=None, help="Maximum file size in KB.")
    p.add_argument("--include", action="append", default=None, help="Include glob (repeatable).")
    p.add_argument("--exclude", action="append", default=None, help="Exclude glob (repeatable).")
    p.add_argument("--no-cache", action="store_true", help="Do not read or write the LLM response cache.")
    p.add_argument("--verbose", action="store_true", help="Log at DEBUG level.")
    p.add_argument("--list-models", action="store_true", help="Print the provider's models and exit.")
    args = p.parse_args(argv)
    if not args.local_dir and not args.config and not args.list_models:
        p.error("One of --local-dir or --config is required.")
    return args


def config_from_args(args: argparse.Namespace) -> WikiConfig:
    """CLI flags override the config document; flags that were not given are ignored."""
    overrides = {
        "local_dir": args.local_dir.strip() if args.local_dir else None,
        "project_name": args.project_name.strip() if args.project_name else None,
        "output_dir": args.output_dir.strip() if args.output_dir else None,
        "language": args.language.strip() if args.language else None,
        "provider_name": args.provider,
        "model": args.model,
        "max_abstraction_num": args.max_abstractions,
        "max_file_size": args.max_file_size,
        "include_patterns": args.include,
        "exclude_patterns": args.exclude,
        "use_cache": False if args.no_cache else None,
    }
    if args.config:
        return load_config(args.config, **overrides)
    return build_config(**{k: v for k, v in overrides.items() if v is not None})


def list_models(args: argparse.Namespace) -> int:
    provider = args.provider or DEFAULT_PROVIDER
    # local_dir is irrelevant for listing; "." satisfies the config validator.
    config = build_config(local_dir=".", provider_name=provider)
    for m in build_gateway(config).list_models(provider):
        print(f"{m.id}\t{m.display_name}\t{m.context_length}")
    return 0


def main(argv: list[str] | None = None) -> int:
    """Parse args, build config, run flow. Returns 0 on success, 1 on failure, 2 on usage error."""
    try:
        args = parse_args(argv)
    except SystemExit as e:
        return 2 if e.code else 0  # argparse error -> 2

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        if args.list_models:
            return list_models(args)
        config = config_from_args(args)
        shared = run_pipeline(config)
    except WikiError as e:
        logger.debug("Pipeline failed", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except Exception as e:
        logger.exception("Pipeline failed: %s", e)
        print(f"Error: {e}", file=sys.stderr)
        return 1

    logger.info("Tutorial written to: %s", shared.final_output_dir)
    print("Tutorial written to:", shared.final_output_dir)
    return 0


def cli() -> None:
    sys.exit(main())


if __name__ == "__main__":
    cli()

"""Integration tests: the full flow over a small directory with a scripted gateway."""

import threading
from pathlib import Path

import pytest
from pocketflow import Flow

from config import WikiConfig
from errors import MalformedRelationshipsError, PipelineCancelledError
from flow import build_gateway, create_analysis_flow, create_fetch_flow, create_full_flow, run_pipeline
from shared_schema import new_pipeline_context

IDENTIFY = """```yaml
- name: Greeter
  description: Says hello.
  file_indices: [0]
- name: Runner
  description: Runs the greeter.
  file_indices: ['1 # run.py']
```"""

RELATIONSHIPS = """```yaml
summary: Greets people.
relationships:
  - from_abstraction: 1 # Runner
    to_abstraction: 0 # Greeter
    label: Calls
```"""

ORDER = """```yaml
- 1 # Runner
- 0 # Greeter
```"""


def _config(tmp_path: Path, **overrides) -> WikiConfig:
    src = tmp_path / "hello"
    src.mkdir(exist_ok=True)
    (src / "greet.py").write_text("def greet(): return 'hi'\n")
    (src / "run.py").write_text("from greet import greet\nprint(greet())\n")
    values = {
        "local_dir": str(src),
        "output_dir": str(tmp_path / "out"),
        "include_patterns": ["*.py"],
        "exclude_patterns": [],
        "cache_path": str(tmp_path / "cache.json"),
    }
    values.update(overrides)
    return WikiConfig(**values)


def test_flow_factories_return_flows(make_gateway):
    assert isinstance(create_fetch_flow(), Flow)
    assert isinstance(create_analysis_flow(make_gateway([])), Flow)
    assert isinstance(create_full_flow(make_gateway([])), Flow)


def test_fetch_flow_populates_files(tmp_path):
    shared = new_pipeline_context(_config(tmp_path))
    create_fetch_flow().run(shared)
    assert [f.path for f in shared.files] == ["greet.py", "run.py"]
    assert shared.project_name == "hello"


def test_analysis_flow_populates_abstractions_relationships_chapter_order(tmp_path, make_gateway):
    gateway = make_gateway([IDENTIFY, RELATIONSHIPS, ORDER])
    shared = new_pipeline_context(_config(tmp_path))
    create_analysis_flow(gateway).run(shared)
    assert [a.name for a in shared.abstractions] == ["Greeter", "Runner"]
    assert shared.relationships.summary == "Greets people."
    assert shared.chapter_order == [1, 0]
    assert shared.chapters == []


def test_run_pipeline_writes_wiki(tmp_path, make_gateway):
    gateway = make_gateway([IDENTIFY, RELATIONSHIPS, ORDER, "# Chapter 1: Runner\nrun", "intro to greeter"])
    shared = run_pipeline(_config(tmp_path, project_name="Hello World"), gateway=gateway)
    out = tmp_path / "out" / "Hello World"
    assert shared.final_output_dir == str(out)
    assert sorted(p.name for p in out.iterdir()) == ["01_runner.md", "02_greeter.md", "index.md"]
    assert (out / "02_greeter.md").read_text() == "# Chapter 2: Greeter\n\nintro to greeter\n"
    assert len(gateway.calls) == 5


def test_stage_failure_aborts_run(tmp_path, make_gateway):
    bad_relationships = RELATIONSHIPS.replace("to_abstraction: 0 # Greeter", "to_abstraction: 1 # Runner")
    gateway = make_gateway([IDENTIFY, bad_relationships, ORDER])
    with pytest.raises(MalformedRelationshipsError):
        run_pipeline(_config(tmp_path), gateway=gateway)
    assert len(gateway.calls) == 2
    assert not (tmp_path / "out").exists()


def test_stage_retries_follow_config(tmp_path, make_gateway):
    gateway = make_gateway(["garbage", IDENTIFY, RELATIONSHIPS, ORDER, "a", "b"])
    run_pipeline(_config(tmp_path, stage_max_retries=2), gateway=gateway)
    assert [c["use_cache"] for c in gateway.calls[:3]] == [True, False, True]


def test_cancel_before_start(tmp_path, make_gateway):
    event = threading.Event()
    event.set()
    gateway = make_gateway([])
    with pytest.raises(PipelineCancelledError):
        run_pipeline(_config(tmp_path), gateway=gateway, cancel_event=event)
    assert gateway.calls == []


def test_cancel_between_stages(tmp_path, make_gateway):
    event = threading.Event()

    class CancelAfterIdentify:
        def __init__(self):
            self.calls = 0

        def call(self, prompt, **kwargs):
            self.calls += 1
            event.set()
            return IDENTIFY

    gateway = CancelAfterIdentify()
    with pytest.raises(PipelineCancelledError, match="AnalyzeRelationships"):
        run_pipeline(_config(tmp_path), gateway=gateway, cancel_event=event)
    assert gateway.calls == 1


def test_build_gateway_uses_config(tmp_path):
    gateway = build_gateway(_config(tmp_path, provider_name="Gemini"))
    assert gateway.default_provider == "Gemini"
    assert gateway.cache.path == tmp_path / "cache.json"

"""Shared fixtures: a scripted stand-in for LlmGateway."""

import pytest


class FakeGateway:
    """Returns scripted responses in order and records every call."""

    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []

    def call(self, prompt, provider_name=None, model=None, use_cache=True, credential=None, options=None):
        self.calls.append({"prompt": prompt, "provider_name": provider_name, "model": model, "use_cache": use_cache})
        if not self.responses:
            raise AssertionError("FakeGateway ran out of scripted responses")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def make_gateway():
    return FakeGateway


def yaml_response(body: str) -> str:
    return f"Here you go:\n```yaml\n{body}\n```\nDone."


@pytest.fixture
def as_yaml():
    return yaml_response

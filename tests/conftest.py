"""Shared fixtures for teamflow tests."""

import json
import os
from typing import List, Union

import pytest
import yaml

from teamflow.llm import LLMConfig, LLMProvider, LLMResponse
from teamflow.team import Agent, Task


class ScriptedProvider(LLMProvider):
    """Returns queued replies in order; an Exception in the queue is raised.

    Dicts are sent as JSON. When the queue runs dry the provider keeps
    answering with ``fallback`` (if given) or raises.
    """

    def __init__(self, replies=None, fallback=None, usage=None, model="gpt-4o-mini"):
        self.replies: List[Union[str, dict, Exception]] = list(replies or [])
        self.fallback = fallback
        self.usage = usage or {"prompt_tokens": 100, "completion_tokens": 20}
        self.model = model
        self.calls: List[list] = []

    def queue(self, *replies) -> None:
        self.replies.extend(replies)

    async def invoke(self, messages, config):
        self.calls.append(list(messages))
        if self.replies:
            reply = self.replies.pop(0)
        elif self.fallback is not None:
            reply = self.fallback
        else:
            raise RuntimeError("ScriptedProvider ran out of replies")
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            reply = reply(messages)
        content = json.dumps(reply) if isinstance(reply, dict) else reply
        return LLMResponse(content=content, usage=dict(self.usage),
                           model=self.model, latency=0.01)


def final(answer):
    return {"finalAnswer": answer}


def make_agent(name="Ada", **kwargs):
    kwargs.setdefault("role", "Analyst")
    kwargs.setdefault("llm_config", LLMConfig(model="gpt-4o-mini"))
    return Agent(name=name, **kwargs)


def make_task(agent, description="Summarize the notes", **kwargs):
    kwargs.setdefault("expected_output", "A summary")
    return Task(description=description, agent=agent, **kwargs)


@pytest.fixture
def tmp_dir(tmp_path):
    """Provide a temporary directory and cd into it."""
    orig = os.getcwd()
    os.chdir(tmp_path)
    yield tmp_path
    os.chdir(orig)


@pytest.fixture
def sample_config_data():
    """Minimal .teamflow.yml data dict."""
    return {
        "max-parallel": 2,
        "max-iterations": 5,
        "force-final-answer": False,
        "default-model": "deepseek-chat",
        "verbose": False,
        "metrics": {
            "buffer-capacity": 50,
            "batch-size": 10,
            "flush-interval": 1.5,
        },
        "costs": {
            "currency": "eur",
            "precision": 6,
            "pricing": {
                "my-local-model": {"input": 0.1, "output": 0.2, "provider": "local"},
            },
        },
    }


@pytest.fixture
def config_yaml_file(tmp_dir, sample_config_data):
    """Write a config YAML to tmp_dir and return its Path."""
    path = tmp_dir / ".teamflow.yml"
    with open(path, "w") as f:
        yaml.dump(sample_config_data, f, default_flow_style=False)
    return path


@pytest.fixture
def provider():
    return ScriptedProvider()

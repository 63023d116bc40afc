"""Tests for building a Team from a YAML team file."""

import pytest
import yaml

from conftest import ScriptedProvider, final
from teamflow.config import TeamflowConfig
from teamflow.enums import WorkflowStatus
from teamflow.errors import ConfigError
from teamflow.team.loader import build_team, load_team

TEAM_YAML = """
name: blog
inputs:
  topic: tide pools
agents:
  researcher:
    role: Researcher
    goal: Find facts
    llm: {model: deepseek-chat, provider: deepseek}
    tools: [block_task]
    max-iterations: 4
  writer:
    role: Writer
tasks:
  research:
    description: Collect facts about {topic}
    expected-output: Bullet list
    agent: researcher
  draft:
    title: Draft post
    description: Write the post
    expected-output: Markdown
    agent: writer
    depends-on: [research]
    deliverable: true
    external-validation: true
"""


@pytest.fixture
def team_file(tmp_dir):
    path = tmp_dir / "team.yml"
    path.write_text(TEAM_YAML)
    return path


class TestLoadTeam:

    def test_structure(self, team_file):
        team = load_team(team_file, provider=ScriptedProvider())
        assert team.name == "blog"
        assert team.inputs == {"topic": "tide pools"}
        researcher, writer = team.agents
        assert researcher.tool_names == ["block_task"]
        assert researcher.max_iterations == 4
        assert researcher.llm_config.litellm_model == "deepseek/deepseek-chat"
        assert writer.llm_config.model == "gpt-4o-mini"
        research, draft = team.tasks
        assert research.id == "research"
        assert draft.dependencies == ["research"]
        assert draft.is_deliverable and draft.external_validation_required
        assert draft.title == "Draft post"
        assert draft.agent is writer

    def test_config_defaults_apply(self, team_file):
        config = TeamflowConfig(max_iterations=7, default_model="gpt-4o",
                                force_final_answer=False)
        team = load_team(team_file, config=config, provider=ScriptedProvider())
        writer = team.agents[1]
        assert writer.max_iterations == 7
        assert writer.llm_config.model == "gpt-4o"
        assert writer.force_final_answer is False

    @pytest.mark.asyncio
    async def test_loaded_team_runs(self, team_file):
        provider = ScriptedProvider([final("facts"), final("post")])
        team = load_team(team_file, provider=provider)
        paused = await team.start()
        assert paused.status == WorkflowStatus.RUNNING
        assert "tide pools" in provider.calls[0][1]["content"]
        team.validate_task("draft")
        result = await team.resume()
        assert result.result == "post"
        await team.cleanup()


class TestInvalidTeams:

    def _data(self):
        return yaml.safe_load(TEAM_YAML)

    def test_unknown_agent(self):
        data = self._data()
        data["tasks"]["draft"]["agent"] = "editor"
        with pytest.raises(ConfigError, match="unknown agent"):
            build_team(data)

    def test_unknown_dependency(self):
        data = self._data()
        data["tasks"]["draft"]["depends-on"] = ["outline"]
        with pytest.raises(ConfigError, match="outline"):
            build_team(data)

    def test_unknown_tool(self):
        data = self._data()
        data["agents"]["writer"]["tools"] = ["web_search"]
        with pytest.raises(ConfigError, match="web_search"):
            build_team(data)

    def test_empty_sections(self):
        with pytest.raises(ConfigError):
            build_team({"agents": {}, "tasks": {}})
        with pytest.raises(ConfigError):
            build_team("just a string")

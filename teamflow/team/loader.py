"""Build a Team from a YAML team definition.

Example file::

    name: blog
    inputs:
      topic: tide pools
    agents:
      writer:
        role: Writer
        goal: Write clear posts
        llm: {model: gpt-4o-mini}
        tools: [block_task]
    tasks:
      outline:
        description: Outline a post about {topic}
        expected-output: A bullet list
        agent: writer
      draft:
        description: Write the post
        expected-output: Markdown
        agent: writer
        depends-on: [outline]
        deliverable: true
"""

from pathlib import Path
from typing import Any, Callable, Dict, Optional, Union

from ..config import TeamflowConfig, load_yaml
from ..errors import ConfigError
from ..llm import LLMConfig
from .agent import Agent
from .task import Task
from .team import Team
from .tools import BlockTaskTool, Tool

# Tools a team file can reference by name.
BUILTIN_TOOLS: Dict[str, Callable[[], Tool]] = {
    "block_task": BlockTaskTool,
}


def load_team(path: Union[str, Path], config: Optional[TeamflowConfig] = None,
              **team_kwargs) -> Team:
    data = load_yaml(path)
    return build_team(data, config=config, source=str(path), **team_kwargs)


def build_team(data: Any, config: Optional[TeamflowConfig] = None,
               source: str = "team", **team_kwargs) -> Team:
    if not isinstance(data, dict):
        raise ConfigError(source, "team definition must be a mapping")
    config = config or TeamflowConfig()

    agent_defs = data.get("agents") or {}
    task_defs = data.get("tasks") or {}
    if not isinstance(agent_defs, dict) or not agent_defs:
        raise ConfigError(source, "'agents' must be a non-empty mapping")
    if not isinstance(task_defs, dict) or not task_defs:
        raise ConfigError(source, "'tasks' must be a non-empty mapping")

    agents = {key: _build_agent(key, spec or {}, config, source)
              for key, spec in agent_defs.items()}

    tasks: Dict[str, Task] = {}
    for key, spec in task_defs.items():
        spec = spec or {}
        agent_key = spec.get("agent")
        if agent_key not in agents:
            raise ConfigError(source, f"task {key!r} references unknown agent {agent_key!r}")
        deps = spec.get("depends-on") or []
        unknown = [d for d in deps if d not in task_defs]
        if unknown:
            raise ConfigError(source, f"task {key!r} depends on unknown task(s) {unknown}")
        tasks[key] = Task(
            id=str(key),
            title=str(spec.get("title", "")),
            description=str(spec.get("description", "")),
            expected_output=str(spec.get("expected-output", "")),
            agent=agents[agent_key],
            dependencies=[str(d) for d in deps],
            is_deliverable=bool(spec.get("deliverable", False)),
            external_validation_required=bool(spec.get("external-validation", False)),
        )

    return Team(
        name=str(data.get("name", Path(source).stem)),
        agents=list(agents.values()),
        tasks=list(tasks.values()),
        inputs=dict(data.get("inputs") or {}),
        config=config,
        **team_kwargs,
    )


def _build_agent(key: str, spec: Dict[str, Any], config: TeamflowConfig,
                 source: str) -> Agent:
    tools = []
    for tool_name in spec.get("tools") or []:
        factory = BUILTIN_TOOLS.get(tool_name)
        if factory is None:
            raise ConfigError(source, f"agent {key!r} uses unknown tool {tool_name!r}")
        tools.append(factory())
    return Agent(
        name=str(spec.get("name", key)),
        role=str(spec.get("role", key)),
        goal=str(spec.get("goal", "")),
        background=str(spec.get("background", "")),
        llm_config=LLMConfig.from_dict(spec.get("llm"), default_model=config.default_model),
        tools=tools,
        max_iterations=int(spec.get("max-iterations", config.max_iterations)),
        force_final_answer=bool(spec.get("force-final-answer", config.force_final_answer)),
        system_message=spec.get("system-message"),
    )

"""Static transition tables, one per entity kind.

Each table maps every member of the entity's status enum to the set of
statuses it may move to. ``_check_exhaustive`` runs at import so a status
added to an enum without a row here fails loudly.
"""

from typing import Dict, FrozenSet, Type

from ..enums import AgentStatus, Entity, StreamState, TaskStatus, WorkflowStatus

A = AgentStatus
T = TaskStatus
W = WorkflowStatus
S = StreamState

# Statuses an agent may be in between tasks; each can open a new run.
_AGENT_RESTING = frozenset({A.ITERATION_START, A.INITIAL})

AGENT_TRANSITIONS: Dict[AgentStatus, FrozenSet[AgentStatus]] = {
    A.INITIAL: frozenset({A.ITERATION_START}),
    A.ITERATION_START: frozenset({A.THINKING}),
    A.THINKING: frozenset({A.THINKING_END, A.THINKING_ERROR}),
    A.THINKING_END: frozenset({
        A.THOUGHT,
        A.SELF_QUESTION,
        A.OBSERVATION,
        A.EXECUTING_ACTION,
        A.FINAL_ANSWER,
        A.WEIRD_LLM_OUTPUT,
        A.ISSUES_PARSING_LLM_OUTPUT,
        A.AGENTIC_LOOP_ERROR,
    }),
    A.THINKING_ERROR: frozenset({A.AGENTIC_LOOP_ERROR}),
    A.THOUGHT: frozenset({A.ITERATION_END}),
    A.SELF_QUESTION: frozenset({A.ITERATION_END}),
    A.OBSERVATION: frozenset({A.ITERATION_END}),
    A.WEIRD_LLM_OUTPUT: frozenset({A.ITERATION_END, A.AGENTIC_LOOP_ERROR}),
    A.ISSUES_PARSING_LLM_OUTPUT: frozenset({A.ITERATION_END, A.AGENTIC_LOOP_ERROR}),
    A.EXECUTING_ACTION: frozenset({A.USING_TOOL, A.TOOL_DOES_NOT_EXIST}),
    A.USING_TOOL: frozenset({A.USING_TOOL_END, A.USING_TOOL_ERROR}),
    A.USING_TOOL_END: frozenset({A.ITERATION_END}),
    A.USING_TOOL_ERROR: frozenset({A.ITERATION_END}),
    A.TOOL_DOES_NOT_EXIST: frozenset({A.ITERATION_END}),
    A.FINAL_ANSWER: frozenset({A.ITERATION_END, A.TASK_COMPLETED}),
    A.ITERATION_END: frozenset({
        A.ITERATION_START,
        A.TASK_COMPLETED,
        A.DECIDED_TO_BLOCK_TASK,
        A.MAX_ITERATIONS_ERROR,
    }),
    A.MAX_ITERATIONS_ERROR: frozenset({A.THINKING, A.AGENTIC_LOOP_ERROR}) | _AGENT_RESTING,
    A.DECIDED_TO_BLOCK_TASK: _AGENT_RESTING,
    A.AGENTIC_LOOP_ERROR: _AGENT_RESTING,
    A.TASK_COMPLETED: _AGENT_RESTING,
}

TASK_TRANSITIONS: Dict[TaskStatus, FrozenSet[TaskStatus]] = {
    T.TODO: frozenset({T.DOING, T.BLOCKED}),
    T.DOING: frozenset({
        T.DONE,
        T.AWAITING_VALIDATION,
        T.BLOCKED,
        T.ERROR,
        T.REVISE,
    }),
    T.AWAITING_VALIDATION: frozenset({T.VALIDATED, T.REVISE}),
    T.REVISE: frozenset({T.DOING}),
    T.VALIDATED: frozenset(),
    T.DONE: frozenset(),
    T.ERROR: frozenset(),
    T.BLOCKED: frozenset(),
}

WORKFLOW_TRANSITIONS: Dict[WorkflowStatus, FrozenSet[WorkflowStatus]] = {
    W.INITIAL: frozenset({W.RUNNING}),
    W.RUNNING: frozenset({W.FINISHED, W.BLOCKED, W.ERRORED}),
    W.FINISHED: frozenset(),
    W.BLOCKED: frozenset(),
    W.ERRORED: frozenset(),
}

STREAM_TRANSITIONS: Dict[StreamState, FrozenSet[StreamState]] = {
    S.START: frozenset({S.TOKEN, S.END, S.ERROR}),
    S.TOKEN: frozenset({S.TOKEN, S.END, S.ERROR}),
    S.END: frozenset(),
    S.ERROR: frozenset(),
}

TRANSITION_TABLES = {
    Entity.AGENT: (AgentStatus, AGENT_TRANSITIONS),
    Entity.TASK: (TaskStatus, TASK_TRANSITIONS),
    Entity.WORKFLOW: (WorkflowStatus, WORKFLOW_TRANSITIONS),
    Entity.STREAM: (StreamState, STREAM_TRANSITIONS),
}


def _check_exhaustive(enum_cls: Type, table: Dict) -> None:
    missing = [member.name for member in enum_cls if member not in table]
    if missing:
        raise RuntimeError(
            f"Transition table for {enum_cls.__name__} is missing rows: {missing}"
        )
    for source, targets in table.items():
        foreign = [t for t in targets if not isinstance(t, enum_cls)]
        if foreign:
            raise RuntimeError(
                f"{enum_cls.__name__}.{source.name} lists foreign targets: {foreign}"
            )


for _enum_cls, _table in TRANSITION_TABLES.values():
    _check_exhaustive(_enum_cls, _table)


def allowed_targets(entity: Entity, current) -> FrozenSet:
    _, table = TRANSITION_TABLES[entity]
    return table.get(current, frozenset())


def is_valid_transition(entity: Entity, current, target) -> bool:
    enum_cls, _ = TRANSITION_TABLES[entity]
    if not isinstance(current, enum_cls) or not isinstance(target, enum_cls):
        return False
    return target in allowed_targets(entity, current)

"""Prompt text for the agent loop."""

import json
from typing import Any, Iterable, List, Optional

SYSTEM_PROMPT = """\
You are {name}.

Your role is: {role}.
Your background is: {background}.
Your main goal is: {goal}.

You are working as part of a team. Work through the task step by step and
answer ONLY with a single JSON object in one of the formats below.

Tools available to you:
{tools}

Formats:

1. Thinking and deciding on an action:
{{
  "thought": "your reasoning about what to do next",
  "action": "the tool name to use, or \\"self_question\\" to think further",
  "actionInput": {{"argument": "value"}}
}}

2. Reporting what you learned from a tool result:
{{
  "observation": "what the result tells you",
  "isFinalAnswerReady": false
}}

3. Giving the final answer:
{{
  "finalAnswer": "the complete answer matching the expected output"
}}

Never call a tool that is not listed. If the task cannot be done, use the
block_task tool (when available) and explain why.
"""

INITIAL_MESSAGE = """\
Hi {name}, please complete the following task: {description}
Your expected output should be: "{expected_output}".
{context}"""

CONTEXT_BLOCK = """\

Here is the context from tasks completed before this one:
{context}
"""

CONTEXT_ENTRY = "--- Result from task '{title}' ({agent}) ---\n{output}"

INVALID_JSON_FEEDBACK = (
    "Your last reply was not valid JSON in one of the required formats. "
    "Reply again with a single JSON object and nothing else."
)

THOUGHT_WITH_SELF_QUESTION_FEEDBACK = (
    'Good reasoning: "{thought}". Now answer your own question: "{question}". '
    "Continue with your next step."
)

THOUGHT_FEEDBACK = 'Your thought was: "{thought}". Continue with your next step.'

SELF_QUESTION_FEEDBACK = (
    'You asked yourself: "{question}". Work out the answer and continue.'
)

TOOL_RESULT_FEEDBACK = "You got this result from the tool: {result}"

TOOL_ERROR_FEEDBACK = (
    'The tool "{tool_name}" failed with: {error}. '
    "Check the input you gave it or try a different approach."
)

TOOL_NOT_EXIST_FEEDBACK = (
    'There is no tool named "{tool_name}". The tools you can use are: {available}. '
    "Pick one of these or continue without a tool."
)

OBSERVATION_FEEDBACK = (
    "Noted. If you have enough information, give the finalAnswer; "
    "otherwise continue with your next step."
)

WEIRD_OUTPUT_FEEDBACK = (
    "Your reply did not follow any of the expected formats (thought/action, "
    "observation, or finalAnswer). Use exactly one of them."
)

FORCE_FINAL_ANSWER_FEEDBACK = (
    "We are out of time for this task. Using everything you have so far, "
    "give the finalAnswer right away."
)

WORK_ON_FEEDBACK_FEEDBACK = (
    "Here is some feedback for you to address: {feedback}\n"
    "Revise your work accordingly and give an updated finalAnswer."
)


def build_system_message(agent) -> str:
    if agent.system_message:
        return agent.system_message
    return SYSTEM_PROMPT.format(
        name=agent.name,
        role=agent.role,
        background=agent.background or "not specified",
        goal=agent.goal or "complete the tasks you are given",
        tools=_describe_tools(agent.tools),
    )


def _describe_tools(tools: Iterable) -> str:
    lines = []
    for t in tools:
        lines.append(f"- {t.name}: {t.description}\n  input schema: {json.dumps(t.schema)}")
    return "\n".join(lines) if lines else "(none)"


def build_initial_message(agent, task, context: str = "") -> str:
    return INITIAL_MESSAGE.format(
        name=agent.name,
        description=task.interpolated_description or task.description,
        expected_output=task.expected_output,
        context=CONTEXT_BLOCK.format(context=context) if context else "",
    )


def format_context(entries: List[Any]) -> str:
    """``entries`` are ``(title, agent_name, result)`` tuples."""
    return "\n\n".join(
        CONTEXT_ENTRY.format(title=title, agent=agent, output=_as_text(result))
        for title, agent, result in entries
    )


def thought_feedback(thought: Optional[str], question: Optional[str] = None) -> str:
    if question:
        return THOUGHT_WITH_SELF_QUESTION_FEEDBACK.format(thought=thought, question=question)
    return THOUGHT_FEEDBACK.format(thought=thought)


def self_question_feedback(question: Optional[str]) -> str:
    return SELF_QUESTION_FEEDBACK.format(question=question or "")


def tool_result_feedback(result: Any) -> str:
    return TOOL_RESULT_FEEDBACK.format(result=_as_text(result))


def tool_error_feedback(tool_name: str, error: Any) -> str:
    return TOOL_ERROR_FEEDBACK.format(tool_name=tool_name, error=error)


def tool_not_exist_feedback(tool_name: Optional[str], available: Iterable[str]) -> str:
    names = ", ".join(available) or "(none)"
    return TOOL_NOT_EXIST_FEEDBACK.format(tool_name=tool_name, available=names)


def work_on_feedback(feedback: Iterable[str]) -> str:
    return WORK_ON_FEEDBACK_FEEDBACK.format(feedback="\n".join(feedback))


def _as_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    try:
        return json.dumps(value, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        return str(value)

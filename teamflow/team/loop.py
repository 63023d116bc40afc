"""The agentic loop: think -> (act) -> observe until a final answer.

One ``AgenticLoop.run`` call drives one task attempt. Recoverable problems
(unparseable output, unknown tool, tool failure, off-protocol replies) cost
an iteration and feed a corrective message back to the model. The loop never
runs more than ``agent.max_iterations`` iterations; after that it either
asks once for a forced final answer or gives up.

The loop changes agent statuses itself. Task statuses belong to the
TeamManager, with one exception: feedback sent while the task is running
(DOING -> REVISE) is picked up here at the next iteration boundary.
"""

import json
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ..enums import AgentStatus, Entity, MetricDomain, MetricType, TaskStatus
from ..logger import get_logger
from . import prompts
from .parser import AgentStep, classify_step, parse_llm_output
from .tools import BlockTaskRequest, find_tool

_log = get_logger(__name__)

A = AgentStatus

# Step kinds that just produce a feedback prompt for the next iteration.
_RECOVERABLE = frozenset({
    A.THOUGHT,
    A.SELF_QUESTION,
    A.OBSERVATION,
    A.WEIRD_LLM_OUTPUT,
    A.ISSUES_PARSING_LLM_OUTPUT,
})


@dataclass
class LoopOutcome:
    completed: bool = False
    result: Any = None
    blocked_reason: Optional[str] = None
    error: Optional[str] = None
    iterations: int = 0
    forced: bool = False


class AgenticLoop:
    def __init__(self, status_manager, provider, metrics=None):
        self.status = status_manager
        self.provider = provider
        self.metrics = metrics

    async def run(self, agent, task, context: str = "") -> LoopOutcome:
        provider = agent.llm or self.provider
        messages = self._initial_messages(agent, task, context)
        outcome = LoopOutcome()

        for iteration in range(agent.max_iterations):
            self._absorb_live_feedback(agent, task, messages)
            self._agent(agent, task, A.ITERATION_START,
                        f"Iteration {iteration + 1}/{agent.max_iterations} started",
                        iteration=iteration)

            response = await self._think(agent, task, provider, messages, iteration)
            if response is None:
                outcome.error = f"LLM call failed for agent {agent.name}"
                outcome.iterations = iteration + 1
                return outcome

            step = parse_llm_output(response.content)
            kind = classify_step(step)

            if kind == A.FINAL_ANSWER:
                self._agent(agent, task, A.FINAL_ANSWER, "Final answer ready",
                            iteration=iteration, final_answer=step.final_answer)
                self._agent(agent, task, A.ITERATION_END,
                            f"Iteration {iteration + 1} ended", iteration=iteration)
                self._agent(agent, task, A.TASK_COMPLETED, "Task completed",
                            iteration=iteration)
                outcome.completed = True
                outcome.result = step.final_answer
                outcome.iterations = iteration + 1
                return outcome

            if kind in _RECOVERABLE:
                feedback = self._recoverable_feedback(agent, task, kind, step, iteration)
            else:
                feedback, block = await self._execute_action(agent, task, step, iteration)
                if block is not None:
                    self._agent(agent, task, A.ITERATION_END,
                                f"Iteration {iteration + 1} ended", iteration=iteration)
                    self._agent(agent, task, A.DECIDED_TO_BLOCK_TASK,
                                f"Agent decided to block the task: {block.reason}",
                                iteration=iteration, reason=block.reason)
                    outcome.blocked_reason = block.reason
                    outcome.iterations = iteration + 1
                    return outcome

            self._agent(agent, task, A.ITERATION_END,
                        f"Iteration {iteration + 1} ended", iteration=iteration)
            messages.append({"role": "user", "content": feedback})
            outcome.iterations = iteration + 1

        return await self._max_iterations_reached(agent, task, provider, messages, outcome)

    # ── Messages ─────────────────────────────────────────────

    def _initial_messages(self, agent, task, context: str) -> List[Dict[str, str]]:
        messages = [
            {"role": "system", "content": prompts.build_system_message(agent)},
            {"role": "user", "content": prompts.build_initial_message(agent, task, context)},
        ]
        pending = task.pending_feedback()
        if pending:
            if task.result is not None:
                messages.append({
                    "role": "assistant",
                    "content": json.dumps({"finalAnswer": task.result}, default=str),
                })
            messages.append({
                "role": "user",
                "content": prompts.work_on_feedback(f.content for f in pending),
            })
            task.mark_feedback_processed()
        return messages

    def _absorb_live_feedback(self, agent, task, messages) -> None:
        if task.status != TaskStatus.REVISE:
            return
        pending = task.pending_feedback()
        self.status.transition(
            Entity.TASK, task.id, task.status, TaskStatus.DOING,
            {"description": "Picked up feedback while running",
             "feedback_count": len(pending), "mid_attempt": True},
            subjects={"task": task, "agent": agent},
        )
        task.status = TaskStatus.DOING
        if pending:
            messages.append({
                "role": "user",
                "content": prompts.work_on_feedback(f.content for f in pending),
            })
            task.mark_feedback_processed()

    # ── Thinking ─────────────────────────────────────────────

    async def _think(self, agent, task, provider, messages, iteration: int):
        self._agent(agent, task, A.THINKING, "Thinking", iteration=iteration)
        config = agent.llm_config
        started = time.monotonic()
        try:
            response = await provider.invoke(list(messages), config)
        except Exception as e:
            _log.warning("Agent %s: LLM call failed: %s", agent.name, e)
            self._metric(MetricDomain.LLM, MetricType.ERROR, 1,
                         agent=agent.name, model=config.model)
            self._agent(agent, task, A.THINKING_ERROR, f"LLM call failed: {e}",
                        iteration=iteration, error=str(e))
            self._agent(agent, task, A.AGENTIC_LOOP_ERROR, "Agentic loop aborted",
                        iteration=iteration, error=str(e))
            return None

        latency = response.latency or (time.monotonic() - started)
        model = response.model or config.pricing_key
        usage = {"input_tokens": response.input_tokens,
                 "output_tokens": response.output_tokens}
        self._agent(agent, task, A.THINKING_END, "Thinking finished",
                    iteration=iteration, output=response.content,
                    llm_usage=usage, latency=latency, model=model)
        self._metric(MetricDomain.LLM, MetricType.USAGE,
                     usage["input_tokens"] + usage["output_tokens"],
                     agent=agent.name, model=model, **usage)
        self._metric(MetricDomain.LLM, MetricType.LATENCY, latency,
                     agent=agent.name, model=model)
        messages.append({"role": "assistant", "content": response.content or ""})
        return response

    # ── Step handling ────────────────────────────────────────

    def _recoverable_feedback(self, agent, task, kind: AgentStatus,
                              step: Optional[AgentStep], iteration: int) -> str:
        if kind == A.ISSUES_PARSING_LLM_OUTPUT:
            self._metric(MetricDomain.AGENT, MetricType.ERROR, 1,
                         agent=agent.name, kind="parsing")
            self._agent(agent, task, kind, "Could not parse LLM output",
                        iteration=iteration)
            return prompts.INVALID_JSON_FEEDBACK

        if kind == A.WEIRD_LLM_OUTPUT:
            self._metric(MetricDomain.AGENT, MetricType.ERROR, 1,
                         agent=agent.name, kind="weird_output")
            self._agent(agent, task, kind, "LLM output did not follow the protocol",
                        iteration=iteration, output=step.to_dict())
            return prompts.WEIRD_OUTPUT_FEEDBACK

        if kind == A.OBSERVATION:
            self._agent(agent, task, kind, "Observation", iteration=iteration,
                        output=step.to_dict())
            return prompts.OBSERVATION_FEEDBACK

        question = _as_question(step.action_input)
        if kind == A.SELF_QUESTION:
            self._agent(agent, task, kind, "Self question", iteration=iteration,
                        output=step.to_dict())
            return prompts.self_question_feedback(question)

        self._agent(agent, task, A.THOUGHT, "Thought", iteration=iteration,
                    output=step.to_dict())
        return prompts.thought_feedback(step.thought, question)

    async def _execute_action(self, agent, task, step: AgentStep, iteration: int):
        """Run the selected tool. Returns (feedback, block_request_or_None)."""
        self._agent(agent, task, A.EXECUTING_ACTION, f"Executing action {step.action}",
                    iteration=iteration, action=step.action, action_input=step.action_input)

        selected = find_tool(agent.tools, step.action)
        if selected is None:
            self._metric(MetricDomain.AGENT, MetricType.ERROR, 1,
                         agent=agent.name, kind="tool_not_found", tool=step.action)
            self._agent(agent, task, A.TOOL_DOES_NOT_EXIST,
                        f"Tool {step.action!r} does not exist",
                        iteration=iteration, tool=step.action)
            return prompts.tool_not_exist_feedback(step.action, agent.tool_names), None

        self._agent(agent, task, A.USING_TOOL, f"Using tool {selected.name}",
                    iteration=iteration, tool=selected.name, tool_input=step.action_input)
        started = time.monotonic()
        try:
            result = await selected.invoke(step.action_input)
        except Exception as e:
            _log.info("Agent %s: tool %s failed: %s", agent.name, selected.name, e)
            self._metric(MetricDomain.AGENT, MetricType.ERROR, 1,
                         agent=agent.name, kind="tool_error", tool=selected.name)
            self._agent(agent, task, A.USING_TOOL_ERROR, f"Tool {selected.name} failed",
                        iteration=iteration, tool=selected.name, error=str(e))
            return prompts.tool_error_feedback(selected.name, e), None

        self._metric(MetricDomain.AGENT, MetricType.LATENCY, time.monotonic() - started,
                     agent=agent.name, tool=selected.name)
        if isinstance(result, BlockTaskRequest):
            self._agent(agent, task, A.USING_TOOL_END, f"Tool {selected.name} finished",
                        iteration=iteration, tool=selected.name, reason=result.reason)
            return "", result

        self._agent(agent, task, A.USING_TOOL_END, f"Tool {selected.name} finished",
                    iteration=iteration, tool=selected.name, output=result)
        return prompts.tool_result_feedback(result), None

    # ── Iteration cap ────────────────────────────────────────

    async def _max_iterations_reached(self, agent, task, provider, messages,
                                      outcome: LoopOutcome) -> LoopOutcome:
        self._metric(MetricDomain.AGENT, MetricType.ERROR, 1,
                     agent=agent.name, kind="max_iterations")
        self._agent(agent, task, A.MAX_ITERATIONS_ERROR,
                    f"Reached max iterations ({agent.max_iterations})",
                    iteration=outcome.iterations, max_iterations=agent.max_iterations)

        message = (f"Agent {agent.name} reached the maximum of "
                   f"{agent.max_iterations} iterations without a final answer")
        if not agent.force_final_answer:
            outcome.error = message
            return outcome

        messages.append({"role": "user", "content": prompts.FORCE_FINAL_ANSWER_FEEDBACK})
        response = await self._think(agent, task, provider, messages, outcome.iterations)
        if response is None:
            outcome.error = message
            return outcome

        step = parse_llm_output(response.content)
        if classify_step(step) != A.FINAL_ANSWER:
            self._agent(agent, task, A.AGENTIC_LOOP_ERROR,
                        "No final answer after the forced final-answer prompt",
                        iteration=outcome.iterations)
            outcome.error = message
            return outcome

        self._agent(agent, task, A.FINAL_ANSWER, "Forced final answer",
                    iteration=outcome.iterations, final_answer=step.final_answer, forced=True)
        self._agent(agent, task, A.TASK_COMPLETED, "Task completed (forced)",
                    iteration=outcome.iterations)
        outcome.completed = True
        outcome.forced = True
        outcome.result = step.final_answer
        return outcome

    # ── Helpers ──────────────────────────────────────────────

    def _agent(self, agent, task, target: AgentStatus, description: str, **metadata) -> None:
        self.status.transition(
            Entity.AGENT, agent.id, agent.status, target,
            {"description": description, **metadata},
            subjects={"task": task, "agent": agent},
        )
        agent.status = target

    def _metric(self, domain, metric_type, value, **metadata) -> None:
        if self.metrics is not None:
            self.metrics.collect(domain, metric_type, value, metadata)


def _as_question(action_input: Any) -> Optional[str]:
    if action_input is None:
        return None
    if isinstance(action_input, str):
        return action_input
    if isinstance(action_input, dict) and len(action_input) == 1:
        return str(next(iter(action_input.values())))
    return json.dumps(action_input, default=str)

"""Agent System Prompt — phase-scoped behavioral contract for the trading agent.

Invariants:
    - build_system_prompt(phase, plan) returns only the current phase's pipeline
    - The tool order shown to the model is rendered from the WorkflowPlan, so the
      prompt and the loop's next-tool computation can never disagree
    - Tool names are shown in their model-facing form (dots encoded as "__")

Design Decisions:
    - XML tags around sections for reliable parsing
    - The prompt is advisory only: ordering and arguments are enforced by the host
"""

from tradepilot.core.domain_types import Phase
from tradepilot.core.tool_descriptor import to_api_name
from tradepilot.core.workflow_plan import WorkflowPlan

IDENTITY = "You are TradePilot, a disciplined trading workflow operator."

MISSION = """\
<mission>
Carry out one trading workflow step at a time by calling the provided tools. \
The host fills in every identifier and numeric input it already knows; you \
choose the tool, it supplies the data.
</mission>"""

TOOL_RULES = """\
<tool_rules>
- Call exactly ONE tool per turn and wait for its result.
- Never write code, pseudo-code or function-call syntax in plain text.
- Never describe the call you are about to make: make it.
- If a tool returns an ERROR, follow the instruction in the error message.
- Call tools with empty parameters {} unless a parameter is listed as required \
and is not filled in automatically.
</tool_rules>"""

OUTPUT_GUIDANCE = """\
<output_guidance>
When the final tool of the phase has returned, reply with a short plain-text \
summary of its result (3 to 6 lines). No markdown tables, no code.
</output_guidance>"""

_PHASE_GOALS: dict[Phase, str] = {
    Phase.ANALYSIS: (
        "Analyse the instrument named in the task and obtain a trade "
        "recommendation (BUY plan or NO_TRADE)."
    ),
    Phase.VALIDATION: (
        "Check funds and open positions, then size the recommended plan into an "
        "executable plan."
    ),
    Phase.EXECUTION: (
        "Place the single approved order. Do not modify any value of the plan."
    ),
}


def render_pipeline(plan: WorkflowPlan) -> str:
    lines = []
    for index, step in enumerate(plan.steps, start=1):
        line = f"{index}. {to_api_name(step.tool)}"
        if step.args:
            fixed = ", ".join(f"{k}={v!r}" for k, v in step.args.items())
            line += f" ({fixed})"
        lines.append(line)
    for edge in plan.skip_edges:
        lines.append(f"Skip rule: {edge.reason} The host will tell you what to skip.")
    return "\n".join(lines)


def build_system_prompt(phase: Phase, plan: WorkflowPlan) -> str:
    """Build the system prompt for one LLM phase."""
    goal = _PHASE_GOALS.get(phase, "")
    pipeline = (
        f"<pipeline phase=\"{phase.value}\">\n{goal}\n\n"
        f"Required tool order:\n{render_pipeline(plan)}\n</pipeline>"
    )
    return "\n\n".join([IDENTITY, MISSION, pipeline, TOOL_RULES, OUTPUT_GUIDANCE])

"""Prompt builders for the agentic review."""

from review_forge.config import RepoConfig
from review_forge.models import LineType, ParsedFile

_PREFIX = {LineType.ADD: "+", LineType.DEL: "-", LineType.CONTEXT: " "}


def build_system_prompt(
    config: RepoConfig,
    learning_enabled: bool,
    learning_context: str | None = None,
) -> str:
    """System prompt for the tool-use review loop."""
    focus_areas = ", ".join(config.llm.focus_areas)

    prompt = f"""You are an expert code reviewer for pull requests.

## Your Task
Review the provided PR diff and identify meaningful issues. Analyze both individual files and cross-file interactions in a single pass.

## What to Assess
1. **Code quality**: Is the code clean, readable, well-structured?
2. **Design patterns**: Are appropriate patterns used? Any anti-patterns?
3. **Bugs & correctness**: Logic errors, off-by-one, null safety, edge cases?
4. **Security**: Hardcoded secrets, injection risks, auth issues?
5. **Performance**: Unnecessary allocations, N+1 patterns, missing memoization?
6. **Cross-file consistency**: Do changes across files stay consistent? Breaking interfaces? Missing updates?

Focus on: {focus_areas}"""

    if learning_enabled:
        prompt += """

## Knowledge Base Tools
You have access to tools that query this repository's review history:
- **search_past_reviews**: How similar code was reviewed before. Avoid repeating dismissed feedback.
- **get_file_history**: Recurring issues in a file and whether they were accepted.
- **get_concept_stats**: Which kinds of feedback are well-received vs frequently dismissed in this repo.

**Tool usage guidance:**
- You don't need to call tools for every file. Use them when something is worth checking.
- 1-3 tool calls is typical. Don't over-query.
- If the diff is straightforward, skip tools and go straight to submit_review."""

    if learning_context:
        prompt += f"\n\n{learning_context}"

    prompt += """

## Guidelines
- Be concise and specific. Reference line numbers.
- Only comment on issues that matter. Don't nitpick style unless it impacts readability.
- For each finding, explain WHY it's a problem, not just WHAT is wrong.
- Suggest fixes when possible.
- Severity levels: "error" = must fix, "warning" = should fix, "info" = suggestion

## Selectivity
Be selective. Only report issues with confidence >= 0.6. Prefer fewer, higher-quality comments over many low-value ones. Don't flag TODO/FIXME comments; those are handled by rules.

## Completing the Review
When you're done, call the **submit_review** tool with your summary and comments. This is the ONLY way to deliver your review. Every review must end with a submit_review call.

Rules:
- "path" must be the file path exactly as shown in the diff
- "line" is the line number in the NEW version of the file
- Only comment on ADDED or MODIFIED lines
- If no issues are found, submit with an empty comments array"""

    if config.llm.custom_instructions:
        prompt += f"\n\n## Custom Instructions from Repository\n{config.llm.custom_instructions}"

    return prompt


def build_user_prompt(files: list[ParsedFile]) -> str:
    """Render a chunk's files as numbered diffs."""
    parts = ["Review the following PR changes:\n"]

    for file in files:
        parts.append(f"### {file.filename} ({file.status.value})")
        parts.append("```diff")
        for hunk in file.hunks:
            parts.append(hunk.header)
            for line in hunk.lines:
                number = line.old_line if line.type == LineType.DEL else line.new_line
                parts.append(f"{_PREFIX[line.type]}L{number}: {line.content}")
        parts.append("```\n")

    return "\n".join(parts)

"""Prompt templates shared by the goal runner and its helpers."""

from __future__ import annotations

from typing import Sequence

DONE_SENTINEL = "DONE"
CONTINUE_NUDGE = "Continue"


def render_free_form_prompt(tools_list: str, goal: str) -> str:
    """System prompt for free-form mode: catalog, goal, TOOL_CALL format."""
    return (
        "You are an AI agent that can use tools to accomplish tasks.\n\n"
        f"{tools_list}\n"
        f"User goal: {goal}\n\n"
        "To use a tool, respond with EXACTLY this format:\n"
        "TOOL_CALL: tool_name\n"
        'ARGS: {"param1": "value1", "param2": "value2"}\n\n'
        "After the tool executes, you'll see the result and can call another tool or provide a final answer.\n"
        f"Type {DONE_SENTINEL} only when you have completed the task."
    )


def render_tool_feedback(tool_name: str, result: str, limit: int) -> str:
    """One history line describing a tool result, clipped to ``limit`` chars."""
    if len(result) > limit:
        return f"Tool {tool_name} returned (truncated to {limit} chars): {result[:limit]}...\n"
    return f"Tool {tool_name} returned: {result}\n"


def render_table_task_prompt(tools_list: str, schema_description: str, goal: str) -> str:
    """First-turn prompt for table mode: strict single-JSON-object tool calls."""
    return (
        "You are a tool-calling agent. You MUST respond with ONLY a tool call, nothing else.\n\n"
        f"{tools_list}\n\n"
        "TARGET DATA SCHEMA:\n"
        "You need to collect data that will populate a table with these columns:\n"
        f"{schema_description}\n"
        "Make sure to search for properties/items that have information matching these columns.\n\n"
        "IMPORTANT RULES:\n"
        "1. Your response must be ONLY in this EXACT JSON format:\n"
        '   {"tool": "tool_name", "args": {"param1": "value1", "param2": 123}}\n'
        "2. Do NOT include explanations, reasoning, or any other text\n"
        "3. Do NOT use markdown code blocks or backticks\n"
        "4. ONLY use the exact parameter names shown in the tool signatures above\n"
        '5. Use proper JSON: keys in "quotes", boolean as true/false (lowercase), strings in "quotes"\n'
        "6. You can make MULTIPLE tool calls across iterations to gather detailed data\n"
        f"7. Type {DONE_SENTINEL} only when you have retrieved sufficient detailed information\n\n"
        "CRITICAL: Extract actual values from previous tool responses\n"
        'CORRECT: {"args": {"name": "sqlite-agent"}}   (literal value from response)\n'
        'WRONG:   {"args": {"name": "{{items[0].name}}"}}  (template syntax - will fail!)\n'
        'WRONG:   {"args": {"name": "<name-from-search>"}} (placeholder - will fail!)\n'
        "When you receive tool responses, read the actual values and use them directly.\n\n"
        f"Task: {goal}\n\n"
        "Respond with ONLY the JSON tool call:"
    )


def render_template_rejection(args: str) -> str:
    return f"ERROR: Tool args contain invalid template syntax: {args[:200]}\n"


def render_extraction_prompt(schema_description: str, history: str) -> str:
    """Single request turning the collected history into a JSON array of rows."""
    return (
        "Extract structured data from the following information and format it as a JSON array.\n\n"
        f"{schema_description}\n\n"
        "IMPORTANT:\n"
        "- Return ONLY a JSON array of objects\n"
        "- Each object must have these EXACT keys (matching column names):\n"
        f"{schema_description}\n"
        "- Extract ALL available data that matches the schema\n"
        "- Use null for missing values\n"
        "- Do NOT include the 'embedding' column if present\n\n"
        "CRITICAL ID EXTRACTION RULE:\n"
        "If the schema has an 'id' column, look in the JSON data for fields like:\n"
        '- "id", "listing_id", "property_id", "item_id", etc.\n'
        "Extract the ACTUAL numeric/string ID value from the source data.\n"
        'Example: if you see {"id": 123456789, "title": "Rome Apartment"}, use 123456789\n'
        "NEVER use 0, 1, 2, 3 as IDs - use the real IDs from the data!\n\n"
        f"Data to extract:\n{history}\n\n"
        "Return ONLY the JSON array:"
    )


def render_embedding_mapping_prompt(candidates: Sequence[str], embedding_column: str) -> str:
    """Ask which text columns should feed ``embedding_column``."""
    return (
        f"Table has columns: {', '.join(candidates)}\n\n"
        f"For the '{embedding_column}' embedding column, which source columns should be embedded together?\n"
        "Return ONLY comma-separated column names, no explanation.\n"
        "Example: title, description\n\n"
        "Relevant columns: "
    )


__all__ = [
    "CONTINUE_NUDGE",
    "DONE_SENTINEL",
    "render_embedding_mapping_prompt",
    "render_extraction_prompt",
    "render_free_form_prompt",
    "render_table_task_prompt",
    "render_template_rejection",
    "render_tool_feedback",
]

import json
import os
import re
from pathlib import Path
from typing import Any, Dict, Optional

from core.logger import get_logger

logger = get_logger("utils")

# Prompt template directory
PROMPTS_DIR = Path(__file__).parent.parent / "config" / "prompts"

_PLACEHOLDER = re.compile(r"\{(\w+)\}")
_TRAILING_COMMA = re.compile(r",\s*([}\]])")


def load_prompt(name: str, variables: Optional[Dict[str, Any]] = None) -> str:
    """
    Load a prompt template, with sub-directories and variable injection.

    Args:
        name: prompt name, sub-directories allowed (e.g. "plan/create")
        variables: values substituted for ``{var}`` placeholders

    Returns:
        Rendered prompt, or "" when the template does not exist

    Example:
        load_prompt("plan_create", {"time_horizon_days": 30})
    """
    prompt_path = PROMPTS_DIR / f"{name.replace('/', os.sep)}.md"

    if not prompt_path.exists():
        logger.warning("Prompt '%s' not found at %s", name, prompt_path)
        return ""

    template = prompt_path.read_text(encoding="utf-8")

    if variables:
        values = {key: str(value) for key, value in variables.items()}
        template = _PLACEHOLDER.sub(lambda m: values.get(m.group(1), m.group(0)), template)

    return template


def _strip_fences(content: str) -> str:
    cleaned = content.strip()
    if cleaned.startswith("```json"):
        cleaned = cleaned[7:]
    elif cleaned.startswith("```"):
        cleaned = cleaned[3:]
    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]
    return cleaned.strip()


def _balanced_object(text: str) -> Optional[str]:
    """First complete top-level {...} block, ignoring braces inside strings."""
    depth = 0
    start = -1
    in_string = False
    escaped = False
    for i, ch in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            if depth == 0:
                start = i
            depth += 1
        elif ch == "}" and depth > 0:
            depth -= 1
            if depth == 0:
                return text[start:i + 1]
    return None


def _loads(text: str) -> Optional[Any]:
    for candidate in (text, _TRAILING_COMMA.sub(r"\1", text)):
        try:
            return json.loads(candidate)
        except json.JSONDecodeError:
            continue
    return None


def parse_llm_json(content: str) -> Optional[Dict[str, Any]]:
    """
    Parse the JSON object returned by a model.

    Models often wrap JSON in markdown fences, add prose around it or leave
    trailing commas. Strategies, in order:
    1. strip fences and everything outside the outermost braces
    2. same, with trailing commas removed
    3. the first balanced {...} block

    Args:
        content: raw model output

    Returns:
        Parsed dict, or None when no strategy yields a JSON object

    Example:
        >>> parse_llm_json('```json\\n{"key": "value",}\\n```')
        {'key': 'value'}
    """
    if not content or not isinstance(content, str):
        return None

    cleaned = _strip_fences(content)
    first, last = cleaned.find("{"), cleaned.rfind("}")
    if first >= 0 and last > first:
        parsed = _loads(cleaned[first:last + 1])
        if isinstance(parsed, dict):
            return parsed

    block = _balanced_object(cleaned)
    if block is not None:
        parsed = _loads(block)
        if isinstance(parsed, dict):
            return parsed

    logger.warning("Could not parse model output as JSON. First 500 chars: %s", cleaned[:500])
    return None

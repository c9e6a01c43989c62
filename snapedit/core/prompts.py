"""Suggested editing prompts per usage context."""

from typing import List

from snapedit.core import config


def available_contexts() -> List[str]:
    return sorted(config.CONTEXT_PROMPTS)


def get_suggested_prompts(context: str) -> List[str]:
    """
    Return the base prompts followed by the prompts curated for `context`.

    Raises:
        ValueError: If `context` is not one of available_contexts().
    """
    try:
        extra = config.CONTEXT_PROMPTS[context]
    except KeyError:
        raise ValueError(
            f"Unknown prompt context '{context}'. Expected one of: {', '.join(available_contexts())}"
        ) from None
    return list(config.BASE_PROMPTS) + list(extra)

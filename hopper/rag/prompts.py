import re
from typing import List, Optional

from hopper.corpus.learning_stats import Stats
from hopper.prompts.loader import get_system_prompt, get_user_prompt

COMPONENT = "rag_answer"

PLACEHOLDER_RE = re.compile(r"<<(\w+)>>")


def _listing(items: List[str], empty: str) -> str:
    return ", ".join(items) if items else empty


def system_prompt(version: Optional[str] = None) -> str:
    return get_system_prompt(COMPONENT, version=version)


def build_prompt(
    question: str,
    context: str,
    stats: Stats,
    weak_concepts: List[str],
    version: Optional[str] = None,
) -> str:
    """Fill the tutoring template with the question, ranked context, learner stats and weak concepts. No I/O beyond the cached template.
    Placeholders are substituted in one pass over the template, so placeholder-like text in user input is left as typed."""
    template = get_user_prompt(COMPONENT, version=version)
    values = {
        "QUESTION": question,
        "CONTEXT": context,
        "DIFFICULTIES": _listing(stats.areas_of_difficulty, "None identified"),
        "PROGRESS": _listing(stats.learning_progress_summary, "No progress data available"),
        "WEAK_CONCEPTS": _listing(weak_concepts, "None specified"),
    }
    return PLACEHOLDER_RE.sub(lambda m: values.get(m.group(1), m.group(0)), template)

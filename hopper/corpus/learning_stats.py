"""
Learning statistics from a markdown study corpus: areas of difficulty and learning-progress markers.
Best-effort pattern matching over headings, bold labels, lists, percentages and scores; nothing matched means empty lists.
"""
import logging
import re
from dataclasses import dataclass, field
from typing import Iterable, List, NamedTuple, Optional, Protocol

logger = logging.getLogger(__name__)

MAX_ITEMS = 10


class Stats(NamedTuple):
    areas_of_difficulty: List[str]
    learning_progress_summary: List[str]


def _section_re(*titles: str) -> re.Pattern:
    names = "|".join(re.escape(t) for t in titles)
    return re.compile(rf"^##[ \t]*(?:{names})[^\n]*\n?([\s\S]*?)(?=^##|\Z)", re.IGNORECASE | re.MULTILINE)


def _label_re(label: str) -> re.Pattern:
    return re.compile(rf"\*\*{re.escape(label)}:\*\*[ \t]*([^\n]+)", re.IGNORECASE)


DIFFICULTY_SECTIONS = _section_re("Areas of Difficulty", "Struggling Topics", "Weak Areas")
DIFFICULTY_LABELS = [_label_re("Difficulty"), _label_re("Struggling with")]

PROGRESS_SECTIONS = _section_re("Learning Progress", "Session Summary", "Completed Topics")
PROGRESS_LABELS = [_label_re("Progress"), _label_re("Completed"), _label_re("Score")]

FLASHCARD_SECTIONS = _section_re("Generated Flashcards")
SESSION_SECTIONS = _section_re("Learning Sessions")

BULLET_RE = re.compile(r"^[ \t]*[-•*][ \t]+(.+)$", re.MULTILINE)
NUMBERED_RE = re.compile(r"^[ \t]*\d+\.[ \t]+(.+)$", re.MULTILINE)
BOLD_RE = re.compile(r"\*\*([^*\n]+)\*\*")
PERCENT_RE = re.compile(r"(\d+(?:\.\d+)?)%")
SCORE_RE = re.compile(r"score[:*\s]*(\d+(?:\.\d+)?)", re.IGNORECASE)
SESSIONS_RE = re.compile(r"(\d+)\s*(sessions?)\b", re.IGNORECASE)
QUESTION_RE = re.compile(r"\*\*Q:\*\*[ \t]*([^\n]+)")
TOPIC_RE = re.compile(r"\*\*Topic:\*\*[ \t]*([^\n]+)")
SESSION_SCORE_RE = re.compile(r"\*\*Score:\*\*[ \t]*(\d+(?:\.\d+)?)")
CONCEPT_RES = [
    re.compile(r"what is ([^?]+)", re.IGNORECASE),
    re.compile(r"define ([^?]+)", re.IGNORECASE),
    re.compile(r"explain ([^?]+)", re.IGNORECASE),
    re.compile(r"how does ([^?]+)", re.IGNORECASE),
    re.compile(r"why is ([^?]+)", re.IGNORECASE),
]

LOW_SCORE_THRESHOLD = 70.0


def _fmt_number(raw: str) -> str:
    """Render '65.0' as '65' and '72.5' as '72.5'."""
    value = float(raw)
    return str(int(value)) if value.is_integer() else str(value)


def _is_topic(text: str) -> bool:
    return 3 < len(text) < 100


def _clean(text: str) -> str:
    return text.replace("**", "").strip()


def extract_topics(text: str) -> List[str]:
    """Topics from bullet points, numbered items and bold spans (bold spans with ':' are labels, not topics)."""
    topics: List[str] = []
    for m in BULLET_RE.finditer(text):
        topics.append(_clean(m.group(1)))
    for m in NUMBERED_RE.finditer(text):
        topics.append(_clean(m.group(1)))
    for m in BOLD_RE.finditer(text):
        bold = m.group(1).strip()
        if ":" not in bold:
            topics.append(bold)
    return [t for t in topics if _is_topic(t)]


def extract_progress(text: str) -> List[str]:
    """Progress markers from percentages, score mentions and session counts."""
    progress: List[str] = []
    for m in PERCENT_RE.finditer(text):
        progress.append(f"Completion rate: {m.group(0)}")
    for m in SCORE_RE.finditer(text):
        progress.append(f"Learning score: {_fmt_number(m.group(1))}")
    for m in SESSIONS_RE.finditer(text):
        progress.append(f"Completed {m.group(1)} {m.group(2).lower()}")
    return progress


def extract_concepts(question: str) -> List[str]:
    """Concepts named by a flashcard question ('What is X?', 'Explain Y?')."""
    concepts: List[str] = []
    for pattern in CONCEPT_RES:
        for m in pattern.finditer(question):
            concept = m.group(1).strip()
            if len(concept) > 3:
                concepts.append(concept)
    return concepts


@dataclass
class _Collected:
    difficulties: List[str] = field(default_factory=list)
    progress: List[str] = field(default_factory=list)


def _flashcard_stats(text: str) -> _Collected:
    out = _Collected()
    for m in FLASHCARD_SECTIONS.finditer(text):
        section = m.group(1)
        questions = [q.strip() for q in QUESTION_RE.findall(section)]
        if questions:
            out.progress.append(f"Generated {len(questions)} flashcards")
        for q in questions:
            out.difficulties.extend(extract_concepts(q))
    return out


def _session_stats(text: str) -> _Collected:
    out = _Collected()
    for m in SESSION_SECTIONS.finditer(text):
        section = m.group(1)
        for topic in TOPIC_RE.findall(section):
            out.progress.append(f"Studied: {topic.strip()}")
        for raw in SESSION_SCORE_RE.findall(section):
            score = _fmt_number(raw)
            if float(raw) < LOW_SCORE_THRESHOLD:
                out.difficulties.append(f"Low performance area ({score}%)")
            else:
                out.progress.append(f"Good performance ({score}%)")
    return out


def dedupe(items: Iterable[str], limit: int = MAX_ITEMS) -> List[str]:
    """Trim, drop empties and exact duplicates (first occurrence wins), cap at limit."""
    seen = set()
    out: List[str] = []
    for item in items:
        s = (item or "").strip()
        if not s or s in seen:
            continue
        seen.add(s)
        out.append(s)
        if len(out) >= limit:
            break
    return out


def extract_learning_stats(text: str) -> Stats:
    """Extract up to 10 areas of difficulty and 10 learning-progress items from a study corpus.
    Why available: Lets the prompt tailor answers to what the learner struggles with. Never raises: failure yields empty Stats."""
    try:
        text = text or ""
        difficulties: List[str] = []
        progress: List[str] = []

        for m in DIFFICULTY_SECTIONS.finditer(text):
            difficulties.extend(extract_topics(m.group(1)))
        for pattern in DIFFICULTY_LABELS:
            for m in pattern.finditer(text):
                difficulties.extend(t.strip() for t in m.group(1).split(",") if _is_topic(t.strip()))

        for m in PROGRESS_SECTIONS.finditer(text):
            body = m.group(1)
            progress.extend(extract_progress(body))
            progress.extend(extract_topics(body))
        for pattern in PROGRESS_LABELS:
            for m in pattern.finditer(text):
                value = m.group(0)
                found = extract_progress(value)
                progress.extend(found or [_clean(value)])

        flashcards = _flashcard_stats(text)
        sessions = _session_stats(text)

        stats = Stats(
            areas_of_difficulty=dedupe(difficulties + flashcards.difficulties + sessions.difficulties),
            learning_progress_summary=dedupe(progress + flashcards.progress + sessions.progress),
        )
        logger.debug(
            "extracted learning stats: difficulties=%d progress=%d",
            len(stats.areas_of_difficulty),
            len(stats.learning_progress_summary),
        )
        return stats
    except Exception:
        logger.warning("learning stats extraction failed", exc_info=True)
        return Stats([], [])


class StatsExtractor(Protocol):
    def extract_stats(self, text: str) -> Stats:
        ...


class HeuristicStatsExtractor:
    """Default StatsExtractor backed by extract_learning_stats."""

    def extract_stats(self, text: str) -> Stats:
        return extract_learning_stats(text)


@dataclass
class ProcessedContext:
    context: str
    weak_concepts: List[str]
    stats: Stats


SECTION_SPLIT_RE = re.compile(r"(?=^##\s)", re.MULTILINE)


def top_sections(corpus: str, limit: int) -> str:
    """Keep the first `limit` '## ' sections of the corpus; returns it unchanged when it has no more sections than that."""
    sections = [s for s in SECTION_SPLIT_RE.split(corpus) if s.strip()]
    if limit <= 0 or len(sections) <= limit:
        return corpus
    return "\n\n".join(sections[:limit])


def process_context(
    corpus: str,
    weak_concepts: Optional[List[str]] = None,
    extractor: Optional[StatsExtractor] = None,
    section_limit: int = 0,
) -> ProcessedContext:
    """Derive learning stats from the raw corpus and pass the corpus (optionally cut to its first sections) on to retrieval.
    Why available: First orchestrator stage; failures fall back to the raw corpus and empty stats so the job keeps going."""
    weak = [w for w in (weak_concepts or []) if isinstance(w, str) and w.strip()]
    extractor = extractor or HeuristicStatsExtractor()
    try:
        stats = extractor.extract_stats(corpus)
    except Exception:
        logger.warning("stats extractor failed, continuing with empty stats", exc_info=True)
        stats = Stats([], [])
    try:
        context = top_sections(corpus, section_limit)
    except Exception:
        logger.warning("section limiting failed, keeping full corpus", exc_info=True)
        context = corpus
    return ProcessedContext(context=context, weak_concepts=weak, stats=stats)

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from hopper.core.config import settings
from hopper.core.exceptions import UpstreamModelError
from hopper.core.openai_client import get_openai_client
from hopper.utils.retry import with_retry

logger = logging.getLogger(__name__)

SECTION_SPLIT_RE = re.compile(r"(?=##\s)")
HEADING_RE = re.compile(r"##\s*([^\n]+)")
HEADING_LINE_RE = re.compile(r"##\s*[^\n]+\n?")

MAX_CITATIONS = 3
PREVIEW_CHARS = 200
MIN_PREVIEW_CHARS = 20

MAX_THEMES = 4
MIN_THEME_HITS = 3
THEME_PATTERNS = {
    "Learning and Education": re.compile(r"\b(learning|education|study|knowledge|understanding|concept|theory)\b"),
    "Problem Solving": re.compile(r"\b(problem|solution|solve|approach|method|strategy)\b"),
    "Mathematics": re.compile(r"\b(math|equation|formula|calculation|number|algebra|geometry)\b"),
    "Science": re.compile(r"\b(science|research|experiment|hypothesis|data|analysis)\b"),
    "Technology": re.compile(r"\b(technology|software|programming|computer|digital|algorithm)\b"),
    "Communication": re.compile(r"\b(communication|language|writing|speaking|presentation)\b"),
    "Critical Thinking": re.compile(r"\b(analysis|evaluate|compare|contrast|reasoning|logic)\b"),
    "Practical Application": re.compile(r"\b(application|practice|example|implementation|real.world)\b"),
}


@dataclass
class ParsedResponse:
    answer: str
    citations: List[Dict[str, Any]] = field(default_factory=list)
    themes: str = ""


def extract_citations(context: str) -> List[Dict[str, Any]]:
    """Split the context on '## ' headings and return up to 3 {title, content, section} previews.
    Sections whose preview (heading removed) has 20 characters or fewer are skipped."""
    citations: List[Dict[str, Any]] = []
    sections = [s for s in SECTION_SPLIT_RE.split(context or "") if s.strip()]
    for index, section in enumerate(sections, start=1):
        m = HEADING_RE.search(section)
        title = m.group(1).strip() if m else f"Section {index}"
        preview = HEADING_LINE_RE.sub("", section[:PREVIEW_CHARS], count=1).strip()
        if len(preview) > MIN_PREVIEW_CHARS:
            citations.append({
                "title": title,
                "content": preview + ("..." if len(section) > PREVIEW_CHARS else ""),
                "section": index,
            })
        if len(citations) >= MAX_CITATIONS:
            break
    return citations


def extract_themes(completion: str, context: str) -> str:
    """Comma-joined topical categories (at most 4, table order) with at least 3 keyword hits in completion + context."""
    combined = f"{completion} {context}".lower()
    themes = [
        theme for theme, pattern in THEME_PATTERNS.items()
        if len(pattern.findall(combined)) >= MIN_THEME_HITS
    ]
    return ", ".join(themes[:MAX_THEMES])


def parse_response(completion: str, context: str) -> ParsedResponse:
    """Turn the raw completion into answer + citations + themes. Never raises: on failure citations and themes are empty.
    Why available: Gives clients a structured result without asking the model for JSON."""
    answer = (completion or "").strip()
    try:
        return ParsedResponse(
            answer=answer,
            citations=extract_citations(context),
            themes=extract_themes(completion or "", context or ""),
        )
    except Exception:
        logger.warning("response parsing failed, returning bare answer", exc_info=True)
        return ParsedResponse(answer=answer, citations=[], themes="")


class LanguageModel:
    """Chat-completion adapter over an OpenAI-compatible API."""

    def __init__(
        self,
        model: Optional[str] = None,
        client: Any = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        retries: int = 2,
    ):
        self.model = model or settings.chat_model
        self.temperature = settings.llm_temperature if temperature is None else temperature
        self.max_tokens = max_tokens or settings.llm_max_tokens
        self._client = client
        self._retries = retries

    @property
    def is_initialized(self) -> bool:
        return self._client is not None

    def _get_client(self) -> Any:
        if self._client is None:
            self._client = get_openai_client()
            logger.info("language model client ready (model=%s)", self.model)
        return self._client

    async def complete(self, system: str, user: str) -> str:
        """Send one system + user exchange and return the completion text. Raises UpstreamModelError on failure or empty output."""
        client = self._get_client()
        try:
            resp = await with_retry(
                lambda: client.chat.completions.create(
                    model=self.model,
                    messages=[
                        {"role": "system", "content": system},
                        {"role": "user", "content": user},
                    ],
                    temperature=self.temperature,
                    max_tokens=self.max_tokens,
                ),
                retries=self._retries,
            )
        except Exception as e:
            logger.error("language model call failed: %s", e)
            raise UpstreamModelError(f"Language model error: {e}") from e

        content = resp.choices[0].message.content if resp.choices else None
        if not (content or "").strip():
            raise UpstreamModelError("No response generated from language model")
        logger.info("language model responded (%d chars)", len(content))
        return content

    async def test_connection(self) -> Dict[str, Any]:
        """Tiny completion to check the provider is reachable. Never raises."""
        try:
            client = self._get_client()
            resp = await client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": 'Respond with "Connection successful".'}],
                max_tokens=10,
                temperature=0,
            )
            text = resp.choices[0].message.content if resp.choices else None
            return {"success": True, "response": text, "model": self.model}
        except Exception as e:
            return {"success": False, "error": str(e), "model": self.model}

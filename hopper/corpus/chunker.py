import re
from dataclasses import dataclass, field
from typing import Iterator, List, Optional

# A sentence runs up to terminal punctuation followed by whitespace or end of text.
# Decimal points and abbreviations glued to the next word ("3.14", "e.g.x") do not split.
SENTENCE_RE = re.compile(r"\S[\s\S]*?(?:[.!?]+(?=\s|\Z)|\Z)")


@dataclass
class Chunk:
    """A bounded run of whole sentences from one corpus string, with its position in that string.
    Why available: Unit of retrieval for the similarity ranker; embedding is filled lazily by the ranker and reused on later calls."""

    text: str
    index: int
    source_offset: int
    length: int
    embedding: Optional[List[float]] = field(default=None, repr=False, compare=False)


@dataclass
class Sentence:
    text: str
    start: int


def split_sentences(text: str) -> List[Sentence]:
    """Split text into sentences (trimmed) with their start offsets. Empty input yields []."""
    out: List[Sentence] = []
    for m in SENTENCE_RE.finditer(text or ""):
        s = m.group(0).rstrip()
        if s:
            out.append(Sentence(text=s, start=m.start()))
    return out


def _joined_len(sentences: List[Sentence]) -> int:
    """Length of sentences joined by single spaces."""
    if not sentences:
        return 0
    return sum(len(s.text) for s in sentences) + len(sentences) - 1


def _overlap_tail(sentences: List[Sentence], overlap: int) -> List[Sentence]:
    """Trailing sentences whose joined length fits in overlap characters."""
    if overlap <= 0:
        return []
    tail: List[Sentence] = []
    for s in reversed(sentences):
        if _joined_len([s] + tail) > overlap:
            break
        tail.insert(0, s)
    return tail


def split_text_stream(text: str, max_chunk_size: int = 1000, overlap: int = 200) -> Iterator[Chunk]:
    """Streaming chunker: greedily packs whole sentences into chunks of at most max_chunk_size characters.
    When a sentence would overflow, the chunk is closed and the next one starts with the previous chunk's
    trailing sentences (up to overlap characters). A sentence longer than max_chunk_size becomes its own chunk."""
    if max_chunk_size <= 0:
        raise ValueError("max_chunk_size must be > 0")
    if overlap < 0 or overlap >= max_chunk_size:
        raise ValueError("overlap must be in [0, max_chunk_size)")

    buf: List[Sentence] = []
    chunk_index = 0

    def flush() -> Chunk:
        nonlocal chunk_index
        body = " ".join(s.text for s in buf)
        ch = Chunk(text=body, index=chunk_index, source_offset=buf[0].start, length=len(body))
        chunk_index += 1
        return ch

    for sentence in split_sentences(text):
        if buf and _joined_len(buf + [sentence]) > max_chunk_size:
            yield flush()
            buf = _overlap_tail(buf, overlap)
            # overlap must still leave room for the new sentence
            while buf and _joined_len(buf + [sentence]) > max_chunk_size:
                buf.pop(0)
        buf.append(sentence)

    if buf:
        yield flush()


def split_text(text: str, max_chunk_size: int = 1000, overlap: int = 200) -> List[Chunk]:
    """Split text into overlapping sentence-aligned chunks. Returns a list of Chunk objects.
    Why available: Non-streaming API used by get_relevant_context when the whole corpus is already in memory."""
    return list(split_text_stream(text, max_chunk_size=max_chunk_size, overlap=overlap))

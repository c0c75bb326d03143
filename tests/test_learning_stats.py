from hopper.corpus.learning_stats import (
    HeuristicStatsExtractor,
    Stats,
    dedupe,
    extract_concepts,
    extract_learning_stats,
    process_context,
    top_sections,
)

STUDY_NOTES = """## Areas of Difficulty
- Gradient descent intuition
- Choosing regularization strength

## Learning Progress
- Finished 3 sessions on supervised learning
- Quiz score: 82

## Notes
**Difficulty:** recursion, dynamic programming
"""

FLASHCARDS = """## Generated Flashcards
**Q:** What is backpropagation?
**A:** The chain rule applied layer by layer.
**Q:** Explain gradient descent?
**A:** Walking downhill on the loss surface.
"""

SESSIONS = """## Learning Sessions
**Topic:** Linear algebra
**Score:** 65
**Topic:** Probability
**Score:** 88
"""


def test_no_recognizable_structure_yields_empty_stats():
    assert extract_learning_stats("Just some plain notes about photosynthesis.") == Stats([], [])
    assert extract_learning_stats("") == Stats([], [])
    assert extract_learning_stats(None) == Stats([], [])


def test_difficulty_and_progress_sections():
    stats = extract_learning_stats(STUDY_NOTES)

    assert stats.areas_of_difficulty == [
        "Gradient descent intuition",
        "Choosing regularization strength",
        "recursion",
        "dynamic programming",
    ]
    assert "Learning score: 82" in stats.learning_progress_summary
    assert "Completed 3 sessions" in stats.learning_progress_summary
    assert "Finished 3 sessions on supervised learning" in stats.learning_progress_summary


def test_flashcards_feed_difficulties_and_progress():
    stats = extract_learning_stats(FLASHCARDS)
    assert stats.areas_of_difficulty == ["backpropagation", "gradient descent"]
    assert stats.learning_progress_summary == ["Generated 2 flashcards"]


def test_session_scores_split_on_threshold():
    stats = extract_learning_stats(SESSIONS)
    assert stats.areas_of_difficulty == ["Low performance area (65%)"]
    assert "Good performance (88%)" in stats.learning_progress_summary
    assert "Studied: Linear algebra" in stats.learning_progress_summary
    assert "Studied: Probability" in stats.learning_progress_summary


def test_lists_are_deduplicated_and_capped():
    bullets = "\n".join(f"- Topic number {i}" for i in range(15))
    text = f"## Weak Areas\n{bullets}\n- Topic number 1\n"
    stats = extract_learning_stats(text)
    assert len(stats.areas_of_difficulty) == 10
    assert len(set(stats.areas_of_difficulty)) == 10

    assert dedupe(["  a  ", "", "a", "b"], limit=5) == ["a", "b"]


def test_extract_concepts():
    assert extract_concepts("What is overfitting?") == ["overfitting"]
    assert extract_concepts("How does a CPU work?") == ["a CPU work"]
    assert extract_concepts("Why is x?") == []


def test_top_sections_limits_markdown_sections():
    corpus = "## A\nalpha\n## B\nbeta\n## C\ngamma\n"
    assert top_sections(corpus, 0) == corpus
    assert top_sections(corpus, 5) == corpus
    cut = top_sections(corpus, 2)
    assert "alpha" in cut and "beta" in cut
    assert "gamma" not in cut


def test_process_context_cleans_weak_concepts_and_extracts_stats():
    processed = process_context(STUDY_NOTES, ["algorithms", "", "  ", "data processing"])
    assert processed.context == STUDY_NOTES
    assert processed.weak_concepts == ["algorithms", "data processing"]
    assert processed.stats == HeuristicStatsExtractor().extract_stats(STUDY_NOTES)


def test_process_context_survives_a_failing_extractor():
    class Broken:
        def extract_stats(self, text):
            raise RuntimeError("parser crashed")

    processed = process_context("## Notes\nsomething", None, extractor=Broken())
    assert processed.stats == Stats([], [])
    assert processed.context == "## Notes\nsomething"
    assert processed.weak_concepts == []


def test_custom_extractor_is_used():
    class Fixed:
        def extract_stats(self, text):
            return Stats(["hard thing"], ["did a thing"])

    processed = process_context("anything", extractor=Fixed())
    assert processed.stats.areas_of_difficulty == ["hard thing"]

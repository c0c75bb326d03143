import hashlib
import json
import re
import sys
from pathlib import Path
from types import SimpleNamespace

import pytest

# Ensure repo root is on sys.path so `import hopper...` works in tests
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from hopper.core.openai_client import set_openai_client  # noqa: E402

WORD_RE = re.compile(r"[a-z0-9]+")

CANNED_ANSWER = (
    "Overfitting happens when a model learns the training data too closely, including its noise. "
    "In your notes on machine learning, regularization and cross-validation are the methods that help. "
    "As a next step, practice comparing training and validation error on a small data analysis example."
)


def bag_of_words(text: str, dim: int = 1024) -> list:
    """Deterministic hashed bag-of-words vector: texts sharing words point the same way."""
    vec = [0.0] * dim
    for word in WORD_RE.findall(text.lower()):
        slot = int(hashlib.md5(word.encode("utf-8")).hexdigest(), 16) % dim
        vec[slot] += 1.0
    return vec


class FakeEmbeddings:
    def __init__(self, dim: int = 1024):
        self.dim = dim
        self.calls = 0
        self.error = None

    async def create(self, model, input):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return SimpleNamespace(data=[SimpleNamespace(embedding=bag_of_words(t, self.dim)) for t in input])


class FakeCompletions:
    def __init__(self):
        self.reply = CANNED_ANSWER
        self.error = None
        self.calls = []

    async def create(self, model, messages, **kwargs):
        self.calls.append({"model": model, "messages": messages, **kwargs})
        if self.error is not None:
            raise self.error
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=self.reply))])


class FakeAsyncOpenAI:
    """Offline stand-in for AsyncOpenAI: embeddings.create and chat.completions.create only."""

    def __init__(self, dim: int = 1024):
        self.embeddings = FakeEmbeddings(dim)
        self.chat = SimpleNamespace(completions=FakeCompletions())

    @property
    def completions(self) -> FakeCompletions:
        return self.chat.completions

    def reset(self) -> None:
        self.embeddings.error = None
        self.embeddings.calls = 0
        self.completions.error = None
        self.completions.reply = CANNED_ANSWER
        self.completions.calls.clear()


_SHARED_FAKE = FakeAsyncOpenAI()


@pytest.fixture(scope="session", autouse=True)
def _install_fake_openai():
    set_openai_client(_SHARED_FAKE)
    yield
    set_openai_client(None)


@pytest.fixture
def fake_openai():
    """The fake installed as the shared client, reset for each test."""
    _SHARED_FAKE.reset()
    yield _SHARED_FAKE
    _SHARED_FAKE.reset()


@pytest.fixture
def ml_corpus() -> str:
    """A markdown study corpus big enough to need relevant-context extraction."""
    sections = {
        "Linear Regression": (
            "Linear regression fits a straight line to numeric data. The slope and intercept are learned "
            "by minimizing squared error. Gradient descent updates the weights step by step. "
        ),
        "Overfitting": (
            "Overfitting happens when a model memorizes training data and fails on new data. "
            "Regularization penalizes large weights to reduce overfitting. Cross-validation estimates "
            "how well a model generalizes and exposes overfitting early. "
        ),
        "Neural Networks": (
            "Neural networks stack layers of weighted sums followed by activation functions. "
            "Backpropagation computes gradients layer by layer. Deeper networks need more data. "
        ),
        "Decision Trees": (
            "Decision trees split the data on the feature that best separates the classes. "
            "Pruning removes branches that add little accuracy. Random forests average many trees. "
        ),
        "Clustering": (
            "Clustering groups similar points without labels. K-means assigns each point to the "
            "nearest centroid and recomputes centroids until they stop moving. "
        ),
    }
    parts = [f"## {title}\n" + body * 6 for title, body in sections.items()]
    parts.append(
        "## Areas of Difficulty\n- Gradient descent intuition\n- Choosing regularization strength\n"
    )
    parts.append("## Learning Progress\n- Finished 3 sessions on supervised learning\n- Quiz score: 82\n")
    return "\n\n".join(parts)


def pretty_json(obj) -> str:
    return json.dumps(obj, indent=2, ensure_ascii=False, sort_keys=True)


@pytest.hookimpl(hookwrapper=True)
def pytest_runtest_makereport(item, call):
    """
    Attach request/response payloads into pytest-html report.

    In tests, store payloads like:
      item._api_logs = [{"title": "...", "request": {...}, "response": {...}}, ...]
    """
    outcome = yield
    rep = outcome.get_result()

    if rep.when != "call":
        return

    api_logs = getattr(item, "_api_logs", None)
    if not api_logs:
        return

    # Only attach if pytest-html is installed/enabled
    extras = getattr(rep, "extras", [])

    try:
        from pytest_html import extras as html_extras
    except ImportError:
        rep.extras = extras
        return

    for entry in api_logs:
        title = entry.get("title", "API Call")
        html = f"""
        <div style="font-family: ui-monospace, Menlo, Consolas, monospace;">
          <h4 style="margin:8px 0;">{title}</h4>
          <details style="margin:6px 0;">
            <summary><b>Request</b></summary>
            <pre style="background:#0b1020;color:#cfe3ff;padding:10px;border-radius:8px;overflow:auto;">{pretty_json(entry.get("request", {}))}</pre>
          </details>
          <details style="margin:6px 0;">
            <summary><b>Response</b></summary>
            <pre style="background:#0b1020;color:#cfe3ff;padding:10px;border-radius:8px;overflow:auto;">{pretty_json(entry.get("response", {}))}</pre>
          </details>
        </div>
        """
        extras.append(html_extras.html(html))

    rep.extras = extras

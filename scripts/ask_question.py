#!/usr/bin/env python3
"""Ask a question against a markdown study corpus through a running API and print the answer.
Run from repo root: python scripts/ask_question.py "What is overfitting?" notes.md"""
import argparse
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(REPO_ROOT))

from hopper.client import HopperClient
from hopper.core.exceptions import HopperError


def main():
    """Submit the question, show progress while polling, print answer, citations and themes."""
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("question")
    parser.add_argument("corpus", type=Path, help="Markdown file with the learner's study material")
    parser.add_argument("--weak", action="append", default=[], help="Weak concept (repeatable)")
    parser.add_argument("--url", default="http://localhost:8000")
    parser.add_argument("--attempts", type=int, default=300)
    parser.add_argument("--interval", type=float, default=1.0)
    args = parser.parse_args()

    client = HopperClient(args.url)

    def show(status):
        print(f"  [{status.get('progress', 0):>3}%] {status.get('message', '')}", file=sys.stderr)

    try:
        result = client.ask_and_wait(
            args.question,
            args.corpus.read_text(encoding="utf-8"),
            args.weak,
            max_attempts=args.attempts,
            interval=args.interval,
            on_progress=show,
        )
    except HopperError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1

    print(result["answer"])
    print("")
    for c in result.get("citations", []):
        print(f"  [{c['section']}] {c['title']}")
    if result.get("themes"):
        print(f"Themes: {result['themes']}")
    print(f"({result.get('processingTime')} ms, model {result.get('model')})")
    return 0


if __name__ == "__main__":
    sys.exit(main())

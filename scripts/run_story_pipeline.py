"""
CLI example to run the complete DrawTale pipeline end-to-end.

Usage:
    python scripts/run_story_pipeline.py \
        --request drawing_request.yaml \
        --output drawtale_package.yaml
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Any, Dict

from tqdm.auto import tqdm

# Ensure project root is on the Python path when running as a script.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from drawtale import DrawTaleOrchestrator
from drawtale.common import RetryPolicy
from drawtale.illustration import lint_visual_prompt


class ProgressTracker:
    """
    Provides user-friendly command-line progress updates for the DrawTale pipeline.
    """

    def __init__(self) -> None:
        self._scene_bar: tqdm | None = None

    def __call__(self, stage: str, payload: Dict[str, Any]) -> None:
        match stage:
            case "request:parsing":
                source = payload.get("source")
                self._write(
                    "[1/5] Loading drawing request"
                    + (f" from {source!s}..." if source else "...")
                )
            case "outline:generating":
                age = payload.get("child_age")
                pages = payload.get("page_count")
                self._write(f"[2/5] Generating a {pages}-page outline for a {age}-year-old...")
            case "outline:ready":
                character = payload.get("character", "the hero")
                theme = payload.get("theme") or ""
                self._write(f"[2/5] Outline ready: {character} ({theme}).")
            case "identity:ready":
                total = payload.get("total_pages")
                seed = payload.get("seed")
                self._write(f"[3/5] Character identity locked (seed {seed}). Writing scenes...")
                self._scene_bar = tqdm(total=total, desc="Scenes", unit="page")
            case "scene:ready":
                if self._scene_bar is not None:
                    if payload.get("degraded"):
                        self._scene_bar.set_description(f"Page {payload.get('page_number')} degraded")
                    self._scene_bar.update(1)
            case "consistency:scored":
                self.close()
                verdict = "consistent" if payload.get("is_consistent") else "needs review"
                self._write(f"[4/5] Consistency score {payload.get('score')} ({verdict}).")
            case "pipeline:complete":
                self._write(f"[5/5] Pipeline complete: {payload.get('title')}.")
                self.close()

    def close(self) -> None:
        if self._scene_bar is not None:
            self._scene_bar.close()
            self._scene_bar = None

    @staticmethod
    def _write(message: str) -> None:
        tqdm.write(message)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the full DrawTale story pipeline.")
    parser.add_argument(
        "--request",
        required=True,
        help="Path to the drawing request YAML/JSON file (with an 'analysis' block).",
    )
    parser.add_argument(
        "--output",
        default="drawtale_package.yaml",
        help="Output YAML file to store the outline, pages and consistency report.",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Abort the request after this many seconds.",
    )
    parser.add_argument(
        "--retry-attempts",
        type=int,
        default=None,
        help="Override the number of attempts per completion call.",
    )
    parser.add_argument(
        "--budget-attempts",
        type=int,
        default=1,
        help="Extra scene attempts when a page misses its word budget.",
    )
    parser.add_argument(
        "--regenerate-page",
        type=int,
        action="append",
        default=[],
        help="Regenerate the given page after the first pass (repeatable).",
    )
    parser.add_argument(
        "--lint",
        action="store_true",
        help="Print the prompt lint report for every page.",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Show stage log lines.",
    )
    return parser.parse_args()


async def run(args: argparse.Namespace) -> int:
    retry_policy = None
    if args.retry_attempts is not None:
        retry_policy = RetryPolicy.from_env()
        retry_policy = RetryPolicy(
            max_attempts=args.retry_attempts,
            base_delay=retry_policy.base_delay,
            max_delay=retry_policy.max_delay,
        )

    orchestrator = DrawTaleOrchestrator(
        retry_policy=retry_policy,
        budget_attempts=args.budget_attempts,
    )
    tracker = ProgressTracker()

    try:
        package = await orchestrator.run_from_request_file(
            Path(args.request),
            progress_callback=tracker,
            timeout=args.timeout,
        )
        for page_number in args.regenerate_page:
            package = await orchestrator.regenerate_page(
                package,
                page_number,
                progress_callback=tracker,
            )
    finally:
        tracker.close()

    if package.notices:
        tqdm.write("Degraded stages:")
        for notice in package.notices:
            tqdm.write(f"  - page {notice.page_number} ({notice.stage}): {notice.detail}")

    if args.lint:
        anchor = package.identity.anchor_prompt
        for page in package.pages:
            report = lint_visual_prompt(page.visual_prompt, anchor_prompt=anchor)
            tqdm.write(f"Page {page.page_number} prompt score {report.score}")
            for issue in report.issues:
                tqdm.write(f"    {issue}")

    output_path = Path(args.output)
    output_path.write_text(package.to_yaml(), encoding="utf-8")
    print(f"Saved story package to {output_path}")
    return 0


def main() -> int:
    args = parse_args()
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return asyncio.run(run(args))


if __name__ == "__main__":
    raise SystemExit(main())

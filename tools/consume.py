"""Consume fixtures and validate against Python specs."""

from __future__ import annotations

import json
import logging
from pathlib import Path
import sys

import click

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT / "src"))
sys.path.insert(0, str(ROOT / "tools"))

from cwc_spec.state_digest import compute_state_digest  # noqa: E402
from cwc_spec.state_transition import apply_block, apply_call  # noqa: E402
from fixtures_io import call_from_json, state_from_json, state_to_json  # noqa: E402

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
)
logger = logging.getLogger(__name__)


def _run_case(case: dict):
    pre_state = state_from_json(case["pre_state"])
    if "block" in case:
        block = case["block"]
        calls = [call_from_json(c) for c in block["calls"]]
        return apply_block(pre_state, calls, block.get("timestamp"))
    return apply_call(pre_state, call_from_json(case["call"]))


def _check_transition_cases(path: Path) -> list[str]:
    failures: list[str] = []
    data = json.loads(path.read_text())

    for case in data.get("cases", []):
        post_state, result = _run_case(case)

        expected = case["expected"]
        if result.ok != expected["ok"]:
            failures.append(f"{case['name']}: ok_mismatch")
            continue

        actual_err = result.error.code.name if result.error else None
        if actual_err != expected["error"]:
            failures.append(f"{case['name']}: error_mismatch")
            continue

        actual_digest = compute_state_digest(state_to_json(post_state))
        if actual_digest != expected["state_digest"]:
            failures.append(f"{case['name']}: state_digest_mismatch")

    return failures


def _check_vectors(path: Path) -> list[str]:
    failures: list[str] = []
    data = json.loads(path.read_text())
    for vec in data.get("test_vectors", []):
        if "post_state" in vec and "state_digest" in vec:
            if compute_state_digest(vec["post_state"]) != vec["state_digest"]:
                failures.append(f"{vec['name']}: state_digest_mismatch")
    return failures


@click.command()
@click.option(
    "--fixtures",
    default=str(ROOT / "fixtures"),
    show_default=True,
    help="Directory of generated fixtures",
)
def main(fixtures: str) -> None:
    """Replay every fixture file and compare results."""
    failures: list[str] = []
    files = sorted(Path(fixtures).rglob("*.json"))
    for path in files:
        data = json.loads(path.read_text())
        if "cases" in data:
            failures.extend(_check_transition_cases(path))
        elif "test_vectors" in data:
            failures.extend(_check_vectors(path))

    if failures:
        for f in failures:
            logger.error("FAIL %s", f)
        raise SystemExit(1)

    logger.info("All fixtures passed (%d files)", len(files))


if __name__ == "__main__":
    main()

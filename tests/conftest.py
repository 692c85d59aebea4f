"""Pytest hooks to generate fixtures (EEST-style)."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Callable, Optional, Union

import pytest

from cwc_spec.state_digest import compute_state_digest
from cwc_spec.state_transition import TransitionResult, apply_block, apply_call
from cwc_spec.types import Call, ChainState
from tools.fixtures_io import call_to_json, state_to_json

logger = logging.getLogger(__name__)

_TRANSITION_CASES: dict[str, list[dict[str, Any]]] = {}
_VECTOR_CASES: dict[str, list[dict[str, Any]]] = {}


def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--output",
        action="store",
        default=None,
        help="Output directory for generated fixtures",
    )


@pytest.fixture
def transition_test_group() -> Callable[..., tuple[ChainState, TransitionResult]]:
    """Run a call (or a block of calls) and record it under a fixture path.

    A single ``Call`` goes through ``apply_call``; a list goes through
    ``apply_block`` with the optional ``timestamp``. The post-state and
    result are returned so tests can assert on them.
    """

    def _transition_test_group(
        rel_path: str,
        name: str,
        pre_state: ChainState,
        calls: Union[Call, list[Call]],
        timestamp: Optional[int] = None,
    ) -> tuple[ChainState, TransitionResult]:
        case: dict[str, Any] = {"name": name, "pre_state": state_to_json(pre_state)}
        if isinstance(calls, Call):
            post_state, result = apply_call(pre_state, calls)
            case["call"] = call_to_json(calls)
        else:
            post_state, result = apply_block(pre_state, calls, timestamp)
            case["block"] = {"timestamp": timestamp, "calls": [call_to_json(c) for c in calls]}

        post_json = state_to_json(post_state)
        case["expected"] = {
            "ok": result.ok,
            "error": result.error.code.name if result.error else None,
            "post_state": post_json,
            "state_digest": compute_state_digest(post_json),
        }
        _TRANSITION_CASES.setdefault(rel_path, []).append(case)
        return post_state, result

    return _transition_test_group


@pytest.fixture
def vector_test_group() -> Callable[[str, dict[str, Any]], None]:
    """Collect pre-built test_vectors under a specific fixture path."""

    def _vector_test_group(rel_path: str, vector: dict[str, Any]) -> None:
        _VECTOR_CASES.setdefault(rel_path, []).append(vector)

    return _vector_test_group


def pytest_sessionfinish(session: pytest.Session, exitstatus: int) -> None:
    output_dir = session.config.getoption("--output")
    if not output_dir:
        return

    out = Path(output_dir)
    out.mkdir(parents=True, exist_ok=True)

    for rel_path, cases in _TRANSITION_CASES.items():
        if not cases:
            continue
        target = out / rel_path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(json.dumps({"cases": cases}, indent=2))

    for rel_path, vectors in _VECTOR_CASES.items():
        if not vectors:
            continue
        target = out / rel_path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(json.dumps({"test_vectors": vectors}, indent=2))

    logger.info(
        "wrote %d transition files and %d vector files to %s",
        len(_TRANSITION_CASES), len(_VECTOR_CASES), out,
    )

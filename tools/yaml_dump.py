"""YAML mirrors of recorded escrow fixtures.

``fill.py --yaml`` writes a ``.yaml`` file beside every JSON fixture so the
pre/post states and calls can be read in review. The JSON file stays the
source of truth: ``consume.py`` only reads JSON, and the YAML copy loads back
to the same data.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import yaml


class FixtureDumper(yaml.SafeDumper):
    """SafeDumper that keeps fixture key order and short scalar lists inline."""


def _str_representer(dumper: yaml.SafeDumper, data: str) -> yaml.ScalarNode:
    return dumper.represent_scalar("tag:yaml.org,2002:str", data, style=None)


def _list_representer(dumper: yaml.SafeDumper, data: list) -> yaml.SequenceNode:
    # Signature lists and token ids read better on one line
    inline = all(not isinstance(item, (dict, list)) for item in data)
    return dumper.represent_sequence("tag:yaml.org,2002:seq", data, flow_style=inline)


FixtureDumper.add_representer(str, _str_representer)
FixtureDumper.add_representer(list, _list_representer)


def render_fixture(data: dict[str, Any]) -> str:
    return yaml.dump(data, Dumper=FixtureDumper, sort_keys=False, width=4096)


def mirror_fixture(json_path: Path) -> Path:
    """Write ``<name>.yaml`` next to ``json_path`` and return its path."""
    target = json_path.with_suffix(".yaml")
    target.write_text(render_fixture(json.loads(json_path.read_text())))
    return target


def mirror_fixtures(out_dir: Path) -> int:
    """Mirror every JSON fixture under ``out_dir``; returns the file count."""
    count = 0
    for path in sorted(out_dir.rglob("*.json")):
        mirror_fixture(path)
        count += 1
    return count

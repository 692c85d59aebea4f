"""Run pytest and generate fixtures (EEST-style flow)."""

from __future__ import annotations

import logging
import os
import subprocess
import sys
from pathlib import Path

import click

from yaml_dump import mirror_fixtures

ROOT = Path(__file__).resolve().parent.parent

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
)
logger = logging.getLogger(__name__)


@click.command()
@click.option(
    "--output",
    default=str(ROOT / "fixtures"),
    show_default=True,
    help="Output directory for generated fixtures",
)
@click.option("--yaml", "with_yaml", is_flag=True, help="Also write a YAML copy of each fixture")
def main(output: str, with_yaml: bool) -> None:
    """Fill fixtures by running the test suite."""
    env = dict(os.environ)
    env["PYTHONPATH"] = os.pathsep.join([str(ROOT / "src"), str(ROOT)])

    cmd = [
        sys.executable,
        "-m",
        "pytest",
        str(ROOT / "tests"),
        "-q",
        "--output",
        output,
    ]
    logger.info("Running: %s", " ".join(cmd))
    code = subprocess.call(cmd, env=env, cwd=str(ROOT))
    if code == 0 and with_yaml:
        logger.info("Wrote %d YAML fixtures", mirror_fixtures(Path(output)))
    sys.exit(code)


if __name__ == "__main__":
    main()

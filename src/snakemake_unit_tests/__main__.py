"""Module entrypoint for ``python -m snakemake_unit_tests``."""

from __future__ import annotations

from snakemake_unit_tests.main import cli_entrypoint

if __name__ == "__main__":
    raise SystemExit(cli_entrypoint())

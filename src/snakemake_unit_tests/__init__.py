"""
snakemake-unit-tests: per-rule unit test scaffolding for Snakemake pipelines.

The package reads a pipeline's Snakefile (with its includes) and the log of a
completed dry run, and produces for each rule a minimal standalone Snakefile
plus the rule's inputs and expected outputs.

Import boundary: importing the package has no side effects (no config
loading, no logging setup).
"""

__version__ = "0.1.0"

__all__ = ["__version__"]

"""Solved dry-run logs: recipes, their parser and the dependency DAG."""

from snakemake_unit_tests.solved.dag import DUPLICATE_OUTPUT_MESSAGE, SolvedRules
from snakemake_unit_tests.solved.log_parser import load_log_file, parse_log
from snakemake_unit_tests.solved.recipe import Placeholder, Recipe

__all__ = [
    "DUPLICATE_OUTPUT_MESSAGE",
    "Placeholder",
    "Recipe",
    "SolvedRules",
    "load_log_file",
    "parse_log",
]

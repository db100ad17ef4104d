"""Lexing, segmentation and include/inheritance resolution of Snakefiles."""

from snakemake_unit_tests.parsing.lexer import LogicalLine, QuoteState, lexical_parse
from snakemake_unit_tests.parsing.rule_block import BlockKind, ResolutionStatus, RuleBlock
from snakemake_unit_tests.parsing.segmenter import parse_source, segment_lines, segment_next
from snakemake_unit_tests.parsing.snakefile import LoadReport, SnakemakeFile
from snakemake_unit_tests.parsing.sources import (
    FileSystemSourceLoader,
    MappingSourceLoader,
    SourceFile,
    SourceLoader,
)

__all__ = [
    "BlockKind",
    "FileSystemSourceLoader",
    "LoadReport",
    "LogicalLine",
    "MappingSourceLoader",
    "QuoteState",
    "ResolutionStatus",
    "RuleBlock",
    "SnakemakeFile",
    "SourceFile",
    "SourceLoader",
    "lexical_parse",
    "parse_source",
    "segment_lines",
    "segment_next",
]

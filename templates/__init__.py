"""
Template system: sequence loading, validation and text resolution.

  registry     parse authored JSON, validate, index sequences by id
  validation   structural checks (errors block, warnings log)
  resolver     {key:formatter:join:case|fallback} placeholder substitution
  formatters   named lookup tables, grammatical join, case transforms
  content      hierarchical content library with a fallback chain
  renderer     content key → template → multi-part expansion per message
"""
from templates.formatters import FormatterRegistry, join_with_grammar, apply_case
from templates.resolver import resolve_template, split_multipart, find_placeholders
from templates.content import (
    ContentLibrary, InMemoryContentLibrary, FileContentLibrary,
    build_fallback_chain, resolve_content,
)
from templates.renderer import MessageRenderer
from templates.validation import validate_sequence
from templates.registry import SequenceRegistry, parse_sequence

__all__ = [
    "FormatterRegistry", "join_with_grammar", "apply_case",
    "resolve_template", "split_multipart", "find_placeholders",
    "ContentLibrary", "InMemoryContentLibrary", "FileContentLibrary",
    "build_fallback_chain", "resolve_content",
    "MessageRenderer",
    "validate_sequence",
    "SequenceRegistry", "parse_sequence",
]

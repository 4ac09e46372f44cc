"""Librarian services: documentation lookup, compression, validation and pruning."""

from .context_pruner import ContextPruner, PrunerConfig, estimate_tokens
from .doc_resolver import DocumentationResolver, FetchFailure, RepoConfig, match_file
from .lua_compressor import CompressionResult, compress, compress_source
from .lua_validator import ValidationResult, validate
from .repo_index_cache import RepoFileIndexEntry, RepoIndexCache, RepoIndexKey

__all__ = [
    "ContextPruner",
    "PrunerConfig",
    "estimate_tokens",
    "DocumentationResolver",
    "FetchFailure",
    "RepoConfig",
    "match_file",
    "CompressionResult",
    "compress",
    "compress_source",
    "ValidationResult",
    "validate",
    "RepoFileIndexEntry",
    "RepoIndexCache",
    "RepoIndexKey",
]

"""Resolve framework module names to raw Lua sources on GitHub.

Every outcome of :meth:`DocumentationResolver.resolve` is a string because the
caller is a model tool-response channel: failures come back as ``ERROR: ...``
text the model can read and react to. Internally, expected remote outcomes
(bad token, rate limit, HTTP failure) travel as :class:`FetchFailure` values
while transport failures raise ``httpx.HTTPError`` up to ``resolve``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Literal, Mapping, Sequence

import httpx

from ...services.settings import LibrarianSettings
from .lua_compressor import compress
from .repo_index_cache import RepoFileIndexEntry, RepoIndexCache, RepoIndexKey

__all__ = [
    "RepoConfig",
    "REPOSITORIES",
    "DEFAULT_BRANCH",
    "FetchFailure",
    "RepoIndex",
    "FileMatch",
    "DocumentationResolver",
    "normalize_source",
    "match_file",
    "suggest_paths",
]

LOGGER = logging.getLogger(__name__)

DEFAULT_BRANCH = "DEVELOP"
_LUA_EXTENSION = ".lua"
_MAX_SUGGESTIONS = 5
_METADATA_RULE = "-" * 50

FailureKind = Literal["invalid_token", "rate_limited", "http_error", "download_failed"]
MatchTier = Literal["exact", "suffix", "contains"]


@dataclass(slots=True, frozen=True)
class RepoConfig:
    owner: str
    repo: str
    branch: str

    @property
    def cache_key(self) -> RepoIndexKey:
        return RepoIndexKey(owner=self.owner, repo=self.repo, branch=self.branch)


REPOSITORIES: Mapping[str, Mapping[str, RepoConfig]] = {
    "MOOSE": {
        "STABLE": RepoConfig(owner="FlightControl-Master", repo="MOOSE", branch="master"),
        "DEVELOP": RepoConfig(owner="FlightControl-Master", repo="MOOSE", branch="develop"),
    },
    "DML": {
        "MAIN": RepoConfig(owner="csofranz", repo="DML", branch="main"),
    },
}
# Frameworks that only publish a single branch ignore the requested one.
_FORCED_BRANCHES: Mapping[str, str] = {"DML": "MAIN"}


@dataclass(slots=True, frozen=True)
class FetchFailure:
    """Expected, reportable failure of a remote call."""

    kind: FailureKind
    message: str

    def as_tool_text(self) -> str:
        return f"ERROR: {self.message}"


@dataclass(slots=True, frozen=True)
class RepoIndex:
    entries: tuple[RepoFileIndexEntry, ...]
    from_cache: bool = False


@dataclass(slots=True, frozen=True)
class FileMatch:
    entry: RepoFileIndexEntry
    tier: MatchTier


def normalize_source(source_name: str, branch: str | None = None) -> RepoConfig | None:
    """Map a ``(framework, branch)`` request onto a known repository."""

    framework = (source_name or "").strip().upper()
    branch_key = (branch or DEFAULT_BRANCH).strip().upper() or DEFAULT_BRANCH
    branch_key = _FORCED_BRANCHES.get(framework, branch_key)
    return REPOSITORIES.get(framework, {}).get(branch_key)


def _clean_query(query: str) -> str:
    cleaned = (query or "").strip()
    if cleaned.lower().endswith(_LUA_EXTENSION):
        cleaned = cleaned[: -len(_LUA_EXTENSION)]
    return cleaned


def match_file(entries: Sequence[RepoFileIndexEntry], query: str) -> FileMatch | None:
    """Find the best file for ``query``; the first tier with a hit wins.

    Tiers: exact file name (extension optional, case-sensitive), then a
    case-insensitive ``/<query>.lua`` path suffix, then any ``.lua`` path
    containing the query.
    """

    cleaned = _clean_query(query)
    if not cleaned:
        return None
    lowered = cleaned.lower()
    blobs = [entry for entry in entries if entry.type == "blob"]

    for entry in blobs:
        file_name = entry.path.rsplit("/", 1)[-1]
        if file_name in (f"{cleaned}{_LUA_EXTENSION}", cleaned):
            return FileMatch(entry=entry, tier="exact")

    suffix = f"/{lowered}{_LUA_EXTENSION}"
    for entry in blobs:
        if entry.path.lower().endswith(suffix):
            return FileMatch(entry=entry, tier="suffix")

    for entry in blobs:
        if entry.path.endswith(_LUA_EXTENSION) and lowered in entry.path.lower():
            return FileMatch(entry=entry, tier="contains")
    return None


def suggest_paths(entries: Sequence[RepoFileIndexEntry], query: str, limit: int = _MAX_SUGGESTIONS) -> list[str]:
    """Return up to ``limit`` Lua paths sharing the query's first three characters."""

    prefix = _clean_query(query)[:3].lower()
    if not prefix:
        return []
    suggestions: list[str] = []
    for entry in entries:
        if entry.path.endswith(_LUA_EXTENSION) and prefix in entry.path.lower():
            suggestions.append(entry.path)
            if len(suggestions) >= limit:
                break
    return suggestions


class DocumentationResolver:
    """Fetches framework sources through a cached, fuzzily matched file index."""

    def __init__(
        self,
        cache: RepoIndexCache,
        *,
        settings: LibrarianSettings | None = None,
        http_client: httpx.AsyncClient | None = None,
        compressor: Callable[[str], str] = compress,
    ) -> None:
        self._cache = cache
        self._settings = settings or LibrarianSettings()
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=self._settings.request_timeout)
        self._compressor = compressor

    @property
    def cache(self) -> RepoIndexCache:
        return self._cache

    async def resolve(
        self,
        source_name: str,
        module_query: str,
        branch: str | None = None,
        auth_token: str | None = None,
    ) -> str:
        """Return annotated source text for ``module_query`` or an ``ERROR:`` string."""

        config = normalize_source(source_name, branch)
        if config is None:
            return f"ERROR: Invalid Framework/Branch configuration: {source_name} [{branch or DEFAULT_BRANCH}]"
        token = (auth_token or "").strip() or None
        try:
            index = await self.fetch_index(config, token)
            if isinstance(index, FetchFailure):
                return index.as_tool_text()

            match = match_file(index.entries, module_query)
            if match is None:
                suggestions = suggest_paths(index.entries, module_query)
                hint = f"Did you mean: {', '.join(suggestions)}?" if suggestions else "No similar modules found."
                return f"ERROR: Module '{module_query}' not found in {config.repo}. {hint}"
            LOGGER.debug("Resolved '%s' to %s via %s match", module_query, match.entry.path, match.tier)

            raw_url = self.raw_url(config, match.entry.path)
            content = await self.download(raw_url, token)
            if isinstance(content, FetchFailure):
                return content.as_tool_text()
        except httpx.HTTPError as exc:
            LOGGER.warning("Librarian request failed for %s/%s: %s", config.repo, module_query, exc)
            return f"ERROR: Librarian System Exception: {exc}"

        original_size = len(content.encode("utf-8"))
        if match.entry.path.endswith(_LUA_EXTENSION) and len(content) > self._settings.compression_threshold:
            LOGGER.info("Compressing %s (%s bytes)", match.entry.path, original_size)
            content = self._compressor(content)

        metadata = "\n".join(
            (
                "[Librarian Source Metadata]",
                f"Repo: {config.owner}/{config.repo}",
                f"Branch: {config.branch}",
                f"File: {match.entry.path}",
                f"Original Size: {original_size} bytes",
                f"Raw URL: {raw_url}",
                _METADATA_RULE,
            )
        )
        return f"{metadata}\n{content}"

    async def fetch_index(self, config: RepoConfig, token: str | None = None) -> RepoIndex | FetchFailure:
        """Return the recursive file listing, from cache while it is fresh."""

        key = config.cache_key
        cached = self._cache.get(key)
        if cached is not None:
            LOGGER.debug("Loaded %s tree from cache", config.repo)
            return RepoIndex(entries=cached, from_cache=True)

        LOGGER.info("Fetching fresh tree for %s/%s", config.repo, config.branch)
        url = f"{self._settings.api_base_url}/repos/{config.owner}/{config.repo}/git/trees/{config.branch}"
        response = await self._http.get(url, params={"recursive": "1"}, headers=self._headers(token))

        if response.status_code == 401:
            return FetchFailure("invalid_token", "GitHub Token Invalid. Please check your token in Settings.")
        if response.status_code in (403, 429):
            if token:
                message = "GitHub API Rate Limit Exceeded even with Token. This shouldn't happen often."
            else:
                message = (
                    "GitHub API Rate Limit Exceeded (60/hr). Add a Personal Access Token in Settings "
                    "to increase this to 5000/hr."
                )
            return FetchFailure("rate_limited", message)
        if not response.is_success:
            return FetchFailure("http_error", f"GitHub API Error: {response.status_code} {response.reason_phrase}")

        try:
            payload = response.json()
        except ValueError:
            payload = None
        if not isinstance(payload, Mapping):
            return FetchFailure("http_error", "GitHub API returned an unreadable tree listing.")
        if payload.get("truncated"):
            LOGGER.warning("Repository tree for %s is truncated by GitHub (too large)", config.repo)
        entries = tuple(RepoFileIndexEntry.from_payload(item) for item in payload.get("tree") or ())
        self._cache.put(key, entries)
        return RepoIndex(entries=entries)

    async def download(self, url: str, token: str | None = None) -> str | FetchFailure:
        LOGGER.info("Fetching raw source %s", url)
        response = await self._http.get(url, headers=self._headers(token))
        if not response.is_success:
            return FetchFailure("download_failed", f"Failed to download source file: {url}")
        return response.text

    def raw_url(self, config: RepoConfig, path: str) -> str:
        return f"{self._settings.raw_base_url}/{config.owner}/{config.repo}/{config.branch}/{path}"

    @staticmethod
    def _headers(token: str | None) -> dict[str, str]:
        headers = {"Accept": "application/vnd.github.v3+json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

"""Repository walk: source files, language statistics and feature detection."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple, Union

from .config import SKIP_DIRS
from .models import DiscoveredFeature, FeatureFiles, LanguageStats, ScanResult

logger = logging.getLogger(__name__)

# Directory layouts that hold one feature per child directory, in priority order.
FEATURE_PATTERNS = [
    "src/features/*",
    "src/modules/*",
    "packages/*",
    "apps/*",
    "services/*",
    "libs/*",
    "backend/*",
    "frontend/*",
    "api/*",
    "web/*",
    "mobile/*",
    "packages/*/src",
    "apps/*/src",
]

SOURCE_LANGUAGES: Dict[str, str] = {
    ".ts": "typescript", ".tsx": "typescript", ".mts": "typescript", ".cts": "typescript",
    ".js": "javascript", ".jsx": "javascript", ".mjs": "javascript", ".cjs": "javascript",
    ".py": "python",
    ".go": "go",
    ".java": "java",
    ".kt": "kotlin",
    ".rs": "rust",
}

# Extra files that matter to the extractors without being program sources.
AUXILIARY_EXTENSIONS = {".prisma", ".sql"}

API_HINTS = ("route", "controller", "endpoint", "api", "handler", "view")
SCHEMA_HINTS = ("schema", "model", "entity", "type", "interface", "prisma", "migration")
FIXTURE_HINTS = ("fixture", "mock", "stub", "fake")
CONFIG_HINTS = ("config", "setting")


def _is_skipped(rel_path: Path, is_dir: bool = False) -> bool:
    parts = rel_path.parts if is_dir else rel_path.parts[:-1]
    return any(part in SKIP_DIRS or part.startswith(".") for part in parts)


def iter_source_files(root: Union[str, Path], base: Optional[Path] = None) -> Iterator[Path]:
    """Source and schema files under *root*, sorted, outside :data:`SKIP_DIRS`."""
    root = Path(root)
    base = base or root
    wanted = set(SOURCE_LANGUAGES) | AUXILIARY_EXTENSIONS
    for file_path in sorted(root.rglob("*")):
        if file_path.suffix.lower() not in wanted or not file_path.is_file():
            continue
        if _is_skipped(file_path.relative_to(base)):
            continue
        yield file_path


def _is_test_file(lower: str) -> bool:
    name = lower.rsplit("/", 1)[-1]
    return (
        ".test." in name
        or ".spec." in name
        or name.startswith("test_")
        or name.endswith("_test.py")
        or name.endswith("_test.go")
        or name == "conftest.py"
        or "/__tests__/" in f"/{lower}"
        or "/tests/" in f"/{lower}"
    )


def categorize_file(rel_path: str) -> str:
    """Bucket name in :class:`FeatureFiles` for a repo-relative path."""
    lower = rel_path.lower()
    if _is_test_file(lower):
        return "tests"
    if any(h in lower for h in API_HINTS):
        return "api"
    if any(h in lower for h in SCHEMA_HINTS) or lower.endswith((".prisma", ".sql")):
        return "schema"
    if any(h in lower for h in FIXTURE_HINTS):
        return "fixtures"
    if any(h in lower for h in CONFIG_HINTS):
        return "config"
    return "other"


def build_feature(dir_path: Path, repo_path: Path, name: Optional[str] = None) -> Optional[DiscoveredFeature]:
    """Categorize every source file under *dir_path*; None if there are none."""
    files = FeatureFiles()
    score = 0.0
    count = 0
    for file_path in iter_source_files(dir_path, base=repo_path):
        rel = file_path.relative_to(repo_path).as_posix()
        bucket = categorize_file(rel)
        getattr(files, bucket).append(rel)
        count += 1
        if bucket in ("api", "schema"):
            score += 1.0
        elif bucket == "other":
            score += 0.1
    if count == 0:
        return None
    base_path = dir_path.relative_to(repo_path).as_posix()
    return DiscoveredFeature(
        name=name or dir_path.name,
        base_path=base_path,
        files=files,
        contract_score=round(score, 2),
    )


def detect_features(repo_path: Union[str, Path]) -> List[DiscoveredFeature]:
    """Features in discovery order.

    A directory nested inside an already discovered feature is folded into
    it.  When no layout pattern matches, the repository root is the only
    feature.
    """
    repo = Path(repo_path).resolve()
    features: List[DiscoveredFeature] = []
    claimed: List[Path] = []

    for pattern in FEATURE_PATTERNS:
        for match in sorted(repo.glob(pattern)):
            if not match.is_dir() or _is_skipped(match.relative_to(repo), is_dir=True):
                continue
            if any(match == c or c in match.parents for c in claimed):
                continue
            feature = build_feature(match, repo)
            if feature is None or feature.contract_score <= 0:
                continue
            # An earlier, deeper match may sit inside this one.
            nested = [c for c in claimed if match in c.parents]
            if nested:
                features = [f for f in features if (repo / f.base_path) not in nested]
                claimed = [c for c in claimed if c not in nested]
            claimed.append(match)
            features.append(feature)

    if not features:
        root_feature = build_feature(repo, repo, name=repo.name)
        if root_feature is not None:
            features.append(root_feature)
    logger.info("Detected %d features in %s", len(features), repo)
    return features


def count_lines(file_path: Path) -> int:
    try:
        return file_path.read_text(encoding="utf-8", errors="ignore").count("\n") + 1
    except OSError as exc:
        logger.debug("Could not read %s: %s", file_path, exc)
        return 0


def language_stats(files: List[Path]) -> Tuple[List[LanguageStats], int]:
    """Per-language file/line counts sorted by lines, plus the line total."""
    totals: Dict[str, List[int]] = {}
    for file_path in files:
        language = SOURCE_LANGUAGES.get(file_path.suffix.lower())
        if language is None:
            continue
        entry = totals.setdefault(language, [0, 0])
        entry[0] += 1
        entry[1] += count_lines(file_path)

    total_lines = sum(lines for _, lines in totals.values())
    stats = [
        LanguageStats(
            language=language,
            files=n_files,
            lines=lines,
            percentage=round(lines / total_lines * 100, 2) if total_lines else 0.0,
        )
        for language, (n_files, lines) in totals.items()
    ]
    stats.sort(key=lambda s: (-s.lines, s.language))
    return stats, total_lines


def scan_repository(repo_path: Union[str, Path]) -> ScanResult:
    repo = Path(repo_path).resolve()
    if not repo.is_dir():
        raise FileNotFoundError(f"Repository path does not exist: {repo}")

    features = detect_features(repo)
    sources = [p for p in iter_source_files(repo) if p.suffix.lower() in SOURCE_LANGUAGES]
    languages, total_lines = language_stats(sources)
    return ScanResult(
        repo_path=str(repo),
        features=features,
        languages=languages,
        total_files=len(sources),
        total_lines=total_lines,
    )

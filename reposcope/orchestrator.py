"""Phased repository analysis: scan, parse and extract, then build graphs.

The orchestrator owns the only cross-file mutable state of a run: the
progress snapshot, the error list and the cancellation token.  Parsers and
extractors stay pure; files are handed to a thread pool in fixed-size
batches and cancellation is polled between features, batches and file
submissions.
"""

from __future__ import annotations

import enum
import logging
import threading
import time
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Set, Union

from .cache import ParseCache
from .config import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_MAX_WORKERS,
    DEFAULT_PARSE_TIMEOUT,
)
from .config_manager import load_analysis_config
from .endpoint_extractor import EndpointExtractor
from .event_extractor import EventExtractor
from .graph_builder import DependencyGraphBuilder, node_id_for
from .infra_extractor import InfraExtractor
from .models import (
    AnalysisError,
    AnalysisProgress,
    AnalysisResult,
    DiscoveredFeature,
    ExtractedEndpoint,
    ExtractedEvent,
    ExtractedSchema,
    FeatureSummary,
    InfrastructureAnalysis,
    ParsedFile,
    ScanResult,
)
from .parser import ParseError, SourceParser
from .scanner import count_lines, iter_source_files, scan_repository
from .schema_extractor import SchemaExtractor

logger = logging.getLogger(__name__)

ProgressListener = Callable[[AnalysisProgress], None]

# import source -> framework label recorded on the feature summary
FRAMEWORK_IMPORTS: Dict[str, str] = {
    "express": "express", "fastify": "fastify", "koa": "koa", "@hapi/hapi": "hapi",
    "@nestjs/common": "nestjs", "react": "react", "vue": "vue", "svelte": "svelte",
    "@angular/core": "angular", "@prisma/client": "prisma", "typeorm": "typeorm",
    "sequelize": "sequelize", "drizzle-orm": "drizzle", "zod": "zod",
    "flask": "flask", "fastapi": "fastapi", "django": "django",
    "sqlalchemy": "sqlalchemy", "pydantic": "pydantic",
}


class AnalysisPhase(str, enum.Enum):
    INITIALIZING = "initializing"
    SCANNING = "scanning"
    PARSING = "parsing"
    BUILDING_GRAPH = "building-graph"
    COMPLETE = "complete"
    ERROR = "error"


class AnalysisAbort(Exception):
    """A precondition failed; the run cannot produce an analysis."""


class CancellationToken:
    """Cooperative cancellation flag shared with a running analysis."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()


@dataclass
class _FileOutcome:
    path: str
    parsed: Optional[ParsedFile] = None
    endpoints: List[ExtractedEndpoint] = field(default_factory=list)
    schemas: List[ExtractedSchema] = field(default_factory=list)
    events: List[ExtractedEvent] = field(default_factory=list)
    error: Optional[str] = None


class AnalysisOrchestrator:
    """Coordinates the scanner, parser, extractors and graph builder."""

    def __init__(
        self,
        parser: Optional[SourceParser] = None,
        endpoint_extractor: Optional[EndpointExtractor] = None,
        schema_extractor: Optional[SchemaExtractor] = None,
        event_extractor: Optional[EventExtractor] = None,
        infra_extractor: Optional[InfraExtractor] = None,
        graph_builder: Optional[DependencyGraphBuilder] = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        max_workers: int = DEFAULT_MAX_WORKERS,
        parse_timeout: float = DEFAULT_PARSE_TIMEOUT,
    ):
        if batch_size < 1 or max_workers < 1:
            raise ValueError("batch_size and max_workers must be positive")
        self.parser = parser or SourceParser(ParseCache())
        self.endpoint_extractor = endpoint_extractor or EndpointExtractor()
        self.schema_extractor = schema_extractor or SchemaExtractor()
        self.event_extractor = event_extractor or EventExtractor()
        self.infra_extractor = infra_extractor or InfraExtractor()
        self.graph_builder = graph_builder or DependencyGraphBuilder()
        self.batch_size = batch_size
        self.max_workers = max_workers
        self.parse_timeout = parse_timeout

        self._token = CancellationToken()
        self._listeners: List[ProgressListener] = []
        self._progress: Optional[AnalysisProgress] = None
        self._errors: List[AnalysisError] = []
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls) -> "AnalysisOrchestrator":
        """Build an orchestrator from the ``[analysis]`` config section."""
        cfg = load_analysis_config()
        cache = ParseCache(
            max_entries=cfg["max_cache_entries"],
            eviction_fraction=cfg["eviction_fraction"],
        )
        return cls(
            parser=SourceParser(cache),
            graph_builder=DependencyGraphBuilder(cfg["resolution_suffixes"]),
            batch_size=cfg["batch_size"],
            max_workers=cfg["max_workers"],
            parse_timeout=cfg["parse_timeout"],
        )

    # ------------------------------------------------------------------
    # Progress / cancellation
    # ------------------------------------------------------------------

    @property
    def progress(self) -> Optional[AnalysisProgress]:
        return self._progress

    def add_progress_listener(self, callback: ProgressListener) -> None:
        self._listeners.append(callback)

    def cancel(self) -> None:
        """Ask the current run to stop before starting any further file."""
        logger.info("Cancellation requested")
        self._token.cancel()

    def _update_progress(
        self,
        phase: AnalysisPhase,
        total_files: int = 0,
        processed_files: int = 0,
        current_file: Optional[str] = None,
        current_feature: Optional[str] = None,
    ) -> None:
        with self._lock:
            started = self._progress.started_at if self._progress else datetime.now().isoformat()
            if self._progress is None or self._progress.phase != phase.value:
                logger.info("Analysis phase: %s", phase.value)
            snapshot = AnalysisProgress(
                phase=phase.value,
                total_files=total_files,
                processed_files=processed_files,
                current_file=current_file,
                current_feature=current_feature,
                errors=list(self._errors),
                started_at=started,
            )
            self._progress = snapshot
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as exc:
                logger.warning("Progress listener failed: %s", exc)

    def _record_error(
        self, file: str, message: str, severity: str = "warning", recoverable: bool = True,
    ) -> None:
        with self._lock:
            self._errors.append(AnalysisError(
                file=file, message=message, severity=severity, recoverable=recoverable,  # type: ignore[arg-type]
            ))

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def scan(self, repo_path: Union[str, Path]) -> ScanResult:
        return scan_repository(repo_path)

    def analyze(
        self,
        repo_path: Union[str, Path],
        features: Optional[Sequence[str]] = None,
        use_cache: bool = True,
        token: Optional[CancellationToken] = None,
    ) -> AnalysisResult:
        """Run the full pipeline over *repo_path*.

        Args:
            repo_path: Repository root.
            features: Restrict parsing to these feature names.
            use_cache: Serve unchanged files from the parse cache.
            token: External cancellation token; :meth:`cancel` works either way.
        """
        started = time.perf_counter()
        self._token = token or CancellationToken()
        self._progress = None
        self._errors = []
        repo = Path(repo_path).resolve()

        try:
            self._update_progress(AnalysisPhase.INITIALIZING)
            self._update_progress(AnalysisPhase.SCANNING)
            try:
                scan = self.scan(repo)
            except OSError as exc:
                raise AnalysisAbort(str(exc)) from exc
            if not scan.features:
                raise AnalysisAbort("No features detected in repository")

            selected = scan.features
            if features:
                wanted = set(features)
                selected = [f for f in scan.features if f.name in wanted]
                if not selected:
                    raise AnalysisAbort(f"None of the requested features exist: {', '.join(features)}")

            summaries, parsed_files = self._parse_features(repo, scan, selected, use_cache)

            self._update_progress(
                AnalysisPhase.BUILDING_GRAPH, self._progress.total_files, self._progress.processed_files,
            )
            dependency_graph = self.graph_builder.build_from_files(parsed_files, repo)
            feature_graph = self.graph_builder.build_feature_graph(summaries)
            infrastructure = None
            if not self._token.is_cancelled:
                infrastructure = self._analyze_infrastructure(repo)

            self._update_progress(
                AnalysisPhase.COMPLETE, self._progress.total_files, self._progress.processed_files,
            )
        except AnalysisAbort as exc:
            logger.error("Analysis of %s failed: %s", repo, exc)
            self._record_error(str(repo), str(exc), severity="error", recoverable=False)
            self._update_progress(AnalysisPhase.ERROR)
            return AnalysisResult(
                success=False,
                repo_path=str(repo),
                repo_name=repo.name,
                analyzed_at=datetime.now().isoformat(),
                errors=list(self._errors),
                progress=self._progress,
                duration_ms=(time.perf_counter() - started) * 1000,
            )

        return AnalysisResult(
            success=True,
            repo_path=str(repo),
            repo_name=repo.name,
            analyzed_at=datetime.now().isoformat(),
            features=summaries,
            dependency_graph=dependency_graph,
            feature_graph=feature_graph,
            infrastructure=infrastructure,
            languages=scan.languages,
            total_files=scan.total_files,
            total_lines=scan.total_lines,
            errors=list(self._errors),
            progress=self._progress,
            duration_ms=(time.perf_counter() - started) * 1000,
            cancelled=self._token.is_cancelled,
        )

    # ------------------------------------------------------------------
    # Parsing phase
    # ------------------------------------------------------------------

    def _parse_features(
        self,
        repo: Path,
        scan: ScanResult,
        selected: List[DiscoveredFeature],
        use_cache: bool,
    ):
        total = sum(len(f.files.analyzable()) for f in selected)
        processed = 0
        known_files = {p.as_posix() for p in iter_source_files(repo)}
        summaries: List[FeatureSummary] = []
        parsed_files: List[ParsedFile] = []
        self._update_progress(AnalysisPhase.PARSING, total, processed)

        executor = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="reposcope-parse")
        try:
            for feature in selected:
                if self._token.is_cancelled:
                    break
                self._update_progress(AnalysisPhase.PARSING, total, processed, current_feature=feature.name)
                files = [str(repo / rel) for rel in feature.files.analyzable()]
                outcomes: List[_FileOutcome] = []

                for start in range(0, len(files), self.batch_size):
                    if self._token.is_cancelled:
                        break
                    batch = files[start:start + self.batch_size]
                    futures = []
                    for path in batch:
                        if self._token.is_cancelled:
                            break
                        futures.append((path, executor.submit(self._process_file, path, use_cache)))

                    for path, future in futures:
                        try:
                            outcome = future.result(timeout=self.parse_timeout)
                        except FutureTimeout:
                            outcome = _FileOutcome(path=path, error=f"Timed out after {self.parse_timeout:g}s")
                        if outcome.error:
                            self._record_error(path, outcome.error)
                        outcomes.append(outcome)
                        processed += 1
                        self._update_progress(
                            AnalysisPhase.PARSING, total, processed,
                            current_file=path, current_feature=feature.name,
                        )

                if outcomes:
                    summaries.append(self._summarize(feature, repo, outcomes, known_files))
                    parsed_files.extend(o.parsed for o in outcomes if o.parsed is not None)
        finally:
            executor.shutdown(wait=False)
        return summaries, parsed_files

    def _analyze_infrastructure(self, repo: Path) -> Optional[InfrastructureAnalysis]:
        try:
            infrastructure = self.infra_extractor.analyze_repository(repo)
        except Exception as exc:
            logger.warning("Infrastructure analysis of %s failed: %s", repo, exc)
            self._record_error(str(repo), f"Infrastructure analysis failed: {type(exc).__name__}: {exc}")
            return None
        for path, reason in infrastructure.failed_files.items():
            self._record_error(path, reason)
        return infrastructure

    def _process_file(self, path: str, use_cache: bool) -> _FileOutcome:
        outcome = _FileOutcome(path=path)
        try:
            if self.parser.supports(path):
                outcome.parsed = self.parser.parse(path, use_cache=use_cache)
            content = Path(path).read_text(encoding="utf-8", errors="ignore")

            parsed = outcome.parsed
            if self.endpoint_extractor.supports(path):
                outcome.endpoints = self.endpoint_extractor.extract(path, content, parsed)
            if self.schema_extractor.supports(path):
                outcome.schemas = self.schema_extractor.extract(path, content, parsed)
            if self.event_extractor.supports(path):
                outcome.events = self.event_extractor.extract(path, content, parsed)
        except ParseError as exc:
            outcome.error = str(exc)
            return outcome
        except Exception as exc:
            logger.warning("Failed to process %s: %s", path, exc)
            outcome.error = f"{type(exc).__name__}: {exc}"
            return outcome

        logger.debug(
            "%s: %d endpoints, %d schemas, %d events",
            path, len(outcome.endpoints), len(outcome.schemas), len(outcome.events),
        )
        return outcome

    def _summarize(
        self,
        feature: DiscoveredFeature,
        repo: Path,
        outcomes: List[_FileOutcome],
        known_files: Set[str],
    ) -> FeatureSummary:
        summary = FeatureSummary(name=feature.name, base_path=feature.base_path)
        languages: Counter = Counter()
        frameworks: List[str] = []

        def add_framework(name: str) -> None:
            if name not in frameworks:
                frameworks.append(name)

        for outcome in outcomes:
            if outcome.error:
                continue
            summary.endpoints.extend(outcome.endpoints)
            summary.schemas.extend(outcome.schemas)
            summary.events.extend(outcome.events)
            for endpoint in outcome.endpoints:
                add_framework(endpoint.framework)
            parsed = outcome.parsed
            if parsed is None:
                continue
            languages[parsed.language] += 1
            summary.exports.extend(parsed.exports)
            own_id = node_id_for(Path(outcome.path).relative_to(repo).as_posix())
            for imp in parsed.imports:
                resolution = self.graph_builder.resolve_import(imp.source, outcome.path, repo, known_files)
                if resolution.kind == "internal":
                    dep = node_id_for(resolution.path)
                    if dep != own_id and dep not in summary.internal_dependencies:
                        summary.internal_dependencies.append(dep)
                elif resolution.kind == "external":
                    if resolution.package not in summary.external_dependencies:
                        summary.external_dependencies.append(resolution.package)
                    framework = FRAMEWORK_IMPORTS.get(resolution.package)
                    if framework:
                        add_framework(framework)

        if languages:
            summary.language = languages.most_common(1)[0][0]
        summary.frameworks = [f for f in frameworks if f != "unknown"]
        summary.file_count = len(outcomes)
        summary.line_count = sum(count_lines(Path(o.path)) for o in outcomes)
        return summary

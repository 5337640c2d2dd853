"""Data models shared by the parser, extractors, graph builder and orchestrator."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Literal, Optional

SymbolKind = Literal["function", "class", "interface", "type", "enum", "const"]
Visibility = Literal["public", "private", "protected"]
NodeKind = Literal["file", "feature"]


class _Serializable:
    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)  # type: ignore[call-overload]


# ===================================================================
# Parsed file summary
# ===================================================================

@dataclass(frozen=True)
class ExportedSymbol(_Serializable):
    name: str
    kind: SymbolKind
    line: int
    column: int = 0
    is_default: bool = False


@dataclass(frozen=True)
class ImportedSymbol(_Serializable):
    """One imported binding. ``source`` is the raw, unresolved specifier."""
    name: str
    source: str
    alias: Optional[str] = None
    is_default: bool = False
    is_namespace: bool = False
    line: int = 0


@dataclass(frozen=True)
class ParameterDefinition(_Serializable):
    name: str
    type: Optional[str] = None
    optional: bool = False
    default_value: Optional[str] = None


# Name recorded for function expressions and arrows that bind no name.
ANONYMOUS_FUNCTION = "<anonymous>"


@dataclass(frozen=True)
class FunctionDefinition(_Serializable):
    name: str
    line: int
    column: int = 0
    end_line: int = 0
    parameters: List[ParameterDefinition] = field(default_factory=list)
    return_type: Optional[str] = None
    is_async: bool = False
    is_exported: bool = False
    is_arrow: bool = False
    decorators: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class MethodDefinition(_Serializable):
    name: str
    line: int
    visibility: Visibility = "public"
    is_static: bool = False
    is_async: bool = False
    parameters: List[ParameterDefinition] = field(default_factory=list)
    return_type: Optional[str] = None
    decorators: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class PropertyDefinition(_Serializable):
    name: str
    line: int
    type: Optional[str] = None
    visibility: Visibility = "public"
    is_static: bool = False
    is_readonly: bool = False
    nullable: bool = False
    decorators: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class ClassDefinition(_Serializable):
    name: str
    line: int
    column: int = 0
    end_line: int = 0
    extends: Optional[str] = None
    implements: List[str] = field(default_factory=list)
    methods: List[MethodDefinition] = field(default_factory=list)
    properties: List[PropertyDefinition] = field(default_factory=list)
    is_exported: bool = False
    is_abstract: bool = False
    decorators: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class TypePropertyDefinition(_Serializable):
    name: str
    type: str = "unknown"
    optional: bool = False


@dataclass(frozen=True)
class TypeDefinition(_Serializable):
    name: str
    kind: Literal["interface", "type", "enum"]
    line: int
    column: int = 0
    is_exported: bool = False
    properties: List[TypePropertyDefinition] = field(default_factory=list)
    enum_values: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class ParsedFile(_Serializable):
    """Structured syntax summary of one file.

    Immutable once produced; a changed content hash yields a new instance.
    """
    language: str
    file_path: str
    content_hash: str
    exports: List[ExportedSymbol] = field(default_factory=list)
    imports: List[ImportedSymbol] = field(default_factory=list)
    functions: List[FunctionDefinition] = field(default_factory=list)
    classes: List[ClassDefinition] = field(default_factory=list)
    types: List[TypeDefinition] = field(default_factory=list)
    parse_duration_ms: float = 0.0

    @property
    def identity(self) -> tuple:
        return (self.file_path, self.content_hash)


@dataclass
class CacheStats(_Serializable):
    total_entries: int
    hit_count: int
    miss_count: int
    hit_rate: float
    oldest_entry: Optional[str] = None
    newest_entry: Optional[str] = None


# ===================================================================
# Dependency graph
# ===================================================================

@dataclass
class DependencyNode(_Serializable):
    id: str
    name: str
    kind: NodeKind
    path: str
    exported_names: List[str] = field(default_factory=list)


@dataclass
class DependencyEdge(_Serializable):
    source: str
    target: str
    symbols: List[str] = field(default_factory=list)


@dataclass
class ExternalDependency(_Serializable):
    package_name: str
    used_by: List[str] = field(default_factory=list)
    import_count: int = 0


@dataclass
class DependencyGraph(_Serializable):
    nodes: List[DependencyNode] = field(default_factory=list)
    edges: List[DependencyEdge] = field(default_factory=list)
    circular_dependencies: List[List[str]] = field(default_factory=list)
    external_dependencies: List[ExternalDependency] = field(default_factory=list)


@dataclass
class GraphStats(_Serializable):
    total_nodes: int
    total_edges: int
    avg_dependencies: float
    max_dependencies_node: Optional[str]
    max_dependencies_count: int
    circular_count: int
    external_packages: int
    most_used_external: Optional[ExternalDependency] = None


# ===================================================================
# Extracted facts
# ===================================================================

@dataclass
class RouteParam(_Serializable):
    name: str
    required: bool = True
    type: Optional[str] = None


@dataclass
class ExtractedEndpoint(_Serializable):
    method: str
    path: str
    file: str
    line: int
    framework: str
    handler: Optional[str] = None
    path_params: List[RouteParam] = field(default_factory=list)

    @property
    def key(self) -> str:
        return f"{self.method}:{self.path}"


@dataclass
class SchemaColumn(_Serializable):
    name: str
    type: str
    nullable: bool = True
    primary_key: bool = False
    unique: bool = False
    default_value: Optional[str] = None


@dataclass
class SchemaRelation(_Serializable):
    kind: Literal["one-to-one", "one-to-many", "many-to-one", "many-to-many"]
    target: str
    foreign_key: Optional[str] = None


@dataclass
class SchemaIndex(_Serializable):
    columns: List[str]
    unique: bool = False
    name: Optional[str] = None


@dataclass
class ExtractedSchema(_Serializable):
    name: str
    source_kind: str
    file: str
    line: int
    columns: List[SchemaColumn] = field(default_factory=list)
    relations: List[SchemaRelation] = field(default_factory=list)
    indexes: List[SchemaIndex] = field(default_factory=list)
    primary_key: List[str] = field(default_factory=list)


@dataclass
class ExtractedEvent(_Serializable):
    name: str
    pattern_kind: str
    file: str
    line: int
    is_producer: bool = False
    is_consumer: bool = False
    handler: Optional[str] = None


@dataclass
class EventFlowNode(_Serializable):
    id: str
    role: Literal["producer", "consumer"]
    file: str
    line: int


@dataclass
class EventFlowEdge(_Serializable):
    source: str
    target: str
    event_name: str


@dataclass
class EventFlowGraph(_Serializable):
    nodes: List[EventFlowNode] = field(default_factory=list)
    edges: List[EventFlowEdge] = field(default_factory=list)


@dataclass
class InfraResource(_Serializable):
    """One infrastructure declaration.

    ``kind`` is the block/document category (``resource``, ``provider``,
    ``k8s``, ``service``, ...), ``fmt`` the manifest format.
    """
    kind: str
    fmt: str
    resource_type: str
    name: str
    file: str
    line: int
    attributes: Dict[str, Any] = field(default_factory=dict)
    dependencies: List[str] = field(default_factory=list)


@dataclass
class InfrastructureAnalysis(_Serializable):
    resources: List[InfraResource] = field(default_factory=list)
    terraform_modules: List[str] = field(default_factory=list)
    k8s_namespaces: List[str] = field(default_factory=list)
    k8s_deployments: List[str] = field(default_factory=list)
    k8s_services: List[str] = field(default_factory=list)
    k8s_config_maps: List[str] = field(default_factory=list)
    k8s_secrets: List[str] = field(default_factory=list)
    k8s_ingresses: List[str] = field(default_factory=list)
    compose_files: List[str] = field(default_factory=list)
    compose_services: List[str] = field(default_factory=list)
    compose_networks: List[str] = field(default_factory=list)
    compose_volumes: List[str] = field(default_factory=list)
    # manifest path -> reason it could not be read or parsed
    failed_files: Dict[str, str] = field(default_factory=dict)

    def by_format(self, fmt: str) -> List[InfraResource]:
        return [r for r in self.resources if r.fmt == fmt]

    def summary(self) -> Dict[str, Dict[str, int]]:
        terraform = self.by_format("terraform")
        return {
            "terraform": {
                "resource_count": sum(1 for r in terraform if r.kind in ("resource", "data")),
                "provider_count": sum(1 for r in terraform if r.kind == "provider"),
                "module_count": len(self.terraform_modules),
            },
            "kubernetes": {
                "resource_count": len(self.by_format("kubernetes")),
                "namespace_count": len(self.k8s_namespaces),
            },
            "docker": {
                "service_count": len(self.compose_services),
                "network_count": len(self.compose_networks),
            },
        }


# ===================================================================
# Orchestration
# ===================================================================

@dataclass
class FeatureFiles(_Serializable):
    api: List[str] = field(default_factory=list)
    schema: List[str] = field(default_factory=list)
    tests: List[str] = field(default_factory=list)
    fixtures: List[str] = field(default_factory=list)
    config: List[str] = field(default_factory=list)
    other: List[str] = field(default_factory=list)

    def analyzable(self) -> List[str]:
        """Files worth parsing: api, schema and other sources."""
        return self.api + self.schema + self.other

    def all(self) -> List[str]:
        return self.api + self.schema + self.tests + self.fixtures + self.config + self.other


@dataclass
class DiscoveredFeature(_Serializable):
    name: str
    base_path: str
    files: FeatureFiles = field(default_factory=FeatureFiles)
    contract_score: float = 0.0


@dataclass
class LanguageStats(_Serializable):
    language: str
    files: int
    lines: int
    percentage: float = 0.0


@dataclass
class FeatureSummary(_Serializable):
    name: str
    base_path: str
    language: Optional[str] = None
    frameworks: List[str] = field(default_factory=list)
    exports: List[ExportedSymbol] = field(default_factory=list)
    endpoints: List[ExtractedEndpoint] = field(default_factory=list)
    schemas: List[ExtractedSchema] = field(default_factory=list)
    events: List[ExtractedEvent] = field(default_factory=list)
    internal_dependencies: List[str] = field(default_factory=list)
    external_dependencies: List[str] = field(default_factory=list)
    file_count: int = 0
    line_count: int = 0

    @property
    def dependencies(self) -> List[str]:
        return self.internal_dependencies + [
            d for d in self.external_dependencies if d not in self.internal_dependencies
        ]

    def fact_bundle(self) -> Dict[str, Any]:
        """Raw facts consumed by the contract-generation path."""
        return {
            "feature": self.name,
            "exports": [e.to_dict() for e in self.exports],
            "endpoints": [e.to_dict() for e in self.endpoints],
            "schemas": [s.to_dict() for s in self.schemas],
            "dependencies": self.dependencies,
        }


@dataclass
class AnalysisError(_Serializable):
    file: str
    message: str
    severity: Literal["warning", "error"] = "warning"
    recoverable: bool = True


@dataclass
class AnalysisProgress(_Serializable):
    phase: str
    total_files: int = 0
    processed_files: int = 0
    current_file: Optional[str] = None
    current_feature: Optional[str] = None
    errors: List[AnalysisError] = field(default_factory=list)
    started_at: str = ""


@dataclass
class AnalysisResult(_Serializable):
    """Outcome of one orchestrated run.

    ``success`` only says the run reached ``complete``; inspect ``errors``
    to judge completeness.
    """
    success: bool
    repo_path: str
    repo_name: str = ""
    analyzed_at: str = ""
    features: List[FeatureSummary] = field(default_factory=list)
    dependency_graph: Optional[DependencyGraph] = None
    feature_graph: Optional[DependencyGraph] = None
    infrastructure: Optional[InfrastructureAnalysis] = None
    languages: List[LanguageStats] = field(default_factory=list)
    total_files: int = 0
    total_lines: int = 0
    errors: List[AnalysisError] = field(default_factory=list)
    progress: Optional[AnalysisProgress] = None
    duration_ms: float = 0.0
    cancelled: bool = False


@dataclass
class ScanResult(_Serializable):
    repo_path: str
    features: List[DiscoveredFeature] = field(default_factory=list)
    languages: List[LanguageStats] = field(default_factory=list)
    total_files: int = 0
    total_lines: int = 0

"""Infrastructure-as-code extraction: Terraform, Kubernetes and Docker Compose.

Terraform is handled with a small brace-depth state machine, not a full HCL
grammar: it recovers the top-level blocks, their depth-0 ``key = value``
attributes and the ``<type>.<name>`` references they make.  YAML manifests
go through PyYAML.
"""

from __future__ import annotations

import enum
import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

import yaml

from .models import InfraResource, InfrastructureAnalysis, ParsedFile
from .source_utils import line_number, strip_comments, strip_quotes

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = {".tf", ".yaml", ".yml"}

K8S_DIR_NAMES = {"k8s", "kubernetes", "manifests", "deploy"}
_COMPOSE_NAME = re.compile(r"^(?:docker-compose[\w.-]*|compose)\.ya?ml$")
_INFRA_SKIP_DIRS = {"node_modules", ".git", ".terraform"}
# Shape or syntax problems in a single manifest; never fatal for a scan.
_RECOVERABLE = (re.error, ValueError, TypeError, AttributeError, yaml.YAMLError)

# Namespaces that look like <type>.<name> but are not resource references.
TERRAFORM_BUILTINS = {"var", "local", "data", "module", "path", "terraform", "each", "count", "self"}

K8S_WORKLOAD_KINDS = {"Deployment", "StatefulSet", "DaemonSet"}


class InfraFormat(str, enum.Enum):
    TERRAFORM = "terraform"
    KUBERNETES = "kubernetes"
    DOCKER_COMPOSE = "docker-compose"


_TF_BLOCK = re.compile(
    r"^[ \t]*(?P<kind>resource|data|provider|variable|output|module)"
    r"\s+\"(?P<first>[^\"]+)\"(?:\s+\"(?P<second>[^\"]+)\")?\s*\{",
    re.M,
)
_TF_ATTRIBUTE = re.compile(r"^([A-Za-z_][\w-]*)\s*=\s*(.*)$", re.S)
_TF_REFERENCE = re.compile(r"(?<![\w.])([A-Za-z_][\w-]*)\.([A-Za-z_][\w-]*)")
_TF_DEPENDS_ON = re.compile(r"\bdepends_on\s*=\s*\[([^\]]*)\]")


def detect_format(file_path: Union[str, Path], content: Optional[str] = None) -> Optional[InfraFormat]:
    """Classify *file_path* by name, then by content for plain YAML."""
    path = Path(file_path)
    suffix = path.suffix.lower()
    if suffix == ".tf":
        return InfraFormat.TERRAFORM
    if suffix not in (".yaml", ".yml"):
        return None
    if _COMPOSE_NAME.match(path.name.lower()):
        return InfraFormat.DOCKER_COMPOSE
    if content is not None:
        if re.search(r"^apiVersion\s*:", content, re.M) and re.search(r"^kind\s*:", content, re.M):
            return InfraFormat.KUBERNETES
        return None
    if K8S_DIR_NAMES & {part.lower() for part in path.parts}:
        return InfraFormat.KUBERNETES
    return None


# ===================================================================
# HCL scanning helpers
# ===================================================================

def _hcl_block(content: str, open_index: int) -> Optional[Tuple[str, int]]:
    """Body of the ``{`` at *open_index* and the index of its ``}``.

    Braces inside double-quoted strings and comments do not count.
    """
    depth = 0
    i = open_index
    in_string = False
    while i < len(content):
        ch = content[i]
        if in_string:
            if ch == "\\":
                i += 2
                continue
            if ch == '"':
                in_string = False
        elif ch == '"':
            in_string = True
        elif ch == "#" or content.startswith("//", i):
            newline = content.find("\n", i)
            i = len(content) if newline < 0 else newline
            continue
        elif content.startswith("/*", i):
            end = content.find("*/", i + 2)
            i = len(content) if end < 0 else end + 2
            continue
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return content[open_index + 1:i], i
        i += 1
    return None


def _code_only(text: str) -> str:
    """Blank out comments and string literal text, keeping ``${...}`` interpolations."""
    out: List[str] = []
    i = 0
    in_string = False
    interp_depth = 0
    while i < len(text):
        ch = text[i]
        if in_string and interp_depth == 0:
            if ch == "\\":
                out.append("  ")
                i += 2
                continue
            if text.startswith("${", i):
                interp_depth = 1
                out.append("  ")
                i += 2
                continue
            if ch == '"':
                in_string = False
            out.append("\n" if ch == "\n" else " ")
        elif interp_depth:
            if ch == "{":
                interp_depth += 1
            elif ch == "}":
                interp_depth -= 1
                if interp_depth == 0:
                    out.append(" ")
                    i += 1
                    continue
            out.append(ch)
        elif ch == '"':
            in_string = True
            out.append(" ")
        elif ch == "#" or text.startswith("//", i):
            newline = text.find("\n", i)
            newline = len(text) if newline < 0 else newline
            out.append(" " * (newline - i))
            i = newline
            continue
        else:
            out.append(ch)
        i += 1
    return "".join(out)


def _bracket_delta(line: str) -> int:
    code = _code_only(line)
    return sum(code.count(c) for c in "{[(") - sum(code.count(c) for c in "}])")


def coerce_hcl_value(raw: str) -> Any:
    value = raw.strip()
    if value == "true":
        return True
    if value == "false":
        return False
    if len(value) >= 2 and value.startswith('"') and value.endswith('"') and '"' not in value[1:-1].replace('\\"', ""):
        return value[1:-1]
    try:
        return int(value)
    except ValueError:
        pass
    try:
        return float(value)
    except ValueError:
        return value


def parse_hcl_attributes(body: str) -> Dict[str, Any]:
    """``key = value`` pairs at depth 0 of a block body.

    Multi-line values (lists, maps, heredoc-free expressions) are kept as
    their raw joined text; nested blocks are skipped.
    """
    attrs: Dict[str, Any] = {}
    depth = 0
    pending_key: Optional[str] = None
    pending: List[str] = []

    for raw_line in body.splitlines():
        line = strip_comments(raw_line.strip())
        if pending_key is not None:
            pending.append(line)
            depth += _bracket_delta(line)
            if depth <= 0:
                attrs[pending_key] = " ".join(pending)
                pending_key, pending, depth = None, [], 0
            continue
        if not line or line.startswith(("#", "//")):
            continue
        delta = _bracket_delta(line)
        if depth == 0:
            match = _TF_ATTRIBUTE.match(line)
            if match:
                if delta > 0:
                    pending_key, pending, depth = match.group(1), [match.group(2).strip()], delta
                else:
                    attrs[match.group(1)] = coerce_hcl_value(match.group(2))
                continue
        depth = max(0, depth + delta)
    if pending_key is not None:
        attrs[pending_key] = " ".join(pending)
    return attrs


def terraform_references(body: str) -> List[str]:
    """``<type>.<name>`` references in *body*, plus explicit ``depends_on``."""
    refs: List[str] = []
    for match in _TF_REFERENCE.finditer(_code_only(body)):
        if match.group(1) in TERRAFORM_BUILTINS:
            continue
        ref = f"{match.group(1)}.{match.group(2)}"
        if ref not in refs:
            refs.append(ref)
    depends = _TF_DEPENDS_ON.search(body)
    if depends:
        for entry in depends.group(1).split(","):
            ref = strip_quotes(entry.strip())
            if ref and ref not in refs:
                refs.append(ref)
    return refs


# ===================================================================
# Extractor
# ===================================================================

class InfraExtractor:
    """Turns infrastructure manifests into :class:`InfraResource` facts."""

    SUPPORTED_EXTENSIONS = SUPPORTED_EXTENSIONS

    def supports(self, file_path: Union[str, Path]) -> bool:
        return Path(file_path).suffix.lower() in self.SUPPORTED_EXTENSIONS

    def extract_from_file(
        self,
        file_path: Union[str, Path],
        parsed_file: Optional[ParsedFile] = None,
    ) -> List[InfraResource]:
        content = Path(file_path).read_text(encoding="utf-8", errors="ignore")
        return self.extract(str(file_path), content, parsed_file)

    def extract(
        self,
        file_path: str,
        content: str,
        parsed_file: Optional[ParsedFile] = None,
    ) -> List[InfraResource]:
        try:
            return self._parse(detect_format(file_path, content), file_path, content)
        except _RECOVERABLE as exc:
            logger.warning("Infra extraction failed on %s: %s", file_path, exc)
        return []

    def _parse(self, fmt: Optional[InfraFormat], file_path: str, content: str) -> List[InfraResource]:
        if fmt is InfraFormat.TERRAFORM:
            return self.parse_terraform(file_path, content)
        if fmt is InfraFormat.KUBERNETES:
            return self.parse_kubernetes(file_path, content)
        if fmt is InfraFormat.DOCKER_COMPOSE:
            return self.parse_compose(file_path, content)
        return []

    # ------------------------------------------------------------------
    # Terraform
    # ------------------------------------------------------------------

    def parse_terraform(self, file_path: str, content: str) -> List[InfraResource]:
        resources: List[InfraResource] = []
        consumed_until = -1
        for match in _TF_BLOCK.finditer(content):
            if match.start() < consumed_until:
                continue
            block = _hcl_block(content, match.end() - 1)
            if block is None:
                logger.debug("Unterminated %s block in %s", match.group("kind"), file_path)
                continue
            body, close = block
            consumed_until = close

            kind, first, second = match.group("kind"), match.group("first"), match.group("second")
            attrs = parse_hcl_attributes(body)
            if kind in ("resource", "data"):
                if second is None:
                    continue
                resource_type, name = first, second
                attrs.setdefault("provider", first.split("_")[0])
            elif kind == "provider":
                resource_type, name = first, str(attrs.get("alias", first))
            else:
                resource_type, name = kind, first

            dependencies = terraform_references(body)
            if kind == "module" and isinstance(attrs.get("source"), str):
                dependencies.insert(0, attrs["source"])

            resources.append(InfraResource(
                kind=kind,
                fmt=InfraFormat.TERRAFORM.value,
                resource_type=resource_type,
                name=name,
                file=file_path,
                line=line_number(content, match.start("kind")),
                attributes=attrs,
                dependencies=dependencies,
            ))
        return resources

    # ------------------------------------------------------------------
    # Kubernetes
    # ------------------------------------------------------------------

    @staticmethod
    def _split_documents(content: str) -> Iterator[Tuple[int, str]]:
        """Yield ``(first_line, text)`` for each ``---`` separated document."""
        start = 1
        current: List[str] = []
        for index, line in enumerate(content.splitlines(), start=1):
            if line.startswith("---"):
                if any(l.strip() for l in current):
                    yield start, "\n".join(current)
                current = []
                start = index + 1
                continue
            current.append(line)
        if any(l.strip() for l in current):
            yield start, "\n".join(current)

    def parse_kubernetes(self, file_path: str, content: str) -> List[InfraResource]:
        resources: List[InfraResource] = []
        for start, text in self._split_documents(content):
            try:
                document = yaml.safe_load(text)
            except yaml.YAMLError as exc:
                logger.warning("Invalid YAML document at %s:%d: %s", file_path, start, exc)
                continue
            if not isinstance(document, dict):
                continue
            if document.get("apiVersion") and document.get("kind"):
                if document["kind"] != "List":
                    resources.append(self._k8s_resource(document, file_path, start))
                elif isinstance(document.get("items"), list):
                    for item in document["items"]:
                        if isinstance(item, dict) and item.get("apiVersion") and item.get("kind"):
                            resources.append(self._k8s_resource(item, file_path, start))
        return resources

    @staticmethod
    def _k8s_resource(document: Dict[str, Any], file_path: str, line: int) -> InfraResource:
        metadata = document.get("metadata")
        if not isinstance(metadata, dict):
            metadata = {}
        attrs: Dict[str, Any] = {"api_version": document["apiVersion"]}
        for key in ("namespace", "labels", "annotations"):
            if metadata.get(key):
                attrs[key] = metadata[key]
        if isinstance(document.get("spec"), dict):
            attrs["spec"] = document["spec"]
        return InfraResource(
            kind="k8s",
            fmt=InfraFormat.KUBERNETES.value,
            resource_type=str(document["kind"]),
            name=str(metadata.get("name") or "unnamed"),
            file=file_path,
            line=line,
            attributes=attrs,
            dependencies=_k8s_references(document.get("spec")),
        )

    # ------------------------------------------------------------------
    # Docker Compose
    # ------------------------------------------------------------------

    def parse_compose(self, file_path: str, content: str) -> List[InfraResource]:
        document = yaml.safe_load(content)
        if not isinstance(document, dict):
            return []
        resources: List[InfraResource] = []
        lines = content.splitlines()

        def find_line(key: str) -> int:
            pattern = re.compile(rf"^\s*['\"]?{re.escape(key)}['\"]?\s*:")
            return next((i for i, l in enumerate(lines, start=1) if pattern.match(l)), 1)

        services = document.get("services")
        if not isinstance(services, dict):
            services = {}
        for name, config in services.items():
            config = config if isinstance(config, dict) else {}
            depends_on = config.get("depends_on") or []
            if isinstance(depends_on, dict):
                depends_on = list(depends_on)
            elif not isinstance(depends_on, list):
                depends_on = [depends_on]
            attrs = {
                key: config[key]
                for key in ("image", "build", "ports", "volumes", "environment", "networks")
                if key in config
            }
            resources.append(InfraResource(
                kind="service",
                fmt=InfraFormat.DOCKER_COMPOSE.value,
                resource_type="service",
                name=str(name),
                file=file_path,
                line=find_line(str(name)),
                attributes=attrs,
                dependencies=[str(d) for d in depends_on],
            ))

        for section, kind in (("networks", "network"), ("volumes", "volume")):
            entries = document.get(section)
            if not isinstance(entries, dict):
                continue
            for name, config in entries.items():
                resources.append(InfraResource(
                    kind=kind,
                    fmt=InfraFormat.DOCKER_COMPOSE.value,
                    resource_type=kind,
                    name=str(name),
                    file=file_path,
                    line=find_line(str(name)),
                    attributes=config if isinstance(config, dict) else {},
                ))
        return resources

    # ------------------------------------------------------------------
    # Repository scan
    # ------------------------------------------------------------------

    def find_infra_files(self, repo_path: Union[str, Path]) -> Dict[InfraFormat, List[Path]]:
        found: Dict[InfraFormat, List[Path]] = {fmt: [] for fmt in InfraFormat}
        for root, dirs, files in os.walk(repo_path):
            dirs[:] = sorted(d for d in dirs if d not in _INFRA_SKIP_DIRS)
            for filename in sorted(files):
                path = Path(root) / filename
                fmt = detect_format(path.relative_to(repo_path))
                if fmt is not None:
                    found[fmt].append(path)
        return found

    def analyze_repository(self, repo_path: Union[str, Path]) -> InfrastructureAnalysis:
        """Scan *repo_path* for manifests and aggregate everything found."""
        analysis = InfrastructureAnalysis()
        for fmt, paths in self.find_infra_files(repo_path).items():
            for path in paths:
                try:
                    content = path.read_text(encoding="utf-8", errors="ignore")
                    resources = self._parse(detect_format(path, content), str(path), content)
                except OSError as exc:
                    logger.warning("Failed to read %s: %s", path, exc)
                    analysis.failed_files[str(path)] = str(exc)
                    continue
                except _RECOVERABLE as exc:
                    logger.warning("Infra extraction failed on %s: %s", path, exc)
                    analysis.failed_files[str(path)] = f"{type(exc).__name__}: {exc}"
                    continue
                analysis.resources.extend(resources)
                if fmt is InfraFormat.DOCKER_COMPOSE and resources:
                    analysis.compose_files.append(str(path))
                for resource in resources:
                    _categorize(analysis, resource)
        logger.info(
            "Infrastructure: %d resources across %d compose files",
            len(analysis.resources), len(analysis.compose_files),
        )
        return analysis


def _add_unique(target: List[str], value: str) -> None:
    if value not in target:
        target.append(value)


def _categorize(analysis: InfrastructureAnalysis, resource: InfraResource) -> None:
    if resource.fmt == InfraFormat.TERRAFORM.value:
        if resource.kind == "module":
            _add_unique(analysis.terraform_modules, resource.name)
    elif resource.fmt == InfraFormat.KUBERNETES.value:
        buckets = {
            "Namespace": analysis.k8s_namespaces,
            "Service": analysis.k8s_services,
            "ConfigMap": analysis.k8s_config_maps,
            "Secret": analysis.k8s_secrets,
            "Ingress": analysis.k8s_ingresses,
        }
        if resource.resource_type in K8S_WORKLOAD_KINDS:
            _add_unique(analysis.k8s_deployments, resource.name)
        elif resource.resource_type in buckets:
            _add_unique(buckets[resource.resource_type], resource.name)
    else:
        buckets = {
            "service": analysis.compose_services,
            "network": analysis.compose_networks,
            "volume": analysis.compose_volumes,
        }
        _add_unique(buckets[resource.kind], resource.name)


def _k8s_references(spec: Any) -> List[str]:
    """ConfigMaps, Secrets, Services and claims a workload spec points at."""
    refs: List[str] = []

    def visit(node: Any) -> None:
        if isinstance(node, dict):
            for key, value in node.items():
                if key in ("configMapRef", "configMapKeyRef", "configMap") and isinstance(value, dict):
                    if value.get("name"):
                        _add_unique(refs, f"ConfigMap/{value['name']}")
                elif key in ("secretRef", "secretKeyRef") and isinstance(value, dict):
                    if value.get("name"):
                        _add_unique(refs, f"Secret/{value['name']}")
                elif key == "secret" and isinstance(value, dict) and value.get("secretName"):
                    _add_unique(refs, f"Secret/{value['secretName']}")
                elif key == "persistentVolumeClaim" and isinstance(value, dict) and value.get("claimName"):
                    _add_unique(refs, f"PersistentVolumeClaim/{value['claimName']}")
                elif key == "service" and isinstance(value, dict) and value.get("name"):
                    _add_unique(refs, f"Service/{value['name']}")
                elif key == "serviceName" and isinstance(value, str):
                    _add_unique(refs, f"Service/{value}")
                visit(value)
        elif isinstance(node, list):
            for item in node:
                visit(item)

    visit(spec)
    return refs

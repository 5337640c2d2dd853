"""HTTP endpoint extraction for web frameworks across several ecosystems.

Two strategies run over each file:

* **syntax tree** -- decorated functions and controller methods found by the
  parser (``@app.get("/x")``, ``@Get(':id')`` under ``@Controller('users')``)
  plus functions whose definition line carries a route call;
* **regex** -- per-framework patterns over the raw text, which also catch
  routes the parser cannot see (Go, Java, Rust, inline arrow handlers).

Both result lists are merged on ``METHOD:path``; syntax-tree hits come first
and keep their handler name.
"""

from __future__ import annotations

import enum
import logging
import re
from pathlib import Path
from typing import Dict, List, NamedTuple, Optional, Pattern, Tuple, Union

from .models import ANONYMOUS_FUNCTION, ExtractedEndpoint, ParsedFile, RouteParam
from .source_utils import extract_block, line_number, split_top_level

logger = logging.getLogger(__name__)

HTTP_METHODS = ("GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS", "HEAD")

SUPPORTED_EXTENSIONS = {
    ".ts", ".tsx", ".js", ".jsx", ".mjs", ".cjs",
    ".py", ".go", ".java", ".kt", ".rs",
}

API_FILE_HINTS = ("route", "controller", "endpoint", "api", "handler", "router")


class Framework(str, enum.Enum):
    EXPRESS = "express"
    FASTIFY = "fastify"
    KOA = "koa"
    HAPI = "hapi"
    NESTJS = "nestjs"
    FLASK = "flask"
    FASTAPI = "fastapi"
    DJANGO = "django"
    GIN = "gin"
    GO_HTTP = "go-http"
    SPRING = "spring"
    ACTIX = "actix"
    UNKNOWN = "unknown"


class RoutePattern(NamedTuple):
    """One route regex.

    Named groups: ``path`` (required), ``method`` or ``methods`` (a list
    literal), ``handler``.  ``default_method`` applies when neither method
    group matched.  ``call_style`` patterns only accept paths that start
    with ``/`` or ``*``; ``decorator`` patterns take the handler from the
    definition that follows them.
    """
    regex: Pattern[str]
    default_method: str = "GET"
    call_style: bool = False
    decorator: bool = False


def _rx(pattern: str, flags: int = 0) -> Pattern[str]:
    return re.compile(pattern, flags)


_JS_VERBS = r"get|post|put|delete|patch|options|head|all"
_PY_VERBS = r"get|post|put|delete|patch|options|head"
_Q = r"""(?P<q>['"`])"""

_JS_CALL = RoutePattern(
    _rx(rf"\b[\w$]+\.(?P<method>{_JS_VERBS})\s*\(\s*{_Q}(?P<path>[^'\"`]*)(?P=q)"),
    call_style=True,
)
_PY_DECORATOR = RoutePattern(
    _rx(rf"@[\w.]+\.(?P<method>{_PY_VERBS})\s*\(\s*[rf]?['\"](?P<path>[^'\"]*)['\"]"),
    decorator=True,
)

# Ordered per framework; the unknown framework tries every list in turn.
FRAMEWORK_PATTERNS: Dict[Framework, List[RoutePattern]] = {
    Framework.EXPRESS: [_JS_CALL],
    Framework.FASTIFY: [
        _JS_CALL,
        RoutePattern(
            _rx(r"\.route\s*\(\s*\{[^}]*?method\s*:\s*['\"](?P<method>\w+)['\"][^}]*?url\s*:\s*['\"](?P<path>[^'\"]+)['\"]", re.S),
        ),
    ],
    Framework.KOA: [_JS_CALL],
    Framework.HAPI: [
        RoutePattern(
            _rx(r"\.route\s*\(\s*\{[^}]*?method\s*:\s*['\"](?P<method>\w+|\*)['\"][^}]*?path\s*:\s*['\"](?P<path>[^'\"]+)['\"]", re.S),
        ),
        RoutePattern(
            _rx(r"\.route\s*\(\s*\{[^}]*?path\s*:\s*['\"](?P<path>[^'\"]+)['\"][^}]*?method\s*:\s*['\"](?P<method>\w+|\*)['\"]", re.S),
        ),
    ],
    Framework.NESTJS: [
        RoutePattern(
            _rx(r"@(?P<method>Get|Post|Put|Delete|Patch|Options|Head|All)\s*\(\s*(?:['\"`](?P<path>[^'\"`]*)['\"`])?\s*\)"),
            decorator=True,
        ),
    ],
    Framework.FLASK: [
        RoutePattern(
            _rx(r"@[\w.]+\.route\s*\(\s*[rf]?['\"](?P<path>[^'\"]*)['\"](?:[^)]*?methods\s*=\s*[\[\(](?P<methods>[^\]\)]*)[\]\)])?"),
            decorator=True,
        ),
        _PY_DECORATOR,
    ],
    Framework.FASTAPI: [
        _PY_DECORATOR,
        RoutePattern(
            _rx(r"@[\w.]+\.api_route\s*\(\s*['\"](?P<path>[^'\"]*)['\"](?:[^)]*?methods\s*=\s*[\[\(](?P<methods>[^\]\)]*)[\]\)])?"),
            decorator=True,
        ),
    ],
    Framework.DJANGO: [
        RoutePattern(
            _rx(r"(?<![\w.])(?:re_)?path\s*\(\s*r?['\"](?P<path>[^'\"]*)['\"]\s*,\s*(?P<handler>[\w.]+)"),
            default_method="ANY",
        ),
        RoutePattern(
            _rx(r"(?<![\w.])url\s*\(\s*r?['\"](?P<path>[^'\"]*)['\"]\s*,\s*(?P<handler>[\w.]+)"),
            default_method="ANY",
        ),
    ],
    Framework.GIN: [
        RoutePattern(
            _rx(r"\.(?P<method>GET|POST|PUT|DELETE|PATCH|OPTIONS|HEAD|Any)\s*\(\s*\"(?P<path>[^\"]*)\""),
            call_style=True,
        ),
    ],
    Framework.GO_HTTP: [
        RoutePattern(
            _rx(r"\bHandle(?:Func)?\s*\(\s*\"(?P<path>[^\"]+)\"\s*,\s*(?P<handler>[\w.]+)"),
            default_method="ANY",
        ),
    ],
    Framework.SPRING: [
        RoutePattern(
            _rx(r"@(?P<method>Get|Post|Put|Delete|Patch)Mapping\s*\(\s*(?:(?:value|path)\s*=\s*)?\"(?P<path>[^\"]*)\""),
            decorator=True,
        ),
        RoutePattern(
            _rx(r"@RequestMapping\s*\(\s*(?:(?:value|path)\s*=\s*)?\"(?P<path>[^\"]*)\"[^)]*?method\s*=\s*RequestMethod\.(?P<method>\w+)"),
            decorator=True,
        ),
    ],
    Framework.ACTIX: [
        RoutePattern(
            _rx(r"#\[(?P<method>get|post|put|delete|patch|head)\s*\(\s*\"(?P<path>[^\"]+)\""),
            decorator=True,
        ),
        RoutePattern(
            _rx(r"\.route\s*\(\s*\"(?P<path>[^\"]+)\"\s*,\s*web::(?P<method>get|post|put|delete|patch|head)\s*\(\s*\)(?:\s*\.to\s*\(\s*(?P<handler>[\w:]+)\s*\))?"),
        ),
    ],
    Framework.UNKNOWN: [],
}

# Language family of each framework; the unknown framework tries the
# file's own family first so labels follow the source language.
_FRAMEWORK_EXTENSIONS: Dict[Framework, Tuple[str, ...]] = {
    Framework.EXPRESS: (".ts", ".tsx", ".js", ".jsx", ".mjs", ".cjs"),
    Framework.FASTIFY: (".ts", ".tsx", ".js", ".jsx", ".mjs", ".cjs"),
    Framework.KOA: (".ts", ".tsx", ".js", ".jsx", ".mjs", ".cjs"),
    Framework.HAPI: (".ts", ".tsx", ".js", ".jsx", ".mjs", ".cjs"),
    Framework.NESTJS: (".ts", ".tsx", ".js"),
    Framework.FLASK: (".py",),
    Framework.FASTAPI: (".py",),
    Framework.DJANGO: (".py",),
    Framework.GIN: (".go",),
    Framework.GO_HTTP: (".go",),
    Framework.SPRING: (".java", ".kt"),
    Framework.ACTIX: (".rs",),
    Framework.UNKNOWN: (),
}

# Controller-level prefixes composed with method-level decorator paths.
_PREFIX_PATTERNS: Dict[Framework, Pattern[str]] = {
    Framework.NESTJS: _rx(r"@Controller\s*\(\s*(?:\{[^}]*?path\s*:\s*)?(?:['\"`](?P<prefix>[^'\"`]*)['\"`])?"),
    Framework.SPRING: _rx(
        r"@RequestMapping\s*\(\s*(?:(?:value|path)\s*=\s*)?\"(?P<prefix>[^\"]*)\"\s*\)"
        r"\s*(?:@\w+(?:\([^)]*\))?\s*)*(?:public\s+|abstract\s+|final\s+)*class\b"
    ),
}

_NEST_CONTROLLER_DECORATOR = _rx(r"^Controller\s*\(\s*(?:\{[^}]*?path\s*:\s*)?(?:['\"`](?P<prefix>[^'\"`]*)['\"`])?")
_NEST_METHOD_DECORATOR = _rx(r"^(?P<method>Get|Post|Put|Delete|Patch|Options|Head|All)\s*\(\s*(?:['\"`](?P<path>[^'\"`]*)['\"`])?\s*\)")
_PY_ROUTE_DECORATOR = _rx(
    rf"^[\w.]+\.(?P<method>{_PY_VERBS}|route|api_route)\s*\(\s*[rf]?['\"](?P<path>[^'\"]*)['\"](?P<rest>.*)$",
    re.S,
)
_METHODS_KWARG = _rx(r"methods\s*=\s*[\[\(](?P<methods>[^\]\)]*)[\]\)]")
_LINE_ROUTE_CALL = _rx(rf"\.(?P<method>{_JS_VERBS})\s*\(\s*['\"`](?P<path>/[^'\"`]*)['\"`]", re.I)

# Flask/Django converters that precede the parameter name: <int:id>
KNOWN_CONVERTERS = {"int", "float", "str", "string", "path", "uuid", "any", "slug"}

_BRACE_PARAM = _rx(r"\{(?P<name>\w+)(?:\.\.\.)?(?::(?P<type>[^}]+))?\}")
_ANGLE_PARAM = _rx(r"<(?P<first>\w+)(?::(?P<second>\w+))?>")
_COLON_PARAM = _rx(r":(?P<name>[A-Za-z_]\w*)(?P<optional>\?)?")
_IDENTIFIER = _rx(r"^[A-Za-z_$][\w$]*(?:\.[A-Za-z_$][\w$]*)*$")
_DEF_NAME = _rx(r"\bdef\s+(\w+)")
_FN_NAME = _rx(r"\bfn\s+(\w+)")
_CALL_NAME = _rx(r"(\w+)\s*\(")
_GO_METHOD_PREFIX = _rx(r"^(?P<method>GET|POST|PUT|DELETE|PATCH|OPTIONS|HEAD)\s+(?P<path>/.*)$")


# ===================================================================
# Helpers
# ===================================================================

def extract_route_params(route_path: str) -> List[RouteParam]:
    """One :class:`RouteParam` per placeholder, in path order.

    Supports ``:name`` (``:name?`` optional), ``{name}`` / ``{name:type}``
    and ``<name>`` / ``<converter:name>`` / ``<name:type>``.
    """
    found: List[Tuple[int, RouteParam]] = []

    def _blank(match: "re.Match[str]") -> str:
        return " " * len(match.group(0))

    for m in _BRACE_PARAM.finditer(route_path):
        found.append((m.start(), RouteParam(name=m.group("name"), type=m.group("type"))))
    for m in _ANGLE_PARAM.finditer(route_path):
        first, second = m.group("first"), m.group("second")
        if second is None:
            param = RouteParam(name=first)
        elif first in KNOWN_CONVERTERS:
            param = RouteParam(name=second, type=first)
        else:
            param = RouteParam(name=first, type=second)
        found.append((m.start(), param))

    # Colon params are scanned with brace/angle placeholders blanked out so
    # `{id:int}` does not also yield a bogus `:int`.
    remaining = _ANGLE_PARAM.sub(_blank, _BRACE_PARAM.sub(_blank, route_path))
    for m in _COLON_PARAM.finditer(remaining):
        found.append((m.start(), RouteParam(name=m.group("name"), required=m.group("optional") is None)))

    found.sort(key=lambda item: item[0])
    return [param for _, param in found]


def join_route(prefix: str, path: str) -> str:
    parts = [p.strip("/") for p in (prefix, path) if p and p.strip("/")]
    return "/" + "/".join(parts)


def normalize_method(raw: str) -> Optional[str]:
    upper = raw.strip().strip("'\"").upper()
    if upper in HTTP_METHODS:
        return upper
    if upper in ("ALL", "ANY", "*"):
        return "ANY"
    return None


def _methods_from_list(raw: str) -> List[str]:
    methods: List[str] = []
    for part in split_top_level(raw):
        method = normalize_method(part)
        if method and method not in methods:
            methods.append(method)
    return methods


def is_api_file(file_path: Union[str, Path]) -> bool:
    lower = str(file_path).lower()
    return any(hint in lower for hint in API_FILE_HINTS)


def detect_framework(content: str, file_path: Union[str, Path]) -> Framework:
    lower = content.lower()
    ext = Path(file_path).suffix.lower()

    if ext == ".py":
        if "from fastapi" in lower or "import fastapi" in lower:
            return Framework.FASTAPI
        if "from flask" in lower or "import flask" in lower:
            return Framework.FLASK
        if "from django" in lower or "import django" in lower:
            return Framework.DJANGO
        return Framework.UNKNOWN

    if ext == ".go":
        if "github.com/gin-gonic/gin" in lower:
            return Framework.GIN
        if '"net/http"' in lower:
            return Framework.GO_HTTP
        return Framework.UNKNOWN

    if ext in (".java", ".kt"):
        return Framework.SPRING if "springframework" in lower else Framework.UNKNOWN

    if ext == ".rs":
        return Framework.ACTIX if "actix_web" in lower else Framework.UNKNOWN

    def _imports(module: str) -> bool:
        return any(
            sig in lower
            for sig in (f"from '{module}'", f'from "{module}"', f"require('{module}')", f'require("{module}")')
        )

    if "@nestjs/" in lower:
        return Framework.NESTJS
    if _imports("fastify"):
        return Framework.FASTIFY
    if _imports("koa") or _imports("@koa/router") or _imports("koa-router"):
        return Framework.KOA
    if _imports("@hapi/hapi") or _imports("hapi"):
        return Framework.HAPI
    if _imports("express") or "express()" in lower or "express.router" in lower:
        return Framework.EXPRESS
    return Framework.UNKNOWN


# ===================================================================
# Extractor
# ===================================================================

class EndpointExtractor:
    """Finds HTTP endpoints in source files."""

    SUPPORTED_EXTENSIONS = SUPPORTED_EXTENSIONS

    def supports(self, file_path: Union[str, Path]) -> bool:
        return Path(file_path).suffix.lower() in self.SUPPORTED_EXTENSIONS

    def extract_from_file(
        self,
        file_path: Union[str, Path],
        parsed_file: Optional[ParsedFile] = None,
    ) -> List[ExtractedEndpoint]:
        content = Path(file_path).read_text(encoding="utf-8", errors="ignore")
        return self.extract(str(file_path), content, parsed_file)

    def extract(
        self,
        file_path: str,
        content: str,
        parsed_file: Optional[ParsedFile] = None,
    ) -> List[ExtractedEndpoint]:
        framework = detect_framework(content, file_path)
        lines = content.splitlines()

        tree_hits: List[ExtractedEndpoint] = []
        if parsed_file is not None:
            tree_hits = self._extract_from_tree(parsed_file, file_path, lines, framework)
        regex_hits = self._extract_with_regex(content, file_path, framework)

        merged: Dict[str, ExtractedEndpoint] = {}
        for endpoint in tree_hits + regex_hits:
            existing = merged.get(endpoint.key)
            if existing is None:
                merged[endpoint.key] = endpoint
            elif existing.handler is None and endpoint.handler is not None:
                existing.handler = endpoint.handler
        return list(merged.values())

    # ------------------------------------------------------------------
    # Syntax-tree strategy
    # ------------------------------------------------------------------

    def _extract_from_tree(
        self,
        parsed: ParsedFile,
        file_path: str,
        lines: List[str],
        framework: Framework,
    ) -> List[ExtractedEndpoint]:
        endpoints: List[ExtractedEndpoint] = []

        for func in parsed.functions:
            if func.name == ANONYMOUS_FUNCTION:
                continue
            if func.decorators:
                for decorator in func.decorators:
                    endpoints.extend(self._from_python_decorator(
                        decorator, func.name, func.line, file_path, framework,
                    ))
                continue
            line_text = lines[func.line - 1] if 0 < func.line <= len(lines) else ""
            match = _LINE_ROUTE_CALL.search(line_text)
            if match:
                method = normalize_method(match.group("method")) or "GET"
                endpoints.append(self._endpoint(
                    method, match.group("path"), file_path, func.line, framework, func.name,
                ))

        for cls in parsed.classes:
            prefix: Optional[str] = None
            for decorator in cls.decorators:
                m = _NEST_CONTROLLER_DECORATOR.match(decorator)
                if m:
                    prefix = m.group("prefix") or ""
            for method in cls.methods:
                for decorator in method.decorators:
                    m = _NEST_METHOD_DECORATOR.match(decorator)
                    if m:
                        http_method = normalize_method(m.group("method")) or "GET"
                        endpoints.append(self._endpoint(
                            http_method,
                            join_route(prefix or "", m.group("path") or ""),
                            file_path,
                            method.line,
                            Framework.NESTJS if prefix is not None else framework,
                            f"{cls.name}.{method.name}",
                        ))
                        continue
                    endpoints.extend(self._from_python_decorator(
                        decorator, f"{cls.name}.{method.name}", method.line, file_path, framework,
                    ))
        return endpoints

    def _from_python_decorator(
        self,
        decorator: str,
        handler: str,
        line: int,
        file_path: str,
        framework: Framework,
    ) -> List[ExtractedEndpoint]:
        m = _PY_ROUTE_DECORATOR.match(decorator)
        if not m:
            return []
        verb = m.group("method")
        if verb in ("route", "api_route"):
            kwarg = _METHODS_KWARG.search(m.group("rest"))
            methods = _methods_from_list(kwarg.group("methods")) if kwarg else []
            methods = methods or ["GET"]
        else:
            methods = [verb.upper()]
        return [
            self._endpoint(method, m.group("path") or "/", file_path, line, framework, handler)
            for method in methods
        ]

    # ------------------------------------------------------------------
    # Regex strategy
    # ------------------------------------------------------------------

    def _extract_with_regex(
        self,
        content: str,
        file_path: str,
        framework: Framework,
    ) -> List[ExtractedEndpoint]:
        if framework is Framework.UNKNOWN:
            ext = Path(file_path).suffix.lower()
            ordered = sorted(
                FRAMEWORK_PATTERNS.items(),
                key=lambda item: ext not in _FRAMEWORK_EXTENSIONS[item[0]],
            )
            candidates = [(fw, p) for fw, patterns in ordered for p in patterns]
        else:
            candidates = [(framework, p) for p in FRAMEWORK_PATTERNS[framework]]

        endpoints: List[ExtractedEndpoint] = []
        for pattern_framework, pattern in candidates:
            label = framework if framework is not Framework.UNKNOWN else pattern_framework
            try:
                endpoints.extend(self._apply_pattern(content, file_path, label, pattern))
            except (re.error, IndexError, ValueError) as exc:
                logger.warning("Route pattern failed on %s: %s", file_path, exc)
        return endpoints

    def _apply_pattern(
        self,
        content: str,
        file_path: str,
        framework: Framework,
        pattern: RoutePattern,
    ) -> List[ExtractedEndpoint]:
        groups = pattern.regex.groupindex
        found: List[ExtractedEndpoint] = []

        for match in pattern.regex.finditer(content):
            path = match.group("path") or ""
            if "method" in groups and match.group("method"):
                method = normalize_method(match.group("method"))
                if method is None:
                    continue
                methods = [method]
            elif "methods" in groups and match.group("methods"):
                methods = _methods_from_list(match.group("methods")) or [pattern.default_method]
            else:
                methods = [pattern.default_method]

            go_route = _GO_METHOD_PREFIX.match(path)
            if go_route and methods == ["ANY"]:
                # Go 1.22 mux patterns: "GET /users/{id}"
                methods = [go_route.group("method")]
                path = go_route.group("path")

            if pattern.call_style and not path.startswith(("/", "*")):
                continue

            if framework in _PREFIX_PATTERNS:
                prefix = self._prefix_before(content, match.start(), framework)
                if prefix is not None or pattern.decorator:
                    path = join_route(prefix or "", path)
            elif pattern.decorator and not path:
                path = "/"

            handler: Optional[str]
            if "handler" in groups and match.group("handler"):
                handler = match.group("handler")
            elif pattern.decorator:
                handler = self._handler_after_decorator(content, match.end())
            else:
                handler = self._handler_from_call(content, match)

            line = line_number(content, match.start())
            for method in methods:
                found.append(self._endpoint(method, path, file_path, line, framework, handler))
        return found

    @staticmethod
    def _prefix_before(content: str, offset: int, framework: Framework) -> Optional[str]:
        regex = _PREFIX_PATTERNS.get(framework)
        if regex is None:
            return None
        prefix: Optional[str] = None
        for m in regex.finditer(content, 0, offset):
            prefix = m.group("prefix") or ""
        return prefix

    @staticmethod
    def _handler_from_call(content: str, match: "re.Match[str]") -> Optional[str]:
        """Last argument of the route call when it is a bare identifier."""
        open_index = content.find("(", match.start())
        if open_index < 0:
            return None
        block = extract_block(content, open_index)
        if block is None:
            return None
        args = split_top_level(block[0])
        if len(args) < 2:
            return None
        last = args[-1]
        if _IDENTIFIER.match(last) and last not in ("async", "function"):
            return last
        return None

    @staticmethod
    def _handler_after_decorator(content: str, offset: int) -> Optional[str]:
        """Name of the definition that follows a decorator/annotation."""
        rest = content[offset:offset + 1000].splitlines()[1:8]
        for regex in (_DEF_NAME, _FN_NAME):
            for raw in rest:
                m = regex.search(raw)
                if m:
                    return m.group(1)
        for raw in rest:
            line = raw.strip()
            if not line or line.startswith(("@", "#[", "//", "#")):
                continue
            m = _CALL_NAME.search(line)
            return m.group(1) if m else None
        return None

    @staticmethod
    def _endpoint(
        method: str,
        path: str,
        file_path: str,
        line: int,
        framework: Framework,
        handler: Optional[str],
    ) -> ExtractedEndpoint:
        return ExtractedEndpoint(
            method=method,
            path=path,
            file=file_path,
            line=line,
            framework=framework.value,
            handler=handler,
            path_params=extract_route_params(path),
        )

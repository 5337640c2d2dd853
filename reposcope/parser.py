"""Syntax summaries via Tree-sitter for TypeScript, JavaScript and Python.

Each supported file is reduced to a :class:`~reposcope.models.ParsedFile`:
exports, imports, top-level functions, classes and type declarations.
Tree-sitter is error tolerant, so files with minor syntax errors still
produce a useful (partial) summary.  Results are memoised in a
:class:`~reposcope.cache.ParseCache` keyed by absolute path and content hash.
"""

from __future__ import annotations

import importlib
import logging
import threading
import time
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

from .cache import ParseCache, hash_content
from .models import (
    ANONYMOUS_FUNCTION,
    ClassDefinition,
    ExportedSymbol,
    FunctionDefinition,
    ImportedSymbol,
    MethodDefinition,
    ParameterDefinition,
    ParsedFile,
    PropertyDefinition,
    TypeDefinition,
    TypePropertyDefinition,
)
from .source_utils import strip_quotes

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Language <-> file-extension mapping (extensible)
# ---------------------------------------------------------------------------
LANGUAGE_MAP: Dict[str, str] = {
    ".ts": "typescript",
    ".mts": "typescript",
    ".cts": "typescript",
    ".tsx": "tsx",
    ".js": "javascript",
    ".jsx": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
    ".py": "python",
}

# language -> (grammar module, function returning the Language capsule)
_GRAMMAR_MODULES: Dict[str, tuple] = {
    "typescript": ("tree_sitter_typescript", "language_typescript"),
    "tsx": ("tree_sitter_typescript", "language_tsx"),
    "javascript": ("tree_sitter_javascript", "language"),
    "python": ("tree_sitter_python", "language"),
}

_TS_FUNCTION_VALUES = {"arrow_function", "function_expression", "function", "generator_function"}
# Parents whose function value is already recorded under a bound name.
_TS_NAMING_PARENTS = {"variable_declarator", "export_statement"}
_TS_CLASS_TYPES = {"class_declaration", "abstract_class_declaration", "class"}


class ParseError(Exception):
    """A file could not be turned into a syntax summary."""


def detect_language(file_path: Union[str, Path]) -> Optional[str]:
    return LANGUAGE_MAP.get(Path(file_path).suffix.lower())


def _text(node: Any) -> str:
    return node.text.decode("utf-8", errors="replace") if node is not None else ""


def _line(node: Any) -> int:
    return node.start_point[0] + 1


def _has_token(node: Any, token: str) -> bool:
    return any(c.type == token for c in node.children)


def _annotation(node: Any) -> Optional[str]:
    """Type text without the leading colon (``: string`` -> ``string``)."""
    if node is None:
        return None
    text = _text(node).strip()
    if text.startswith(":"):
        text = text[1:].strip()
    return text or None


def _decorator_text(node: Any) -> str:
    return _text(node).lstrip("@").strip()


@dataclass
class _Collected:
    exports: List[ExportedSymbol] = field(default_factory=list)
    imports: List[ImportedSymbol] = field(default_factory=list)
    functions: List[FunctionDefinition] = field(default_factory=list)
    classes: List[ClassDefinition] = field(default_factory=list)
    types: List[TypeDefinition] = field(default_factory=list)

    def kind_of(self, name: str) -> str:
        if any(f.name == name for f in self.functions):
            return "function"
        if any(c.name == name for c in self.classes):
            return "class"
        for t in self.types:
            if t.name == name:
                return t.kind
        return "const"


# ===================================================================
# Parser
# ===================================================================

class SourceParser:
    """Multi-language Tree-sitter parser with an optional parse cache.

    Tree-sitter ``Parser`` objects are not thread safe, so one is created
    per thread and language; the compiled ``Language`` objects are shared.
    """

    _languages: Dict[str, Any] = {}
    _languages_lock = threading.Lock()

    def __init__(self, cache: Optional[ParseCache] = None) -> None:
        self.cache = cache
        self._local = threading.local()

    # ------------------------------------------------------------------
    # Grammar loading
    # ------------------------------------------------------------------

    @classmethod
    def _load_language(cls, language: str) -> Any:
        with cls._languages_lock:
            if language in cls._languages:
                return cls._languages[language]
            mod_name, func_name = _GRAMMAR_MODULES[language]
            from tree_sitter import Language  # type: ignore[import-untyped]

            try:
                mod = importlib.import_module(mod_name)
            except ImportError as exc:
                raise ParseError(
                    f"Grammar package '{mod_name.replace('_', '-')}' is not installed "
                    f"for language '{language}'"
                ) from exc
            ts_lang = Language(getattr(mod, func_name)())
            cls._languages[language] = ts_lang
            logger.debug("Loaded tree-sitter grammar for %s", language)
            return ts_lang

    def _parser_for(self, language: str) -> Any:
        parsers: Dict[str, Any] = getattr(self._local, "parsers", None) or {}
        if language not in parsers:
            from tree_sitter import Parser as TSParser  # type: ignore[import-untyped]

            parsers[language] = TSParser(self._load_language(language))
            self._local.parsers = parsers
        return parsers[language]

    def supports(self, file_path: Union[str, Path]) -> bool:
        return detect_language(file_path) is not None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def parse(self, file_path: Union[str, Path], use_cache: bool = True) -> ParsedFile:
        """Parse the file at *file_path*, consulting the cache first.

        Raises:
            ParseError: Unsupported extension, unreadable file, missing
                grammar or a grammar failure.
        """
        path = Path(file_path).resolve()
        language = detect_language(path)
        if language is None:
            raise ParseError(f"Unsupported file type: {path.name}")

        if not use_cache or self.cache is None:
            return self._parse_text(path, self._read(path), language)

        key = str(path)
        with self.cache.key_lock(key):
            source = self._read(path)
            content_hash = hash_content(source)
            cached = self.cache.lookup(key, content_hash)
            if cached is not None:
                logger.debug("Parse cache hit for %s", key)
                return cached
            parsed = self._parse_text(path, source, language, content_hash)
            self.cache.store(key, content_hash, parsed)
            return parsed

    def parse_files(
        self,
        file_paths: Iterable[Union[str, Path]],
        use_cache: bool = True,
    ) -> Dict[str, ParsedFile]:
        """Parse several files, keyed by resolved path.

        Files that raise :class:`ParseError` are logged and left out.
        """
        results: Dict[str, ParsedFile] = {}
        for file_path in file_paths:
            try:
                parsed = self.parse(file_path, use_cache=use_cache)
            except ParseError as exc:
                logger.warning("Skipping %s: %s", file_path, exc)
                continue
            results[parsed.file_path] = parsed
        return results

    def parse_source(self, file_path: Union[str, Path], source: str) -> ParsedFile:
        """Parse in-memory *source* as if it were the file at *file_path*."""
        path = Path(file_path).resolve()
        language = detect_language(path)
        if language is None:
            raise ParseError(f"Unsupported file type: {path.name}")
        return self._parse_text(path, source, language)

    @staticmethod
    def _read(path: Path) -> str:
        try:
            return path.read_text(encoding="utf-8", errors="ignore")
        except OSError as exc:
            raise ParseError(f"Cannot read {path}: {exc}") from exc

    def _parse_text(
        self,
        path: Path,
        source: str,
        language: str,
        content_hash: Optional[str] = None,
    ) -> ParsedFile:
        started = time.perf_counter()
        parser = self._parser_for(language)
        try:
            tree = parser.parse(source.encode("utf-8"))
        except (ValueError, RuntimeError) as exc:
            raise ParseError(f"Tree-sitter failed on {path}: {exc}") from exc

        acc = _Collected()
        if language == "python":
            self._walk_python(tree.root_node, acc)
        else:
            self._walk_script(tree.root_node, acc)

        return ParsedFile(
            language=language,
            file_path=str(path),
            content_hash=content_hash or hash_content(source),
            exports=acc.exports,
            imports=acc.imports,
            functions=acc.functions,
            classes=acc.classes,
            types=acc.types,
            parse_duration_ms=(time.perf_counter() - started) * 1000.0,
        )

    # ==================================================================
    # TypeScript / JavaScript
    # ==================================================================

    def _walk_script(self, root: Any, acc: _Collected) -> None:
        pending_exports: List[tuple] = []

        for child in root.children:
            if child.type == "import_statement":
                self._ts_import(child, acc)
            elif child.type == "export_statement":
                self._ts_export(child, acc, pending_exports)
            elif child.type in ("lexical_declaration", "variable_declaration"):
                self._ts_require(child, acc)
                self._ts_declaration(child, acc, exported=False)
            elif child.type == "expression_statement":
                self._ts_require(child, acc)
            else:
                self._ts_declaration(child, acc, exported=False)

        # Functions declared inside function bodies, outside class bodies.
        self._ts_nested_functions(root, acc, in_block=False)

        # `export { a, b as c }` and `export default foo` name local bindings.
        for name, local, line, column, is_default in pending_exports:
            acc.exports.append(ExportedSymbol(
                name=name, kind=acc.kind_of(local), line=line,
                column=column, is_default=is_default,
            ))

    # -- imports -------------------------------------------------------

    def _ts_import(self, node: Any, acc: _Collected) -> None:
        line = _line(node)
        source_node = node.child_by_field_name("source")
        for child in node.children:
            if child.type == "import_require_clause":
                # import x = require('y')
                ident = next((c for c in child.named_children if c.type == "identifier"), None)
                string = next((c for c in child.named_children if c.type == "string"), None)
                if ident is not None and string is not None:
                    acc.imports.append(ImportedSymbol(
                        name=_text(ident), source=strip_quotes(_text(string)),
                        is_default=True, line=line,
                    ))
                return

        if source_node is None:
            return
        source = strip_quotes(_text(source_node))
        clause = next((c for c in node.children if c.type == "import_clause"), None)
        if clause is None:
            # Side-effect import: import './polyfills'
            acc.imports.append(ImportedSymbol(name="*", source=source, line=line))
            return

        for part in clause.named_children:
            if part.type == "identifier":
                acc.imports.append(ImportedSymbol(
                    name=_text(part), source=source, is_default=True, line=line,
                ))
            elif part.type == "namespace_import":
                ident = next((c for c in part.named_children if c.type == "identifier"), None)
                acc.imports.append(ImportedSymbol(
                    name="*", source=source, alias=_text(ident) if ident is not None else None,
                    is_namespace=True, line=line,
                ))
            elif part.type == "named_imports":
                for spec in part.named_children:
                    if spec.type != "import_specifier":
                        continue
                    name = spec.child_by_field_name("name")
                    alias = spec.child_by_field_name("alias")
                    acc.imports.append(ImportedSymbol(
                        name=_text(name), source=source,
                        alias=_text(alias) if alias is not None else None, line=line,
                    ))

    def _ts_require(self, node: Any, acc: _Collected) -> None:
        """Record top-level ``require()`` calls as imports."""
        if node.type == "expression_statement":
            call = node.named_children[0] if node.named_children else None
            source = self._require_source(call)
            if source is not None:
                acc.imports.append(ImportedSymbol(name="*", source=source, line=_line(node)))
            return

        for decl in node.named_children:
            if decl.type != "variable_declarator":
                continue
            source = self._require_source(decl.child_by_field_name("value"))
            if source is None:
                continue
            target = decl.child_by_field_name("name")
            line = _line(decl)
            if target is not None and target.type == "object_pattern":
                for prop in target.named_children:
                    if prop.type == "shorthand_property_identifier_pattern":
                        acc.imports.append(ImportedSymbol(name=_text(prop), source=source, line=line))
                    elif prop.type == "pair_pattern":
                        key = prop.child_by_field_name("key")
                        value = prop.child_by_field_name("value")
                        acc.imports.append(ImportedSymbol(
                            name=_text(key), source=source, alias=_text(value), line=line,
                        ))
            else:
                acc.imports.append(ImportedSymbol(
                    name=_text(target), source=source, is_default=True, line=line,
                ))

    @staticmethod
    def _require_source(node: Any) -> Optional[str]:
        if node is None:
            return None
        if node.type == "await_expression" and node.named_children:
            node = node.named_children[0]
        if node.type != "call_expression":
            return None
        func = node.child_by_field_name("function")
        args = node.child_by_field_name("arguments")
        if func is None or _text(func) != "require" or args is None:
            return None
        first = next((a for a in args.named_children if a.type == "string"), None)
        return strip_quotes(_text(first)) if first is not None else None

    # -- exports -------------------------------------------------------

    def _ts_export(self, node: Any, acc: _Collected, pending: List[tuple]) -> None:
        line = _line(node)
        column = node.start_point[1]
        is_default = _has_token(node, "default")
        decorators = [_decorator_text(c) for c in node.children if c.type == "decorator"]

        source_node = node.child_by_field_name("source")
        if source_node is not None:
            self._ts_reexport(node, strip_quotes(_text(source_node)), acc)
            return

        declaration = node.child_by_field_name("declaration")
        if declaration is not None:
            self._ts_declaration(
                declaration, acc, exported=True, is_default=is_default, decorators=decorators,
            )
            return

        clause = next((c for c in node.children if c.type == "export_clause"), None)
        if clause is not None:
            for spec in clause.named_children:
                if spec.type != "export_specifier":
                    continue
                local = _text(spec.child_by_field_name("name"))
                alias = spec.child_by_field_name("alias")
                exported = _text(alias) if alias is not None else local
                pending.append((exported, local, _line(spec), spec.start_point[1], exported == "default"))
            return

        value = node.child_by_field_name("value")
        if value is None and _has_token(node, "="):
            # export = something
            value = next((c for c in node.named_children if c.type != "decorator"), None)
            is_default = True
        if value is None:
            return

        if value.type == "identifier":
            pending.append((_text(value), _text(value), line, column, True))
        elif value.type in _TS_FUNCTION_VALUES:
            name_node = value.child_by_field_name("name")
            name = _text(name_node) if name_node is not None else "default"
            acc.functions.append(self._ts_function(value, name, exported=True))
            acc.exports.append(ExportedSymbol(name, "function", line, column, is_default))
        elif value.type in _TS_CLASS_TYPES:
            cls = self._ts_class(value, exported=True, decorators=decorators)
            acc.classes.append(cls)
            acc.exports.append(ExportedSymbol(cls.name, "class", line, column, is_default))
        else:
            acc.exports.append(ExportedSymbol("default", "const", line, column, is_default))

    def _ts_reexport(self, node: Any, source: str, acc: _Collected) -> None:
        """``export ... from 'x'`` exports names and creates a dependency."""
        line = _line(node)
        clause = next((c for c in node.children if c.type == "export_clause"), None)
        namespace = next((c for c in node.children if c.type == "namespace_export"), None)
        if clause is not None:
            for spec in clause.named_children:
                if spec.type != "export_specifier":
                    continue
                name = _text(spec.child_by_field_name("name"))
                alias_node = spec.child_by_field_name("alias")
                alias = _text(alias_node) if alias_node is not None else None
                acc.exports.append(ExportedSymbol(
                    alias or name, "const", _line(spec), spec.start_point[1],
                    is_default=(alias or name) == "default",
                ))
                acc.imports.append(ImportedSymbol(
                    name=name, source=source, alias=alias,
                    is_default=name == "default", line=line,
                ))
        elif namespace is not None:
            ident = next((c for c in namespace.named_children), None)
            ns_name = _text(ident) if ident is not None else "*"
            acc.exports.append(ExportedSymbol(ns_name, "const", line, node.start_point[1]))
            acc.imports.append(ImportedSymbol(
                name="*", source=source, alias=ns_name, is_namespace=True, line=line,
            ))
        else:
            acc.imports.append(ImportedSymbol(
                name="*", source=source, is_namespace=True, line=line,
            ))

    # -- declarations --------------------------------------------------

    def _ts_declaration(
        self,
        node: Any,
        acc: _Collected,
        exported: bool,
        is_default: bool = False,
        decorators: Optional[List[str]] = None,
    ) -> None:
        ntype = node.type
        line = _line(node)
        column = node.start_point[1]

        if ntype == "ambient_declaration":
            for inner in node.named_children:
                self._ts_declaration(inner, acc, exported, is_default, decorators)
            return

        if ntype in ("function_declaration", "generator_function_declaration", "function_signature"):
            name = _text(node.child_by_field_name("name")) or "default"
            acc.functions.append(self._ts_function(node, name, exported))
            if exported:
                acc.exports.append(ExportedSymbol(name, "function", line, column, is_default))

        elif ntype in _TS_CLASS_TYPES:
            cls = self._ts_class(node, exported, decorators or [])
            acc.classes.append(cls)
            if exported:
                acc.exports.append(ExportedSymbol(cls.name, "class", line, column, is_default))

        elif ntype == "interface_declaration":
            name = _text(node.child_by_field_name("name"))
            body = node.child_by_field_name("body")
            acc.types.append(TypeDefinition(
                name=name, kind="interface", line=line, column=column, is_exported=exported,
                properties=self._ts_type_members(body),
            ))
            if exported:
                acc.exports.append(ExportedSymbol(name, "interface", line, column, is_default))

        elif ntype == "type_alias_declaration":
            name = _text(node.child_by_field_name("name"))
            value = node.child_by_field_name("value")
            props = self._ts_type_members(value) if value is not None and value.type == "object_type" else []
            acc.types.append(TypeDefinition(
                name=name, kind="type", line=line, column=column, is_exported=exported,
                properties=props,
            ))
            if exported:
                acc.exports.append(ExportedSymbol(name, "type", line, column, is_default))

        elif ntype == "enum_declaration":
            name = _text(node.child_by_field_name("name"))
            body = node.child_by_field_name("body")
            values: List[str] = []
            if body is not None:
                for member in body.named_children:
                    if member.type == "enum_assignment":
                        values.append(_text(member.child_by_field_name("name")))
                    elif member.type in ("property_identifier", "string"):
                        values.append(strip_quotes(_text(member)))
            acc.types.append(TypeDefinition(
                name=name, kind="enum", line=line, column=column, is_exported=exported,
                enum_values=values,
            ))
            if exported:
                acc.exports.append(ExportedSymbol(name, "enum", line, column, is_default))

        elif ntype in ("lexical_declaration", "variable_declaration"):
            for decl in node.named_children:
                if decl.type != "variable_declarator":
                    continue
                name_node = decl.child_by_field_name("name")
                if name_node is None or name_node.type != "identifier":
                    continue
                name = _text(name_node)
                value = decl.child_by_field_name("value")
                if value is not None and value.type in _TS_FUNCTION_VALUES:
                    acc.functions.append(self._ts_function(
                        value, name, exported, anchor=decl,
                    ))
                    kind = "function"
                else:
                    kind = "const"
                if exported:
                    acc.exports.append(ExportedSymbol(
                        name, kind, _line(decl), decl.start_point[1], is_default,
                    ))

    def _ts_nested_functions(self, node: Any, acc: _Collected, in_block: bool) -> None:
        """Collect functions declared inside blocks, never inside classes.

        Function expressions and arrows that are not bound to a name (route
        handlers, callbacks, IIFEs) are recorded wherever they appear, named
        after their own name if they have one, else ``<anonymous>``.
        """
        for child in node.children:
            if child.type in ("class_body", "interface_body", "object_type"):
                continue
            if child.type in _TS_FUNCTION_VALUES and node.type not in _TS_NAMING_PARENTS:
                name = _text(child.child_by_field_name("name")) or ANONYMOUS_FUNCTION
                acc.functions.append(self._ts_function(child, name, exported=False))
            elif in_block:
                if child.type in ("function_declaration", "generator_function_declaration"):
                    name = _text(child.child_by_field_name("name"))
                    if name:
                        acc.functions.append(self._ts_function(child, name, exported=False))
                elif child.type == "variable_declarator":
                    value = child.child_by_field_name("value")
                    name_node = child.child_by_field_name("name")
                    if (value is not None and value.type in _TS_FUNCTION_VALUES
                            and name_node is not None and name_node.type == "identifier"):
                        acc.functions.append(self._ts_function(
                            value, _text(name_node), exported=False, anchor=child,
                        ))
            self._ts_nested_functions(child, acc, in_block or child.type == "statement_block")

    def _ts_function(
        self,
        node: Any,
        name: str,
        exported: bool,
        anchor: Any = None,
    ) -> FunctionDefinition:
        anchor = anchor if anchor is not None else node
        return FunctionDefinition(
            name=name,
            line=_line(anchor),
            column=anchor.start_point[1],
            end_line=node.end_point[0] + 1,
            parameters=self._ts_parameters(node),
            return_type=_annotation(node.child_by_field_name("return_type")),
            is_async=_has_token(node, "async"),
            is_exported=exported,
            is_arrow=node.type == "arrow_function",
        )

    def _ts_parameters(self, node: Any) -> List[ParameterDefinition]:
        params_node = node.child_by_field_name("parameters")
        if params_node is None:
            # Arrow function with a single bare parameter: x => ...
            single = node.child_by_field_name("parameter")
            return [ParameterDefinition(name=_text(single))] if single is not None else []

        params: List[ParameterDefinition] = []
        for p in params_node.named_children:
            if p.type in ("required_parameter", "optional_parameter"):
                pattern = p.child_by_field_name("pattern")
                value = p.child_by_field_name("value")
                params.append(ParameterDefinition(
                    name=_text(pattern),
                    type=_annotation(p.child_by_field_name("type")),
                    optional=p.type == "optional_parameter" or value is not None,
                    default_value=_text(value) if value is not None else None,
                ))
            elif p.type == "identifier":
                params.append(ParameterDefinition(name=_text(p)))
            elif p.type == "assignment_pattern":
                left = p.child_by_field_name("left")
                right = p.child_by_field_name("right")
                params.append(ParameterDefinition(
                    name=_text(left), optional=True,
                    default_value=_text(right) if right is not None else None,
                ))
            elif p.type in ("rest_pattern", "object_pattern", "array_pattern"):
                params.append(ParameterDefinition(name=_text(p)))
        return params

    def _ts_class(self, node: Any, exported: bool, decorators: List[str]) -> ClassDefinition:
        name_node = node.child_by_field_name("name")
        all_decorators = list(decorators) + [
            _decorator_text(c) for c in node.children if c.type == "decorator"
        ]

        extends: Optional[str] = None
        implements: List[str] = []
        heritage = next((c for c in node.children if c.type == "class_heritage"), None)
        if heritage is not None:
            for clause in heritage.named_children:
                if clause.type == "extends_clause":
                    value = clause.child_by_field_name("value")
                    if value is None and clause.named_children:
                        value = clause.named_children[0]
                    extends = _text(value) or None
                elif clause.type == "implements_clause":
                    implements.extend(_text(t) for t in clause.named_children)
                elif extends is None:
                    # JavaScript grammar: class_heritage wraps the expression
                    extends = _text(clause)

        methods: List[MethodDefinition] = []
        properties: List[PropertyDefinition] = []
        body = node.child_by_field_name("body")
        if body is not None:
            pending: List[str] = []
            for member in body.named_children:
                if member.type == "decorator":
                    pending.append(_decorator_text(member))
                    continue
                member_decorators = pending + [
                    _decorator_text(c) for c in member.children if c.type == "decorator"
                ]
                pending = []
                if member.type in ("method_definition", "abstract_method_signature", "method_signature"):
                    methods.append(self._ts_method(member, member_decorators))
                elif member.type in ("public_field_definition", "field_definition"):
                    prop = self._ts_property(member, member_decorators)
                    if prop is not None:
                        properties.append(prop)

        return ClassDefinition(
            name=_text(name_node) if name_node is not None else "default",
            line=_line(node),
            column=node.start_point[1],
            end_line=node.end_point[0] + 1,
            extends=extends,
            implements=implements,
            methods=methods,
            properties=properties,
            is_exported=exported,
            is_abstract=node.type == "abstract_class_declaration",
            decorators=all_decorators,
        )

    @staticmethod
    def _visibility(node: Any, name: str) -> str:
        modifier = next((c for c in node.children if c.type == "accessibility_modifier"), None)
        if modifier is not None and _text(modifier) in ("private", "protected"):
            return _text(modifier)
        if name.startswith("#"):
            return "private"
        return "public"

    def _ts_method(self, node: Any, decorators: List[str]) -> MethodDefinition:
        name = _text(node.child_by_field_name("name"))
        return MethodDefinition(
            name=name,
            line=_line(node),
            visibility=self._visibility(node, name),  # type: ignore[arg-type]
            is_static=_has_token(node, "static"),
            is_async=_has_token(node, "async"),
            parameters=self._ts_parameters(node),
            return_type=_annotation(node.child_by_field_name("return_type")),
            decorators=decorators,
        )

    def _ts_property(self, node: Any, decorators: List[str]) -> Optional[PropertyDefinition]:
        name_node = node.child_by_field_name("name") or node.child_by_field_name("property")
        if name_node is None:
            return None
        name = _text(name_node)
        type_text = _annotation(node.child_by_field_name("type"))
        nullable = _has_token(node, "?") or (
            type_text is not None and any(
                part.strip() in ("null", "undefined") for part in type_text.split("|")
            )
        )
        return PropertyDefinition(
            name=name,
            line=_line(node),
            type=type_text,
            visibility=self._visibility(node, name),  # type: ignore[arg-type]
            is_static=_has_token(node, "static"),
            is_readonly=_has_token(node, "readonly"),
            nullable=nullable,
            decorators=decorators,
        )

    @staticmethod
    def _ts_type_members(body: Any) -> List[TypePropertyDefinition]:
        if body is None:
            return []
        props: List[TypePropertyDefinition] = []
        for member in body.named_children:
            if member.type != "property_signature":
                continue
            name = member.child_by_field_name("name")
            props.append(TypePropertyDefinition(
                name=_text(name),
                type=_annotation(member.child_by_field_name("type")) or "unknown",
                optional=_has_token(member, "?"),
            ))
        return props

    # ==================================================================
    # Python
    # ==================================================================

    def _walk_python(self, root: Any, acc: _Collected) -> None:
        dunder_all: Optional[List[str]] = None

        for child in root.children:
            outer = child
            actual = child
            decorators: List[str] = []

            # Unwrap @decorated_definition -> inner function/class
            if child.type == "decorated_definition":
                inner = child.child_by_field_name("definition")
                if inner is None:
                    continue
                actual = inner
                decorators = [_decorator_text(d) for d in child.children if d.type == "decorator"]

            if actual.type == "import_statement":
                self._py_import(actual, acc)
            elif actual.type == "import_from_statement":
                self._py_import_from(actual, acc)
            elif actual.type == "function_definition":
                acc.functions.append(self._py_function(outer, actual, decorators))
            elif actual.type == "class_definition":
                acc.classes.append(self._py_class(outer, actual, decorators))
            elif actual.type == "expression_statement":
                names = self._py_dunder_all(actual)
                if names is not None:
                    dunder_all = names

        if dunder_all is not None:
            public = dunder_all
        else:
            public = [f.name for f in acc.functions] + [c.name for c in acc.classes]
            public = [n for n in public if not n.startswith("_")]

        lines = {f.name: (f.line, f.column) for f in acc.functions}
        lines.update({c.name: (c.line, c.column) for c in acc.classes})
        exported = set(public)
        for name in public:
            line, column = lines.get(name, (1, 0))
            acc.exports.append(ExportedSymbol(name, acc.kind_of(name), line, column))  # type: ignore[arg-type]

        acc.functions[:] = [
            replace(f, is_exported=f.name in exported) for f in acc.functions
        ]
        acc.classes[:] = [
            replace(c, is_exported=c.name in exported) for c in acc.classes
        ]

    @staticmethod
    def _py_import(node: Any, acc: _Collected) -> None:
        line = _line(node)
        for sub in node.named_children:
            if sub.type == "dotted_name":
                mod = _text(sub)
                acc.imports.append(ImportedSymbol(name=mod, source=mod, is_namespace=True, line=line))
            elif sub.type == "aliased_import":
                name_n = sub.child_by_field_name("name")
                alias_n = sub.child_by_field_name("alias")
                mod = _text(name_n)
                acc.imports.append(ImportedSymbol(
                    name=mod, source=mod, alias=_text(alias_n) if alias_n is not None else None,
                    is_namespace=True, line=line,
                ))

    @staticmethod
    def _py_import_from(node: Any, acc: _Collected) -> None:
        mod_node = node.child_by_field_name("module_name")
        if mod_node is None:
            return
        source = _text(mod_node)
        line = _line(node)
        if any(c.type == "wildcard_import" for c in node.children):
            acc.imports.append(ImportedSymbol(name="*", source=source, is_namespace=True, line=line))
            return
        for sub in node.children_by_field_name("name"):
            if sub.type == "aliased_import":
                name_n = sub.child_by_field_name("name")
                alias_n = sub.child_by_field_name("alias")
                acc.imports.append(ImportedSymbol(
                    name=_text(name_n), source=source,
                    alias=_text(alias_n) if alias_n is not None else None, line=line,
                ))
            else:
                acc.imports.append(ImportedSymbol(name=_text(sub), source=source, line=line))

    @staticmethod
    def _py_dunder_all(stmt: Any) -> Optional[List[str]]:
        assign = stmt.named_children[0] if stmt.named_children else None
        if assign is None or assign.type != "assignment":
            return None
        left = assign.child_by_field_name("left")
        right = assign.child_by_field_name("right")
        if _text(left) != "__all__" or right is None or right.type not in ("list", "tuple"):
            return None
        return [strip_quotes(_text(s)) for s in right.named_children if s.type == "string"]

    def _py_function(self, outer: Any, func: Any, decorators: List[str]) -> FunctionDefinition:
        return FunctionDefinition(
            name=_text(func.child_by_field_name("name")),
            line=_line(outer),
            column=outer.start_point[1],
            end_line=outer.end_point[0] + 1,
            parameters=self._py_parameters(func),
            return_type=_text(func.child_by_field_name("return_type")) or None,
            is_async=_has_token(func, "async"),
            decorators=decorators,
        )

    @staticmethod
    def _py_parameters(func: Any) -> List[ParameterDefinition]:
        params_node = func.child_by_field_name("parameters")
        if params_node is None:
            return []
        params: List[ParameterDefinition] = []
        for p in params_node.named_children:
            if p.type == "identifier":
                params.append(ParameterDefinition(name=_text(p)))
            elif p.type == "typed_parameter":
                ident = next((c for c in p.named_children if c.type in (
                    "identifier", "list_splat_pattern", "dictionary_splat_pattern")), None)
                params.append(ParameterDefinition(
                    name=_text(ident), type=_text(p.child_by_field_name("type")) or None,
                ))
            elif p.type in ("default_parameter", "typed_default_parameter"):
                value = p.child_by_field_name("value")
                params.append(ParameterDefinition(
                    name=_text(p.child_by_field_name("name")),
                    type=_text(p.child_by_field_name("type")) or None,
                    optional=True,
                    default_value=_text(value) if value is not None else None,
                ))
            elif p.type in ("list_splat_pattern", "dictionary_splat_pattern"):
                params.append(ParameterDefinition(name=_text(p), optional=True))
        return params

    def _py_class(self, outer: Any, cls: Any, decorators: List[str]) -> ClassDefinition:
        bases: List[str] = []
        superclasses = cls.child_by_field_name("superclasses")
        if superclasses is not None:
            bases = [_text(b) for b in superclasses.named_children if b.type != "keyword_argument"]

        methods: List[MethodDefinition] = []
        properties: List[PropertyDefinition] = []
        body = cls.child_by_field_name("body")
        if body is not None:
            for child in body.children:
                actual = child
                member_decorators: List[str] = []
                if child.type == "decorated_definition":
                    inner = child.child_by_field_name("definition")
                    if inner is None:
                        continue
                    actual = inner
                    member_decorators = [
                        _decorator_text(d) for d in child.children if d.type == "decorator"
                    ]
                if actual.type == "function_definition":
                    name = _text(actual.child_by_field_name("name"))
                    methods.append(MethodDefinition(
                        name=name,
                        line=_line(child),
                        visibility=_py_visibility(name),  # type: ignore[arg-type]
                        is_static=any(d in ("staticmethod", "classmethod") for d in member_decorators),
                        is_async=_has_token(actual, "async"),
                        parameters=self._py_parameters(actual),
                        return_type=_text(actual.child_by_field_name("return_type")) or None,
                        decorators=member_decorators,
                    ))
                elif actual.type == "expression_statement":
                    prop = self._py_attribute(actual)
                    if prop is not None:
                        properties.append(prop)

        is_abstract = "ABC" in bases or any("abstractmethod" in d for m in methods for d in m.decorators)
        return ClassDefinition(
            name=_text(cls.child_by_field_name("name")),
            line=_line(outer),
            column=outer.start_point[1],
            end_line=outer.end_point[0] + 1,
            extends=bases[0] if bases else None,
            implements=bases[1:],
            methods=methods,
            properties=properties,
            is_abstract=is_abstract,
            decorators=decorators,
        )

    @staticmethod
    def _py_attribute(stmt: Any) -> Optional[PropertyDefinition]:
        assign = stmt.named_children[0] if stmt.named_children else None
        if assign is None or assign.type != "assignment":
            return None
        left = assign.child_by_field_name("left")
        type_node = assign.child_by_field_name("type")
        if left is None or left.type != "identifier" or type_node is None:
            return None
        name = _text(left)
        type_text = _text(type_node)
        nullable = type_text.startswith("Optional[") or any(
            part.strip() == "None" for part in type_text.split("|")
        )
        return PropertyDefinition(
            name=name,
            line=_line(stmt),
            type=type_text,
            visibility=_py_visibility(name),  # type: ignore[arg-type]
            is_static=type_text.startswith("ClassVar"),
            is_readonly=type_text.startswith("Final"),
            nullable=nullable,
        )


def _py_visibility(name: str) -> str:
    if name.startswith("__") and not name.endswith("__"):
        return "private"
    if name.startswith("_") and not name.startswith("__"):
        return "protected"
    return "public"

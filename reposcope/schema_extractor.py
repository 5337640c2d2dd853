"""Database and validation schema extraction.

Recognised sources: Prisma models, SQL ``CREATE TABLE``, TypeORM entities,
Sequelize and Drizzle table builders, Zod object schemas, JSON Schema
documents, and the Python ORMs/validators SQLAlchemy, Django and Pydantic.
When none of those apply, exported TypeScript interfaces and object type
aliases are reported as ad hoc schemas.
"""

from __future__ import annotations

import enum
import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

from .models import (
    ExtractedSchema,
    ParsedFile,
    SchemaColumn,
    SchemaIndex,
    SchemaRelation,
)
from .source_utils import extract_block, line_number, split_top_level, strip_comments, strip_quotes

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = {
    ".ts", ".tsx", ".js", ".jsx", ".mjs", ".cjs",
    ".py", ".prisma", ".sql", ".json",
}

SCHEMA_FILE_HINTS = ("schema", "model", "entity", "migration", ".prisma", "types", "interface")


class SchemaSource(str, enum.Enum):
    PRISMA = "prisma"
    SQL = "sql"
    TYPEORM = "typeorm"
    SEQUELIZE = "sequelize"
    DRIZZLE = "drizzle"
    ZOD = "zod"
    JSON_SCHEMA = "json-schema"
    SQLALCHEMY = "sqlalchemy"
    DJANGO = "django"
    PYDANTIC = "pydantic"
    TYPESCRIPT = "typescript"
    UNKNOWN = "unknown"


# ---------------------------------------------------------------------------
# Type maps
# ---------------------------------------------------------------------------
PRISMA_TYPES = {
    "String": "VARCHAR", "Int": "INTEGER", "BigInt": "BIGINT", "Float": "FLOAT",
    "Decimal": "DECIMAL", "Boolean": "BOOLEAN", "DateTime": "TIMESTAMP",
    "Json": "JSON", "Bytes": "BYTEA",
}
DRIZZLE_TYPES = {
    "text": "TEXT", "varchar": "VARCHAR", "integer": "INTEGER", "int": "INTEGER",
    "bigint": "BIGINT", "boolean": "BOOLEAN", "timestamp": "TIMESTAMP",
    "date": "DATE", "json": "JSON", "jsonb": "JSONB", "uuid": "UUID",
    "serial": "SERIAL", "bigserial": "BIGSERIAL", "real": "REAL",
    "numeric": "NUMERIC", "decimal": "DECIMAL",
}
ZOD_TYPES = {
    "string": "VARCHAR", "number": "NUMERIC", "boolean": "BOOLEAN", "date": "DATE",
    "bigint": "BIGINT", "array": "ARRAY", "object": "JSON", "enum": "ENUM",
}
JSON_SCHEMA_TYPES = {
    "string": "VARCHAR", "integer": "INTEGER", "number": "NUMERIC",
    "boolean": "BOOLEAN", "array": "ARRAY", "object": "JSON",
}
JSON_SCHEMA_FORMATS = {"date-time": "TIMESTAMP", "date": "DATE", "uuid": "UUID", "email": "VARCHAR"}

# Ordered detection signals; each entry is (source, predicate over text).
_JS_SIGNALS: List[Tuple[SchemaSource, Any]] = [
    (SchemaSource.TYPEORM, lambda c: "@Entity" in c and "typeorm" in c),
    (SchemaSource.SEQUELIZE, lambda c: "sequelize.define" in c or (".init(" in c and "DataTypes" in c)),
    (SchemaSource.DRIZZLE, lambda c: any(t in c for t in ("pgTable", "mysqlTable", "sqliteTable"))),
    (SchemaSource.ZOD, lambda c: "z.object" in c),
]

_PRISMA_MODEL = re.compile(r"^\s*model\s+(\w+)\s*\{", re.M)
_PRISMA_FIELD = re.compile(r"^(\w+)\s+(\w+)(\[\])?(\?)?\s*(.*)$")
_PRISMA_BLOCK_ATTR = re.compile(r"^@@(index|unique|id)\s*\(\s*(?:fields\s*:\s*)?\[([^\]]*)\]")
_PRISMA_RELATION_FIELDS = re.compile(r"@relation\s*\([^)]*?fields\s*:\s*\[([^\]]*)\]")

_SQL_CREATE_TABLE = re.compile(
    r"CREATE\s+(?:TEMP(?:ORARY)?\s+)?TABLE\s+(?:IF\s+NOT\s+EXISTS\s+)?"
    r"(?P<name>[`\"\[]?[\w.]+[`\"\]]?)\s*\(",
    re.I,
)
_SQL_CREATE_INDEX = re.compile(
    r"CREATE\s+(?P<unique>UNIQUE\s+)?INDEX\s+(?:CONCURRENTLY\s+)?(?:IF\s+NOT\s+EXISTS\s+)?"
    r"(?P<name>[`\"]?\w+[`\"]?)\s+ON\s+(?P<table>[`\"\[]?[\w.]+[`\"\]]?)\s*(?:USING\s+\w+\s*)?\(",
    re.I,
)
_SQL_CONSTRAINT = re.compile(
    r"^(?:CONSTRAINT\s+(?P<constraint>\S+)\s+)?"
    r"(PRIMARY\s+KEY\b|FOREIGN\s+KEY\b|UNIQUE\b|CHECK\b|EXCLUDE\b|(?:INDEX|KEY)\b(?=\s*(?:[`\"]?\w+[`\"]?\s*)?\())",
    re.I,
)
_SQL_COLUMN = re.compile(r"^[`\"\[]?(\w+)[`\"\]]?\s+(.+)$", re.S)
_SQL_TYPE = re.compile(r"^([A-Za-z_]\w*(?:\s+(?:VARYING|PRECISION))?(?:\s*\([^)]*\))?(?:\s*\[\])?)", re.I)
_SQL_DEFAULT = re.compile(r"\bDEFAULT\s+('(?:[^']|'')*'|\([^)]*\)|[^\s,]+(?:\(\))?)", re.I)
_SQL_REFERENCES = re.compile(r"\bREFERENCES\s+[`\"\[]?([\w.]+)[`\"\]]?", re.I)

_TYPEORM_ENTITY = re.compile(r"@Entity\s*\(")
_CLASS_OPEN = re.compile(r"\bclass\s+(\w+)[^{]*\{")
_DECORATOR_AT = re.compile(r"@(\w+)\s*")
_DECORATOR_CALL = re.compile(r"^(\w+)\s*(?:\((.*)\))?$", re.S)
_ARROW_TARGET = re.compile(r"=>\s*(\w+)")
_TS_MEMBER = re.compile(r"^\s*(?:(?:public|private|protected|readonly|static|declare)\s+)*(\w+)([?!])?\s*:\s*([^;=\n]+)")
_RELATION_DECORATORS = {
    "OneToMany": "one-to-many", "ManyToOne": "many-to-one",
    "OneToOne": "one-to-one", "ManyToMany": "many-to-many",
}

_SEQUELIZE_DEFINE = re.compile(r"\.define\s*\(\s*['\"](\w+)['\"]\s*,\s*\{")
_SEQUELIZE_INIT = re.compile(r"\b(\w+)\.init\s*\(\s*\{")
_SEQUELIZE_TYPE = re.compile(r"(?:DataTypes|Sequelize)\.(\w+)")

_DRIZZLE_TABLE = re.compile(r"\b(?:pgTable|mysqlTable|sqliteTable)\s*\(\s*['\"](\w+)['\"]\s*,\s*\{")
_DRIZZLE_INDEX = re.compile(r"\b(uniqueIndex|index)\s*\(\s*(?:['\"](\w+)['\"])?\s*\)\s*\.on\s*\(([^)]*)\)")

_ZOD_OBJECT = re.compile(r"(?:const|let|var)\s+(\w+)\s*(?::[^=]+)?=\s*z\s*\.\s*object\s*\(\s*\{")
_ZOD_TYPE = re.compile(r"^z\s*\.\s*(\w+)")

_PY_CLASS = re.compile(r"^(?P<indent>[ \t]*)class\s+(?P<name>\w+)\s*(?:\((?P<bases>[^)]*)\))?\s*:", re.M)
_PY_ASSIGN = re.compile(r"^(\w+)\s*(?::\s*(?P<ann>[^=]+?))?\s*=\s*(?P<value>.+)$", re.S)
_PY_ANNOTATION = re.compile(r"^(\w+)\s*:\s*(?P<ann>[^=]+?)(?:\s*=\s*(?P<value>.+))?$", re.S)
_PY_KWARG = re.compile(r"^(\w+)\s*=\s*(.+)$", re.S)


def _column_names(raw: str) -> List[str]:
    names = []
    for part in split_top_level(raw):
        name = strip_quotes(part.strip().strip("`\"[]")).split()[0] if part.strip() else ""
        name = name.split(":")[0]
        if name:
            names.append(name)
    return names


def _table_name(raw: str) -> str:
    return raw.strip("`\"[]").split(".")[-1]


def _call_args(text: str, open_index: int) -> str:
    block = extract_block(text, open_index)
    return block[0] if block else ""


def is_schema_file(file_path: Union[str, Path]) -> bool:
    lower = str(file_path).lower()
    return any(hint in lower for hint in SCHEMA_FILE_HINTS)


def _json_title(node: Dict[str, Any], fallback: str) -> str:
    title = node.get("title")
    return title if isinstance(title, str) and title else fallback


# ===================================================================
# Extractor
# ===================================================================

class SchemaExtractor:
    """Extracts :class:`ExtractedSchema` facts from source text."""

    SUPPORTED_EXTENSIONS = SUPPORTED_EXTENSIONS

    def supports(self, file_path: Union[str, Path]) -> bool:
        path = Path(file_path)
        return path.suffix.lower() in self.SUPPORTED_EXTENSIONS or path.name == "schema.prisma"

    def extract_from_file(
        self,
        file_path: Union[str, Path],
        parsed_file: Optional[ParsedFile] = None,
    ) -> List[ExtractedSchema]:
        content = Path(file_path).read_text(encoding="utf-8", errors="ignore")
        return self.extract(str(file_path), content, parsed_file)

    def detect_sources(self, content: str, file_path: str) -> List[SchemaSource]:
        """Every schema dialect present in *content*, strongest first."""
        path = Path(file_path)
        ext = path.suffix.lower()
        if ext == ".prisma":
            return [SchemaSource.PRISMA]
        if ext == ".sql":
            return [SchemaSource.SQL]
        if ext == ".json":
            if '"$schema"' in content or '"properties"' in content:
                return [SchemaSource.JSON_SCHEMA]
            return []
        if ext == ".py":
            found = []
            if "sqlalchemy" in content:
                found.append(SchemaSource.SQLALCHEMY)
            if "django" in content and "models.Model" in content:
                found.append(SchemaSource.DJANGO)
            if "pydantic" in content and "BaseModel" in content:
                found.append(SchemaSource.PYDANTIC)
            return found
        found = [source for source, predicate in _JS_SIGNALS if predicate(content)]
        if not found and _PRISMA_MODEL.search(content):
            found.append(SchemaSource.PRISMA)
        return found

    def extract(
        self,
        file_path: str,
        content: str,
        parsed_file: Optional[ParsedFile] = None,
    ) -> List[ExtractedSchema]:
        handlers = {
            SchemaSource.PRISMA: self._extract_prisma,
            SchemaSource.SQL: self._extract_sql,
            SchemaSource.SEQUELIZE: self._extract_sequelize,
            SchemaSource.DRIZZLE: self._extract_drizzle,
            SchemaSource.ZOD: self._extract_zod,
            SchemaSource.JSON_SCHEMA: self._extract_json_schema,
            SchemaSource.SQLALCHEMY: self._extract_sqlalchemy,
            SchemaSource.DJANGO: self._extract_django,
            SchemaSource.PYDANTIC: self._extract_pydantic,
        }
        schemas: List[ExtractedSchema] = []
        for source in self.detect_sources(content, file_path):
            try:
                if source is SchemaSource.TYPEORM:
                    schemas.extend(self._extract_typeorm(content, file_path, parsed_file))
                else:
                    schemas.extend(handlers[source](content, file_path))
            except (re.error, ValueError, IndexError, KeyError, TypeError, AttributeError) as exc:
                logger.warning("Schema extraction (%s) failed on %s: %s", source.value, file_path, exc)

        if not schemas and parsed_file is not None:
            schemas = self._extract_typescript(parsed_file, file_path)
        return schemas

    # ------------------------------------------------------------------
    # Prisma
    # ------------------------------------------------------------------

    def _extract_prisma(self, content: str, file_path: str) -> List[ExtractedSchema]:
        models = [(m.group(1), m) for m in _PRISMA_MODEL.finditer(content)]
        model_names = {name for name, _ in models}
        schemas: List[ExtractedSchema] = []

        for name, match in models:
            block = extract_block(content, match.end() - 1)
            if block is None:
                continue
            columns: List[SchemaColumn] = []
            relations: List[SchemaRelation] = []
            indexes: List[SchemaIndex] = []
            primary_key: List[str] = []

            for raw in block[0].splitlines():
                line = strip_comments(raw).strip()
                if not line:
                    continue
                attr = _PRISMA_BLOCK_ATTR.match(line)
                if attr:
                    cols = _column_names(attr.group(2))
                    if attr.group(1) == "id":
                        primary_key.extend(cols)
                    else:
                        indexes.append(SchemaIndex(columns=cols, unique=attr.group(1) == "unique"))
                    continue
                if line.startswith("@@"):
                    continue

                field_match = _PRISMA_FIELD.match(line)
                if not field_match:
                    continue
                field_name, field_type, is_array, optional, rest = field_match.groups()
                if "@relation" in rest or field_type in model_names:
                    fk = _PRISMA_RELATION_FIELDS.search(rest)
                    relations.append(SchemaRelation(
                        kind="one-to-many" if is_array else "many-to-one",
                        target=field_type,
                        foreign_key=", ".join(_column_names(fk.group(1))) if fk else None,
                    ))
                    continue

                mapped = PRISMA_TYPES.get(field_type, field_type)
                is_pk = "@id" in rest
                columns.append(SchemaColumn(
                    name=field_name,
                    type=f"{mapped}[]" if is_array else mapped,
                    nullable=bool(optional) and not is_pk,
                    primary_key=is_pk,
                    unique="@unique" in rest,
                    default_value=self._prisma_default(rest),
                ))
                if is_pk:
                    primary_key.append(field_name)

            for column in columns:
                if column.name in primary_key:
                    column.primary_key = True
                    column.nullable = False

            schemas.append(ExtractedSchema(
                name=name,
                source_kind=SchemaSource.PRISMA.value,
                file=file_path,
                line=line_number(content, match.start(1)),
                columns=columns,
                relations=relations,
                indexes=indexes,
                primary_key=primary_key,
            ))
        return schemas

    @staticmethod
    def _prisma_default(rest: str) -> Optional[str]:
        start = rest.find("@default(")
        if start < 0:
            return None
        value = _call_args(rest, start + len("@default"))
        return value.strip() or None

    # ------------------------------------------------------------------
    # SQL
    # ------------------------------------------------------------------

    def _extract_sql(self, content: str, file_path: str) -> List[ExtractedSchema]:
        cleaned = re.sub(r"--[^\n]*", "", content)
        schemas: Dict[str, ExtractedSchema] = {}

        for match in _SQL_CREATE_TABLE.finditer(cleaned):
            block = extract_block(cleaned, match.end() - 1)
            if block is None:
                continue
            name = _table_name(match.group("name"))
            schema = ExtractedSchema(
                name=name,
                source_kind=SchemaSource.SQL.value,
                file=file_path,
                line=line_number(cleaned, match.start()),
            )
            for definition in split_top_level(block[0]):
                self._sql_definition(definition, schema)
            for column in schema.columns:
                if column.name in schema.primary_key:
                    column.primary_key = True
                    column.nullable = False
            schemas[name] = schema

        for match in _SQL_CREATE_INDEX.finditer(cleaned):
            table = schemas.get(_table_name(match.group("table")))
            if table is None:
                continue
            table.indexes.append(SchemaIndex(
                columns=_column_names(_call_args(cleaned, match.end() - 1)),
                unique=bool(match.group("unique")),
                name=match.group("name").strip("`\""),
            ))
        return list(schemas.values())

    @staticmethod
    def _sql_definition(definition: str, schema: ExtractedSchema) -> None:
        constraint = _SQL_CONSTRAINT.match(definition)
        if constraint:
            keyword = re.sub(r"\s+", " ", constraint.group(2).upper())
            paren = definition.find("(", constraint.end())
            cols = _column_names(_call_args(definition, paren)) if paren >= 0 else []
            if keyword == "PRIMARY KEY":
                schema.primary_key.extend(c for c in cols if c not in schema.primary_key)
            elif keyword == "FOREIGN KEY":
                ref = _SQL_REFERENCES.search(definition)
                if ref:
                    schema.relations.append(SchemaRelation(
                        kind="many-to-one", target=_table_name(ref.group(1)),
                        foreign_key=", ".join(cols) or None,
                    ))
            elif keyword in ("UNIQUE", "INDEX", "KEY"):
                name = constraint.group("constraint")
                if name is None and paren >= 0:
                    words = [w for w in definition[constraint.end():paren].split() if w.upper() not in ("KEY", "INDEX")]
                    name = words[-1] if words else None
                schema.indexes.append(SchemaIndex(
                    columns=cols,
                    unique=keyword == "UNIQUE",
                    name=name.strip("`\"") if name else None,
                ))
            return

        column_match = _SQL_COLUMN.match(definition.strip())
        if not column_match:
            return
        name, rest = column_match.groups()
        type_match = _SQL_TYPE.match(rest)
        col_type = type_match.group(1).upper() if type_match else rest.split()[0].upper()
        modifiers = rest[type_match.end():] if type_match else rest

        is_pk = re.search(r"\bPRIMARY\s+KEY\b", modifiers, re.I) is not None
        default = _SQL_DEFAULT.search(modifiers)
        schema.columns.append(SchemaColumn(
            name=name,
            type=re.sub(r"\s+", " ", col_type),
            nullable=not is_pk and re.search(r"\bNOT\s+NULL\b", modifiers, re.I) is None,
            primary_key=is_pk,
            unique=re.search(r"\bUNIQUE\b", modifiers, re.I) is not None,
            default_value=strip_quotes(default.group(1)) if default else None,
        ))
        if is_pk and name not in schema.primary_key:
            schema.primary_key.append(name)
        ref = _SQL_REFERENCES.search(modifiers)
        if ref:
            schema.relations.append(SchemaRelation(
                kind="many-to-one", target=_table_name(ref.group(1)), foreign_key=name,
            ))

    # ------------------------------------------------------------------
    # TypeORM
    # ------------------------------------------------------------------

    def _extract_typeorm(
        self,
        content: str,
        file_path: str,
        parsed_file: Optional[ParsedFile],
    ) -> List[ExtractedSchema]:
        if parsed_file is not None:
            schemas = []
            for cls in parsed_file.classes:
                if not any(d.startswith("Entity") for d in cls.decorators):
                    continue
                members = [
                    ([self._split_decorator(d) for d in prop.decorators], prop.name, prop.nullable, prop.type)
                    for prop in cls.properties
                ]
                schemas.append(self._typeorm_schema(
                    cls.name, cls.line, members,
                    [self._split_decorator(d) for d in cls.decorators], file_path,
                ))
            return schemas
        return self._typeorm_from_text(content, file_path)

    def _typeorm_from_text(self, content: str, file_path: str) -> List[ExtractedSchema]:
        schemas = []
        for match in _TYPEORM_ENTITY.finditer(content):
            class_match = _CLASS_OPEN.search(content, match.end())
            if class_match is None:
                continue
            block = extract_block(content, class_match.end() - 1)
            if block is None:
                continue
            class_decorators = list(self._iter_decorators(content[match.start():class_match.start()]))
            members = []
            for decorators, rest in self._decorated_segments(block[0]):
                member = _TS_MEMBER.match(rest)
                if member is None:
                    continue
                name, marker, type_text = member.groups()
                type_text = type_text.strip()
                nullable = marker == "?" or any(p.strip() in ("null", "undefined") for p in type_text.split("|"))
                members.append((decorators, name, nullable, type_text))
            schemas.append(self._typeorm_schema(
                class_match.group(1), line_number(content, class_match.start()),
                members, class_decorators, file_path,
            ))
        return schemas

    @staticmethod
    def _split_decorator(text: str) -> Tuple[str, str]:
        m = _DECORATOR_CALL.match(text.strip())
        if m is None:
            return text.strip(), ""
        return m.group(1), m.group(2) or ""

    def _iter_decorators(self, text: str) -> Iterator[Tuple[str, str]]:
        for m in re.finditer(r"@(\w+)\s*(\()?", text):
            args = _call_args(text, m.end() - 1) if m.group(2) else ""
            yield m.group(1), args

    def _decorated_segments(self, body: str) -> Iterator[Tuple[List[Tuple[str, str]], str]]:
        """Yield (decorators, following text) for each decorated class member."""
        i = 0
        pending: List[Tuple[str, str]] = []
        while i < len(body):
            m = _DECORATOR_AT.match(body, i)
            if m:
                name = m.group(1)
                i = m.end()
                args = ""
                if i < len(body) and body[i] == "(":
                    block = extract_block(body, i)
                    if block is not None:
                        args, close = block
                        i = close + 1
                pending.append((name, args))
                continue
            if body[i].isspace():
                i += 1
                continue
            end = body.find("\n", i)
            end = len(body) if end < 0 else end
            if pending:
                yield pending, body[i:end]
                pending = []
            i = end + 1

    @staticmethod
    def _typeorm_schema(
        name: str,
        line: int,
        members: List[Tuple[List[Tuple[str, str]], str, bool, Optional[str]]],
        class_decorators: List[Tuple[str, str]],
        file_path: str,
    ) -> ExtractedSchema:
        schema = ExtractedSchema(
            name=name, source_kind=SchemaSource.TYPEORM.value, file=file_path, line=line,
        )
        for decorators, prop_name, nullable, prop_type in members:
            for deco_name, args in decorators:
                if deco_name.endswith("Column"):
                    is_pk = deco_name.startswith("Primary")
                    type_match = re.search(r"type\s*:\s*['\"](\w+)['\"]", args) or re.match(r"\s*['\"](\w+)['\"]", args)
                    default = re.search(r"default\s*:\s*([^,}]+)", args)
                    schema.columns.append(SchemaColumn(
                        name=prop_name,
                        type=type_match.group(1) if type_match else (prop_type or "unknown"),
                        nullable=not is_pk and (nullable or re.search(r"nullable\s*:\s*true", args) is not None),
                        primary_key=is_pk,
                        unique=re.search(r"unique\s*:\s*true", args) is not None,
                        default_value=strip_quotes(default.group(1).strip()) if default else None,
                    ))
                    if is_pk:
                        schema.primary_key.append(prop_name)
                elif deco_name in _RELATION_DECORATORS:
                    target = _ARROW_TARGET.search(args)
                    fallback = (prop_type or "unknown").replace("[]", "").strip()
                    schema.relations.append(SchemaRelation(
                        kind=_RELATION_DECORATORS[deco_name],  # type: ignore[arg-type]
                        target=target.group(1) if target else fallback,
                    ))
                elif deco_name == "JoinColumn" and schema.relations:
                    fk = re.search(r"name\s*:\s*['\"](\w+)['\"]", args)
                    if fk:
                        schema.relations[-1].foreign_key = fk.group(1)
        for deco_name, args in class_decorators:
            if deco_name == "Index":
                cols = re.search(r"\[([^\]]*)\]", args)
                if cols:
                    schema.indexes.append(SchemaIndex(
                        columns=_column_names(cols.group(1)),
                        unique=re.search(r"unique\s*:\s*true", args) is not None,
                    ))
        return schema

    # ------------------------------------------------------------------
    # Sequelize / Drizzle / Zod
    # ------------------------------------------------------------------

    def _extract_sequelize(self, content: str, file_path: str) -> List[ExtractedSchema]:
        schemas = []
        matches = [(m.group(1), m) for m in _SEQUELIZE_DEFINE.finditer(content)]
        matches += [(m.group(1), m) for m in _SEQUELIZE_INIT.finditer(content)]
        for name, match in sorted(matches, key=lambda item: item[1].start()):
            block = extract_block(content, match.end() - 1)
            if block is None:
                continue
            schema = ExtractedSchema(
                name=name, source_kind=SchemaSource.SEQUELIZE.value,
                file=file_path, line=line_number(content, match.start()),
            )
            for entry in split_top_level(block[0]):
                key, _, value = entry.partition(":")
                key = strip_quotes(key.strip())
                value = value.strip()
                if not key or not value:
                    continue
                type_match = _SEQUELIZE_TYPE.search(value)
                is_pk = re.search(r"primaryKey\s*:\s*true", value) is not None
                default = re.search(r"defaultValue\s*:\s*([^,}\n]+)", value)
                schema.columns.append(SchemaColumn(
                    name=key,
                    type=type_match.group(1) if type_match else "unknown",
                    nullable=not is_pk and re.search(r"allowNull\s*:\s*false", value) is None,
                    primary_key=is_pk,
                    unique=re.search(r"unique\s*:\s*true", value) is not None,
                    default_value=strip_quotes(default.group(1).strip()) if default else None,
                ))
                if is_pk:
                    schema.primary_key.append(key)
                ref = re.search(r"references\s*:\s*\{[^}]*model\s*:\s*['\"]?(\w+)", value)
                if ref:
                    schema.relations.append(SchemaRelation(kind="many-to-one", target=ref.group(1), foreign_key=key))
            schemas.append(schema)
        return schemas

    def _extract_drizzle(self, content: str, file_path: str) -> List[ExtractedSchema]:
        schemas = []
        for match in _DRIZZLE_TABLE.finditer(content):
            block = extract_block(content, match.end() - 1)
            if block is None:
                continue
            body, close = block
            schema = ExtractedSchema(
                name=match.group(1), source_kind=SchemaSource.DRIZZLE.value,
                file=file_path, line=line_number(content, match.start()),
            )
            for entry in split_top_level(body):
                key, _, value = entry.partition(":")
                key = strip_quotes(key.strip())
                builder = re.match(r"\s*(\w+)\s*\(", value)
                if not key or builder is None:
                    continue
                is_pk = ".primaryKey()" in value
                default_at = value.find(".default(")
                schema.columns.append(SchemaColumn(
                    name=key,
                    type=DRIZZLE_TYPES.get(builder.group(1).lower(), builder.group(1).upper()),
                    nullable=not is_pk and ".notNull()" not in value,
                    primary_key=is_pk,
                    unique=".unique()" in value,
                    default_value=(
                        _call_args(value, default_at + len(".default")).strip() or None
                        if default_at >= 0 else None
                    ),
                ))
                if is_pk:
                    schema.primary_key.append(key)
                ref = re.search(r"\.references\s*\(\s*\(\s*\)\s*=>\s*(\w+)\.(\w+)", value)
                if ref:
                    schema.relations.append(SchemaRelation(kind="many-to-one", target=ref.group(1), foreign_key=key))

            # Optional third argument: (table) => ({ idx: index('n').on(table.col) })
            call_open = content.find("(", match.start())
            call = extract_block(content, call_open)
            if call is not None:
                tail = content[close + 1:call[1]]
                for idx in _DRIZZLE_INDEX.finditer(tail):
                    schema.indexes.append(SchemaIndex(
                        columns=[c.split(".")[-1].strip() for c in idx.group(3).split(",") if c.strip()],
                        unique=idx.group(1) == "uniqueIndex",
                        name=idx.group(2),
                    ))
            schemas.append(schema)
        return schemas

    def _extract_zod(self, content: str, file_path: str) -> List[ExtractedSchema]:
        schemas = []
        for match in _ZOD_OBJECT.finditer(content):
            block = extract_block(content, match.end() - 1)
            if block is None:
                continue
            schema = ExtractedSchema(
                name=match.group(1), source_kind=SchemaSource.ZOD.value,
                file=file_path, line=line_number(content, match.start()),
            )
            for entry in split_top_level(block[0]):
                key, _, value = entry.partition(":")
                key = strip_quotes(key.strip())
                value = value.strip()
                type_match = _ZOD_TYPE.match(value)
                if not key or type_match is None:
                    continue
                default_at = value.find(".default(")
                schema.columns.append(SchemaColumn(
                    name=key,
                    type=ZOD_TYPES.get(type_match.group(1).lower(), type_match.group(1).upper()),
                    nullable=any(m in value for m in (".optional()", ".nullable()", ".nullish()")),
                    default_value=(
                        _call_args(value, default_at + len(".default")).strip() or None
                        if default_at >= 0 else None
                    ),
                ))
            schemas.append(schema)
        return schemas

    # ------------------------------------------------------------------
    # JSON Schema
    # ------------------------------------------------------------------

    def _extract_json_schema(self, content: str, file_path: str) -> List[ExtractedSchema]:
        try:
            document = json.loads(content)
        except json.JSONDecodeError as exc:
            logger.debug("Not a JSON document %s: %s", file_path, exc)
            return []
        if not isinstance(document, dict):
            return []

        schemas = []
        stem = Path(file_path).name.split(".")[0]
        if isinstance(document.get("properties"), dict):
            schemas.append(self._json_object(_json_title(document, stem), document, file_path))
        for section in ("definitions", "$defs"):
            defs = document.get(section)
            if isinstance(defs, dict):
                for name, definition in defs.items():
                    if isinstance(definition, dict) and isinstance(definition.get("properties"), dict):
                        schemas.append(self._json_object(_json_title(definition, str(name)), definition, file_path))
        return schemas

    @staticmethod
    def _json_object(name: str, node: Dict[str, Any], file_path: str) -> ExtractedSchema:
        required = node.get("required")
        required = [r for r in required if isinstance(r, str)] if isinstance(required, list) else []
        columns = []
        for prop_name, prop in node["properties"].items():
            prop = prop if isinstance(prop, dict) else {}
            raw_type = prop.get("type", "")
            types = [t for t in (raw_type if isinstance(raw_type, list) else [raw_type]) if isinstance(t, str)]
            concrete = next((t for t in types if t and t != "null"), "")
            fmt = prop.get("format")
            mapped = (JSON_SCHEMA_FORMATS.get(fmt) if isinstance(fmt, str) else None) or JSON_SCHEMA_TYPES.get(
                concrete, concrete.upper() or "UNKNOWN",
            )
            default = prop.get("default")
            columns.append(SchemaColumn(
                name=prop_name,
                type=mapped,
                nullable=prop_name not in required or "null" in types,
                default_value=json.dumps(default) if default is not None else None,
            ))
        return ExtractedSchema(
            name=name, source_kind=SchemaSource.JSON_SCHEMA.value, file=file_path, line=1, columns=columns,
        )

    # ------------------------------------------------------------------
    # Python ORMs
    # ------------------------------------------------------------------

    @staticmethod
    def _python_classes(content: str) -> Iterator[Tuple[str, str, int, List[str]]]:
        """Yield ``(name, bases, line, statements)`` for every class.

        Statements are the class body's own top-level lines, with
        bracketed continuations joined.
        """
        lines = content.splitlines()
        for match in _PY_CLASS.finditer(content):
            indent = len(match.group("indent").expandtabs())
            start = line_number(content, match.start())
            statements: List[str] = []
            body_indent: Optional[int] = None
            current = ""
            depth = 0
            for raw in lines[start:]:
                if not raw.strip():
                    continue
                line_indent = len(raw) - len(raw.lstrip())
                if depth == 0 and line_indent <= indent:
                    break
                if body_indent is None:
                    body_indent = line_indent
                if depth == 0 and line_indent != body_indent:
                    continue
                text = strip_comments(raw.strip()) if depth == 0 else raw.strip()
                current = f"{current} {text}".strip() if depth else text
                depth += text.count("(") + text.count("[") + text.count("{")
                depth -= text.count(")") + text.count("]") + text.count("}")
                if depth <= 0:
                    depth = 0
                    if current:
                        statements.append(current)
                    current = ""
            yield match.group("name"), match.group("bases") or "", start, statements

    @staticmethod
    def _kwargs(args: str) -> Tuple[List[str], Dict[str, str]]:
        positional: List[str] = []
        keywords: Dict[str, str] = {}
        for part in split_top_level(args):
            kw = _PY_KWARG.match(part)
            if kw and not part.startswith(("'", '"')):
                keywords[kw.group(1)] = kw.group(2).strip()
            else:
                positional.append(part)
        return positional, keywords

    def _extract_sqlalchemy(self, content: str, file_path: str) -> List[ExtractedSchema]:
        schemas = []
        for name, _bases, line, statements in self._python_classes(content):
            if not any(("Column(" in s or "mapped_column(" in s or s.startswith("__tablename__")) for s in statements):
                continue
            schema = ExtractedSchema(
                name=name, source_kind=SchemaSource.SQLALCHEMY.value, file=file_path, line=line,
            )
            for statement in statements:
                assign = _PY_ASSIGN.match(statement)
                if assign is None:
                    continue
                attr, annotation, value = assign.group(1), assign.group("ann"), assign.group("value").strip()
                if attr == "__tablename__":
                    schema.name = strip_quotes(value)
                    continue
                call = re.match(r"^(?:\w+\.)?(Column|mapped_column|relationship)\s*\(", value)
                if call is None:
                    continue
                args = _call_args(value, call.end() - 1)
                positional, keywords = self._kwargs(args)
                if call.group(1) == "relationship":
                    target = strip_quotes(positional[0]) if positional else (annotation or "unknown")
                    one = keywords.get("uselist") == "False"
                    schema.relations.append(SchemaRelation(
                        kind="one-to-one" if one else "one-to-many", target=target,
                    ))
                    continue

                type_arg = next((p for p in positional if not p.startswith(("ForeignKey", "'", '"'))), None)
                mapped = re.match(r"^Mapped\[(.+)\]$", (annotation or "").strip())
                col_type = type_arg or (mapped.group(1) if mapped else "unknown")
                is_pk = keywords.get("primary_key") == "True"
                if "nullable" in keywords:
                    nullable = keywords["nullable"] == "True"
                else:
                    nullable = bool(mapped) and ("Optional[" in mapped.group(1) or "None" in mapped.group(1))
                    nullable = nullable or not mapped
                schema.columns.append(SchemaColumn(
                    name=attr,
                    type=col_type,
                    nullable=nullable and not is_pk,
                    primary_key=is_pk,
                    unique=keywords.get("unique") == "True",
                    default_value=keywords.get("default") or keywords.get("server_default"),
                ))
                if is_pk:
                    schema.primary_key.append(attr)
                fk = re.search(r"ForeignKey\s*\(\s*['\"]([\w.]+)['\"]", args)
                if fk:
                    schema.relations.append(SchemaRelation(
                        kind="many-to-one", target=fk.group(1).split(".")[0], foreign_key=attr,
                    ))
            schemas.append(schema)
        return schemas

    def _extract_django(self, content: str, file_path: str) -> List[ExtractedSchema]:
        relation_kinds = {
            "ForeignKey": "many-to-one", "OneToOneField": "one-to-one", "ManyToManyField": "many-to-many",
        }
        schemas = []
        for name, bases, line, statements in self._python_classes(content):
            if "Model" not in bases or "models." not in bases:
                continue
            schema = ExtractedSchema(
                name=name, source_kind=SchemaSource.DJANGO.value, file=file_path, line=line,
            )
            for statement in statements:
                field_match = re.match(r"^(\w+)\s*=\s*models\.(\w+)\s*\(", statement)
                if field_match is None:
                    continue
                attr, field_type = field_match.groups()
                positional, keywords = self._kwargs(_call_args(statement, field_match.end() - 1))
                if field_type in relation_kinds:
                    target = strip_quotes(positional[0]) if positional else keywords.get("to", "unknown")
                    schema.relations.append(SchemaRelation(
                        kind=relation_kinds[field_type],  # type: ignore[arg-type]
                        target=strip_quotes(target),
                        foreign_key=attr if field_type != "ManyToManyField" else None,
                    ))
                    if field_type == "ManyToManyField":
                        continue
                is_pk = keywords.get("primary_key") == "True"
                schema.columns.append(SchemaColumn(
                    name=attr,
                    type=field_type,
                    nullable=keywords.get("null") == "True" and not is_pk,
                    primary_key=is_pk,
                    unique=keywords.get("unique") == "True",
                    default_value=keywords.get("default"),
                ))
                if is_pk:
                    schema.primary_key.append(attr)
            if not schema.primary_key:
                # Django adds an implicit auto-increment `id`.
                schema.columns.insert(0, SchemaColumn(name="id", type="AutoField", nullable=False, primary_key=True))
                schema.primary_key.append("id")
            schemas.append(schema)
        return schemas

    def _extract_pydantic(self, content: str, file_path: str) -> List[ExtractedSchema]:
        models = set()
        schemas = []
        for name, bases, line, statements in self._python_classes(content):
            base_names = {b.strip().split(".")[-1] for b in bases.split(",")}
            if "BaseModel" not in base_names and not base_names & models:
                continue
            models.add(name)
            schema = ExtractedSchema(
                name=name, source_kind=SchemaSource.PYDANTIC.value, file=file_path, line=line,
            )
            for statement in statements:
                field_match = _PY_ANNOTATION.match(statement)
                if field_match is None:
                    continue
                attr = field_match.group(1)
                annotation = field_match.group("ann").strip()
                if attr.startswith("_") or attr == "model_config" or annotation.startswith("ClassVar"):
                    continue
                default = field_match.group("value")
                schema.columns.append(SchemaColumn(
                    name=attr,
                    type=annotation,
                    nullable=annotation.startswith("Optional[") or any(
                        part.strip() == "None" for part in annotation.split("|")
                    ),
                    default_value=default.strip() if default else None,
                ))
            schemas.append(schema)
        return schemas

    # ------------------------------------------------------------------
    # TypeScript fallback
    # ------------------------------------------------------------------

    @staticmethod
    def _extract_typescript(parsed: ParsedFile, file_path: str) -> List[ExtractedSchema]:
        schemas = []
        for type_def in parsed.types:
            if not type_def.is_exported or type_def.kind == "enum" or not type_def.properties:
                continue
            schemas.append(ExtractedSchema(
                name=type_def.name,
                source_kind=SchemaSource.TYPESCRIPT.value,
                file=file_path,
                line=type_def.line,
                columns=[
                    SchemaColumn(
                        name=prop.name,
                        type=prop.type,
                        nullable=prop.optional or any(
                            part.strip() in ("null", "undefined") for part in prop.type.split("|")
                        ),
                    )
                    for prop in type_def.properties
                ],
            ))
        return schemas

"""Event producer/consumer detection.

Each messaging style is a pair of regex tables.  A style is only scanned
when a cheap substring check says the file uses it; the generic bus style
is the fallback for files that match nothing more specific.
"""

from __future__ import annotations

import enum
import logging
import re
from pathlib import Path
from typing import Dict, List, NamedTuple, Optional, Sequence, Tuple, Union

from .models import EventFlowEdge, EventFlowGraph, EventFlowNode, ExtractedEvent, ParsedFile
from .source_utils import line_number

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = {".ts", ".tsx", ".js", ".jsx", ".mjs", ".cjs", ".py"}

EVENT_FILE_HINTS = (
    "event", "listener", "handler", "subscriber", "publisher", "consumer",
    "producer", "socket", "pubsub", "message", "queue",
)

_Q = r"['\"`]"
_NAME = rf"{_Q}(?P<name>[^'\"`]+){_Q}"
_HANDLER = r"(?P<handler>\w+|async\s*\([^)]*\)\s*=>|\([^)]*\)\s*=>|function|lambda)"
_NOT_HANDLERS = {"async", "function", "lambda", "await", "new", "this", "self"}


class EventPattern(str, enum.Enum):
    EVENTEMITTER = "eventemitter"
    RXJS = "rxjs"
    REDIS_PUBSUB = "redis-pubsub"
    KAFKA = "kafka"
    RABBITMQ = "rabbitmq"
    SOCKETIO = "socketio"
    CUSTOM_BUS = "custom-bus"


class PatternTable(NamedTuple):
    signals: Tuple[str, ...]
    producers: Tuple[str, ...]
    consumers: Tuple[str, ...]


EVENT_PATTERNS: Dict[EventPattern, PatternTable] = {
    EventPattern.EVENTEMITTER: PatternTable(
        signals=("EventEmitter", ".emit(", "pyee"),
        producers=(
            rf"\.emit\s*\(\s*{_NAME}",
        ),
        consumers=(
            rf"\.(?:on|once|addListener|add_listener)\s*\(\s*{_NAME}\s*(?:,\s*{_HANDLER})?",
        ),
    ),
    EventPattern.RXJS: PatternTable(
        signals=("rxjs", "Subject", ".subscribe("),
        producers=(
            r"\.next\s*\(",
            r"new\s+(?:Subject|BehaviorSubject|ReplaySubject|AsyncSubject)\s*[<(]",
        ),
        consumers=(
            rf"\.subscribe\s*\(\s*(?:\{{|{_HANDLER})",
        ),
    ),
    EventPattern.REDIS_PUBSUB: PatternTable(
        signals=("redis", "ioredis", ".publish("),
        producers=(
            rf"\.publish\s*\(\s*{_NAME}",
        ),
        consumers=(
            rf"\.p?subscribe\s*\(\s*{_NAME}",
        ),
    ),
    EventPattern.KAFKA: PatternTable(
        signals=("kafkajs", "kafka-node", "Kafka", "kafka"),
        producers=(
            rf"\.send\s*\(\s*\{{[^}}]*topic\s*:\s*{_NAME}",
            rf"\bproducer\.(?:send|produce)\s*\(\s*{_NAME}",
        ),
        consumers=(
            rf"\.subscribe\s*\(\s*\{{[^}}]*topics?\s*:\s*\[?\s*{_NAME}",
            rf"\bconsumer\.subscribe\s*\(\s*\[\s*{_NAME}",
            rf"\bKafkaConsumer\s*\(\s*{_NAME}",
        ),
    ),
    EventPattern.RABBITMQ: PatternTable(
        signals=("amqplib", "amqp", "pika", "channel.consume", "channel.publish", "basic_publish"),
        producers=(
            rf"\bchannel\.(?:publish|sendToQueue)\s*\(\s*{_NAME}",
            rf"\bbasic_publish\s*\([^)]*routing_key\s*=\s*{_NAME}",
        ),
        consumers=(
            rf"\bchannel\.(?:consume|bindQueue)\s*\(\s*{_NAME}",
            rf"\bbasic_consume\s*\([^)]*queue\s*=\s*{_NAME}",
        ),
    ),
    EventPattern.SOCKETIO: PatternTable(
        signals=("socket.io", "socketio", "socket.emit", "io.emit"),
        producers=(
            rf"\b(?:socket|io|sio)\.emit\s*\(\s*{_NAME}",
            rf"\.to\s*\([^)]+\)\.emit\s*\(\s*{_NAME}",
            rf"\.broadcast\.emit\s*\(\s*{_NAME}",
        ),
        consumers=(
            rf"\b(?:socket|io|sio)\.on\s*\(\s*{_NAME}\s*(?:,\s*{_HANDLER})?",
        ),
    ),
    EventPattern.CUSTOM_BUS: PatternTable(
        signals=("dispatch(", "eventBus", "messageBus", "event_bus"),
        producers=(
            rf"\bdispatch\s*\(\s*\{{[^}}]*type\s*:\s*{_NAME}",
            rf"\b(?:bus|event_bus)\.publish\s*\(\s*{_NAME}",
            rf"\beventBus\.emit\s*\(\s*{_NAME}",
            rf"\bmessageBus\.send\s*\(\s*{_NAME}",
        ),
        consumers=(
            rf"\b(?:bus|event_bus)\.subscribe\s*\(\s*{_NAME}\s*(?:,\s*{_HANDLER})?",
            rf"\beventBus\.on\s*\(\s*{_NAME}\s*(?:,\s*{_HANDLER})?",
            rf"\bmessageBus\.receive\s*\(\s*{_NAME}",
        ),
    ),
}

_COMPILED: Dict[EventPattern, Tuple[List[re.Pattern], List[re.Pattern]]] = {
    kind: ([re.compile(p) for p in table.producers], [re.compile(p) for p in table.consumers])
    for kind, table in EVENT_PATTERNS.items()
}

_QUOTED = re.compile(r"['\"`]([^'\"`]+)['\"`]")
_TRAILING_HANDLER = re.compile(r",\s*(\w+)\s*\)")
_NEXT_DEF = re.compile(r"^\s*(?:async\s+)?def\s+(\w+)", re.M)
_INFERRED_NAMES = {"rxjs-subject", "rxjs-next", "unknown-event"}

# Specific transports first: a line matched by several styles keeps the
# label of the first one.
_SCAN_ORDER = (
    EventPattern.KAFKA,
    EventPattern.RABBITMQ,
    EventPattern.SOCKETIO,
    EventPattern.REDIS_PUBSUB,
    EventPattern.EVENTEMITTER,
    EventPattern.RXJS,
)


def detect_patterns(content: str) -> List[EventPattern]:
    """Messaging styles *content* appears to use, most specific first."""
    detected = [
        kind for kind in _SCAN_ORDER
        if any(s in content for s in EVENT_PATTERNS[kind].signals)
    ]
    if not detected and any(s in content for s in EVENT_PATTERNS[EventPattern.CUSTOM_BUS].signals):
        detected.append(EventPattern.CUSTOM_BUS)
    return detected


def infer_event_name(matched: str) -> str:
    quoted = _QUOTED.search(matched)
    if quoted:
        return quoted.group(1)
    if "Subject" in matched:
        return "rxjs-subject"
    if ".next" in matched:
        return "rxjs-next"
    return "unknown-event"


def is_event_file(file_path: Union[str, Path]) -> bool:
    lower = str(file_path).lower()
    return any(hint in lower for hint in EVENT_FILE_HINTS)


class EventExtractor:
    """Finds event producers and consumers in JS/TS and Python sources."""

    SUPPORTED_EXTENSIONS = SUPPORTED_EXTENSIONS

    def supports(self, file_path: Union[str, Path]) -> bool:
        return Path(file_path).suffix.lower() in self.SUPPORTED_EXTENSIONS

    def extract_from_file(
        self,
        file_path: Union[str, Path],
        parsed_file: Optional[ParsedFile] = None,
    ) -> List[ExtractedEvent]:
        content = Path(file_path).read_text(encoding="utf-8", errors="ignore")
        return self.extract(str(file_path), content, parsed_file)

    def extract_from_files(self, file_paths: Sequence[Union[str, Path]]) -> List[ExtractedEvent]:
        events: List[ExtractedEvent] = []
        for file_path in file_paths:
            try:
                events.extend(self.extract_from_file(file_path))
            except OSError as exc:
                logger.warning("Event extraction failed for %s: %s", file_path, exc)
        return events

    def extract(
        self,
        file_path: str,
        content: str,
        parsed_file: Optional[ParsedFile] = None,
    ) -> List[ExtractedEvent]:
        events: List[ExtractedEvent] = []
        seen = set()
        claimed = set()

        def add(event: ExtractedEvent) -> None:
            key = (event.name, event.line, event.is_producer)
            if key in seen:
                return
            # An unnamed match on a line already claimed by a named event of
            # the same role is the same call seen through a looser pattern.
            if event.name in _INFERRED_NAMES and (event.line, event.is_producer) in claimed:
                return
            seen.add(key)
            claimed.add((event.line, event.is_producer))
            events.append(event)

        for kind in detect_patterns(content):
            producers, consumers = _COMPILED[kind]
            try:
                for regex in producers:
                    for match in regex.finditer(content):
                        add(ExtractedEvent(
                            name=self._name(match),
                            pattern_kind=kind.value,
                            file=file_path,
                            line=line_number(content, match.start()),
                            is_producer=True,
                        ))
                for regex in consumers:
                    for match in regex.finditer(content):
                        add(ExtractedEvent(
                            name=self._name(match),
                            pattern_kind=kind.value,
                            file=file_path,
                            line=line_number(content, match.start()),
                            is_consumer=True,
                            handler=self._handler(match, content),
                        ))
            except re.error as exc:
                logger.warning("Event pattern %s failed on %s: %s", kind.value, file_path, exc)
        return events

    @staticmethod
    def _name(match: re.Match) -> str:
        name = match.groupdict().get("name")
        return name if name else infer_event_name(match.group(0))

    @staticmethod
    def _handler(match: re.Match, content: str) -> Optional[str]:
        handler = match.groupdict().get("handler")
        if handler:
            return handler if handler.isidentifier() and handler not in _NOT_HANDLERS else None

        # Decorator registration: @sio.on("connect") above a def
        line_start = content.rfind("\n", 0, match.start()) + 1
        if content[line_start:match.start()].strip().startswith("@"):
            following = _NEXT_DEF.search(content, match.end())
            if following and line_number(content, following.start()) - line_number(content, match.start()) <= 3:
                return following.group(1)
            return None

        trailing = _TRAILING_HANDLER.match(content, match.end())
        if trailing and trailing.group(1) not in _NOT_HANDLERS:
            return trailing.group(1)
        return None


# ===================================================================
# Queries over extracted events
# ===================================================================

def _matches(event: ExtractedEvent, event_name: Optional[str]) -> bool:
    return event_name is None or event.name == event_name or event_name in event.name


def get_producers(events: Sequence[ExtractedEvent], event_name: Optional[str] = None) -> List[ExtractedEvent]:
    return [e for e in events if e.is_producer and _matches(e, event_name)]


def get_consumers(events: Sequence[ExtractedEvent], event_name: Optional[str] = None) -> List[ExtractedEvent]:
    return [e for e in events if e.is_consumer and _matches(e, event_name)]


def build_flow_graph(events: Sequence[ExtractedEvent]) -> EventFlowGraph:
    """Connect every producer of an event name to every consumer of it."""
    groups: Dict[str, Tuple[List[ExtractedEvent], List[ExtractedEvent]]] = {}
    for event in events:
        producers, consumers = groups.setdefault(event.name, ([], []))
        (producers if event.is_producer else consumers).append(event)

    graph = EventFlowGraph()
    node_ids = set()

    def node(event: ExtractedEvent, role: str) -> str:
        node_id = f"{role}:{event.file}:{event.line}"
        if node_id not in node_ids:
            node_ids.add(node_id)
            graph.nodes.append(EventFlowNode(id=node_id, role=role, file=event.file, line=event.line))  # type: ignore[arg-type]
        return node_id

    for event_name, (producers, consumers) in groups.items():
        for producer in producers:
            source = node(producer, "producer")
            for consumer in consumers:
                graph.edges.append(EventFlowEdge(
                    source=source, target=node(consumer, "consumer"), event_name=event_name,
                ))
    return graph


def event_stats(events: Sequence[ExtractedEvent]) -> Dict[str, object]:
    producer_names = {e.name for e in events if e.is_producer}
    consumer_names = {e.name for e in events if e.is_consumer}
    by_pattern = {kind.value: 0 for kind in EventPattern}
    for event in events:
        by_pattern[event.pattern_kind] = by_pattern.get(event.pattern_kind, 0) + 1
    return {
        "total_events": len(events),
        "unique_event_names": len({e.name for e in events}),
        "producers": sum(1 for e in events if e.is_producer),
        "consumers": sum(1 for e in events if e.is_consumer),
        "by_pattern": by_pattern,
        "orphaned_producers": sorted(producer_names - consumer_names),
        "orphaned_consumers": sorted(consumer_names - producer_names),
    }

"""Tests for event producer/consumer extraction."""

from pathlib import Path

import pytest

from reposcope.event_extractor import (
    EventExtractor,
    EventPattern,
    build_flow_graph,
    detect_patterns,
    event_stats,
    get_consumers,
    get_producers,
    infer_event_name,
    is_event_file,
)
from reposcope.models import ExtractedEvent


@pytest.fixture
def extractor() -> EventExtractor:
    return EventExtractor()


def _summary(events):
    return [(e.name, e.pattern_kind, e.line, e.is_producer, e.handler) for e in events]


class TestDetection:
    """Messaging style detection."""

    def test_specific_styles_first(self):
        content = "import { Kafka } from 'kafkajs';\nconst e = new EventEmitter();\n"
        assert detect_patterns(content) == [EventPattern.KAFKA, EventPattern.EVENTEMITTER]

    def test_custom_bus_is_a_fallback(self):
        assert detect_patterns("eventBus.on('x', f)") == [EventPattern.CUSTOM_BUS]
        assert detect_patterns("eventBus.emit('x')") == [EventPattern.EVENTEMITTER]

    def test_nothing_detected(self):
        assert detect_patterns("const x = 1;") == []

    def test_infer_event_name(self):
        assert infer_event_name("emit('a.b')") == "a.b"
        assert infer_event_name("new Subject<") == "rxjs-subject"
        assert infer_event_name(".next(") == "rxjs-next"
        assert infer_event_name(".subscribe(") == "unknown-event"

    def test_is_event_file(self):
        assert is_event_file("src/events/order.ts")
        assert is_event_file("app/listeners.py")
        assert not is_event_file("src/utils.ts")


class TestExtraction:
    """One test per messaging style."""

    def test_eventemitter(self, extractor):
        content = (
            "const EventEmitter = require('events');\n"
            "const bus = new EventEmitter();\n"
            "bus.on('order.placed', handleOrder);\n"
            "bus.once('order.placed', (order) => log(order));\n"
            "bus.emit('order.placed', order);\n"
        )
        events = extractor.extract("orders.js", content)

        assert _summary(events) == [
            ("order.placed", "eventemitter", 5, True, None),
            ("order.placed", "eventemitter", 3, False, "handleOrder"),
            ("order.placed", "eventemitter", 4, False, None),
        ]

    def test_kafka_without_rxjs_duplicates(self, extractor):
        content = (
            "const { Kafka } = require('kafkajs');\n"
            "await producer.send({ topic: 'payments', messages: [] });\n"
            "await consumer.subscribe({ topic: 'payments', fromBeginning: true });\n"
        )
        events = extractor.extract("payments.js", content)

        assert [(e.name, e.pattern_kind, e.line, e.is_producer) for e in events] == [
            ("payments", "kafka", 2, True),
            ("payments", "kafka", 3, False),
        ]

    def test_redis_pubsub(self, extractor):
        content = (
            "const Redis = require('ioredis');\n"
            "pub.publish('chat', JSON.stringify(msg));\n"
            "sub.subscribe('chat');\n"
        )
        events = extractor.extract("chat.js", content)

        assert [(e.name, e.pattern_kind, e.is_producer) for e in events] == [
            ("chat", "redis-pubsub", True),
            ("chat", "redis-pubsub", False),
        ]

    def test_socketio_decorator_handler(self, extractor):
        content = (
            "import socketio\n"
            "\n"
            "sio = socketio.AsyncServer()\n"
            "\n"
            "\n"
            '@sio.on("connect")\n'
            "async def connect(sid, environ):\n"
            '    await sio.emit("welcome", {"sid": sid})\n'
        )
        events = extractor.extract("sockets.py", content)

        assert _summary(events) == [
            ("welcome", "socketio", 8, True, None),
            ("connect", "socketio", 6, False, "connect"),
        ]

    def test_rabbitmq_pika(self, extractor):
        content = (
            "import pika\n"
            'channel.basic_publish(exchange="", routing_key="tasks", body=b"hi")\n'
            'channel.basic_consume(queue="tasks", on_message_callback=callback)\n'
        )
        events = extractor.extract("worker.py", content)

        assert [(e.name, e.pattern_kind, e.is_producer) for e in events] == [
            ("tasks", "rabbitmq", True),
            ("tasks", "rabbitmq", False),
        ]

    def test_rxjs_inferred_names(self, extractor):
        content = (
            "import { Subject } from 'rxjs';\n"
            "const updates$ = new Subject<string>();\n"
            "updates$.next('x');\n"
            "updates$.subscribe(onUpdate);\n"
        )
        events = extractor.extract("store.ts", content)

        assert {e.name for e in get_producers(events)} == {"rxjs-subject", "rxjs-next"}
        consumer = get_consumers(events)[0]
        assert consumer.handler == "onUpdate"
        assert consumer.pattern_kind == "rxjs"

    def test_custom_bus(self, extractor):
        content = (
            "store.dispatch({ type: 'cart/add', payload: item });\n"
            "eventBus.on('cart/add', refreshCart);\n"
        )
        events = extractor.extract("cart.ts", content)

        assert _summary(events) == [
            ("cart/add", "custom-bus", 1, True, None),
            ("cart/add", "custom-bus", 2, False, "refreshCart"),
        ]

    def test_plain_file_has_no_events(self, extractor):
        assert extractor.extract("util.ts", "export const add = (a, b) => a + b;\n") == []

    def test_sample_repo_files(self, extractor, sample_repo_path: Path):
        features = sample_repo_path / "src" / "features"
        events = extractor.extract_from_files([
            features / "users" / "service.ts",
            features / "orders" / "handlers.ts",
        ])

        producer = get_producers(events, "user.created")[0]
        consumer = get_consumers(events, "user.created")[0]
        assert producer.line == 20
        assert consumer.handler == "onUserCreated"


def _event(name, file, line, producer):
    return ExtractedEvent(
        name=name, pattern_kind="eventemitter", file=file, line=line,
        is_producer=producer, is_consumer=not producer,
    )


class TestQueries:
    """Filtering, flow graph and statistics."""

    @pytest.fixture
    def events(self):
        return [
            _event("user.created", "a.ts", 1, True),
            _event("user.created", "b.ts", 2, False),
            _event("user.created", "c.ts", 3, False),
            _event("user.deleted", "a.ts", 9, True),
            _event("audit", "d.ts", 4, False),
        ]

    def test_filters(self, events):
        assert len(get_producers(events)) == 2
        assert len(get_producers(events, "user")) == 2
        assert [e.file for e in get_consumers(events, "user.created")] == ["b.ts", "c.ts"]

    def test_flow_graph(self, events):
        graph = build_flow_graph(events)

        assert [(e.source, e.target) for e in graph.edges] == [
            ("producer:a.ts:1", "consumer:b.ts:2"),
            ("producer:a.ts:1", "consumer:c.ts:3"),
        ]
        assert {n.id for n in graph.nodes} == {
            "producer:a.ts:1", "consumer:b.ts:2", "consumer:c.ts:3", "producer:a.ts:9",
        }

    def test_stats(self, events):
        stats = event_stats(events)

        assert stats["total_events"] == 5
        assert stats["unique_event_names"] == 3
        assert stats["producers"] == 2
        assert stats["consumers"] == 3
        assert stats["by_pattern"]["eventemitter"] == 5
        assert stats["by_pattern"]["kafka"] == 0
        assert stats["orphaned_producers"] == ["user.deleted"]
        assert stats["orphaned_consumers"] == ["audit"]

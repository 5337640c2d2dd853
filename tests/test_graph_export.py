"""Tests for DOT and JSON graph export."""

import json

import pytest

from reposcope.graph_export import export_dot, export_json, to_dot, to_json
from reposcope.models import DependencyEdge, DependencyGraph, DependencyNode


@pytest.fixture
def graph() -> DependencyGraph:
    return DependencyGraph(
        nodes=[
            DependencyNode(id="orders", name="orders", kind="feature", path="src/features/orders"),
            DependencyNode(id="users", name="users", kind="feature", path="src/features/users",
                           exported_names=["getUser"]),
            DependencyNode(id="shared", name="shared", kind="feature", path="src/shared"),
        ],
        edges=[
            DependencyEdge("orders", "users", ["src/features/users/service"]),
            DependencyEdge("users", "orders"),
            DependencyEdge("users", "shared"),
        ],
        circular_dependencies=[["orders", "users"]],
    )


class TestJson:
    """Node-link JSON output."""

    def test_document_shape(self, graph):
        document = json.loads(to_json(graph))

        assert document["directed"] is True
        assert [n["id"] for n in document["nodes"]] == ["orders", "users", "shared"]
        assert document["nodes"][1]["exports"] == ["getUser"]
        assert document["nodes"][0]["type"] == "feature"
        assert document["links"][0] == {
            "source": "orders",
            "target": "users",
            "type": "import",
            "symbols": ["src/features/users/service"],
        }

    def test_export_writes_file(self, graph, temp_dir):
        output = temp_dir / "graph.json"
        export_json(graph, output)
        assert json.loads(output.read_text())["links"][2]["target"] == "shared"


class TestDot:
    """Graphviz DOT output."""

    def test_cycles_are_highlighted(self, graph):
        dot = to_dot(graph, title="Features")

        assert dot.startswith('digraph "Features" {')
        assert '"orders" [label="orders", color=red, penwidth=2];' in dot
        assert '"shared" [label="shared"];' in dot
        assert '"orders" -> "users" [color=red, penwidth=2];' in dot
        assert '"users" -> "orders" [color=red, penwidth=2];' in dot
        assert '"users" -> "shared";' in dot
        assert dot.endswith("}")

    def test_highlighting_can_be_disabled(self, graph):
        assert "color=red" not in to_dot(graph, highlight_circular=False)

    def test_quotes_are_escaped(self):
        graph = DependencyGraph(nodes=[DependencyNode(id='a"b', name='a"b', kind="file", path="a")])
        dot = to_dot(graph, title='My "repo"')

        assert 'digraph "My \\"repo\\"" {' in dot
        assert '"a\\"b" [label="a\\"b"];' in dot

    def test_export_writes_file(self, graph, temp_dir):
        output = temp_dir / "graph.dot"
        export_dot(graph, output, title="Features")
        assert output.read_text().startswith('digraph "Features"')

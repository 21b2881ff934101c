from __future__ import annotations

import json

import pytest

from flowrag.application.graph_store import GraphStore
from flowrag.domain.exceptions import GraphIntegrityError
from flowrag.persistence.graph_serializer import load_graph, save_graph


def test_saved_template_loads_back(tmp_path) -> None:
    store = GraphStore()
    store.load_rag_pipeline_template()
    path = save_graph(store.to_document(), tmp_path / "nested" / "graph.json")

    document = load_graph(path)

    assert document == store.to_document()
    assert GraphStore(document).neighbors("retriever-template").outputs == ("context-assembler-template",)


def test_unknown_payload_fields_survive_a_round_trip(tmp_path) -> None:
    store = GraphStore()
    store.add_node("text", node_id="t")
    store.update_node_data("t", {"color": "#ffcc00"})
    path = save_graph(store.to_document(), tmp_path / "graph.json")

    node = GraphStore(load_graph(path)).get_node("t")

    assert node is not None
    assert node.data.payload.model_extra == {"color": "#ffcc00"}


@pytest.mark.parametrize(
    "content",
    [
        "{not json",
        '{"nodes": [{"id": "x", "kind": "teleporter", "data": {"label": "?", "payload": {"kind": "text"}}}]}',
        '{"nodes": [{"id": "x", "kind": "text", "data": {"label": "?", "payload": {"kind": "chunker"}}}]}',
    ],
)
def test_malformed_documents_raise_integrity_error(tmp_path, content: str) -> None:
    path = tmp_path / "bad.json"
    path.write_text(content, encoding="utf-8")

    with pytest.raises(GraphIntegrityError):
        load_graph(path)


def test_edge_handles_use_canvas_key_names(tmp_path) -> None:
    store = GraphStore()
    store.add_node("text", node_id="t")
    store.add_node("router", node_id="r")
    store.add_node("assistant", node_id="matched")
    store.add_node("assistant", node_id="fallback")
    store.connect("t", "r")
    store.connect("r", "matched", source_handle="branch-c1")
    store.connect("r", "fallback", source_handle="default")

    path = save_graph(store.to_document(), tmp_path / "router.json")
    saved = json.loads(path.read_text(encoding="utf-8"))

    assert sorted(saved["edges"][1]) == ["id", "source", "sourceHandle", "target", "targetHandle"]
    assert [edge.source_handle for edge in load_graph(path).edges] == [None, "branch-c1", "default"]


def test_camel_case_document_keeps_router_handles(tmp_path) -> None:
    document = {
        "nodes": [
            {"id": "t", "kind": "text", "data": {"label": "Input", "payload": {"kind": "text"}}},
            {"id": "r", "kind": "router", "data": {"label": "Router", "payload": {"kind": "router"}}},
            {"id": "a", "kind": "assistant", "data": {"label": "A", "payload": {"kind": "assistant"}}},
        ],
        "edges": [
            {"id": "e1", "source": "t", "target": "r", "sourceHandle": None, "targetHandle": None},
            {"id": "e2", "source": "r", "target": "a", "sourceHandle": "branch-c1", "targetHandle": "in"},
        ],
    }
    path = tmp_path / "canvas.json"
    path.write_text(json.dumps(document), encoding="utf-8")

    store = GraphStore(load_graph(path))

    edge = store.get_edge("e2")
    assert edge is not None
    assert edge.source_handle == "branch-c1"
    assert edge.target_handle == "in"

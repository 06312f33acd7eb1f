from finance_api.ocr.schemas import OcrEntity
from finance_api.extraction.entities import (
    anchor_to_text,
    document_lines,
    find_entity,
    number_of,
    pick_prop,
    text_lines,
    text_of,
    walk_entities,
)


def test_text_of_prefers_normalized_text():
    e = OcrEntity.model_validate({"type": "date", "mentionText": "5 mar", "normalizedValue": {"text": "2024-03-05"}})
    assert text_of(e) == "2024-03-05"

    raw = OcrEntity.model_validate({"type": "date", "mentionText": "5 mar"})
    assert text_of(raw) == "5 mar"
    assert text_of(None) is None


def test_number_of(make_entity):
    assert number_of(make_entity("amount", "ignored", number=12.5)) == 12.5
    assert number_of(make_entity("amount", "1.234,56")) == 1234.56
    assert number_of(make_entity("amount", "R$ 10,00")) == 10.0
    assert number_of(make_entity("amount", "n/a")) is None
    assert number_of(None) is None


def test_pick_prop_is_case_insensitive(make_entity):
    parent = make_entity("transaction", props=[
        make_entity("Transaction_Date", "05/03/2024"),
        make_entity("AMOUNT", "12,40"),
    ])
    assert text_of(pick_prop(parent, ["date", "transaction_date"])) == "05/03/2024"
    assert text_of(pick_prop(parent, ["valor", "amount"])) == "12,40"
    assert pick_prop(parent, ["description"]) is None
    assert pick_prop(make_entity("leaf"), ["date"]) is None


def test_walk_entities_preorder(make_entity):
    tree = [
        make_entity("a", props=[make_entity("a1"), make_entity("a2", props=[make_entity("a2x")])]),
        make_entity("b"),
    ]
    assert [e.type for e in walk_entities(tree)] == ["a", "a1", "a2", "a2x", "b"]


def test_walk_entities_handles_deep_trees():
    node = OcrEntity(type="leaf")
    for i in range(3000):
        node = OcrEntity(type=f"n{i}", properties=[node])
    assert sum(1 for _ in walk_entities([node])) == 3001


def test_find_entity_matches_top_level_type_by_regex(make_entity):
    entities = [make_entity("supplier_name", "Loja"), make_entity("bank_name", "Millennium")]
    assert text_of(find_entity(entities, r"bank|issuer")) == "Millennium"
    assert find_entity(entities, r"iban") is None


def test_anchors_resolve_against_document_text(doc_builder):
    doc = doc_builder.line("01/03/2024  Uber   12,40").line("").line("02/03/2024 Bolt 8,00").build()
    assert document_lines(doc) == ["01/03/2024 Uber 12,40", "02/03/2024 Bolt 8,00"]

    seg = doc.pages[0].lines[0].layout.text_anchor
    assert anchor_to_text(seg, doc.text) == "01/03/2024  Uber   12,40"
    assert anchor_to_text(None, doc.text) == ""


def test_text_lines_collapses_whitespace():
    assert text_lines("a   b\r\n\n  c  ") == ["a b", "c"]

from finance_api.extraction.receipts import (
    build_dynamic_receipt_table,
    extract_receipt,
    is_poor_receipt_items,
    receipt_from_entities,
    receipt_from_tables,
    receipt_from_text,
)
from finance_api.extraction.schemas import ExtractedReceipt, ReceiptItem, finalize_receipt

BAKERY_TEXT = "\n".join([
    "PADARIA CENTRAL",
    "Pão de forma",
    "2,50",
    "Leite meio gordo 1,80",
    "TOTAL 4,30",
])


def _items(*rows):
    return [ReceiptItem(description=d, total=t) for d, t in rows]


# -------------------------------------------------
# QUALITY GATE
# -------------------------------------------------

def test_quality_gate_empty_is_poor():
    assert is_poor_receipt_items([]) is True


def test_quality_gate_accepts_clean_items():
    assert is_poor_receipt_items(_items(("Pão de forma", 2.5), ("Leite meio gordo", 1.8))) is False


def test_quality_gate_rejects_non_letter_descriptions():
    items = _items(("Pão de forma", 2.5), ("12 34", 1.0), ("Leite meio gordo", 1.8), ("Queijo da serra", 9.0))
    assert is_poor_receipt_items(items) is True


def test_quality_gate_rejects_missing_totals():
    items = _items(("Pão de forma", 2.5), ("Leite meio gordo", None), ("Queijo da serra", None))
    assert is_poor_receipt_items(items) is True


def test_quality_gate_rejects_single_token_descriptions():
    items = _items(("Pão", 1.0), ("Leite", 1.0), ("Queijo", 1.0), ("Azeite virgem", 1.0))
    assert is_poor_receipt_items(items) is True


# -------------------------------------------------
# TOTALS
# -------------------------------------------------

def test_total_derived_from_items():
    receipt = finalize_receipt(ExtractedReceipt(items=_items(("Pão", 2.50), ("Leite", 1.80))))
    assert receipt.total == 4.30


def test_total_derived_from_unit_price_and_quantity():
    receipt = finalize_receipt(ExtractedReceipt(items=[
        ReceiptItem(description="Água", quantity=3, unit_price=0.5),
        ReceiptItem(description="Café", total=0.8),
    ]))
    assert receipt.total == 2.30


def test_subtotal_derived_from_total_and_tax():
    receipt = finalize_receipt(ExtractedReceipt(total=10.0, tax=2.3))
    assert receipt.subtotal == 7.7
    assert finalize_receipt(ExtractedReceipt(total=10.0, tax=2.3, subtotal=8.0)).subtotal == 8.0


def test_total_stays_absent_without_item_values():
    receipt = finalize_receipt(ExtractedReceipt(tax=1.0, items=[ReceiptItem(description="Leite meio gordo")]))
    assert receipt.total is None
    assert receipt.subtotal is None


# -------------------------------------------------
# ENTITIES
# -------------------------------------------------

def test_receipt_end_to_end_from_entities(doc_builder):
    doc = (
        doc_builder
        .entity({"type": "line_item", "properties": [
            {"type": "description", "mentionText": "Pão"},
            {"type": "amount", "normalizedValue": {"numberValue": 2.50}},
        ]})
        .entity({"type": "line_item", "properties": [
            {"type": "description", "mentionText": "Leite"},
            {"type": "amount", "normalizedValue": {"numberValue": 1.80}},
        ]})
        .build()
    )
    receipt = extract_receipt(doc)
    assert [i.description for i in receipt.items] == ["Pão", "Leite"]
    assert receipt.total == 4.30


def test_receipt_entities_take_totals_from_text(doc_builder):
    doc = (
        doc_builder
        .raw("CONTINENTE\nNIF 500100144\nConsumidor final\nIVA 2,34\nTOTAL 12,50")
        .entity({"type": "line_item", "properties": [{"type": "description", "mentionText": "Leite meio gordo"}]})
        .build()
    )
    receipt = extract_receipt(doc)
    assert [i.description for i in receipt.items] == ["Leite meio gordo"]
    assert receipt.total == 12.50
    assert receipt.tax == 2.34
    assert receipt.subtotal == 10.16


def test_receipt_entities_header_fields_and_tax(make_entity):
    entities = [
        make_entity("supplier_name", "Café Central"),
        make_entity("receipt_date", "05/03/2024"),
        make_entity("total_amount", number=12.30),
        make_entity("total_tax_amount", number=2.30),
        make_entity("line_item", props=[
            make_entity("line_item/description", "Menu do dia"),
            make_entity("line_item/amount", number=12.30),
            make_entity("tax_rate", "23%", number=23),
        ]),
    ]
    receipt = receipt_from_entities(entities)
    assert receipt.merchant == "Café Central"
    assert receipt.date == "2024-03-05"
    assert receipt.total == 12.30
    assert receipt.tax == 2.30
    item = receipt.items[0]
    assert item.description == "Menu do dia"
    assert item.tax_rate == 23
    assert item.tax_amount == 2.30


def test_receipt_entities_without_items():
    assert receipt_from_entities([]) is None


# -------------------------------------------------
# TABLES
# -------------------------------------------------

def _grocery_doc(builder):
    return (
        builder
        .raw("SUPERMERCADO BOM PRECO")
        .raw("Data: 05/03/2024")
        .table(
            ["Descrição", "Qtd", "Preço Unit.", "Total"],
            [
                ["Arroz Agulha 1kg", "2", "1,49", "2,98"],
                ["Azeite Virgem Extra", "1", "5,99", "5,99"],
            ],
        )
        .raw("TOTAL 8,97")
        .build()
    )


def test_receipt_from_table(doc_builder):
    receipt = receipt_from_tables(_grocery_doc(doc_builder))
    assert [(i.description, i.quantity, i.unit_price, i.total) for i in receipt.items] == [
        ("Arroz Agulha 1kg", 2.0, 1.49, 2.98),
        ("Azeite Virgem Extra", 1.0, 5.99, 5.99),
    ]
    assert receipt.total == 8.97
    assert receipt.merchant == "SUPERMERCADO BOM PRECO"
    assert receipt.date == "2024-03-05"


def test_dynamic_receipt_table(doc_builder):
    table = build_dynamic_receipt_table(_grocery_doc(doc_builder))
    assert table.headers == ["Descrição", "Qtd", "Preço Unit.", "Total"]
    assert table.rows[0] == ["Arroz Agulha 1kg", "2", "1,49", "2,98"]
    assert table.column_semantics == {"description": 0, "quantity": 1, "unit_price": 2, "total": 3}


def test_extract_receipt_attaches_table(doc_builder):
    receipt = extract_receipt(_grocery_doc(doc_builder))
    assert len(receipt.items) == 2
    assert receipt.table is not None
    assert extract_receipt(_grocery_doc(type(doc_builder)()), is_receipt=False).table is None


# -------------------------------------------------
# TEXT
# -------------------------------------------------

def test_receipt_from_text():
    receipt = receipt_from_text(BAKERY_TEXT)
    assert [(i.description, i.total) for i in receipt.items] == [("Pão de forma", 2.50), ("Leite meio gordo", 1.80)]
    assert receipt.total == 4.30
    assert receipt.merchant == "PADARIA CENTRAL"


def test_receipt_from_text_inline_quantity_and_prices():
    receipt = receipt_from_text("Iogurte natural 4x 0,45 1,80")
    item = receipt.items[0]
    assert item.description == "Iogurte natural"
    assert (item.quantity, item.unit_price, item.total) == (4.0, 0.45, 1.80)


def test_receipt_from_text_nothing():
    assert receipt_from_text("") is None
    assert receipt_from_text("Obrigado pela visita") is None


def test_poor_structured_items_fall_back_to_text(doc_builder):
    doc = (
        doc_builder
        .raw(BAKERY_TEXT)
        .entity({"type": "line_item", "properties": [
            {"type": "description", "mentionText": "12"},
            {"type": "amount", "mentionText": "3,00"},
        ]})
        .entity({"type": "line_item", "properties": [
            {"type": "description", "mentionText": "--"},
            {"type": "amount", "mentionText": "1,00"},
        ]})
        .build()
    )
    receipt = extract_receipt(doc)
    assert [i.description for i in receipt.items] == ["Pão de forma", "Leite meio gordo"]


def test_llm_mapper_result_replaces_structured_items(doc_builder):
    doc = doc_builder.raw(BAKERY_TEXT).build()

    def mapper(_doc):
        return ExtractedReceipt(merchant="Padaria", items=_items(("Pão de forma caseiro", 2.5), ("Leite meio gordo", 1.8)))

    receipt = extract_receipt(doc, llm_mapper=mapper)
    assert receipt.merchant == "Padaria"
    assert receipt.items[0].description == "Pão de forma caseiro"
    assert receipt.total == 4.30

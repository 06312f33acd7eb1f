import pytest

from finance_api.extraction.transactions import (
    extract_from_lines,
    extract_from_tables,
    extract_from_text,
    extract_transactions,
    map_transactions,
)


STATEMENT_TEXT = "\n".join([
    "01/03/2024 Supermercado Continente 45,90 D",
    "02/03/2024 Transferência recebida 1.200,00 C",
    "Total: 120,00",
])


# -------------------------------------------------
# ENTITY MAPPER
# -------------------------------------------------

def test_entity_mapper_reads_typed_properties(make_entity):
    entities = [
        make_entity("transaction", props=[
            make_entity("transaction_date", "05/03/2024"),
            make_entity("description", "Uber"),
            make_entity("amount", "12,40"),
            make_entity("category", "transporte"),
        ]),
    ]
    txs = map_transactions(entities)
    assert len(txs) == 1
    assert txs[0].date == "2024-03-05"
    assert txs[0].description == "Uber"
    assert txs[0].amount == 12.40
    assert txs[0].suggested_category == "transporte"


def test_entity_mapper_scans_untyped_properties(make_entity):
    entities = [
        make_entity(None, props=[
            make_entity("valor", "9,99"),
            make_entity(None, "Netflix Assinatura"),
        ]),
    ]
    txs = map_transactions(entities, today="2024-01-01")
    assert len(txs) == 1
    assert txs[0].description == "Netflix Assinatura"
    assert txs[0].amount == 9.99
    # no date anywhere -> explicit fallback
    assert txs[0].date == "2024-01-01"


def test_entity_mapper_finds_nested_rows(make_entity):
    entities = [
        make_entity("statement", props=[
            make_entity("table", props=[
                make_entity("table_row", props=[
                    make_entity("data", "02/03/2024"),
                    make_entity("descricao", "Farmácia"),
                    make_entity("valor", number=-8.5),
                ]),
            ]),
        ]),
    ]
    txs = map_transactions(entities)
    assert [(t.date, t.description, t.amount) for t in txs] == [("2024-03-02", "Farmácia", -8.5)]


def test_entity_mapper_drops_rows_without_amount(make_entity):
    entities = [
        make_entity("transaction", props=[
            make_entity("date", "05/03/2024"),
            make_entity("description", "Sem valor"),
        ]),
    ]
    assert map_transactions(entities) == []


# -------------------------------------------------
# TABLES
# -------------------------------------------------

def test_table_with_headers(doc_builder):
    doc = doc_builder.table(["Data", "Descrição", "Valor"], [["2024-03-01", "Supermercado", "-45,90"]]).build()
    txs = extract_from_tables(doc)
    assert len(txs) == 1
    assert txs[0].date == "2024-03-01"
    assert txs[0].description == "Supermercado"
    assert txs[0].amount == -45.90


def test_table_debit_credit_column(doc_builder):
    doc = doc_builder.table(
        ["Data", "Descrição", "Valor", "D/C"],
        [
            ["01/03/2024", "Salário", "1.500,00", "C"],
            ["02/03/2024", "Renda", "700,00", "D"],
        ],
    ).build()
    assert [t.amount for t in extract_from_tables(doc)] == [1500.0, -700.0]


def test_table_without_headers_infers_columns(doc_builder):
    doc = doc_builder.table(None, [
        ["05/03/2024", "Farmácia Central", "12,30"],
        ["06/03/2024", "Padaria", "(3,20)"],
    ]).build()
    txs = extract_from_tables(doc)
    assert [(t.date, t.description, t.amount) for t in txs] == [
        ("2024-03-05", "Farmácia Central", 12.30),
        ("2024-03-06", "Padaria", -3.20),
    ]


def test_table_value_date_header_is_not_the_amount(doc_builder):
    doc = doc_builder.table(
        ["Data Mov.", "Data Valor", "Descrição", "Montante"],
        [["01/03/2024", "02/03/2024", "Supermercado", "-45,90"]],
    ).build()
    assert [(t.date, t.description, t.amount) for t in extract_from_tables(doc)] == [
        ("2024-03-01", "Supermercado", -45.90),
    ]


def test_table_rows_without_date_are_skipped(doc_builder):
    doc = doc_builder.table(["Data", "Descrição", "Valor"], [["", "Saldo anterior", "100,00"]]).build()
    assert extract_from_tables(doc) == []


# -------------------------------------------------
# PLAIN TEXT
# -------------------------------------------------

def test_plain_text_skips_summary_lines():
    txs = extract_from_text(STATEMENT_TEXT)
    assert len(txs) == 2
    assert all("Total" not in t.description for t in txs)


def test_plain_text_direction_markers():
    txs = extract_from_text(STATEMENT_TEXT)
    assert (txs[0].date, txs[0].description, txs[0].amount) == ("2024-03-01", "Supermercado Continente", -45.90)
    assert (txs[1].date, txs[1].description, txs[1].amount) == ("2024-03-02", "Transferência recebida", 1200.0)


@pytest.mark.parametrize("line, amount", [
    ("03/03/2024 Pagamento EDP 60,00", -60.0),
    ("03/03/2024 Depósito numerário 60,00", 60.0),
    ("03/03/2024 Compra online -60,00", -60.0),
])
def test_plain_text_words_set_direction(line, amount):
    txs = extract_from_text(line)
    assert len(txs) == 1
    assert txs[0].amount == amount


def test_plain_text_discards_boilerplate_descriptions():
    text = "05/03/2024 Saldo 1.000,00\n06/03/2024 12345 10,00\n07/03/2024 Cinema 9,50"
    txs = extract_from_text(text)
    assert [t.description for t in txs] == ["Cinema"]


def test_plain_text_empty():
    assert extract_from_text("") == []
    assert extract_from_text("nothing to see here") == []


# -------------------------------------------------
# LINES + CASCADE
# -------------------------------------------------

def test_line_extractor_uses_line_anchors(doc_builder):
    doc = doc_builder.line("01/03/2024 Supermercado Continente 45,90 D").line("Total: 45,90").build()
    txs = extract_from_lines(doc)
    assert len(txs) == 1
    assert txs[0].amount == -45.90


def test_cascade_prefers_entities(doc_builder, make_entity):
    doc = (
        doc_builder
        .table(["Data", "Descrição", "Valor"], [["2024-03-01", "Supermercado", "-45,90"]])
        .entity({"type": "transaction", "properties": [
            {"type": "date", "mentionText": "2024-03-02"},
            {"type": "description", "mentionText": "Uber"},
            {"type": "amount", "mentionText": "7,00"},
        ]})
        .build()
    )
    txs, strategy = extract_transactions(doc)
    assert strategy == "entities"
    assert [t.description for t in txs] == ["Uber"]


def test_cascade_falls_through_in_order(doc_builder):
    tables = doc_builder.table(["Data", "Descrição", "Valor"], [["2024-03-01", "Supermercado", "-45,90"]]).build()
    assert extract_transactions(tables)[1] == "tables"


def test_cascade_lines_then_text(doc_builder):
    lines = doc_builder.line("01/03/2024 Cinema 9,50").build()
    assert extract_transactions(lines)[1] == "lines"


def test_cascade_text_only(doc_builder):
    text_only = doc_builder.raw(STATEMENT_TEXT).build()
    txs, strategy = extract_transactions(text_only)
    assert strategy == "text"
    assert len(txs) == 2


def test_cascade_all_miss(doc_builder):
    assert extract_transactions(doc_builder.raw("Olá").build()) == ([], None)

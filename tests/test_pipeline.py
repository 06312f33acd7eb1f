from finance_api.core.constants import (
    PARSING_BANK_SPECIFIC,
    PARSING_FALLBACK,
    PARSING_LLM,
    UNKNOWN_INSTITUTION,
)
from finance_api.extraction.pipeline import NO_TRANSACTIONS_MESSAGE, build_result, llm_transactions
from finance_api.extraction.schemas import ExtractedReceipt, ReceiptItem
from finance_api.ocr.schemas import LlmDocument

TODAY = "2024-03-10"

NOVO_BANCO_TEXT = "\n".join([
    "NOVO BANCO",
    "Cartão de Crédito: GOLD",
    "Data Extrato Atual: 15.03.2024",
    "Data Extrato Anterior: 15.02.2024",
    "Movimentos",
    "16.02.2024 CONTINENTE LISBOA 45,90",
    "20.02.2024 PAGAMENTO RECEBIDO 200,00 CR",
    "02.03.2024 UBER TRIP 12,40",
    "Totais 258,30",
])

BAKERY_TEXT = "PADARIA CENTRAL\nPão de forma\n2,50\nLeite meio gordo 1,80\nTOTAL 4,30"


# -------------------------------------------------
# LLM DOCUMENT -> TRANSACTIONS
# -------------------------------------------------

def test_llm_transactions_come_first():
    doc = LlmDocument.model_validate({
        "date": "2024-03-01",
        "transactions": [
            {"date": "02/03/2024", "description": " Uber ", "amount": -12.404, "suggestedCategory": "transporte"},
            {"description": "sem valor"},
            {"amount": 3.0},
        ],
        "items": [{"description": "Pão", "totalPrice": 1.0}],
    })
    txs = llm_transactions(doc, today=TODAY)
    assert [(t.date, t.description, t.amount, t.suggested_category) for t in txs] == [
        ("2024-03-02", "Uber", -12.4, "transporte"),
    ]


def test_llm_items_become_expenses():
    doc = LlmDocument.model_validate({
        "date": "2024-03-01",
        "items": [
            {"description": "Pão", "quantity": 2, "unitPrice": 0.5},
            {"description": "Leite", "totalPrice": 1.8, "category": "mercado"},
            {"description": "Sem preço"},
        ],
    })
    txs = llm_transactions(doc, today=TODAY)
    assert [(t.description, t.amount, t.date) for t in txs] == [
        ("Pão", -1.0, "2024-03-01"),
        ("Leite", -1.8, "2024-03-01"),
    ]
    assert txs[1].suggested_category == "mercado"


def test_llm_total_only():
    doc = LlmDocument.model_validate({"totalAmount": 9.99, "establishment": {"name": "Lidl"}})
    txs = llm_transactions(doc, today=TODAY)
    assert [(t.date, t.description, t.amount) for t in txs] == [(TODAY, "Lidl - Total", -9.99)]
    assert llm_transactions(LlmDocument(), today=TODAY) == []


# -------------------------------------------------
# DOCUMENT -> RESULT
# -------------------------------------------------

def test_result_from_llm_document(doc_builder):
    document = doc_builder.raw("Extrato\n01/03/2024 Uber 12,40").build()
    llm = LlmDocument.model_validate({
        "documentType": "bank_statement",
        "currency": "eur",
        "establishment": {"name": "Revolut"},
        "transactions": [{"date": "2024-03-01", "description": "Uber", "amount": -12.4}],
        "metadata": {"confidence": "high"},
    })
    result = build_result(document, hint="bank_statement", llm_document=llm, today=TODAY)
    assert result.bank_info.parsing_method == PARSING_LLM
    assert result.bank_info.detected_bank == "Revolut"
    assert result.bank_info.llm["confidence"] == "high"
    assert result.currency == "EUR"
    assert [t.amount for t in result.transactions] == [-12.4]


def test_empty_llm_result_falls_back_to_parsers(doc_builder):
    document = doc_builder.raw("01/03/2024 Cinema 9,50").build()
    result = build_result(document, hint="bank_statement", llm_document=LlmDocument(), today=TODAY)
    assert result.bank_info.parsing_method == PARSING_FALLBACK
    assert [t.description for t in result.transactions] == ["Cinema"]
    assert result.bank_info.llm is not None


def test_result_from_bank_specific_parser(doc_builder):
    document = doc_builder.raw(NOVO_BANCO_TEXT).build()
    result = build_result(document, hint="credit_card", today=TODAY)
    assert result.document_type == "credit_card"
    assert result.institution == "Novo Banco"
    assert result.bank_info.parsing_method == PARSING_BANK_SPECIFIC
    assert result.bank_info.detected_bank == "NOVO_BANCO"
    assert result.bank_info.document_type == "credit_card"
    assert result.bank_info.transactions_found == 3
    assert (result.period.start, result.period.end) == ("2024-02-15", "2024-03-15")
    assert result.message is None


def test_receipt_collapses_to_one_transaction(doc_builder):
    document = doc_builder.raw(BAKERY_TEXT).build()
    result = build_result(document, hint="receipt", today=TODAY)
    assert result.document_type == "receipt"
    assert result.institution == "PADARIA CENTRAL"
    assert len(result.receipts) == 1
    assert result.receipts[0].total == 4.30
    assert [(t.date, t.description, t.amount) for t in result.transactions] == [
        (TODAY, "PADARIA CENTRAL (recibo)", -4.30),
    ]
    assert result.bank_info.detected_bank == "unknown"
    assert result.bank_info.document_type == "unknown"


def test_receipt_mapper_only_runs_for_receipts(doc_builder):
    calls = []

    def mapper(doc):
        calls.append(doc)
        return ExtractedReceipt(items=[ReceiptItem(description="Pão de forma", total=2.5)])

    build_result(doc_builder.raw(BAKERY_TEXT).build(), hint="bank_statement", llm_receipt_mapper=mapper)
    assert calls == []


def test_nothing_found_sets_message(doc_builder):
    result = build_result(doc_builder.raw("Olá mundo").build(), hint="bank_statement", today=TODAY)
    assert result.transactions == []
    assert result.receipts == []
    assert result.message == NO_TRANSACTIONS_MESSAGE
    assert result.institution == UNKNOWN_INSTITUTION
    assert result.period.start == ""


LINE_ITEM_WITHOUT_AMOUNT = {"type": "line_item", "properties": [{"type": "description", "mentionText": "Leite meio gordo"}]}


def test_receipt_total_from_printed_summary(doc_builder):
    document = (
        doc_builder
        .raw("CONTINENTE\nNIF 500100144\nConsumidor final\nTOTAL 12,50")
        .entity(LINE_ITEM_WITHOUT_AMOUNT)
        .build()
    )
    result = build_result(document, hint="receipt", today=TODAY)
    assert result.receipts[0].total == 12.50
    assert [(t.date, t.description, t.amount) for t in result.transactions] == [(TODAY, "Recibo", -12.50)]


def test_receipt_without_total_is_not_collapsed(doc_builder):
    document = doc_builder.raw("Olá mundo").entity(LINE_ITEM_WITHOUT_AMOUNT).build()
    result = build_result(document, hint="receipt", today=TODAY)
    assert result.receipts[0].total is None
    assert result.transactions == []
    assert result.message == NO_TRANSACTIONS_MESSAGE


def test_merchant_names_institution_only_for_receipt_uploads(doc_builder):
    result = build_result(doc_builder.raw(BAKERY_TEXT).build(), filename="recibo.jpg", today=TODAY)
    assert result.document_type == "receipt"
    assert result.receipts[0].merchant == "PADARIA CENTRAL"
    assert result.institution == UNKNOWN_INSTITUTION

import pytest

from finance_api.core.constants import UNKNOWN_INSTITUTION
from finance_api.extraction.classifier import classify, from_entities, from_filename, from_text, keyword_scores
from finance_api.extraction.document_info import extract_card_info, extract_institution


@pytest.mark.parametrize("text, expected", [
    ("Fatura do cartão de crédito\nLimite disponível: 1.000,00", "credit_card"),
    ("IBAN PT50 0000 0000\nSaldo anterior 100,00", "bank_statement"),
    ("NIF 123456789\nTotal: 10,00", "receipt"),
])
def test_keyword_classification(text, expected):
    assert from_text(text) == expected


def test_ties_prefer_the_more_specific_type():
    scores = keyword_scores("recibo\niban")
    assert scores["receipt"] == scores["bank_statement"]
    assert from_text("recibo\niban") == "receipt"


def test_no_signal_defaults_to_bank_statement():
    assert from_text("") == "bank_statement"
    assert from_text("lorem ipsum") == "bank_statement"


def test_filename_signals():
    assert from_filename("extrato_março.pdf") == "bank_statement"
    assert from_filename("Recibo-123.jpg") == "receipt"
    assert from_filename("cartao_visa.pdf") == "credit_card"
    assert from_filename("scan001.pdf") is None
    assert from_filename(None) is None


def test_entity_signals(make_entity):
    assert from_entities([make_entity("line_item")]) == "receipt"
    assert from_entities([make_entity("available_limit", number=100)]) == "credit_card"
    assert from_entities([make_entity("document_type", "Credit card statement")]) == "credit_card"
    assert from_entities([make_entity("document_type", "Extrato")]) == "bank_statement"
    assert from_entities([make_entity("foo")]) is None


def test_classify_precedence(make_entity):
    bank_text = "IBAN PT50\nSaldo anterior 10,00"
    assert classify(bank_text, hint="receipt") == "receipt"
    assert classify(bank_text, hint="something-else") == "bank_statement"
    assert classify(bank_text, entities=[make_entity("line_item")]) == "receipt"
    assert classify(bank_text, filename="recibo.pdf") == "receipt"
    assert classify(bank_text) == "bank_statement"


# -------------------------------------------------
# INSTITUTION + CARD HEADER
# -------------------------------------------------

def test_institution_from_entity_then_text(make_entity):
    assert extract_institution("", [make_entity("bank_name", " Revolut ")]) == "Revolut"
    assert extract_institution("Extrato Millennium bcp", []) == "Millennium"
    assert extract_institution("mercearia", []) == UNKNOWN_INSTITUTION


def test_card_info_reads_nested_entities(make_entity):
    entities = [
        make_entity("header", props=[
            make_entity("credit_card_last_four_digits", "4321"),
            make_entity("card_limit", "2.000,00"),
            make_entity("start_date", "15/02/2024"),
            make_entity("end_date", "14/03/2024"),
        ]),
    ]
    card = extract_card_info(entities)
    assert card.last_four_digits == "4321"
    assert card.card_limit == 2000.0
    assert (card.start_date, card.end_date) == ("2024-02-15", "2024-03-14")
    assert card.available_limit is None


def test_card_info_absent(make_entity):
    assert extract_card_info([make_entity("start_date", "15/02/2024")]) is None
    assert extract_card_info([]) is None

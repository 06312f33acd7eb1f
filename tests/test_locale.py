import pytest

from finance_api.extraction.locale import (
    detect_currency,
    detect_period,
    has_letters,
    parse_amount,
    parse_flexible_date,
    strip_accents,
)


@pytest.mark.parametrize("text, expected", [
    ("1.234,56", 1234.56),
    ("1,234.56", 1234.56),
    ("123,45", 123.45),
    ("1.234.567,89", 1234567.89),
    ("1,234,567.89", 1234567.89),
    ("45.90", 45.90),
    ("R$ 1.234,56", 1234.56),
    ("€12,50", 12.50),
    ("$ 7.25", 7.25),
    ("-45,90", -45.90),
    ("(45,90)", -45.90),
    ("45,90-", -45.90),
])
def test_parse_amount(text, expected):
    assert parse_amount(text) == pytest.approx(expected)


@pytest.mark.parametrize("text", [None, "", "   ", "abc", "--", "R$", 12.5])
def test_parse_amount_returns_none_when_unparseable(text):
    assert parse_amount(text) is None


@pytest.mark.parametrize("text, expected", [
    ("2024-03-01", "2024-03-01"),
    ("2024/03/01", "2024-03-01"),
    ("01/03/2024", "2024-03-01"),
    ("01-03-2024", "2024-03-01"),
    ("01.03.2024", "2024-03-01"),
    ("1/3/24", "2024-03-01"),
    ("5 março 2024", "2024-03-05"),
    ("5 MARCO 2024", "2024-03-05"),
    ("12 Dec 2023", "2023-12-12"),
    ("3 fev. 24", "2024-02-03"),
])
def test_parse_flexible_date(text, expected):
    assert parse_flexible_date(text) == expected


def test_parse_flexible_date_uses_base_year():
    assert parse_flexible_date("05/03", base_year=2023) == "2023-03-05"
    assert parse_flexible_date("12 Jan.", base_year=2025) == "2025-01-12"


@pytest.mark.parametrize("text", [None, "", "hello", "31/02/2024", "2024-13-01", "32 jan 2024", "7 foo 2024"])
def test_parse_flexible_date_returns_empty_string(text):
    assert parse_flexible_date(text) == ""


def test_strip_accents_and_letters():
    assert strip_accents("Descrição Crédito") == "Descricao Credito"
    assert has_letters("Pão")
    assert not has_letters("12,50")
    assert not has_letters(None)


def test_detect_period():
    assert detect_period("Período: 01/03/2024 a 31/03/2024") == {"start": "2024-03-01", "end": "2024-03-31"}
    assert detect_period("no dates here") == {"start": "", "end": ""}


@pytest.mark.parametrize("text, expected", [
    ("Total R$ 10,00", "BRL"),
    ("Amount USD 5.00", "USD"),
    ("Total: 10,00 €", "EUR"),
    ("Saldo 10,00 EUR", "EUR"),
    ("Total 10,00", None),
])
def test_detect_currency(text, expected):
    assert detect_currency(text) == expected

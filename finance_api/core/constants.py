# finance_api/core/constants.py

CURRENCIES = [
    "EUR",
    "BRL",
    "USD",
]

DOCUMENT_TYPES = [
    "receipt",
    "credit_card",
    "bank_statement",
]

ALLOWED_MIME_TYPES = {
    "application/pdf",
    "image/jpeg",
    "image/png",
}

DEFAULT_CATEGORY = "outros"
UNKNOWN_INSTITUTION = "Não identificado"

KNOWN_BANKS = [
    "Nubank",
    "Itaú",
    "Caixa Geral",
    "CGD",
    "Millennium",
    "Santander",
    "BB",
    "Novo Banco",
    "BCP",
    "Revolut",
    "Wise",
]

# Bank transaction types
TX_CREDIT = "credit"
TX_DEBIT = "debit"

# Credit card transaction types
CARD_PAYMENT = "payment"
CARD_PURCHASE = "purchase"

FIXED_COST_OPEN_STATUSES = ("pending", "overdue")

BILLING_PERIODS = [
    "monthly",
    "yearly",
    "weekly",
]

PARSING_LLM = "llm"
PARSING_BANK_SPECIFIC = "bank-specific"
PARSING_FALLBACK = "document-ai-fallback"

DOCUMENT_STATUS_DONE = "DONE"
DOCUMENT_STATUS_FAILED = "FAILED"

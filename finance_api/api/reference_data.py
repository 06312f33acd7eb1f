from fastapi import APIRouter

from finance_api.core.constants import (
    BILLING_PERIODS,
    CURRENCIES,
    DOCUMENT_TYPES,
    DEFAULT_CATEGORY,
    KNOWN_BANKS,
)

router = APIRouter(prefix="/reference-data", tags=["Reference Data"])


@router.get("")
def get_reference_data():
    return {
        "currencies": CURRENCIES,
        "document_types": DOCUMENT_TYPES,
        "billing_periods": BILLING_PERIODS,
        "known_banks": KNOWN_BANKS,
        "default_category": DEFAULT_CATEGORY,
    }

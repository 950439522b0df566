"""Canned HCV answers used by the voice agent's query tools."""
from typing import Dict, Optional

TENANT_SHARE = 0.30

# Simplified limits (roughly 80% of Area Median Income) by family size.
INCOME_LIMITS: Dict[int, int] = {
    1: 50000,
    2: 57000,
    3: 64000,
    4: 71000,
    5: 77000,
    6: 83000,
    7: 89000,
    8: 95000,
}

HCV_TERMS: Dict[str, str] = {
    "hcv": "Housing Choice Voucher - a federal program that helps low-income families afford decent, safe, and sanitary housing in the private market.",
    "pha": "Public Housing Authority - the local government agency that administers HCV programs in your area.",
    "hud": "Housing and Urban Development - the federal department that oversees HCV programs nationwide.",
    "payment standard": "The maximum amount HCV will pay toward rent and utilities, set by the local PHA.",
    "fair market rent": "The maximum rent amount HCV will cover, determined by HUD based on local market conditions.",
    "housing quality standards": "Minimum requirements that HCV housing must meet for safety and habitability.",
    "portability": "The ability to use your HCV voucher in a different PHA area when moving.",
    "recertification": "Annual review of your continued eligibility for HCV assistance.",
    "voucher": "The document that provides rental assistance and allows you to rent from private landlords.",
    "income limit": "Maximum income allowed for HCV participation, typically 80% of Area Median Income.",
}


def _dollars(amount: float) -> str:
    if amount == int(amount):
        return f"${int(amount):,}"
    return f"${amount:,.2f}"


def income_limit_for(family_size: int) -> int:
    if family_size < 1:
        return INCOME_LIMITS[1]
    return INCOME_LIMITS.get(family_size, INCOME_LIMITS[8])


def check_eligibility(family_size: int, annual_income: float, location: Optional[str] = None) -> str:
    limit = income_limit_for(family_size)
    verdict = "you may be eligible" if annual_income <= limit else "you may not be eligible"
    where = f" in {location}" if location else " in your area"
    return (
        f"Based on your family size of {family_size} and annual income of {_dollars(annual_income)}, "
        f"{verdict} for HCV assistance. The income limit for a family of {family_size} is typically "
        f"around {_dollars(limit)} per year. However, actual limits vary by location and are set by local PHAs. "
        f"I recommend contacting your local Public Housing Authority for exact income limits{where}."
    )


def calculate_rent(adjusted_income: float, total_rent: float, payment_standard: Optional[float] = None) -> str:
    """
    Estimates the family's share of rent under the 30% rule.

    ``adjusted_income`` is monthly income after deductions. When the rent is above
    the local payment standard the family also covers the difference.
    """
    tenant_portion = adjusted_income * TENANT_SHARE
    hcv_portion = total_rent - tenant_portion

    result = (
        f"With HCV assistance, you would pay approximately ${tenant_portion:,.2f} per month "
        f"(30% of your adjusted income of {_dollars(adjusted_income)})."
    )
    if payment_standard and total_rent > payment_standard:
        total_payment = tenant_portion + (total_rent - payment_standard)
        result += (
            f" However, since the rent ({_dollars(total_rent)}) exceeds the payment standard "
            f"({_dollars(payment_standard)}), you would need to pay the difference, making your total "
            f"payment ${total_payment:,.2f}."
        )
    else:
        result += f" HCV would pay approximately ${hcv_portion:,.2f} toward your rent."
    return result


def explain_term(term: str) -> str:
    explanation = HCV_TERMS.get(term.strip().lower())
    if explanation:
        return explanation
    return (
        f"I don't have a specific explanation for \"{term}\" in my HCV glossary. Could you ask me about a "
        "different HCV term, or would you like me to explain what HCV, PHA, or Payment Standard means?"
    )

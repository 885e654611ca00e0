import logging

from app.agent.artifacts import ExtractedFinancialData, ValidationResult

logger = logging.getLogger(__name__)

# Fraction of revenue (or GPR) tolerated before the arithmetic checks fire
MATH_TOLERANCE = 0.02
UNIT_COUNT_TOLERANCE = 2

BELOW_NOI_FIELDS = (
    "debt_service",
    "capex",
    "capital_expenditures",
    "distributions",
    "loan_payments",
    "mortgage",
)

SKIP_REASONS = {
    "lease_analysis": ("rent_roll_found", "Rent roll not uploaded, unit-level lease data unavailable"),
    "leasing_activity": ("leasing_found", "Leasing activity report not uploaded"),
}


def _money(value: float) -> str:
    return f"${value:,.0f}"


def _clamp_percent(value: float) -> float:
    return max(0.0, min(100.0, value))


def get_skip_reason(section_id: str, data: ExtractedFinancialData) -> str | None:
    rule = SKIP_REASONS.get(section_id)
    if rule is None:
        return None
    flag, reason = rule
    return None if getattr(data.data_quality, flag) else reason


def validate_extracted_data(
    data: ExtractedFinancialData,
    section_ids: list[str],
    *,
    expected_units: int | None = None,
) -> ValidationResult:
    """Check the extraction artifact before it reaches the narrative call.

    Returns a corrected copy: NOI is forced to revenue minus expenses when the
    two disagree, occupancy is clamped to 0-100 and anything below the NOI
    line is removed. Sections whose source documents are missing are listed in
    ``sections_to_skip``.
    """
    warnings: list[str] = []
    errors: list[str] = []
    corrected = data.model_copy(deep=True)

    if not data.data_quality.t12_found:
        errors.append(
            "T-12 operating statement not found in uploaded documents. Cannot generate report."
        )
        return ValidationResult(valid=False, warnings=warnings, errors=errors, corrected=corrected)

    revenue = data.income.total_revenue.current
    expenses = data.expenses.total_expenses.current
    noi = data.noi.current
    if revenue is not None and expenses is not None and noi is not None:
        expected_noi = revenue - expenses
        diff = abs(noi - expected_noi)
        if diff > abs(revenue) * MATH_TOLERANCE:
            warnings.append(
                f"NOI sanity check: NOI ({_money(noi)}) does not equal Revenue ({_money(revenue)}) "
                f"- Expenses ({_money(expenses)}) = {_money(expected_noi)}. Difference: {_money(diff)}."
            )
            corrected.noi.current = expected_noi
            warnings.append(f"Auto-corrected NOI to {_money(expected_noi)}.")
            logger.warning("Auto-corrected extracted NOI from %s to %s", noi, expected_noi)

    income = data.income
    gpr = income.gross_potential_rent.current
    nri = income.net_rental_income.current
    if gpr is not None and nri is not None:
        deductions = sum(
            item.current or 0
            for item in (income.vacancy_loss, income.loss_to_lease, income.concessions, income.bad_debt)
        )
        expected_nri = gpr - deductions
        diff = abs(nri - expected_nri)
        if diff > abs(gpr) * MATH_TOLERANCE:
            warnings.append(
                f"Revenue decomposition check: NRI ({_money(nri)}) does not match GPR minus deductions "
                f"({_money(expected_nri)}). Difference: {_money(diff)}."
            )

    for field in ("physical_percent", "economic_percent"):
        value = getattr(data.occupancy, field)
        if value is not None and not 0 <= value <= 100:
            label = field.split("_")[0].capitalize()
            warnings.append(f"{label} occupancy {value}% is out of range (0-100%).")
            setattr(corrected.occupancy, field, _clamp_percent(value))

    total_units = data.property.units if data.property.units is not None else expected_units
    occupied = data.occupancy.units_occupied
    vacant = data.occupancy.units_vacant
    if occupied is not None and vacant is not None and total_units is not None:
        counted = occupied + vacant
        if abs(counted - total_units) > UNIT_COUNT_TOLERANCE:
            warnings.append(
                f"Unit count mismatch: occupied ({occupied}) + vacant ({vacant}) = {counted}, "
                f"but property has {total_units} units."
            )

    if revenue is not None and revenue < 0:
        warnings.append(
            f"Total revenue is negative ({_money(revenue)}). Verify source data."
        )

    extras = corrected.__pydantic_extra__ or {}
    for field in BELOW_NOI_FIELDS:
        if field in extras:
            del extras[field]
            warnings.append(f"Removed below-NOI field: {field} (NOI ceiling enforcement).")

    sections_to_skip = [
        section_id for section_id in section_ids if get_skip_reason(section_id, data)
    ]

    return ValidationResult(
        valid=not errors,
        warnings=warnings,
        errors=errors,
        corrected=corrected,
        sections_to_skip=sections_to_skip,
    )

from app.agent.artifacts import ExtractedFinancialData
from app.agent.data_validator import get_skip_reason, validate_extracted_data


def _data(**overrides) -> ExtractedFinancialData:
    payload = {
        "property": {"name": "Maple Court", "units": 48, "month": "September", "year": 2026},
        "income": {
            "gross_potential_rent": {"current": 100000},
            "vacancy_loss": {"current": 5000},
            "concessions": {"current": 1000},
            "net_rental_income": {"current": 94000},
            "total_revenue": {"current": 98000},
        },
        "expenses": {"total_expenses": {"current": 40000}},
        "noi": {"current": 58000},
        "occupancy": {"physical_percent": 95.8, "units_occupied": 46, "units_vacant": 2},
        "data_quality": {"t12_found": True, "rent_roll_found": True},
    }
    payload.update(overrides)
    return ExtractedFinancialData.model_validate(payload)


def test_consistent_data_passes_without_warnings():
    result = validate_extracted_data(_data(), ["executive_summary", "lease_analysis"])

    assert result.valid
    assert result.warnings == []
    assert result.sections_to_skip == []


def test_missing_t12_is_an_error():
    result = validate_extracted_data(_data(data_quality={"t12_found": False}), ["executive_summary"])

    assert not result.valid
    assert "T-12 operating statement not found" in result.errors[0]


def test_noi_is_corrected_to_revenue_minus_expenses():
    result = validate_extracted_data(_data(noi={"current": 70000}), [])

    assert result.valid
    assert result.corrected.noi.current == 58000
    assert any(w.startswith("NOI sanity check") for w in result.warnings)
    assert any("Auto-corrected NOI to $58,000" in w for w in result.warnings)


def test_small_noi_difference_is_tolerated():
    result = validate_extracted_data(_data(noi={"current": 58500}), [])

    assert result.corrected.noi.current == 58500
    assert result.warnings == []


def test_revenue_decomposition_mismatch_warns():
    income = {
        "gross_potential_rent": {"current": 100000},
        "vacancy_loss": {"current": 5000},
        "net_rental_income": {"current": 80000},
        "total_revenue": {"current": 98000},
    }
    result = validate_extracted_data(_data(income=income), [])

    assert any(w.startswith("Revenue decomposition check") for w in result.warnings)


def test_occupancy_is_clamped():
    result = validate_extracted_data(
        _data(occupancy={"physical_percent": 104, "economic_percent": -3}), []
    )

    assert result.corrected.occupancy.physical_percent == 100
    assert result.corrected.occupancy.economic_percent == 0
    assert len([w for w in result.warnings if "out of range" in w]) == 2


def test_unit_mismatch_uses_expected_units_when_extraction_has_none():
    data = _data(
        property={"name": "Maple Court", "month": "September", "year": 2026},
        occupancy={"units_occupied": 40, "units_vacant": 2},
    )

    result = validate_extracted_data(data, [], expected_units=48)

    assert any(w.startswith("Unit count mismatch") for w in result.warnings)


def test_below_noi_fields_are_removed():
    data = _data(debt_service={"current": 25000}, capex={"current": 8000})

    result = validate_extracted_data(data, [])

    extras = result.corrected.model_extra
    assert "debt_service" not in extras
    assert "capex" not in extras
    assert "debt_service" in data.model_extra
    assert len([w for w in result.warnings if w.startswith("Removed below-NOI field")]) == 2


def test_sections_without_source_documents_are_skipped():
    data = _data(data_quality={"t12_found": True, "rent_roll_found": False, "leasing_found": False})

    result = validate_extracted_data(
        data, ["executive_summary", "lease_analysis", "leasing_activity"]
    )

    assert result.sections_to_skip == ["lease_analysis", "leasing_activity"]
    assert get_skip_reason("lease_analysis", data).startswith("Rent roll not uploaded")
    assert get_skip_reason("executive_summary", data) is None

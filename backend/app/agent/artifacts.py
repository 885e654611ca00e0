from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class LineItem(BaseModel):
    current: float | None = Field(default=None, description="Value for the report month")
    prior: float | None = Field(default=None, description="Value for the month before the report month")
    budget: float | None = Field(default=None, description="Budgeted value for the report month, if a budget exists")


class ExpenseCategory(LineItem):
    name: str = Field(description="Expense category as labelled in the operating statement")


class ExtractedProperty(BaseModel):
    name: str = ""
    units: int | None = None
    month: str = ""
    year: int | None = None


class IncomeData(BaseModel):
    gross_potential_rent: LineItem = Field(default_factory=LineItem)
    vacancy_loss: LineItem = Field(default_factory=LineItem)
    loss_to_lease: LineItem = Field(default_factory=LineItem)
    concessions: LineItem = Field(default_factory=LineItem)
    bad_debt: LineItem = Field(default_factory=LineItem)
    net_rental_income: LineItem = Field(default_factory=LineItem)
    other_income: LineItem = Field(default_factory=LineItem)
    total_revenue: LineItem = Field(default_factory=LineItem)


class ExpenseData(BaseModel):
    categories: list[ExpenseCategory] = Field(default_factory=list)
    total_expenses: LineItem = Field(default_factory=LineItem)


class OccupancyData(BaseModel):
    physical_percent: float | None = Field(default=None, description="Occupied units / total units, 0-100")
    economic_percent: float | None = Field(default=None, description="Collected rent / GPR, 0-100")
    units_occupied: int | None = None
    units_vacant: int | None = None
    units_on_notice: int | None = None
    units_preleased: int | None = None


class LeasingActivityData(BaseModel):
    move_ins: int | None = None
    move_outs: int | None = None
    renewals: int | None = None
    notices_to_vacate: int | None = None
    new_lease_avg_rent: float | None = None
    renewal_avg_rent: float | None = None


class UnitMixRow(BaseModel):
    floorplan: str
    unit_count: int = 0
    avg_rent: float | None = None
    avg_sqft: float | None = None
    avg_rent_per_sqft: float | None = None
    occupancy_pct: float | None = None


class RentRollData(BaseModel):
    unit_mix: list[UnitMixRow] = Field(default_factory=list)
    total_units: int | None = None
    avg_rent: float | None = None


class TrailingTwelve(BaseModel):
    months: list[str] = Field(default_factory=list)
    noi: list[float | None] = Field(default_factory=list)
    revenue: list[float | None] = Field(default_factory=list)
    expenses: list[float | None] = Field(default_factory=list)
    occupancy: list[float | None] = Field(default_factory=list)


class DataQuality(BaseModel):
    t12_found: bool = False
    rent_roll_found: bool = False
    leasing_found: bool = False
    budget_found: bool = False
    month_match_confirmed: bool = False
    notes: list[str] = Field(default_factory=list)


class ExtractedFinancialData(BaseModel):
    """Artifact produced by the extraction call: every number the narrative may cite.

    Unknown keys are kept so that below-NOI items the model returns anyway can
    be detected and stripped before the narrative call.
    """
    model_config = ConfigDict(extra="allow")

    property: ExtractedProperty = Field(default_factory=ExtractedProperty)
    income: IncomeData = Field(default_factory=IncomeData)
    expenses: ExpenseData = Field(default_factory=ExpenseData)
    noi: LineItem = Field(default_factory=LineItem, description="Net operating income = total revenue - total expenses")
    occupancy: OccupancyData = Field(default_factory=OccupancyData)
    leasing_activity: LeasingActivityData = Field(default_factory=LeasingActivityData)
    rent_roll: RentRollData = Field(default_factory=RentRollData)
    trailing_12: TrailingTwelve = Field(default_factory=TrailingTwelve)
    data_quality: DataQuality = Field(default_factory=DataQuality)


class ValidationResult(BaseModel):
    valid: bool
    warnings: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
    corrected: ExtractedFinancialData
    sections_to_skip: list[str] = Field(default_factory=list)


class SectionMetric(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    label: str
    value: str | float | int | None = None
    change: str | None = None
    change_direction: str | None = Field(
        default=None, validation_alias=AliasChoices("change_direction", "changeDirection")
    )
    vs_budget: str | None = Field(
        default=None, validation_alias=AliasChoices("vs_budget", "vsbudget", "vsBudget")
    )


class GeneratedSection(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    title: str
    content: str = ""
    chart_html: str = ""
    metrics: list[SectionMetric] = Field(default_factory=list)
    included: bool = True
    skip_reason: str | None = Field(
        default=None, validation_alias=AliasChoices("skip_reason", "skipReason")
    )


class AnalysisSummary(BaseModel):
    overall_sentiment: str = "unknown"
    key_findings: list[str] = Field(default_factory=list)
    data_quality_notes: list[str] = Field(default_factory=list)


class NarrativeResponse(BaseModel):
    """Artifact produced by the narrative call."""
    sections: list[GeneratedSection] = Field(default_factory=list)
    analysis_summary: AnalysisSummary = Field(
        default_factory=AnalysisSummary,
        validation_alias=AliasChoices("analysis_summary", "analysisSummary"),
    )


class BrandColors(BaseModel):
    primary: str = "#27272A"
    secondary: str = "#EFF6FF"
    accent: str = "#2563EB"
    green: str = "#059669"
    red: str = "#DC2626"
    amber: str = "#D97706"

    @classmethod
    def from_user_settings(cls, user_settings) -> "BrandColors":
        """Map a user's branding preferences onto report color tokens."""
        if user_settings is None:
            return cls()
        defaults = cls()
        return cls(
            primary=user_settings.accent_color or defaults.primary,
            secondary=user_settings.secondary_color or defaults.secondary,
            accent=user_settings.report_accent_color or user_settings.accent_color or defaults.accent,
        )


class ExtractionInput(BaseModel):
    property_name: str
    property_address: str | None = None
    unit_count: int | None = None
    month: int
    year: int
    file_contents: dict[str, str]
    temperature: float = 0
    max_tokens: int | None = None


class NarrativeInput(BaseModel):
    tier: str
    month: int
    year: int
    property_name: str
    property_address: str | None = None
    unit_count: int | None = None
    investment_strategy: str | None = None
    company_name: str | None = None
    logo_url: str | None = None
    ai_tone: str = "balanced"
    historical_context: str | None = None
    section_ids: list[str]
    sections_to_skip: list[str] = Field(default_factory=list)
    extracted_data: ExtractedFinancialData
    questionnaire: dict = Field(default_factory=dict)
    freeform_narrative: str | None = None
    distribution_status: str | None = None
    distribution_note: str | None = None
    brand_colors: BrandColors = Field(default_factory=BrandColors)
    temperature: float = 0.2
    max_tokens: int | None = None


class SectionRegenerateInput(BaseModel):
    section_id: str
    section_title: str
    current_content: str
    user_notes: str
    section_guidance: str
    tier: str = "foundational"

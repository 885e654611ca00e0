from pydantic import BaseModel, Field


class SectionDefinition(BaseModel):
    id: str
    title: str
    description: str
    required_files: list[str] = Field(default_factory=list)
    required_questions: list[str] = Field(default_factory=list)
    is_conditional: bool = False
    prompt_guidance: str
    # Chart templates the narrative call may use for this section
    visualizations: list[str] = Field(default_factory=list)


_SECTIONS = [
    SectionDefinition(
        id="executive_summary",
        title="Executive Summary",
        description="High-level overview of property performance",
        required_files=["t12"],
        required_questions=["executive_summary_notes"],
        prompt_guidance=(
            "Write a concise executive summary:\n"
            "- Overall property performance this month\n"
            "- Key wins and concerns\n"
            "- Material changes from prior month\n"
            "- Forward-looking outlook\n"
            "Use specific numbers from the T-12. Every sentence must convey real information."
        ),
        visualizations=["report_header"],
    ),
    SectionDefinition(
        id="property_overview",
        title="Property Overview",
        description="Property details, unit mix, investment thesis",
        prompt_guidance=(
            "Brief property description:\n"
            "- Property name, location, unit count\n"
            "- Unit mix if available from rent roll\n"
            "- Investment strategy context if provided"
        ),
        visualizations=["rent_roll_table"],
    ),
    SectionDefinition(
        id="key_metrics",
        title="Key Performance Metrics",
        description="KPI dashboard with variances",
        required_files=["t12"],
        prompt_guidance=(
            "Generate structured metrics. For each metric provide the current value, "
            "the prior month value and % change, and the budget variance % if a budget exists.\n"
            "Metrics: Gross Potential Rent, Economic Occupancy %, Effective Gross Income, "
            "Total Operating Expenses, Net Operating Income, NOI per unit, Expense ratio (OpEx / EGI).\n"
            "Return them in the metrics array for KPI dashboard rendering."
        ),
        visualizations=["kpi_strip", "budget_variance_table"],
    ),
    SectionDefinition(
        id="occupancy_analysis",
        title="Occupancy Analysis",
        description="Physical and economic occupancy trends",
        required_files=["t12", "rent_roll"],
        required_questions=["occupancy_notes"],
        prompt_guidance=(
            "Analyze occupancy:\n"
            "- Physical occupancy (occupied / total units)\n"
            "- Economic occupancy (collected / GPR)\n"
            "- Gap between physical and economic (concessions or delinquency)\n"
            "- Trend vs. prior months"
        ),
        visualizations=["occupancy_gauge"],
    ),
    SectionDefinition(
        id="lease_analysis",
        title="Lease Expiration & Renewal Analysis",
        description="Upcoming expirations, renewal rates, rent growth",
        required_files=["rent_roll"],
        required_questions=["lease_expiration_notes"],
        is_conditional=True,
        prompt_guidance=(
            "Analyze leasing (only if the rent roll has lease dates):\n"
            "- Leases expiring in the next 30/60/90 days\n"
            "- Renewal rate and average rent increase\n"
            "- New lease rates vs. expiring rates\n"
            "- Month-to-month tenants and risk"
        ),
        visualizations=["comparison_table"],
    ),
    SectionDefinition(
        id="financial_performance",
        title="Financial Performance",
        description="Revenue, expenses, NOI deep dive",
        required_files=["t12"],
        required_questions=["financial_notes"],
        prompt_guidance=(
            "REVENUE: GPR vs. collected, loss to lease, vacancy loss, concessions, bad debt, other income.\n"
            "EXPENSES: total vs. budget, line items more than 10% over budget, per-unit metrics.\n"
            "NOI: current month, margin, month-over-month change with explanation.\n"
            "Use exact dollar amounts and percentages."
        ),
        visualizations=["revenue_waterfall", "expense_horizontal_bars", "noi_trend_bars"],
    ),
    SectionDefinition(
        id="delinquency_status",
        title="Delinquency & Collections",
        description="Delinquent accounts and collections",
        required_files=["t12"],
        required_questions=["delinquency_notes"],
        is_conditional=True,
        prompt_guidance=(
            "Report on collections (only if the T-12 shows delinquency or bad debt, or notes were provided):\n"
            "- Total delinquent amount and % of GPR\n"
            "- Bad debt write-offs\n"
            "- Collection actions from the asset manager's notes"
        ),
    ),
    SectionDefinition(
        id="leasing_activity",
        title="Leasing Activity",
        description="Traffic, applications, move-ins/outs, turn costs",
        required_files=["leasing_activity"],
        required_questions=["leasing_notes"],
        is_conditional=True,
        prompt_guidance=(
            "Summarize leasing (only if a leasing activity report was uploaded):\n"
            "- Move-ins and move-outs, renewals, notices to vacate\n"
            "- New lease and renewal average rents"
        ),
        visualizations=["move_in_out_bars"],
    ),
    SectionDefinition(
        id="capex_needs",
        title="Capital Expenditures",
        description="CapEx spending and renovation progress",
        required_questions=["capex_notes"],
        is_conditional=True,
        prompt_guidance=(
            "Report on CapEx only with what the asset manager's notes provide:\n"
            "- CapEx spent this month and YTD\n"
            "- Renovation progress and premiums achieved"
        ),
    ),
    SectionDefinition(
        id="distribution_update",
        title="Distribution Update",
        description="Distribution status for investors",
        required_questions=["distribution_notes"],
        is_conditional=True,
        prompt_guidance=(
            "Report distribution status using the provided status and note.\n"
            "Status options: distributing, accruing, paused, none. Keep it factual."
        ),
    ),
    SectionDefinition(
        id="covenant_compliance",
        title="Loan Covenant Compliance",
        description="DSCR, LTV tracking",
        required_files=["t12"],
        required_questions=["covenant_notes"],
        is_conditional=True,
        prompt_guidance=(
            "Analyze covenants only if the asset manager provided debt information:\n"
            "- Current DSCR and required threshold\n"
            "- Margin of compliance and actions if near breach"
        ),
    ),
    SectionDefinition(
        id="risk_assessment",
        title="Risk Assessment",
        description="Key risks and mitigation",
        required_files=["t12", "rent_roll"],
        prompt_guidance=(
            "Identify risks based on the data: concentration, delinquency trend, expense escalation, "
            "lease expiration clusters, occupancy trend.\n"
            "Rate each as Low/Medium/High with mitigation. No generic language."
        ),
        visualizations=["risk_cards"],
    ),
    SectionDefinition(
        id="market_analysis",
        title="Market Context",
        description="Local market conditions",
        required_questions=["market_notes"],
        is_conditional=True,
        prompt_guidance=(
            "Market context (only if notes were provided):\n"
            "- Local conditions, supply/demand, competitive positioning\n"
            "- How the property compares to the market"
        ),
        visualizations=["comparison_table"],
    ),
    SectionDefinition(
        id="strategic_recommendations",
        title="Strategic Recommendations",
        description="Actionable recommendations from analysis",
        required_files=["t12"],
        prompt_guidance=(
            "3-5 specific, actionable recommendations, each tied to a finding, "
            "quantified where possible and aligned with the investment strategy."
        ),
    ),
    SectionDefinition(
        id="outlook",
        title="Outlook",
        description="Forward-looking expectations",
        required_files=["t12"],
        required_questions=["outlook_notes"],
        prompt_guidance=(
            "Forward-looking outlook:\n"
            "- Expected trajectory for the next 1-3 months\n"
            "- Key milestones and risks to monitor\n"
            "- Overall sentiment (improving/stable/declining) with rationale"
        ),
    ),
]

ALL_SECTIONS: dict[str, SectionDefinition] = {section.id: section for section in _SECTIONS}

TIER_SECTIONS: dict[str, list[str]] = {
    "foundational": ["executive_summary", "key_metrics", "occupancy_analysis", "outlook"],
    "professional": [
        "executive_summary",
        "key_metrics",
        "occupancy_analysis",
        "lease_analysis",
        "financial_performance",
        "delinquency_status",
        "leasing_activity",
        "distribution_update",
        "capex_needs",
        "outlook",
    ],
    "institutional": [section.id for section in _SECTIONS],
}


def get_sections_for_tier(tier: str, user_template: list[str] | None = None) -> list[SectionDefinition]:
    """Sections to generate for ``tier``.

    A saved report template wins when it names at least one section the tier
    includes; ids outside the tier are dropped.
    """
    tier_ids = TIER_SECTIONS.get(tier) or TIER_SECTIONS["foundational"]
    if user_template:
        allowed = [section_id for section_id in user_template if section_id in tier_ids]
        if allowed:
            return [ALL_SECTIONS[section_id] for section_id in allowed]
    return [ALL_SECTIONS[section_id] for section_id in tier_ids]

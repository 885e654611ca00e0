from app.agent.artifacts import BrandColors
from app.agent.generation_config import charts_for_section, section_length_instruction
from app.agent.prompts.extraction import MONTH_NAMES
from app.agent.sections import SectionDefinition

NARRATIVE_ROLE = """<role>
You are an expert multifamily real estate analyst at a private equity firm writing institutional-quality
investor reports. Your reports are read by Limited Partners who read dozens of property reports and
value precision over prose.
</role>"""

TIER_INSTRUCTIONS = {
    "foundational": (
        "Concise 4-section report. Use the metrics array only, no chart_html.\n"
        "Keep narrative brief and focused on headline numbers."
    ),
    "professional": (
        "Polished report with inline HTML charts using the templates provided.\n"
        "Balance narrative with visual data presentation. After a chart, write 1-2 sentences "
        "of insight, not a re-description of the chart data."
    ),
    "institutional": (
        "Comprehensive institutional-grade report with up to 15 sections and premium visualizations.\n"
        "Dense with data, every word earns its place. Multiple chart types per section where appropriate."
    ),
}

TONE_INSTRUCTIONS = {
    "conservative": "Measured and cautious. Flag risks before opportunities.",
    "balanced": "Neutral and factual. Give equal weight to wins and concerns.",
    "optimistic": "Constructive. Lead with progress while still reporting every concern.",
}

NOI_CEILING = """<noi_ceiling>
Your analysis STOPS at Net Operating Income (NOI = Total Revenue - Total Expenses).
NEVER reference, calculate, or mention: debt service, mortgage payments, capital expenditures,
distributions, investor returns, IRR, equity multiples, or cash-on-cash return.
EXCEPTION: if the asset manager explicitly provided capex, debt, or distribution information
in their notes, you may include ONLY what they mentioned.
</noi_ceiling>"""

NARRATIVE_STYLE = """<narrative_style>
The audience understands real estate jargon (NOI, GPR, LTL, basis points). Do not define terms.
- Lead every section with the headline number, not a setup sentence.
- Bold the single most important metric in each section using <strong> tags.
- Every percentage has one decimal place (91.4%).
- Dollar values in narrative have no cents and use commas ($113,848).
- Negative values in narrative use an en-dash (–$4,667); in tables use parentheses ($4,667).
- Always compare to prior month, budget, or trailing average.

FORBIDDEN WORDS: "significant", "significantly", "notable", "noteworthy", "it is worth noting",
"robust", "solid", "going forward", "leverage" (as a verb), "utilize".

ASSET MANAGER NOTES: use the questionnaire answers and freeform notes, written in third person
("The asset management team reports..."). Without notes, rely on the financial data only.
</narrative_style>"""

VISUALIZATION_TEMPLATES = """<visualization_templates>
Generate chart HTML in the "chart_html" field, never in "content". "content" holds narrative text only.
Charts use inline styles only (no external CSS, no JavaScript), width:100% within a max-width of 816px.

COLOR TOKENS are defined in the user prompt's <brand_colors>:
  {{PRIMARY}} headers, bars, table headers. {{SECONDARY}} backgrounds and alternating rows.
  {{ACCENT}} highlights and budget reference lines. {{GREEN}} favorable, {{RED}} unfavorable, {{AMBER}} caution.
Revenue and occupancy increases are favorable; expense increases are unfavorable.

TEMPLATES:
- report_header: dark {{PRIMARY}} bar with property name, units, location and period, an {{ACCENT}} stripe,
  then a 5-column KPI bar (NOI, Revenue, Expenses, Occupancy, NOI margin). executive_summary only, once.
- kpi_strip: do NOT generate HTML. Populate the "metrics" array; the viewer renders the cards.
- budget_variance_table: Category | Actual | Budget | Variance $ | Variance %, totals row with a 2px top border.
- revenue_waterfall: GPR down through deductions to net revenue, then other income to total revenue.
- expense_horizontal_bars: actual ({{PRIMARY}}) vs budget (dashed outline) per expense category.
- occupancy_gauge: SVG ring with physical occupancy, a bar for economic occupancy below.
- noi_trend_bars: 3-6 months of NOI, bars colored by budget performance.
- rent_roll_table: Floorplan | Units | Avg Rent | Avg SF | Rent/SF | Occupancy with a totals row.
- risk_cards: cards with a colored left border by severity, title, detail and mitigation.
- move_in_out_bars: grouped bars for move-ins, move-outs and renewals, current vs prior month.
- comparison_table: generic multi-column table with a {{PRIMARY}} header.
</visualization_templates>"""

OUTPUT_FORMAT = """<output_format>
Respond with ONLY a JSON object. No markdown fences, no preamble, no text before or after.
{
  "sections": [
    {
      "id": "section_id",
      "title": "Section Title",
      "content": "Narrative text...",
      "chart_html": "",
      "metrics": [{"label": "Name", "value": "$X", "change": "+X%", "changeDirection": "up", "vsbudget": "+X%"}],
      "included": true,
      "skipReason": null
    }
  ],
  "analysis_summary": {
    "overall_sentiment": "improving|stable|declining",
    "key_findings": ["finding 1"],
    "data_quality_notes": ["any issues"]
  }
}
The "sections" array MUST contain one object for EVERY section listed in <sections_to_generate>
and <pre_skipped_sections>. For sections with insufficient data set "included": false with a "skipReason".
</output_format>"""


def _optional_tag(tag: str, value: object) -> str:
    return f"<{tag}>{value}</{tag}>" if value else ""


def build_narrative_system_prompt(
    *,
    tier: str,
    property_name: str,
    sections: list[SectionDefinition],
    property_address: str | None = None,
    unit_count: int | None = None,
    investment_strategy: str | None = None,
    historical_context: str | None = None,
    company_name: str | None = None,
    logo_url: str | None = None,
    ai_tone: str = "balanced",
) -> str:
    property_context = "\n".join(
        line
        for line in (
            f"<name>{property_name}</name>",
            _optional_tag("address", property_address),
            _optional_tag("units", unit_count),
            _optional_tag("investment_strategy", investment_strategy),
        )
        if line
    )
    blocks = [
        NARRATIVE_ROLE,
        f"<property_context>\n{property_context}\n</property_context>",
        f"<tier_config>\n<tier>{tier}</tier>\n<instructions>\n{TIER_INSTRUCTIONS.get(tier, TIER_INSTRUCTIONS['foundational'])}\n</instructions>\n</tier_config>",
        f"<tone>{TONE_INSTRUCTIONS.get(ai_tone, TONE_INSTRUCTIONS['balanced'])}</tone>",
    ]
    if historical_context:
        blocks.append(f"<historical_data>\n{historical_context}\n</historical_data>")
    blocks += [NOI_CEILING, NARRATIVE_STYLE]
    if company_name or logo_url:
        blocks.append(
            "<report_header>\n"
            "Include a report header in the executive_summary chart_html.\n"
            + (f"Logo URL: {logo_url}\n" if logo_url else "No logo provided, omit the img tag.\n")
            + f"Company name: {company_name or 'omit the company name'}\n"
            "</report_header>"
        )
    blocks.append(VISUALIZATION_TEMPLATES)

    guidance = "\n\n".join(
        f'<section_guidance id="{s.id}" title="{s.title}" conditional="{str(s.is_conditional).lower()}">\n'
        f"{s.prompt_guidance}\n</section_guidance>"
        for s in sections
    )
    blocks.append(f"<section_definitions>\n{guidance}\n</section_definitions>")
    blocks.append(OUTPUT_FORMAT)

    length_rules = "\n".join(
        f'  <section id="{s.id}">{section_length_instruction(s.id, tier)}</section>' for s in sections
    )
    blocks.append(
        "<section_length_rules>\n"
        "Charts and tables do not count toward the sentence limit.\n"
        f"{length_rules}\n</section_length_rules>"
    )
    chart_rules = "\n".join(
        f'  <section id="{s.id}">{", ".join(charts_for_section(s.visualizations, tier)) or "kpi_strip"}</section>'
        for s in sections
    )
    blocks.append(
        "<chart_access>\n"
        "For each section use ONLY the chart templates listed. kpi_strip means metrics only, no chart_html.\n"
        f"{chart_rules}\n</chart_access>"
    )
    blocks.append(
        "<critical_rules>\n"
        "<rule>Use exact numbers from <extracted_data>. Never fabricate data.</rule>\n"
        "<rule>If a number seems inconsistent, flag it in the narrative.</rule>\n"
        "<rule>Replace {{PRIMARY}}, {{SECONDARY}}, {{ACCENT}}, {{GREEN}}, {{RED}}, {{AMBER}} with values from <brand_colors>.</rule>\n"
        "</critical_rules>"
    )
    return "\n\n".join(blocks)


def _humanize(key: str) -> str:
    return key.replace("_", " ").title()


def build_narrative_user_prompt(
    *,
    extracted_data_json: str,
    sections: list[SectionDefinition],
    sections_to_skip: list[str],
    month: int,
    year: int,
    brand_colors: BrandColors,
    questionnaire: dict | None = None,
    freeform_narrative: str | None = None,
    distribution_status: str | None = None,
    distribution_note: str | None = None,
    skip_reasons: dict[str, str] | None = None,
) -> str:
    parts = [f"Generate the investor report for {MONTH_NAMES[month - 1]} {year}."]
    parts.append(
        "<brand_colors>\n"
        f"PRIMARY={brand_colors.primary}\n"
        f"SECONDARY={brand_colors.secondary}\n"
        f"ACCENT={brand_colors.accent}\n"
        f"GREEN={brand_colors.green}\n"
        f"RED={brand_colors.red}\n"
        f"AMBER={brand_colors.amber}\n"
        "</brand_colors>"
    )
    parts.append(f"<extracted_data>\n{extracted_data_json}\n</extracted_data>")

    answered = [(k, str(v).strip()) for k, v in (questionnaire or {}).items() if v and str(v).strip()]
    if answered or freeform_narrative:
        notes = [f'<note category="{key}">{_humanize(key)}: {value}</note>' for key, value in answered]
        if freeform_narrative:
            notes.append(f"<freeform>{freeform_narrative}</freeform>")
        parts.append("<asset_manager_notes>\n" + "\n".join(notes) + "\n</asset_manager_notes>")

    if distribution_status and distribution_status != "none":
        parts.append(
            "<distribution_status>\n"
            f"<status>{distribution_status}</status>\n"
            + (f"<note>{distribution_note}</note>\n" if distribution_note else "")
            + "</distribution_status>"
        )

    active = [s for s in sections if s.id not in sections_to_skip]
    skipped = [s for s in sections if s.id in sections_to_skip]
    parts.append(
        "<sections_to_generate>\n"
        + "\n".join(f'<section id="{s.id}" title="{s.title}" />' for s in active)
        + "\n</sections_to_generate>"
    )
    if skipped:
        reasons = skip_reasons or {}
        parts.append(
            "<pre_skipped_sections>\n"
            'These sections were skipped due to missing data. Include them with "included": false.\n'
            + "\n".join(
                f'- {s.id}: "{s.title}" ({reasons.get(s.id, "Insufficient data for this section")})'
                for s in skipped
            )
            + "\n</pre_skipped_sections>"
        )
    parts.append(
        "<final_instructions>\n"
        "<instruction>Use the data from <extracted_data>; do not re-read original documents.</instruction>\n"
        f"<instruction>Return a SINGLE JSON with ALL {len(sections)} sections "
        f"({len(active)} active + {len(skipped)} skipped).</instruction>\n"
        "<instruction>STOP AT NOI. No debt service, capex, or distributions unless the asset manager mentioned them.</instruction>\n"
        "</final_instructions>"
    )
    return "\n\n".join(parts)

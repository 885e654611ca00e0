EXTRACTION_SYSTEM_PROMPT = """
<role>
You are a financial data extraction engine for multifamily real estate operating statements.
Parse the uploaded financial documents and extract every relevant number into the JSON schema.
Do not generate narrative text, HTML, charts, or analysis. Return ONLY the JSON object.
</role>

<property_context>
Property: {property_name}
{property_details}
Report Month: {month_name} {year}
</property_context>

<extraction_rules>
- Extract the CURRENT MONTH column ({month_name} or {month}/{year}) as "current" values
- Extract the PRIOR MONTH column (one column to the left of current) as "prior" values
- Extract the BUDGET column if present as "budget" values
- Extract trailing 12 months of NOI, Revenue, Expenses, and Occupancy if available in the T-12
- For the rent roll: extract a unit mix summary grouped by floorplan with average rents, sqft, and occupancy
- For leasing activity: extract move-ins, move-outs, renewals, and notices to vacate counts
- All dollar values as integers with no cents: 113848 not 113848.00 or 113,848
- All percentages as numbers with one decimal: 91.4 not 0.914 or "91.4%"
- If a value cannot be found in the documents, use null. NEVER guess or fabricate numbers
- STOP AT NOI. Do not extract debt service, loan payments, capex, distributions, or any below-the-line items
- Set the data_quality flags to reflect which documents were actually present and readable
</extraction_rules>
"""

MONTH_NAMES = [
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
]

KNOWN_DOCUMENT_TAGS = {
    "t12": "t12_operating_statement",
    "rent_roll": "rent_roll",
    "leasing_activity": "leasing_activity",
    "budget": "annual_budget",
}


def build_extraction_system_prompt(
    *,
    property_name: str,
    month: int,
    year: int,
    property_address: str | None = None,
    unit_count: int | None = None,
) -> str:
    details = []
    if property_address:
        details.append(f"Address: {property_address}")
    if unit_count:
        details.append(f"Units: {unit_count}")
    return EXTRACTION_SYSTEM_PROMPT.format(
        property_name=property_name,
        property_details="\n".join(details),
        month_name=MONTH_NAMES[month - 1],
        month=month,
        year=year,
    )


def build_extraction_user_prompt(*, file_contents: dict[str, str], month: int, year: int) -> str:
    parts = ["<uploaded_documents>"]
    if file_contents.get("t12"):
        parts.append(f"<t12_operating_statement>\n{file_contents['t12']}\n</t12_operating_statement>")
    else:
        parts.append("<t12_operating_statement>NOT PROVIDED</t12_operating_statement>")

    for key in ("rent_roll", "leasing_activity", "budget"):
        if file_contents.get(key):
            tag = KNOWN_DOCUMENT_TAGS[key]
            parts.append(f"<{tag}>\n{file_contents[key]}\n</{tag}>")

    for key, content in file_contents.items():
        if key in KNOWN_DOCUMENT_TAGS or not content:
            continue
        parts.append(f'<additional_document type="{key}">\n{content}\n</additional_document>')

    parts.append("</uploaded_documents>")
    parts.append(
        f"Extract all financial data for {MONTH_NAMES[month - 1]} {year} into the JSON schema "
        "specified in the system prompt. Return ONLY the JSON object."
    )
    return "\n\n".join(parts)

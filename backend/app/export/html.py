from pathlib import Path

import markdown
from jinja2 import Environment, FileSystemLoader, select_autoescape

from app.agent.artifacts import BrandColors, GeneratedSection
from app.file_parser import MONTH_NAMES
from app.models import Property, Report, UserSettings

TEMPLATES_DIR = Path(__file__).parent / "templates"

DEFAULT_DISCLAIMER = (
    "Confidential – For Investor Use Only. This report contains proprietary information "
    "and is intended solely for the use of the intended recipient(s)."
)

_template_env: Environment | None = None


def ensure_template_env() -> Environment:
    """Return the cached Jinja2 environment for the export templates."""
    global _template_env
    if _template_env is None:
        _template_env = Environment(
            loader=FileSystemLoader(str(TEMPLATES_DIR)),
            autoescape=select_autoescape(["html"]),
            trim_blocks=True,
            lstrip_blocks=True,
        )
    return _template_env


def section_markdown_to_html(content: str) -> str:
    # Raw HTML the model put in the narrative (e.g. <strong>) passes through unchanged
    return markdown.markdown(content or "", extensions=["tables", "sane_lists"])


def report_period(report: Report) -> str:
    return f"{MONTH_NAMES[report.month - 1].capitalize()} {report.year}"


def report_title(report: Report, property: Property) -> str:
    return f"{property.name} - {report_period(report)} Investor Report"


def build_report_html(
    report: Report,
    property: Property,
    user_settings: UserSettings | None = None,
) -> str:
    """Render the included sections of ``report`` as a branded HTML fragment."""
    sections = []
    for raw in report.generated_sections or []:
        section = GeneratedSection.model_validate(raw)
        if not section.included:
            continue
        sections.append(
            {
                "id": section.id,
                "title": section.title,
                "html": section_markdown_to_html(section.content),
                "chart_html": section.chart_html,
                "metrics": section.metrics,
            }
        )
    location = ", ".join(part for part in (property.city, property.state) if part)
    template = ensure_template_env().get_template("report.html")
    return template.render(
        colors=BrandColors.from_user_settings(user_settings),
        company_name=user_settings.company_name if user_settings else None,
        logo_url=user_settings.company_logo_url if user_settings else None,
        property_name=property.name,
        location=location,
        units=property.units,
        period=report_period(report),
        sections=sections,
        disclaimer=(user_settings.custom_disclaimer if user_settings else None) or DEFAULT_DISCLAIMER,
    )


def build_print_html(html: str, title: str = "Investor Report") -> str:
    """Wrap an HTML fragment in a standalone document with print page-break rules."""
    template = ensure_template_env().get_template("print.html")
    return template.render(body=html, title=title)

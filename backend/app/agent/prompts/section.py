SECTION_REGENERATE_SYSTEM_PROMPT = """
You are an expert multifamily real estate analyst revising one section of an investor report.
Keep every number from the current content unless the user's feedback corrects it, and never introduce
figures that are not already present. The NOI ceiling still applies: no debt service, capex, or
distributions unless they already appear in the section.
Respond with ONLY a JSON object. No markdown fences, no preamble.
"""


def build_section_regenerate_prompt(
    *,
    section_id: str,
    section_title: str,
    current_content: str,
    user_notes: str,
    section_guidance: str,
) -> str:
    return (
        f'<task>Regenerate ONLY the "{section_title}" section based on user feedback.</task>\n\n'
        f"<current_content>\n{current_content}\n</current_content>\n\n"
        f"<user_feedback>\n{user_notes}\n</user_feedback>\n\n"
        f"<section_guidelines>\n{section_guidance}\n</section_guidelines>\n\n"
        "<output_format>\n"
        "{\n"
        f'  "id": "{section_id}",\n'
        f'  "title": "{section_title}",\n'
        '  "content": "Updated narrative text",\n'
        '  "chart_html": "",\n'
        '  "metrics": [],\n'
        '  "included": true,\n'
        '  "skipReason": null\n'
        "}\n"
        "</output_format>"
    )

"""
Generation Prompts

Prompt builders for every stage kind the controller executes.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

from ..planner.base import GenerationPlan, PlannedPage, StageDescriptor
from ..utils.rewrite import canonical_page_url

Message = Dict[str, str]

# ============ Document Prompts ============

GENERATION_SYSTEM_PROMPT = """You are an AI that ONLY outputs pure HTML, no markdown and no extra explanation.

Output rules:
- Return one complete document starting with <!DOCTYPE html> and ending with </html>
- Inline all CSS in <style> and all JavaScript in <script>
- Use semantic HTML5 and a responsive layout

Image policy:
- Do not include images unless they are clearly relevant to the content
- Prefer typography, colour, CSS gradients and emoji icons over stock photos
- When an image is needed, reference it as /images/<descriptive-name>.jpg with a meaningful alt text"""

MODIFICATION_SYSTEM_PROMPT = """You are an AI that modifies existing HTML based on user requests.
Only output the complete modified HTML document, no explanations or markdown.

Image policy:
- Remove irrelevant or random images
- Prefer improving text content and styling over adding images

Current HTML code:
{current_html}

Modify this HTML according to the user's request. Output only the complete modified HTML."""

MODIFICATION_USER_PROMPT = "Please modify the HTML according to this request: {request}"

# ============ Multi-page Prompts ============

NAVIGATION_DIRECTIVE = """This page is part of a multi-page website.
Every page shares one navigation bar with exactly these links, in this order:
{navigation}

Use the URLs exactly as written. Mark the link for "{page_name}" as the active page
(add class="active" and aria-current="page")."""

STYLE_REPLICATION_DIRECTIVE = """Replicate the colour palette, typography, spacing and layout of the home page.
Its style and navigation markup was:
{style_reference}"""

PAGE_USER_PROMPT = """Website request: {prompt}

Generate the page "{page_name}" ({title}).
Purpose: {purpose}

{navigation}

{style}"""

# ============ Long-form Prompts ============

SECTION_USER_PROMPT = """Website request: {prompt}

This page is generated in {total_sections} parts. Generate part {number} of {total_sections}: "{section}".
{position_rule}

{previous}"""

SECTION_FIRST_RULE = "Start the document with <!DOCTYPE html>, the <head> with all styles, and open <body>. Do not close <body> or <html>."
SECTION_MIDDLE_RULE = "Output only the HTML of this section. Do not repeat the head and do not close <body> or <html>."
SECTION_LAST_RULE = "Output this section and then close </body></html>."
SECTION_ONLY_RULE = "Output a complete document."

SECTION_PREVIOUS_PROMPT = """The previous part ended with:
{tail}

Continue seamlessly from there."""

# ============ Hierarchical Prompts ============

LAYER_INSTRUCTIONS = {
    "structure": "Build the complete semantic HTML structure and all text content. Use minimal styling.",
    "styling": "Keep the structure and content. Add a complete, polished visual design in <style>.",
    "interactivity": "Keep the structure and design. Add JavaScript interactions, animations and responsive behaviour.",
}

LAYER_USER_PROMPT = """Website request: {prompt}

Layer {number} of {total}: {layer}.
{instruction}

{previous}
Return the complete document."""

# ============ Two-stage Prompts ============

NEEDS_ANALYSIS_PROMPT = """Analyse this web application request and list its requirements as JSON:
{{"features": [...], "data": [...], "components": [{{"name": "...", "purpose": "..."}}], "constraints": [...]}}

Request: {prompt}

Only output JSON."""

ARCHITECTURE_PROMPT = """Design the page architecture for this application.

Request: {prompt}

Requirements analysis:
{needs}

Describe the layout regions, state, and how the components interact. Be concise."""

COMPONENT_PROMPT = """Write the HTML, CSS and JavaScript for the component "{name}".
Purpose: {purpose}

Architecture:
{architecture}

Output only the component markup with its own <style> and <script> blocks."""

ASSEMBLY_PROMPT = """Assemble the final single-file application.

Request: {prompt}

Architecture:
{architecture}

Components:
{components}

Return one complete HTML document that integrates all components."""


def _system(content: str) -> Message:
    return {"role": "system", "content": content}


def _user(content: str) -> Message:
    return {"role": "user", "content": content}


def document_messages(prompt: str) -> List[Message]:
    return [_system(GENERATION_SYSTEM_PROMPT), _user(prompt)]


def modification_messages(request: str, current_html: str) -> List[Message]:
    return [
        _system(MODIFICATION_SYSTEM_PROMPT.format(current_html=current_html)),
        _user(MODIFICATION_USER_PROMPT.format(request=request)),
    ]


def navigation_list(project_id: str, pages: Sequence[PlannedPage]) -> str:
    """Render the shared navigation as ``- Title: /preview/...`` lines."""
    return "\n".join(
        f"- {page.title or page.page_name}: {canonical_page_url(project_id, page.page_name)}" for page in pages
    )


def page_messages(
    plan: GenerationPlan,
    stage: StageDescriptor,
    *,
    project_id: str,
    style_reference: Optional[str] = None,
) -> List[Message]:
    page_name = stage.page_name or "index"
    navigation = NAVIGATION_DIRECTIVE.format(
        navigation=navigation_list(project_id, plan.pages),
        page_name=page_name,
    )
    style = ""
    if not stage.is_main_page and style_reference:
        style = STYLE_REPLICATION_DIRECTIVE.format(style_reference=style_reference)
    content = PAGE_USER_PROMPT.format(
        prompt=plan.prompt,
        page_name=page_name,
        title=stage.title or page_name,
        purpose=stage.description or "as fits the website",
        navigation=navigation,
        style=style,
    )
    return [_system(GENERATION_SYSTEM_PROMPT), _user(content.strip())]


def section_messages(plan: GenerationPlan, stage: StageDescriptor, *, previous_tail: str = "") -> List[Message]:
    index = stage.section_index or 0
    total = stage.total_sections or 1
    if total == 1:
        rule = SECTION_ONLY_RULE
    elif index == 0:
        rule = SECTION_FIRST_RULE
    elif index == total - 1:
        rule = SECTION_LAST_RULE
    else:
        rule = SECTION_MIDDLE_RULE
    previous = SECTION_PREVIOUS_PROMPT.format(tail=previous_tail) if previous_tail else ""
    content = SECTION_USER_PROMPT.format(
        prompt=plan.prompt,
        total_sections=total,
        number=index + 1,
        section=stage.title,
        position_rule=rule,
        previous=previous,
    )
    return [_system(GENERATION_SYSTEM_PROMPT), _user(content.strip())]


def layer_messages(
    plan: GenerationPlan,
    stage: StageDescriptor,
    *,
    total_layers: int,
    previous_html: str = "",
) -> List[Message]:
    layer = stage.title
    instruction = LAYER_INSTRUCTIONS.get(layer.lower(), f"Improve the document with a focus on {layer}.")
    previous = f"Current document:\n{previous_html}\n" if previous_html else ""
    content = LAYER_USER_PROMPT.format(
        prompt=plan.prompt,
        number=stage.index + 1,
        total=total_layers,
        layer=layer,
        instruction=instruction,
        previous=previous,
    )
    return [_system(GENERATION_SYSTEM_PROMPT), _user(content)]


def needs_messages(plan: GenerationPlan) -> List[Message]:
    return [_user(NEEDS_ANALYSIS_PROMPT.format(prompt=plan.prompt))]


def architecture_messages(plan: GenerationPlan, needs: str) -> List[Message]:
    return [_user(ARCHITECTURE_PROMPT.format(prompt=plan.prompt, needs=needs))]


def component_messages(component: Dict[str, Any], architecture: str) -> List[Message]:
    return [
        _user(
            COMPONENT_PROMPT.format(
                name=component.get("name") or "component",
                purpose=component.get("purpose") or "",
                architecture=architecture,
            )
        )
    ]


def assembly_messages(plan: GenerationPlan, architecture: str, components: Dict[str, str]) -> List[Message]:
    rendered = "\n\n".join(f"<!-- {name} -->\n{markup}" for name, markup in components.items())
    return [
        _system(GENERATION_SYSTEM_PROMPT),
        _user(ASSEMBLY_PROMPT.format(prompt=plan.prompt, architecture=architecture, components=rendered)),
    ]


__all__ = [
    "GENERATION_SYSTEM_PROMPT",
    "MODIFICATION_SYSTEM_PROMPT",
    "document_messages",
    "modification_messages",
    "navigation_list",
    "page_messages",
    "section_messages",
    "layer_messages",
    "needs_messages",
    "architecture_messages",
    "component_messages",
    "assembly_messages",
]

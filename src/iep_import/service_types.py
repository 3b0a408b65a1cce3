"""
Provider role to goal-category mapping.

Used by the parser to keep only the goals relevant to the importing
provider (a resource teacher should not import speech-only goals).
Goals are classified from the numeric service code or from keywords in
the area-of-need, goal-type and person-responsible cells.
"""

from __future__ import annotations

SERVICE_TYPE_CODES: dict[str, str | None] = {
    "resource": "330",      # Specialized Academic Instruction
    "speech": "415",        # Language and Speech
    "ot": "450",            # Occupational Therapy
    "counseling": "510",    # Individual Counseling
    "psychologist": None,   # No specific code - imports all goals
    "specialist": None,     # No specific code - imports all goals
    "sea": None,
}

PROVIDER_KEYWORDS: dict[str, list[str]] = {
    "speech": [
        "speech", "language", "slp", "speech/language", "speech-language",
    ],
    "resource": [
        "academic", "reading", "math", "written", "writing", "rsp",
        "resource", "special ed", "special education", "specialized academic",
    ],
    "ot": [
        "motor", "fine motor", "gross motor", "occupational", "ot",
    ],
    "counseling": [
        "social", "emotional", "social/emotional", "social-emotional",
        "behavior", "behavioral", "counselor", "counseling",
    ],
}


def normalize_role(role: str | None) -> str:
    return (role or "").strip().lower()


def role_filters_goals(role: str | None) -> bool:
    """Whether goals should be filtered at all for this role."""
    return normalize_role(role) in PROVIDER_KEYWORDS


def _text_matches_keywords(text: str, keywords: list[str]) -> bool:
    lowered = text.lower()
    for keyword in keywords:
        # Very short keywords ("ot") must stand alone to avoid matching "note", "motor"
        if len(keyword) <= 3:
            tokens = set(lowered.replace("/", " ").replace(",", " ").replace("-", " ").split())
            if keyword in tokens:
                return True
        elif keyword in lowered:
            return True
    return False


def is_goal_for_provider(
    provider_role: str | None,
    area_of_need: str = "",
    goal_type: str = "",
    person_responsible: str = "",
) -> bool:
    """
    Decide whether a goal belongs to the provider.

    Args:
        provider_role: Provider role (resource, speech, ot, counseling, ...)
        area_of_need: Area of Need cell, e.g. "Speech/Language"
        goal_type: Annual Goal # / service cell, e.g. "Academic (2 of 3)" or "330"
        person_responsible: Person Responsible cell, e.g. "SLP, Teacher"

    Returns:
        True when the role does not filter, when the goal carries no
        category information at all, or when any category cell matches
        the role's service code or keywords.
    """
    role = normalize_role(provider_role)
    keywords = PROVIDER_KEYWORDS.get(role)
    if not keywords:
        return True

    cells = [c for c in (area_of_need, goal_type, person_responsible) if c and c.strip()]
    if not cells:
        return True

    code = SERVICE_TYPE_CODES.get(role)
    if code and goal_type and code in goal_type:
        return True

    return any(_text_matches_keywords(cell, keywords) for cell in cells)

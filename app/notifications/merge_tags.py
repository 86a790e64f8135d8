"""
Merge tags: `{tag}` placeholders in notification templates, resolved from a
participant/program snapshot plus per-notification values.
"""

import re
from dataclasses import dataclass
from typing import Optional

from app.domain.models import Participant, Program

SUPPORTED_TAGS = {
    # Participant fields
    "points": "Current total points",
    "unused_points": "Current unused/available points",
    "status": "Participant status",
    "tier": "Participant tier (or status if tier is empty)",
    "email": "Participant email",
    "fname": "First name",
    "lname": "Last name",
    "full_name": "Full name (first + last)",
    # Program fields
    "program_name": "Program name",
    # Profile attributes (dynamic)
    "profile.*": "Profile attributes (e.g. profile.custom_field)",
    # Notification-specific
    "points_delta": "Points change amount (+ or -)",
    "new_points": "New points balance after change",
}

TAG_PATTERN = re.compile(r"\{([^{}]+)\}")

DEFAULT_POINTS_TEMPLATE = (
    "Your points have been updated! You gained {points_delta} points. New balance: {new_points}"
)

@dataclass
class MergeTagContext:
    participant: Participant
    program: Optional[Program] = None
    points_delta: Optional[int] = None
    new_points: Optional[int] = None

@dataclass
class TemplateValidation:
    valid: bool
    unknown_tags: list[str]
    warnings: list[str]

def _text(value) -> str:
    return "" if value is None else str(value)

class MergeTagResolver:
    def resolve(self, context: MergeTagContext) -> dict[str, str]:
        p = context.participant
        tags: dict[str, str] = {
            "points": str(p.points or 0),
            "unused_points": str(p.unused_points or 0),
            "status": _text(p.status),
            "tier": _text(p.tier or p.status),
            "email": _text(p.email),
            "fname": _text(p.fname),
            "lname": _text(p.lname),
            "full_name": " ".join(part for part in (p.fname, p.lname) if part),
        }

        if context.program:
            tags["program_name"] = _text(context.program.name)

        for key, value in (p.profile or {}).items():
            tags[f"profile.{key}"] = _text(value)

        if context.points_delta is not None:
            delta = context.points_delta
            tags["points_delta"] = f"+{delta}" if delta > 0 else str(delta)
        if context.new_points is not None:
            tags["new_points"] = str(context.new_points)

        return tags

    def substitute(self, template: str, tags: dict[str, str]) -> str:
        # Unresolved tags are left in place so a broken template is visible
        return TAG_PATTERN.sub(lambda m: tags.get(m.group(1), m.group(0)), template)

    def find_unknown_tags(self, template: str) -> list[str]:
        unknown: list[str] = []
        for tag in TAG_PATTERN.findall(template):
            known = tag in SUPPORTED_TAGS or tag.startswith("profile.")
            if not known and tag not in unknown:
                unknown.append(tag)
        return unknown

    def validate_template(self, template: str) -> TemplateValidation:
        unknown = self.find_unknown_tags(template)
        warnings = []
        if unknown:
            warnings.append("Unknown tags found: " + ", ".join(f"{{{t}}}" for t in unknown))
        return TemplateValidation(valid=not unknown, unknown_tags=unknown, warnings=warnings)

"""
Notification message templates for QuietWatch.
"""

import logging
from typing import Optional
from jinja2 import Environment, StrictUndefined, TemplateError

logger = logging.getLogger(__name__)

# "No new alerts for {locality} in the last {minutes} minutes. You may exit the protected space."
STAND_DOWN_TEMPLATE = (
    "אין התרעות חדשות עבור {{ locality }} ב-{{ minutes }} הדקות האחרונות. "
    "אפשר לצאת מהמרחב המוגן."
    "{% if link %}\n\nהתרעה אחרונה: {{ link }}{% endif %}"
)

# "Home Front Command update: in {locality} you may exit the protected space but should stay nearby."
OVERRIDE_TEMPLATE = (
    "עדכון פיקוד העורף: באזור {{ locality }} ניתן לצאת מהמרחב המוגן, אך יש להישאר בקרבתו."
    "{% if link %}\n\nעדכון רשמי: {{ link }}{% endif %}"
)


class MessageTemplates:
    """Renders the two outbound notification texts."""

    def __init__(self, stand_down_template: Optional[str] = None, override_template: Optional[str] = None):
        self.env = Environment(autoescape=False, undefined=StrictUndefined)
        self.stand_down = self.env.from_string(stand_down_template or STAND_DOWN_TEMPLATE)
        self.override = self.env.from_string(override_template or OVERRIDE_TEMPLATE)

    def render_stand_down(self, locality: str, minutes: int, link: Optional[str] = None) -> str:
        """Message sent when a locality's quiet window elapses."""
        return self._render(self.stand_down, locality=locality, minutes=minutes, link=link)

    def render_override(self, locality: str, link: Optional[str] = None) -> str:
        """Message sent when an official stand-down bulletin names a locality."""
        return self._render(self.override, locality=locality, link=link)

    def _render(self, template, **context) -> str:
        try:
            return template.render(**context)
        except TemplateError as e:
            logger.error(f"Failed to render notification template: {e}")
            raise

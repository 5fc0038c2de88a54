"""
Message template service for rendering notification messages with placeholders.

This service handles placeholder replacement in message templates (e.g.,
{therapy}, {datetime}) and picks therapy-specific care instructions, falling
back to generic instructions for therapies without their own entry.
"""

import logging
from datetime import datetime, tzinfo
from typing import Any, Dict, List, Optional

from core.message_template_constants import (
    DEFAULT_MESSAGES,
    DEFAULT_TITLES,
    GENERIC_POST_PROCEDURE_INSTRUCTIONS,
    GENERIC_PRE_PROCEDURE_INSTRUCTIONS,
    POST_PROCEDURE_INSTRUCTIONS,
    PRE_PROCEDURE_INSTRUCTIONS,
)
from shared_types.scheduling import AppointmentRecord, NotificationKind
from utils.datetime_utils import format_datetime

logger = logging.getLogger(__name__)


def normalize_therapy_name(therapy: str) -> str:
    """
    Normalize a therapy name into a catalog key.

    Display suffixes in parentheses are dropped, so "Abhyanga (Oil Massage)"
    and "abhyanga" share one entry.
    """
    return therapy.split("(", 1)[0].strip().lower()


class MessageTemplateService:
    """Service for rendering notification templates with placeholders."""

    @staticmethod
    def render_message(template: str, context: Dict[str, Any]) -> str:
        """
        Render message template with placeholders.

        Replacement order: longest placeholders first to avoid substring
        conflicts (e.g., {datetime} before {date}).

        Args:
            template: Message template with placeholders
            context: Dictionary with keys matching placeholders

        Returns:
            Rendered message with placeholders replaced
        """
        message = template

        sorted_keys = sorted(context.keys(), key=len, reverse=True)
        for key in sorted_keys:
            placeholder = f"{{{key}}}"
            value = str(context.get(key) or "")
            message = message.replace(placeholder, value)

        return message.strip()

    @staticmethod
    def get_pre_procedure_instructions(therapy: str) -> List[str]:
        return PRE_PROCEDURE_INSTRUCTIONS.get(
            normalize_therapy_name(therapy), GENERIC_PRE_PROCEDURE_INSTRUCTIONS
        )

    @staticmethod
    def get_post_procedure_instructions(therapy: str) -> List[str]:
        return POST_PROCEDURE_INSTRUCTIONS.get(
            normalize_therapy_name(therapy), GENERIC_POST_PROCEDURE_INSTRUCTIONS
        )

    @staticmethod
    def format_instructions(instructions: List[str]) -> str:
        """Join instructions into one sentence-style string."""
        parts = [item.strip().rstrip(".") for item in instructions if item.strip()]
        return "; ".join(parts) + "." if parts else ""

    @staticmethod
    def build_appointment_context(
        appointment: AppointmentRecord,
        tz: tzinfo,
        reason: Optional[str] = None,
        hours_before: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Build context dict for appointment-related messages.

        Returns dict with keys matching placeholders:
        - {therapy}: Therapy name as booked
        - {datetime}: Start time (e.g., "Mon 15 Jan 2024, 10:00 AM")
        - {date}: Start date (e.g., "Mon 15 Jan 2024")
        - {time}: Start time of day (e.g., "10:00 AM")
        - {reason}: " Reason: ..." when a cancellation reason is given
        - {hours_before}: Reminder lead time in hours
        """
        formatted = format_datetime(appointment.start_time, tz)
        formatted_date, _, formatted_time = formatted.partition(", ")

        return {
            "therapy": appointment.therapy,
            "datetime": formatted,
            "date": formatted_date,
            "time": formatted_time,
            "reason": f" Reason: {reason}" if reason and reason.strip() else "",
            "hours_before": hours_before if hours_before is not None else "",
        }

    @staticmethod
    def render(kind: NotificationKind, context: Dict[str, Any]) -> Dict[str, str]:
        """
        Render the default title and message for a notification kind.

        Returns:
            Dict with "title" and "message"
        """
        return {
            "title": MessageTemplateService.render_message(DEFAULT_TITLES[kind], context),
            "message": MessageTemplateService.render_message(DEFAULT_MESSAGES[kind], context),
        }

"""
Default notification templates and therapy care instructions.

Titles and messages use {placeholder} names filled by
MessageTemplateService.render_message. Pre/post-procedure instructions are
keyed by therapy name; therapies without an entry use the generic lists.
"""

from typing import Dict, List

from shared_types.scheduling import NotificationKind

# Title shown for each notification kind
DEFAULT_TITLES: Dict[NotificationKind, str] = {
    NotificationKind.APPOINTMENT_CONFIRMATION: "Appointment Confirmed",
    NotificationKind.APPOINTMENT_REMINDER: "Upcoming Appointment",
    NotificationKind.PRE_PROCEDURE: "Pre-Procedure Preparation",
    NotificationKind.POST_PROCEDURE: "Post-Procedure Care",
    NotificationKind.APPOINTMENT_CANCELLATION: "Appointment Cancelled",
    NotificationKind.FEEDBACK_REQUEST: "Session Feedback Requested",
    NotificationKind.THERAPY_PROGRESS: "Progress Update",
}

# Message body for each notification kind
DEFAULT_MESSAGES: Dict[NotificationKind, str] = {
    NotificationKind.APPOINTMENT_CONFIRMATION: (
        "Your {therapy} session has been confirmed for {date} at {time}."
    ),
    NotificationKind.APPOINTMENT_REMINDER: (
        "Your {therapy} session is scheduled in {hours_before} hours, on {datetime}. "
        "Please prepare according to the guidelines."
    ),
    NotificationKind.PRE_PROCEDURE: (
        "Please follow these preparation instructions for your {therapy} session: {instructions}"
    ),
    NotificationKind.POST_PROCEDURE: (
        "Please follow these care instructions after your {therapy} session: {instructions}"
    ),
    NotificationKind.APPOINTMENT_CANCELLATION: (
        "Your {therapy} session on {datetime} has been cancelled.{reason}"
    ),
    NotificationKind.FEEDBACK_REQUEST: (
        "Please provide feedback about your {therapy} session to help us improve your treatment."
    ),
    NotificationKind.THERAPY_PROGRESS: (
        "Great progress on your {therapy} treatment! {progress}"
    ),
}

GENERIC_PRE_PROCEDURE_INSTRUCTIONS: List[str] = [
    "Please avoid heavy meals 2 hours before your session.",
]

GENERIC_POST_PROCEDURE_INSTRUCTIONS: List[str] = [
    "Please rest for 30 minutes and avoid cold water for 2 hours.",
]

# Keys are lower-cased therapy names
PRE_PROCEDURE_INSTRUCTIONS: Dict[str, List[str]] = {
    "abhyanga": [
        "Avoid heavy meals 2-3 hours before the session",
        "Take a light shower before arrival",
        "Wear comfortable, loose-fitting clothes",
        "Avoid alcohol and caffeine 24 hours prior",
        "Inform practitioner of any skin allergies",
    ],
    "shirodhara": [
        "Wash hair with mild shampoo before arrival",
        "Avoid applying oil or styling products to hair",
        "Eat a light meal 1-2 hours before",
        "Wear clothes that can get oil stains",
        "Remove all jewelry and accessories",
    ],
}

POST_PROCEDURE_INSTRUCTIONS: Dict[str, List[str]] = {
    "abhyanga": [
        "Rest for 30 minutes after the session",
        "Drink warm water to aid detoxification",
        "Avoid cold drinks and foods for 2 hours",
        "Take a warm shower after 2-3 hours",
        "Avoid strenuous activities for the day",
    ],
}

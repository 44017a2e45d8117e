"""Prompt templates for transcript-based content generation."""

from __future__ import annotations

EMAIL_SYSTEM_PROMPT = (
    "You are an expert assistant for financial advisors. Your task is to draft "
    "a concise, professional follow-up email based on a meeting transcript. "
    "The email should summarize key discussion points, list clear action items "
    "(for both the advisor and the client), and end with a positive closing "
    "statement. Format it as a ready-to-send email."
)

SOCIAL_POST_SYSTEM_PROMPT = (
    "You are a social media manager for a financial advisor. Write a single "
    "{platform} post based on the meeting transcript you are given. Never "
    "include client names, account details, or other confidential information. "
    "Return only the post text, ready to publish.\n\n"
    "Follow these instructions for tone and content:\n{instructions}"
)


def transcript_user_message(transcript: str) -> str:
    return f"Here is the meeting transcript:\n\n{transcript}"


def build_email_messages(transcript: str) -> list[dict]:
    """Messages for the fixed follow-up email generation call."""
    return [
        {"role": "system", "content": EMAIL_SYSTEM_PROMPT},
        {"role": "user", "content": transcript_user_message(transcript)},
    ]


def build_social_post_messages(
    platform: str, instructions: str, transcript: str
) -> list[dict]:
    """Messages for one automation: its stored prompt is the instruction."""
    system = SOCIAL_POST_SYSTEM_PROMPT.format(
        platform=platform.capitalize(),
        instructions=instructions,
    )
    return [
        {"role": "system", "content": system},
        {"role": "user", "content": transcript_user_message(transcript)},
    ]

"""
Triage Domain Entities
======================

Pure Python business objects for ticket triage: the classifier prompt,
extraction and validation of the classifier's JSON answer, and the
classification value carried into the ticket.
"""

import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ticketmate.config import VALID_PRIORITIES


@dataclass
class Classification:
    """
    Triage metadata suggested for a ticket.

    Built either from a valid classifier answer or from the configured
    fallback.
    """
    priority: str
    helpful_notes: str
    related_skills: List[str] = field(default_factory=list)
    reply_suggestions: List[str] = field(default_factory=list)
    summary: Optional[str] = None
    is_fallback: bool = False

    def ticket_fields(self) -> Dict[str, Any]:
        """Ticket columns this classification writes."""
        return {
            "priority": self.priority,
            "helpful_notes": self.helpful_notes,
            "related_skills": list(self.related_skills),
            "reply_suggestions": list(self.reply_suggestions),
        }


_FENCED_BLOCK = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```", re.IGNORECASE)


def extract_json(raw: Optional[str]) -> Any:
    """
    Pull a JSON value out of a free-form model reply.

    Tries, in order: the whole reply, the first fenced code block
    (```json or ```), the span from the first "{" to the last "}".

    Raises:
        ValueError: when all three fail
    """
    text = (raw or "").strip()

    try:
        return json.loads(text)
    except ValueError:
        pass

    match = _FENCED_BLOCK.search(text)
    if match:
        try:
            return json.loads(match.group(1).strip())
        except ValueError:
            pass

    start = text.find("{")
    end = text.rfind("}")
    if start != -1 and end > start:
        try:
            return json.loads(text[start:end + 1])
        except ValueError:
            pass

    raise ValueError("Could not extract valid JSON from AI response")


def _is_str_list(value: Any) -> bool:
    return isinstance(value, list) and all(isinstance(item, str) for item in value)


def validate_classification(data: Any) -> Optional[Classification]:
    """
    Return a Classification when `data` has the expected shape, else None.

    Required: summary (str), priority (low/medium/high), helpfulNotes (str),
    relatedSkills (list of str), replySuggestions (non-empty list of str).
    """
    if not isinstance(data, dict):
        return None

    summary = data.get("summary")
    priority = data.get("priority")
    notes = data.get("helpfulNotes")
    skills = data.get("relatedSkills")
    replies = data.get("replySuggestions")

    if not isinstance(summary, str) or not isinstance(notes, str):
        return None
    if priority not in VALID_PRIORITIES:
        return None
    if not _is_str_list(skills):
        return None
    if not _is_str_list(replies) or not replies:
        return None

    return Classification(
        priority=priority,
        helpful_notes=notes,
        related_skills=list(skills),
        reply_suggestions=list(replies),
        summary=summary,
    )


class ClassificationPromptBuilder:
    """
    Builds prompts for ticket analysis.

    Following DRY principle - all prompt logic in one place.
    """

    SYSTEM_PROMPT = """You are an expert AI assistant that processes technical support tickets.

Your job is to:
1. Summarize the issue.
2. Estimate its priority.
3. Provide helpful notes and resource links for human moderators.
4. List relevant technical skills required.
5. Generate 3 suggested replies (max 50 words each) that the assigned person can use.

IMPORTANT:
- Respond with ONLY valid raw JSON.
- Do NOT include markdown, code fences, comments, or any extra formatting.
- The format must be a raw JSON object starting with { and ending with }.
- Each reply suggestion should be professional, helpful, and under 50 words.

Example format:
{"summary":"Brief description","priority":"medium","helpfulNotes":"Detailed explanation","relatedSkills":["skill1","skill2"],"replySuggestions":["suggestion1","suggestion2","suggestion3"]}"""

    @classmethod
    def build_prompt(cls, title: str, description: str, extra_instructions: str = "") -> str:
        """Build the analysis prompt from ticket content."""
        prompt = f"""Analyze this support ticket and return ONLY a JSON object:

Required JSON format:
{{
  "summary": "1-2 sentence summary of the issue",
  "priority": "low|medium|high",
  "helpfulNotes": "Detailed technical explanation with resources",
  "relatedSkills": ["skill1", "skill2", "skill3"],
  "replySuggestions": [
    "First reply suggestion (max 50 words)",
    "Second reply suggestion (max 50 words)",
    "Third reply suggestion (max 50 words)"
  ]
}}

Ticket Details:
Title: {title}
Description: {description}
"""
        if extra_instructions:
            prompt += f"\n{extra_instructions.strip()}\n"

        return prompt + "\nReturn ONLY the JSON object, no other text:"

    @classmethod
    def get_system_prompt(cls) -> str:
        """Get the system prompt for ticket analysis."""
        return cls.SYSTEM_PROMPT

    @classmethod
    def build_messages(cls, title: str, description: str, extra_instructions: str = "") -> List[dict]:
        return [
            {"role": "system", "content": cls.get_system_prompt()},
            {"role": "user", "content": cls.build_prompt(title, description, extra_instructions)},
        ]

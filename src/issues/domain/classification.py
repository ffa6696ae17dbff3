"""
Classification Prompt and Reply Parsing
=======================================

The model answers in free text. Only two markers are trusted:
``Category: <name>`` and ``Confidence: <0-100>``. Everything else in
the reply is ignored.
"""

import base64
import re
from dataclasses import dataclass
from typing import List, Optional

from src.config import ISSUE_CATEGORIES, IssueCategory, DEFAULT_CONFIDENCE
from src.core import ClassificationParseError


@dataclass(frozen=True)
class ParsedClassification:
    category: str
    confidence: int


class ClassificationPromptBuilder:
    """Builds the multimodal classification request."""

    PROMPT_TEMPLATE = """Analyze this civic issue image and description to categorize it.

Description: "{description}"

Based on the image and description, classify this civic issue into ONE of these categories:
{categories}

Respond with ONLY the category name and a confidence score (0-100). Format: "Category: [CATEGORY], Confidence: [SCORE]\""""

    @classmethod
    def build_prompt(cls, description: str) -> str:
        categories = "\n".join(f"- {category}" for category in ISSUE_CATEGORIES)
        return cls.PROMPT_TEMPLATE.format(description=description, categories=categories)

    @classmethod
    def build_messages(cls, description: str, image: bytes, mime_type: str) -> List[dict]:
        """Single user turn carrying the instruction text and the inline image."""
        encoded = base64.b64encode(image).decode("ascii")
        return [
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": cls.build_prompt(description)},
                    {
                        "type": "image_url",
                        "image_url": {"url": f"data:{mime_type};base64,{encoded}"}
                    },
                ],
            }
        ]


class ClassificationParser:
    """
    Turns a model reply into a taxonomy category and a bounded confidence.

    - neither marker present: ClassificationParseError
    - category missing or outside the taxonomy: Other
    - confidence missing: 50
    - confidence always clamped to [0, 100]
    """

    # The label ends at a comma, a newline or the confidence marker
    CATEGORY_PATTERN = re.compile(
        r"category\s*[:=]\s*([^,\n]+?)(?=\s*(?:,|\n|confidence\b|$))", re.IGNORECASE
    )
    CONFIDENCE_PATTERN = re.compile(r"confidence\s*[:=][\s\"'\[*]*(-?\d+(?:\.\d+)?)", re.IGNORECASE)

    _STRIP_CHARS = " \t\"'`*[]()."
    _LOOKUP = {category.lower(): category for category in ISSUE_CATEGORIES}

    @classmethod
    def parse(cls, raw_text: Optional[str]) -> ParsedClassification:
        text = raw_text or ""
        category_match = cls.CATEGORY_PATTERN.search(text)
        confidence_match = cls.CONFIDENCE_PATTERN.search(text)

        if category_match is None and confidence_match is None:
            raise ClassificationParseError(text)

        category = IssueCategory.OTHER
        if category_match is not None:
            category = cls.normalize_category(category_match.group(1))

        confidence = DEFAULT_CONFIDENCE
        if confidence_match is not None:
            confidence = round(float(confidence_match.group(1)))

        return ParsedClassification(category=category, confidence=clamp_confidence(confidence))

    @classmethod
    def normalize_category(cls, raw_category: str) -> str:
        """Map a model-supplied label onto the taxonomy, case-insensitively."""
        cleaned = " ".join(raw_category.strip(cls._STRIP_CHARS).split()).lower()
        return cls._LOOKUP.get(cleaned, IssueCategory.OTHER)


def clamp_confidence(value: int) -> int:
    return max(0, min(100, int(value)))

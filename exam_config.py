"""
Exam configuration: topic catalog, validation and sanitization.

The browser posts an untyped JSON object. ``validate_config`` checks it
against the fixed enumerations and ranges and reports every violation;
``parse_config`` then turns a valid body into a typed ``ExamConfig``.
"""

import math
import re
from typing import Any, Dict, List, Literal, Optional, get_args

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from errors import InvalidConfig

# ═══════════════════════════════════════════════════════════════════════
# CATALOG
# ═══════════════════════════════════════════════════════════════════════

TOPICS: Dict[str, List[str]] = {
    "Algebra & Functions": [
        "Sequences & Series",
        "Exponents & Logarithms",
        "Binomial Theorem",
        "Polynomial Functions",
        "Rational Functions",
        "Transformation of Functions",
    ],
    "Calculus": [
        "Differentiation",
        "Integration (definite & indefinite)",
        "Integration by Parts",
        "Volumes of Revolution",
        "Differential Equations",
        "Related Rates",
        "Optimization",
    ],
    "Geometry & Trigonometry": [
        "Trigonometric Functions",
        "Trigonometric Identities",
        "Vectors",
        "Lines & Planes in 3D",
        "Circle Geometry",
    ],
    "Statistics & Probability": [
        "Descriptive Statistics",
        "Probability",
        "Distributions (Normal, Binomial, Poisson)",
        "Hypothesis Testing",
        "Regression & Correlation",
    ],
    "Number & Algebra": [
        "Proof by Induction",
        "Complex Numbers",
        "Matrices",
        "Systematic Counting",
    ],
}

ALL_TOPICS = frozenset(t for group in TOPICS.values() for t in group)

Level      = Literal["AA HL", "AA SL", "AI HL", "AI SL"]
PaperType  = Literal["Paper 1 (No Calculator)", "Paper 2 (Calculator)", "Mixed / Custom"]
Difficulty = Literal["Standard", "Challenging", "Exam Stretch"]

LEVELS       = get_args(Level)
PAPER_TYPES  = get_args(PaperType)
DIFFICULTIES = get_args(Difficulty)

PAPER_1 = "Paper 1 (No Calculator)"

NUM_QUESTIONS_RANGE = (3, 10)
TOTAL_MARKS_RANGE   = (20, 120)
MAX_NOTES_LENGTH    = 500

# Characters removed from teacher notes before they reach the prompt
_UNSAFE_NOTES_CHARS = re.compile(r"[<>{}\[\]\\]")


# ═══════════════════════════════════════════════════════════════════════
# VALIDATION
# ═══════════════════════════════════════════════════════════════════════

def as_int(value: Any) -> Optional[int]:
    """Coerce a numeric-like value to int, or None if it isn't a whole number."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) and value.is_integer() else None
    if isinstance(value, str):
        s = value.strip()
        try:
            return int(s)
        except ValueError:
            pass
        try:
            f = float(s)
        except ValueError:
            return None
        return int(f) if math.isfinite(f) and f.is_integer() else None
    return None


def _in_range(value: Any, bounds) -> bool:
    n = as_int(value)
    return n is not None and bounds[0] <= n <= bounds[1]


def validate_config(body: Any) -> List[str]:
    """Return every problem with ``body``; an empty list means it is valid."""
    if not isinstance(body, dict):
        body = {}

    errors = []
    if body.get("level") not in LEVELS:
        errors.append("Invalid level")
    if body.get("paperType") not in PAPER_TYPES:
        errors.append("Invalid paperType")
    if body.get("difficulty") not in DIFFICULTIES:
        errors.append("Invalid difficulty")

    topics = body.get("topics")
    if not isinstance(topics, list) or not topics:
        errors.append("Select at least one topic")
    elif any(not isinstance(t, str) or t not in ALL_TOPICS for t in topics):
        errors.append("Unknown topic")

    if not _in_range(body.get("numQuestions"), NUM_QUESTIONS_RANGE):
        errors.append("numQuestions must be 3–10")
    if not _in_range(body.get("totalMarks"), TOTAL_MARKS_RANGE):
        errors.append("totalMarks must be 20–120")

    notes = body.get("additionalNotes")
    if notes is not None:
        if not isinstance(notes, str):
            errors.append("Invalid additionalNotes")
        elif len(notes) > MAX_NOTES_LENGTH:
            errors.append("Notes too long")

    return errors


def sanitize_notes(text: Optional[str]) -> str:
    """Strip markup/injection characters, cap the length, trim."""
    cleaned = _UNSAFE_NOTES_CHARS.sub("", text or "")
    return cleaned[:MAX_NOTES_LENGTH].strip()


# ═══════════════════════════════════════════════════════════════════════
# TYPED CONFIG
# ═══════════════════════════════════════════════════════════════════════

class ExamConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    level: Level
    paper_type: PaperType = Field(alias="paperType")
    difficulty: Difficulty
    topics: List[str] = Field(min_length=1)
    num_questions: int = Field(alias="numQuestions", ge=3, le=10)
    total_marks: int = Field(alias="totalMarks", ge=20, le=120)
    additional_notes: str = Field(default="", alias="additionalNotes")

    @field_validator("additional_notes", mode="before")
    @classmethod
    def _sanitize_notes(cls, value):
        return sanitize_notes(value)

    @property
    def is_higher_level(self) -> bool:
        return "HL" in self.level

    @property
    def is_paper_1(self) -> bool:
        return self.paper_type == PAPER_1


def parse_config(body: Any) -> ExamConfig:
    """Validate ``body`` and build an ``ExamConfig``; raises InvalidConfig."""
    errors = validate_config(body)
    if errors:
        raise InvalidConfig(errors)

    data = dict(body)
    data["numQuestions"] = as_int(body["numQuestions"])
    data["totalMarks"] = as_int(body["totalMarks"])
    try:
        return ExamConfig.model_validate(data)
    except ValidationError as e:
        raise InvalidConfig([err["msg"] for err in e.errors()]) from e

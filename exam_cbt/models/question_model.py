from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator


class QuestionType(str, Enum):
    MCQ = "MCQ"
    NAT = "NAT"


class OptionChoice(BaseModel):
    """A single answer choice. `image` is a URL or None."""

    text: str = ""
    image: Optional[str] = None


def _choice_id(position: int) -> str:
    """0 -> "A", 1 -> "B", ... 25 -> "Z", 26 -> "AA"."""
    label = ""
    position += 1
    while position:
        position, rem = divmod(position - 1, 26)
        label = chr(ord("A") + rem) + label
    return label


def _to_choice(value: Any) -> Dict[str, Any]:
    if isinstance(value, OptionChoice):
        return value.model_dump()
    if isinstance(value, dict):
        text = value.get("text")
        return {
            "text": "" if text is None else str(text),
            "image": value.get("image") or None,
        }
    return {"text": "" if value is None else str(value), "image": None}


def normalize_options(raw: Any) -> Dict[str, Dict[str, Any]]:
    """
    Bring every stored option shape into the canonical choice-id -> choice map.

    Accepted shapes:
        None                                  -> {} (NAT questions)
        ["4", "5", ...]                       -> ids "A", "B", ...
        [{"id": "a", "text": ..., "image": ...}, ...]
        {"A": "4", "B": {"text": "5", "image": None}, ...}
    """
    if raw is None:
        return {}
    if isinstance(raw, dict):
        return {str(key): _to_choice(value) for key, value in raw.items()}
    if isinstance(raw, (list, tuple)):
        options: Dict[str, Dict[str, Any]] = {}
        for position, item in enumerate(raw):
            if isinstance(item, dict) and item.get("id") not in (None, ""):
                key = str(item["id"])
            else:
                key = _choice_id(position)
            options[key] = _to_choice(item)
        return options
    raise ValueError(f"Unsupported options shape: {type(raw).__name__}")


class Question(BaseModel):
    """
    Exam question, immutable once loaded.

    `options` is normalized at ingestion so the rest of the runtime only ever
    sees Dict[choice_id, OptionChoice].
    """

    model_config = {"frozen": True}

    id: str = Field(
        ...,
        min_length=1,
        description="Question id from the question bank"
    )
    subject: str = Field(
        ...,
        min_length=1,
        description="Subject code (e.g. CS, EC)"
    )
    question_text: str = Field(
        ...,
        description="Question body"
    )
    question_type: QuestionType = Field(
        default=QuestionType.MCQ,
        description="MCQ or NAT"
    )
    options: Dict[str, OptionChoice] = Field(
        default_factory=dict,
        description="Canonical choice-id -> choice map (empty for NAT)"
    )
    correct_answer: str = Field(
        ...,
        description="Correct choice id (MCQ) or numeric answer text (NAT)"
    )
    marks: float = Field(
        default=1,
        description="Marks for a correct answer"
    )
    negative_marks: Optional[float] = Field(
        default=None,
        description="Penalty for a wrong MCQ answer. None -> scoring fallback"
    )
    explanation: Optional[str] = None
    question_image: Optional[str] = None
    explanation_image: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def stringify_id(cls, v: Any) -> Any:
        return str(v) if isinstance(v, (int, float)) else v

    @field_validator("question_type", mode="before")
    @classmethod
    def upper_question_type(cls, v: Any) -> Any:
        return v.strip().upper() if isinstance(v, str) else v

    @field_validator("options", mode="before")
    @classmethod
    def canonical_options(cls, v: Any) -> Dict[str, Dict[str, Any]]:
        return normalize_options(v)

    @field_validator("correct_answer", mode="before")
    @classmethod
    def stringify_correct_answer(cls, v: Any) -> Any:
        """Numbers from NAT rows arrive as int/float; compare as text."""
        if v is None:
            return v
        return v if isinstance(v, str) else str(v)

    @field_validator("marks", mode="before")
    @classmethod
    def default_invalid_marks(cls, v: Any) -> Any:
        return 1 if v is None or v == "" else v

    @field_validator("negative_marks", mode="before")
    @classmethod
    def drop_invalid_negative_marks(cls, v: Any) -> Optional[float]:
        """Missing, non-numeric or negative penalties all mean "not configured"."""
        if v is None or isinstance(v, bool):
            return None
        try:
            value = float(v)
        except (TypeError, ValueError):
            return None
        return value if value >= 0 else None

"""Patient-education micro-videos: clinician note → 12-second, four-beat generation prompt.

The note may be a simple template or a longer clinical note. Names are only
shown when the note carries explicit consent, and on-screen text is kept to
two 48-character lines per beat.
"""

from __future__ import annotations

import hashlib
import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Literal

from jinja2 import Environment, FileSystemLoader
from pydantic import BaseModel, Field

from pev.jobs.models import GenerationRequest

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"

MAX_LINE_LENGTH = 48
MAX_LINES = 2
VIDEO_SECONDS = 12

# Medications with a short list of common risks (brand and generic names)
BRAND_RISKS: dict[str, list[str]] = {
    "jardiance": ["dehydration", "low BP", "genital/urinary infections"],
    "empagliflozin": ["dehydration", "low BP", "genital/urinary infections"],
    "entresto": ["low BP", "kidney changes", "high potassium"],
    "sacubitril/valsartan": ["low BP", "kidney changes", "high potassium"],
    "ozempic": ["nausea", "pancreatitis risk", "thyroid concerns"],
    "semaglutide": ["nausea", "pancreatitis risk", "thyroid concerns"],
}

MECHANISM_HINTS: dict[str, str] = {
    "jardiance": "helps lower blood sugar (SGLT2)",
    "empagliflozin": "helps lower blood sugar (SGLT2)",
    "entresto": "supports heart pumping (ARNI)",
    "sacubitril/valsartan": "supports heart pumping (ARNI)",
}

_NUMBERED = re.compile(r"^\d+\.")
_NUMBERED_CONDITION = re.compile(r"^\d+\.\s+(.+?):")
_MEDICATION_LINE = re.compile(r"^-\s+(\w+)\s+\d+\s*mg", re.IGNORECASE)
_PATIENT = re.compile(
    r"Patient(?:\s+Name)?:\s*(.+?)(?:\s*\(OK to show name:\s*(yes|no)\))?$", re.IGNORECASE
)


class ProviderNote(BaseModel):
    """Fields recovered from a clinician note."""

    patient: str | None = None
    ok_to_show_name: bool = False
    language: Literal["English", "Spanish"] = "English"
    conditions: str | None = None
    focus: str | None = None
    treatment: str | None = None
    top_points: list[str] = []
    risks: str | None = None
    tone: Literal["reassuring", "practical", "motivational"] = "reassuring"


class OnScreenText(BaseModel):
    beat1: str  # greeting + condition
    beat2: str  # key takeaway
    beat3: str  # how treatment helps
    beat4: str  # next step + safety


class PromptParams(BaseModel):
    model: str = "sora-2"
    width: int = 1920
    height: int = 1080
    n_seconds: int = VIDEO_SECONDS


class PromptAudit(BaseModel):
    prompt_hash: str
    brand_present: bool = False
    language: str = "English"
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class PatientPromptResult(BaseModel):
    prompt: str
    ost: OnScreenText
    params: PromptParams = Field(default_factory=PromptParams)
    audit: PromptAudit

    def to_request(self) -> GenerationRequest:
        return GenerationRequest(
            prompt=self.prompt,
            model=self.params.model,
            width=self.params.width,
            height=self.params.height,
            duration_seconds=self.params.n_seconds,
        )


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

def _is_list_item(line: str) -> bool:
    return bool(_NUMBERED.match(line)) or line.startswith(("-", "•"))


def parse_provider_note(text: str) -> ProviderNote:
    """Parse a provider note, line by line."""
    note = ProviderNote()
    in_conditions = False
    in_top_points = False
    condition_list: list[str] = []

    for raw in text.splitlines():
        line = raw.strip()
        lower = line.lower()

        # A plain line ends any open list section and is then parsed normally
        if line and not _is_list_item(line):
            if in_conditions and not lower.startswith("condition"):
                in_conditions = False
            if in_top_points and not lower.startswith(("top 3", "top points")):
                in_top_points = False

        if lower.startswith(("patient name:", "patient:")):
            match = _PATIENT.match(line)
            if match:
                note.patient = match.group(1).strip()
                note.ok_to_show_name = (match.group(2) or "").lower() == "yes"
        elif lower.startswith("language:"):
            lang = line.split(":", 1)[1].strip().lower()
            note.language = "Spanish" if lang == "spanish" else "English"
        elif lower.startswith("condition"):
            inline = re.sub(r"^conditions?(?:\(s\))?\s*:\s*", "", line, flags=re.IGNORECASE).strip()
            if inline and not _NUMBERED.match(inline):
                note.conditions = inline
            else:
                in_conditions = True
        elif in_conditions and _NUMBERED_CONDITION.match(line):
            condition_list.append(_NUMBERED_CONDITION.match(line).group(1).strip())
        elif lower.startswith("focus"):
            note.focus = re.sub(r"^focus.*?:\s*", "", line, flags=re.IGNORECASE).strip()
        elif lower.startswith("treatment:"):
            note.treatment = line.split(":", 1)[1].strip()
        elif _MEDICATION_LINE.match(line):
            if not note.treatment:
                note.treatment = _MEDICATION_LINE.match(line).group(1)
        elif lower.startswith(("top 3", "top points")):
            in_top_points = True
        elif in_top_points and line.startswith(("-", "•")):
            note.top_points.append(re.sub(r"^[-•]\s*", "", line))

        if lower.startswith("risk"):
            note.risks = re.sub(r"^risk.*?:\s*", "", line, flags=re.IGNORECASE).strip()
        if lower.startswith("tone:"):
            tone = line.split(":", 1)[1].strip().lower()
            if tone in ("practical", "motivational"):
                note.tone = tone

    if condition_list and not note.conditions:
        note.conditions = ", ".join(condition_list[:3])
    return note


# ---------------------------------------------------------------------------
# On-screen text helpers
# ---------------------------------------------------------------------------

def truncate_to_limit(text: str, max_chars: int = MAX_LINE_LENGTH) -> str:
    """Shorten to ``max_chars`` (ellipsis included), cutting at a word boundary."""
    if len(text) <= max_chars:
        return text
    cut = text[: max_chars - 3]
    last_space = cut.rfind(" ")
    if last_space > 0:
        cut = cut[:last_space]
    return cut + "..."


def is_valid_ost(text: str) -> bool:
    lines = text.split("\n")
    return len(lines) <= MAX_LINES and all(len(line) <= MAX_LINE_LENGTH for line in lines)


def detect_brand_risks(treatment: str | None) -> tuple[bool, list[str]]:
    if not treatment:
        return False, []
    lower = treatment.lower()
    for name, risks in BRAND_RISKS.items():
        if name in lower:
            return True, list(risks)
    return False, []


def condition_icons(conditions: str | None) -> str:
    if not conditions:
        return "heart, lungs"
    lower = conditions.lower()
    icons: list[str] = []
    if "diabetes" in lower or "t2d" in lower:
        icons += ["glucose meter", "pancreas"]
    if "heart" in lower or "hf" in lower or "chf" in lower:
        icons.append("heart")
    if "kidney" in lower or "ckd" in lower:
        icons.append("kidneys")
    if "hiv" in lower:
        icons.append("immune cells")
    if "herpes" in lower:
        icons.append("virus shield")
    return ", ".join(icons) if icons else "heart, lungs"


def caption_chips(conditions: str | None) -> tuple[str, str]:
    lower = (conditions or "").lower()
    chips: list[str] = []
    if "diabetes" in lower:
        chips.append("A1C ↓")
    if "heart" in lower or "hf" in lower:
        chips.append("HF hospitalization risk ↓")
    if "kidney" in lower or "ckd" in lower:
        chips.append("kidney support")
    return (
        " • ".join(chips[:2]) or "better control",
        " • ".join(chips[2:4]) or "daily support",
    )


def _short_conditions(conditions: str | None, joiner: str) -> str:
    if not conditions:
        return "your condition"
    parts = [c.strip() for c in re.split(r"[;,]", conditions) if c.strip()]
    return joiner.join(parts[:2]) or "your condition"


def _treatment_beat(treatment: str | None) -> str:
    if not treatment:
        return "Daily treatment helps you stay healthy"
    brand = re.match(r"^([^(]+)", treatment)
    if not brand:
        return "Your medication helps manage symptoms"
    brand_name = brand.group(1).strip()
    generic = re.search(r"\(([^)]+)\)", treatment)
    mechanism = (
        MECHANISM_HINTS.get(brand_name.lower())
        or (MECHANISM_HINTS.get(generic.group(1).strip().lower()) if generic else None)
        or "helps manage your condition"
    )
    return f"{brand_name} {mechanism}"


# ---------------------------------------------------------------------------
# Prompt
# ---------------------------------------------------------------------------

def note_to_prompt(text: str, params: PromptParams | None = None) -> PatientPromptResult:
    """Build the four-beat explainer prompt for a provider note."""
    note = parse_provider_note(text)
    params = params or PromptParams()

    first_name = note.patient.split()[0] if note.ok_to_show_name and note.patient else ""
    brand_present, brand_risks = detect_brand_risks(note.treatment)
    note_risks = [r.strip() for r in re.split(r"[,;]", note.risks or "") if r.strip()]
    risks = (brand_risks + note_risks)[:2]

    if first_name:
        beat1 = f"Hi {first_name}, you have {_short_conditions(note.conditions, ' & ')}"
    else:
        beat1 = f"You're managing {_short_conditions(note.conditions, ' and ')}"
    takeaway = note.focus or (note.top_points[0] if note.top_points else "managing your health daily")
    if note.top_points:
        beat4 = re.sub(r"^(take|use|do)\s+", "", note.top_points[0], flags=re.IGNORECASE)
    else:
        beat4 = "Take as prescribed; follow your plan"

    ost = OnScreenText(
        beat1=truncate_to_limit(beat1),
        beat2=truncate_to_limit(f"Focus: {takeaway}"),
        beat3=truncate_to_limit(_treatment_beat(note.treatment)),
        beat4=truncate_to_limit(beat4),
    )
    chip2, chip3 = caption_chips(note.conditions)

    env = Environment(loader=FileSystemLoader(str(TEMPLATES_DIR)), keep_trailing_newline=False)
    prompt = env.get_template("patient_education.j2").render(
        language=note.language,
        tone=note.tone,
        width=params.width,
        height=params.height,
        ost=ost,
        icons=condition_icons(note.conditions),
        first_name=first_name,
        chip2=chip2,
        chip3=chip3,
        risks=", ".join(risks) if risks else "side effects vary",
    )
    audit = PromptAudit(
        prompt_hash=hashlib.sha256(prompt.encode("utf-8")).hexdigest()[:16],
        brand_present=brand_present,
        language=note.language,
    )
    logger.info("Built patient-education prompt %s (brand: %s)", audit.prompt_hash, brand_present)
    return PatientPromptResult(prompt=prompt, ost=ost, params=params, audit=audit)


def validate_prompt_result(result: PatientPromptResult) -> tuple[bool, list[str]]:
    """Check on-screen text limits and the fixed 12-second duration."""
    errors: list[str] = []
    for beat, text in result.ost.model_dump().items():
        if not is_valid_ost(text):
            errors.append(f"{beat}: exceeds {MAX_LINE_LENGTH} chars/line or {MAX_LINES} lines")
    if result.params.n_seconds != VIDEO_SECONDS:
        errors.append(f"Duration must be {VIDEO_SECONDS} seconds, got {result.params.n_seconds}")
    return not errors, errors

from __future__ import annotations

from typing import Dict, NamedTuple, Optional


class ConditionMapping(NamedTuple):
    category_id: str
    category_name: str
    subcategory_id: str
    subcategory_name: str


_WEIGHT = ("weight-loss", "Weight Loss")
_MENS = ("mens-health", "Men's Health")
_WOMENS = ("womens-health", "Women's Health")
_SKIN = ("skin-treatment", "Acne & Skin Treatment")
_GENERAL = ("general-health", "General Health")

# Spreadsheet condition labels, including the spellings seen in supplier sheets.
CONDITION_MAPPINGS: Dict[str, ConditionMapping] = {
    "WEIGHT LOSS": ConditionMapping(*_WEIGHT, "weight-loss-medications", "Weight Loss Medications"),
    "HAIR LOSS": ConditionMapping(*_MENS, "hair-loss", "Hair Loss"),
    "Erectyle Dysfunction": ConditionMapping(*_MENS, "ed", "Erectile Dysfunction"),
    "Erectile Dysfunction": ConditionMapping(*_MENS, "ed", "Erectile Dysfunction"),
    "Premature Ejaculation": ConditionMapping(*_MENS, "premature-ejaculation", "Premature Ejaculation"),
    "Oral Contraceptives": ConditionMapping(*_WOMENS, "oral-contraceptives", "Oral Contraceptives"),
    "Contraceptives": ConditionMapping(*_WOMENS, "other-contraceptives", "Other Contraceptives"),
    "Contraceptive Patches": ConditionMapping(*_WOMENS, "other-contraceptives", "Other Contraceptives"),
    "Morning After Pill": ConditionMapping(*_WOMENS, "morning-after-pill", "Morning After Pill"),
    "Period Delay": ConditionMapping(*_WOMENS, "period-delay", "Period Delay"),
    "Cystitis": ConditionMapping(*_WOMENS, "cystitis", "Cystitis Treatment"),
    "Acne": ConditionMapping(*_SKIN, "acne", "Acne Treatment"),
    "Eczema & Dermatitis": ConditionMapping(*_SKIN, "eczema-dermatitis", "Eczema & Dermatitis"),
    "Psoriasis": ConditionMapping(*_SKIN, "psoriasis", "Psoriasis"),
    "Rosacea": ConditionMapping(*_SKIN, "rosacea", "Rosacea"),
    "Impetigo": ConditionMapping(*_SKIN, "impetigo", "Impetigo"),
    "Migraine": ConditionMapping(*_GENERAL, "migraine", "Migraine Treatment"),
}

_BY_KEY = {k.strip().lower(): v for k, v in CONDITION_MAPPINGS.items()}


def lookup_condition(condition: str) -> Optional[ConditionMapping]:
    """Case-insensitive lookup; None when the condition is not mapped."""
    return _BY_KEY.get((condition or "").strip().lower())

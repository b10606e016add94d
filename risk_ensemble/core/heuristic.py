"""
Clinical Risk Ensemble Engine - Clinical Heuristic Rules

Deterministic point-based scorers:
- HeuristicRiskModel: age, polypharmacy, comorbidity burden, vitals, lifestyle
- LabPanelScorer: renal, hepatic, glycaemic and coagulation thresholds

Both return a RuleScore carrying the 0-100 score and the clinical flags
raised along the way.
"""
import math
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from config import settings
from risk_ensemble.core.exceptions import InputMalformed
from risk_ensemble.core.models import (
    ClinicalFlag, FlagCategory, FlagSeverity, Labs, PatientSnapshot
)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

HEURISTIC_CONFIDENCE = 80.0
LAB_CONFIDENCE = 90.0


@dataclass
class RuleScore:
    score: float
    confidence: float
    flags: List[ClinicalFlag] = field(default_factory=list)
    details: str = ""


def _fmt(value: float) -> str:
    return f"{value:g}"


class HeuristicRiskModel:
    """Weighted-sum clinical rules over demographics, history and lifestyle"""

    name = "Clinical Heuristic Rules"

    def _flag(self, flags, category, severity, message):
        flags.append(ClinicalFlag(category=category, severity=severity, message=message, source=self.name))

    def _score_age(self, age: float, flags: List[ClinicalFlag]) -> int:
        if age >= 80:
            self._flag(flags, FlagCategory.AGE, FlagSeverity.WARNING,
                       f"Age {_fmt(age)}: elderly patient, start low and go slow")
            return 25
        if age >= 65:
            self._flag(flags, FlagCategory.AGE, FlagSeverity.INFO,
                       f"Age {_fmt(age)}: consider geriatric dosing")
            return 15
        if age >= 50:
            return 5
        return 0

    def _score_medications(self, count: int, flags: List[ClinicalFlag]) -> int:
        if count >= settings.POLYPHARMACY_CRITICAL:
            self._flag(flags, FlagCategory.POLYPHARMACY, FlagSeverity.CRITICAL,
                       f"{count} medications: severe polypharmacy risk")
            return 25
        if count >= settings.POLYPHARMACY_WARNING:
            self._flag(flags, FlagCategory.POLYPHARMACY, FlagSeverity.WARNING,
                       f"{count} medications: polypharmacy concern")
            return 15
        if count >= 3:
            return 5
        return 0

    def _score_history(self, conditions: int, allergies: int, flags: List[ClinicalFlag]) -> int:
        points = 0
        if conditions >= 5:
            points += 15
        elif conditions >= 3:
            points += 8

        if allergies >= 3:
            points += 10
            self._flag(flags, FlagCategory.ALLERGY, FlagSeverity.WARNING,
                       f"{allergies} known allergies: cross-reactivity check recommended")
        return points

    def _score_vitals(self, systolic: float, diastolic: float, bmi: float, flags: List[ClinicalFlag]) -> int:
        points = 0
        crisis = settings.HYPERTENSIVE_CRISIS
        stage_2 = settings.HYPERTENSION_STAGE_2
        bp = f"{_fmt(systolic)}/{_fmt(diastolic)}"

        if systolic >= crisis["systolic"] or diastolic >= crisis["diastolic"]:
            points += 15
            self._flag(flags, FlagCategory.VITALS, FlagSeverity.CRITICAL,
                       f"BP {bp}: hypertensive crisis range")
        elif systolic >= stage_2["systolic"] or diastolic >= stage_2["diastolic"]:
            points += 8
            self._flag(flags, FlagCategory.VITALS, FlagSeverity.WARNING,
                       f"BP {bp}: stage 2 hypertension")

        if bmi >= 40:
            points += 10
            self._flag(flags, FlagCategory.METABOLIC, FlagSeverity.WARNING,
                       f"BMI {_fmt(bmi)}: class III obesity")
        elif bmi >= 30:
            points += 5
        return points

    def _score_lifestyle(self, snapshot: PatientSnapshot) -> int:
        life = snapshot.lifestyle
        points = 0
        if life.smoking_status == "current":
            points += 5
        if life.alcohol_use == "heavy":
            points += 8
        if life.exercise_level == "sedentary":
            points += 3
        return points

    def score(self, snapshot: PatientSnapshot) -> RuleScore:
        """Score a patient snapshot; always succeeds"""
        flags: List[ClinicalFlag] = []
        demo = snapshot.demographics
        history = snapshot.medical_history

        total = 0
        total += self._score_age(demo.age, flags)
        total += self._score_medications(snapshot.distinct_medication_count(), flags)
        total += self._score_history(len(history.conditions), len(history.allergies), flags)
        total += self._score_vitals(demo.blood_pressure.systolic, demo.blood_pressure.diastolic, demo.bmi, flags)
        total += self._score_lifestyle(snapshot)

        return RuleScore(
            score=float(min(100, total)),
            confidence=HEURISTIC_CONFIDENCE,
            flags=flags,
            details=f"{len(flags)} clinical flags raised",
        )


class LabPanelScorer:
    """Threshold rules over an optional laboratory panel"""

    name = "Laboratory Thresholds"

    def _flag(self, flags, category, severity, message):
        flags.append(ClinicalFlag(category=category, severity=severity, message=message, source=self.name))

    @staticmethod
    def _validate(labs: Labs) -> None:
        for name, value in labs.supplied().items():
            if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
                raise InputMalformed(f"Lab value '{name}' is not a finite number", field_name=f"labs.{name}")

    def _score_renal(self, creatinine: Optional[float], gfr: Optional[float], flags) -> int:
        t = settings.LAB_THRESHOLDS
        points = 0
        if creatinine is not None:
            if creatinine > t["creatinine_critical"]:
                points += 15
                self._flag(flags, FlagCategory.RENAL, FlagSeverity.CRITICAL,
                           f"Creatinine {_fmt(creatinine)}: significant renal impairment, dose adjust required")
            elif creatinine > t["creatinine_warning"]:
                points += 8
                self._flag(flags, FlagCategory.RENAL, FlagSeverity.WARNING,
                           f"Creatinine {_fmt(creatinine)}: mild renal impairment")

        if gfr is not None:
            if gfr < t["gfr_critical"]:
                points += 15
                self._flag(flags, FlagCategory.RENAL, FlagSeverity.CRITICAL,
                           f"GFR {_fmt(gfr)}: severe renal impairment (CKD stage 4+)")
            elif gfr < t["gfr_warning"]:
                points += 8
                self._flag(flags, FlagCategory.RENAL, FlagSeverity.WARNING,
                           f"GFR {_fmt(gfr)}: moderate renal impairment")
        return points

    def _score_hepatic(self, ast: Optional[float], alt: Optional[float], flags) -> int:
        t = settings.LAB_THRESHOLDS
        enzymes = [v for v in (ast, alt) if v is not None]
        if not enzymes:
            return 0
        peak = max(enzymes)
        if peak > t["liver_enzyme_critical"]:
            self._flag(flags, FlagCategory.HEPATIC, FlagSeverity.CRITICAL,
                       "AST/ALT elevated >3x ULN: hepatic dose adjustment needed")
            return 15
        if peak > t["liver_enzyme_warning"]:
            self._flag(flags, FlagCategory.HEPATIC, FlagSeverity.WARNING,
                       "Mildly elevated liver enzymes")
            return 5
        return 0

    def score(self, labs: Optional[Labs]) -> Optional[RuleScore]:
        """
        Score a lab panel. Returns None when no labs were supplied.

        Raises InputMalformed for non-finite lab values.
        """
        if labs is None or not labs.supplied():
            return None
        self._validate(labs)

        t = settings.LAB_THRESHOLDS
        flags: List[ClinicalFlag] = []
        total = self._score_renal(labs.creatinine, labs.gfr, flags)
        total += self._score_hepatic(labs.ast, labs.alt, flags)

        if labs.hba1c is not None and labs.hba1c > t["hba1c_warning"]:
            total += 8
            self._flag(flags, FlagCategory.METABOLIC, FlagSeverity.WARNING,
                       f"HbA1c {_fmt(labs.hba1c)}%: uncontrolled diabetes")

        if labs.inr is not None:
            if labs.inr > t["inr_critical"]:
                total += 12
                self._flag(flags, FlagCategory.COAGULATION, FlagSeverity.CRITICAL,
                           f"INR {_fmt(labs.inr)}: supratherapeutic, high bleeding risk")
            elif labs.inr > t["inr_warning"]:
                total += 12
                self._flag(flags, FlagCategory.COAGULATION, FlagSeverity.WARNING,
                           f"INR {_fmt(labs.inr)}: above therapeutic range")

        return RuleScore(
            score=float(min(100, total)),
            confidence=LAB_CONFIDENCE,
            flags=flags,
            details=f"{len(labs.supplied())} lab values assessed",
        )

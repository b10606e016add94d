"""
Clinical Risk Ensemble Engine - Data Models

Result types are plain dataclasses with to_dict() for JSON export.
PatientSnapshot is the validated input contract; defaults are applied
there once and nowhere else.
"""
from dataclasses import dataclass, field, asdict
from typing import List, Optional, Dict, Any
from enum import Enum
from datetime import datetime, timezone

from pydantic import BaseModel, Field, field_validator, model_validator

from config import settings


class InteractionSeverity(str, Enum):
    NONE = "none"
    MINOR = "minor"
    MODERATE = "moderate"
    MAJOR = "major"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    InteractionSeverity.NONE: 0,
    InteractionSeverity.MINOR: 1,
    InteractionSeverity.MODERATE: 2,
    InteractionSeverity.MAJOR: 3,
}

# Class index order used by the interaction network
SEVERITY_LABELS = [
    InteractionSeverity.NONE,
    InteractionSeverity.MINOR,
    InteractionSeverity.MODERATE,
    InteractionSeverity.MAJOR,
]


class RiskLevel(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class AcuityLevel(str, Enum):
    ROUTINE = "routine"
    SEMI_URGENT = "semi-urgent"
    URGENT = "urgent"
    EMERGENT = "emergent"

    def escalate(self) -> "AcuityLevel":
        order = list(AcuityLevel)
        idx = order.index(self)
        return order[min(idx + 1, len(order) - 1)]


class AlertType(str, Enum):
    DIRECT = "direct"
    CLASS_BASED = "class-based"
    CROSS_REACTIVE = "cross-reactive"
    EXCIPIENT = "excipient"


class FlagSeverity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


class FlagCategory(str, Enum):
    INTERACTION = "interaction"
    ALLERGY = "allergy"
    POLYPHARMACY = "polypharmacy"
    AGE = "age"
    VITALS = "vitals"
    RENAL = "renal"
    HEPATIC = "hepatic"
    METABOLIC = "metabolic"
    COAGULATION = "coagulation"
    ACUITY = "acuity"
    RED_FLAG = "red_flag"
    LIFESTYLE = "lifestyle"


def _serialize(value: Any) -> Any:
    """Convert enums and nested containers to JSON-safe primitives"""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {str(_serialize(k)): _serialize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_serialize(v) for v in value]
    if isinstance(value, float):
        return round(value, 4)
    return value


# ==================== Drug Interaction ====================

@dataclass(frozen=True)
class DrugProfile:
    """Pharmacological properties used for interaction features"""
    drug_class: str
    cyp_pathway: str
    protein_binding: float      # 0-1
    half_life_hours: float
    hepatotoxicity: float       # 0-1 risk
    nephrotoxicity: float       # 0-1 risk
    qt_risk: float              # 0-1 risk


@dataclass
class InteractionPrediction:
    """Predicted interaction for one unordered drug pair"""
    drug_a: str
    drug_b: str
    severity: InteractionSeverity
    probabilities: Dict[str, float]
    confidence: float
    known_pair: bool = False
    source: str = "rules"  # "model" or "rules"

    def to_dict(self) -> Dict[str, Any]:
        return _serialize(asdict(self))


# ==================== Chief Complaint ====================

@dataclass
class SymptomEntity:
    term: str
    body_system: str
    severity: float          # 0-10
    is_negated: bool = False
    is_red_flag: bool = False


@dataclass
class DurationInfo:
    raw: str
    estimated_days: float
    acute_vs_chronic: str    # acute, subacute, chronic


@dataclass
class DifferentialEntry:
    condition: str
    probability: float       # 0-1
    icd10_category: str = ""
    related_symptoms: List[str] = field(default_factory=list)


@dataclass
class ComplaintAnalysis:
    """Structured reading of a free-text chief complaint"""
    original_text: str
    normalized_text: str
    symptoms: List[SymptomEntity] = field(default_factory=list)
    body_systems: List[str] = field(default_factory=lambda: ["general"])
    duration: Optional[DurationInfo] = None
    acuity: AcuityLevel = AcuityLevel.ROUTINE
    red_flags: List[str] = field(default_factory=list)
    differentials: List[DifferentialEntry] = field(default_factory=list)
    suggested_questions: List[str] = field(default_factory=list)
    confidence: float = 0.0

    @property
    def positive_symptoms(self) -> List[SymptomEntity]:
        return [s for s in self.symptoms if not s.is_negated]

    def to_dict(self) -> Dict[str, Any]:
        return _serialize(asdict(self))


# ==================== Allergy ====================

@dataclass
class AllergyAlert:
    allergen: str
    drug: str
    alert_type: AlertType
    message: str
    severity: str = "high"   # high, moderate, low
    cross_reactivity_rate: str = ""
    recommendation: str = ""

    @property
    def key(self) -> tuple:
        return (self.allergen, self.drug, self.alert_type)

    def to_dict(self) -> Dict[str, Any]:
        return _serialize(asdict(self))


@dataclass
class AllergyCheckResult:
    safe: bool
    alerts: List[AllergyAlert] = field(default_factory=list)
    checked_drugs: List[str] = field(default_factory=list)
    checked_allergens: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return _serialize(asdict(self))


# ==================== Ensemble ====================

@dataclass
class ClinicalFlag:
    category: FlagCategory
    severity: FlagSeverity
    message: str
    source: str = ""

    @property
    def is_critical(self) -> bool:
        return self.severity == FlagSeverity.CRITICAL


@dataclass
class SubModelScore:
    name: str
    score: float             # 0-100
    weight: float            # 0-1
    confidence: float = 0.0  # 0-100
    available: bool = False
    details: Optional[str] = None


@dataclass
class ConfidenceInterval:
    low: float
    high: float


@dataclass
class EnsembleRiskResult:
    """Consensus risk assessment"""
    overall_score: float
    risk_level: RiskLevel
    confidence_interval: ConfidenceInterval
    ensemble_confidence: float
    sub_models: List[SubModelScore] = field(default_factory=list)
    flags: List[ClinicalFlag] = field(default_factory=list)
    predicted_interactions: List[InteractionPrediction] = field(default_factory=list)
    differentials: List[Dict[str, Any]] = field(default_factory=list)
    complaint_analysis: Optional[ComplaintAnalysis] = None
    allergy_alerts: List[AllergyAlert] = field(default_factory=list)
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @property
    def critical_flags(self) -> List[ClinicalFlag]:
        return [f for f in self.flags if f.is_critical]

    def to_dict(self) -> Dict[str, Any]:
        return _serialize(asdict(self))


# ==================== Patient Snapshot ====================

class BloodPressure(BaseModel):
    systolic: float = Field(120, ge=0, le=350)
    diastolic: float = Field(80, ge=0, le=250)


class Demographics(BaseModel):
    age: float = Field(50, ge=0, le=150)
    bmi: float = Field(25, ge=5, le=100)
    blood_pressure: BloodPressure = Field(default_factory=BloodPressure)
    heart_rate: float = Field(72, ge=0, le=350)
    gender: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _drop_missing(cls, data: Any) -> Any:
        # Missing and null values both fall back to the field default
        if isinstance(data, dict):
            return {k: v for k, v in data.items() if v is not None}
        return data


class Condition(BaseModel):
    condition: str


class Allergy(BaseModel):
    allergen: str
    reaction: Optional[str] = None


class MedicalHistory(BaseModel):
    conditions: List[Condition] = Field(default_factory=list)
    allergies: List[Allergy] = Field(default_factory=list)

    @field_validator("conditions", mode="before")
    @classmethod
    def _coerce_conditions(cls, value: Any) -> Any:
        if value is None:
            return []
        return [{"condition": v} if isinstance(v, str) else v for v in value]

    @field_validator("allergies", mode="before")
    @classmethod
    def _coerce_allergies(cls, value: Any) -> Any:
        if value is None:
            return []
        return [{"allergen": v} if isinstance(v, str) else v for v in value]


class CurrentMedication(BaseModel):
    drug_name: str = ""
    generic_name: str = ""
    dosage: Optional[str] = None

    @property
    def name(self) -> str:
        return (self.generic_name or self.drug_name).strip()


class Lifestyle(BaseModel):
    smoking_status: str = "never"       # never, former, current
    pack_years: Optional[float] = Field(None, ge=0)
    alcohol_use: str = "none"           # none, occasional, moderate, heavy
    drinks_per_week: float = Field(0, ge=0)
    exercise_level: str = "moderate"    # sedentary, light, moderate, active
    chief_complaint: str = ""

    @model_validator(mode="before")
    @classmethod
    def _normalize(cls, data: Any) -> Any:
        if isinstance(data, dict):
            data = {k: v for k, v in data.items() if v is not None}
            for key in ("smoking_status", "alcohol_use", "exercise_level"):
                if isinstance(data.get(key), str):
                    data[key] = data[key].strip().lower()
        return data


class Labs(BaseModel):
    """
    Optional lab panel; values are not range-checked here.

    Fields accept anything so an unreadable value reaches the lab scorer,
    which rejects it without failing the whole snapshot.
    """
    creatinine: Optional[Any] = None   # mg/dL
    gfr: Optional[Any] = None          # mL/min/1.73m2
    ast: Optional[Any] = None          # U/L
    alt: Optional[Any] = None          # U/L
    hba1c: Optional[Any] = None        # %
    inr: Optional[Any] = None

    @field_validator("*", mode="before")
    @classmethod
    def _coerce_number(cls, value: Any) -> Any:
        if isinstance(value, str):
            try:
                return float(value.strip())
            except ValueError:
                return value
        return value

    def supplied(self) -> Dict[str, Any]:
        return {k: v for k, v in self.model_dump().items() if v is not None}


class PatientSnapshot(BaseModel):
    """Immutable patient input for one ensemble assessment"""
    model_config = {"frozen": True}

    demographics: Demographics = Field(default_factory=Demographics)
    medical_history: MedicalHistory = Field(default_factory=MedicalHistory)
    current_medications: List[CurrentMedication] = Field(default_factory=list)
    lifestyle: Lifestyle = Field(default_factory=Lifestyle)
    labs: Optional[Labs] = None

    @field_validator("current_medications", mode="before")
    @classmethod
    def _coerce_medications(cls, value: Any) -> Any:
        if value is None:
            return []
        return [{"drug_name": v} if isinstance(v, str) else v for v in value]

    def medication_names(self) -> List[str]:
        return [m.name for m in self.current_medications if m.name]

    def distinct_medication_count(self) -> int:
        return len({n.lower() for n in self.medication_names()})

    def allergen_names(self) -> List[str]:
        return [a.allergen for a in self.medical_history.allergies if a.allergen.strip()]


# ==================== Risk Prediction ====================

@dataclass
class RiskPrediction:
    """Output of the neural risk model (trained or fallback)"""
    risk_score: float
    risk_level: RiskLevel
    confidence: float
    feature_importance: Dict[str, int] = field(default_factory=dict)
    source: str = "rules"  # "model" or "rules"

    def to_dict(self) -> Dict[str, Any]:
        return _serialize(asdict(self))


def classify_risk(score: float) -> RiskLevel:
    """Map a 0-100 score to a risk level"""
    if score >= settings.RISK_THRESHOLDS["CRITICAL"]:
        return RiskLevel.CRITICAL
    if score >= settings.RISK_THRESHOLDS["HIGH"]:
        return RiskLevel.HIGH
    if score >= settings.RISK_THRESHOLDS["MEDIUM"]:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW

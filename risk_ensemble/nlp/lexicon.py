"""
Clinical Risk Ensemble Engine - Clinical Lexicon

Static vocabulary for the chief-complaint analyzer: symptom terms with
body system, base severity, red-flag marker and ICD-10 code; differential
diagnosis rules; negation cues; severity modifiers; duration expressions
and follow-up questions per body system.
"""
import re
from dataclasses import dataclass
from typing import Callable, List, Dict, Tuple


@dataclass(frozen=True)
class LexiconEntry:
    terms: List[str]
    body_system: str
    base_severity: int
    red_flag: bool
    icd10: str


@dataclass(frozen=True)
class DifferentialRule:
    condition: str
    icd10: str
    required: List[str]       # at least one must be present
    supporting: List[str]     # each present one adds the boost
    base_probability: float
    boost: float


# ==================== Symptoms ====================

SYMPTOM_LEXICON: List[LexiconEntry] = [
    # Cardiovascular
    LexiconEntry(["chest pain", "chest tightness", "angina", "chest pressure"], "cardiovascular", 8, True, "I20-I25"),
    LexiconEntry(["palpitations", "heart racing", "irregular heartbeat", "arrhythmia"], "cardiovascular", 6, False, "R00"),
    LexiconEntry(["shortness of breath", "dyspnea", "difficulty breathing", "breathlessness", "sob"], "cardiovascular", 7, True, "R06.0"),
    LexiconEntry(["swollen legs", "leg swelling", "leg edema", "ankle swelling", "pedal edema"], "cardiovascular", 5, False, "R60"),
    LexiconEntry(["syncope", "fainting", "passed out", "lost consciousness"], "cardiovascular", 8, True, "R55"),
    LexiconEntry(["hypertension", "high blood pressure", "elevated bp"], "cardiovascular", 5, False, "I10"),

    # Respiratory
    LexiconEntry(["cough", "coughing", "persistent cough"], "respiratory", 3, False, "R05"),
    LexiconEntry(["wheezing", "wheeze"], "respiratory", 5, False, "R06.2"),
    LexiconEntry(["hemoptysis", "coughing blood", "blood in sputum"], "respiratory", 8, True, "R04.2"),
    LexiconEntry(["asthma", "asthma attack", "bronchospasm"], "respiratory", 6, False, "J45"),
    LexiconEntry(["pneumonia", "lung infection"], "respiratory", 7, False, "J18"),
    LexiconEntry(["pleurisy", "pleuritic pain"], "respiratory", 6, False, "R09.1"),

    # Neurological
    LexiconEntry(["headache", "head pain", "migraine", "cephalalgia"], "neurological", 4, False, "R51"),
    LexiconEntry(["thunderclap headache", "worst headache", "sudden severe headache"], "neurological", 10, True, "G44"),
    LexiconEntry(["seizure", "convulsion", "fitting", "epilepsy"], "neurological", 8, True, "R56"),
    LexiconEntry(["numbness", "tingling", "paresthesia", "pins and needles"], "neurological", 4, False, "R20"),
    LexiconEntry(["weakness", "muscle weakness", "hemiparesis", "paralysis"], "neurological", 7, True, "R29.8"),
    LexiconEntry(["dizziness", "vertigo", "lightheaded", "light headed"], "neurological", 4, False, "R42"),
    LexiconEntry(["confusion", "altered mental status", "disorientation", "ams"], "neurological", 8, True, "R41"),
    LexiconEntry(["stroke symptoms", "facial droop", "slurred speech"], "neurological", 10, True, "I63"),
    LexiconEntry(["memory loss", "forgetfulness", "cognitive decline"], "neurological", 5, False, "R41.3"),
    LexiconEntry(["tremor", "shaking", "trembling"], "neurological", 4, False, "R25.1"),

    # Gastrointestinal
    LexiconEntry(["abdominal pain", "stomach pain", "belly pain", "epigastric pain"], "gastrointestinal", 5, False, "R10"),
    LexiconEntry(["nausea", "vomiting", "emesis", "feeling sick"], "gastrointestinal", 3, False, "R11"),
    LexiconEntry(["diarrhea", "loose stools", "watery stool"], "gastrointestinal", 3, False, "R19.7"),
    LexiconEntry(["constipation", "difficulty passing stool"], "gastrointestinal", 2, False, "K59.0"),
    LexiconEntry(["bloody stool", "melena", "rectal bleeding", "hematochezia", "blood in stool"], "gastrointestinal", 8, True, "K92.1"),
    LexiconEntry(["jaundice", "yellowing skin", "yellow eyes", "icterus"], "gastrointestinal", 7, True, "R17"),
    LexiconEntry(["heartburn", "acid reflux", "gerd"], "gastrointestinal", 3, False, "K21"),
    LexiconEntry(["dysphagia", "difficulty swallowing", "trouble swallowing"], "gastrointestinal", 5, False, "R13"),

    # Musculoskeletal
    LexiconEntry(["back pain", "low back pain", "lumbago", "lumbar pain"], "musculoskeletal", 4, False, "M54"),
    LexiconEntry(["joint pain", "arthralgia", "joint swelling"], "musculoskeletal", 4, False, "M25"),
    LexiconEntry(["knee pain", "hip pain", "shoulder pain", "elbow pain"], "musculoskeletal", 4, False, "M79"),
    LexiconEntry(["fracture", "broken bone"], "musculoskeletal", 7, False, "S72"),
    LexiconEntry(["neck pain", "cervicalgia"], "musculoskeletal", 4, False, "M54.2"),
    LexiconEntry(["muscle cramp", "spasm", "muscle spasm"], "musculoskeletal", 3, False, "R25.2"),

    # Endocrine
    LexiconEntry(["diabetes", "high blood sugar", "hyperglycemia"], "endocrine", 5, False, "E11"),
    LexiconEntry(["diabetic ketoacidosis", "dka"], "endocrine", 9, True, "E10.1"),
    LexiconEntry(["hypoglycemia", "low blood sugar", "sugar crash"], "endocrine", 7, True, "E16.2"),
    LexiconEntry(["thyroid", "hypothyroid", "hyperthyroid", "thyroid problem"], "endocrine", 4, False, "E03"),
    LexiconEntry(["weight loss unexplained", "unintentional weight loss"], "endocrine", 6, True, "R63.4"),
    LexiconEntry(["excessive thirst", "polydipsia"], "endocrine", 4, False, "R63.1"),

    # Renal
    LexiconEntry(["painful urination", "dysuria", "burning urination"], "renal", 4, False, "R30"),
    LexiconEntry(["hematuria", "blood in urine", "pink urine"], "renal", 6, True, "R31"),
    LexiconEntry(["kidney stone", "renal colic", "flank pain"], "renal", 7, False, "N20"),
    LexiconEntry(["urinary frequency", "frequent urination", "polyuria"], "renal", 3, False, "R35"),

    # Dermatological
    LexiconEntry(["rash", "skin rash", "eruption"], "dermatological", 3, False, "R21"),
    LexiconEntry(["itching", "pruritus", "itchy skin"], "dermatological", 2, False, "L29"),
    LexiconEntry(["swelling", "angioedema", "facial swelling"], "dermatological", 7, True, "T78.3"),

    # Psychiatric
    LexiconEntry(["anxiety", "anxious", "panic", "panic attack"], "psychiatric", 4, False, "F41"),
    LexiconEntry(["depression", "depressed", "low mood", "feeling hopeless"], "psychiatric", 5, False, "F32"),
    LexiconEntry(["suicidal", "self harm", "suicidal ideation", "suicide"], "psychiatric", 10, True, "R45.851"),
    LexiconEntry(["insomnia", "can't sleep", "sleep disturbance", "difficulty sleeping"], "psychiatric", 3, False, "G47"),

    # Infectious
    LexiconEntry(["fever", "high temperature", "pyrexia", "febrile"], "infectious", 4, False, "R50"),
    LexiconEntry(["chills", "rigors", "shivering"], "infectious", 4, False, "R68.83"),
    LexiconEntry(["sore throat", "pharyngitis", "throat pain"], "ent", 3, False, "J02"),
    LexiconEntry(["ear pain", "otalgia", "earache"], "ent", 3, False, "H92"),

    # General / Constitutional
    LexiconEntry(["fatigue", "tired", "exhaustion", "lethargy", "malaise"], "general", 3, False, "R53"),
    LexiconEntry(["night sweats"], "general", 5, True, "R61"),
    LexiconEntry(["anaphylaxis", "allergic reaction", "severe allergy"], "general", 10, True, "T78.2"),
]


# ==================== Differentials ====================

DIFFERENTIAL_RULES: List[DifferentialRule] = [
    DifferentialRule(
        "Acute Coronary Syndrome (ACS)", "I21",
        required=["chest pain", "chest tightness", "angina", "chest pressure"],
        supporting=["shortness of breath", "diaphoresis", "nausea", "jaw pain", "arm pain", "palpitations"],
        base_probability=0.3, boost=0.12,
    ),
    DifferentialRule(
        "Pulmonary Embolism", "I26",
        required=["shortness of breath", "dyspnea", "chest pain", "pleuritic pain"],
        supporting=["leg swelling", "tachycardia", "hemoptysis", "cough"],
        base_probability=0.15, boost=0.1,
    ),
    DifferentialRule(
        "Stroke / TIA", "I63",
        required=["weakness", "numbness", "slurred speech", "facial droop", "stroke symptoms"],
        supporting=["confusion", "headache", "vision changes", "dizziness"],
        base_probability=0.25, boost=0.12,
    ),
    DifferentialRule(
        "Pneumonia", "J18",
        required=["cough", "fever", "shortness of breath"],
        supporting=["chills", "chest pain", "fatigue", "sputum"],
        base_probability=0.2, boost=0.1,
    ),
    DifferentialRule(
        "COPD Exacerbation", "J44.1",
        required=["shortness of breath", "wheezing", "cough"],
        supporting=["sputum", "chest tightness", "fatigue"],
        base_probability=0.15, boost=0.08,
    ),
    DifferentialRule(
        "Diabetic Emergency (DKA/HHS)", "E10.1",
        required=["diabetic ketoacidosis", "dka", "high blood sugar", "hyperglycemia"],
        supporting=["nausea", "vomiting", "abdominal pain", "confusion", "excessive thirst", "fatigue"],
        base_probability=0.2, boost=0.1,
    ),
    DifferentialRule(
        "Acute Appendicitis", "K35",
        required=["abdominal pain", "stomach pain"],
        supporting=["nausea", "vomiting", "fever", "loss of appetite"],
        base_probability=0.15, boost=0.08,
    ),
    DifferentialRule(
        "Urinary Tract Infection", "N39.0",
        required=["painful urination", "dysuria", "urinary frequency"],
        supporting=["fever", "hematuria", "flank pain", "abdominal pain"],
        base_probability=0.25, boost=0.1,
    ),
    DifferentialRule(
        "Migraine", "G43",
        required=["headache", "migraine"],
        supporting=["nausea", "vomiting", "vision changes", "light sensitivity", "aura"],
        base_probability=0.3, boost=0.08,
    ),
    DifferentialRule(
        "Hypertensive Crisis", "I16",
        required=["high blood pressure", "hypertension", "headache"],
        supporting=["chest pain", "shortness of breath", "vision changes", "confusion", "nosebleed"],
        base_probability=0.15, boost=0.1,
    ),
    DifferentialRule(
        "Major Depressive Episode", "F32",
        required=["depression", "depressed", "low mood", "feeling hopeless"],
        supporting=["insomnia", "fatigue", "weight loss unexplained", "anxiety", "suicidal"],
        base_probability=0.35, boost=0.1,
    ),
    DifferentialRule(
        "Anaphylaxis", "T78.2",
        required=["anaphylaxis", "allergic reaction", "severe allergy", "swelling", "facial swelling", "angioedema"],
        supporting=["rash", "shortness of breath", "throat tightness", "itching"],
        base_probability=0.2, boost=0.15,
    ),
    DifferentialRule(
        "Acute Kidney Injury", "N17",
        required=["decreased urine output", "hematuria", "flank pain"],
        supporting=["swollen legs", "fatigue", "nausea", "confusion"],
        base_probability=0.15, boost=0.1,
    ),
    DifferentialRule(
        "GERD / Peptic Ulcer", "K21",
        required=["heartburn", "acid reflux", "epigastric pain"],
        supporting=["nausea", "dysphagia", "abdominal pain", "bloody stool"],
        base_probability=0.25, boost=0.08,
    ),
    DifferentialRule(
        "Osteoarthritis", "M15-M19",
        required=["joint pain", "knee pain", "hip pain"],
        supporting=["joint swelling", "stiffness", "decreased range of motion"],
        base_probability=0.3, boost=0.08,
    ),
]


# ==================== Negation & Severity ====================

NEGATION_CUES = [
    "no", "not", "without", "denies", "deny", "absent", "negative for",
    "does not have", "doesn't have", "no evidence of", "ruled out",
    "free of", "lacks", "never had",
]

SEVERITY_BOOSTERS: Dict[str, int] = {
    "severe": 3, "intense": 3, "excruciating": 4, "worst": 4,
    "acute": 2, "sudden": 2, "worsening": 2, "progressive": 1,
    "uncontrolled": 2, "debilitating": 3, "crushing": 3,
    "10/10": 4, "9/10": 3, "8/10": 2, "7/10": 1,
}

SEVERITY_REDUCERS: Dict[str, int] = {
    "mild": -2, "slight": -2, "minor": -2, "occasional": -1,
    "intermittent": -1, "improving": -1, "resolving": -2,
    "1/10": -3, "2/10": -2, "3/10": -1,
}

SEVERITY_MODIFIERS: Dict[str, int] = {**SEVERITY_BOOSTERS, **SEVERITY_REDUCERS}


# ==================== Duration ====================

NUMBER_WORDS = {
    "one": 1, "two": 2, "three": 3, "four": 4, "five": 5, "six": 6,
    "seven": 7, "eight": 8, "nine": 9, "ten": 10, "eleven": 11,
    "twelve": 12, "a": 1, "an": 1,
}

UNIT_DAYS = {
    "min": 1 / 1440,
    "minute": 1 / 1440,
    "hour": 1 / 24,
    "day": 1,
    "week": 7,
    "month": 30,
    "year": 365,
}

_NUMBER = r"(\d+(?:\.\d+)?|" + "|".join(k for k in NUMBER_WORDS if len(k) > 2) + r")"
_UNIT = r"(min|minute|hour|day|week|month|year)s?\b"


def _quantity(match: re.Match) -> float:
    value = match.group(1)
    number = float(value) if value[0].isdigit() else NUMBER_WORDS[value]
    return number * UNIT_DAYS[match.group(2)]


# Checked in order; the first match wins
DURATION_PATTERNS: List[Tuple[re.Pattern, Callable[[re.Match], float]]] = [
    (re.compile(r"\b" + _NUMBER + r"\s*" + _UNIT), _quantity),
    (re.compile(r"\b(?:today|just now|just started|onset today)\b"), lambda m: 0.5),
    (re.compile(r"\byesterday\b"), lambda m: 1.0),
    (re.compile(r"\b(?:this morning|this evening|last night|tonight)\b"), lambda m: 0.5),
    (re.compile(r"\b(?:an hour|a few hours|couple of hours)\b"), lambda m: 0.1),
    (re.compile(r"\b(?:a few days|couple of days|a couple days)\b"), lambda m: 3.0),
    (re.compile(r"\b(?:a week|past week|last week)\b"), lambda m: 7.0),
    (re.compile(r"\b(?:several weeks|few weeks)\b"), lambda m: 21.0),
    (re.compile(r"\b(?:a month|past month|last month)\b"), lambda m: 30.0),
    (re.compile(r"\b(?:several months|few months)\b"), lambda m: 90.0),
    (re.compile(r"\b(?:chronic|long.?standing|for years|years)\b"), lambda m: 365.0),
]

ACUTE_MAX_DAYS = 7
SUBACUTE_MAX_DAYS = 90


# ==================== Follow-up Questions ====================

EMPTY_COMPLAINT_QUESTION = "Could you describe your main symptoms?"

SYSTEM_QUESTIONS: Dict[str, List[str]] = {
    "cardiovascular": [
        "Does the pain radiate to arm, jaw, or back?",
        "Any history of heart disease or prior MI?",
        "Are you currently taking any blood thinners?",
    ],
    "respiratory": [
        "Are you producing sputum? What color?",
        "Any history of asthma or COPD?",
        "Have you been exposed to anyone who is sick?",
    ],
    "neurological": [
        "When did the symptoms first start?",
        "Any recent head injury or trauma?",
        "Is there any vision change, speech difficulty, or weakness?",
    ],
    "gastrointestinal": [
        "Any blood in stool or vomit?",
        "When was your last bowel movement?",
        "Any recent travel or food changes?",
    ],
    "musculoskeletal": [
        "Was there a specific injury or event that triggered the pain?",
        "Does the pain worsen with movement or at rest?",
        "Any morning stiffness?",
    ],
    "endocrine": [
        "Have you checked your blood sugar recently?",
        "Any recent weight changes?",
        "Are you experiencing excessive thirst or urination?",
    ],
    "renal": [
        "Have you noticed any changes in urine color or volume?",
        "Any history of kidney stones or UTIs?",
        "Are you drinking enough fluids?",
    ],
    "dermatological": [
        "When did the rash first appear?",
        "Have you started any new medications recently?",
        "Any known allergies?",
    ],
    "psychiatric": [
        "Have you had any thoughts of self-harm?",
        "How long have you been feeling this way?",
        "Are you currently seeing a mental health professional?",
    ],
    "infectious": [
        "Have you traveled recently?",
        "Any known exposure to infectious diseases?",
        "Are your vaccinations up to date?",
    ],
    "hematological": [
        "Have you noticed any easy bruising or bleeding?",
        "Any family history of blood disorders?",
        "Are you taking anticoagulants?",
    ],
    "ophthalmological": [
        "Is the vision loss sudden or gradual?",
        "Any eye pain or redness?",
        "When was your last eye exam?",
    ],
    "ent": [
        "Any ear discharge or hearing changes?",
        "Is the sore throat accompanied by difficulty swallowing?",
        "Any nasal congestion or sinus pressure?",
    ],
    "reproductive": [
        "Any chance of pregnancy?",
        "Any abnormal bleeding?",
        "When was your last menstrual period?",
    ],
    "general": [
        "How long have you been feeling this way?",
        "Have you had any unintentional weight changes?",
        "Are you currently taking any medications?",
    ],
}

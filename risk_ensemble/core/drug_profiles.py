"""
Clinical Risk Ensemble Engine - Drug Profile Store

Static per-drug pharmacological properties used to encode drug pairs for
the interaction classifier. Loaded once at import, read-only afterwards.
Unknown names resolve to DEFAULT_PROFILE instead of failing.
"""
import re
from typing import Dict

from risk_ensemble.core.models import DrugProfile


# Pharmacological class ids used for feature encoding (0 = unknown)
DRUG_CLASS_MAP: Dict[str, int] = {
    # Cardiovascular
    "ace_inhibitor": 1, "arb": 2, "beta_blocker": 3, "calcium_channel_blocker": 4,
    "diuretic": 5, "anticoagulant": 6, "antiplatelet": 7, "statin": 8,
    # CNS
    "ssri": 9, "snri": 10, "tca": 11, "benzodiazepine": 12, "opioid": 13,
    "anticonvulsant": 14, "maoi": 15, "antipsychotic": 16,
    # Anti-infective
    "fluoroquinolone": 17, "macrolide": 18, "penicillin": 19, "cephalosporin": 20,
    "antifungal_azole": 21,
    # Metabolic / Endocrine
    "metformin": 22, "sulfonylurea": 23, "insulin": 24, "thyroid": 25,
    "corticosteroid": 26,
    # GI
    "ppi": 27, "h2_blocker": 28, "nsaid": 29,
    # Other
    "immunosuppressant": 30, "antihistamine": 31, "muscle_relaxant": 32,
    "unknown": 0,
}
MAX_CLASS_ID = max(DRUG_CLASS_MAP.values())

# CYP450 metabolism pathway ids (0 = none)
CYP_PATHWAY_MAP: Dict[str, int] = {
    "CYP3A4": 1, "CYP2D6": 2, "CYP2C9": 3, "CYP2C19": 4,
    "CYP1A2": 5, "CYP2B6": 6, "none": 0,
}
MAX_CYP_ID = max(CYP_PATHWAY_MAP.values())

DEFAULT_PROFILE = DrugProfile(
    drug_class="unknown",
    cyp_pathway="none",
    protein_binding=0.5,
    half_life_hours=8,
    hepatotoxicity=0.1,
    nephrotoxicity=0.1,
    qt_risk=0.1,
)

# Fields: class, CYP pathway, protein binding, half-life (h),
# hepatotoxicity, nephrotoxicity, QT prolongation risk
DRUG_PROFILES: Dict[str, DrugProfile] = {
    # ACE inhibitors
    "lisinopril": DrugProfile("ace_inhibitor", "none", 0.25, 12, 0.1, 0.3, 0),
    "enalapril": DrugProfile("ace_inhibitor", "none", 0.5, 11, 0.15, 0.3, 0),
    "ramipril": DrugProfile("ace_inhibitor", "none", 0.56, 13, 0.1, 0.3, 0),
    # ARBs
    "losartan": DrugProfile("arb", "CYP2C9", 0.99, 6, 0.1, 0.2, 0),
    "valsartan": DrugProfile("arb", "none", 0.95, 9, 0.1, 0.2, 0),
    # Beta blockers
    "metoprolol": DrugProfile("beta_blocker", "CYP2D6", 0.12, 5, 0.1, 0.1, 0.1),
    "atenolol": DrugProfile("beta_blocker", "none", 0.05, 7, 0.05, 0.15, 0.1),
    "carvedilol": DrugProfile("beta_blocker", "CYP2D6", 0.98, 7, 0.1, 0.1, 0.1),
    "propranolol": DrugProfile("beta_blocker", "CYP2D6", 0.9, 4, 0.1, 0.05, 0.15),
    # CCBs
    "amlodipine": DrugProfile("calcium_channel_blocker", "CYP3A4", 0.93, 40, 0.1, 0.05, 0.05),
    "diltiazem": DrugProfile("calcium_channel_blocker", "CYP3A4", 0.8, 5, 0.1, 0.05, 0.15),
    "verapamil": DrugProfile("calcium_channel_blocker", "CYP3A4", 0.9, 8, 0.1, 0.05, 0.2),
    # Diuretics
    "furosemide": DrugProfile("diuretic", "none", 0.95, 2, 0.1, 0.4, 0.15),
    "hydrochlorothiazide": DrugProfile("diuretic", "none", 0.67, 10, 0.05, 0.3, 0.1),
    "spironolactone": DrugProfile("diuretic", "none", 0.9, 15, 0.1, 0.2, 0.05),
    # Anticoagulants / Antiplatelets
    "warfarin": DrugProfile("anticoagulant", "CYP2C9", 0.99, 40, 0.2, 0.05, 0),
    "apixaban": DrugProfile("anticoagulant", "CYP3A4", 0.87, 12, 0.1, 0.1, 0),
    "rivaroxaban": DrugProfile("anticoagulant", "CYP3A4", 0.95, 9, 0.15, 0.15, 0),
    "clopidogrel": DrugProfile("antiplatelet", "CYP2C19", 0.98, 6, 0.1, 0.05, 0),
    "aspirin": DrugProfile("antiplatelet", "none", 0.8, 4, 0.1, 0.15, 0),
    # Statins
    "atorvastatin": DrugProfile("statin", "CYP3A4", 0.98, 14, 0.3, 0.1, 0),
    "simvastatin": DrugProfile("statin", "CYP3A4", 0.95, 3, 0.35, 0.1, 0),
    "rosuvastatin": DrugProfile("statin", "CYP2C9", 0.9, 19, 0.25, 0.1, 0),
    "pravastatin": DrugProfile("statin", "none", 0.5, 2, 0.15, 0.05, 0),
    # SSRIs/SNRIs
    "sertraline": DrugProfile("ssri", "CYP2D6", 0.98, 26, 0.15, 0.05, 0.15),
    "fluoxetine": DrugProfile("ssri", "CYP2D6", 0.94, 72, 0.15, 0.05, 0.1),
    "citalopram": DrugProfile("ssri", "CYP2C19", 0.8, 35, 0.1, 0.05, 0.3),
    "escitalopram": DrugProfile("ssri", "CYP2C19", 0.56, 30, 0.1, 0.05, 0.25),
    "paroxetine": DrugProfile("ssri", "CYP2D6", 0.95, 21, 0.15, 0.05, 0.1),
    "venlafaxine": DrugProfile("snri", "CYP2D6", 0.27, 5, 0.15, 0.05, 0.15),
    "duloxetine": DrugProfile("snri", "CYP1A2", 0.96, 12, 0.25, 0.05, 0.1),
    # TCAs
    "amitriptyline": DrugProfile("tca", "CYP2D6", 0.96, 25, 0.2, 0.05, 0.4),
    "nortriptyline": DrugProfile("tca", "CYP2D6", 0.93, 30, 0.15, 0.05, 0.35),
    # Opioids
    "tramadol": DrugProfile("opioid", "CYP2D6", 0.2, 6, 0.1, 0.1, 0.1),
    "codeine": DrugProfile("opioid", "CYP2D6", 0.25, 3, 0.1, 0.05, 0.05),
    "oxycodone": DrugProfile("opioid", "CYP3A4", 0.45, 4, 0.15, 0.1, 0.05),
    "morphine": DrugProfile("opioid", "none", 0.35, 3, 0.2, 0.15, 0.1),
    # Benzodiazepines
    "diazepam": DrugProfile("benzodiazepine", "CYP3A4", 0.98, 48, 0.1, 0.05, 0.05),
    "alprazolam": DrugProfile("benzodiazepine", "CYP3A4", 0.8, 11, 0.1, 0.05, 0.05),
    "lorazepam": DrugProfile("benzodiazepine", "none", 0.85, 14, 0.05, 0.05, 0.05),
    # Anticonvulsants
    "carbamazepine": DrugProfile("anticonvulsant", "CYP3A4", 0.76, 20, 0.3, 0.1, 0.1),
    "phenytoin": DrugProfile("anticonvulsant", "CYP2C9", 0.9, 22, 0.25, 0.1, 0.1),
    "valproate": DrugProfile("anticonvulsant", "CYP2C9", 0.9, 12, 0.35, 0.1, 0.05),
    "gabapentin": DrugProfile("anticonvulsant", "none", 0.03, 7, 0.05, 0.15, 0),
    # NSAIDs
    "ibuprofen": DrugProfile("nsaid", "CYP2C9", 0.99, 2, 0.15, 0.35, 0),
    "naproxen": DrugProfile("nsaid", "CYP2C9", 0.99, 14, 0.15, 0.35, 0),
    "celecoxib": DrugProfile("nsaid", "CYP2C9", 0.97, 11, 0.15, 0.25, 0),
    # PPI
    "omeprazole": DrugProfile("ppi", "CYP2C19", 0.95, 1, 0.05, 0.1, 0.05),
    "pantoprazole": DrugProfile("ppi", "CYP2C19", 0.98, 1, 0.05, 0.1, 0.05),
    # Anti-diabetic
    "metformin": DrugProfile("metformin", "none", 0.01, 5, 0.05, 0.3, 0),
    "glipizide": DrugProfile("sulfonylurea", "CYP2C9", 0.99, 4, 0.1, 0.1, 0),
    # Antibiotics
    "ciprofloxacin": DrugProfile("fluoroquinolone", "CYP1A2", 0.3, 4, 0.15, 0.2, 0.25),
    "levofloxacin": DrugProfile("fluoroquinolone", "none", 0.3, 7, 0.1, 0.15, 0.3),
    "azithromycin": DrugProfile("macrolide", "CYP3A4", 0.5, 68, 0.15, 0.05, 0.3),
    "erythromycin": DrugProfile("macrolide", "CYP3A4", 0.8, 2, 0.2, 0.05, 0.35),
    "clarithromycin": DrugProfile("macrolide", "CYP3A4", 0.7, 4, 0.2, 0.1, 0.25),
    "amoxicillin": DrugProfile("penicillin", "none", 0.2, 1, 0.05, 0.05, 0),
    # Antifungals
    "fluconazole": DrugProfile("antifungal_azole", "CYP2C9", 0.12, 30, 0.25, 0.1, 0.2),
    "ketoconazole": DrugProfile("antifungal_azole", "CYP3A4", 0.99, 8, 0.4, 0.1, 0.2),
    # Corticosteroids
    "prednisone": DrugProfile("corticosteroid", "CYP3A4", 0.7, 3, 0.1, 0.1, 0.05),
    # Thyroid
    "levothyroxine": DrugProfile("thyroid", "none", 0.99, 168, 0.05, 0.05, 0.1),
    # Muscle relaxants
    "cyclobenzaprine": DrugProfile("muscle_relaxant", "CYP1A2", 0.93, 18, 0.1, 0.05, 0.15),
    # Antihistamines
    "diphenhydramine": DrugProfile("antihistamine", "CYP2D6", 0.98, 8, 0.05, 0.05, 0.1),
    "cetirizine": DrugProfile("antihistamine", "none", 0.93, 8, 0.05, 0.05, 0.05),
    # Antipsychotics
    "quetiapine": DrugProfile("antipsychotic", "CYP3A4", 0.83, 7, 0.15, 0.05, 0.2),
    "risperidone": DrugProfile("antipsychotic", "CYP2D6", 0.9, 20, 0.1, 0.05, 0.25),
    # MAOI
    "phenelzine": DrugProfile("maoi", "none", 0.5, 12, 0.3, 0.1, 0.15),
    # Immunosuppressants
    "cyclosporine": DrugProfile("immunosuppressant", "CYP3A4", 0.95, 19, 0.3, 0.5, 0.05),
    "tacrolimus": DrugProfile("immunosuppressant", "CYP3A4", 0.99, 12, 0.3, 0.45, 0.1),
}

# Brand names mapped to the generic key used in DRUG_PROFILES
BRAND_ALIASES: Dict[str, str] = {
    "coumadin": "warfarin",
    "eliquis": "apixaban",
    "xarelto": "rivaroxaban",
    "plavix": "clopidogrel",
    "lipitor": "atorvastatin",
    "zocor": "simvastatin",
    "crestor": "rosuvastatin",
    "zoloft": "sertraline",
    "prozac": "fluoxetine",
    "lexapro": "escitalopram",
    "cipralex": "escitalopram",
    "xanax": "alprazolam",
    "valium": "diazepam",
    "ativan": "lorazepam",
    "glucophage": "metformin",
    "zestril": "lisinopril",
    "prinivil": "lisinopril",
    "aldactone": "spironolactone",
    "lasix": "furosemide",
    "advil": "ibuprofen",
    "motrin": "ibuprofen",
    "brufen": "ibuprofen",
    "aleve": "naproxen",
    "celebrex": "celecoxib",
    "prilosec": "omeprazole",
    "protonix": "pantoprazole",
    "synthroid": "levothyroxine",
    "nardil": "phenelzine",
    "ultram": "tramadol",
    "klacid": "clarithromycin",
    "biaxin": "clarithromycin",
    "zithromax": "azithromycin",
    "cipro": "ciprofloxacin",
    "levaquin": "levofloxacin",
    "diflucan": "fluconazole",
    "tegretol": "carbamazepine",
    "dilantin": "phenytoin",
    "neurontin": "gabapentin",
    "seroquel": "quetiapine",
    "risperdal": "risperidone",
    "benadryl": "diphenhydramine",
    "zyrtec": "cetirizine",
    "flexeril": "cyclobenzaprine",
    "neoral": "cyclosporine",
    "prograf": "tacrolimus",
}


def normalize_drug_name(name: str) -> str:
    """Lookup key: lowercase letters only"""
    return re.sub(r"[^a-z]", "", (name or "").lower())


def lookup_profile(name: str) -> DrugProfile:
    """Profile for a drug name, falling back to DEFAULT_PROFILE"""
    key = normalize_drug_name(name)
    key = BRAND_ALIASES.get(key, key)
    return DRUG_PROFILES.get(key, DEFAULT_PROFILE)


def is_known_drug(name: str) -> bool:
    key = normalize_drug_name(name)
    return BRAND_ALIASES.get(key, key) in DRUG_PROFILES


def class_id(drug_class: str) -> int:
    return DRUG_CLASS_MAP.get(drug_class, 0)


def cyp_id(pathway: str) -> int:
    return CYP_PATHWAY_MAP.get(pathway, 0)

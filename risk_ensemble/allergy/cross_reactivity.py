"""
Clinical Risk Ensemble Engine - Allergy Cross-Reactivity Engine

Checks candidate drugs against a patient's documented allergies:
- Direct name matches
- Same-class matches (another primary allergen of the allergen's group)
- Documented cross-reactivity between groups (e.g. penicillin -> cephalosporin)
- Excipient carriers (e.g. egg/soy lecithin in propofol)

Works offline on static tables. Unknown allergens and drugs are never errors.
"""
import re
import logging
from dataclasses import dataclass
from typing import List, Dict, Optional, Sequence, Union, Any

from risk_ensemble.core.models import AllergyAlert, AllergyCheckResult, AlertType

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CrossReactivityGroup:
    group_name: str
    primary_allergens: List[str]
    cross_reactive_drugs: List[str]
    cross_reactivity_rate: str
    severity: str               # high, moderate, low
    recommendation: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "group_name": self.group_name,
            "primary_allergens": list(self.primary_allergens),
            "cross_reactive_drugs": list(self.cross_reactive_drugs),
            "cross_reactivity_rate": self.cross_reactivity_rate,
            "severity": self.severity,
            "recommendation": self.recommendation,
        }


@dataclass(frozen=True)
class ExcipientMapping:
    allergen: str
    carrier_drugs: List[str]
    message: str


# ==================== Cross-Reactivity Groups ====================

CROSS_REACTIVITY_GROUPS: List[CrossReactivityGroup] = [
    CrossReactivityGroup(
        group_name="Penicillin / Beta-Lactam",
        primary_allergens=["penicillin", "amoxicillin", "ampicillin", "piperacillin",
                           "nafcillin", "oxacillin", "dicloxacillin"],
        cross_reactive_drugs=["cephalexin", "cefazolin", "ceftriaxone", "cefepime", "cefuroxime",
                              "cefdinir", "cefpodoxime", "imipenem", "meropenem", "ertapenem"],
        cross_reactivity_rate="1-10%",
        severity="high",
        recommendation="Cephalosporin use requires careful risk-benefit analysis. Graded challenge "
                       "or skin testing recommended. Carbapenems generally safe (<1% cross-reactivity).",
    ),
    CrossReactivityGroup(
        group_name="Sulfonamide Antibiotics",
        primary_allergens=["sulfa", "sulfamethoxazole", "trimethoprim-sulfamethoxazole",
                           "bactrim", "septra", "sulfasalazine"],
        cross_reactive_drugs=["sulfadiazine", "dapsone", "sulfacetamide"],
        cross_reactivity_rate="10-15%",
        severity="moderate",
        recommendation="Non-antibiotic sulfonamides (furosemide, thiazides, celecoxib) have very low "
                       "cross-reactivity. Antibiotic sulfonamides should be avoided.",
    ),
    CrossReactivityGroup(
        group_name="Sulfonamide -> Non-Antibiotic Sulfonamides",
        primary_allergens=["sulfa", "sulfamethoxazole", "bactrim"],
        cross_reactive_drugs=["furosemide", "hydrochlorothiazide", "celecoxib", "sumatriptan",
                              "glipizide", "glyburide"],
        cross_reactivity_rate="<2%",
        severity="low",
        recommendation="Very low cross-reactivity. Generally safe to use with monitoring. True "
                       "sulfonamide allergy is to the arylamine group absent in these drugs.",
    ),
    CrossReactivityGroup(
        group_name="NSAID",
        primary_allergens=["aspirin", "ibuprofen", "naproxen", "nsaid", "ketorolac",
                           "indomethacin", "piroxicam"],
        cross_reactive_drugs=["diclofenac", "meloxicam", "ketoprofen", "flurbiprofen",
                              "etodolac", "nabumetone"],
        cross_reactivity_rate="20-30% (COX-1 mediated)",
        severity="high",
        recommendation="COX-2 selective NSAIDs (celecoxib) have low cross-reactivity (~4%). "
                       "Acetaminophen is generally safe at standard doses.",
    ),
    CrossReactivityGroup(
        group_name="Opioid",
        primary_allergens=["morphine", "codeine", "hydrocodone", "oxycodone"],
        cross_reactive_drugs=["hydromorphone", "oxymorphone", "tramadol", "fentanyl",
                              "methadone", "meperidine", "tapentadol"],
        cross_reactivity_rate="Variable (structural similarity)",
        severity="moderate",
        recommendation="True opioid allergy is rare; most reactions are pseudo-allergic (histamine "
                       "release). Fentanyl and methadone are structurally dissimilar and may be tolerated.",
    ),
    CrossReactivityGroup(
        group_name="ACE Inhibitor Angioedema",
        primary_allergens=["lisinopril", "enalapril", "ramipril", "captopril", "benazepril",
                           "fosinopril", "quinapril"],
        cross_reactive_drugs=["losartan", "valsartan", "irbesartan", "candesartan",
                              "olmesartan", "telmisartan"],
        cross_reactivity_rate="~10% (ARBs)",
        severity="high",
        recommendation="All ACE inhibitors are contraindicated after angioedema. ARBs have ~10% "
                       "cross-reactivity for angioedema. Use with extreme caution or avoid.",
    ),
    CrossReactivityGroup(
        group_name="Fluoroquinolone",
        primary_allergens=["ciprofloxacin", "levofloxacin", "moxifloxacin", "ofloxacin"],
        cross_reactive_drugs=["gemifloxacin", "delafloxacin", "norfloxacin"],
        cross_reactivity_rate="~10%",
        severity="moderate",
        recommendation="Cross-reactivity within fluoroquinolones is possible. True IgE-mediated "
                       "allergy is uncommon. Alternatives: azithromycin, doxycycline, or amoxicillin "
                       "depending on indication.",
    ),
    CrossReactivityGroup(
        group_name="Local Anesthetics (Amide)",
        primary_allergens=["lidocaine", "bupivacaine", "mepivacaine", "prilocaine", "ropivacaine"],
        cross_reactive_drugs=["articaine", "etidocaine"],
        cross_reactivity_rate="<1% (usually preservative allergy)",
        severity="low",
        recommendation="True allergy to amide local anesthetics is extremely rare. Reactions are "
                       "usually vasovagal or due to epinephrine/preservatives. Ester class "
                       "(procaine) can be substituted.",
    ),
    CrossReactivityGroup(
        group_name="Statin",
        primary_allergens=["atorvastatin", "simvastatin", "lovastatin", "rosuvastatin",
                           "pravastatin", "fluvastatin"],
        cross_reactive_drugs=["pitavastatin"],
        cross_reactivity_rate="Variable (myopathy risk)",
        severity="moderate",
        recommendation="Statin intolerance (myopathy) varies by agent. Try a different statin "
                       "(pravastatin/fluvastatin have lower myopathy risk), lower dose, or "
                       "alternate-day dosing.",
    ),
    CrossReactivityGroup(
        group_name="Iodinated Contrast Media",
        primary_allergens=["contrast dye", "iodine contrast", "iodinated contrast",
                           "ct contrast", "iv contrast"],
        cross_reactive_drugs=["iopamidol", "iohexol", "iodixanol", "ioversol"],
        cross_reactivity_rate="~10-35% re-reaction",
        severity="high",
        recommendation="Premedicate with corticosteroids and antihistamines (Lasser protocol). Use "
                       "non-ionic, low/iso-osmolar contrast. Iodine allergy is not shellfish allergy.",
    ),
]


# ==================== Excipients ====================

EXCIPIENT_MAPPINGS: List[ExcipientMapping] = [
    ExcipientMapping(
        allergen="lactose",
        carrier_drugs=["tiotropium", "salmeterol", "fluticasone"],
        message="Lactose is a common excipient in tablets and dry powder inhalers.",
    ),
    ExcipientMapping(
        allergen="gelatin",
        carrier_drugs=["mmr vaccine", "varicella vaccine", "zoster vaccine"],
        message="Gelatin is found in many capsule shells and some vaccines (MMR, varicella, zoster).",
    ),
    ExcipientMapping(
        allergen="egg",
        carrier_drugs=["propofol", "influenza vaccine", "yellow fever vaccine"],
        message="Egg protein may be present in certain vaccines and propofol (egg lecithin).",
    ),
    ExcipientMapping(
        allergen="soy",
        carrier_drugs=["propofol", "intralipid"],
        message="Soy lecithin is in propofol and some IV lipid emulsions.",
    ),
    ExcipientMapping(
        allergen="peanut",
        carrier_drugs=["progesterone"],
        message="Peanut oil is used in some progesterone formulations.",
    ),
]

EXCIPIENT_RECOMMENDATION = (
    "Check inactive ingredients of all prescribed medications and verify no cross-contamination."
)

AllergyInput = Union[str, Dict[str, Any], Any]


def normalize_name(name: str) -> str:
    return re.sub(r"[^a-z0-9]", "", (name or "").lower())


def fuzzy_match(a: str, b: str) -> bool:
    """Containment in either direction after normalization; empty never matches"""
    na, nb = normalize_name(a), normalize_name(b)
    if not na or not nb:
        return False
    return na in nb or nb in na


def _allergen_name(allergy: AllergyInput) -> str:
    if isinstance(allergy, str):
        return allergy
    if isinstance(allergy, dict):
        return str(allergy.get("allergen") or "")
    return str(getattr(allergy, "allergen", "") or "")


class AllergyChecker:
    """Stateless allergy validator over the static group tables"""

    def __init__(
        self,
        groups: Optional[List[CrossReactivityGroup]] = None,
        excipients: Optional[List[ExcipientMapping]] = None
    ):
        self.groups = groups if groups is not None else CROSS_REACTIVITY_GROUPS
        self.excipients = excipients if excipients is not None else EXCIPIENT_MAPPINGS

    def _direct_alerts(self, allergen: str, drugs: List[str]) -> List[AllergyAlert]:
        return [
            AllergyAlert(
                allergen=allergen,
                drug=drug,
                alert_type=AlertType.DIRECT,
                severity="high",
                cross_reactivity_rate="100%",
                message=f"DIRECT ALLERGY: Patient is allergic to {allergen}; "
                        f"{drug} is the same or closely related.",
                recommendation="Do NOT prescribe. Select an alternative from a different drug class.",
            )
            for drug in drugs if fuzzy_match(allergen, drug)
        ]

    def _group_alerts(self, allergen: str, drugs: List[str]) -> List[AllergyAlert]:
        alerts = []
        for group in self.groups:
            if not any(fuzzy_match(pa, allergen) for pa in group.primary_allergens):
                continue

            for drug in drugs:
                same_class = any(
                    fuzzy_match(pa, drug) and not fuzzy_match(pa, allergen)
                    for pa in group.primary_allergens
                )
                if same_class and not fuzzy_match(allergen, drug):
                    alerts.append(AllergyAlert(
                        allergen=allergen,
                        drug=drug,
                        alert_type=AlertType.CLASS_BASED,
                        severity="high",
                        cross_reactivity_rate="Same class",
                        message=f"CLASS ALERT ({group.group_name}): Patient allergic to {allergen}. "
                                f"{drug} is in the same pharmacological class.",
                        recommendation=f"Avoid all drugs in the {group.group_name} class. "
                                       f"{group.recommendation}",
                    ))

                if any(fuzzy_match(crd, drug) for crd in group.cross_reactive_drugs):
                    alerts.append(AllergyAlert(
                        allergen=allergen,
                        drug=drug,
                        alert_type=AlertType.CROSS_REACTIVE,
                        severity=group.severity,
                        cross_reactivity_rate=group.cross_reactivity_rate,
                        message=f"CROSS-REACTIVITY ({group.group_name}): Patient allergic to "
                                f"{allergen}. {drug} has {group.cross_reactivity_rate} "
                                f"cross-reactivity risk.",
                        recommendation=group.recommendation,
                    ))
        return alerts

    def _excipient_alerts(self, allergen: str, drugs: List[str]) -> List[AllergyAlert]:
        alerts = []
        for mapping in self.excipients:
            if not fuzzy_match(mapping.allergen, allergen):
                continue
            for drug in drugs:
                if any(fuzzy_match(carrier, drug) for carrier in mapping.carrier_drugs):
                    alerts.append(AllergyAlert(
                        allergen=allergen,
                        drug=drug,
                        alert_type=AlertType.EXCIPIENT,
                        severity="moderate",
                        cross_reactivity_rate="Varies",
                        message=f"EXCIPIENT ALERT: Patient allergic to {allergen}. {mapping.message}",
                        recommendation=EXCIPIENT_RECOMMENDATION,
                    ))
        return alerts

    def check(self, allergies: Sequence[AllergyInput], drugs: Sequence[str]) -> AllergyCheckResult:
        """Check candidate drugs against documented allergies"""
        allergen_names = [_allergen_name(a) for a in (allergies or [])]
        allergens = [a.strip().lower() for a in allergen_names if a and a.strip()]
        drug_names = [d.strip().lower() for d in (drugs or []) if d and d.strip()]

        alerts: List[AllergyAlert] = []
        seen = set()
        if allergens and drug_names:
            for allergen in allergens:
                candidates = (
                    self._direct_alerts(allergen, drug_names)
                    + self._group_alerts(allergen, drug_names)
                    + self._excipient_alerts(allergen, drug_names)
                )
                for alert in candidates:
                    if alert.key not in seen:
                        seen.add(alert.key)
                        alerts.append(alert)

        if alerts:
            logger.debug(f"Allergy check: {len(alerts)} alerts for {len(drug_names)} drugs")

        return AllergyCheckResult(
            safe=not alerts,
            alerts=alerts,
            checked_drugs=list(drugs or []),
            checked_allergens=[a for a in allergen_names if a],
        )

    def is_drug_safe_for_patient(self, drug: str, allergies: Sequence[AllergyInput]) -> AllergyCheckResult:
        return self.check(allergies, [drug])

    def cross_reactivity_groups(self, allergen: str) -> List[CrossReactivityGroup]:
        """Groups whose primary allergens include the given allergen"""
        return [
            g for g in self.groups
            if any(fuzzy_match(pa, allergen) for pa in g.primary_allergens)
        ]


_allergy_checker: Optional[AllergyChecker] = None


def get_allergy_checker() -> AllergyChecker:
    global _allergy_checker
    if _allergy_checker is None:
        _allergy_checker = AllergyChecker()
    return _allergy_checker


# Module-level convenience functions
def check_allergies(allergies: Sequence[AllergyInput], drugs: Sequence[str]) -> AllergyCheckResult:
    return get_allergy_checker().check(allergies, drugs)


def is_drug_safe_for_patient(drug: str, allergies: Sequence[AllergyInput]) -> AllergyCheckResult:
    return get_allergy_checker().is_drug_safe_for_patient(drug, allergies)


def cross_reactivity_groups(allergen: str) -> List[CrossReactivityGroup]:
    return get_allergy_checker().cross_reactivity_groups(allergen)

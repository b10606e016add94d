"""
Clinical Risk Ensemble Engine - Chief Complaint Analyzer

Reads a free-text chief complaint into structured findings: symptoms with
negation and severity, body systems, duration, acuity, red flags, ranked
differential diagnoses and follow-up questions. Local, rule-based and
deterministic.
"""
import re
import logging
from dataclasses import dataclass
from typing import List, Dict, Optional, Tuple, Sequence

from config import settings
from risk_ensemble.core.models import (
    AcuityLevel, ComplaintAnalysis, DifferentialEntry, DurationInfo, SymptomEntity
)
from risk_ensemble.nlp.lexicon import (
    SYMPTOM_LEXICON, DIFFERENTIAL_RULES, NEGATION_CUES, SEVERITY_MODIFIERS,
    DURATION_PATTERNS, ACUTE_MAX_DAYS, SUBACUTE_MAX_DAYS,
    SYSTEM_QUESTIONS, EMPTY_COMPLAINT_QUESTION, LexiconEntry
)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


_CLAUSE_SPLIT = re.compile(r"[,;!?]|\.(?!\d)|\bbut\b")
_TOKEN = re.compile(r"[a-z0-9'/]+")

_NEGATION = "negation"
_SYMPTOM = "symptom"


@dataclass
class _Match:
    kind: str
    start: int                  # token index in the clause
    end: int                    # exclusive
    term: str
    entry: Optional[int] = None  # lexicon index for symptoms


class ComplaintTextProcessor:
    """Text normalization and tokenization helpers"""

    @classmethod
    def normalize(cls, text: str) -> str:
        text = (text or "").lower()
        text = re.sub(r"[^\w\s'/.-]", "", text)
        return re.sub(r"\s+", " ", text).strip()

    @classmethod
    def split_clauses(cls, text: str) -> List[str]:
        """Split raw or lowercased text on clause punctuation and 'but'"""
        return [c.strip() for c in _CLAUSE_SPLIT.split((text or "").lower()) if c.strip()]

    @classmethod
    def tokenize(cls, text: str) -> List[str]:
        return _TOKEN.findall(text)


class ComplaintAnalyzer:
    """
    Rule-based chief complaint analyzer.

    Symptom terms and negation cues are matched greedily (longest phrase
    first) over clause tokens. A negation cue applies only to the next
    symptom in the same clause and only within a short token window.
    """

    def __init__(self, negation_window: int = settings.NEGATION_WINDOW_TOKENS):
        self.negation_window = negation_window
        self._phrases: Dict[Tuple[str, ...], Tuple[str, Optional[int]]] = {}
        self._max_phrase_len = 1
        self._build_phrase_table()

    def _build_phrase_table(self):
        """Index every symptom term and negation cue by its token tuple"""
        for idx, entry in enumerate(SYMPTOM_LEXICON):
            for term in entry.terms:
                key = tuple(ComplaintTextProcessor.tokenize(term))
                # First lexicon entry wins for duplicate phrases
                self._phrases.setdefault(key, (_SYMPTOM, idx))

        for cue in NEGATION_CUES:
            key = tuple(ComplaintTextProcessor.tokenize(cue))
            self._phrases[key] = (_NEGATION, None)

        self._max_phrase_len = max(len(k) for k in self._phrases)

    # ---------- matching ----------

    def _match_clause(self, tokens: List[str]) -> List[_Match]:
        matches = []
        i = 0
        while i < len(tokens):
            found = None
            for length in range(min(self._max_phrase_len, len(tokens) - i), 0, -1):
                key = tuple(tokens[i:i + length])
                if key in self._phrases:
                    kind, entry = self._phrases[key]
                    found = _Match(kind, i, i + length, " ".join(key), entry)
                    break
            if found:
                matches.append(found)
                i = found.end
            else:
                i += 1
        return matches

    def _clause_modifier(self, tokens: List[str]) -> int:
        return sum(SEVERITY_MODIFIERS.get(t, 0) for t in set(tokens))

    def _extract_symptoms(self, text: str) -> List[SymptomEntity]:
        found: Dict[int, SymptomEntity] = {}

        # Clauses come from the raw text; normalization drops their punctuation
        for clause in ComplaintTextProcessor.split_clauses(text):
            tokens = ComplaintTextProcessor.tokenize(ComplaintTextProcessor.normalize(clause))
            modifier = self._clause_modifier(tokens)
            negate_until = -1

            for match in self._match_clause(tokens):
                if match.kind == _NEGATION:
                    negate_until = match.end + self.negation_window
                    continue

                negated = match.start < negate_until
                negate_until = -1

                entry: LexiconEntry = SYMPTOM_LEXICON[match.entry]
                severity = entry.base_severity if negated else entry.base_severity + modifier
                symptom = SymptomEntity(
                    term=match.term,
                    body_system=entry.body_system,
                    severity=float(max(0, min(10, severity))),
                    is_negated=negated,
                    is_red_flag=entry.red_flag and not negated,
                )

                previous = found.get(match.entry)
                if previous is None or (previous.is_negated and not negated):
                    found[match.entry] = symptom

        return list(found.values())

    # ---------- duration / acuity ----------

    def _extract_duration(self, normalized: str) -> Optional[DurationInfo]:
        for pattern, to_days in DURATION_PATTERNS:
            match = pattern.search(normalized)
            if match:
                days = to_days(match)
                return DurationInfo(
                    raw=match.group(0),
                    estimated_days=round(days, 1),
                    acute_vs_chronic=self._classify_duration(days),
                )
        return None

    @staticmethod
    def _classify_duration(days: float) -> str:
        if days < ACUTE_MAX_DAYS:
            return "acute"
        if days <= SUBACUTE_MAX_DAYS:
            return "subacute"
        return "chronic"

    def _determine_acuity(
        self,
        positives: List[SymptomEntity],
        red_flags: List[str],
        duration: Optional[DurationInfo]
    ) -> AcuityLevel:
        if not positives:
            return AcuityLevel.ROUTINE

        max_severity = max(s.severity for s in positives)
        if max_severity >= 9 or len(red_flags) >= 2:
            acuity = AcuityLevel.EMERGENT
        elif max_severity >= 7 or red_flags:
            acuity = AcuityLevel.URGENT
        elif max_severity >= 5:
            acuity = AcuityLevel.SEMI_URGENT
        else:
            acuity = AcuityLevel.ROUTINE

        # Sudden onset
        if duration and duration.estimated_days < settings.ACUTE_ONSET_DAYS:
            acuity = acuity.escalate()
        return acuity

    # ---------- differentials / questions ----------

    @staticmethod
    def _mentions(terms: Sequence[str], phrase: str) -> bool:
        # Whole lexicon terms only; "ankle swelling" does not mention "swelling"
        return phrase in terms

    def _rank_differentials(self, positive_terms: List[str]) -> List[DifferentialEntry]:
        if not positive_terms:
            return []

        differentials = []
        for rule in DIFFERENTIAL_RULES:
            if not any(self._mentions(positive_terms, req) for req in rule.required):
                continue

            supporting = [s for s in rule.supporting if self._mentions(positive_terms, s)]
            probability = rule.base_probability + rule.boost * len(supporting)
            differentials.append(DifferentialEntry(
                condition=rule.condition,
                probability=round(min(0.95, probability), 2),
                icd10_category=rule.icd10,
                related_symptoms=supporting,
            ))

        differentials.sort(key=lambda d: d.probability, reverse=True)
        return differentials[:settings.MAX_DIFFERENTIALS]

    def _suggest_questions(self, systems: List[str]) -> List[str]:
        questions: List[str] = []
        for system in systems:
            for question in SYSTEM_QUESTIONS.get(system, [])[:2]:
                if question not in questions:
                    questions.append(question)
        if not questions:
            questions = list(SYSTEM_QUESTIONS["general"])
        return questions[:settings.MAX_SUGGESTED_QUESTIONS]

    @staticmethod
    def _confidence(
        symptoms: List[SymptomEntity],
        positives: List[SymptomEntity],
        duration: Optional[DurationInfo],
        differentials: List[DifferentialEntry]
    ) -> float:
        if not symptoms:
            return 0.0
        confidence = 30 + min(30, 8 * len(positives))
        if duration:
            confidence += 10
        if differentials:
            confidence += 15
        if positives:
            confidence += 15
        return float(min(95, confidence))

    # ---------- public API ----------

    def analyze(self, text: str) -> ComplaintAnalysis:
        """Analyze one chief complaint"""
        if not text or not text.strip():
            return ComplaintAnalysis(
                original_text=text or "",
                normalized_text="",
                suggested_questions=[EMPTY_COMPLAINT_QUESTION],
            )

        normalized = ComplaintTextProcessor.normalize(text)
        symptoms = self._extract_symptoms(text)
        positives = [s for s in symptoms if not s.is_negated]

        systems: List[str] = []
        for symptom in positives:
            if symptom.body_system not in systems:
                systems.append(symptom.body_system)

        red_flags = [s.term for s in positives if s.is_red_flag]
        duration = self._extract_duration(normalized)
        acuity = self._determine_acuity(positives, red_flags, duration)
        differentials = self._rank_differentials([s.term for s in positives])

        analysis = ComplaintAnalysis(
            original_text=text,
            normalized_text=normalized,
            symptoms=symptoms,
            body_systems=systems or ["general"],
            duration=duration,
            acuity=acuity,
            red_flags=red_flags,
            differentials=differentials,
            suggested_questions=self._suggest_questions(systems),
            confidence=self._confidence(symptoms, positives, duration, differentials),
        )
        logger.debug(
            f"Complaint analyzed: {len(positives)} positive symptoms, "
            f"acuity={acuity.value}, red_flags={red_flags}"
        )
        return analysis

    def analyze_multiple(self, texts: Sequence[str]) -> ComplaintAnalysis:
        """Analyze several complaint notes as one combined complaint"""
        combined = ". ".join(t.strip() for t in texts if t and t.strip())
        return self.analyze(combined)


# Analyzer holds only read-only tables
_complaint_analyzer: Optional[ComplaintAnalyzer] = None


def get_complaint_analyzer() -> ComplaintAnalyzer:
    global _complaint_analyzer
    if _complaint_analyzer is None:
        _complaint_analyzer = ComplaintAnalyzer()
    return _complaint_analyzer


def analyze_complaint(text: str) -> ComplaintAnalysis:
    return get_complaint_analyzer().analyze(text)


def analyze_complaints(texts: Sequence[str]) -> ComplaintAnalysis:
    return get_complaint_analyzer().analyze_multiple(texts)

"""
Cardiology risk calculators.

Every calculator is a pure function: it takes its own input record (plus the
shared demographics/lipid/risk-factor records where the instrument needs
them) and returns a RiskScoreResult. Nothing here performs I/O or keeps
state between calls.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Type

from pydantic import BaseModel

from .models import (
    CACScoreInput,
    CardiovascularRiskFactors,
    CHADSVASCInput,
    ComprehensiveRiskResult,
    GRACEScoreInput,
    HASBLEDInput,
    HEARTScoreInput,
    LipidProfile,
    PatientDemographics,
    Race,
    RiskLevel,
    RiskScoreResult,
    Sex,
    TIMIRiskInput,
)

logger = logging.getLogger(__name__)


class CalculatorInputError(ValueError):
    """Input is a valid record but lies outside the instrument's domain."""


# ── Configuration ───────────────────────────────────────────────────────────

# (exclusive upper bound %, risk level, band key)
ASCVD_BANDS: Tuple[Tuple[float, RiskLevel, str], ...] = (
    (5.0, RiskLevel.LOW, "low"),
    (7.5, RiskLevel.INTERMEDIATE, "borderline"),
    (20.0, RiskLevel.INTERMEDIATE, "intermediate"),
)
ASCVD_AGE_RANGE = (40, 79)
# Age-interaction terms of the pooled cohort equations are evaluated at no
# more than this age.
ASCVD_INTERACTION_AGE_CAP = 70

# (inclusive upper bound %, risk level); above the last bound -> very_high
GRACE_BANDS: Tuple[Tuple[float, RiskLevel], ...] = (
    (1.0, RiskLevel.LOW),
    (3.0, RiskLevel.INTERMEDIATE),
    (20.0, RiskLevel.HIGH),
)

CHA2DS2_VASC_STROKE_RISK: Dict[int, float] = {
    0: 0.0, 1: 1.3, 2: 2.2, 3: 3.2, 4: 4.0,
    5: 6.7, 6: 9.8, 7: 9.6, 8: 6.7, 9: 15.2,
}
HAS_BLED_BLEEDING_RISK: Dict[int, float] = {
    0: 1.13, 1: 1.02, 2: 1.88, 3: 3.74, 4: 8.70, 5: 12.50,
}
TIMI_EVENT_RISK: Dict[int, float] = {
    0: 4.7, 1: 4.7, 2: 8.3, 3: 13.2, 4: 19.9, 5: 26.2, 6: 40.9, 7: 40.9,
}

# GRACE point tables: (exclusive upper bound, points)
_GRACE_AGE = ((30, 0), (40, 8), (50, 25), (60, 41), (70, 58), (80, 75), (90, 91))
_GRACE_HEART_RATE = ((50, 0), (70, 3), (90, 9), (110, 15), (150, 24), (200, 38))
_GRACE_SBP = ((80, 58), (100, 53), (120, 43), (140, 34), (160, 24), (200, 10))
_GRACE_CREATININE = ((0.4, 1), (0.8, 4), (1.2, 7), (1.6, 10), (2.0, 13), (4.0, 21))
_GRACE_KILLIP = {1: 0, 2: 20, 3: 39, 4: 59}
# score (inclusive upper bound) -> in-hospital mortality %
_GRACE_MORTALITY = ((108, 1.0), (118, 2.0), (127, 3.0), (140, 5.0),
                    (154, 8.0), (168, 13.0), (182, 20.0), (196, 30.0))


# ── Helpers ─────────────────────────────────────────────────────────────────

def _clamp(val: float, lo: float, hi: float) -> float:
    return max(lo, min(val, hi))


def _points(value: float, table: Sequence[Tuple[float, float]], above: float,
            inclusive: bool = False) -> float:
    """Look up the points for the first band whose bound the value falls under."""
    for bound, pts in table:
        if value < bound or (inclusive and value == bound):
            return pts
    return above


def _notes(lines: List[str]) -> str:
    return "; ".join(line for line in lines if line)


def _result(name: str, value: float, interpretation: str, level: RiskLevel,
            recommendations: List[str], notes: List[str],
            risk_percentage: Optional[float] = None) -> RiskScoreResult:
    return RiskScoreResult(
        score_name=name,
        score_value=value,
        interpretation=interpretation,
        risk_level=level,
        recommendations=recommendations,
        clinical_notes=_notes(notes),
        risk_percentage=risk_percentage,
    )


# ── CAC (Agatston) ──────────────────────────────────────────────────────────

def interpret_cac(data: CACScoreInput, demographics: PatientDemographics) -> RiskScoreResult:
    """
    Interpret a coronary artery calcium (Agatston) score.

    Bands follow MESA; the score itself is passed through unchanged and the
    patient's age and sex are stated in the interpretation.
    """
    score = data.agatston_score

    if score == 0:
        label, level, risk = "No", RiskLevel.VERY_LOW, 1.1
        recs = [
            "Very low cardiovascular risk",
            "Continue lifestyle measures",
            "Standard risk factor control",
            "Statin not recommended if LDL-C is normal",
        ]
    elif score <= 10:
        label, level, risk = "Minimal", RiskLevel.LOW, 4.1
        recs = [
            "Early atherosclerosis detected",
            "Optimise risk factor control",
            "Consider statin if other risk factors are present",
            "Regular follow-up recommended",
        ]
    elif score <= 100:
        label, level, risk = "Mild", RiskLevel.LOW, 6.4
        recs = [
            "Atherosclerotic plaque confirmed",
            "Moderate-intensity statin recommended",
            "Target LDL-C < 100 mg/dL",
            "Consider aspirin if benefit outweighs bleeding risk",
        ]
    elif score < 400:
        label, level, risk = "Moderate", RiskLevel.INTERMEDIATE, 11.3
        recs = [
            "Significant atherosclerosis",
            "High-intensity statin recommended",
            "Target LDL-C < 70 mg/dL",
            "Low-dose aspirin recommended",
            "Consider exercise testing or stress imaging",
        ]
    elif score <= 1000:
        label, level, risk = "Severe", RiskLevel.HIGH, 19.5
        recs = [
            "Advanced atherosclerosis",
            "High-intensity statin, add ezetimibe if needed",
            "Target LDL-C < 55 mg/dL",
            "Low-dose aspirin",
            "Consider stress imaging or coronary angiography",
            "Full cardiology evaluation",
        ]
    else:
        label, level, risk = "Extensive", RiskLevel.VERY_HIGH, 25.8
        recs = [
            "Very advanced atherosclerosis",
            "Intensive lipid-lowering therapy required",
            "Statin + ezetimibe, consider PCSK9 inhibitor",
            "Target LDL-C < 55 mg/dL and >= 50% reduction from baseline",
            "Strongly consider coronary angiography",
            "Assess for myocardial ischaemia",
            "Regular cardiology follow-up",
        ]

    notes: List[str] = []
    if data.percentile is not None:
        if data.percentile >= 75:
            notes.append(f"Percentile {data.percentile:g} for age/sex: above-average risk")
            if level == RiskLevel.LOW:
                level = RiskLevel.INTERMEDIATE
        elif data.percentile <= 25:
            notes.append(f"Percentile {data.percentile:g} for age/sex: favourable")

    if demographics.age < 45 and score > 0:
        notes.append("Positive CAC before 45: premature atherosclerosis, consider genetic lipid work-up")
    if demographics.age > 75 and score == 0:
        notes.append("Zero CAC after 75: excellent cardiovascular prognosis")

    interpretation = (
        f"{label} coronary artery calcification (Agatston {score:g}) "
        f"in a {demographics.age}-year-old {demographics.sex.value}"
    )
    return _result("CAC Agatston Score", score, interpretation, level, recs, notes, risk)


def expected_cac_percentile(score: float, age: float, sex: Sex,
                            race: Optional[Race] = None) -> int:
    """
    Rough MESA-style percentile of a CAC score for age, sex and race.

    Uses a log-normal approximation around an expected median rather than the
    published lookup tables.
    """
    if score <= 0:
        return 0
    age_factor = (age - 45) / 10
    sex_factor = 1.3 if sex == Sex.MALE else 1.0
    race_factor = {
        Race.AFRICAN_AMERICAN: 0.8,
        Race.HISPANIC: 0.85,
        Race.ASIAN: 0.75,
    }.get(race, 1.0)
    median_expected = math.exp(0.1 * age_factor) * 50 * sex_factor * race_factor
    percentile = 50 + 30 * math.log(score / median_expected)
    return int(_clamp(round(percentile), 0, 100))


# ── ASCVD (pooled cohort equations) ─────────────────────────────────────────

# Keyed by (sex, african_american). Missing terms are zero.
_PCE: Dict[Tuple[Sex, bool], Dict[str, float]] = {
    (Sex.MALE, False): {
        "ln_age": 12.344, "ln_tc": 11.853, "ln_age_ln_tc": -2.664,
        "ln_hdl": -7.990, "ln_age_ln_hdl": 1.769,
        "ln_sbp_treated": 1.797, "ln_sbp_untreated": 1.764,
        "smoker": 7.837, "ln_age_smoker": -1.795, "diabetes": 0.658,
        "baseline": 0.9144, "mean": 61.18,
    },
    (Sex.FEMALE, False): {
        "ln_age": -29.799, "ln_age_sq": 4.884, "ln_tc": 13.540, "ln_age_ln_tc": -3.114,
        "ln_hdl": -13.578, "ln_age_ln_hdl": 3.149,
        "ln_sbp_treated": 2.019, "ln_sbp_untreated": 1.957,
        "smoker": 7.574, "ln_age_smoker": -1.665, "diabetes": 0.661,
        "baseline": 0.9665, "mean": -29.18,
    },
    (Sex.MALE, True): {
        "ln_age": 2.469, "ln_tc": 0.302, "ln_hdl": -0.307,
        "ln_sbp_treated": 1.916, "ln_sbp_untreated": 1.809,
        "smoker": 0.549, "diabetes": 0.645,
        "baseline": 0.8954, "mean": 19.54,
    },
    (Sex.FEMALE, True): {
        "ln_age": 17.114, "ln_tc": 0.940, "ln_hdl": -18.920, "ln_age_ln_hdl": 4.475,
        "ln_sbp_treated": 29.291, "ln_age_ln_sbp_treated": -6.432,
        "ln_sbp_untreated": 27.820, "ln_age_ln_sbp_untreated": -6.087,
        "smoker": 0.691, "diabetes": 0.874,
        "baseline": 0.9533, "mean": 86.61,
    },
}

_ASCVD_ADVICE: Dict[str, Tuple[str, List[str]]] = {
    "low": ("Low 10-year ASCVD risk", [
        "Lifestyle measures recommended",
        "No routine indication for statin therapy",
        "Reassess risk in 4-6 years",
    ]),
    "borderline": ("Borderline 10-year ASCVD risk", [
        "Clinician-patient discussion of statin therapy benefit and risk",
        "Consider CAC scoring to refine risk",
        "Optimise modifiable risk factors",
    ]),
    "intermediate": ("Intermediate 10-year ASCVD risk", [
        "Moderate-intensity statin therapy recommended",
        "Target LDL-C < 100 mg/dL",
        "CAC score can guide treatment intensity",
        "Optimal blood pressure control",
    ]),
    "high": ("High 10-year ASCVD risk", [
        "High-intensity statin therapy recommended",
        "Target LDL-C < 70 mg/dL (< 55 mg/dL if very high risk)",
        "Consider aspirin if benefit outweighs bleeding risk",
        "Strict control of all risk factors",
    ]),
}


def _pooled_cohort_risk(demographics: PatientDemographics, lipids: LipidProfile,
                        risk_factors: CardiovascularRiskFactors) -> float:
    """10-year ASCVD risk in percent, non-decreasing in every adverse factor."""
    c = _PCE[(demographics.sex, demographics.race == Race.AFRICAN_AMERICAN)]
    ln_age = math.log(demographics.age)
    ln_int = math.log(min(demographics.age, ASCVD_INTERACTION_AGE_CAP))
    ln_tc = math.log(lipids.total_cholesterol)
    ln_hdl = math.log(lipids.hdl_cholesterol)
    ln_sbp = math.log(risk_factors.systolic_bp)

    # Per-factor effects with the age interaction folded in; a worse value may
    # never lower the risk.
    tc_effect = max(0.0, c["ln_tc"] + c.get("ln_age_ln_tc", 0.0) * ln_int)
    hdl_effect = min(0.0, c["ln_hdl"] + c.get("ln_age_ln_hdl", 0.0) * ln_int)
    if risk_factors.on_bp_medication:
        sbp_effect = c["ln_sbp_treated"] + c.get("ln_age_ln_sbp_treated", 0.0) * ln_int
    else:
        sbp_effect = c["ln_sbp_untreated"] + c.get("ln_age_ln_sbp_untreated", 0.0) * ln_int
    sbp_effect = max(0.0, sbp_effect)
    smoker_effect = max(0.0, c["smoker"] + c.get("ln_age_smoker", 0.0) * ln_int)

    total = (
        c["ln_age"] * ln_age
        + c.get("ln_age_sq", 0.0) * ln_age ** 2
        + tc_effect * ln_tc
        + hdl_effect * ln_hdl
        + sbp_effect * ln_sbp
        + (smoker_effect if risk_factors.smoker else 0.0)
        + (c["diabetes"] if risk_factors.diabetic else 0.0)
    )
    risk = (1 - c["baseline"] ** math.exp(total - c["mean"])) * 100
    logger.debug(f"PCE sum={total:.4f} mean={c['mean']} risk={risk:.3f}%")
    return _clamp(risk, 0.0, 100.0)


def ascvd_applicable(age: float) -> bool:
    lo, hi = ASCVD_AGE_RANGE
    return lo <= age <= hi


def check_ascvd_age(demographics: PatientDemographics, **_: Any) -> None:
    """Boundary check for callers that want out-of-range ages rejected."""
    if not ascvd_applicable(demographics.age):
        lo, hi = ASCVD_AGE_RANGE
        raise CalculatorInputError(
            f"ASCVD risk is only defined for ages {lo}-{hi} (got {demographics.age})"
        )


def calculate_ascvd(demographics: PatientDemographics, lipids: LipidProfile,
                    risk_factors: CardiovascularRiskFactors,
                    bands: Sequence[Tuple[float, RiskLevel, str]] = ASCVD_BANDS) -> RiskScoreResult:
    """
    10-year atherosclerotic cardiovascular disease risk (ACC/AHA 2013 PCE).

    Outside the validated 40-79 age range the equations are not evaluated:
    the result has score_value -1 and no risk_percentage.
    """
    if not ascvd_applicable(demographics.age):
        lo, hi = ASCVD_AGE_RANGE
        return _result(
            "ASCVD 10-Year Risk (PCE)", -1,
            f"Age {demographics.age} outside the validated range ({lo}-{hi} years)",
            RiskLevel.LOW,
            ["Pooled cohort equations not applicable at this age",
             "Assess cardiovascular risk clinically"],
            [f"ASCVD not calculated: age must be {lo}-{hi}"],
        )

    risk = _pooled_cohort_risk(demographics, lipids, risk_factors)

    level, key = RiskLevel.HIGH, "high"
    for bound, band_level, band_key in bands:
        if risk < bound:
            level, key = band_level, band_key
            break
    interpretation, recs = _ASCVD_ADVICE[key]

    notes: List[str] = []
    if risk_factors.family_history_cad:
        notes.append("Family history of premature CAD: risk enhancer")
    if risk_factors.chronic_kidney_disease:
        notes.append("Chronic kidney disease: risk enhancer")
    if lipids.triglycerides is not None and lipids.triglycerides > 175:
        notes.append("Hypertriglyceridaemia: probable metabolic syndrome")

    return _result("ASCVD 10-Year Risk (PCE)", round(risk, 1), interpretation,
                   level, list(recs), notes, risk)


# ── HEART ───────────────────────────────────────────────────────────────────

def heart_age_points(age: float) -> int:
    if age >= 65:
        return 2
    if age >= 45:
        return 1
    return 0


def heart_risk_factor_points(count: int, known_atherosclerosis: bool = False) -> int:
    """Risk-factor component: none 0, one or two 1, three or more (or known disease) 2."""
    if known_atherosclerosis or count >= 3:
        return 2
    if count >= 1:
        return 1
    return 0


def calculate_heart(data: HEARTScoreInput) -> RiskScoreResult:
    """HEART score for chest pain in the emergency department."""
    score = data.history + data.ecg + data.age + data.risk_factors + data.troponin

    if score <= 3:
        level, risk = RiskLevel.LOW, 1.7
        interpretation = "Low risk of major adverse cardiac events"
        recs = [
            "6-week MACE risk: 1-2%",
            "Early discharge can be considered",
            "Outpatient follow-up recommended",
            "Educate on warning symptoms",
        ]
    elif score <= 6:
        level, risk = RiskLevel.INTERMEDIATE, 16.6
        interpretation = "Intermediate risk of major adverse cardiac events"
        recs = [
            "6-week MACE risk: 12-21%",
            "Admit for observation",
            "Non-invasive testing",
            "Serial troponin measurements",
            "Consider coronary angiography if tests are positive",
        ]
    else:
        level, risk = RiskLevel.HIGH, 50.0
        interpretation = "High risk of major adverse cardiac events"
        recs = [
            "6-week MACE risk: 50-65%",
            "Hospital admission required",
            "Early invasive strategy (coronary angiography)",
            "Intensive antithrombotic therapy",
            "Monitoring in a cardiac care unit",
        ]

    notes = [
        f"H (History): {data.history}",
        f"E (ECG): {data.ecg}",
        f"A (Age): {data.age}",
        f"R (Risk factors): {data.risk_factors}",
        f"T (Troponin): {data.troponin}",
    ]
    return _result("HEART Score", score, interpretation, level, recs, notes, risk)


# ── CHA2DS2-VASc ────────────────────────────────────────────────────────────

def calculate_cha2ds2_vasc(data: CHADSVASCInput) -> RiskScoreResult:
    """Stroke risk in non-valvular atrial fibrillation."""
    score = 0
    notes: List[str] = []
    if data.congestive_heart_failure:
        score += 1
        notes.append("C: Congestive heart failure (+1)")
    if data.hypertension:
        score += 1
        notes.append("H: Hypertension (+1)")
    if data.age >= 75:
        score += 2
        notes.append("A2: Age >= 75 (+2)")
    elif data.age >= 65:
        score += 1
        notes.append("A: Age 65-74 (+1)")
    if data.diabetes:
        score += 1
        notes.append("D: Diabetes (+1)")
    if data.stroke_tia_history:
        score += 2
        notes.append("S2: Prior stroke/TIA/thromboembolism (+2)")
    if data.vascular_disease:
        score += 1
        notes.append("V: Vascular disease (+1)")
    if data.sex == Sex.FEMALE:
        score += 1
        notes.append("Sc: Female sex (+1)")

    risk = CHA2DS2_VASC_STROKE_RISK[min(score, 9)]

    if score == 0:
        level = RiskLevel.LOW
        interpretation = "Low thromboembolic risk"
        recs = [
            "Anticoagulation not recommended",
            "Aspirin alone not recommended",
            "Reassess the score periodically",
        ]
    elif score == 1:
        level = RiskLevel.LOW
        interpretation = "Low to moderate thromboembolic risk"
        if data.sex == Sex.FEMALE:
            recs = [
                "Score driven by female sex alone",
                "Anticoagulation not routinely indicated",
                "Evaluate other risk factors",
            ]
        else:
            recs = [
                "Anticoagulation should be considered",
                "Discuss benefit and risk with the patient",
                "Prefer a DOAC over a VKA if anticoagulating",
            ]
    else:
        # Any score of 2 or more carries an explicit anticoagulation advice.
        level = RiskLevel.HIGH if score >= 4 else RiskLevel.INTERMEDIATE
        interpretation = ("High" if score >= 4 else "Moderate") + " thromboembolic risk"
        recs = [
            "Oral anticoagulation recommended",
            "DOAC (direct oral anticoagulant) as first line",
            "VKA if mechanical valve or moderate-to-severe mitral stenosis",
            "Assess bleeding risk (HAS-BLED)",
        ]

    return _result("CHA2DS2-VASc", score, interpretation, level, recs, notes, risk)


# ── HAS-BLED ────────────────────────────────────────────────────────────────

_HAS_BLED_FACTORS = (
    ("hypertension", "H: Uncontrolled hypertension (+1)"),
    ("renal_disease", "A: Abnormal renal function (+1)"),
    ("liver_disease", "A: Abnormal liver function (+1)"),
    ("stroke_history", "S: Stroke (+1)"),
    ("bleeding_history", "B: Bleeding history (+1)"),
    ("labile_inr", "L: Labile INR (+1)"),
    ("elderly", "E: Age > 65 (+1)"),
    ("drugs_alcohol", "D: Drugs or alcohol (+1)"),
)


def calculate_has_bled(data: HASBLEDInput) -> RiskScoreResult:
    """
    Major bleeding risk on anticoagulation.

    Each of the eight factors scores one point; drugs and alcohol share a
    single point here although the published instrument scores them apart.
    """
    notes = [note for field, note in _HAS_BLED_FACTORS if getattr(data, field)]
    score = len(notes)
    risk = HAS_BLED_BLEEDING_RISK[min(score, 5)]

    if score <= 1:
        level = RiskLevel.LOW
        interpretation = "Low bleeding risk"
        recs = [
            "Anticoagulation can be used safely if indicated",
            "Standard monitoring",
            "Educate the patient on signs of bleeding",
        ]
    elif score == 2:
        level = RiskLevel.INTERMEDIATE
        interpretation = "Moderate bleeding risk"
        recs = [
            "Anticoagulation can be used if indicated",
            "Address modifiable bleeding risk factors",
            "Closer monitoring recommended",
        ]
    else:
        level = RiskLevel.HIGH
        interpretation = "High bleeding risk"
        recs = [
            "A high score is not by itself a contraindication to anticoagulation",
            "Identify and correct modifiable factors (blood pressure, labile INR, drugs, alcohol)",
            "Close follow-up recommended",
            "Prefer a DOAC over a VKA",
            "Reinforced patient education",
        ]

    return _result("HAS-BLED", score, interpretation, level, recs, notes, risk)


# ── TIMI (UA/NSTEMI) ────────────────────────────────────────────────────────

def calculate_timi(data: TIMIRiskInput) -> RiskScoreResult:
    """TIMI risk score for unstable angina / NSTEMI (14-day events)."""
    score = sum(1 for v in data.model_dump().values() if v)
    risk = TIMI_EVENT_RISK[score]

    if score <= 2:
        level = RiskLevel.LOW
        interpretation = "Low TIMI risk"
        recs = [
            "Conservative strategy can be considered",
            "Stress testing before discharge",
            "Optimal medical therapy",
        ]
    elif score <= 4:
        level = RiskLevel.INTERMEDIATE
        interpretation = "Intermediate TIMI risk"
        recs = [
            "Consider early invasive strategy",
            "Coronary angiography within 24-72 hours",
            "Intensive antithrombotic therapy",
        ]
    else:
        level = RiskLevel.HIGH
        interpretation = "High TIMI risk"
        recs = [
            "Urgent invasive strategy recommended",
            "Coronary angiography within 2-24 hours",
            "Consider GP IIb/IIIa inhibitor",
            "Cardiac intensive care unit",
        ]

    return _result("TIMI Risk Score (UA/NSTEMI)", score, interpretation, level, recs,
                   [f"14-day risk of death, MI or urgent revascularisation: {risk}%"], risk)


# ── GRACE ───────────────────────────────────────────────────────────────────

def grace_points(data: GRACEScoreInput) -> int:
    """Total GRACE score from its eight components."""
    score = (
        _points(data.age, _GRACE_AGE, 100)
        + _points(data.heart_rate, _GRACE_HEART_RATE, 46)
        + _points(data.systolic_bp, _GRACE_SBP, 0)
        + _points(data.creatinine, _GRACE_CREATININE, 28)
        + _GRACE_KILLIP[data.killip_class]
    )
    if data.cardiac_arrest:
        score += 39
    if data.st_deviation:
        score += 28
    if data.elevated_cardiac_markers:
        score += 14
    return int(score)


def calculate_grace(data: GRACEScoreInput,
                    bands: Sequence[Tuple[float, RiskLevel]] = GRACE_BANDS) -> RiskScoreResult:
    """In-hospital mortality risk in acute coronary syndrome."""
    score = grace_points(data)
    risk = _points(score, _GRACE_MORTALITY, 50.0, inclusive=True)

    level = RiskLevel.VERY_HIGH
    for bound, band_level in bands:
        if risk <= bound:
            level = band_level
            break

    if level.rank <= RiskLevel.LOW.rank:
        interpretation = "Low GRACE risk"
        recs = [
            f"Estimated in-hospital mortality: {risk:g}%",
            "Non-invasive risk stratification acceptable",
            "Early discharge if tests are negative",
        ]
    elif level == RiskLevel.INTERMEDIATE:
        interpretation = "Intermediate GRACE risk"
        recs = [
            f"Estimated in-hospital mortality: {risk:g}%",
            "Invasive strategy within 72 hours",
            "Monitoring in a cardiology unit",
        ]
    else:
        interpretation = ("Very high" if level == RiskLevel.VERY_HIGH else "High") + " GRACE risk"
        recs = [
            f"Estimated in-hospital mortality: {risk:g}%",
            "Early invasive strategy (< 24 hours)",
            "Cardiac intensive care",
            "Haemodynamic support if needed",
        ]
        if level == RiskLevel.VERY_HIGH:
            recs.insert(1, "Immediate invasive strategy (< 2 hours) if haemodynamically unstable")

    notes = [
        f"GRACE score: {score}",
        f"Killip class: {data.killip_class}",
        "Cardiac arrest at admission" if data.cardiac_arrest else "",
        "ST-segment deviation" if data.st_deviation else "",
        "Elevated cardiac markers" if data.elevated_cardiac_markers else "",
    ]
    return _result("GRACE Score", score, interpretation, level, recs, notes, risk)


# ── Comprehensive assessment ────────────────────────────────────────────────

def calculate_comprehensive(demographics: PatientDemographics,
                            lipids: Optional[LipidProfile] = None,
                            risk_factors: Optional[CardiovascularRiskFactors] = None,
                            cac: Optional[CACScoreInput] = None) -> ComprehensiveRiskResult:
    """Run every applicable primary-prevention score and summarise them."""
    result = ComprehensiveRiskResult()

    ascvd_done = False
    if lipids is not None and risk_factors is not None:
        result.ascvd = calculate_ascvd(demographics, lipids, risk_factors)
        if result.ascvd.risk_percentage is None:
            logger.info(f"ASCVD not applicable at age {demographics.age}")
            result.summary.append(f"ASCVD not calculated: {result.ascvd.interpretation}")
        else:
            ascvd_done = True
            result.summary.append(
                f"10-year ASCVD risk: {result.ascvd.score_value:g}% ({result.ascvd.interpretation})"
            )

    if cac is not None:
        result.cac = interpret_cac(cac, demographics)
        result.summary.append(f"CAC score: {result.cac.score_value:g} ({result.cac.interpretation})")
        if ascvd_done:
            if cac.agatston_score == 0:
                result.summary.append("CAC = 0 may justify deferring statin therapy at intermediate risk")
            elif cac.agatston_score >= 100:
                result.summary.append("CAC >= 100 reinforces the indication for high-intensity statin")

    return result


# ── Calculator Registry ─────────────────────────────────────────────────────

class CalculatorDef(BaseModel):
    id: str
    title: str
    description: str
    version: str = "1.0"
    tags: List[str] = []


def _make_calc_entry(calc_id: str, run_fn: Callable[..., BaseModel], title: str,
                     description: str, tags: List[str],
                     inputs: Dict[str, Type[BaseModel]],
                     optional: Sequence[str] = (),
                     check: Optional[Callable[..., None]] = None,
                     extra_outputs: Optional[Callable[..., Dict[str, Any]]] = None) -> Dict[str, Any]:
    """
    Registry entry: `inputs` maps each keyword argument of `run_fn` to the
    model its flat variables are validated into.

    Groups named in `optional` are passed as None when no field of theirs is
    given. `check` receives the validated groups and raises
    CalculatorInputError to reject them; `extra_outputs` receives the same
    groups and returns values reported next to the result.
    """
    return {
        "def": CalculatorDef(id=calc_id, title=title, description=description, tags=tags),
        "run": run_fn,
        "inputs": inputs,
        "optional": frozenset(optional),
        "check": check,
        "extra_outputs": extra_outputs,
    }


def _cac_extra_outputs(data: CACScoreInput, demographics: PatientDemographics) -> Dict[str, Any]:
    if data.percentile is not None:
        return {}
    return {
        "calculated_percentile": expected_cac_percentile(
            data.agatston_score, demographics.age, demographics.sex, demographics.race,
        ),
    }


CALCULATORS: Dict[str, Dict[str, Any]] = {
    "cac": _make_calc_entry(
        "cac", interpret_cac, "CAC Agatston Score",
        "Interprets a coronary artery calcium score into a cardiovascular risk category.",
        ["imaging", "risk"],
        {"data": CACScoreInput, "demographics": PatientDemographics},
        extra_outputs=_cac_extra_outputs,
    ),
    "ascvd": _make_calc_entry(
        "ascvd", calculate_ascvd, "ASCVD 10-Year Risk (Pooled Cohort Equations)",
        "Estimates 10-year atherosclerotic cardiovascular disease risk for ages 40-79.",
        ["risk", "prevention"],
        {"demographics": PatientDemographics, "lipids": LipidProfile,
         "risk_factors": CardiovascularRiskFactors},
        check=check_ascvd_age,
    ),
    "comprehensive": _make_calc_entry(
        "comprehensive", calculate_comprehensive, "Comprehensive Cardiovascular Risk",
        "Runs ASCVD (when lipids and risk factors are given) and CAC (when a score is given) "
        "and summarises them.",
        ["risk", "prevention", "imaging"],
        {"demographics": PatientDemographics, "lipids": LipidProfile,
         "risk_factors": CardiovascularRiskFactors, "cac": CACScoreInput},
        optional=("lipids", "risk_factors", "cac"),
    ),
    "heart_score": _make_calc_entry(
        "heart_score", calculate_heart, "HEART Score",
        "Stratifies chest pain patients by 6-week risk of major adverse cardiac events.",
        ["risk", "emergency"],
        {"data": HEARTScoreInput},
    ),
    "cha2ds2_vasc": _make_calc_entry(
        "cha2ds2_vasc", calculate_cha2ds2_vasc, "CHA2DS2-VASc Score",
        "Estimates annual stroke risk in atrial fibrillation.",
        ["risk", "arrhythmia"],
        {"data": CHADSVASCInput},
    ),
    "has_bled": _make_calc_entry(
        "has_bled", calculate_has_bled, "HAS-BLED Score",
        "Estimates annual major bleeding risk on anticoagulation.",
        ["risk", "arrhythmia"],
        {"data": HASBLEDInput},
    ),
    "timi": _make_calc_entry(
        "timi", calculate_timi, "TIMI Risk Score (UA/NSTEMI)",
        "Estimates 14-day risk of death, MI or urgent revascularisation in UA/NSTEMI.",
        ["risk", "acute coronary syndrome"],
        {"data": TIMIRiskInput},
    ),
    "grace": _make_calc_entry(
        "grace", calculate_grace, "GRACE Score",
        "Estimates in-hospital mortality in acute coronary syndrome.",
        ["risk", "acute coronary syndrome"],
        {"data": GRACEScoreInput},
    ),
}

"""Pydantic models for the cardiology risk calculators."""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class RiskLevel(str, Enum):
    """Ordered risk categories shared by every calculator."""

    VERY_LOW = "very_low"
    LOW = "low"
    INTERMEDIATE = "intermediate"
    HIGH = "high"
    VERY_HIGH = "very_high"

    @property
    def rank(self) -> int:
        return _RISK_ORDER.index(self)


_RISK_ORDER = list(RiskLevel)


class Sex(str, Enum):
    MALE = "male"
    FEMALE = "female"


class Race(str, Enum):
    WHITE = "white"
    AFRICAN_AMERICAN = "african_american"
    HISPANIC = "hispanic"
    ASIAN = "asian"
    OTHER = "other"


class _Input(BaseModel):
    """Base config for input records: immutable, accepts camelCase aliases."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")


# ── Shared patient records ──────────────────────────────────────────────────

class PatientDemographics(_Input):
    age: int = Field(ge=0, le=130, description="Age", json_schema_extra={"unit": "years"})
    sex: Sex = Field(description="Sex")
    race: Optional[Race] = Field(default=None, description="Race")


class LipidProfile(_Input):
    total_cholesterol: float = Field(
        gt=0, alias="totalCholesterol", description="Total cholesterol",
        json_schema_extra={"unit": "mg/dL", "analyte": "cholesterol",
                           "synonyms": ["tc", "cholesterol"]},
    )
    hdl_cholesterol: float = Field(
        gt=0, alias="hdlCholesterol", description="HDL cholesterol",
        json_schema_extra={"unit": "mg/dL", "analyte": "cholesterol",
                           "synonyms": ["hdl", "hdl-c"]},
    )
    ldl_cholesterol: Optional[float] = Field(
        default=None, ge=0, alias="ldlCholesterol", description="LDL cholesterol",
        json_schema_extra={"unit": "mg/dL", "analyte": "cholesterol"},
    )
    triglycerides: Optional[float] = Field(
        default=None, ge=0, description="Triglycerides",
        json_schema_extra={"unit": "mg/dL", "analyte": "triglycerides", "synonyms": ["tg"]},
    )


class CardiovascularRiskFactors(_Input):
    systolic_bp: float = Field(
        gt=0, alias="systolicBP", description="Systolic blood pressure",
        json_schema_extra={"unit": "mmHg", "analyte": "pressure", "synonyms": ["sbp"]},
    )
    diastolic_bp: Optional[float] = Field(
        default=None, ge=0, alias="diastolicBP", description="Diastolic blood pressure",
        json_schema_extra={"unit": "mmHg", "analyte": "pressure", "synonyms": ["dbp"]},
    )
    on_bp_medication: bool = Field(alias="onBPMedication", description="Treated for hypertension")
    diabetic: bool = Field(description="Diabetes")
    smoker: bool = Field(description="Current smoker")
    family_history_cad: Optional[bool] = Field(
        default=None, alias="familyHistoryCAD",
        description="First-degree relative with premature CAD",
    )
    chronic_kidney_disease: Optional[bool] = Field(
        default=None, alias="chronicKidneyDisease", description="Chronic kidney disease",
    )


# ── Per-instrument inputs ───────────────────────────────────────────────────

class CACScoreInput(_Input):
    agatston_score: float = Field(
        ge=0, alias="agatstonScore", description="Agatston calcium score",
        json_schema_extra={"synonyms": ["cac", "calcium score"]},
    )
    volume_score: Optional[float] = Field(default=None, ge=0, alias="volumeScore")
    mass_score: Optional[float] = Field(default=None, ge=0, alias="massScore")
    percentile: Optional[float] = Field(
        default=None, ge=0, le=100, description="MESA percentile for age/sex/race",
    )


class HEARTScoreInput(_Input):
    """Each component is pre-scored 0, 1 or 2."""

    history: int = Field(ge=0, le=2, description="History (slightly/moderately/highly suspicious)")
    ecg: int = Field(ge=0, le=2, description="ECG (normal/non-specific/significant ST deviation)")
    age: int = Field(ge=0, le=2, description="Age points (<45/45-64/>=65)")
    risk_factors: int = Field(
        ge=0, le=2, alias="riskFactors",
        description="Risk factors (none/1-2/>=3 or known atherosclerosis)",
    )
    troponin: int = Field(ge=0, le=2, description="Troponin (normal/1-3x/>3x upper limit)")


class CHADSVASCInput(_Input):
    age: int = Field(ge=0, le=130, description="Age", json_schema_extra={"unit": "years"})
    sex: Sex = Field(description="Sex")
    congestive_heart_failure: bool = Field(alias="congestiveHeartFailure", description="Congestive heart failure")
    hypertension: bool = Field(description="Hypertension")
    stroke_tia_history: bool = Field(alias="strokeTIAHistory", description="Prior stroke, TIA or thromboembolism")
    vascular_disease: bool = Field(alias="vascularDisease", description="Vascular disease (MI, PAD, aortic plaque)")
    diabetes: bool = Field(description="Diabetes")


class HASBLEDInput(_Input):
    hypertension: bool = Field(description="Uncontrolled hypertension (SBP >160 mmHg)")
    renal_disease: bool = Field(alias="renalDisease", description="Dialysis, transplant or Cr >2.26 mg/dL")
    liver_disease: bool = Field(alias="liverDisease", description="Cirrhosis or bilirubin >2x / AST/ALT >3x normal")
    stroke_history: bool = Field(alias="strokeHistory", description="Prior stroke")
    bleeding_history: bool = Field(alias="bleedingHistory", description="Prior major bleeding or predisposition")
    labile_inr: bool = Field(alias="labilINR", description="Labile INR (<60% time in range)")
    elderly: bool = Field(description="Age >65")
    drugs_alcohol: bool = Field(alias="drugsAlcohol", description="Antiplatelets/NSAIDs or >8 drinks/week")


class TIMIRiskInput(_Input):
    age_65_or_older: bool = Field(alias="age65OrOlder", description="Age >=65")
    at_least_3_cad_risk_factors: bool = Field(alias="atLeast3CADRiskFactors", description=">=3 CAD risk factors")
    known_cad_50_stenosis: bool = Field(alias="knownCAD50Stenosis", description="Known CAD (stenosis >=50%)")
    aspirin_use_last_7_days: bool = Field(alias="aspirinUseLast7Days", description="Aspirin use in past 7 days")
    severe_angina_last_24h: bool = Field(alias="severeAnginaLast24h", description=">=2 anginal episodes in 24h")
    st_deviation_05mm: bool = Field(alias="stDeviations05mm", description="ST deviation >=0.5 mm")
    elevated_cardiac_markers: bool = Field(alias="elevatedCardiacMarkers", description="Positive cardiac marker")


class GRACEScoreInput(_Input):
    age: float = Field(ge=0, le=130, description="Age", json_schema_extra={"unit": "years"})
    heart_rate: float = Field(
        ge=0, alias="heartRate", description="Heart rate",
        json_schema_extra={"unit": "beats/min", "synonyms": ["hr", "pulse"]},
    )
    systolic_bp: float = Field(
        ge=0, alias="systolicBP", description="Systolic blood pressure",
        json_schema_extra={"unit": "mmHg", "analyte": "pressure", "synonyms": ["sbp"]},
    )
    creatinine: float = Field(
        ge=0, description="Serum creatinine",
        json_schema_extra={"unit": "mg/dL", "analyte": "creatinine", "synonyms": ["cr"]},
    )
    killip_class: int = Field(ge=1, le=4, alias="killipClass", description="Killip class")
    cardiac_arrest: bool = Field(alias="cardiacArrest", description="Cardiac arrest at admission")
    st_deviation: bool = Field(alias="stDeviation", description="ST-segment deviation")
    elevated_cardiac_markers: bool = Field(alias="elevatedCardiacMarkers", description="Elevated cardiac enzymes")


# ── Results ─────────────────────────────────────────────────────────────────

class RiskScoreResult(BaseModel):
    """Uniform output of every calculator."""

    model_config = ConfigDict(frozen=True)

    score_name: str
    score_value: float  # Raw score, or the risk percentage for ASCVD
    interpretation: str
    risk_level: RiskLevel
    recommendations: List[str]
    clinical_notes: str = ""
    risk_percentage: Optional[float] = None

    @field_validator("interpretation")
    @classmethod
    def _interpretation_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("interpretation must not be empty")
        return v

    @field_validator("recommendations")
    @classmethod
    def _recommendations_not_empty(cls, v: List[str]) -> List[str]:
        if not v:
            raise ValueError("recommendations must not be empty")
        return v


class ComprehensiveRiskResult(BaseModel):
    ascvd: Optional[RiskScoreResult] = None
    cac: Optional[RiskScoreResult] = None
    summary: List[str] = []


class CalcInfoResult(BaseModel):
    """Result from calc_info tool."""

    calc_id: str
    title: str
    description: Optional[str] = None
    version: str
    tags: List[str] = []
    inputs: List[Dict[str, Any]]  # Input specifications


class ExecuteCalcResult(BaseModel):
    """Result from execute_calc tool."""

    success: bool
    outputs: Optional[Dict[str, Any]] = None
    errors: List[str] = []
    warnings: List[str] = []
    audit_trace: Optional[Dict[str, Any]] = None

"""Cardiology risk-scoring calculators (CAC, ASCVD, HEART, CHA2DS2-VASc, HAS-BLED, TIMI, GRACE)."""

from .calculators import (
    ASCVD_BANDS,
    CALCULATORS,
    GRACE_BANDS,
    CalculatorInputError,
    ascvd_applicable,
    calculate_ascvd,
    calculate_cha2ds2_vasc,
    calculate_comprehensive,
    calculate_grace,
    calculate_has_bled,
    calculate_heart,
    calculate_timi,
    check_ascvd_age,
    expected_cac_percentile,
    grace_points,
    heart_age_points,
    heart_risk_factor_points,
    interpret_cac,
)
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
from .tools import ToolHandler

__version__ = "0.1.0"

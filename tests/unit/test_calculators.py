"""
Unit Tests for the Risk Calculators

Tests for CAC, ASCVD, HEART, CHA2DS2-VASc, HAS-BLED, TIMI and GRACE scoring.
"""
import itertools

import pytest
from pydantic import ValidationError

from cardiocalc.calculators import (
    ASCVD_BANDS,
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
from cardiocalc.models import (
    CACScoreInput,
    CardiovascularRiskFactors,
    CHADSVASCInput,
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

ALL_LEVELS = set(RiskLevel)


def assert_complete(result: RiskScoreResult):
    assert result.score_name
    assert result.interpretation.strip()
    assert result.risk_level in ALL_LEVELS
    assert len(result.recommendations) > 0
    assert isinstance(result.clinical_notes, str)


# Fixtures
@pytest.fixture
def middle_aged_male() -> PatientDemographics:
    return PatientDemographics(age=55, sex=Sex.MALE)


@pytest.fixture
def baseline_lipids() -> LipidProfile:
    return LipidProfile(total_cholesterol=213, hdl_cholesterol=50)


@pytest.fixture
def baseline_risk_factors() -> CardiovascularRiskFactors:
    return CardiovascularRiskFactors(
        systolic_bp=120, on_bp_medication=False, diabetic=False, smoker=False,
    )


@pytest.fixture
def stable_grace() -> GRACEScoreInput:
    return GRACEScoreInput(
        age=50, heart_rate=70, systolic_bp=130, creatinine=1.0, killip_class=1,
        cardiac_arrest=False, st_deviation=False, elevated_cardiac_markers=False,
    )


@pytest.fixture
def unstable_grace() -> GRACEScoreInput:
    return GRACEScoreInput(
        age=80, heart_rate=110, systolic_bp=85, creatinine=2.5, killip_class=4,
        cardiac_arrest=True, st_deviation=True, elevated_cardiac_markers=True,
    )


def _chads(**overrides) -> CHADSVASCInput:
    fields = dict(
        age=50, sex=Sex.MALE, congestive_heart_failure=False, hypertension=False,
        stroke_tia_history=False, vascular_disease=False, diabetes=False,
    )
    fields.update(overrides)
    return CHADSVASCInput(**fields)


def _has_bled(value: bool = False, **overrides) -> HASBLEDInput:
    fields = {name: value for name in HASBLEDInput.model_fields}
    fields.update(overrides)
    return HASBLEDInput(**fields)


class TestModels:
    """Tests for input and result records."""

    def test_camel_case_aliases_accepted(self):
        """Payloads from the API layer validate unchanged."""
        lipids = LipidProfile.model_validate({"totalCholesterol": 200, "hdlCholesterol": 45})
        assert lipids.total_cholesterol == 200
        inp = HASBLEDInput.model_validate({
            "hypertension": True, "renalDisease": False, "liverDisease": False,
            "strokeHistory": False, "bleedingHistory": False, "labilINR": True,
            "elderly": False, "drugsAlcohol": False,
        })
        assert inp.labile_inr is True

    def test_heart_component_out_of_range_rejected(self):
        with pytest.raises(ValidationError):
            HEARTScoreInput(history=3, ecg=0, age=0, risk_factors=0, troponin=0)

    def test_negative_agatston_rejected(self):
        with pytest.raises(ValidationError):
            CACScoreInput(agatston_score=-1)

    def test_killip_class_range(self):
        with pytest.raises(ValidationError):
            GRACEScoreInput(
                age=60, heart_rate=80, systolic_bp=120, creatinine=1.0, killip_class=5,
                cardiac_arrest=False, st_deviation=False, elevated_cardiac_markers=False,
            )

    def test_result_requires_recommendations(self):
        with pytest.raises(ValidationError):
            RiskScoreResult(score_name="x", score_value=0, interpretation="y",
                            risk_level=RiskLevel.LOW, recommendations=[])

    def test_result_requires_interpretation(self):
        with pytest.raises(ValidationError):
            RiskScoreResult(score_name="x", score_value=0, interpretation="  ",
                            risk_level=RiskLevel.LOW, recommendations=["a"])

    def test_risk_level_order(self):
        assert RiskLevel.VERY_LOW.rank < RiskLevel.LOW.rank < RiskLevel.INTERMEDIATE.rank
        assert RiskLevel.INTERMEDIATE.rank < RiskLevel.HIGH.rank < RiskLevel.VERY_HIGH.rank


class TestCAC:
    """Tests for CAC Agatston score interpretation."""

    def test_zero_score_very_low(self, middle_aged_male):
        result = interpret_cac(CACScoreInput(agatston_score=0), middle_aged_male)
        assert result.score_value == 0
        assert result.risk_level == RiskLevel.VERY_LOW
        assert_complete(result)

    @pytest.mark.parametrize("score,expected", [
        (5, RiskLevel.LOW),
        (50, RiskLevel.LOW),
        (150, RiskLevel.INTERMEDIATE),
        (399, RiskLevel.INTERMEDIATE),
        (400, RiskLevel.HIGH),
        (450, RiskLevel.HIGH),
        (1000, RiskLevel.HIGH),
        (1500, RiskLevel.VERY_HIGH),
    ])
    def test_bands(self, middle_aged_male, score, expected):
        result = interpret_cac(CACScoreInput(agatston_score=score), middle_aged_male)
        assert result.risk_level == expected

    def test_score_passed_through(self, middle_aged_male):
        result = interpret_cac(CACScoreInput(agatston_score=123.5), middle_aged_male)
        assert result.score_value == 123.5

    def test_demographics_in_interpretation(self):
        demo = PatientDemographics(age=67, sex=Sex.FEMALE)
        result = interpret_cac(CACScoreInput(agatston_score=50), demo)
        assert "67-year-old female" in result.interpretation

    def test_high_percentile_escalates_low(self, middle_aged_male):
        result = interpret_cac(CACScoreInput(agatston_score=50, percentile=80), middle_aged_male)
        assert result.risk_level == RiskLevel.INTERMEDIATE
        assert "Percentile 80" in result.clinical_notes
        assert result.score_value == 50

    def test_age_notes(self):
        young = interpret_cac(CACScoreInput(agatston_score=5), PatientDemographics(age=40, sex=Sex.MALE))
        assert "premature" in young.clinical_notes
        old = interpret_cac(CACScoreInput(agatston_score=0), PatientDemographics(age=80, sex=Sex.MALE))
        assert "excellent" in old.clinical_notes

    def test_expected_percentile(self):
        assert expected_cac_percentile(0, 60, Sex.MALE) == 0
        # At the expected median for a 45-year-old white male
        assert expected_cac_percentile(65, 45, Sex.MALE, Race.WHITE) == 50
        low = expected_cac_percentile(10, 60, Sex.FEMALE, Race.ASIAN)
        high = expected_cac_percentile(800, 60, Sex.FEMALE, Race.ASIAN)
        assert 0 <= low < high <= 100


class TestASCVD:
    """Tests for the pooled cohort equations."""

    def test_young_healthy_female_low(self):
        demo = PatientDemographics(age=40, sex=Sex.FEMALE, race=Race.WHITE)
        lipids = LipidProfile(total_cholesterol=180, hdl_cholesterol=60)
        rf = CardiovascularRiskFactors(systolic_bp=120, on_bp_medication=False,
                                       diabetic=False, smoker=False)
        result = calculate_ascvd(demo, lipids, rf)
        assert result.risk_percentage < 5
        assert result.risk_level in {RiskLevel.VERY_LOW, RiskLevel.LOW}
        assert_complete(result)

    def test_high_risk_profile(self):
        demo = PatientDemographics(age=65, sex=Sex.MALE, race=Race.AFRICAN_AMERICAN)
        lipids = LipidProfile(total_cholesterol=280, hdl_cholesterol=35)
        rf = CardiovascularRiskFactors(systolic_bp=160, on_bp_medication=True,
                                       diabetic=True, smoker=True)
        result = calculate_ascvd(demo, lipids, rf)
        assert result.risk_percentage >= 20
        assert result.risk_level in {RiskLevel.HIGH, RiskLevel.VERY_HIGH}
        assert any("statin" in r.lower() for r in result.recommendations)

    def test_score_value_is_rounded_percentage(self, middle_aged_male, baseline_lipids, baseline_risk_factors):
        result = calculate_ascvd(middle_aged_male, baseline_lipids, baseline_risk_factors)
        assert result.score_value == round(result.risk_percentage, 1)
        assert 0 <= result.risk_percentage <= 100

    @pytest.mark.parametrize("age", [30, 39, 80, 95])
    def test_age_outside_range_not_applicable(self, age, baseline_lipids, baseline_risk_factors):
        """Valid records outside 40-79 get a complete result instead of an exception."""
        result = calculate_ascvd(PatientDemographics(age=age, sex=Sex.MALE),
                                 baseline_lipids, baseline_risk_factors)
        assert result.score_value == -1
        assert result.risk_percentage is None
        assert "not applicable" in result.recommendations[0]
        assert_complete(result)
        assert not ascvd_applicable(age)

    @pytest.mark.parametrize("age,applicable", [(39, False), (40, True), (79, True), (80, False)])
    def test_boundary_age_check(self, age, applicable):
        demo = PatientDemographics(age=age, sex=Sex.FEMALE)
        assert ascvd_applicable(age) is applicable
        if applicable:
            check_ascvd_age(demo)
        else:
            with pytest.raises(CalculatorInputError, match="40-79"):
                check_ascvd_age(demo)

    @pytest.mark.parametrize("sex", list(Sex))
    @pytest.mark.parametrize("race", [None, Race.WHITE, Race.AFRICAN_AMERICAN, Race.OTHER])
    @pytest.mark.parametrize("age", [40, 55, 70, 75, 79])
    @pytest.mark.parametrize("treated", [False, True])
    def test_adverse_factors_never_lower_risk(self, sex, race, age, treated):
        demo = PatientDemographics(age=age, sex=sex, race=race)
        lipids = LipidProfile(total_cholesterol=200, hdl_cholesterol=50)
        rf = CardiovascularRiskFactors(systolic_bp=130, on_bp_medication=treated,
                                       diabetic=False, smoker=False)
        base = calculate_ascvd(demo, lipids, rf).risk_percentage

        worse = [
            (lipids, rf.model_copy(update={"smoker": True})),
            (lipids, rf.model_copy(update={"diabetic": True})),
            (lipids, rf.model_copy(update={"systolic_bp": 160})),
            (lipids.model_copy(update={"total_cholesterol": 280}), rf),
            (lipids.model_copy(update={"hdl_cholesterol": 30}), rf),
        ]
        for worse_lipids, worse_rf in worse:
            assert calculate_ascvd(demo, worse_lipids, worse_rf).risk_percentage >= base

    def test_bands_override(self, middle_aged_male, baseline_lipids, baseline_risk_factors):
        default = calculate_ascvd(middle_aged_male, baseline_lipids, baseline_risk_factors)
        strict = calculate_ascvd(middle_aged_male, baseline_lipids, baseline_risk_factors,
                                 bands=((0.1, RiskLevel.LOW, "low"),))
        assert strict.risk_level == RiskLevel.HIGH
        assert strict.risk_percentage == default.risk_percentage
        assert len(ASCVD_BANDS) == 3

    def test_risk_enhancer_notes(self, middle_aged_male):
        lipids = LipidProfile(total_cholesterol=213, hdl_cholesterol=50, triglycerides=250)
        rf = CardiovascularRiskFactors(systolic_bp=120, on_bp_medication=False, diabetic=False,
                                       smoker=False, family_history_cad=True,
                                       chronic_kidney_disease=True)
        notes = calculate_ascvd(middle_aged_male, lipids, rf).clinical_notes
        assert "Family history" in notes
        assert "kidney" in notes
        assert "triglyceridaemia" in notes


class TestHEART:
    """Tests for the HEART score."""

    def test_score_is_sum_of_components(self):
        for combo in itertools.product((0, 1, 2), repeat=5):
            h, e, a, r, t = combo
            result = calculate_heart(HEARTScoreInput(history=h, ecg=e, age=a, risk_factors=r, troponin=t))
            assert result.score_value == sum(combo)
            if sum(combo) <= 3:
                assert result.risk_level == RiskLevel.LOW
            elif sum(combo) <= 6:
                assert result.risk_level == RiskLevel.INTERMEDIATE
            else:
                assert result.risk_level in {RiskLevel.HIGH, RiskLevel.VERY_HIGH}

    def test_extremes(self):
        zero = calculate_heart(HEARTScoreInput(history=0, ecg=0, age=0, risk_factors=0, troponin=0))
        assert zero.score_value == 0
        assert zero.risk_level == RiskLevel.LOW
        top = calculate_heart(HEARTScoreInput(history=2, ecg=2, age=2, risk_factors=2, troponin=2))
        assert top.score_value == 10
        assert top.risk_level in {RiskLevel.HIGH, RiskLevel.VERY_HIGH}
        assert_complete(top)

    def test_component_notes(self):
        result = calculate_heart(HEARTScoreInput(history=1, ecg=2, age=0, risk_factors=1, troponin=0))
        assert "E (ECG): 2" in result.clinical_notes

    @pytest.mark.parametrize("age,points", [(30, 0), (44, 0), (45, 1), (64, 1), (65, 2), (90, 2)])
    def test_age_points(self, age, points):
        assert heart_age_points(age) == points

    def test_risk_factor_points(self):
        assert heart_risk_factor_points(0) == 0
        assert heart_risk_factor_points(2) == 1
        assert heart_risk_factor_points(3) == 2
        assert heart_risk_factor_points(0, known_atherosclerosis=True) == 2


class TestCHA2DS2VASc:
    """Tests for CHA2DS2-VASc."""

    def test_young_male_no_factors(self):
        result = calculate_cha2ds2_vasc(_chads())
        assert result.score_value == 0
        assert result.risk_percentage == 0.0
        assert result.risk_level in {RiskLevel.VERY_LOW, RiskLevel.LOW}

    def test_maximum_score(self):
        result = calculate_cha2ds2_vasc(_chads(
            age=80, sex=Sex.FEMALE, congestive_heart_failure=True, hypertension=True,
            stroke_tia_history=True, vascular_disease=True, diabetes=True,
        ))
        assert result.score_value == 9
        assert result.risk_percentage == 15.2
        assert result.risk_level in {RiskLevel.HIGH, RiskLevel.VERY_HIGH}
        assert_complete(result)

    @pytest.mark.parametrize("age,points", [(64, 0), (65, 1), (74, 1), (75, 2)])
    def test_age_points(self, age, points):
        assert calculate_cha2ds2_vasc(_chads(age=age)).score_value == points

    def test_anticoagulation_advised_from_two(self):
        flags = ("congestive_heart_failure", "hypertension", "stroke_tia_history",
                 "vascular_disease", "diabetes")
        for age in (50, 70, 80):
            for sex in Sex:
                for values in itertools.product((False, True), repeat=len(flags)):
                    result = calculate_cha2ds2_vasc(_chads(age=age, sex=sex, **dict(zip(flags, values))))
                    if result.score_value >= 2:
                        assert any("anticoagulation" in r.lower() for r in result.recommendations)

    def test_female_sex_only(self):
        result = calculate_cha2ds2_vasc(_chads(sex=Sex.FEMALE))
        assert result.score_value == 1
        assert "female sex alone" in result.recommendations[0]


class TestHASBLED:
    """Tests for HAS-BLED."""

    def test_no_factors(self):
        result = calculate_has_bled(_has_bled(False))
        assert result.score_value == 0
        assert result.risk_level in {RiskLevel.VERY_LOW, RiskLevel.LOW}

    def test_all_factors(self):
        result = calculate_has_bled(_has_bled(True))
        assert result.score_value == 8
        assert result.risk_level in {RiskLevel.HIGH, RiskLevel.VERY_HIGH}
        assert result.risk_percentage == 12.5
        assert_complete(result)

    @pytest.mark.parametrize("field", list(HASBLEDInput.model_fields))
    def test_each_factor_worth_one(self, field):
        result = calculate_has_bled(_has_bled(False, **{field: True}))
        assert result.score_value == 1
        assert result.risk_percentage > 0

    def test_two_factors_intermediate(self):
        result = calculate_has_bled(_has_bled(False, hypertension=True, elderly=True))
        assert result.score_value == 2
        assert result.risk_level == RiskLevel.INTERMEDIATE
        assert "H: Uncontrolled hypertension" in result.clinical_notes


class TestTIMI:
    """Tests for the TIMI UA/NSTEMI score."""

    def test_bands(self):
        fields = list(TIMIRiskInput.model_fields)
        none = calculate_timi(TIMIRiskInput(**{f: False for f in fields}))
        assert none.score_value == 0
        assert none.risk_level == RiskLevel.LOW
        three = calculate_timi(TIMIRiskInput(**{f: i < 3 for i, f in enumerate(fields)}))
        assert three.score_value == 3
        assert three.risk_level == RiskLevel.INTERMEDIATE
        everything = calculate_timi(TIMIRiskInput(**{f: True for f in fields}))
        assert everything.score_value == 7
        assert everything.risk_percentage == 40.9
        assert everything.risk_level == RiskLevel.HIGH


class TestGRACE:
    """Tests for the GRACE score."""

    def test_stable_profile(self, stable_grace):
        assert grace_points(stable_grace) == 91
        result = calculate_grace(stable_grace)
        assert result.risk_percentage == 1.0
        assert result.risk_level in {RiskLevel.VERY_LOW, RiskLevel.LOW}

    def test_unstable_profile(self, stable_grace, unstable_grace):
        assert grace_points(unstable_grace) == 329
        stable = calculate_grace(stable_grace)
        unstable = calculate_grace(unstable_grace)
        assert stable.risk_percentage < unstable.risk_percentage
        assert unstable.risk_level in {RiskLevel.HIGH, RiskLevel.VERY_HIGH}
        assert any("invasive" in r.lower() for r in unstable.recommendations)
        assert_complete(unstable)

    def test_higher_blood_pressure_protective(self, stable_grace):
        low_bp = grace_points(stable_grace.model_copy(update={"systolic_bp": 90}))
        high_bp = grace_points(stable_grace.model_copy(update={"systolic_bp": 150}))
        assert low_bp > high_bp

    @pytest.mark.parametrize("update", [
        {"age": 75}, {"heart_rate": 120}, {"creatinine": 3.0}, {"killip_class": 3},
        {"cardiac_arrest": True}, {"st_deviation": True}, {"elevated_cardiac_markers": True},
    ])
    def test_adverse_findings_raise_score(self, stable_grace, update):
        assert grace_points(stable_grace.model_copy(update=update)) > grace_points(stable_grace)

    def test_bands_override(self, stable_grace):
        result = calculate_grace(stable_grace, bands=((0.5, RiskLevel.LOW), (5.0, RiskLevel.INTERMEDIATE)))
        assert result.risk_level == RiskLevel.INTERMEDIATE


class TestComprehensive:
    """Tests for the combined primary-prevention assessment."""

    def test_ascvd_and_zero_cac(self, middle_aged_male, baseline_lipids, baseline_risk_factors):
        result = calculate_comprehensive(middle_aged_male, baseline_lipids, baseline_risk_factors,
                                         CACScoreInput(agatston_score=0))
        assert result.ascvd is not None
        assert result.cac is not None
        assert len(result.summary) == 3
        assert "deferring statin" in result.summary[-1]

    def test_high_cac_reinforces_statin(self, middle_aged_male, baseline_lipids, baseline_risk_factors):
        result = calculate_comprehensive(middle_aged_male, baseline_lipids, baseline_risk_factors,
                                         CACScoreInput(agatston_score=150))
        assert "high-intensity statin" in result.summary[-1]

    def test_ascvd_out_of_range_keeps_cac(self, baseline_lipids, baseline_risk_factors):
        demo = PatientDemographics(age=30, sex=Sex.MALE)
        result = calculate_comprehensive(demo, baseline_lipids, baseline_risk_factors,
                                         CACScoreInput(agatston_score=5))
        assert result.ascvd is not None
        assert result.ascvd.risk_percentage is None
        assert result.cac is not None
        assert result.summary[0].startswith("ASCVD not calculated")
        assert len(result.summary) == 2

    def test_nothing_to_compute(self, middle_aged_male):
        result = calculate_comprehensive(middle_aged_male)
        assert result.ascvd is None and result.cac is None
        assert result.summary == []


class TestIdempotency:
    """Calculators are pure: same input, same output."""

    def test_repeat_calls_identical(self, middle_aged_male, baseline_lipids, baseline_risk_factors,
                                    unstable_grace):
        calls = [
            lambda: interpret_cac(CACScoreInput(agatston_score=250), middle_aged_male),
            lambda: calculate_ascvd(middle_aged_male, baseline_lipids, baseline_risk_factors),
            lambda: calculate_heart(HEARTScoreInput(history=1, ecg=1, age=1, risk_factors=1, troponin=1)),
            lambda: calculate_cha2ds2_vasc(_chads(age=70, hypertension=True)),
            lambda: calculate_has_bled(_has_bled(True)),
            lambda: calculate_grace(unstable_grace),
        ]
        for call in calls:
            assert call() == call()

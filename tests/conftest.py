"""
Shared fixtures for the CDSS test suite
"""

import pytest

from cdss.config import Settings
from cdss.schemas import (
    PatientClinicalSnapshot, Demographics, Vitals, Labs, Medication,
    DialysisData, CardiologyData, OphthalmologyData, IntraocularPressure, Sex
)
from cdss.modules.rule_catalog import build_default_rule_catalog
from cdss.modules.clinical_rules import ClinicalRulesEngine
from cdss.modules.drug_catalog import build_default_drug_catalog
from cdss.modules.drug_interactions import DrugInteractionChecker


@pytest.fixture
def test_settings():
    """Settings isolated from any local .env file"""
    return Settings(_env_file=None, environment="test")


@pytest.fixture
def engine(test_settings):
    return ClinicalRulesEngine(build_default_rule_catalog(test_settings))


@pytest.fixture
def checker(test_settings):
    return DrugInteractionChecker(build_default_drug_catalog(), test_settings)


@pytest.fixture
def healthy_snapshot():
    """Adult with every measured value inside target ranges"""
    return PatientClinicalSnapshot(
        patient_id="patient-healthy",
        demographics=Demographics(age=60, sex=Sex.MALE, weight=70, height=175),
        vitals=Vitals(systolic_bp=120, diastolic_bp=80, heart_rate=70),
        labs=Labs(
            creatinine=1.0, egfr=85, potassium=4.2, hemoglobin=13.5,
            hba1c=5.6, ldl=50
        ),
        medications=[Medication(name="ramipril", dose="5 mg")]
    )


@pytest.fixture
def dialysis_snapshot():
    """Hemodialysis patient with inadequate Kt/V, high phosphorus and anemia"""
    return PatientClinicalSnapshot(
        patient_id="patient-dialysis",
        demographics=Demographics(age=67, sex=Sex.MALE, weight=72, height=170),
        labs=Labs(egfr=8, potassium=5.0, hemoglobin=9.5, phosphorus=6.0, pth=400),
        conditions=["esrd"],
        dialysis=DialysisData(is_on_dialysis=True, ktv=0.9, access_type="fistula")
    )


@pytest.fixture
def multimodule_snapshot():
    """Patient triggering rules in every module"""
    return PatientClinicalSnapshot(
        patient_id="patient-multi",
        demographics=Demographics(age=78, sex=Sex.FEMALE, weight=95, height=160),
        vitals=Vitals(systolic_bp=165, diastolic_bp=95, heart_rate=88),
        labs=Labs(
            egfr=22, potassium=5.9, hemoglobin=9.1, hba1c=9.2, ldl=130,
            troponin=0.02, phosphorus=6.5
        ),
        conditions=["diabetes", "hypertension"],
        dialysis=DialysisData(is_on_dialysis=False),
        cardiology=CardiologyData(lvef=35, has_af=True, has_chf=True),
        ophthalmology=OphthalmologyData(
            iop=IntraocularPressure(left=24, right=19),
            has_dme=True
        )
    )

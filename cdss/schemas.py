"""
CDSS Core - Clinical Data Schemas
Pydantic models for patient snapshots, rule findings, interaction checks
and calculator results
"""

from pydantic import BaseModel, ConfigDict, Field, computed_field
from typing import Optional, List, Dict, Any
from datetime import datetime, date, timezone
from enum import Enum, IntEnum


# ============================================================================
# Enumerations
# ============================================================================

class Sex(str, Enum):
    """Biological sex used by sex-specific formulas"""
    MALE = "male"
    FEMALE = "female"


class ClinicalModule(str, Enum):
    """Clinical modules a rule can be scoped to"""
    DIALYSE = "dialyse"
    CARDIOLOGY = "cardiology"
    OPHTHALMOLOGY = "ophthalmology"
    GENERAL = "general"


class AlertSeverity(str, Enum):
    """Severity of a fired guideline rule"""
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"
    CONTRAINDICATED = "contraindicated"


class AlertCategory(str, Enum):
    """Clinical alert categories"""
    MEDICATION = "medication"
    LAB = "lab"
    VITALS = "vitals"
    GUIDELINE = "guideline"
    PROTOCOL = "protocol"
    REMINDER = "reminder"


class GuidelineSource(str, Enum):
    """Issuing body of the guideline a rule derives from"""
    KDIGO = "KDIGO"
    ESC = "ESC"
    AHA = "AHA"
    AAO = "AAO"
    WHO = "WHO"
    FDA = "FDA"
    INTERNAL = "INTERNAL"


class RulePriority(IntEnum):
    """Rule ordering weight, higher fires first"""
    LOW = 1
    NORMAL = 2
    HIGH = 3


class InteractionSeverity(str, Enum):
    """Drug interaction / contraindication severity"""
    MINOR = "minor"
    MODERATE = "moderate"
    MAJOR = "major"
    CONTRAINDICATED = "contraindicated"


class ContraindicationKind(str, Enum):
    """What a contraindication is keyed on"""
    CONDITION = "condition"
    ALLERGY = "allergy"


class RenalCategory(str, Enum):
    """Renal dose band"""
    NORMAL = "normal"
    EGFR_30_59 = "egfr_30_59"
    EGFR_15_29 = "egfr_15_29"
    EGFR_BELOW_15 = "egfr_below_15"
    DIALYSIS = "dialysis"
    UNKNOWN = "unknown"


class QTcFormula(str, Enum):
    """QT correction formulas"""
    BAZETT = "bazett"
    FRIDERICIA = "fridericia"
    FRAMINGHAM = "framingham"


class QTcCategory(str, Enum):
    """Corrected QT risk tiers"""
    NORMAL = "normal"
    BORDERLINE = "borderline"
    PROLONGED = "prolonged"
    SEVERELY_PROLONGED = "severely_prolonged"


# Optional snapshot extensions a rule may require
SNAPSHOT_EXTENSIONS = ("dialysis", "cardiology", "ophthalmology")


# ============================================================================
# Patient Clinical Snapshot
# ============================================================================

class Demographics(BaseModel):
    """Patient demographics"""
    model_config = ConfigDict(frozen=True)

    age: float = Field(..., ge=0, le=150, description="Age in years")
    sex: Sex
    weight: Optional[float] = Field(None, gt=0, description="Weight in kg")
    height: Optional[float] = Field(None, gt=0, description="Height in cm")


class Vitals(BaseModel):
    """Latest vital signs"""
    model_config = ConfigDict(frozen=True)

    systolic_bp: Optional[float] = Field(None, description="mmHg")
    diastolic_bp: Optional[float] = Field(None, description="mmHg")
    heart_rate: Optional[float] = Field(None, description="bpm")
    temperature: Optional[float] = Field(None, description="°C")
    oxygen_saturation: Optional[float] = Field(None, description="%")


class Labs(BaseModel):
    """Latest laboratory values. None means not measured."""
    model_config = ConfigDict(frozen=True)

    creatinine: Optional[float] = Field(None, description="mg/dL")
    egfr: Optional[float] = Field(None, description="mL/min/1.73m²")
    potassium: Optional[float] = Field(None, description="mEq/L")
    hemoglobin: Optional[float] = Field(None, description="g/dL")
    hba1c: Optional[float] = Field(None, description="%")
    cholesterol_total: Optional[float] = Field(None, description="mg/dL")
    ldl: Optional[float] = Field(None, description="mg/dL")
    hdl: Optional[float] = Field(None, description="mg/dL")
    triglycerides: Optional[float] = Field(None, description="mg/dL")
    calcium: Optional[float] = Field(None, description="mg/dL")
    phosphorus: Optional[float] = Field(None, description="mg/dL")
    pth: Optional[float] = Field(None, description="pg/mL")
    albumin: Optional[float] = Field(None, description="g/dL")
    inr: Optional[float] = None
    bnp: Optional[float] = Field(None, description="pg/mL")
    troponin: Optional[float] = Field(None, description="ng/mL")


class Medication(BaseModel):
    """Current medication line"""
    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)
    dose: Optional[str] = None
    frequency: Optional[str] = None
    atc_code: Optional[str] = Field(None, description="ATC classification code")


class DialysisData(BaseModel):
    """Dialysis module extension"""
    model_config = ConfigDict(frozen=True)

    is_on_dialysis: bool = False
    ktv: Optional[float] = Field(None, ge=0, description="Delivered Kt/V")
    access_type: Optional[str] = None
    last_session_date: Optional[date] = None


class CardiologyData(BaseModel):
    """Cardiology module extension"""
    model_config = ConfigDict(frozen=True)

    lvef: Optional[float] = Field(None, ge=0, le=100, description="Ejection fraction %")
    has_af: Optional[bool] = None
    has_chf: Optional[bool] = None
    has_cad: Optional[bool] = None
    has_pacemaker: Optional[bool] = None
    has_stent: Optional[bool] = None


class IntraocularPressure(BaseModel):
    """IOP per eye in mmHg"""
    model_config = ConfigDict(frozen=True)

    left: float = Field(..., ge=0)
    right: float = Field(..., ge=0)


class OphthalmologyData(BaseModel):
    """Ophthalmology module extension"""
    model_config = ConfigDict(frozen=True)

    iop: Optional[IntraocularPressure] = None
    has_dme: Optional[bool] = None
    has_amd: Optional[bool] = None
    has_glaucoma: Optional[bool] = None


class PatientClinicalSnapshot(BaseModel):
    """
    Immutable snapshot of a patient's clinical state
    The single input of rule evaluation; provenance is irrelevant to the core
    """
    model_config = ConfigDict(frozen=True)

    patient_id: Optional[str] = None
    demographics: Demographics
    vitals: Optional[Vitals] = None
    labs: Optional[Labs] = None
    conditions: List[str] = Field(default_factory=list)
    medications: List[Medication] = Field(default_factory=list)
    allergies: List[str] = Field(default_factory=list)

    # Module-specific extensions, a patient may carry several
    dialysis: Optional[DialysisData] = None
    cardiology: Optional[CardiologyData] = None
    ophthalmology: Optional[OphthalmologyData] = None

    def lab(self, name: str) -> Optional[float]:
        """Lab value or None when not measured"""
        return getattr(self.labs, name, None)

    def vital(self, name: str) -> Optional[float]:
        """Vital sign or None when not measured"""
        return getattr(self.vitals, name, None)

    def has_condition(self, *names: str) -> bool:
        """Case-insensitive membership test on conditions"""
        present = {c.strip().lower() for c in self.conditions}
        return any(name.lower() in present for name in names)

    def has_extension(self, name: str) -> bool:
        return getattr(self, name, None) is not None

    @property
    def is_on_dialysis(self) -> bool:
        return bool(self.dialysis and self.dialysis.is_on_dialysis)


# ============================================================================
# Rule Evaluation Models
# ============================================================================

class AlertContent(BaseModel):
    """Alert text produced by a rule for a given snapshot"""
    title: str
    message: str
    severity: AlertSeverity
    category: AlertCategory
    guideline_reference: Optional[str] = None
    recommendations: List[str] = Field(default_factory=list)


class CDSSFinding(BaseModel):
    """One fired rule"""
    rule_id: str
    title: str
    description: str
    category: AlertCategory
    priority: int
    guideline_source: GuidelineSource
    severity: AlertSeverity
    module: Optional[ClinicalModule] = None
    guideline_reference: Optional[str] = None
    recommendations: List[str] = Field(default_factory=list)
    patient_id: Optional[str] = None


class RuleSummary(BaseModel):
    """Serializable view of a catalog rule"""
    id: str
    name: str
    description: str
    category: AlertCategory
    module: Optional[ClinicalModule] = None
    guideline_source: GuidelineSource
    priority: int
    is_active: bool
    requires: List[str] = Field(default_factory=list)


class RuleCountSummary(BaseModel):
    """Active rule counts"""
    total: int = 0
    by_category: Dict[str, int] = Field(default_factory=dict)
    by_module: Dict[str, int] = Field(default_factory=dict)


class EvaluationSummary(BaseModel):
    """Finding counts per severity bucket"""
    critical: int = 0
    warning: int = 0
    info: int = 0


class EvaluationResult(BaseModel):
    """Findings of one evaluation, annotated with failed rules"""
    patient_id: Optional[str] = None
    evaluated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    module: Optional[ClinicalModule] = None
    rules_evaluated: int = 0
    findings: List[CDSSFinding] = Field(default_factory=list)
    failed_rules: List[Dict[str, Any]] = Field(default_factory=list)
    summary: EvaluationSummary = Field(default_factory=EvaluationSummary)

    @computed_field
    @property
    def has_failures(self) -> bool:
        """True when at least one rule could not be evaluated"""
        return len(self.failed_rules) > 0


# ============================================================================
# Drug Interaction & Dosing Models
# ============================================================================

class DrugInteractionEntry(BaseModel):
    """Catalog entry: two drugs or drug classes that interact"""
    model_config = ConfigDict(frozen=True)

    drug_a: str = Field(..., description="Drug name or drug class key")
    drug_b: str = Field(..., description="Drug name or drug class key")
    severity: InteractionSeverity
    mechanism: str
    effect: str = ""
    management: str
    references: List[str] = Field(default_factory=list)


class ContraindicationEntry(BaseModel):
    """Catalog entry: a drug (or class) unsafe under a condition or allergy"""
    model_config = ConfigDict(frozen=True)

    drug: str = Field(..., description="Drug name or drug class key")
    condition_or_allergy: str
    kind: ContraindicationKind
    severity: InteractionSeverity
    rationale: str
    management: str = ""
    cross_reactivity: Optional[bool] = None


class RenalDoseAdjustment(BaseModel):
    """Renal dosing table row"""
    model_config = ConfigDict(frozen=True)

    drug: str
    normal_dose: str
    egfr30_59: str
    egfr15_29: str
    egfr_below15: str
    dialysis: str
    notes: str = ""


class DoseRecommendation(RenalDoseAdjustment):
    """Dosing row resolved against a patient's renal function"""
    medication: str = Field(..., description="Medication name as supplied")
    applicable_dose: str
    renal_category: RenalCategory
    patient_egfr: Optional[float] = None
    is_on_dialysis: bool = False


class DrugInteractionFinding(BaseModel):
    """Interaction detected between two supplied medications"""
    medication_a: str
    medication_b: str
    drug_a: str
    drug_b: str
    severity: InteractionSeverity
    mechanism: str
    effect: str = ""
    management: str
    references: List[str] = Field(default_factory=list)
    class_level: bool = False


class ContraindicationFinding(BaseModel):
    """Contraindication detected for a supplied medication"""
    medication: str
    matched_term: str
    kind: ContraindicationKind
    drug: str
    condition_or_allergy: str
    severity: InteractionSeverity
    rationale: str
    management: str = ""
    cross_reactivity: Optional[bool] = None
    derived: bool = Field(False, description="Condition derived from eGFR/dialysis status")


class InteractionSummary(BaseModel):
    """Finding counts per severity"""
    contraindicated: int = 0
    major: int = 0
    moderate: int = 0
    minor: int = 0


class InteractionCheckResult(BaseModel):
    """Outcome of a medication list check"""
    interactions: List[DrugInteractionFinding] = Field(default_factory=list)
    contraindications: List[ContraindicationFinding] = Field(default_factory=list)
    dose_adjustments: Dict[str, DoseRecommendation] = Field(default_factory=dict)
    unrecognized_medications: List[str] = Field(
        default_factory=list,
        description="No data available for these names"
    )
    summary: InteractionSummary = Field(default_factory=InteractionSummary)


class DrugClassReference(BaseModel):
    """Drug class with its member drugs"""
    model_config = ConfigDict(frozen=True)

    key: str
    label: str
    members: List[str] = Field(default_factory=list)


# ============================================================================
# Calculator Result Models
# ============================================================================

class CKDStageResult(BaseModel):
    """KDIGO G-stage for an eGFR"""
    egfr: float
    stage: str
    description: str
    recommendations: List[str] = Field(default_factory=list)
    kdigo_classification: str


class CreatinineClearanceResult(BaseModel):
    """Cockcroft-Gault creatinine clearance"""
    creatinine_clearance: float
    unit: str = "mL/min"
    category: str
    formula: str = "Cockcroft-Gault"
    inputs: Dict[str, Any] = Field(default_factory=dict)
    note: str = "CrCl Cockcroft-Gault souvent utilisée pour ajustement médicamenteux"


class WeightRange(BaseModel):
    """Weight range in kg"""
    min_kg: int
    max_kg: int


class BMIResult(BaseModel):
    """Body mass index with WHO classification"""
    bmi: float
    category: str
    label: str
    recommendations: List[str] = Field(default_factory=list)
    ideal_weight_range: WeightRange


class QTcResult(BaseModel):
    """Heart-rate corrected QT interval"""
    qtc: int
    rr_interval: float
    unit: str = "ms"
    formula: QTcFormula
    category: QTcCategory
    interpretation: str
    risk_level: str
    recommendations: List[str] = Field(default_factory=list)


class EGFRResult(BaseModel):
    """CKD-EPI eGFR estimate with its stage"""
    egfr: int
    unit: str = "mL/min/1.73m²"
    stage: str
    description: str
    formula: str = "CKD-EPI 2009"

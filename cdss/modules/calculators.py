"""
Clinical Formula Library
Deterministic bedside calculators: CKD staging, Cockcroft-Gault creatinine
clearance, BMI, corrected QT, CKD-EPI eGFR and CHA2DS2-VASc.

Every function validates its physiological domain and raises
ValidationError instead of returning a meaningless number.
"""

import logging
import math
from typing import Optional, Union

from cdss.config import settings
from cdss.exceptions import ValidationError, require_range
from cdss.schemas import (
    Sex, QTcFormula, QTcCategory,
    CKDStageResult, CreatinineClearanceResult, BMIResult, WeightRange,
    QTcResult, EGFRResult
)

logger = logging.getLogger(__name__)


# ============================================================================
# Domain limits
# ============================================================================

EGFR_RANGE = (0.0, 200.0)
AGE_RANGE = (0.0, 150.0)
ADULT_AGE_RANGE = (18.0, 120.0)
WEIGHT_RANGE = (20.0, 500.0)
HEIGHT_RANGE = (100.0, 250.0)
CREATININE_RANGE = (0.1, 20.0)
QT_RANGE = (200.0, 800.0)
HEART_RATE_RANGE = (30.0, 200.0)


def _coerce_sex(sex: Union[Sex, str]) -> Sex:
    try:
        return Sex(sex.lower() if isinstance(sex, str) else sex)
    except ValueError:
        raise ValidationError(
            f"Unknown sex {sex!r}",
            field="sex",
            allowed=[s.value for s in Sex]
        )


# ============================================================================
# CKD staging (KDIGO)
# ============================================================================

# (lower bound, stage, description, recommendations), lower bound inclusive
CKD_STAGES = [
    (90.0, "1", "Fonction rénale normale ou augmentée", [
        "Traiter la cause sous-jacente si présente",
        "Réduction des facteurs de risque CV",
        "Contrôle annuel",
    ]),
    (60.0, "2", "Légère diminution du DFG", [
        "Estimer la progression",
        "Contrôler TA (cible <130/80)",
        "Éviter les néphrotoxiques",
        "Contrôle annuel",
    ]),
    (45.0, "3a", "Diminution légère à modérée du DFG", [
        "Référer néphrologie si protéinurie",
        "Ajuster les médicaments au DFG",
        "Surveiller anémie, MBD",
        "Contrôle tous les 6 mois",
    ]),
    (30.0, "3b", "Diminution modérée à sévère du DFG", [
        "Suivi néphrologique recommandé",
        "Traiter anémie, troubles phosphocalciques",
        "Vaccinations (Hépatite B)",
        "Contrôle tous les 3-6 mois",
    ]),
    (15.0, "4", "Diminution sévère du DFG", [
        "Suivi néphrologique obligatoire",
        "Préparation à la suppléance rénale",
        "Éducation patient (options: HD, DP, greffe)",
        "Création accès vasculaire si HD prévue",
        "Contrôle tous les 1-3 mois",
    ]),
    (0.0, "5", "Insuffisance rénale terminale", [
        "Initiation suppléance rénale",
        "Évaluation pour transplantation",
        "Gestion symptômes urémiques",
        "Suivi rapproché (mensuel)",
    ]),
]


def ckd_stage(egfr: float) -> CKDStageResult:
    """
    Map an eGFR to its KDIGO G-stage

    Args:
        egfr: eGFR in mL/min/1.73m²

    Returns:
        CKDStageResult with fixed description and recommendations
    """
    value = require_range(egfr, "egfr", *EGFR_RANGE)

    for lower_bound, stage, description, recommendations in CKD_STAGES:
        if value >= lower_bound:
            return CKDStageResult(
                egfr=value,
                stage=stage,
                description=description,
                recommendations=list(recommendations),
                kdigo_classification=f"CKD G{stage}"
            )

    # Unreachable: last lower bound equals the range minimum
    raise ValidationError(f"egfr={egfr} could not be staged", field="egfr")


# ============================================================================
# Cockcroft-Gault creatinine clearance
# ============================================================================

CRCL_CATEGORIES = [
    (90.0, "Normal"),
    (60.0, "Légère diminution"),
    (30.0, "Diminution modérée"),
    (15.0, "Diminution sévère"),
]
CRCL_TERMINAL = "Insuffisance rénale terminale"


def creatinine_clearance(
    age: float,
    weight: float,
    sex: Union[Sex, str],
    creatinine: float
) -> CreatinineClearanceResult:
    """
    Cockcroft-Gault: ((140 - age) x weight) / (72 x creatinine), x0.85 for women

    Args:
        age: Age in years (adult formula)
        weight: Weight in kg
        sex: Biological sex
        creatinine: Serum creatinine in mg/dL
    """
    age = require_range(age, "age", *ADULT_AGE_RANGE)
    weight = require_range(weight, "weight", *WEIGHT_RANGE)
    creatinine = require_range(creatinine, "creatinine", *CREATININE_RANGE)
    sex = _coerce_sex(sex)

    crcl = ((140 - age) * weight) / (72 * creatinine)
    if sex == Sex.FEMALE:
        crcl *= 0.85

    category = CRCL_TERMINAL
    for lower_bound, label in CRCL_CATEGORIES:
        if crcl >= lower_bound:
            category = label
            break

    return CreatinineClearanceResult(
        creatinine_clearance=round(crcl, 1),
        category=category,
        inputs={"age": age, "weight": weight, "sex": sex.value, "creatinine": creatinine}
    )


# ============================================================================
# Body mass index (WHO)
# ============================================================================

# (upper bound exclusive, category, French label, recommendations)
BMI_TIERS = [
    (18.5, "Underweight", "Insuffisance pondérale", [
        "Évaluation nutritionnelle",
        "Rechercher cause sous-jacente",
    ]),
    (25.0, "Normal weight", "Poids normal", [
        "Maintenir activité physique régulière",
        "Alimentation équilibrée",
    ]),
    (30.0, "Overweight", "Surpoids", [
        "Conseils hygiéno-diététiques",
        "Augmenter activité physique",
        "Dépister complications métaboliques",
    ]),
    (35.0, "Obesity class I", "Obésité grade I", [
        "Prise en charge nutritionnelle",
        "Programme d'activité physique",
        "Dépistage diabète, HTA, dyslipidémie",
    ]),
    (40.0, "Obesity class II", "Obésité grade II", [
        "Prise en charge multidisciplinaire",
        "Considérer traitement médicamenteux",
        "Évaluer comorbidités",
    ]),
    (math.inf, "Obesity class III", "Obésité grade III (morbide)", [
        "Évaluation pour chirurgie bariatrique",
        "Prise en charge spécialisée",
        "Suivi rapproché",
    ]),
]

IDEAL_BMI_LOW = 18.5
IDEAL_BMI_HIGH = 24.9


def body_mass_index(weight: float, height: float) -> BMIResult:
    """
    BMI = weight / height_m², classified on the unrounded value

    Args:
        weight: Weight in kg
        height: Height in cm
    """
    weight = require_range(weight, "weight", *WEIGHT_RANGE)
    height = require_range(height, "height", *HEIGHT_RANGE)

    height_m = height / 100
    bmi = weight / (height_m * height_m)

    for upper_bound, category, label, recommendations in BMI_TIERS:
        if bmi < upper_bound:
            break

    return BMIResult(
        bmi=round(bmi, 1),
        category=category,
        label=label,
        recommendations=list(recommendations),
        ideal_weight_range=WeightRange(
            min_kg=round(IDEAL_BMI_LOW * height_m * height_m),
            max_kg=round(IDEAL_BMI_HIGH * height_m * height_m)
        )
    )


# ============================================================================
# Corrected QT interval
# ============================================================================

QTC_SEVERE_RECOMMENDATIONS = [
    "Revoir médicaments allongeant le QT",
    "Corriger hypokaliémie/hypomagnésémie",
    "ECG de surveillance",
    "Considérer hospitalisation si symptomatique",
]


def _correct_qt(qt: float, rr: float, formula: QTcFormula) -> float:
    rr_seconds = rr / 1000
    if formula == QTcFormula.FRIDERICIA:
        return qt / rr_seconds ** (1 / 3)
    if formula == QTcFormula.FRAMINGHAM:
        return qt + 0.154 * (1000 - rr)
    return qt / math.sqrt(rr_seconds)


def corrected_qt(
    qt: float,
    heart_rate: float,
    formula: Optional[Union[QTcFormula, str]] = None
) -> QTcResult:
    """
    Heart-rate corrected QT

    Args:
        qt: Measured QT in ms
        heart_rate: Heart rate in bpm
        formula: bazett, fridericia or framingham (default from settings)

    Returns:
        QTcResult; recommendations are only given from 500 ms upward
    """
    qt = require_range(qt, "qt", *QT_RANGE)
    heart_rate = require_range(heart_rate, "heart_rate", *HEART_RATE_RANGE)

    try:
        formula = QTcFormula(formula or settings.qtc_default_formula)
    except ValueError:
        raise ValidationError(
            f"Unknown QTc formula {formula!r}",
            field="formula",
            allowed=[f.value for f in QTcFormula]
        )

    rr = 60000 / heart_rate
    qtc = _correct_qt(qt, rr, formula)

    if qtc < 440:
        category, interpretation, risk_level = QTcCategory.NORMAL, "QTc normal", "low"
    elif qtc < 460:
        category, interpretation, risk_level = QTcCategory.BORDERLINE, "QTc limite", "borderline"
    elif qtc < 500:
        category, interpretation, risk_level = QTcCategory.PROLONGED, "QTc prolongé", "moderate"
    else:
        category = QTcCategory.SEVERELY_PROLONGED
        interpretation = "QTc sévèrement prolongé - Risque de torsades de pointes"
        risk_level = "high"

    return QTcResult(
        qtc=round(qtc),
        rr_interval=round(rr, 1),
        formula=formula,
        category=category,
        interpretation=interpretation,
        risk_level=risk_level,
        recommendations=list(QTC_SEVERE_RECOMMENDATIONS) if qtc >= 500 else []
    )


# ============================================================================
# CKD-EPI 2009 eGFR
# ============================================================================

def estimate_egfr(
    creatinine: float,
    age: float,
    sex: Union[Sex, str],
    african_american: bool = False
) -> EGFRResult:
    """
    Estimate eGFR with the CKD-EPI 2009 creatinine equation

    Args:
        creatinine: Serum creatinine in mg/dL
        age: Age in years
        sex: Biological sex
        african_american: Apply the race coefficient
    """
    creatinine = require_range(creatinine, "creatinine", *CREATININE_RANGE)
    age = require_range(age, "age", *ADULT_AGE_RANGE)
    sex = _coerce_sex(sex)

    female = sex == Sex.FEMALE
    kappa = 0.7 if female else 0.9
    alpha = -0.329 if female else -0.411

    ratio = creatinine / kappa
    egfr = (
        141
        * min(ratio, 1) ** alpha
        * max(ratio, 1) ** -1.209
        * 0.993 ** age
        * (1.018 if female else 1)
        * (1.159 if african_american else 1)
    )
    egfr = round(egfr)

    # Very low creatinine in young adults can exceed the staging range
    stage = ckd_stage(min(egfr, EGFR_RANGE[1]))
    return EGFRResult(egfr=egfr, stage=stage.stage, description=stage.description)


# ============================================================================
# CHA2DS2-VASc
# ============================================================================

def cha2ds2_vasc(
    age: float,
    sex: Union[Sex, str],
    congestive_heart_failure: bool = False,
    hypertension: bool = False,
    diabetes: bool = False,
    stroke_or_tia: bool = False,
    vascular_disease: bool = False
) -> int:
    """Stroke risk score for atrial fibrillation (0-9)"""
    age = require_range(age, "age", *AGE_RANGE)
    sex = _coerce_sex(sex)

    score = 0
    if congestive_heart_failure:
        score += 1
    if hypertension:
        score += 1
    if age >= 75:
        score += 2
    elif age >= 65:
        score += 1
    if diabetes:
        score += 1
    if stroke_or_tia:
        score += 2
    if vascular_disease:
        score += 1
    if sex == Sex.FEMALE:
        score += 1

    logger.debug(f"CHA2DS2-VASc computed: {score}")
    return score

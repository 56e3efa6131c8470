"""
CDSS Rule Catalog
Guideline rules as inspectable records, with their predicate/alert handlers
registered separately by rule ID
"""

import logging
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple, Union

from cdss.config import Settings, settings
from cdss.exceptions import ValidationError
from cdss.schemas import (
    PatientClinicalSnapshot, AlertContent, AlertSeverity, AlertCategory,
    ClinicalModule, GuidelineSource, RulePriority, RuleSummary, Sex,
    SNAPSHOT_EXTENSIONS
)
from cdss.modules.calculators import (
    ckd_stage, body_mass_index, cha2ds2_vasc, WEIGHT_RANGE, HEIGHT_RANGE
)

logger = logging.getLogger(__name__)

DEFAULT_CATALOG_VERSION = "2024.1"


# =============================================================================
# Catalog Records
# =============================================================================

@dataclass(frozen=True)
class CDSSRule:
    """Guideline rule metadata. module=None means the rule applies everywhere."""
    id: str
    name: str
    description: str
    category: AlertCategory
    module: Optional[ClinicalModule]
    guideline_source: GuidelineSource
    priority: int = RulePriority.NORMAL
    is_active: bool = True
    requires: Tuple[str, ...] = field(default_factory=tuple)

    def to_summary(self) -> RuleSummary:
        return RuleSummary(
            id=self.id,
            name=self.name,
            description=self.description,
            category=self.category,
            module=self.module,
            guideline_source=self.guideline_source,
            priority=int(self.priority),
            is_active=self.is_active,
            requires=list(self.requires)
        )


@dataclass(frozen=True)
class RuleHandler:
    """Executable half of a rule"""
    applies: Callable[[PatientClinicalSnapshot], bool]
    alert: Callable[[PatientClinicalSnapshot], AlertContent]


class RuleCatalog:
    """
    Immutable, validated collection of rules and their handlers

    Derived catalogs (with_disabled, filtered) are new objects; an existing
    catalog never changes after construction.
    """

    def __init__(
        self,
        rules: Iterable[CDSSRule],
        handlers: Mapping[str, RuleHandler],
        version: str = DEFAULT_CATALOG_VERSION
    ):
        rules = tuple(rules)
        index: Dict[str, CDSSRule] = {}

        for rule in rules:
            if rule.id in index:
                raise ValidationError(f"Duplicate rule ID {rule.id}", field="rules")
            if rule.id not in handlers:
                raise ValidationError(f"Rule {rule.id} has no registered handler", field="handlers")
            unknown = [name for name in rule.requires if name not in SNAPSHOT_EXTENSIONS]
            if unknown:
                raise ValidationError(
                    f"Rule {rule.id} requires unknown snapshot extensions {unknown}",
                    field="requires",
                    allowed=SNAPSHOT_EXTENSIONS
                )
            index[rule.id] = rule

        self._rules = rules
        self._index = MappingProxyType(index)
        self._handlers = MappingProxyType({rule_id: handlers[rule_id] for rule_id in index})
        self.version = version

    @property
    def rules(self) -> Tuple[CDSSRule, ...]:
        return self._rules

    @property
    def active_rules(self) -> Tuple[CDSSRule, ...]:
        return tuple(rule for rule in self._rules if rule.is_active)

    def get(self, rule_id: str) -> Optional[CDSSRule]:
        return self._index.get(rule_id)

    def handler_for(self, rule_id: str) -> RuleHandler:
        return self._handlers[rule_id]

    def __len__(self) -> int:
        return len(self._rules)

    def __iter__(self) -> Iterator[CDSSRule]:
        return iter(self._rules)

    def __contains__(self, rule_id: object) -> bool:
        return rule_id in self._index

    def with_disabled(self, rule_ids: Iterable[str]) -> "RuleCatalog":
        """Copy of this catalog with the given rules deactivated"""
        disabled = set(rule_ids)
        unknown = sorted(disabled - set(self._index))
        if unknown:
            logger.warning(f"Ignoring unknown rule IDs in disable list: {unknown}")

        rules = [
            replace(rule, is_active=False) if rule.id in disabled else rule
            for rule in self._rules
        ]
        return RuleCatalog(rules, self._handlers, version=self.version)

    def filtered(self, modules: Iterable[Union[ClinicalModule, str]]) -> "RuleCatalog":
        """Copy restricted to the given modules; global rules are kept"""
        wanted = {ClinicalModule(m) for m in modules}
        rules = [rule for rule in self._rules if rule.module is None or rule.module in wanted]
        return RuleCatalog(rules, self._handlers, version=self.version)


# =============================================================================
# Helpers
# =============================================================================

def _fmt(value: Optional[float]) -> str:
    return "?" if value is None else f"{value:g}"


# =============================================================================
# Dialysis (KDIGO) Rules
# =============================================================================

def _ktv_applies(s: PatientClinicalSnapshot) -> bool:
    return s.dialysis.is_on_dialysis and s.dialysis.ktv is not None and s.dialysis.ktv < 1.2


def _ktv_alert(s: PatientClinicalSnapshot) -> AlertContent:
    ktv = s.dialysis.ktv
    return AlertContent(
        category=AlertCategory.GUIDELINE,
        severity=AlertSeverity.CRITICAL if ktv < 1.0 else AlertSeverity.WARNING,
        title="Dialyse inadéquate - Kt/V insuffisant",
        message=f"Le Kt/V actuel ({ktv:.2f}) est inférieur à la cible KDIGO de 1.2",
        guideline_reference="KDIGO 2015 Hemodialysis Guidelines",
        recommendations=[
            "Augmenter la durée de la séance de dialyse",
            "Augmenter le débit sanguin si toléré",
            "Vérifier l'accès vasculaire (recirculation)",
            "Considérer un dialyseur à surface plus grande",
            "Réévaluer le poids sec du patient",
        ]
    )


def _phosphorus_applies(s: PatientClinicalSnapshot) -> bool:
    phosphorus = s.lab("phosphorus")
    return s.dialysis.is_on_dialysis and phosphorus is not None and phosphorus > 5.5


def _phosphorus_alert(s: PatientClinicalSnapshot) -> AlertContent:
    phosphorus = s.lab("phosphorus")
    return AlertContent(
        category=AlertCategory.LAB,
        severity=AlertSeverity.CRITICAL if phosphorus > 7.0 else AlertSeverity.WARNING,
        title="Hyperphosphatémie",
        message=f"Phosphore élevé ({_fmt(phosphorus)} mg/dL) - Cible: 3.5-5.5 mg/dL",
        guideline_reference="KDIGO CKD-MBD 2017",
        recommendations=[
            "Renforcer les conseils diététiques (réduction phosphore alimentaire)",
            "Optimiser les chélateurs de phosphate",
            "Vérifier la compliance au traitement",
            "Considérer augmentation durée/fréquence dialyse",
        ]
    )


def _pth_applies(s: PatientClinicalSnapshot) -> bool:
    pth = s.lab("pth")
    return s.dialysis.is_on_dialysis and pth is not None and pth > 600


def _pth_alert(s: PatientClinicalSnapshot) -> AlertContent:
    pth = s.lab("pth")
    return AlertContent(
        category=AlertCategory.LAB,
        severity=AlertSeverity.CRITICAL if pth > 900 else AlertSeverity.WARNING,
        title="Hyperparathyroïdie secondaire",
        message=f"PTH élevée ({_fmt(pth)} pg/mL) - Cible: 2-9x normale (130-600 pg/mL)",
        guideline_reference="KDIGO CKD-MBD 2017",
        recommendations=[
            "Optimiser les niveaux de calcium et phosphore",
            "Initier ou ajuster calcimimétiques (Cinacalcet)",
            "Considérer vitamine D active si calcium permet",
            "Référer chirurgie si PTH réfractaire (>1000 pg/mL)",
        ]
    )


def _anemia_applies(s: PatientClinicalSnapshot) -> bool:
    hemoglobin = s.lab("hemoglobin")
    return hemoglobin is not None and hemoglobin < 10.0


def _anemia_alert(s: PatientClinicalSnapshot) -> AlertContent:
    hemoglobin = s.lab("hemoglobin")
    return AlertContent(
        category=AlertCategory.LAB,
        severity=AlertSeverity.CRITICAL if hemoglobin < 8.0 else AlertSeverity.WARNING,
        title="Anémie",
        message=f"Hémoglobine basse ({_fmt(hemoglobin)} g/dL) - Cible: 10-11.5 g/dL",
        guideline_reference="KDIGO Anemia Guidelines 2012",
        recommendations=[
            "Vérifier les réserves en fer (ferritine, TSAT)",
            "Supplémenter en fer IV si carence",
            "Ajuster les agents stimulant l'érythropoïèse (ASE)",
            "Rechercher causes de résistance aux ASE",
            "Exclure saignement occulte",
        ]
    )


def _potassium_applies(s: PatientClinicalSnapshot) -> bool:
    potassium = s.lab("potassium")
    return potassium is not None and potassium > 5.5


def _potassium_alert(s: PatientClinicalSnapshot) -> AlertContent:
    potassium = s.lab("potassium")
    urgent = potassium > 6.5
    return AlertContent(
        category=AlertCategory.LAB,
        severity=AlertSeverity.CRITICAL if urgent else AlertSeverity.WARNING,
        title="Hyperkaliémie",
        message=f"Potassium élevé ({_fmt(potassium)} mEq/L) - Risque arythmie cardiaque",
        guideline_reference="KDIGO AKI Guidelines",
        recommendations=[
            "URGENT: ECG immédiat, envisager dialyse en urgence" if urgent
            else "ECG de contrôle recommandé",
            "Conseils diététiques (restriction potassium)",
            "Vérifier les médicaments hyperkaliémiants (IEC, ARA2, spironolactone)",
            "Résines échangeuses d'ions (Kayexalate, Patiromer)",
            "Considérer augmentation fréquence dialyse",
        ]
    )


# =============================================================================
# Cardiology (ESC/AHA) Rules
# =============================================================================

def _lvef_applies(s: PatientClinicalSnapshot) -> bool:
    return s.cardiology.lvef is not None and s.cardiology.lvef < 40


def _lvef_alert(s: PatientClinicalSnapshot) -> AlertContent:
    lvef = s.cardiology.lvef
    return AlertContent(
        category=AlertCategory.GUIDELINE,
        severity=AlertSeverity.CRITICAL if lvef < 30 else AlertSeverity.WARNING,
        title="Insuffisance cardiaque à FEVG réduite (HFrEF)",
        message=f"FEVG {_fmt(lvef)}% - Classification HFrEF (<40%)",
        guideline_reference="ESC Heart Failure Guidelines 2021",
        recommendations=[
            "Initier quadrithérapie si non contre-indiquée:",
            "  - IEC/ARA2/ARNI",
            "  - Bêta-bloquant",
            "  - Antagoniste minéralocorticoïde (ARM)",
            "  - Inhibiteur SGLT2",
            "Évaluer indication CRT/DAI si FEVG ≤35%",
            "Optimiser traitement diurétique",
            "Restriction sodée et pesée quotidienne",
        ]
    )


def _af_score(s: PatientClinicalSnapshot) -> int:
    systolic = s.vital("systolic_bp")
    return cha2ds2_vasc(
        age=s.demographics.age,
        sex=s.demographics.sex,
        congestive_heart_failure=bool(s.cardiology.has_chf),
        hypertension=(systolic is not None and systolic >= 140) or s.has_condition("hypertension"),
        diabetes=s.has_condition("diabetes"),
        stroke_or_tia=s.has_condition("stroke", "tia"),
        vascular_disease=bool(s.cardiology.has_cad)
    )


def _af_applies(s: PatientClinicalSnapshot) -> bool:
    if not s.cardiology.has_af:
        return False
    score = _af_score(s)
    # Female sex alone does not justify anticoagulation
    if s.demographics.sex == Sex.FEMALE:
        return score >= 2
    return score >= 1


def _af_alert(s: PatientClinicalSnapshot) -> AlertContent:
    return AlertContent(
        category=AlertCategory.GUIDELINE,
        severity=AlertSeverity.WARNING,
        title="Anticoagulation recommandée - FA",
        message=f"Patient avec FA et score CHA2DS2-VASc ({_af_score(s)}) indiquant anticoagulation",
        guideline_reference="ESC AF Guidelines 2020",
        recommendations=[
            "Initier anticoagulation orale (AOD préféré aux AVK)",
            "Calculer score HAS-BLED pour évaluer risque hémorragique",
            "AOD recommandés: Apixaban, Rivaroxaban, Dabigatran, Edoxaban",
            "Contrôle FC/rythme selon symptômes",
            "Éducation patient sur signes AVC",
        ]
    )


def _bp_applies(s: PatientClinicalSnapshot) -> bool:
    systolic = s.vital("systolic_bp")
    diastolic = s.vital("diastolic_bp")
    return (systolic is not None and systolic >= 140) or (diastolic is not None and diastolic >= 90)


def _bp_alert(s: PatientClinicalSnapshot) -> AlertContent:
    systolic = s.vital("systolic_bp")
    diastolic = s.vital("diastolic_bp")
    urgent = systolic is not None and systolic >= 180
    return AlertContent(
        category=AlertCategory.VITALS,
        severity=AlertSeverity.CRITICAL if urgent else AlertSeverity.WARNING,
        title="Hypertension non contrôlée",
        message=f"TA {_fmt(systolic)}/{_fmt(diastolic)} mmHg - Cible <140/90 mmHg",
        guideline_reference="ESC Hypertension Guidelines 2018",
        recommendations=[
            "URGENT: Évaluer HTA maligne/urgence hypertensive" if urgent
            else "Optimiser traitement antihypertenseur",
            "Bithérapie recommandée en 1ère intention (IEC/ARA2 + CCB ou diurétique)",
            "Vérifier compliance médicamenteuse",
            "Mesures hygiéno-diététiques (sel, poids, exercice)",
            "MAPA/auto-mesure pour confirmer",
        ]
    )


def _troponin_applies(s: PatientClinicalSnapshot) -> bool:
    troponin = s.lab("troponin")
    return troponin is not None and troponin > 0.04


def _troponin_alert(s: PatientClinicalSnapshot) -> AlertContent:
    return AlertContent(
        category=AlertCategory.LAB,
        severity=AlertSeverity.CRITICAL,
        title="Troponine élevée - Suspicion SCA",
        message=(
            f"Troponine {_fmt(s.lab('troponin'))} ng/mL (seuil: 0.04 ng/mL) - "
            "Évaluer syndrome coronarien aigu"
        ),
        guideline_reference="ESC NSTE-ACS Guidelines 2020",
        recommendations=[
            "URGENT: ECG 12 dérivations immédiat",
            "Évaluer douleur thoracique et facteurs de risque",
            "Calculer score GRACE/TIMI",
            "Considérer coronarographie selon risque",
            "Double antiagrégation si SCA confirmé",
            "Hospitalisation en USIC si haut risque",
        ]
    )


def _ldl_target(s: PatientClinicalSnapshot) -> float:
    very_high_risk = (
        bool(s.cardiology and s.cardiology.has_cad)
        or s.has_condition("stroke", "diabetes")
    )
    return 55.0 if very_high_risk else 70.0


def _ldl_applies(s: PatientClinicalSnapshot) -> bool:
    ldl = s.lab("ldl")
    return ldl is not None and ldl > _ldl_target(s)


def _ldl_alert(s: PatientClinicalSnapshot) -> AlertContent:
    return AlertContent(
        category=AlertCategory.LAB,
        severity=AlertSeverity.WARNING,
        title="LDL-cholestérol au-dessus de la cible",
        message=f"LDL {_fmt(s.lab('ldl'))} mg/dL - Cible <{_fmt(_ldl_target(s))} mg/dL",
        guideline_reference="ESC Dyslipidemia Guidelines 2019",
        recommendations=[
            "Intensifier statine haute intensité (Atorvastatine 40-80mg, Rosuvastatine 20-40mg)",
            "Si cible non atteinte: ajouter Ézétimibe",
            "Si toujours non atteint: considérer inhibiteur PCSK9",
            "Mesures hygiéno-diététiques",
            "Contrôle LDL à 4-6 semaines",
        ]
    )


# =============================================================================
# Ophthalmology (AAO) Rules
# =============================================================================

def _iop_applies(s: PatientClinicalSnapshot) -> bool:
    iop = s.ophthalmology.iop
    return iop is not None and (iop.left > 21 or iop.right > 21)


def _iop_alert(s: PatientClinicalSnapshot) -> AlertContent:
    iop = s.ophthalmology.iop
    return AlertContent(
        category=AlertCategory.VITALS,
        severity=AlertSeverity.CRITICAL if max(iop.left, iop.right) > 30 else AlertSeverity.WARNING,
        title="Pression intraoculaire élevée",
        message=f"PIO: OD {_fmt(iop.right)} mmHg, OG {_fmt(iop.left)} mmHg - Normal: 10-21 mmHg",
        guideline_reference="AAO Glaucoma PPP 2020",
        recommendations=[
            "Pachymétrie cornéenne pour correction PIO",
            "Examen du nerf optique (rapport cup/disc)",
            "Champ visuel de référence",
            "OCT RNFL si suspicion glaucome",
            "Considérer traitement hypotonisant si facteurs de risque",
        ]
    )


def _dme_applies(s: PatientClinicalSnapshot) -> bool:
    return s.ophthalmology.has_dme is True


def _dme_alert(s: PatientClinicalSnapshot) -> AlertContent:
    return AlertContent(
        category=AlertCategory.GUIDELINE,
        severity=AlertSeverity.WARNING,
        title="Œdème maculaire diabétique",
        message="OMD détecté - Traitement anti-VEGF recommandé",
        guideline_reference="AAO Diabetic Retinopathy PPP 2019",
        recommendations=[
            "Initier injections anti-VEGF (Aflibercept, Ranibizumab, Bevacizumab)",
            "OCT mensuel pour suivi épaisseur maculaire",
            "Optimiser contrôle glycémique (HbA1c <7%)",
            "Contrôler TA et lipides",
            "Considérer laser focal si OMD persistant",
            "Coordination avec diabétologue",
        ]
    )


def _amd_applies(s: PatientClinicalSnapshot) -> bool:
    return s.ophthalmology.has_amd is True


def _amd_alert(s: PatientClinicalSnapshot) -> AlertContent:
    return AlertContent(
        category=AlertCategory.GUIDELINE,
        severity=AlertSeverity.CRITICAL,
        title="DMLA exsudative",
        message="DMLA néovasculaire - Traitement anti-VEGF urgent",
        guideline_reference="AAO AMD PPP 2019",
        recommendations=[
            "URGENT: Initier anti-VEGF dans les 2 semaines",
            "Protocole: 3 injections mensuelles de charge",
            "Puis traitement Treat-and-Extend ou PRN",
            "OCT et angiographie de suivi",
            "Arrêt tabac impératif",
            "Supplémentation AREDS2 pour l'autre œil",
        ]
    )


# =============================================================================
# General Safety Rules
# =============================================================================

def _egfr_applies(s: PatientClinicalSnapshot) -> bool:
    egfr = s.lab("egfr")
    return egfr is not None and egfr < 30 and not s.is_on_dialysis


def _egfr_alert(s: PatientClinicalSnapshot) -> AlertContent:
    egfr = s.lab("egfr")
    stage = ckd_stage(egfr)
    terminal = stage.stage == "5"
    return AlertContent(
        category=AlertCategory.LAB,
        severity=AlertSeverity.CRITICAL if terminal else AlertSeverity.WARNING,
        title="Insuffisance rénale sévère",
        message=f"DFGe {_fmt(egfr)} mL/min/1.73m² - Stade {stage.stage} MRC ({stage.kdigo_classification})",
        guideline_reference="KDIGO CKD Guidelines 2012",
        recommendations=[
            "Référer néphrologue en urgence - préparer suppléance rénale" if terminal
            else "Suivi néphrologique rapproché",
            "Ajuster doses médicaments selon DFG",
            "Éviter néphrotoxiques (AINS, produits de contraste)",
            "Vacciner (Hépatite B, grippe, pneumocoque)",
            "Éducation patient sur options de suppléance",
        ]
    )


def _glucose_applies(s: PatientClinicalSnapshot) -> bool:
    hba1c = s.lab("hba1c")
    return hba1c is not None and hba1c > 8.0


def _glucose_alert(s: PatientClinicalSnapshot) -> AlertContent:
    hba1c = s.lab("hba1c")
    return AlertContent(
        category=AlertCategory.LAB,
        severity=AlertSeverity.CRITICAL if hba1c > 10.0 else AlertSeverity.WARNING,
        title="Contrôle glycémique insuffisant",
        message=f"HbA1c {_fmt(hba1c)}% - Cible généralement <7%",
        guideline_reference="ADA Standards of Care 2024",
        recommendations=[
            "Optimiser traitement antidiabétique",
            "Privilégier SGLT2i ou GLP1-RA si maladie CV ou rénale",
            "Renforcer éducation thérapeutique",
            "Dépistage complications (rétinopathie, néphropathie, neuropathie)",
            "Objectif individualisé selon profil patient",
        ]
    )


def _obesity_applies(s: PatientClinicalSnapshot) -> bool:
    weight, height = s.demographics.weight, s.demographics.height
    if weight is None or height is None:
        return False
    # Outside the adult BMI domain the rule is not applicable
    if not (WEIGHT_RANGE[0] <= weight <= WEIGHT_RANGE[1] and HEIGHT_RANGE[0] <= height <= HEIGHT_RANGE[1]):
        return False
    return body_mass_index(weight, height).bmi >= 30


def _obesity_alert(s: PatientClinicalSnapshot) -> AlertContent:
    result = body_mass_index(s.demographics.weight, s.demographics.height)
    return AlertContent(
        category=AlertCategory.VITALS,
        severity=AlertSeverity.WARNING if result.bmi >= 35 else AlertSeverity.INFO,
        title=f"Obésité - {result.label}",
        message=(
            f"IMC {_fmt(result.bmi)} kg/m² - Poids cible {result.ideal_weight_range.min_kg}-"
            f"{result.ideal_weight_range.max_kg} kg"
        ),
        guideline_reference="WHO Obesity Classification",
        recommendations=result.recommendations
    )


# =============================================================================
# Default Catalog
# =============================================================================

DEFAULT_RULES: List[CDSSRule] = [
    # Dialysis
    CDSSRule(
        id="kdigo-ktv-001",
        name="Inadequate Dialysis Kt/V",
        description="Kt/V below target per KDIGO guidelines",
        category=AlertCategory.GUIDELINE,
        module=ClinicalModule.DIALYSE,
        guideline_source=GuidelineSource.KDIGO,
        priority=RulePriority.HIGH,
        requires=("dialysis",)
    ),
    CDSSRule(
        id="kdigo-phosphorus-001",
        name="Hyperphosphatemia",
        description="Elevated phosphorus per KDIGO guidelines",
        category=AlertCategory.LAB,
        module=ClinicalModule.DIALYSE,
        guideline_source=GuidelineSource.KDIGO,
        priority=RulePriority.NORMAL,
        requires=("dialysis",)
    ),
    CDSSRule(
        id="kdigo-pth-001",
        name="Secondary Hyperparathyroidism",
        description="Elevated PTH in dialysis patient",
        category=AlertCategory.LAB,
        module=ClinicalModule.DIALYSE,
        guideline_source=GuidelineSource.KDIGO,
        priority=RulePriority.NORMAL,
        requires=("dialysis",)
    ),
    CDSSRule(
        id="kdigo-anemia-001",
        name="Anemia in CKD/Dialysis",
        description="Hemoglobin below target",
        category=AlertCategory.LAB,
        module=ClinicalModule.DIALYSE,
        guideline_source=GuidelineSource.KDIGO,
        priority=RulePriority.NORMAL
    ),
    CDSSRule(
        id="kdigo-potassium-001",
        name="Hyperkalemia",
        description="Elevated potassium - life threatening",
        category=AlertCategory.LAB,
        module=ClinicalModule.DIALYSE,
        guideline_source=GuidelineSource.KDIGO,
        priority=RulePriority.HIGH
    ),
    # Cardiology
    CDSSRule(
        id="esc-hf-lvef-001",
        name="Reduced LVEF Heart Failure",
        description="LVEF < 40% per ESC guidelines",
        category=AlertCategory.GUIDELINE,
        module=ClinicalModule.CARDIOLOGY,
        guideline_source=GuidelineSource.ESC,
        priority=RulePriority.HIGH,
        requires=("cardiology",)
    ),
    CDSSRule(
        id="esc-af-chadsvasc-001",
        name="AF Anticoagulation Required",
        description="CHA2DS2-VASc indicates anticoagulation",
        category=AlertCategory.GUIDELINE,
        module=ClinicalModule.CARDIOLOGY,
        guideline_source=GuidelineSource.ESC,
        priority=RulePriority.HIGH,
        requires=("cardiology",)
    ),
    CDSSRule(
        id="esc-bp-001",
        name="Uncontrolled Hypertension",
        description="Blood pressure above target",
        category=AlertCategory.VITALS,
        module=ClinicalModule.CARDIOLOGY,
        guideline_source=GuidelineSource.ESC,
        priority=RulePriority.NORMAL
    ),
    CDSSRule(
        id="esc-acs-troponin-001",
        name="Elevated Troponin - ACS",
        description="Elevated cardiac markers suggesting ACS",
        category=AlertCategory.LAB,
        module=ClinicalModule.CARDIOLOGY,
        guideline_source=GuidelineSource.ESC,
        priority=RulePriority.HIGH
    ),
    CDSSRule(
        id="esc-lipids-001",
        name="LDL Above Target",
        description="LDL cholesterol above cardiovascular risk target",
        category=AlertCategory.LAB,
        module=ClinicalModule.CARDIOLOGY,
        guideline_source=GuidelineSource.ESC,
        priority=RulePriority.NORMAL
    ),
    # Ophthalmology
    CDSSRule(
        id="aao-iop-001",
        name="Elevated IOP - Glaucoma Risk",
        description="Intraocular pressure above normal",
        category=AlertCategory.VITALS,
        module=ClinicalModule.OPHTHALMOLOGY,
        guideline_source=GuidelineSource.AAO,
        priority=RulePriority.NORMAL,
        requires=("ophthalmology",)
    ),
    CDSSRule(
        id="aao-dme-001",
        name="Diabetic Macular Edema",
        description="DME requiring treatment",
        category=AlertCategory.GUIDELINE,
        module=ClinicalModule.OPHTHALMOLOGY,
        guideline_source=GuidelineSource.AAO,
        priority=RulePriority.HIGH,
        requires=("ophthalmology",)
    ),
    CDSSRule(
        id="aao-amd-001",
        name="Wet AMD Detected",
        description="Neovascular AMD requiring urgent treatment",
        category=AlertCategory.GUIDELINE,
        module=ClinicalModule.OPHTHALMOLOGY,
        guideline_source=GuidelineSource.AAO,
        priority=RulePriority.HIGH,
        requires=("ophthalmology",)
    ),
    # General
    CDSSRule(
        id="safety-egfr-001",
        name="Severe Renal Impairment",
        description="eGFR indicating severe CKD",
        category=AlertCategory.LAB,
        module=ClinicalModule.GENERAL,
        guideline_source=GuidelineSource.KDIGO,
        priority=RulePriority.HIGH
    ),
    CDSSRule(
        id="safety-glucose-001",
        name="Hyperglycemia",
        description="Elevated HbA1c",
        category=AlertCategory.LAB,
        module=ClinicalModule.GENERAL,
        guideline_source=GuidelineSource.AHA,
        priority=RulePriority.NORMAL
    ),
    CDSSRule(
        id="who-bmi-001",
        name="Obesity",
        description="BMI in an obesity class per WHO classification",
        category=AlertCategory.VITALS,
        module=ClinicalModule.GENERAL,
        guideline_source=GuidelineSource.WHO,
        priority=RulePriority.LOW
    ),
]

DEFAULT_HANDLERS: Dict[str, RuleHandler] = {
    "kdigo-ktv-001": RuleHandler(_ktv_applies, _ktv_alert),
    "kdigo-phosphorus-001": RuleHandler(_phosphorus_applies, _phosphorus_alert),
    "kdigo-pth-001": RuleHandler(_pth_applies, _pth_alert),
    "kdigo-anemia-001": RuleHandler(_anemia_applies, _anemia_alert),
    "kdigo-potassium-001": RuleHandler(_potassium_applies, _potassium_alert),
    "esc-hf-lvef-001": RuleHandler(_lvef_applies, _lvef_alert),
    "esc-af-chadsvasc-001": RuleHandler(_af_applies, _af_alert),
    "esc-bp-001": RuleHandler(_bp_applies, _bp_alert),
    "esc-acs-troponin-001": RuleHandler(_troponin_applies, _troponin_alert),
    "esc-lipids-001": RuleHandler(_ldl_applies, _ldl_alert),
    "aao-iop-001": RuleHandler(_iop_applies, _iop_alert),
    "aao-dme-001": RuleHandler(_dme_applies, _dme_alert),
    "aao-amd-001": RuleHandler(_amd_applies, _amd_alert),
    "safety-egfr-001": RuleHandler(_egfr_applies, _egfr_alert),
    "safety-glucose-001": RuleHandler(_glucose_applies, _glucose_alert),
    "who-bmi-001": RuleHandler(_obesity_applies, _obesity_alert),
}


def build_default_rule_catalog(config: Optional[Settings] = None) -> RuleCatalog:
    """
    Build the built-in guideline catalog, honoring module toggles and
    individually disabled rule IDs from settings
    """
    config = config or settings
    catalog = RuleCatalog(DEFAULT_RULES, DEFAULT_HANDLERS)

    enabled = config.enabled_modules()
    if len(enabled) < len(ClinicalModule):
        catalog = catalog.filtered(enabled)

    if config.rules_disabled_ids:
        catalog = catalog.with_disabled(config.rules_disabled_ids)

    logger.info(
        f"Built default rule catalog v{catalog.version}: "
        f"{len(catalog.active_rules)} active of {len(catalog)} rules"
    )
    return catalog

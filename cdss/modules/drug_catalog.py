"""
Drug Interaction & Dosing Catalog
Static drug-drug interactions, drug-condition and drug-allergy
contraindications, renal dose table, drug classes and name synonyms
"""

import logging
import re
import unicodedata
from types import MappingProxyType
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from cdss.exceptions import ValidationError
from cdss.schemas import (
    DrugInteractionEntry, ContraindicationEntry, RenalDoseAdjustment, DrugClassReference,
    InteractionSeverity, ContraindicationKind
)

logger = logging.getLogger(__name__)

DEFAULT_DRUG_CATALOG_VERSION = "2024.1"

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def normalize_term(term: str) -> str:
    """Lowercase, strip accents and collapse separators to '_' ("Métoprolol 50 mg" -> "metoprolol_50_mg")"""
    decomposed = unicodedata.normalize("NFKD", term.casefold())
    ascii_only = "".join(c for c in decomposed if not unicodedata.combining(c))
    return _NON_ALNUM.sub("_", ascii_only).strip("_")


def _contains_tokens(term: str, key: str) -> bool:
    """True if key's '_' tokens appear contiguously in term's tokens"""
    if term == key:
        return True
    term_tokens = term.split("_")
    key_tokens = key.split("_")
    width = len(key_tokens)
    return any(
        term_tokens[i:i + width] == key_tokens
        for i in range(len(term_tokens) - width + 1)
    )


class DrugCatalog:
    """
    Immutable drug knowledge base

    Drug entries may name either a canonical drug or a drug class key; a class
    key matches any of its member drugs.
    """

    def __init__(
        self,
        interactions: Iterable[DrugInteractionEntry],
        contraindications: Iterable[ContraindicationEntry],
        allergy_entries: Iterable[ContraindicationEntry],
        renal_doses: Mapping[str, RenalDoseAdjustment],
        drug_classes: Iterable[DrugClassReference],
        aliases: Optional[Mapping[str, str]] = None,
        condition_synonyms: Optional[Mapping[str, Sequence[str]]] = None,
        allergen_synonyms: Optional[Mapping[str, Sequence[str]]] = None,
        allergen_classes: Optional[Mapping[str, str]] = None,
        version: str = DEFAULT_DRUG_CATALOG_VERSION
    ):
        self.interactions: Tuple[DrugInteractionEntry, ...] = tuple(interactions)
        self.contraindications: Tuple[ContraindicationEntry, ...] = tuple(contraindications)
        self.allergy_entries: Tuple[ContraindicationEntry, ...] = tuple(allergy_entries)
        self.version = version

        classes: Dict[str, DrugClassReference] = {}
        for drug_class in drug_classes:
            if drug_class.key in classes:
                raise ValidationError(f"Duplicate drug class {drug_class.key}", field="drug_classes")
            classes[drug_class.key] = drug_class
        self.drug_classes: Mapping[str, DrugClassReference] = MappingProxyType(classes)

        self.renal_doses: Mapping[str, RenalDoseAdjustment] = MappingProxyType(
            {normalize_term(k): v for k, v in renal_doses.items()}
        )

        members: Dict[str, List[str]] = {}
        for drug_class in classes.values():
            for member in drug_class.members:
                members.setdefault(member, []).append(drug_class.key)
        self._class_index: Mapping[str, Tuple[str, ...]] = MappingProxyType(
            {drug: tuple(keys) for drug, keys in members.items()}
        )

        known: Set[str] = set(members) | set(self.renal_doses)
        for entry in self.interactions:
            known.update(k for k in (entry.drug_a, entry.drug_b) if k not in classes)
        for entry in self.contraindications + self.allergy_entries:
            if entry.drug not in classes:
                known.add(entry.drug)
        self._known: FrozenSet[str] = frozenset(known)

        resolved_aliases: Dict[str, str] = {}
        for alias, canonical in (aliases or {}).items():
            if canonical not in self._known:
                raise ValidationError(
                    f"Alias {alias!r} points to unknown drug {canonical!r}",
                    field="aliases"
                )
            resolved_aliases[normalize_term(alias)] = canonical
        self.aliases: Mapping[str, str] = MappingProxyType(resolved_aliases)

        self.condition_synonyms = MappingProxyType(
            {k: tuple(normalize_term(s) for s in v) for k, v in (condition_synonyms or {}).items()}
        )
        self.allergen_synonyms = MappingProxyType(
            {k: tuple(normalize_term(s) for s in v) for k, v in (allergen_synonyms or {}).items()}
        )
        self.allergen_classes = MappingProxyType(dict(allergen_classes or {}))
        for class_key in self.allergen_classes.values():
            if class_key not in classes:
                raise ValidationError(f"Unknown allergen class {class_key!r}", field="allergen_classes")

    # =========================================================================
    # Drug resolution
    # =========================================================================

    @property
    def known_drugs(self) -> FrozenSet[str]:
        return self._known

    def is_class(self, key: str) -> bool:
        return key in self.drug_classes

    def resolve_drug(self, name: str) -> Optional[str]:
        """
        Canonical generic name for a medication string, or None if unknown

        Tries the full normalized name, then the leading word
        ("metformin 500 mg" -> "metformin").
        """
        normalized = normalize_term(name)
        if not normalized:
            return None

        candidates = [normalized]
        leading = normalized.split("_", 1)[0]
        if leading != normalized:
            candidates.append(leading)

        for candidate in candidates:
            if candidate in self._known:
                return candidate
            if candidate in self.aliases:
                return self.aliases[candidate]
        return None

    def classes_of(self, drug: str) -> Tuple[str, ...]:
        return self._class_index.get(drug, ())

    def matches(self, drug: str, key: str) -> bool:
        """True if a canonical drug is the catalog key or belongs to that class"""
        if drug == key:
            return True
        return key in self.classes_of(drug)

    # =========================================================================
    # Conditions & allergens
    # =========================================================================

    def condition_matches(self, term: str, key: str) -> bool:
        """
        True if a patient condition term denotes the catalog condition key

        Matching is token based and one-directional: "ckd_stage_4_5" denotes
        "ckd", but "ckd" does not denote "ckd_stage_4_5".
        """
        normalized = normalize_term(term)
        names = (key,) + self.condition_synonyms.get(key, ())
        return any(_contains_tokens(normalized, name) for name in names)

    def allergen_keys(self, term: str) -> List[str]:
        """Allergen keys a patient allergy term refers to"""
        normalized = normalize_term(term)
        return [
            key for key, synonyms in self.allergen_synonyms.items()
            if any(_contains_tokens(normalized, name) for name in (key,) + synonyms)
        ]

    def allergy_class(self, term: str) -> Optional[str]:
        """Drug class an allergy term covers ("penicillins" -> penicillins)"""
        normalized = normalize_term(term)
        if normalized in self.drug_classes:
            return normalized
        for key in self.allergen_keys(term):
            if key in self.allergen_classes:
                return self.allergen_classes[key]
        return None


# =============================================================================
# Drug Classes
# =============================================================================

DRUG_CLASSES: List[DrugClassReference] = [
    DrugClassReference(key="ace_inhibitors", label="IEC (Inhibiteurs Enzyme Conversion)",
                       members=["lisinopril", "ramipril", "enalapril", "perindopril", "captopril"]),
    DrugClassReference(key="arbs", label="ARA2 (Antagonistes Récepteurs Angiotensine)",
                       members=["losartan", "valsartan", "irbesartan", "candesartan", "telmisartan", "olmesartan"]),
    DrugClassReference(key="beta_blockers", label="Bêta-bloquants",
                       members=["metoprolol", "bisoprolol", "carvedilol", "atenolol", "propranolol", "nebivolol"]),
    DrugClassReference(key="beta_blockers_non_selective", label="Bêta-bloquants non sélectifs",
                       members=["propranolol", "nadolol", "timolol", "carvedilol", "labetalol"]),
    DrugClassReference(key="calcium_channel_blockers", label="Inhibiteurs Calciques",
                       members=["amlodipine", "nifedipine", "verapamil", "diltiazem"]),
    DrugClassReference(key="diuretics", label="Diurétiques",
                       members=["furosemide", "hydrochlorothiazide", "spironolactone", "eplerenone", "indapamide"]),
    DrugClassReference(key="thiazides", label="Diurétiques thiazidiques",
                       members=["hydrochlorothiazide", "chlorthalidone", "indapamide", "metolazone"]),
    DrugClassReference(key="potassium_sparing_diuretics", label="Diurétiques épargneurs de potassium",
                       members=["spironolactone", "eplerenone", "amiloride"]),
    DrugClassReference(key="anticoagulants", label="Anticoagulants",
                       members=["warfarin", "rivaroxaban", "apixaban", "dabigatran", "edoxaban", "enoxaparin"]),
    DrugClassReference(key="antiplatelets", label="Antiagrégants",
                       members=["aspirin", "clopidogrel", "prasugrel", "ticagrelor"]),
    DrugClassReference(key="statins", label="Statines",
                       members=["atorvastatin", "rosuvastatin", "simvastatin", "pravastatin", "fluvastatin"]),
    DrugClassReference(key="nsaids", label="AINS",
                       members=["ibuprofen", "naproxen", "diclofenac", "celecoxib", "meloxicam",
                                "piroxicam", "ketoprofen"]),
    DrugClassReference(key="antidiabetics", label="Antidiabétiques",
                       members=["metformin", "glimepiride", "sitagliptin", "empagliflozin", "liraglutide"]),
    DrugClassReference(key="glitazones", label="Glitazones",
                       members=["pioglitazone", "rosiglitazone"]),
    DrugClassReference(key="anticholinergics", label="Anticholinergiques",
                       members=["oxybutynin", "tolterodine", "solifenacin", "atropine", "scopolamine"]),
    DrugClassReference(key="corticosteroids", label="Corticoïdes",
                       members=["prednisone", "prednisolone", "methylprednisolone", "dexamethasone",
                                "hydrocortisone"]),
    DrugClassReference(key="penicillins", label="Pénicillines",
                       members=["penicillin", "amoxicillin", "ampicillin", "piperacillin", "oxacillin",
                                "cloxacillin"]),
    DrugClassReference(key="cephalosporins", label="Céphalosporines",
                       members=["cephalexin", "cefazolin", "cefuroxime", "ceftriaxone", "cefepime"]),
    DrugClassReference(key="sulfonamide_antibiotics", label="Sulfamides antibiotiques",
                       members=["sulfamethoxazole", "sulfadiazine"]),
    DrugClassReference(key="macrolides", label="Macrolides",
                       members=["clarithromycin", "erythromycin", "azithromycin"]),
    DrugClassReference(key="fluoroquinolones", label="Fluoroquinolones",
                       members=["ciprofloxacin", "levofloxacin", "moxifloxacin"]),
    DrugClassReference(key="aminoglycosides", label="Aminosides",
                       members=["gentamicin", "amikacin", "tobramycin"]),
    DrugClassReference(key="opioids", label="Opioïdes",
                       members=["morphine", "codeine", "fentanyl", "tramadol", "oxycodone", "hydromorphone"]),
    DrugClassReference(key="prostaglandin_analogs", label="Analogues des prostaglandines",
                       members=["latanoprost", "bimatoprost", "travoprost"]),
]


# =============================================================================
# Drug-Drug Interactions
# =============================================================================

DRUG_INTERACTIONS: List[DrugInteractionEntry] = [
    # ACE inhibitors + potassium-sparing diuretics
    DrugInteractionEntry(
        drug_a="lisinopril", drug_b="spironolactone",
        severity=InteractionSeverity.MAJOR,
        mechanism="Both drugs increase potassium retention",
        effect="Risque d'hyperkaliémie sévère pouvant être fatale",
        management="Surveiller kaliémie régulièrement (hebdomadaire au début). Éviter si K+ >5.0 mEq/L. "
                   "Envisager réduction de dose.",
        references=["ESC Heart Failure Guidelines 2021", "RALES Trial"]
    ),
    DrugInteractionEntry(
        drug_a="ramipril", drug_b="spironolactone",
        severity=InteractionSeverity.MAJOR,
        mechanism="Both drugs increase potassium retention",
        effect="Risque d'hyperkaliémie sévère pouvant être fatale",
        management="Surveiller kaliémie régulièrement. Éviter si K+ >5.0 mEq/L.",
        references=["ESC Heart Failure Guidelines 2021"]
    ),
    DrugInteractionEntry(
        drug_a="enalapril", drug_b="eplerenone",
        severity=InteractionSeverity.MAJOR,
        mechanism="Both drugs increase potassium retention",
        effect="Risque d'hyperkaliémie",
        management="Surveillance kaliémie. Contre-indiqué si K+ >5.0 mEq/L ou DFG <30.",
        references=["EPHESUS Trial", "ESC Guidelines"]
    ),
    # ACE inhibitors + NSAIDs
    DrugInteractionEntry(
        drug_a="lisinopril", drug_b="ibuprofen",
        severity=InteractionSeverity.MAJOR,
        mechanism="NSAIDs inhibit prostaglandin-mediated renal effects of ACE inhibitors",
        effect="Diminution effet antihypertenseur, risque IRA, hyperkaliémie",
        management="Éviter AINS si possible. Si nécessaire, utiliser dose minimale pour durée minimale. "
                   "Surveiller fonction rénale et kaliémie.",
        references=["FDA Drug Safety Communication", "KDIGO Guidelines"]
    ),
    DrugInteractionEntry(
        drug_a="ramipril", drug_b="diclofenac",
        severity=InteractionSeverity.MAJOR,
        mechanism="NSAIDs reduce renal blood flow and antagonize ACE inhibitor effects",
        effect="Risque de détérioration fonction rénale et hyperkaliémie",
        management="Éviter association. Alternative: paracétamol ou opioïdes faibles.",
        references=["EMA Safety Review"]
    ),
    # Anticoagulants + antiplatelets
    DrugInteractionEntry(
        drug_a="warfarin", drug_b="aspirin",
        severity=InteractionSeverity.MAJOR,
        mechanism="Additive anticoagulant and antiplatelet effects",
        effect="Risque hémorragique significativement augmenté",
        management="Évaluer bénéfice/risque. Si nécessaire, utiliser aspirine faible dose (75-100mg). "
                   "Surveiller INR étroitement. PPI recommandé.",
        references=["WOEST Trial", "ESC Guidelines on Dual Antithrombotic Therapy"]
    ),
    DrugInteractionEntry(
        drug_a="rivaroxaban", drug_b="clopidogrel",
        severity=InteractionSeverity.MAJOR,
        mechanism="Additive antithrombotic effects",
        effect="Risque hémorragique augmenté",
        management="Limiter durée de triple thérapie. Utiliser rivaroxaban 15mg. PPI systématique.",
        references=["PIONEER AF-PCI Trial"]
    ),
    DrugInteractionEntry(
        drug_a="apixaban", drug_b="aspirin",
        severity=InteractionSeverity.MODERATE,
        mechanism="Additive bleeding risk",
        effect="Augmentation risque hémorragique",
        management="Évaluer nécessité de l'association. Préférer apixaban 2.5mg bid si association nécessaire.",
        references=["ARISTOTLE Trial", "ESC AF Guidelines 2020"]
    ),
    # Digoxin
    DrugInteractionEntry(
        drug_a="digoxin", drug_b="amiodarone",
        severity=InteractionSeverity.MAJOR,
        mechanism="Amiodarone inhibits P-glycoprotein and CYP3A4",
        effect="Augmentation concentration digoxine de 70-100%",
        management="Réduire dose digoxine de 50% lors de l'introduction amiodarone. Surveiller digoxinémie.",
        references=["Product Monograph Cordarone"]
    ),
    DrugInteractionEntry(
        drug_a="digoxin", drug_b="verapamil",
        severity=InteractionSeverity.MAJOR,
        mechanism="Verapamil inhibits P-glycoprotein",
        effect="Augmentation concentration digoxine de 50-75%",
        management="Réduire dose digoxine de 30-50%. Surveiller FC et digoxinémie.",
        references=["Clinical Pharmacology Database"]
    ),
    DrugInteractionEntry(
        drug_a="digoxin", drug_b="clarithromycin",
        severity=InteractionSeverity.MAJOR,
        mechanism="Macrolides inhibit P-glycoprotein and gut flora",
        effect="Augmentation concentration digoxine jusqu'à 100%",
        management="Éviter association si possible. Sinon surveiller digoxinémie et signes toxicité.",
        references=["FDA Warning Letter"]
    ),
    # Statins
    DrugInteractionEntry(
        drug_a="simvastatin", drug_b="amiodarone",
        severity=InteractionSeverity.MAJOR,
        mechanism="CYP3A4 inhibition by amiodarone",
        effect="Risque accru de myopathie et rhabdomyolyse",
        management="Ne pas dépasser simvastatine 10mg/jour. Préférer pravastatine ou rosuvastatine.",
        references=["FDA Drug Safety Communication 2011"]
    ),
    DrugInteractionEntry(
        drug_a="atorvastatin", drug_b="clarithromycin",
        severity=InteractionSeverity.MAJOR,
        mechanism="CYP3A4 inhibition",
        effect="Risque myopathie significativement augmenté",
        management="Suspendre statine pendant antibiothérapie ou utiliser azithromycine à la place.",
        references=["Product Monograph", "CMAJ Study"]
    ),
    DrugInteractionEntry(
        drug_a="simvastatin", drug_b="diltiazem",
        severity=InteractionSeverity.MODERATE,
        mechanism="CYP3A4 inhibition",
        effect="Augmentation exposition simvastatine",
        management="Limiter simvastatine à 10mg/jour. Alternative: atorvastatine ou rosuvastatine.",
        references=["FDA Guidance"]
    ),
    # Metformin
    DrugInteractionEntry(
        drug_a="metformin", drug_b="iodinated_contrast",
        severity=InteractionSeverity.MAJOR,
        mechanism="Risk of contrast-induced nephropathy potentiating lactic acidosis",
        effect="Risque d'acidose lactique si IRA post-injection",
        management="Suspendre metformine 48h avant et après injection iodée. Vérifier créatinine 48h après.",
        references=["ESUR Guidelines", "ACR Manual on Contrast Media"]
    ),
    DrugInteractionEntry(
        drug_a="metformin", drug_b="alcohol",
        severity=InteractionSeverity.MAJOR,
        mechanism="Both impair gluconeogenesis and lactate metabolism",
        effect="Risque accru d'acidose lactique et hypoglycémie",
        management="Limiter consommation alcool. Éviter alcool à jeun.",
        references=["Product Monograph"]
    ),
    # Potassium and ACE inhibitors
    DrugInteractionEntry(
        drug_a="potassium_chloride", drug_b="lisinopril",
        severity=InteractionSeverity.MAJOR,
        mechanism="ACE inhibitors reduce potassium excretion",
        effect="Risque d'hyperkaliémie sévère",
        management="Éviter supplémentation potassique sauf si kaliémie documentée basse. Surveillance étroite.",
        references=["KDIGO CKD Guidelines"]
    ),
    # Anticoagulants and CYP interactions
    DrugInteractionEntry(
        drug_a="warfarin", drug_b="fluconazole",
        severity=InteractionSeverity.MAJOR,
        mechanism="CYP2C9 and CYP3A4 inhibition",
        effect="Augmentation INR pouvant être massive",
        management="Réduire dose warfarine de 25-50%. Contrôler INR après 3-5 jours.",
        references=["Clinical Pharmacology"]
    ),
    DrugInteractionEntry(
        drug_a="warfarin", drug_b="amoxicillin",
        severity=InteractionSeverity.MODERATE,
        mechanism="Reduction of vitamin K-producing gut flora",
        effect="Augmentation modérée de l'INR",
        management="Surveiller INR pendant et après antibiothérapie.",
        references=["BJCP Study"]
    ),
    # Beta-blockers
    DrugInteractionEntry(
        drug_a="metoprolol", drug_b="verapamil",
        severity=InteractionSeverity.MAJOR,
        mechanism="Additive negative inotropic and chronotropic effects",
        effect="Risque de bradycardie sévère, BAV, insuffisance cardiaque",
        management="Éviter association. Si nécessaire, surveillance ECG étroite.",
        references=["ESC Guidelines"]
    ),
    DrugInteractionEntry(
        drug_a="bisoprolol", drug_b="diltiazem",
        severity=InteractionSeverity.MAJOR,
        mechanism="Additive AV node suppression",
        effect="Risque de bradycardie et BAV",
        management="Éviter si possible. ECG de contrôle si association nécessaire.",
        references=["Product Monograph"]
    ),
    # QT prolongation
    DrugInteractionEntry(
        drug_a="amiodarone", drug_b="sotalol",
        severity=InteractionSeverity.CONTRAINDICATED,
        mechanism="Both drugs prolong QT interval",
        effect="Risque de torsades de pointes potentiellement fatal",
        management="CONTRE-INDIQUÉ. Ne jamais associer.",
        references=["CredibleMeds QT Database", "ESC Arrhythmia Guidelines"]
    ),
    DrugInteractionEntry(
        drug_a="amiodarone", drug_b="haloperidol",
        severity=InteractionSeverity.MAJOR,
        mechanism="Additive QT prolongation",
        effect="Risque de torsades de pointes",
        management="Éviter association. ECG avant et surveillance si nécessaire. Corriger hypokaliémie.",
        references=["CredibleMeds"]
    ),
    DrugInteractionEntry(
        drug_a="ciprofloxacin", drug_b="ondansetron",
        severity=InteractionSeverity.MODERATE,
        mechanism="Both drugs can prolong QT",
        effect="Risque modéré d'allongement QT",
        management="ECG si facteurs de risque (hypokaliémie, cardiopathie). Préférer métoclopramide.",
        references=["FDA Warning"]
    ),
    # Hypoglycemic agents
    DrugInteractionEntry(
        drug_a="glimepiride", drug_b="fluconazole",
        severity=InteractionSeverity.MAJOR,
        mechanism="CYP2C9 inhibition increases sulfonylurea levels",
        effect="Risque d'hypoglycémie sévère",
        management="Réduire dose sulfamide. Surveillance glycémique renforcée.",
        references=["Diabetes Care"]
    ),
    # Ophthalmology
    DrugInteractionEntry(
        drug_a="timolol", drug_b="metoprolol",
        severity=InteractionSeverity.MODERATE,
        mechanism="Systemic absorption of ophthalmic beta-blocker",
        effect="Effet bêta-bloquant additif, risque bradycardie",
        management="Surveillance FC et TA. Occlusion punctale après instillation.",
        references=["AAO Guidelines"]
    ),
    DrugInteractionEntry(
        drug_a="latanoprost", drug_b="bimatoprost",
        severity=InteractionSeverity.MODERATE,
        mechanism="Same prostaglandin analog class",
        effect="Pas de bénéfice additif, risque irritation accru",
        management="Ne pas associer deux analogues des prostaglandines.",
        references=["AAO Glaucoma PPP"]
    ),
    # Dialysis-relevant
    DrugInteractionEntry(
        drug_a="gentamicin", drug_b="vancomycin",
        severity=InteractionSeverity.MAJOR,
        mechanism="Additive nephrotoxicity and ototoxicity",
        effect="Risque néphrotoxicité et ototoxicité augmenté",
        management="Éviter si possible. Dosages thérapeutiques obligatoires. Surveiller fonction rénale et audition.",
        references=["IDSA Guidelines"]
    ),
    DrugInteractionEntry(
        drug_a="ciclosporin", drug_b="verapamil",
        severity=InteractionSeverity.MAJOR,
        mechanism="CYP3A4 and P-glycoprotein inhibition",
        effect="Augmentation concentration ciclosporine de 40-50%",
        management="Réduire dose ciclosporine. Surveiller taux résiduels.",
        references=["Transplantation Guidelines"]
    ),

    # Class-level entries, used when no drug-level entry covers the pair
    DrugInteractionEntry(
        drug_a="ace_inhibitors", drug_b="potassium_sparing_diuretics",
        severity=InteractionSeverity.MAJOR,
        mechanism="Both drug classes increase potassium retention",
        effect="Risque d'hyperkaliémie",
        management="Surveiller kaliémie et créatinine. Éviter si K+ >5.0 mEq/L.",
        references=["ESC Heart Failure Guidelines 2021"]
    ),
    DrugInteractionEntry(
        drug_a="arbs", drug_b="potassium_sparing_diuretics",
        severity=InteractionSeverity.MAJOR,
        mechanism="Both drug classes increase potassium retention",
        effect="Risque d'hyperkaliémie",
        management="Surveiller kaliémie et créatinine. Éviter si K+ >5.0 mEq/L.",
        references=["ESC Heart Failure Guidelines 2021"]
    ),
    DrugInteractionEntry(
        drug_a="ace_inhibitors", drug_b="nsaids",
        severity=InteractionSeverity.MAJOR,
        mechanism="NSAIDs reduce renal blood flow and antagonize ACE inhibitor effects",
        effect="Diminution effet antihypertenseur, risque IRA, hyperkaliémie",
        management="Éviter AINS si possible. Surveiller fonction rénale et kaliémie.",
        references=["KDIGO Guidelines"]
    ),
    DrugInteractionEntry(
        drug_a="anticoagulants", drug_b="nsaids",
        severity=InteractionSeverity.MAJOR,
        mechanism="Antiplatelet effect and gastric mucosal injury add to anticoagulation",
        effect="Risque hémorragique augmenté, notamment digestif",
        management="Éviter AINS. Paracétamol préféré. IPP si association inévitable.",
        references=["ESC Guidelines on Dual Antithrombotic Therapy"]
    ),
    DrugInteractionEntry(
        drug_a="anticoagulants", drug_b="antiplatelets",
        severity=InteractionSeverity.MAJOR,
        mechanism="Additive antithrombotic effects",
        effect="Risque hémorragique augmenté",
        management="Limiter la durée de l'association. PPI recommandé.",
        references=["ESC Guidelines on Dual Antithrombotic Therapy"]
    ),
    DrugInteractionEntry(
        drug_a="statins", drug_b="macrolides",
        severity=InteractionSeverity.MODERATE,
        mechanism="CYP3A4 inhibition by macrolides",
        effect="Risque de myopathie augmenté",
        management="Suspendre la statine pendant l'antibiothérapie ou préférer azithromycine.",
        references=["Product Monograph"]
    ),
]


# =============================================================================
# Drug-Condition Contraindications
# =============================================================================

def _condition(drug, condition, severity, rationale, management):
    return ContraindicationEntry(
        drug=drug,
        condition_or_allergy=condition,
        kind=ContraindicationKind.CONDITION,
        severity=severity,
        rationale=rationale,
        management=management
    )


CONDITION_CONTRAINDICATIONS: List[ContraindicationEntry] = [
    # Renal impairment
    _condition("metformin", "ckd_stage_4_5", InteractionSeverity.CONTRAINDICATED,
               "Risque d'acidose lactique potentiellement fatale",
               "CONTRE-INDIQUÉ si DFG <30 mL/min. Réduire dose si DFG 30-45."),
    _condition("metformin", "dialysis", InteractionSeverity.CONTRAINDICATED,
               "Accumulation et acidose lactique",
               "CONTRE-INDIQUÉ en dialyse."),
    _condition("nsaids", "ckd", InteractionSeverity.MAJOR,
               "Aggravation insuffisance rénale, rétention hydrosodée",
               "Éviter AINS. Utiliser paracétamol. Si nécessaire, durée minimale."),
    _condition("spironolactone", "ckd_stage_4_5", InteractionSeverity.MAJOR,
               "Risque majeur d'hyperkaliémie",
               "Éviter si DFG <30. Surveillance kaliémie rapprochée si DFG 30-45."),
    # Heart failure
    _condition("nsaids", "heart_failure", InteractionSeverity.MAJOR,
               "Aggravation insuffisance cardiaque, rétention hydrique",
               "Éviter AINS en IC. Paracétamol préféré."),
    _condition("verapamil", "heart_failure_reduced_ef", InteractionSeverity.CONTRAINDICATED,
               "Aggravation IC, risque décompensation",
               "CONTRE-INDIQUÉ dans IC à FEVG réduite. Alternative: amlodipine si CCB nécessaire."),
    _condition("diltiazem", "heart_failure_reduced_ef", InteractionSeverity.CONTRAINDICATED,
               "Aggravation IC",
               "CONTRE-INDIQUÉ dans HFrEF."),
    _condition("glitazones", "heart_failure", InteractionSeverity.CONTRAINDICATED,
               "Aggravation IC, œdème",
               "CONTRE-INDIQUÉ. Préférer SGLT2i (bénéfique dans IC)."),
    # Arrhythmia
    _condition("digoxin", "wpw_syndrome", InteractionSeverity.CONTRAINDICATED,
               "Risque de fibrillation ventriculaire",
               "CONTRE-INDIQUÉ. Utiliser procaïnamide ou cardioversion."),
    # Diabetes
    _condition("beta_blockers", "diabetes_insulin_treated", InteractionSeverity.MODERATE,
               "Masquage signes hypoglycémie (tachycardie, tremblements)",
               "Éducation patient sur signes alternatifs. Préférer BB cardiosélectifs."),
    _condition("thiazides", "diabetes", InteractionSeverity.MODERATE,
               "Aggravation contrôle glycémique",
               "Surveillance glycémique. Ajuster antidiabétiques si nécessaire."),
    # Glaucoma
    _condition("anticholinergics", "narrow_angle_glaucoma", InteractionSeverity.CONTRAINDICATED,
               "Risque de crise de glaucome aigu",
               "CONTRE-INDIQUÉ. Vérifier type glaucome avant prescription."),
    _condition("corticosteroids", "open_angle_glaucoma", InteractionSeverity.MAJOR,
               "Élévation PIO, aggravation glaucome",
               "Éviter si possible. Surveillance PIO si nécessaire. Forme oculaire à haut risque."),
    # Asthma / COPD
    _condition("beta_blockers_non_selective", "asthma", InteractionSeverity.CONTRAINDICATED,
               "Bronchospasme sévère potentiellement fatal",
               "CONTRE-INDIQUÉ. Utiliser BB cardiosélectifs avec prudence si nécessaire."),
    _condition("beta_blockers_non_selective", "copd_severe", InteractionSeverity.MAJOR,
               "Risque de bronchospasme",
               "Préférer BB cardiosélectifs à dose progressive."),
    # Bleeding
    _condition("anticoagulants", "active_bleeding", InteractionSeverity.CONTRAINDICATED,
               "Aggravation hémorragie",
               "CONTRE-INDIQUÉ en saignement actif non contrôlé."),
    _condition("nsaids", "peptic_ulcer", InteractionSeverity.MAJOR,
               "Risque hémorragie digestive haute",
               "Éviter AINS. Si nécessaire, associer IPP à forte dose."),
    # Hepatic impairment
    _condition("statins", "active_liver_disease", InteractionSeverity.CONTRAINDICATED,
               "Risque hépatotoxicité",
               "CONTRE-INDIQUÉ si transaminases >3x normale."),
    _condition("methotrexate", "liver_cirrhosis", InteractionSeverity.CONTRAINDICATED,
               "Risque hépatotoxicité sévère",
               "CONTRE-INDIQUÉ en cirrhose."),
]


# =============================================================================
# Allergen Cross-Reactivity
# =============================================================================

# Reaction grade -> interaction severity
ALLERGY_SEVERITY = {
    "life_threatening": InteractionSeverity.CONTRAINDICATED,
    "severe": InteractionSeverity.MAJOR,
    "moderate": InteractionSeverity.MODERATE,
    "mild": InteractionSeverity.MINOR,
}


def _allergy(drug, allergen, cross_reactivity, grade, recommendation):
    return ContraindicationEntry(
        drug=drug,
        condition_or_allergy=allergen,
        kind=ContraindicationKind.ALLERGY,
        severity=ALLERGY_SEVERITY[grade],
        rationale=recommendation,
        management=recommendation,
        cross_reactivity=cross_reactivity
    )


ALLERGY_CROSS_REACTIVITY: List[ContraindicationEntry] = [
    # Penicillins
    _allergy("amoxicillin", "penicillin", True, "life_threatening",
             "CONTRE-INDIQUÉ si allergie vraie pénicilline. Utiliser macrolide ou fluoroquinolone."),
    _allergy("ampicillin", "penicillin", True, "life_threatening",
             "CONTRE-INDIQUÉ si allergie pénicilline."),
    _allergy("cephalexin", "penicillin", True, "severe",
             "Risque réactivité croisée ~1-2%. Éviter si antécédent anaphylaxie. C3G ont risque plus faible."),
    _allergy("ceftriaxone", "penicillin", False, "moderate",
             "Risque très faible (<0.5%). Peut être utilisé avec précaution si allergie non anaphylactique."),
    _allergy("meropenem", "penicillin", False, "moderate",
             "Risque réactivité croisée très faible (<1%). Utilisable sous surveillance si nécessaire."),
    # Sulfonamides
    _allergy("sulfamethoxazole", "sulfonamide_antibiotics", True, "life_threatening",
             "CONTRE-INDIQUÉ si allergie sulfamides antibiotiques."),
    _allergy("furosemide", "sulfonamide_antibiotics", False, "mild",
             "Structure différente. Risque de réactivité croisée NON démontré. Peut être utilisé."),
    _allergy("hydrochlorothiazide", "sulfonamide_antibiotics", False, "mild",
             "Pas de réactivité croisée prouvée. Peut être utilisé avec prudence."),
    # NSAIDs
    _allergy("ibuprofen", "aspirin", True, "severe",
             "Réaction croisée possible (15-20%). Préférer paracétamol ou COX-2 sélectif."),
    _allergy("naproxen", "aspirin", True, "severe",
             "Réaction croisée fréquente entre AINS. Éviter tous AINS si anaphylaxie aspirine."),
    _allergy("celecoxib", "aspirin", False, "moderate",
             "Risque réactivité croisée très faible (~4%). Alternative possible sous surveillance."),
    # Opioids
    _allergy("codeine", "morphine", True, "severe",
             "Réaction croisée possible (phénanthrènes). Préférer fentanyl (phénylpipéridine)."),
    _allergy("fentanyl", "morphine", False, "mild",
             "Structure différente (phénylpipéridine). Alternative sûre aux phénanthrènes."),
    # Contrast media
    _allergy("iodinated_contrast", "iodinated_contrast", True, "life_threatening",
             "Prémédication obligatoire (corticoïdes + antihistaminiques). Utiliser produit iso-osmolaire."),
]


# =============================================================================
# Renal Dose Adjustments
# =============================================================================

def _renal(drug, normal, egfr30_59, egfr15_29, egfr_below15, dialysis, notes):
    return RenalDoseAdjustment(
        drug=drug,
        normal_dose=normal,
        egfr30_59=egfr30_59,
        egfr15_29=egfr15_29,
        egfr_below15=egfr_below15,
        dialysis=dialysis,
        notes=notes
    )


RENAL_DOSE_ADJUSTMENTS: Dict[str, RenalDoseAdjustment] = {
    # Cardiovascular
    "lisinopril": _renal("Lisinopril", "10-40 mg/jour", "5-20 mg/jour", "2.5-10 mg/jour", "2.5-5 mg/jour",
                         "Dialysable - donner après séance", "Surveiller kaliémie et créatinine"),
    "ramipril": _renal("Ramipril", "2.5-10 mg/jour", "1.25-5 mg/jour", "1.25-2.5 mg/jour", "1.25 mg/jour max",
                       "Partiellement dialysable", "Initier à dose faible"),
    "bisoprolol": _renal("Bisoprolol", "2.5-10 mg/jour", "Pas d'ajustement", "Pas d'ajustement",
                         "Pas d'ajustement", "Non dialysable", "Pas d'ajustement nécessaire"),
    "metoprolol": _renal("Métoprolol", "50-200 mg/jour", "Pas d'ajustement", "Pas d'ajustement",
                         "Pas d'ajustement", "Non dialysable", "Métabolisme hépatique"),
    "atenolol": _renal("Aténolol", "50-100 mg/jour", "50 mg/jour", "25-50 mg/jour", "25 mg/jour",
                       "Dialysable - 25mg après séance", "Réduction significative nécessaire"),
    "digoxin": _renal("Digoxine", "0.125-0.25 mg/jour", "0.125 mg/jour", "0.0625-0.125 mg/jour",
                      "0.0625 mg/48h", "Non dialysable - prudence", "Surveiller digoxinémie cible 0.5-1 ng/mL"),
    "spironolactone": _renal("Spironolactone", "25-50 mg/jour", "12.5-25 mg/jour", "Éviter si possible",
                             "Contre-indiqué", "Contre-indiqué", "Risque hyperkaliémie majeur"),
    # Anticoagulants
    "rivaroxaban": _renal("Rivaroxaban", "20 mg/jour", "15 mg/jour", "15 mg/jour avec prudence",
                          "Non recommandé", "Non recommandé", "Éviter si ClCr <15 mL/min"),
    "apixaban": _renal("Apixaban", "5 mg x2/jour", "5 mg x2/jour", "2.5 mg x2/jour",
                       "2.5 mg x2/jour si bénéfice>risque", "Données limitées - 2.5mg x2",
                       "Moins dépendant fonction rénale que autres AOD"),
    "dabigatran": _renal("Dabigatran", "150 mg x2/jour", "110 mg x2/jour", "Contre-indiqué", "Contre-indiqué",
                         "Contre-indiqué", "Très dépendant élimination rénale"),
    "enoxaparin": _renal("Enoxaparine", "1 mg/kg x2/jour", "Pas d'ajustement", "1 mg/kg x1/jour",
                         "0.5 mg/kg x1/jour", "Éviter - anti-Xa si nécessaire", "Surveiller anti-Xa si IRC sévère"),
    # Antibiotics
    "amoxicillin": _renal("Amoxicilline", "500 mg x3/jour", "500 mg x2/jour", "500 mg x1/jour",
                          "250-500 mg x1/jour", "Donner après dialyse", "Ajustement important"),
    "ciprofloxacin": _renal("Ciprofloxacine", "500 mg x2/jour", "250-500 mg x2/jour", "250-500 mg x1/jour",
                            "250 mg x1/jour", "Après dialyse si possible", "Risque tendinopathie accru si IRC"),
    "levofloxacin": _renal("Lévofloxacine", "500-750 mg/jour", "500 mg puis 250 mg/jour",
                           "500 mg puis 250 mg/48h", "500 mg puis 250 mg/48h", "Après dialyse",
                           "Ajustement intervalle"),
    "vancomycin": _renal("Vancomycine", "15 mg/kg x2/jour", "Selon taux résiduels", "15 mg/kg puis selon taux",
                         "15 mg/kg puis 500-1000mg/48-72h", "15-20 mg/kg post-HD selon taux",
                         "OBLIGATOIRE: dosage taux résiduels"),
    "gentamicin": _renal("Gentamicine", "5-7 mg/kg/jour", "5 mg/kg puis intervalle prolongé",
                         "5 mg/kg puis selon taux", "Éviter sauf nécessité absolue", "2 mg/kg post-HD",
                         "Néphro/ototoxique - durée minimale"),
    # Antidiabetics
    "metformin": _renal("Metformine", "500-2000 mg/jour", "500-1000 mg/jour max", "Contre-indiqué",
                        "Contre-indiqué", "Contre-indiqué", "Risque acidose lactique"),
    "sitagliptin": _renal("Sitagliptine", "100 mg/jour", "50 mg/jour", "25 mg/jour", "25 mg/jour",
                          "25 mg/jour - non dialysable", "Ajustement simple par paliers"),
    "empagliflozin": _renal("Empagliflozine", "10-25 mg/jour", "10 mg/jour", "Éviter pour glycémie (OK pour IC)",
                            "Non recommandé glycémie", "Non recommandé",
                            "Efficacité glycémique diminue si DFG bas"),
    # Pain
    "gabapentin": _renal("Gabapentine", "300-1200 mg x3/jour", "200-700 mg x2/jour", "100-300 mg x1-2/jour",
                         "100-300 mg/jour", "125-350 mg après HD", "Ajustement majeur nécessaire"),
    "pregabalin": _renal("Prégabaline", "75-300 mg x2/jour", "75-150 mg x2/jour", "25-75 mg x1-2/jour",
                         "25-75 mg/jour", "Supplément post-HD", "Risque sédation si surdosage"),
    "morphine": _renal("Morphine", "Variable", "Réduire 25%", "Réduire 50%", "Réduire 75% ou éviter",
                       "Éviter - métabolite M6G accumule", "Préférer hydromorphone ou fentanyl"),
    "tramadol": _renal("Tramadol", "50-100 mg x4/jour", "50-100 mg x2-3/jour", "50 mg x2/jour max",
                       "50 mg x2/jour max", "50 mg x2/jour - non dialysable", "Risque convulsions si surdosage"),
}


# =============================================================================
# Synonyms
# =============================================================================

DRUG_ALIASES: Dict[str, str] = {
    # French generic names
    "digoxine": "digoxin",
    "metformine": "metformin",
    "amoxicilline": "amoxicillin",
    "ampicilline": "ampicillin",
    "ciprofloxacine": "ciprofloxacin",
    "levofloxacine": "levofloxacin",
    "vancomycine": "vancomycin",
    "gentamicine": "gentamicin",
    "sitagliptine": "sitagliptin",
    "empagliflozine": "empagliflozin",
    "gabapentine": "gabapentin",
    "pregabaline": "pregabalin",
    "enoxaparine": "enoxaparin",
    "ciclosporine": "ciclosporin",
    "cyclosporine": "ciclosporin",
    "warfarine": "warfarin",
    "aspirine": "aspirin",
    "acide acetylsalicylique": "aspirin",
    "ibuprofene": "ibuprofen",
    "naproxene": "naproxen",
    "clarithromycine": "clarithromycin",
    "simvastatine": "simvastatin",
    "atorvastatine": "atorvastatin",
    "rosuvastatine": "rosuvastatin",
    "cefalexine": "cephalexin",
    "cephalexine": "cephalexin",
    "cotrimoxazole": "sulfamethoxazole",
    "chlorure de potassium": "potassium_chloride",
    "kcl": "potassium_chloride",
    "contrast media": "iodinated_contrast",
    "produit de contraste": "iodinated_contrast",
    "timolol collyre": "timolol",
    "timolol eye drops": "timolol",
    "alcool": "alcohol",
    # Brand names
    "coumadine": "warfarin",
    "coumadin": "warfarin",
    "xarelto": "rivaroxaban",
    "eliquis": "apixaban",
    "pradaxa": "dabigatran",
    "lovenox": "enoxaparin",
    "kardegic": "aspirin",
    "plavix": "clopidogrel",
    "lipitor": "atorvastatin",
    "tahor": "atorvastatin",
    "crestor": "rosuvastatin",
    "zocor": "simvastatin",
    "glucophage": "metformin",
    "januvia": "sitagliptin",
    "jardiance": "empagliflozin",
    "amaryl": "glimepiride",
    "lasix": "furosemide",
    "aldactone": "spironolactone",
    "lanoxin": "digoxin",
    "cordarone": "amiodarone",
    "sotalex": "sotalol",
    "isoptine": "verapamil",
    "tildiem": "diltiazem",
    "zestril": "lisinopril",
    "triatec": "ramipril",
    "tenormine": "atenolol",
    "lopressor": "metoprolol",
    "cardensiel": "bisoprolol",
    "advil": "ibuprofen",
    "voltarene": "diclofenac",
    "celebrex": "celecoxib",
    "neurontin": "gabapentin",
    "lyrica": "pregabalin",
    "augmentin": "amoxicillin",
    "clamoxyl": "amoxicillin",
    "ciflox": "ciprofloxacin",
    "tavanic": "levofloxacin",
    "bactrim": "sulfamethoxazole",
    "triflucan": "fluconazole",
    "haldol": "haloperidol",
    "zophren": "ondansetron",
    "neoral": "ciclosporin",
    "xalatan": "latanoprost",
    "lumigan": "bimatoprost",
    "timoptol": "timolol",
}

CONDITION_SYNONYMS: Dict[str, List[str]] = {
    "ckd": ["renal_impairment", "kidney_disease", "chronic_kidney", "insuffisance_renale", "mrc",
            "esrd", "kidney_failure"],
    "ckd_stage_4_5": ["severe_ckd", "esrd", "kidney_failure", "ckd_stage_4", "ckd_stage_5",
                      "end_stage_renal_disease"],
    "dialysis": ["hemodialysis", "haemodialysis", "peritoneal_dialysis", "dialyse", "hemodialyse"],
    "heart_failure": ["chf", "cardiac_failure", "hf", "hfref", "insuffisance_cardiaque"],
    "heart_failure_reduced_ef": ["hfref", "systolic_heart_failure"],
    "diabetes": ["dm", "type_2_diabetes", "type_1_diabetes", "diabetic", "diabete"],
    "diabetes_insulin_treated": ["insulin_dependent_diabetes", "type_1_diabetes"],
    "asthma": ["reactive_airway", "bronchial_asthma", "asthme"],
    "copd_severe": ["severe_copd", "emphysema_severe"],
    "narrow_angle_glaucoma": ["angle_closure_glaucoma", "closed_angle"],
    "open_angle_glaucoma": ["poag", "primary_open_angle"],
    "peptic_ulcer": ["gastric_ulcer", "duodenal_ulcer", "gi_bleed_history"],
    "wpw_syndrome": ["wpw", "wolff_parkinson_white"],
    "active_bleeding": ["hemorrhage", "haemorrhage"],
    "active_liver_disease": ["acute_hepatitis"],
    "liver_cirrhosis": ["cirrhosis", "cirrhose"],
}

ALLERGEN_SYNONYMS: Dict[str, List[str]] = {
    "penicillin": ["penicillins", "penicilline", "penicillines", "amoxicillin", "ampicillin",
                   "pen_allergy"],
    "sulfonamide_antibiotics": ["sulfamide", "sulfamides", "sulfonamide", "sulfonamides", "bactrim",
                                "cotrimoxazole", "sulfa"],
    "aspirin": ["asa", "acetylsalicylic", "aspirine"],
    "morphine": ["opioid", "opioids", "codeine", "opiate", "opiates"],
    "iodinated_contrast": ["contrast", "iodine", "iode", "produit_contraste", "produit_de_contraste"],
}

# Allergens that cover a whole drug class
ALLERGEN_CLASSES: Dict[str, str] = {
    "penicillin": "penicillins",
    "sulfonamide_antibiotics": "sulfonamide_antibiotics",
}


def build_default_drug_catalog() -> DrugCatalog:
    """Built-in drug knowledge base"""
    catalog = DrugCatalog(
        interactions=DRUG_INTERACTIONS,
        contraindications=CONDITION_CONTRAINDICATIONS,
        allergy_entries=ALLERGY_CROSS_REACTIVITY,
        renal_doses=RENAL_DOSE_ADJUSTMENTS,
        drug_classes=DRUG_CLASSES,
        aliases=DRUG_ALIASES,
        condition_synonyms=CONDITION_SYNONYMS,
        allergen_synonyms=ALLERGEN_SYNONYMS,
        allergen_classes=ALLERGEN_CLASSES
    )
    logger.info(
        f"Built default drug catalog v{catalog.version}: {len(catalog.interactions)} interactions, "
        f"{len(catalog.contraindications)} contraindications, {len(catalog.renal_doses)} renal dose entries"
    )
    return catalog

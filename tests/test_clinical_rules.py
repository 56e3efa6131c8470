"""
Unit tests for the rule catalog and clinical rules engine
"""

import pytest

from cdss.config import Settings
from cdss.exceptions import ValidationError
from cdss.schemas import (
    PatientClinicalSnapshot, Demographics, Vitals, Labs, CardiologyData,
    AlertContent, AlertSeverity, AlertCategory, ClinicalModule, GuidelineSource,
    RulePriority, Sex
)
from cdss.modules.rule_catalog import (
    CDSSRule, RuleHandler, RuleCatalog, build_default_rule_catalog,
    DEFAULT_RULES, DEFAULT_HANDLERS
)
from cdss.modules.clinical_rules import ClinicalRulesEngine, evaluate_clinical_rules


def _rule(rule_id, module=None, priority=RulePriority.NORMAL, requires=()):
    return CDSSRule(
        id=rule_id,
        name=rule_id,
        description=f"Synthetic rule {rule_id}",
        category=AlertCategory.REMINDER,
        module=module,
        guideline_source=GuidelineSource.INTERNAL,
        priority=priority,
        requires=requires
    )


def _alert(snapshot):
    return AlertContent(
        title="Synthetic",
        message="Synthetic alert",
        severity=AlertSeverity.INFO,
        category=AlertCategory.REMINDER
    )


def _explode(snapshot):
    return 1 / 0


ALWAYS = RuleHandler(applies=lambda s: True, alert=_alert)


def _snapshot(**overrides):
    data = {
        "patient_id": "p-1",
        "demographics": Demographics(age=50, sex=Sex.MALE),
    }
    data.update(overrides)
    return PatientClinicalSnapshot(**data)


class TestRuleCatalog:
    """Test catalog construction and copy-on-write derivation"""

    def test_default_catalog_is_complete(self, test_settings):
        """Test every default rule is present, active and has a handler"""
        catalog = build_default_rule_catalog(test_settings)

        assert len(catalog) == len(DEFAULT_RULES) == 16
        assert len(catalog.active_rules) == 16
        for rule in catalog:
            assert catalog.handler_for(rule.id) is DEFAULT_HANDLERS[rule.id]

    def test_duplicate_ids_rejected(self):
        """Test duplicate rule IDs raise ValidationError"""
        with pytest.raises(ValidationError):
            RuleCatalog([_rule("a"), _rule("a")], {"a": ALWAYS})

    def test_missing_handler_rejected(self):
        """Test a rule without handler raises ValidationError"""
        with pytest.raises(ValidationError) as exc_info:
            RuleCatalog([_rule("a"), _rule("b")], {"a": ALWAYS})

        assert exc_info.value.field == "handlers"

    def test_unknown_extension_rejected(self):
        """Test requires must name snapshot extensions"""
        with pytest.raises(ValidationError):
            RuleCatalog([_rule("a", requires=("neurology",))], {"a": ALWAYS})

    def test_with_disabled_is_copy_on_write(self):
        """Test disabling returns a new catalog and leaves the source catalog unchanged"""
        catalog = RuleCatalog([_rule("a"), _rule("b")], {"a": ALWAYS, "b": ALWAYS})

        derived = catalog.with_disabled(["a", "unknown"])

        assert [r.id for r in derived.active_rules] == ["b"]
        assert [r.id for r in catalog.active_rules] == ["a", "b"]
        assert len(derived) == 2

    def test_filtered_keeps_global_rules(self):
        """Test module filtering keeps rules without module"""
        catalog = RuleCatalog(
            [_rule("a", ClinicalModule.DIALYSE), _rule("b", ClinicalModule.CARDIOLOGY), _rule("c")],
            {"a": ALWAYS, "b": ALWAYS, "c": ALWAYS}
        )

        assert [r.id for r in catalog.filtered(["dialyse"])] == ["a", "c"]

    def test_settings_disable_module(self):
        """Test module toggles remove rule groups"""
        config = Settings(_env_file=None, rules_cardiology=False)
        catalog = build_default_rule_catalog(config)

        assert not any(r.module == ClinicalModule.CARDIOLOGY for r in catalog)
        assert "kdigo-ktv-001" in catalog

    def test_settings_disable_rule_ids(self):
        """Test comma-separated disabled IDs deactivate rules"""
        config = Settings(_env_file=None, rules_disabled_ids="kdigo-ktv-001, esc-bp-001")
        catalog = build_default_rule_catalog(config)

        assert catalog.get("kdigo-ktv-001").is_active is False
        assert catalog.get("esc-bp-001").is_active is False
        assert len(catalog.active_rules) == 14


class TestRuleIsolation:
    """Test one failing rule never blinds the others"""

    def test_throwing_predicate_is_isolated(self):
        """Test a raising predicate plus an always-true rule yields one finding"""
        catalog = RuleCatalog(
            [_rule("boom"), _rule("always")],
            {"boom": RuleHandler(applies=_explode, alert=_alert), "always": ALWAYS}
        )
        engine = ClinicalRulesEngine(catalog)

        findings = engine.evaluate(_snapshot())

        assert [f.rule_id for f in findings] == ["always"]

    def test_failures_are_reported(self):
        """Test failed rules are annotated on the evaluation result"""
        catalog = RuleCatalog(
            [_rule("boom"), _rule("always"), _rule("bad-alert")],
            {
                "boom": RuleHandler(applies=_explode, alert=_alert),
                "always": ALWAYS,
                "bad-alert": RuleHandler(applies=lambda s: True, alert=_explode),
            }
        )
        engine = ClinicalRulesEngine(catalog)

        result = engine.evaluate_patient(_snapshot())

        assert len(result.findings) == 1
        assert result.has_failures is True
        assert [f["details"]["rule_id"] for f in result.failed_rules] == ["boom", "bad-alert"]
        assert result.failed_rules[0]["error"] == "RULE_EVALUATION_ERROR"
        assert result.rules_evaluated == 3

    def test_missing_extension_means_not_applicable(self):
        """Test rules requiring an absent extension are skipped, not failed"""
        catalog = RuleCatalog(
            [_rule("needs-dialysis", requires=("dialysis",))],
            {"needs-dialysis": RuleHandler(applies=lambda s: s.dialysis.is_on_dialysis, alert=_alert)}
        )
        engine = ClinicalRulesEngine(catalog)

        result = engine.evaluate_patient(_snapshot())

        assert result.findings == []
        assert result.failed_rules == []


class TestEvaluation:
    """Test evaluation over the default guideline catalog"""

    def test_healthy_patient_has_no_findings(self, engine, healthy_snapshot):
        """Test no rule fires on in-range values"""
        assert engine.evaluate(healthy_snapshot) == []

    def test_dialysis_findings_ordered_by_priority(self, engine, dialysis_snapshot):
        """Test high priority first, catalog order on ties"""
        findings = engine.evaluate_by_module(dialysis_snapshot, "dialyse")

        assert [f.rule_id for f in findings] == [
            "kdigo-ktv-001",
            "kdigo-phosphorus-001",
            "kdigo-anemia-001",
        ]
        assert findings[0].severity == AlertSeverity.CRITICAL
        assert findings[0].guideline_source == GuidelineSource.KDIGO
        assert "0.90" in findings[0].description

    def test_evaluation_is_deterministic(self, engine, multimodule_snapshot):
        """Test identical input gives identical ordered output"""
        first = [f.model_dump() for f in engine.evaluate(multimodule_snapshot)]
        second = [f.model_dump() for f in engine.evaluate(multimodule_snapshot)]

        assert first == second

    @pytest.mark.parametrize("module", list(ClinicalModule))
    def test_module_filter_is_subset(self, engine, multimodule_snapshot, module):
        """Test module findings are a subset and belong to the module or general"""
        all_ids = {f.rule_id for f in engine.evaluate(multimodule_snapshot)}
        findings = engine.evaluate_by_module(multimodule_snapshot, module)

        assert {f.rule_id for f in findings} <= all_ids
        for finding in findings:
            assert finding.module in (module, ClinicalModule.GENERAL, None)

    def test_unknown_module_rejected(self, engine, healthy_snapshot):
        """Test invalid module lists the allowed set"""
        with pytest.raises(ValidationError) as exc_info:
            engine.evaluate_by_module(healthy_snapshot, "neurology")

        assert exc_info.value.field == "module"
        assert set(exc_info.value.allowed) == {"dialyse", "cardiology", "ophthalmology", "general"}

    def test_missing_module_rejected(self, engine, healthy_snapshot):
        """Test module-scoped evaluation requires a module"""
        with pytest.raises(ValidationError) as exc_info:
            engine.evaluate_by_module(healthy_snapshot, None)

        assert exc_info.value.field == "module"
        assert "dialyse" in exc_info.value.allowed

    def test_summary_counts(self, engine, multimodule_snapshot):
        """Test severity summary matches findings"""
        result = engine.evaluate_patient(multimodule_snapshot)

        severities = [f.severity for f in result.findings]
        assert result.summary.critical == severities.count(AlertSeverity.CRITICAL)
        assert result.summary.warning == severities.count(AlertSeverity.WARNING)
        assert result.patient_id == "patient-multi"
        assert result.failed_rules == []

    def test_accepts_plain_dict(self, engine):
        """Test a dict snapshot is validated into a model"""
        findings = engine.evaluate({
            "demographics": {"age": 70, "sex": "male"},
            "labs": {"potassium": 7.0},
        })

        assert [f.rule_id for f in findings] == ["kdigo-potassium-001"]
        assert findings[0].severity == AlertSeverity.CRITICAL
        assert findings[0].recommendations[0].startswith("URGENT")


class TestGuidelineRules:
    """Test individual default rules"""

    def test_ktv_requires_dialysis_extension(self, engine):
        """Test no Kt/V alert without dialysis data"""
        findings = engine.evaluate(_snapshot(labs=Labs(potassium=4.0)))
        assert findings == []

    def test_severe_renal_impairment(self, engine):
        """Test stage 4 warning and stage 5 critical"""
        stage4 = engine.evaluate(_snapshot(labs=Labs(egfr=20)))
        stage5 = engine.evaluate(_snapshot(labs=Labs(egfr=10)))

        assert stage4[0].rule_id == "safety-egfr-001"
        assert stage4[0].severity == AlertSeverity.WARNING
        assert "Stade 4" in stage4[0].description
        assert stage5[0].severity == AlertSeverity.CRITICAL

    def test_renal_rule_silent_on_dialysis(self, engine, dialysis_snapshot):
        """Test severe renal impairment is not re-alerted for dialysis patients"""
        ids = [f.rule_id for f in engine.evaluate(dialysis_snapshot)]
        assert "safety-egfr-001" not in ids

    def test_af_anticoagulation_female_age(self, engine):
        """Test female aged 65-74 with AF reaches the threshold"""
        snapshot = _snapshot(
            demographics=Demographics(age=70, sex=Sex.FEMALE),
            cardiology=CardiologyData(has_af=True)
        )
        assert [f.rule_id for f in engine.evaluate(snapshot)] == ["esc-af-chadsvasc-001"]

    def test_af_anticoagulation_low_risk_male(self, engine):
        """Test male with score 0 is not flagged, score 1 is"""
        low = _snapshot(cardiology=CardiologyData(has_af=True))
        one = _snapshot(cardiology=CardiologyData(has_af=True), conditions=["hypertension"])

        assert engine.evaluate(low) == []
        assert [f.rule_id for f in engine.evaluate(one)] == ["esc-af-chadsvasc-001"]

    def test_ldl_target_depends_on_risk(self, engine):
        """Test very high risk patients have the lower LDL target"""
        standard = _snapshot(labs=Labs(ldl=60))
        diabetic = _snapshot(labs=Labs(ldl=60), conditions=["Diabetes"])

        assert engine.evaluate(standard) == []
        assert [f.rule_id for f in engine.evaluate(diabetic)] == ["esc-lipids-001"]

    def test_hypertension_crisis(self, engine):
        """Test systolic >= 180 is critical"""
        findings = engine.evaluate(_snapshot(vitals=Vitals(systolic_bp=185, diastolic_bp=110)))

        assert findings[0].rule_id == "esc-bp-001"
        assert findings[0].severity == AlertSeverity.CRITICAL

    def test_obesity_rule(self, engine):
        """Test BMI-based obesity finding"""
        obese = _snapshot(demographics=Demographics(age=50, sex=Sex.MALE, weight=110, height=170))
        no_height = _snapshot(demographics=Demographics(age=50, sex=Sex.MALE, weight=110))

        findings = engine.evaluate(obese)
        assert [f.rule_id for f in findings] == ["who-bmi-001"]
        assert findings[0].severity == AlertSeverity.WARNING
        assert engine.evaluate(no_height) == []


class TestCatalogInspection:
    """Test rule listing, counting and reload"""

    def test_active_rule_count(self, engine):
        """Test counts by module"""
        counts = engine.active_rule_count()

        assert counts.total == 16
        assert counts.by_module == {"dialyse": 5, "cardiology": 5, "ophthalmology": 3, "general": 3}

    def test_list_rules_by_module(self, engine):
        """Test module listing includes general rules"""
        rules = engine.list_rules("ophthalmology")

        assert {r.module for r in rules} == {ClinicalModule.OPHTHALMOLOGY, ClinicalModule.GENERAL}
        assert len(rules) == 6

    def test_reload_swaps_catalog(self, engine, healthy_snapshot):
        """Test reload replaces the catalog for subsequent calls"""
        engine.reload(RuleCatalog([_rule("always")], {"always": ALWAYS}, version="test"))

        assert [f.rule_id for f in engine.evaluate(healthy_snapshot)] == ["always"]
        assert engine.catalog.version == "test"

    def test_reload_rejects_non_catalog(self, engine):
        """Test reload validates its argument"""
        with pytest.raises(ValidationError):
            engine.reload(DEFAULT_RULES)

    def test_module_function(self, healthy_snapshot):
        """Test public convenience function"""
        result = evaluate_clinical_rules(healthy_snapshot, module="cardiology")

        assert result.module == ClinicalModule.CARDIOLOGY
        assert result.findings == []

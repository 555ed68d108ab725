from marketpulse.taxonomy.catalog import Catalog, get_catalog
from marketpulse.taxonomy.rules import Rule, RuleSet, prepare_text


def test_prepare_text_keeps_decimal_generation_tokens():
    assert prepare_text("911 GT3 (992.1)") == "911 gt3 992.1"
    assert prepare_text("Cayman GTS 4.0, PDK.") == "cayman gts 4.0 pdk"
    assert prepare_text("GT3-RS") == "gt3 rs"


def test_longest_literal_match_wins_regardless_of_declaration_order():
    forward = RuleSet([Rule.literal("gt3", "gt3"), Rule.literal("gt3 rs", "gt3-rs")])
    backward = RuleSet([Rule.literal("gt3 rs", "gt3-rs"), Rule.literal("gt3", "gt3")])

    for rules in (forward, backward):
        assert rules.best("2019 porsche 911 gt3 rs").output == "gt3-rs"
        assert rules.best("2019 porsche 911 gt3 touring").output == "gt3"


def test_equal_length_ties_break_by_position_then_output():
    rules = RuleSet([Rule.literal("pdk", "b"), Rule.literal("ptv", "a")])
    assert rules.best("ptv pdk").output == "a"
    assert rules.best("pdk ptv").output == "b"

    same_alias = RuleSet([Rule.literal("gts", "z"), Rule.literal("gts", "m")])
    assert same_alias.best("gts").output == "m"


def test_rules_only_match_whole_words():
    rules = RuleSet([Rule.literal("992", "992"), Rule.literal("gt3", "gt3")])
    assert rules.best("992.1") is None
    assert rules.best("gt3rs") is None
    assert rules.best("a 992 b").output == "992"


def test_all_outputs_skips_overlapping_shorter_matches():
    rules = RuleSet(
        [
            Rule.literal("sport chrono", "sport-chrono"),
            Rule.literal("sport exhaust", "sport-exhaust"),
            Rule.literal("chrono package", "sport-chrono"),
            Rule.literal("pccb", "pccb"),
        ]
    )
    outputs = rules.all_outputs(prepare_text("Sport Chrono Package, PCCB, Sport Exhaust"))
    assert outputs == ["sport-chrono", "pccb", "sport-exhaust"]


def test_catalog_trim_ids_are_namespaced_by_model():
    catalog = get_catalog()
    assert "911:gt3-rs" in catalog.trims
    assert "718-cayman:gt4-rs" in catalog.trims
    assert catalog.trim_belongs_to("911:carrera-4s-cabriolet", "911")
    assert not catalog.trim_belongs_to("911:gt3", "718-cayman")


def test_compose_trim_appends_body_style_once():
    catalog = get_catalog()
    assert catalog.compose_trim(catalog.trims["911:carrera-4s"], "Cabriolet") == (
        "911:carrera-4s-cabriolet",
        "Carrera 4S Cabriolet",
    )
    assert catalog.compose_trim(catalog.trims["911:targa-4s"], "Targa") == ("911:targa-4s", "Targa 4S")
    assert catalog.trim_name("911:carrera-4s-cabriolet") == "Carrera 4S Cabriolet"


def test_trim_by_name_resolves_within_model_only():
    catalog = get_catalog()
    assert catalog.trim_by_name("911", "GT3 RS") == "911:gt3-rs"
    assert catalog.trim_by_name("911", "Carrera 4S Cabriolet") == "911:carrera-4s-cabriolet"
    assert catalog.trim_by_name("718-cayman", "GT4 RS") == "718-cayman:gt4-rs"
    assert catalog.trim_by_name("718-cayman", "GT3 RS") is None
    assert catalog.trim_by_name("911", "Hyper Turbo") is None


def test_generation_inference_prefers_newest_overlapping_generation():
    catalog = get_catalog()
    assert catalog.infer_generation("911", 2019).name == "991.2"
    # 2005 is both the last 996 and the first 997.1 model year
    assert catalog.infer_generation("911", 2005).name == "997.1"
    assert catalog.infer_generation("718-cayman", 2022).id == "718-cayman:982"
    assert catalog.infer_generation("911", None) is None


def test_generation_family_token_resolves_by_year():
    catalog = get_catalog()
    assert catalog.generation_by_token("911", "992", 2026).name == "992.2"
    assert catalog.generation_by_token("911", "992", 2021).name == "992.1"
    assert catalog.generation_by_token("911", "991.2").name == "991.2"
    assert catalog.generation_by_token("911", "982") is None


def test_model_and_option_lookup_by_name():
    catalog = Catalog()
    assert catalog.model_by_name("718 Cayman").id == "718-cayman"
    assert catalog.model_by_name("Cayenne") is None
    assert catalog.option_by_name("Sport Chrono Package") == "sport-chrono"
    assert catalog.option_by_name("PCCB") == "pccb"
    assert catalog.option_by_name("Flux Capacitor") is None


def test_trim_words_imply_models_separately_from_model_aliases():
    catalog = get_catalog()
    assert catalog.model_rules.best("2021 porsche turbo s") is None
    assert catalog.implied_model_rules.best("2021 porsche turbo s").output == "911"
    assert catalog.implied_model_rules.best("2020 porsche spyder").output == "718-boxster"
    assert catalog.model_rules.best("2020 porsche 718 spyder").output == "718-boxster"
    assert catalog.model_rules.best("2019 porsche 718").output == "718-cayman"


def test_718_models_default_to_base_trim():
    catalog = get_catalog()
    assert catalog.default_trim("718-cayman").id == "718-cayman:base"
    assert catalog.default_trim("718-boxster").id == "718-boxster:base"
    assert catalog.default_trim("911") is None

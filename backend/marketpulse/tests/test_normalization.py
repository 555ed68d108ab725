import json

from conftest import raw_listing
from marketpulse.core.errors import QuotaExhaustedError
from marketpulse.services.ai_provider import AIProvider, MockProvider
from marketpulse.services.normalization import TaxonomyNormalizer
from marketpulse.services.run_context import RunContext
from marketpulse.services.taxonomy_extractor import ChatTaxonomyExtractor


class QuotaProvider(AIProvider):
    def __init__(self) -> None:
        self.calls = 0

    def chat(self, messages):
        self.calls += 1
        raise QuotaExhaustedError("429 RESOURCE_EXHAUSTED")


def test_most_specific_trim_wins():
    normalizer = TaxonomyNormalizer()

    gt3_rs = normalizer.normalize(raw_listing(title="2019 Porsche 911 GT3 RS", price=255000))
    assert gt3_rs.identity.model_id == "911"
    assert gt3_rs.identity.trim_id == "911:gt3-rs"
    assert gt3_rs.identity.generation_id == "911:991.2"
    assert gt3_rs.method == "rules"
    assert gt3_rs.confidence == 1.0
    assert gt3_rs.validation_errors == []

    gt4_rs = normalizer.normalize(raw_listing(title="2022 Porsche 718 Cayman GT4 RS", year=2022, price=210000))
    assert gt4_rs.identity.model_id == "718-cayman"
    assert gt4_rs.identity.trim_id == "718-cayman:gt4-rs"
    assert gt4_rs.identity.generation_id == "718-cayman:982"


def test_body_style_is_appended_to_base_trim():
    normalizer = TaxonomyNormalizer()

    cabriolet = normalizer.normalize(raw_listing(title="2020 Porsche 911 Carrera 4S Cabriolet", year=2020, price=140000))
    assert cabriolet.identity.trim_id == "911:carrera-4s-cabriolet"
    assert cabriolet.identity.generation_id == "911:992.1"

    targa = normalizer.normalize(raw_listing(title="1997 Porsche 911 Targa", year=1997, price=90000))
    assert targa.identity.trim_id == "911:targa"
    assert targa.identity.generation_id == "911:993"


def test_explicit_generation_token_overrides_inference():
    normalizer = TaxonomyNormalizer()
    result = normalizer.normalize(raw_listing(title="2022 Porsche 911 GT3 (992)", year=2022, price=240000))
    assert result.identity.generation_id == "911:992.1"


def test_conflicting_generation_token_is_flagged_and_replaced():
    normalizer = TaxonomyNormalizer()
    result = normalizer.normalize(raw_listing(title="2019 Porsche 911 GT3 992.1", year=2019, price=200000))
    assert result.identity.generation_id == "911:991.2"
    assert "Generation 992.1 does not cover model year 2019" in result.validation_errors


def test_mileage_is_not_read_as_generation():
    normalizer = TaxonomyNormalizer()
    result = normalizer.normalize(raw_listing(title="996-Mile 2021 Porsche 911 GT3", year=2021, price=230000))
    assert result.identity.generation_id == "911:992.1"
    assert result.validation_errors == []


def test_year_falls_back_to_title_then_vin():
    normalizer = TaxonomyNormalizer()

    from_title = normalizer.normalize(raw_listing(title="2018 Porsche 911 GT3", year=None, price=170000))
    assert from_title.identity.model_year == 2018

    from_vin = normalizer.normalize(
        raw_listing(title="Porsche 911 GT3 Touring", year=None, vin="WP0AC2A98KS149123", price=180000)
    )
    assert from_vin.identity.model_year == 2019
    assert from_vin.identity.generation_id == "911:991.2"
    assert from_vin.vin == "WP0AC2A98KS149123"


def test_options_and_paint_to_sample_color():
    normalizer = TaxonomyNormalizer()
    result = normalizer.normalize(
        raw_listing(
            title="2019 Porsche 911 GT3 RS Weissach",
            exterior_color_text="Paint-to-Sample Mexico Blue over Black",
            options_text="Front Axle Lift, PCCB, Full Bucket Seats, Sport Chrono Package",
            price=300000,
        )
    )
    assert result.exterior_color_name == "Mexico Blue"
    assert result.is_paint_to_sample is True
    assert set(result.option_ids) == {
        "front-axle-lift",
        "pccb",
        "full-bucket-seats",
        "sport-chrono",
        "weissach-package",
        "paint-to-sample",
    }


def test_validation_problems_never_raise():
    normalizer = TaxonomyNormalizer()
    result = normalizer.normalize(
        raw_listing(title="2015 Porsche 911 GT3 RS", year=2015, vin="NOT-A-VIN", price=None)
    )
    assert result.identity.trim_id == "911:gt3-rs"
    assert result.vin is None
    assert "Invalid VIN format: NOT-A-VIN" in result.validation_errors
    assert "Missing price" in result.validation_errors

    cheap = normalizer.normalize(raw_listing(title="2019 Porsche 911 GT3", price=90000))
    assert "Unrealistic price for GT3: $90,000" in cheap.validation_errors


def test_models_outside_catalog_are_unresolved_without_ai():
    provider = MockProvider(reply=json.dumps({"model": "911", "trim": "Turbo S"}))
    normalizer = TaxonomyNormalizer(ChatTaxonomyExtractor(provider))
    context = RunContext(source="bringatrailer")

    result = normalizer.normalize(raw_listing(title="2021 Porsche Cayenne Turbo S E-Hybrid", price=150000), context)

    assert result.identity is None
    assert result.method == "unresolved"
    assert result.confidence == 0.0
    assert result.needs_review
    assert provider.calls == []
    assert context.ai_calls == 0


def test_ai_fills_gaps_within_the_catalog_vocabulary():
    reply = (
        "Here is the data you asked for:\n"
        + json.dumps(
            {
                "model": "718 Cayman",
                "trim": "GTS 4.0",
                "generation": "982",
                "options": ["Sport Chrono Package", "Flux Capacitor"],
            }
        )
    )
    provider = MockProvider(reply=reply)
    normalizer = TaxonomyNormalizer(ChatTaxonomyExtractor(provider))
    context = RunContext(source="carsandbids")

    result = normalizer.normalize(raw_listing(title="2021 Porsche GTS 4.0", year=2021, price=95000), context)

    assert result.identity.model_id == "718-cayman"
    assert result.identity.trim_id == "718-cayman:gts-4.0"
    assert result.identity.generation_id == "718-cayman:982"
    assert result.option_ids == ["sport-chrono"]
    assert result.method == "ai"
    assert result.confidence == 0.75
    assert context.ai_calls == 1


def test_ai_values_outside_vocabulary_are_dropped():
    provider = MockProvider(reply=json.dumps({"model": "911", "trim": "Hyper Turbo"}))
    normalizer = TaxonomyNormalizer(ChatTaxonomyExtractor(provider))

    result = normalizer.normalize(raw_listing(title="2021 Porsche 911", year=2021, price=150000), RunContext(source="x"))

    assert result.identity.model_id == "911"
    assert result.identity.trim_id is None
    assert result.method == "rules_degraded"
    assert result.needs_review
    assert "Unresolved trim for model 911" in result.validation_errors


def test_quota_exhaustion_disables_ai_for_the_rest_of_the_run():
    provider = QuotaProvider()
    normalizer = TaxonomyNormalizer(ChatTaxonomyExtractor(provider, sleep=lambda _: None))
    context = RunContext(source="bringatrailer")

    first = normalizer.normalize(raw_listing(title="2021 Porsche 911", year=2021, price=150000), context)
    second = normalizer.normalize(
        raw_listing(source_url="https://bringatrailer.com/listing/2018-911/", title="2018 Porsche 911", year=2018, price=80000),
        context,
    )
    rules_only = normalizer.normalize(raw_listing(title="2019 Porsche 911 GT3 RS", price=255000), context)

    assert provider.calls == 1
    assert context.ai_calls == 1
    assert context.ai_enabled is False
    assert "429" in context.ai_disabled_reason
    assert first.method == "rules_degraded"
    assert first.confidence == 0.5
    assert first.identity.model_id == "911"
    assert second.method == "rules_degraded"
    assert second.identity.model_id == "911"
    assert rules_only.method == "rules"


def test_bare_718_and_trim_words_imply_a_model():
    normalizer = TaxonomyNormalizer()

    spyder = normalizer.normalize(raw_listing(title="2020 Porsche 718 Spyder", year=2020, price=110000))
    assert spyder.identity.model_id == "718-boxster"
    assert spyder.identity.trim_id == "718-boxster:spyder"
    assert spyder.identity.generation_id == "718-boxster:982"
    assert spyder.method == "rules"
    assert spyder.validation_errors == []

    turbo_s = normalizer.normalize(raw_listing(title="2021 Porsche Turbo S", year=2021, price=210000))
    assert turbo_s.identity.model_id == "911"
    assert turbo_s.identity.trim_id == "911:turbo-s"
    assert turbo_s.identity.generation_id == "911:992.1"

    bare = normalizer.normalize(raw_listing(title="2019 Porsche 718", year=2019, price=55000))
    assert bare.identity.model_id == "718-cayman"


def test_718_without_trim_word_is_the_base_car():
    normalizer = TaxonomyNormalizer()

    cayman = normalizer.normalize(raw_listing(title="2018 Porsche 718 Cayman", year=2018, price=52000))
    assert cayman.identity.trim_id == "718-cayman:base"
    assert cayman.identity.generation_id == "718-cayman:982"
    assert cayman.method == "rules"
    assert cayman.needs_review is False
    assert cayman.validation_errors == []

    boxster = normalizer.normalize(raw_listing(title="2000 Porsche Boxster", year=2000, price=18000))
    assert boxster.identity.trim_id == "718-boxster:base"
    assert boxster.identity.generation_id == "718-boxster:986"


def test_993_carrera_and_turbo_are_plausible():
    normalizer = TaxonomyNormalizer()

    targa = normalizer.normalize(raw_listing(title="1997 Porsche 911 Carrera Targa", year=1997, price=95000))
    assert targa.identity.trim_id == "911:carrera-targa"
    assert targa.identity.generation_id == "911:993"
    assert targa.validation_errors == []

    turbo = normalizer.normalize(raw_listing(title="1996 Porsche 911 Turbo", year=1996, price=190000))
    assert turbo.identity.trim_id == "911:turbo"
    assert turbo.identity.generation_id == "911:993"
    assert turbo.validation_errors == []


def test_excluded_model_named_in_passing_does_not_override_the_car():
    normalizer = TaxonomyNormalizer()

    gt3 = normalizer.normalize(
        raw_listing(title="2016 Porsche 911 GT3 with 918 Spyder-style wheels", year=2016, price=160000)
    )
    assert gt3.identity.model_id == "911"
    assert gt3.identity.trim_id == "911:gt3"
    assert gt3.validation_errors == []

    hypercar = normalizer.normalize(raw_listing(title="2015 Porsche 918 Spyder", year=2015, price=1500000))
    assert hypercar.identity is None
    assert "Model outside catalog: 918" in hypercar.validation_errors


def test_mileage_numbers_are_not_models_or_generations():
    normalizer = TaxonomyNormalizer()

    carrera_s = normalizer.normalize(raw_listing(title="2012 Porsche 911 Carrera S 996 mi", year=2012, price=60000))
    assert carrera_s.identity.generation_id == "911:991.1"
    assert carrera_s.validation_errors == []

    touring = normalizer.normalize(raw_listing(title="1,718-Mile 2019 GT3 Touring", year=2019, price=180000))
    assert touring.identity.model_id == "911"
    assert touring.identity.trim_id == "911:gt3-touring"

from marketpulse.services.colors import normalize_color
from marketpulse.services.validation import (
    check_model_year,
    check_price,
    check_vin,
    check_vin_year,
    normalize_vin,
    vin_model_years,
    year_from_text,
)
from marketpulse.taxonomy.catalog import get_catalog


def test_normalize_vin_uppercases_and_rejects_bad_characters():
    assert normalize_vin(" wp0ab2a99ks123456 ") == "WP0AB2A99KS123456"
    assert normalize_vin("WP0AB2A99KS12345") is None
    # I, O and Q never appear in a VIN
    assert normalize_vin("WP0AB2A99KS12345O") is None
    assert normalize_vin(None) is None


def test_check_vin_only_flags_present_malformed_vins():
    assert check_vin("ABC") == "Invalid VIN format: ABC"
    assert check_vin(None) is None
    assert check_vin("WP0AB2A99KS123456") is None


def test_vin_model_year_cross_check():
    assert vin_model_years("WP0AB2A99KS123456") == [1989, 2019]
    assert check_vin_year("WP0AB2A99KS123456", 2019) is None
    assert check_vin_year("WP0AB2A99KS123456", 2020) is None
    assert check_vin_year("WP0AB2A99KS123456", 2015) == "VIN model year 2019 does not match listed year 2015"
    assert check_vin_year(None, 2015) is None


def test_year_from_text():
    assert year_from_text("2019 Porsche 911 GT3 RS") == 2019
    assert year_from_text("Porsche 911 GT3 RS, 4,200 miles") is None


def test_trim_year_plausibility():
    catalog = get_catalog()
    gt4_rs = catalog.trims["718-cayman:gt4-rs"]
    assert check_model_year(gt4_rs, gt4_rs.name, 2023) is None
    assert check_model_year(gt4_rs, gt4_rs.name, 2019) == "Invalid model year combination: 2019 GT4 RS"


def test_price_plausibility():
    catalog = get_catalog()
    assert check_price(None) == "Missing price"
    assert check_price(5000) == "Unrealistic price: $5,000"
    assert check_price(6000000) == "Unrealistic price: $6,000,000"
    assert check_price(120000, catalog.trims["911:gt3"]) == "Unrealistic price for GT3: $120,000"
    assert check_price(120000, catalog.trims["911:carrera"]) is None


def test_color_strips_interior_and_wheel_boilerplate():
    result = normalize_color("Guards Red over Black Leather")
    assert result.name == "Guards Red"
    assert result.color_id == "guards-red"
    assert result.is_paint_to_sample is False

    silver = normalize_color("Arctic Silver Metallic over Black Leather")
    assert silver.name == "Arctic Silver Metallic"
    assert silver.color_id == "arctic-silver-metallic"
    assert silver.is_paint_to_sample is False

    assert normalize_color("GT Silver Metallic with 20-inch wheels").name == "GT Silver"
    assert normalize_color("Chalk (M9A) paint").name == "Chalk"


def test_color_detects_paint_to_sample_without_changing_name():
    result = normalize_color("Paint to Sample Gulf Orange")
    assert result.name == "Gulf Orange"
    assert result.is_paint_to_sample is True

    assert normalize_color("Python Green (PTS)").is_paint_to_sample is True
    # PTS-only colors are flagged even when the listing does not say so
    assert normalize_color("Nardo Grey").is_paint_to_sample is True


def test_color_edge_cases():
    assert normalize_color(None).name is None
    assert normalize_color("   ").name is None
    assert normalize_color("Satin Black Wrap").name is None

    unknown = normalize_color("Mamba Green")
    assert unknown.name == "Mamba Green"
    assert unknown.color_id is None


def test_993_era_trims_cover_their_first_model_years():
    catalog = get_catalog()
    first_years = [
        ("911:carrera", 1995),
        ("911:carrera-4", 1995),
        ("911:carrera-4s", 1996),
        ("911:carrera-s", 1998),
        ("911:turbo", 1996),
        ("911:turbo-s", 1997),
        ("911:gt2", 1996),
    ]
    for trim_id, year in first_years:
        trim = catalog.trims[trim_id]
        assert check_model_year(trim, trim.name, year) is None, trim_id

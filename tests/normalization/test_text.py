from pharmacy_harvester.normalization import clamp, geokey, name_similarity, normalize_name


def test_normalize_name_folds_diacritics_and_punctuation():
    assert normalize_name("  Apoteka  Nikšić-Centar ") == "apoteka niksic centar"
    assert normalize_name("Ljekarna Đurđevac") == "ljekarna durdevac"
    assert normalize_name(None) == ""


def test_clamp_collapses_whitespace():
    assert clamp("  Bulevar \n Svetog   Petra ") == "Bulevar Svetog Petra"
    assert clamp(None) == ""


def test_similarity_identical_after_normalization():
    assert name_similarity("Apoteka Centar", "APOTEKA   CENTAR") == 1.0


def test_similarity_unrelated_names_is_low():
    assert name_similarity("Apoteka Sloboda", "Unrelated Business Name") < 0.3


def test_similarity_near_duplicate_is_high():
    assert name_similarity("Apoteka Centar", "Apoteka Centar 1") >= 0.8


def test_similarity_with_empty_name_is_zero():
    assert name_similarity("", "Apoteka") == 0.0
    assert name_similarity("Apoteka", None) == 0.0


def test_geokey_rounds_to_five_decimals():
    assert geokey(42.4304001, 19.2594004) == "42.43040,19.25940"


def test_geokey_requires_both_numbers():
    assert geokey(None, 19.25) is None
    assert geokey(42.43, None) is None
    assert geokey("42.43", 19.25) is None
    assert geokey(True, 19.25) is None

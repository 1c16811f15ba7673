import configparser

from courtdemo.effects_migration import migrate_effects, migrate_effects_file

OLD_ENTRIES = {
    "hearts": "sfx-hearts",
    "hearts_ignore_offset": "true",
    "hearts_under_chatbox": "true",
    "realization": "sfx-realization",
    "realization_scaling": "smooth",
}


def test_version_section():
    assert migrate_effects(OLD_ENTRIES)["version"] == {"major": "2"}


def test_property_keys_are_not_effects():
    result = migrate_effects(OLD_ENTRIES)
    names = [section["name"] for key, section in result.items() if key != "version"]
    assert names == ["hearts", "realization"]


def test_effect_properties_carried_over():
    hearts = migrate_effects(OLD_ENTRIES)["0"]
    assert hearts["sound"] == "sfx-hearts"
    assert hearts["cull"] == "true"
    assert hearts["ignore_offset"] == "true"
    assert hearts["layer"] == "character"
    assert "under_chatbox" not in hearts


def test_realization_special_case():
    realization = migrate_effects(OLD_ENTRIES)["1"]
    assert realization["stretch"] == "true"
    assert realization["layer"] == "chat"
    assert realization["scaling"] == "smooth"


def test_empty_input():
    assert migrate_effects({}) == {"version": {"major": "2"}}


def test_migrate_file_round_trip(tmp_path):
    path = tmp_path / "effects.ini"
    path.write_text("hearts=sfx-hearts\nhearts_scaling=smooth\nrealization=sfx-realization\n",
                    encoding="utf-8")
    returned = migrate_effects_file(path)

    parser = configparser.ConfigParser(interpolation=None)
    parser.optionxform = str
    parser.read(path, encoding="utf-8")
    assert parser["version"]["major"] == "2"
    assert parser["0"]["name"] == "hearts"
    assert parser["0"]["scaling"] == "smooth"
    assert parser["1"]["layer"] == "chat"
    assert {s: dict(parser[s]) for s in parser.sections()} == returned
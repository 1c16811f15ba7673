"""Migration of old flat ``effects.ini`` files to the sectioned layout."""

from __future__ import annotations

import configparser
import os
import re
from typing import Mapping

_PROPERTIES = ("sound", "scaling", "stretch", "ignore_offset", "under_chatbox")
_REPLACEMENTS = {"under_chatbox": ("layer", "character")}
_PROPERTY_KEY = re.compile(r"(\w+)_(%s)$" % "|".join(_PROPERTIES))


def migrate_effects(entries: Mapping[str, str]) -> dict[str, dict[str, str]]:
    """Convert flat ``name=sound`` / ``name_property=value`` pairs into sections.

    The result maps section names to their key/value pairs: ``version`` first,
    then one numbered section per effect in key order.
    """
    result: dict[str, dict[str, str]] = {"version": {"major": "2"}}
    effect_names = [key for key in sorted(entries) if not _PROPERTY_KEY.search(key)]

    for index, name in enumerate(effect_names):
        section = {
            "name": name,
            "sound": entries[name],
            "cull": "true",
            "layer": "character",
        }
        if name == "realization":
            section["stretch"] = "true"
            section["layer"] = "chat"
        for prop in _PROPERTIES:
            property_key = f"{name}_{prop}"
            if property_key in entries:
                key, value = _REPLACEMENTS.get(prop, (prop, entries[property_key]))
                section[key] = value
        result[str(index)] = section
    return result


def _new_parser() -> configparser.ConfigParser:
    parser = configparser.ConfigParser(interpolation=None, delimiters=("=",), strict=False)
    parser.optionxform = str  # type: ignore[assignment]
    return parser


def _unquote(value: str) -> str:
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] == '"':
        return value[1:-1]
    return value


def migrate_effects_file(path: str | os.PathLike[str]) -> dict[str, dict[str, str]]:
    """Rewrite an old ``effects.ini`` in place and return the new sections."""
    with open(path, encoding="utf-8") as handle:
        text = handle.read()

    parser = _new_parser()
    parser.read_string("[General]\n" + text)
    entries = {key: _unquote(value) for key, value in parser.items("General")}

    migrated = migrate_effects(entries)

    writer = _new_parser()
    for section, values in migrated.items():
        writer[section] = values
    with open(path, "w", encoding="utf-8") as handle:
        writer.write(handle, space_around_delimiters=False)
    return migrated
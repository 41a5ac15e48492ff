import unittest
from datetime import datetime, timezone

from errors import ValidationError
from validators import (
    SUBTYPE_MISMATCH, derive_building_version, normalize_layers, parse_calendar_date, validate_element,
)


def outside_wall(**overrides):
    data = {
        "name": "North wall",
        "type": "Wall",
        "subType": "Outside Wall",
        "outsideCover": "tiah",
        "buildMethod": "blocks",
        "buildMethodIsolation": "internal",
        "isolationCoverage": "dark color",
    }
    data.update(overrides)
    return data


class ElementValidationTests(unittest.TestCase):
    def assertRejected(self, data, message):
        with self.assertRaises(ValidationError) as ctx:
            validate_element(data)
        self.assertEqual(ctx.exception.message, message)

    def test_floor_rejects_roof_subtype(self):
        self.assertRejected({"name": "Slab", "type": "Floor", "subType": "Upper Roof"}, SUBTYPE_MISMATCH)

    def test_ceiling_accepts_roof_subtypes(self):
        for sub_type in ("Upper Roof", "Under Roof", "Upper Open Space"):
            element = validate_element({"name": "Top", "type": "Ceiling", "subType": sub_type})
            self.assertEqual(element["subType"], sub_type)

    def test_thermal_bridge_must_not_carry_subtype(self):
        self.assertRejected({"name": "Bridge", "type": "Thermal Bridge", "subType": "Outside Wall"},
                            SUBTYPE_MISMATCH)
        element = validate_element({"name": "Bridge", "type": "Thermal Bridge", "subType": ""})
        self.assertNotIn("subType", element)

    def test_unknown_type(self):
        self.assertRejected({"name": "Thing", "type": "Roof"}, "Please specify a valid element type")

    def test_name_required(self):
        self.assertRejected({"name": "  ", "type": "Floor"}, "Please add an element name")

    def test_outside_cover_checked_first(self):
        data = outside_wall(outsideCover=None, buildMethod=None, isolationCoverage=None)
        self.assertRejected(data, "Outside Cover is required for Outside Wall elements")

    def test_outside_wall_field_order(self):
        self.assertRejected(outside_wall(buildMethod=None, isolationCoverage=None),
                            "Build Method is required for Outside Wall elements")
        self.assertRejected(outside_wall(buildMethodIsolation=None, isolationCoverage=None),
                            "Build Method Isolation is required for this build method")
        self.assertRejected(outside_wall(isolationCoverage=None),
                            "Isolation Coverage is required for Outside Wall elements")

    def test_light_build_needs_no_isolation_method(self):
        element = validate_element(outside_wall(buildMethod="light build", buildMethodIsolation=None))
        self.assertEqual(element["buildMethod"], "light build")

    def test_outside_wall_enums_validated(self):
        self.assertRejected(outside_wall(outsideCover="paint"), "Invalid outside cover")
        self.assertRejected(outside_wall(isolationCoverage="grey"), "Invalid isolation coverage")

    def test_wall_fields_dropped_for_other_elements(self):
        element = validate_element({"name": "Inner", "type": "Wall", "subType": "Isolation Wall",
                                    "outsideCover": "tiah"})
        self.assertNotIn("outsideCover", element)
        self.assertEqual(element["parameters"], {})

    def test_layer_thickness_must_be_positive(self):
        data = {"name": "Slab", "type": "Floor", "layers": [{"name": "a", "thickness": 0}]}
        self.assertRejected(data, "Layer 1: thickness must be greater than 0")


class LayerNormalizationTests(unittest.TestCase):
    def test_missing_groups_follow_position(self):
        layers = normalize_layers([{}, {}, {}, {}, {"group": 3}])
        self.assertEqual([layer["group"] for layer in layers], [1, 2, 3, 1, 3])

    def test_normalization_is_idempotent(self):
        once = normalize_layers([{"name": "a"}, {"name": "b", "group": 1}, {"name": "c"}])
        self.assertEqual(normalize_layers(once), once)


class DateTests(unittest.TestCase):
    def test_parse_calendar_date(self):
        self.assertEqual(parse_calendar_date("2021-03-04"), datetime(2021, 3, 4, tzinfo=timezone.utc))
        self.assertEqual(parse_calendar_date("2021-03-04T10:00:00Z"), datetime(2021, 3, 4, tzinfo=timezone.utc))
        self.assertEqual(parse_calendar_date("2021-03-04T10:00:00"), datetime(2021, 3, 4, tzinfo=timezone.utc))

    def test_parse_calendar_date_rejects_garbage(self):
        for value in ("04/03/2021", "not a date", "", None,
                      "2021-01-01Tnot-a-time", "2021-01-01T25:00", "2021-01-01 junk"):
            with self.assertRaises(ValidationError):
                parse_calendar_date(value)

    def test_building_version_cutovers(self):
        cases = {
            "2019-12-31": "version2011",
            "2020-01-01": "version2019",
            "2021-06-01": "fixSheet1",
            "2022-12-01": "fixSheet2",
        }
        for value, version in cases.items():
            self.assertEqual(derive_building_version(parse_calendar_date(value)), version)


if __name__ == "__main__":
    unittest.main()

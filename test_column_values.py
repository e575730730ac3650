import json
import unittest

from boardpilot.core.column_values import (
    find_column,
    format_column_value,
    format_column_values,
    map_column_type,
    map_status_label,
    parse_column_value,
)
from boardpilot.models.context import Column


DROPDOWN = Column(
    "tags",
    "Tags",
    "dropdown",
    json.dumps({"labels": [{"id": 1, "name": "Backend"}, {"id": 2, "name": "Frontend"}]}),
)


class TestStatusLabels(unittest.TestCase):
    def test_exact_synonyms(self):
        self.assertEqual(map_status_label("completed"), "Done")
        self.assertEqual(map_status_label("In Progress"), "Working on it")
        self.assertEqual(map_status_label("todo"), "To Do")
        self.assertEqual(map_status_label("on hold"), "Waiting")

    def test_partial_match_and_passthrough(self):
        self.assertEqual(map_status_label("totally blocked"), "Stuck")
        self.assertEqual(map_status_label("Needs Review"), "Needs Review")
        self.assertIsNone(map_status_label("  "))
        self.assertEqual(map_status_label({"label": "done"}), "Done")


class TestFormatColumnValue(unittest.TestCase):
    def test_type_transforms(self):
        self.assertEqual(format_column_value(42, Column("n", "Estimate", "numbers")), 42.0)
        self.assertIsNone(format_column_value("lots", Column("n", "Estimate", "numbers")))
        self.assertEqual(format_column_value("finished", Column("s", "Status", "status")), {"label": "Done"})
        self.assertEqual(
            format_column_value("2024-03-15T09:30:00", Column("d", "Due", "date")),
            {"date": "2024-03-15", "time": "09:30:00"},
        )
        self.assertEqual(
            format_column_value([7, "8"], Column("p", "Owner", "people")),
            {"personsAndTeams": [{"id": 7, "kind": "person"}, {"id": 8, "kind": "person"}]},
        )
        self.assertEqual(format_column_value("yes", Column("c", "Done?", "checkbox")), {"checked": True})
        self.assertEqual(
            format_column_value("a@b.co", Column("e", "Email", "email")), {"email": "a@b.co", "text": "a@b.co"}
        )
        self.assertEqual(
            format_column_value("https://x.io", Column("l", "Link", "link")),
            {"url": "https://x.io", "text": "https://x.io"},
        )
        self.assertEqual(format_column_value(9, Column("r", "Rating", "rating")), {"rating": 5})
        self.assertEqual(format_column_value(0, Column("r", "Rating", "rating")), {"rating": 1})

    def test_dropdown_uses_settings_options(self):
        self.assertEqual(format_column_value("frontend", DROPDOWN), {"ids": [2]})
        self.assertIsNone(format_column_value("Design", DROPDOWN))

    def test_round_trip_for_supported_types(self):
        cases = [
            (Column("t", "Notes", "text"), "hello"),
            (Column("n", "Estimate", "numbers"), 3.5),
            (Column("d", "Due", "date"), "2024-03-15"),
            (Column("d", "Due", "date"), "2024-03-15T09:30:00"),
            (Column("c", "Done?", "checkbox"), True),
            (Column("p", "Owner", "people"), [7, 8]),
        ]
        for column, value in cases:
            with self.subTest(column=column.type, value=value):
                self.assertEqual(parse_column_value(format_column_value(value, column), column), value)

    def test_parse_rejects_types_without_inverse(self):
        with self.assertRaises(ValueError):
            parse_column_value({"label": "Done"}, Column("s", "Status", "status"))


class TestColumnLookup(unittest.TestCase):
    def test_find_column_and_bulk_format(self):
        columns = (Column("text0", "Notes", "text"), Column("status", "Status", "color"), DROPDOWN)
        self.assertEqual(find_column(columns, "text0").title, "Notes")
        self.assertEqual(find_column(columns, "notes").id, "text0")
        self.assertIsNone(find_column(columns, "owner"))

        formatted, warnings = format_column_values({"Notes": "x", "Status": "done", "Tags": "Design", "Owner": 1}, columns)
        self.assertEqual(formatted, {"text0": "x", "status": {"label": "Done"}})
        self.assertEqual(len(warnings), 2)

    def test_map_column_type(self):
        self.assertEqual(map_column_type("Number"), "numbers")
        self.assertEqual(map_column_type("person"), "people")
        self.assertEqual(map_column_type("mystery"), "text")
        self.assertEqual(map_column_type(None), "text")


if __name__ == "__main__":
    unittest.main()

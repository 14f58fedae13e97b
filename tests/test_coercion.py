from __future__ import annotations

import unittest
from datetime import datetime

from record_import.coercion import FieldType, coerce_value


class CoercionTests(unittest.TestCase):
    def test_blank_is_null_except_receipt_number(self) -> None:
        for field_type in FieldType:
            self.assertIsNone(coerce_value("   ", field_type, "notes"))
        self.assertIsNone(coerce_value(None, FieldType.NUMBER, "amount"))
        self.assertEqual(coerce_value("  ", FieldType.STRING, "receipt_number"), "")

    def test_numbers_strip_formatting(self) -> None:
        self.assertEqual(coerce_value("$1,250.75", FieldType.NUMBER), 1250.75)
        self.assertEqual(coerce_value("-50", FieldType.NUMBER), -50.0)
        self.assertEqual(coerce_value("EC$ 300", FieldType.NUMBER), 300.0)
        self.assertEqual(coerce_value("1.2.3", FieldType.NUMBER), 1.2)
        self.assertIsNone(coerce_value("n/a", FieldType.NUMBER))

    def test_month_first_dates(self) -> None:
        self.assertEqual(coerce_value("7/10/2018", FieldType.DATE), datetime(2018, 7, 10))
        self.assertEqual(coerce_value("12/31/2023", FieldType.DATE), datetime(2023, 12, 31))

    def test_generic_date_fallback(self) -> None:
        self.assertEqual(coerce_value("2024-02-29", FieldType.DATE), datetime(2024, 2, 29))
        self.assertEqual(coerce_value("05-Mar-2024", FieldType.DATE), datetime(2024, 3, 5))
        self.assertIsNone(coerce_value("pending", FieldType.DATE))

    def test_impossible_month_day_year_is_invalid(self) -> None:
        self.assertIsNone(coerce_value("13/10/2018", FieldType.DATE))
        self.assertIsNone(coerce_value("2/30/2024", FieldType.DATE))

    def test_out_of_range_utc_offset_is_invalid(self) -> None:
        self.assertIsNone(coerce_value("12:00 +9999", FieldType.DATE))

    def test_booleans(self) -> None:
        for raw in ("true", "YES", "1", " True "):
            self.assertIs(coerce_value(raw, FieldType.BOOLEAN), True)
        for raw in ("false", "no", "0", "y"):
            self.assertIs(coerce_value(raw, FieldType.BOOLEAN), False)

    def test_strings_pass_through(self) -> None:
        self.assertEqual(coerce_value("000123", FieldType.STRING, "id_number"), "000123")

    def test_coercion_is_pure(self) -> None:
        samples = [("7/10/2018", FieldType.DATE), ("$12.50", FieldType.NUMBER), ("yes", FieldType.BOOLEAN)]
        for raw, field_type in samples:
            self.assertEqual(coerce_value(raw, field_type), coerce_value(raw, field_type))


if __name__ == "__main__":
    unittest.main()

from __future__ import annotations

import unittest

from record_import.csv_tokenizer import parse_csv, split_csv_row


class CsvTokenizerTests(unittest.TestCase):
    def test_header_and_rows(self) -> None:
        parsed = parse_csv("First Name,Last Name\nJohn,Smith\nMaya,Davis\n")
        self.assertEqual(parsed.headers, ["First Name", "Last Name"])
        self.assertEqual(parsed.rows, [["John", "Smith"], ["Maya", "Davis"]])

    def test_quoted_fields_and_escaped_quotes(self) -> None:
        row = split_csv_row('"Smith, Jr.",  "He said ""hi""",plain')
        self.assertEqual(row, ["Smith, Jr.", 'He said "hi"', "plain"])

    def test_blank_lines_dropped_and_crlf_handled(self) -> None:
        parsed = parse_csv("a,b\r\n\r\n1,2\r\n   \r\n3,4")
        self.assertEqual(parsed.rows, [["1", "2"], ["3", "4"]])

    def test_cells_trimmed_and_trailing_empty_cells_kept(self) -> None:
        self.assertEqual(split_csv_row(" 000123 , x ,"), ["000123", "x", ""])

    def test_no_content_yields_empty_result(self) -> None:
        parsed = parse_csv("\n  \n\r\n")
        self.assertTrue(parsed.is_empty)
        self.assertEqual(parsed.headers, [])
        self.assertEqual(parsed.rows, [])


if __name__ == "__main__":
    unittest.main()

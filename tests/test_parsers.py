import tempfile
import unittest
from pathlib import Path

import pandas as pd
from openpyxl import Workbook

from shrinkwatch.columns import detect_header
from shrinkwatch.parsers import (
    compute_variance_impact,
    extract_records,
    parse_sheet,
    parse_workbook,
    sheet_market_name,
)
from shrinkwatch.utils import load_workbook


HEADER = ["Item#", "Item", "Variance", "Revenue", "Cost"]


def grid(*rows):
    width = max(len(r) for r in rows)
    return pd.DataFrame([list(r) + [None] * (width - len(r)) for r in rows], dtype=object)


def metadata(market="Market: Building 4 - ABC"):
    return [
        ["Variance Report"],
        ["Printed 04/01/2024"],
        ["Location: North Campus"],
        [market],
    ]


class VarianceImpactTests(unittest.TestCase):
    def test_shortage_and_overage_are_exclusive(self):
        self.assertEqual(compute_variance_impact(-2, 3.5), (7.0, 0.0))
        self.assertEqual(compute_variance_impact(4, 1.25), (0.0, 5.0))
        self.assertEqual(compute_variance_impact(0, 9.0), (0.0, 0.0))

    def test_zero_cost_yields_no_dollar_impact(self):
        self.assertEqual(compute_variance_impact(-3, 0.0), (0.0, 0.0))


class ExtractRecordsTests(unittest.TestCase):
    def test_single_shortage_row(self):
        rows = [[""] * 5 for _ in range(4)] + [HEADER, ["1001", "Chips", "-2", "0", "3.50"]]
        header = detect_header(rows)

        records = extract_records(rows, header, "Building 4", "March")

        self.assertEqual(len(records), 1)
        record = records[0]
        self.assertEqual(record.item_number, "1001")
        self.assertEqual(record.inv_variance, -2.0)
        self.assertEqual(record.unit_cost, 3.5)
        self.assertAlmostEqual(record.shrink_loss, 7.0)
        self.assertEqual(record.overage_gain, 0.0)
        self.assertEqual(record.period, "March")
        self.assertEqual(record.market_name, "Building 4")

    def test_noise_rows_are_skipped(self):
        rows = [
            HEADER,
            ["", "", "-5", "10", "1"],
            ["", "Grand Total", "-9", "100", "1"],
            ["9999", "Category Summary", "3", "0", "1"],
            ["1002", "Soda", "0.0004", "5", "1"],
            ["1003", "Candy", "1", "5", "2"],
        ]
        header = detect_header(rows)

        records = extract_records(rows, header, "Lobby", "April 2024")

        self.assertEqual([r.item_name for r in records], ["Candy"])
        self.assertEqual(records[0].overage_gain, 2.0)
        self.assertEqual(records[0].period, "April")

    def test_revenue_is_derived_from_price_and_quantity(self):
        rows = [
            ["Item Number", "Description", "Variance", "Revenue", "Qty Sold", "Sale Price", "", "Unit Cost"],
            ["2001", "Water", "-1", "", "10", "$1.50", "", "$0.40"],
        ]
        header = detect_header(rows)

        record = extract_records(rows, header, "Gym", "May")[0]

        self.assertAlmostEqual(record.total_revenue, 15.0)
        self.assertAlmostEqual(record.item_profit, 11.0)
        self.assertAlmostEqual(record.shrink_loss, 0.4)

    def test_optional_fields_stay_empty_when_blank(self):
        rows = [HEADER, ["1001", "Chips", "(3)", "$12.00", "0.5"]]
        header = detect_header(rows)

        record = extract_records(rows, header, "Gym", "May")[0]

        self.assertIsNone(record.sold_qty)
        self.assertIsNone(record.sale_price)
        self.assertIsNone(record.item_profit)
        self.assertEqual(record.inv_variance, -3.0)
        self.assertAlmostEqual(record.shrink_loss, 1.5)


class SheetParsingTests(unittest.TestCase):
    def test_market_name_comes_from_metadata_rows(self):
        rows = metadata() + [HEADER]
        self.assertEqual(sheet_market_name(rows, "Sheet1"), "Building 4")

    def test_market_name_falls_back_to_location_then_sheet(self):
        rows = metadata(market="") + [HEADER]
        self.assertEqual(sheet_market_name(rows, "Sheet1"), "North Campus")
        self.assertEqual(sheet_market_name([HEADER], "Lobby Market"), "Lobby Market")

    def test_sheet_without_header_yields_nothing(self):
        df = grid(["Notes"], ["nothing to see"])
        self.assertIsNone(parse_sheet(df, "Notes", "March"))

    def test_workbook_skips_headerless_sheets_and_dedupes_markets(self):
        sheets = {
            "A": grid(*metadata(), HEADER, ["1001", "Chips", "-2", "0", "3.50"]),
            "B": grid(*metadata(), HEADER, ["1002", "Soda", "4", "0", "1.00"]),
            "Notes": grid(["free text"]),
        }

        result = parse_workbook(sheets, "March 2024")

        self.assertEqual(len(result.records), 2)
        self.assertEqual(result.market_names, ["Building 4"])
        self.assertTrue(all(r.period == "March" for r in result.records))


class WorkbookLoadingTests(unittest.TestCase):
    def test_xlsx_round_trip_through_loader(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "variance.xlsx"
            wb = Workbook()
            ws = wb.active
            ws.title = "Market 1"
            for row in metadata("Market: Student Union - 0042"):
                ws.append(row)
            ws.append(["Item Number", "Description", "Inv Variance", "Revenue", "Qty Sold", "Sale Price", "Extra", "Unit Cost"])
            ws.append([1001, "Chips", -2, 20, 10, 2.0, None, 0.75])
            ws.append([1002, "Soda", 3, 30, 15, 2.0, None, 0.5])
            ws.append([None, "Total", 1, 50, None, None, None, None])
            wb.save(path)

            sheets = load_workbook(path)
            result = parse_workbook(sheets, "June")

        self.assertEqual(result.market_names, ["Student Union"])
        self.assertEqual([r.item_number for r in result.records], ["1001", "1002"])
        self.assertAlmostEqual(result.records[0].shrink_loss, 1.5)
        self.assertAlmostEqual(result.records[1].overage_gain, 1.5)

    def test_unreadable_file_returns_none(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "broken.xlsx"
            path.write_bytes(b"not a workbook")

            self.assertIsNone(load_workbook(path))

    def test_missing_file_returns_none(self):
        self.assertIsNone(load_workbook(Path("/nonexistent/variance.xlsx")))


if __name__ == "__main__":
    unittest.main()

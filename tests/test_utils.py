import math
import unittest

from shrinkwatch.utils import cell_text, coerce_number, humanize_market_name, normalize_period


class CoerceNumberTests(unittest.TestCase):
    def test_currency_string_is_parsed(self):
        self.assertAlmostEqual(coerce_number("$1,234.56"), 1234.56)

    def test_parentheses_force_negative(self):
        self.assertEqual(coerce_number("(500)"), -500.0)
        self.assertEqual(coerce_number("($12.50)"), -12.5)

    def test_leading_minus_is_negative(self):
        self.assertEqual(coerce_number("-$3.25"), -3.25)
        self.assertEqual(coerce_number(" -7 "), -7.0)

    def test_minus_after_currency_symbol_is_negative(self):
        self.assertEqual(coerce_number("$-5.00"), -5.0)
        self.assertEqual(coerce_number("€-1,200"), -1200.0)

    def test_blank_and_missing_values_are_zero(self):
        self.assertEqual(coerce_number(""), 0.0)
        self.assertEqual(coerce_number(None), 0.0)
        self.assertEqual(coerce_number("   "), 0.0)

    def test_native_numbers_pass_through(self):
        self.assertEqual(coerce_number(42), 42.0)
        self.assertEqual(coerce_number(-2.5), -2.5)

    def test_nan_and_infinity_become_zero(self):
        self.assertEqual(coerce_number(float("nan")), 0.0)
        self.assertEqual(coerce_number(math.inf), 0.0)
        self.assertEqual(coerce_number("inf"), 0.0)

    def test_unparseable_values_never_raise(self):
        self.assertEqual(coerce_number("n/a"), 0.0)
        self.assertEqual(coerce_number("12abc"), 0.0)
        self.assertEqual(coerce_number(object()), 0.0)


class HumanizeMarketNameTests(unittest.TestCase):
    def test_prefix_and_trailing_site_code_are_removed(self):
        self.assertEqual(humanize_market_name("Market: Building 4 - ABC"), "Building 4")

    def test_single_segment_code_is_kept(self):
        self.assertEqual(humanize_market_name("XY"), "XY")

    def test_numeric_segments_are_dropped(self):
        self.assertEqual(humanize_market_name("Location: 10023 - Acme HQ Lobby"), "Acme HQ Lobby")

    def test_meaningful_segments_are_joined(self):
        self.assertEqual(
            humanize_market_name("Site Name: North Campus | Break Room"),
            "North Campus - Break Room",
        )

    def test_prefix_is_case_insensitive(self):
        self.assertEqual(humanize_market_name("POS: Gym Market"), "Gym Market")

    def test_all_codes_fall_back_to_trimmed_remainder(self):
        self.assertEqual(humanize_market_name("Market: AB12 - 0042"), "AB12 - 0042")

    def test_hyphenated_words_without_spacing_are_not_split(self):
        self.assertEqual(humanize_market_name("Walk-In Cooler"), "Walk-In Cooler")

    def test_empty_input(self):
        self.assertEqual(humanize_market_name(""), "")


class NormalizePeriodTests(unittest.TestCase):
    def test_month_substring_is_detected(self):
        self.assertEqual(normalize_period("March 2024 Closeout"), "March")
        self.assertEqual(normalize_period("inventory report for SEPTEMBER"), "September")

    def test_empty_input_is_unknown(self):
        self.assertEqual(normalize_period(""), "Unknown")
        self.assertEqual(normalize_period(None), "Unknown")

    def test_unrecognized_label_is_preserved(self):
        self.assertEqual(normalize_period("Q1 Summary"), "Q1 Summary")
        self.assertEqual(normalize_period("  Week 12  "), "Week 12")

    def test_abbreviations_are_not_expanded(self):
        self.assertEqual(normalize_period("Jan"), "Jan")
        self.assertEqual(normalize_period("Feb 2024"), "Feb 2024")


class CellTextTests(unittest.TestCase):
    def test_integral_floats_drop_decimal(self):
        self.assertEqual(cell_text(1001.0), "1001")
        self.assertEqual(cell_text(12.5), "12.5")

    def test_blank_cells(self):
        self.assertEqual(cell_text(None), "")
        self.assertEqual(cell_text(float("nan")), "")
        self.assertEqual(cell_text("  Chips "), "Chips")


if __name__ == "__main__":
    unittest.main()

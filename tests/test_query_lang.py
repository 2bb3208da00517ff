"""Unit tests for where-expressions."""

import unittest
from datetime import date

from ohie.models import OutbreakRecord, OutbreakType, Setting
from ohie.query_lang import And, Cmp, Not, Or, ParseError, compile_where, parse, tokenize


def _rec(setting, otype, began, agent=None, duration=None):
    return OutbreakRecord(row_id=0, setting=setting, outbreak_type=otype, date_began=began,
                          year=began.year, month=began.month, duration_days=duration,
                          causative_agent_1=agent)


class TestParser(unittest.TestCase):

    def test_tokenize_keywords_case_insensitive(self):
        kinds = [t.kind for t in tokenize("year >= 2020 and not setting in ('LTCH', Shelter)")]
        self.assertEqual(kinds, ["IDENT", "OP", "NUMBER", "AND", "NOT", "IDENT", "IN",
                                 "LPAREN", "STRING", "COMMA", "IDENT", "RPAREN"])

    def test_precedence(self):
        node = parse("year == 2020 OR year == 2021 AND type == Enteric")
        self.assertIsInstance(node, Or)
        self.assertIsInstance(node.right, And)

    def test_parentheses_and_not(self):
        node = parse("NOT (year == 2020 OR year == 2021)")
        self.assertIsInstance(node, Not)
        self.assertIsInstance(node.operand, Or)

    def test_values(self):
        self.assertEqual(parse("duration > 1.5"), Cmp("duration", ">", 1.5))
        self.assertEqual(parse("setting == 'Hospital-Acute Care'"),
                         Cmp("setting", "==", "Hospital-Acute Care"))
        self.assertEqual(parse("type in (Enteric, 'Other')"), Cmp("type", "in", ("Enteric", "Other")))

    def test_errors(self):
        for bad in ("", "year >=", "year 2020", "(year == 2020", "year == 2020 )", "year == 2020-01-01", "year ~ 3"):
            with self.assertRaises(ParseError, msg=bad):
                parse(bad)


class TestCompileWhere(unittest.TestCase):

    def setUp(self):
        self.ltch_resp = _rec(Setting.LTCH, OutbreakType.RESPIRATORY, date(2022, 1, 5), agent="COVID-19", duration=30)
        self.acute_resp = _rec(Setting.HOSPITAL_ACUTE, OutbreakType.RESPIRATORY, date(2022, 3, 1))
        self.ltch_ent = _rec(Setting.LTCH, OutbreakType.ENTERIC, date(2021, 6, 10), agent="Norovirus", duration=12)
        self.all = [self.ltch_resp, self.acute_resp, self.ltch_ent]

    def _select(self, expr):
        pred = compile_where(expr)
        return [r for r in self.all if pred(r)]

    def test_equality_on_enums_uses_normalized_labels(self):
        self.assertEqual(self._select("outbreak_type == 'Respiratory'"), [self.ltch_resp, self.acute_resp])
        self.assertEqual(self._select("setting == 'long term care home'"), [self.ltch_resp, self.ltch_ent])
        self.assertEqual(self._select("type != respiratory"), [self.ltch_ent])

    def test_numeric_and_date_comparisons(self):
        self.assertEqual(self._select("year < 2022"), [self.ltch_ent])
        self.assertEqual(self._select("date_began >= '2022-02-01'"), [self.acute_resp])
        self.assertEqual(self._select("duration_days > 20"), [self.ltch_resp])

    def test_missing_values_never_match_ordered_comparisons(self):
        self.assertNotIn(self.acute_resp, self._select("duration <= 1000"))

    def test_in_and_contains(self):
        self.assertEqual(self._select("setting in ('Hospital-Acute Care', Shelter)"), [self.acute_resp])
        self.assertEqual(self._select("agent contains 'noro'"), [self.ltch_ent])
        self.assertEqual(self._select("setting contains 'hospital'"), [self.acute_resp])

    def test_boolean_combinations(self):
        self.assertEqual(self._select("setting == LTCH AND NOT type == Enteric"), [self.ltch_resp])
        self.assertEqual(self._select("year == 2021 OR setting == 'Hospital-Acute Care'"),
                         [self.acute_resp, self.ltch_ent])

    def test_non_ascii_literal(self):
        residence = OutbreakRecord(row_id=3, setting=Setting.RETIREMENT_HOME, outbreak_type=OutbreakType.ENTERIC,
                                   date_began=date(2020, 2, 2), year=2020, month=2,
                                   institution_name="Résidence Sainte-Anne")
        pred = compile_where("institution_name contains 'Résidence'")
        self.assertTrue(pred(residence))
        self.assertFalse(pred(self.ltch_resp))

    def test_escaped_quote_in_literal(self):
        self.assertEqual(parse(r"institution == 'St. Mary\'s'"), Cmp("institution", "==", "St. Mary's"))

    def test_misspelled_label_raises(self):
        with self.assertRaises(ParseError):
            compile_where("setting == 'LTHC'")
        with self.assertRaises(ParseError):
            compile_where("type in (Respiratory, Enterik)")

    def test_unknown_label_is_accepted(self):
        day_care = _rec(Setting.UNKNOWN, OutbreakType.OTHER, date(2020, 1, 1))
        self.assertTrue(compile_where("setting == 'Unknown'")(day_care))
        self.assertFalse(compile_where("setting == 'Unknown'")(self.ltch_resp))

    def test_literal_type_must_match_field(self):
        for bad in ("year > 'abc'", "duration_days <= soon", "date_began > soon"):
            with self.assertRaises(ParseError, msg=bad):
                compile_where(bad)
        self.assertEqual(self._select("year == '2021'"), [self.ltch_ent])
        self.assertEqual(self._select("institution_name != 5"), self.all)

    def test_unknown_field(self):
        with self.assertRaises(ValueError):
            compile_where("colour == red")

    def test_bad_date_literal(self):
        with self.assertRaises(ParseError):
            compile_where("date_began > 'yesterday'")


if __name__ == '__main__':
    unittest.main()

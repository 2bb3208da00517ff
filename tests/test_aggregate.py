"""Unit tests for grouped counts, per-partition percentages and table views."""

import json
import os
import shutil
import tempfile
import unittest
from datetime import date

from ohie.aggregate import (
    MISSING_LABEL, aggregate, counts_to_frame, crosstab, export_csv, export_json, partition_totals,
)
from ohie.derive import derive_records
from ohie.models import GroupCount, OutbreakType, RawOutbreak, Setting


def _records(rows):
    raws = [RawOutbreak(row_id=i, setting=s, outbreak_type=t, date_began=d)
            for i, (t, s, d) in enumerate(rows)]
    return derive_records(raws)


SCENARIO = [
    ("Respiratory", "LTCH", date(2022, 1, 5)),
    ("Respiratory", "Hospital-Acute Care", date(2022, 3, 1)),
    ("Enteric", "LTCH", date(2021, 6, 10)),
]

LARGER = SCENARIO + [
    ("Respiratory", "Retirement Home", date(2021, 11, 2)),
    ("Enteric", "Retirement Home", date(2021, 12, 24)),
    ("Other", "Shelter", date(2020, 2, 2)),
    ("Respiratory", "LTCH", date(2020, 3, 15)),
    ("Respiratory", "LTCH", date(2020, 4, 1)),
    ("Enteric", "Hospital-Chronic Care", date(2022, 7, 7)),
    ("Respiratory", "Transitional Care", date(2022, 10, 30)),
]


class TestAggregate(unittest.TestCase):

    def setUp(self):
        self.records = _records(SCENARIO)
        self.larger = _records(LARGER)

    def test_counts_by_year_and_type(self):
        groups = aggregate(self.records, ["year", "outbreak_type"])
        got = {g.key: g.count for g in groups}
        self.assertEqual(got, {
            (2022, OutbreakType.RESPIRATORY): 2,
            (2021, OutbreakType.ENTERIC): 1,
        })
        self.assertTrue(all(g.percentage is None for g in groups))
        self.assertEqual(groups[0].fields, ("year", "outbreak_type"))

    def test_setting_share_within_year(self):
        groups = aggregate(self.records, ["year", "setting"], normalize=True)
        shares = {g.key[1]: g.percentage for g in groups if g.key[0] == 2022}
        self.assertEqual(set(shares), {Setting.LTCH, Setting.HOSPITAL_ACUTE})
        self.assertAlmostEqual(shares[Setting.LTCH], 50.0)
        self.assertAlmostEqual(shares[Setting.HOSPITAL_ACUTE], 50.0)
        only_2021 = [g for g in groups if g.key[0] == 2021]
        self.assertEqual(len(only_2021), 1)
        self.assertAlmostEqual(only_2021[0].percentage, 100.0)

    def test_output_sorted_by_key(self):
        groups = aggregate(self.larger, ["year", "setting"])
        keys = [(g.key[0], g.key[1].value) for g in groups]
        self.assertEqual(keys, sorted(keys))

    def test_filter_is_applied_first(self):
        groups = aggregate(self.larger, ["year"],
                           where=lambda r: r.outbreak_type is OutbreakType.ENTERIC)
        self.assertEqual({g.key: g.count for g in groups}, {(2021,): 2, (2022,): 1})

    def test_where_expression(self):
        groups = aggregate(self.larger, ["year", "setting"],
                           where="type == 'Respiratory' AND year >= 2021", normalize=True)
        self.assertEqual(sum(g.count for g in groups), 4)
        self.assertTrue(all(g.key[0] >= 2021 for g in groups))

    def test_partition_with_no_records_produces_no_groups(self):
        groups = aggregate(self.larger, ["year", "setting"],
                           where="outbreak_type == 'Enteric'", normalize=True)
        self.assertNotIn(2020, {g.key[0] for g in groups})
        for g in groups:
            self.assertIsNotNone(g.percentage)

    def test_empty_input(self):
        self.assertEqual(aggregate([], ["year"], normalize=True), [])

    def test_partition_counts_add_up(self):
        groups = aggregate(self.larger, ["year", "outbreak_type"])
        totals = partition_totals(groups)
        for (year,), total in totals.items():
            self.assertEqual(total, sum(1 for r in self.larger if r.year == year))

    def test_percentages_sum_to_100_per_partition(self):
        for fields in (["year", "setting"], ["year", "outbreak_type"], ["setting", "outbreak_type"],
                       ["year", "month", "setting"]):
            groups = aggregate(self.larger, fields, normalize=True)
            sums = {}
            for g in groups:
                sums[g.partition] = sums.get(g.partition, 0.0) + g.percentage
            for s in sums.values():
                self.assertAlmostEqual(s, 100.0, delta=1e-6)

    def test_single_dimension_normalizes_over_everything(self):
        groups = aggregate(self.larger, ["outbreak_type"], normalize=True)
        self.assertAlmostEqual(sum(g.percentage for g in groups), 100.0, delta=1e-6)
        self.assertEqual(partition_totals(groups), {(): len(self.larger)})

    def test_year_round_trip_matches_record_count(self):
        groups = aggregate(self.larger, ["year"])
        self.assertEqual(sum(g.count for g in groups), len(self.larger))

    def test_deterministic(self):
        a = aggregate(self.larger, ["year", "setting"], normalize=True)
        b = aggregate(list(reversed(self.larger)), ["year", "setting"], normalize=True)
        self.assertEqual(a, b)

    def test_custom_selector(self):
        groups = aggregate(self.larger, [("quarter", lambda r: (r.month - 1) // 3 + 1)])
        self.assertEqual(groups[0].fields, ("quarter",))
        self.assertEqual(sum(g.count for g in groups), len(self.larger))

    def test_unknown_field_raises(self):
        with self.assertRaises(ValueError):
            aggregate(self.records, ["colour"])
        with self.assertRaises(ValueError):
            aggregate(self.records, [])

    def test_partition_totals_of_zero_count_groups(self):
        # Groups built by hand (e.g. merged partial results) may carry zero counts.
        g = GroupCount(key=(2020, Setting.LTCH), count=0, fields=("year", "setting"))
        self.assertEqual(partition_totals([g]), {(2020,): 0})


class TestViews(unittest.TestCase):

    def setUp(self):
        self.records = _records(LARGER)
        self.test_dir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.test_dir, ignore_errors=True)

    def test_counts_to_frame(self):
        df = counts_to_frame(aggregate(self.records, ["year", "outbreak_type"]))
        self.assertEqual(list(df.columns), ["year", "outbreak_type", "count", "percentage"])
        self.assertEqual(int(df["count"].sum()), len(self.records))
        self.assertIn("Respiratory", set(df["outbreak_type"]))

    def test_crosstab_fills_missing_combinations(self):
        table = crosstab(aggregate(self.records, ["year", "outbreak_type"]))
        self.assertEqual(table.loc[2020, "Enteric"], 0)
        self.assertEqual(table.loc[2022, "Respiratory"], 3)

    def test_crosstab_percentage_rows_sum_to_100(self):
        table = crosstab(aggregate(self.records, ["year", "setting"], normalize=True), value="percentage")
        for total in table.sum(axis=1):
            self.assertAlmostEqual(total, 100.0, delta=1e-6)

    def test_crosstab_keeps_missing_keys(self):
        raws = [
            RawOutbreak(row_id=0, setting="LTCH", outbreak_type="Respiratory", date_began=date(2022, 1, 5)),
            RawOutbreak(row_id=1, setting="Shelter", outbreak_type="Enteric", date_began=date(2022, 2, 1),
                        date_declared_over=date(2022, 2, 11)),
        ]
        groups = aggregate(derive_records(raws), ["duration_days", "setting"])
        table = crosstab(groups)
        self.assertEqual(int(table.to_numpy().sum()), sum(g.count for g in groups))
        self.assertIn(MISSING_LABEL, table.index)
        self.assertEqual(table.loc[MISSING_LABEL, "LTCH"], 1)

        by_duration = crosstab(aggregate(derive_records(raws), ["duration_days"]))
        self.assertEqual(list(by_duration["count"]), [1, 1])
        self.assertEqual(by_duration.index[-1], MISSING_LABEL)

    def test_export_csv(self):
        path = os.path.join(self.test_dir, "out", "by_year.csv")
        export_csv(aggregate(self.records, ["year"]), path)
        with open(path, encoding="utf-8") as f:
            lines = f.read().splitlines()
        self.assertEqual(lines[0], "year,count,percentage")
        self.assertEqual(lines[1], "2020,3,")

    def test_export_json(self):
        path = os.path.join(self.test_dir, "by_setting.json")
        export_json(aggregate(self.records, ["year", "setting"], normalize=True), path)
        with open(path, encoding="utf-8") as f:
            payload = json.load(f)
        self.assertEqual(payload[0]["year"], 2020)
        self.assertEqual(payload[0]["setting"], "LTCH")
        self.assertAlmostEqual(payload[0]["percentage"], 200.0 / 3)


if __name__ == '__main__':
    unittest.main()

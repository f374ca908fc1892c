from decimal import Decimal

from lastmile.importers.validator import (
    ValidationOptions,
    check_duplicates,
    check_weight_continuity,
    full_validation,
    generate_summary,
    validate_rates,
)

from factories import tier

D = Decimal


def test_row_errors_are_isolated_per_row():
    rates = [
        tier("Z1", 0, 5, 5, 7, row=2),
        tier("", 5, 10, 8, row=3),
        tier("Z1", 10, 5, 8, row=4),
        tier("Z1", 10, 20, None, 9, row=5),
        tier("Z1", 20, 30, -1, row=6),
    ]
    result = validate_rates(rates)

    assert not result.valid
    assert result.valid_count == 1
    assert result.invalid_count == 4
    assert {e.code for e in result.errors} == {
        "ZONE_MISSING",
        "WEIGHT_TO_BELOW_FROM",
        "PURCHASE_PRICE_MISSING",
        "NEGATIVE_PRICE",
    }
    assert [r.row_number for r in result.valid_rates] == [2]


def test_warnings_do_not_invalidate():
    rates = [tier("Z1", 0, 20000, 12000, 10000)]
    result = validate_rates(rates)

    assert result.valid
    assert {w.code for w in result.warnings} == {"WEIGHT_TO_ABOVE_MAX", "PRICE_ABOVE_MAX", "SALES_BELOW_PURCHASE"}


def test_options_require_sales_and_allow_negative():
    opts = ValidationOptions(require_sales_price=True, allow_negative_price=True)
    result = validate_rates([tier("Z1", 0, 5, -2, None)], opts)
    assert [e.code for e in result.errors] == ["SALES_PRICE_MISSING"]


def test_duplicates_name_both_rows():
    rates = [
        tier("Z1", 0, 5, 5, row=2),
        tier("Z1", 5, 10, 8, row=3),
        tier("Z1", 0, 5, 6, row=7),
    ]
    report = check_duplicates(rates)

    assert report.duplicate_count == 1
    pair = report.duplicates[0]
    assert (pair.first_index, pair.duplicate_index) == (0, 2)
    assert (pair.first_row, pair.duplicate_row) == (2, 7)
    assert "rows 2 and 7" in pair.message


def test_duplicates_in_reversed_order_still_name_both_rows():
    rates = [
        tier("Z1", 0, 5, 6, row=7),
        tier("Z1", 5, 10, 8, row=3),
        tier("Z1", 0, 5, 5, row=2),
    ]
    report = check_duplicates(rates)

    assert report.duplicate_count == 1
    pair = report.duplicates[0]
    assert (pair.first_index, pair.duplicate_index) == (0, 2)
    assert (pair.first_row, pair.duplicate_row) == (7, 2)
    assert "rows 7 and 2" in pair.message


def test_continuity_gaps_and_overlaps_per_zone():
    rates = [
        tier("Z1", 0, 5, 5),
        tier("Z1", 5, 10, 8),
        tier("Z1", 12, 20, 9),
        tier("Z2", 0, 10, 5),
        tier("Z2", 8, 15, 6),
    ]
    report = check_weight_continuity(rates)

    assert report.zone_count == 2
    assert [(g.zone_code, g.gap_from, g.gap_to) for g in report.gaps] == [("Z1", D("10"), D("12"))]
    assert [(o.zone_code, o.overlap_from, o.overlap_to) for o in report.overlaps] == [("Z2", D("8"), D("10"))]


def test_summary():
    summary = generate_summary(
        [tier("Z2", 5, 10, 8, 11), tier("Z1", 0, 5, 5, None), tier("Z1", 5, 10, 7, 10)]
    )
    assert summary.zones == ["Z1", "Z2"]
    assert [b.label for b in summary.weight_ranges] == ["0-5kg", "5-10kg"]
    assert (summary.min_price, summary.max_price) == (D("5"), D("11"))
    assert summary.has_purchase_price and summary.has_sales_price
    assert generate_summary([]).total_records == 0


def test_full_validation_status():
    ok = full_validation([tier("Z1", 0, 5, 5), tier("Z1", 5, 10, 8)])
    assert (ok.status, ok.valid, ok.can_proceed) == ("success", True, True)

    dup = full_validation([tier("Z1", 0, 5, 5), tier("Z1", 0, 5, 6)])
    assert dup.status == "warning"
    assert dup.can_proceed
    assert not dup.valid

    bad = full_validation([tier("Z1", 0, 5, 5), tier(None, 5, 10, 8, row=3)])
    assert bad.status == "error"
    assert not bad.can_proceed
    assert bad.summary.total_records == 1

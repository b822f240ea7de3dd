"""Tests for money handling and the allocation validator."""

from decimal import Decimal

import pytest

from envelope_recon.models import Allocation
from envelope_recon.utils.exceptions import (
    AmountMismatch,
    InvalidAmountError,
    InvalidEnvelopeReference,
    NoEnvelopeAssigned,
)
from envelope_recon.utils.money import to_money
from envelope_recon.validation import (
    allocation_total,
    check_allocations,
    net_by_envelope,
    normalize_allocations,
    validate_allocations,
)


class TestToMoney:
    """Tests for decimal amount conversion."""

    def test_float_goes_through_str(self):
        assert to_money(0.1) == Decimal("0.10")

    def test_rounds_half_up(self):
        assert to_money("2.675") == Decimal("2.68")
        assert to_money("-2.675") == Decimal("-2.68")

    def test_always_two_places(self):
        assert str(to_money(5)) == "5.00"

    def test_repeated_addition_does_not_drift(self):
        total = sum((to_money(0.1) for _ in range(10)), Decimal("0"))
        assert total == Decimal("1.00")

    @pytest.mark.parametrize("value", ["abc", "", "NaN", "Infinity", None, True])
    def test_rejects_non_amounts(self, value):
        with pytest.raises(InvalidAmountError):
            to_money(value)


class TestCheckAllocations:
    """Tests for the allocation rules, in their documented order."""

    def test_single_full_allocation_is_valid(self):
        allocations = (Allocation(1, Decimal("-45.67")),)
        assert check_allocations(Decimal("-45.67"), allocations) is None

    def test_split_is_summed_by_absolute_value(self):
        allocations = (Allocation(1, Decimal("-60.00")), Allocation(2, Decimal("40.00")))
        assert check_allocations(Decimal("-100.00"), allocations) is None

    @pytest.mark.parametrize("envelope_id", [0, None, -3])
    def test_placeholder_envelope_invalidates_set(self, envelope_id):
        allocations = (
            Allocation(1, Decimal("-20.00")),
            Allocation(envelope_id, Decimal("-25.67")),
        )
        error = check_allocations(Decimal("-45.67"), allocations)
        assert isinstance(error, InvalidEnvelopeReference)

    def test_reference_rule_runs_before_amount_rule(self):
        error = check_allocations(Decimal("-45.67"), (Allocation(0, Decimal("-1.00")),))
        assert isinstance(error, InvalidEnvelopeReference)

    def test_mismatch_reports_both_amounts(self):
        error = check_allocations(Decimal("-45.67"), (Allocation(1, Decimal("-40.00")),))
        assert isinstance(error, AmountMismatch)
        assert error.expected == Decimal("45.67")
        assert error.actual == Decimal("40.00")
        assert "40.00" in str(error)
        assert "45.67" in str(error)

    def test_difference_below_epsilon_is_accepted(self):
        allocations = (Allocation(1, Decimal("-45.665")),)
        assert check_allocations(Decimal("-45.67"), allocations) is None

    def test_difference_of_one_cent_is_rejected(self):
        error = check_allocations(Decimal("-45.67"), (Allocation(1, Decimal("-45.66")),))
        assert isinstance(error, AmountMismatch)

    def test_empty_set_cannot_be_approved(self):
        assert isinstance(check_allocations(Decimal("-45.67"), ()), NoEnvelopeAssigned)

    def test_empty_set_is_a_valid_draft(self):
        assert check_allocations(Decimal("-45.67"), (), approving=False) is None

    def test_draft_allows_partial_amounts(self):
        allocations = (Allocation(1, Decimal("-10.00")),)
        assert check_allocations(Decimal("-45.67"), allocations, approving=False) is None

    def test_draft_still_checks_references(self):
        error = check_allocations(
            Decimal("-45.67"), (Allocation(None, Decimal("-1.00")),), approving=False
        )
        assert isinstance(error, InvalidEnvelopeReference)

    def test_validate_raises_the_error(self):
        with pytest.raises(NoEnvelopeAssigned, match="without envelope assignment"):
            validate_allocations(Decimal("-45.67"), ())


class TestNormalizeAllocations:
    """Tests for coercing user supplied allocation shapes."""

    def test_accepts_mappings_and_pairs(self):
        allocations = normalize_allocations(
            [{"envelopeId": "3", "amount": "-10.5"}, (4, -2), Allocation(5, Decimal("1"))]
        )
        assert allocations == (
            Allocation(3, Decimal("-10.50")),
            Allocation(4, Decimal("-2.00")),
            Allocation(5, Decimal("1.00")),
        )

    def test_blank_envelope_becomes_unset(self):
        allocations = normalize_allocations([{"envelope_id": "", "amount": "-1"}])
        assert allocations[0].envelope_id is None

    def test_non_numeric_envelope_is_invalid(self):
        with pytest.raises(InvalidEnvelopeReference):
            normalize_allocations([("groceries", "-1")])

    def test_net_by_envelope_merges_and_drops_zero(self):
        allocations = (
            Allocation(1, Decimal("-10.00")),
            Allocation(1, Decimal("-5.00")),
            Allocation(2, Decimal("3.00")),
            Allocation(2, Decimal("-3.00")),
        )
        assert net_by_envelope(allocations) == {1: Decimal("-15.00")}
        assert allocation_total(allocations) == Decimal("21.00")

import pytest

from hcv_tools import calculate_rent, check_eligibility, explain_term, income_limit_for


class TestEligibility:

    def test_under_limit(self):
        answer = check_eligibility(3, 45000)
        assert "you may be eligible" in answer
        assert "$45,000" in answer
        assert "$64,000" in answer

    def test_over_limit(self):
        answer = check_eligibility(1, 60000, "Denver")
        assert "you may not be eligible" in answer
        assert "in Denver" in answer

    def test_limit_is_inclusive(self):
        assert "you may be eligible" in check_eligibility(4, 71000)

    @pytest.mark.parametrize("size,limit", [(1, 50000), (8, 95000), (12, 95000), (0, 50000)])
    def test_limit_table(self, size, limit):
        assert income_limit_for(size) == limit


class TestRent:

    def test_thirty_percent_rule(self):
        answer = calculate_rent(1000, 1200, None)
        assert "$300.00" in answer
        assert "$900.00" in answer

    def test_rent_above_payment_standard(self):
        answer = calculate_rent(1000, 1200, 1100)
        assert "$300.00" in answer
        assert "exceeds the payment standard ($1,100)" in answer
        assert "total payment $400.00" in answer

    def test_rent_within_payment_standard(self):
        answer = calculate_rent(2000, 1200, 1500)
        assert "HCV would pay approximately $600.00" in answer


class TestTerms:

    def test_known_term_any_case(self):
        assert explain_term("PHA").startswith("Public Housing Authority")
        assert explain_term("  Payment Standard ").startswith("The maximum amount HCV will pay")

    def test_unknown_term(self):
        assert "don't have a specific explanation for \"escrow\"" in explain_term("escrow")

"""
Unit tests for order pricing and numbering.
"""

import re
from datetime import datetime
from decimal import Decimal

from ferremas.services.order_service import calculate_totals, generate_order_number


class TestCalculateTotals:
    """Tests for discount and tax calculation."""

    def test_five_units_get_discount(self):
        """5 x 10.000 -> 50.000 / 2.500 / 9.025 / 56.525."""
        totals = calculate_totals([{'unit_price': Decimal('10000'), 'quantity': 5}])

        assert totals['subtotal'] == Decimal('50000.00')
        assert totals['discount'] == Decimal('2500.00')
        assert totals['tax'] == Decimal('9025.00')
        assert totals['total'] == Decimal('56525.00')
        assert totals['total_quantity'] == 5

    def test_four_units_no_discount(self):
        totals = calculate_totals([{'unit_price': Decimal('10000'), 'quantity': 4}])

        assert totals['discount'] == Decimal('0.00')
        assert totals['tax'] == Decimal('7600.00')
        assert totals['total'] == Decimal('47600.00')

    def test_quantity_is_summed_across_lines(self):
        """Discount threshold counts units of every line."""
        totals = calculate_totals([
            {'unit_price': Decimal('4990'), 'quantity': 3},
            {'unit_price': Decimal('10000'), 'quantity': 2},
        ])

        assert totals['subtotal'] == Decimal('34970.00')
        assert totals['discount'] == Decimal('1748.50')
        # 33221.50 * 0.19 = 6312.085 -> half up
        assert totals['tax'] == Decimal('6312.09')
        assert totals['total'] == Decimal('39533.59')

    def test_total_invariant(self):
        cases = [
            [{'unit_price': '1.99', 'quantity': 7}],
            [{'unit_price': '333.33', 'quantity': 3}, {'unit_price': '0.01', 'quantity': 2}],
            [{'unit_price': '12345.67', 'quantity': 1}],
        ]
        for lines in cases:
            totals = calculate_totals(lines)
            assert totals['total'] == totals['subtotal'] - totals['discount'] + totals['tax']
            assert (totals['discount'] > 0) == (totals['total_quantity'] > 4)

    def test_rates_can_be_overridden(self):
        totals = calculate_totals(
            [{'unit_price': '100', 'quantity': 2}],
            tax_rate='0',
            discount_rate='0.10',
            discount_min_units=1,
        )

        assert totals['discount'] == Decimal('20.00')
        assert totals['tax'] == Decimal('0.00')
        assert totals['total'] == Decimal('180.00')


class TestOrderNumber:
    """Tests for order number generation."""

    def test_format(self):
        number = generate_order_number(datetime(2024, 5, 1, 12, 30, 45, 123456))
        assert re.match(r'^ORD-20240501123045123456-[0-9A-F]{4}$', number)

    def test_random_suffix(self):
        now = datetime(2024, 5, 1, 12, 0, 0)
        numbers = {generate_order_number(now) for _ in range(20)}
        assert len(numbers) > 1

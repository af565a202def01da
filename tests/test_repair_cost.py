"""
Unit tests for the repair cost calculator.
"""
import pytest

from app.services.repair_cost_calculator import (
    calculate_repair_cost,
    estimate_module_cost,
    total_repair_cost,
)


class TestCalculateRepairCost:
    def test_no_risk_no_cost(self):
        assert calculate_repair_cost(0.0, 150000, 1.3) == 0.0

    def test_full_risk_full_base_cost(self):
        assert calculate_repair_cost(1.0, 150000, 1.3) == pytest.approx(150000)

    def test_power_curve(self):
        assert calculate_repair_cost(0.5, 100000, 1.2) == pytest.approx(100000 * 0.5 ** 1.2)

    def test_gamma_below_one_front_loads(self):
        assert calculate_repair_cost(0.3, 10000, 0.8) > 0.3 * 10000

    def test_risk_clamped(self):
        assert calculate_repair_cost(1.7, 1000, 1.0) == pytest.approx(1000)
        assert calculate_repair_cost(-0.1, 1000, 1.0) == 0.0

    def test_zero_base_cost(self):
        assert calculate_repair_cost(0.9, 0, 1.3) == 0.0


class TestTotal:
    def test_total_rounded_once(self):
        costs = [
            estimate_module_cost("a", "A", 0.2, 150000, 1.3),
            estimate_module_cost("b", "B", 0.8, 80000, 1.1),
        ]
        expected = 150000 * 0.2 ** 1.3 + 80000 * 0.8 ** 1.1
        assert total_repair_cost(costs) == round(expected, 2)

    def test_empty(self):
        assert total_repair_cost([]) == 0.0

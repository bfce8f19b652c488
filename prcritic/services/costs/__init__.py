from prcritic.services.costs.accountant import PRICING, CostAccountant, estimate_cost

__all__ = ["PRICING", "CostAccountant", "estimate_cost"]

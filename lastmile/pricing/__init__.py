# Quote-time pricing and profit analysis

from .engine import PricingEngine
from .profit import ProfitAnalyzer

__all__ = [
    "PricingEngine",
    "ProfitAnalyzer",
]

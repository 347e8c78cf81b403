"""
Recommendation, A/B testing and pricing core for a used-vinyl storefront.
"""

__version__ = "1.0.0"

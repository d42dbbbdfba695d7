"""Read-only query selectors."""

from commission_kernel.selectors.base import BaseSelector
from commission_kernel.selectors.commission_selector import CommissionSelector

__all__ = ["BaseSelector", "CommissionSelector"]

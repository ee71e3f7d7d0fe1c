"""Risk management -- pre-trade gate and portfolio risk status."""

from .gate import RiskGate
from .status import compute_risk_metrics, compute_risk_status

__all__ = [
    "RiskGate",
    "compute_risk_metrics",
    "compute_risk_status",
]

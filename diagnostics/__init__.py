"""Residual diagnostics for fitted forecasting models.

This package provides residual diagnostic testing including:
- Ljung-Box portmanteau test for residual autocorrelation
- Jarque-Bera normality test
- Per-model diagnostic tables
"""

from .residual_diagnostics import (
    ResidualDiagnostics,
    DiagnosticResult,
    DiagnosticTest,
    default_ljung_box_lags,
    diagnose_models,
    ljung_box
)

__all__ = [
    'ResidualDiagnostics',
    'DiagnosticResult',
    'DiagnosticTest',
    'default_ljung_box_lags',
    'diagnose_models',
    'ljung_box'
]

# Version info
__version__ = '1.0.0'

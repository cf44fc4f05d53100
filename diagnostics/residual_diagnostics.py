"""Residual diagnostics for fitted forecasting models.

This module reports portmanteau and normality statistics computed from a
model's innovation residuals. The diagnostics only report: a small Ljung-Box
p-value signals remaining autocorrelation, but no model is rejected here.

Features:
- Ljung-Box test for serial correlation (default lag rule by seasonal period)
- Jarque-Bera test for normality
- Diagnostic table across a set of fitted models
- Integration with configuration system
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional

import numpy as np
import pandas as pd
from statsmodels.stats.diagnostic import acorr_ljungbox
from statsmodels.stats.stattools import jarque_bera

logger = logging.getLogger(__name__)


class DiagnosticTest(Enum):
    """Types of residual diagnostic tests."""
    LJUNG_BOX = "ljung_box"
    JARQUE_BERA = "jarque_bera"


@dataclass
class DiagnosticResult:
    """Results from a single diagnostic test."""

    test_name: str
    test_type: DiagnosticTest
    test_statistic: float
    p_value: float
    significance_level: float = 0.05
    degrees_of_freedom: Optional[int] = None
    lags: Optional[int] = None

    test_description: Optional[str] = None
    additional_stats: Dict[str, float] = field(default_factory=dict)

    @property
    def is_significant(self) -> bool:
        """Check if test rejects null hypothesis at the significance level."""
        return bool(np.isfinite(self.p_value) and self.p_value < self.significance_level)

    @property
    def interpretation(self) -> str:
        """Get interpretation of test result."""
        if not np.isfinite(self.p_value):
            return "Not enough residuals for the test"
        if self.test_type == DiagnosticTest.LJUNG_BOX:
            if self.is_significant:
                return "Serial correlation detected in residuals"
            return "No significant serial correlation in residuals"
        if self.is_significant:
            return "Residuals not normally distributed"
        return "Residuals appear normally distributed"


def default_ljung_box_lags(period: int, n: Optional[int] = None) -> int:
    """
    Default Ljung-Box lag count: 2 * period for seasonal data, 10 otherwise.

    Capped at ``n - 1`` when the number of residuals is given.
    """
    lags = 2 * int(period) if int(period) > 1 else 10
    if n is not None:
        lags = min(lags, max(int(n) - 1, 1))
    return lags


def _clean_residuals(residuals) -> pd.Series:
    if isinstance(residuals, pd.Series):
        series = residuals
    else:
        series = pd.Series(np.asarray(residuals, dtype=float).ravel())
    return series[np.isfinite(series.to_numpy(dtype=float))].astype(float)


class ResidualDiagnostics:
    """Residual diagnostic testing."""

    def __init__(self, significance_level: float = 0.05, config_manager: Optional = None):
        """Initialize residual diagnostics.

        Parameters
        ----------
        significance_level : float, default 0.05
            Significance level used for interpretation
        config_manager : ConfigurationManager, optional
            Configuration manager for diagnostic settings
        """
        self.significance_level = significance_level
        self.config_manager = config_manager
        self.diag_config = self._load_diagnostic_config()

    def _load_diagnostic_config(self) -> Dict[str, Any]:
        """Load diagnostic configuration from config manager."""
        default_config = {
            'ljung_box_lags': None,
            'significance_level': self.significance_level,
        }

        if self.config_manager:
            eval_config = self.config_manager.get_evaluation_config()
            diagnostic_config = eval_config.get('diagnostic_tests', {}) or {}
            ljung_box = diagnostic_config.get('ljung_box', {}) or {}
            default_config['ljung_box_lags'] = ljung_box.get('lags', default_config['ljung_box_lags'])
            default_config['significance_level'] = diagnostic_config.get(
                'significance_level', default_config['significance_level'])
            self.significance_level = float(default_config['significance_level'])
            logger.debug("Loaded diagnostic configuration from config manager")

        return default_config

    def ljung_box_test(self,
                       residuals,
                       lags: Optional[int] = None,
                       period: int = 1,
                       model_df: int = 0) -> DiagnosticResult:
        """Ljung-Box test for serial correlation in residuals.

        Parameters
        ----------
        residuals : pd.Series or array
            Innovation residuals (NaN entries are dropped)
        lags : int, optional
            Number of lags (default from config, else 2*period / 10)
        period : int, default 1
            Seasonal period used by the default lag rule
        model_df : int, default 0
            Degrees of freedom consumed by the model; subtracted from ``lags``,
            capped so at least one degree of freedom remains

        Returns
        -------
        DiagnosticResult
            Ljung-Box statistic and p-value at ``lags``
        """
        resid = _clean_residuals(residuals)
        n = len(resid)
        if lags is None:
            lags = self.diag_config.get('ljung_box_lags')
        if lags is None:
            lags = default_ljung_box_lags(period, n)
        lags = int(min(int(lags), max(n - 1, 1)))
        model_df = max(0, min(int(model_df), lags - 1))

        if n < 3:
            logger.warning("Ljung-Box test skipped: only %d residuals", n)
            return DiagnosticResult(
                test_name="Ljung-Box Test",
                test_type=DiagnosticTest.LJUNG_BOX,
                test_statistic=float('nan'),
                p_value=float('nan'),
                significance_level=self.significance_level,
                lags=lags,
            )

        logger.debug("Running Ljung-Box test with %d lags (model df %d)", lags, model_df)
        lb_result = acorr_ljungbox(resid.to_numpy(), lags=[lags], model_df=model_df, return_df=True)
        test_stat = lb_result['lb_stat'].iloc[-1]
        p_value = lb_result['lb_pvalue'].iloc[-1]

        return DiagnosticResult(
            test_name="Ljung-Box Test",
            test_type=DiagnosticTest.LJUNG_BOX,
            test_statistic=float(test_stat),
            p_value=float(p_value),
            degrees_of_freedom=lags - model_df,
            lags=lags,
            significance_level=self.significance_level,
            test_description=f"Test for serial correlation in residuals (H0: No serial correlation, lags={lags})"
        )

    def jarque_bera_test(self, residuals) -> DiagnosticResult:
        """Jarque-Bera test for normality of residuals.

        Parameters
        ----------
        residuals : pd.Series or array
            Innovation residuals

        Returns
        -------
        DiagnosticResult
            Jarque-Bera test results
        """
        resid = _clean_residuals(residuals)
        logger.debug("Running Jarque-Bera normality test on %d residuals", len(resid))
        jb_stat, jb_pval, skew, kurtosis = jarque_bera(resid.to_numpy())

        return DiagnosticResult(
            test_name="Jarque-Bera Test",
            test_type=DiagnosticTest.JARQUE_BERA,
            test_statistic=float(jb_stat),
            p_value=float(jb_pval),
            degrees_of_freedom=2,
            significance_level=self.significance_level,
            test_description="Test for normality of residuals (H0: Residuals are normally distributed)",
            additional_stats={'skewness': float(skew), 'kurtosis': float(kurtosis)}
        )

    def run_diagnostics(self,
                        residuals,
                        model_name: str = "model",
                        period: int = 1,
                        model_df: int = 0,
                        lags: Optional[int] = None) -> Dict[str, Any]:
        """Run the Ljung-Box and Jarque-Bera tests on one model's residuals.

        Returns
        -------
        dict
            ``model_name``, ``n_residuals``, ``summary_statistics`` and
            ``test_results`` (test name -> DiagnosticResult)
        """
        resid = _clean_residuals(residuals)
        results = {
            'model_name': model_name,
            'n_residuals': len(resid),
            'summary_statistics': {
                'mean': float(resid.mean()) if len(resid) else float('nan'),
                'std': float(resid.std()) if len(resid) > 1 else float('nan'),
            },
            'test_results': {},
        }

        results['test_results']['ljung_box'] = self.ljung_box_test(resid, lags=lags, period=period,
                                                                   model_df=model_df)
        if len(resid) >= 3:
            results['test_results']['jarque_bera'] = self.jarque_bera_test(resid)

        for test_result in results['test_results'].values():
            logger.debug("%s for %s: %s", test_result.test_name, model_name, test_result.interpretation)
        return results


def ljung_box(residuals, lags: Optional[int] = None, period: int = 1, model_df: int = 0) -> DiagnosticResult:
    """Ljung-Box statistic and p-value for a residual series."""
    return ResidualDiagnostics().ljung_box_test(residuals, lags=lags, period=period, model_df=model_df)


def diagnose_models(fitted_models: Mapping[str, Any],
                    lags: Optional[int] = None,
                    significance_level: float = 0.05,
                    use_model_df: bool = False,
                    config_manager: Optional = None) -> pd.DataFrame:
    """Residual diagnostics table for a mapping of fitted models.

    Parameters
    ----------
    fitted_models : mapping name -> FittedModel
        Successfully fitted models (failures should be filtered out first)
    lags : int, optional
        Ljung-Box lags; default rule by seasonal period otherwise
    significance_level : float
        Level used for the ``autocorrelated`` flag
    use_model_df : bool, default False
        Subtract each model's parameter count from the Ljung-Box degrees of freedom
    config_manager : ConfigurationManager, optional
        Source of diagnostic settings

    Returns
    -------
    pd.DataFrame
        One row per model with lb_stat, lb_pvalue, lags, jb_stat, jb_pvalue
        and an ``autocorrelated`` flag
    """
    diagnostics = ResidualDiagnostics(significance_level, config_manager=config_manager)
    rows = []
    for name, fitted in fitted_models.items():
        model_df = fitted.n_params if use_model_df else 0
        res = diagnostics.run_diagnostics(fitted.residuals, model_name=name,
                                          period=fitted.training.period, model_df=model_df, lags=lags)
        lb = res['test_results']['ljung_box']
        jb = res['test_results'].get('jarque_bera')
        rows.append({
            'model': name,
            'n_residuals': res['n_residuals'],
            'lags': lb.lags,
            'lb_stat': lb.test_statistic,
            'lb_pvalue': lb.p_value,
            'autocorrelated': lb.is_significant,
            'jb_stat': jb.test_statistic if jb else float('nan'),
            'jb_pvalue': jb.p_value if jb else float('nan'),
        })
    return pd.DataFrame(rows, columns=['model', 'n_residuals', 'lags', 'lb_stat', 'lb_pvalue',
                                       'autocorrelated', 'jb_stat', 'jb_pvalue'])

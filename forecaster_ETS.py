#!/usr/bin/env python3
"""
ETS forecast evaluation with Box-Cox transforms, decomposition and rolling-origin CV.

Usage
-----
    python forecaster_ETS.py --help
    python forecaster_ETS.py --macro-column realcons --figures
    python forecaster_ETS.py --series-csv data/cement.csv --frequency Q --models "ETS(M,Ad,M),SNAIVE"

Package Structure
-----------------
- forecaster_src/: series, transforms, decomposition, models, metrics, CLI
- backtesting/: holdout and rolling-origin evaluation, accuracy report
- diagnostics/: residual diagnostics (Ljung-Box, Jarque-Bera)
- config/: YAML configuration
"""

import sys

from forecaster_src.main import main

if __name__ == "__main__":
    sys.exit(main())

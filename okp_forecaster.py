#!/usr/bin/env python3
"""
Rolling-origin forecast evaluation for quarterly OKP costs per insured.

Usage
-----
    python okp_forecaster.py --help
    python okp_forecaster.py --series-csv data/okp_costs.csv
    python okp_forecaster.py --series-csv data/okp_costs.csv --models Kalman,RW --no-plots

Modular Structure
-----------------
- okp_forecaster_src/: CLI, configuration, data loading, growth rates, output
- state_space/: exact diffuse Kalman filter/smoother and structural model
- forecast_models/: model adapters (Kalman, ARMA, RW)
- backtesting/: rolling-origin evaluation, alignment, metrics, pipeline
- validation/: input data checks and fingerprints
"""

if __name__ == "__main__":
    from okp_forecaster_src.main import main
    main()

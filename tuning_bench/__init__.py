"""
Wall-clock benchmarks for parallel hyperparameter tuning of boosted trees.

Compares process-level parallelism (joblib workers running resamples and
candidates concurrently) with engine-level threading across dataset sizes and
tuning grid sizes.
"""

__version__ = "0.1.0"

"""
Performance monitoring shared by the aggregation classes.

Classes using the decorator must define ``self.logger`` and
``self._performance_metrics`` (a dict of operation name -> timings).
"""

import time
from functools import wraps

import numpy as np


def performance_monitor(func_name: str):
    """Decorator recording the execution time of an aggregation method"""

    def decorator(func):
        @wraps(func)
        def wrapper(self, *args, **kwargs):
            component = type(self).__name__
            start_time = time.time()
            try:
                result = func(self, *args, **kwargs)
                execution_time = time.time() - start_time
                self._performance_metrics.setdefault(func_name, []).append(execution_time)
                self.logger.debug(
                    f"{component}.{func_name} executed in {execution_time:.4f} seconds"
                )
                return result

            except Exception as e:
                execution_time = time.time() - start_time
                self.logger.error(
                    f"{component}.{func_name} failed after {execution_time:.4f} seconds: {str(e)}"
                )
                raise

        return wrapper

    return decorator


def performance_report(metrics: dict[str, list[float]]) -> dict[str, dict[str, float]]:
    """Mean/min/max/count of recorded execution times per operation"""
    report = {}
    for name, timings in metrics.items():
        if timings:
            report[name] = {
                "mean": float(np.mean(timings)),
                "min": float(np.min(timings)),
                "max": float(np.max(timings)),
                "count": len(timings),
            }
    return report

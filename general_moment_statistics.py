"""
general_moment_statistics.py
============================
Event-by-event multiplicity statistics: mean, variance, scaled variance,
skewness C3/C2 and kurtosis C4/C2, each with a statistical error.

Events are accumulated as weighted raw moments <N^k>, k ≤ 8. Errors use the
delta method on central moments μ_k, with the effective number of events
n_eff = (Σw)² / Σw²:

    Var(μ̂2) = (μ4 - μ2²) / n_eff
    Var(μ̂3) = (μ6 - μ3² + 9μ2³ - 6μ4μ2) / n_eff
    Var(κ̂4) = [μ8 - μ4² + 16μ2μ3² - 8μ3μ5
               + 36μ2²(μ4 - μ2²) - 12μ2(μ6 - μ4μ2 - 4μ3²)] / n_eff

The ratios C3/C2 and C4/C2 are assigned the error of their numerator
divided by C2.
"""
import numpy as np
from dataclasses import dataclass
from scipy.special import comb
from typing import Optional, Sequence

MAX_MOMENT = 8


@dataclass
class MomentSummary:
    """Moments of a multiplicity distribution with statistical errors."""
    n_events: int
    mean: float
    mean_error: float
    variance: float
    variance_error: float
    scaled_variance: float
    scaled_variance_error: float
    skewness: float
    skewness_error: float
    kurtosis: float
    kurtosis_error: float


class NumberStatistics:
    """
    Accumulator of weighted event multiplicities.

    Usage:
        stats = NumberStatistics()
        stats.add_events(counts)
        print(stats.scaled_variance(), stats.scaled_variance_error())
    """

    def __init__(self):
        self.events = 0
        self.wsum = 0.0
        self.w2sum = 0.0
        self._sums = np.zeros(MAX_MOMENT + 1)

    def add_event(self, count: float, weight: float = 1.0):
        powers = float(count) ** np.arange(MAX_MOMENT + 1)
        self._sums += weight * powers
        self.wsum += weight
        self.w2sum += weight * weight
        self.events += 1

    def add_events(self, counts: Sequence[float], weights: Optional[Sequence[float]] = None):
        counts = np.asarray(counts, dtype=float)
        if weights is None:
            weights = np.ones_like(counts)
        weights = np.asarray(weights, dtype=float)
        if weights.shape != counts.shape:
            raise ValueError("counts and weights must have the same shape")
        powers = counts[:, None] ** np.arange(MAX_MOMENT + 1)[None, :]
        self._sums += weights @ powers
        self.wsum += float(np.sum(weights))
        self.w2sum += float(np.sum(weights**2))
        self.events += counts.size

    # -------------------------------------------------------------------------
    # Moments
    # -------------------------------------------------------------------------
    @property
    def n_effective(self) -> float:
        if self.w2sum <= 0.0:
            return 0.0
        return self.wsum**2 / self.w2sum

    def raw_moments(self) -> np.ndarray:
        """<N^k>, k = 0..8."""
        if self.wsum <= 0.0:
            raise ValueError("No events accumulated")
        return self._sums / self.wsum

    def central_moments(self) -> np.ndarray:
        """μ_k = <(N - <N>)^k>, k = 0..8."""
        m = self.raw_moments()
        mean = m[1]
        mu = np.zeros(MAX_MOMENT + 1)
        for k in range(MAX_MOMENT + 1):
            j = np.arange(k + 1)
            mu[k] = np.sum(comb(k, j) * m[j] * (-mean) ** (k - j))
        return mu

    def mean(self) -> float:
        return float(self.raw_moments()[1])

    def mean_error(self) -> float:
        return float(np.sqrt(self.central_moments()[2] / (self.n_effective - 1.0)))

    def variance(self) -> float:
        return float(self.central_moments()[2])

    def variance_error(self) -> float:
        mu = self.central_moments()
        return float(np.sqrt((mu[4] - mu[2]**2) / self.n_effective))

    def scaled_variance(self) -> float:
        return self.variance() / self.mean()

    def scaled_variance_error(self) -> float:
        return self.variance_error() / self.mean()

    def skewness(self) -> float:
        """C3/C2."""
        mu = self.central_moments()
        return float(mu[3] / mu[2])

    def skewness_error(self) -> float:
        mu = self.central_moments()
        var3 = (mu[6] - mu[3]**2 + 9.0 * mu[2]**3 - 6.0 * mu[4] * mu[2]) / self.n_effective
        return float(np.sqrt(max(var3, 0.0)) / mu[2])

    def kurtosis(self) -> float:
        """C4/C2."""
        mu = self.central_moments()
        return float((mu[4] - 3.0 * mu[2]**2) / mu[2])

    def kurtosis_error(self) -> float:
        mu = self.central_moments()
        var_m4 = mu[8] - mu[4]**2 + 16.0 * mu[2] * mu[3]**2 - 8.0 * mu[3] * mu[5]
        var_m2 = mu[4] - mu[2]**2
        cov_m4_m2 = mu[6] - mu[4] * mu[2] - 4.0 * mu[3]**2
        var4 = (var_m4 + 36.0 * mu[2]**2 * var_m2 - 12.0 * mu[2] * cov_m4_m2) / self.n_effective
        return float(np.sqrt(max(var4, 0.0)) / mu[2])

    def summary(self) -> MomentSummary:
        return MomentSummary(
            n_events=self.events,
            mean=self.mean(),
            mean_error=self.mean_error(),
            variance=self.variance(),
            variance_error=self.variance_error(),
            scaled_variance=self.scaled_variance(),
            scaled_variance_error=self.scaled_variance_error(),
            skewness=self.skewness(),
            skewness_error=self.skewness_error(),
            kurtosis=self.kurtosis(),
            kurtosis_error=self.kurtosis_error(),
        )


def compute_moment_statistics(counts: Sequence[float],
                              weights: Optional[Sequence[float]] = None) -> MomentSummary:
    """Moment summary of a sample of event multiplicities."""
    stats = NumberStatistics()
    stats.add_events(counts, weights)
    return stats.summary()


# =============================================================================
# SELF-TEST
# =============================================================================
if __name__ == "__main__":
    rng = np.random.default_rng(1)
    sample = rng.poisson(5.0, size=200000)
    s = compute_moment_statistics(sample)
    print("Poisson(5) sample, all ratios should be 1:")
    print(f"  ω     = {s.scaled_variance:.4f} ± {s.scaled_variance_error:.4f}")
    print(f"  C3/C2 = {s.skewness:.4f} ± {s.skewness_error:.4f}")
    print(f"  C4/C2 = {s.kurtosis:.4f} ± {s.kurtosis_error:.4f}")

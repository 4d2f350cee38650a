import math
from dataclasses import dataclass
from typing import Dict

from scipy import stats as scipy_stats

from bucketlab.core.exceptions import UnsupportedConfidenceLevel

# Two-tailed critical values for the supported confidence levels
Z_CRITICAL_VALUES: Dict[float, float] = {
    0.90: 1.645,
    0.95: 1.96,
    0.99: 2.576,
}

DEFAULT_CONFIDENCE_LEVEL = 0.95

# Below this many users in either arm a test is never reported as significant
MIN_SAMPLE_SIZE = 100

# Abramowitz & Stegun 26.2.17, absolute error below 7.5e-8
_AS_P = 0.2316419
_AS_B = (0.319381530, -0.356563782, 1.781477937, -1.821255978, 1.330274429)
_INV_SQRT_2PI = 1 / math.sqrt(2 * math.pi)


@dataclass(frozen=True)
class ConfidenceInterval:
    lower: float
    upper: float


@dataclass(frozen=True)
class ProportionSample:
    rate: float
    n: int


@dataclass(frozen=True)
class SignificanceResult:
    is_significant: bool
    p_value: float
    confidence_level: float
    z_score: float


def z_critical_value(confidence_level: float) -> float:
    for level, z in Z_CRITICAL_VALUES.items():
        if math.isclose(confidence_level, level, abs_tol=1e-9):
            return z
    raise UnsupportedConfidenceLevel(confidence_level, sorted(Z_CRITICAL_VALUES))


def _upper_tail(x: float) -> float:
    # 1 - Phi(x) for x >= 0, evaluated directly so the tail keeps its precision
    t = 1 / (1 + _AS_P * x)
    poly = t * (_AS_B[0] + t * (_AS_B[1] + t * (_AS_B[2] + t * (_AS_B[3] + t * _AS_B[4]))))
    return _INV_SQRT_2PI * math.exp(-x * x / 2) * poly


def normal_cdf(x: float) -> float:
    """Standard normal CDF via the A&S 26.2.17 rational approximation.

    The absolute error is below 7.5e-8 over the whole real line.
    """
    if x >= 0:
        return 1 - _upper_tail(x)
    return _upper_tail(-x)


def two_tailed_p_value(z_score: float) -> float:
    return min(1.0, 2 * _upper_tail(abs(z_score)))


def wilson_interval(
    successes: int, trials: int, confidence_level: float = DEFAULT_CONFIDENCE_LEVEL
) -> ConfidenceInterval:
    """Wilson score interval for a binomial proportion.

    Preferred over the normal approximation because it stays inside [0, 1]
    and behaves on small or skewed samples. Zero trials give (0, 0).
    """
    z = z_critical_value(confidence_level)

    if trials == 0:
        return ConfidenceInterval(lower=0.0, upper=0.0)

    p = successes / trials
    n = trials
    z2 = z * z

    denominator = 1 + z2 / n
    center = (p + z2 / (2 * n)) / denominator
    margin = (z / denominator) * math.sqrt(p * (1 - p) / n + z2 / (4 * n * n))

    return ConfidenceInterval(
        lower=max(0.0, center - margin),
        upper=min(1.0, center + margin),
    )


def calculate_pooled_standard_error(control: ProportionSample, challenger: ProportionSample) -> float:
    pooled = (control.rate * control.n + challenger.rate * challenger.n) / (control.n + challenger.n)
    # Rounding can push pooled * (1 - pooled) a hair below zero at the extremes
    variance = max(0.0, pooled * (1 - pooled)) * (1 / control.n + 1 / challenger.n)
    return math.sqrt(variance)


def two_proportion_z_test(
    control: ProportionSample,
    challenger: ProportionSample,
    confidence_level: float = DEFAULT_CONFIDENCE_LEVEL,
    min_sample_size: int = MIN_SAMPLE_SIZE,
) -> SignificanceResult:
    """Pooled two-proportion z-test of control against a challenger.

    The z-score is (control - challenger) / se, so a better challenger gives
    a negative score. Direction is left to the caller; the p-value only
    depends on |z|.
    """
    z_critical_value(confidence_level)

    if control.n < min_sample_size or challenger.n < min_sample_size:
        return SignificanceResult(
            is_significant=False,
            p_value=1.0,
            confidence_level=confidence_level,
            z_score=0.0,
        )

    se = calculate_pooled_standard_error(control, challenger)
    z_score = 0.0 if se == 0 else (control.rate - challenger.rate) / se
    p_value = two_tailed_p_value(z_score)

    return SignificanceResult(
        is_significant=p_value < (1 - confidence_level),
        p_value=p_value,
        confidence_level=confidence_level,
        z_score=z_score,
    )


def calculate_lift(control_rate: float, variant_rate: float) -> float:
    """Relative lift of the variant over control, in percent."""
    if control_rate == 0:
        return 0.0
    return ((variant_rate - control_rate) / control_rate) * 100


def estimate_required_sample_size(
    baseline_rate: float,
    minimum_detectable_effect: float,
    alpha: float = 0.05,
    power: float = 0.80,
) -> int:
    """Users needed per variation to detect a relative lift of the given size.

    minimum_detectable_effect is relative to the baseline (0.2 means a 20%
    lift). Uses the pooled two-proportion formula for a two-sided test.
    """
    if not 0 < baseline_rate < 1:
        raise ValueError(f"baseline_rate must be in (0, 1), got {baseline_rate}")
    if minimum_detectable_effect <= 0:
        raise ValueError("minimum_detectable_effect must be positive")
    if not 0 < alpha < 1 or not 0 < power < 1:
        raise ValueError("alpha and power must be in (0, 1)")

    delta = baseline_rate * minimum_detectable_effect
    p1 = baseline_rate
    p2 = baseline_rate + delta
    if p2 >= 1:
        raise ValueError("baseline_rate with this effect exceeds a rate of 1")

    z_alpha = scipy_stats.norm.ppf(1 - alpha / 2)
    z_beta = scipy_stats.norm.ppf(power)

    pooled = (p1 + p2) / 2
    n = (2 * pooled * (1 - pooled) * (z_alpha + z_beta) ** 2) / delta**2

    return math.ceil(n)


def has_sufficient_sample_size(sample_size: int, minimum_required: int = MIN_SAMPLE_SIZE) -> bool:
    return sample_size >= minimum_required

from bucketlab.services.experiments.hashing import (
    bucket_fraction,
    traffic_fraction,
    traffic_key,
    variation_fraction,
    variation_key,
)


class TestKeys:
    def test_variation_key(self):
        assert variation_key("exp1", "u1") == "exp1:u1"

    def test_traffic_key_is_namespaced(self):
        assert traffic_key("exp1", "u1") == "traffic:exp1:u1"


class TestBucketFraction:
    def test_known_digests(self):
        # First 32 bits of SHA-256, computed independently
        assert bucket_fraction("exp1:u1") == 0xEAE0714C / 2**32
        assert bucket_fraction("traffic:exp1:u1") == 0x852EC2E5 / 2**32
        assert bucket_fraction("exp_pricing:user_42") == 0x2171F3F1 / 2**32

    def test_deterministic(self):
        assert bucket_fraction("exp1:u1") == bucket_fraction("exp1:u1")

    def test_range(self):
        for i in range(2000):
            fraction = bucket_fraction(f"exp:user_{i}")
            assert 0.0 <= fraction < 1.0

    def test_roughly_uniform(self):
        """10k keys should fill ten equal-width bins evenly."""
        bins = [0] * 10
        for i in range(10000):
            bins[int(bucket_fraction(f"exp:user_{i}") * 10)] += 1
        for count in bins:
            assert 850 <= count <= 1150

    def test_small_change_gives_unrelated_fraction(self):
        a = bucket_fraction("exp1:user_1")
        b = bucket_fraction("exp1:user_2")
        assert abs(a - b) > 1e-6


class TestNamespaces:
    def test_traffic_and_variation_fractions_differ(self):
        assert traffic_fraction("exp1", "u1") != variation_fraction("exp1", "u1")

    def test_namespaces_uncorrelated(self):
        """Users low in the traffic hash are not biased in the variation hash."""
        low_traffic = [
            variation_fraction("exp1", f"user_{i}")
            for i in range(10000)
            if traffic_fraction("exp1", f"user_{i}") < 0.5
        ]
        mean = sum(low_traffic) / len(low_traffic)
        assert 0.47 <= mean <= 0.53

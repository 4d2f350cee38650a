"""Deterministic hashing of (experiment, user) pairs into [0, 1).

A SHA-256 digest is used instead of a fast non-cryptographic hash so that
a one-character change in the key produces an unrelated fraction. The
traffic gate and the variation split hash different keys, so being
included in an experiment says nothing about which variation a user gets.
"""

import hashlib

KEY_SEPARATOR = ":"
TRAFFIC_NAMESPACE = "traffic"

_FRACTION_SCALE = 2**32


def bucket_fraction(key: str) -> float:
    """Map a key to a uniform fraction in [0, 1).

    The first 32 bits of the SHA-256 digest are read as an unsigned
    big-endian integer and divided by 2**32.
    """
    digest = hashlib.sha256(key.encode("utf-8")).digest()
    return int.from_bytes(digest[:4], "big") / _FRACTION_SCALE


def traffic_key(experiment_id: str, user_id: str) -> str:
    return KEY_SEPARATOR.join((TRAFFIC_NAMESPACE, experiment_id, user_id))


def variation_key(experiment_id: str, user_id: str) -> str:
    return KEY_SEPARATOR.join((experiment_id, user_id))


def traffic_fraction(experiment_id: str, user_id: str) -> float:
    return bucket_fraction(traffic_key(experiment_id, user_id))


def variation_fraction(experiment_id: str, user_id: str) -> float:
    return bucket_fraction(variation_key(experiment_id, user_id))

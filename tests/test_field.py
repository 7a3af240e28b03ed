import pytest

from bazuka.field import MODULUS, ScalarTooLargeError, ZkScalar

U64_MAX = (1 << 64) - 1


def test_u64_conversion():
    assert ZkScalar(0).to_u64() == 0
    assert ZkScalar(123).to_u64() == 123
    assert ZkScalar(U64_MAX).to_u64() == U64_MAX
    with pytest.raises(ScalarTooLargeError):
        (ZkScalar(U64_MAX) + ZkScalar(1)).to_u64()


def test_default_is_zero():
    assert ZkScalar().is_zero()
    assert not ZkScalar(1).is_zero()


def test_modulus_reduces_to_zero():
    assert ZkScalar(MODULUS) == ZkScalar(0)
    assert ZkScalar.from_bytes_le(MODULUS.to_bytes(32, "little")).is_zero()


def test_negative_wraps_around():
    assert ZkScalar(-1) + ZkScalar(1) == ZkScalar(0)
    assert ZkScalar(-1).value == MODULUS - 1


@pytest.mark.parametrize("n", [0, 1, 255, 256, U64_MAX, MODULUS - 1])
def test_bytes_round_trip(n):
    scalar = ZkScalar(n)
    raw = scalar.to_bytes_le()
    assert len(raw) == 32
    assert ZkScalar.from_bytes_le(raw) == scalar


def test_from_bytes_is_little_endian():
    assert ZkScalar.from_bytes_le(b"\x01\x02") == ZkScalar(0x0201)


def test_from_bytes_longer_than_repr_is_reduced():
    raw = (MODULUS + 5).to_bytes(40, "little")
    assert ZkScalar.from_bytes_le(raw) == ZkScalar(5)


def test_arithmetic_with_ints():
    assert ZkScalar(3) * 4 == ZkScalar(12)
    assert 10 - ZkScalar(3) == ZkScalar(7)
    assert -ZkScalar(5) + 5 == ZkScalar(0)
    assert ZkScalar(3).square() == ZkScalar(3) ** 2


def test_sum_of_range_matches_builtin_sum():
    total = ZkScalar(0)
    for i in range(256):
        total = total + ZkScalar(i)
    assert total == ZkScalar(32640)


def test_rejects_non_int():
    with pytest.raises(TypeError):
        ZkScalar("7")
    with pytest.raises(TypeError):
        ZkScalar(1) + 1.5


def test_hashable_and_equal():
    assert {ZkScalar(7), ZkScalar(7 + MODULUS)} == {ZkScalar(7)}
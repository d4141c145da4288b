"""
Pedersen commitments on the Grumpkin curve.

Grumpkin is `y^2 = x^3 - 17` over the BN254 scalar field, so its points have
coordinates in the same field as every other value in this package. The
generic short-Weierstrass helpers from `py_ecc.bn128` work for any `a = 0`
curve given a matching field class; points are affine tuples and `None` is
the point at infinity.
"""

from __future__ import annotations

from typing import Optional, Tuple

from py_ecc.bn128 import add, is_on_curve, multiply
from py_ecc.fields.field_elements import FQ

from .field import FIELD_MODULUS, to_field


class GrumpkinFQ(FQ):
    field_modulus = FIELD_MODULUS


Point = Optional[Tuple[GrumpkinFQ, GrumpkinFQ]]

CURVE_B = GrumpkinFQ(-17)


def point(x: int, y: int) -> Tuple[GrumpkinFQ, GrumpkinFQ]:
    pt = (GrumpkinFQ(x), GrumpkinFQ(y))
    if not is_on_curve(pt, CURVE_B):
        raise ValueError("point is not on the Grumpkin curve")
    return pt


def point_to_ints(pt: Point) -> Tuple[int, int]:
    if pt is None:
        raise ValueError("point at infinity has no affine coordinates")
    return int(pt[0].n), int(pt[1].n)


# One generator per commitment slot.
G = point(
    0x0949873EA2EA8F16B075C794AECF36EFD5DA1C9C8679737E7EC1AFF775CC3B5C,
    0x1336D7F5BF34C2FE63E44461E86DD0A86B852C30D9C7213DD6C5D434EA3F9D38,
)
H = point(
    0x229D4910F0D7E6FD2BED571A885241049EEE73D5F9ADC0D9EF2CE724AA1DF3FA,
    0x20F8C9B24F986B93052AB51F5068BC690E35E9508D5B0951B0D4CAD1EA04B28E,
)
D = point(
    0x2BCC449B1A2840CF9327F846FE78DB60AAD3DDECFF43C3C3FACD13ABA3CB1479,
    0x25E9A7BCC28000FC69F14BBE8A2EC561FD854EA6489F38E63BA4A40D34113717,
)
K = point(
    0x19355291A8BF98B3533C01D677B184A4F6A4C5DD2D40F8B51C4BA0AF75B89ED3,
    0x060541537D013B7D1A38B19DB2A6BE1F49E0002F84B0CC237A87C288154329A7,
)
J = point(
    0x10ED9CB73E6D8D98631A692FBC5761871595A39B9E7AB703D177C9BA9A44837F,
    0x1F76373DA7DD8EEF4DFADA6743746D262EAD94C38DD4192A9308AEE33EA11594,
)

# Starting point of the nonce-discovery aggregate.
DISCOVERY_INITIAL_POINT = point(
    0x098B60B4FB636ED774329D8BB20EB1F9BD2F1B53445E991DE219B50739E95C16,
    0x1B82BB29393D7897D102BC412CA1B3353E78ECC738BAF483FED847EF9E212997,
)


def scalar_mul(pt: Point, scalar: int) -> Point:
    k = to_field(scalar, name="scalar")
    if k == 0 or pt is None:
        return None
    return multiply(pt, k)


def point_add(p1: Point, p2: Point) -> Point:
    return add(p1, p2)


def pedersen_commit(m: int, r: int) -> Point:
    """Two-slot commitment `m*G + r*H`."""
    return point_add(scalar_mul(G, m), scalar_mul(H, r))


def pedersen_commit5(m1: int, m2: int, m3: int, m4: int, r: int) -> Point:
    """Five-slot commitment `m1*G + m2*H + m3*D + m4*K + r*J`."""
    acc: Point = None
    for gen, scalar in ((G, m1), (H, m2), (D, m3), (K, m4), (J, r)):
        acc = point_add(acc, scalar_mul(gen, scalar))
    return acc

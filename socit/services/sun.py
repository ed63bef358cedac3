# socit/services/sun.py
"""Direction of the sun relative to solar panels.

This is a deliberately small model. It ignores precession, nutation and
frame bias, refraction, light travel time, relativistic effects, polar
motion, dUT1 and the Moon (the Earth-Moon barycentre is treated as the
geocentre). It still agrees with full astronomy libraries to better than
a degree, which is plenty for estimating PV output.

Orbital elements come from the JPL "approximate positions of the planets"
tables (table 2a, valid 1800-2050).
"""

from __future__ import annotations

import math
from datetime import datetime
from typing import Iterable, Sequence

from socit.config import PanelConfig

Vector = tuple[float, float, float]
Matrix = tuple[Vector, Vector, Vector]

# UNIX time of J2000.0 (2000-01-01T12:00:00 TT) expressed in UTC.
J2000_EPOCH = 946727935.816
# 2000-01-01T12:00:00 UTC, the reference for the Earth rotation angle.
ERA_EPOCH = 946728000.0
OBLIQUITY = math.radians(23.43928)


def _dot(a: Sequence[float], b: Sequence[float]) -> float:
    return a[0] * b[0] + a[1] * b[1] + a[2] * b[2]


def _cross(a: Vector, b: Vector) -> Vector:
    return (
        a[1] * b[2] - a[2] * b[1],
        a[2] * b[0] - a[0] * b[2],
        a[0] * b[1] - a[1] * b[0],
    )


def _normalized(v: Vector) -> Vector:
    scale = 1.0 / math.sqrt(_dot(v, v))
    return (v[0] * scale, v[1] * scale, v[2] * scale)


def _apply(m: Matrix, v: Vector) -> Vector:
    return (_dot(m[0], v), _dot(m[1], v), _dot(m[2], v))


def _rx(r: float) -> Matrix:
    s, c = math.sin(r), math.cos(r)
    return ((1.0, 0.0, 0.0), (0.0, c, s), (0.0, -s, c))


def _rz(r: float) -> Matrix:
    s, c = math.sin(r), math.cos(r)
    return ((c, s, 0.0), (-s, c, 0.0), (0.0, 0.0, 1.0))


def kepler(M: float, e: float) -> float:
    """Solve Kepler's equation M = E - e sin E for E (radians)."""
    E = M - e * math.sin(M)
    for _ in range(50):
        dM = M - (E - e * math.sin(E))
        dE = dM / (1.0 - e * math.cos(E))
        E += dE
        if abs(dE) < 1e-8:
            break
    return E


def _wrap_angle(x: float) -> float:
    """Normalize an angle to [-pi, pi)."""
    return (x + math.pi) % (2.0 * math.pi) - math.pi


def earth_rotation_angle(when: datetime) -> float:
    # UT1 is taken to be UTC, so a single float timestamp is precise enough.
    t = (when.timestamp() - ERA_EPOCH) / 86400.0
    return ((t % 1.0) + 0.779057273264 + 0.00273781191135448 * t) % 1.0 * 2.0 * math.pi


def sun_direction(latitude: float, longitude: float, when: datetime) -> Vector:
    """Unit vector towards the sun in the observer's east-north-up frame.

    ``latitude`` and ``longitude`` are in degrees; ``when`` must be timezone-aware.
    """
    T = (when.timestamp() - J2000_EPOCH) / 86400.0 / 36525.0  # Julian centuries
    e = 0.01673163 - 0.00003661 * T
    I = math.radians(-0.00054346 - 0.01337178 * T)
    L = math.radians(100.46691572 + 35999.37306329 * T)
    peri = math.radians(102.93005885 + 0.31795260 * T)
    node = math.radians(-5.11260389 - 0.24123856 * T)

    arg_peri = peri - node
    M = _wrap_angle(L - peri)
    E = kepler(M, e)
    r_orbital = (math.cos(E) - e, math.sqrt(1.0 - e * e) * math.sin(E), 0.0)
    r_ecl = _apply(_rz(-node), _apply(_rx(-I), _apply(_rz(-arg_peri), r_orbital)))
    r_eq = _apply(_rx(-OBLIQUITY), r_ecl)
    # Earth-to-sun is the negation of the heliocentric Earth position.
    r_cirs = (-r_eq[0], -r_eq[1], -r_eq[2])
    r_tirs = _normalized(_apply(_rz(earth_rotation_angle(when)), r_cirs))

    lat = math.radians(latitude)
    lon = math.radians(longitude)
    up = (math.cos(lat) * math.cos(lon), math.cos(lat) * math.sin(lon), math.sin(lat))
    east = _normalized(_cross((0.0, 0.0, 1.0), up))
    north = _cross(up, east)
    return _apply((east, north, up), r_tirs)


def solar_fraction(
    latitude: float,
    longitude: float,
    tilt: float,
    azimuth: float,
    when: datetime,
) -> float:
    """Fraction of peak output for a panel at ``tilt`` (0 = flat) facing ``azimuth``."""
    sun = sun_direction(latitude, longitude, when)
    if sun[2] <= 0.0:
        return 0.0  # below horizon
    el = math.radians(90.0 - tilt)
    az = math.radians(azimuth)
    normal = (math.cos(el) * math.sin(az), math.cos(el) * math.cos(az), math.sin(el))
    return max(0.0, _dot(sun, normal))


def panel_power(panel: PanelConfig, when: datetime) -> float:
    return panel.power * solar_fraction(
        panel.latitude, panel.longitude, panel.tilt, panel.azimuth, when
    )


def array_power(panels: Iterable[PanelConfig], when: datetime, cap: float | None = None) -> float:
    """Total expected PV power in watts, optionally limited to ``cap``."""
    power = sum(panel_power(panel, when) for panel in panels)
    if cap is not None:
        power = min(power, cap)
    return power

"""UV reconstruction for ARCH3D planes.

Only the first three points of a plane carry usable UV: point 0 is
absolute and points 1 and 2 are deltas on the running sum. UV for any
further point is recovered from its position:

1. Build an orthonormal basis in the plane from P1 - P0 and P2 - P0
   (Gram-Schmidt).
2. Project P0, P1, P2 into that basis, giving 2D (x, y).
3. Solve U = A*x + B*y + D (and the same for V) through the 3x3
   determinant and its cofactors.
4. Project every other point and apply the solved map.

Collinear points leave no basis or a zero determinant. That is reported
with DegenerateFaceError; no fallback UV is produced.
"""
import math
from dataclasses import dataclass
from typing import List, Sequence

from arena2_extractor.errors import DegenerateFaceError, MeshFormatError

from .dfmesh_types import NativePoint, Vec2, Vec3

# Relative length below which an orthogonalized edge counts as collapsed
BASIS_EPSILON = 1e-9
DET_EPSILON = 1e-12


def _sub(a: Vec3, b: Vec3) -> Vec3:
    return (a[0] - b[0], a[1] - b[1], a[2] - b[2])


def _dot(a: Vec3, b: Vec3) -> float:
    return a[0] * b[0] + a[1] * b[1] + a[2] * b[2]


def _scale(a: Vec3, s: float) -> Vec3:
    return (a[0] * s, a[1] * s, a[2] * s)


@dataclass
class UVTransform:
    """Affine map from a point in the plane to absolute UV."""

    axis_x: Vec3
    axis_y: Vec3
    ua: float
    ub: float
    ud: float
    va: float
    vb: float
    vd: float

    def project(self, position: Vec3) -> Vec2:
        return (_dot(position, self.axis_x), _dot(position, self.axis_y))

    def apply(self, position: Vec3) -> Vec2:
        x, y = self.project(position)
        return (x * self.ua + y * self.ub + self.ud,
                x * self.va + y * self.vb + self.vd)


def cumulative_uvs(points: Sequence[NativePoint]) -> List[Vec2]:
    """Absolute UV of the first three points from point 0 plus deltas."""
    u0, v0 = points[0].u, points[0].v
    u1, v1 = u0 + points[1].u, v0 + points[1].v
    u2, v2 = u1 + points[2].u, v1 + points[2].v
    return [(u0, v0), (u1, v1), (u2, v2)]


def solve_face_uv(positions: Sequence[Vec3], uvs: Sequence[Vec2]) -> UVTransform:
    """Solve the UV map for a plane from three points.

    Args:
        positions: P0, P1, P2
        uvs: Absolute UV at P0, P1, P2

    Raises:
        DegenerateFaceError: If the points are coincident or collinear
    """
    p0, p1, p2 = positions[:3]
    edge0 = _sub(p1, p0)
    edge1 = _sub(p2, p0)

    len0 = math.sqrt(_dot(edge0, edge0))
    len1 = math.sqrt(_dot(edge1, edge1))
    if len0 <= BASIS_EPSILON:
        raise DegenerateFaceError("First edge has zero length")

    edge1 = _sub(edge1, _scale(edge0, _dot(edge1, edge0) / (len0 * len0)))
    ortho_len = math.sqrt(_dot(edge1, edge1))
    if ortho_len <= BASIS_EPSILON * max(len1, 1.0):
        raise DegenerateFaceError("Points are collinear")

    axis_x = _scale(edge0, 1.0 / len0)
    axis_y = _scale(edge1, 1.0 / ortho_len)

    x0, y0 = _dot(p0, axis_x), _dot(p0, axis_y)
    x1, y1 = _dot(p1, axis_x), _dot(p1, axis_y)
    x2, y2 = _dot(p2, axis_x), _dot(p2, axis_y)

    det = x0 * y1 + y0 * x2 + x1 * y2 - y1 * x2 - y0 * x1 - x0 * y2
    if abs(det) <= DET_EPSILON:
        raise DegenerateFaceError("UV matrix determinant is zero")

    # Columns of the inverse of [[x0, y0, 1], [x1, y1, 1], [x2, y2, 1]]
    xi = ((y1 - y2) / det, (x2 - x1) / det, (x1 * y2 - x2 * y1) / det)
    yi = ((y2 - y0) / det, (x0 - x2) / det, (x2 * y0 - x0 * y2) / det)
    zi = ((y0 - y1) / det, (x1 - x0) / det, (x0 * y1 - x1 * y0) / det)

    (u0, v0), (u1, v1), (u2, v2) = uvs[:3]
    return UVTransform(
        axis_x=axis_x,
        axis_y=axis_y,
        ua=u0 * xi[0] + u1 * yi[0] + u2 * zi[0],
        ub=u0 * xi[1] + u1 * yi[1] + u2 * zi[1],
        ud=u0 * xi[2] + u1 * yi[2] + u2 * zi[2],
        va=v0 * xi[0] + v1 * yi[0] + v2 * zi[0],
        vb=v0 * xi[1] + v1 * yi[1] + v2 * zi[1],
        vd=v0 * xi[2] + v1 * yi[2] + v2 * zi[2],
    )


def compute_face_uv(points: Sequence[NativePoint]) -> List[Vec2]:
    """Absolute UV for every point of a plane.

    Args:
        points: Plane points with native delta UV

    Returns:
        One (u, v) per point

    Raises:
        MeshFormatError: If the plane has fewer than three points
        DegenerateFaceError: If the first three points are collinear
    """
    if len(points) < 3:
        raise MeshFormatError(f"Plane needs at least 3 points, got {len(points)}")

    uvs = cumulative_uvs(points)
    transform = solve_face_uv([p.position for p in points[:3]], uvs)
    for point in points[3:]:
        uvs.append(transform.apply(point.position))
    return uvs

"""Diagnostics routines for the vision subsystem."""

from __future__ import annotations

from diagnostics.models import DiagnosticResult, DiagnosticStatus


def probe() -> DiagnosticResult:
    """Run the depth sampler and wall detector on a synthetic scene."""

    name = "vision"
    try:
        import numpy as np

        from vision.depth import DepthMap, DepthSampler
        from vision.geometry import NormRect
        from vision.walls import WallDetector

        sampler = DepthSampler()
        depth_map = DepthMap.from_meters(np.full((48, 64), 2.0))
        meters = sampler.point_depth(depth_map, 0.5, 0.5)
        if meters is None or abs(meters - 2.0) > 1e-3:
            return DiagnosticResult(
                name=name,
                status=DiagnosticStatus.FAIL,
                details=f"Depth sampler returned {meters!r} for a 2.0 m plane",
            )

        nearest = sampler.nearest_in_region(NormRect(0.33, 0.6, 0.66, 0.95), depth_map)
        detector = WallDetector()
        best, _ = detector.scan(depth_map)
    except Exception as exc:  # noqa: BLE001 - probe should not raise
        return DiagnosticResult(
            name=name,
            status=DiagnosticStatus.FAIL,
            details=f"Vision self-check failed: {exc}",
        )

    score = f"{best.score:.2f}" if best is not None else "n/a"
    corridor = f"{nearest:.1f} m" if nearest is not None else "n/a"
    return DiagnosticResult(
        name=name,
        status=DiagnosticStatus.PASS,
        details=f"numpy {np.__version__}; corridor {corridor}; wall score {score}",
    )

"""Rerun-based trajectory visualization for monocular odometry."""

from __future__ import annotations

import numpy as np
import rerun as rr
import rerun.blueprint as rrb


class RerunVisualizer:
    """Rerun position listener for visual odometry.

    Pass an instance as the analyzer's listener: every reported position is
    logged as the current camera point and appended to the trajectory.

    Entity hierarchy:
        world/
            trajectory          - Accumulated positions (line strip)
            trajectory/current  - Latest position
    """

    def __init__(self, app_name: str = "monovo", spawn: bool = True) -> None:
        """Initialize Rerun visualization.

        Args:
            app_name: Name for the Rerun application window
            spawn: If True, automatically spawn the Rerun viewer
        """
        rr.init(app_name, spawn=spawn)
        self._positions: list[tuple[float, float, float]] = []
        self._setup_coordinate_system()
        self._setup_layout()

    def _setup_coordinate_system(self) -> None:
        """Use camera conventions (X-right, Y-down, Z-forward)."""
        rr.log("world", rr.ViewCoordinates.RDF, static=True)

    def _setup_layout(self) -> None:
        blueprint = rrb.Blueprint(rrb.Spatial3DView(name="Trajectory", origin="world"))
        rr.send_blueprint(blueprint)

    def __call__(self, x: float, y: float, z: float) -> None:
        self._positions.append((x, y, z))
        rr.set_time("frame", sequence=len(self._positions))
        # Re-sends the whole path each call: cost grows with trajectory length
        self.log_trajectory(self.positions)

    def log_trajectory(
        self,
        positions: np.ndarray,
        entity_path: str = "world/trajectory",
    ) -> None:
        """Log camera trajectory as a 3D line strip.

        Args:
            positions: Nx3 array of camera positions in world frame
            entity_path: Rerun entity path for the trajectory
        """
        if len(positions) == 0:
            return

        # Current position as a larger point (cyan)
        rr.log(
            f"{entity_path}/current",
            rr.Points3D(
                [positions[-1]],
                colors=[[0, 255, 255]],
                radii=0.05,
            ),
        )

        if len(positions) < 2:
            return

        rr.log(
            entity_path,
            rr.LineStrips3D(
                [positions],
                colors=[[255, 255, 0]],  # Yellow
                radii=0.01,
            ),
        )

    @property
    def positions(self) -> np.ndarray:
        """Return logged positions as an Nx3 array."""
        if not self._positions:
            return np.empty((0, 3), dtype=np.float64)
        return np.array(self._positions, dtype=np.float64)

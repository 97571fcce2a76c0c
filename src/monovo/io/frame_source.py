"""Frame buffers and a monocular EuRoC sequence reader."""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Iterator

import cv2
import numpy as np

_ROTATIONS = {
    0: None,
    90: cv2.ROTATE_90_CLOCKWISE,
    180: cv2.ROTATE_180,
    270: cv2.ROTATE_90_COUNTERCLOCKWISE,
}


class Frame:
    """A captured frame whose pixel buffer is returned to its source on close.

    Use as a context manager, or call ``close()`` once the pixels have been
    read. ``release`` runs at most once.
    """

    def __init__(
        self,
        pixels: np.ndarray,
        timestamp_ms: float,
        rotation_degrees: int = 0,
        release: Callable[[], None] | None = None,
    ) -> None:
        """Initialize frame.

        Args:
            pixels: HxW (gray), HxWx3 (BGR) or HxWx4 (RGBA) uint8 buffer
            timestamp_ms: Capture timestamp in milliseconds
            rotation_degrees: Clockwise rotation needed to display upright
                (0, 90, 180 or 270)
            release: Callback returning the buffer to its owner
        """
        if rotation_degrees % 360 not in _ROTATIONS:
            raise ValueError(
                f"Rotation must be a multiple of 90 degrees, got {rotation_degrees}"
            )
        self.pixels = pixels
        self.timestamp_ms = timestamp_ms
        self.rotation_degrees = rotation_degrees % 360
        self._release = release
        self._closed = False

    def to_image(self) -> np.ndarray:
        """Return the upright grayscale image for feature extraction."""
        image = self.pixels
        if image.ndim == 3:
            code = cv2.COLOR_RGBA2GRAY if image.shape[2] == 4 else cv2.COLOR_BGR2GRAY
            image = cv2.cvtColor(image, code)

        rotate_code = _ROTATIONS[self.rotation_degrees]
        if rotate_code is not None:
            image = cv2.rotate(image, rotate_code)
        return image

    def close(self) -> None:
        """Release the underlying buffer back to its source."""
        if self._closed:
            return
        self._closed = True
        if self._release is not None:
            self._release()

    @property
    def closed(self) -> bool:
        return self._closed

    def __enter__(self) -> Frame:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class DatasetReader:
    """Reader for a EuRoC MAV monocular (cam0) image sequence."""

    def __init__(self, dataset_path: str = "data/euroc/MH_01_easy/mav0") -> None:
        """Initialize reader with path to dataset.

        Args:
            dataset_path: Path to mav0 directory

        Raises:
            FileNotFoundError: If dataset path or required files don't exist
            ValueError: If data.csv is empty or invalid
        """
        self.dataset_path = Path(dataset_path)
        self.cam0_path = self.dataset_path / "cam0"
        self.cam0_data_path = self.cam0_path / "data"

        self._validate_paths()

        self._image_list = self._load_image_list()

        if not self._image_list:
            raise ValueError(f"No images found in {self.cam0_path / 'data.csv'}")

        self._current_idx = 0

    def _validate_paths(self) -> None:
        """Validate that all required paths exist."""
        if not self.dataset_path.exists():
            raise FileNotFoundError(f"Dataset path does not exist: {self.dataset_path}")

        if not self.cam0_path.exists():
            raise FileNotFoundError(
                f"cam0 directory not found: {self.cam0_path}\n"
                f"Expected structure: {self.dataset_path}/cam0/"
            )

        if not self.cam0_data_path.exists():
            raise FileNotFoundError(
                f"cam0/data directory not found: {self.cam0_data_path}"
            )

        csv_path = self.cam0_path / "data.csv"
        if not csv_path.exists():
            raise FileNotFoundError(
                f"cam0/data.csv not found: {csv_path}\n"
                f"This file is required to list image timestamps and filenames."
            )

    def _load_image_list(self) -> list[tuple[int, str]]:
        """Parse cam0/data.csv to get image list.

        CSV format:
            #timestamp [ns],filename
            1403636579763555584,1403636579763555584.png

        Returns:
            List of (timestamp_ns, filename) tuples in file order
        """
        csv_path = self.cam0_path / "data.csv"
        image_list = []

        with open(csv_path, "r") as f:
            for line in f:
                line = line.strip()
                if not line or line.startswith("#"):
                    continue

                try:
                    timestamp_str, filename = line.split(",")
                    timestamp_ns = int(timestamp_str.strip())
                    image_list.append((timestamp_ns, filename.strip()))
                except ValueError as e:
                    raise ValueError(
                        f"Invalid line in {csv_path}: '{line}'\n"
                        f"Expected format: timestamp,filename"
                    ) from e

        return image_list

    def _load_image(self, filename: str) -> np.ndarray:
        path = self.cam0_data_path / filename
        if not path.exists():
            raise FileNotFoundError(f"Camera image not found: {path}")

        image = cv2.imread(str(path), cv2.IMREAD_GRAYSCALE)
        if image is None:
            raise ValueError(f"Failed to load image: {path}")
        return image

    def get_next_frame(self) -> Frame | None:
        """Get next frame, or None when the sequence is exhausted."""
        if self._current_idx >= len(self._image_list):
            return None

        timestamp_ns, filename = self._image_list[self._current_idx]
        image = self._load_image(filename)

        self._current_idx += 1
        return Frame(pixels=image, timestamp_ms=timestamp_ns / 1e6)

    @property
    def image_size(self) -> tuple[int, int]:
        """Return (width, height) of the first image in the sequence."""
        image = self._load_image(self._image_list[0][1])
        return image.shape[1], image.shape[0]

    def reset(self) -> None:
        """Reset iterator to beginning of sequence."""
        self._current_idx = 0

    def __len__(self) -> int:
        return len(self._image_list)

    def __iter__(self) -> Iterator[Frame]:
        self.reset()
        return self

    def __next__(self) -> Frame:
        frame = self.get_next_frame()
        if frame is None:
            raise StopIteration
        return frame

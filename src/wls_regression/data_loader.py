"""
Measurement Set Loading

Reads a measurement set from JSON and replays it into WLS estimators.

File layout:
    {
        "size": 3,
        "prior": 1e-6,                      (optional: scalar, (d,) or (d, d))
        "measurements": [
            {"value": 1.0, "jacobian": [...], "weight": 1.0},
            {"values": [...], "jacobian": [[...]], "invcov": [[...]]}
        ],
        "ground_truth": [...]               (optional)
    }

Entries with "value" are single measurements (weight defaults to 1), entries
with "values" are correlated batches with a (d, N) Jacobian.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Union

import numpy as np
from numpy.typing import NDArray

from .wls import WLS

logger = logging.getLogger(__name__)


@dataclass
class Measurement:
    """Single scalar measurement with Jacobian row and weight."""

    value: float
    jacobian: NDArray[np.floating]  # (d,)
    weight: float = 1.0

    def apply(self, wls: WLS) -> None:
        wls.add_measurement(self.value, self.jacobian, self.weight)


@dataclass
class MeasurementBatch:
    """N correlated measurements sharing one inverse covariance."""

    values: NDArray[np.floating]  # (N,)
    jacobian: NDArray[np.floating]  # (d, N)
    invcov: NDArray[np.floating]  # (N, N)

    def apply(self, wls: WLS) -> None:
        wls.add_measurements(self.values, self.jacobian, self.invcov)


@dataclass
class MeasurementSet:
    """
    A prior plus a list of measurements for a d-dimensional problem.

    Attributes:
        size: Number of parameters d
        measurements: Single measurements and batches, in file order
        prior: Prior strength (scalar, (d,) or (d, d)), None for no prior
        ground_truth: Known parameter values (d,), if recorded
    """

    size: int
    measurements: List[Union[Measurement, MeasurementBatch]] = field(
        default_factory=list
    )
    prior: Optional[NDArray[np.floating]] = None
    ground_truth: Optional[NDArray[np.floating]] = None

    def accumulate(self, wls: WLS, include_prior: bool = True) -> WLS:
        """
        Add the prior and all measurements to an estimator.

        Args:
            wls: Estimator of dimension size
            include_prior: Whether to add the prior as well

        Returns:
            The same estimator, for chaining
        """
        if include_prior and self.prior is not None:
            wls.add_prior(self.prior)

        for measurement in self.measurements:
            measurement.apply(wls)

        return wls

    def shard(self, n_shards: int) -> List["MeasurementSet"]:
        """
        Split the measurements round-robin into n_shards sets.

        The prior is kept by the first shard only, so that merging the
        estimators of all shards counts it exactly once.

        Args:
            n_shards: Number of shards (>= 1)

        Returns:
            List of n_shards measurement sets
        """
        if n_shards < 1:
            raise ValueError("Number of shards must be at least 1")

        return [
            MeasurementSet(
                size=self.size,
                measurements=self.measurements[i::n_shards],
                prior=self.prior if i == 0 else None,
                ground_truth=self.ground_truth,
            )
            for i in range(n_shards)
        ]


def _parse_measurement(entry: dict, index: int) -> Union[Measurement, MeasurementBatch]:
    if not isinstance(entry, dict):
        raise ValueError(f"Measurement {index} must be an object")

    try:
        if "values" in entry:
            return MeasurementBatch(
                values=np.array(entry["values"], dtype=float),
                jacobian=np.array(entry["jacobian"], dtype=float),
                invcov=np.array(entry["invcov"], dtype=float),
            )
        return Measurement(
            value=float(entry["value"]),
            jacobian=np.array(entry["jacobian"], dtype=float),
            weight=float(entry.get("weight", 1.0)),
        )
    except KeyError as exc:
        raise ValueError(f"Measurement {index} is missing key {exc}") from exc
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Measurement {index} is malformed: {exc}") from exc


def load_measurements(json_path: Union[str, Path]) -> MeasurementSet:
    """
    Load a measurement set from a JSON file.

    Args:
        json_path: Path to the JSON data file

    Returns:
        MeasurementSet with arrays converted to numpy
    """
    with open(json_path, "r") as f:
        data = json.load(f)

    if not isinstance(data, dict):
        raise ValueError(f"{json_path}: expected a JSON object")
    if "size" not in data:
        raise ValueError(f"{json_path}: missing key 'size'")
    if "measurements" not in data:
        raise ValueError(f"{json_path}: missing key 'measurements'")

    size = data["size"]
    if isinstance(size, bool) or not isinstance(size, int) or size < 1:
        raise ValueError(
            f"{json_path}: 'size' must be a positive integer, not {size!r}"
        )
    if not isinstance(data["measurements"], list):
        raise ValueError(f"{json_path}: 'measurements' must be a list")

    measurements = [
        _parse_measurement(entry, i) for i, entry in enumerate(data["measurements"])
    ]

    prior = None
    if data.get("prior") is not None:
        prior = np.array(data["prior"], dtype=float)

    ground_truth = None
    if data.get("ground_truth") is not None:
        ground_truth = np.array(data["ground_truth"], dtype=float)

    logger.debug("Loaded %d measurement entries from %s", len(measurements), json_path)

    return MeasurementSet(
        size=size,
        measurements=measurements,
        prior=prior,
        ground_truth=ground_truth,
    )

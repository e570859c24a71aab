# Copyright 2025 rbmkit Contributors
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
"""
Unit types, link function and samplers

This module provides the building blocks shared by the RBM layers:
- UnitType: the Bernoulli / Gaussian activation variants
- logistic link used by both conditional distributions
- Bernoulli and unit-variance Gaussian samplers taking an explicit generator
- Tensor coercion helpers for dense, sparse and NumPy inputs
"""

from enum import Enum
from typing import Any, Callable, Dict, Optional, Union
import torch
import numpy as np
import logging

from ..exceptions import InvalidConfiguration

logger = logging.getLogger(__name__)


class UnitType(str, Enum):
    """Activation variant of a layer."""

    BERNOULLI = "bernoulli"
    GAUSSIAN = "gaussian"

    @classmethod
    def parse(cls, value: Union[str, "UnitType"]) -> "UnitType":
        """Normalize a string or UnitType, raising InvalidConfiguration otherwise."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise InvalidConfiguration(
                f"Unknown unit type: {value!r} (expected one of "
                f"{[t.value for t in cls]})"
            ) from None


def logistic(x: torch.Tensor) -> torch.Tensor:
    """Logistic sigmoid, 1 / (1 + exp(-x))."""
    return torch.sigmoid(x)


def sample_bernoulli(
    probs: torch.Tensor,
    generator: Optional[torch.Generator] = None
) -> torch.Tensor:
    """
    Sample from a Bernoulli distribution.

    Args:
        probs: Success probabilities, any shape
        generator: Random generator (None uses the global torch generator)

    Returns:
        samples: Tensor of 0.0 / 1.0 with the shape of ``probs``
    """
    return torch.bernoulli(probs, generator=generator)


def sample_gaussian(
    mean: torch.Tensor,
    std: Optional[torch.Tensor] = None,
    generator: Optional[torch.Generator] = None
) -> torch.Tensor:
    """
    Sample from a Gaussian distribution.

    Args:
        mean: Mean values, any shape
        std: Standard deviation (if None, use unit variance)
        generator: Random generator (None uses the global torch generator)

    Returns:
        samples: Gaussian samples with the shape of ``mean``
    """
    if std is None:
        std = torch.ones_like(mean)
    return torch.normal(mean, std, generator=generator)


_SAMPLERS: Dict[UnitType, Callable[..., torch.Tensor]] = {
    UnitType.BERNOULLI: sample_bernoulli,
    UnitType.GAUSSIAN: sample_gaussian,
}


def sample(
    unit_type: Union[str, UnitType],
    means: torch.Tensor,
    generator: Optional[torch.Generator] = None
) -> torch.Tensor:
    """
    Draw a stochastic state from layer means.

    Bernoulli units flip an independent coin per element with success
    probability equal to the mean. Gaussian units draw from
    Normal(mean, 1) per element.
    """
    sampler = _SAMPLERS[UnitType.parse(unit_type)]
    return sampler(means, generator=generator)


def make_generator(
    random_seed: Optional[int] = None,
    device: Optional[torch.device] = None
) -> Optional[torch.Generator]:
    """Create a seeded generator, or None when no seed is given."""
    if random_seed is None:
        return None
    generator = torch.Generator(device=device or torch.device('cpu'))
    generator.manual_seed(int(random_seed))
    return generator


def as_matrix(
    x: Any,
    dtype: torch.dtype = torch.float64,
    device: Optional[torch.device] = None
) -> torch.Tensor:
    """
    Convert input to a 2-D tensor with one column per sample.

    NumPy arrays and sequences are converted with ``torch.as_tensor``.
    1-D inputs become a single column. Sparse tensors are kept sparse.
    """
    if isinstance(x, np.ndarray):
        x = torch.from_numpy(np.ascontiguousarray(x))
    elif not isinstance(x, torch.Tensor):
        x = torch.as_tensor(x)
    x = x.to(device=device or x.device, dtype=dtype)
    if x.dim() == 1:
        x = x.reshape(-1, 1)
    elif x.dim() != 2:
        raise InvalidConfiguration(f"Expected a 1-D or 2-D input, got {x.dim()}-D")
    return x


def to_dense(x: torch.Tensor) -> torch.Tensor:
    """Return a dense version of ``x``."""
    return x.to_dense() if x.is_sparse else x


def in_unit_interval(x: torch.Tensor) -> bool:
    """Check that every element lies in [0, 1]; NaN counts as outside."""
    values = x.coalesce().values() if x.is_sparse else x
    if values.numel() == 0:
        return True
    return bool(torch.all((values >= 0) & (values <= 1)).item())

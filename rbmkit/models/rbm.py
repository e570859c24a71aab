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
Restricted Boltzmann Machine parameters, conditionals, sampling and scoring

This module implements RBMs with support for:
- Bernoulli-Bernoulli and Gaussian-Bernoulli units
- Conditional means p(h|v) and p(v|h) through the logistic link
- Gibbs sampling chains with an explicit random generator
- Momentum weight updates
- Free energy and pseudo-likelihood scoring

Data matrices hold one feature per row and one sample per column, and the
weight matrix W has shape (n_hidden, n_visible).
"""

from typing import Any, NamedTuple, Optional, Union
import torch
import torch.nn as nn
import torch.nn.functional as F
import logging

from ..exceptions import InvalidConfiguration, ShapeMismatch
from .utils import UnitType, as_matrix, logistic, make_generator, sample, to_dense

logger = logging.getLogger(__name__)


class GibbsSample(NamedTuple):
    """Positive and negative phase states of one gradient estimate."""

    v_pos: torch.Tensor
    h_pos: torch.Tensor
    v_neg: torch.Tensor
    h_neg: torch.Tensor


class RestrictedBoltzmannMachine(nn.Module):
    """
    Restricted Boltzmann Machine with flexible unit types.

    Owns all trainable state: weights, biases, the previous weight delta used
    by the momentum term and the persistent chain used by PCD. The model is
    mutated in place by training and must have a single writer at a time.
    """

    def __init__(
        self,
        n_visible: int,
        n_hidden: int,
        visible_type: Union[str, UnitType] = "bernoulli",
        hidden_type: Union[str, UnitType] = "bernoulli",
        init_scale: float = 0.001,
        momentum: float = 0.9,
        random_seed: Optional[int] = None,
        generator: Optional[torch.Generator] = None,
        device: Optional[torch.device] = None,
        dtype: torch.dtype = torch.float64,
    ):
        """
        Initialize Restricted Boltzmann Machine.

        Args:
            n_visible: Number of visible units
            n_hidden: Number of hidden units
            visible_type: Type of visible units ('bernoulli' or 'gaussian')
            hidden_type: Type of hidden units ('bernoulli' or 'gaussian')
            init_scale: Standard deviation of the initial weight noise
            momentum: Fraction of the previous weight delta added to each update
            random_seed: Seed for a private generator used by all sampling
            generator: Explicit generator (ignored when random_seed is given)
            device: Device to place tensors on
            dtype: Data type for tensors
        """
        super().__init__()

        if int(n_visible) < 1 or int(n_hidden) < 1:
            raise InvalidConfiguration(
                f"Layer sizes must be positive, got n_visible={n_visible}, n_hidden={n_hidden}"
            )
        if not 0.0 <= momentum < 1.0:
            raise InvalidConfiguration(f"momentum must be in [0, 1), got {momentum}")
        if init_scale < 0:
            raise InvalidConfiguration(f"init_scale must be non-negative, got {init_scale}")

        self.n_visible = int(n_visible)
        self.n_hidden = int(n_hidden)
        self.visible_type = UnitType.parse(visible_type)
        self.hidden_type = UnitType.parse(hidden_type)
        self.init_scale = float(init_scale)
        self.momentum = float(momentum)
        self.device = device or torch.device('cpu')
        self.dtype = dtype

        if random_seed is not None:
            generator = make_generator(random_seed, self.device)
        self.generator = generator

        self._init_parameters()
        self.to(self.device)

    def _init_parameters(self) -> None:
        """Initialize weights with small Gaussian noise and zero biases."""
        noise = torch.randn(
            self.n_hidden, self.n_visible, dtype=self.dtype, generator=self.generator
        )
        self.W = nn.Parameter(noise * self.init_scale, requires_grad=False)
        self.v_bias = nn.Parameter(torch.zeros(self.n_visible, dtype=self.dtype), requires_grad=False)
        self.h_bias = nn.Parameter(torch.zeros(self.n_hidden, dtype=self.dtype), requires_grad=False)

        self.register_buffer('dW_prev', torch.zeros(self.n_hidden, self.n_visible, dtype=self.dtype))
        # Empty until the first persistent batch trains
        self.register_buffer('persistent_chain', torch.empty(0, 0, dtype=self.dtype))

    def _as_batch(self, x: Any) -> torch.Tensor:
        return to_dense(as_matrix(x, dtype=self.dtype, device=self.device))

    def _check_rows(self, x: torch.Tensor, expected: int, layer: str) -> None:
        if x.shape[0] != expected:
            raise ShapeMismatch(
                f"{layer} batch has {x.shape[0]} rows, model expects {expected}"
            )

    def hidden_means(self, v: Any) -> torch.Tensor:
        """
        Compute p(h = 1 | v).

        Args:
            v: Visible states [n_visible, batch_size]

        Returns:
            means: Hidden means [n_hidden, batch_size], each in (0, 1)
        """
        v = self._as_batch(v)
        self._check_rows(v, self.n_visible, "Visible")
        return logistic(self.W @ v + self.h_bias.unsqueeze(1))

    def visible_means(self, h: Any) -> torch.Tensor:
        """
        Compute visible means given hidden states.

        Args:
            h: Hidden states [n_hidden, batch_size]

        Returns:
            means: Visible means [n_visible, batch_size], each in (0, 1)
        """
        h = self._as_batch(h)
        self._check_rows(h, self.n_hidden, "Hidden")
        return logistic(self.W.t() @ h + self.v_bias.unsqueeze(1))

    def sample_hiddens(self, v: Any) -> torch.Tensor:
        """Sample hidden states from p(h | v) using the hidden unit type."""
        return sample(self.hidden_type, self.hidden_means(v), generator=self.generator)

    def sample_visibles(self, h: Any) -> torch.Tensor:
        """Sample visible states from p(v | h) using the visible unit type."""
        return sample(self.visible_type, self.visible_means(h), generator=self.generator)

    def gibbs(self, v: Any, steps: int = 1) -> GibbsSample:
        """
        Run a Gibbs chain starting from a visible batch.

        The hidden sample of the input is the positive phase. The negative
        phase starts from it and performs ``steps`` visible/hidden transitions.

        Args:
            v: Starting visible batch [n_visible, batch_size]
            steps: Number of negative-phase transitions, at least 1

        Returns:
            GibbsSample(v_pos, h_pos, v_neg, h_neg)
        """
        if int(steps) < 1:
            raise InvalidConfiguration(f"Gibbs steps must be >= 1, got {steps}")

        v_pos = self._as_batch(v)
        h_pos = self.sample_hiddens(v_pos)
        v_neg = self.sample_visibles(h_pos)
        h_neg = self.sample_hiddens(v_neg)
        for _ in range(int(steps) - 1):
            v_neg = self.sample_visibles(h_neg)
            h_neg = self.sample_hiddens(v_neg)

        return GibbsSample(v_pos, h_pos, v_neg, h_neg)

    def update_weights(
        self,
        h_pos: torch.Tensor,
        v_pos: torch.Tensor,
        h_neg: torch.Tensor,
        v_neg: torch.Tensor,
        learning_rate: float,
    ) -> torch.Tensor:
        """
        Apply one momentum gradient-ascent step to weights and biases.

        ``learning_rate`` is expected to be already divided by the number of
        samples in the batch.

        Returns:
            dW: The raw gradient estimate, now stored as ``dW_prev``
        """
        self._check_rows(h_pos, self.n_hidden, "Positive hidden")
        self._check_rows(v_pos, self.n_visible, "Positive visible")
        self._check_rows(h_neg, self.n_hidden, "Negative hidden")
        self._check_rows(v_neg, self.n_visible, "Negative visible")

        with torch.no_grad():
            dW = h_pos @ v_pos.t() - h_neg @ v_neg.t()

            self.W.add_(dW, alpha=learning_rate)
            self.W.add_(self.dW_prev, alpha=self.momentum)
            self.dW_prev.copy_(dW)

            self.h_bias.add_(h_pos.sum(dim=1) - h_neg.sum(dim=1), alpha=learning_rate)
            self.v_bias.add_(v_pos.sum(dim=1) - v_neg.sum(dim=1), alpha=learning_rate)

        return dW

    def free_energy(self, v: Any) -> torch.Tensor:
        """
        Compute the free energy of visible configurations.

        F(v) = -v_bias^T v - sum_j log(1 + exp(W_j v + h_bias_j))

        Args:
            v: Visible states [n_visible, batch_size]

        Returns:
            free_energy: One value per column [batch_size]
        """
        v = self._as_batch(v)
        self._check_rows(v, self.n_visible, "Visible")

        visible_bias_term = self.v_bias @ v
        hidden_term = F.softplus(self.W @ v + self.h_bias.unsqueeze(1)).sum(dim=0)

        return -visible_bias_term - hidden_term

    def pseudo_likelihood(self, v: Any, sample_size: int = 10000) -> torch.Tensor:
        """
        Stochastic pseudo-likelihood of visible configurations.

        Each scored column gets one uniformly chosen feature flipped to
        ``1 - value``; the estimate is n_features * log sigmoid(F(corrupted) - F(v)).
        Inputs with more than ``sample_size`` columns are scored on
        ``sample_size`` columns drawn without replacement; otherwise scores
        follow the input column order.

        Args:
            v: Visible states [n_visible, batch_size], binary features
            sample_size: Number of columns to score for large inputs

        Returns:
            scores: Per-column estimates, all <= 0
        """
        v = as_matrix(v, dtype=self.dtype, device=self.device)
        n_samples = v.shape[1]

        if n_samples > sample_size:
            cols = torch.randperm(n_samples, generator=self.generator)[:int(sample_size)]
            cols = cols.to(self.device)
            v = v.index_select(1, cols)
        v = to_dense(v)

        n_features, n_samples = v.shape
        idxs = torch.randint(
            0, n_features, (n_samples,), generator=self.generator
        ).to(self.device)
        cols = torch.arange(n_samples, device=self.device)

        v_corrupted = v.clone()
        v_corrupted[idxs, cols] = 1 - v_corrupted[idxs, cols]

        fe = self.free_energy(v)
        fe_corrupted = self.free_energy(v_corrupted)
        return n_features * F.logsigmoid(fe_corrupted - fe)

    def transform(self, v: Any) -> torch.Tensor:
        """Hidden means used as extracted features [n_hidden, batch_size]."""
        return self.hidden_means(v)

    def generate(self, seed: Any, gibbs_steps: int = 1) -> torch.Tensor:
        """
        Generate visible samples by running a Gibbs chain from ``seed``.

        A 1-D seed yields a 1-D sample.
        """
        is_vector = torch.as_tensor(seed).dim() == 1
        v_neg = self.gibbs(seed, steps=gibbs_steps).v_neg
        return v_neg.reshape(-1) if is_vector else v_neg

    def components(self, transpose: bool = True) -> torch.Tensor:
        """
        Learned weights, detached from autograd.

        Returns W^T [n_visible, n_hidden] by default, or W [n_hidden, n_visible].
        The result shares storage with the model and must not be modified.
        """
        W = self.W.detach()
        return W.t() if transpose else W

    features = components

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"RestrictedBoltzmannMachine{{{self.visible_type.value},{self.hidden_type.value}}}("
            f"n_visible={self.n_visible}, "
            f"n_hidden={self.n_hidden})"
        )


def make_rbm(
    visible_type: Union[str, UnitType],
    hidden_type: Union[str, UnitType],
    n_visible: int,
    n_hidden: int,
    init_scale: float = 0.001,
    momentum: float = 0.9,
    **kwargs
) -> RestrictedBoltzmannMachine:
    """Construct an RBM from its unit types and layer sizes."""
    return RestrictedBoltzmannMachine(
        n_visible=n_visible,
        n_hidden=n_hidden,
        visible_type=visible_type,
        hidden_type=hidden_type,
        init_scale=init_scale,
        momentum=momentum,
        **kwargs
    )


def BernoulliRBM(n_visible: int, n_hidden: int, **kwargs) -> RestrictedBoltzmannMachine:
    """RBM with Bernoulli visible and hidden units."""
    return make_rbm(UnitType.BERNOULLI, UnitType.BERNOULLI, n_visible, n_hidden, **kwargs)


def GRBM(n_visible: int, n_hidden: int, **kwargs) -> RestrictedBoltzmannMachine:
    """RBM with Gaussian visible and Bernoulli hidden units."""
    return make_rbm(UnitType.GAUSSIAN, UnitType.BERNOULLI, n_visible, n_hidden, **kwargs)


# Functional spelling of the model methods

def hidden_means(model: RestrictedBoltzmannMachine, v: Any) -> torch.Tensor:
    return model.hidden_means(v)


def visible_means(model: RestrictedBoltzmannMachine, h: Any) -> torch.Tensor:
    return model.visible_means(h)


def gibbs(model: RestrictedBoltzmannMachine, v: Any, steps: int = 1) -> GibbsSample:
    return model.gibbs(v, steps=steps)


def update_weights(
    model: RestrictedBoltzmannMachine,
    h_pos: torch.Tensor,
    v_pos: torch.Tensor,
    h_neg: torch.Tensor,
    v_neg: torch.Tensor,
    learning_rate: float,
) -> torch.Tensor:
    return model.update_weights(h_pos, v_pos, h_neg, v_neg, learning_rate)


def free_energy(model: RestrictedBoltzmannMachine, v: Any) -> torch.Tensor:
    return model.free_energy(v)


def pseudo_likelihood(
    model: RestrictedBoltzmannMachine,
    v: Any,
    sample_size: int = 10000
) -> torch.Tensor:
    return model.pseudo_likelihood(v, sample_size=sample_size)


score_samples = pseudo_likelihood


def transform(model: RestrictedBoltzmannMachine, data: Any) -> torch.Tensor:
    return model.transform(data)


def generate(model: RestrictedBoltzmannMachine, seed: Any, gibbs_steps: int = 1) -> torch.Tensor:
    return model.generate(seed, gibbs_steps=gibbs_steps)


def components(model: RestrictedBoltzmannMachine, transpose: bool = True) -> torch.Tensor:
    return model.components(transpose=transpose)


features = components

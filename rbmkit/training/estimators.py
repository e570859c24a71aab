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
Gradient estimators: Contrastive Divergence (CD-k) and Persistent
Contrastive Divergence (PCD-k).

Both policies return a GibbsSample with the same shapes, so the weight
update does not depend on which one produced it.
"""

from typing import Callable
import torch
import logging

from ..models.rbm import GibbsSample, RestrictedBoltzmannMachine

logger = logging.getLogger(__name__)

Estimator = Callable[[RestrictedBoltzmannMachine, torch.Tensor, int], GibbsSample]


def contrastive_divergence(
    model: RestrictedBoltzmannMachine,
    batch: torch.Tensor,
    k: int = 1
) -> GibbsSample:
    """CD-k: a k-step chain started from the batch itself."""
    return model.gibbs(batch, steps=k)


def persistent_contrastive_divergence(
    model: RestrictedBoltzmannMachine,
    batch: torch.Tensor,
    k: int = 1
) -> GibbsSample:
    """
    PCD-k: negative samples come from fantasy particles kept across batches.

    The chain is reset to the batch whenever its shape differs from the
    batch shape, which includes the first call and the short final batch of
    an epoch. The positive phase always comes from the real data.
    """
    batch = model._as_batch(batch)
    if model.persistent_chain.shape != batch.shape:
        logger.debug(
            f"Resetting persistent chain: {tuple(model.persistent_chain.shape)} -> {tuple(batch.shape)}"
        )
        model.persistent_chain = batch.detach().clone()

    h_pos = model.sample_hiddens(batch)

    _, _, v_neg, h_neg = model.gibbs(model.persistent_chain, steps=k)
    model.persistent_chain = v_neg.detach()

    return GibbsSample(batch, h_pos, v_neg, h_neg)


def get_estimator(persistent: bool) -> Estimator:
    """Select the gradient estimator for the given training mode."""
    return persistent_contrastive_divergence if persistent else contrastive_divergence

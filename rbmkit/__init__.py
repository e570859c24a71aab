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
rbmkit: Restricted Boltzmann Machines trained with CD-k and PCD-k.

Data matrices hold one feature per row and one sample per column.

Usage:
    import torch
    from rbmkit import BernoulliRBM, fit, transform

    model = BernoulliRBM(n_visible=784, n_hidden=128, random_seed=0)
    history = fit(model, data, persistent=True, epochs=10, batch_size=100)
    hidden = transform(model, data)
"""

from .exceptions import RBMError, InvalidInputRange, ShapeMismatch, InvalidConfiguration
from .models import (
    RestrictedBoltzmannMachine,
    GibbsSample,
    UnitType,
    make_rbm,
    BernoulliRBM,
    GRBM,
    hidden_means,
    visible_means,
    gibbs,
    update_weights,
    free_energy,
    pseudo_likelihood,
    score_samples,
    transform,
    generate,
    components,
    features,
)
from .training import TrainingLoop, fit, fit_batch

__version__ = "0.1.0"
__all__ = [
    "RBMError",
    "InvalidInputRange",
    "ShapeMismatch",
    "InvalidConfiguration",
    "RestrictedBoltzmannMachine",
    "GibbsSample",
    "UnitType",
    "make_rbm",
    "BernoulliRBM",
    "GRBM",
    "hidden_means",
    "visible_means",
    "gibbs",
    "update_weights",
    "free_energy",
    "pseudo_likelihood",
    "score_samples",
    "transform",
    "generate",
    "components",
    "features",
    "TrainingLoop",
    "fit",
    "fit_batch",
]

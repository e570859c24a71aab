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
Models module for rbmkit.

This module provides the Restricted Boltzmann Machine and its helpers:
- RestrictedBoltzmannMachine: parameters, conditionals, Gibbs sampling, scoring
- BernoulliRBM / GRBM / make_rbm: constructors
- Unit types and samplers shared by both layers
"""

from .rbm import (
    RestrictedBoltzmannMachine,
    GibbsSample,
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
from .utils import (
    UnitType,
    logistic,
    sample,
    sample_bernoulli,
    sample_gaussian,
    make_generator,
)

__all__ = [
    # Core model
    "RestrictedBoltzmannMachine",
    "GibbsSample",
    "make_rbm",
    "BernoulliRBM",
    "GRBM",

    # Functional API
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

    # Unit types and sampling
    "UnitType",
    "logistic",
    "sample",
    "sample_bernoulli",
    "sample_gaussian",
    "make_generator",
]

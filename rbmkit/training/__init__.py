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
Training module for rbmkit.

This module provides the training infrastructure for RBMs:
- TrainingLoop / fit / fit_batch: epoch and mini-batch orchestration
- Gradient estimators: CD-k and PCD-k
- Callbacks: early stopping, learning rate schedules, monitoring
"""

from .loop import TrainingLoop, fit, fit_batch
from .estimators import (
    contrastive_divergence,
    persistent_contrastive_divergence,
    get_estimator,
)
from .callbacks import (
    Callback,
    EarlyStopping,
    LearningRateScheduler,
    MetricMonitor,
    get_standard_callbacks,
)

__all__ = [
    # Core training
    "TrainingLoop",
    "fit",
    "fit_batch",

    # Estimators
    "contrastive_divergence",
    "persistent_contrastive_divergence",
    "get_estimator",

    # Callbacks
    "Callback",
    "EarlyStopping",
    "LearningRateScheduler",
    "MetricMonitor",
    "get_standard_callbacks",
]
